"""
Transaction building and signing helpers for the swap output.

This module contains pure functions for:
- Building the unsigned claim transaction that spends the locked output
- Computing BIP-341 signature hashes
- Placing key-path witnesses
- Verifying key-path witnesses before broadcast
- Serializing and parsing transactions

Uses embit library for Bitcoin transaction primitives.
"""

import logging
from typing import List, Sequence, Tuple

from embit import script
from embit.transaction import Transaction, TransactionInput, TransactionOutput, SIGHASH

from .adaptor import verify_schnorr
from .constants import DUST_LIMIT, P2TR_SCRIPT_PREFIX
from .models import Outpoint

logger = logging.getLogger('tanos.transaction_builder')

# BIP 125 opt-in RBF
RBF_SEQUENCE = 0xfffffffd


def build_output(script_pubkey: bytes, amount: int, prev_outpoint: Outpoint) -> Transaction:
    """
    Build an unsigned one-input, one-output transaction.

    Args:
        script_pubkey: Destination scriptPubKey
        amount: Output value in satoshis
        prev_outpoint: Outpoint being spent

    Returns:
        Unsigned Transaction object

    Raises:
        ValueError: If the amount is below the dust limit or the txid is malformed
    """
    if amount < DUST_LIMIT:
        raise ValueError(f"Output amount {amount} is below the dust limit ({DUST_LIMIT} sats)")

    try:
        txid_bytes = bytes.fromhex(prev_outpoint.txid)
    except ValueError as e:
        raise ValueError(f"Invalid txid {prev_outpoint.txid}: {e}")
    if len(txid_bytes) != 32:
        raise ValueError(f"Invalid txid length: {len(txid_bytes)} bytes")

    tx_in = TransactionInput(txid_bytes, prev_outpoint.vout, sequence=RBF_SEQUENCE)
    tx_out = TransactionOutput(amount, script.Script(script_pubkey))
    return Transaction(vin=[tx_in], vout=[tx_out])


def sighash(
    tx: Transaction,
    index: int,
    prevout_scripts: Sequence[bytes],
    prevout_values: Sequence[int],
    mode: int = SIGHASH.DEFAULT
) -> bytes:
    """
    Compute the BIP-341 key-path signature hash for input `index`.

    Args:
        tx: Transaction being signed
        index: Input index
        prevout_scripts: scriptPubKeys of every spent output, in input order
        prevout_values: Values of every spent output, in input order
        mode: Sighash type (SIGHASH.DEFAULT for key-path spends)

    Returns:
        32-byte signature hash
    """
    if len(prevout_scripts) != len(tx.vin) or len(prevout_values) != len(tx.vin):
        raise ValueError("Taproot sighash requires one prevout per input")
    scripts = [script.Script(s) for s in prevout_scripts]
    # embit memoizes the amounts and scripts midstates on the transaction object
    tx.clear_cache()
    return tx.sighash_taproot(index, scripts, list(prevout_values), mode)


def set_witness(tx: Transaction, index: int, items: List[bytes]) -> Transaction:
    """Set the witness stack of input `index` (modifies tx in-place and returns it)."""
    if not 0 <= index < len(tx.vin):
        raise ValueError(f"Input index {index} out of range")
    tx.vin[index].witness = script.Witness(list(items))
    return tx


def verify_key_path_witness(
    tx: Transaction,
    index: int,
    prevout_scripts: Sequence[bytes],
    prevout_values: Sequence[int]
) -> Tuple[bool, str]:
    """
    Verify the key-path witness of one input.

    Returns:
        Tuple of (is_valid, message)
    """
    witness = tx.vin[index].witness
    if not witness or len(witness.items) == 0:
        return False, f"Input {index}: No witness data found"

    sig_bytes = witness.items[0]
    if len(sig_bytes) != 64:
        return False, f"Input {index}: Invalid signature length {len(sig_bytes)} (expected 64 bytes)"

    prevout_script = bytes(prevout_scripts[index])
    if len(prevout_script) != 34 or not prevout_script.startswith(P2TR_SCRIPT_PREFIX):
        return False, f"Input {index}: Invalid P2TR scriptPubKey format"

    msg = sighash(tx, index, prevout_scripts, prevout_values)
    if not verify_schnorr(prevout_script[2:], msg, sig_bytes):
        logger.error(f"Invalid Schnorr signature for input {index}")
        return False, f"Input {index}: Invalid Schnorr signature"

    logger.debug(f"Signature verified for input {index}")
    return True, f"Input {index}: Valid"


def verify_transaction_signatures(
    tx: Transaction,
    prevout_scripts: Sequence[bytes],
    prevout_values: Sequence[int]
) -> Tuple[bool, str]:
    """
    Verify every input's key-path signature before broadcast.

    Returns:
        Tuple of (all_valid, message)
    """
    results = []
    for idx in range(len(tx.vin)):
        is_valid, message = verify_key_path_witness(tx, idx, prevout_scripts, prevout_values)
        if not is_valid:
            return False, message
        results.append(message)

    logger.info(f"All {len(results)} signature(s) verified successfully")
    return True, "All signatures verified:\n" + "\n".join(f"  {r}" for r in results)


def serialize_transaction(tx: Transaction) -> Tuple[str, str]:
    """
    Serialize a signed transaction and calculate its TXID.

    Returns:
        Tuple of (tx_hex, txid)
    """
    return tx.serialize().hex(), tx.txid().hex()


def parse_transaction(tx_hex: str) -> Transaction:
    """Parse a serialized transaction."""
    try:
        return Transaction.parse(bytes.fromhex(tx_hex))
    except Exception as e:
        raise ValueError(f"Could not parse serialized transaction: {e}")
