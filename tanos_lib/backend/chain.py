"""
Transaction collaborators for swap sessions.

A collaborator builds and hashes transactions (delegating to embit via
core.transaction_builder), watches for the swap output to be funded and
broadcasts the claim. Two implementations:
- MemoryChain: in-process UTXO set; checks key-path witnesses before
  accepting a broadcast
- ElectrumChain: polls an Electrum server for the funding output and
  broadcasts through it
"""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from embit.transaction import Transaction, SIGHASH

from ..core import transaction_builder
from ..core.address import script_to_scripthash
from ..core.constants import FUNDING_POLL_INTERVAL
from ..core.models import Outpoint
from .clients import ElectrumClient

logger = logging.getLogger('tanos.chain')


class TransactionCollaborator(ABC):
    """
    Interface swap sessions use to reach the Bitcoin network.

    The synchronous helpers are pure transaction operations; the async
    methods talk to whatever backs the collaborator.
    """

    def build_output(self, script_pubkey: bytes, amount: int, prev_outpoint: Outpoint) -> Transaction:
        return transaction_builder.build_output(script_pubkey, amount, prev_outpoint)

    def set_witness(self, tx: Transaction, index: int, items: List[bytes]) -> Transaction:
        return transaction_builder.set_witness(tx, index, items)

    def sighash(
        self,
        tx: Transaction,
        index: int,
        prevout_scripts: Sequence[bytes],
        prevout_values: Sequence[int],
        mode: int = SIGHASH.DEFAULT
    ) -> bytes:
        return transaction_builder.sighash(tx, index, prevout_scripts, prevout_values, mode)

    async def request_funding(self, script_pubkey: bytes, amount: int) -> None:
        """Ask for `amount` sats to be sent to `script_pubkey` (no-op by default)."""
        logger.info(f"Waiting for {amount} sats to be sent to script {script_pubkey.hex()}")

    @abstractmethod
    async def wait_for_funding(self, script_pubkey: bytes, amount: int) -> Outpoint:
        """
        Return the outpoint of an output paying at least `amount` to
        `script_pubkey`, with `value` set to what the output actually holds.
        """

    @abstractmethod
    async def broadcast(self, tx: Transaction) -> str:
        """Broadcast a signed transaction and return its txid."""


class MemoryChain(TransactionCollaborator):
    """
    In-memory UTXO set.

    Funding creates outputs out of thin air; broadcasts must spend known
    unspent outputs with valid key-path witnesses.

    Example:
        >>> chain = MemoryChain()
        >>> outpoint = await chain.fund(script, 100_000)
        >>> txid = await chain.broadcast(signed_claim)
    """

    def __init__(self, auto_fund: bool = True):
        """
        Args:
            auto_fund: Fund outputs as soon as funding is requested
        """
        self.auto_fund = auto_fund
        self.utxos: Dict[Outpoint, Tuple[bytes, int]] = {}
        self.transactions: Dict[str, Transaction] = {}
        self.spent_by: Dict[Outpoint, str] = {}
        self._counter = 0
        self._changed = asyncio.Condition()

    async def fund(self, script_pubkey: bytes, amount: int) -> Outpoint:
        """Create a transaction paying `amount` to `script_pubkey`."""
        self._counter += 1
        source = Outpoint(hashlib.sha256(b'coinbase' + self._counter.to_bytes(8, 'big')).hexdigest(), 0)
        tx = transaction_builder.build_output(script_pubkey, amount, source)
        _, txid = transaction_builder.serialize_transaction(tx)

        outpoint = Outpoint(txid, 0)
        async with self._changed:
            self.transactions[txid] = tx
            self.utxos[outpoint] = (bytes(script_pubkey), amount)
            self._changed.notify_all()

        logger.debug(f"Funded {outpoint} with {amount} sats")
        return replace(outpoint, value=amount)

    async def request_funding(self, script_pubkey: bytes, amount: int) -> None:
        if self.auto_fund:
            await self.fund(script_pubkey, amount)

    def _find_output(self, script_pubkey: bytes, amount: int) -> Optional[Outpoint]:
        for outpoint, (spk, value) in self.utxos.items():
            if spk == script_pubkey and value >= amount:
                return replace(outpoint, value=value)
        return None

    async def wait_for_funding(self, script_pubkey: bytes, amount: int) -> Outpoint:
        async with self._changed:
            await self._changed.wait_for(lambda: self._find_output(script_pubkey, amount) is not None)
            return self._find_output(script_pubkey, amount)

    async def broadcast(self, tx: Transaction) -> str:
        """
        Accept a transaction if every input is unspent and correctly signed.

        Raises:
            ValueError: If an input is unknown or spent, or a witness is invalid
        """
        # check and keep a detached copy of what was broadcast
        tx = transaction_builder.parse_transaction(tx.serialize().hex())

        spent = []
        for tx_in in tx.vin:
            outpoint = Outpoint(tx_in.txid.hex(), tx_in.vout)
            if outpoint not in self.utxos:
                raise ValueError(f"Input {outpoint} is missing or already spent")
            spent.append(outpoint)

        prevout_scripts = [self.utxos[o][0] for o in spent]
        prevout_values = [self.utxos[o][1] for o in spent]
        is_valid, message = transaction_builder.verify_transaction_signatures(
            tx, prevout_scripts, prevout_values
        )
        if not is_valid:
            raise ValueError(f"Transaction rejected: {message}")

        if sum(out.value for out in tx.vout) > sum(prevout_values):
            raise ValueError("Transaction outputs exceed inputs")

        _, txid = transaction_builder.serialize_transaction(tx)
        async with self._changed:
            for outpoint in spent:
                del self.utxos[outpoint]
                self.spent_by[outpoint] = txid
            for vout, out in enumerate(tx.vout):
                self.utxos[Outpoint(txid, vout)] = (out.script_pubkey.data, out.value)
            self.transactions[txid] = tx
            self._changed.notify_all()

        logger.info(f"Accepted transaction {txid}")
        return txid

    def find_spend(self, outpoint: Outpoint) -> Optional[Transaction]:
        """Transaction that spent `outpoint`, if any."""
        txid = self.spent_by.get(outpoint)
        return self.transactions.get(txid) if txid else None


class ElectrumChain(TransactionCollaborator):
    """
    Collaborator backed by an Electrum server.

    The client must be connected (inside `client.connect()`) while the
    session uses it.
    """

    def __init__(self, client: ElectrumClient, poll_interval: float = FUNDING_POLL_INTERVAL):
        self.client = client
        self.poll_interval = poll_interval

    async def wait_for_funding(self, script_pubkey: bytes, amount: int) -> Outpoint:
        scripthash = script_to_scripthash(script_pubkey)
        logger.info(f"Watching scripthash {scripthash} for {amount} sats")

        while True:
            utxos = await self.client.get_scripthash_listunspent(scripthash)
            for utxo in utxos or []:
                if utxo.get('value', 0) >= amount:
                    outpoint = Outpoint(utxo['tx_hash'], utxo['tx_pos'], utxo['value'])
                    logger.info(f"Funding found at {outpoint} (height {utxo.get('height', 0)})")
                    return outpoint
            await asyncio.sleep(self.poll_interval)

    async def broadcast(self, tx: Transaction) -> str:
        tx_hex, txid = transaction_builder.serialize_transaction(tx)
        result = await self.client.broadcast_transaction(tx_hex)
        if result != txid:
            logger.warning(f"Server returned txid {result}, expected {txid}")
        return result
