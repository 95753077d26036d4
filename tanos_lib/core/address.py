"""
Key and script encoding helpers.

This module contains functions for:
- Converting private keys to and from WIF (Wallet Import Format)
- Parsing private keys given as hex or WIF on the command line
- Computing Electrum scripthashes for output scripts
"""

import hashlib
from typing import Tuple

import base58

from .constants import NETWORK_MAP, get_network_config
from .ecc import int_from_bytes, scalar_to_bytes, validate_private_key
from .errors import InvalidKeyError


def privkey_to_wif(private_key: int, network: str = 'mainnet') -> str:
    """
    Convert a private key to compressed WIF.

    Args:
        private_key: Scalar in [1, n)
        network: Bitcoin network ('mainnet', 'testnet', etc.)

    Returns:
        WIF encoded private key string
    """
    x = validate_private_key(private_key)
    version_byte = get_network_config(network)['wif']
    # Taproot keys are always compressed: 0x01 suffix
    payload = version_byte + scalar_to_bytes(x) + b'\x01'
    return base58.b58encode_check(payload).decode('ascii')


def wif_to_privkey(wif: str) -> Tuple[int, str]:
    """
    Decode a compressed WIF private key.

    Returns:
        Tuple of (private key scalar, network name)

    Raises:
        InvalidKeyError: If the checksum, length or version byte is wrong
    """
    try:
        payload = base58.b58decode_check(wif)
    except ValueError as e:
        raise InvalidKeyError(f"Invalid WIF: {e}")

    if len(payload) != 34 or payload[-1] != 0x01:
        raise InvalidKeyError("WIF must encode a compressed 32-byte private key")

    version_byte = payload[:1]
    for network in NETWORK_MAP:
        if get_network_config(network)['wif'] == version_byte:
            return validate_private_key(int_from_bytes(payload[1:33])), network
    raise InvalidKeyError(f"Unknown WIF version byte {version_byte.hex()}")


def parse_private_key(value: str) -> int:
    """
    Parse a private key given as 64 hex characters or WIF.

    Raises:
        InvalidKeyError: If the value is neither
    """
    value = value.strip()
    if len(value) == 64:
        try:
            key = int(value, 16)
        except ValueError:
            key = None
        if key is not None:
            return validate_private_key(key)
    key, _ = wif_to_privkey(value)
    return key


def script_to_scripthash(script_pubkey: bytes) -> str:
    """Electrum scripthash: reversed sha256 of the scriptPubKey, hex encoded."""
    return hashlib.sha256(script_pubkey).digest()[::-1].hex()
