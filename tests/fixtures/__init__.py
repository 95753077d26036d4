"""
Test fixtures and helper functions shared across the test suite.

This module provides deterministic randomness sources, well-known keys,
swap terms, an independent BIP-340 check backed by embit and loaders
for the BIP-340 and BIP-341 test vector files.
"""

import asyncio
import csv
import hashlib
import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List

from embit import ec

from tanos_lib.core.models import SwapConfig, SwapTerms

# Private key 3 -> x-only public key from the BIP-340 test vectors
PRIVKEY_THREE = 3
PUBKEY_THREE_XONLY = bytes.fromhex('F9308A019258C31049344F85F89D5229B531C845836F99B08601F113BCE036F9')

SELLER_KEY = 1
BUYER_KEY = int.from_bytes(hashlib.sha256(b'tanos buyer').digest(), 'big')
SECRET_ADAPTOR = int.from_bytes(hashlib.sha256(b'tanos adaptor').digest(), 'big')

SWAP_AMOUNT = 100_000

FIXTURES_DIR = Path(__file__).parent


def seeded_random_source(seed: bytes = b'tanos') -> Callable[[int], bytes]:
    """
    Deterministic byte source: sha256(seed || counter) blocks.

    Every call returns fresh bytes, so nonces never repeat.
    """
    counter = [0]

    def source(n: int) -> bytes:
        out = b''
        while len(out) < n:
            counter[0] += 1
            out += hashlib.sha256(seed + counter[0].to_bytes(8, 'big')).digest()
        return out[:n]

    return source


def scripted_random_source(values: Iterable[bytes]) -> Callable[[int], bytes]:
    """Byte source replaying `values` in order, then repeating the last one."""
    values: List[bytes] = list(values)
    calls = [0]

    def source(n: int) -> bytes:
        value = values[min(calls[0], len(values) - 1)]
        calls[0] += 1
        return value[:n]

    source.calls = calls
    return source


def make_terms(content: str = 'hello', amount: int = SWAP_AMOUNT, swap_id: str = 'swap-0001') -> SwapTerms:
    """Swap terms used by coordinator tests."""
    return SwapTerms(swap_id=swap_id, content=content, amount=amount)


def fast_config(**overrides) -> SwapConfig:
    """SwapConfig with short deadlines for tests."""
    values = dict(network='regtest', funding_timeout=2.0, reveal_timeout=2.0, broadcast_timeout=2.0)
    values.update(overrides)
    return SwapConfig(**values)


def embit_schnorr_verify(pubkey_x: bytes, message32: bytes, signature: bytes) -> bool:
    """Independent BIP-340 verification through embit (32-byte messages)."""
    pubkey = ec.PublicKey.from_xonly(pubkey_x)
    return pubkey.schnorr_verify(ec.SchnorrSig(signature), message32)


def run(coro):
    """Run a coroutine to completion in a fresh event loop."""
    return asyncio.run(coro)


def load_bip340_test_vectors() -> List[Dict[str, Any]]:
    """
    Load BIP-340 test vectors from CSV file.

    Returns:
        List of test vector dictionaries with keys:
        - index, secret_key, public_key, aux_rand, message,
          signature, verification_result, comment
    """
    vectors = []
    with open(FIXTURES_DIR / 'bip340_test_vectors.csv', newline='') as f:
        for row in csv.DictReader(f):
            vectors.append({
                'index': int(row['index']),
                'secret_key': row['secret key'] or None,
                'public_key': row['public key'],
                'aux_rand': row['aux_rand'] or None,
                'message': row['message'],
                'signature': row['signature'],
                'verification_result': row['verification result'] == 'TRUE',
                'comment': row['comment'],
            })
    return vectors


def load_bip341_wallet_test_vectors() -> Dict[str, Any]:
    """Load the BIP-341 wallet test vectors from JSON file."""
    with open(FIXTURES_DIR / 'bip341_wallet_test_vectors.json') as f:
        return json.load(f)


def get_bip341_scriptpubkey_vectors() -> List[Dict[str, Any]]:
    """Output key derivation vectors (internal key -> tweak -> scriptPubKey)."""
    return load_bip341_wallet_test_vectors()['scriptPubKey']


def get_bip341_keypath_vectors() -> List[Dict[str, Any]]:
    """Private key tweak vectors from the key-path spending section."""
    vectors = load_bip341_wallet_test_vectors()['keyPathSpending']
    return [spend for entry in vectors for spend in entry['inputSpending']]
