"""
Unit tests for core/models.py - data models and their wire formats.
"""

import unittest
from dataclasses import replace

from tanos_lib.core.adaptor import AdaptorSignatureEngine
from tanos_lib.core.constants import SECP256K1_ORDER
from tanos_lib.core.ecc import point_from_scalar, scalar_to_bytes
from tanos_lib.core.errors import InvalidKeyError, InvalidPointError, PointDecodeError
from tanos_lib.core.models import (
    AdaptorSignature, ClaimResult, Commitment, Outpoint, Reveal, SwapConfig,
    SwapState, SwapTerms,
)
from tests.fixtures import BUYER_KEY, SECRET_ADAPTOR, seeded_random_source


class TestSwapState(unittest.TestCase):
    """Test state classification."""

    def test_terminal_states(self):
        terminal = {s for s in SwapState if s.is_terminal}
        self.assertEqual(terminal, {SwapState.COMPLETED, SwapState.FAILED, SwapState.EXPIRED})


class TestAdaptorSignatureWire(unittest.TestCase):
    """Test AdaptorSignature serialization."""

    def setUp(self):
        engine = AdaptorSignatureEngine(random_source=seeded_random_source(b'models'))
        self.T = point_from_scalar(SECRET_ADAPTOR)
        self.sig = engine.create(BUYER_KEY, self.T, b'claim sighash')

    def test_layout(self):
        data = self.sig.serialize()
        self.assertEqual(len(data), 97 + len(b'claim sighash'))
        self.assertEqual(data[:32], self.sig.nonce_point.xonly())
        self.assertEqual(data[32:64], scalar_to_bytes(self.sig.s))
        self.assertEqual(data[64:65], b'\x02')
        self.assertEqual(data[65:97], self.sig.pubkey)
        self.assertEqual(data[97:], b'claim sighash')

    def test_parse_restores_signature(self):
        parsed = AdaptorSignature.parse(self.sig.serialize())
        self.assertEqual(parsed, self.sig)
        self.assertTrue(AdaptorSignatureEngine.verify(parsed, self.T))

    def test_empty_message(self):
        sig = replace(self.sig, message=b'')
        self.assertEqual(AdaptorSignature.parse(sig.serialize()).message, b'')

    def test_parse_rejects_short_data(self):
        with self.assertRaises(PointDecodeError):
            AdaptorSignature.parse(self.sig.serialize()[:96])

    def test_parse_rejects_large_s(self):
        data = bytearray(self.sig.serialize())
        data[32:64] = scalar_to_bytes(SECP256K1_ORDER)
        with self.assertRaises(InvalidKeyError):
            AdaptorSignature.parse(bytes(data))

    def test_parse_rejects_odd_pubkey(self):
        data = bytearray(self.sig.serialize())
        data[64] = 0x03
        with self.assertRaises(InvalidPointError):
            AdaptorSignature.parse(bytes(data))

    def test_to_dict(self):
        data = self.sig.to_dict()
        self.assertEqual(data['pubkey'], self.sig.pubkey.hex())
        self.assertEqual(int(data['s'], 16), self.sig.s)


class TestSwapMessages(unittest.TestCase):
    """Test swap message models."""

    def test_terms_str(self):
        terms = SwapTerms(swap_id='abc', content='hello', amount=150_000)
        self.assertEqual(str(terms), 'Swap abc: 0.00150000 BTC (150,000 sats) for "hello"')

    def test_outpoint_str(self):
        self.assertEqual(str(Outpoint(txid='ab' * 32, vout=3)), 'ab' * 32 + ':3')

    def test_commitment_never_carries_s(self):
        T = point_from_scalar(SECRET_ADAPTOR)
        commitment = Commitment(
            swap_id='abc',
            adaptor_point=T,
            nonce_point=point_from_scalar(5),
            seller_pubkey=point_from_scalar(1).xonly(),
            message=b'hello'
        )
        data = commitment.to_dict()
        self.assertEqual(data['adaptor_point'], T.compressed().hex())
        self.assertNotIn('s', data)
        self.assertNotIn('event', data)

    def test_reveal_fields(self):
        signature = b'\x11' * 32 + scalar_to_bytes(42)
        reveal = Reveal(swap_id='abc', signature=signature)
        self.assertEqual(reveal.nonce_x, b'\x11' * 32)
        self.assertEqual(reveal.s, 42)

    def test_claim_result_dict(self):
        result = ClaimResult(txid='cd' * 32, tx_hex='00', signature=b'\x01' * 64)
        self.assertEqual(result.to_dict()['signature'], '01' * 64)

    def test_config_defaults(self):
        config = SwapConfig()
        self.assertEqual(config.network, 'regtest')
        self.assertIsNone(config.claim_script)
        self.assertGreater(config.funding_timeout, 0)


if __name__ == '__main__':
    unittest.main()
