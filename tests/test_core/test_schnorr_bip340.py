"""
BIP-340 Schnorr verification against the official test vectors.

Tests include:
- Every vector in the fixture file, valid and invalid
- Public keys off the curve or beyond the field size
- Nonce and s values at the group and field boundaries
- R at infinity and R with odd Y
- Malformed input lengths and messages that are not 32 bytes
"""

import unittest

from tanos_lib.core.adaptor import AdaptorSignatureEngine, challenge, even_y_keypair, verify_schnorr
from tanos_lib.core.constants import SECP256K1_ORDER
from tanos_lib.core.ecc import point_from_scalar, scalar_to_bytes
from tests.fixtures import load_bip340_test_vectors, embit_schnorr_verify, seeded_random_source


def _verify(vector) -> bool:
    return verify_schnorr(
        bytes.fromhex(vector['public_key']),
        bytes.fromhex(vector['message']),
        bytes.fromhex(vector['signature']),
    )


class TestSchnorrBIP340(unittest.TestCase):
    """Test verify_schnorr() with the BIP-340 vectors."""

    @classmethod
    def setUpClass(cls):
        cls.test_vectors = load_bip340_test_vectors()
        cls.by_index = {v['index']: v for v in cls.test_vectors}

    def test_all_bip340_vectors(self):
        for vector in self.test_vectors:
            with self.subTest(index=vector['index'], comment=vector['comment']):
                self.assertEqual(_verify(vector), vector['verification_result'])

    def test_valid_signatures(self):
        valid = [v for v in self.test_vectors if v['verification_result']]
        self.assertGreater(len(valid), 0)

        for vector in valid:
            with self.subTest(index=vector['index']):
                self.assertTrue(_verify(vector))

    def test_invalid_signatures(self):
        invalid = [v for v in self.test_vectors if not v['verification_result']]
        self.assertGreater(len(invalid), 0)

        for vector in invalid:
            with self.subTest(index=vector['index'], comment=vector['comment']):
                self.assertFalse(_verify(vector))

    def test_first_vector_detailed(self):
        vector = self.by_index[0]

        self.assertEqual(int(vector['secret_key'], 16), 3)
        self.assertEqual(point_from_scalar(3).xonly().hex().upper(), vector['public_key'])
        self.assertEqual(vector['message'], '00' * 32)
        self.assertTrue(_verify(vector))

    def test_valid_vectors_agree_with_embit(self):
        for vector in self.test_vectors:
            if not vector['verification_result']:
                continue
            with self.subTest(index=vector['index']):
                self.assertTrue(embit_schnorr_verify(
                    bytes.fromhex(vector['public_key']),
                    bytes.fromhex(vector['message']),
                    bytes.fromhex(vector['signature']),
                ))

    def test_secret_key_matches_public_key(self):
        for vector in self.test_vectors:
            if vector['secret_key'] is None:
                continue
            with self.subTest(index=vector['index']):
                _, P = even_y_keypair(int(vector['secret_key'], 16))
                self.assertEqual(P.xonly().hex().upper(), vector['public_key'])

    def test_public_key_not_on_curve(self):
        # 5: x with no curve point, 14: x beyond the field size
        for index in (5, 14):
            with self.subTest(index=index):
                self.assertFalse(_verify(self.by_index[index]))

    def test_r_coordinate_edge_cases(self):
        # 11: r is not an x-coordinate on the curve, 12: r equals the field size
        for index in (11, 12):
            with self.subTest(index=index):
                self.assertFalse(_verify(self.by_index[index]))

    def test_s_value_edge_case(self):
        vector = self.by_index[13]
        self.assertEqual(int(vector['signature'][64:], 16), SECP256K1_ORDER)
        self.assertFalse(_verify(vector))

    def test_infinite_r(self):
        for index in (9, 10):
            with self.subTest(index=index):
                self.assertFalse(_verify(self.by_index[index]))

    def test_negated_s_rejected(self):
        valid_s = int(self.by_index[5]['signature'][64:], 16)
        negated_s = int(self.by_index[8]['signature'][64:], 16)
        self.assertEqual(valid_s + negated_s, SECP256K1_ORDER)
        self.assertFalse(_verify(self.by_index[8]))

    def test_invalid_input_lengths(self):
        vector = self.by_index[1]
        pubkey = bytes.fromhex(vector['public_key'])
        message = bytes.fromhex(vector['message'])
        signature = bytes.fromhex(vector['signature'])

        self.assertFalse(verify_schnorr(pubkey[:31], message, signature))
        self.assertFalse(verify_schnorr(pubkey + b'\x00', message, signature))
        self.assertFalse(verify_schnorr(pubkey, message, signature[:63]))
        self.assertFalse(verify_schnorr(pubkey, message, signature + b'\x00'))


class TestSchnorrConstructedCases(unittest.TestCase):
    """Signatures built directly from the verification equation."""

    def setUp(self):
        self.d, self.P = even_y_keypair(7)
        self.message = b'\x5a' * 32

    def _signature_for_nonce(self, k: int) -> bytes:
        R = point_from_scalar(k)
        e = challenge(R.xonly(), self.P.xonly(), self.message)
        s = (k + e * self.d) % SECP256K1_ORDER
        return R.xonly() + scalar_to_bytes(s)

    def test_odd_y_nonce_rejected(self):
        k = 1
        while point_from_scalar(k).has_even_y():
            k += 1

        # Same x-coordinate, so the same challenge; only the even-Y nonce verifies
        odd = self._signature_for_nonce(k)
        even = self._signature_for_nonce(SECP256K1_ORDER - k)
        self.assertEqual(odd[:32], even[:32])

        self.assertFalse(verify_schnorr(self.P.xonly(), self.message, odd))
        self.assertTrue(verify_schnorr(self.P.xonly(), self.message, even))

    def test_variable_length_messages(self):
        engine = AdaptorSignatureEngine(random_source=seeded_random_source(b'bip340'))
        for size in (0, 1, 17, 100):
            with self.subTest(size=size):
                message = bytes(range(size))
                signature = engine.sign(self.d, message)
                self.assertTrue(verify_schnorr(self.P.xonly(), message, signature))
                self.assertFalse(verify_schnorr(self.P.xonly(), message + b'\x00', signature))


if __name__ == '__main__':
    unittest.main()
