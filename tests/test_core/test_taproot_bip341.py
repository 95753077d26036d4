"""
BIP-341 key tweaking against the official wallet test vectors.

Tests include:
- taproot_tweak_pubkey() tweak and output key
- derive_output() scriptPubKey and bech32m address
- taproot_tweak_privkey() against the key-path spending vectors
"""

import unittest

from tanos_lib.core.ecc import point_from_scalar
from tanos_lib.core.taproot import derive_output, output_address, taproot_tweak_pubkey, taproot_tweak_privkey
from tests.fixtures import get_bip341_scriptpubkey_vectors, get_bip341_keypath_vectors


class TestTaprootTweakPubkey(unittest.TestCase):
    """Test output key derivation with the scriptPubKey vectors."""

    @classmethod
    def setUpClass(cls):
        cls.vectors = get_bip341_scriptpubkey_vectors()

    def test_tweak_pubkey(self):
        for i, vector in enumerate(self.vectors):
            with self.subTest(vector=i):
                internal = vector['given']['internalPubkey']
                merkle_root = vector['intermediary']['merkleRoot']

                tweaked, tweak = taproot_tweak_pubkey(internal, merkle_root)

                self.assertEqual(tweak, vector['intermediary']['tweak'])
                self.assertEqual(tweaked, vector['intermediary']['tweakedPubkey'])

    def test_script_pubkey_and_address(self):
        for i, vector in enumerate(self.vectors):
            with self.subTest(vector=i):
                merkle_root = vector['intermediary']['merkleRoot']
                output = derive_output(
                    bytes.fromhex(vector['given']['internalPubkey']),
                    bytes.fromhex(merkle_root) if merkle_root else None,
                )

                self.assertEqual(output.script_hex, vector['expected']['scriptPubKey'])
                self.assertEqual(output_address(output, 'mainnet'), vector['expected']['bip350Address'])


class TestTaprootTweakPrivkey(unittest.TestCase):
    """Test private key tweaking with the key-path spending vectors."""

    @classmethod
    def setUpClass(cls):
        cls.vectors = get_bip341_keypath_vectors()

    def test_tweak_privkey(self):
        for i, vector in enumerate(self.vectors):
            with self.subTest(vector=i):
                tweaked = taproot_tweak_privkey(
                    vector['given']['internalPrivkey'], vector['given']['merkleRoot'],
                )
                self.assertEqual(tweaked, vector['intermediary']['tweakedPrivkey'])

    def test_tweaked_privkey_matches_tweaked_pubkey(self):
        for i, vector in enumerate(self.vectors):
            with self.subTest(vector=i):
                internal_priv = int(vector['given']['internalPrivkey'], 16)
                internal_pub = point_from_scalar(internal_priv).xonly().hex()
                self.assertEqual(internal_pub, vector['intermediary']['internalPubkey'])

                tweaked_pub, tweak = taproot_tweak_pubkey(internal_pub, vector['given']['merkleRoot'])
                self.assertEqual(tweak, vector['intermediary']['tweak'])

                tweaked_priv = int(taproot_tweak_privkey(
                    vector['given']['internalPrivkey'], vector['given']['merkleRoot'],
                ), 16)
                self.assertEqual(point_from_scalar(tweaked_priv).xonly().hex(), tweaked_pub)


if __name__ == '__main__':
    unittest.main()
