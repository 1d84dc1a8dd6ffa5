import unittest

# Import security components
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from security.cryptography import CryptoUtils, ECDSAKeyPair
from security.signatures import NonceTracker, RequestSigner, SignatureData, create_login_payload

class TestCryptoUtils(unittest.TestCase):
    """Test cases for cryptographic utilities"""

    def test_random_bytes_generation(self):
        random_bytes = CryptoUtils.generate_random_bytes(32)

        self.assertEqual(len(random_bytes), 32)
        self.assertNotEqual(random_bytes, CryptoUtils.generate_random_bytes(32))

    def test_hashing(self):
        data = b"pusd"

        self.assertEqual(len(CryptoUtils.hash_sha256(data)), 32)
        self.assertEqual(CryptoUtils.hash_sha256(data).hex(), CryptoUtils.hash_sha256_hex(data))
        self.assertEqual(CryptoUtils.double_sha256(data), CryptoUtils.hash_sha256(CryptoUtils.hash_sha256(data)))

    def test_base58(self):
        self.assertEqual(CryptoUtils.base58_encode(b"\x00\x00\x01"), "112")
        self.assertEqual(CryptoUtils.base58_decode("112"), b"\x00\x00\x01")
        self.assertEqual(CryptoUtils.base58_decode(CryptoUtils.base58_encode(b"hello")), b"hello")

        with self.assertRaises(ValueError):
            CryptoUtils.base58_decode("0OIl")

    def test_address_checksum(self):
        address = ECDSAKeyPair.generate().get_address()

        self.assertTrue(CryptoUtils.is_valid_address(address))
        self.assertTrue(address.startswith("1"))

        replacement = '2' if address[-1] != '2' else '3'
        self.assertFalse(CryptoUtils.is_valid_address(address[:-1] + replacement))
        self.assertFalse(CryptoUtils.is_valid_address("0xalice"))

class TestECDSAKeyPair(unittest.TestCase):

    def setUp(self):
        self.key_pair = ECDSAKeyPair.generate()

    def test_sign_and_verify(self):
        signature = self.key_pair.sign(b"message")

        self.assertTrue(self.key_pair.verify(b"message", signature))
        self.assertFalse(self.key_pair.verify(b"other message", signature))
        self.assertFalse(ECDSAKeyPair.generate().verify(b"message", signature))

    def test_export_and_restore(self):
        restored = ECDSAKeyPair.from_private_key(self.key_pair.export_private_key())
        self.assertEqual(restored.get_address(), self.key_pair.get_address())

        encrypted = self.key_pair.export_private_key(password="secret")
        restored = ECDSAKeyPair.from_private_key(encrypted, password="secret")
        self.assertEqual(restored.get_address(), self.key_pair.get_address())

    def test_public_key_round_trip(self):
        public_key = CryptoUtils.load_public_key(self.key_pair.export_public_key())

        self.assertEqual(CryptoUtils.address_from_public_key(public_key), self.key_pair.get_address())
        self.assertEqual(self.key_pair.to_dict()['address'], self.key_pair.get_address())

class TestRequestSigner(unittest.TestCase):

    def setUp(self):
        self.signer = RequestSigner(max_age=300)
        self.key_pair = ECDSAKeyPair.generate()
        self.payload = create_login_payload(self.key_pair.get_address(), "nonce-1")

    def test_valid_signature(self):
        signature = self.signer.sign_request(self.payload, self.key_pair, timestamp=1000.0)

        self.assertTrue(self.signer.verify_request(self.payload, signature, now=1100.0))

    def test_tampered_payload(self):
        signature = self.signer.sign_request(self.payload, self.key_pair, timestamp=1000.0)
        tampered = dict(self.payload, nonce="nonce-2")

        self.assertFalse(self.signer.verify_request(tampered, signature, now=1000.0))

    def test_changed_timestamp(self):
        signature = self.signer.sign_request(self.payload, self.key_pair, timestamp=1000.0)
        signature.timestamp = 1001.0

        self.assertFalse(self.signer.verify_request(self.payload, signature, now=1001.0))

    def test_expired_signature(self):
        signature = self.signer.sign_request(self.payload, self.key_pair, timestamp=1000.0)

        self.assertFalse(self.signer.verify_request(self.payload, signature, now=1301.0))

    def test_address_must_belong_to_key(self):
        signature = self.signer.sign_request(self.payload, self.key_pair, timestamp=1000.0)
        signature.address = ECDSAKeyPair.generate().get_address()

        self.assertFalse(self.signer.verify_request(self.payload, signature, now=1000.0))

    def test_malformed_public_key(self):
        signature = self.signer.sign_request(self.payload, self.key_pair, timestamp=1000.0)
        signature.public_key = "bm90IGEga2V5"

        self.assertFalse(self.signer.verify_request(self.payload, signature, now=1000.0))

    def test_signature_data_round_trip(self):
        signature = self.signer.sign_request(self.payload, self.key_pair, timestamp=1000.0)
        restored = SignatureData.from_dict(signature.to_dict())

        self.assertEqual(restored, signature)
        self.assertTrue(self.signer.verify_request(self.payload, restored, now=1000.0))

class TestNonceTracker(unittest.TestCase):
    """Login nonces are single use while signatures are fresh"""

    def setUp(self):
        self.nonces = NonceTracker(max_age=300)

    def test_nonce_is_single_use_per_address(self):
        self.assertTrue(self.nonces.use("1alice", "n-1", signed_at=1000.0, now=1000.0))
        self.assertFalse(self.nonces.use("1alice", "n-1", signed_at=1000.0, now=1100.0))

        self.assertTrue(self.nonces.use("1bob", "n-1", signed_at=1000.0, now=1100.0))
        self.assertTrue(self.nonces.use("1alice", "n-2", signed_at=1000.0, now=1100.0))

    def test_nonces_are_forgotten_after_signatures_expire(self):
        self.nonces.use("1alice", "n-1", signed_at=1000.0, now=1000.0)
        self.nonces.use("1alice", "n-2", signed_at=1200.0, now=1200.0)
        self.assertEqual(len(self.nonces), 2)

        self.assertTrue(self.nonces.use("1alice", "n-3", signed_at=1301.0, now=1301.0))
        self.assertEqual(len(self.nonces), 2)

if __name__ == '__main__':
    unittest.main(verbosity=2)
