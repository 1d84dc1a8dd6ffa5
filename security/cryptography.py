import hashlib
import secrets
import base64
from typing import Optional, Dict
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.exceptions import InvalidSignature

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
ADDRESS_VERSION = b'\x00'


class CryptoUtils:
    """Hashing and encoding helpers for account addresses"""

    @staticmethod
    def generate_random_bytes(length: int = 32) -> bytes:
        """Generate cryptographically secure random bytes"""
        return secrets.token_bytes(length)

    @staticmethod
    def hash_sha256(data: bytes) -> bytes:
        return hashlib.sha256(data).digest()

    @staticmethod
    def hash_sha256_hex(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    @staticmethod
    def double_sha256(data: bytes) -> bytes:
        return hashlib.sha256(hashlib.sha256(data).digest()).digest()

    @staticmethod
    def base58_encode(data: bytes) -> str:
        """Encode bytes to Base58, keeping leading zero bytes as '1'"""
        num = int.from_bytes(data, 'big')

        result = ""
        while num > 0:
            num, remainder = divmod(num, 58)
            result = BASE58_ALPHABET[remainder] + result

        leading_zeros = len(data) - len(data.lstrip(b'\x00'))
        return BASE58_ALPHABET[0] * leading_zeros + result

    @staticmethod
    def base58_decode(encoded: str) -> bytes:
        """Decode a Base58 string; raises ValueError on foreign characters"""
        num = 0
        for char in encoded:
            index = BASE58_ALPHABET.find(char)
            if index < 0:
                raise ValueError(f"Invalid Base58 character: {char!r}")
            num = num * 58 + index

        body = num.to_bytes((num.bit_length() + 7) // 8, 'big') if num else b''
        leading_zeros = len(encoded) - len(encoded.lstrip(BASE58_ALPHABET[0]))
        return b'\x00' * leading_zeros + body

    @staticmethod
    def address_from_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
        """Base58Check address of a secp256k1 public key"""
        numbers = public_key.public_numbers()
        key_bytes = numbers.x.to_bytes(32, 'big') + numbers.y.to_bytes(32, 'big')

        versioned_hash = ADDRESS_VERSION + CryptoUtils.hash_sha256(key_bytes)[:20]
        checksum = CryptoUtils.double_sha256(versioned_hash)[:4]
        return CryptoUtils.base58_encode(versioned_hash + checksum)

    @staticmethod
    def is_valid_address(address: str) -> bool:
        """Check the version byte and checksum of an address"""
        try:
            raw = CryptoUtils.base58_decode(address)
        except ValueError:
            return False
        if len(raw) != 25 or raw[:1] != ADDRESS_VERSION:
            return False
        return CryptoUtils.double_sha256(raw[:21])[:4] == raw[21:]

    @staticmethod
    def load_public_key(public_key_data: str) -> ec.EllipticCurvePublicKey:
        """Load a public key exported by ``ECDSAKeyPair.export_public_key``"""
        public_bytes = base64.b64decode(public_key_data.encode())
        public_key = serialization.load_pem_public_key(public_bytes)
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            raise ValueError("Not an elliptic curve public key")
        return public_key

    @staticmethod
    def verify_signature(public_key: ec.EllipticCurvePublicKey, message: bytes, signature: bytes) -> bool:
        try:
            public_key.verify(signature, message, ec.ECDSA(hashes.SHA256()))
            return True
        except InvalidSignature:
            return False


class ECDSAKeyPair:
    """secp256k1 key pair identifying a protocol account"""

    def __init__(self, private_key: Optional[ec.EllipticCurvePrivateKey] = None):
        if private_key is None:
            self.private_key = ec.generate_private_key(ec.SECP256K1())
        else:
            self.private_key = private_key
        self.public_key = self.private_key.public_key()
        self._address = None

    @classmethod
    def generate(cls) -> 'ECDSAKeyPair':
        """Generate a new ECDSA key pair"""
        return cls()

    def sign(self, message: bytes) -> bytes:
        """Sign a message with the private key"""
        return self.private_key.sign(message, ec.ECDSA(hashes.SHA256()))

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a signature with the public key"""
        return CryptoUtils.verify_signature(self.public_key, message, signature)

    def get_address(self) -> str:
        """Account address derived from the public key"""
        if self._address is None:
            self._address = CryptoUtils.address_from_public_key(self.public_key)
        return self._address

    def export_private_key(self, password: Optional[str] = None) -> str:
        """Export private key (optionally encrypted)"""
        if password:
            encryption = serialization.BestAvailableEncryption(password.encode())
        else:
            encryption = serialization.NoEncryption()

        private_bytes = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption
        )
        return base64.b64encode(private_bytes).decode()

    def export_public_key(self) -> str:
        """Export public key as base64 PEM"""
        public_bytes = self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )
        return base64.b64encode(public_bytes).decode()

    @classmethod
    def from_private_key(cls, private_key_data: str, password: Optional[str] = None) -> 'ECDSAKeyPair':
        """Create key pair from exported private key"""
        private_bytes = base64.b64decode(private_key_data.encode())
        private_key = serialization.load_pem_private_key(
            private_bytes, password=password.encode() if password else None
        )
        return cls(private_key)

    def to_dict(self) -> Dict[str, str]:
        return {
            'public_key': self.export_public_key(),
            'address': self.get_address()
        }
