import hashlib
import json
import time
import logging
import threading
from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass
from .cryptography import ECDSAKeyPair, CryptoUtils
import base64

logger = logging.getLogger(__name__)

# Signed requests older than this are refused
DEFAULT_MAX_AGE = 300


@dataclass
class SignatureData:
    """Container for signature information"""
    signature: str
    public_key: str
    address: str
    timestamp: float
    algorithm: str = "ECDSA-SHA256"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'signature': self.signature,
            'public_key': self.public_key,
            'address': self.address,
            'timestamp': self.timestamp,
            'algorithm': self.algorithm
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SignatureData':
        return cls(
            signature=data['signature'],
            public_key=data['public_key'],
            address=data['address'],
            timestamp=data['timestamp'],
            algorithm=data.get('algorithm', 'ECDSA-SHA256')
        )


class RequestSigner:
    """Signs and verifies API request payloads.

    The signed message is the SHA-256 of the canonical JSON of the payload
    with the signature timestamp folded in, so a signature cannot be replayed
    with a different timestamp.
    """

    def __init__(self, max_age: int = DEFAULT_MAX_AGE):
        self.max_age = max_age

    def sign_request(self, payload: Dict[str, Any], key_pair: ECDSAKeyPair,
                     timestamp: Optional[float] = None) -> SignatureData:
        """Sign a request payload with the given key pair"""
        timestamp = time.time() if timestamp is None else timestamp
        signature = key_pair.sign(self._message_hash(payload, timestamp))

        return SignatureData(
            signature=base64.b64encode(signature).decode(),
            public_key=key_pair.export_public_key(),
            address=key_pair.get_address(),
            timestamp=timestamp
        )

    def verify_request(self, payload: Dict[str, Any], signature_data: SignatureData,
                       now: Optional[float] = None) -> bool:
        """Verify signature, freshness and that the address belongs to the key"""
        now = time.time() if now is None else now
        if abs(now - signature_data.timestamp) > self.max_age:
            logger.warning(f"Expired request signature from {signature_data.address}")
            return False

        try:
            public_key = CryptoUtils.load_public_key(signature_data.public_key)
            signature = base64.b64decode(signature_data.signature)
        except ValueError as e:
            logger.warning(f"Malformed request signature: {e}")
            return False

        message_hash = self._message_hash(payload, signature_data.timestamp)
        if not CryptoUtils.verify_signature(public_key, message_hash, signature):
            return False

        return CryptoUtils.address_from_public_key(public_key) == signature_data.address

    def _message_hash(self, payload: Dict[str, Any], timestamp: float) -> bytes:
        canonical_data = payload.copy()
        canonical_data.pop('signature', None)
        canonical_data['signed_at'] = timestamp

        # Sort keys for deterministic output
        canonical = json.dumps(canonical_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode()).digest()


class NonceTracker:
    """Remembers accepted (address, nonce) pairs while their signatures are fresh.

    A pair is kept until its signature would fail the freshness check anyway,
    so memory stays bounded by the number of logins in one window.
    """

    def __init__(self, max_age: int = DEFAULT_MAX_AGE):
        self.max_age = max_age
        self._expires: Dict[Tuple[str, str], float] = {}
        self._lock = threading.Lock()

    def use(self, address: str, nonce: str, signed_at: float, now: Optional[float] = None) -> bool:
        """Record a nonce; False when the address already used it"""
        now = time.time() if now is None else now
        key = (address, nonce)
        with self._lock:
            self._prune(now)
            if key in self._expires:
                return False
            self._expires[key] = signed_at + self.max_age
            return True

    def _prune(self, now: float):
        for key in [key for key, expires in self._expires.items() if expires < now]:
            del self._expires[key]

    def __len__(self) -> int:
        return len(self._expires)


def create_login_payload(address: str, nonce: str) -> Dict[str, Any]:
    """Payload a client signs to log in to the API"""
    return {'action': 'login', 'address': address, 'nonce': nonce}
