"""Common cryptographic utilities.

Keys are secp256k1 scalars; public keys travel as 32-byte x-only hex strings.
Request payloads exchanged with the remote signer use NIP-04 encryption
(ECDH shared x coordinate as AES-256-CBC key).
"""

from __future__ import annotations

import base64
import hashlib
import json
import re
import secrets
from typing import Any

from bech32 import bech32_decode, bech32_encode, convertbits
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

SECP256K1_ORDER = int(
    "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16
)
HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")
NPUB_PREFIX = "npub"


class CryptoUtils:
    """Utility class for cryptographic operations."""

    @staticmethod
    def is_hex_key(value: Any) -> bool:
        """Check for a 32-byte key written as 64 hex characters."""
        return isinstance(value, str) and HEX_KEY_RE.match(value) is not None

    @staticmethod
    def is_valid_secret_key(secret_key: bytes) -> bool:
        if len(secret_key) != 32:  # noqa: PLR2004
            return False
        return 0 < int.from_bytes(secret_key, "big") < SECP256K1_ORDER

    @staticmethod
    def generate_secret_key() -> bytes:
        """Generate a random secret key that is a valid secp256k1 scalar."""
        while True:
            candidate = secrets.token_bytes(32)
            if CryptoUtils.is_valid_secret_key(candidate):
                return candidate

    @staticmethod
    def _private_key(secret_key: bytes) -> ec.EllipticCurvePrivateKey:
        return ec.derive_private_key(
            int.from_bytes(secret_key, "big"), ec.SECP256K1()
        )

    @staticmethod
    def public_key_hex(secret_key: bytes) -> str:
        """Derive the x-only public key for a secret key."""
        numbers = CryptoUtils._private_key(secret_key).public_key().public_numbers()
        return numbers.x.to_bytes(32, "big").hex()

    @staticmethod
    def load_public_key(pubkey_hex: str) -> ec.EllipticCurvePublicKey:
        """Lift an x-only public key onto the curve.

        Raises ValueError if the x coordinate is not on secp256k1.
        """
        if not CryptoUtils.is_hex_key(pubkey_hex):
            msg = "Public key must be 64 hex characters"
            raise ValueError(msg)
        return ec.EllipticCurvePublicKey.from_encoded_point(
            ec.SECP256K1(), b"\x02" + bytes.fromhex(pubkey_hex)
        )

    @staticmethod
    def shared_secret(secret_key: bytes, pubkey_hex: str) -> bytes:
        return CryptoUtils._private_key(secret_key).exchange(
            ec.ECDH(), CryptoUtils.load_public_key(pubkey_hex)
        )

    @staticmethod
    def nip04_encrypt(secret_key: bytes, pubkey_hex: str, plaintext: str) -> str:
        """Encrypt to a peer; returns ``base64(ciphertext)?iv=base64(iv)``."""
        key = CryptoUtils.shared_secret(secret_key, pubkey_hex)
        iv = secrets.token_bytes(16)
        padder = padding.PKCS7(128).padder()
        padded = padder.update(plaintext.encode()) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return (
            f"{base64.b64encode(ciphertext).decode()}"
            f"?iv={base64.b64encode(iv).decode()}"
        )

    @staticmethod
    def nip04_decrypt(secret_key: bytes, pubkey_hex: str, payload: str) -> str:
        """Decrypt a NIP-04 payload from a peer.

        Raises ValueError on a malformed payload or bad padding.
        """
        body, sep, iv_part = payload.partition("?iv=")
        if not sep:
            msg = "NIP-04 payload has no iv"
            raise ValueError(msg)
        ciphertext = base64.b64decode(body)
        iv = base64.b64decode(iv_part)
        key = CryptoUtils.shared_secret(secret_key, pubkey_hex)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        return (unpadder.update(padded) + unpadder.finalize()).decode()

    @staticmethod
    def compute_event_id(
        pubkey: str, created_at: int, kind: int, tags: list[list[str]], content: str
    ) -> str:
        """NIP-01 event id: sha256 over the canonical serialization."""
        serialized = json.dumps(
            [0, pubkey, created_at, kind, tags, content],
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return hashlib.sha256(serialized.encode()).hexdigest()

    @staticmethod
    def npub_encode(pubkey_hex: str) -> str:
        data = convertbits(bytes.fromhex(pubkey_hex), 8, 5)
        if data is None:
            msg = "Cannot convert public key to bech32"
            raise ValueError(msg)
        return bech32_encode(NPUB_PREFIX, data)

    @staticmethod
    def npub_decode(npub: str) -> str:
        hrp, data = bech32_decode(npub)
        if hrp != NPUB_PREFIX or data is None:
            msg = "Not an npub key"
            raise ValueError(msg)
        decoded = convertbits(data, 5, 8, False)
        if decoded is None or len(decoded) != 32:  # noqa: PLR2004
            msg = "npub does not carry a 32-byte key"
            raise ValueError(msg)
        return bytes(decoded).hex()
