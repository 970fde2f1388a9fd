"""
Hashing, HMAC, and key-derivation utilities.
"""

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.hkdf import HKDF


class HashCrypto:
    """Static helpers for hashing, HMAC and HKDF."""

    # ── hashes ───────────────────────────────────────────────────
    @staticmethod
    def running_sha256() -> hashes.Hash:
        """Incremental SHA-256; ``copy()`` it to peek at the digest."""
        return hashes.Hash(hashes.SHA256())

    # ── HMAC ─────────────────────────────────────────────────────
    @staticmethod
    def hmac_sha256(key: bytes, data: bytes) -> bytes:
        h = hmac.HMAC(key, hashes.SHA256())
        h.update(data)
        return h.finalize()

    @staticmethod
    def verify_hmac(key: bytes, data: bytes, expected: bytes) -> bool:
        """Constant-time comparison of *expected* against the HMAC of *data*."""
        h = hmac.HMAC(key, hashes.SHA256())
        h.update(data)
        try:
            h.verify(expected)
            return True
        except InvalidSignature:
            return False

    # ── KDF ──────────────────────────────────────────────────────
    @staticmethod
    def hkdf_sha256(key_material: bytes, salt: bytes | None,
                    info: bytes, length: int = 32) -> bytes:
        return HKDF(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt,
            info=info,
        ).derive(key_material)
