"""
AES-GCM record cipher (128 / 192 / 256 bit keys).
"""

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .symmetric_base import SymmetricCipher


class AESGCMCipher(SymmetricCipher):
    """
    AES in Galois/Counter Mode.

    Output format:  [ciphertext][GCM tag 16B]
    """

    def _check_key(self, key: bytes):
        if len(key) not in (16, 24, 32):
            raise ValueError(
                f"AES key must be 16, 24, or 32 bytes, got {len(key)}"
            )

    def _make_aead(self, key: bytes):
        return AESGCM(key)

    @property
    def cipher_name(self) -> str:
        return f"AES-{self.key_size * 8}-GCM"
