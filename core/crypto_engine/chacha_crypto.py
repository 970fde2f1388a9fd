"""
ChaCha20-Poly1305 record cipher.

Preferred on hosts without hardware AES; same framing and nonce
discipline as the AES-GCM cipher.

Key:   32 bytes (256 bits)
Tag:   16 bytes (128 bits), appended by the library
"""

from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .symmetric_base import SymmetricCipher


class ChaCha20Cipher(SymmetricCipher):
    """
    ChaCha20-Poly1305 AEAD cipher.

    Output format:  [ciphertext][Poly1305 tag 16B]
    """
    KEY_SIZE = 32

    def _check_key(self, key: bytes):
        if len(key) != self.KEY_SIZE:
            raise ValueError(
                f"ChaCha20 key must be 32 bytes, got {len(key)}"
            )

    def _make_aead(self, key: bytes):
        return ChaCha20Poly1305(key)

    @property
    def cipher_name(self) -> str:
        return "CHACHA20-POLY1305"

    def info(self) -> dict:
        base = super().info()
        base["security_note"] = (
            "ChaCha20-Poly1305 is recommended for devices without "
            "AES-NI hardware support."
        )
        return base
