"""
CipherFactory: record cipher suites for the relay.

Usage:
    suite  = CipherFactory.negotiate(offered, CipherFactory.list_ciphers())
    cipher = CipherFactory.create(suite, traffic_key)
    record = cipher.encrypt(b"hello")
"""

import logging
from typing import NamedTuple

from .symmetric_base import SymmetricCipher
from .aes_crypto     import AESGCMCipher
from .chacha_crypto  import ChaCha20Cipher

logger = logging.getLogger("SecureForward.CipherFactory")


class CipherSuite(NamedTuple):
    name: str
    cls: type
    key_size: int                 # bytes
    note: str


class CipherFactory:
    """
    Create relay record ciphers by suite name.

    Only AEAD suites are registered: every relay record must be
    authenticated on its own.  Order is preference order.
    """

    _SUITES: tuple[CipherSuite, ...] = (
        CipherSuite("AES-256-GCM",       AESGCMCipher,   32,
                    "256-bit, hardware accelerated with AES-NI"),
        CipherSuite("CHACHA20-POLY1305", ChaCha20Cipher, 32,
                    "256-bit, fast without AES-NI"),
        CipherSuite("AES-128-GCM",       AESGCMCipher,   16,
                    "128-bit, hardware accelerated with AES-NI"),
    )
    _BY_NAME = {s.name: s for s in _SUITES}

    @classmethod
    def _suite(cls, cipher_name: str) -> CipherSuite:
        try:
            return cls._BY_NAME[cipher_name]
        except KeyError:
            raise ValueError(
                f"Unknown cipher: {cipher_name}. "
                f"Available: {cls.list_ciphers()}"
            ) from None

    @classmethod
    def create(cls, cipher_name: str,
               key_material: bytes) -> SymmetricCipher:
        """
        Create a cipher for *cipher_name*.  *key_material* must hold at
        least the suite's key size and is truncated to it.
        """
        suite = cls._suite(cipher_name)
        if len(key_material) < suite.key_size:
            raise ValueError(
                f"{cipher_name} needs {suite.key_size} bytes of key "
                f"material, got {len(key_material)}"
            )
        cipher = suite.cls(key_material[:suite.key_size])
        logger.debug("Created cipher: %s (key=%d bits)",
                     cipher.cipher_name, cipher.key_size_bits)
        return cipher

    @classmethod
    def list_ciphers(cls) -> list[str]:
        return [s.name for s in cls._SUITES]

    @classmethod
    def negotiate(cls, offered, allowed) -> str | None:
        """First entry of *allowed* that the peer *offered*, or None."""
        return next(
            (name for name in allowed
             if name in offered and cls.is_available(name)),
            None,
        )

    @classmethod
    def get_info(cls, cipher_name: str) -> dict:
        suite = cls._suite(cipher_name)
        return {
            "name":     suite.name,
            "key_bits": suite.key_size * 8,
            "note":     suite.note,
        }

    @classmethod
    def is_available(cls, cipher_name: str) -> bool:
        return cipher_name in cls._BY_NAME

    @classmethod
    def get_required_key_size(cls, cipher_name: str) -> int:
        """Key size in bytes."""
        return cls._suite(cipher_name).key_size
