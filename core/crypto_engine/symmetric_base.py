"""
Abstract base class for the relay record ciphers.

A record cipher seals one chunk of relay payload per ``encrypt()``
call.  Nonces are never sent on the wire: both ends count records, and
the 96-bit nonce is ``4 zero bytes || 64-bit big-endian sequence``.
A record that was split, merged, dropped, replayed or reordered
therefore fails authentication on the receiving side.

One instance belongs to ONE direction of ONE relay pair.  The sending
end only calls ``encrypt()``, the receiving end only ``decrypt()``;
each keeps its own counter, so no state is shared between threads.
"""

import struct
from abc import ABC, abstractmethod

from cryptography.exceptions import InvalidTag

from core.errors import DecryptionError


class SymmetricCipher(ABC):
    """
    Sequence-numbered AEAD record cipher.

    encrypt() returns ``ciphertext || tag`` (plaintext length + 16).
    decrypt() accepts exactly one such record.
    """

    NONCE_SIZE   = 12
    TAG_SIZE     = 16
    MAX_SEQUENCE = 2 ** 64 - 1

    def __init__(self, key: bytes):
        self._check_key(key)
        self._key_size = len(key)
        self._aead     = self._make_aead(key)
        self._seal_seq = 0
        self._open_seq = 0

    # ── subclass hooks ───────────────────────────────────────────
    @abstractmethod
    def _check_key(self, key: bytes):
        """Raise ValueError if *key* has the wrong size."""

    @abstractmethod
    def _make_aead(self, key: bytes):
        """Return a ``cryptography`` AEAD object for *key*."""

    @property
    @abstractmethod
    def cipher_name(self) -> str:
        """Human-readable name, e.g. 'AES-256-GCM'."""

    # ── records ──────────────────────────────────────────────────
    @classmethod
    def _nonce(cls, sequence: int) -> bytes:
        return struct.pack("!IQ", 0, sequence)

    def encrypt(self, plaintext: bytes) -> bytes:
        """Seal *plaintext* as the next record of this direction."""
        if self._seal_seq > self.MAX_SEQUENCE:
            raise OverflowError("record sequence exhausted; rekey required")
        nonce = self._nonce(self._seal_seq)
        self._seal_seq += 1
        return self._aead.encrypt(nonce, bytes(plaintext), None)

    def decrypt(self, data: bytes) -> bytes:
        """Open the next expected record; raise ``DecryptionError`` on failure."""
        if len(data) < self.TAG_SIZE:
            raise DecryptionError(
                f"record too short ({len(data)} bytes)"
            )
        if self._open_seq > self.MAX_SEQUENCE:
            raise DecryptionError("record sequence exhausted")
        try:
            plaintext = self._aead.decrypt(
                self._nonce(self._open_seq), bytes(data), None
            )
        except InvalidTag:
            raise DecryptionError(
                f"record {self._open_seq} failed authentication"
            ) from None
        self._open_seq += 1
        return plaintext

    # ── metadata ─────────────────────────────────────────────────
    @property
    def key_size(self) -> int:
        """Encryption key size in bytes."""
        return self._key_size

    @property
    def key_size_bits(self) -> int:
        return self.key_size * 8

    @property
    def records_sealed(self) -> int:
        return self._seal_seq

    @property
    def records_opened(self) -> int:
        return self._open_seq

    def info(self) -> dict:
        """Cipher metadata for log lines; never includes key bytes."""
        return {
            "name":     self.cipher_name,
            "key_bits": self.key_size_bits,
            "nonce":    "sequence",
            "tag_bytes": self.TAG_SIZE,
        }
