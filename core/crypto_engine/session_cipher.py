"""
Session cipher: turns handshake key material into the relay ciphers.

Key schedule (HKDF-SHA256, salt = client_nonce || server_nonce):

    client→server traffic key   info = "secureforward c2s traffic"
    server→client traffic key   info = "secureforward s2c traffic"
    client finished key         info = "secureforward client finished"
    server finished key         info = "secureforward server finished"

The client seals with the c2s key and opens with the s2c key; the
server does the opposite.  Each direction is therefore its own
independently keyed record stream with its own sequence counter.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from config.settings import Settings

from .cipher_factory import CipherFactory
from .hash_crypto    import HashCrypto
from .symmetric_base import SymmetricCipher

logger = logging.getLogger("SecureForward.Cipher")

_C2S_INFO        = b"secureforward c2s traffic"
_S2C_INFO        = b"secureforward s2c traffic"
_CLIENT_FIN_INFO = b"secureforward client finished"
_SERVER_FIN_INFO = b"secureforward server finished"


class Role(Enum):
    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True, repr=False)
class SessionKeys:
    c2s: bytes
    s2c: bytes
    client_finished: bytes
    server_finished: bytes

    def __repr__(self) -> str:
        return "SessionKeys(<redacted>)"


def derive_session_keys(key_material: bytes, salt: bytes,
                        key_size: int = 32) -> SessionKeys:
    if len(key_material) < 16:
        raise ValueError("session key material too short")
    return SessionKeys(
        c2s=HashCrypto.hkdf_sha256(key_material, salt, _C2S_INFO, key_size),
        s2c=HashCrypto.hkdf_sha256(key_material, salt, _S2C_INFO, key_size),
        client_finished=HashCrypto.hkdf_sha256(
            key_material, salt, _CLIENT_FIN_INFO, 32),
        server_finished=HashCrypto.hkdf_sha256(
            key_material, salt, _SERVER_FIN_INFO, 32),
    )


class SessionCipher:
    """
    Encrypt/decrypt relay chunks for one side of one session.

    ``encrypt`` is only ever called by the thread moving plaintext
    towards the peer, ``decrypt`` only by the thread moving peer
    records back; the two use separate cipher objects.
    """

    def __init__(self, outbound: SymmetricCipher, inbound: SymmetricCipher,
                 role: Role):
        self._outbound = outbound
        self._inbound  = inbound
        self.role      = role

    def encrypt(self, chunk: bytes) -> bytes:
        return self._outbound.encrypt(chunk)

    def decrypt(self, record: bytes) -> bytes:
        return self._inbound.decrypt(record)

    @property
    def cipher_name(self) -> str:
        return self._outbound.cipher_name

    def info(self) -> dict:
        return {
            "role":     self.role.value,
            "cipher":   self._outbound.info(),
            "sealed":   self._outbound.records_sealed,
            "opened":   self._inbound.records_opened,
        }

    def __repr__(self) -> str:
        return f"SessionCipher({self.cipher_name}, role={self.role.value})"


def new_cipher(key_material: bytes, salt: bytes, role: Role,
               suite: str = Settings.DEFAULT_CIPHER,
               keys: SessionKeys | None = None) -> SessionCipher:
    """
    Build the ``SessionCipher`` for *role* from unwrapped key material.

    *keys* may be passed when the caller already derived them (the
    handshake needs the finished keys too).
    """
    key_size = CipherFactory.get_required_key_size(suite)
    keys = keys or derive_session_keys(key_material, salt, key_size)
    c2s = CipherFactory.create(suite, keys.c2s)
    s2c = CipherFactory.create(suite, keys.s2c)
    if role is Role.CLIENT:
        cipher = SessionCipher(outbound=c2s, inbound=s2c, role=role)
    else:
        cipher = SessionCipher(outbound=s2c, inbound=c2s, role=role)
    logger.debug("Session cipher ready: %s (%s side)", suite, role.value)
    return cipher
