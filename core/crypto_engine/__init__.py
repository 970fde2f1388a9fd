"""
SecureForward Crypto Engine: certificate, asymmetric, hash and
record-cipher primitives.
"""

from .rsa_crypto   import RSACrypto
from .hash_crypto  import HashCrypto
from .certificates import X509Certificate, CertificateError
from .provider     import CryptoProvider, RSAProvider

# ── Relay record ciphers ─────────────────────────────────────────
from .symmetric_base import SymmetricCipher
from .aes_crypto     import AESGCMCipher
from .chacha_crypto  import ChaCha20Cipher
from .cipher_factory import CipherFactory, CipherSuite
from .session_cipher import (
    Role, SessionCipher, SessionKeys, derive_session_keys, new_cipher,
)

__all__ = [
    "RSACrypto", "HashCrypto",
    "X509Certificate", "CertificateError",
    "CryptoProvider", "RSAProvider",
    "SymmetricCipher", "CipherFactory", "CipherSuite",
    "AESGCMCipher", "ChaCha20Cipher",
    "Role", "SessionCipher", "SessionKeys",
    "derive_session_keys", "new_cipher",
]
