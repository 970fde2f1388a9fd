"""
Crypto capability used by the handshake engine.

The handshake never touches a concrete library directly; it asks a
``CryptoProvider`` to sign, verify, encrypt, decrypt, wrap and unwrap.
``RSAProvider`` is the single implementation, selected when the
credentials are loaded.
"""

from abc import ABC, abstractmethod

from cryptography.hazmat.primitives.asymmetric import rsa

from .certificates import X509Certificate
from .rsa_crypto   import RSACrypto


class CryptoProvider(ABC):

    @abstractmethod
    def supports(self, peer: X509Certificate) -> bool:
        """True if *peer*'s key type can be used with this provider."""

    @abstractmethod
    def sign(self, message: bytes) -> bytes:
        pass

    @abstractmethod
    def verify(self, message: bytes, signature: bytes,
               peer: X509Certificate) -> bool:
        pass

    @abstractmethod
    def encrypt(self, plaintext: bytes, peer: X509Certificate) -> bytes:
        pass

    @abstractmethod
    def decrypt(self, ciphertext: bytes) -> bytes:
        pass

    def wrap_key(self, key_material: bytes, peer: X509Certificate) -> bytes:
        return self.encrypt(key_material, peer)

    def unwrap_key(self, wrapped: bytes) -> bytes:
        return self.decrypt(wrapped)


class RSAProvider(CryptoProvider):
    """RSA-PSS signatures and RSA-OAEP key wrapping."""

    def __init__(self, rsa_crypto: RSACrypto):
        self._rsa = rsa_crypto

    def supports(self, peer: X509Certificate) -> bool:
        return isinstance(peer.public_key, rsa.RSAPublicKey)

    def sign(self, message: bytes) -> bytes:
        return self._rsa.sign(message)

    def verify(self, message: bytes, signature: bytes,
               peer: X509Certificate) -> bool:
        return self._rsa.verify(message, signature,
                                public_key=peer.public_key)

    def encrypt(self, plaintext: bytes, peer: X509Certificate) -> bytes:
        return self._rsa.encrypt(plaintext, public_key=peer.public_key)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return self._rsa.decrypt(ciphertext)
