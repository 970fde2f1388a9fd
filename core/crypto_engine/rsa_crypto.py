"""
RSA asymmetric encryption, signing and key serialisation.
"""

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import rsa, padding as asym_padding
from cryptography.hazmat.primitives import hashes, serialization


class RSACrypto:
    """RSA-OAEP encryption + PSS signing."""

    def __init__(self, key_size: int = 2048):
        self.key_size    = key_size
        self.private_key = None
        self.public_key  = None

    # ── key generation ───────────────────────────────────────────
    def generate_keys(self):
        self.private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=self.key_size,
        )
        self.public_key = self.private_key.public_key()
        return self.private_key, self.public_key

    # ── encrypt / decrypt ────────────────────────────────────────
    @staticmethod
    def _oaep():
        return asym_padding.OAEP(
            mgf=asym_padding.MGF1(algorithm=hashes.SHA256()),
            algorithm=hashes.SHA256(),
            label=None,
        )

    def encrypt(self, plaintext: bytes, public_key=None) -> bytes:
        key = public_key or self.public_key
        return key.encrypt(plaintext, self._oaep())

    def decrypt(self, ciphertext: bytes) -> bytes:
        return self.private_key.decrypt(ciphertext, self._oaep())

    # ── sign / verify ────────────────────────────────────────────
    @staticmethod
    def _pss():
        return asym_padding.PSS(
            mgf=asym_padding.MGF1(hashes.SHA256()),
            salt_length=asym_padding.PSS.MAX_LENGTH,
        )

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message, self._pss(), hashes.SHA256())

    def verify(self, message: bytes, signature: bytes,
               public_key=None) -> bool:
        key = public_key or self.public_key
        try:
            key.verify(signature, message, self._pss(), hashes.SHA256())
            return True
        except InvalidSignature:
            return False

    # ── serialisation ────────────────────────────────────────────
    def export_private_key(self, password: bytes | None = None) -> bytes:
        enc = (serialization.BestAvailableEncryption(password)
               if password else serialization.NoEncryption())
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=enc,
        )

    def load_private_key(self, pem_data: bytes,
                         password: bytes | None = None):
        key = serialization.load_pem_private_key(pem_data, password=password)
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ValueError("Private key is not an RSA key")
        self.private_key = key
        self.public_key  = key.public_key()
        self.key_size    = key.key_size

    def matches(self, public_key) -> bool:
        """True if *public_key* belongs to our private key."""
        if self.public_key is None or not isinstance(public_key, rsa.RSAPublicKey):
            return False
        return self.public_key.public_numbers() == public_key.public_numbers()
