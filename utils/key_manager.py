"""
Load the certificate, CA certificate and private key used by one end
of the handshake.
"""

import logging
from dataclasses import dataclass

from core.crypto_engine import (
    RSACrypto, RSAProvider, CryptoProvider, X509Certificate, CertificateError,
)
from core.errors import ConfigurationError

logger = logging.getLogger("SecureForward.KeyManager")


@dataclass(frozen=True)
class Credentials:
    certificate: X509Certificate
    ca_certificate: X509Certificate
    provider: CryptoProvider


class KeyManager:

    @staticmethod
    def _read(path: str, what: str) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as exc:
            raise ConfigurationError(
                f"Cannot read {what} {path!r}: {exc.strerror or exc}"
            ) from exc

    # ── certificates ─────────────────────────────────────────────
    def load_certificate(self, path: str,
                         what: str = "certificate") -> X509Certificate:
        pem = self._read(path, what)
        try:
            return X509Certificate.from_pem(pem)
        except CertificateError as exc:
            raise ConfigurationError(f"Invalid {what} {path!r}: {exc}") from exc

    # ── private key ──────────────────────────────────────────────
    def load_rsa_private(self, path: str,
                         password: bytes | None = None) -> RSACrypto:
        pem = self._read(path, "private key")
        r = RSACrypto()
        try:
            r.load_private_key(pem, password)
        except (ValueError, TypeError) as exc:
            raise ConfigurationError(
                f"Invalid private key {path!r}: {exc}"
            ) from exc
        return r

    # ── all three ────────────────────────────────────────────────
    def load_credentials(self, user_cert: str, ca_cert: str,
                         key: str) -> Credentials:
        certificate = self.load_certificate(user_cert)
        ca          = self.load_certificate(ca_cert, "CA certificate")
        rsa         = self.load_rsa_private(key)
        if not rsa.matches(certificate.public_key):
            raise ConfigurationError(
                f"Private key {key!r} does not match certificate {user_cert!r}"
            )
        logger.debug(
            "Loaded credentials for %s (CA %s)",
            certificate.subject, ca.subject,
        )
        return Credentials(
            certificate=certificate,
            ca_certificate=ca,
            provider=RSAProvider(rsa),
        )
