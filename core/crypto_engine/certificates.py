"""
X.509 certificate loading and CA validation.
"""

import datetime

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization


class CertificateError(ValueError):
    """Certificate could not be parsed or did not validate."""


class X509Certificate:
    """Thin wrapper around ``cryptography.x509.Certificate``."""

    def __init__(self, cert: x509.Certificate):
        self._cert = cert

    # ── loading ──────────────────────────────────────────────────
    @classmethod
    def from_pem(cls, pem_data: bytes) -> "X509Certificate":
        try:
            return cls(x509.load_pem_x509_certificate(pem_data))
        except ValueError as exc:
            raise CertificateError(f"Malformed certificate: {exc}") from exc

    def to_pem(self) -> bytes:
        return self._cert.public_bytes(serialization.Encoding.PEM)

    # ── accessors ────────────────────────────────────────────────
    @property
    def raw(self) -> x509.Certificate:
        return self._cert

    @property
    def public_key(self):
        return self._cert.public_key()

    @property
    def subject(self) -> str:
        return self._cert.subject.rfc4514_string()

    def fingerprint(self) -> str:
        return self._cert.fingerprint(hashes.SHA256()).hex()

    # ── validation ───────────────────────────────────────────────
    def check_validity(self, now: datetime.datetime | None = None):
        now = now or datetime.datetime.now(datetime.timezone.utc)
        if now < self._cert.not_valid_before_utc:
            raise CertificateError(f"Certificate {self.subject} not yet valid")
        if now > self._cert.not_valid_after_utc:
            raise CertificateError(f"Certificate {self.subject} has expired")

    def verify_issued_by(self, ca: "X509Certificate",
                         now: datetime.datetime | None = None):
        """
        Raise ``CertificateError`` unless this certificate was signed by
        *ca* and both certificates are inside their validity window.
        """
        ca.check_validity(now)
        try:
            self._cert.verify_directly_issued_by(ca.raw)
        except InvalidSignature:
            raise CertificateError(
                f"Certificate {self.subject} signature does not verify "
                f"against CA {ca.subject}"
            ) from None
        except (ValueError, TypeError) as exc:
            raise CertificateError(
                f"Certificate {self.subject} not issued by CA "
                f"{ca.subject}: {exc}"
            ) from exc
        self.check_validity(now)
