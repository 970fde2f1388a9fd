import datetime
import logging
import socket
import threading

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID

from core.crypto_engine import RSACrypto, X509Certificate
from utils.key_manager  import KeyManager


def _name(cn: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "SecureForward Test"),
        x509.NameAttribute(NameOID.COMMON_NAME, cn),
    ])


def _issue(subject_key: RSACrypto, cn: str, issuer_key: RSACrypto,
           issuer_name: x509.Name | None, ca: bool = False,
           days: int = 30) -> x509.Certificate:
    now = datetime.datetime.now(datetime.timezone.utc)
    subject = _name(cn)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name or subject)
        .public_key(subject_key.public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=days))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None),
                       critical=True)
    )
    return builder.sign(issuer_key.private_key, hashes.SHA256())


def _keypair() -> RSACrypto:
    r = RSACrypto(key_size=2048)
    r.generate_keys()
    return r


class PKI:
    """Throwaway CA plus client/server identities written to disk."""

    def __init__(self, directory):
        self.dir = directory
        ca_key    = _keypair()
        ca_cert   = _issue(ca_key, "Test CA", ca_key, None, ca=True)
        rogue_key  = _keypair()
        rogue_cert = _issue(rogue_key, "Rogue CA", rogue_key, None, ca=True)

        self.ca_cert = self._write_cert("ca.pem", ca_cert)
        self.rogue_ca_cert = self._write_cert("rogue-ca.pem", rogue_cert)

        self.client_cert, self.client_key = self._identity(
            "client", ca_key, ca_cert.subject)
        self.server_cert, self.server_key = self._identity(
            "server", ca_key, ca_cert.subject)
        self.rogue_server_cert, self.rogue_server_key = self._identity(
            "rogue-server", rogue_key, rogue_cert.subject)

    def _write_cert(self, filename: str, cert: x509.Certificate) -> str:
        path = self.dir / filename
        path.write_bytes(X509Certificate(cert).to_pem())
        return str(path)

    def _identity(self, cn: str, issuer_key: RSACrypto,
                  issuer_name: x509.Name) -> tuple[str, str]:
        key  = _keypair()
        cert = _issue(key, cn, issuer_key, issuer_name)
        key_path = self.dir / f"{cn}.key"
        key_path.write_bytes(key.export_private_key())
        return self._write_cert(f"{cn}.pem", cert), str(key_path)


@pytest.fixture(scope="session")
def pki(tmp_path_factory):
    return PKI(tmp_path_factory.mktemp("pki"))


@pytest.fixture(scope="session")
def client_credentials(pki):
    return KeyManager().load_credentials(pki.client_cert, pki.ca_cert,
                                         pki.client_key)


@pytest.fixture(scope="session")
def server_credentials(pki):
    return KeyManager().load_credentials(pki.server_cert, pki.ca_cert,
                                         pki.server_key)


@pytest.fixture(scope="session")
def rogue_server_credentials(pki):
    # signed by the rogue CA but trusting the real one
    return KeyManager().load_credentials(pki.rogue_server_cert, pki.ca_cert,
                                         pki.rogue_server_key)


class ServerThread:
    """
    Accept one connection on an ephemeral port and hand it to
    *handler(conn)* in a background thread; keeps the result or error.
    """

    def __init__(self, handler):
        self._handler = handler
        self.listener = socket.create_server(("127.0.0.1", 0))
        self.address  = self.listener.getsockname()[:2]
        self.result   = None
        self.error: Exception | None = None
        self.conn: socket.socket | None = None
        self._thread  = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        try:
            self.conn, _ = self.listener.accept()
            self.conn.settimeout(10)
            self.result = self._handler(self.conn)
        except Exception as exc:
            self.error = exc
        finally:
            self.listener.close()

    def join(self, timeout: float = 10):
        self._thread.join(timeout)
        assert not self._thread.is_alive(), "server thread did not finish"
        return self


@pytest.fixture
def server_thread():
    threads = []

    def _start(handler):
        t = ServerThread(handler)
        threads.append(t)
        return t

    yield _start
    for t in threads:
        if t.conn is not None:
            t.conn.close()
        t.listener.close()


@pytest.fixture(autouse=True)
def _drop_console_handler():
    # main() attaches a console handler bound to the captured stderr
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == "secureforward-console":
            root.removeHandler(handler)
