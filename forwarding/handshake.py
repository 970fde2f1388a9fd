"""
Certificate handshake with the rendezvous (handshake) endpoint.

Flow (three round trips over one TCP connection)
-----------------------------------------------
1. Client  → CLIENT_HELLO (certificate, nonce, cipher list)
   Server  → SERVER_HELLO (certificate, nonce, chosen cipher, signature)
2. Client  → FORWARD      (target host/port, signature)
   Server  → SESSION      (relay host/port, wrapped key material, signature)
3. Client  → FINISHED     (HMAC proof)
   Server  → FINISHED     (HMAC proof)

Every frame is fed into a running SHA-256 transcript.  Signatures cover
``label || transcript-so-far || message body``, so each one binds both
nonces and everything said before it.  The key material is wrapped with
RSA-OAEP for the client certificate's key; both ends expand it with
HKDF into directional traffic keys and FINISHED keys.
"""

import logging
import socket
import time
from contextlib import contextmanager, suppress
from enum import Enum
from typing import Callable

from config.settings    import Settings
from core.crypto_engine import (
    CipherFactory, HashCrypto, X509Certificate, CertificateError,
    Role, derive_session_keys, new_cipher,
)
from core.errors        import HandshakeError, HandshakeTimeout
from forwarding.session import ForwardSession
from utils.framing      import Framing, MessageType
from utils.key_manager  import Credentials, KeyManager
from utils.random_gen   import SecureRandom

logger = logging.getLogger("SecureForward.Handshake")


class HandshakeState(Enum):
    IDLE         = "idle"
    HELLO_SENT   = "hello-sent"
    HELLO_ACKED  = "hello-acked"
    FORWARD_SENT = "forward-sent"
    KEY_RECEIVED = "key-received"
    CONFIRMED    = "confirmed"
    FAILED       = "failed"


class Transcript:
    """Running hash of every handshake frame, in wire order."""

    def __init__(self):
        self._hash = HashCrypto.running_sha256()

    def add(self, msg_type: int, payload: bytes):
        self._hash.update(bytes([msg_type]) + payload)

    def digest(self) -> bytes:
        return self._hash.copy().finalize()


def _to_be_signed(label: bytes, before: bytes, body: dict) -> bytes:
    unsigned = {k: v for k, v in body.items() if k != "signature"}
    return (b"secureforward|v%d|" % Settings.PROTOCOL_VERSION
            + label + b"|" + before + Framing.encode_json(unsigned))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Shared plumbing for both ends
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class _HandshakeEnd:

    PEER = "peer"

    def __init__(self, credentials: Credentials,
                 timeout: float | None = Settings.HANDSHAKE_TIMEOUT):
        self._creds      = credentials
        self._timeout    = timeout
        self._transcript = Transcript()
        self.state       = HandshakeState.IDLE

    # ── message I/O ──────────────────────────────────────────────
    @staticmethod
    def _body(**fields) -> dict:
        return {"version": Settings.PROTOCOL_VERSION, **fields}

    def _send(self, sock, msg_type: int, body: dict):
        payload = Framing.encode_json(body)
        self._transcript.add(msg_type, payload)
        Framing.send_frame(sock, msg_type, payload)
        logger.debug("→ %s (%d bytes)", MessageType.name(msg_type), len(payload))

    def _recv(self, sock, expected: int) -> dict:
        deadline = (time.monotonic() + self._timeout
                    if self._timeout is not None else None)
        msg_type, payload = Framing.recv_frame(sock, deadline)
        if msg_type == MessageType.ALERT:
            reason = Framing.decode_json(payload).get("reason", "unspecified")
            raise HandshakeError(f"{self.PEER} aborted the handshake: {reason}")
        if msg_type != expected:
            raise HandshakeError(
                f"Expected {MessageType.name(expected)}, "
                f"got {MessageType.name(msg_type)}"
            )
        self._transcript.add(msg_type, payload)
        logger.debug("← %s (%d bytes)", MessageType.name(msg_type), len(payload))
        message = Framing.decode_json(payload)
        if message.get("version") != Settings.PROTOCOL_VERSION:
            raise HandshakeError(
                f"Unsupported protocol version {message.get('version')!r}"
            )
        return message

    @staticmethod
    def _alert(sock, reason: str):
        """Best-effort notice to the peer before the connection is dropped."""
        with suppress(OSError, ValueError):
            Framing.send_frame(
                sock, MessageType.ALERT,
                Framing.encode_json({"version": Settings.PROTOCOL_VERSION,
                                     "reason": reason}),
            )

    # ── field helpers ────────────────────────────────────────────
    @staticmethod
    def _hex(message: dict, name: str, size: int | None = None) -> bytes:
        value = message[name]
        if not isinstance(value, str):
            raise ValueError(f"{name} must be a hex string")
        data = bytes.fromhex(value)
        if size is not None and len(data) != size:
            raise ValueError(f"{name} must be {size} bytes, got {len(data)}")
        return data

    @staticmethod
    def _str(message: dict, name: str) -> str:
        value = message[name]
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"{name} must be a non-empty string")
        return value

    @staticmethod
    def _port(message: dict, name: str) -> int:
        value = message[name]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer")
        if not 1 <= value <= 65535:
            raise ValueError(f"{name} out of range: {value}")
        return value

    # ── authentication ───────────────────────────────────────────
    def _peer_certificate(self, message: dict) -> X509Certificate:
        cert = X509Certificate.from_pem(self._str(message, "certificate").encode())
        try:
            cert.verify_issued_by(self._creds.ca_certificate)
        except CertificateError as exc:
            raise HandshakeError(f"{self.PEER} certificate rejected: {exc}") from exc
        if not self._creds.provider.supports(cert):
            raise HandshakeError(f"{self.PEER} certificate key type not supported")
        logger.info("Verified %s certificate %s (sha256 %s)",
                    self.PEER, cert.subject, cert.fingerprint()[:16])
        return cert

    def _sign(self, label: bytes, before: bytes, body: dict):
        body["signature"] = self._creds.provider.sign(
            _to_be_signed(label, before, body)
        ).hex()

    def _check_signature(self, label: bytes, before: bytes, body: dict,
                         peer: X509Certificate):
        signature = self._hex(body, "signature")
        if not self._creds.provider.verify(
                _to_be_signed(label, before, body), signature, peer):
            raise HandshakeError(
                f"{self.PEER} signature over {label.decode()} does not verify"
            )

    # ── error mapping ────────────────────────────────────────────
    @contextmanager
    def _phase(self, sock, name: str):
        """Map every failure inside a phase to ``HandshakeError`` and FAILED."""
        try:
            yield
        except HandshakeError as exc:
            self._fail(sock, name, exc)
            raise
        except socket.timeout as exc:
            self._fail(sock, name, exc)
            raise HandshakeTimeout(
                f"{name}: no response from {self.PEER} in time"
            ) from exc
        except OSError as exc:
            self._fail(sock, name, exc)
            raise HandshakeError(f"{name}: network error: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            self._fail(sock, name, exc)
            raise HandshakeError(f"{name}: malformed message: {exc}") from exc

    def _fail(self, sock, phase: str, exc: Exception):
        self.state = HandshakeState.FAILED
        logger.warning("Handshake failed during %s: %s", phase, exc)
        if not isinstance(exc, OSError):
            self._alert(sock, f"{phase} failed")

    def _expect(self, state: HandshakeState, phase: str):
        if self.state is not state:
            raise HandshakeError(
                f"{phase} not allowed in state {self.state.value} "
                f"(expected {state.value})"
            )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Client side
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class HandshakeProtocol(_HandshakeEnd):
    """
    Client half of the handshake.

    Call ``client_hello``, ``forward_message`` and ``finish_handshake``
    in that order on the same socket, then ``session()``.  An instance
    is good for exactly one attempt; after a failure start over with a
    new instance and a new connection.

    *timeout* bounds each response as a whole: a peer that trickles a
    frame in byte by byte still hits ``HandshakeTimeout``.
    """

    PEER = "server"
    SUPPORTED_CIPHERS = CipherFactory.list_ciphers()

    def __init__(self, credentials: Credentials,
                 preferred_ciphers: list[str] | None = None,
                 timeout: float | None = Settings.HANDSHAKE_TIMEOUT):
        super().__init__(credentials, timeout)
        self._ciphers      = list(preferred_ciphers or self.SUPPORTED_CIPHERS)
        self._client_nonce = b""
        self._server_nonce = b""
        self._server_cert: X509Certificate | None = None
        self._wrapped_key  = b""
        self._session: ForwardSession | None = None
        self.cipher_suite: str | None = None
        self.session_host: str | None = None
        self.session_port: int | None = None

    # ── phase 1 ──────────────────────────────────────────────────
    def client_hello(self, sock):
        """Send our certificate; verify the server's against the CA."""
        self._expect(HandshakeState.IDLE, "ClientHello")
        with self._phase(sock, "ClientHello"):
            self._client_nonce = SecureRandom.generate_nonce()
            self._send(sock, MessageType.CLIENT_HELLO, self._body(
                certificate=self._creds.certificate.to_pem().decode(),
                client_nonce=self._client_nonce.hex(),
                ciphers=self._ciphers,
            ))
            self.state = HandshakeState.HELLO_SENT

            before = self._transcript.digest()
            hello  = self._recv(sock, MessageType.SERVER_HELLO)
            self._server_cert = self._peer_certificate(hello)
            self._check_signature(b"server-hello", before, hello,
                                  self._server_cert)

            self._server_nonce = self._hex(hello, "server_nonce",
                                           Settings.NONCE_SIZE)
            if self._server_nonce == self._client_nonce:
                raise HandshakeError("server echoed our nonce")
            suite = self._str(hello, "cipher")
            if suite not in self._ciphers:
                raise HandshakeError(
                    f"server selected unsupported cipher: {suite}"
                )
            self.cipher_suite = suite
            self.state = HandshakeState.HELLO_ACKED
        logger.info("ServerHello accepted (cipher=%s)", self.cipher_suite)

    # ── phase 2 ──────────────────────────────────────────────────
    def forward_message(self, sock, target_host: str, target_port: int):
        """Ask for *target_host*:*target_port*; receive relay address and wrapped key."""
        self._expect(HandshakeState.HELLO_ACKED, "ForwardMessage")
        with self._phase(sock, "ForwardMessage"):
            before = self._transcript.digest()
            body   = self._body(target_host=str(target_host),
                                target_port=int(target_port))
            self._sign(b"client-forward", before, body)
            self._send(sock, MessageType.FORWARD, body)
            self.state = HandshakeState.FORWARD_SENT

            before  = self._transcript.digest()
            session = self._recv(sock, MessageType.SESSION)
            self._check_signature(b"server-session", before, session,
                                  self._server_cert)
            self.session_host = self._str(session, "session_host")
            self.session_port = self._port(session, "session_port")
            self._wrapped_key = self._hex(session, "wrapped_key")
            self.state = HandshakeState.KEY_RECEIVED
        logger.info(
            "Server will forward %s:%d via %s:%d",
            target_host, int(target_port),
            self.session_host, self.session_port,
        )

    # ── phase 3 ──────────────────────────────────────────────────
    def finish_handshake(self, sock):
        """Unwrap the key material, derive keys and confirm them with the server."""
        self._expect(HandshakeState.KEY_RECEIVED, "FinishHandshake")
        with self._phase(sock, "FinishHandshake"):
            try:
                material = self._creds.provider.unwrap_key(self._wrapped_key)
            except ValueError as exc:
                raise HandshakeError("cannot unwrap session key material") from exc
            if len(material) != Settings.KEY_MATERIAL_SIZE:
                raise HandshakeError(
                    f"session key material has wrong size ({len(material)})"
                )
            salt = self._client_nonce + self._server_nonce
            keys = derive_session_keys(
                material, salt,
                CipherFactory.get_required_key_size(self.cipher_suite),
            )

            before = self._transcript.digest()
            self._send(sock, MessageType.FINISHED, self._body(
                verify=HashCrypto.hmac_sha256(
                    keys.client_finished, b"client-finished" + before
                ).hex(),
            ))

            before   = self._transcript.digest()
            finished = self._recv(sock, MessageType.FINISHED)
            if not HashCrypto.verify_hmac(
                    keys.server_finished, b"server-finished" + before,
                    self._hex(finished, "verify")):
                raise HandshakeError("Server FINISHED verification failed")

            self._session = ForwardSession(
                remote_host=self.session_host,
                remote_port=self.session_port,
                cipher=new_cipher(material, salt, Role.CLIENT,
                                  self.cipher_suite, keys=keys),
                cipher_suite=self.cipher_suite,
                peer=self._server_cert.subject,
            )
            self.state = HandshakeState.CONFIRMED
        logger.info("Client handshake complete (cipher=%s)", self.cipher_suite)

    def session(self) -> ForwardSession:
        if self.state is not HandshakeState.CONFIRMED:
            raise HandshakeError(
                f"no session: handshake is {self.state.value}"
            )
        return self._session


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Server side
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

EndpointChooser = Callable[[str, int], tuple[str, int]]


class ServerHandshake(_HandshakeEnd):
    """
    Server half of the handshake.

    *choose_endpoint* is called with the client's requested target and
    returns the relay address (host, port) to announce.  The returned
    session points at the requested target.
    """

    PEER = "client"

    def __init__(self, credentials: Credentials,
                 choose_endpoint: EndpointChooser,
                 allowed_ciphers: list[str] | None = None,
                 timeout: float | None = Settings.HANDSHAKE_TIMEOUT):
        super().__init__(credentials, timeout)
        self._choose_endpoint = choose_endpoint
        self._ciphers = list(allowed_ciphers or CipherFactory.list_ciphers())
        self.target: tuple[str, int] | None = None

    def run(self, sock) -> ForwardSession:
        with self._phase(sock, "ServerHandshake"):
            # 1. hello
            hello       = self._recv(sock, MessageType.CLIENT_HELLO)
            client_cert = self._peer_certificate(hello)
            client_nonce = self._hex(hello, "client_nonce", Settings.NONCE_SIZE)
            offered = hello.get("ciphers", [])
            if not isinstance(offered, list):
                raise ValueError("ciphers must be a list")
            suite = CipherFactory.negotiate(offered, self._ciphers)
            if suite is None:
                raise HandshakeError(
                    f"No common cipher. Server supports: {self._ciphers}, "
                    f"client offered: {offered}"
                )

            server_nonce = SecureRandom.generate_nonce()
            before = self._transcript.digest()
            body = self._body(
                certificate=self._creds.certificate.to_pem().decode(),
                server_nonce=server_nonce.hex(),
                cipher=suite,
            )
            self._sign(b"server-hello", before, body)
            self._send(sock, MessageType.SERVER_HELLO, body)
            self.state = HandshakeState.HELLO_ACKED

            # 2. forward request
            before  = self._transcript.digest()
            forward = self._recv(sock, MessageType.FORWARD)
            self._check_signature(b"client-forward", before, forward, client_cert)
            self.target = (self._str(forward, "target_host"),
                           self._port(forward, "target_port"))
            logger.info("Client %s requests %s:%d",
                        client_cert.subject, *self.target)

            session_host, session_port = self._choose_endpoint(*self.target)
            material = SecureRandom.generate_key_material()
            before = self._transcript.digest()
            body = self._body(
                session_host=session_host,
                session_port=int(session_port),
                wrapped_key=self._creds.provider.wrap_key(
                    material, client_cert).hex(),
            )
            self._sign(b"server-session", before, body)
            self._send(sock, MessageType.SESSION, body)
            self.state = HandshakeState.KEY_RECEIVED

            # 3. key confirmation
            salt = client_nonce + server_nonce
            keys = derive_session_keys(
                material, salt, CipherFactory.get_required_key_size(suite)
            )
            before   = self._transcript.digest()
            finished = self._recv(sock, MessageType.FINISHED)
            if not HashCrypto.verify_hmac(
                    keys.client_finished, b"client-finished" + before,
                    self._hex(finished, "verify")):
                raise HandshakeError("Client FINISHED verification failed")

            before = self._transcript.digest()
            self._send(sock, MessageType.FINISHED, self._body(
                verify=HashCrypto.hmac_sha256(
                    keys.server_finished, b"server-finished" + before
                ).hex(),
            ))

            session = ForwardSession(
                remote_host=self.target[0],
                remote_port=self.target[1],
                cipher=new_cipher(material, salt, Role.SERVER, suite, keys=keys),
                cipher_suite=suite,
                peer=client_cert.subject,
            )
            self.state = HandshakeState.CONFIRMED
        logger.info(
            "Server handshake complete (cipher=%s, relay endpoint %s:%d)",
            suite, session_host, int(session_port),
        )
        return session


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Entry point for the client
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def run_handshake(handshake_host: str, handshake_port: int,
                  user_cert_path: str, ca_cert_path: str, key_path: str,
                  target_host: str, target_port: int,
                  timeout: float = Settings.HANDSHAKE_TIMEOUT,
                  key_manager: KeyManager | None = None) -> ForwardSession:
    """
    Connect to the handshake endpoint, run all three phases and return
    the negotiated session.  The handshake socket is closed on every
    path.  Credential files are read before connecting.
    """
    credentials = (key_manager or KeyManager()).load_credentials(
        user_cert_path, ca_cert_path, key_path
    )

    logger.info("Connect to %s:%d", handshake_host, handshake_port)
    try:
        sock = socket.create_connection(
            (handshake_host, handshake_port), timeout=timeout
        )
    except socket.timeout as exc:
        raise HandshakeTimeout(
            f"Timed out connecting to {handshake_host}:{handshake_port}"
        ) from exc
    except OSError as exc:
        raise HandshakeError(
            f"Cannot connect to handshake server "
            f"{handshake_host}:{handshake_port}: {exc}"
        ) from exc

    try:
        hs = HandshakeProtocol(credentials, timeout=timeout)
        hs.client_hello(sock)
        hs.forward_message(sock, target_host, target_port)
        hs.finish_handshake(sock)
        return hs.session()
    finally:
        sock.close()
