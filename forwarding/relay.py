"""
Bidirectional encrypted relay between a plaintext socket and a
ciphertext socket.

Wire format on the ciphertext side
----------------------------------
    [4 B length][1 B DATA][sealed chunk]     one per plaintext read
    [4 B length][1 B CLOSE]                  plaintext side hit EOF

Architecture
------------
One daemon thread per direction.  The first thread to finish (EOF,
CLOSE, socket error or bad record) sets an event; the caller then shuts
both sockets down, which unblocks the other thread, joins both, and
closes the sockets.  An engine serves exactly one pair.
"""

import logging
import socket
import threading
from dataclasses import dataclass

from config.settings    import Settings
from core.crypto_engine import SessionCipher
from core.errors        import ConnectError, DecryptionError, RelayIOError
from utils.framing      import Framing, MessageType

logger = logging.getLogger("SecureForward.Relay")


@dataclass
class RelayStats:
    bytes_sealed: int = 0         # plaintext bytes sent towards the cipher side
    bytes_opened: int = 0         # plaintext bytes delivered to the plain side
    records_sealed: int = 0
    records_opened: int = 0
    ended_by: str = ""


def _close_quietly(sock: socket.socket | None):
    if sock is None:
        return
    try:
        sock.close()
    except OSError:
        pass


class RelayEngine:
    """
    Pump bytes between *plain_sock* and *cipher_sock* until either side
    is done.

    plain → encrypt → DATA frame → cipher_sock
    cipher_sock → DATA frame → decrypt → plain
    """

    def __init__(self, plain_sock: socket.socket, cipher_sock: socket.socket,
                 cipher: SessionCipher,
                 buffer_size: int = Settings.BUFFER_SIZE,
                 name: str = "relay"):
        self._plain       = plain_sock
        self._cipher_sock = cipher_sock
        self._cipher      = cipher
        self._buffer_size = buffer_size
        self.name         = name
        self.stats        = RelayStats()

        self._done    = threading.Event()
        self._lock    = threading.Lock()
        self._error: Exception | None = None
        self._started = False

    # ── lifecycle ────────────────────────────────────────────────
    def run(self) -> RelayStats:
        """
        Relay until one direction ends, tear the pair down and return
        the stats.  Raises the ``DecryptionError`` or ``RelayIOError``
        that ended the relay, if any.
        """
        with self._lock:
            if self._started:
                raise RuntimeError("RelayEngine instances are single-use")
            self._started = True

        self._plain.settimeout(None)
        self._cipher_sock.settimeout(None)

        threads = [
            threading.Thread(target=self._pump,
                             args=("plain→cipher", self._seal_loop),
                             daemon=True, name=f"{self.name}-seal"),
            threading.Thread(target=self._pump,
                             args=("cipher→plain", self._open_loop),
                             daemon=True, name=f"{self.name}-open"),
        ]
        try:
            for t in threads:
                t.start()
            self._done.wait()
            self._shutdown()
            for t in threads:
                t.join(Settings.TEARDOWN_TIMEOUT)
                if t.is_alive():
                    logger.warning("Relay %s: %s did not stop in time",
                                   self.name, t.name)
        finally:
            _close_quietly(self._plain)
            _close_quietly(self._cipher_sock)

        logger.info(
            "Relay %s closed (%s): %d bytes out, %d bytes in",
            self.name, self.stats.ended_by,
            self.stats.bytes_sealed, self.stats.bytes_opened,
        )
        if self._error is not None:
            raise self._error
        return self.stats

    def _shutdown(self):
        for sock in (self._plain, self._cipher_sock):
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass                        # already disconnected

    # ── per-direction loops ──────────────────────────────────────
    def _pump(self, direction: str, loop):
        error: Exception | None = None
        try:
            loop()
        except (DecryptionError, RelayIOError) as exc:
            error = exc
        except ValueError as exc:
            error = RelayIOError(f"{direction}: malformed frame: {exc}")
        except OSError as exc:
            error = RelayIOError(f"{direction}: {exc}")
        except Exception as exc:
            error = RelayIOError(f"{direction}: {exc!r}")
            error.__cause__ = exc
        finally:
            self._finish(direction, error)

    def _finish(self, direction: str, error: Exception | None):
        with self._lock:
            first = not self._done.is_set()
            if first:
                self.stats.ended_by = direction
                self._error = error
                self._done.set()
        if not first:
            return
        if error is None:
            logger.debug("Relay %s: %s reached end of stream",
                         self.name, direction)
        else:
            logger.error("Relay %s: %s failed: %s", self.name, direction, error)

    def _seal_loop(self):
        while True:
            chunk = self._plain.recv(self._buffer_size)
            if not chunk:
                Framing.send_frame(self._cipher_sock, MessageType.CLOSE, b"")
                return
            record = self._cipher.encrypt(chunk)
            Framing.send_frame(self._cipher_sock, MessageType.DATA, record)
            self.stats.bytes_sealed   += len(chunk)
            self.stats.records_sealed += 1

    def _open_loop(self):
        while True:
            frame = Framing.recv_frame_or_eof(self._cipher_sock)
            if frame is None:
                return
            msg_type, payload = frame
            if msg_type == MessageType.CLOSE:
                return
            if msg_type != MessageType.DATA:
                raise RelayIOError(
                    f"unexpected frame {MessageType.name(msg_type)} in relay"
                )
            chunk = self._cipher.decrypt(payload)
            if chunk:
                self._plain.sendall(chunk)
            self.stats.bytes_opened   += len(chunk)
            self.stats.records_opened += 1


def relay(local_sock: socket.socket, remote_host: str, remote_port: int,
          cipher: SessionCipher, encrypt_outbound: bool = True,
          connect_timeout: float = Settings.CONNECT_TIMEOUT) -> RelayStats:
    """
    Connect to *remote_host*:*remote_port* and relay *local_sock* over it.

    With ``encrypt_outbound`` (the client) the outbound connection
    carries records and *local_sock* plaintext; without it (the server)
    *local_sock* carries records and the outbound connection plaintext.
    If the connect fails *local_sock* is closed untouched and
    ``ConnectError`` is raised.
    """
    try:
        remote_sock = socket.create_connection(
            (remote_host, remote_port), timeout=connect_timeout
        )
    except OSError as exc:
        _close_quietly(local_sock)
        raise ConnectError(
            f"Cannot connect to {remote_host}:{remote_port}: {exc}"
        ) from exc

    logger.info("Relaying to %s:%d (%s)", remote_host, remote_port,
                "encrypted" if encrypt_outbound else "plaintext")
    if encrypt_outbound:
        engine = RelayEngine(local_sock, remote_sock, cipher,
                             name=f"{remote_host}:{remote_port}")
    else:
        engine = RelayEngine(remote_sock, local_sock, cipher,
                             name=f"{remote_host}:{remote_port}")
    return engine.run()
