"""
Port forwarding server: the peer of ``ForwardClient``.

Answers one handshake, opens the relay endpoint it announced, accepts
the client's relay connection and forwards decrypted traffic to the
target the client asked for.  One session per run.
"""

import logging
import socket
import threading

from config.arguments     import ServerConfig
from config.settings      import Settings
from core.errors          import ConfigurationError, ConnectError
from forwarding.handshake import ServerHandshake
from forwarding.relay     import RelayStats, relay
from forwarding.session   import ForwardSession
from utils.key_manager    import KeyManager

logger = logging.getLogger("SecureForward.Server")

WILDCARD_HOSTS = frozenset({"", "0.0.0.0", "::"})


class ForwardServer:
    """
    Parameters
    ----------
    config : ServerConfig
        Handshake bind address and credentials.
    relay_host : str | None
        Address announced to the client for the relay endpoint.  Falls
        back to ``config.relay_host``, then the handshake host.  The relay
        listener itself binds the handshake host, so a wildcard bind needs
        a routable relay host to announce.
    """

    def __init__(self, config: ServerConfig,
                 relay_host: str | None = None,
                 key_manager: KeyManager | None = None):
        self.config       = config
        self.relay_host   = (relay_host or config.relay_host
                             or config.handshake_host)
        if self.relay_host in WILDCARD_HOSTS:
            raise ConfigurationError(
                f"--handshakehost {config.handshake_host!r} is a wildcard; "
                "give --relayhost so clients get a reachable relay address")
        self._key_manager = key_manager or KeyManager()

        self.handshake_address: tuple[str, int] | None = None
        self.session: ForwardSession | None = None
        self.ready = threading.Event()
        self._relay_listener: socket.socket | None = None

    def _choose_endpoint(self, target_host: str, target_port: int):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind((self.config.handshake_host, 0))
            listener.listen(Settings.LISTEN_BACKLOG)
        except OSError:
            listener.close()
            raise
        self._relay_listener = listener
        port = listener.getsockname()[1]
        logger.info("Relay endpoint for %s:%d at %s:%d",
                    target_host, target_port, self.relay_host, port)
        return self.relay_host, port

    def serve_once(self) -> RelayStats:
        c = self.config
        credentials = self._key_manager.load_credentials(
            c.user_cert, c.ca_cert, c.key
        )

        server_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            server_sock.bind((c.handshake_host, c.handshake_port))
            server_sock.listen(Settings.LISTEN_BACKLOG)
            self.handshake_address = server_sock.getsockname()[:2]
            logger.info("Handshake server listening on %s:%d",
                        *self.handshake_address)
            self.ready.set()
            conn, addr = server_sock.accept()
        finally:
            server_sock.close()

        logger.info("Incoming handshake from %s:%d", addr[0], addr[1])
        try:
            conn.settimeout(Settings.HANDSHAKE_TIMEOUT)
            self.session = ServerHandshake(
                credentials, self._choose_endpoint,
                timeout=Settings.HANDSHAKE_TIMEOUT,
            ).run(conn)
        except Exception:
            if self._relay_listener is not None:
                self._relay_listener.close()
            raise
        finally:
            conn.close()

        listener = self._relay_listener
        try:
            listener.settimeout(Settings.HANDSHAKE_TIMEOUT)
            cipher_sock, addr = listener.accept()
        except socket.timeout as exc:
            raise ConnectError("client never connected to the relay endpoint") from exc
        finally:
            listener.close()
        logger.info("Relay connection from %s:%d", addr[0], addr[1])

        s = self.session
        return relay(cipher_sock, s.remote_host, s.remote_port, s.cipher,
                     encrypt_outbound=False)
