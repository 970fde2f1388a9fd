"""
Port forwarding client.

Runs the handshake, opens an ephemeral local listening socket, tells
the user where to connect, accepts ONE local application and relays
it to the negotiated endpoint.
"""

import logging
import socket
import sys
import threading

from config.arguments   import ForwardConfig
from config.settings    import Settings
from forwarding.handshake import run_handshake
from forwarding.relay   import RelayStats, relay
from forwarding.session import ForwardSession
from utils.key_manager  import KeyManager

logger = logging.getLogger("SecureForward.Client")


class ForwardClient:
    """
    Parameters
    ----------
    config : ForwardConfig
        Validated options.
    listen_host : str
        Interface for the local listening socket.  The port is always
        chosen by the OS.
    out
        Stream the listening address is printed to.
    """

    def __init__(self, config: ForwardConfig,
                 listen_host: str = Settings.LISTEN_HOST,
                 key_manager: KeyManager | None = None,
                 out=None):
        self.config       = config
        self.listen_host  = listen_host
        self._key_manager = key_manager or KeyManager()
        self._out         = out

        self.session: ForwardSession | None = None
        self.listen_address: tuple[str, int] | None = None
        self.listening = threading.Event()

    # ── steps ────────────────────────────────────────────────────
    def do_handshake(self) -> ForwardSession:
        c = self.config
        self.session = run_handshake(
            c.handshake_host, c.handshake_port,
            c.user_cert, c.ca_cert, c.key,
            c.target_host, c.target_port,
            key_manager=self._key_manager,
        )
        return self.session

    def open_listener(self) -> socket.socket:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind((self.listen_host, 0))
            listener.listen(Settings.LISTEN_BACKLOG)
        except OSError:
            listener.close()
            raise
        self.listen_address = listener.getsockname()[:2]
        return listener

    def tell_user(self):
        out = self._out or sys.stdout
        print(f"Client forwarder to target "
              f"{self.config.target_host}:{self.config.target_port}", file=out)
        print("Waiting for incoming connections at "
              f"{self.listen_address[0]}:{self.listen_address[1]}",
              file=out, flush=True)

    # ── main sequence ────────────────────────────────────────────
    def start(self) -> RelayStats:
        session  = self.do_handshake()
        logger.info("Session established: %s", session.info())
        listener = self.open_listener()
        try:
            self.tell_user()
            self.listening.set()
            app_sock, addr = listener.accept()
        finally:
            listener.close()
        logger.info("Accepted client from %s:%d", addr[0], addr[1])

        return relay(app_sock, session.remote_host, session.remote_port,
                     session.cipher)
