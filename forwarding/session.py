"""
Result of a successful handshake.
"""

import time
from dataclasses import dataclass, field

from core.crypto_engine import SessionCipher
from utils.random_gen   import SecureRandom


@dataclass(frozen=True)
class ForwardSession:
    """
    Where the relay connects and how it encrypts.

    On the client ``remote_host``/``remote_port`` is the relay endpoint
    the server negotiated; on the server it is the target the client
    asked for.  Never persisted, never mutated.
    """

    remote_host: str
    remote_port: int
    cipher: SessionCipher = field(repr=False)
    cipher_suite: str = ""
    peer: str = ""
    session_id: str = field(default_factory=SecureRandom.generate_session_id)
    created_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.remote_host:
            raise ValueError("remote host must not be empty")
        if isinstance(self.remote_port, bool):
            raise ValueError(f"remote port must be an integer: {self.remote_port!r}")
        port = int(self.remote_port)
        if not 1 <= port <= 65535:
            raise ValueError(f"remote port out of range: {self.remote_port}")
        object.__setattr__(self, "remote_port", port)

    @property
    def remote_address(self) -> tuple[str, int]:
        return self.remote_host, self.remote_port

    def info(self) -> dict:
        return {
            "session_id": self.session_id,
            "remote":     f"{self.remote_host}:{self.remote_port}",
            "cipher":     self.cipher_suite,
            "peer":       self.peer,
            "created":    self.created_at,
        }
