"""
SecureForward forwarding layer.
"""

from .session   import ForwardSession
from .handshake import (
    HandshakeProtocol, HandshakeState, ServerHandshake, run_handshake,
)
from .relay     import RelayEngine, RelayStats, relay
from .client    import ForwardClient
from .server    import ForwardServer

__all__ = [
    "ForwardSession",
    "HandshakeProtocol",
    "HandshakeState",
    "ServerHandshake",
    "run_handshake",
    "RelayEngine",
    "RelayStats",
    "relay",
    "ForwardClient",
    "ForwardServer",
]
