from .errors import (
    ForwardError, ConfigurationError, HandshakeError, HandshakeTimeout,
    ConnectError, DecryptionError, RelayIOError,
)

__all__ = ["ForwardError", "ConfigurationError", "HandshakeError",
           "HandshakeTimeout", "ConnectError", "DecryptionError",
           "RelayIOError"]
