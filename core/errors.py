"""
Error taxonomy shared by the handshake, cipher and relay layers.
"""


class ForwardError(Exception):
    pass


class ConfigurationError(ForwardError):
    """Missing or invalid option, or unreadable credential file."""


class HandshakeError(ForwardError):
    """The handshake failed; the session must not be used or resumed."""


class HandshakeTimeout(HandshakeError):
    pass


class ConnectError(ForwardError):
    """The negotiated remote endpoint could not be reached."""


class DecryptionError(ForwardError):
    """A relay record did not decrypt or authenticate."""


class RelayIOError(ForwardError):
    """Socket failure while relaying."""
