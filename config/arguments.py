"""
Option handling for the forward client and server.

Options arrive as a plain ``name -> string`` mapping (from argparse or a
test) and are validated into frozen config objects before any network
activity happens.
"""

import argparse
from collections.abc import Mapping
from dataclasses import dataclass

from config.settings import Settings
from core.errors     import ConfigurationError


def parse_port(name: str, value) -> int:
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a port number, got {value!r}")
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"{name} out of range (1-65535): {port}")
    return port


def _required(options: Mapping[str, str | None], name: str) -> str:
    value = options.get(name)
    if value is None or not str(value).strip():
        raise ConfigurationError(f"Missing required option --{name}")
    return str(value).strip()


def _optional(options: Mapping[str, str | None], name: str,
              default: str | None) -> str | None:
    value = options.get(name)
    if value is None or not str(value).strip():
        return default
    return str(value).strip()


@dataclass(frozen=True)
class ForwardConfig:
    target_host: str
    target_port: int
    handshake_host: str
    handshake_port: int
    user_cert: str
    ca_cert: str
    key: str

    @classmethod
    def from_options(cls, options: Mapping[str, str | None]) -> "ForwardConfig":
        """Validate *options*; raise ``ConfigurationError`` on any problem."""
        return cls(
            target_host=_required(options, "targethost"),
            target_port=parse_port(
                "targetport", _required(options, "targetport")),
            handshake_host=_optional(
                options, "handshakehost", Settings.DEFAULT_HANDSHAKE_HOST),
            handshake_port=parse_port(
                "handshakeport",
                _optional(options, "handshakeport",
                          str(Settings.DEFAULT_HANDSHAKE_PORT))),
            user_cert=_required(options, "usercert"),
            ca_cert=_required(options, "cacert"),
            key=_required(options, "key"),
        )


@dataclass(frozen=True)
class ServerConfig:
    handshake_host: str
    handshake_port: int
    user_cert: str
    ca_cert: str
    key: str
    relay_host: str | None = None

    @classmethod
    def from_options(cls, options: Mapping[str, str | None]) -> "ServerConfig":
        return cls(
            handshake_host=_optional(
                options, "handshakehost", Settings.DEFAULT_HANDSHAKE_HOST),
            handshake_port=parse_port(
                "handshakeport",
                _optional(options, "handshakeport",
                          str(Settings.DEFAULT_HANDSHAKE_PORT))),
            user_cert=_required(options, "usercert"),
            ca_cert=_required(options, "cacert"),
            key=_required(options, "key"),
            relay_host=_optional(options, "relayhost", None),
        )


def build_parser(prog: str, client: bool = True) -> argparse.ArgumentParser:
    """
    Build the ``--name=value`` parser for either entry point.

    No option is marked required here; presence is checked by
    ``from_options`` so both entry points report ``ConfigurationError``
    the same way.
    """
    parser = argparse.ArgumentParser(
        prog=prog,
        description=f"{Settings.APP_NAME} "
                    f"{'client' if client else 'server'} forwarder",
    )
    if client:
        parser.add_argument("--targethost", metavar="<hostname>")
        parser.add_argument("--targetport", metavar="<portnumber>")
    parser.add_argument("--handshakehost", metavar="<hostname>",
                        default=Settings.DEFAULT_HANDSHAKE_HOST)
    parser.add_argument("--handshakeport", metavar="<portnumber>",
                        default=str(Settings.DEFAULT_HANDSHAKE_PORT))
    if not client:
        parser.add_argument("--relayhost", metavar="<hostname>",
                            help="address announced for the relay endpoint "
                                 "(defaults to --handshakehost)")
    parser.add_argument("--usercert", metavar="<filename>")
    parser.add_argument("--cacert", metavar="<filename>")
    parser.add_argument("--key", metavar="<filename>")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log debug output")
    return parser
