import dataclasses

import pytest

from config.arguments import ForwardConfig, ServerConfig, build_parser
from config.settings  import Settings
from core.errors      import ConfigurationError
from utils.key_manager import KeyManager

OPTIONS = {
    "targethost": "10.0.0.5",
    "targetport": "8080",
    "handshakehost": "localhost",
    "handshakeport": "2206",
    "usercert": "client.pem",
    "cacert": "ca.pem",
    "key": "secret.key",
}


def test_full_options():
    config = ForwardConfig.from_options(OPTIONS)
    assert config.target_host == "10.0.0.5"
    assert config.target_port == 8080
    assert config.handshake_port == 2206
    assert config.key == "secret.key"


def test_defaults_for_handshake_endpoint():
    options = {k: v for k, v in OPTIONS.items()
               if k not in ("handshakehost", "handshakeport")}
    config = ForwardConfig.from_options(options)
    assert config.handshake_host == Settings.DEFAULT_HANDSHAKE_HOST == "localhost"
    assert config.handshake_port == Settings.DEFAULT_HANDSHAKE_PORT


@pytest.mark.parametrize("missing", ["targethost", "targetport", "usercert",
                                     "cacert", "key"])
def test_missing_required_option(missing):
    options = dict(OPTIONS, **{missing: None})
    with pytest.raises(ConfigurationError, match=missing):
        ForwardConfig.from_options(options)


@pytest.mark.parametrize("port", ["0", "65536", "http", "-1", ""])
def test_bad_target_port(port):
    with pytest.raises(ConfigurationError):
        ForwardConfig.from_options(dict(OPTIONS, targetport=port))


def test_config_is_immutable():
    config = ForwardConfig.from_options(OPTIONS)
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.target_port = 1


def test_parser_accepts_equals_syntax():
    parser = build_parser("forward_client")
    args = parser.parse_args([f"--{k}={v}" for k, v in OPTIONS.items()])
    assert ForwardConfig.from_options(vars(args)) == \
        ForwardConfig.from_options(OPTIONS)


def test_server_config():
    config = ServerConfig.from_options(
        {"usercert": "s.pem", "cacert": "ca.pem", "key": "s.key"})
    assert config.handshake_port == 2206
    with pytest.raises(ConfigurationError):
        ServerConfig.from_options({"usercert": "s.pem", "cacert": "ca.pem"})
    assert config.relay_host is None


def test_server_relay_host_option():
    parser = build_parser("forward_server", client=False)
    args = parser.parse_args(["--handshakehost=0.0.0.0",
                              "--relayhost=gateway.example",
                              "--usercert=s.pem", "--cacert=ca.pem",
                              "--key=s.key"])
    config = ServerConfig.from_options(vars(args))
    assert config.handshake_host == "0.0.0.0"
    assert config.relay_host == "gateway.example"


def test_client_parser_has_no_relay_host():
    with pytest.raises(SystemExit):
        build_parser("forward_client").parse_args(["--relayhost=x"])


# ── credential files ─────────────────────────────────────────────

def test_missing_credential_file(pki, tmp_path):
    with pytest.raises(ConfigurationError, match="Cannot read"):
        KeyManager().load_credentials(str(tmp_path / "nope.pem"),
                                      pki.ca_cert, pki.client_key)


def test_garbage_certificate(pki, tmp_path):
    bogus = tmp_path / "bogus.pem"
    bogus.write_text("not a certificate")
    with pytest.raises(ConfigurationError, match="Invalid certificate"):
        KeyManager().load_credentials(str(bogus), pki.ca_cert, pki.client_key)


def test_key_must_match_certificate(pki):
    with pytest.raises(ConfigurationError, match="does not match"):
        KeyManager().load_credentials(pki.client_cert, pki.ca_cert,
                                      pki.server_key)
