import os

import pytest

from core.crypto_engine import Role, new_cipher
from forwarding.session import ForwardSession


@pytest.fixture
def cipher():
    return new_cipher(os.urandom(32), os.urandom(64), Role.CLIENT)


def test_session_fields(cipher):
    session = ForwardSession("10.0.0.5", 8080, cipher,
                             cipher_suite="AES-256-GCM", peer="CN=server")
    assert session.remote_address == ("10.0.0.5", 8080)
    info = session.info()
    assert info["remote"] == "10.0.0.5:8080"
    assert len(info["session_id"]) == 16
    assert "cipher=" not in repr(session)


@pytest.mark.parametrize("host, port", [("", 80), ("h", 0), ("h", 65536)])
def test_session_rejects_bad_endpoint(cipher, host, port):
    with pytest.raises(ValueError):
        ForwardSession(host, port, cipher)


def test_session_ids_are_unique(cipher):
    a = ForwardSession("h", 1, cipher)
    b = ForwardSession("h", 1, cipher)
    assert a.session_id != b.session_id


def test_session_port_is_stored_as_int(cipher):
    session = ForwardSession("10.0.0.5", "8080", cipher)
    assert session.remote_port == 8080
    assert isinstance(session.remote_port, int)
    assert session.info()["remote"] == "10.0.0.5:8080"


@pytest.mark.parametrize("port", ["http", "80.5", None, True])
def test_session_rejects_non_numeric_port(cipher, port):
    with pytest.raises((ValueError, TypeError)):
        ForwardSession("h", port, cipher)
