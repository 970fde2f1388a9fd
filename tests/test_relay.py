import os
import socket
import threading

import pytest

from core.crypto_engine import Role, new_cipher
from core.errors        import ConnectError, DecryptionError, RelayIOError
from forwarding.relay   import RelayEngine, relay
from utils.framing      import Framing, MessageType


@pytest.fixture
def ciphers():
    material, salt = os.urandom(32), os.urandom(64)
    return (new_cipher(material, salt, Role.CLIENT),
            new_cipher(material, salt, Role.SERVER))


class Harness:
    """
    app <-> [plain | RelayEngine | cipher] <-> peer

    ``app`` plays the local application, ``peer`` the far end that sees
    framed records.
    """

    def __init__(self, cipher):
        self.app, plain = socket.socketpair()
        cipher_side, self.peer = socket.socketpair()
        self.app.settimeout(5)
        self.peer.settimeout(5)
        self.engine = RelayEngine(plain, cipher_side, cipher, name="test")
        self.plain, self.cipher_side = plain, cipher_side
        self.result = None
        self.error: Exception | None = None
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        try:
            self.result = self.engine.run()
        except Exception as exc:
            self.error = exc

    def join(self, timeout: float = 5):
        self._thread.join(timeout)
        assert not self._thread.is_alive(), "relay did not tear down"

    def close(self):
        self.app.close()
        self.peer.close()


@pytest.fixture
def harness(ciphers):
    h = Harness(ciphers[0])
    yield h
    h.close()


def _recv_all(sock) -> bytes:
    data = b""
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            return data
        data += chunk


def test_outbound_is_sealed(harness, ciphers):
    _, server = ciphers
    harness.app.sendall(b"GET /\r\n")
    msg_type, record = Framing.recv_frame(harness.peer)
    assert msg_type == MessageType.DATA
    assert b"GET" not in record
    assert server.decrypt(record) == b"GET /\r\n"


def test_inbound_is_opened(harness, ciphers):
    _, server = ciphers
    for part in (b"HTTP/1.0 200 OK\r\n", b"\r\n", b"body"):
        Framing.send_frame(harness.peer, MessageType.DATA, server.encrypt(part))
    expected = b"HTTP/1.0 200 OK\r\n\r\nbody"
    got = b""
    while len(got) < len(expected):
        got += harness.app.recv(1024)
    assert got == expected


def test_app_close_tears_down_both_sides(harness, ciphers):
    _, server = ciphers
    harness.app.sendall(b"last words")
    harness.app.shutdown(socket.SHUT_WR)

    msg_type, record = Framing.recv_frame(harness.peer)
    assert server.decrypt(record) == b"last words"
    assert Framing.recv_frame(harness.peer) == (MessageType.CLOSE, b"")
    assert Framing.recv_frame_or_eof(harness.peer) is None

    harness.join()
    assert harness.error is None
    assert harness.result.ended_by == "plain→cipher"
    assert harness.result.bytes_sealed == len(b"last words")
    assert harness.plain.fileno() == -1
    assert harness.cipher_side.fileno() == -1


def test_peer_close_tears_down_app_side(harness):
    harness.peer.close()
    harness.join()
    assert harness.error is None
    assert _recv_all(harness.app) == b""


def test_close_frame_tears_down_app_side(harness, ciphers):
    _, server = ciphers
    Framing.send_frame(harness.peer, MessageType.DATA, server.encrypt(b"bye"))
    Framing.send_frame(harness.peer, MessageType.CLOSE, b"")
    assert _recv_all(harness.app) == b"bye"
    harness.join()
    assert harness.result.ended_by == "cipher→plain"
    assert harness.result.records_opened == 1


def test_corrupted_record_aborts(harness, ciphers):
    _, server = ciphers
    record = bytearray(server.encrypt(b"tampered"))
    record[0] ^= 0xFF
    Framing.send_frame(harness.peer, MessageType.DATA, bytes(record))

    harness.join()
    assert isinstance(harness.error, DecryptionError)
    # nothing from the bad record reached the application
    assert _recv_all(harness.app) == b""


def test_unexpected_frame_aborts(harness):
    Framing.send_frame(harness.peer, MessageType.CLIENT_HELLO, b"{}")
    harness.join()
    assert isinstance(harness.error, RelayIOError)


def test_engine_is_single_use(harness):
    harness.app.close()
    harness.join()
    with pytest.raises(RuntimeError):
        harness.engine.run()


def _unused_port() -> int:
    spare = socket.create_server(("127.0.0.1", 0))
    port = spare.getsockname()[1]
    spare.close()
    return port


def test_connect_failure_closes_local_socket(ciphers):
    local, app = socket.socketpair()
    with app:
        app.settimeout(5)
        with pytest.raises(ConnectError):
            relay(local, "127.0.0.1", _unused_port(), ciphers[0])
        assert local.fileno() == -1
        assert app.recv(1) == b""


def test_relay_connects_and_forwards(ciphers):
    client, server = ciphers
    remote = socket.create_server(("127.0.0.1", 0))
    local, app = socket.socketpair()
    outcome = {}

    def run():
        outcome["stats"] = relay(local, "127.0.0.1",
                                 remote.getsockname()[1], client)

    t = threading.Thread(target=run, daemon=True)
    t.start()
    with remote, app:
        remote.settimeout(5)
        far, _ = remote.accept()
        with far:
            far.settimeout(5)
            app.sendall(b"ping")
            msg_type, record = Framing.recv_frame(far)
            assert server.decrypt(record) == b"ping"
            Framing.send_frame(far, MessageType.DATA, server.encrypt(b"pong"))
            assert app.recv(4) == b"pong"
            app.close()
            assert Framing.recv_frame(far) == (MessageType.CLOSE, b"")
        t.join(5)
    assert not t.is_alive()
    assert outcome["stats"].bytes_opened == 4


def test_server_side_relay_keeps_target_plaintext(ciphers):
    client, server = ciphers
    target = socket.create_server(("127.0.0.1", 0))
    cipher_local, peer = socket.socketpair()

    t = threading.Thread(
        target=relay,
        args=(cipher_local, "127.0.0.1", target.getsockname()[1], server),
        kwargs={"encrypt_outbound": False}, daemon=True,
    )
    t.start()
    with target, peer:
        target.settimeout(5)
        peer.settimeout(5)
        conn, _ = target.accept()
        with conn:
            conn.settimeout(5)
            Framing.send_frame(peer, MessageType.DATA, client.encrypt(b"GET /"))
            assert conn.recv(5) == b"GET /"
            conn.sendall(b"200")
            msg_type, record = Framing.recv_frame(peer)
            assert client.decrypt(record) == b"200"
        t.join(5)
    assert not t.is_alive()


class _ExhaustedCipher:
    """Seals nothing: its record counter has run out."""

    def encrypt(self, chunk):
        raise OverflowError("record sequence exhausted; rekey required")

    def decrypt(self, record):
        return record


def test_unexpected_loop_failure_is_reported():
    h = Harness(_ExhaustedCipher())
    try:
        h.app.sendall(b"data")
        h.join()
        assert isinstance(h.error, RelayIOError)
        assert isinstance(h.error.__cause__, OverflowError)
        assert h.plain.fileno() == -1
    finally:
        h.close()
