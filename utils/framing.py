"""
Length-prefixed binary framing for the SecureForward wire protocol.

Frame layout:
    [4 bytes – payload length (big-endian)]
    [1 byte  – message type]
    [N bytes – payload]

Used both for the three handshake round trips (JSON payloads) and for
relay records (``DATA`` frames carrying one sealed chunk each).
"""

import json
import socket
import struct
import time


class MessageType:
    CLIENT_HELLO = 0x01
    SERVER_HELLO = 0x02
    FORWARD      = 0x03
    SESSION      = 0x04
    FINISHED     = 0x05
    ALERT        = 0x0E
    DATA         = 0x10
    CLOSE        = 0xFF

    @classmethod
    def name(cls, msg_type: int) -> str:
        for attr, value in vars(cls).items():
            if attr.isupper() and value == msg_type:
                return attr
        return f"0x{msg_type:02x}"


class Framing:
    HEADER_SIZE      = 5
    MAX_PAYLOAD_SIZE = 16 * 1024 * 1024          # 16 MiB

    @staticmethod
    def create_frame(msg_type: int, payload: bytes) -> bytes:
        if len(payload) > Framing.MAX_PAYLOAD_SIZE:
            raise ValueError(f"Payload too large: {len(payload)}")
        header = struct.pack("!IB", len(payload), msg_type)
        return header + payload

    @staticmethod
    def parse_header(header: bytes) -> tuple[int, int]:
        if len(header) < Framing.HEADER_SIZE:
            raise ValueError("Header too short")
        length, msg_type = struct.unpack("!IB", header[:Framing.HEADER_SIZE])
        if length > Framing.MAX_PAYLOAD_SIZE:
            raise ValueError(f"Payload too large: {length}")
        return length, msg_type

    @staticmethod
    def _recv_exact(sock, n: int, deadline: float | None = None) -> bytes:
        """
        Read exactly *n* bytes from *sock*.  With *deadline* (a
        ``time.monotonic()`` value) the whole read must finish by then,
        however the bytes trickle in; the caller restores the timeout.
        """
        buf = bytearray()
        while len(buf) < n:
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise socket.timeout("frame not received before deadline")
                sock.settimeout(remaining)
            chunk = sock.recv(n - len(buf))
            if not chunk:
                raise ConnectionError("Connection closed")
            buf.extend(chunk)
        return bytes(buf)

    @staticmethod
    def recv_frame(sock, deadline: float | None = None) -> tuple[int, bytes]:
        """
        Return *(msg_type, payload)*.  A *deadline* bounds the whole
        frame, not each ``recv``; the socket timeout is restored after.
        """
        timeout = sock.gettimeout() if deadline is not None else None
        try:
            header           = Framing._recv_exact(sock, Framing.HEADER_SIZE,
                                                   deadline)
            length, msg_type = Framing.parse_header(header)
            payload          = (Framing._recv_exact(sock, length, deadline)
                                if length else b"")
        finally:
            if deadline is not None and sock.fileno() != -1:
                sock.settimeout(timeout)
        return msg_type, payload

    @staticmethod
    def recv_frame_or_eof(sock) -> tuple[int, bytes] | None:
        """Like ``recv_frame`` but return *None* on a clean close between frames."""
        first = sock.recv(1)
        if not first:
            return None
        header           = first + Framing._recv_exact(sock, Framing.HEADER_SIZE - 1)
        length, msg_type = Framing.parse_header(header)
        payload          = Framing._recv_exact(sock, length) if length else b""
        return msg_type, payload

    @staticmethod
    def send_frame(sock, msg_type: int, payload: bytes):
        sock.sendall(Framing.create_frame(msg_type, payload))

    # ── JSON helpers for handshake messages ──────────────────────
    @staticmethod
    def encode_json(message: dict) -> bytes:
        return json.dumps(message, sort_keys=True,
                          separators=(",", ":")).encode()

    @staticmethod
    def decode_json(payload: bytes) -> dict:
        try:
            message = json.loads(payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"Malformed JSON payload: {exc}") from exc
        if not isinstance(message, dict):
            raise ValueError("Handshake payload must be a JSON object")
        return message
