"""T=0 reader reached over TCP using TLP224 framing."""

from __future__ import annotations

import socket
from functools import reduce
from typing import Optional, Tuple

from .scard import Protocol, ScardError, ScardErrorKind, SmartCard

TLP224_EOT = 0x03
TLP224_ACK = 0x60

TLP224_CMD_POWER_UP = 0x6E
TLP224_CMD_POWER_DOWN = 0x4D
TLP224_CMD_ISO_INPUT = 0xDA
TLP224_CMD_ISO_OUTPUT = 0xDB

TLP224_STATUS_OK = 0x00
TLP224_STATUS_SW = 0xE7

TLP224_MAXMSG = 261
TLP224_BUFSIZ = 2 * (3 + TLP224_MAXMSG + 1) + 1

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9025

_HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")
_MAX_REPLY = 256 + 2


def compute_lrc(data: bytes) -> int:
    """XOR of all bytes of ``data``."""
    return reduce(lambda acc, byte: acc ^ byte, bytes(data), 0)


def tlp224_encode(data: bytes) -> bytes:
    """Encode bytes as upper-case ASCII hex digits."""
    return bytes(data).hex().upper().encode("ascii")


def tlp224_decode(text: bytes) -> bytes:
    """Decode ASCII hex digits back into bytes."""
    text = bytes(text)
    if len(text) % 2:
        raise ValueError("odd number of hex digits")
    if not set(text) <= _HEX_DIGITS:
        raise ValueError("invalid hex digit")
    return bytes.fromhex(text.decode("ascii"))


def tlp224_frame(cmd: int, payload: bytes = b"") -> bytes:
    """Build an encoded TLP224 message, terminated by EOT."""
    payload = bytes(payload)
    if len(payload) > TLP224_MAXMSG:
        raise ValueError(f"message of {len(payload)} bytes is too long")
    header = bytes((TLP224_ACK, (len(payload) + 1) & 0xFF, cmd & 0xFF))
    lrc = compute_lrc(header) ^ compute_lrc(payload)
    return tlp224_encode(header + payload + bytes((lrc,))) + bytes((TLP224_EOT,))


def tlp224_unframe(raw: bytes) -> Tuple[int, bytes]:
    """Check an encoded TLP224 message and return ``(status, payload)``."""
    raw = bytes(raw)
    if not raw or raw[-1] != TLP224_EOT:
        raise ValueError("message is not terminated by EOT")
    decoded = tlp224_decode(raw[:-1])
    if (
        len(decoded) < 3
        or decoded[0] != TLP224_ACK
        or len(decoded) != decoded[1] + 3
        or compute_lrc(decoded) != 0
    ):
        raise ValueError("malformed TLP224 message")
    return decoded[2], decoded[3:-1]


class ApduioT0Card(SmartCard):
    """A card behind a TLP224 speaking reader on a TCP socket."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 timeout: Optional[float] = None) -> None:
        super().__init__()
        self.host = host
        self.port = port
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None

    def _receive(self) -> bytes:
        assert self._sock is not None
        buf = bytearray()
        while not buf or buf[-1] != TLP224_EOT:
            if len(buf) >= TLP224_BUFSIZ:
                raise ValueError("reply is too long")
            chunk = self._sock.recv(TLP224_BUFSIZ - len(buf))
            if not chunk:
                raise ConnectionError("reader closed the connection")
            buf += chunk
        return bytes(buf)

    def _exchange(self, cmd: int, payload: bytes, max_len: int) -> Tuple[int, bytes]:
        if self._sock is None:
            raise ScardError(ScardErrorKind.CARD, "reader is not connected")
        try:
            self._sock.sendall(tlp224_frame(cmd, payload))
            status, reply = tlp224_unframe(self._receive())
        except (OSError, ValueError) as exc:
            raise ScardError(ScardErrorKind.CARD, str(exc)) from exc
        if len(reply) > max_len:
            raise ScardError(ScardErrorKind.CARD, "reply does not fit")
        return status, reply

    def _close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._sock.close()
            self._sock = None

    def connect(self, index: int = 0) -> None:
        """Connect to the reader and power up the card."""
        if index or self._sock is not None:
            raise ScardError(ScardErrorKind.PARAMETER, "bad reader index or already connected")
        try:
            self._sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as exc:
            raise ScardError(ScardErrorKind.CARD, str(exc)) from exc
        try:
            status, reply = self._exchange(TLP224_CMD_POWER_UP, b"\x00\x00\x00", _MAX_REPLY)
            if len(reply) < 3 or status != TLP224_STATUS_OK:
                raise ScardError(ScardErrorKind.CARD, f"power up failed, status {status:02x}")
        except ScardError:
            self._close()
            raise
        self.proto = Protocol.T0

    def disconnect(self) -> None:
        """Power down the card and close the connection."""
        self.proto = Protocol.INVALID
        status, _ = self._exchange(TLP224_CMD_POWER_DOWN, b"", 0)
        if status != TLP224_STATUS_OK:
            raise ScardError(ScardErrorKind.CARD, f"power down failed, status {status:02x}")
        self._close()

    def shutdown(self) -> None:
        """Disconnect if a connection is open."""
        if self._sock is not None:
            self.disconnect()

    def transmit(self, apdu: bytes) -> bytes:
        """Send a T=0 command and return the reader's reply."""
        apdu = bytes(apdu)
        if len(apdu) < 4:
            raise ScardError(ScardErrorKind.PARAMETER, "command is too short")
        if self._sock is None:
            raise ScardError(ScardErrorKind.PARAMETER, "reader is not connected")
        cmd = TLP224_CMD_ISO_INPUT if len(apdu) > 5 else TLP224_CMD_ISO_OUTPUT
        _, reply = self._exchange(cmd, apdu, _MAX_REPLY)
        return reply