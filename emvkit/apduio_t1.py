"""T=1 reader reached over TCP using a simple block transport."""

from __future__ import annotations

import socket
from functools import reduce
from typing import Optional, Tuple

from .scard import Protocol, ScardError, ScardErrorKind, SmartCard

T1_CMD_POWER_UP = 0xF0
T1_CMD_POWER_DOWN = 0xE0
T1_CMD_BLOCK = 0x80

T1_I_SEQ = 0x40
T1_I_MORE = 0x20
T1_R_SEQ = 0x10

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9025
DEFAULT_IFS = 32

_MAX_MESSAGE = 258
_MAX_BLOCK = 3 + 255 + 1
_MAX_REPLY = 256 + 2


def compute_lrc(data: bytes) -> int:
    """XOR of all bytes of ``data``."""
    return reduce(lambda acc, byte: acc ^ byte, bytes(data), 0)


def frame_message(cmd: int, payload: bytes = b"") -> bytes:
    """Build a transport message: command, 16-bit length, payload, LRC."""
    payload = bytes(payload)
    if len(payload) > 0xFFFF:
        raise ValueError(f"message of {len(payload)} bytes is too long")
    head = bytes((cmd & 0xFF, (len(payload) >> 8) & 0xFF, len(payload) & 0xFF))
    body = head + payload
    return body + bytes((compute_lrc(body),))


def frame_block(nad: int, pcb: int, payload: bytes = b"") -> bytes:
    """Build a T=1 block: NAD, PCB, length, information field, LRC."""
    payload = bytes(payload)
    if len(payload) > 0xFF:
        raise ValueError(f"block of {len(payload)} bytes is too long")
    body = bytes((nad & 0xFF, pcb & 0xFF, len(payload))) + payload
    return body + bytes((compute_lrc(body),))


class ApduioT1Card(SmartCard):
    """A card behind a T=1 block transport on a TCP socket."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 timeout: Optional[float] = None) -> None:
        super().__init__()
        self.host = host
        self.port = port
        self.timeout = timeout
        self.nad = 0
        self.ifsc = DEFAULT_IFS
        self.ifsd = DEFAULT_IFS
        self.seqc = False
        self.seqd = False
        self._sock: Optional[socket.socket] = None

    def _recv_exact(self, count: int) -> bytes:
        assert self._sock is not None
        buf = bytearray()
        while len(buf) < count:
            chunk = self._sock.recv(count - len(buf))
            if not chunk:
                raise ConnectionError("reader closed the connection")
            buf += chunk
        return bytes(buf)

    def _send_message(self, cmd: int, payload: bytes = b"") -> None:
        assert self._sock is not None
        self._sock.sendall(frame_message(cmd, payload))

    def _recv_message(self, max_len: int) -> Tuple[int, bytes]:
        header = self._recv_exact(3)
        length = (header[1] << 8) | header[2]
        if length > max_len:
            raise ValueError(f"message of {length} bytes does not fit")
        body = self._recv_exact(length + 1)
        if compute_lrc(header + body):
            raise ValueError("LRC error in message")
        return header[0], body[:-1]

    def _send_block(self, pcb: int, payload: bytes) -> None:
        self._send_message(T1_CMD_BLOCK, frame_block(self.nad, pcb, payload))

    def _recv_block(self) -> Tuple[int, int, bytes]:
        _, block = self._recv_message(_MAX_BLOCK)
        if len(block) < 4 or compute_lrc(block):
            raise ValueError("LRC error in block")
        length = block[2]
        data = block[3:3 + length]
        if len(data) != length or len(block) != length + 4:
            raise ValueError("block length mismatch")
        return block[0], block[1], data

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
        self.nad = 0
        self.ifsc = self.ifsd = DEFAULT_IFS
        self.seqc = self.seqd = False
        try:
            self._send_message(T1_CMD_POWER_UP)
            self._recv_message(_MAX_MESSAGE)
        except (OSError, ValueError) as exc:
            self._close()
            raise ScardError(ScardErrorKind.CARD, str(exc)) from exc
        self.proto = Protocol.T1

    def disconnect(self) -> None:
        """Power down the card and close the connection."""
        self.proto = Protocol.INVALID
        if self._sock is None:
            raise ScardError(ScardErrorKind.PARAMETER, "reader is not connected")
        try:
            self._send_message(T1_CMD_POWER_DOWN)
        except OSError as exc:
            raise ScardError(ScardErrorKind.CARD, str(exc)) from exc
        self._close()

    def shutdown(self) -> None:
        """Disconnect if a connection is open."""
        if self._sock is not None:
            self.disconnect()

    def transmit(self, apdu: bytes) -> bytes:
        """Send a command in T=1 blocks and return the card's reply."""
        apdu = bytes(apdu)
        if len(apdu) < 4:
            raise ScardError(ScardErrorKind.PARAMETER, "command is too short")
        if self._sock is None:
            raise ScardError(ScardErrorKind.PARAMETER, "reader is not connected")
        try:
            return self._exchange(apdu)
        except (OSError, ValueError) as exc:
            raise ScardError(ScardErrorKind.CARD, str(exc)) from exc

    def _exchange(self, apdu: bytes) -> bytes:
        pos = 0
        out = bytearray()
        next_block = "I"
        pcb = 0
        tlen = 0
        tbuf = b""

        while True:
            if next_block == "I":
                more = pos + self.ifsc < len(apdu)
                pcb = (T1_I_SEQ if self.seqd else 0) | (T1_I_MORE if more else 0)
                tlen = self.ifsc if more else len(apdu) - pos
                tbuf = apdu[pos:pos + tlen]
            elif next_block == "R":
                pcb = 0x80 | (T1_R_SEQ if self.seqc else 0)
                tlen = 0
                tbuf = b""

            self._send_block(pcb, tbuf)
            rnad, pcb, data = self._recv_block()

            if rnad != self.nad:
                raise ScardError(ScardErrorKind.CARD, "wrong NAD in reply")

            if pcb & 0x80:
                if pcb & 0x40:
                    # S-block: answer with the matching response.
                    next_block = "S"
                    pcb |= 0x20
                    tbuf = data
                    tlen = len(data)
                else:
                    next_block = "I"
                    if (not pcb & T1_R_SEQ) != (not self.seqd):
                        pos += tlen
                        self.seqd = not self.seqd
            else:
                next_block = "R"
                if (not pcb & T1_I_SEQ) == (not self.seqc):
                    pos += tlen
                    self.seqc = not self.seqc
                    room = _MAX_REPLY - len(out)
                    out += data[:room]
                    if not pcb & T1_I_MORE:
                        self.seqd = not self.seqd
                        return bytes(out)