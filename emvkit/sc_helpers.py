"""Sending ISO 7816 commands over T=0 and T=1 readers."""

from __future__ import annotations

from typing import Optional, Tuple

from .scard import Protocol, ScardError, ScardErrorKind, SmartCard

_OUT_SIZE = 256 + 2
_SW_OK = 0x9000


def _status(reply: bytes) -> int:
    return (reply[-2] << 8) | reply[-1]


def _command_t0(
    card: SmartCard, header: bytes, data: Optional[bytes]
) -> Tuple[bytes, int]:
    payload = data or b""
    cmd = bytearray(header + b"\x00")
    reply = card.transmit(header + bytes((len(payload),)) + payload)
    if len(reply) != 2:
        raise ScardError(ScardErrorKind.CARD, "unexpected procedure bytes")

    out = bytearray()
    force_sw = 0
    while True:
        sw = _status(reply)
        out += reply[:-2]

        if sw == _SW_OK:
            return bytes(out), force_sw or sw

        group = sw & 0xFF00
        if group in (0x6200, 0x6300) or 0x9000 <= group <= 0x9F00:
            force_sw = sw
            sw = 0x6100
        if sw & 0xFF00 == 0x6100:
            cmd[:] = bytes((0x00, 0xC0, 0x00, 0x00, sw & 0xFF))
        elif group == 0x6C00:
            cmd[4] = sw & 0xFF
        else:
            if out:
                raise ScardError(ScardErrorKind.CARD, f"status {sw:04x} after data")
            return b"", sw

        if len(out) + cmd[4] + 2 > _OUT_SIZE:
            raise ScardError(ScardErrorKind.CARD, "response too long")
        reply = card.transmit(bytes(cmd))


def _command_t1(
    card: SmartCard, header: bytes, data: Optional[bytes], expect_response: bool
) -> Tuple[bytes, int]:
    apdu = bytearray(header)
    if data is not None:
        apdu.append(len(data))
        apdu += data
    if expect_response:
        apdu.append(0)
    reply = card.transmit(bytes(apdu))
    if len(reply) < 2:
        raise ScardError(ScardErrorKind.CARD, "reply without status word")
    return bytes(reply[:-2]), _status(reply)


def command(
    card: SmartCard,
    cla: int,
    ins: int,
    p1: int,
    p2: int,
    data: Optional[bytes] = None,
    expect_response: bool = True,
) -> Tuple[bytes, int]:
    """Send a command APDU and return ``(response_data, status_word)``.

    Response data is empty when the card returned none or when
    ``expect_response`` is false.
    """
    if data is not None:
        data = bytes(data)
        if len(data) > 0xFF:
            raise ScardError(ScardErrorKind.PARAMETER, "command data too long")
    header = bytes((cla & 0xFF, ins & 0xFF, p1 & 0xFF, p2 & 0xFF))

    if card.proto is Protocol.T0:
        response, sw = _command_t0(card, header, data)
    elif card.proto is Protocol.T1:
        response, sw = _command_t1(card, header, data, expect_response)
    else:
        raise ScardError(ScardErrorKind.CARD, "card is not connected")
    return (response if expect_response else b""), sw