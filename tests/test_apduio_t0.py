import socket
import threading

import pytest

from emvkit.apduio_t0 import (
    ApduioT0Card,
    compute_lrc,
    tlp224_decode,
    tlp224_encode,
    tlp224_frame,
    tlp224_unframe,
)
from emvkit.scard import Protocol, ScardError, ScardErrorKind


class FakeReader(threading.Thread):
    def __init__(self, replies):
        super().__init__(daemon=True)
        self.replies = list(replies)
        self.received = []
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.port = self.listener.getsockname()[1]

    def run(self):
        conn, _ = self.listener.accept()
        with conn:
            for status, payload in self.replies:
                raw = bytearray()
                while not raw or raw[-1] != 0x03:
                    chunk = conn.recv(1024)
                    if not chunk:
                        return
                    raw += chunk
                self.received.append(tlp224_decode(bytes(raw[:-1])))
                conn.sendall(tlp224_frame(status, payload))
        self.listener.close()


def test_lrc_closes_to_zero():
    data = b"\x60\x04\x6e\x00\x00\x00"
    assert compute_lrc(data + bytes((compute_lrc(data),))) == 0
    assert compute_lrc(b"") == 0


def test_encode_is_upper_case_hex():
    assert tlp224_encode(b"\x6e\x0a") == b"6E0A"


def test_decode_round_trip_and_lower_case():
    data = bytes(range(0, 256, 7))
    assert tlp224_decode(tlp224_encode(data)) == data
    assert tlp224_decode(b"6e0a") == b"\x6e\x0a"


@pytest.mark.parametrize("text", [b"6E0", b"6G", b" 6E"])
def test_decode_rejects_bad_text(text):
    with pytest.raises(ValueError):
        tlp224_decode(text)


def test_frame_layout():
    frame = tlp224_frame(0x6E, b"\x00\x00\x00")
    assert frame[-1] == 0x03
    decoded = tlp224_decode(frame[:-1])
    assert decoded[:3] == bytes((0x60, 4, 0x6E))
    assert compute_lrc(decoded) == 0


def test_frame_round_trip():
    payload = b"\x00\xa4\x04\x00\x02\x3f\x00"
    assert tlp224_unframe(tlp224_frame(0xDA, payload)) == (0xDA, payload)
    assert tlp224_unframe(tlp224_frame(0x4D)) == (0x4D, b"")


def test_frame_too_long():
    with pytest.raises(ValueError):
        tlp224_frame(0xDA, bytes(262))


def test_unframe_bad_lrc():
    frame = bytearray(tlp224_frame(0x00, b"\x90\x00"))
    frame[-2] = ord("0") if frame[-2] != ord("0") else ord("1")
    with pytest.raises(ValueError):
        tlp224_unframe(bytes(frame))


def test_unframe_without_eot():
    with pytest.raises(ValueError):
        tlp224_unframe(tlp224_frame(0x00, b"\x90\x00")[:-1])


def test_full_session():
    reader = FakeReader([(0x00, b"\x00\x00\x02\x3b\x00"), (0x00, b"\x6f\x00\x90\x00"), (0x00, b"")])
    reader.start()
    card = ApduioT0Card(port=reader.port, timeout=5)
    card.connect(0)
    assert card.proto is Protocol.T0
    assert card.transmit(b"\x00\xa4\x04\x00\x00") == b"\x6f\x00\x90\x00"
    card.shutdown()
    reader.join(5)
    assert card.proto is Protocol.INVALID
    assert [msg[2] for msg in reader.received] == [0x6E, 0xDB, 0x4D]
    assert reader.received[1][3:-1] == b"\x00\xa4\x04\x00\x00"


def test_long_command_uses_iso_input():
    reader = FakeReader([(0x00, b"\x00\x00\x00"), (0x00, b"\x61\x10")])
    reader.start()
    card = ApduioT0Card(port=reader.port, timeout=5)
    card.connect(0)
    assert card.transmit(b"\x00\xa4\x04\x00\x02\x3f\x00") == b"\x61\x10"
    reader.join(5)
    assert reader.received[1][2] == 0xDA


def test_power_up_failure():
    reader = FakeReader([(0x01, b"\x00\x00\x00")])
    reader.start()
    card = ApduioT0Card(port=reader.port, timeout=5)
    with pytest.raises(ScardError) as exc:
        card.connect(0)
    reader.join(5)
    assert exc.value.kind is ScardErrorKind.CARD
    assert card.proto is Protocol.INVALID


def test_connect_rejects_nonzero_index():
    with pytest.raises(ScardError) as exc:
        ApduioT0Card().connect(1)
    assert exc.value.kind is ScardErrorKind.PARAMETER


def test_connect_refused():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    with pytest.raises(ScardError) as exc:
        ApduioT0Card(port=port, timeout=5).connect(0)
    assert exc.value.kind is ScardErrorKind.CARD


def test_transmit_requires_connection():
    with pytest.raises(ScardError) as exc:
        ApduioT0Card().transmit(b"\x00\xa4\x04\x00")
    assert exc.value.kind is ScardErrorKind.PARAMETER


def test_transmit_rejects_short_command():
    with pytest.raises(ScardError) as exc:
        ApduioT0Card().transmit(b"\x00\xa4")
    assert exc.value.kind is ScardErrorKind.PARAMETER