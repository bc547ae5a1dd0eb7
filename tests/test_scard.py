import pytest

from emvkit.apduio_t0 import ApduioT0Card
from emvkit.scard import (
    Protocol,
    ScardError,
    ScardErrorKind,
    SmartCard,
    open_card,
)


class _RecordingCard(SmartCard):
    def __init__(self):
        super().__init__()
        self.events = []

    def connect(self, index=0):
        self.events.append(("connect", index))
        self.proto = Protocol.T1

    def disconnect(self):
        self.events.append(("disconnect",))
        super().disconnect()

    def transmit(self, apdu):
        self.events.append(("transmit", bytes(apdu)))
        return b"\x90\x00"


@pytest.mark.parametrize(
    "kind, message",
    [
        (ScardErrorKind.NO_ERROR, "No error"),
        (ScardErrorKind.CARD, "Card error"),
        (ScardErrorKind.MEMORY, "Memory error"),
        (ScardErrorKind.PARAMETER, "Parameter error"),
    ],
)
def test_error_messages(kind, message):
    err = ScardError(kind)
    assert err.kind is kind
    assert str(err) == message


def test_error_carries_kind_and_detail():
    err = ScardError(ScardErrorKind.CARD, "no reply")
    assert err.kind is ScardErrorKind.CARD
    assert str(err) == "Card error: no reply"
    assert str(ScardError(ScardErrorKind.PARAMETER)) == "Parameter error"


def test_open_apduio_t0():
    card = open_card("apduio_t0")
    assert isinstance(card, ApduioT0Card)
    assert card.proto is Protocol.INVALID


@pytest.mark.parametrize("driver", ["pcsc", "emu", "nonsense"])
def test_open_unavailable_driver(driver):
    with pytest.raises(ScardError) as exc:
        open_card(driver)
    assert exc.value.kind is ScardErrorKind.PARAMETER


def test_open_without_configured_driver(monkeypatch):
    monkeypatch.delenv("EMVKIT_SCARD_DRIVER", raising=False)
    with pytest.raises(ScardError) as exc:
        open_card()
    assert exc.value.kind is ScardErrorKind.PARAMETER


def test_open_uses_environment(monkeypatch):
    monkeypatch.setenv("EMVKIT_SCARD_DRIVER", "apduio_t0")
    card = open_card()
    assert isinstance(card, ApduioT0Card)
    assert card.proto is Protocol.INVALID


def test_context_manager_disconnects_connected_card():
    card = _RecordingCard()
    entered = SmartCard.__enter__(card)
    assert entered is card
    card.connect(0)
    assert card.proto is Protocol.T1
    SmartCard.__exit__(card, None, None, None)
    assert card.events[-1] == ("disconnect",)
    assert card.proto is Protocol.INVALID


def test_shutdown_without_connection_leaves_card_unconnected():
    card = open_card("apduio_t0")
    card.shutdown()
    assert card.proto is Protocol.INVALID
    with pytest.raises(ScardError) as exc:
        card.transmit(b"\x00\xa4\x04\x00\x00")
    assert exc.value.kind is ScardErrorKind.PARAMETER