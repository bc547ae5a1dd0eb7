"""Smart card reader interface shared by all drivers."""

from __future__ import annotations

import abc
import enum
import os
from typing import Optional

DRIVER_ENV = "EMVKIT_SCARD_DRIVER"


class ScardErrorKind(enum.Enum):
    """Categories of smart card failures."""

    NO_ERROR = "No error"
    CARD = "Card error"
    MEMORY = "Memory error"
    PARAMETER = "Parameter error"

    @property
    def message(self) -> str:
        return self.value


class ScardError(Exception):
    """Raised when a reader or card operation fails."""

    def __init__(self, kind: ScardErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.message}: {detail}" if detail else kind.message)


class Protocol(enum.Enum):
    """Transmission protocol negotiated with the card."""

    INVALID = "invalid"
    T0 = "T=0"
    T1 = "T=1"


class SmartCard(abc.ABC):
    """A reader slot that exchanges raw APDUs with a card."""

    def __init__(self) -> None:
        self.proto = Protocol.INVALID

    @abc.abstractmethod
    def connect(self, index: int = 0) -> None:
        """Power up the card in reader slot ``index``."""

    def disconnect(self) -> None:
        """Power down the card."""
        self.proto = Protocol.INVALID

    def shutdown(self) -> None:
        """Release the reader, disconnecting first if needed."""
        if self.proto is not Protocol.INVALID:
            self.disconnect()

    @abc.abstractmethod
    def transmit(self, apdu: bytes) -> bytes:
        """Send one command and return the raw reply, status word included."""

    def __enter__(self) -> "SmartCard":
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()


def open_card(driver: Optional[str] = None) -> SmartCard:
    """Create a reader for ``driver``.

    When ``driver`` is omitted it is taken from the ``EMVKIT_SCARD_DRIVER``
    environment variable.
    """
    if driver is None:
        driver = os.environ.get(DRIVER_ENV)
    if not driver:
        raise ScardError(ScardErrorKind.PARAMETER, "no smart card driver configured")
    if driver == "apduio_t0":
        from .apduio_t0 import ApduioT0Card

        return ApduioT0Card()
    if driver == "apduio_t1":
        from .apduio_t1 import ApduioT1Card

        return ApduioT1Card()
    if driver in ("pcsc", "emu"):
        raise ScardError(ScardErrorKind.PARAMETER, f"driver {driver!r} is not available")
    raise ScardError(ScardErrorKind.PARAMETER, f"unknown driver {driver!r}")