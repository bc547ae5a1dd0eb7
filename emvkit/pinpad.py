"""PIN entry and ISO 9564 format 2 PIN block encoding."""

from __future__ import annotations

import sys
from typing import Callable, Optional

_SKIP = " \t\n\r\v"
_DIGITS = frozenset("0123456789")
_MIN_DIGITS = 4
_MAX_DIGITS = 12
# A line is read into a 17 byte buffer, so at most 16 characters count.
_LINE_LIMIT = 16


class PinError(ValueError):
    """Raised when the entered text is not an acceptable PIN."""


def encode_pin(text: str) -> bytes:
    """Encode a PIN typed as text into an 8-byte plaintext PIN block.

    Leading and trailing blanks are ignored; the rest must be 4 to 12
    decimal digits.
    """
    digits = text.strip(_SKIP)
    if not digits:
        raise PinError("no PIN digits entered")
    if not set(digits) <= _DIGITS:
        raise PinError("PIN must contain decimal digits only")
    if not _MIN_DIGITS <= len(digits) <= _MAX_DIGITS:
        raise PinError(
            f"PIN must have {_MIN_DIGITS} to {_MAX_DIGITS} digits, got {len(digits)}"
        )
    padded = digits + "F" * (2 * 7 - len(digits))
    return bytes((0x20 | len(digits),)) + bytes.fromhex(padded)


def enter_pin(read_line: Optional[Callable[[], str]] = None) -> bytes:
    """Prompt for a PIN, read one line and return its PIN block.

    ``read_line`` defaults to reading a line from standard input; an empty
    result means the input has ended.
    """
    reader = read_line if read_line is not None else sys.stdin.readline
    print("Enter PIN: ", end="", flush=True)
    line = reader()
    if not line:
        raise PinError("no PIN entered")
    return encode_pin(line[:_LINE_LIMIT])