"""Names of EMV tags and human-readable dumps of their values."""

from __future__ import annotations

import enum
import struct
import sys
from typing import Dict, NamedTuple, Optional, TextIO

from .tlv import Tlv, TlvError, parse_tl


class _Kind(enum.Enum):
    GENERIC = enum.auto()
    BITMASK = enum.auto()
    DOL = enum.auto()
    CVM_LIST = enum.auto()
    STRING = enum.auto()
    NUMERIC = enum.auto()
    YYMMDD = enum.auto()


def _bit(byte: int, bit: int) -> int:
    return (byte - 1) * 8 + (8 - bit)


_CL_RESERVED = "Reserved for use by the EMV Contactless Specifications"

_AIP: Dict[int, str] = {
    _bit(1, 7): "SDA supported",
    _bit(1, 6): "DDA supported",
    _bit(1, 5): "Cardholder verification is supported",
    _bit(1, 4): "Terminal risk management is to be performed",
    _bit(1, 3): "Issuer authentication is supported",
    _bit(1, 2): _CL_RESERVED,
    _bit(1, 1): "CDA supported",
    _bit(2, 8): _CL_RESERVED,
    _bit(2, 7): _CL_RESERVED,
    _bit(2, 6): _CL_RESERVED,
    _bit(2, 1): _CL_RESERVED,
}

_AUC: Dict[int, str] = {
    _bit(1, 8): "Valid for domestic cash transactions",
    _bit(1, 7): "Valid for international cash transactions",
    _bit(1, 6): "Valid for domestic goods",
    _bit(1, 5): "Valid for international goods",
    _bit(1, 4): "Valid for domestic services",
    _bit(1, 3): "Valid for international services",
    _bit(1, 2): "Valid for ATMs",
    _bit(1, 1): "Valid at terminals other than ATMs",
    _bit(2, 8): "Domestic cashback allowed",
    _bit(2, 7): "International cashback allowed",
}

_TVR: Dict[int, str] = {
    _bit(1, 8): "Offline data authentication was not performed",
    _bit(1, 7): "SDA failed",
    _bit(1, 6): "ICC data missing",
    _bit(1, 5): "Card appears on terminal exception file",
    _bit(1, 4): "DDA failed",
    _bit(1, 3): "CDA failed",
    _bit(1, 2): "SDA selected",
    _bit(2, 8): "ICC and terminal have different application versions",
    _bit(2, 7): "Expired application",
    _bit(2, 6): "Application not yet effective",
    _bit(2, 5): "Requested service not allowed for card product",
    _bit(2, 4): "New card",
    _bit(3, 8): "Cardholder verification was not successful",
    _bit(3, 7): "Unrecognised CVM",
    _bit(3, 6): "PIN Try Limit exceeded",
    _bit(3, 5): "PIN entry required and PIN pad not present or not working",
    _bit(3, 4): "PIN entry required, PIN pad present, but PIN was not entered",
    _bit(3, 3): "Online PIN entered",
    _bit(4, 8): "Transaction exceeds floor limit",
    _bit(4, 7): "Lower consecutive offline limit exceeded",
    _bit(4, 6): "Upper consecutive offline limit exceeded",
    _bit(4, 5): "Transaction selected randomly for online processing",
    _bit(4, 4): "Merchant forced transaction online",
    _bit(5, 8): "Default TDOL used",
    _bit(5, 7): "Issuer authentication failed",
    _bit(5, 6): "Script processing failed before final GENERATE AC",
    _bit(5, 5): "Script processing failed after final GENERATE AC",
    _bit(5, 4): _CL_RESERVED,
    _bit(5, 3): _CL_RESERVED,
    _bit(5, 2): _CL_RESERVED,
    _bit(5, 1): _CL_RESERVED,
}


class _EmvTag(NamedTuple):
    name: str
    kind: _Kind = _Kind.GENERIC
    bits: Optional[Dict[int, str]] = None


_UNKNOWN = _EmvTag("Unknown ???")

_TAGS: Dict[int, _EmvTag] = {
    0x00: _UNKNOWN,
    0x4F: _EmvTag("Application Dedicated File (ADF) Name"),
    0x50: _EmvTag("Application Label", _Kind.STRING),
    0x56: _EmvTag("Track 1 Data"),
    0x57: _EmvTag("Track 2 Equivalent Data"),
    0x5A: _EmvTag("Application Primary Account Number (PAN)"),
    0x5F20: _EmvTag("Cardholder Name", _Kind.STRING),
    0x5F24: _EmvTag("Application Expiration Date", _Kind.YYMMDD),
    0x5F25: _EmvTag("Application Effective Date", _Kind.YYMMDD),
    0x5F28: _EmvTag("Issuer Country Code", _Kind.NUMERIC),
    0x5F2A: _EmvTag("Transaction Currency Code", _Kind.NUMERIC),
    0x5F2D: _EmvTag("Language Preference", _Kind.STRING),
    0x5F30: _EmvTag("Service Code", _Kind.NUMERIC),
    0x5F34: _EmvTag("Application Primary Account Number (PAN) Sequence Number", _Kind.NUMERIC),
    0x61: _EmvTag("Application Template"),
    0x6F: _EmvTag("File Control Information (FCI) Template"),
    0x70: _EmvTag("READ RECORD Response Message Template"),
    0x77: _EmvTag("Response Message Template Format 2"),
    0x80: _EmvTag("Response Message Template Format 1"),
    0x82: _EmvTag("Application Interchange Profile", _Kind.BITMASK, _AIP),
    0x83: _EmvTag("Command Template"),
    0x84: _EmvTag("Dedicated File (DF) Name"),
    0x87: _EmvTag("Application Priority Indicator"),
    0x88: _EmvTag("Short File Identifier (SFI)"),
    0x8A: _EmvTag("Authorisation Response Code"),
    0x8C: _EmvTag("Card Risk Management Data Object List 1 (CDOL1)", _Kind.DOL),
    0x8D: _EmvTag("Card Risk Management Data Object List 2 (CDOL2)", _Kind.DOL),
    0x8E: _EmvTag("Cardholder Verification Method (CVM) List", _Kind.CVM_LIST),
    0x8F: _EmvTag("Certification Authority Public Key Index"),
    0x90: _EmvTag("Issuer Public Key Certificate"),
    0x91: _EmvTag("Issuer Authentication Data"),
    0x92: _EmvTag("Issuer Public Key Remainder"),
    0x93: _EmvTag("Signed Static Application Data"),
    0x94: _EmvTag("Application File Locator (AFL)"),
    0x95: _EmvTag("Terminal Verification Results"),
    0x9A: _EmvTag("Transaction Date", _Kind.YYMMDD),
    0x9C: _EmvTag("Transaction Type"),
    0x9F02: _EmvTag("Amount, Authorised (Numeric)", _Kind.NUMERIC),
    0x9F03: _EmvTag("Amount, Other (Numeric)", _Kind.NUMERIC),
    0x9F07: _EmvTag("Application Usage Control", _Kind.BITMASK, _AUC),
    0x9F08: _EmvTag("Application Version Number"),
    0x9F0D: _EmvTag("Issuer Action Code - Default", _Kind.BITMASK, _TVR),
    0x9F0E: _EmvTag("Issuer Action Code - Denial", _Kind.BITMASK, _TVR),
    0x9F0F: _EmvTag("Issuer Action Code - Online", _Kind.BITMASK, _TVR),
    0x9F10: _EmvTag("Issuer Application Data"),
    0x9F11: _EmvTag("Issuer Code Table Index", _Kind.NUMERIC),
    0x9F12: _EmvTag("Application Preferred Name", _Kind.STRING),
    0x9F13: _EmvTag("Last Online Application Transaction Counter (ATC) Register"),
    0x9F17: _EmvTag("Personal Identification Number (PIN) Try Counter"),
    0x9F1A: _EmvTag("Terminal Country Code"),
    0x9F1F: _EmvTag("Track 1 Discretionary Data", _Kind.STRING),
    0x9F21: _EmvTag("Transaction Time"),
    0x9F26: _EmvTag("Application Cryptogram"),
    0x9F27: _EmvTag("Cryptogram Information Data"),
    0x9F2D: _EmvTag("ICC PIN Encipherment Public Key Certificate"),
    0x9F2E: _EmvTag("ICC PIN Encipherment Public Key Exponent"),
    0x9F2F: _EmvTag("ICC PIN Encipherment Public Key Remainder"),
    0x9F32: _EmvTag("Issuer Public Key Exponent"),
    0x9F34: _EmvTag("Cardholder Verification Method (CVM) Results"),
    0x9F35: _EmvTag("Terminal Type"),
    0x9F36: _EmvTag("Application Transaction Counter (ATC)"),
    0x9F37: _EmvTag("Unpredictable Number"),
    0x9F38: _EmvTag("Processing Options Data Object List (PDOL)", _Kind.DOL),
    0x9F42: _EmvTag("Application Currency Code", _Kind.NUMERIC),
    0x9F44: _EmvTag("Application Currency Exponent", _Kind.NUMERIC),
    0x9F45: _EmvTag("Data Authentication Code"),
    0x9F46: _EmvTag("ICC Public Key Certificate"),
    0x9F47: _EmvTag("ICC Public Key Exponent"),
    0x9F48: _EmvTag("ICC Public Key Remainder"),
    0x9F49: _EmvTag("Dynamic Data Authentication Data Object List (DDOL)", _Kind.DOL),
    0x9F4A: _EmvTag("Static Data Authentication Tag List"),
    0x9F4B: _EmvTag("Signed Dynamic Application Data"),
    0x9F4C: _EmvTag("ICC Dynamic Number"),
    0x9F4D: _EmvTag("Log Entry"),
    0x9F4F: _EmvTag("Log Format", _Kind.DOL),
    0x9F62: _EmvTag("PCVC3(Track1)"),
    0x9F63: _EmvTag("PUNATC(Track1)"),
    0x9F64: _EmvTag("NATC(Track1)"),
    0x9F65: _EmvTag("PCVC3(Track2)"),
    0x9F66: _EmvTag("PUNATC(Track2)"),
    0x9F67: _EmvTag("NATC(Track2)"),
    0x9F6B: _EmvTag("Track 2 Data"),
    0xA5: _EmvTag("File Control Information (FCI) Proprietary Template"),
    0xBF0C: _EmvTag("File Control Information (FCI) Issuer Discretionary Data"),
}

_CVM_METHODS = {
    0x00: "Fail CVM processing",
    0x01: "Plaintext PIN verification performed by ICC",
    0x02: "Enciphered PIN verified online",
    0x03: "Plaintext PIN verification performed by ICC and signature (paper)",
    0x04: "Enciphered PIN verification performed by ICC",
    0x05: "Enciphered PIN verification performed by ICC and signature (paper)",
    0x1E: "Signature (paper)",
    0x1F: "No CVM required",
    0x3F: "NOT AVAILABLE!",
}

_CVM_CONDITIONS = {
    0x00: "Always",
    0x01: "If unattended cash",
    0x02: "If not unattended cash and not manual cash and not purchase with cashback",
    0x03: "If terminal supports the CVM",
    0x04: "If manual cash",
    0x05: "If purchase with cashback",
    0x06: "If transaction is in the application currency and is under X value",
    0x07: "If transaction is in the application currency and is over X value",
    0x08: "If transaction is in the application currency and is under Y value",
    0x09: "If transaction is in the application currency and is over Y value",
}

_ULONG_MASK = (1 << 64) - 1


def _lookup(tag: int) -> _EmvTag:
    return _TAGS.get(tag, _UNKNOWN)


def tag_name(tag: int) -> str:
    """Return the EMV name of ``tag``, or ``"Unknown ???"``."""
    return _lookup(tag).name


def _bit_pattern(bit: int) -> str:
    return "." * (8 - bit) + "1" + "." * (bit - 1)


def _dump_bitmask(tlv: Tlv, bits: Dict[int, str]) -> list:
    lines = []
    for byte, val in enumerate(tlv.value, start=1):
        lines.append(f"\tByte {byte} ({val:02x})")
        for bit in range(8, 0, -1):
            if val & (1 << (bit - 1)):
                name = bits.get(_bit(byte, bit), "Unknown")
                lines.append(f"\t\t{_bit_pattern(bit)} - '{name}'")
    return lines


def _dump_dol(tlv: Tlv) -> list:
    lines = []
    data = tlv.value
    while data:
        try:
            tag, length, data = parse_tl(data)
        except TlvError as exc:
            lines.append("Invalid Tag-Len")
            data = exc.rest
            continue
        lines.append(f"\tTag {tag:4x} len {length:02x} ('{tag_name(tag)}')")
    return lines


def _dump_string(tlv: Tlv) -> list:
    return [f"\tString value '{tlv.value.decode('latin-1')}'"]


def _numeric(value: bytes, start: int, end: int) -> int:
    """Read BCD nibbles ``start`` to ``end`` (exclusive) as a decimal number."""
    if end > len(value) * 2 or start >= end:
        return 0
    result = 0
    for pos in range(start, end):
        byte = value[pos // 2]
        nibble = byte & 0xF if pos % 2 else byte >> 4
        result = (result * 10 + nibble) & _ULONG_MASK
    return result


def _dump_numeric(tlv: Tlv) -> list:
    return [f"\tNumeric value {_numeric(tlv.value, 0, len(tlv.value) * 2)}"]


def _dump_yymmdd(tlv: Tlv) -> list:
    year = _numeric(tlv.value, 0, 2)
    month = _numeric(tlv.value, 2, 4)
    day = _numeric(tlv.value, 4, 6)
    return [f"\tDate: 20{year:02d}.{month}.{day}"]


def _dump_cvm_list(tlv: Tlv) -> list:
    value = tlv.value
    if len(value) < 10 or len(value) % 2:
        return ["\tINVALID!"]
    amount_x, amount_y = struct.unpack(">ii", value[:8])
    lines = [f"\tX: {amount_x}", f"\tY: {amount_y}"]
    rules = iter(value[8:])
    for code, condition_code in zip(rules, rules):
        method = _CVM_METHODS.get(code & 0x3F, "Unknown")
        condition = _CVM_CONDITIONS.get(condition_code, "Unknown")
        action = "continue" if code & 0x40 else "fail"
        lines.append(
            f"\t{code:02x} {condition_code:02x}: '{method}' '{condition}' "
            f"and '{action}' if this CVM is unsuccessful"
        )
    return lines


def format_tag(tlv: Tlv) -> str:
    """Describe ``tlv`` in readable form, one line per item."""
    info = _lookup(tlv.tag)
    lines = [f"Got tag {tlv.tag:4x} len {tlv.length:02x} '{info.name}':"]
    if info.kind is _Kind.BITMASK:
        lines += _dump_bitmask(tlv, info.bits or {})
    elif info.kind is _Kind.DOL:
        lines += _dump_dol(tlv)
    elif info.kind is _Kind.CVM_LIST:
        lines += _dump_cvm_list(tlv)
    elif info.kind is _Kind.STRING:
        lines += _dump_string(tlv)
    elif info.kind is _Kind.NUMERIC:
        lines += _dump_numeric(tlv)
    elif info.kind is _Kind.YYMMDD:
        lines += _dump_yymmdd(tlv)
    return "".join(line + "\n" for line in lines)


def dump_tag(tlv: Optional[Tlv], file: Optional[TextIO] = None) -> bool:
    """Write the description of ``tlv`` to ``file`` (stdout by default).

    Returns ``False`` and writes ``NULL`` when ``tlv`` is ``None``.
    """
    out = file if file is not None else sys.stdout
    if tlv is None:
        out.write("NULL\n")
        return False
    out.write(format_tag(tlv))
    return True