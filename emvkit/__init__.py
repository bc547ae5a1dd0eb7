"""Tools for EMV smart cards: TLV data, tag decoding, PIN blocks, APDUs and TCP reader transports."""

__version__ = "0.1.0"
__all__ = ["tlv", "emv_tags", "pinpad", "scard", "sc_helpers", "apduio_t0", "apduio_t1"]