# emvkit

A small, dependency-free library for working with EMV payment smart cards.

## Modules

- `emvkit.tlv`: BER-TLV as EMV uses it. `TlvDb.parse` reads exactly one
  top-level object with its nested children, `TlvDb.fixed` builds a single
  primitive object, `TlvDb.add` appends another collection, and
  `TlvDb.visit` (also plain iteration) yields every `Tlv` parents first.
  `TlvDb.get` returns the first object with a tag or `None`;
  `TlvDb.find_all` yields all of them. `Tlv.encode` serialises one element
  and `Tlv.is_constructed` tells whether its tag is constructed.
  `parse_tl` reads only a tag and a length and returns `(tag, length, rest)`.
- `emvkit.emv_tags`: `tag_name` gives the EMV name of a tag
  (`"Unknown ???"` for tags it does not know). `format_tag` describes a
  `Tlv` as text, decoding bitmasks (AIP, AUC, issuer action codes), data
  object lists, CVM lists, numeric, string and YYMMDD date values.
  `dump_tag` writes that text to a file, standard output by default.
- `emvkit.pinpad`: `encode_pin` turns 4 to 12 typed digits into an 8-byte
  ISO 9564 format 2 PIN block; `enter_pin` prompts with `Enter PIN: `,
  reads one line (from standard input unless a reader function is given)
  and encodes it.
- `emvkit.scard`: the abstract `SmartCard` interface (`connect`,
  `disconnect`, `shutdown`, `transmit`, usable as a context manager that
  shuts down on exit), the `Protocol` enum, and `open_card`, which picks a
  driver by name or from the `EMVKIT_SCARD_DRIVER` environment variable.
- `emvkit.sc_helpers`: `command` sends one command APDU and returns
  `(response_data, status_word)`. Over T=0 it follows `61xx` with
  GET RESPONSE and retries with the length from `6Cxx`; over T=1 it sends
  the APDU as is.
- `emvkit.apduio_t0` and `emvkit.apduio_t1`: `ApduioT0Card` and
  `ApduioT1Card` reach a card simulator over TCP, by default at
  `127.0.0.1` port 9025, using TLP224 framing and T=1 block framing
  respectively. The framing helpers (`tlp224_frame`, `tlp224_unframe`,
  `frame_message`, `frame_block`, `compute_lrc`, ...) are public too.

## Installation

```
pip install .
```

## Example

```python
from emvkit.tlv import TlvDb
from emvkit.emv_tags import format_tag

db = TlvDb.parse(bytes.fromhex(
    "6f1a840e315041592e5359532e4444463031a5088801025f2d02656e"
))
print(db.get(0x88).value)            # b'\x02'

for tlv in db.visit():
    print(format_tag(tlv), end="")
```

Talking to a card through the T=1 TCP transport:

```python
from emvkit.scard import open_card
from emvkit.sc_helpers import command

with open_card("apduio_t1") as card:
    card.connect(0)
    data, sw = command(card, 0x00, 0xA4, 0x04, 0x00, b"1PAY.SYS.DDF01")
    print(f"{sw:04x}", data.hex())
```

Errors are raised: `TlvError` for malformed TLV data, `PinError` for a
rejected PIN, and `ScardError` (with a `ScardErrorKind`) for card and
transport failures.

## What it does not do

- Only the two TCP transports are available. `open_card` knows the driver
  names `pcsc` and `emu` but raises `ScardError` for them: there is no
  PC/SC reader support and no built-in emulated card.
- There are no EMV transaction commands (SELECT, GET PROCESSING OPTIONS,
  GENERATE AC), no data object list processing and no certificate or
  signature checking; `command` is the lowest building block for these.
- The package installs no command-line programs.

## Running the tests

```
pip install .[test]
pytest
```