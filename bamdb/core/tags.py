"""Auxiliary tag block decoding.

WHY: Every BAM record ends with a variable-schema, self-describing block
of auxiliary tags. There is no length prefix for the block and no end
marker per entry: each entry's width is implied by its type code. The
text report and barcode lookup both need these entries decoded into the
canonical TAG:TYPE:VALUE form.

HOW: iter_tags() walks the block with a single cursor. Each entry is a
2-byte tag id, a 1-byte type code, and a value whose width comes from the
type code (fixed for scalars, NUL-terminated for strings, subtype x count
for arrays). Scalars and arrays are unpacked with precompiled
little-endian struct formats. Every read is checked against the block
length before it happens.

RULES:
- Scan while at least 4 bytes remain (id + type + 1 value byte minimum)
- Integer codes keep their signedness ("c" is signed, "C" unsigned)
- "d" is an 8-byte IEEE double
- Z/H copy up to the NUL terminator or the end of the block, whichever
  comes first; the NUL is consumed but not part of the value
- B arrays: subtype byte + uint32 count + count elements of the subtype
- Overruns and unknown type codes end the scan: entries decoded so far
  are returned, the partial entry is dropped, nothing is raised
- Never slice or unpack past len(block)
"""

from __future__ import annotations

import struct
from typing import Iterator, List, Optional

from bamdb.core.ir import TagEntry

# Fixed-width scalar type codes, little-endian as stored in BAM.
_SCALARS = {
    "c": struct.Struct("<b"),
    "C": struct.Struct("<B"),
    "s": struct.Struct("<h"),
    "S": struct.Struct("<H"),
    "i": struct.Struct("<i"),
    "I": struct.Struct("<I"),
    "f": struct.Struct("<f"),
    "d": struct.Struct("<d"),
}

_ARRAY_COUNT = struct.Struct("<I")

# Minimum bytes for an entry: 2-byte id + 1-byte type + 1 value byte.
_MIN_ENTRY_SIZE = 4

DEFAULT_DELIMITER = "\t"


def _decode_text(data: bytes) -> str:
    # latin-1 maps every byte to one character, so values come out verbatim.
    return data.decode("latin-1")


def iter_tags(block: bytes) -> Iterator[TagEntry]:
    """Yield the tag entries of an auxiliary block in binary order.

    Each call starts a fresh scan, so the result can be iterated again by
    calling the function again. Malformed input shortens the stream
    instead of raising.

    Args:
        block: The raw auxiliary tag bytes of one record.

    Yields:
        TagEntry objects, one per fully decoded entry.
    """
    end = len(block)
    pos = 0

    while pos + _MIN_ENTRY_SIZE <= end:
        tag = _decode_text(block[pos:pos + 2])
        type_code = chr(block[pos + 2])
        pos += 3

        if type_code == "A":
            yield TagEntry(tag, type_code, chr(block[pos]))
            pos += 1

        elif type_code in _SCALARS:
            scalar = _SCALARS[type_code]
            if pos + scalar.size > end:
                return
            (value,) = scalar.unpack_from(block, pos)
            pos += scalar.size
            yield TagEntry(tag, type_code, value)

        elif type_code in ("Z", "H"):
            nul = block.find(b"\x00", pos)
            if nul == -1:
                value = block[pos:end]
                pos = end
            else:
                value = block[pos:nul]
                pos = nul + 1
            yield TagEntry(tag, type_code, _decode_text(value))

        elif type_code == "B":
            if pos + 1 + _ARRAY_COUNT.size > end:
                return
            subtype = chr(block[pos])
            element = _SCALARS.get(subtype)
            if element is None:
                return
            (count,) = _ARRAY_COUNT.unpack_from(block, pos + 1)
            pos += 1 + _ARRAY_COUNT.size

            stop = pos + count * element.size
            if stop > end:
                return
            values = struct.unpack_from("<{}{}".format(count, element.format[-1]), block, pos)
            pos = stop
            yield TagEntry(tag, type_code, values, subtype=subtype)

        else:
            # Unknown width; guessing would desynchronize the cursor.
            return


def decode_tags(block: bytes) -> List[str]:
    """Decode an auxiliary block into canonical TAG:TYPE:VALUE strings."""
    return [entry.text for entry in iter_tags(block)]


def format_tags(block: bytes, delimiter: str = DEFAULT_DELIMITER) -> str:
    """Render an auxiliary block as one delimiter-joined string.

    Entries keep their binary order. There is no trailing delimiter, and
    an empty or fully malformed block renders as "".
    """
    return delimiter.join(decode_tags(block))


def find_tag(block: bytes, tag: str) -> Optional[TagEntry]:
    """Return the first entry whose id is ``tag``, or None."""
    for entry in iter_tags(block):
        if entry.tag == tag:
            return entry
    return None
