import io
import struct

import pytest

from texture import Palette, TlutFmt


def buildVtx1(formats, offsets, payloads, size):
    """Assemble a raw VTX1 chunk.

    formats: (arrayType, componentCount, dataType, decimalPoint) tuples,
    offsets: the 13 table slots, payloads: {offset: bytes}.
    """
    buf = io.BytesIO()
    buf.write(struct.pack(">4sLL", b"VTX1", size, 0x40))
    buf.write(struct.pack(">13L", *offsets))
    for fmt in formats:
        buf.write(struct.pack(">IIIB3x", *fmt))
    buf.write(struct.pack(">IIIB3x", 0xFF, 1, 0, 0))
    for offset, data in payloads.items():
        buf.seek(offset)
        buf.write(data)
    buf.seek(size - 1)
    buf.write(b"\0")
    buf.seek(0)
    return buf


@pytest.fixture
def vtx1Builder():
    """Returns a function building raw VTX1 chunks as BytesIO streams."""
    return buildVtx1


@pytest.fixture
def rgbPalette():
    """Four opaque RGB5A3 colors that survive the 5-bit round trip."""
    return Palette(TlutFmt.RGB5A3, [
        (255, 0, 0, 255),
        (0, 255, 0, 255),
        (0, 0, 255, 255),
        (255, 255, 255, 255),
    ])
