import io
import struct

import pytest
from PIL import Image as PILImage

from common import CorruptPaletteReference, InvalidShape, MalformedHeader
from texture import (
    Mipmap,
    Palette,
    TexFmt,
    TlutFmt,
    calcImageSize,
    decodeImage,
    encodeImage,
    paddedSize,
    readImageData,
    rgb565toColor,
    unpackRGB5A3,
)


def makeImage(mode, size, pixels):
    image = PILImage.new(mode, size)
    image.putdata(pixels)
    return image


def roundTrip(image, format):
    data = encodeImage(Mipmap(image), format)
    assert len(data) == calcImageSize(format, *image.size)
    return decodeImage(data, format, *image.size).image


def test_image_sizes():
    assert calcImageSize(TexFmt.I4, 8, 8) == 32
    assert calcImageSize(TexFmt.RGBA8, 4, 4) == 64
    assert calcImageSize(TexFmt.CMPR, 10, 10) == 128
    assert calcImageSize(TexFmt.C8, 10, 10) == 256
    assert paddedSize(TexFmt.CMPR, 1, 1) == (8, 8)
    assert paddedSize(TexFmt.RGB565, 2, 2) == (2, 2)


def test_short_read():
    with pytest.raises(MalformedHeader):
        readImageData(io.BytesIO(bytes(100)), TexFmt.CMPR, 10, 10)
    assert len(readImageData(io.BytesIO(bytes(200)), TexFmt.CMPR, 10, 10)) == 128


def test_i4_round_trip():
    image = makeImage('L', (8, 8), [0x11 * (i % 16) for i in range(64)])
    assert roundTrip(image, TexFmt.I4).tobytes() == image.tobytes()


def test_i8_round_trip():
    image = makeImage('L', (8, 8), [(i * 37) & 0xFF for i in range(64)])
    assert roundTrip(image, TexFmt.I8).tobytes() == image.tobytes()


def test_ia4_round_trip():
    image = makeImage('LA', (8, 4), [(0x11 * (i % 16), 0x11 * (15 - i % 16)) for i in range(32)])
    assert roundTrip(image, TexFmt.IA4).tobytes() == image.tobytes()


def test_ia8_round_trip():
    image = makeImage('LA', (4, 4), [(i * 13, 255 - i) for i in range(16)])
    assert roundTrip(image, TexFmt.IA8).tobytes() == image.tobytes()


def test_ia8_byte_order():
    # alpha is the high byte of each texel
    data = struct.pack('>16H', *([0x80FF] * 16))
    image = decodeImage(data, TexFmt.IA8, 4, 4).image
    assert image.getpixel((0, 0)) == (0xFF, 0x80)


def test_rgb565_round_trip():
    image = makeImage('RGB', (4, 4), [rgb565toColor((i * 0x1234) & 0xFFFF) for i in range(16)])
    assert roundTrip(image, TexFmt.RGB565).tobytes() == image.tobytes()


def test_rgb5a3_round_trip():
    opaque = [unpackRGB5A3(0x8000 | (i * 0x0421)) for i in range(8)]
    translucent = [unpackRGB5A3((i % 7) << 12 | (i * 0x111)) for i in range(8)]
    image = makeImage('RGBA', (4, 4), opaque + translucent)
    assert roundTrip(image, TexFmt.RGB5A3).tobytes() == image.tobytes()


def test_rgba8_round_trip():
    image = makeImage('RGBA', (4, 4), [(i, 2 * i, 3 * i, 255 - i) for i in range(16)])
    assert roundTrip(image, TexFmt.RGBA8).tobytes() == image.tobytes()


def test_rgba8_layout():
    image = makeImage('RGBA', (4, 4), [(0x11, 0x22, 0x33, 0x44)] * 16)
    data = encodeImage(Mipmap(image), TexFmt.RGBA8)
    assert data[:32] == b'\x44\x11' * 16
    assert data[32:] == b'\x22\x33' * 16


def test_direct_formats_convert_input_mode():
    image = makeImage('RGBA', (8, 4), [(200, 200, 200, 255)] * 32)
    decoded = roundTrip(image, TexFmt.I8)
    assert decoded.mode == 'L'
    assert decoded.getpixel((0, 0)) == 200


def test_cmpr_padding_is_cropped():
    mipmap = decodeImage(bytes(128), TexFmt.CMPR, 10, 10)
    assert mipmap.size == (10, 10)
    assert mipmap.image.getpixel((9, 9)) == (0, 0, 0, 255)


def test_cmpr_four_color_mode():
    block = struct.pack('>HHI', 0xF800, 0x001F, 0x40000000)
    data = block + bytes(24)
    image = decodeImage(data, TexFmt.CMPR, 8, 8).image
    assert image.getpixel((0, 0)) == (0, 0, 255, 255)
    assert image.getpixel((1, 0)) == (255, 0, 0, 255)


def test_cmpr_three_color_mode():
    block = struct.pack('>HHI', 0x001F, 0xF800, 0xE0000000)
    data = block + bytes(24)
    image = decodeImage(data, TexFmt.CMPR, 8, 8).image
    assert image.getpixel((0, 0))[3] == 0
    assert image.getpixel((1, 0)) == (127, 0, 127, 255)
    assert image.getpixel((2, 0)) == (0, 0, 255, 255)


def test_cmpr_round_trip_two_colors():
    red, blue = (255, 0, 0, 255), (0, 0, 255, 255)
    image = makeImage('RGBA', (8, 8), [red if (x + y) % 2 else blue for y in range(8) for x in range(8)])
    assert roundTrip(image, TexFmt.CMPR).tobytes() == image.tobytes()


def test_cmpr_keeps_transparency():
    red, clear = (255, 0, 0, 255), (0, 0, 0, 0)
    image = makeImage('RGBA', (8, 8), [red if x < 4 else clear for y in range(8) for x in range(8)])
    decoded = roundTrip(image, TexFmt.CMPR)
    assert decoded.getpixel((0, 0)) == red
    assert decoded.getpixel((7, 7))[3] == 0


def test_cmpr_partial_block():
    image = makeImage('RGBA', (10, 10), [(255, 0, 0, 255)] * 100)
    decoded = roundTrip(image, TexFmt.CMPR)
    assert decoded.size == (10, 10)
    assert decoded.getpixel((9, 9)) == (255, 0, 0, 255)


def test_c8_decode(rgbPalette):
    data = bytes(i % 4 for i in range(64))
    mipmap = decodeImage(data, TexFmt.C8, 8, 8, rgbPalette)
    assert mipmap.palette is rgbPalette
    assert mipmap.indices.getpixel((5, 0)) == 1
    assert mipmap.image.getpixel((5, 0)) == (0, 255, 0, 255)
    assert encodeImage(mipmap, TexFmt.C8) == data


def test_c4_round_trip(rgbPalette):
    indices = makeImage('I', (8, 8), [(x + y) % 4 for y in range(8) for x in range(8)])
    mipmap = Mipmap.fromIndices(indices, rgbPalette)
    assert mipmap.image.getpixel((1, 0)) == (0, 255, 0, 255)
    data = encodeImage(mipmap, TexFmt.C4)
    assert data[0] == 0x01
    again = decodeImage(data, TexFmt.C4, 8, 8, rgbPalette)
    assert list(again.indices.getdata()) == list(indices.getdata())


def test_c14x2_masks_high_bits(rgbPalette):
    data = struct.pack('>64H', *([0xC003] * 64))
    mipmap = decodeImage(data, TexFmt.C14X2, 4, 4, rgbPalette)
    assert mipmap.indices.getpixel((3, 3)) == 3
    assert mipmap.image.getpixel((3, 3)) == (255, 255, 255, 255)


def test_palette_errors(rgbPalette):
    with pytest.raises(CorruptPaletteReference):
        decodeImage(bytes(32), TexFmt.C8, 8, 4)
    with pytest.raises(CorruptPaletteReference):
        decodeImage(bytes([5] * 32), TexFmt.C8, 8, 4, rgbPalette)

    indices = makeImage('I', (8, 4), [4] * 32)
    with pytest.raises(CorruptPaletteReference):
        encodeImage(Mipmap(PILImage.new('RGBA', (8, 4)), indices, rgbPalette), TexFmt.C8)
    with pytest.raises(InvalidShape):
        encodeImage(Mipmap(PILImage.new('RGBA', (8, 4))), TexFmt.C8)


def test_palette_codec():
    palette = Palette.decode(b'\x20\x10\xff\xff', TlutFmt.IA8)
    assert palette.colors == [(0x10, 0x20), (0xFF, 0xFF)]
    assert palette.imageMode == 'LA'
    assert palette.encode() == b'\x20\x10\xff\xff'

    with pytest.raises(CorruptPaletteReference):
        Palette.read(io.BytesIO(b'\x00\x00'), TlutFmt.RGB565, 2)
    palette = Palette.read(io.BytesIO(b'\xf8\x00'), TlutFmt.RGB565, 1)
    assert palette[0] == (255, 0, 0)
