# Numeric storage formats for GX vertex arrays: fixed-point scalars, floats and
# packed vertex colors. All multi-byte values are big-endian.

import math
import struct
from struct import Struct
from enum import Enum

class CompSize(Enum):
    U8     = 0 # Unsigned 8-bit integer
    S8     = 1 # Signed 8-bit integer
    U16    = 2 # Unsigned 16-bit integer
    S16    = 3 # Signed 16-bit integer
    F32    = 4 # 32-bit floating-point

class ColorFmt(Enum):
    RGB565 = 0 # 16-bit RGB
    RGB8   = 1 # 24-bit RGB
    RGBX8  = 2 # 32-bit RGBX
    RGBA4  = 3 # 16-bit RGBA
    RGBA6  = 4 # 24-bit RGBA
    RGBA8  = 5 # 32-bit RGBA

scalarStructs = {
CompSize.U8:  Struct('>B'),
CompSize.S8:  Struct('>b'),
CompSize.U16: Struct('>H'),
CompSize.S16: Struct('>h'),
CompSize.F32: Struct('>f')
}

colorSizes = {
ColorFmt.RGB565: 2,
ColorFmt.RGB8:   4, # padded to a word, same as RGBX8
ColorFmt.RGBX8:  4,
ColorFmt.RGBA4:  2,
ColorFmt.RGBA6:  4, # 24 bits in the low end of a word
ColorFmt.RGBA8:  4
}

def scalarSize(dataType):
    return scalarStructs[dataType].size

def colorSize(colorFmt):
    return colorSizes[colorFmt]

def roundHalfAway(x):
    # round() rounds half to even, the hardware tools round half away from zero
    return int(math.copysign(math.floor(abs(x)+0.5), x))

def decodeScalar(fin, dataType, decimalPoint=0):
    s = scalarStructs[dataType]
    value, = s.unpack(fin.read(s.size))
    if dataType == CompSize.F32:
        return value
    return value/(1 << decimalPoint)

def encodeScalar(fout, value, dataType, decimalPoint=0):
    # Out-of-range values are not clamped; the packer raises struct.error.
    s = scalarStructs[dataType]
    if dataType == CompSize.F32:
        fout.write(s.pack(value))
    else:
        fout.write(s.pack(roundHalfAway(value*(1 << decimalPoint))))

# Channels are divided by 255 whatever their bit depth, so a full-scale
# 5-bit red in RGB565 decodes to 31/255. Existing tools expect these values.
def decodeColor(fin, colorFmt):
    if colorFmt == ColorFmt.RGB565:
        c = int.from_bytes(fin.read(2), 'big')
        return ((c & 0xF800) >> 11)/255.0, ((c & 0x07E0) >> 5)/255.0, (c & 0x001F)/255.0, 1.0
    elif colorFmt in (ColorFmt.RGB8, ColorFmt.RGBX8):
        r, g, b, x = fin.read(4)
        return r/255.0, g/255.0, b/255.0, 1.0
    elif colorFmt == ColorFmt.RGBA4:
        c = int.from_bytes(fin.read(2), 'big')
        return ((c & 0xF000) >> 12)/255.0, ((c & 0x0F00) >> 8)/255.0, ((c & 0x00F0) >> 4)/255.0, (c & 0x000F)/255.0
    elif colorFmt == ColorFmt.RGBA6:
        c = int.from_bytes(fin.read(4), 'big') & 0xFFFFFF
        return ((c & 0xFC0000) >> 18)/255.0, ((c & 0x03F000) >> 12)/255.0, ((c & 0x000FC0) >> 6)/255.0, (c & 0x00003F)/255.0
    elif colorFmt == ColorFmt.RGBA8:
        r, g, b, a = fin.read(4)
        return r/255.0, g/255.0, b/255.0, a/255.0
    else:
        raise ValueError("Unsupported color format %s" % colorFmt)

def _channel(v, bits):
    c = roundHalfAway(v*255)
    if not 0 <= c < (1 << bits):
        raise struct.error("color channel %r does not fit in %d bits" % (v, bits))
    return c

def encodeColor(fout, color, colorFmt):
    r, g, b, a = color
    if colorFmt == ColorFmt.RGB565:
        c = (_channel(r, 5) << 11) | (_channel(g, 6) << 5) | _channel(b, 5)
        fout.write(c.to_bytes(2, 'big'))
    elif colorFmt in (ColorFmt.RGB8, ColorFmt.RGBX8):
        fout.write(bytes((_channel(r, 8), _channel(g, 8), _channel(b, 8), 0xFF)))
    elif colorFmt == ColorFmt.RGBA4:
        c = (_channel(r, 4) << 12) | (_channel(g, 4) << 8) | (_channel(b, 4) << 4) | _channel(a, 4)
        fout.write(c.to_bytes(2, 'big'))
    elif colorFmt == ColorFmt.RGBA6:
        c = (_channel(r, 6) << 18) | (_channel(g, 6) << 12) | (_channel(b, 6) << 6) | _channel(a, 6)
        fout.write(c.to_bytes(4, 'big'))
    elif colorFmt == ColorFmt.RGBA8:
        fout.write(bytes((_channel(r, 8), _channel(g, 8), _channel(b, 8), _channel(a, 8))))
    else:
        raise ValueError("Unsupported color format %s" % colorFmt)
