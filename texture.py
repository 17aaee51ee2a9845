# Common functions for reading, decoding and encoding block-based GameCube
# TEV/Flipper/GX texture data. Decoded pixels are PIL images.

import sys
from array import array
from enum import Enum
from PIL import Image as PILImage
from common import *

class TexFmt(Enum):
    I4 = 0x0
    I8 = 0x1
    IA4 = 0x2
    IA8 = 0x3
    RGB565 = 0x4
    RGB5A3 = 0x5
    RGBA8 = 0x6
    C4 = 0x8
    C8 = 0x9
    C14X2 = 0xA
    CMPR = 0xE # S3TC/DXT

class TlutFmt(Enum):
    IA8 = 0x0
    RGB565 = 0x1
    RGB5A3 = 0x2

PALETTE_FORMATS = (TexFmt.C4, TexFmt.C8, TexFmt.C14X2)
# formats whose dimensions are rounded up to whole 8x8 tiles before reading
PADDED_FORMATS = (TexFmt.C4, TexFmt.C8, TexFmt.C14X2, TexFmt.CMPR)

formatBytesPerPixel = {
TexFmt.I4:   0.5,
TexFmt.I8:     1,
TexFmt.IA4:    1,
TexFmt.IA8:    2,
TexFmt.RGB565: 2,
TexFmt.RGB5A3: 2,
TexFmt.RGBA8:  4,
TexFmt.C4:   0.5,
TexFmt.C8:     1,
TexFmt.C14X2:  2,
TexFmt.CMPR: 0.5
}

formatBlockWidth = {
TexFmt.I4:     8,
TexFmt.I8:     8,
TexFmt.IA4:    8,
TexFmt.IA8:    4,
TexFmt.RGB565: 4,
TexFmt.RGB5A3: 4,
TexFmt.RGBA8:  4,
TexFmt.C4:     8,
TexFmt.C8:     8,
TexFmt.C14X2:  4,
TexFmt.CMPR:   8
}

formatBlockHeight = {
TexFmt.I4:     8,
TexFmt.I8:     4,
TexFmt.IA4:    4,
TexFmt.IA8:    4,
TexFmt.RGB565: 4,
TexFmt.RGB5A3: 4,
TexFmt.RGBA8:  4,
TexFmt.C4:     8,
TexFmt.C8:     4,
TexFmt.C14X2:  4,
TexFmt.CMPR:   8
}

formatArrayTypes = {
TexFmt.I4:     'B',
TexFmt.I8:     'B',
TexFmt.IA4:    'B',
TexFmt.IA8:    'H',
TexFmt.RGB565: 'H',
TexFmt.RGB5A3: 'H',
TexFmt.RGBA8:  'H',
TexFmt.C4:     'B',
TexFmt.C8:     'B',
TexFmt.C14X2:  'H',
TexFmt.CMPR:   'B'
}

formatMaxIndex = {
TexFmt.C4:    0x10,
TexFmt.C8:    0x100,
TexFmt.C14X2: 0x4000
}

formatImageTypes = {
TexFmt.I4:     'L',
TexFmt.I8:     'L',
TexFmt.IA4:    'LA',
TexFmt.IA8:    'LA',
TexFmt.RGB565: 'RGB',
TexFmt.RGB5A3: 'RGBA',
TexFmt.RGBA8:  'RGBA',
TexFmt.CMPR:   'RGBA'
}

paletteFormatImageTypes = {
TlutFmt.IA8:    'LA',
TlutFmt.RGB565: 'RGB',
TlutFmt.RGB5A3: 'RGBA'
}

def unpackRGB5A3(c):
    if (c & 0x8000) == 0x8000:
        a = 0xff
        r = (c & 0x7c00) >> 10
        r = (r << (8-5)) | (r >> (10-8))
        g = (c & 0x3e0) >> 5
        g = (g << (8-5)) | (g >> (10-8))
        b = c & 0x1f
        b = (b << (8-5)) | (b >> (10-8))
    else:
        a = (c & 0x7000) >> 12
        a = (a << (8-3)) | (a << (8-6)) | (a >> (9-8))
        r = (c & 0xf00) >> 8
        r = (r << (8-4)) | r
        g = (c & 0xf0) >> 4
        g = (g << (8-4)) | g
        b = c & 0xf
        b = (b << (8-4)) | b
    return r, g, b, a

def packRGB5A3(c):
    r, g, b, a = c
    if a == 0xff:
        return 0x8000 | ((r >> 3) << 10) | ((g >> 3) << 5) | (b >> 3)
    else:
        return ((a >> 5) << 12) | ((r >> 4) << 8) | ((g >> 4) << 4) | (b >> 4)

def rgb565toColor(rgb):
    r = (rgb & 0xf800) >> 11
    g = (rgb & 0x7e0) >> 5
    b = (rgb & 0x1f)
    #http://www.mindcontrol.org/~hplus/graphics/expand-bits.html
    r = (r << 3) | (r >> 2)
    g = (g << 2) | (g >> 4)
    b = (b << 3) | (b >> 2)
    return r,g,b

def colorToRGB565(c):
    return ((c[0] >> 3) << 11) | ((c[1] >> 2) << 5) | (c[2] >> 3)

def cmprColors(color0, color1):
    colors = [rgb565toColor(color0)+(255,),
              rgb565toColor(color1)+(255,)]
    if color0 > color1:
        colors += [tuple((colors[0][j] * 5 + colors[1][j] * 3) >> 3 for j in range(3))+(255,)]
        colors += [tuple((colors[1][j] * 5 + colors[0][j] * 3) >> 3 for j in range(3))+(255,)]
    else:
        colors += [tuple((colors[0][j] + colors[1][j]) >> 1 for j in range(3))+(255,)]
        colors += [tuple((colors[0][j] + colors[1][j]) >> 1 for j in range(3))+(0,)]
    return colors

def _luma(c):
    return c[0]*299 + c[1]*587 + c[2]*114

# pixels: 16 RGBA tuples in row order, None where the block hangs off the image
def encodeCMPRBlock(pixels):
    opaque = [p for p in pixels if p is not None and p[3] >= 0x80]
    transparent = any(p is not None and p[3] < 0x80 for p in pixels)
    if len(opaque) > 0:
        color0 = colorToRGB565(max(opaque, key=_luma))
        color1 = colorToRGB565(min(opaque, key=_luma))
    else:
        color0 = color1 = 0
    # color0 > color1 selects four colors, otherwise three plus transparent
    if transparent == (color0 > color1):
        color0, color1 = color1, color0
    colors = cmprColors(color0, color1)
    usable = 3 if color0 <= color1 else 4
    bits = 0
    for j, p in enumerate(pixels):
        if p is None:
            idx = 0
        elif p[3] < 0x80 and transparent:
            idx = 3
        else:
            idx = min(range(usable), key=lambda k: sum((colors[k][i]-p[i])**2 for i in range(3)))
        bits |= idx << (30-2*j)
    return [color0 >> 8, color0 & 0xff, color1 >> 8, color1 & 0xff,
            (bits >> 24) & 0xff, (bits >> 16) & 0xff, (bits >> 8) & 0xff, bits & 0xff]

def lookupPalette(palette, idx):
    if palette is None:
        raise CorruptPaletteReference("indexed texture without a palette")
    if idx >= len(palette):
        raise CorruptPaletteReference("index %d past the end of a %d-entry palette" % (idx, len(palette)))
    return palette[idx]

# Decode a block (format-dependent size) of texture into pixels
def decodeBlock(format, data, dataidx, width, height, xoff, yoff, putpixel):
    if format == TexFmt.I4:
        for y in range(yoff, yoff+8):
            for x in range(xoff, xoff+8, 2):
                if dataidx >= len(data): break
                c = data[dataidx]
                dataidx += 1
                if x < width and y < height:
                    t = c&0xF0
                    putpixel(x, y, t | (t >> 4))
                if x+1 < width and y < height:
                    t = c&0x0F
                    putpixel(x+1, y, (t << 4) | t)

    elif format == TexFmt.I8:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+8):
                if dataidx >= len(data): break
                c = data[dataidx]
                dataidx += 1
                if x < width and y < height:
                    putpixel(x, y, c)

    elif format == TexFmt.IA4:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+8):
                if dataidx >= len(data): break
                c = data[dataidx]
                dataidx += 1
                if x < width and y < height:
                    l = c&0x0F
                    a = c&0xF0
                    putpixel(x, y, ((l << 4) | l,a | (a >> 4)))

    elif format == TexFmt.IA8:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+4):
                if dataidx >= len(data): break
                c = data[dataidx]
                dataidx += 1
                if x < width and y < height:
                    putpixel(x, y, (c&0xFF, c>>8))

    elif format == TexFmt.RGB565:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+4):
                if dataidx >= len(data): break
                c = data[dataidx]
                dataidx += 1
                if x < width and y < height:
                    putpixel(x, y, (rgb565toColor(c)))

    elif format == TexFmt.RGB5A3:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+4):
                if dataidx >= len(data): break
                c = data[dataidx]
                dataidx += 1
                if x < width and y < height:
                    putpixel(x, y, unpackRGB5A3(c))

    elif format == TexFmt.RGBA8:
        # 16 AR words followed by 16 GB words
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+4):
                if dataidx+16 >= len(data): break
                r = (data[dataidx   ] & 0x00FF)
                g = (data[dataidx+16] & 0xFF00)>>8
                b = (data[dataidx+16] & 0x00FF)
                a = (data[dataidx   ] & 0xFF00)>>8
                if x < width and y < height:
                    putpixel(x, y, (r, g, b, a))
                dataidx += 1
        dataidx += 16

    elif format == TexFmt.C4:
        for y in range(yoff, yoff+8):
            for x in range(xoff, xoff+8, 2):
                if dataidx >= len(data): break
                c = data[dataidx]
                dataidx += 1
                if x < width and y < height:
                    putpixel(x, y, (c & 0xf0) >> 4)
                if x+1 < width and y < height:
                    putpixel(x+1, y, c & 0x0f)

    elif format == TexFmt.C8:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+8):
                if dataidx >= len(data): break
                c = data[dataidx]
                dataidx += 1
                if x < width and y < height:
                    putpixel(x, y, c)

    elif format == TexFmt.C14X2:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+4):
                if dataidx >= len(data): break
                c = data[dataidx]
                dataidx += 1
                if x < width and y < height:
                    putpixel(x, y, c&0x3FFF)

    elif format == TexFmt.CMPR:
        for y in range(yoff, yoff+8, 4):
            for x in range(xoff, xoff+8, 4):
                if dataidx+8 > len(data): break
                c = data[dataidx:dataidx+8]
                dataidx += 8
                color0 = (c[0] << 8) | c[1]
                color1 = (c[2] << 8) | c[3]
                pixels = (c[4] << 24) | (c[5] << 16) | (c[6] << 8) | c[7]
                colors = cmprColors(color0, color1)
                for j in range(16):
                    px, py = x+(j&3), y+(j>>2)
                    if px < width and py < height:
                        putpixel(px, py, colors[(pixels>>(30-j*2))&3])
    else:
        raise UnsupportedFormat("Unsupported format %s"%format)
    return dataidx

# Encode a block into out, the inverse of decodeBlock. getpixel returns None
# outside the image.
def encodeBlock(format, out, xoff, yoff, getpixel):
    def px(x, y, default):
        c = getpixel(x, y)
        return default if c is None else c

    if format == TexFmt.I4:
        for y in range(yoff, yoff+8):
            for x in range(xoff, xoff+8, 2):
                out.append((px(x, y, 0) & 0xF0) | (px(x+1, y, 0) >> 4))

    elif format in (TexFmt.I8, TexFmt.C8):
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+8):
                out.append(px(x, y, 0))

    elif format == TexFmt.IA4:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+8):
                l, a = px(x, y, (0, 0))
                out.append((a & 0xF0) | (l >> 4))

    elif format == TexFmt.IA8:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+4):
                l, a = px(x, y, (0, 0))
                out.append((a << 8) | l)

    elif format == TexFmt.RGB565:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+4):
                out.append(colorToRGB565(px(x, y, (0, 0, 0))))

    elif format == TexFmt.RGB5A3:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+4):
                out.append(packRGB5A3(px(x, y, (0, 0, 0, 0))))

    elif format == TexFmt.RGBA8:
        block = [px(x, y, (0, 0, 0, 0)) for y in range(yoff, yoff+4) for x in range(xoff, xoff+4)]
        out.extend((a << 8) | r for r, g, b, a in block)
        out.extend((g << 8) | b for r, g, b, a in block)

    elif format == TexFmt.C4:
        for y in range(yoff, yoff+8):
            for x in range(xoff, xoff+8, 2):
                out.append((px(x, y, 0) << 4) | px(x+1, y, 0))

    elif format == TexFmt.C14X2:
        for y in range(yoff, yoff+4):
            for x in range(xoff, xoff+4):
                out.append(px(x, y, 0) & 0x3FFF)

    elif format == TexFmt.CMPR:
        for y in range(yoff, yoff+8, 4):
            for x in range(xoff, xoff+8, 4):
                out.extend(encodeCMPRBlock([getpixel(x+(j&3), y+(j>>2)) for j in range(16)]))
    else:
        raise UnsupportedFormat("Unsupported format %s"%format)

def roundUp(x, n):
    return x if x%n == 0 else x+n-(x%n)

def paddedSize(format, width, height):
    """Dimensions of the region actually stored for an image of this size."""
    if format in PADDED_FORMATS:
        return roundUp(roundUp(width, 4), 8), roundUp(roundUp(height, 4), 8)
    return width, height

def calcImageSize(format, width, height):
    fullWidth, fullHeight = paddedSize(format, width, height)
    return int(fullWidth*fullHeight*formatBytesPerPixel[format])

def readImageData(fin, format, width, height):
    size = calcImageSize(format, width, height)
    data = fin.read(size)
    if len(data) < size:
        raise MalformedHeader("%dx%d %s image needs 0x%x bytes, only 0x%x left" % (width, height, format.name, size, len(data)))
    return data

def _asArray(data, typecode):
    if isinstance(data, array) and data.typecode == typecode:
        return data
    a = array(typecode)
    a.frombytes(bytes(data)[:len(data)//a.itemsize*a.itemsize])
    if sys.byteorder == 'little': a.byteswap()
    return a

class Palette(object):
    """Decoded TLUT, shared by every mip level of an indexed image."""
    def __init__(self, format=TlutFmt.RGB5A3, colors=()):
        super().__init__()
        self.format = format
        self.colors = list(colors)

    @classmethod
    def read(cls, fin, format, count):
        data = fin.read(count*2)
        if len(data) < count*2:
            raise CorruptPaletteReference("palette needs %d entries, only %d present" % (count, len(data)//2))
        return cls.decode(data, format)

    @classmethod
    def decode(cls, data, format):
        palette = cls(format)
        for x in _asArray(data, 'H'):
            if format == TlutFmt.IA8:
                palette.colors.append((x & 0x00FF, (x & 0xFF00) >> 8))
            elif format == TlutFmt.RGB565:
                palette.colors.append(rgb565toColor(x))
            elif format == TlutFmt.RGB5A3:
                palette.colors.append(unpackRGB5A3(x))
        return palette

    def encode(self):
        data = array('H')
        for c in self.colors:
            if self.format == TlutFmt.IA8:
                data.append((c[1] << 8) | c[0])
            elif self.format == TlutFmt.RGB565:
                data.append(colorToRGB565(c))
            elif self.format == TlutFmt.RGB5A3:
                data.append(packRGB5A3(c))
        return swapArray(data).tobytes()

    def write(self, fout):
        fout.write(self.encode())

    @property
    def imageMode(self):
        return paletteFormatImageTypes[self.format]

    def __len__(self):
        return len(self.colors)

    def __getitem__(self, idx):
        return self.colors[idx]

    def __repr__(self):
        return "Palette(%s, %d colors)" % (self.format.name, len(self.colors))

class Mipmap(object):
    """One mip level: decoded colors, plus palette indices for indexed formats."""
    def __init__(self, image, indices=None, palette=None):
        super().__init__()
        self.image = image
        self.indices = indices
        self.palette = palette

    @classmethod
    def fromIndices(cls, indices, palette):
        if palette is None:
            raise CorruptPaletteReference("palette indices without a palette")
        image = PILImage.new(palette.imageMode, indices.size)
        for y in range(indices.size[1]):
            for x in range(indices.size[0]):
                image.putpixel((x, y), lookupPalette(palette, indices.getpixel((x, y))))
        return cls(image, indices, palette)

    @property
    def width(self):
        return self.image.size[0]

    @property
    def height(self):
        return self.image.size[1]

    @property
    def size(self):
        return self.image.size

    def __repr__(self):
        return "Mipmap(%dx%d %s)" % (self.width, self.height, self.image.mode)

def decodeImage(data, format, width, height, palette=None):
    fullWidth, fullHeight = paddedSize(format, width, height)
    data = _asArray(data, formatArrayTypes[format])
    if format in PALETTE_FORMATS:
        if palette is None:
            raise CorruptPaletteReference("%s image without a palette" % format.name)
        image = PILImage.new(palette.imageMode, (fullWidth, fullHeight))
        indices = PILImage.new('I', (fullWidth, fullHeight))
        def putpixel(dx, dy, c):
            image.putpixel((dx, dy), lookupPalette(palette, c))
            indices.putpixel((dx, dy), c)
    else:
        image = PILImage.new(formatImageTypes[format], (fullWidth, fullHeight))
        indices = None
        def putpixel(dx, dy, c):
            image.putpixel((dx, dy), c)

    dataIdx = 0
    for y in range(0, fullHeight, formatBlockHeight[format]):
        for x in range(0, fullWidth, formatBlockWidth[format]):
            dataIdx = decodeBlock(format, data, dataIdx, fullWidth, fullHeight, x, y, putpixel)

    if (fullWidth, fullHeight) != (width, height):
        image = image.crop((0, 0, width, height))
        if indices is not None:
            indices = indices.crop((0, 0, width, height))
    return Mipmap(image, indices, palette if indices is not None else None)

def encodeImage(mipmap, format):
    width, height = mipmap.size
    fullWidth, fullHeight = paddedSize(format, width, height)
    if format in PALETTE_FORMATS:
        if mipmap.indices is None or mipmap.palette is None:
            raise InvalidShape("%s needs palette indices and a palette to encode" % format.name)
        source = mipmap.indices
        limit = min(len(mipmap.palette), formatMaxIndex[format])
        for idx in source.getdata():
            if idx >= limit:
                raise CorruptPaletteReference("index %d does not fit a %d-entry %s palette" % (idx, limit, format.name))
    else:
        source = mipmap.image
        if source.mode != formatImageTypes[format]:
            source = source.convert(formatImageTypes[format])

    def getpixel(x, y):
        if x < width and y < height:
            return source.getpixel((x, y))
        return None

    out = array(formatArrayTypes[format])
    for y in range(0, fullHeight, formatBlockHeight[format]):
        for x in range(0, fullWidth, formatBlockWidth[format]):
            encodeBlock(format, out, x, y, getpixel)
    return swapArray(out).tobytes()[:calcImageSize(format, width, height)]
