#!/usr/bin/env python

import sys, os
from struct import Struct
from warnings import warn
from texture import *
from common import *

def mipmapSizes(width, height, count):
    sizes = []
    for i in range(count):
        sizes.append((width, height))
        width, height = max(1, width//2), max(1, height//2)
    return sizes

class Image(ReadableStruct):
    header = Struct('>BBHHBBBBHIBBBBBBbbBxhI')
    fields = [
        ("format", TexFmt),
        "transparency",
        "width",
        "height",
        "wrapS",
        "wrapT",
        ("usePalette", bool),
        "paletteFormat", # only meaningful for indexed formats
        "paletteNumEntries",
        "paletteOffset",
        ("isMipmap", bool),
        ("edgeLod", bool),
        ("biasClamp", bool),
        "maxAniso",
        "minFilter",
        "magFilter",
        "minLod",
        "maxLod",
        "mipmapCount",
        "lodBias",
        "dataOffset"
    ]

    def __init__(self, *args, **kwargs):
        self.format = TexFmt.CMPR
        self.transparency = 0
        self.width = self.height = 0
        self.wrapS = self.wrapT = 0
        self.usePalette = False
        self.paletteFormat = TlutFmt.IA8
        self.paletteNumEntries = 0
        self.paletteOffset = 0
        self.isMipmap = False
        self.edgeLod = False
        self.biasClamp = False
        self.maxAniso = 0
        self.minFilter = 1
        self.magFilter = 1
        self.minLod = 0
        self.maxLod = 0
        self.mipmapCount = 0
        self.lodBias = 0
        self.dataOffset = 0
        self.palette = None
        self.mipmaps = []
        super().__init__(*args, **kwargs)

    @classmethod
    def fromMipmaps(cls, format, mipmaps, palette=None):
        im = cls()
        im.format = format
        if format in PALETTE_FORMATS:
            if palette is None:
                raise CorruptPaletteReference("%s image without a palette" % format.name)
            im.palette = palette
            im.paletteFormat = palette.format
        for level, mipmap in enumerate(mipmaps):
            im.setMipmap(level, mipmap)
        return im

    @property
    def hasAlpha(self):
        if self.format in PALETTE_FORMATS:
            return self.paletteFormat in (TlutFmt.IA8, TlutFmt.RGB5A3)
        else:
            return self.format in (TexFmt.IA4, TexFmt.IA8, TexFmt.RGB5A3, TexFmt.RGBA8, TexFmt.CMPR)

    # LODs are stored in 1/8 units, the bias in 1/100 units
    @property
    def minLOD(self):
        return self.minLod/8.0
    @minLOD.setter
    def minLOD(self, value):
        self.minLod = int(value*8)

    @property
    def maxLOD(self):
        return self.maxLod/8.0
    @maxLOD.setter
    def maxLOD(self, value):
        self.maxLod = int(value*8)

    @property
    def lodBiasValue(self):
        return self.lodBias/100.0
    @lodBiasValue.setter
    def lodBiasValue(self, value):
        self.lodBias = int(value*100)

    def read(self, fin, start=None):
        """Read the header at start (default: the current position) and every mip level.

        Palette and data offsets are relative to the header. The stream is
        left just after the header.
        """
        if start is None: start = fin.tell()
        fin.seek(start)
        super().read(fin)
        self.mipmapCount = max(self.mipmapCount, 1)
        nextHeader = fin.tell()

        if self.format in PALETTE_FORMATS:
            if not self.usePalette or self.paletteNumEntries == 0:
                raise CorruptPaletteReference("%s image has no palette" % self.format.name)
            try:
                self.paletteFormat = TlutFmt(self.paletteFormat)
            except ValueError:
                raise UnsupportedFormat("bti: unknown palette format %d" % self.paletteFormat)
            fin.seek(start+self.paletteOffset)
            self.palette = Palette.read(fin, self.paletteFormat, self.paletteNumEntries)
        else:
            self.palette = None

        fin.seek(start+self.dataOffset)
        self.mipmaps = []
        for width, height in mipmapSizes(self.width, self.height, self.mipmapCount):
            data = readImageData(fin, self.format, width, height)
            self.mipmaps.append(decodeImage(data, self.format, width, height, self.palette))

        fin.seek(nextHeader)

    def setMipmap(self, level, mipmap):
        if self.format in PALETTE_FORMATS and self.palette is None:
            raise CorruptPaletteReference("%s image has no palette" % self.format.name)
        if not isinstance(mipmap, Mipmap):
            if self.format in PALETTE_FORMATS:
                mipmap = Mipmap.fromIndices(mipmap, self.palette)
            else:
                mipmap = Mipmap(mipmap)
        elif self.format in PALETTE_FORMATS and mipmap.palette is not self.palette:
            if mipmap.indices is None:
                raise InvalidShape("%s mip level needs palette indices" % self.format.name)
            mipmap = Mipmap.fromIndices(mipmap.indices, self.palette)

        if level < 0:
            raise IndexError("mip level %d" % level)
        if level == 0:
            if len(self.mipmaps) > 1 and mipmap.size != self.mipmaps[0].size:
                warn("bti: new base size %dx%d drops %d mip levels" % (mipmap.width, mipmap.height, len(self.mipmaps)-1))
                del self.mipmaps[1:]
            if len(self.mipmaps) == 0:
                self.mipmaps.append(mipmap)
            else:
                self.mipmaps[0] = mipmap
            return
        if len(self.mipmaps) == 0:
            raise InvalidShape("set mip level 0 first")

        width, height = self.mipmaps[0].size
        for i in range(level):
            if width == 1 and height == 1:
                raise InvalidShape("mip level %d is below 1x1, the last level is %d" % (level, i))
            width, height = max(1, width//2), max(1, height//2)
        if mipmap.size != (width, height):
            raise InvalidShape("mip level %d must be %dx%d, not %dx%d" % (level, width, height, mipmap.width, mipmap.height))

        while len(self.mipmaps) < level:
            self.mipmaps.append(self.downscale(self.mipmaps[-1]))
        if level == len(self.mipmaps):
            self.mipmaps.append(mipmap)
        else:
            self.mipmaps[level] = mipmap

    def downscale(self, mipmap):
        size = (max(1, mipmap.width//2), max(1, mipmap.height//2))
        if mipmap.indices is not None:
            return Mipmap.fromIndices(mipmap.indices.resize(size, PILImage.NEAREST), mipmap.palette)
        return Mipmap(mipmap.image.resize(size, PILImage.BOX))

    def write(self, fout, dataOffset=None):
        """Write the header, the palette and every mip level. Returns the bytes written.

        Without dataOffset the data directly follows the header and the
        stream ends up after it; otherwise the data goes to the absolute
        position dataOffset and the stream is left just after the header.
        """
        if len(self.mipmaps) == 0:
            raise InvalidShape("bti: no image data")
        for level, (mipmap, size) in enumerate(zip(self.mipmaps, mipmapSizes(self.mipmaps[0].width, self.mipmaps[0].height, len(self.mipmaps)))):
            if mipmap.size != size:
                raise InvalidShape("mip level %d is %dx%d, expected %dx%d" % (level, mipmap.width, mipmap.height, size[0], size[1]))
        datas = [encodeImage(mipmap, self.format) for mipmap in self.mipmaps]

        headerStart = fout.tell()
        self.width, self.height = self.mipmaps[0].size
        self.mipmapCount = len(self.mipmaps)
        self.isMipmap = self.mipmapCount > 1
        if self.format in PALETTE_FORMATS:
            self.usePalette = True
            self.paletteFormat = self.palette.format
            self.paletteNumEntries = len(self.palette)
        else:
            self.usePalette = False
            self.paletteNumEntries = 0
        self.paletteOffset = self.dataOffset = 0
        super().write(fout)
        afterHeader = fout.tell()

        if dataOffset is not None:
            fout.seek(dataOffset)
        dataStart = fout.tell()
        if self.usePalette:
            self.paletteOffset = dataStart-headerStart
            self.palette.write(fout)
        self.dataOffset = fout.tell()-headerStart
        for data in datas:
            fout.write(data)
        end = fout.tell()

        fout.seek(headerStart)
        super().write(fout)
        fout.seek(end if dataOffset is None else afterHeader)
        return self.header.size+(end-dataStart)

if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.stderr.write("Usage: %s <bti>\n"%sys.argv[0])
        exit(1)

    img = Image()
    fin = open(sys.argv[1], 'rb')
    img.read(fin, 0)
    fin.close()
    print("%dx%d, fmt=%s, mips=%d, pfmt=%s" % (img.width, img.height, img.format, img.mipmapCount, img.paletteFormat))

    for i, mipmap in enumerate(img.mipmaps):
        mipmap.image.save(os.path.splitext(sys.argv[1])[0]+'.%d.png'%i)
