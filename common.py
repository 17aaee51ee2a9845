# Common functions and templates for (chunked) J3D data: struct-backed records,
# chunk framing, alignment and the error types shared by the VTX1 and BTI codecs.

import sys
import struct
import warnings
from array import array
from enum import Enum

class J3DError(ValueError):
    pass

class MalformedHeader(J3DError):
    pass

class UnsupportedFormat(J3DError):
    pass

class InvalidShape(J3DError):
    pass

class CorruptPaletteReference(J3DError):
    pass

class Readable(object):
    def __init__(self, fin=None, pos=None):
        super().__init__()
        if fin is not None:
            if pos is not None:
                fin.seek(pos)
            self.read(fin)

class ReadableStruct(Readable):
    def read(self, fin):
        data = fin.read(self.header.size)
        if len(data) < self.header.size:
            raise MalformedHeader("%s: expected %d bytes, got %d" % (self.__class__.__name__, self.header.size, len(data)))
        for field, value in zip(self.fields, self.header.unpack(data)):
            if isinstance(field, str):
                setattr(self, field, value)
            else:
                fieldName, fieldType = field
                try:
                    setattr(self, fieldName, fieldType(value))
                except ValueError:
                    raise UnsupportedFormat("%s: unknown %s %r" % (self.__class__.__name__, fieldName, value))
    def as_tuple(self):
        values = []
        for field in self.fields:
            value = getattr(self, field if isinstance(field, str) else field[0])
            if isinstance(value, Enum):
                value = value.value
            elif not isinstance(field, str):
                value = int(value)
            values.append(value)
        return tuple(values)
    def write(self, fout):
        fout.write(self.header.pack(*self.as_tuple()))
    def __repr__(self):
        return self.__class__.__name__ + " " + " ".join([(field if isinstance(field, str) else field[0])+"="+repr(getattr(self, (field if isinstance(field, str) else field[0]))) for field in self.fields])
    def __eq__(self, other):
        return type(self) is type(other) and self.as_tuple() == other.as_tuple()
    def __hash__(self):
        return hash(self.as_tuple())

class Section(ReadableStruct):
    # Stream is positioned right after the 8-byte chunk id/size; start is the chunk start.
    def read(self, fin, start, size):
        super().read(fin)

def swapArray(a):
    if sys.byteorder == 'little':
        b = array(a.typecode, a)
        b.byteswap()
        return b
    else:
        return a

def alignFile(fout, alignment=32, base=0):
    pad = (alignment-((fout.tell()-base)%alignment))%alignment
    fout.write(b'\0'*pad)
    return pad

def resolveSectionRange(offsets, index, sectionSize):
    """Byte range owned by one slot of a sparse offset table.

    Lengths are never stored: a slot runs up to the next non-zero slot, or to
    the end of the section when it is the last occupied one.
    """
    startOffset = offsets[index]
    if startOffset == 0:
        raise ValueError("slot %d is empty" % index)
    length = sectionSize-startOffset
    for nextOffset in offsets[index+1:]:
        if nextOffset != 0:
            length = nextOffset-startOffset
            break
    if length <= 0:
        raise MalformedHeader("slot %d at 0x%x has no data (length %d)" % (index, startOffset, length))
    return startOffset, length

chunkHeader = struct.Struct('>4sL')

def readChunk(fin, cls):
    start = fin.tell()
    data = fin.read(chunkHeader.size)
    if len(data) < chunkHeader.size:
        raise MalformedHeader("File too small for a %s chunk" % cls.chunkId.decode())
    chunkId, size = chunkHeader.unpack(data)
    if chunkId != cls.chunkId:
        raise MalformedHeader("Expected chunk %r, found %r" % (cls.chunkId, chunkId))
    chunk = cls()
    chunk.read(fin, start, size)
    fin.seek(start+size)
    return chunk

def writeChunk(fout, chunk):
    start = fout.tell()
    fout.write(chunkHeader.pack(chunk.chunkId, 0))
    chunk.write(fout)
    if alignFile(fout, 32, start):
        warnings.warn("%s chunk was not 32-byte aligned" % chunk.chunkId.decode())
    end = fout.tell()
    fout.seek(start)
    fout.write(chunkHeader.pack(chunk.chunkId, end-start))
    fout.seek(end)
    return end-start
