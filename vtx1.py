# VTX1: the vertex attribute arrays of a J3D model.
#
# The section holds a 13-slot table of array offsets followed by one
# ArrayFormat record per array. Array lengths are not stored anywhere; each
# array runs up to the next occupied slot (see common.resolveSectionRange).

import io
from struct import Struct
from warnings import warn
from enum import Enum
from mathutils import Vector
from common import *
from vtxformat import *

class VtxAttr(Enum):
    PTNMTXIDX  =  0
    TEX0MTXIDX =  1
    TEX1MTXIDX =  2
    TEX2MTXIDX =  3
    TEX3MTXIDX =  4
    TEX4MTXIDX =  5
    TEX5MTXIDX =  6
    TEX6MTXIDX =  7
    TEX7MTXIDX =  8
    POS        =  9
    NRM        = 10
    CLR0       = 11
    CLR1       = 12
    TEX0       = 13
    TEX1       = 14
    TEX2       = 15
    TEX3       = 16
    TEX4       = 17
    TEX5       = 18
    TEX6       = 19
    TEX7       = 20
    POSMTXARRAY = 21
    NRMMTXARRAY = 22
    TEXMTXARRAY = 23
    LITMTXARRAY = 24
    NBT         = 25
    NONE       = 0xFF

class AttrKind(Enum):
    POSITION = 0
    NORMAL   = 1
    COLOR    = 2
    TEXCOORD = 3

class CompType(Enum):
    POS_XY   = 0  # X,Y position
    POS_XYZ  = 1  # X,Y,Z position
    NRM_XYZ  = 0  # X,Y,Z normal
    NRM_NBT  = 1
    NRM_NBT3 = 2
    CLR_RGB  = 0  # RGB color
    CLR_RGBA = 1  # RGBA color
    TEX_S    = 0  # One texture dimension
    TEX_ST   = 1  # Two texture dimensions

TEXCOORDS = (VtxAttr.TEX0, VtxAttr.TEX1, VtxAttr.TEX2, VtxAttr.TEX3, VtxAttr.TEX4, VtxAttr.TEX5, VtxAttr.TEX6, VtxAttr.TEX7)

attrKinds = {
VtxAttr.POS:  AttrKind.POSITION,
VtxAttr.NRM:  AttrKind.NORMAL,
VtxAttr.CLR0: AttrKind.COLOR,
VtxAttr.CLR1: AttrKind.COLOR
}
attrKinds.update({a: AttrKind.TEXCOORD for a in TEXCOORDS})

# Slot 2 holds separate NBT data, which nothing here reads.
offsetSlots = {
VtxAttr.POS:  0,
VtxAttr.NRM:  1,
VtxAttr.CLR0: 3,
VtxAttr.CLR1: 4
}
offsetSlots.update({a: 5+i for i, a in enumerate(TEXCOORDS)})

# component-count selector -> number of components, per kind
componentCounts = {
AttrKind.POSITION: {CompType.POS_XY.value: 2, CompType.POS_XYZ.value: 3},
AttrKind.NORMAL:   {CompType.NRM_XYZ.value: 3},
AttrKind.COLOR:    {CompType.CLR_RGB.value: 4, CompType.CLR_RGBA.value: 4},
AttrKind.TEXCOORD: {CompType.TEX_S.value: 1, CompType.TEX_ST.value: 2}
}

INVALID_INDEX = 0xFFFF

class ArrayFormat(ReadableStruct):
    header = Struct('>IIIB3x')
    fields = [("arrayType", VtxAttr), "componentCount", "dataType", "decimalPoint"]

    @classmethod
    def make(cls, arrayType, componentCount, dataType, decimalPoint=0):
        fmt = cls()
        fmt.arrayType = arrayType
        fmt.componentCount = componentCount.value if isinstance(componentCount, Enum) else componentCount
        fmt.dataType = dataType.value if isinstance(dataType, Enum) else dataType
        fmt.decimalPoint = decimalPoint
        return fmt

    @property
    def kind(self):
        return attrKinds.get(self.arrayType)

    @property
    def isNBT(self):
        return self.kind == AttrKind.NORMAL and self.componentCount in (CompType.NRM_NBT.value, CompType.NRM_NBT3.value)

    @property
    def componentNumber(self):
        """Components per element, or None for a selector this kind doesn't have."""
        return componentCounts[self.kind].get(self.componentCount)

    @property
    def storage(self):
        try:
            if self.kind == AttrKind.COLOR:
                return ColorFmt(self.dataType)
            else:
                return CompSize(self.dataType)
        except ValueError:
            raise UnsupportedFormat("vtx1: unknown data type %d for %s" % (self.dataType, self.arrayType.name))

    @property
    def stride(self):
        if self.kind == AttrKind.COLOR:
            return colorSize(self.storage)
        else:
            return scalarSize(self.storage)*self.componentNumber

    def validate(self):
        if self.kind is None:
            raise InvalidShape("vtx1: %s is not a vertex array" % self.arrayType.name)
        if self.isNBT:
            raise UnsupportedFormat("vtx1: normal/binormal/tangent arrays are not supported")
        if self.componentNumber is None:
            raise InvalidShape("vtx1: bad componentCount %d for %s" % (self.componentCount, self.arrayType.name))
        return self.storage

class VertexIndex(object):
    """Per-attribute array indices of one vertex, as referenced by a shape."""
    def __init__(self, indices=None):
        super().__init__()
        self.indices = [INVALID_INDEX]*21
        if indices is not None:
            for attrib, value in indices.items():
                self.indices[attrib.value] = value
        self.indices = tuple(self.indices)

    def __getitem__(self, attrib):
        return self.indices[attrib.value]

    def replace(self, attrib, value):
        other = VertexIndex()
        other.indices = self.indices[:attrib.value]+(value,)+self.indices[attrib.value+1:]
        return other

    @property
    def matrixIndex(self):
        return self.indices[VtxAttr.PTNMTXIDX.value]

    @property
    def posIndex(self):
        return self.indices[VtxAttr.POS.value]

    @property
    def normalIndex(self):
        return self.indices[VtxAttr.NRM.value]

    @property
    def colorIndex(self):
        return self.indices[VtxAttr.CLR0.value:VtxAttr.CLR1.value+1]

    @property
    def texCoordIndex(self):
        return self.indices[VtxAttr.TEX0.value:VtxAttr.TEX7.value+1]

    def __eq__(self, other):
        return isinstance(other, VertexIndex) and self.indices == other.indices

    def __hash__(self):
        return hash(self.indices)

    def __repr__(self):
        return ", ".join("{}: {}".format(VtxAttr(i).name, self.indices[i]) for i in range(21) if self.indices[i] != INVALID_INDEX)

def _normalize(fmt, values):
    kind = fmt.kind
    n = fmt.componentNumber
    result = []
    for i, v in enumerate(values):
        if kind == AttrKind.COLOR:
            if len(v) != 4:
                raise InvalidShape("%s[%d]: expected an RGBA color, got %r" % (fmt.arrayType.name, i, v))
            result.append(tuple(float(c) for c in v))
        elif n == 1:
            if not isinstance(v, (int, float)):
                raise InvalidShape("%s[%d]: expected a scalar, got %r" % (fmt.arrayType.name, i, v))
            result.append(float(v))
        else:
            if isinstance(v, (int, float)) or len(v) != n:
                raise InvalidShape("%s[%d]: expected %d components, got %r" % (fmt.arrayType.name, i, n, v))
            result.append(Vector(v))
    return result

class VertexBlock(Section):
    chunkId = b'VTX1'
    header = Struct('>L')
    fields = ['arrayFormatOffset']
    offsetTable = Struct('>13L')

    def __init__(self, *args, **kwargs):
        self.formats = {}
        self.arrays = {}
        super().__init__(*args, **kwargs)

    def read(self, fin, start, size, vertexCount=None):
        super().read(fin, start, size)
        data = fin.read(self.offsetTable.size)
        if len(data) < self.offsetTable.size:
            raise MalformedHeader("vtx1: truncated offset table")
        offsets = self.offsetTable.unpack(data)

        fin.seek(start+self.arrayFormatOffset)
        formats = []
        fmt = ArrayFormat(fin)
        while fmt.arrayType != VtxAttr.NONE:
            formats.append(fmt)
            fmt = ArrayFormat(fin)

        for fmt in formats:
            self.readChannel(fin, start, size, offsets, fmt)

        if vertexCount is not None and len(self.arrays.get(VtxAttr.POS, ())) < vertexCount:
            warn("vtx1: %d positions for %d vertices" % (len(self.arrays.get(VtxAttr.POS, ())), vertexCount))

    def readChannel(self, fin, start, size, offsets, fmt):
        if fmt.kind is None:
            raise MalformedHeader("vtx1: unexpected array type %s" % fmt.arrayType)
        if fmt.isNBT:
            warn("vtx1: normal/binormal/tangent arrays are not supported")
            return
        n = fmt.componentNumber
        if n is None:
            warn("vtx1: unsupported componentCount for %s array: %d" % (fmt.arrayType.name, fmt.componentCount))
            return
        slot = offsetSlots[fmt.arrayType]
        if offsets[slot] == 0:
            warn("vtx1: %s has a format but no data" % fmt.arrayType.name)
            return

        startOffset, length = resolveSectionRange(offsets, slot, size)
        storage = fmt.storage
        count = length//fmt.stride
        fin.seek(start+startOffset)
        data = fin.read(count*fmt.stride)
        if len(data) < count*fmt.stride:
            raise MalformedHeader("vtx1: %s array runs past the end of the file" % fmt.arrayType.name)
        buf = io.BytesIO(data)

        if fmt.kind == AttrKind.COLOR:
            values = [decodeColor(buf, storage) for i in range(count)]
        elif n == 1:
            values = [decodeScalar(buf, storage, fmt.decimalPoint) for i in range(count)]
        else:
            values = [Vector([decodeScalar(buf, storage, fmt.decimalPoint) for k in range(n)]) for i in range(count)]
        self.formats[fmt.arrayType] = fmt
        self.arrays[fmt.arrayType] = values

    def setChannel(self, attrib, values, fmt=None):
        if fmt is None:
            fmt = self.formats.get(attrib)
            if fmt is None:
                raise InvalidShape("vtx1: no storage format for %s" % attrib.name)
        elif fmt.arrayType != attrib:
            raise InvalidShape("vtx1: %s format given for %s" % (fmt.arrayType.name, attrib.name))
        fmt.validate()
        if len(values) == 0:
            self.removeChannel(attrib)
            return
        self.arrays[attrib] = _normalize(fmt, values)
        self.formats[attrib] = fmt

    def removeChannel(self, attrib):
        self.arrays.pop(attrib, None)
        self.formats.pop(attrib, None)

    def __contains__(self, attrib):
        return attrib in self.arrays

    @property
    def positions(self):
        return self.arrays.get(VtxAttr.POS)

    @property
    def normals(self):
        return self.arrays.get(VtxAttr.NRM)

    @property
    def colors(self):
        return [self.arrays.get(VtxAttr.CLR0), self.arrays.get(VtxAttr.CLR1)]

    @property
    def texCoords(self):
        return [self.arrays.get(a) for a in TEXCOORDS]

    def __getitem__(self, vertex):
        values = {}
        for attrib in sorted(self.arrays, key=lambda a: a.value):
            i = vertex[attrib]
            if i != INVALID_INDEX:
                values[attrib] = self.arrays[attrib][i]
        return values

    def stripUnused(self, vertices):
        """Drop array entries no vertex references. Returns {attrib: {old: new}}."""
        remaps = {}
        for attrib in list(self.arrays):
            used = sorted(set(v[attrib] for v in vertices if v[attrib] != INVALID_INDEX))
            remaps[attrib] = {old: new for new, old in enumerate(used)}
            self.arrays[attrib] = [self.arrays[attrib][old] for old in used]
        return remaps

    def write(self, fout, start=None):
        if start is None: start = fout.tell()-8
        attribs = [a for a in VtxAttr if a in self.arrays and a != VtxAttr.PTNMTXIDX]
        for attrib in attribs:
            # re-check arrays that were edited in place
            self.formats[attrib].validate()
            _normalize(self.formats[attrib], self.arrays[attrib])

        self.arrayFormatOffset = 8 + self.header.size + self.offsetTable.size
        super().write(fout)
        tablePos = fout.tell()
        fout.write(b'\0'*self.offsetTable.size)
        for attrib in attribs:
            self.formats[attrib].write(fout)
        ArrayFormat.make(VtxAttr.NONE, CompType.POS_XYZ, CompSize.U8, 0).write(fout)
        alignFile(fout, 32, start)

        offsets = [0]*13
        for attrib in attribs:
            offsets[offsetSlots[attrib]] = fout.tell()-start
            self.writeChannel(fout, attrib)
            alignFile(fout, 32, start)

        end = fout.tell()
        fout.seek(tablePos)
        fout.write(self.offsetTable.pack(*offsets))
        fout.seek(end)
        return end-start

    def writeChannel(self, fout, attrib):
        fmt = self.formats[attrib]
        storage = fmt.storage
        if fmt.kind == AttrKind.COLOR:
            for color in self.arrays[attrib]:
                encodeColor(fout, color, storage)
        elif fmt.componentNumber == 1:
            for value in self.arrays[attrib]:
                encodeScalar(fout, value, storage, fmt.decimalPoint)
        else:
            for vec in self.arrays[attrib]:
                for value in vec:
                    encodeScalar(fout, value, storage, fmt.decimalPoint)
