"""Fixed-offset field layouts for the PST HEADER and ROOT structures.

Each table lists ``(name, offset, length, kind)`` in file order. Offsets of
the ROOT tables are relative to the start of the ROOT sub-region, not the
file. See [MS-PST] 2.2.2.5 (ROOT) and 2.2.2.6 (HEADER).
"""

import struct
from enum import Enum
from typing import NamedTuple, Tuple


class FieldKind(Enum):
    U8 = 1
    U16 = 2
    U32 = 4
    U64 = 8
    BYTES = 0  # kept opaque


_UNPACK = {
    FieldKind.U8: struct.Struct('<B'),
    FieldKind.U16: struct.Struct('<H'),
    FieldKind.U32: struct.Struct('<I'),
    FieldKind.U64: struct.Struct('<Q'),
}


class Field(NamedTuple):
    name: str
    offset: int
    length: int
    kind: FieldKind

    @property
    def end(self):
        return self.offset + self.length

    @property
    def raw(self):
        return self.kind is FieldKind.BYTES


class FieldLayout:
    """An ordered, immutable field table.

    ``required_size`` is how many bytes must be present for a decode; fields
    ending past it (the trailing reserved block) may be cut short.
    """

    def __init__(self, name, fields, required_size=None):
        self.name = name
        self.fields: Tuple[Field, ...] = tuple(fields)
        self.size = max(f.end for f in self.fields)
        self.required_size = self.size if required_size is None else required_size
        self._by_name = {f.name: f for f in self.fields}
        for f in self.fields:
            if not f.raw and f.kind.value != f.length:
                raise ValueError(f"{name}.{f.name}: {f.kind.name} field of {f.length} bytes")

    def __getitem__(self, name) -> Field:
        return self._by_name[name]

    def __iter__(self):
        return iter(self.fields)

    def __len__(self):
        return len(self.fields)

    def names(self):
        return [f.name for f in self.fields]

    def decode(self, data: bytes) -> dict:
        """Decode every field of ``data``; integers are little-endian."""
        if len(data) < self.required_size:
            raise ValueError(f"{self.name} needs {self.required_size} bytes, got {len(data)}")
        values = {}
        for f in self.fields:
            chunk = data[f.offset:f.end]
            if f.raw:
                values[f.name] = bytes(chunk)
            else:
                values[f.name] = _UNPACK[f.kind].unpack(chunk)[0]
        return values


_B = FieldKind.BYTES
_U8 = FieldKind.U8
_U16 = FieldKind.U16
_U32 = FieldKind.U32
_U64 = FieldKind.U64


UNICODE_HEADER = FieldLayout('UnicodeHeader', [
    Field('magic', 0, 4, _U32),
    Field('crc_partial', 4, 4, _U32),
    Field('magic_client', 8, 2, _U16),
    Field('ver', 10, 2, _U16),
    Field('ver_client', 12, 2, _U16),
    Field('platform_create', 14, 1, _U8),
    Field('platform_access', 15, 1, _U8),
    Field('reserved1', 16, 4, _U32),
    Field('reserved2', 20, 4, _U32),
    Field('bid_unused', 24, 8, _U64),
    Field('bid_next_p', 32, 8, _U64),
    Field('unique', 40, 4, _U32),
    Field('rgnid', 44, 128, _B),
    Field('qw_unused', 172, 8, _U64),
    Field('root', 180, 72, _B),
    Field('align', 252, 4, _U32),
    Field('rgb_fm', 256, 128, _B),
    Field('rgb_fp', 384, 128, _B),
    Field('sentinel', 512, 1, _U8),
    Field('crypt_method', 513, 1, _U8),
    Field('rgb_reserved', 514, 2, _U16),
    Field('bid_next_b', 516, 8, _U64),
    Field('crc_full', 524, 4, _U32),
    Field('rgb_reserved2', 528, 3, _B),
    Field('b_reserved', 531, 1, _U8),
    Field('rgb_reserved3', 532, 32, _B),
], required_size=532)

ANSI_HEADER = FieldLayout('AnsiHeader', [
    Field('magic', 0, 4, _U32),
    Field('crc_partial', 4, 4, _U32),
    Field('magic_client', 8, 2, _U16),
    Field('ver', 10, 2, _U16),
    Field('ver_client', 12, 2, _U16),
    Field('platform_create', 14, 1, _U8),
    Field('platform_access', 15, 1, _U8),
    Field('reserved1', 16, 4, _U32),
    Field('reserved2', 20, 4, _U32),
    Field('bid_next_b', 24, 4, _U32),
    Field('bid_next_p', 28, 4, _U32),
    Field('unique', 32, 4, _U32),
    Field('rgnid', 36, 128, _B),
    Field('root', 164, 40, _B),
    Field('rgb_fm', 204, 128, _B),
    Field('rgb_fp', 332, 128, _B),
    Field('sentinel', 460, 1, _U8),
    Field('crypt_method', 461, 1, _U8),
    Field('rgb_reserved', 462, 2, _U16),
    Field('ull_reserved', 464, 8, _U64),
    Field('dw_reserved', 472, 4, _U32),
    Field('rgb_reserved2', 476, 3, _B),
    Field('b_reserved', 479, 1, _U8),
    Field('rgb_reserved3', 480, 32, _B),
], required_size=480)

UNICODE_ROOT = FieldLayout('UnicodeRoot', [
    Field('reserved', 0, 4, _U32),
    Field('file_eof', 4, 8, _U64),
    Field('amap_last', 12, 8, _U64),
    Field('amap_free', 20, 8, _U64),
    Field('pmap_free', 28, 8, _U64),
    Field('bref_nbt', 36, 16, _B),
    Field('bref_bbt', 52, 16, _B),
    Field('amap_valid', 68, 1, _U8),
    Field('b_reserved', 69, 1, _U8),
    Field('w_reserved', 70, 2, _U16),
])

ANSI_ROOT = FieldLayout('AnsiRoot', [
    Field('reserved', 0, 4, _U32),
    Field('file_eof', 4, 4, _U32),
    Field('amap_last', 8, 4, _U32),
    Field('amap_free', 12, 4, _U32),
    Field('pmap_free', 16, 4, _U32),
    Field('bref_nbt', 20, 8, _B),
    Field('bref_bbt', 28, 8, _B),
    Field('amap_valid', 36, 1, _U8),
    Field('b_reserved', 37, 1, _U8),
    Field('w_reserved', 38, 2, _U16),
])

# Offset of wVer, shared by both header layouts.
VERSION_OFFSET = 10
