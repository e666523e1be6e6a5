"""ROOT structure embedded in the PST header ([MS-PST] 2.2.2.5).

ROOT is the entry point to the node and block B-trees and to the
allocation maps. Nothing here is validated; that belongs to whatever walks
the B-trees.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Union

from .layout import ANSI_ROOT, UNICODE_ROOT


class AMapValidity(IntEnum):
    """``fAMapValid``."""
    INVALID = 0  # one or more AMaps are invalid
    VALID1 = 1  # deprecated
    VALID2 = 2


@dataclass(frozen=True)
class BRef:
    """B-tree reference: block ID and absolute file offset."""
    bid: int
    ib: int

    @classmethod
    def unpack(cls, data: bytes) -> "BRef":
        if len(data) == 16:
            return cls(*struct.unpack('<QQ', data))
        if len(data) == 8:
            return cls(*struct.unpack('<II', data))
        raise ValueError(f"BREF must be 8 or 16 bytes, got {len(data)}")


@dataclass(frozen=True)
class RootDescriptor:
    reserved: int
    file_eof: int
    amap_last: int
    amap_free: int
    pmap_free: int
    bref_nbt: BRef
    bref_bbt: BRef
    amap_valid: Union[AMapValidity, int]
    b_reserved: int
    w_reserved: int


def decode_root(data: bytes, unicode: bool) -> RootDescriptor:
    """Decode a 72-byte (Unicode) or 40-byte (ANSI) ROOT."""
    layout = UNICODE_ROOT if unicode else ANSI_ROOT
    if len(data) != layout.size:
        raise ValueError(f"{layout.name} is {layout.size} bytes, got {len(data)}")
    values = layout.decode(data)
    values['bref_nbt'] = BRef.unpack(values['bref_nbt'])
    values['bref_bbt'] = BRef.unpack(values['bref_bbt'])
    try:
        values['amap_valid'] = AMapValidity(values['amap_valid'])
    except ValueError:
        pass  # left as the raw byte
    return RootDescriptor(**values)
