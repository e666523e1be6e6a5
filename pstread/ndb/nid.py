"""Node identifiers (NIDs), [MS-PST] 2.2.2.1.

A NID is 32 bits: the low 5 bits are the node type, the upper 27 bits the
index. The header's rgnid array holds 32 of them, one per type slot.
"""

import struct
from enum import IntEnum
from typing import Dict, Iterator, List, Optional, Tuple, Union

NID_TYPE_BITS = 5
NID_TYPE_MASK = 0x1F
NID_INDEX_MASK = 0x07FFFFFF
NID_SLOTS = 32

RGNID_SIZE = NID_SLOTS * 4


class NidType(IntEnum):
    HID = 0x00
    INTERNAL = 0x01
    NORMAL_FOLDER = 0x02
    SEARCH_FOLDER = 0x03
    NORMAL_MESSAGE = 0x04
    ATTACHMENT = 0x05
    SEARCH_UPDATE_QUEUE = 0x06
    SEARCH_CRITERIA_OBJECT = 0x07
    ASSOC_MESSAGE = 0x08
    CONTENTS_TABLE_INDEX = 0x0A
    RECEIVE_FOLDER_TABLE = 0x0B
    OUTGOING_QUEUE_TABLE = 0x0C
    HIERARCHY_TABLE = 0x0D
    CONTENTS_TABLE = 0x0E
    ASSOC_CONTENTS_TABLE = 0x0F
    SEARCH_CONTENTS_TABLE = 0x10
    ATTACHMENT_TABLE = 0x11
    RECIPIENT_TABLE = 0x12
    SEARCH_TABLE_INDEX = 0x13
    LTP = 0x1F


def make_nid(nid_type, nid_index):
    return ((nid_index & NID_INDEX_MASK) << NID_TYPE_BITS) | (nid_type & NID_TYPE_MASK)


def nid_type(nid):
    return nid & NID_TYPE_MASK


def nid_index(nid):
    return (nid >> NID_TYPE_BITS) & NID_INDEX_MASK


def _type_label(t: int) -> Union[NidType, int]:
    try:
        return NidType(t)
    except ValueError:
        return t


class NidIndex:
    """Maps a 5-bit node type to the 27-bit index found for it in rgnid.

    Backed by one slot per possible type; types that never appeared are
    simply absent.
    """

    __slots__ = ('_slots',)

    def __init__(self, slots: Optional[List[Optional[int]]] = None):
        if slots is None:
            slots = [None] * NID_SLOTS
        if len(slots) != NID_SLOTS:
            raise ValueError(f"NidIndex needs {NID_SLOTS} slots, got {len(slots)}")
        self._slots = list(slots)

    @classmethod
    def from_rgnid(cls, rgnid: bytes) -> "NidIndex":
        if len(rgnid) != RGNID_SIZE:
            raise ValueError(f"rgnid must be {RGNID_SIZE} bytes, got {len(rgnid)}")
        slots = [None] * NID_SLOTS
        for (nid,) in struct.iter_unpack('<I', rgnid):
            # Later words win for a repeated type.
            slots[nid_type(nid)] = nid_index(nid)
        return cls(slots)

    def get(self, t, default=None) -> Optional[int]:
        value = self._slots[int(t) & NID_TYPE_MASK]
        return default if value is None else value

    def __getitem__(self, t) -> int:
        value = self._slots[int(t) & NID_TYPE_MASK]
        if value is None:
            raise KeyError(_type_label(int(t)))
        return value

    def __contains__(self, t) -> bool:
        return self._slots[int(t) & NID_TYPE_MASK] is not None

    def __len__(self):
        return sum(1 for v in self._slots if v is not None)

    def __iter__(self) -> Iterator[Union[NidType, int]]:
        return (t for t, _ in self.items())

    def items(self) -> List[Tuple[Union[NidType, int], int]]:
        return [(_type_label(t), v) for t, v in enumerate(self._slots) if v is not None]

    def nid(self, t) -> Optional[int]:
        """Full NID (type and index) for ``t``, or None."""
        value = self.get(t)
        return None if value is None else make_nid(int(t), value)

    def to_dict(self) -> Dict[str, int]:
        return {(t.name if isinstance(t, NidType) else f"0x{t:02X}"): v
                for t, v in self.items()}

    def __eq__(self, other):
        if not isinstance(other, NidIndex):
            return NotImplemented
        return self._slots == other._slots

    def __hash__(self):
        return hash(tuple(self._slots))

    def __repr__(self):
        return f"NidIndex({self.to_dict()!r})"
