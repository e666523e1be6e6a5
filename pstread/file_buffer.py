"""Byte-range cache over a random-access source.

Header and B-tree decoding keep re-reading the same small ranges, so every
range read is cached under its exact ``(start, end)`` key. Memory is bounded
by a byte budget: after each insertion the oldest entries in insertion order
are dropped until the total fits again. A cache hit moves the entry to the
back of that order, which only protects it from the next eviction round;
this is not a least-recently-used cache.
"""

from __future__ import annotations

import logging
import struct
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterator, Tuple

from .errors import SourceReadError
from .source import ByteSource, open_source

log = logging.getLogger(__name__)

DEFAULT_CACHE_CAPACITY = 200 * 1024 * 1024  # 200 MiB

ByteRange = Tuple[int, int]


@dataclass
class CacheEntry:
    buffer: bytes
    last_accessed: float


class RangeCache:
    """Caching reader for one opened source."""

    def __init__(self, source: ByteSource, capacity: int = DEFAULT_CACHE_CAPACITY,
                 owns_source: bool = False):
        if capacity < 0:
            raise ValueError(f"capacity must be non-negative, got {capacity}")
        self.source = source
        self.capacity = capacity
        self._owns_source = owns_source
        # Insertion order doubles as eviction order, oldest first.
        self._entries: OrderedDict[ByteRange, CacheEntry] = OrderedDict()
        self._cached_bytes = 0
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0

    @classmethod
    def open(cls, obj, capacity: int = DEFAULT_CACHE_CAPACITY) -> "RangeCache":
        """Open ``obj`` (path, buffer or file object) and cache reads from it."""
        source = open_source(obj)
        return cls(source, capacity, owns_source=source is not obj)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        with self._lock:
            self._entries.clear()
            self._cached_bytes = 0
        if self._owns_source:
            self.source.close()

    @property
    def name(self) -> str:
        return self.source.name

    def size(self) -> int:
        return self.source.size()

    @property
    def cached_bytes(self) -> int:
        return self._cached_bytes

    def keys(self) -> list:
        """Cached ranges, oldest first."""
        with self._lock:
            return list(self._entries)

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[ByteRange]:
        return iter(self.keys())

    def read_range(self, start: int, end: int) -> bytes:
        """Return the bytes in ``[start, end)``."""
        if start < 0 or end < start:
            raise ValueError(f"invalid byte range [{start}, {end})")
        if start == end:
            return b''

        key = (start, end)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.last_accessed = time.monotonic()
                self._entries.move_to_end(key)
                self.hits += 1
                return entry.buffer

        data = self._load(start, end)

        with self._lock:
            # Another thread may have filled the same range meanwhile.
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return entry.buffer
            self.misses += 1
            self._entries[key] = CacheEntry(data, time.monotonic())
            self._cached_bytes += len(data)
            self._evict()
        return data

    def read(self, offset: int, length: int) -> bytes:
        return self.read_range(offset, offset + length)

    def _load(self, start, end):
        length = end - start
        try:
            data = self.source.read_at(start, length)
        except OSError as e:
            raise SourceReadError(
                f"reading [{start}, {end}) from {self.name} failed: {e}",
                start, end) from e
        if len(data) != length:
            raise SourceReadError(
                f"short read at [{start}, {end}) from {self.name}: "
                f"got {len(data)} of {length} bytes", start, end)
        log.debug("cache miss [%d, %d)", start, end)
        return bytes(data)

    def _evict(self):
        while self._cached_bytes > self.capacity and self._entries:
            key, entry = self._entries.popitem(last=False)
            self._cached_bytes -= len(entry.buffer)
            log.debug("evicted [%d, %d) (%d bytes cached)",
                      key[0], key[1], self._cached_bytes)

    # Scalar readers

    def read_scalar(self, offset: int, fmt: str):
        """Read one value described by a ``struct`` format such as ``'<H'``."""
        st = _scalar_struct(fmt)
        return st.unpack(self.read(offset, st.size))[0]

    def read_int8(self, offset):
        return self.read_scalar(offset, 'b')

    def read_uint8(self, offset):
        return self.read_scalar(offset, 'B')

    def read_int16_le(self, offset):
        return self.read_scalar(offset, '<h')

    def read_int16_be(self, offset):
        return self.read_scalar(offset, '>h')

    def read_uint16_le(self, offset):
        return self.read_scalar(offset, '<H')

    def read_uint16_be(self, offset):
        return self.read_scalar(offset, '>H')

    def read_int32_le(self, offset):
        return self.read_scalar(offset, '<i')

    def read_int32_be(self, offset):
        return self.read_scalar(offset, '>i')

    def read_uint32_le(self, offset):
        return self.read_scalar(offset, '<I')

    def read_uint32_be(self, offset):
        return self.read_scalar(offset, '>I')

    def read_int64_le(self, offset):
        return self.read_scalar(offset, '<q')

    def read_int64_be(self, offset):
        return self.read_scalar(offset, '>q')

    def read_uint64_le(self, offset):
        return self.read_scalar(offset, '<Q')

    def read_uint64_be(self, offset):
        return self.read_scalar(offset, '>Q')

    def read_float_le(self, offset):
        return self.read_scalar(offset, '<f')

    def read_float_be(self, offset):
        return self.read_scalar(offset, '>f')

    def read_double_le(self, offset):
        return self.read_scalar(offset, '<d')

    def read_double_be(self, offset):
        return self.read_scalar(offset, '>d')


_STRUCTS = {}


def _scalar_struct(fmt):
    st = _STRUCTS.get(fmt)
    if st is None:
        st = struct.Struct(fmt)
        _STRUCTS[fmt] = st
    return st
