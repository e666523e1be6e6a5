"""Random-access byte sources a RangeCache can sit on top of."""

from __future__ import annotations

import io
import mmap
import os
import threading
from dataclasses import dataclass, field
from typing import BinaryIO, Protocol, Union, runtime_checkable


@runtime_checkable
class ByteSource(Protocol):
    name: str

    def size(self) -> int: ...

    def read_at(self, offset: int, size: int) -> bytes: ...

    def close(self) -> None: ...


@dataclass
class FileSource:
    """A seekable binary file. Seek and read happen under one lock."""
    name: str
    _fp: BinaryIO
    _size: int
    _owned: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def size(self) -> int:
        return self._size

    def read_at(self, offset: int, size: int) -> bytes:
        with self._lock:
            self._fp.seek(offset)
            return self._fp.read(size)

    def close(self) -> None:
        if self._owned:
            self._fp.close()


@dataclass
class BytesSource:
    """An in-memory buffer (bytes, bytearray, memoryview or mmap)."""
    data: Union[bytes, bytearray, memoryview, mmap.mmap]
    name: str = "<memory>"

    def size(self) -> int:
        return len(self.data)

    def read_at(self, offset: int, size: int) -> bytes:
        return bytes(self.data[offset:offset + size])

    def close(self) -> None:
        return


def _file_size(fp) -> int:
    pos = fp.tell()
    try:
        return fp.seek(0, io.SEEK_END)
    finally:
        fp.seek(pos)


def open_source(obj) -> ByteSource:
    """Return a ByteSource for a path, a buffer, or a binary file object."""
    if isinstance(obj, (str, os.PathLike)):
        fp = open(obj, 'rb')
        try:
            size = _file_size(fp)
        except OSError:
            fp.close()
            raise
        return FileSource(name=os.fspath(obj), _fp=fp, _size=size, _owned=True)

    if isinstance(obj, (bytes, bytearray, memoryview, mmap.mmap)):
        return BytesSource(obj)

    if isinstance(obj, ByteSource):
        return obj

    if hasattr(obj, 'read') and hasattr(obj, 'seek'):
        name = getattr(obj, 'name', None)
        return FileSource(
            name=name if isinstance(name, str) else repr(obj),
            _fp=obj,
            _size=_file_size(obj),
        )

    raise TypeError(f"cannot read bytes from {type(obj).__name__}")
