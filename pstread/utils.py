"""Rendering helpers for decoded headers."""

import dataclasses
import json
from enum import Enum

from .ndb.nid import NidIndex


def to_plain(value):
    """Convert decoded values into JSON-friendly types.

    Enums become their names, bytes become hex strings, dataclasses and
    NID tables become dicts.
    """
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, NidIndex):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name))
                for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    return value


def header_to_dict(header) -> dict:
    data = to_plain(header)
    data['version'] = header.version.value
    data['diagnostics'] = [str(d) for d in header.diagnostics]
    return data


def header_to_json(header, indent=2) -> str:
    return json.dumps(header_to_dict(header), indent=indent)


def format_size(n: int) -> str:
    """Format a byte count for display."""
    for unit in ('bytes', 'KiB', 'MiB', 'GiB'):
        if n < 1024 or unit == 'GiB':
            return f"{n} {unit}" if unit == 'bytes' else f"{n:.1f} {unit}"
        n /= 1024
