"""Reader configuration.

Settings come from the ``[reader]`` section of an INI file (``pstread.ini``
by default) and can be overridden from the command line.
"""

from __future__ import annotations

import configparser
from dataclasses import dataclass, replace as _replace
from pathlib import Path

from .errors import ConfigError
from .file_buffer import DEFAULT_CACHE_CAPACITY

MIN_CACHE_CAPACITY = 4096


def parse_size(s: str) -> int:
    """Parse a byte count such as ``"64m"``, ``"4096"`` or ``"0x1000"``."""
    v = (s or "").strip().lower()
    scale = 1
    for suffix, mult in (("k", 1024), ("m", 1024 ** 2), ("g", 1024 ** 3)):
        if v.endswith(suffix):
            v, scale = v[:-1], mult
            break
    return int(v, 16) * scale if v.startswith("0x") else int(v, 10) * scale


@dataclass(frozen=True)
class ReaderConfig:
    cache_capacity: int = DEFAULT_CACHE_CAPACITY
    # Recompute dwCRCPartial/dwCRCFull and report mismatches as diagnostics.
    verify_crc: bool = True
    # Turn diagnostics into HeaderParsingError.
    strict: bool = False

    @classmethod
    def load(cls, path: str | Path) -> "ReaderConfig":
        """Read the ``[reader]`` section of an INI file; missing file gives defaults."""
        p = Path(path)
        if not p.exists():
            return cls()

        parser = configparser.ConfigParser(interpolation=None)
        parser.read(p, encoding="utf-8")
        if not parser.has_section("reader"):
            return cls()

        section = parser["reader"]
        key = "cache_capacity"
        try:
            capacity = parse_size(section.get(key, str(cls.cache_capacity)))
            key = "verify_crc"
            verify_crc = section.getboolean(key, fallback=cls.verify_crc)
            key = "strict"
            strict = section.getboolean(key, fallback=cls.strict)
        except ValueError as e:
            raise ConfigError(f"{p}: [reader] {key}: {e}") from e

        return cls(
            cache_capacity=max(MIN_CACHE_CAPACITY, capacity),
            verify_crc=verify_crc,
            strict=strict,
        )

    def replace(self, **changes) -> "ReaderConfig":
        """Copy with the given fields changed; ``None`` values are ignored."""
        values = {k: v for k, v in changes.items() if v is not None}
        if "cache_capacity" in values:
            values["cache_capacity"] = max(MIN_CACHE_CAPACITY, values["cache_capacity"])
        return _replace(self, **values)


def default_config_path() -> Path:
    return Path("pstread.ini")
