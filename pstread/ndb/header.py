"""PST file header (HEADER, [MS-PST] 2.2.2.6).

Two physical layouts exist: ANSI (wVer 14/15, 32-bit BIDs and offsets,
512 bytes) and Unicode (wVer >= 23, 64-bit BIDs and offsets, 564 bytes).
HeaderDecoder reads the header through a RangeCache, picks the layout,
validates it and derives the ROOT descriptor and the rgnid NID table.
"""

import logging
import warnings
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Tuple, Union

from ..config import ReaderConfig
from ..crc import header_crc_full, header_crc_partial
from ..errors import (
    Diagnostic, HeaderParsingError, HeaderWarning, InvalidFormat,
    InvalidReservedField, TruncatedHeader, UnsupportedFileType,
    UnsupportedVersion,
)
from ..file_buffer import RangeCache
from .layout import ANSI_HEADER, UNICODE_HEADER, VERSION_OFFSET, FieldLayout
from .nid import NidIndex, NidType
from .root import RootDescriptor, decode_root

log = logging.getLogger(__name__)

# Header constants
MAGIC_PST = b'!BDN'
MAGIC_OST = b'!BCF'
DW_MAGIC = 0x4E444221  # "!BDN" read as a little-endian DWORD
MAGIC_CLIENT = 0x4D53  # "SM"
BPLATFORM_CREATE = 0x01
BPLATFORM_ACCESS = 0x01
SENTINEL = 0x80

WVER_ANSI = (14, 15)
WVER_UNICODE_MIN = 23
WVER_WIP = 37  # seen on pre-release files, parsed like any Unicode header


class CryptMethod(IntEnum):
    """``bCryptMethod``."""
    NONE = 0x00
    PERMUTE = 0x01  # [MS-PST] 5.1
    CYCLIC = 0x02  # [MS-PST] 5.2
    EDPCRYPTED = 0x10  # Windows Information Protection


class FormatVersion(Enum):
    ANSI = "ANSI"
    UNICODE = "Unicode"

    @property
    def layout(self) -> FieldLayout:
        return ANSI_HEADER if self is FormatVersion.ANSI else UNICODE_HEADER


class DecodeState(Enum):
    START = "start"
    MAGIC_CHECKED = "magic checked"
    VERSION_DETECTED = "version detected"
    FIELDS_DECODED = "fields decoded"
    VALIDATED = "validated"
    ROOT_DECODED = "root decoded"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class AnsiHeaderFields:
    magic: int
    crc_partial: int
    magic_client: int
    ver: int
    ver_client: int
    platform_create: int
    platform_access: int
    reserved1: int
    reserved2: int
    bid_next_b: int
    bid_next_p: int
    unique: int
    rgnid: bytes
    root: bytes
    rgb_fm: bytes
    rgb_fp: bytes
    sentinel: int
    crypt_method: int
    rgb_reserved: int
    ull_reserved: int
    dw_reserved: int
    rgb_reserved2: bytes
    b_reserved: int
    rgb_reserved3: bytes

    version = FormatVersion.ANSI


@dataclass(frozen=True)
class UnicodeHeaderFields:
    magic: int
    crc_partial: int
    magic_client: int
    ver: int
    ver_client: int
    platform_create: int
    platform_access: int
    reserved1: int
    reserved2: int
    bid_unused: int
    bid_next_p: int
    unique: int
    rgnid: bytes
    qw_unused: int
    root: bytes
    align: int
    rgb_fm: bytes
    rgb_fp: bytes
    sentinel: int
    crypt_method: int
    rgb_reserved: int
    bid_next_b: int
    crc_full: int
    rgb_reserved2: bytes
    b_reserved: int
    rgb_reserved3: bytes

    version = FormatVersion.UNICODE


RawHeader = Union[AnsiHeaderFields, UnicodeHeaderFields]


@dataclass(frozen=True)
class CommonHeader:
    """The parts every later layer needs, whatever the version."""
    nids: NidIndex
    root: RootDescriptor
    crypt_method: CryptMethod
    nid_root_folder: Optional[int]
    nid_hierarchy_table: Optional[int]
    nid_normal_message: Optional[int]
    nid_recipient_table: Optional[int]


@dataclass(frozen=True)
class Header:
    file_type: str
    version: FormatVersion
    ver: int
    maybe_work_in_progress: bool
    raw: RawHeader
    common: CommonHeader
    diagnostics: Tuple[Diagnostic, ...] = ()

    @property
    def is_unicode(self) -> bool:
        return self.version is FormatVersion.UNICODE


def _expect(value, expected, field, error=HeaderParsingError):
    if value != expected:
        raise error(
            f"{field} must be 0x{expected:X}, found 0x{value:X}",
            field=field, expected=expected, actual=value)


def _expect_zero(value, field):
    _expect(value, 0, field, error=InvalidReservedField)


class HeaderDecoder:
    """Decode and validate the header of one PST file.

    ``decode`` walks START -> MAGIC_CHECKED -> VERSION_DETECTED ->
    FIELDS_DECODED -> VALIDATED -> ROOT_DECODED -> DONE and leaves
    ``state`` at FAILED when any step raises.
    """

    def __init__(self, config: Optional[ReaderConfig] = None):
        self.config = config or ReaderConfig()
        self.state = DecodeState.START
        self._diagnostics = []

    def _advance(self, state):
        log.debug("header: %s -> %s", self.state.value, state.value)
        self.state = state

    def decode(self, source) -> Header:
        """Decode ``source``: a RangeCache, path, buffer or binary file."""
        self.state = DecodeState.START
        self._diagnostics = []
        if isinstance(source, RangeCache):
            return self._decode_guarded(source)
        with RangeCache.open(source, self.config.cache_capacity) as cache:
            return self._decode_guarded(cache)

    def _decode_guarded(self, cache):
        try:
            return self._decode(cache)
        except Exception:
            self._advance(DecodeState.FAILED)
            raise

    def _decode(self, cache: RangeCache) -> Header:
        file_size = cache.size()
        if file_size < len(MAGIC_PST):
            raise InvalidFormat(
                f"{cache.name} is too small to be a PST file ({file_size} bytes)",
                field='magic')

        self._check_magic(cache.read_range(0, 4))
        self._advance(DecodeState.MAGIC_CHECKED)

        if file_size < VERSION_OFFSET + 2:
            raise TruncatedHeader(
                f"file ends at {file_size} bytes, before wVer", field='ver')
        ver = cache.read_int16_le(VERSION_OFFSET)
        version, maybe_wip = self._detect_version(ver)
        self._advance(DecodeState.VERSION_DETECTED)

        layout = version.layout
        if file_size < layout.required_size:
            raise TruncatedHeader(
                f"{version.value} header needs {layout.required_size} bytes, "
                f"file has {file_size}",
                expected=layout.required_size, actual=file_size)
        prefix = cache.read_range(0, min(layout.size, file_size))
        values = layout.decode(prefix)
        raw = (AnsiHeaderFields if version is FormatVersion.ANSI
               else UnicodeHeaderFields)(**values)
        self._advance(DecodeState.FIELDS_DECODED)

        if version is FormatVersion.ANSI:
            self._validate_ansi(raw)
        else:
            self._validate_unicode(raw)
        self._validate_common(raw)
        if self.config.verify_crc:
            self._verify_crc(raw, prefix)
        if self.config.strict and self._diagnostics:
            first = self._diagnostics[0]
            raise HeaderParsingError(str(first), field=first.field)
        self._advance(DecodeState.VALIDATED)

        root = decode_root(raw.root, unicode=version is FormatVersion.UNICODE)
        self._advance(DecodeState.ROOT_DECODED)

        nids = NidIndex.from_rgnid(raw.rgnid)
        common = CommonHeader(
            nids=nids,
            root=root,
            crypt_method=CryptMethod(raw.crypt_method),
            nid_root_folder=nids.get(NidType.NORMAL_FOLDER),
            nid_hierarchy_table=nids.get(NidType.HIERARCHY_TABLE),
            nid_normal_message=nids.get(NidType.NORMAL_MESSAGE),
            nid_recipient_table=nids.get(NidType.RECIPIENT_TABLE),
        )
        header = Header(
            file_type='PST',
            version=version,
            ver=ver,
            maybe_work_in_progress=maybe_wip,
            raw=raw,
            common=common,
            diagnostics=tuple(self._diagnostics),
        )
        self._advance(DecodeState.DONE)
        return header

    @staticmethod
    def _check_magic(magic: bytes):
        if magic == MAGIC_OST:
            raise UnsupportedFileType(
                "OST files are not supported, only PST",
                field='magic', expected=MAGIC_PST, actual=magic)
        if magic != MAGIC_PST:
            raise InvalidFormat(
                f"not a PST/OST file (magic {magic!r})",
                field='magic', expected=MAGIC_PST, actual=magic)

    @staticmethod
    def _detect_version(ver):
        if ver in WVER_ANSI:
            return FormatVersion.ANSI, False
        if ver >= WVER_UNICODE_MIN:
            return FormatVersion.UNICODE, ver == WVER_WIP
        raise UnsupportedVersion(
            f"unknown PST version wVer={ver}", field='ver', actual=ver)

    def _warn(self, field, message):
        diag = Diagnostic(field, message)
        self._diagnostics.append(diag)
        log.info("header anomaly: %s", diag)
        warnings.warn(str(diag), HeaderWarning, stacklevel=4)

    @staticmethod
    def _validate_ansi(raw: AnsiHeaderFields):
        _expect_zero(raw.ull_reserved, 'ull_reserved')
        _expect_zero(raw.dw_reserved, 'dw_reserved')

    def _validate_unicode(self, raw: UnicodeHeaderFields):
        for name in ('bid_unused', 'qw_unused'):
            value = getattr(raw, name)
            if value != 0:
                self._warn(name, f"unused field is 0x{value:X}, expected 0")
        _expect_zero(raw.align, 'align')
        if raw.crc_full == 0:
            raise HeaderParsingError(
                "crc_full is zero; the file was not finalized or is corrupt",
                field='crc_full', actual=0)

    @staticmethod
    def _validate_common(raw: RawHeader):
        _expect(raw.magic, DW_MAGIC, 'magic')
        if raw.crc_partial == 0:
            raise HeaderParsingError(
                "crc_partial is zero", field='crc_partial', actual=0)
        _expect(raw.magic_client, MAGIC_CLIENT, 'magic_client')
        _expect(raw.platform_create, BPLATFORM_CREATE, 'platform_create')
        _expect(raw.platform_access, BPLATFORM_ACCESS, 'platform_access')
        _expect_zero(raw.reserved1, 'reserved1')
        _expect_zero(raw.reserved2, 'reserved2')
        _expect(raw.sentinel, SENTINEL, 'sentinel')
        try:
            CryptMethod(raw.crypt_method)
        except ValueError:
            raise HeaderParsingError(
                f"crypt_method 0x{raw.crypt_method:02X} is not one of "
                + ", ".join(f"{m.name}=0x{m.value:02X}" for m in CryptMethod),
                field='crypt_method',
                expected=tuple(CryptMethod), actual=raw.crypt_method) from None
        _expect_zero(raw.rgb_reserved, 'rgb_reserved')

    def _verify_crc(self, raw: RawHeader, prefix: bytes):
        computed = header_crc_partial(prefix)
        if computed != raw.crc_partial:
            self._warn('crc_partial', f"stored 0x{raw.crc_partial:08X}, "
                                      f"computed 0x{computed:08X}")
        if isinstance(raw, UnicodeHeaderFields):
            computed = header_crc_full(prefix)
            if computed != raw.crc_full:
                self._warn('crc_full', f"stored 0x{raw.crc_full:08X}, "
                                       f"computed 0x{computed:08X}")


def read_header(source, config: Optional[ReaderConfig] = None) -> Header:
    """Decode the header of a PST path, buffer, file object or RangeCache."""
    return HeaderDecoder(config).decode(source)
