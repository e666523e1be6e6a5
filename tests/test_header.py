"""
Tests for the header decoder.

These tests verify:
- Magic and version detection (PST/OST, ANSI/Unicode, pre-release marker)
- Fatal field checks and the field they report
- Tolerated anomalies and CRC verification as diagnostics
- ROOT and rgnid derivation
- Decoding from paths, buffers and a shared RangeCache
"""
from __future__ import annotations

import os
import tempfile
import unittest
import warnings

from pstread.config import ReaderConfig
from pstread.errors import (
    HeaderParsingError, HeaderWarning, InvalidFormat, InvalidReservedField,
    SourceReadError, TruncatedHeader, UnsupportedFileType, UnsupportedVersion,
)
from pstread.file_buffer import RangeCache
from pstread.ndb.header import (
    AnsiHeaderFields, CryptMethod, DecodeState, FormatVersion, HeaderDecoder,
    UnicodeHeaderFields, read_header,
)
from pstread.ndb.nid import NidType
from pstread.ndb.root import AMapValidity, BRef
from pstread.source import BytesSource

from pst_samples import (
    A_DW_RESERVED, A_SENTINEL, A_ULL_RESERVED, MAGIC_OST, U_ALIGN,
    U_BID_UNUSED, U_CRC_FULL, U_CRC_PARTIAL, U_CRYPT, U_PLATFORM_ACCESS,
    U_PLATFORM_CREATE, U_QW_UNUSED, U_RESERVED1, U_RESERVED2, U_RGB_RESERVED,
    U_SENTINEL, U_VER, build_ansi_header, build_unicode_header,
    pack_rgnid, pack_unicode_root, patch, seal_unicode,
)


def decode(buf, **config):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", HeaderWarning)
        return HeaderDecoder(ReaderConfig(**config)).decode(buf)


class TestUnicodeHeader(unittest.TestCase):

    def test_minimal_valid(self):
        header = decode(build_unicode_header())
        self.assertEqual(header.file_type, "PST")
        self.assertIs(header.version, FormatVersion.UNICODE)
        self.assertEqual(header.version.value, "Unicode")
        self.assertFalse(header.maybe_work_in_progress)
        self.assertIsInstance(header.raw, UnicodeHeaderFields)
        self.assertEqual(header.ver, 23)
        self.assertEqual(header.diagnostics, ())
        self.assertTrue(header.is_unicode)

    def test_raw_fields(self):
        header = decode(build_unicode_header(bid_next_p=0x1234, bid_next_b=0x5678, unique=42))
        raw = header.raw
        self.assertEqual(raw.magic, 0x4E444221)
        self.assertEqual(raw.magic_client, 0x4D53)
        self.assertEqual(raw.ver_client, 19)
        self.assertEqual(raw.bid_next_p, 0x1234)
        self.assertEqual(raw.bid_next_b, 0x5678)
        self.assertEqual(raw.unique, 42)
        self.assertEqual(raw.sentinel, 0x80)
        self.assertEqual(len(raw.rgnid), 128)
        self.assertEqual(len(raw.root), 72)
        self.assertEqual(raw.rgb_fm, b'\xFF' * 128)
        self.assertEqual(raw.rgb_reserved3, b'\x00' * 32)
        self.assertIs(raw.version, FormatVersion.UNICODE)

    def test_work_in_progress_version(self):
        base = decode(build_unicode_header())
        wip = decode(build_unicode_header(ver=37))
        self.assertTrue(wip.maybe_work_in_progress)
        self.assertIs(wip.version, FormatVersion.UNICODE)
        self.assertEqual(wip.ver, 37)
        self.assertEqual(wip.common, base.common)
        self.assertEqual(wip.file_type, base.file_type)

    def test_other_unicode_versions(self):
        for ver in (23, 24, 36, 40):
            header = decode(build_unicode_header(ver=ver))
            self.assertIs(header.version, FormatVersion.UNICODE)
            self.assertFalse(header.maybe_work_in_progress)

    def test_unsealed_header_still_decodes(self):
        header = decode(build_unicode_header(seal=False))
        self.assertEqual({d.field for d in header.diagnostics}, {'crc_partial', 'crc_full'})

    def test_decode_idempotent(self):
        buf = build_unicode_header(seal=False)
        self.assertEqual(decode(buf), decode(buf))

    def test_crypt_methods(self):
        for method in CryptMethod:
            header = decode(build_unicode_header(crypt_method=method))
            self.assertIs(header.common.crypt_method, method)

    def test_root_descriptor(self):
        root = pack_unicode_root(file_eof=0x20000, bref_nbt=(0x41, 0x9000),
                                 bref_bbt=(0x43, 0x9200), amap_valid=2)
        header = decode(build_unicode_header(root=root))
        self.assertEqual(header.common.root.file_eof, 0x20000)
        self.assertEqual(header.common.root.bref_nbt, BRef(0x41, 0x9000))
        self.assertEqual(header.common.root.bref_bbt, BRef(0x43, 0x9200))
        self.assertIs(header.common.root.amap_valid, AMapValidity.VALID2)

    def test_header_without_trailing_reserved_block(self):
        buf = build_unicode_header()[:532]
        header = decode(buf)
        self.assertEqual(header.raw.rgb_reserved3, b'')
        self.assertEqual(header.diagnostics, ())


class TestAnsiHeader(unittest.TestCase):

    def test_minimal_valid(self):
        for ver in (14, 15):
            header = decode(build_ansi_header(ver=ver))
            self.assertIs(header.version, FormatVersion.ANSI)
            self.assertIsInstance(header.raw, AnsiHeaderFields)
            self.assertFalse(header.maybe_work_in_progress)
            self.assertEqual(header.diagnostics, ())

    def test_fields_and_root(self):
        header = decode(build_ansi_header(bid_next_p=0x99, bid_next_b=0x77, unique=3))
        self.assertEqual(header.raw.bid_next_p, 0x99)
        self.assertEqual(header.raw.bid_next_b, 0x77)
        self.assertEqual(header.raw.unique, 3)
        self.assertEqual(len(header.raw.root), 40)
        self.assertEqual(header.common.root.bref_nbt, BRef(0x21, 0x4600))
        self.assertEqual(header.common.root.file_eof, 0x4400)

    def test_reserved_fields_must_be_zero(self):
        for offset, fmt, name in ((A_ULL_RESERVED, '<Q', 'ull_reserved'),
                                  (A_DW_RESERVED, '<I', 'dw_reserved')):
            buf = patch(build_ansi_header(), offset, fmt, 1)
            with self.assertRaises(InvalidReservedField) as ctx:
                decode(buf)
            self.assertEqual(ctx.exception.field, name)

    def test_sentinel(self):
        with self.assertRaises(HeaderParsingError) as ctx:
            decode(patch(build_ansi_header(), A_SENTINEL, '<B', 0))
        self.assertEqual(ctx.exception.field, 'sentinel')

    def test_no_crc_full_check(self):
        header = decode(build_ansi_header())
        self.assertFalse(hasattr(header.raw, 'crc_full'))

    def test_truncated(self):
        with self.assertRaises(TruncatedHeader):
            decode(build_ansi_header()[:479])


class TestMagicAndVersion(unittest.TestCase):

    def test_not_a_pst(self):
        buf = b'NOPE' + build_unicode_header()[4:]
        with self.assertRaises(InvalidFormat) as ctx:
            decode(buf)
        self.assertEqual(ctx.exception.field, 'magic')

    def test_ost_rejected(self):
        buf = MAGIC_OST + build_unicode_header()[4:]
        with self.assertRaises(UnsupportedFileType):
            decode(buf)

    def test_error_hierarchy(self):
        for cls in (InvalidFormat, UnsupportedFileType, UnsupportedVersion,
                    InvalidReservedField, TruncatedHeader):
            self.assertTrue(issubclass(cls, HeaderParsingError))

    def test_tiny_files(self):
        with self.assertRaises(InvalidFormat):
            decode(b'')
        with self.assertRaises(InvalidFormat):
            decode(b'!BD')
        with self.assertRaises(TruncatedHeader):
            decode(b'!BDN\x00\x00')

    def test_unknown_versions(self):
        for ver in (0, 13, 16, 19, 22):
            with self.assertRaises(UnsupportedVersion) as ctx:
                decode(patch(build_unicode_header(), U_VER, '<H', ver))
            self.assertEqual(ctx.exception.actual, ver)

    def test_version_is_signed(self):
        for ver in (0x8017, 0xFFFF):
            with self.assertRaises(UnsupportedVersion) as ctx:
                decode(patch(build_unicode_header(), U_VER, '<H', ver))
            self.assertEqual(ctx.exception.actual, ver - 0x10000)

    def test_truncated_unicode(self):
        with self.assertRaises(TruncatedHeader):
            decode(build_unicode_header()[:500])


class TestValidation(unittest.TestCase):

    def assertRejects(self, buf, field, error=HeaderParsingError):
        with self.assertRaises(error) as ctx:
            decode(buf)
        self.assertEqual(ctx.exception.field, field)
        self.assertIn(field, str(ctx.exception))
        return ctx.exception

    def test_sentinel(self):
        err = self.assertRejects(patch(build_unicode_header(), U_SENTINEL, '<B', 0x00), 'sentinel')
        self.assertEqual(err.expected, 0x80)
        self.assertEqual(err.actual, 0x00)

    def test_magic_client(self):
        self.assertRejects(patch(build_unicode_header(), 0x08, '<H', 0x1234), 'magic_client')

    def test_platform_bytes(self):
        self.assertRejects(patch(build_unicode_header(), U_PLATFORM_CREATE, '<B', 2),
                           'platform_create')
        self.assertRejects(patch(build_unicode_header(), U_PLATFORM_ACCESS, '<B', 0),
                           'platform_access')

    def test_common_reserved(self):
        self.assertRejects(patch(build_unicode_header(), U_RESERVED1, '<I', 7),
                           'reserved1', InvalidReservedField)
        self.assertRejects(patch(build_unicode_header(), U_RESERVED2, '<I', 7),
                           'reserved2', InvalidReservedField)
        self.assertRejects(patch(build_unicode_header(), U_RGB_RESERVED, '<H', 1),
                           'rgb_reserved', InvalidReservedField)

    def test_unknown_crypt_method(self):
        err = self.assertRejects(patch(build_unicode_header(), U_CRYPT, '<B', 0x05),
                                 'crypt_method')
        self.assertEqual(err.actual, 0x05)

    def test_zero_crcs(self):
        self.assertRejects(patch(build_unicode_header(), U_CRC_PARTIAL, '<I', 0), 'crc_partial')
        self.assertRejects(patch(build_unicode_header(), U_CRC_FULL, '<I', 0), 'crc_full')

    def test_align(self):
        self.assertRejects(seal_unicode(patch(build_unicode_header(), U_ALIGN, '<I', 4)),
                           'align', InvalidReservedField)

    def test_first_failure_reported(self):
        buf = build_unicode_header()
        buf = patch(buf, U_SENTINEL, '<B', 0)
        buf = patch(buf, U_CRYPT, '<B', 0x7F)
        self.assertRejects(buf, 'sentinel')

    def test_unused_fields_tolerated(self):
        buf = seal_unicode(patch(build_unicode_header(), U_BID_UNUSED, '<Q', 0xABCD))
        buf = seal_unicode(patch(buf, U_QW_UNUSED, '<Q', 1))
        with self.assertWarns(HeaderWarning):
            header = HeaderDecoder().decode(buf)
        self.assertEqual([d.field for d in header.diagnostics], ['bid_unused', 'qw_unused'])
        self.assertIn('0xABCD', header.diagnostics[0].message)

    def test_strict_escalates_diagnostics(self):
        buf = seal_unicode(patch(build_unicode_header(), U_BID_UNUSED, '<Q', 1))
        with self.assertRaises(HeaderParsingError) as ctx:
            decode(buf, strict=True)
        self.assertEqual(ctx.exception.field, 'bid_unused')

    def test_crc_mismatch_is_diagnostic(self):
        buf = patch(build_unicode_header(), U_CRC_PARTIAL, '<I', 0xDEADBEEF)
        header = decode(buf)
        self.assertEqual([d.field for d in header.diagnostics], ['crc_partial'])
        self.assertEqual(decode(buf, verify_crc=False).diagnostics, ())


class TestNids(unittest.TestCase):

    def test_hierarchy_table_present(self):
        rgnid = pack_rgnid([(NidType.HIERARCHY_TABLE, 1234)])
        header = decode(build_unicode_header(rgnid=rgnid))
        self.assertEqual(header.common.nid_hierarchy_table, 1234)
        self.assertEqual(header.common.nids[NidType.HIERARCHY_TABLE], 1234)

    def test_absent_types_left_empty(self):
        rgnid = pack_rgnid([(NidType.NORMAL_FOLDER, 9)])
        header = decode(build_unicode_header(rgnid=rgnid))
        self.assertEqual(header.common.nid_root_folder, 9)
        self.assertIsNone(header.common.nid_hierarchy_table)
        self.assertIsNone(header.common.nid_normal_message)
        self.assertIsNone(header.common.nid_recipient_table)

    def test_default_table(self):
        header = decode(build_unicode_header())
        common = header.common
        self.assertEqual(common.nid_root_folder, 0x400 + NidType.NORMAL_FOLDER)
        self.assertEqual(common.nid_hierarchy_table, 0x400 + NidType.HIERARCHY_TABLE)
        self.assertEqual(common.nid_normal_message, 0x400 + NidType.NORMAL_MESSAGE)
        self.assertEqual(common.nid_recipient_table, 0x400 + NidType.RECIPIENT_TABLE)
        self.assertEqual(len(common.nids), 32)

    def test_ansi_rgnid(self):
        rgnid = pack_rgnid([(NidType.RECIPIENT_TABLE, 55)])
        header = decode(build_ansi_header(rgnid=rgnid))
        self.assertEqual(header.common.nid_recipient_table, 55)


class TestDecoderState(unittest.TestCase):

    def test_done(self):
        decoder = HeaderDecoder()
        self.assertIs(decoder.state, DecodeState.START)
        decoder.decode(build_unicode_header())
        self.assertIs(decoder.state, DecodeState.DONE)

    def test_failed(self):
        decoder = HeaderDecoder()
        with self.assertRaises(UnsupportedFileType):
            decoder.decode(MAGIC_OST + build_unicode_header()[4:])
        self.assertIs(decoder.state, DecodeState.FAILED)
        # reusable after a failure
        decoder.decode(build_unicode_header())
        self.assertIs(decoder.state, DecodeState.DONE)


class FailingSource(BytesSource):
    def read_at(self, offset, size):
        if offset + size > 4:
            raise OSError(5, "Input/output error")
        return super().read_at(offset, size)


class TestSources(unittest.TestCase):

    def test_from_path(self):
        fd, path = tempfile.mkstemp(suffix=".pst")
        with os.fdopen(fd, "wb") as f:
            f.write(build_unicode_header())
            f.write(b'\x00' * 4096)
        self.addCleanup(os.unlink, path)
        header = read_header(path)
        self.assertIs(header.version, FormatVersion.UNICODE)

    def test_from_shared_cache(self):
        cache = RangeCache(BytesSource(build_unicode_header()))
        first = read_header(cache)
        self.assertIn((0, 4), cache)
        self.assertIn((10, 12), cache)
        self.assertIn((0, 564), cache)
        misses = cache.misses
        second = read_header(cache)
        self.assertEqual(first, second)
        self.assertEqual(cache.misses, misses)

    def test_source_failure(self):
        with self.assertRaises(SourceReadError):
            read_header(FailingSource(build_unicode_header()))


if __name__ == "__main__":
    unittest.main()
