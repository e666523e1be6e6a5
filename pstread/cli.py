"""Command-line interface for pstread.

Usage:
    pstread <command> <pst_file> [options]

Commands:
    info     Show the decoded header (--json for JSON)
    nids     List the rgnid node-type table
    root     Show the ROOT descriptor
    json     Dump the whole header as JSON
"""

import argparse
import logging
import sys
import warnings
from pathlib import Path

from .config import ReaderConfig, default_config_path, parse_size
from .errors import HeaderWarning, PSTError
from .file_buffer import RangeCache
from .ndb.header import HeaderDecoder
from .utils import format_size, header_to_json


def _print_diagnostics(header):
    for diag in header.diagnostics:
        print(f"  ! {diag}", file=sys.stderr)


def cmd_info(header, cache, args):
    """Show header summary command."""
    common = header.common
    print(f"\n=== PST HEADER ===")
    print(f"File: {args.pst_file}")
    print(f"Size: {format_size(cache.size())}")
    print(f"Type: {header.file_type}")
    print(f"Version: {header.version.value} (wVer={header.ver}, "
          f"wVerClient={header.raw.ver_client})")
    if header.maybe_work_in_progress:
        print("  (pre-release version marker)")
    print(f"Encryption: {common.crypt_method.name}")
    print(f"Next page BID: {header.raw.bid_next_p}")
    print(f"Next block BID: {header.raw.bid_next_b}")
    print(f"Unique: {header.raw.unique}")

    print(f"\n=== WELL-KNOWN NIDS ===")
    for label, value in (
        ('Root folder', common.nid_root_folder),
        ('Hierarchy table', common.nid_hierarchy_table),
        ('Normal message', common.nid_normal_message),
        ('Recipient table', common.nid_recipient_table),
    ):
        print(f"  {label}: {'-' if value is None else value}")

    cmd_root(header, cache, args)


def cmd_nids(header, cache, args):
    """List rgnid table command."""
    print(f"\n=== NID TABLE ({len(header.common.nids)} types) ===")
    for nid_type, index in header.common.nids.items():
        name = getattr(nid_type, 'name', f"0x{nid_type:02X}")
        print(f"  {int(nid_type):#04x} {name:<24} {index}")


def cmd_root(header, cache, args):
    """Show ROOT command."""
    root = header.common.root
    print(f"\n=== ROOT ===")
    print(f"  File EOF: {root.file_eof} ({format_size(root.file_eof)})")
    print(f"  Last AMap page: {root.amap_last:#x}")
    print(f"  AMap free: {root.amap_free}")
    print(f"  PMap free: {root.pmap_free}")
    print(f"  NBT root: bid={root.bref_nbt.bid:#x} ib={root.bref_nbt.ib:#x}")
    print(f"  BBT root: bid={root.bref_bbt.bid:#x} ib={root.bref_bbt.ib:#x}")
    amap_valid = getattr(root.amap_valid, 'name', root.amap_valid)
    print(f"  AMap valid: {amap_valid}")


def cmd_json(header, cache, args):
    """Dump header as JSON command."""
    print(header_to_json(header))


def build_config(args) -> ReaderConfig:
    config = ReaderConfig.load(args.config or default_config_path())
    return config.replace(
        cache_capacity=args.cache_size,
        verify_crc=False if args.no_crc else None,
        strict=True if args.strict else None,
    )


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='pstread',
        description="Decode and validate the header of a PST file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('pst_file', type=Path, help='Path to PST file')
    common.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    common.add_argument('--config', type=Path, help='INI file with a [reader] section')
    common.add_argument('--cache-size', type=parse_size,
                        help='Range cache capacity in bytes (k/m/g suffixes allowed)')
    common.add_argument('--no-crc', action='store_true',
                        help='Skip CRC verification')
    common.add_argument('--strict', action='store_true',
                        help='Treat header anomalies as errors')

    subparsers = parser.add_subparsers(dest='command', help='Commands')
    subparsers.required = True
    info_parser = subparsers.add_parser('info', parents=[common],
                                        help='Show the decoded header')
    info_parser.add_argument('--json', action='store_true',
                             help='Print the header as JSON instead')
    subparsers.add_parser('nids', parents=[common],
                          help='List the rgnid node-type table')
    subparsers.add_parser('root', parents=[common],
                          help='Show the ROOT descriptor')
    subparsers.add_parser('json', parents=[common],
                          help='Dump the header as JSON')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(name)s: %(message)s')

    commands = {
        'info': cmd_json if getattr(args, 'json', False) else cmd_info,
        'nids': cmd_nids,
        'root': cmd_root,
        'json': cmd_json,
    }
    command = commands[args.command]

    try:
        config = build_config(args)
        with RangeCache.open(args.pst_file, config.cache_capacity) as cache:
            with warnings.catch_warnings():
                # Reported from header.diagnostics below instead.
                warnings.simplefilter('ignore', HeaderWarning)
                header = HeaderDecoder(config).decode(cache)
            _print_diagnostics(header)
            command(header, cache, args)
    except (PSTError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
