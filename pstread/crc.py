"""MS-PST CRC-32 ([MS-PST] 5.3).

Reflected polynomial 0xEDB88320 with an initial value of 0 and no final
inversion, so zlib.crc32 gives different results.
"""


def _make_table():
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ 0xEDB88320
            else:
                crc >>= 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _make_table()

# Header CRC coverage, both starting right after dwCRCPartial.
CRC_START = 0x08
CRC_PARTIAL_LENGTH = 471
CRC_FULL_LENGTH = 516


def compute_crc(data: bytes, crc: int = 0) -> int:
    """Compute the PST CRC of ``data``, optionally continuing from ``crc``."""
    for b in data:
        crc = _CRC_TABLE[(crc ^ b) & 0xFF] ^ (crc >> 8)
    return crc & 0xFFFFFFFF


def header_crc_partial(prefix: bytes) -> int:
    """CRC stored in dwCRCPartial for a header prefix."""
    return compute_crc(prefix[CRC_START:CRC_START + CRC_PARTIAL_LENGTH])


def header_crc_full(prefix: bytes) -> int:
    """CRC stored in dwCRCFull (Unicode headers only)."""
    return compute_crc(prefix[CRC_START:CRC_START + CRC_FULL_LENGTH])
