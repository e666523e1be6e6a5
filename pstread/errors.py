"""Exceptions and diagnostics raised while reading PST files."""

from dataclasses import dataclass


class PSTError(Exception):
    """Base class for every error raised by pstread."""


class SourceReadError(PSTError):
    """The underlying byte source failed or returned a short read."""

    def __init__(self, message, start=None, end=None):
        super().__init__(message)
        self.start = start
        self.end = end


class ConfigError(PSTError, ValueError):
    """A configuration value cannot be parsed."""


class HeaderParsingError(PSTError):
    """A header field violates its fixed value or enum membership.

    ``field`` names the offending layout field (``None`` when the failure
    is not tied to one field), ``expected`` and ``actual`` carry the values
    that were compared.
    """

    def __init__(self, message, field=None, expected=None, actual=None):
        super().__init__(message)
        self.field = field
        self.expected = expected
        self.actual = actual


class InvalidFormat(HeaderParsingError):
    """The file does not start with a PST/OST magic."""


class UnsupportedFileType(HeaderParsingError):
    """The file is an OST; only PST files are read."""


class UnsupportedVersion(HeaderParsingError):
    """wVer is neither ANSI (14, 15) nor Unicode (>= 23)."""


class InvalidReservedField(HeaderParsingError):
    """A reserved field that must be zero is not."""


class TruncatedHeader(HeaderParsingError):
    """The file ends before the header does."""


class HeaderWarning(Warning):
    """Category for tolerated header anomalies."""


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal anomaly found while decoding a header."""
    field: str
    message: str

    def __str__(self):
        return f"{self.field}: {self.message}"
