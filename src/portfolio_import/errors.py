from __future__ import annotations


class ImportFormatError(ValueError):
    """Raised when an uploaded statement cannot be turned into holdings."""


class UnsupportedFormatError(ImportFormatError):
    pass


class DocumentParseError(ImportFormatError):
    pass
