"""Ingestion errors surfaced to callers, one artifact at a time."""

from __future__ import annotations


class IngestionError(ValueError):
    """Base class for per-file ingestion failures."""

    def __init__(self, message: str, *, source: str | None = None):
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class MissingColumnError(IngestionError):
    """Raised when a CSV header lacks a wavelength or absorbance column."""

    def __init__(self, column: str, headers, *, source: str | None = None):
        self.column = column
        self.headers = list(headers)
        super().__init__(
            f"CSV must contain a {column} column (found: {', '.join(self.headers) or 'none'})",
            source=source,
        )


class EmptyDatasetError(IngestionError):
    """Raised when no numerically valid data rows remain after parsing."""


class ImageDecodeError(IngestionError):
    """Raised when image bytes cannot be turned into a pixel buffer."""


class UnsupportedFileTypeError(IngestionError):
    def __init__(self, path: str, supported):
        self.path = str(path)
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported file type; expected one of {', '.join(self.supported)}",
            source=self.path,
        )
