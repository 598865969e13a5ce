from __future__ import annotations


class ConversionError(Exception):
    """Run-level failure; aborts the conversion and surfaces to the caller."""

    def __init__(self, message: str, warnings: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.warnings = list(warnings or [])

    def to_dict(self) -> dict:
        return {"status": "error", "message": self.message, "warnings": self.warnings}


class NoUsableFilesError(ConversionError):
    pass


class ArchiveExtractionError(ConversionError):
    pass


class PackagingError(ConversionError):
    pass


class ConversionCancelledError(ConversionError):
    pass


class StageTimeoutError(ConversionError):
    pass


class ChartConversionError(Exception):
    """A single chart could not be converted. Never aborts the run."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"{filename}: {reason}")
        self.filename = filename
        self.reason = reason
