from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from vslice_converter.config import MAX_FILE_SIZE_BYTES, SUPPORTED_EXTENSIONS
from vslice_converter.errors import NoUsableFilesError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class InputFile:
    """One submitted file. Content is read lazily, either from memory or disk."""

    name: str
    size: int
    content: bytes | None = field(default=None, repr=False)
    path: Path | None = None

    @classmethod
    def from_bytes(cls, name: str, content: bytes) -> "InputFile":
        return cls(name=name, size=len(content), content=content)

    @classmethod
    def from_path(cls, path: str | Path, name: str | None = None) -> "InputFile":
        file_path = Path(path)
        return cls(name=name or file_path.name, size=file_path.stat().st_size, path=file_path)

    @property
    def extension(self) -> str:
        return normalize_extension(self.name)

    async def read_bytes(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.path is None:
            raise ValueError(f"Input file '{self.name}' has no content source.")
        return await asyncio.to_thread(self.path.read_bytes)


@dataclass
class ValidationResult:
    status: str
    message: str
    warnings: list[str]

    @property
    def accepted(self) -> bool:
        return self.status == "success"


def normalize_extension(filename: str) -> str:
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return "." + name.rsplit(".", 1)[-1].lower().strip()


def validate_input_file(
    file: InputFile,
    *,
    max_file_size_bytes: int = MAX_FILE_SIZE_BYTES,
) -> ValidationResult:
    warnings: list[str] = []
    extension = file.extension

    if extension not in SUPPORTED_EXTENSIONS:
        warnings.append(
            f"Unsupported file type '{extension or 'unknown'}' for {file.name}. "
            f"Supported types: {', '.join(SUPPORTED_EXTENSIONS)}."
        )
    if file.size > max_file_size_bytes:
        warnings.append(f"File too large: {file.name} ({file.size} bytes, limit {max_file_size_bytes}).")

    if warnings:
        return ValidationResult(status="warning", message="File rejected.", warnings=warnings)

    return ValidationResult(status="success", message="File accepted for conversion.", warnings=warnings)


def filter_input_files(
    files: Iterable[InputFile] | None,
    *,
    max_file_size_bytes: int = MAX_FILE_SIZE_BYTES,
) -> tuple[tuple[InputFile, ...], list[str]]:
    """Keep allow-listed, size-bounded files in submission order.

    Returns the working set and the warnings for every rejected file. Raises
    NoUsableFilesError when nothing survives.
    """
    candidates = list(files or [])
    if not candidates:
        raise NoUsableFilesError("No files selected.")

    kept: list[InputFile] = []
    warnings: list[str] = []
    for candidate in candidates:
        result = validate_input_file(candidate, max_file_size_bytes=max_file_size_bytes)
        if result.accepted:
            kept.append(candidate)
            continue
        for warning in result.warnings:
            logger.warning(warning)
        warnings.extend(result.warnings)

    if not kept:
        raise NoUsableFilesError("No supported files found.", warnings)

    return tuple(kept), warnings
