from __future__ import annotations

import io
import logging
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import Iterable

from vslice_converter.config import MAX_ARCHIVE_TOTAL_BYTES, MAX_FILE_SIZE_BYTES
from vslice_converter.errors import ArchiveExtractionError, PackagingError
from vslice_converter.intake import InputFile

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = ".zip"


@dataclass
class DecodedArchive:
    entries: list[tuple[str, bytes]]
    warnings: list[str] = field(default_factory=list)


def _is_unsafe_archive_name(name: str) -> bool:
    normalized = name.replace("\\", "/")
    if normalized.startswith("/"):
        return True
    parts = [segment for segment in normalized.split("/") if segment]
    return any(segment == ".." for segment in parts)


def decode_archive(
    content_bytes: bytes,
    *,
    max_entry_size_bytes: int = MAX_FILE_SIZE_BYTES,
    max_total_bytes: int = MAX_ARCHIVE_TOTAL_BYTES,
) -> DecodedArchive:
    """Read every file entry of a ZIP archive into memory.

    Directory entries are left out. Any unreadable member fails the whole
    archive, so callers never see a partial expansion.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(content_bytes))
    except (zipfile.BadZipFile, OSError) as exc:
        raise ArchiveExtractionError("Failed to extract ZIP file.", [f"Archive could not be read: {exc}"]) from exc

    entries: list[tuple[str, bytes]] = []
    warnings: list[str] = []
    total_uncompressed_bytes = 0

    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            safe_name = info.filename.replace("\\", "/")

            if _is_unsafe_archive_name(info.filename):
                warnings.append(f"Blocked unsafe archive entry path: {safe_name}")
                continue

            if info.file_size > max_entry_size_bytes:
                warnings.append(f"Skipped oversized archive entry '{safe_name}'.")
                continue

            total_uncompressed_bytes += info.file_size
            if total_uncompressed_bytes > max_total_bytes:
                raise ArchiveExtractionError(
                    "Failed to extract ZIP file.",
                    warnings + [f"Archive exceeds the total uncompressed size limit ({max_total_bytes} bytes)."],
                )

            try:
                member_bytes = archive.read(info)
            except RuntimeError as exc:
                raise ArchiveExtractionError(
                    "Failed to extract ZIP file.",
                    warnings + [f"Archive entry '{safe_name}' is password protected."],
                ) from exc
            except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, OSError) as exc:
                raise ArchiveExtractionError(
                    "Failed to extract ZIP file.",
                    warnings + [f"Archive entry '{safe_name}' appears corrupt: {exc}"],
                ) from exc

            entries.append((safe_name, member_bytes))

    return DecodedArchive(entries=entries, warnings=warnings)


def encode_archive(entries: Iterable[tuple[str, bytes | str]]) -> bytes:
    """Write (path, content) pairs into a deflated ZIP archive.

    A path written twice keeps its first position and its last content.
    """
    ordered: dict[str, bytes | str] = {}
    for path, content in entries:
        ordered[path] = content

    payload = io.BytesIO()
    try:
        with zipfile.ZipFile(payload, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path, content in ordered.items():
                archive.writestr(path, content)
    except (ValueError, OSError, zlib.error) as exc:
        raise PackagingError("Failed to create the output archive.", [str(exc)]) from exc
    return payload.getvalue()


def is_archive(file: InputFile) -> bool:
    return file.extension == ARCHIVE_EXTENSION


def find_first_archive(working_set: Iterable[InputFile]) -> InputFile | None:
    return next((file for file in working_set if is_archive(file)), None)


def expand_archive_entries(
    working_set: tuple[InputFile, ...],
    archive_file: InputFile,
    decoded: DecodedArchive,
) -> tuple[tuple[InputFile, ...], list[str]]:
    """Replace ``archive_file`` with its entries, in place of the archive.

    Nested archives and any further archives in the batch are dropped since
    only one archive is expanded per run.
    """
    warnings = list(decoded.warnings)
    expanded: list[InputFile] = []

    for file in working_set:
        if file is archive_file:
            for entry_name, entry_bytes in decoded.entries:
                if entry_name.lower().endswith(ARCHIVE_EXTENSION):
                    warnings.append(f"Skipped nested archive '{entry_name}'.")
                    continue
                expanded.append(InputFile.from_bytes(entry_name, entry_bytes))
            continue
        if is_archive(file):
            warnings.append(f"Skipped additional archive '{file.name}'; only the first archive is expanded.")
            continue
        expanded.append(file)

    for warning in warnings:
        logger.warning(warning)

    return tuple(expanded), warnings
