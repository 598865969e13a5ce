from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from vslice_converter.archive import encode_archive
from vslice_converter.charts import ChartOutcome
from vslice_converter.classification import BucketedFiles
from vslice_converter.intake import InputFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageEntry:
    path: str
    content: bytes | str
    source: str
    converted: bool


def entry_path(bucket: str, filename: str, *, root: str = "") -> str:
    path = f"{bucket}/{filename}"
    return f"{root}/{path}" if root else path


async def collect_package_entries(
    bucketed: BucketedFiles,
    outcomes: Mapping[InputFile, ChartOutcome],
    *,
    root: str = "",
) -> list[PackageEntry]:
    entries: list[PackageEntry] = []
    for bucket, files in bucketed.items():
        for file in files:
            outcome = outcomes.get(file)
            if outcome is not None and outcome.failed:
                logger.info("Skipping %s in %s: chart conversion failed.", file.name, bucket)
                continue

            if outcome is not None:
                content: bytes | str = outcome.serialized()
            else:
                content = await file.read_bytes()

            entries.append(
                PackageEntry(
                    path=entry_path(bucket, file.name, root=root),
                    content=content,
                    source=file.name,
                    converted=outcome is not None,
                )
            )
    return entries


def build_package(entries: list[PackageEntry]) -> bytes:
    return encode_archive((entry.path, entry.content) for entry in entries)
