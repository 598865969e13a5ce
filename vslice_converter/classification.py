from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Iterable

from vslice_converter.intake import InputFile

logger = logging.getLogger(__name__)

BUCKET_NAMES = ("songs", "data", "images")


@dataclass(frozen=True)
class BucketRule:
    bucket: str
    extension: str
    path_marker: str

    def matches(self, file: InputFile) -> bool:
        return file.extension == self.extension or self.path_marker in file.name


# Listed in priority order for the "priority" strategy.
BUCKET_RULES = (
    BucketRule(bucket="data", extension=".json", path_marker="/data/"),
    BucketRule(bucket="images", extension=".png", path_marker="/images/"),
    BucketRule(bucket="songs", extension=".ogg", path_marker="/songs/"),
)


@dataclass(frozen=True)
class BucketedFiles:
    songs: tuple[InputFile, ...]
    data: tuple[InputFile, ...]
    images: tuple[InputFile, ...]
    unmatched: tuple[InputFile, ...] = ()

    def bucket(self, name: str) -> tuple[InputFile, ...]:
        if name not in BUCKET_NAMES:
            raise ValueError(f"Unknown bucket '{name}'. Available buckets: {', '.join(BUCKET_NAMES)}.")
        return getattr(self, name)

    def items(self) -> list[tuple[str, tuple[InputFile, ...]]]:
        return [(name, self.bucket(name)) for name in BUCKET_NAMES]

    def summary(self) -> dict:
        counts = {name: len(files) for name, files in self.items()}
        counts["unmatched"] = len(self.unmatched)
        return counts


@dataclass(frozen=True)
class DroppedFile:
    filename: str
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)


def buckets_for(file: InputFile, *, strategy: str = "union") -> list[str]:
    matched = [rule.bucket for rule in BUCKET_RULES if rule.matches(file)]
    if strategy == "priority":
        return matched[:1]
    if strategy != "union":
        raise ValueError(f"Unknown bucket strategy '{strategy}'. Use 'union' or 'priority'.")
    return matched


def classify_files(files: Iterable[InputFile], *, strategy: str = "union") -> BucketedFiles:
    """Partition the working set into songs, data and images.

    With the default "union" strategy every rule is evaluated on its own, so a
    file can land in several buckets. "priority" keeps only the first match in
    data > images > songs order.
    """
    grouped: dict[str, list[InputFile]] = {name: [] for name in BUCKET_NAMES}
    unmatched: list[InputFile] = []

    for file in files:
        matched = buckets_for(file, strategy=strategy)
        if not matched:
            logger.info("No bucket matched %s; it will not be packaged.", file.name)
            unmatched.append(file)
            continue
        for bucket in matched:
            grouped[bucket].append(file)

    return BucketedFiles(
        songs=tuple(grouped["songs"]),
        data=tuple(grouped["data"]),
        images=tuple(grouped["images"]),
        unmatched=tuple(unmatched),
    )


def describe_unmatched(bucketed: BucketedFiles) -> list[DroppedFile]:
    return [
        DroppedFile(filename=file.name, reason="Matched no bucket rule.")
        for file in bucketed.unmatched
    ]
