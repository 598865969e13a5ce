from __future__ import annotations

import os
from dataclasses import asdict, dataclass

SUPPORTED_EXTENSIONS = (".json", ".ogg", ".png", ".zip")
MAX_FILE_SIZE_BYTES = 50 * 1024 * 1024
MAX_ARCHIVE_TOTAL_BYTES = 200 * 1024 * 1024
DEFAULT_OUTPUT_NAME = "vslice_mod.zip"
BUCKET_STRATEGIES = ("union", "priority")


@dataclass(frozen=True)
class ConverterSettings:
    max_file_size_bytes: int = MAX_FILE_SIZE_BYTES
    stage_timeout_seconds: float | None = None
    bucket_strategy: str = "union"
    output_name: str = DEFAULT_OUTPUT_NAME
    output_root: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def _read_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _read_timeout(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def load_converter_settings() -> ConverterSettings:
    strategy = os.getenv("VSLICE_BUCKET_STRATEGY", "union").strip().lower()
    if strategy not in BUCKET_STRATEGIES:
        strategy = "union"

    output_name = os.getenv("VSLICE_OUTPUT_NAME", DEFAULT_OUTPUT_NAME).strip() or DEFAULT_OUTPUT_NAME
    output_root = os.getenv("VSLICE_OUTPUT_ROOT", "").strip().strip("/")

    return ConverterSettings(
        max_file_size_bytes=_read_positive_int("VSLICE_MAX_FILE_SIZE_BYTES", MAX_FILE_SIZE_BYTES),
        stage_timeout_seconds=_read_timeout("VSLICE_STAGE_TIMEOUT_SECONDS"),
        bucket_strategy=strategy,
        output_name=output_name,
        output_root=output_root,
    )
