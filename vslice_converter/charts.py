from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable

from pydantic import ValidationError

from vslice_converter.errors import ChartConversionError
from vslice_converter.intake import InputFile
from vslice_converter.schema_models import (
    LegacyChartModel,
    VSliceChartModel,
    VSliceMetadataModel,
    VSliceNoteModel,
    validate_legacy_chart_payload,
)

logger = logging.getLogger(__name__)

CHART_EXTENSION = ".json"
DEFAULT_SONG_NAME = "Unknown"
DEFAULT_BPM = 100
DEFAULT_SPEED = 1
DEFAULT_NOTE_TYPE = "default"
DEFAULT_DIRECTION = "middle"
DEFAULT_SUSTAIN_LENGTH = 0


@dataclass(frozen=True)
class ChartOutcome:
    filename: str
    status: str
    chart: VSliceChartModel | None = None
    reason: str | None = None
    content: str | None = field(default=None, repr=False)

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def serialized(self) -> str:
        if self.content is None:
            raise ValueError(f"Chart '{self.filename}' has no converted content.")
        return self.content

    def to_dict(self) -> dict:
        return {"filename": self.filename, "status": self.status, "reason": self.reason}


def is_chart_file(file: InputFile) -> bool:
    return file.extension == CHART_EXTENSION


def _reject_constant(value: str) -> Any:
    raise ValueError(f"Unsupported JSON constant {value}.")


def _parse_finite_float(value: str) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Number {value} is out of range.")
    return number


def parse_chart_text(filename: str, text: str) -> dict[str, Any]:
    try:
        payload = json.loads(text, parse_constant=_reject_constant, parse_float=_parse_finite_float)
    except RecursionError as exc:
        raise ChartConversionError(filename, "Invalid JSON: nesting too deep") from exc
    except ValueError as exc:
        raise ChartConversionError(filename, f"Invalid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise ChartConversionError(filename, "Chart root must be a JSON object.")
    return payload


def serialize_chart(filename: str, chart: VSliceChartModel) -> str:
    try:
        return json.dumps(chart.to_payload(), indent=2, ensure_ascii=False, allow_nan=False)
    except ValueError as exc:
        raise ChartConversionError(filename, f"Chart cannot be written as JSON: {exc}") from exc


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location or 'chart'}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def map_legacy_chart(source: LegacyChartModel) -> VSliceChartModel:
    """Map a legacy chart onto the v-slice schema.

    Falsy legacy values (missing, null, 0, "") take the defaults. ``strumTime``
    has none: a note without it carries no ``time``.
    """
    notes: list[VSliceNoteModel] = []
    for note in source.notes or []:
        fields: dict[str, Any] = {
            "type": note.note_type or DEFAULT_NOTE_TYPE,
            "direction": note.direction or DEFAULT_DIRECTION,
            "length": note.sustain_length or DEFAULT_SUSTAIN_LENGTH,
        }
        if "strum_time" in note.model_fields_set:
            fields["time"] = note.strum_time
        notes.append(VSliceNoteModel(**fields))

    return VSliceChartModel(
        metadata=VSliceMetadataModel(
            name=source.song or DEFAULT_SONG_NAME,
            bpm=source.bpm or DEFAULT_BPM,
            speed=source.speed or DEFAULT_SPEED,
        ),
        notes=notes,
    )


def unwrap_legacy_song(payload: dict[str, Any]) -> dict[str, Any]:
    """Legacy exports nest the whole chart under ``song``; lift it to the root."""
    inner = payload.get("song")
    if isinstance(inner, dict):
        return inner
    return payload


def convert_chart_payload(filename: str, payload: dict[str, Any]) -> VSliceChartModel:
    try:
        source = validate_legacy_chart_payload(unwrap_legacy_song(payload))
        return map_legacy_chart(source)
    except ValidationError as exc:
        raise ChartConversionError(filename, f"Unexpected chart layout: {_format_validation_error(exc)}") from exc


def convert_chart_bytes(filename: str, content_bytes: bytes) -> VSliceChartModel:
    text = content_bytes.decode("utf-8-sig", errors="replace")
    return convert_chart_payload(filename, parse_chart_text(filename, text))


def _convert_and_serialize(filename: str, content_bytes: bytes) -> tuple[VSliceChartModel, str]:
    chart = convert_chart_bytes(filename, content_bytes)
    return chart, serialize_chart(filename, chart)


async def convert_chart_file(file: InputFile) -> ChartOutcome:
    """Convert one chart off the event loop; failures stay local to the file."""
    try:
        content_bytes = await file.read_bytes()
        chart, content = await asyncio.to_thread(_convert_and_serialize, file.name, content_bytes)
    except ChartConversionError as exc:
        logger.warning("Chart conversion failed for %s: %s", file.name, exc.reason)
        return ChartOutcome(filename=file.name, status="failed", reason=exc.reason)
    except OSError as exc:
        logger.warning("Chart conversion failed for %s: could not read file (%s)", file.name, exc)
        return ChartOutcome(filename=file.name, status="failed", reason=f"Could not read file: {exc}")

    return ChartOutcome(filename=file.name, status="converted", chart=chart, content=content)


async def transform_chart_files(data_files: Iterable[InputFile]) -> dict[InputFile, ChartOutcome]:
    """Convert every chart in the data bucket concurrently.

    Each conversion only produces its own outcome; the returned mapping is
    keyed by the file object.
    """
    charts = [file for file in data_files if is_chart_file(file)]
    outcomes = await asyncio.gather(*(convert_chart_file(file) for file in charts))
    return dict(zip(charts, outcomes))
