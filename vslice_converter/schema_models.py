from __future__ import annotations

from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictFloat, StrictInt, StrictStr

Number = Union[StrictInt, StrictFloat]


def _scalar_to_text(value: Any) -> Any:
    # Legacy charts sometimes store directions and names as numbers; 0 counts as unset.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if not value:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


LegacyText = Annotated[Optional[StrictStr], BeforeValidator(_scalar_to_text)]


class LegacyNoteModel(BaseModel):
    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    strum_time: Number | None = Field(default=None, alias="strumTime")
    note_type: LegacyText = Field(default=None, alias="noteType")
    direction: LegacyText = None
    sustain_length: Number | None = Field(default=None, alias="sustainLength")


class LegacyChartModel(BaseModel):
    """Legacy chart as found in mod ``data`` folders. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    song: LegacyText = None
    bpm: Number | None = None
    speed: Number | None = None
    notes: list[LegacyNoteModel] | None = None


class VSliceMetadataModel(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    name: str
    bpm: Number
    speed: Number


class VSliceNoteModel(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    # Left unset when the legacy note has no strumTime so it drops out of the dump.
    time: Number | None = None
    type: str
    direction: str
    length: Number


class VSliceChartModel(BaseModel):
    """Chart schema written into the v-slice ``data`` folder."""

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    metadata: VSliceMetadataModel
    notes: list[VSliceNoteModel]

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


def validate_legacy_chart_payload(payload: dict[str, Any]) -> LegacyChartModel:
    return LegacyChartModel.model_validate(payload)


def vslice_chart_json_schema() -> dict[str, Any]:
    """Expose JSON schema for tests and tooling."""

    return VSliceChartModel.model_json_schema()
