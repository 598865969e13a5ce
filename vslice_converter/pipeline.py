from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from vslice_converter import reporting
from vslice_converter.archive import decode_archive, expand_archive_entries, find_first_archive
from vslice_converter.charts import ChartOutcome, transform_chart_files
from vslice_converter.classification import DroppedFile, classify_files, describe_unmatched
from vslice_converter.config import ConverterSettings, load_converter_settings
from vslice_converter.errors import (
    ArchiveExtractionError,
    ConversionCancelledError,
    ConversionError,
    PackagingError,
    StageTimeoutError,
)
from vslice_converter.intake import InputFile, filter_input_files
from vslice_converter.packaging import build_package, collect_package_entries
from vslice_converter.reporting import ProgressReporter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation, checked at every stage boundary."""

    def __init__(self) -> None:
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    def cancel(self, reason: str = "Conversion cancelled.") -> None:
        if self._reason is None:
            self._reason = reason

    def raise_if_cancelled(self, stage: str) -> None:
        if self._reason is not None:
            raise ConversionCancelledError(self._reason, [f"Cancelled before stage '{stage}'."])


@dataclass
class ConversionReport:
    warnings: list[str] = field(default_factory=list)
    charts: list[ChartOutcome] = field(default_factory=list)
    dropped: list[DroppedFile] = field(default_factory=list)
    buckets: dict[str, int] = field(default_factory=dict)
    entries: list[str] = field(default_factory=list)

    @property
    def failed_charts(self) -> list[ChartOutcome]:
        return [outcome for outcome in self.charts if outcome.failed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "warnings": list(self.warnings),
            "charts": [outcome.to_dict() for outcome in self.charts],
            "failed_charts": len(self.failed_charts),
            "dropped": [item.to_dict() for item in self.dropped],
            "buckets": dict(self.buckets),
            "entries": list(self.entries),
        }


@dataclass(frozen=True)
class OutputArchive:
    name: str
    content: bytes = field(repr=False)
    entries: tuple[str, ...]
    report: ConversionReport

    @property
    def size(self) -> int:
        return len(self.content)


async def _with_deadline(awaitable: Awaitable[T], *, stage: str, timeout: float | None) -> T:
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise StageTimeoutError(f"Stage '{stage}' exceeded its deadline of {timeout:g}s.") from exc


async def _run_blocking(func: Callable[..., T], *args: Any, stage: str, timeout: float | None, **kwargs: Any) -> T:
    return await _with_deadline(asyncio.to_thread(func, *args, **kwargs), stage=stage, timeout=timeout)


async def _run(
    files: Iterable[InputFile] | None,
    *,
    reporter: ProgressReporter,
    token: CancellationToken,
    settings: ConverterSettings,
    report: ConversionReport,
) -> OutputArchive:
    timeout = settings.stage_timeout_seconds

    token.raise_if_cancelled("intake")
    reporter.report_progress(reporting.CHECKING, "Checking files...")
    working_set, warnings = filter_input_files(files, max_file_size_bytes=settings.max_file_size_bytes)
    report.warnings.extend(warnings)

    archive_file = find_first_archive(working_set)
    if archive_file is not None:
        token.raise_if_cancelled("extraction")
        reporter.report_progress(reporting.EXTRACTING, "Extracting archive...")
        try:
            archive_bytes = await _with_deadline(archive_file.read_bytes(), stage="extraction", timeout=timeout)
        except OSError as exc:
            raise ArchiveExtractionError("Failed to extract ZIP file.", [f"Could not read {archive_file.name}: {exc}"]) from exc
        decoded = await _run_blocking(
            decode_archive,
            archive_bytes,
            max_entry_size_bytes=settings.max_file_size_bytes,
            stage="extraction",
            timeout=timeout,
        )
        working_set, warnings = expand_archive_entries(working_set, archive_file, decoded)
        report.warnings.extend(warnings)

    token.raise_if_cancelled("classification")
    reporter.report_progress(reporting.ORGANIZING, "Organizing files...")
    bucketed = classify_files(working_set, strategy=settings.bucket_strategy)
    report.buckets = bucketed.summary()
    report.dropped = describe_unmatched(bucketed)

    token.raise_if_cancelled("conversion")
    reporter.report_progress(reporting.CONVERTING, "Converting charts...")
    outcomes = await _with_deadline(transform_chart_files(bucketed.data), stage="conversion", timeout=timeout)
    report.charts = list(outcomes.values())

    token.raise_if_cancelled("packaging")
    reporter.report_progress(reporting.PACKAGING, "Creating package...")
    try:
        entries = await _with_deadline(
            collect_package_entries(bucketed, outcomes, root=settings.output_root),
            stage="packaging",
            timeout=timeout,
        )
    except OSError as exc:
        raise PackagingError("Failed to create the output archive.", [str(exc)]) from exc

    reporter.report_progress(reporting.FINALIZING, "Finalizing...")
    content = await _run_blocking(build_package, entries, stage="packaging", timeout=timeout)
    report.entries = list(dict.fromkeys(entry.path for entry in entries))

    reporter.report_progress(reporting.DONE, "Done.")
    logger.info(
        "Packaged %d entries into %s (%d failed charts).",
        len(report.entries),
        settings.output_name,
        len(report.failed_charts),
    )
    return OutputArchive(
        name=settings.output_name,
        content=content,
        entries=tuple(report.entries),
        report=report,
    )


async def convert(
    files: Iterable[InputFile] | None,
    *,
    reporter: ProgressReporter | None = None,
    cancel_token: CancellationToken | None = None,
    settings: ConverterSettings | None = None,
) -> OutputArchive:
    """Convert one legacy mod batch into a v-slice archive.

    Run-level failures are reported to the error sink and then raised as a
    ConversionError subclass. Per-chart failures only show up in the report.
    """
    reporter = reporter or ProgressReporter()
    report = ConversionReport()
    try:
        return await _run(
            files,
            reporter=reporter,
            token=cancel_token or CancellationToken(),
            settings=settings or load_converter_settings(),
            report=report,
        )
    except ConversionError as exc:
        exc.warnings = report.warnings + [warning for warning in exc.warnings if warning not in report.warnings]
        reporter.report_error(exc.message)
        raise
    except Exception as exc:
        reporter.report_error(f"Unexpected conversion failure: {exc}")
        raise


class VSliceConverter:
    """Single-use converter: one batch in, one archive out."""

    def __init__(
        self,
        *,
        reporter: ProgressReporter | None = None,
        settings: ConverterSettings | None = None,
    ) -> None:
        self.reporter = reporter or ProgressReporter()
        self.settings = settings or load_converter_settings()
        self.cancel_token = CancellationToken()
        self._used = False

    def cancel(self, reason: str = "Conversion cancelled.") -> None:
        self.cancel_token.cancel(reason)

    async def convert(self, files: Iterable[InputFile] | None) -> OutputArchive:
        if self._used:
            raise RuntimeError("VSliceConverter instances are single use; create a new one per batch.")
        self._used = True
        return await convert(
            files,
            reporter=self.reporter,
            cancel_token=self.cancel_token,
            settings=self.settings,
        )
