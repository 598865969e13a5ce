from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
ErrorCallback = Callable[[str], None]

CHECKING = 10
EXTRACTING = 20
ORGANIZING = 40
CONVERTING = 60
PACKAGING = 80
FINALIZING = 90
DONE = 100


@dataclass
class ProgressReporter:
    """Notification sink for one run.

    Callbacks are fire-and-forget: an exception inside one is logged and never
    reaches the pipeline. Percentages never go backwards.
    """

    on_progress: ProgressCallback | None = None
    on_error: ErrorCallback | None = None
    percent: int = 0
    history: list[tuple[int, str]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def report_progress(self, percent: int, message: str) -> None:
        self.percent = max(self.percent, min(100, max(0, int(percent))))
        self.history.append((self.percent, message))
        logger.info("[%3d%%] %s", self.percent, message)
        if self.on_progress is None:
            return
        try:
            self.on_progress(self.percent, message)
        except Exception:
            logger.exception("Progress callback failed.")

    def report_error(self, message: str) -> None:
        self.errors.append(message)
        logger.error("Conversion failed: %s", message)
        if self.on_error is None:
            return
        try:
            self.on_error(message)
        except Exception:
            logger.exception("Error callback failed.")
