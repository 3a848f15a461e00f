"""
Progress reporting for bulk operations.

The controller emits an update at every suspension point. Adapters decide
where updates go: the log for jobs, a list for API responses and tests.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


class ProgressReporter(Protocol):
    def update(self, percent: int, message: str) -> None: ...

    def complete(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingProgress:
    """Reports progress through `logging`."""

    def __init__(self, label: str = "operation") -> None:
        self.label = label

    def update(self, percent: int, message: str) -> None:
        logger.info("[%s] %3d%% %s", self.label, percent, message)

    def complete(self, message: str) -> None:
        logger.info("[%s] done: %s", self.label, message)

    def error(self, message: str) -> None:
        logger.error("[%s] failed: %s", self.label, message)


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    status: str  # "progress" | "complete" | "error"
    percent: int
    message: str


@dataclass
class RecordingProgress:
    """Keeps every event, in order."""

    events: list[ProgressEvent] = field(default_factory=list)

    def update(self, percent: int, message: str) -> None:
        self.events.append(ProgressEvent("progress", percent, message))

    def complete(self, message: str) -> None:
        self.events.append(ProgressEvent("complete", 100, message))

    def error(self, message: str) -> None:
        last = self.events[-1].percent if self.events else 0
        self.events.append(ProgressEvent("error", last, message))

    @property
    def percents(self) -> list[int]:
        return [event.percent for event in self.events if event.status == "progress"]

    @property
    def last(self) -> ProgressEvent | None:
        return self.events[-1] if self.events else None
