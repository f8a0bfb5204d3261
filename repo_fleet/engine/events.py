"""Workflow event stream.

The engine never formats for a terminal. It emits structured events to an
EventSink: one ``step_outcome`` per (repository, step), one ``run_summary``
per run, plus progress events produced while a step runs.

Events produced by a worker during one step are buffered in an OutputSection
and handed to the sink in one call when the step ends. Sinks write a batch
without awaiting, so a repository's lines stay contiguous even when several
repositories run at once.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

log = structlog.get_logger("repo_fleet.events")


@dataclass(frozen=True)
class WorkflowEvent:
    """One structured event: a snake_case name plus fields."""

    name: str
    fields: dict[str, Any] = field(default_factory=dict)
    level: str = "info"


class EventSink(Protocol):
    """Consumer of the workflow event stream."""

    def emit(self, events: Sequence[WorkflowEvent]) -> None: ...


class StructlogEventSink:
    """Writes events through structlog, one line per event."""

    def __init__(self, logger: Any = None) -> None:
        self._log = logger or log

    def emit(self, events: Sequence[WorkflowEvent]) -> None:
        for event in events:
            getattr(self._log, event.level)(event.name, **event.fields)


class MemoryEventSink:
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[WorkflowEvent] = []
        self.batches: list[list[WorkflowEvent]] = []

    def emit(self, events: Sequence[WorkflowEvent]) -> None:
        batch = list(events)
        self.batches.append(batch)
        self.events.extend(batch)

    def named(self, name: str) -> list[WorkflowEvent]:
        return [event for event in self.events if event.name == name]


class FanOutEventSink:
    """Forwards every batch to several sinks."""

    def __init__(self, *sinks: EventSink) -> None:
        self.sinks = sinks

    def emit(self, events: Sequence[WorkflowEvent]) -> None:
        for sink in self.sinks:
            sink.emit(events)


class OutputSection:
    """Buffered events for one repository while one step runs.

    Args:
        sink: Destination for the buffered events
        repository: Repository label bound onto every event
        step: Step name bound onto every event
        path: Repository key bound as ``repository_path`` when given
    """

    def __init__(self, sink: EventSink, repository: str | None, step: str, path: str | None = None) -> None:
        self.sink = sink
        self.repository = repository
        self.step = step
        self.path = path
        self._events: list[WorkflowEvent] = []

    def add(self, name: str, level: str = "info", **fields: Any) -> None:
        bound: dict[str, Any] = {"repository": self.repository, "step": self.step}
        if self.path is not None:
            bound["repository_path"] = self.path
        bound.update(fields)
        self._events.append(WorkflowEvent(name, bound, level))

    def warning(self, name: str, **fields: Any) -> None:
        self.add(name, level="warning", **fields)

    @property
    def events(self) -> list[WorkflowEvent]:
        return list(self._events)

    def flush(self) -> None:
        if not self._events:
            return
        events, self._events = self._events, []
        self.sink.emit(events)
