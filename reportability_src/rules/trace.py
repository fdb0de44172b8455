"""Structured evaluation events.

The evaluator reports what it does through a single callback that receives
EvaluationEvent objects. Nothing in the engine logs directly, so callers can
route events to logging (the default), collect them for an audit trail, or
drop them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind:
    """Event kinds emitted by the evaluator."""
    CRITERION_MATCHED = "criterion_matched"
    CRITERION_ERROR = "criterion_error"
    UNKNOWN_CRITERION_TYPE = "unknown_criterion_type"
    GROUP_FAILED = "group_failed"
    RULE_SKIPPED_EMPTY = "rule_skipped_empty"
    RULE_NON_ACTIONABLE = "rule_non_actionable"
    RULE_PASSED = "rule_passed"
    RULE_PARTIAL_MATCH = "rule_partial_match"


@dataclass(frozen=True)
class EvaluationEvent:
    """One thing that happened while evaluating a record."""
    kind: str
    level: int
    message: str
    condition_id: str | None = None
    rule_id: str | None = None
    group_id: str | None = None
    criterion_type: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "level": logging.getLevelName(self.level),
            "message": self.message,
            "condition_id": self.condition_id,
            "rule_id": self.rule_id,
            "group_id": self.group_id,
            "criterion_type": self.criterion_type,
            "data": dict(self.data),
        }


EventHook = Callable[[EvaluationEvent], None]


def log_event(event: EvaluationEvent) -> None:
    """Default hook: forward the event to this module's logger."""
    if not logger.isEnabledFor(event.level):
        return
    location = "/".join(
        part for part in (event.condition_id, event.rule_id, event.group_id) if part
    )
    if location:
        logger.log(event.level, f"[{event.kind}] {location}: {event.message}")
    else:
        logger.log(event.level, f"[{event.kind}] {event.message}")


def null_hook(event: EvaluationEvent) -> None:
    """Hook that discards every event."""
    return None


class EventCollector:
    """Hook that keeps events in memory, e.g. for an audit trail or tests."""

    def __init__(self, min_level: int = logging.DEBUG):
        self.min_level = min_level
        self.events: list[EvaluationEvent] = []

    def __call__(self, event: EvaluationEvent) -> None:
        if event.level >= self.min_level:
            self.events.append(event)

    def of_kind(self, kind: str) -> list[EvaluationEvent]:
        return [e for e in self.events if e.kind == kind]

    def clear(self) -> None:
        self.events.clear()
