"""History events for the formflow workflow engine.

Every committed operation emits a typed HistoryEvent that a collaborator may
persist for timeline display. Emission is fire-and-forget from the engine's
point of view: a failing listener is logged and never undoes or blocks the
operation that produced the event.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from dateutil import parser as date_parser

from .types import HistoryAction, SubmissionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEvent:
    """A single entry in a submission's timeline.

    Attributes:
        event_id: Unique event identifier (e.g., "evt_3f1c...")
        action: What happened
        submission_id: Submission the event relates to
        ts: UTC timestamp of the commit
        actor_id: User who performed the action
        status: Submission status after the action
        tab_index: Tab involved, for TAB_SAVED
        tab_name: Tab display name, for TAB_SAVED
        details: Action-specific data (routing decision, comments, ...)

    Examples:
        >>> from datetime import datetime, timezone
        >>> event = HistoryEvent(
        ...     event_id="evt_001",
        ...     action=HistoryAction.CREATED,
        ...     submission_id="sub_001",
        ...     ts=datetime.now(timezone.utc),
        ...     actor_id="u_1",
        ...     status=SubmissionStatus.DRAFT,
        ... )
    """
    event_id: str
    action: HistoryAction
    submission_id: str
    ts: datetime
    actor_id: str
    status: SubmissionStatus
    tab_index: Optional[int] = None
    tab_name: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if isinstance(self.action, str) and not isinstance(self.action, HistoryAction):
            object.__setattr__(self, "action", HistoryAction(self.action))
        if isinstance(self.status, str) and not isinstance(self.status, SubmissionStatus):
            object.__setattr__(self, "status", SubmissionStatus.parse(self.status))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "eventId": self.event_id,
            "action": self.action.value,
            "submissionId": self.submission_id,
            "ts": self.ts.isoformat(),
            "actorId": self.actor_id,
            "status": self.status.value,
        }
        if self.tab_index is not None:
            result["tabIndex"] = self.tab_index
        if self.tab_name is not None:
            result["tabName"] = self.tab_name
        if self.details is not None:
            result["details"] = self.details
        return result

    def to_jsonl(self) -> str:
        """Single-line JSON suitable for appending to a history log."""
        return json.dumps(self.to_dict(), separators=(",", ":"), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEvent":
        return cls(
            event_id=data["eventId"],
            action=HistoryAction(data["action"]),
            submission_id=data["submissionId"],
            ts=date_parser.isoparse(data["ts"]),
            actor_id=data["actorId"],
            status=SubmissionStatus.parse(data["status"]),
            tab_index=data.get("tabIndex"),
            tab_name=data.get("tabName"),
            details=data.get("details"),
        )


EventListener = Callable[[HistoryEvent], None]


class EventEmitter:
    """Dispatches history events to subscribed listeners.

    Listeners are called synchronously in registration order: first those
    subscribed to the event's action, then wildcard listeners.
    """

    def __init__(self):
        self._listeners: Dict[HistoryAction, List[EventListener]] = {}
        self._any_listeners: List[EventListener] = []

    def on(self, action: HistoryAction, listener: EventListener) -> None:
        self._listeners.setdefault(action, []).append(listener)

    def on_any(self, listener: EventListener) -> None:
        self._any_listeners.append(listener)

    def off(self, action: HistoryAction, listener: EventListener) -> None:
        listeners = self._listeners.get(action, [])
        if listener in listeners:
            listeners.remove(listener)

    def off_any(self, listener: EventListener) -> None:
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def emit(self, event: HistoryEvent) -> None:
        """Dispatch ``event``; listener failures are logged and isolated."""
        for listener in list(self._listeners.get(event.action, [])) + list(self._any_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "History listener failed for %s on submission %s",
                    event.action.value,
                    event.submission_id,
                )

    def clear(self) -> None:
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, action: Optional[HistoryAction] = None) -> int:
        """Number of listeners for ``action``, or of all listeners when None."""
        if action is not None:
            return len(self._listeners.get(action, []))
        return len(self._any_listeners) + sum(len(v) for v in self._listeners.values())


class HistoryRecorder:
    """Wildcard listener that keeps every event in memory, per submission."""

    def __init__(self, emitter: Optional[EventEmitter] = None):
        self.events: List[HistoryEvent] = []
        if emitter is not None:
            emitter.on_any(self)

    def __call__(self, event: HistoryEvent) -> None:
        self.events.append(event)

    def for_submission(self, submission_id: str) -> List[HistoryEvent]:
        return [e for e in self.events if e.submission_id == submission_id]

    def actions(self, submission_id: Optional[str] = None) -> List[HistoryAction]:
        events = self.events if submission_id is None else self.for_submission(submission_id)
        return [e.action for e in events]


__all__ = [
    "HistoryEvent",
    "HistoryAction",
    "EventListener",
    "EventEmitter",
    "HistoryRecorder",
]
