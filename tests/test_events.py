"""Unit tests for history events.

Tests cover:
- HistoryEvent creation and string normalization
- Serialization (to_dict, to_jsonl) and deserialization (from_dict)
- EventEmitter subscriptions, dispatch order and listener isolation
- HistoryRecorder filtering
"""

import json
import logging
from datetime import datetime, timezone

import pytest

from formflow.events import EventEmitter, HistoryEvent, HistoryRecorder
from formflow.types import HistoryAction, SubmissionStatus


TS = datetime(2025, 6, 15, 9, 30, tzinfo=timezone.utc)


def event(action=HistoryAction.TAB_SAVED, submission_id="sub_001", **extra):
    return HistoryEvent(
        event_id="evt_001",
        action=action,
        submission_id=submission_id,
        ts=TS,
        actor_id="u_1",
        status=SubmissionStatus.DRAFT,
        **extra,
    )


class TestHistoryEventCreation:
    """Test HistoryEvent creation."""

    def test_optional_fields_default_to_none(self):
        """Should leave optional fields unset."""
        e = event(HistoryAction.CREATED)
        assert e.tab_index is None
        assert e.tab_name is None
        assert e.details is None

    def test_string_enums_are_normalized(self):
        """Should accept plain strings, including the legacy pending label."""
        e = HistoryEvent(
            event_id="evt_002",
            action="SUBMITTED",
            submission_id="sub_002",
            ts=TS,
            actor_id="u_1",
            status="PENDING_APPROVAL",
        )
        assert e.action == HistoryAction.SUBMITTED
        assert e.status == SubmissionStatus.PENDING_MANAGER_APPROVAL


class TestHistoryEventSerialization:
    """Test serialization helpers."""

    def test_to_dict_omits_unset_fields(self):
        """Should leave unset fields out of the dict."""
        data = event(HistoryAction.CREATED).to_dict()
        assert data == {
            "eventId": "evt_001",
            "action": "CREATED",
            "submissionId": "sub_001",
            "ts": "2025-06-15T09:30:00+00:00",
            "actorId": "u_1",
            "status": "DRAFT",
        }

    def test_to_jsonl_is_single_line(self):
        """Should serialize to one JSON line."""
        line = event(tab_index=1, tab_name="Vehicle", details={"screenCode": "vehicle_details"}).to_jsonl()
        assert "\n" not in line
        parsed = json.loads(line)
        assert parsed["tabIndex"] == 1
        assert parsed["details"] == {"screenCode": "vehicle_details"}

    def test_from_dict_round_trip(self):
        """Should survive to_dict/from_dict."""
        original = event(tab_index=2, tab_name="Insurance", details={"fieldCount": 3})
        assert HistoryEvent.from_dict(original.to_dict()) == original


class TestEventEmitter:
    """Test subscription and dispatch."""

    def test_action_listener_only_receives_its_action(self):
        """Should deliver only the subscribed action."""
        emitter = EventEmitter()
        received = []
        emitter.on(HistoryAction.SUBMITTED, received.append)
        emitter.emit(event(HistoryAction.TAB_SAVED))
        emitter.emit(event(HistoryAction.SUBMITTED))
        assert [e.action for e in received] == [HistoryAction.SUBMITTED]

    def test_specific_listeners_run_before_wildcards(self):
        """Should call action listeners before wildcard listeners."""
        emitter = EventEmitter()
        order = []
        emitter.on_any(lambda e: order.append("any"))
        emitter.on(HistoryAction.TAB_SAVED, lambda e: order.append("specific"))
        emitter.emit(event())
        assert order == ["specific", "any"]

    def test_off_and_clear(self):
        """Should stop delivery after off() and clear()."""
        emitter = EventEmitter()
        received = []
        emitter.on(HistoryAction.TAB_SAVED, received.append)
        emitter.on_any(received.append)
        assert emitter.listener_count() == 2
        assert emitter.listener_count(HistoryAction.TAB_SAVED) == 1

        emitter.off(HistoryAction.TAB_SAVED, received.append)
        emitter.off_any(received.append)
        emitter.emit(event())
        assert received == []

        emitter.on_any(received.append)
        emitter.clear()
        assert emitter.listener_count() == 0

    def test_failing_listener_is_isolated(self, caplog):
        """A broken listener must not stop later listeners."""
        emitter = EventEmitter()
        received = []

        def broken(e):
            raise RuntimeError("disk full")

        emitter.on_any(broken)
        emitter.on_any(received.append)
        with caplog.at_level(logging.ERROR, logger="formflow.events"):
            emitter.emit(event())
        assert len(received) == 1
        assert "History listener failed" in caplog.text


class TestHistoryRecorder:
    """Test the in-memory recorder."""

    def test_filters_by_submission(self):
        """Should return only the events of the given submission."""
        emitter = EventEmitter()
        recorder = HistoryRecorder(emitter)
        emitter.emit(event(HistoryAction.CREATED, "sub_a"))
        emitter.emit(event(HistoryAction.CREATED, "sub_b"))
        emitter.emit(event(HistoryAction.TAB_SAVED, "sub_a"))
        assert recorder.actions("sub_a") == [HistoryAction.CREATED, HistoryAction.TAB_SAVED]
        assert len(recorder.for_submission("sub_b")) == 1
        assert len(recorder.actions()) == 3

    @pytest.mark.parametrize("action", list(HistoryAction))
    def test_records_every_action(self, action):
        """Should collect every history action."""
        recorder = HistoryRecorder()
        recorder(event(action))
        assert recorder.actions() == [action]
