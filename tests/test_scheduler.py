"""Tests for the idle-scan scheduler and event parsing."""

import pytest
import time
from datetime import datetime, timedelta

from crm_automation.automation.recorder import RequestRecorder
from crm_automation.automation.scheduler import IdleScanScheduler
from crm_automation.core.errors import ConfigurationError
from crm_automation.storage.models import Lead
from crm_automation.team import Directory
from crm_automation.workflows.actions import ActionExecutor
from crm_automation.workflows.engine import RuleEngine
from crm_automation.workflows.events import (
    EventKind,
    IdleScanTick,
    ScoreChanged,
    StageChanged,
    event_from_dict,
)
from crm_automation.workflows.models import AddTagAction, LeadUntouchedTrigger
from crm_automation.workflows.repository import RuleRepository

TOUCHED = datetime(2024, 5, 1, 9, 0)


class TestIdleScanScheduler:
    """Tests for IdleScanScheduler."""

    def setup_method(self):
        self.repo = RuleRepository()
        self.repo.create_rule(
            name="Stale", trigger=LeadUntouchedTrigger(hours=24), action=AddTagAction(tag="stale")
        )
        self.recorder = RequestRecorder()
        self.engine = RuleEngine(self.repo, ActionExecutor(Directory(), request_handler=self.recorder))
        self.leads = [
            Lead(id="idle", last_activity_at=TOUCHED),
            Lead(id="fresh", last_activity_at=TOUCHED + timedelta(hours=20)),
        ]
        self.now = TOUCHED + timedelta(hours=30)

    def scheduler(self):
        return IdleScanScheduler(self.engine, lambda: self.leads, clock=lambda: self.now)

    def test_run_once_ticks_every_lead(self):
        outcomes = self.scheduler().run_once()
        assert [o.lead_id for o in outcomes] == ["idle", "fresh"]
        assert [r.lead_id for r in self.recorder.requests] == ["idle"]

    def test_repeated_sweeps_fire_once_per_idle_period(self):
        scheduler = self.scheduler()
        scheduler.run_once()
        self.now += timedelta(hours=30)
        scheduler.run_once()

        assert [r.lead_id for r in self.recorder.requests] == ["idle", "fresh"]
        assert scheduler.last_run == self.now

    def test_start_and_stop(self):
        scheduler = IdleScanScheduler(self.engine, lambda: self.leads, interval_minutes=60,
                                      clock=lambda: self.now)
        scheduler.start()
        deadline = time.time() + 5
        while scheduler.last_run is None and time.time() < deadline:
            time.sleep(0.01)
        scheduler.stop()

        assert not scheduler._thread.is_alive()
        assert scheduler.last_run == self.now


class TestEventParsing:
    """Tests for event_from_dict."""

    def test_stage_changed(self):
        event = event_from_dict({
            "kind": "StageChanged",
            "eventId": "evt-1",
            "occurredAt": "2024-06-01T12:00:00",
            "oldStage": "negotiation",
            "newStage": "won",
            "lead": {"id": "L1", "dealValue": 1500, "tags": ["VIP"]},
        })
        assert isinstance(event, StageChanged)
        assert event.kind == EventKind.STAGE_CHANGED
        assert event.event_id == "evt-1"
        assert event.lead_id == "L1"
        assert event.lead.deal_value == 1500
        assert event.occurred_at == datetime(2024, 6, 1, 12, 0)

    def test_score_changed(self):
        event = event_from_dict({
            "kind": "ScoreChanged", "previousScore": "70", "newScore": 82, "lead": {"id": "L1"}
        })
        assert isinstance(event, ScoreChanged)
        assert (event.previous_score, event.new_score) == (70.0, 82.0)

    def test_idle_tick(self):
        event = event_from_dict({"kind": "IdleScanTick", "lead": {"id": "L1"}})
        assert isinstance(event, IdleScanTick)

    @pytest.mark.parametrize("data", [
        {"kind": "LeadDeleted", "lead": {"id": "L1"}},
        {"kind": "LeadCreated"},
        {"kind": "StageChanged", "lead": {"id": "L1"}},
        {"kind": "ScoreChanged", "newScore": "high", "previousScore": 1, "lead": {"id": "L1"}},
    ])
    def test_invalid_events(self, data):
        with pytest.raises(ConfigurationError):
            event_from_dict(data)
