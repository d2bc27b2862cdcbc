"""Unit tests for wire-format intent parsing."""

from __future__ import annotations

import pytest

from oncall.simulation.intents import (
    INTENT_TYPES,
    AddIncident,
    DrainWorker,
    IntentError,
    MarkIncidentTypeSeen,
    SetGameSpeed,
    StartGame,
    UpdateWorker,
    parse_intent,
)
from oncall.simulation.models import (
    FlydStatus,
    Incident,
    IncidentType,
    Severity,
    WorkerStatus,
)

pytestmark = pytest.mark.unit


class TestParseIntent:
    def test_tag_only(self):
        assert parse_intent({"type": "START_GAME"}) == StartGame()

    def test_worker_target(self):
        assert parse_intent({"type": "DRAIN_WORKER", "worker_id": "worker-2"}) == DrainWorker(
            "worker-2"
        )

    def test_every_tag_is_registered(self):
        assert len(INTENT_TYPES) == 24
        for tag, cls in INTENT_TYPES.items():
            assert cls.tag == tag

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "EXPLODE"},
            {"worker_id": "worker-1"},
            {"type": 7},
        ],
    )
    def test_unknown_tag(self, payload):
        with pytest.raises(IntentError, match="unknown intent type"):
            parse_intent(payload)

    def test_not_a_dict(self):
        with pytest.raises(IntentError):
            parse_intent(["START_GAME"])

    def test_unexpected_field(self):
        with pytest.raises(IntentError, match="does not accept: colour"):
            parse_intent({"type": "START_GAME", "colour": "red"})

    def test_missing_target(self):
        with pytest.raises(IntentError, match="RESTART_FLYD"):
            parse_intent({"type": "RESTART_FLYD"})

    def test_add_incident_from_dict(self):
        intent = parse_intent(
            {
                "type": "ADD_INCIDENT",
                "incident": {
                    "id": "incident-1",
                    "type": "kernel_panic",
                    "severity": "critical",
                    "timestamp": 1000,
                    "worker_id": "worker-1",
                    "uptime_impact": 20,
                },
            }
        )
        assert isinstance(intent, AddIncident)
        assert intent.incident.type is IncidentType.KERNEL_PANIC
        assert intent.incident.severity is Severity.CRITICAL
        assert intent.incident.uptime_impact == 20.0

    def test_add_incident_bad_dict(self):
        with pytest.raises(IntentError, match="invalid incident"):
            parse_intent({"type": "ADD_INCIDENT", "incident": {"id": "x", "type": "gremlins"}})


class TestIntentValidation:
    @pytest.mark.parametrize("speed", [0, -1, "fast", True, None])
    def test_bad_speed(self, speed):
        with pytest.raises(IntentError):
            SetGameSpeed(speed)

    def test_speed_from_wire(self):
        assert parse_intent({"type": "SET_GAME_SPEED", "speed": 2.5}).speed == 2.5

    def test_add_incident_needs_incident(self):
        with pytest.raises(IntentError):
            AddIncident({"id": "x"})

    def test_add_incident_accepts_incident(self):
        incident = Incident("i", IncidentType.DNS_FAILURE, Severity.LOW, "t", "d", 0.0)
        assert AddIncident(incident).incident is incident

    def test_update_worker_coerces_enums(self):
        intent = UpdateWorker("worker-1", {"status": "critical", "flyd_status": "stalled", "cpu": 12})
        assert intent.updates == {
            "status": WorkerStatus.CRITICAL,
            "flyd_status": FlydStatus.STALLED,
            "cpu": 12.0,
        }

    def test_update_worker_rejects_identity_fields(self):
        with pytest.raises(IntentError, match="cannot be updated"):
            UpdateWorker("worker-1", {"worker_id": "worker-9"})

    def test_update_worker_rejects_bad_value(self):
        with pytest.raises(IntentError, match="invalid value for status"):
            UpdateWorker("worker-1", {"status": "on fire"})

    def test_mark_seen_coerces(self):
        assert MarkIncidentTypeSeen("memory_leak").incident_type is IncidentType.MEMORY_LEAK

    def test_mark_seen_rejects_unknown(self):
        with pytest.raises(IntentError):
            MarkIncidentTypeSeen("gremlins")


class TestMalformedWirePayloads:
    def _incident(self, **overrides):
        incident = {
            "id": "incident-1",
            "type": "dns_failure",
            "severity": "medium",
            "timestamp": 1000,
            "worker_id": "worker-1",
        }
        incident.update(overrides)
        return {"type": "ADD_INCIDENT", "incident": incident}

    def test_auto_resolve_time_is_coerced(self):
        intent = parse_intent(self._incident(auto_resolve_time="61000"))
        assert intent.incident.auto_resolve_time == 61000.0

    def test_auto_resolve_time_may_be_absent(self):
        assert parse_intent(self._incident()).incident.auto_resolve_time is None

    @pytest.mark.parametrize("value", ["soon", [1], float("inf"), float("nan")])
    def test_bad_auto_resolve_time(self, value):
        with pytest.raises(IntentError, match="invalid incident"):
            parse_intent(self._incident(auto_resolve_time=value))

    @pytest.mark.parametrize("updates", [["cpu"], "cpu=5", 5])
    def test_update_worker_needs_an_object(self, updates):
        with pytest.raises(IntentError, match="must be an object"):
            parse_intent({"type": "UPDATE_WORKER", "worker_id": "worker-1", "updates": updates})

    @pytest.mark.parametrize("value", [float("inf"), float("nan"), "nan"])
    def test_update_worker_rejects_non_finite_gauges(self, value):
        with pytest.raises(IntentError, match="invalid value for cpu"):
            UpdateWorker("worker-1", {"cpu": value})

    @pytest.mark.parametrize("speed", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_speed(self, speed):
        with pytest.raises(IntentError, match="finite"):
            parse_intent({"type": "SET_GAME_SPEED", "speed": speed})
