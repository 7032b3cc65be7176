"""Tests for telemetry and metrics tracking."""
import time
from pathlib import Path
from types import SimpleNamespace

import pytest

import colony_ventures.telemetry
from colony_ventures.telemetry import (
    MetricEvent,
    MetricType,
    TelemetryCollector,
    get_telemetry,
    track_duration,
)
from colony_ventures.telemetry_decorator import track_command


def test_telemetry_collector_init(tmp_path):
    """Test TelemetryCollector initialization."""
    db_path = tmp_path / "test_telemetry.db"
    collector = TelemetryCollector(db_path)

    assert collector.db_path == db_path
    assert db_path.exists()
    assert len(collector._metrics_buffer) == 0


def test_track_command(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector.track_command(
        command_name="venture_start",
        player_id="player1",
        guild_id="guild1",
        success=True,
        duration_ms=150.5,
        channel_id="chan1",
    )

    assert len(collector._metrics_buffer) == 1
    event = collector._metrics_buffer[0]
    assert event.metric_type == MetricType.COMMAND_USAGE
    assert event.name == "venture_start"
    assert event.tags["player_id"] == "player1"
    assert event.tags["success"] == "True"
    assert event.tags["channel_id"] == "chan1"
    assert event.metadata["duration_ms"] == 150.5


def test_get_command_stats(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector.track_command("venture_start", "p1", "g1", True)
    collector.track_command("venture_start", "p2", "g1", True)
    collector.track_command("venture_claim", "p1", "g1", True)
    collector.track_command("venture_claim", "p1", "g1", False)
    collector.flush()

    stats = collector.get_command_stats()
    assert stats["venture_start"]["usage_count"] == 2
    assert stats["venture_start"]["success_rate"] == 1.0
    assert stats["venture_start"]["unique_players"] == 2
    assert stats["venture_claim"]["success_rate"] == 0.5
    assert stats["venture_claim"]["unique_players"] == 1


def test_venture_summary_groups_actions_outcomes_and_types(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector.track_venture("venture_started", player_id="p1", venture_type=0, value=100)
    collector.track_venture("venture_started", player_id="p2", venture_type=0, value=50)
    collector.track_venture("venture_started", player_id="p1", venture_type=2, value=300)
    collector.track_venture(
        "venture_claimed", player_id="p1", venture_type=0, value=115, outcome="success"
    )
    collector.track_venture(
        "venture_expired", player_id="p2", venture_type=0, value=50, outcome="critical_failure"
    )
    collector.flush()

    summary = collector.get_venture_summary(hours=1)
    assert summary["actions"]["venture_started"] == {"count": 3, "total_value": 450.0}
    assert summary["actions"]["venture_claimed"]["total_value"] == 115.0
    assert summary["outcomes"] == {"success": 1, "critical_failure": 1}
    assert summary["by_type"] == {"0": 2, "2": 1}


def test_economy_summary_nets_rewards_against_burns(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector.track_economy_flow("food", rewarded=150, burned=0, fees=3)
    collector.track_economy_flow("food", rewarded=70, burned=30)
    collector.track_economy_flow("energy", rewarded=0, burned=40)
    collector.flush()

    economy = collector.get_economy_summary(hours=1)
    assert economy["food"] == {"rewarded": 220.0, "burned": 30.0, "fees": 3.0, "net": 190.0}
    assert economy["energy"]["net"] == -40.0


def test_system_events_are_listed_newest_first(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector._metrics_buffer = [
        MetricEvent(time.time() - 10, MetricType.SYSTEM_EVENT, "venture_policy_updated", 1.0),
        MetricEvent(
            time.time(),
            MetricType.SYSTEM_EVENT,
            "supply_clamp",
            1.0,
            tags={"source": "venture_service"},
            metadata={"reason": "Supply cap reached for food"},
        ),
    ]
    collector.flush()

    events = collector.get_system_events(hours=1)
    assert [event["event"] for event in events] == ["supply_clamp", "venture_policy_updated"]
    assert events[0]["metadata"]["reason"].startswith("Supply cap")
    assert events[0]["tags"] == {"source": "venture_service"}


def test_auto_flush(tmp_path):
    """Buffer should flush itself once it holds 100 events."""
    collector = TelemetryCollector(tmp_path / "test.db")

    for i in range(101):
        collector.record(MetricType.COMMAND_USAGE, f"cmd_{i}", 1.0)

    assert len(collector._metrics_buffer) < 100


def test_get_error_summary(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector.track_error("VentureNotReady", "venture_claim")
    collector.track_error("VentureNotReady", "venture_claim")
    collector.track_error("InsufficientResources", "venture_start")
    collector.flush()

    errors = collector.get_error_summary(hours=1)
    assert errors == {"VentureNotReady": 2, "InsufficientResources": 1}


def test_track_duration_context(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    with track_duration("claim_venture", {"type": "test"}, collector=collector):
        time.sleep(0.01)

    assert len(collector._metrics_buffer) == 1
    event = collector._metrics_buffer[0]
    assert event.metric_type == MetricType.PERFORMANCE
    assert event.name == "claim_venture"
    assert event.value > 10


def test_track_duration_records_errors(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    with pytest.raises(KeyError):
        with track_duration("lookup", collector=collector):
            raise KeyError("missing")

    names = [event.name for event in collector._metrics_buffer]
    assert names == ["lookup", "KeyError"]


def test_generate_report(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector.track_command("venture_status", "p1", "g1", True)
    collector.track_venture("venture_started", player_id="p1", venture_type=1, value=10)
    collector.track_error("TestError")
    collector.track_performance("query", 50.0)
    collector.track_system_event("venture_toggle", source="admin")

    report = collector.generate_report()

    assert collector._metrics_buffer == []
    for key in (
        "generated_at",
        "uptime_seconds",
        "command_stats",
        "errors_24h",
        "performance_1h",
        "ventures_24h",
        "economy_24h",
        "system_events_24h",
    ):
        assert key in report
    assert report["overall"]["total_events"] == 5
    assert report["overall"]["unique_players"] == 1


def test_cleanup_old_data(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector._metrics_buffer = [
        MetricEvent(time.time() - 40 * 86400, MetricType.COMMAND_USAGE, "old", 1.0),
        MetricEvent(time.time(), MetricType.COMMAND_USAGE, "new", 1.0),
    ]
    collector.flush()

    assert collector.cleanup_old_data(days_to_keep=30) == 1
    stats = collector.get_command_stats()
    assert "new" in stats
    assert "old" not in stats


def test_singleton_pattern(tmp_path, monkeypatch):
    monkeypatch.setenv("COLONY_VENTURES_TELEMETRY_DB", str(tmp_path / "singleton.db"))
    monkeypatch.setattr(colony_ventures.telemetry, "_telemetry", None)

    collector1 = get_telemetry()
    collector2 = get_telemetry()

    assert collector1 is collector2
    assert collector1.db_path == Path(tmp_path / "singleton.db")


def _interaction(collector):
    return SimpleNamespace(
        client=SimpleNamespace(telemetry=collector),
        user=SimpleNamespace(id=42),
        guild_id=7,
        channel_id=99,
    )


@pytest.mark.asyncio
async def test_track_command_decorator_records_success(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    @track_command
    async def venture_status(interaction):
        return "ok"

    assert await venture_status(_interaction(collector)) == "ok"

    event = collector._metrics_buffer[-1]
    assert event.name == "venture_status"
    assert event.tags == {
        "player_id": "42",
        "guild_id": "7",
        "success": "True",
        "channel_id": "99",
    }


@pytest.mark.asyncio
async def test_track_command_decorator_records_failures(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    @track_command
    async def venture_claim(interaction):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await venture_claim(_interaction(collector))

    error, command = collector._metrics_buffer
    assert error.metric_type == MetricType.ERROR_RATE
    assert error.name == "RuntimeError"
    assert error.tags["command"] == "venture_claim"
    assert command.tags["success"] == "False"
