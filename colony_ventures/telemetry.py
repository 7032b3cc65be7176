"""Operational telemetry for the venture economy.

Metric events are buffered in memory and written in batches to a small
SQLite database so that the bot and the admin tools can report on command
usage, venture throughput and resource flows without touching game state.
"""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

_BUFFER_LIMIT = 100
_FLUSH_INTERVAL_SECONDS = 60

_METRICS_SCHEMA = """
CREATE TABLE IF NOT EXISTS metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    metric_type TEXT NOT NULL,
    name TEXT NOT NULL,
    value REAL NOT NULL,
    tags TEXT,
    metadata TEXT
);
CREATE INDEX IF NOT EXISTS idx_metrics_kind_time
    ON metrics (metric_type, timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_metrics_name
    ON metrics (metric_type, name);
"""


class MetricType(Enum):
    COMMAND_USAGE = "command_usage"
    ERROR_RATE = "error_rate"
    PERFORMANCE = "performance"
    VENTURE_LIFECYCLE = "venture_lifecycle"
    ECONOMY_BALANCE = "economy_balance"
    SYSTEM_EVENT = "system_event"


@dataclass
class MetricEvent:
    timestamp: float
    metric_type: MetricType
    name: str
    value: float
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def as_row(self) -> tuple:
        return (
            self.timestamp,
            self.metric_type.value,
            self.name,
            self.value,
            json.dumps(self.tags),
            json.dumps(self.metadata),
        )


def _since(hours: float) -> float:
    return time.time() - hours * 3600


class TelemetryCollector:
    """Buffers metric events and persists them to SQLite."""

    def __init__(self, db_path: Optional[Path] = None):
        env_path = os.environ.get("COLONY_VENTURES_TELEMETRY_DB", "telemetry.db")
        self.db_path = Path(db_path) if db_path else Path(env_path)
        with closing(sqlite3.connect(self.db_path)) as conn:
            conn.executescript(_METRICS_SCHEMA)
            conn.commit()
        self._started_at = time.time()
        self._last_flush = self._started_at
        self._metrics_buffer: List[MetricEvent] = []

    def _rows(self, query: str, params: Sequence[Any] = ()) -> List[tuple]:
        with closing(sqlite3.connect(self.db_path)) as conn:
            return conn.execute(query, tuple(params)).fetchall()

    # Recording -----------------------------------------------------------
    def record(
        self,
        metric_type: MetricType,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self._metrics_buffer.append(
            MetricEvent(
                timestamp=time.time(),
                metric_type=metric_type,
                name=name,
                value=value,
                tags=dict(tags or {}),
                metadata=dict(metadata or {}),
            )
        )
        overdue = time.time() - self._last_flush > _FLUSH_INTERVAL_SECONDS
        if overdue or len(self._metrics_buffer) >= _BUFFER_LIMIT:
            self.flush()

    def flush(self):
        """Write buffered events; on failure they stay buffered for the next attempt."""
        if not self._metrics_buffer:
            return
        pending = list(self._metrics_buffer)
        try:
            with closing(sqlite3.connect(self.db_path)) as conn:
                conn.executemany(
                    "INSERT INTO metrics (timestamp, metric_type, name, value, tags, metadata) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    [event.as_row() for event in pending],
                )
                conn.commit()
        except sqlite3.Error:
            logger.exception("Failed to flush %d telemetry events", len(pending))
            return
        del self._metrics_buffer[: len(pending)]
        self._last_flush = time.time()
        logger.debug("Flushed %d telemetry events", len(pending))

    def track_command(
        self,
        command_name: str,
        player_id: str,
        guild_id: str,
        success: bool = True,
        duration_ms: Optional[float] = None,
        channel_id: Optional[str] = None,
    ):
        """Record one Discord command invocation."""
        tags = {"player_id": player_id, "guild_id": guild_id, "success": str(success)}
        if channel_id:
            tags["channel_id"] = channel_id
        metadata = {"duration_ms": duration_ms} if duration_ms else {}
        self.record(MetricType.COMMAND_USAGE, command_name, 1.0, tags, metadata)

    def track_error(
        self,
        error_type: str,
        command: Optional[str] = None,
        player_id: Optional[str] = None,
        error_details: Optional[str] = None,
    ):
        tags = {key: value for key, value in (("command", command), ("player_id", player_id)) if value}
        metadata = {"error_details": error_details} if error_details else {}
        self.record(MetricType.ERROR_RATE, error_type, 1.0, tags, metadata)

    def track_performance(
        self,
        operation: str,
        duration_ms: float,
        tags: Optional[Dict[str, str]] = None,
    ):
        self.record(MetricType.PERFORMANCE, operation, duration_ms, tags, {"unit": "ms"})

    def track_venture(
        self,
        action: str,
        *,
        player_id: str,
        venture_type: int,
        value: float,
        outcome: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record a venture lifecycle transition such as a start or a claim."""

        tags = {"player_id": player_id, "venture_type": str(venture_type)}
        if outcome:
            tags["outcome"] = outcome
        self.record(MetricType.VENTURE_LIFECYCLE, action, float(value), tags, details)

    def track_economy_flow(
        self,
        kind: str,
        *,
        rewarded: float,
        burned: float,
        fees: float = 0.0,
    ) -> None:
        """Record resources paid out and destroyed for one resource kind."""

        self.record(
            MetricType.ECONOMY_BALANCE,
            f"resource_{kind}",
            float(rewarded) - float(burned),
            {"kind": kind},
            {"rewarded": rewarded, "burned": burned, "fees": fees},
        )

    def track_system_event(
        self,
        event: str,
        *,
        source: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Record admin changes, supply clamps and similar notable events."""

        self.record(
            MetricType.SYSTEM_EVENT,
            event,
            1.0,
            {"source": source} if source else {},
            {"reason": reason} if reason else {},
        )

    # Reporting -----------------------------------------------------------
    def get_command_stats(
        self,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None,
    ) -> Dict[str, Dict[str, Any]]:
        """Usage count, success rate and distinct players per command."""
        clauses = ["metric_type = ?"]
        params: List[Any] = [MetricType.COMMAND_USAGE.value]
        if start_time:
            clauses.append("timestamp >= ?")
            params.append(start_time)
        if end_time:
            clauses.append("timestamp <= ?")
            params.append(end_time)
        rows = self._rows(
            "SELECT name, COUNT(*), "
            "AVG(json_extract(tags, '$.success') = 'True'), "
            "COUNT(DISTINCT json_extract(tags, '$.player_id')) "
            f"FROM metrics WHERE {' AND '.join(clauses)} GROUP BY name",
            params,
        )
        return {
            name: {"usage_count": count, "success_rate": rate, "unique_players": players}
            for name, count, rate, players in rows
        }

    def get_error_summary(self, hours: int = 24) -> Dict[str, int]:
        rows = self._rows(
            "SELECT name, COUNT(*) AS total FROM metrics "
            "WHERE metric_type = ? AND timestamp >= ? GROUP BY name ORDER BY total DESC",
            (MetricType.ERROR_RATE.value, _since(hours)),
        )
        return {name: total for name, total in rows}

    def get_performance_summary(
        self,
        operation: Optional[str] = None,
        hours: int = 1,
    ) -> Dict[str, Dict[str, float]]:
        params: List[Any] = [MetricType.PERFORMANCE.value, _since(hours)]
        name_filter = ""
        if operation:
            name_filter = " AND name = ?"
            params.append(operation)
        rows = self._rows(
            "SELECT name, AVG(value), MIN(value), MAX(value), COUNT(*) FROM metrics "
            f"WHERE metric_type = ? AND timestamp >= ?{name_filter} GROUP BY name",
            params,
        )
        return {
            name: {
                "avg_duration_ms": avg,
                "min_duration_ms": low,
                "max_duration_ms": high,
                "sample_count": samples,
            }
            for name, avg, low, high, samples in rows
        }

    def get_venture_summary(self, hours: int = 24) -> Dict[str, Any]:
        """Counts per lifecycle action, per realised outcome and starts per type."""

        window = (MetricType.VENTURE_LIFECYCLE.value, _since(hours))
        actions = self._rows(
            "SELECT name, COUNT(*), SUM(value) FROM metrics "
            "WHERE metric_type = ? AND timestamp >= ? GROUP BY name",
            window,
        )
        outcomes = self._rows(
            "SELECT json_extract(tags, '$.outcome') AS outcome, COUNT(*) FROM metrics "
            "WHERE metric_type = ? AND timestamp >= ? "
            "AND json_extract(tags, '$.outcome') IS NOT NULL GROUP BY outcome",
            window,
        )
        starts = self._rows(
            "SELECT json_extract(tags, '$.venture_type') AS venture_type, COUNT(*) FROM metrics "
            "WHERE metric_type = ? AND timestamp >= ? AND name = 'venture_started' "
            "GROUP BY venture_type",
            window,
        )
        return {
            "actions": {
                name: {"count": int(count or 0), "total_value": float(total or 0.0)}
                for name, count, total in actions
            },
            "outcomes": {outcome: int(count) for outcome, count in outcomes},
            "by_type": {str(venture_type): int(count) for venture_type, count in starts},
        }

    def get_economy_summary(self, hours: int = 24) -> Dict[str, Dict[str, float]]:
        """Rewarded, burned, fees and net flow per resource kind."""

        rows = self._rows(
            "SELECT json_extract(tags, '$.kind') AS kind, "
            "SUM(json_extract(metadata, '$.rewarded')), "
            "SUM(json_extract(metadata, '$.burned')), "
            "SUM(json_extract(metadata, '$.fees')) "
            "FROM metrics WHERE metric_type = ? AND timestamp >= ? GROUP BY kind",
            (MetricType.ECONOMY_BALANCE.value, _since(hours)),
        )
        summary: Dict[str, Dict[str, float]] = {}
        for kind, rewarded, burned, fees in rows:
            rewarded_total = float(rewarded or 0.0)
            burned_total = float(burned or 0.0)
            summary[kind] = {
                "rewarded": rewarded_total,
                "burned": burned_total,
                "fees": float(fees or 0.0),
                "net": rewarded_total - burned_total,
            }
        return summary

    def get_system_events(self, hours: int = 24, limit: int = 20) -> List[Dict[str, Any]]:
        rows = self._rows(
            "SELECT timestamp, name, tags, metadata FROM metrics "
            "WHERE metric_type = ? AND timestamp >= ? ORDER BY timestamp DESC LIMIT ?",
            (MetricType.SYSTEM_EVENT.value, _since(hours), int(limit)),
        )
        return [
            {
                "timestamp": datetime.fromtimestamp(ts).isoformat(),
                "event": name,
                "tags": json.loads(tags) if tags else {},
                "metadata": json.loads(metadata) if metadata else {},
            }
            for ts, name, tags, metadata in rows
        ]

    def generate_report(self) -> Dict[str, Any]:
        """Flush pending events and assemble every summary into one document."""
        self.flush()
        total, players, first, last = self._rows(
            "SELECT COUNT(*), COUNT(DISTINCT json_extract(tags, '$.player_id')), "
            "MIN(timestamp), MAX(timestamp) FROM metrics"
        )[0]
        return {
            "generated_at": datetime.now().isoformat(),
            "uptime_seconds": time.time() - self._started_at,
            "command_stats": self.get_command_stats(),
            "errors_24h": self.get_error_summary(24),
            "performance_1h": self.get_performance_summary(hours=1),
            "ventures_24h": self.get_venture_summary(24),
            "economy_24h": self.get_economy_summary(24),
            "system_events_24h": self.get_system_events(24, limit=10),
            "overall": {
                "total_events": total,
                "unique_players": players,
                "first_event": datetime.fromtimestamp(first).isoformat() if first else None,
                "last_event": datetime.fromtimestamp(last).isoformat() if last else None,
            },
        }

    def cleanup_old_data(self, days_to_keep: int = 30):
        """Delete events older than ``days_to_keep`` days and return how many went."""
        cutoff = time.time() - days_to_keep * 86400
        with closing(sqlite3.connect(self.db_path)) as conn:
            deleted = conn.execute("DELETE FROM metrics WHERE timestamp < ?", (cutoff,)).rowcount
            conn.commit()
        logger.info("Removed %d telemetry events older than %d days", deleted, days_to_keep)
        return deleted


_telemetry: Optional[TelemetryCollector] = None


def get_telemetry() -> TelemetryCollector:
    """Return the process-wide collector, creating it on first use."""
    global _telemetry
    if _telemetry is None:
        _telemetry = TelemetryCollector()
    return _telemetry


class track_duration:
    """Time a block and record it as a performance metric.

    Exceptions escaping the block are also recorded as errors and then
    re-raised.
    """

    def __init__(
        self,
        operation: str,
        tags: Optional[Dict[str, str]] = None,
        collector: Optional[TelemetryCollector] = None,
    ):
        self.operation = operation
        self.tags = tags or {}
        self.collector = collector
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed_ms = (time.perf_counter() - self._started) * 1000
        collector = self.collector or get_telemetry()
        collector.track_performance(self.operation, elapsed_ms, self.tags)
        if exc_type is not None:
            collector.track_error(exc_type.__name__, command=self.operation, error_details=str(exc_val))
        return False


__all__ = [
    "MetricEvent",
    "MetricType",
    "TelemetryCollector",
    "get_telemetry",
    "track_duration",
]
