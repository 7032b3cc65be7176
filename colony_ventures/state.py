"""Venture state management and persistence."""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .config import Settings
from .models import (
    CardCollection,
    Event,
    ResourceKind,
    UserProgressionStats,
    Venture,
    VentureAttachedCard,
    VentureOutcome,
    VenturePhase,
    VenturePolicy,
    VentureStatistics,
    VentureTypeConfig,
)

logger = logging.getLogger(__name__)

_DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS ventures (
    venture_id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    venture_type INTEGER NOT NULL,
    colony_id TEXT,
    phase TEXT NOT NULL,
    outcome TEXT NOT NULL,
    staked TEXT NOT NULL,
    start_time INTEGER NOT NULL,
    end_time INTEGER NOT NULL,
    claim_deadline INTEGER NOT NULL DEFAULT 0,
    seed INTEGER NOT NULL,
    bonus_multiplier_bps INTEGER NOT NULL DEFAULT 0,
    rewards TEXT NOT NULL,
    burned TEXT NOT NULL,
    fee_paid INTEGER NOT NULL DEFAULT 0,
    resolved_at INTEGER
);
CREATE INDEX IF NOT EXISTS idx_ventures_owner
    ON ventures (owner, start_time DESC);
CREATE TABLE IF NOT EXISTS active_ventures (
    player_id TEXT PRIMARY KEY,
    venture_ids TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS player_stats (
    player_id TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS counters (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS venture_totals (
    singleton INTEGER PRIMARY KEY CHECK (singleton = 1),
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS type_configs (
    venture_type INTEGER PRIMARY KEY,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS policy (
    singleton INTEGER PRIMARY KEY CHECK (singleton = 1),
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS card_collections (
    collection_id TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS card_slots (
    player_id TEXT NOT NULL,
    venture_type INTEGER NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (player_id, venture_type)
);
CREATE TABLE IF NOT EXISTS card_attach_log (
    player_id TEXT PRIMARY KEY,
    last_attach_at INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS balances (
    player_id TEXT NOT NULL,
    kind INTEGER NOT NULL,
    amount INTEGER NOT NULL,
    PRIMARY KEY (player_id, kind)
);
CREATE TABLE IF NOT EXISTS supply (
    kind INTEGER PRIMARY KEY,
    amount INTEGER NOT NULL DEFAULT 0,
    cap INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    action TEXT NOT NULL,
    payload TEXT NOT NULL
);
"""

_VENTURE_COLUMNS = (
    "venture_id, owner, venture_type, colony_id, phase, outcome, staked, start_time, "
    "end_time, claim_deadline, seed, bonus_multiplier_bps, rewards, burned, fee_paid, resolved_at"
)


class VentureState:
    """High level interface for working with persistent venture state."""

    def __init__(self, db_path: Path, settings: Settings) -> None:
        self._db_path = db_path
        self._settings = settings
        self._ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _ensure_schema(self) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.executescript(_DB_SCHEMA)
            for kind, cap in self._settings.supply_caps.items():
                conn.execute(
                    "INSERT OR IGNORE INTO supply (kind, amount, cap) VALUES (?, 0, ?)",
                    (int(kind), int(cap)),
                )
            for collection in self._settings.card_collections:
                conn.execute(
                    "INSERT OR IGNORE INTO card_collections (collection_id, data) VALUES (?, ?)",
                    (collection.collection_id, json.dumps(collection.__dict__)),
                )
            conn.commit()

    # Configuration -----------------------------------------------------
    def get_policy(self) -> VenturePolicy:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute("SELECT data FROM policy WHERE singleton = 1").fetchone()
        if not row:
            return VenturePolicy.from_dict(self._settings.policy.to_dict())
        return VenturePolicy.from_dict(json.loads(row[0]))

    def save_policy(self, policy: VenturePolicy) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "REPLACE INTO policy (singleton, data) VALUES (1, ?)",
                (json.dumps(policy.to_dict()),),
            )
            conn.commit()

    def get_type_config(self, venture_type: int) -> Optional[VentureTypeConfig]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM type_configs WHERE venture_type = ?", (int(venture_type),)
            ).fetchone()
        if row:
            return VentureTypeConfig.from_dict(json.loads(row[0]))
        default = self._settings.venture_types.get(int(venture_type))
        if default is None:
            return None
        return VentureTypeConfig.from_dict(default.to_dict())

    def save_type_config(self, venture_type: int, config: VentureTypeConfig) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "REPLACE INTO type_configs (venture_type, data) VALUES (?, ?)",
                (int(venture_type), json.dumps(config.to_dict())),
            )
            conn.commit()

    def configured_types(self) -> List[int]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute("SELECT venture_type FROM type_configs").fetchall()
        types = {int(row[0]) for row in rows}
        types.update(self._settings.venture_types.keys())
        return sorted(types)

    # Counters ------------------------------------------------------------
    def next_counter(self, name: str) -> int:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO counters (name, value) VALUES (?, 0)", (name,)
            )
            conn.execute("UPDATE counters SET value = value + 1 WHERE name = ?", (name,))
            row = conn.execute("SELECT value FROM counters WHERE name = ?", (name,)).fetchone()
            conn.commit()
        return int(row[0])

    def get_counter(self, name: str) -> int:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute("SELECT value FROM counters WHERE name = ?", (name,)).fetchone()
        return int(row[0]) if row else 0

    # Ventures ------------------------------------------------------------
    def save_venture(self, venture: Venture) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            # Immutable creation fields are only written on insert.
            cursor = conn.execute(
                "UPDATE ventures SET phase = ?, outcome = ?, rewards = ?, burned = ?, "
                "fee_paid = ?, resolved_at = ? WHERE venture_id = ?",
                (
                    venture.phase.value,
                    venture.outcome.value,
                    json.dumps(venture.rewards),
                    json.dumps(venture.burned),
                    venture.fee_paid,
                    venture.resolved_at,
                    venture.venture_id,
                ),
            )
            if cursor.rowcount == 0:
                conn.execute(
                    f"INSERT INTO ventures ({_VENTURE_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        venture.venture_id,
                        venture.owner,
                        venture.venture_type,
                        venture.colony_id,
                        venture.phase.value,
                        venture.outcome.value,
                        json.dumps(venture.staked),
                        venture.start_time,
                        venture.end_time,
                        venture.claim_deadline,
                        venture.seed,
                        venture.bonus_multiplier_bps,
                        json.dumps(venture.rewards),
                        json.dumps(venture.burned),
                        venture.fee_paid,
                        venture.resolved_at,
                    ),
                )
            conn.commit()

    @staticmethod
    def _venture_from_row(row: Tuple) -> Venture:
        return Venture(
            venture_id=row[0],
            owner=row[1],
            venture_type=int(row[2]),
            colony_id=row[3],
            phase=VenturePhase(row[4]),
            outcome=VentureOutcome(row[5]),
            staked=json.loads(row[6]),
            start_time=int(row[7]),
            end_time=int(row[8]),
            claim_deadline=int(row[9]),
            seed=int(row[10]),
            bonus_multiplier_bps=int(row[11]),
            rewards=json.loads(row[12]),
            burned=json.loads(row[13]),
            fee_paid=int(row[14]),
            resolved_at=int(row[15]) if row[15] is not None else None,
        )

    def get_venture(self, venture_id: str) -> Optional[Venture]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                f"SELECT {_VENTURE_COLUMNS} FROM ventures WHERE venture_id = ?",
                (venture_id,),
            ).fetchone()
        if not row:
            return None
        return self._venture_from_row(row)

    def list_ventures(
        self,
        *,
        owner: Optional[str] = None,
        phase: Optional[VenturePhase] = None,
        limit: Optional[int] = None,
    ) -> List[Venture]:
        query = f"SELECT {_VENTURE_COLUMNS} FROM ventures"
        clauses: List[str] = []
        params: List[object] = []
        if owner is not None:
            clauses.append("owner = ?")
            params.append(owner)
        if phase is not None:
            clauses.append("phase = ?")
            params.append(phase.value)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY start_time DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._venture_from_row(row) for row in rows]

    # Active index --------------------------------------------------------
    def active_venture_ids(self, player_id: str) -> List[str]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT venture_ids FROM active_ventures WHERE player_id = ?", (player_id,)
            ).fetchone()
        if not row:
            return []
        return list(json.loads(row[0]))

    def _save_active_ids(self, player_id: str, venture_ids: List[str]) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "REPLACE INTO active_ventures (player_id, venture_ids) VALUES (?, ?)",
                (player_id, json.dumps(venture_ids)),
            )
            conn.commit()

    def add_active_venture(self, player_id: str, venture_id: str) -> None:
        venture_ids = self.active_venture_ids(player_id)
        venture_ids.append(venture_id)
        self._save_active_ids(player_id, venture_ids)

    def remove_active_venture(self, player_id: str, venture_id: str) -> bool:
        """Swap the entry with the tail and truncate, leaving no gaps."""

        venture_ids = self.active_venture_ids(player_id)
        for index, current in enumerate(venture_ids):
            if current == venture_id:
                venture_ids[index] = venture_ids[-1]
                venture_ids.pop()
                self._save_active_ids(player_id, venture_ids)
                return True
        logger.debug("Venture %s not in active index for %s", venture_id, player_id)
        return False

    # Player statistics ---------------------------------------------------
    def get_player_stats(self, player_id: str) -> UserProgressionStats:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM player_stats WHERE player_id = ?", (player_id,)
            ).fetchone()
        if not row:
            return UserProgressionStats()
        return UserProgressionStats(**json.loads(row[0]))

    def save_player_stats(self, player_id: str, stats: UserProgressionStats) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "REPLACE INTO player_stats (player_id, data) VALUES (?, ?)",
                (player_id, json.dumps(stats.__dict__)),
            )
            conn.commit()

    def all_player_ids(self) -> Iterable[str]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute("SELECT player_id FROM player_stats").fetchall()
        for row in rows:
            yield row[0]

    # Global statistics ---------------------------------------------------
    def get_statistics(self) -> VentureStatistics:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM venture_totals WHERE singleton = 1"
            ).fetchone()
        if not row:
            return VentureStatistics()
        data = json.loads(row[0])
        data["started_by_type"] = {
            int(key): int(value) for key, value in data.get("started_by_type", {}).items()
        }
        return VentureStatistics(**data)

    def save_statistics(self, stats: VentureStatistics) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "REPLACE INTO venture_totals (singleton, data) VALUES (1, ?)",
                (json.dumps(stats.__dict__),),
            )
            conn.commit()

    # Card collections and slots -----------------------------------------
    def get_card_collection(self, collection_id: str) -> Optional[CardCollection]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM card_collections WHERE collection_id = ?", (collection_id,)
            ).fetchone()
        if not row:
            return None
        return CardCollection(**json.loads(row[0]))

    def save_card_collection(self, collection: CardCollection) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "REPLACE INTO card_collections (collection_id, data) VALUES (?, ?)",
                (collection.collection_id, json.dumps(collection.__dict__)),
            )
            conn.commit()

    def list_card_collections(self) -> List[CardCollection]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(
                "SELECT data FROM card_collections ORDER BY collection_id"
            ).fetchall()
        return [CardCollection(**json.loads(row[0])) for row in rows]

    def get_card_slot(self, player_id: str, venture_type: int) -> Optional[VentureAttachedCard]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM card_slots WHERE player_id = ? AND venture_type = ?",
                (player_id, int(venture_type)),
            ).fetchone()
        if not row:
            return None
        return VentureAttachedCard(**json.loads(row[0]))

    def save_card_slot(
        self, player_id: str, venture_type: int, card: VentureAttachedCard
    ) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "REPLACE INTO card_slots (player_id, venture_type, data) VALUES (?, ?, ?)",
                (player_id, int(venture_type), json.dumps(card.__dict__)),
            )
            conn.commit()

    def clear_card_slot(self, player_id: str, venture_type: int) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "DELETE FROM card_slots WHERE player_id = ? AND venture_type = ?",
                (player_id, int(venture_type)),
            )
            conn.commit()

    def list_card_slots(self, player_id: str) -> Dict[int, VentureAttachedCard]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(
                "SELECT venture_type, data FROM card_slots WHERE player_id = ?",
                (player_id,),
            ).fetchall()
        return {int(row[0]): VentureAttachedCard(**json.loads(row[1])) for row in rows}

    def last_card_attach(self, player_id: str) -> int:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT last_attach_at FROM card_attach_log WHERE player_id = ?",
                (player_id,),
            ).fetchone()
        return int(row[0]) if row else 0

    def record_card_attach(self, player_id: str, timestamp: int) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "REPLACE INTO card_attach_log (player_id, last_attach_at) VALUES (?, ?)",
                (player_id, int(timestamp)),
            )
            conn.commit()

    # Ledger storage ------------------------------------------------------
    def get_balance(self, player_id: str, kind: ResourceKind) -> int:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT amount FROM balances WHERE player_id = ? AND kind = ?",
                (player_id, int(kind)),
            ).fetchone()
        return int(row[0]) if row else 0

    def set_balance(self, player_id: str, kind: ResourceKind, amount: int) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "REPLACE INTO balances (player_id, kind, amount) VALUES (?, ?, ?)",
                (player_id, int(kind), int(amount)),
            )
            conn.commit()

    def get_supply(self, kind: ResourceKind) -> Tuple[int, int]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT amount, cap FROM supply WHERE kind = ?", (int(kind),)
            ).fetchone()
        if not row:
            return 0, 0
        return int(row[0]), int(row[1])

    def set_supply(self, kind: ResourceKind, amount: int) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO supply (kind, amount, cap) VALUES (?, 0, 0)", (int(kind),)
            )
            conn.execute(
                "UPDATE supply SET amount = ? WHERE kind = ?", (int(amount), int(kind))
            )
            conn.commit()

    def set_supply_cap(self, kind: ResourceKind, cap: int) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO supply (kind, amount, cap) VALUES (?, 0, 0)", (int(kind),)
            )
            conn.execute("UPDATE supply SET cap = ? WHERE kind = ?", (int(cap), int(kind)))
            conn.commit()

    # Event log -----------------------------------------------------------
    def append_event(self, event: Event) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "INSERT INTO events (timestamp, action, payload) VALUES (?, ?, ?)",
                (event.timestamp.isoformat(), event.action, json.dumps(event.payload)),
            )
            conn.commit()

    def export_events(self, limit: Optional[int] = None) -> List[Event]:
        query = "SELECT timestamp, action, payload FROM events ORDER BY id"
        params: List[object] = []
        if limit is not None:
            query = """
                SELECT timestamp, action, payload FROM (
                    SELECT id, timestamp, action, payload FROM events ORDER BY id DESC LIMIT ?
                ) ORDER BY id
            """
            params.append(int(limit))
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(query, params).fetchall()
        events: List[Event] = []
        for timestamp, action, payload in rows:
            try:
                data = json.loads(payload)
            except (TypeError, json.JSONDecodeError):  # pragma: no cover - legacy guard
                data = {}
            events.append(
                Event(timestamp=datetime.fromisoformat(timestamp), action=action, payload=data)
            )
        return events


__all__ = ["VentureState"]
