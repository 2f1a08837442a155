"""SQLite-backed store for signals, triggers, price snapshots and whale profiles."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

import aiosqlite

from whale_consensus.common.types import from_ms, to_ms
from whale_consensus.config import get_settings
from whale_consensus.signals.models import ConfidenceLevel, Signal, Trade
from whale_consensus.swarm.models import ConsensusResult, Decision
from whale_consensus.triggers.models import (
    PriceSnapshot,
    Trigger,
    TriggerStatus,
    TriggerType,
    WhaleProfile,
    payload_from_dict,
    payload_to_dict,
)

logger = logging.getLogger(__name__)

# Win rate is only meaningful once this many trades have resolved
MIN_RESOLVED_FOR_WIN_RATE = 10
SMART_MONEY_WIN_RATE = 0.60

_CREATE_SIGNALS = """
CREATE TABLE IF NOT EXISTS signals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    market_id TEXT NOT NULL,
    trigger_trades TEXT NOT NULL,  -- JSON array, append-only
    consensus TEXT NOT NULL,  -- JSON ConsensusResult
    decision TEXT NOT NULL,
    consensus_percentage REAL NOT NULL,
    confidence_level TEXT NOT NULL,
    is_high_confidence INTEGER NOT NULL,
    price_at_trigger REAL NOT NULL,
    signal_timestamp INTEGER NOT NULL  -- epoch ms
);
"""

_CREATE_SIGNALS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_signals_market_time ON signals(market_id, signal_timestamp);
"""

_CREATE_TRIGGERS = """
CREATE TABLE IF NOT EXISTS triggers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    market_id TEXT NOT NULL,
    trigger_type TEXT NOT NULL,
    status TEXT NOT NULL,
    payload TEXT NOT NULL,
    score REAL NOT NULL,
    created_at INTEGER NOT NULL,
    expires_at INTEGER NOT NULL,
    triggered_at INTEGER
);
"""

# Enforces the single-active-trigger rule inside the database itself
_CREATE_TRIGGERS_ACTIVE_INDEX = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_triggers_one_active
ON triggers(market_id, trigger_type) WHERE status = 'active';
"""

_CREATE_TRIGGERS_STATUS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_triggers_status ON triggers(status, expires_at);
"""

_CREATE_SNAPSHOTS = """
CREATE TABLE IF NOT EXISTS price_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    market_id TEXT NOT NULL,
    price REAL NOT NULL,
    timestamp INTEGER NOT NULL
);
"""

_CREATE_SNAPSHOTS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_snapshots_market_time ON price_snapshots(market_id, timestamp);
"""

_CREATE_WHALES = """
CREATE TABLE IF NOT EXISTS whale_profiles (
    address TEXT PRIMARY KEY,
    total_trades INTEGER NOT NULL,
    total_volume REAL NOT NULL,
    resolved_trades INTEGER NOT NULL DEFAULT 0,
    correct_predictions INTEGER NOT NULL DEFAULT 0,
    win_rate REAL,  -- NULL until MIN_RESOLVED_FOR_WIN_RATE trades resolved
    is_smart_money INTEGER NOT NULL DEFAULT 0,
    preferred_categories TEXT NOT NULL DEFAULT '[]',
    first_seen_at INTEGER NOT NULL,
    last_seen_at INTEGER NOT NULL
);
"""

_CREATE_OVERRIDES = """
CREATE TABLE IF NOT EXISTS overrides (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);
"""

_FILTERS_KEY = "signal_filters"

_SIGNAL_COLUMNS = (
    "id, market_id, trigger_trades, consensus, confidence_level, "
    "price_at_trigger, signal_timestamp"
)
_TRIGGER_COLUMNS = (
    "id, market_id, trigger_type, status, payload, score, created_at, expires_at, triggered_at"
)


def _row_to_signal(row: aiosqlite.Row) -> Signal:
    return Signal(
        id=row["id"],
        market_id=row["market_id"],
        trigger_trades=[Trade.from_dict(t) for t in json.loads(row["trigger_trades"])],
        consensus=ConsensusResult.from_dict(json.loads(row["consensus"])),
        confidence_level=ConfidenceLevel(row["confidence_level"]),
        price_at_trigger=row["price_at_trigger"],
        signal_timestamp=from_ms(row["signal_timestamp"]),
    )


def _row_to_trigger(row: aiosqlite.Row) -> Trigger:
    trigger_type = TriggerType(row["trigger_type"])
    return Trigger(
        id=row["id"],
        market_id=row["market_id"],
        trigger_type=trigger_type,
        status=TriggerStatus(row["status"]),
        payload=payload_from_dict(trigger_type, json.loads(row["payload"])),
        score=row["score"],
        created_at=from_ms(row["created_at"]),
        expires_at=from_ms(row["expires_at"]),
        triggered_at=from_ms(row["triggered_at"]) if row["triggered_at"] is not None else None,
    )


def _row_to_whale(row: aiosqlite.Row) -> WhaleProfile:
    return WhaleProfile(
        address=row["address"],
        total_trades=row["total_trades"],
        total_volume=row["total_volume"],
        resolved_trades=row["resolved_trades"],
        correct_predictions=row["correct_predictions"],
        win_rate=row["win_rate"],
        is_smart_money=bool(row["is_smart_money"]),
        preferred_categories=tuple(json.loads(row["preferred_categories"])),
    )


class SignalStore:
    """Persistence for everything the signal and trigger engines read or write.

    Every method opens its own short-lived connection, so one store object
    can be shared by concurrent handlers. Multi-statement writes that must
    be atomic run inside one connection and commit once.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or get_settings().db_path
        self._initialized = False

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(str(self._db_path))

    async def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        if self._initialized:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            for statement in (
                _CREATE_SIGNALS,
                _CREATE_SIGNALS_INDEX,
                _CREATE_TRIGGERS,
                _CREATE_TRIGGERS_ACTIVE_INDEX,
                _CREATE_TRIGGERS_STATUS_INDEX,
                _CREATE_SNAPSHOTS,
                _CREATE_SNAPSHOTS_INDEX,
                _CREATE_WHALES,
                _CREATE_OVERRIDES,
            ):
                await db.execute(statement)
            await db.commit()
        self._initialized = True

    # --- signals ---

    async def insert_signal(self, signal: Signal) -> int:
        """Persist a new signal. Returns the row ID."""
        await self._ensure_db()
        async with self._connect() as db:
            cursor = await db.execute(
                """INSERT INTO signals
                   (market_id, trigger_trades, consensus, decision,
                    consensus_percentage, confidence_level, is_high_confidence,
                    price_at_trigger, signal_timestamp)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    signal.market_id,
                    json.dumps([t.to_dict() for t in signal.trigger_trades]),
                    json.dumps(signal.consensus.to_dict()),
                    signal.consensus.decision.value,
                    signal.consensus.consensus_percentage,
                    signal.confidence_level.value,
                    int(signal.is_high_confidence),
                    signal.price_at_trigger,
                    to_ms(signal.signal_timestamp),
                ),
            )
            await db.commit()
            signal.id = cursor.lastrowid
            return cursor.lastrowid

    async def get_signal(self, signal_id: int) -> Signal | None:
        await self._ensure_db()
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_SIGNAL_COLUMNS} FROM signals WHERE id = ?", (signal_id,),
            )
            row = await cursor.fetchone()
            return _row_to_signal(row) if row else None

    async def get_recent_signal(self, market_id: str, since: datetime) -> Signal | None:
        """Most recent signal for a market with signal_timestamp >= since."""
        await self._ensure_db()
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"""SELECT {_SIGNAL_COLUMNS} FROM signals
                    WHERE market_id = ? AND signal_timestamp >= ?
                    ORDER BY signal_timestamp DESC, id DESC LIMIT 1""",
                (market_id, to_ms(since)),
            )
            row = await cursor.fetchone()
            return _row_to_signal(row) if row else None

    async def append_trigger_trade(self, signal_id: int, trade: Trade) -> None:
        """Append a trade to a signal's trigger list in a single UPDATE."""
        await self._ensure_db()
        async with self._connect() as db:
            cursor = await db.execute(
                """UPDATE signals
                   SET trigger_trades = json_insert(trigger_trades, '$[#]', json(?))
                   WHERE id = ?""",
                (json.dumps(trade.to_dict()), signal_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise KeyError(f"Signal {signal_id} not found")

    async def list_signals(
        self,
        limit: int = 20,
        only_high_confidence: bool = False,
        decision: Decision | None = None,
    ) -> list[Signal]:
        """Latest signals, newest first."""
        await self._ensure_db()
        clauses: list[str] = []
        params: list[object] = []
        if only_high_confidence:
            clauses.append("is_high_confidence = 1")
        if decision is not None:
            clauses.append("decision = ?")
            params.append(decision.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"""SELECT {_SIGNAL_COLUMNS} FROM signals {where}
                    ORDER BY signal_timestamp DESC, id DESC LIMIT ?""",
                (*params, limit),
            )
            rows = await cursor.fetchall()
            return [_row_to_signal(row) for row in rows]

    async def get_signal_stats(self, now: datetime) -> dict:
        """Counts of signals overall, in the last day and week, and high-confidence."""
        await self._ensure_db()
        now_ms = to_ms(now)
        day_ms = 24 * 60 * 60 * 1000
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """SELECT COUNT(*) AS total,
                          COALESCE(SUM(signal_timestamp >= ?), 0) AS last_24h,
                          COALESCE(SUM(signal_timestamp >= ?), 0) AS last_7d,
                          COALESCE(SUM(is_high_confidence), 0) AS high
                   FROM signals""",
                (now_ms - day_ms, now_ms - 7 * day_ms),
            )
            row = await cursor.fetchone()
            total = row["total"]
            return {
                "total_signals": total,
                "signals_last_24h": row["last_24h"],
                "signals_last_7d": row["last_7d"],
                "high_confidence_signals": row["high"],
                "high_confidence_percentage": round(row["high"] / total * 100) if total > 0 else 0,
            }

    # --- triggers ---

    async def get_active_trigger(
        self, market_id: str, trigger_type: TriggerType, now: datetime,
    ) -> Trigger | None:
        """The live trigger of a type for a market, ignoring ones past expiry."""
        await self._ensure_db()
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"""SELECT {_TRIGGER_COLUMNS} FROM triggers
                    WHERE market_id = ? AND trigger_type = ? AND status = 'active'
                    AND expires_at > ?""",
                (market_id, trigger_type.value, to_ms(now)),
            )
            row = await cursor.fetchone()
            return _row_to_trigger(row) if row else None

    async def create_trigger_if_absent(self, trigger: Trigger, now: datetime) -> int | None:
        """Insert an ACTIVE trigger unless one of the same type is live for the market.

        Lapsed active rows for the pair are expired first; both statements
        commit together. Returns the new row ID, or None when a live trigger
        already exists.
        """
        await self._ensure_db()
        async with self._connect() as db:
            await db.execute(
                """UPDATE triggers SET status = 'expired'
                   WHERE market_id = ? AND trigger_type = ? AND status = 'active'
                   AND expires_at <= ?""",
                (trigger.market_id, trigger.trigger_type.value, to_ms(now)),
            )
            cursor = await db.execute(
                """INSERT OR IGNORE INTO triggers
                   (market_id, trigger_type, status, payload, score, created_at, expires_at)
                   VALUES (?, ?, 'active', ?, ?, ?, ?)""",
                (
                    trigger.market_id,
                    trigger.trigger_type.value,
                    json.dumps(payload_to_dict(trigger.payload)),
                    trigger.score,
                    to_ms(trigger.created_at),
                    to_ms(trigger.expires_at),
                ),
            )
            await db.commit()
            if cursor.rowcount != 1:
                return None
            trigger.id = cursor.lastrowid
            trigger.status = TriggerStatus.ACTIVE
            return cursor.lastrowid

    async def get_trigger(self, trigger_id: int) -> Trigger | None:
        await self._ensure_db()
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_TRIGGER_COLUMNS} FROM triggers WHERE id = ?", (trigger_id,),
            )
            row = await cursor.fetchone()
            return _row_to_trigger(row) if row else None

    async def mark_trigger_triggered(self, trigger_id: int, now: datetime) -> None:
        """Move a live ACTIVE trigger to TRIGGERED.

        Raises:
            KeyError: no trigger with that ID
            ValueError: the trigger is not live (already terminal or past expiry)
        """
        await self._ensure_db()
        async with self._connect() as db:
            cursor = await db.execute(
                """UPDATE triggers SET status = 'triggered', triggered_at = ?
                   WHERE id = ? AND status = 'active' AND expires_at > ?""",
                (to_ms(now), trigger_id, to_ms(now)),
            )
            await db.commit()
            updated = cursor.rowcount
        if updated == 0:
            existing = await self.get_trigger(trigger_id)
            if existing is None:
                raise KeyError(f"Trigger {trigger_id} not found")
            raise ValueError(f"Trigger {trigger_id} is not active (status={existing.status.value})")

    async def expire_triggers(self, now: datetime) -> int:
        """Expire every ACTIVE trigger whose expiry has passed. Returns the count."""
        await self._ensure_db()
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE triggers SET status = 'expired' WHERE status = 'active' AND expires_at <= ?",
                (to_ms(now),),
            )
            await db.commit()
            return cursor.rowcount

    async def list_active_triggers(self, now: datetime, market_id: str | None = None) -> list[Trigger]:
        """Live triggers, highest score first, optionally for one market."""
        await self._ensure_db()
        query = f"SELECT {_TRIGGER_COLUMNS} FROM triggers WHERE status = 'active' AND expires_at > ?"
        params: list[object] = [to_ms(now)]
        if market_id is not None:
            query += " AND market_id = ?"
            params.append(market_id)
        query += " ORDER BY score DESC, id"
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [_row_to_trigger(row) for row in rows]

    # --- price snapshots ---

    async def record_price_snapshot(self, market_id: str, price: float, timestamp: datetime) -> int:
        await self._ensure_db()
        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT INTO price_snapshots (market_id, price, timestamp) VALUES (?, ?, ?)",
                (market_id, price, to_ms(timestamp)),
            )
            await db.commit()
            return cursor.lastrowid

    async def get_price_snapshots(self, market_id: str, since: datetime) -> list[PriceSnapshot]:
        """Snapshots for a market at or after ``since``, oldest first."""
        await self._ensure_db()
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """SELECT id, market_id, price, timestamp FROM price_snapshots
                   WHERE market_id = ? AND timestamp >= ?
                   ORDER BY timestamp, id""",
                (market_id, to_ms(since)),
            )
            rows = await cursor.fetchall()
            return [
                PriceSnapshot(
                    id=row["id"],
                    market_id=row["market_id"],
                    price=row["price"],
                    timestamp=from_ms(row["timestamp"]),
                )
                for row in rows
            ]

    async def prune_price_snapshots(self, before: datetime, limit: int = 1000) -> int:
        """Delete up to ``limit`` snapshots older than ``before``. Returns the count."""
        await self._ensure_db()
        async with self._connect() as db:
            cursor = await db.execute(
                """DELETE FROM price_snapshots WHERE id IN (
                       SELECT id FROM price_snapshots WHERE timestamp < ? ORDER BY timestamp LIMIT ?
                   )""",
                (to_ms(before), limit),
            )
            await db.commit()
            return cursor.rowcount

    # --- whale profiles ---

    async def get_whale_profile(self, address: str) -> WhaleProfile | None:
        await self._ensure_db()
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM whale_profiles WHERE address = ?", (address.lower(),),
            )
            row = await cursor.fetchone()
            return _row_to_whale(row) if row else None

    async def upsert_whale_profile(
        self, address: str, trade_size: float, category: str, now: datetime,
    ) -> WhaleProfile | None:
        """Count one more trade for a wallet, creating its profile if needed."""
        await self._ensure_db()
        address = address.lower()
        existing = await self.get_whale_profile(address)
        async with self._connect() as db:
            if existing is None:
                categories = [category] if category else []
                await db.execute(
                    """INSERT INTO whale_profiles
                       (address, total_trades, total_volume, preferred_categories,
                        first_seen_at, last_seen_at)
                       VALUES (?, 1, ?, ?, ?, ?)
                       ON CONFLICT (address) DO UPDATE
                       SET total_trades = total_trades + 1,
                           total_volume = total_volume + excluded.total_volume,
                           last_seen_at = excluded.last_seen_at""",
                    (address, trade_size, json.dumps(categories), to_ms(now), to_ms(now)),
                )
            else:
                categories = list(existing.preferred_categories)
                if category and category not in categories:
                    categories.append(category)
                await db.execute(
                    """UPDATE whale_profiles
                       SET total_trades = total_trades + 1,
                           total_volume = total_volume + ?,
                           preferred_categories = ?,
                           last_seen_at = ?
                       WHERE address = ?""",
                    (trade_size, json.dumps(categories[:5]), to_ms(now), address),
                )
            await db.commit()
        return await self.get_whale_profile(address)

    async def record_whale_outcome(self, address: str, was_correct: bool) -> WhaleProfile | None:
        """Update a wallet's accuracy after one of its trades resolved.

        Returns None for unknown wallets.
        """
        profile = await self.get_whale_profile(address)
        if profile is None:
            return None

        resolved = profile.resolved_trades + 1
        correct = profile.correct_predictions + (1 if was_correct else 0)
        win_rate = correct / resolved if resolved >= MIN_RESOLVED_FOR_WIN_RATE else None
        is_smart_money = win_rate is not None and win_rate > SMART_MONEY_WIN_RATE

        async with self._connect() as db:
            await db.execute(
                """UPDATE whale_profiles
                   SET resolved_trades = ?, correct_predictions = ?,
                       win_rate = ?, is_smart_money = ?
                   WHERE address = ?""",
                (resolved, correct, win_rate, int(is_smart_money), profile.address),
            )
            await db.commit()
        return await self.get_whale_profile(profile.address)

    # --- filter overrides ---

    async def save_filter_overrides(self, overrides: dict[str, object], now: datetime) -> None:
        """Merge moderation overrides into the persisted set."""
        current = await self.load_filter_overrides()
        current.update(overrides)
        async with self._connect() as db:
            await db.execute(
                """INSERT INTO overrides (key, data, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT (key) DO UPDATE
                   SET data = excluded.data, updated_at = excluded.updated_at""",
                (_FILTERS_KEY, json.dumps(current), to_ms(now)),
            )
            await db.commit()

    async def load_filter_overrides(self) -> dict[str, object]:
        """Persisted moderation overrides; empty when none were saved."""
        await self._ensure_db()
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT data FROM overrides WHERE key = ?", (_FILTERS_KEY,),
            )
            row = await cursor.fetchone()
            return json.loads(row[0]) if row else {}
