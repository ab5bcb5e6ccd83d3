"""
Entry Repository — the single versioned value holding all career memory.

Behavioral Contract:
- The entry collection is one value, never independently lockable rows
- Each save appends a new version of the whole MemoryState; nothing is
  updated in place
- A save must be based on the current head version, otherwise it is
  rejected as stale
- Each snapshot is checksummed so tampering is detectable
"""

import hashlib
import json
import sqlite3
from pathlib import Path
from typing import List, Optional

from career_memory.errors import StaleStateError
from career_memory.models.memory import MemoryState, sort_entries


def _checksum(state: MemoryState) -> str:
    payload = json.dumps(state.model_dump(mode="json"), sort_keys=True, default=str)
    return hashlib.sha256(payload.encode()).hexdigest()


class EntryRepository:
    """
    Append-only snapshot store.
    SQLite; `:memory:` for tests.
    """

    def __init__(self, db_path: str = ":memory:", default_timezone: str = "UTC"):
        self.db_path = db_path
        self.default_timezone = default_timezone
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the snapshots table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS snapshots (
                version INTEGER PRIMARY KEY,
                entry_count INTEGER NOT NULL,
                checksum TEXT NOT NULL,
                state_json TEXT NOT NULL,
                saved_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.commit()

    def head_version(self) -> int:
        row = self._conn.execute(
            "SELECT MAX(version) AS head FROM snapshots"
        ).fetchone()
        return row["head"] or 0

    def load(self) -> MemoryState:
        """Latest state, or an empty state at version 0."""
        row = self._conn.execute(
            "SELECT state_json FROM snapshots ORDER BY version DESC LIMIT 1"
        ).fetchone()
        if not row:
            return MemoryState(timezone=self.default_timezone)
        return MemoryState.model_validate_json(row["state_json"])

    def save(self, state: MemoryState) -> MemoryState:
        """Write the next version. Entries are always re-sorted before writing."""
        head = self.head_version()
        if state.version != head:
            raise StaleStateError(
                f"State is based on version {state.version}, head is {head}"
            )

        next_state = state.model_copy(update={
            "version": head + 1,
            "entries": sort_entries(state.entries),
        })
        self._conn.execute(
            """
            INSERT INTO snapshots (version, entry_count, checksum, state_json)
            VALUES (?, ?, ?, ?)
            """,
            (
                next_state.version,
                len(next_state.entries),
                _checksum(next_state),
                json.dumps(next_state.model_dump(mode="json"), default=str),
            ),
        )
        self._conn.commit()
        return next_state

    def reset(self) -> MemoryState:
        """Clear the whole entry set, keeping the timezone preference."""
        current = self.load()
        return self.save(MemoryState(version=current.version, timezone=current.timezone))

    def history(self, limit: int = 20) -> List[dict]:
        """Most recent versions, newest first."""
        rows = self._conn.execute(
            "SELECT version, entry_count, checksum, saved_at FROM snapshots "
            "ORDER BY version DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [dict(r) for r in rows]

    def get_version(self, version: int) -> Optional[MemoryState]:
        row = self._conn.execute(
            "SELECT state_json FROM snapshots WHERE version = ?", (version,)
        ).fetchone()
        return MemoryState.model_validate_json(row["state_json"]) if row else None

    def verify_integrity(self) -> bool:
        """Verify no snapshot has been altered since it was written."""
        rows = self._conn.execute(
            "SELECT state_json, checksum FROM snapshots ORDER BY version"
        ).fetchall()
        for row in rows:
            state = MemoryState.model_validate_json(row["state_json"])
            if _checksum(state) != row["checksum"]:
                return False
        return True

    def count(self) -> int:
        """Total number of stored versions."""
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM snapshots").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
