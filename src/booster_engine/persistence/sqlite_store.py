import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Sequence

KEY_CUSTOM_COMMANDS = "custom_commands"
KEY_LAST_APPLIED = "last_applied_profile"
KEY_AUTHORIZATION = "broker_authorization"


class SqlitePreferenceStore:
    """Key/value preferences backed by a single sqlite table."""

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path).expanduser().resolve()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS preferences (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def get(self, key: str, default: str = "") -> str:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return str(row["value"])

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO preferences (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, str(value), now),
            )

    def get_lines(self, key: str) -> List[str]:
        raw = self.get(key, "")
        return raw.splitlines() if raw else []

    def set_lines(self, key: str, lines: Sequence[str]) -> None:
        self.set(key, "\n".join(str(line) for line in lines))


class MemoryPreferenceStore:
    def __init__(self, initial: Dict[str, str] | None = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: str = "") -> str:
        return self._data.get(key, default)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = str(value)

    def get_lines(self, key: str) -> List[str]:
        raw = self.get(key, "")
        return raw.splitlines() if raw else []

    def set_lines(self, key: str, lines: Sequence[str]) -> None:
        self.set(key, "\n".join(str(line) for line in lines))
