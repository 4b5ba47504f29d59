"""
Key-value store implementations.
"""

import copy
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiosqlite

from .interfaces import KeyValueStore, check_key

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory key-value store implementation."""

    def __init__(self):
        """Initialize in-memory storage."""
        self._store: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        """
        Load the value stored under a key.

        A copy is returned so callers cannot alter what was stored.
        """
        check_key(key)
        if key not in self._store:
            return None
        return copy.deepcopy(self._store[key])

    async def set(self, key: str, value: Any) -> None:
        """Store a copy of ``value`` under ``key``."""
        check_key(key)
        self._store[key] = copy.deepcopy(value)

    async def keys(self) -> List[str]:
        return list(self._store.keys())


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-based persistent key-value store implementation."""

    def __init__(self, db_path: str, create_db: bool = True):
        """
        Initialize SQLite key-value store.

        Args:
            db_path: Path to SQLite database file
            create_db: If True, automatically create the state table if it doesn't exist.
                      If False, skip table creation (assumes table already exists).
        """
        self.db_path = db_path
        self._create_db = create_db

    async def _init_db(self):
        """Initialize database and create the tb_context_state table."""
        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute("""
            CREATE TABLE IF NOT EXISTS tb_context_state (
                key TEXT PRIMARY KEY,
                value_json TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """)
            await conn.commit()

    async def _ensure_db(self):
        # Initialize DB on first use if needed
        if self._create_db:
            await self._init_db()
            self._create_db = False

    async def get(self, key: str) -> Optional[Any]:
        """
        Load the value stored under a key.

        Rows holding invalid JSON are logged and treated as absent.
        """
        check_key(key)
        await self._ensure_db()

        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute(
                "SELECT value_json FROM tb_context_state WHERE key = ?",
                (key,)
            )
            row = await cursor.fetchone()

            if row and row[0] is not None:
                try:
                    return json.loads(row[0])
                except json.JSONDecodeError as e:
                    logger.error(f"Error parsing stored JSON for '{key}': {e}")
                    return None
            return None

    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` as JSON under ``key``, replacing any previous row."""
        check_key(key)
        await self._ensure_db()

        json_data = json.dumps(value)
        now = datetime.now(timezone.utc).isoformat()

        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute(
                """
                INSERT INTO tb_context_state (key, value_json, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json,
                                               updated_at = excluded.updated_at
                """,
                (key, json_data, now)
            )
            await conn.commit()

    async def keys(self) -> List[str]:
        await self._ensure_db()

        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute("SELECT key FROM tb_context_state ORDER BY key")
            rows = await cursor.fetchall()
            return [row[0] for row in rows]
