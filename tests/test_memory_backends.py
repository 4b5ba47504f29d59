"""
Unit tests for key-value store backends.
"""

import os
import tempfile
import pytest
from typing import Generator

import aiosqlite

from contextmemory.interfaces import ContextStateKey, STATE_KEYS
from contextmemory.memory_backends import InMemoryKeyValueStore, SQLiteKeyValueStore

pytest_plugins = ('pytest_asyncio',)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def in_memory_store() -> InMemoryKeyValueStore:
    """Fixture for in-memory store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def db_path() -> Generator[str, None, None]:
    """Fixture for a temporary SQLite database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    if os.path.exists(path):
        os.unlink(path)


@pytest.fixture
def sqlite_store(db_path) -> SQLiteKeyValueStore:
    """Fixture for SQLite store with temp file."""
    return SQLiteKeyValueStore(db_path)


def test_state_keys():
    assert STATE_KEYS == (
        'taskContext',
        'technicalContext',
        'userPreferences',
        'commandHistory',
        'patternHistory',
        'mistakeHistory',
        'contextSettings',
    )


# ============================================================================
# InMemory Store Tests
# ============================================================================

class TestInMemoryStore:
    """Tests for InMemoryKeyValueStore."""

    @pytest.mark.asyncio
    async def test_get_missing_key(self, in_memory_store):
        """Test a key that was never set reads as None."""
        assert await in_memory_store.get(ContextStateKey.TASK_CONTEXT) is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, in_memory_store):
        """Test basic set and get functionality."""
        value = {'id': 't1', 'scope': 'demo', 'progress': {'completed': [], 'pending': ['a']}}
        await in_memory_store.set(ContextStateKey.TASK_CONTEXT, value)

        assert await in_memory_store.get(ContextStateKey.TASK_CONTEXT) == value

    @pytest.mark.asyncio
    async def test_set_replaces(self, in_memory_store):
        """Test setting a key twice keeps only the latest value."""
        await in_memory_store.set(ContextStateKey.COMMAND_HISTORY, [{'command': 'a'}])
        await in_memory_store.set(ContextStateKey.COMMAND_HISTORY, [{'command': 'b'}])

        assert await in_memory_store.get(ContextStateKey.COMMAND_HISTORY) == [{'command': 'b'}]

    @pytest.mark.asyncio
    async def test_stored_value_isolated_from_caller(self, in_memory_store):
        """Test mutations on either side do not leak into the store."""
        value = {'theme': 'dark'}
        await in_memory_store.set(ContextStateKey.USER_PREFERENCES, value)
        value['theme'] = 'light'

        loaded = await in_memory_store.get(ContextStateKey.USER_PREFERENCES)
        loaded['extra'] = True

        assert await in_memory_store.get(ContextStateKey.USER_PREFERENCES) == {'theme': 'dark'}

    @pytest.mark.asyncio
    async def test_unknown_key_raises(self, in_memory_store):
        """Test keys outside the fixed set are rejected."""
        with pytest.raises(ValueError, match="Unknown state key"):
            await in_memory_store.set('somethingElse', 1)
        with pytest.raises(ValueError, match="Unknown state key"):
            await in_memory_store.get('somethingElse')

    @pytest.mark.asyncio
    async def test_keys(self, in_memory_store):
        """Test keys lists only keys that were set."""
        assert await in_memory_store.keys() == []
        await in_memory_store.set(ContextStateKey.PATTERN_HISTORY, [])
        assert await in_memory_store.keys() == ['patternHistory']


# ============================================================================
# SQLite Store Tests
# ============================================================================

class TestSQLiteStore:
    """Tests for SQLiteKeyValueStore."""

    @pytest.mark.asyncio
    async def test_get_missing_key(self, sqlite_store):
        """Test a key that was never set reads as None."""
        assert await sqlite_store.get(ContextStateKey.TASK_CONTEXT) is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, sqlite_store):
        """Test JSON values survive a round trip."""
        value = [{'pattern': '<task>x</task>', 'occurrences': 3}]
        await sqlite_store.set(ContextStateKey.PATTERN_HISTORY, value)

        assert await sqlite_store.get(ContextStateKey.PATTERN_HISTORY) == value

    @pytest.mark.asyncio
    async def test_set_replaces(self, sqlite_store):
        """Test upsert replaces the previous value."""
        await sqlite_store.set(ContextStateKey.CONTEXT_SETTINGS, {'enabled': True})
        await sqlite_store.set(ContextStateKey.CONTEXT_SETTINGS, {'enabled': False})

        assert await sqlite_store.get(ContextStateKey.CONTEXT_SETTINGS) == {'enabled': False}
        assert await sqlite_store.keys() == ['contextSettings']

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, db_path):
        """Test a new store on the same file sees earlier writes."""
        first = SQLiteKeyValueStore(db_path)
        await first.set(ContextStateKey.USER_PREFERENCES, {'language': 'english'})

        second = SQLiteKeyValueStore(db_path)
        assert await second.get(ContextStateKey.USER_PREFERENCES) == {'language': 'english'}

    @pytest.mark.asyncio
    async def test_keys_sorted(self, sqlite_store):
        """Test keys are returned in sorted order."""
        await sqlite_store.set(ContextStateKey.TASK_CONTEXT, {})
        await sqlite_store.set(ContextStateKey.COMMAND_HISTORY, [])

        assert await sqlite_store.keys() == ['commandHistory', 'taskContext']

    @pytest.mark.asyncio
    async def test_corrupt_json_reads_as_none(self, sqlite_store, db_path):
        """Test invalid JSON in the table is treated as absent."""
        await sqlite_store.set(ContextStateKey.MISTAKE_HISTORY, [])

        async with aiosqlite.connect(db_path) as conn:
            await conn.execute(
                "UPDATE tb_context_state SET value_json = ? WHERE key = ?",
                ("{not json", ContextStateKey.MISTAKE_HISTORY)
            )
            await conn.commit()

        assert await sqlite_store.get(ContextStateKey.MISTAKE_HISTORY) is None

    @pytest.mark.asyncio
    async def test_unknown_key_raises(self, sqlite_store):
        """Test keys outside the fixed set are rejected."""
        with pytest.raises(ValueError, match="Unknown state key"):
            await sqlite_store.set('somethingElse', 1)

    @pytest.mark.asyncio
    async def test_unserializable_value_raises(self, sqlite_store):
        """Test values that cannot be JSON encoded propagate the error."""
        with pytest.raises(TypeError):
            await sqlite_store.set(ContextStateKey.USER_PREFERENCES, {'callback': object()})
