"""
Abstract interface for the persistent key-value store backing context memory.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional


class ContextStateKey:
    """Fixed set of keys under which context memory is persisted."""

    TASK_CONTEXT = 'taskContext'
    TECHNICAL_CONTEXT = 'technicalContext'
    USER_PREFERENCES = 'userPreferences'
    COMMAND_HISTORY = 'commandHistory'
    PATTERN_HISTORY = 'patternHistory'
    MISTAKE_HISTORY = 'mistakeHistory'
    CONTEXT_SETTINGS = 'contextSettings'


STATE_KEYS = (
    ContextStateKey.TASK_CONTEXT,
    ContextStateKey.TECHNICAL_CONTEXT,
    ContextStateKey.USER_PREFERENCES,
    ContextStateKey.COMMAND_HISTORY,
    ContextStateKey.PATTERN_HISTORY,
    ContextStateKey.MISTAKE_HISTORY,
    ContextStateKey.CONTEXT_SETTINGS,
)


def check_key(key: str) -> None:
    """Raise ValueError if ``key`` is not one of the known state keys."""
    if key not in STATE_KEYS:
        raise ValueError(f"Unknown state key: {key}. Available: {list(STATE_KEYS)}")


class KeyValueStore(ABC):
    """Abstract base class for durable key-value storage backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """
        Load the value stored under a key.

        Args:
            key: One of the ``STATE_KEYS``

        Returns:
            The stored JSON-compatible value, or None if nothing was stored
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """
        Store a value under a key, replacing any previous value.

        Args:
            key: One of the ``STATE_KEYS``
            value: JSON-compatible value (dicts, lists, strings, numbers)
        """
        pass

    @abstractmethod
    async def keys(self) -> List[str]:
        """Return the keys that currently hold a value."""
        pass
