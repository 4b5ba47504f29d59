"""
ContextMemory - bounded conversational context for multi-turn assistants.

This package decides which messages to keep when a conversation must be
shrunk, and accumulates a compact, capacity-bounded memory of task progress,
recurring patterns and mistakes, persisted to a key-value store.
"""

from .interfaces import KeyValueStore, ContextStateKey, STATE_KEYS
from .memory_backends import InMemoryKeyValueStore, SQLiteKeyValueStore
from .models import (
    ContextMemory,
    TaskContext,
    TaskProgress,
    TechnicalContext,
    ProjectStructure,
    UserContext,
    UserHistory,
    CommandEntry,
    PatternEntry,
    MistakeEntry,
)

# Settings
from .settings import (
    ModeSettings,
    ContextMemorySettings,
    SettingsValidationError,
    DEFAULT_MODE_SETTINGS,
    DEFAULT_MEMORY_SETTINGS,
    validate_context_memory_settings,
    resolve_limits,
)

# Extraction and scoring
from .patterns import (
    CriticalContext,
    extract_patterns,
    extract_technical_details,
    extract_critical_context,
    message_text,
)
from .importance import ImportanceResult, ImportanceSignal, DEFAULT_SIGNALS, score_message
from .truncation import (
    TruncationResult,
    ImportanceTruncationStrategy,
    select_messages,
    truncate_half_conversation,
)

# Memory management
from .context_manager import ContextManager, ContextConfig
from .validation import (
    ContextValidationResult,
    validate_for_tool_use,
    validate_for_completion,
    validate_context_completeness,
    has_sufficient_technical_context,
    is_context_fresh,
    has_blocking_issues,
)

__version__ = "0.1.0"
__all__ = [
    # Storage
    "KeyValueStore",
    "ContextStateKey",
    "STATE_KEYS",
    "InMemoryKeyValueStore",
    "SQLiteKeyValueStore",
    # Models
    "ContextMemory",
    "TaskContext",
    "TaskProgress",
    "TechnicalContext",
    "ProjectStructure",
    "UserContext",
    "UserHistory",
    "CommandEntry",
    "PatternEntry",
    "MistakeEntry",
    # Settings
    "ModeSettings",
    "ContextMemorySettings",
    "SettingsValidationError",
    "DEFAULT_MODE_SETTINGS",
    "DEFAULT_MEMORY_SETTINGS",
    "validate_context_memory_settings",
    "resolve_limits",
    # Extraction and scoring
    "CriticalContext",
    "extract_patterns",
    "extract_technical_details",
    "extract_critical_context",
    "message_text",
    "ImportanceResult",
    "ImportanceSignal",
    "DEFAULT_SIGNALS",
    "score_message",
    # Truncation
    "TruncationResult",
    "ImportanceTruncationStrategy",
    "select_messages",
    "truncate_half_conversation",
    # Context Manager
    "ContextManager",
    "ContextConfig",
    # Validation
    "ContextValidationResult",
    "validate_for_tool_use",
    "validate_for_completion",
    "validate_context_completeness",
    "has_sufficient_technical_context",
    "is_context_fresh",
    "has_blocking_issues",
]
