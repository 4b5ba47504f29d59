"""
ContextManager - bounded context memory with write-through persistence.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Mapping

from .interfaces import KeyValueStore, ContextStateKey
from .models import (
    CommandEntry,
    ContextMemory,
    MistakeEntry,
    PatternEntry,
    ProjectStructure,
    TaskContext,
    TaskProgress,
    TechnicalContext,
    utc_now,
)
from .settings import (
    DEFAULT_MEMORY_SETTINGS,
    DEFAULT_MODE,
    ContextMemorySettings,
    ModeSettings,
    resolve_limits,
    validate_context_memory_settings,
)
from .validation import ContextValidationResult

logger = logging.getLogger(__name__)

# Accepted spellings for technical context fields
_TECHNICAL_FIELDS = {
    'framework': 'framework',
    'language': 'language',
    'patterns': 'patterns',
    'project_structure': 'project_structure',
    'projectStructure': 'project_structure',
    'last_analyzed_files': 'last_analyzed_files',
    'lastAnalyzedFiles': 'last_analyzed_files',
}


@dataclass
class ContextConfig:
    """
    Configuration for ContextManager.

    Attributes:
        max_history_items: Fallback command history limit for modes without settings
        max_patterns: Fallback pattern limit for modes without settings
        max_mistakes: Fallback mistake limit for modes without settings
        mode: Initial operating mode
        settings: Initial settings snapshot
        limit_overrides: Optional per-field limits that win over the mode table
    """
    max_history_items: int = 50
    max_patterns: int = 20
    max_mistakes: int = 10
    mode: str = DEFAULT_MODE
    settings: ContextMemorySettings = field(default_factory=lambda: DEFAULT_MEMORY_SETTINGS)
    limit_overrides: Optional[Dict[str, int]] = None


def _to_project_structure(value: Any) -> ProjectStructure:
    if isinstance(value, ProjectStructure):
        return copy.deepcopy(value)
    if isinstance(value, dict):
        return ProjectStructure.from_dict({
            'root': value.get('root', ''),
            'mainFiles': value.get('mainFiles', value.get('main_files', [])),
            'dependencies': value.get('dependencies', []),
        })
    raise ValueError(f"project_structure must be a ProjectStructure or dict, got {type(value).__name__}")


class ContextManager:
    """
    Owns the context memory of one assistant session.

    Every mutating operation updates the in-memory state first and then
    writes the affected part to the key-value store under a fixed key.
    A failed write is logged and re-raised; the in-memory change is kept,
    so memory and store may disagree afterwards.

    Recording operations (commands, patterns, mistakes) do nothing while
    the memory system is disabled.
    """

    def __init__(self, store: KeyValueStore, config: Optional[ContextConfig] = None):
        """
        Initialize ContextManager.

        Memory starts empty; call ``hydrate`` to load previously persisted state.

        Args:
            store: Durable key-value store for write-through persistence.
            config: Optional configuration for limits, mode and settings.
        """
        self.store = store
        self.config = config or ContextConfig()
        self._fallback = ModeSettings(
            max_history_items=self.config.max_history_items,
            max_patterns=self.config.max_patterns,
            max_mistakes=self.config.max_mistakes,
        )
        self._settings = self.config.settings
        self._mode = self.config.mode
        self._limits = self._resolve_limits()
        self._context = ContextMemory.empty()

    # =========================================================================
    # Settings
    # =========================================================================

    @property
    def settings(self) -> ContextMemorySettings:
        return self._settings

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def limits(self) -> ModeSettings:
        """Capacity limits currently in effect."""
        return self._limits

    def _resolve_limits(self) -> ModeSettings:
        return resolve_limits(
            self._settings,
            self._mode,
            self._fallback,
            self.config.limit_overrides,
        )

    def _enforce_limits(self) -> List[str]:
        """
        Trim every bounded history to the limits in effect.

        Returns:
            State keys of the histories that were shortened.
        """
        history = self._context.user.history
        bounded = (
            (ContextStateKey.COMMAND_HISTORY, history.recent_commands, self._limits.max_history_items),
            (ContextStateKey.PATTERN_HISTORY, history.common_patterns, self._limits.max_patterns),
            (ContextStateKey.MISTAKE_HISTORY, history.mistakes, self._limits.max_mistakes),
        )
        trimmed = []
        for key, entries, limit in bounded:
            if len(entries) > limit:
                del entries[limit:]
                trimmed.append(key)
        return trimmed

    async def _apply_limits(self) -> None:
        """Re-resolve limits, trim histories and persist whatever changed."""
        self._limits = self._resolve_limits()
        trimmed = self._enforce_limits()
        if trimmed:
            logger.debug(f"Trimmed {trimmed} to limits {self._limits}")
        for key in trimmed:
            await self._update_state(key, self._history_record(key))
        await self._persist_settings()

    def _history_record(self, key: str) -> List[Dict[str, Any]]:
        history = self._context.user.history
        entries = {
            ContextStateKey.COMMAND_HISTORY: history.recent_commands,
            ContextStateKey.PATTERN_HISTORY: history.common_patterns,
            ContextStateKey.MISTAKE_HISTORY: history.mistakes,
        }[key]
        return [entry.to_dict() for entry in entries]

    async def set_mode(self, mode: str) -> None:
        """Switch operating mode, trimming histories to the new limits."""
        self._mode = mode
        logger.debug(f"Context memory mode set to '{mode}'")
        await self._apply_limits()

    async def update_settings(
        self,
        enabled: Optional[bool] = None,
        mode_settings: Optional[Mapping[str, ModeSettings]] = None,
    ) -> None:
        """
        Replace the settings snapshot with an updated one.

        Args:
            enabled: New enabled flag, unchanged if None.
            mode_settings: Per-mode limits merged into the current table.
        """
        self._settings = self._settings.with_updates(enabled=enabled, mode_settings=mode_settings)
        await self._apply_limits()

    async def _persist_settings(self) -> None:
        record = self._settings.to_dict()
        record['mode'] = self._mode
        await self._update_state(ContextStateKey.CONTEXT_SETTINGS, record)

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _update_state(self, key: str, value: Any) -> None:
        """Write a value through to the store, re-raising any failure."""
        try:
            await self.store.set(key, value)
        except Exception as e:
            logger.error(f"Failed to persist '{key}'; in-memory state was already updated: {e}")
            raise
        logger.debug(f"Persisted '{key}'")

    async def hydrate(self) -> None:
        """
        Load previously persisted state from the store.

        Keys that were never written keep their current value. Histories
        longer than the current limits are trimmed in memory only.

        Raises:
            SettingsValidationError: If the stored settings record is malformed.
        """
        stored_settings = await self.store.get(ContextStateKey.CONTEXT_SETTINGS)
        if stored_settings is not None:
            self._settings = validate_context_memory_settings({
                'enabled': stored_settings.get('enabled'),
                'modeSettings': stored_settings.get('modeSettings'),
            })
            self._mode = stored_settings.get('mode', self._mode)
            self._limits = self._resolve_limits()

        task = await self.store.get(ContextStateKey.TASK_CONTEXT)
        if task is not None:
            self._context.task = TaskContext.from_dict(task)

        technical = await self.store.get(ContextStateKey.TECHNICAL_CONTEXT)
        if technical is not None:
            self._context.technical = TechnicalContext.from_dict(technical)

        preferences = await self.store.get(ContextStateKey.USER_PREFERENCES)
        if preferences is not None:
            self._context.user.preferences = dict(preferences)

        history = self._context.user.history
        commands = await self.store.get(ContextStateKey.COMMAND_HISTORY)
        if commands is not None:
            history.recent_commands = [CommandEntry.from_dict(c) for c in commands]
        patterns = await self.store.get(ContextStateKey.PATTERN_HISTORY)
        if patterns is not None:
            history.common_patterns = [PatternEntry.from_dict(p) for p in patterns]
            history.common_patterns.sort(key=lambda p: p.occurrences, reverse=True)
        mistakes = await self.store.get(ContextStateKey.MISTAKE_HISTORY)
        if mistakes is not None:
            history.mistakes = [MistakeEntry.from_dict(m) for m in mistakes]

        self._enforce_limits()

        logger.debug("Hydrated context memory from store")

    # =========================================================================
    # Task context
    # =========================================================================

    async def initialize_task_context(self, task_id: str, scope: str) -> None:
        """
        Start a new task, replacing any task in progress.

        Args:
            task_id: Identifier of the new task.
            scope: Description of what the task covers.
        """
        now = utc_now()
        self._context.task = TaskContext(
            id=task_id,
            scope=scope,
            stage="initializing",
            progress=TaskProgress(),
            start_time=now,
            last_update_time=now,
        )
        await self._update_state(ContextStateKey.TASK_CONTEXT, self._context.task.to_dict())

    async def update_task_progress(
        self,
        stage: str,
        completed: Optional[List[str]] = None,
        pending: Optional[List[str]] = None,
    ) -> None:
        """
        Update the task stage and, optionally, its progress lists.

        Args:
            stage: New stage name, always applied.
            completed: Replacement completed steps; None keeps the current list.
            pending: Replacement pending steps; None keeps the current list.
        """
        task = self._context.task
        task.stage = stage
        if completed is not None:
            task.progress.completed = list(completed)
        if pending is not None:
            task.progress.pending = list(pending)
        task.last_update_time = utc_now()
        await self._update_state(ContextStateKey.TASK_CONTEXT, task.to_dict())

    # =========================================================================
    # Technical and user context
    # =========================================================================

    async def update_technical_context(self, updates: Optional[Dict[str, Any]] = None, **fields: Any) -> None:
        """
        Merge new technical information, field by field.

        Each given field replaces the current value wholesale; a new
        ``project_structure`` is not merged with the old one.

        Args:
            updates: Field values keyed by snake_case or camelCase name.
            **fields: Field values as keyword arguments.

        Raises:
            ValueError: If a field name is unknown.
        """
        merged = dict(updates or {})
        merged.update(fields)

        unknown = [name for name in merged if name not in _TECHNICAL_FIELDS]
        if unknown:
            raise ValueError(f"Unknown technical context field(s): {unknown}")

        technical = self._context.technical
        for name, value in merged.items():
            attr = _TECHNICAL_FIELDS[name]
            if attr == 'project_structure':
                value = _to_project_structure(value)
            elif attr in ('patterns', 'last_analyzed_files'):
                value = list(value)
            setattr(technical, attr, value)

        await self._update_state(ContextStateKey.TECHNICAL_CONTEXT, technical.to_dict())

    async def update_user_preferences(self, preferences: Dict[str, Any]) -> None:
        """Merge preferences into the user's preference map."""
        self._context.user.preferences.update(copy.deepcopy(preferences))
        await self._update_state(ContextStateKey.USER_PREFERENCES, copy.deepcopy(self._context.user.preferences))

    # =========================================================================
    # Bounded histories
    # =========================================================================

    async def add_command_to_history(self, command: str) -> None:
        """Record a command, most recent first, dropping the oldest past the limit."""
        if not self.enabled:
            return

        commands = self._context.user.history.recent_commands
        commands.insert(0, CommandEntry(command=command))
        self._enforce_limits()

        await self._update_state(ContextStateKey.COMMAND_HISTORY, [c.to_dict() for c in commands])

    async def record_pattern(self, pattern: str) -> None:
        """
        Count an occurrence of a pattern.

        Patterns are ranked by occurrences, highest first. Past the limit the
        lowest-ranked pattern is dropped, however recently it was seen.
        """
        if not self.enabled:
            return

        patterns = self._context.user.history.common_patterns
        existing = next((p for p in patterns if p.pattern == pattern), None)
        if existing:
            existing.occurrences += 1
        else:
            patterns.append(PatternEntry(pattern=pattern, occurrences=1))

        patterns.sort(key=lambda p: p.occurrences, reverse=True)
        self._enforce_limits()

        await self._update_state(ContextStateKey.PATTERN_HISTORY, [p.to_dict() for p in patterns])

    async def record_mistake(self, mistake_type: str, description: str) -> None:
        """Record a mistake, most recent first, dropping the oldest past the limit."""
        if not self.enabled:
            return

        mistakes = self._context.user.history.mistakes
        mistakes.insert(0, MistakeEntry(type=mistake_type, description=description))
        self._enforce_limits()

        await self._update_state(ContextStateKey.MISTAKE_HISTORY, [m.to_dict() for m in mistakes])

    # =========================================================================
    # Reading
    # =========================================================================

    def get_context(self) -> ContextMemory:
        """Return a deep copy of the current context memory."""
        return copy.deepcopy(self._context)

    def get_context_summary(self) -> str:
        """Condensed, human-readable digest of the context for prompts."""
        task = self._context.task
        technical = self._context.technical
        top_patterns = ", ".join(p.pattern for p in self._context.user.history.common_patterns[:3])
        status = "enabled" if self.enabled else "disabled"

        return (
            f"Current Task: {task.scope} (Stage: {task.stage})\n"
            f"Technical Context: {technical.language or 'Not set'} / {technical.framework or 'Not set'}\n"
            f"Recent Patterns: {top_patterns}\n"
            f"Progress: {len(task.progress.completed)} steps completed, {len(task.progress.pending)} pending\n"
            f"Memory: {status} (Mode: {self._mode})"
        )

    def validate_context(self) -> ContextValidationResult:
        """Quick check that a task is set up, with warnings for thin context."""
        task = self._context.task
        missing_fields = []
        warnings = []

        if not task.id:
            missing_fields.append("task.id")
        if not task.scope:
            missing_fields.append("task.scope")
        if not task.stage:
            missing_fields.append("task.stage")

        if not task.progress.pending:
            warnings.append("No pending tasks defined")
        if not self._context.technical.project_structure.root:
            warnings.append("Project root not set")

        return ContextValidationResult(
            is_valid=not missing_fields,
            missing_fields=missing_fields,
            warnings=warnings,
        )
