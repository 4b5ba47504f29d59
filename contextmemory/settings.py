"""
Context memory settings.

Settings are immutable snapshots. Updating them builds a new snapshot, and the
capacity limits in effect are always derived through ``resolve_limits``:

    fallback limits -> mode table entry -> explicit overrides
"""

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Annotated, Dict, Any, List, Mapping, Optional

from pydantic import BaseModel, Field, StrictBool, StrictInt, ValidationError
from pydantic.dataclasses import dataclass as pydantic_dataclass

logger = logging.getLogger(__name__)

# Operating modes shipped with default limits
MODE_CODE = 'code'
MODE_ARCHITECT = 'architect'
MODE_ASK = 'ask'

DEFAULT_MODE = MODE_CODE

_LIMIT_FIELDS = {
    'maxHistoryItems': 'max_history_items',
    'maxPatterns': 'max_patterns',
    'maxMistakes': 'max_mistakes',
}


Limit = Annotated[StrictInt, Field(ge=1)]


class SettingsValidationError(ValueError):
    """Raised when a settings object does not match the expected schema."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Invalid context memory settings: " + "; ".join(errors))


@pydantic_dataclass(frozen=True)
class ModeSettings:
    """
    Capacity limits for the bounded history lists.

    Every limit must be an integer >= 1; violations raise
    ``pydantic.ValidationError`` (a ValueError).

    Attributes:
        max_history_items: Maximum recent commands kept
        max_patterns: Maximum common patterns kept
        max_mistakes: Maximum mistakes kept
    """
    max_history_items: Limit = 50
    max_patterns: Limit = 20
    max_mistakes: Limit = 10

    def to_dict(self) -> Dict[str, int]:
        return {
            'maxHistoryItems': self.max_history_items,
            'maxPatterns': self.max_patterns,
            'maxMistakes': self.max_mistakes,
        }


DEFAULT_MODE_SETTINGS: Mapping[str, ModeSettings] = MappingProxyType({
    MODE_CODE: ModeSettings(max_history_items=50, max_patterns=20, max_mistakes=10),
    MODE_ARCHITECT: ModeSettings(max_history_items=30, max_patterns=15, max_mistakes=5),
    MODE_ASK: ModeSettings(max_history_items=20, max_patterns=10, max_mistakes=3),
})


@dataclass(frozen=True)
class ContextMemorySettings:
    """
    Snapshot of the memory system settings.

    Attributes:
        enabled: When False, recording operations are silent no-ops
        mode_settings: Limits per mode name
    """
    enabled: bool = True
    mode_settings: Mapping[str, ModeSettings] = field(default_factory=lambda: DEFAULT_MODE_SETTINGS)

    def __post_init__(self):
        # Freeze the table so a snapshot can never change after creation
        object.__setattr__(self, 'mode_settings', MappingProxyType(dict(self.mode_settings)))

    def with_updates(
        self,
        enabled: Optional[bool] = None,
        mode_settings: Optional[Mapping[str, ModeSettings]] = None,
    ) -> 'ContextMemorySettings':
        """
        Build a new snapshot with the given fields replaced.

        ``mode_settings`` entries are merged per mode into the current table.
        """
        changes: Dict[str, Any] = {}
        if enabled is not None:
            changes['enabled'] = enabled
        if mode_settings is not None:
            merged = dict(self.mode_settings)
            merged.update(mode_settings)
            changes['mode_settings'] = merged
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enabled': self.enabled,
            'modeSettings': {mode: s.to_dict() for mode, s in self.mode_settings.items()},
        }


DEFAULT_MEMORY_SETTINGS = ContextMemorySettings()


class ModeSettingsModel(BaseModel):
    """Wire shape of one mode's limits."""
    max_history_items: Limit = Field(alias='maxHistoryItems')
    max_patterns: Limit = Field(alias='maxPatterns')
    max_mistakes: Limit = Field(alias='maxMistakes')


class ContextMemorySettingsModel(BaseModel):
    """Wire shape of the settings object."""
    enabled: StrictBool
    mode_settings: Dict[str, ModeSettingsModel] = Field(alias='modeSettings')


def _format_error(error: Dict[str, Any]) -> str:
    path = '.'.join(str(part) for part in error['loc']) or 'settings'
    return f"{path}: {error['msg']}"


def validate_context_memory_settings(raw: Any) -> ContextMemorySettings:
    """
    Validate a settings object and convert it to a snapshot.

    Expected shape::

        {
            "enabled": bool,
            "modeSettings": {
                "<mode>": {"maxHistoryItems": int, "maxPatterns": int, "maxMistakes": int}
            }
        }

    Every limit must be an integer >= 1.

    Args:
        raw: Settings as loaded from configuration (e.g. parsed JSON).

    Returns:
        ContextMemorySettings snapshot.

    Raises:
        SettingsValidationError: If the object does not match the schema.
            All problems are reported at once, each with its dotted path.
    """
    try:
        parsed = ContextMemorySettingsModel.model_validate(raw)
    except ValidationError as e:
        errors = [_format_error(error) for error in e.errors()]
        logger.debug(f"Rejected context memory settings: {errors}")
        raise SettingsValidationError(errors) from e

    return ContextMemorySettings(
        enabled=parsed.enabled,
        mode_settings={
            mode: ModeSettings(**entry.model_dump())
            for mode, entry in parsed.mode_settings.items()
        },
    )


def resolve_limits(
    settings: ContextMemorySettings,
    mode: str,
    fallback: ModeSettings,
    overrides: Optional[Mapping[str, int]] = None,
) -> ModeSettings:
    """
    Resolve the capacity limits in effect for a mode.

    Resolution order, later layers winning:
        1. ``fallback`` limits
        2. the mode's entry in ``settings.mode_settings``, if any
        3. ``overrides`` (keys are ModeSettings field names, None values ignored)

    Args:
        settings: Current settings snapshot.
        mode: Active mode name.
        fallback: Limits used when the mode has no table entry.
        overrides: Optional explicit per-field overrides.

    Returns:
        The resolved ModeSettings.

    Raises:
        ValueError: If an override names an unknown field or is not >= 1.
    """
    resolved = settings.mode_settings.get(mode, fallback)
    if overrides:
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - set(_LIMIT_FIELDS.values())
        if unknown:
            raise ValueError(f"Unknown limit override(s): {sorted(unknown)}")
        resolved = replace(resolved, **changes)
    return resolved
