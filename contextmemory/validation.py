"""
Validation of context memory snapshots.

Validators are pure: they read a ContextMemory, never modify it, and report
problems through a ContextValidationResult instead of raising. A result with
``is_valid=False`` is advisory; callers decide whether to block an action.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from .models import ContextMemory, parse_timestamp

# Context not updated for this long is considered stale
STALE_AFTER = timedelta(minutes=30)

STALE_WARNING = "Context may be stale (no updates in last 30 minutes)"


@dataclass
class ContextValidationResult:
    """
    Result of a context validation.

    Attributes:
        is_valid: True when no required field is missing.
        missing_fields: Required fields (or failed error rules) that are missing.
        warnings: Non-blocking issues.
    """
    is_valid: bool
    missing_fields: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _age(context: ContextMemory, now: Optional[datetime]) -> Optional[timedelta]:
    updated = parse_timestamp(context.task.last_update_time)
    if updated is None:
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        # Naive times are UTC, as for stored timestamps
        now = now.replace(tzinfo=timezone.utc)
    return now - updated


def is_context_fresh(context: ContextMemory, now: Optional[datetime] = None) -> bool:
    """True if the task was updated within the last 30 minutes."""
    age = _age(context, now)
    return age is not None and age < STALE_AFTER


def validate_for_tool_use(context: ContextMemory, now: Optional[datetime] = None) -> ContextValidationResult:
    """Validate context before executing a tool."""
    missing_fields = []
    warnings = []

    if not context.task.id:
        missing_fields.append("task.id")
    if not context.task.scope:
        missing_fields.append("task.scope")
    if not context.task.stage:
        missing_fields.append("task.stage")
    if not context.technical.project_structure.root:
        missing_fields.append("technical.projectStructure.root")

    if not context.task.progress.pending:
        warnings.append("No pending tasks defined - tool use may lack proper context")
    if not is_context_fresh(context, now):
        warnings.append(STALE_WARNING)

    return ContextValidationResult(
        is_valid=not missing_fields,
        missing_fields=missing_fields,
        warnings=warnings,
    )


def validate_for_completion(context: ContextMemory) -> ContextValidationResult:
    """Validate context before marking a task complete."""
    missing_fields = []
    warnings = []

    if not context.task.id:
        missing_fields.append("task.id")
    if not context.task.scope:
        missing_fields.append("task.scope")

    if context.task.progress.pending:
        warnings.append("Task has pending steps that haven't been completed")
    if not context.task.progress.completed:
        warnings.append("No completed steps recorded for this task")

    return ContextValidationResult(
        is_valid=not missing_fields,
        missing_fields=missing_fields,
        warnings=warnings,
    )


# =============================================================================
# Rule table
# =============================================================================

@dataclass(frozen=True)
class ValidationRule:
    """
    A named completeness rule.

    Attributes:
        check: Returns True when the context satisfies the rule.
        message: Description reported when the rule fails.
        severity: 'error' (reported as missing) or 'warning'.
    """
    check: Callable[[ContextMemory, Optional[datetime]], bool]
    message: str
    severity: str


CONTEXT_VALIDATION_RULES: Tuple[Tuple[str, ValidationRule], ...] = (
    ('taskInitialization', ValidationRule(
        check=lambda c, now: bool(c.task.id and c.task.scope),
        message="Task must have both ID and scope defined",
        severity='error',
    )),
    ('taskProgress', ValidationRule(
        check=lambda c, now: bool(c.task.progress.completed or c.task.progress.pending),
        message="Task should have either completed or pending steps",
        severity='warning',
    )),
    ('technicalContext', ValidationRule(
        check=lambda c, now: bool(c.technical.project_structure.root),
        message="Project root path must be defined",
        severity='error',
    )),
    ('recentActivity', ValidationRule(
        check=is_context_fresh,
        message=STALE_WARNING,
        severity='warning',
    )),
)


def validate_context_completeness(context: ContextMemory, now: Optional[datetime] = None) -> ContextValidationResult:
    """
    Apply every rule in CONTEXT_VALIDATION_RULES.

    Failed error rules are reported in ``missing_fields`` as
    ``"<rule name>: <message>"``; failed warning rules add their message
    to ``warnings``.
    """
    missing_fields = []
    warnings = []

    for name, rule in CONTEXT_VALIDATION_RULES:
        if rule.check(context, now):
            continue
        if rule.severity == 'error':
            missing_fields.append(f"{name}: {rule.message}")
        else:
            warnings.append(rule.message)

    return ContextValidationResult(
        is_valid=not missing_fields,
        missing_fields=missing_fields,
        warnings=warnings,
    )


def has_sufficient_technical_context(context: ContextMemory) -> bool:
    """True if the project root and at least one main file are known."""
    structure = context.technical.project_structure
    return bool(structure.root and structure.main_files)


def has_blocking_issues(context: ContextMemory, now: Optional[datetime] = None) -> bool:
    """True if validate_context_completeness reports missing fields."""
    return not validate_context_completeness(context, now).is_valid
