"""
Heuristic importance scoring for conversation messages.

Scores are additive over independent textual signals. Matching is a
case-insensitive substring check on the flattened message text; there is no
language understanding involved.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .patterns import message_text


@dataclass
class ImportanceResult:
    """
    Importance of a single message.

    Attributes:
        score: Sum of the weights of all matched signals.
        reasons: Descriptions of the matched signals, in table order.
    """
    score: int = 0
    reasons: List[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return ", ".join(self.reasons)


@dataclass(frozen=True)
class ImportanceSignal:
    """
    A scoring signal.

    Attributes:
        markers: Substrings, any of which triggers the signal.
        weight: Score added when the signal matches.
        reason: Human-readable description of the signal.
        role: If set, the signal only applies to messages with this role.
    """
    markers: Tuple[str, ...]
    weight: int
    reason: str
    role: Optional[str] = None

    def matches(self, role: Optional[str], lowered_text: str) -> bool:
        if self.role is not None and role != self.role:
            return False
        return any(marker.lower() in lowered_text for marker in self.markers)


DEFAULT_SIGNALS: Tuple[ImportanceSignal, ...] = (
    ImportanceSignal(('<task>',), 10, "Contains task definition"),
    ImportanceSignal(('environment_details',), 8, "Contains environment details"),
    ImportanceSignal(('<thinking>',), 5, "Contains thought process"),
    # <tool> plus underscore-named tool tags such as <tool_use>
    ImportanceSignal(('<tool>', '<tool_'), 6, "Contains tool usage", role='assistant'),
    ImportanceSignal(('<feedback>',), 7, "Contains user feedback", role='user'),
    ImportanceSignal(('<error>', 'error:'), 4, "Contains error context"),
)


def score_message(
    message: Dict[str, Any],
    signals: Tuple[ImportanceSignal, ...] = DEFAULT_SIGNALS,
) -> ImportanceResult:
    """
    Score how much context a message is presumed to carry.

    Args:
        message: Message dict with 'role' and 'content'.
        signals: Signal table to evaluate, in order.

    Returns:
        ImportanceResult with the summed score and matched reasons.
    """
    lowered = message_text(message).lower()
    role = message.get('role')

    result = ImportanceResult()
    for signal in signals:
        if signal.matches(role, lowered):
            result.score += signal.weight
            result.reasons.append(signal.reason)
    return result
