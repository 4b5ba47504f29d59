"""
Importance-preserving truncation of conversation history.

Halves a conversation by message count: the first message (the task anchor)
is always kept, and the highest-scoring remaining messages fill the rest of
the budget. Retained messages keep their original order; the conversation is
thinned, never reordered. Token budgets are not considered.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple

from .context_manager import ContextManager
from .importance import DEFAULT_SIGNALS, ImportanceResult, ImportanceSignal, score_message
from .patterns import dedupe, extract_patterns, message_text

logger = logging.getLogger(__name__)

# Messages scoring at least this much have their patterns recorded
PRESERVATION_THRESHOLD = 5


@dataclass
class TruncationResult:
    """
    Result of a truncation pass.

    Attributes:
        messages: Retained messages, anchor first, in original order.
        kept_indices: Original indices of the retained messages.
        dropped_indices: Original indices of the dropped messages.
        scores: Importance of every non-anchor message, keyed by original index.
        preserved_patterns: Patterns found in messages at or above the
            preservation threshold, whether or not they were retained.
        metadata: Strategy-specific metadata.
    """
    messages: List[Dict[str, Any]]
    kept_indices: List[int] = field(default_factory=list)
    dropped_indices: List[int] = field(default_factory=list)
    scores: Dict[int, ImportanceResult] = field(default_factory=dict)
    preserved_patterns: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


class ImportanceTruncationStrategy:
    """
    Keep the anchor message plus the most important half of the rest.

    Deterministic: ties in score are broken by original position.
    """

    def __init__(
        self,
        preservation_threshold: int = PRESERVATION_THRESHOLD,
        signals: Tuple[ImportanceSignal, ...] = DEFAULT_SIGNALS,
    ):
        """
        Initialize strategy.

        Args:
            preservation_threshold: Minimum score for a message's patterns
                to be reported in ``preserved_patterns``.
            signals: Importance signal table used for scoring.
        """
        self._threshold = preservation_threshold
        self._signals = signals

    @property
    def name(self) -> str:
        return "preserve_important"

    def apply(self, messages: List[Dict[str, Any]]) -> TruncationResult:
        """
        Select the messages to retain.

        Args:
            messages: Non-empty conversation, oldest first.

        Returns:
            TruncationResult with ceil(len(messages) / 2) retained messages.

        Raises:
            ValueError: If ``messages`` is empty.
        """
        if not messages:
            raise ValueError("Cannot truncate an empty conversation")

        if len(messages) == 1:
            return TruncationResult(
                messages=list(messages),
                kept_indices=[0],
                metadata={'strategy': self.name, 'target_length': 1},
            )

        # Score everything except the anchor
        scores = {
            index: score_message(message, self._signals)
            for index, message in enumerate(messages)
            if index > 0
        }

        target_length = math.ceil(len(messages) / 2)
        keep_count = max(target_length - 1, 0)

        # sorted() is stable, so equal scores stay in conversation order
        ranked = sorted(scores, key=lambda index: scores[index].score, reverse=True)
        selected = sorted(ranked[:keep_count])

        kept_indices = [0] + selected
        kept = set(kept_indices)
        dropped_indices = [index for index in range(len(messages)) if index not in kept]

        preserved = []
        for index in sorted(scores):
            if scores[index].score >= self._threshold:
                preserved.extend(extract_patterns(message_text(messages[index])))

        logger.debug(
            f"Truncated conversation from {len(messages)} to {len(kept_indices)} messages "
            f"({len(dropped_indices)} dropped)"
        )

        return TruncationResult(
            messages=[messages[index] for index in kept_indices],
            kept_indices=kept_indices,
            dropped_indices=dropped_indices,
            scores=scores,
            preserved_patterns=dedupe(preserved),
            metadata={'strategy': self.name, 'target_length': target_length},
        )


def select_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Return the retained messages for a conversation, without recording anything."""
    return ImportanceTruncationStrategy().apply(messages).messages


async def truncate_half_conversation(
    messages: List[Dict[str, Any]],
    context_manager: Optional[ContextManager] = None,
    strategy: Optional[ImportanceTruncationStrategy] = None,
) -> List[Dict[str, Any]]:
    """
    Halve a conversation while preserving its most important messages.

    Args:
        messages: Non-empty conversation, oldest first. Never mutated.
        context_manager: If given, every pattern found in a high-importance
            message is recorded with ``record_pattern``, including patterns
            from messages that were dropped.
        strategy: Strategy to apply. Defaults to ImportanceTruncationStrategy().

    Returns:
        The retained messages, anchor first, in original order.

    Raises:
        ValueError: If ``messages`` is empty.
        Exception: Persistence failures from ``record_pattern`` propagate.
    """
    strategy = strategy or ImportanceTruncationStrategy()
    result = strategy.apply(messages)

    if context_manager is not None:
        for pattern in result.preserved_patterns:
            await context_manager.record_pattern(pattern)

    return result.messages
