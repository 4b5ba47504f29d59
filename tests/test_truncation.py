"""
Tests for importance-preserving truncation.
"""

import math
import pytest

from contextmemory.context_manager import ContextManager
from contextmemory.memory_backends import InMemoryKeyValueStore
from contextmemory.truncation import (
    ImportanceTruncationStrategy,
    select_messages,
    truncate_half_conversation,
)

pytest_plugins = ('pytest_asyncio',)


def msg(role, text):
    return {'role': role, 'content': [{'type': 'text', 'text': text}]}


@pytest.fixture
def conversation():
    return [
        msg('user', "<task>\nImplement feature X\n</task>\n<environment_details>\nProject structure info\n</environment_details>"),
        msg('assistant', "<thinking>Analyzing requirements</thinking>\nLet's break this down..."),
        msg('user', "Here's some additional context..."),
        msg('assistant', "<tool>write_to_file</tool>\nWriting implementation..."),
        msg('user', "<feedback>Looks good, but consider adding tests</feedback>"),
        msg('assistant', "Adding tests to implementation..."),
    ]


def plain_conversation(n):
    roles = ['user', 'assistant']
    return [msg(roles[i % 2], f"message {i}") for i in range(n)]


class TestImportanceTruncationStrategy:

    def test_name(self):
        assert ImportanceTruncationStrategy().name == "preserve_important"

    def test_empty_raises(self):
        with pytest.raises(ValueError, match="empty"):
            ImportanceTruncationStrategy().apply([])

    def test_single_message_unchanged(self):
        messages = [msg('user', 'only one')]
        result = ImportanceTruncationStrategy().apply(messages)
        assert result.messages == messages
        assert result.messages[0] is messages[0]
        assert result.dropped_indices == []

    def test_keeps_anchor_and_highest_scores(self, conversation):
        result = ImportanceTruncationStrategy().apply(conversation)

        assert len(result.messages) == 3
        assert result.messages[0] is conversation[0]
        assert result.kept_indices == [0, 3, 4]
        assert result.dropped_indices == [1, 2, 5]
        assert result.scores[4].score == 7
        assert result.scores[3].score == 6

    def test_anchor_not_scored(self, conversation):
        result = ImportanceTruncationStrategy().apply(conversation)
        assert 0 not in result.scores
        assert sorted(result.scores) == [1, 2, 3, 4, 5]

    def test_preserved_patterns_include_dropped_messages(self, conversation):
        result = ImportanceTruncationStrategy().apply(conversation)
        # The thinking message (score 5) is dropped but still meets the threshold
        assert result.preserved_patterns == [
            '<thinking>Analyzing requirements</thinking>',
            '<tool>write_to_file</tool>',
            '<feedback>Looks good, but consider adding tests</feedback>',
        ]

    def test_threshold_is_configurable(self, conversation):
        result = ImportanceTruncationStrategy(preservation_threshold=7).apply(conversation)
        assert result.preserved_patterns == ['<feedback>Looks good, but consider adding tests</feedback>']

    def test_ties_keep_earliest(self):
        messages = plain_conversation(5)
        result = ImportanceTruncationStrategy().apply(messages)
        assert result.kept_indices == [0, 1, 2]

    def test_high_score_late_message_kept_in_order(self):
        messages = plain_conversation(6)
        messages[5] = msg('assistant', 'error: failed to build')
        result = ImportanceTruncationStrategy().apply(messages)
        assert result.kept_indices == [0, 1, 5]

    def test_two_messages_keeps_only_anchor(self):
        messages = [msg('user', 'first'), msg('assistant', '<tool>x</tool>')]
        result = ImportanceTruncationStrategy().apply(messages)
        assert result.messages == [messages[0]]

    def test_does_not_mutate_input(self, conversation):
        snapshot = [dict(m) for m in conversation]
        ImportanceTruncationStrategy().apply(conversation)
        assert conversation == snapshot

    def test_deterministic(self, conversation):
        strategy = ImportanceTruncationStrategy()
        results = [strategy.apply(conversation) for _ in range(10)]
        first = results[0]
        for r in results[1:]:
            assert r.kept_indices == first.kept_indices


class TestSelectionProperties:

    @pytest.mark.parametrize("n", range(1, 12))
    def test_length_is_half_rounded_up(self, n):
        messages = plain_conversation(n)
        assert len(select_messages(messages)) == min(n, math.ceil(n / 2))

    @pytest.mark.parametrize("n", range(1, 12))
    def test_anchor_first_and_order_preserved(self, n):
        messages = plain_conversation(n)
        messages[-1] = msg('user', '<feedback>late</feedback>')
        retained = select_messages(messages)

        assert retained[0] is messages[0]
        positions = [next(i for i, m in enumerate(messages) if m is r) for r in retained]
        assert positions == sorted(positions)


class TestTruncateHalfConversation:

    @pytest.mark.asyncio
    async def test_without_context_manager(self, conversation):
        retained = await truncate_half_conversation(conversation)
        assert retained == [conversation[0], conversation[3], conversation[4]]

    @pytest.mark.asyncio
    async def test_roles_alternate_for_typical_conversation(self, conversation):
        retained = await truncate_half_conversation(conversation)
        assert [m['role'] for m in retained] == ['user', 'assistant', 'user']

    @pytest.mark.asyncio
    async def test_records_preserved_patterns(self, conversation):
        manager = ContextManager(InMemoryKeyValueStore())
        await truncate_half_conversation(conversation, manager)

        patterns = manager.get_context().user.history.common_patterns
        recorded = [p.pattern for p in patterns]
        assert '<thinking>Analyzing requirements</thinking>' in recorded
        assert '<tool>write_to_file</tool>' in recorded
        assert '<feedback>Looks good, but consider adding tests</feedback>' in recorded
        # The anchor is never scored, so its task pattern is not learned here
        assert not any('<task>' in p for p in recorded)

    @pytest.mark.asyncio
    async def test_repeated_truncation_counts_occurrences(self, conversation):
        manager = ContextManager(InMemoryKeyValueStore())
        await truncate_half_conversation(conversation, manager)
        await truncate_half_conversation(conversation, manager)

        patterns = manager.get_context().user.history.common_patterns
        assert all(p.occurrences == 2 for p in patterns)

    @pytest.mark.asyncio
    async def test_disabled_memory_records_nothing(self, conversation):
        manager = ContextManager(InMemoryKeyValueStore())
        await manager.update_settings(enabled=False)

        retained = await truncate_half_conversation(conversation, manager)

        assert len(retained) == 3
        assert manager.get_context().user.history.common_patterns == []

    @pytest.mark.asyncio
    async def test_empty_raises(self):
        with pytest.raises(ValueError):
            await truncate_half_conversation([])
