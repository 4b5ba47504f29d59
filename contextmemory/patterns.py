"""
Pattern extraction from conversation text.

Provides:
- extract_patterns: tagged snippets such as ``<task>...</task>``
- extract_technical_details: file paths and inline code spans
- extract_critical_context: both, over a whole conversation

Tag matching is first-match and non-greedy: inner content never contains
``<``, so nested tags are not tracked. For ``<a><a>x</a></a>`` the only
pattern found is ``<a>x</a>``.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

# <name>inner</name> with the same name and no '<' inside
TAG_PATTERN = re.compile(r'<([^>]+)>[^<]*</\1>')

# Absolute or relative paths (/src/app.py, src/app.py) or a `code span`.
# A slash right after "<" is a closing tag, not a path.
TECHNICAL_PATTERN = re.compile(r'(?<![<\w/.-])[\w.-]*(?:/[\w.-]+)+|`[^`]+`')


def dedupe(items: Iterable[str]) -> List[str]:
    """Remove exact duplicates, keeping first-seen order."""
    return list(dict.fromkeys(items))


def message_text(message: Dict[str, Any]) -> str:
    """
    Flatten a message's content to text.

    ``content`` may be a string or a list of blocks. String blocks and dict
    blocks carrying a ``text`` key contribute their text; any other block
    (images, tool results...) contributes an empty string. Blocks are joined
    with newlines.
    """
    content = message.get('content', '')
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and isinstance(block.get('text'), str):
                parts.append(block['text'])
            else:
                parts.append('')
        return '\n'.join(parts)
    return '' if content is None else str(content)


def extract_patterns(text: str) -> List[str]:
    """Extract de-duplicated ``<tag>...</tag>`` snippets from text."""
    if not text:
        return []
    return dedupe(match.group(0) for match in TAG_PATTERN.finditer(text))


def extract_technical_details(text: str) -> List[str]:
    """Extract de-duplicated file paths and backtick code spans from text."""
    if not text:
        return []
    return dedupe(TECHNICAL_PATTERN.findall(text))


@dataclass
class CriticalContext:
    """Patterns and technical details extracted from a conversation."""
    patterns: List[str] = field(default_factory=list)
    technical_details: List[str] = field(default_factory=list)


def extract_critical_context(messages: List[Dict[str, Any]]) -> CriticalContext:
    """
    Extract critical context from every message of a conversation.

    Results are de-duplicated across the whole conversation. No messages are
    selected or dropped and nothing is persisted.
    """
    patterns: List[str] = []
    technical_details: List[str] = []

    for message in messages:
        text = message_text(message)
        patterns.extend(extract_patterns(text))
        technical_details.extend(extract_technical_details(text))

    return CriticalContext(
        patterns=dedupe(patterns),
        technical_details=dedupe(technical_details),
    )
