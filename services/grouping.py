"""Scenario grouping: reassemble a flat conversation into per-scenario clusters.

Entries that carry a ``scenario_id`` are clustered by it. Entries without one
(older records) fall back to a content key: label prefixes are stripped from
the question, the first 30 characters are normalized and hashed. Cluster keys
are renumbered 1..n in encounter order; hashes never leave this module.
"""
from __future__ import annotations

import hashlib
import re
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

from agents.types import ConversationEntry

STEM_LENGTH = 30
MIN_SIGNIFICANT_CHARS = 5

_LABEL_PATTERNS = (
    re.compile(r"^(?:question|scenario|situation)\s*\d*\s*[:.)\-]\s*", re.IGNORECASE),
    re.compile(r"^\d+\.[a-z]\)\s*", re.IGNORECASE),
    re.compile(r"^\d+[a-z]\)\s*", re.IGNORECASE),
    re.compile(r"^\d+[.)]\s*"),
    re.compile(r"^[-*•]\s+"),
)

_FOLLOW_UP_PATTERNS = (
    re.compile(r"\d+\.[a-z]\)", re.IGNORECASE),
    re.compile(r"\bfollow[\s-]?up\b", re.IGNORECASE),
    re.compile(r"\badditional(?:ly)?\b", re.IGNORECASE),
    re.compile(r"\b(?:elaborate|expand on|tell me more|more detail|more specific)\b", re.IGNORECASE),
    re.compile(
        r"^(?:also|furthermore|moreover|in addition|besides|building on|following up|and)\b[,\s]",
        re.IGNORECASE,
    ),
)

Clusters = Dict[int, List[ConversationEntry]]


def strip_labels(text: str) -> str:
    """Remove leading ordinal and label prefixes, repeatedly."""

    current = (text or "").strip()
    changed = True
    while changed and current:
        changed = False
        for pattern in _LABEL_PATTERNS:
            stripped = pattern.sub("", current, count=1)
            if stripped != current:
                current = stripped.strip()
                changed = True
    return current


def question_stem(text: str) -> str:
    stem = strip_labels(text)[:STEM_LENGTH]
    return re.sub(r"\s+", " ", stem).strip().lower()


def grouping_key(text: str) -> Optional[str]:
    """Stable hash of the question stem, or None when the stem is too short to trust."""

    stem = question_stem(text)
    if sum(1 for ch in stem if ch.isalnum()) < MIN_SIGNIFICANT_CHARS:
        return None
    return hashlib.sha1(stem.encode("utf-8")).hexdigest()


def is_follow_up(question_text: str) -> bool:
    """Lexical follow-up detection, used for labelling only."""

    text = (question_text or "").strip()
    if not text:
        return False
    return any(pattern.search(text) for pattern in _FOLLOW_UP_PATTERNS)


def _renumber(keyed: Dict[Hashable, List[ConversationEntry]]) -> Clusters:
    return {number: entries for number, entries in enumerate(keyed.values(), start=1)}


def group_entries(entries: Sequence[ConversationEntry]) -> Tuple[Clusters, List[ConversationEntry]]:
    """Content-based grouping of answered entries."""

    keyed: Dict[Hashable, List[ConversationEntry]] = {}
    ungrouped: List[ConversationEntry] = []
    for entry in entries:
        if not entry.is_answered:
            continue
        key = grouping_key(entry.question)
        if key is None:
            ungrouped.append(entry)
            continue
        keyed.setdefault(key, []).append(entry)
    return _renumber(keyed), ungrouped


def cluster_history(entries: Sequence[ConversationEntry]) -> Tuple[Clusters, List[ConversationEntry]]:
    """Group answered entries by ``scenario_id``, hashing only entries that lack one."""

    keyed: Dict[Hashable, List[ConversationEntry]] = {}
    ungrouped: List[ConversationEntry] = []
    for entry in entries:
        if not entry.is_answered:
            continue
        if entry.scenario_id is not None:
            keyed.setdefault(("id", entry.scenario_id), []).append(entry)
            continue
        key = grouping_key(entry.question)
        if key is None:
            ungrouped.append(entry)
            continue
        keyed.setdefault(("hash", key), []).append(entry)
    return _renumber(keyed), ungrouped


__all__ = [
    "cluster_history",
    "group_entries",
    "grouping_key",
    "is_follow_up",
    "question_stem",
    "strip_labels",
]
