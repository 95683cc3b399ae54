"""Accent-folding normalization and fuzzy name matching.

Every higher layer resolves names (characters, items, spells, features) through
this module, so the scoring rules live in one place:

- a whole-word (mention) or containment (hint) match scores a large constant
  plus the name length, so longer exact names win;
- otherwise a token-overlap ratio is computed and accepted above a threshold;
- ties keep the first candidate.
"""

from __future__ import annotations

import math
import re
import unicodedata
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_SPACES_RE = re.compile(r"\s+")

STOPWORDS: frozenset[str] = frozenset(
    {
        "de", "la", "el", "los", "las", "y", "en", "un", "una", "para", "con", "que", "q",
        "mi", "tu", "por", "the", "and", "for", "with", "you", "your", "to", "a", "an",
    }
)


@dataclass(frozen=True, slots=True)
class MatchThresholds:
    mention_score: int = 1000
    hint_score: int = 2000
    mention_min_tokens: int = 2
    mention_ratio: float = 0.75
    hint_ratio: float = 0.5
    min_token_len: int = 3


DEFAULT_THRESHOLDS = MatchThresholds()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_for_match(value: object) -> str:
    text = unicodedata.normalize("NFD", str(value or "").lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return text.strip()


def fold_for_match(value: object) -> str:
    """Normalize and replace every non-alphanumeric run by a single space."""
    return _SPACES_RE.sub(" ", _NON_ALNUM_RE.sub(" ", normalize_for_match(value))).strip()


def tokenize_for_match(value: object) -> list[str]:
    tokens: list[str] = []
    for token in fold_for_match(value).split(" "):
        if len(token) < 2 or token in STOPWORDS or token in tokens:
            continue
        tokens.append(token)
    return tokens


def _candidate_name(value: object, max_len: int = 140) -> str | None:
    if not isinstance(value, str):
        return None
    text = value.strip()[:max_len].strip()
    return text or None


def find_best_match(
    query: str,
    candidates: Iterable[tuple[Any, str]],
    *,
    mode: Literal["mention", "hint"] = "mention",
    min_name_len: int = 2,
    thresholds: MatchThresholds = DEFAULT_THRESHOLDS,
) -> Any | None:
    """Return the key of the best-scoring ``(key, name)`` candidate, or None.

    ``mention`` looks for the candidate name inside a longer free text.
    ``hint`` compares a short name hint against each candidate name.
    """
    folded_query = fold_for_match(query)
    if mode == "hint" and len(folded_query) < 2:
        return None
    padded_query = f" {folded_query} "
    hint_tokens = [t for t in folded_query.split(" ") if len(t) >= thresholds.min_token_len]

    best_key: Any | None = None
    best_score = 0
    for key, raw_name in candidates:
        name = _candidate_name(raw_name, 120)
        if not name:
            continue
        folded_name = fold_for_match(name)
        if not folded_name or len(folded_name) < min_name_len:
            continue

        score = 0
        if mode == "mention":
            if f" {folded_name} " in padded_query:
                score = thresholds.mention_score + len(folded_name)
            else:
                tokens = [t for t in folded_name.split(" ") if len(t) >= thresholds.min_token_len]
                if tokens:
                    matched = [t for t in tokens if f" {t} " in padded_query]
                    ratio = len(matched) / len(tokens)
                    if len(matched) >= thresholds.mention_min_tokens or ratio >= thresholds.mention_ratio:
                        score = _round_half_up(ratio * 100) + len(folded_name)
        else:
            if folded_name == folded_query or folded_query in folded_name or folded_name in folded_query:
                score = thresholds.hint_score + len(folded_name)
            elif hint_tokens:
                matched = [t for t in hint_tokens if t in folded_name]
                ratio = len(matched) / len(hint_tokens)
                if matched and (len(hint_tokens) == 1 or ratio >= thresholds.hint_ratio):
                    score = _round_half_up(ratio * 100) + len(matched) * 10

        if score > best_score:
            best_key, best_score = key, score
    return best_key


def _character_pairs(characters: Iterable[Any]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for character in characters:
        if isinstance(character, Mapping):
            pairs.append((character.get("id"), character.get("name")))
        else:
            pairs.append((getattr(character, "id", None), getattr(character, "name", None)))
    return pairs


def find_mentioned_character_id(
    instruction: str,
    characters: Iterable[Any],
    *,
    thresholds: MatchThresholds = DEFAULT_THRESHOLDS,
) -> str | None:
    return find_best_match(instruction, _character_pairs(characters), mode="mention", thresholds=thresholds)


def find_character_id_from_hint(
    hint: str,
    characters: Iterable[Any],
    *,
    thresholds: MatchThresholds = DEFAULT_THRESHOLDS,
) -> str | None:
    return find_best_match(hint, _character_pairs(characters), mode="hint", thresholds=thresholds)


def find_mentioned_item_name(
    text: str,
    candidates: Iterable[str],
    *,
    thresholds: MatchThresholds = DEFAULT_THRESHOLDS,
) -> str | None:
    pairs = [(name.strip(), name) for name in candidates if isinstance(name, str) and name.strip()]
    return find_best_match(text, pairs, mode="mention", min_name_len=3, thresholds=thresholds)


def find_named_entry_index(
    entries: Sequence[Mapping[str, Any]],
    target_name: str,
    *,
    allow_partial: bool = True,
) -> int:
    """Index of the entry whose ``name`` matches: exact first, then containment."""
    target = normalize_for_match(target_name)
    if not target:
        return -1
    names = [normalize_for_match(_candidate_name(entry.get("name")) or "") for entry in entries]
    for index, name in enumerate(names):
        if name and name == target:
            return index
    if not allow_partial:
        return -1
    for index, name in enumerate(names):
        if name and (target in name or name in target):
            return index
    return -1
