"""Line cleanup and segmentation of pasted item cards.

``segment_item_card`` walks the body of a card once and sorts every line into
the item description, a named sub-block (future attachment) or a named
configuration. It never raises; unknown lines fall back to description text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from sheet_assistant.modules.heuristics.fields import parse_rarity_from_text, split_key_value
from sheet_assistant.modules.heuristics.keywords import (
    ACTIVATION_KEYS,
    ATTACHMENT_FIELD_KEYS,
    CONFIGURATION_HEADING_RE,
    CONTAINER_WORDS,
    CONTINUATION_HEADING_RE,
    FORBIDDEN_HEADING_STARTS,
    ITEM_METADATA_KEYS,
    MUTATION_COMMAND_PREFIXES,
    SECTION_LABELS,
    label_matches,
)
from sheet_assistant.modules.patches.coerce import as_trimmed_string
from sheet_assistant.modules.patches.sanitize import split_price_suffix
from sheet_assistant.modules.text.matching import fold_for_match, normalize_for_match

_LEADING_DECORATORS_RE = re.compile(r"^[\W_]+")
_BULLET_RE = re.compile(r"^[-*•]+\s*")
_SPACES_RE = re.compile(r"\s+")
_RULE_LINE_RE = re.compile(r"^[-=*_~–—·•\s]{2,}$")
_TERMINAL_PUNCTUATION_RE = re.compile(r"[.!?]$")
_TRAILING_COMMAND_RE = re.compile(
    r"^(.*?)(?:\s+|[.?!:;]\s*)"
    r"(?:anade|añade|agrega|inserta|mete|crea|modifica|actualiza|edita|cambia|add|insert|create|update|edit|change)\b"
    r"[^\n]{0,160}\b(?:en|para|a)\b\s+[^\n]{2,140}$",
    re.IGNORECASE,
)
_CONNECTOR_WORDS = frozenset({"de", "del", "la", "las", "el", "los", "y", "o", "con", "en", "por", "para"})
_METADATA_STARTS = ("objeto maravilloso", "wondrous item", "arma ", "armadura", "weapon", "armor", "requiere", "requires")

MAX_HEADING_WORDS = 8


@dataclass(slots=True)
class PriceHeading:
    name: str
    price: str


@dataclass(slots=True)
class Block:
    name: str
    lines: list[str] = field(default_factory=list)
    continuation: bool = False


@dataclass(slots=True)
class ConfigurationBlock:
    name: str
    lines: list[str] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)


@dataclass(slots=True)
class CardSegments:
    description_lines: list[str] = field(default_factory=list)
    metadata_lines: list[str] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)
    configurations: list[ConfigurationBlock] = field(default_factory=list)


def strip_leading_decorators(value: str) -> str:
    return _LEADING_DECORATORS_RE.sub("", value).strip()


def strip_trailing_command_fragment(line: str) -> str:
    """Drop an embedded follow-up command such as ``... añade esto a Navi``."""
    trimmed = line.strip()
    match = _TRAILING_COMMAND_RE.match(trimmed)
    if not match:
        return trimmed
    left = re.sub(r"[.,;:!?\s]+$", "", match.group(1)).strip()
    if len(left) < 8:
        return trimmed
    return left


def split_instruction_lines(text: str) -> list[str]:
    lines: list[str] = []
    for raw in text.splitlines():
        line = _BULLET_RE.sub("", raw.strip()).strip()
        line = strip_trailing_command_fragment(line)
        if line:
            lines.append(line)
    return lines


def is_noise_line(line: str) -> bool:
    trimmed = line.strip()
    if not trimmed or trimmed == "." or _RULE_LINE_RE.match(trimmed):
        return True
    return not any(ch.isalnum() for ch in strip_leading_decorators(trimmed))


def is_mutation_command_line(line: str) -> bool:
    normalized = normalize_for_match(line)
    return normalized.startswith(MUTATION_COMMAND_PREFIXES)


def is_forbidden_heading(text: str) -> bool:
    return normalize_for_match(text).startswith(FORBIDDEN_HEADING_STARTS)


def is_section_label(line: str) -> bool:
    cleaned = strip_leading_decorators(line).rstrip(".:").strip()
    return not cleaned or normalize_for_match(cleaned) in SECTION_LABELS


def normalize_heading_name(line: str) -> str | None:
    """Clean a candidate title line, or None when it cannot name anything."""
    cleaned = _SPACES_RE.sub(" ", strip_leading_decorators(line)).strip()
    compact = cleaned.rstrip(".:").strip()
    if len(compact) < 3 or not any(ch.isalnum() for ch in compact):
        return None
    if is_forbidden_heading(compact) or is_mutation_command_line(compact) or is_section_label(compact):
        return None
    return as_trimmed_string(compact, 140)


def is_container_heading(text: str) -> bool:
    words = [word for word in fold_for_match(text).split(" ") if word and word not in _CONNECTOR_WORDS]
    return bool(words) and all(word in CONTAINER_WORDS for word in words)


def is_short_heading(text: str) -> bool:
    """A title-cased line of at most eight words without terminal punctuation."""
    if _TERMINAL_PUNCTUATION_RE.search(text):
        return False
    compact = text.rstrip(":").strip()
    if len(compact) < 2 or len(compact) > 90:
        return False
    if len(compact.split()) > MAX_HEADING_WORDS:
        return False
    first = compact[0]
    return (first.isalpha() and first.isupper()) or first.isdigit()


def parse_price_heading(line: str) -> PriceHeading | None:
    name, price = split_price_suffix(strip_leading_decorators(line))
    if price is None:
        return None
    return PriceHeading(name=name, price=price)


def _split_heading(text: str, pattern: re.Pattern[str]) -> tuple[str, str] | None:
    pair = split_key_value(text)
    label, rest = pair if pair else (text.rstrip(":").strip(), "")
    if not pattern.match(normalize_for_match(label)):
        return None
    if not pair and (_TERMINAL_PUNCTUATION_RE.search(label) or len(label.split()) > MAX_HEADING_WORDS):
        return None
    return label, rest


def parse_configuration_heading(text: str) -> tuple[str, str] | None:
    return _split_heading(text, CONFIGURATION_HEADING_RE)


def parse_continuation_heading(text: str) -> tuple[str, str] | None:
    return _split_heading(text, CONTINUATION_HEADING_RE)


def is_inline_block(label: str, value: str) -> bool:
    """``Name: long description`` where Name is not a known field or metadata key."""
    folded = normalize_for_match(label)
    if len(label.split()) > 6 or not label[:1].isupper():
        return False
    if label_matches(folded, ATTACHMENT_FIELD_KEYS) or label_matches(folded, ITEM_METADATA_KEYS):
        return False
    if is_container_heading(label) or is_forbidden_heading(label):
        return False
    return len(value.split()) >= 4


def is_metadata_line(text: str) -> bool:
    normalized = normalize_for_match(text)
    return normalized.startswith(_METADATA_STARTS) or parse_rarity_from_text(text) is not None


def segment_item_card(lines: list[str], *, item_name: str) -> CardSegments:
    """Sort the body lines of one item card.

    ``item_name`` names the implicit attachment opened by loose activation
    lines (``Uso: acción``) that appear outside any named sub-block.
    """
    segments = CardSegments()
    current: Block | None = None
    configuration: ConfigurationBlock | None = None

    def open_block(name: str, *, continuation: bool = False) -> Block:
        block = Block(name=name, continuation=continuation)
        (configuration.blocks if configuration else segments.blocks).append(block)
        return block

    def add_description(line: str, *, metadata: bool = False) -> None:
        if configuration is not None:
            configuration.lines.append(line)
            return
        segments.description_lines.append(line)
        if metadata:
            segments.metadata_lines.append(line)

    for line in lines:
        if is_noise_line(line) or is_mutation_command_line(line):
            continue
        cleaned = strip_leading_decorators(line)
        if is_section_label(cleaned):
            current = None
            continue

        configuration_heading = parse_configuration_heading(cleaned)
        if configuration_heading:
            name, rest = configuration_heading
            if rest and is_short_heading(rest):
                name, rest = f"{name}: {rest}", ""
            configuration = ConfigurationBlock(name=name)
            segments.configurations.append(configuration)
            current = None
            if rest:
                configuration.lines.append(rest)
            continue

        continuation = parse_continuation_heading(cleaned)
        if continuation:
            name, rest = continuation
            current = open_block(name, continuation=True)
            if rest:
                current.lines.append(rest)
            continue

        pair = split_key_value(cleaned)
        if pair:
            label, value = pair
            if not value:
                if is_container_heading(label):
                    current = None
                elif is_short_heading(label):
                    current = open_block(label)
                else:
                    add_description(cleaned)
                continue
            if is_inline_block(label, value):
                current = open_block(label)
                current.lines.append(value)
                continue
            if current is not None:
                current.lines.append(cleaned)
                continue
            folded = normalize_for_match(label)
            if configuration is None and label_matches(folded, ACTIVATION_KEYS):
                current = open_block(item_name)
                current.lines.append(cleaned)
                continue
            add_description(cleaned, metadata=label_matches(folded, ITEM_METADATA_KEYS))
            continue

        if is_short_heading(cleaned) and not is_forbidden_heading(cleaned):
            if is_container_heading(cleaned):
                current = None
                continue
            if not segments.blocks and configuration is None and is_metadata_line(cleaned):
                add_description(cleaned, metadata=True)
                continue
            current = open_block(cleaned.rstrip(":").strip())
            continue

        if current is not None:
            current.lines.append(cleaned)
        else:
            add_description(cleaned)
    return segments
