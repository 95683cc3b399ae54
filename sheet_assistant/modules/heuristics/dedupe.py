from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sheet_assistant.modules.heuristics.keywords import MECHANICAL_NOISE_RE
from sheet_assistant.modules.patches.coerce import as_trimmed_string
from sheet_assistant.modules.patches.schemas import ItemAttachmentPatch
from sheet_assistant.modules.text.matching import fold_for_match, normalize_for_match

_MIN_CONTAINMENT_LEN = 4
_TEXT_FIELDS = ("name", "description", "effect", "requirements", "range", "duration", "school", "casting_time", "materials")
_STORED_TEXT_FIELDS = ("name", "effect", "requirements", "range", "duration", "school", "materials")
_STORED_STRUCTURED_KEYS = ("save", "damage", "range", "duration", "castingTime", "components")


def has_structured_attachment(attachments: Sequence[ItemAttachmentPatch]) -> bool:
    return any(
        attachment.save or attachment.damage or attachment.range or attachment.duration
        or attachment.casting_time or attachment.components
        for attachment in attachments
    )


def _folded_texts(values: Sequence[object]) -> list[str]:
    texts: list[str] = []
    for value in values:
        if isinstance(value, str):
            texts.append(value)
            texts.extend(value.splitlines())
    folded = (fold_for_match(text) for text in texts)
    return [text for text in folded if text]


def attachment_texts(attachment: ItemAttachmentPatch) -> list[str]:
    values: list[object] = [getattr(attachment, key) for key in _TEXT_FIELDS]
    if attachment.damage and attachment.damage.dice:
        values.append(" ".join(part for part in (attachment.damage.dice, attachment.damage.damage_type) if part))
    return _folded_texts(values)


def stored_attachment_texts(entry: dict[str, Any]) -> list[str]:
    """Texts of an attachment already stored on an item (camelCase keys, localized description)."""
    values: list[object] = [entry.get(key) for key in _STORED_TEXT_FIELDS]
    description = entry.get("description")
    values.append(description.get("text") if isinstance(description, dict) else description)
    casting_time = entry.get("castingTime")
    if isinstance(casting_time, dict):
        values.append(casting_time.get("value"))
    damage = entry.get("damage")
    if isinstance(damage, dict) and isinstance(damage.get("dice"), str):
        values.append(" ".join(str(part) for part in (damage.get("dice"), damage.get("damageType")) if part))
    return _folded_texts(values)


def _is_duplicate(line: str, texts: list[str]) -> bool:
    for text in texts:
        if line == text:
            return True
        if len(line) >= _MIN_CONTAINMENT_LEN and line in text:
            return True
        if len(text) >= _MIN_CONTAINMENT_LEN and text in line:
            return True
    return False


def _dedupe_lines(description: str | None, texts: list[str], *, structured: bool, max_len: int) -> str | None:
    if not description:
        return None
    kept: list[str] = []
    seen: set[str] = set()
    for raw_line in description.splitlines():
        line = raw_line.strip()
        folded = fold_for_match(line)
        if not folded or folded in seen:
            continue
        if structured and MECHANICAL_NOISE_RE.match(normalize_for_match(line)):
            continue
        if _is_duplicate(folded, texts):
            continue
        seen.add(folded)
        kept.append(line)
    return as_trimmed_string("\n".join(kept), max_len)


def dedupe_item_description(
    description: str | None,
    attachments: Sequence[ItemAttachmentPatch],
    *,
    max_len: int = 4000,
) -> str | None:
    """Remove description lines already carried by an attachment.

    A line is dropped when it equals, contains or is contained in any
    attachment name, description or structured text value. Once any
    attachment is structured, labelled mechanics lines (range, save, damage...)
    are dropped too. Repeated lines collapse to the first.
    """
    texts = [text for attachment in attachments for text in attachment_texts(attachment)]
    return _dedupe_lines(
        description, texts, structured=has_structured_attachment(attachments), max_len=max_len
    )


def dedupe_stored_item_description(
    description: str | None,
    entries: Sequence[dict[str, Any]],
    *,
    max_len: int = 4000,
) -> str | None:
    """Same rule as ``dedupe_item_description`` for attachments already merged into an item."""
    texts = [text for entry in entries for text in stored_attachment_texts(entry)]
    structured = any(any(entry.get(key) for key in _STORED_STRUCTURED_KEYS) for entry in entries)
    return _dedupe_lines(description, texts, structured=structured, max_len=max_len)
