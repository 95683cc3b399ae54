"""Keyword-scored retrieval of campaign context for model requests."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

from sheet_assistant.modules.patches.coerce import as_integer, as_trimmed_string
from sheet_assistant.modules.patches.schemas import CharacterSnapshot
from sheet_assistant.modules.text.matching import normalize_for_match, tokenize_for_match

SourceType = Literal["campaign", "character", "note", "community"]
CampaignRole = Literal["DM", "PLAYER"]

CAMPAIGN_PRIORITY = 8
TARGET_CHARACTER_PRIORITY = 18
CHARACTER_PRIORITY = 6
NOTE_PRIORITY = 4
COMMUNITY_PRIORITY = 3
ALWAYS_RELEVANT_PRIORITY = 12

TARGET_MATCH_BONUS = 55
TITLE_MATCH_BONUS = 20
LONG_TOKEN_BONUS = 6
SHORT_TOKEN_BONUS = 3
LONG_TOKEN_MIN_LEN = 5
SOURCE_MENTION_BONUS = 4

MAX_SNAPSHOT_ITEMS = 14
MAX_SUMMARY_ITEMS = 8
_CUSTOM_COLLECTIONS = ("customSpells", "customCantrips", "customTraits", "customClassAbilities")


@dataclass(slots=True)
class CampaignSnapshot:
    id: str
    name: str | None = None
    description: str | None = None
    invite_code: str | None = None


@dataclass(slots=True)
class NoteSnapshot:
    id: str
    title: str | None = None
    content: str | None = None
    visibility: str | None = "CAMPAIGN"
    author_id: str | None = None


@dataclass(slots=True)
class CommunityExampleSnapshot:
    id: str
    prompt: str
    actions: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class RagDocument:
    id: str
    source_type: SourceType
    title: str
    text: str
    priority: int


class RagSnippet(BaseModel):
    id: str
    sourceType: SourceType
    title: str
    score: int
    excerpt: str


def can_access_note(note: NoteSnapshot, role: CampaignRole, user_id: str) -> bool:
    if role == "DM":
        return True
    visibility = str(note.visibility or "CAMPAIGN").upper()
    if visibility in ("PUBLIC", "CAMPAIGN"):
        return True
    return visibility == "PRIVATE" and note.author_id == user_id


def safe_json_snippet(value: Any, max_len: int = 900) -> str:
    try:
        raw = json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return ""
    return f"{raw[:max_len]}..." if len(raw) > max_len else raw


def _items(details: Any) -> list[dict[str, Any]]:
    if not isinstance(details, dict) or not isinstance(details.get("items"), list):
        return []
    return [item for item in details["items"] if isinstance(item, dict)]


def _attachment_names(item: dict[str, Any], max_items: int, max_len: int) -> list[str]:
    attachments = item.get("attachments") if isinstance(item.get("attachments"), list) else []
    names = [as_trimmed_string(entry.get("name"), max_len) for entry in attachments if isinstance(entry, dict)]
    return [name for name in names if name][:max_items]


def build_items_summary(details: Any) -> str:
    parts: list[str] = []
    for item in _items(details):
        name = as_trimmed_string(item.get("name"), 120)
        if not name:
            continue
        fields = [
            f"item={name}",
            f"cat={as_trimmed_string(item.get('category'), 40) or 'misc'}",
            f"estado={'equipado' if item.get('equipped') is True else 'inventario'}",
        ]
        rarity = as_trimmed_string(item.get("rarity"), 80)
        if rarity:
            fields.append(f"rareza={rarity}")
        attachments = _attachment_names(item, 4, 80)
        if attachments:
            fields.append(f"adjuntos={', '.join(attachments)}")
        parts.append(";".join(fields))
        if len(parts) >= MAX_SUMMARY_ITEMS:
            break
    return " | ".join(parts)


def build_custom_entries_summary(details: Any) -> str:
    if not isinstance(details, dict):
        return ""
    groups: list[str] = []
    for key in _CUSTOM_COLLECTIONS:
        entries = details.get(key)
        if not isinstance(entries, list):
            continue
        names = [as_trimmed_string(entry.get("name"), 120) for entry in entries if isinstance(entry, dict)]
        names = [name for name in names if name][:8]
        if names:
            groups.append(f"{key}={', '.join(names)}")
    return " | ".join(groups)


def build_inventory_snapshot(details: Any) -> list[dict[str, Any]]:
    """Compact inventory view handed to the model (at most 14 items)."""
    snapshot: list[dict[str, Any]] = []
    for item in _items(details):
        name = as_trimmed_string(item.get("name"), 120)
        if not name:
            continue
        entry: dict[str, Any] = {
            "name": name,
            "category": as_trimmed_string(item.get("category"), 40) or "misc",
            "rarity": as_trimmed_string(item.get("rarity"), 80),
            "equipped": item.get("equipped") is True,
            "equippable": item.get("equippable") is True,
            "attachmentNames": _attachment_names(item, 8, 100),
        }
        quantity = as_integer(item.get("quantity"), 0, 999)
        if quantity is not None:
            entry["quantity"] = quantity
        snapshot.append(entry)
        if len(snapshot) >= MAX_SNAPSHOT_ITEMS:
            break
    return snapshot


def _or_unknown(value: Any) -> Any:
    return "?" if value is None else value


def build_character_text(character: CharacterSnapshot) -> str:
    chunks = [
        f"Nombre: {character.name}",
        f"Clase: {character.class_name or 'sin clase'}",
        f"Raza: {character.race or 'sin raza'}",
        f"Nivel: {character.level or 1}",
        f"Tipo: {character.character_type or 'character'}",
        f"CA: {_or_unknown(character.armor_class)}",
        f"Velocidad: {_or_unknown(character.speed)}",
        f"PV actuales/max: {_or_unknown(character.current_hp)}/{_or_unknown(character.max_hp)}",
    ]
    stats_text = safe_json_snippet(character.stats or None, 220)
    items_text = build_items_summary(character.details)
    custom_text = build_custom_entries_summary(character.details)
    details_text = safe_json_snippet(character.details or None, 900)
    for label, text in (("Stats", stats_text), ("Items", items_text), ("Custom", custom_text), ("Detalles", details_text)):
        if text:
            chunks.append(f"{label}: {text}")
    return " | ".join(chunks)


def build_rag_documents(
    *,
    campaign: CampaignSnapshot | None,
    characters: Sequence[CharacterSnapshot],
    notes: Sequence[NoteSnapshot],
    community_examples: Sequence[CommunityExampleSnapshot] = (),
    target_character_id: str | None = None,
) -> list[RagDocument]:
    """Corpus for one request. ``notes`` must already be filtered with ``can_access_note``."""
    documents: list[RagDocument] = []
    if campaign is not None:
        documents.append(
            RagDocument(
                id=f"campaign:{campaign.id}",
                source_type="campaign",
                title=(campaign.name or "").strip() or "Campaña",
                text=f"{campaign.description or ''} | Código: {campaign.invite_code or ''}",
                priority=CAMPAIGN_PRIORITY,
            )
        )
    for character in characters:
        documents.append(
            RagDocument(
                id=f"character:{character.id}",
                source_type="character",
                title=character.name,
                text=build_character_text(character),
                priority=TARGET_CHARACTER_PRIORITY if character.id == target_character_id else CHARACTER_PRIORITY,
            )
        )
    for note in notes:
        title = (note.title or "").strip() or "Nota"
        documents.append(
            RagDocument(
                id=f"note:{note.id}",
                source_type="note",
                title=title,
                text=f"{title}\n{note.content or ''}",
                priority=NOTE_PRIORITY,
            )
        )
    for example in community_examples:
        documents.append(
            RagDocument(
                id=f"community:{example.id}",
                source_type="community",
                title="Ejemplo de la comunidad",
                text=f"Petición: {example.prompt}\nAcciones: {safe_json_snippet(example.actions, 600)}",
                priority=COMMUNITY_PRIORITY,
            )
        )
    return documents


def score_rag_document(
    document: RagDocument,
    prompt_normalized: str,
    prompt_tokens: Sequence[str],
    target_character_id: str | None = None,
) -> int:
    haystack = normalize_for_match(f"{document.title} {document.text}")
    score = document.priority
    if target_character_id and document.id == f"character:{target_character_id}":
        score += TARGET_MATCH_BONUS
    title = normalize_for_match(document.title)
    if title and title in prompt_normalized:
        score += TITLE_MATCH_BONUS
    for token in prompt_tokens:
        if token in haystack:
            score += LONG_TOKEN_BONUS if len(token) >= LONG_TOKEN_MIN_LEN else SHORT_TOKEN_BONUS
    if document.source_type == "character" and "personaje" in prompt_normalized:
        score += SOURCE_MENTION_BONUS
    if document.source_type == "note" and "nota" in prompt_normalized:
        score += SOURCE_MENTION_BONUS
    return score


def build_rag_snippets(
    prompt: str,
    documents: Sequence[RagDocument],
    *,
    top_k: int,
    doc_max_chars: int,
    target_character_id: str | None = None,
) -> list[RagSnippet]:
    """Rank documents against the prompt and keep the top ``top_k`` as truncated excerpts.

    Documents with no score are dropped unless their priority marks them as
    always relevant. Ties keep corpus order.
    """
    prompt_normalized = normalize_for_match(prompt)
    prompt_tokens = tokenize_for_match(prompt)
    scored = [
        (document, score_rag_document(document, prompt_normalized, prompt_tokens, target_character_id))
        for document in documents
    ]
    kept = [
        (document, score)
        for document, score in scored
        if score > 0 or document.priority >= ALWAYS_RELEVANT_PRIORITY
    ]
    kept.sort(key=lambda entry: entry[1], reverse=True)
    snippets: list[RagSnippet] = []
    for document, score in kept[:top_k]:
        text = document.text
        excerpt = f"{text[: max(doc_max_chars - 3, 0)]}..." if len(text) > doc_max_chars else text
        snippets.append(
            RagSnippet(id=document.id, sourceType=document.source_type, title=document.title, score=score, excerpt=excerpt)
        )
    return snippets
