"""No-model mutation planning.

Builds a bounded plan straight from the user's instruction: character
creation first, then structured item cards, then generic sheet updates.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sheet_assistant.modules.heuristics.instruction import (
    cleanup_entity_name,
    extract_character_target_hint,
    extract_name_from_instruction,
    parse_core_fields,
    parse_custom_feature_patch,
    parse_custom_spell_patch,
    parse_details_patch,
    parse_learned_spell_patch,
)
from sheet_assistant.modules.heuristics.item_parser import (
    has_item_keyword_signal,
    parse_simple_item_patch,
    parse_structured_item_batch_patches,
    parse_structured_item_patch,
)
from sheet_assistant.modules.heuristics.keywords import CREATE_VERBS, EDIT_VERBS, UPDATE_VERBS, has_any
from sheet_assistant.modules.intent.classifier import extract_current_user_instruction
from sheet_assistant.modules.patches.coerce import as_trimmed_string
from sheet_assistant.modules.patches.engine import has_write_fields
from sheet_assistant.modules.patches.sanitize import sanitize_action_data, sanitize_actions
from sheet_assistant.modules.patches.schemas import Action, CharacterSnapshot, ClientContext
from sheet_assistant.modules.text.matching import (
    find_character_id_from_hint,
    find_mentioned_character_id,
    find_mentioned_item_name,
    normalize_for_match,
)

logger = logging.getLogger(__name__)

CREATE_CHARACTER_REPLY = "He preparado una propuesta local para crear el personaje/companion."
ITEM_CARD_REPLY = "He preparado una propuesta directa para ese objeto usando el texto estructurado."
UPDATE_REPLY = "He preparado una propuesta local para aplicar esos cambios."

ITEM_CARD_NOTE = "Fallback estructurado para actualización de objeto."
UPDATE_NOTE = "Actualización heurística local."

# The character noun must be the object of the create verb: "crea una daga para mi personaje" is an item request.
_CHARACTER_CREATE_RE = re.compile(
    r"\b(?:crea|crear|creame|create)\b(?:\s+(?:un|una|el|la|nuevo|nueva|otro|otra|mi|a|an|new|another|my))*"
    r"\s+(?:personaje|character|companion|companero|familiar)\b"
)
_COMPANION_SIGNALS = ("companion", "companero", "familiar")
_CHARACTER_LEAD_RE = re.compile(
    r"\b(?:companion|companero|compañero|familiar|personaje|character)\b\s+([^\n,.;]{2,140})", re.IGNORECASE
)
_NO_CONCRETE_CHANGE_MARKERS = (
    "no encontre cambios concretos",
    "no hubo cambios concretos",
    "no encontre cambios para aplicar",
)


@dataclass(slots=True)
class HeuristicPlan:
    reply: str
    actions: list[Action] = field(default_factory=list)


def inventory_item_names(character: CharacterSnapshot) -> list[str]:
    items = character.details.get("items") if isinstance(character.details, dict) else None
    names: list[str] = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        name = as_trimmed_string(item.get("name"), 120)
        if name and name not in names:
            names.append(name)
    return names


def character_has_item_name(character: CharacterSnapshot, item_name: str) -> bool:
    target = normalize_for_match(item_name)
    if not target:
        return False
    for name in inventory_item_names(character):
        normalized = normalize_for_match(name)
        if normalized == target or target in normalized or normalized in target:
            return True
    return False


def _item_candidates(characters: Sequence[CharacterSnapshot], first: CharacterSnapshot | None = None) -> list[str]:
    pool = inventory_item_names(first) if first else []
    for character in characters:
        pool.extend(inventory_item_names(character))
    return list(dict.fromkeys(pool))


def resolve_target_character_id(
    instruction: str,
    characters: Sequence[CharacterSnapshot],
    *,
    target_character_id: str | None = None,
    client_context: ClientContext | None = None,
) -> str | None:
    """Explicit target, then the UI selection, then names in the text, then the only visible character."""
    visible_ids = {character.id for character in characters}
    direct = as_trimmed_string(target_character_id, 64)
    if direct and direct in visible_ids:
        return direct
    selected = client_context.selectedCharacter if client_context else None
    if selected and selected.id in visible_ids:
        return selected.id

    if instruction and characters:
        hint = extract_character_target_hint(instruction)
        if hint:
            by_hint = find_character_id_from_hint(hint, characters)
            if by_hint in visible_ids:
                return by_hint
        by_name = find_mentioned_character_id(instruction, characters)
        if by_name in visible_ids:
            return by_name

    if len(characters) == 1:
        return characters[0].id
    return None


def build_create_character_actions(
    instruction: str,
    characters: Sequence[CharacterSnapshot],
    *,
    target_character_id: str | None = None,
    client_context: ClientContext | None = None,
) -> list[dict[str, Any]]:
    normalized = normalize_for_match(instruction)
    if not _CHARACTER_CREATE_RE.search(normalized):
        return []
    is_companion = has_any(normalized, _COMPANION_SIGNALS)

    name = extract_name_from_instruction(instruction, 120)
    if not name:
        lead = _CHARACTER_LEAD_RE.search(instruction)
        name = cleanup_entity_name(lead.group(1), 120) if lead else None
    if not name:
        return []

    data: dict[str, Any] = {"name": name, "character_type": "companion" if is_companion else "character"}
    data.update(parse_core_fields(instruction))
    owner_id = resolve_target_character_id(
        instruction, characters, target_character_id=target_character_id, client_context=client_context
    )
    owner = next((character for character in characters if character.id == owner_id), None)
    if owner and owner.user_id:
        data["user_id"] = owner.user_id

    note = "Creación heurística de companion." if is_companion else "Creación heurística de personaje."
    return [{"operation": "create", "data": data, "note": note}]


def build_item_actions(
    instruction: str,
    characters: Sequence[CharacterSnapshot],
    *,
    target_character_id: str | None = None,
    client_context: ClientContext | None = None,
) -> list[dict[str, Any]]:
    """Update actions carrying item patches parsed from a pasted multi-line item card."""
    normalized = normalize_for_match(instruction)
    if not has_any(normalized, EDIT_VERBS + CREATE_VERBS):
        return []
    if "\n" not in instruction and "tengo este objeto" not in normalized:
        return []

    candidates = _item_candidates(characters)
    patches = parse_structured_item_batch_patches(instruction)
    if not patches:
        mentioned = find_mentioned_item_name(instruction, candidates)
        if not mentioned and not has_item_keyword_signal(normalized):
            return []
        patch = parse_structured_item_patch(instruction, candidates)
        patches = [patch] if patch else []
    if not patches:
        return []

    character_id = resolve_target_character_id(
        instruction, characters, target_character_id=target_character_id, client_context=client_context
    )
    if not character_id:
        holders = [character for character in characters if character_has_item_name(character, patches[0].target_item_name)]
        character_id = holders[0].id if holders else None
    if not character_id:
        return []

    return [
        {"operation": "update", "characterId": character_id, "note": ITEM_CARD_NOTE, "data": {"item_patch": patch.dump()}}
        for patch in patches
    ]


def build_update_actions(
    instruction: str,
    characters: Sequence[CharacterSnapshot],
    *,
    target_character_id: str | None = None,
    client_context: ClientContext | None = None,
) -> list[dict[str, Any]]:
    if not has_any(normalize_for_match(instruction), UPDATE_VERBS):
        return []
    character_id = resolve_target_character_id(
        instruction, characters, target_character_id=target_character_id, client_context=client_context
    )
    if not character_id:
        return []
    target = next((character for character in characters if character.id == character_id), None)

    data: dict[str, Any] = dict(parse_core_fields(instruction))
    details = parse_details_patch(instruction)
    if details:
        data["details_patch"] = details

    item_actions = build_item_actions(
        instruction, characters, target_character_id=character_id, client_context=client_context
    )
    if item_actions:
        data["item_patch"] = item_actions[0]["data"]["item_patch"]
    else:
        simple = parse_simple_item_patch(instruction, _item_candidates(characters, target))
        if simple:
            data["item_patch"] = simple.dump()

    for key, parser in (
        ("learned_spell_patch", parse_learned_spell_patch),
        ("custom_spell_patch", parse_custom_spell_patch),
        ("custom_feature_patch", parse_custom_feature_patch),
    ):
        patch = parser(instruction)
        if patch:
            data[key] = patch

    sanitized = sanitize_action_data(data)
    if sanitized is None or not has_write_fields(sanitized):
        return []
    return [{"operation": "update", "characterId": character_id, "data": data, "note": UPDATE_NOTE}]


def build_heuristic_mutation_plan(
    prompt: str,
    visible_characters: Sequence[CharacterSnapshot],
    target_character_id: str | None = None,
    client_context: ClientContext | None = None,
) -> HeuristicPlan | None:
    """Plan the prompt without a model, or return None when nothing concrete was found."""
    instruction = extract_current_user_instruction(prompt)
    options = {"target_character_id": target_character_id, "client_context": client_context}
    for builder, reply in (
        (build_create_character_actions, CREATE_CHARACTER_REPLY),
        (build_item_actions, ITEM_CARD_REPLY),
        (build_update_actions, UPDATE_REPLY),
    ):
        raw_actions = builder(instruction, visible_characters, **options)
        if not raw_actions:
            continue
        actions = sanitize_actions(raw_actions, target_character_id)
        if not actions:
            continue
        logger.info("heuristic plan built via %s with %s action(s)", builder.__name__, len(actions))
        return HeuristicPlan(reply=reply, actions=actions)
    return None


def is_no_concrete_change_reply(reply: str) -> bool:
    normalized = normalize_for_match(reply)
    return any(marker in normalized for marker in _NO_CONCRETE_CHANGE_MARKERS)
