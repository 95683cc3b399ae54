from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from sheet_assistant.modules.assistant.replies import build_assistant_product_knowledge
from sheet_assistant.modules.assistant.store import CampaignStore, MemberSnapshot, StoreError
from sheet_assistant.modules.patches.coerce import as_trimmed_string
from sheet_assistant.modules.patches.schemas import CharacterSnapshot, ClientContext
from sheet_assistant.modules.rag.retriever import (
    CampaignRole,
    CampaignSnapshot,
    CommunityExampleSnapshot,
    NoteSnapshot,
    RagSnippet,
    build_inventory_snapshot,
    can_access_note,
)

logger = logging.getLogger(__name__)

MAX_NAME_LIST = 16
_NAMED_COLLECTIONS = ("customSpells", "customCantrips", "customTraits", "customClassAbilities")


@dataclass(slots=True)
class CampaignContext:
    members: list[MemberSnapshot]
    characters: list[CharacterSnapshot]
    campaign: CampaignSnapshot | None = None
    notes: list[NoteSnapshot] = field(default_factory=list)
    community_examples: list[CommunityExampleSnapshot] = field(default_factory=list)

    def visible_characters(self, role: CampaignRole, user_id: str) -> list[CharacterSnapshot]:
        if role == "DM":
            return list(self.characters)
        return [character for character in self.characters if character.user_id == user_id]


def load_campaign_context(
    store: CampaignStore,
    campaign_id: str,
    *,
    role: CampaignRole,
    user_id: str,
    include_community: bool = False,
    max_workers: int = 4,
) -> CampaignContext:
    """Read members, characters, campaign and notes concurrently.

    Members and characters are required: their ``StoreError`` propagates.
    Campaign, notes and community examples degrade to empty with a warning.
    """
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        members_future = executor.submit(store.list_members, campaign_id)
        characters_future = executor.submit(store.list_characters, campaign_id)
        campaign_future = executor.submit(store.get_campaign, campaign_id)
        notes_future = executor.submit(store.list_notes, campaign_id)
        community_future = executor.submit(store.list_community_examples) if include_community else None

        members = members_future.result()
        characters = characters_future.result()

        campaign: CampaignSnapshot | None = None
        try:
            campaign = campaign_future.result()
        except StoreError as exc:
            logger.warning("campaign context read failed campaign=%s: %s", campaign_id, exc)

        notes: list[NoteSnapshot] = []
        try:
            notes = notes_future.result()
        except StoreError as exc:
            logger.warning("campaign notes read failed campaign=%s: %s", campaign_id, exc)

        community: list[CommunityExampleSnapshot] = []
        if community_future is not None:
            try:
                community = community_future.result()
            except StoreError as exc:
                logger.warning("community examples read failed: %s", exc)

    return CampaignContext(
        members=members,
        characters=characters,
        campaign=campaign,
        notes=[note for note in notes if can_access_note(note, role, user_id)],
        community_examples=community,
    )


def _entry_names(details: Any, key: str) -> list[str]:
    entries = details.get(key) if isinstance(details, dict) else None
    if not isinstance(entries, list):
        return []
    names = [as_trimmed_string(entry.get("name"), 120) for entry in entries if isinstance(entry, dict)]
    return [name for name in names if name][:MAX_NAME_LIST]


def _character_for_model(character: CharacterSnapshot) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "id": character.id,
        "user_id": character.user_id,
        "name": character.name,
        "class": character.class_name,
        "race": character.race,
        "level": character.level,
        "character_type": character.character_type or "character",
        "inventoryItems": _entry_names(character.details, "items"),
        "inventorySnapshot": build_inventory_snapshot(character.details),
    }
    for key in _NAMED_COLLECTIONS:
        summary[key] = _entry_names(character.details, key)
    return summary


def build_model_context(
    *,
    campaign_id: str,
    role: CampaignRole,
    user_id: str,
    target_character_id: str | None,
    client_context: ClientContext | None,
    members: Sequence[MemberSnapshot],
    visible_characters: Sequence[CharacterSnapshot],
    rag_snippets: Sequence[RagSnippet],
) -> dict[str, Any]:
    selected_id = client_context.selectedCharacter.id if client_context and client_context.selectedCharacter else None
    selected = next((character for character in visible_characters if character.id == selected_id), None)
    return {
        "campaignId": campaign_id,
        "role": role,
        "actorUserId": user_id,
        "targetCharacterId": target_character_id,
        "clientContext": client_context.dump() if client_context else None,
        "selectedCharacterSnapshot": (
            {
                "id": selected.id,
                "name": selected.name,
                "class": selected.class_name,
                "race": selected.race,
                "level": selected.level,
                "character_type": selected.character_type or "character",
                "inventorySnapshot": build_inventory_snapshot(selected.details),
            }
            if selected
            else None
        ),
        "members": [{"user_id": member.user_id, "role": member.role} for member in members],
        "visibleCharacters": [_character_for_model(character) for character in visible_characters],
        "retrievedContext": [snippet.model_dump() for snippet in rag_snippets],
        "productKnowledge": build_assistant_product_knowledge(role, client_context),
    }
