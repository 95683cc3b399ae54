from __future__ import annotations

import logging
from collections.abc import Sequence

from sheet_assistant.modules.assistant.store import CampaignStore, MemberSnapshot, StoreError
from sheet_assistant.modules.patches.engine import (
    compute_character_update,
    has_write_fields,
    merge_details,
    merge_stats,
    normalize_stats,
)
from sheet_assistant.modules.patches.schemas import Action, ActionData, MutationResult
from sheet_assistant.modules.rag.retriever import CampaignRole

logger = logging.getLogger(__name__)

DEFAULT_ARMOR_CLASS = 10
DEFAULT_SPEED = 30


def _result(action: Action, status: str, message: str, character_id: str | None = None) -> MutationResult:
    return MutationResult(
        operation=action.operation,
        characterId=character_id if character_id is not None else action.character_id,
        status=status,
        message=message,
    )


def build_create_payload(data: ActionData, owner_id: str) -> dict:
    max_hp = data.max_hp
    current_hp = data.current_hp
    if max_hp is not None and current_hp is not None:
        current_hp = min(current_hp, max_hp)
    payload = {
        "user_id": owner_id,
        "name": data.name,
        "class": data.class_name,
        "race": data.race,
        "level": data.level or 1,
        "experience": data.experience or 0,
        "armor_class": data.armor_class if data.armor_class is not None else DEFAULT_ARMOR_CLASS,
        "speed": data.speed if data.speed is not None else DEFAULT_SPEED,
        "character_type": data.character_type or "character",
        "stats": merge_stats(None, data.stats) or normalize_stats(None),
        "details": merge_details({}, data.details_patch) or {},
    }
    if max_hp is not None:
        payload["max_hp"] = max_hp
    if current_hp is not None:
        payload["current_hp"] = current_hp
    return payload


def _apply_create(
    store: CampaignStore,
    action: Action,
    *,
    campaign_id: str,
    user_id: str,
    role: CampaignRole,
    member_ids: set[str],
) -> MutationResult:
    data = action.data
    if not data.name:
        return _result(action, "skipped", "Se omitió create porque falta el nombre.")

    owner_id = user_id
    if data.user_id and data.user_id != user_id:
        if role != "DM":
            return _result(action, "blocked", "No tienes permisos para crear personajes para otro usuario.")
        if data.user_id not in member_ids:
            return _result(action, "blocked", "El owner solicitado no pertenece a la campaña.")
        owner_id = data.user_id

    try:
        character_id = store.create_character(campaign_id, build_create_payload(data, owner_id))
    except StoreError as exc:
        logger.warning("assistant create failed campaign=%s: %s", campaign_id, exc)
        return _result(action, "error", str(exc))
    return _result(action, "applied", f'Personaje "{data.name}" creado.', character_id)


def _apply_update(
    store: CampaignStore,
    action: Action,
    *,
    campaign_id: str,
    user_id: str,
    role: CampaignRole,
    visible_character_ids: set[str],
) -> MutationResult:
    character_id = action.character_id
    if not character_id:
        return _result(action, "skipped", "Se omitió update porque falta characterId.")
    if character_id not in visible_character_ids:
        return _result(action, "blocked", "No tienes acceso a este personaje.")

    try:
        row = store.get_character(campaign_id, character_id)
    except StoreError as exc:
        logger.warning("assistant read failed character=%s: %s", character_id, exc)
        return _result(action, "error", str(exc))
    if row is None:
        return _result(action, "skipped", "No existe ese personaje en la campaña.")
    if role != "DM" and row.user_id != user_id:
        return _result(action, "blocked", "No puedes editar personajes de otros usuarios.")
    if not has_write_fields(action.data):
        return _result(action, "skipped", "No se detectaron campos editables para actualizar.")

    update = compute_character_update(row.stats, row.details, action.data)
    if update.failure:
        return _result(action, "skipped", update.failure)
    if not update.payload:
        return _result(action, "skipped", "No hubo cambios concretos para aplicar.")

    try:
        store.update_character(campaign_id, character_id, update.payload)
    except StoreError as exc:
        logger.warning("assistant write failed character=%s: %s", character_id, exc)
        return _result(action, "error", str(exc))

    message = f'Personaje "{row.name}" actualizado.'
    if update.messages:
        message = f"{message} {' '.join(update.messages)}"
    return _result(action, "applied", message)


def apply_actions(
    store: CampaignStore,
    actions: Sequence[Action],
    *,
    campaign_id: str,
    user_id: str,
    role: CampaignRole,
    members: Sequence[MemberSnapshot],
    visible_character_ids: set[str],
) -> list[MutationResult]:
    """Apply each action independently; a failed action never undoes an earlier one."""
    member_ids = {member.user_id for member in members}
    results: list[MutationResult] = []
    for action in actions:
        if action.operation == "create":
            results.append(
                _apply_create(
                    store, action, campaign_id=campaign_id, user_id=user_id, role=role, member_ids=member_ids
                )
            )
        else:
            results.append(
                _apply_update(
                    store,
                    action,
                    campaign_id=campaign_id,
                    user_id=user_id,
                    role=role,
                    visible_character_ids=visible_character_ids,
                )
            )
    return results
