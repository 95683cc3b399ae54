"""Merge typed patches into a character's semi-structured ``details`` document.

Every ``apply_*`` function works on a deep copy and returns an
:class:`ApplyResult`; the input document is never mutated. ``applied=False``
is a normal outcome (target missing, nothing changed) carrying a
user-facing message.
"""

from __future__ import annotations

import copy
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any

from sheet_assistant.modules.heuristics.dedupe import dedupe_stored_item_description
from sheet_assistant.modules.patches.coerce import as_integer, as_string_list, as_trimmed_string
from sheet_assistant.modules.patches.sanitize import infer_attachment_type, normalize_attachment_type, normalize_item_category
from sheet_assistant.modules.patches.schemas import (
    STAT_KEYS,
    ActionData,
    ApplyResult,
    CustomFeaturePatch,
    CustomSpellPatch,
    DetailsPatch,
    ItemAttachmentPatch,
    ItemConfigurationPatch,
    ItemPatch,
    LearnedSpellPatch,
    PatchModel,
    StatsPatch,
)
from sheet_assistant.modules.text.matching import find_named_entry_index, normalize_for_match

_ID_ALPHABET = string.ascii_lowercase + string.digits
_DEFAULT_LANG = "es"

# patch field -> stored key, for plain nullable strings
_STRUCTURED_TEXT_FIELDS: tuple[tuple[str, str], ...] = (
    ("school", "school"),
    ("range", "range"),
    ("materials", "materials"),
    ("duration", "duration"),
    ("requirements", "requirements"),
    ("effect", "effect"),
    ("subclass_id", "subclassId"),
    ("subclass_name", "subclassName"),
)
_RESOURCE_COST_KEYS = (
    ("uses_spell_slot", "usesSpellSlot"),
    ("slot_level", "slotLevel"),
    ("charges", "charges"),
    ("recharge", "recharge"),
    ("points", "points"),
)
_SAVE_KEYS = (
    ("type", "type"),
    ("save_ability", "saveAbility"),
    ("dc_type", "dcType"),
    ("dc_value", "dcValue"),
    ("dc_stat", "dcStat"),
)
_DAMAGE_KEYS = (("damage_type", "damageType"), ("dice", "dice"), ("scaling", "scaling"))


def generate_id(prefix: str) -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=6))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def localized_text(value: str) -> dict[str, str]:
    return {"text": value, "lang": _DEFAULT_LANG}


def localized_text_value(value: Any, max_len: int = 4000) -> str | None:
    if isinstance(value, str):
        return as_trimmed_string(value, max_len)
    if isinstance(value, dict):
        return as_trimmed_string(value.get("text"), max_len)
    return None


def _working_copy(details: Any) -> dict[str, Any]:
    return copy.deepcopy(details) if isinstance(details, dict) else {}


def _set_or_delete(target: dict[str, Any], key: str, value: Any) -> None:
    if value is None or value == "":
        target.pop(key, None)
    else:
        target[key] = value


# ---------------------------------------------------------------------------
# Stats and details
# ---------------------------------------------------------------------------


def normalize_stats(value: Any) -> dict[str, int]:
    stats = {key: 10 for key in STAT_KEYS}
    if not isinstance(value, dict):
        return stats
    for key in STAT_KEYS:
        parsed = as_integer(value.get(key), 1, 30)
        if parsed is not None:
            stats[key] = parsed
    return stats


def merge_stats(existing: Any, patch: StatsPatch | None) -> dict[str, int] | None:
    if patch is None:
        return None
    provided = patch.dump()
    if not provided:
        return None
    merged = normalize_stats(existing)
    for key in STAT_KEYS:
        parsed = as_integer(provided.get(key), 1, 30)
        if parsed is not None:
            merged[key] = parsed
    return merged


def merge_details(existing: Any, patch: DetailsPatch | None) -> dict[str, Any] | None:
    if patch is None:
        return None
    provided = patch.dump()
    if not provided:
        return None
    merged = _working_copy(existing)
    for key, value in provided.items():
        _set_or_delete(merged, key, value)
    return merged


# ---------------------------------------------------------------------------
# Structured sub-objects shared by attachments, custom spells and features
# ---------------------------------------------------------------------------


def _merge_sub_object(
    current: dict[str, Any],
    stored_key: str,
    patch: PatchModel | None,
    mapping: tuple[tuple[str, str], ...],
) -> bool:
    if patch is None:
        return False
    merged = dict(current.get(stored_key) or {}) if isinstance(current.get(stored_key), dict) else {}
    for patch_key, target_key in mapping:
        value = getattr(patch, patch_key, None)
        if value is not None:
            merged[target_key] = value
    if merged:
        current[stored_key] = merged
    else:
        current.pop(stored_key, None)
    return True


def _apply_structured_fields(current: dict[str, Any], patch: PatchModel) -> bool:
    fields = type(patch).model_fields
    changed = False

    for patch_key, stored_key in _STRUCTURED_TEXT_FIELDS:
        if patch_key in fields and patch.provided(patch_key):
            _set_or_delete(current, stored_key, getattr(patch, patch_key))
            changed = True

    if "casting_time" in fields and (patch.provided("casting_time") or patch.provided("casting_time_note")):
        casting_time = getattr(patch, "casting_time")
        if patch.provided("casting_time") and not casting_time:
            current.pop("castingTime", None)
        else:
            existing = dict(current.get("castingTime") or {}) if isinstance(current.get("castingTime"), dict) else {}
            if casting_time:
                existing["value"] = casting_time
            elif not existing.get("value"):
                existing["value"] = "Accion"
            if patch.provided("casting_time_note"):
                _set_or_delete(existing, "note", getattr(patch, "casting_time_note"))
            current["castingTime"] = existing
        changed = True

    for flag in ("concentration", "ritual"):
        if flag in fields and isinstance(getattr(patch, flag), bool):
            current[flag] = getattr(patch, flag)
            changed = True

    if "components" in fields:
        changed |= _merge_sub_object(
            current, "components", getattr(patch, "components"), (("verbal", "verbal"), ("somatic", "somatic"), ("material", "material"))
        )

    resource_cost = getattr(patch, "resource_cost", None)
    if resource_cost is not None:
        _merge_sub_object(current, "resourceCost", resource_cost, _RESOURCE_COST_KEYS)
        if resource_cost.provided("points_label"):
            cost = dict(current.get("resourceCost") or {})
            _set_or_delete(cost, "pointsLabel", resource_cost.points_label)
            if cost:
                current["resourceCost"] = cost
            else:
                current.pop("resourceCost", None)
        changed = True

    if "save" in fields:
        changed |= _merge_sub_object(current, "save", getattr(patch, "save"), _SAVE_KEYS)
    if "damage" in fields:
        changed |= _merge_sub_object(current, "damage", getattr(patch, "damage"), _DAMAGE_KEYS)

    action_type = getattr(patch, "action_type", None)
    if action_type:
        current["actionType"] = action_type
        changed = True
    return changed


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def attachment_key(entry: dict[str, Any]) -> str:
    name = as_trimmed_string(entry.get("name"), 140) or ""
    kind = as_trimmed_string(entry.get("type"), 32) or "other"
    return f"{normalize_for_match(kind)}::{normalize_for_match(name)}"


def normalize_existing_attachment(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        return None
    name = as_trimmed_string(value.get("name"), 140)
    if not name:
        return None
    description = localized_text_value(value.get("description"))
    entry = dict(value)
    entry["id"] = as_trimmed_string(value.get("id"), 80) or generate_id("att")
    entry["name"] = name
    entry["type"] = normalize_attachment_type(value.get("type")) or infer_attachment_type(name, description)
    level = as_integer(value.get("level"), 0, 20)
    if level is None:
        entry.pop("level", None)
    else:
        entry["level"] = level
    if description:
        entry["description"] = localized_text(description)
    else:
        entry.pop("description", None)
    return entry


def build_attachment(patch: ItemAttachmentPatch) -> dict[str, Any]:
    entry: dict[str, Any] = {"id": generate_id("att"), "type": patch.type, "name": patch.name}
    if patch.level is not None:
        entry["level"] = patch.level
    if patch.description and patch.description.strip():
        entry["description"] = localized_text(patch.description.strip())
    _apply_structured_fields(entry, patch)
    return entry


def merge_attachments(existing: list[dict[str, Any]], patches: list[ItemAttachmentPatch]) -> list[dict[str, Any]]:
    """Merge attachment patches by normalized ``(type, name)``; later explicit fields win."""
    by_key: dict[str, dict[str, Any]] = {}
    for entry in existing:
        by_key.setdefault(attachment_key(entry), entry)
    for patch in patches:
        built = build_attachment(patch)
        key = attachment_key(built)
        current = by_key.get(key)
        if current is None:
            by_key[key] = built
            continue
        if patch.level is not None:
            current["level"] = patch.level
        if patch.provided("description"):
            if patch.description:
                current["description"] = localized_text(patch.description.strip())
            else:
                current.pop("description", None)
        _apply_structured_fields(current, patch)
    return list(by_key.values())


def normalize_existing_items(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    items: list[dict[str, Any]] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        name = as_trimmed_string(entry.get("name"), 120)
        if not name:
            continue
        item = dict(entry)
        item["id"] = as_trimmed_string(entry.get("id"), 80) or generate_id("item")
        item["name"] = name
        item["category"] = normalize_item_category(entry.get("category")) or "misc"
        items.append(item)
    return items


def _build_configuration(patch: ItemConfigurationPatch, previous: dict[str, Any] | None) -> dict[str, Any]:
    config: dict[str, Any] = {
        "id": (previous or {}).get("id") or generate_id("cfg"),
        "name": patch.name,
    }
    if patch.description:
        config["description"] = localized_text(patch.description)
    for patch_key, stored_key in (("usage", "usage"), ("damage", "damage"), ("range", "range")):
        value = getattr(patch, patch_key)
        if value:
            config[stored_key] = value
    if patch.magic_bonus is not None:
        config["magicBonus"] = patch.magic_bonus
    if patch.attachments:
        config["attachments"] = merge_attachments([], patch.attachments)
    return config


def _replace_configurations(item: dict[str, Any], patches: list[ItemConfigurationPatch]) -> None:
    pool = [entry for entry in item.get("configurations") or [] if isinstance(entry, dict)]
    rebuilt: list[dict[str, Any]] = []
    for patch in patches:
        index = find_named_entry_index(pool, patch.name)
        previous = pool.pop(index) if index >= 0 else None
        rebuilt.append(_build_configuration(patch, previous))
    item["configurations"] = rebuilt
    active_id = item.get("activeConfigurationId")
    if not any(config["id"] == active_id for config in rebuilt):
        item["activeConfigurationId"] = rebuilt[0]["id"]


def find_item_index(items: list[dict[str, Any]], target_name: str, *, allow_partial: bool = True) -> int:
    return find_named_entry_index(items, target_name, allow_partial=allow_partial)


def _dedupe_description(item: dict[str, Any]) -> None:
    """Drop description lines that restate the item's attachments, including configuration ones."""
    description = localized_text_value(item.get("description"))
    if not description:
        return
    entries = [entry for entry in item.get("attachments") or [] if isinstance(entry, dict)]
    for config in item.get("configurations") or []:
        if isinstance(config, dict):
            entries.extend(entry for entry in config.get("attachments") or [] if isinstance(entry, dict))
    if not entries:
        return
    deduped = dedupe_stored_item_description(description, entries)
    _set_or_delete(item, "description", localized_text(deduped) if deduped else None)


def apply_item_patch(details: Any, patch: ItemPatch) -> ApplyResult:
    base = _working_copy(details)
    items = normalize_existing_items(base.get("items"))
    target = patch.target_item_name

    # Creation requests never bind to a merely similar item.
    index = find_item_index(items, target, allow_partial=not patch.create_if_missing)
    changed = False
    if index < 0:
        if not patch.create_if_missing:
            return ApplyResult(applied=False, message=f'No se encontró el objeto "{target}" en el inventario.')
        items.append(
            {
                "id": generate_id("item"),
                "name": target,
                "category": patch.category or "misc",
                "equippable": False,
                "equipped": False,
                "sortOrder": len(items),
            }
        )
        index = len(items) - 1
        changed = True

    item = items[index]
    if patch.name:
        item["name"] = patch.name
        changed = True
    if patch.category:
        item["category"] = patch.category
        changed = True
    if patch.equippable is not None:
        item["equippable"] = patch.equippable
        if not patch.equippable:
            item["equipped"] = False
        changed = True
    if patch.equipped is not None:
        item["equipped"] = patch.equipped
        changed = True
    if patch.quantity is not None:
        item["quantity"] = patch.quantity
        changed = True
    if patch.provided("rarity"):
        _set_or_delete(item, "rarity", patch.rarity)
        changed = True
    if patch.provided("description"):
        _set_or_delete(item, "description", localized_text(patch.description) if patch.description else None)
        changed = True
    if patch.provided("attunement"):
        _set_or_delete(item, "attunement", patch.attunement)
        changed = True

    if patch.tags_add or patch.tags_remove:
        tags = {normalize_for_match(tag): tag for tag in as_string_list(item.get("tags"), 64, 60)}
        for tag in patch.tags_add or []:
            tags[normalize_for_match(tag)] = tag
        for tag in patch.tags_remove or []:
            tags.pop(normalize_for_match(tag), None)
        _set_or_delete(item, "tags", list(tags.values()) or None)
        changed = True

    attachments_touched = patch.clear_attachments or patch.attachments_replace or patch.attachments_add
    if attachments_touched:
        attachments: list[dict[str, Any]] = []
        if not patch.clear_attachments and not patch.attachments_replace:
            attachments = [
                entry
                for entry in (normalize_existing_attachment(raw) for raw in item.get("attachments") or [])
                if entry is not None
            ]
        if patch.attachments_replace:
            attachments = merge_attachments([], patch.attachments_replace)
        if patch.attachments_add:
            attachments = merge_attachments(attachments, patch.attachments_add)
        _set_or_delete(item, "attachments", attachments or None)
        changed = True

    if patch.configurations_replace:
        _replace_configurations(item, patch.configurations_replace)
        changed = True

    if patch.provided("description") or attachments_touched or patch.configurations_replace:
        _dedupe_description(item)

    if not changed:
        return ApplyResult(applied=False, message=f'No se detectaron cambios concretos para el objeto "{target}".')

    for position, entry in enumerate(items):
        if not isinstance(entry.get("sortOrder"), int):
            entry["sortOrder"] = position
    base["items"] = items
    return ApplyResult(applied=True, details=base, message=f'Objeto "{target}" actualizado en inventario.')


# ---------------------------------------------------------------------------
# Custom spells and features
# ---------------------------------------------------------------------------


def _normalize_named_collection(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    entries: list[dict[str, Any]] = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        name = as_trimmed_string(raw.get("name"), 140)
        if not name:
            continue
        entry = dict(raw)
        entry["id"] = as_trimmed_string(raw.get("id"), 90) or generate_id("entry")
        entry["name"] = name
        entries.append(entry)
    return entries


def infer_spell_collection(patch: CustomSpellPatch) -> str:
    if patch.collection:
        return patch.collection
    if patch.level is not None and patch.level <= 0:
        return "customCantrips"
    probe = normalize_for_match(f"{patch.target_spell_name} {patch.name or ''}")
    if "cantrip" in probe or "truco" in probe:
        return "customCantrips"
    return "customSpells"


def infer_feature_collection(patch: CustomFeaturePatch) -> str:
    if patch.collection:
        return patch.collection
    if patch.action_type:
        return "customClassAbilities"
    probe = normalize_for_match(f"{patch.target_feature_name} {patch.name or ''}")
    if any(signal in probe for signal in ("accion", "action", "habilidad", "ability")):
        return "customClassAbilities"
    return "customTraits"


def _upsert_named_entry(
    details: Any,
    patch: CustomSpellPatch | CustomFeaturePatch,
    *,
    collection: str,
    target: str,
    id_prefix: str,
    create_defaults: dict[str, Any],
    messages: dict[str, str],
) -> ApplyResult:
    base = _working_copy(details)
    entries = _normalize_named_collection(base.get(collection))
    index = find_named_entry_index(entries, target)

    if patch.remove:
        if index < 0:
            return ApplyResult(applied=False, message=messages["missing"])
        entries.pop(index)
        base[collection] = entries
        return ApplyResult(applied=True, details=base, message=messages["removed"])

    changed = False
    if index < 0:
        if not patch.create_if_missing:
            return ApplyResult(applied=False, message=messages["missing"])
        entries.append({"id": generate_id(id_prefix), "name": patch.name or target, **create_defaults})
        index = len(entries) - 1
        changed = True

    current = entries[index]
    if patch.name:
        current["name"] = patch.name
        changed = True
    if patch.level is not None:
        current["level"] = patch.level
        changed = True
    if patch.provided("description"):
        _set_or_delete(current, "description", localized_text(patch.description) if patch.description else None)
        changed = True
    changed |= _apply_structured_fields(current, patch)

    if not changed:
        return ApplyResult(applied=False, message=messages["unchanged"])
    base[collection] = entries
    return ApplyResult(applied=True, details=base, message=messages["updated"])


def apply_custom_spell_patch(details: Any, patch: CustomSpellPatch) -> ApplyResult:
    collection = infer_spell_collection(patch)
    target = patch.target_spell_name
    level_default = patch.level if patch.level is not None else (0 if collection == "customCantrips" else 1)
    return _upsert_named_entry(
        details,
        patch,
        collection=collection,
        target=target,
        id_prefix="spell",
        create_defaults={"level": level_default},
        messages={
            "missing": f'No se encontró el hechizo "{target}" en {collection}.',
            "removed": f'Hechizo "{target}" eliminado de {collection}.',
            "unchanged": f'No hubo cambios concretos para el hechizo "{target}".',
            "updated": f'Hechizo "{target}" actualizado en {collection}.',
        },
    )


def apply_custom_feature_patch(details: Any, patch: CustomFeaturePatch) -> ApplyResult:
    collection = infer_feature_collection(patch)
    target = patch.target_feature_name
    return _upsert_named_entry(
        details,
        patch,
        collection=collection,
        target=target,
        id_prefix="feature",
        create_defaults={},
        messages={
            "missing": f'No se encontró el rasgo/habilidad "{target}" en {collection}.',
            "removed": f'Rasgo/habilidad "{target}" eliminado de {collection}.',
            "unchanged": f'No hubo cambios concretos para "{target}".',
            "updated": f'Rasgo/habilidad "{target}" actualizado en {collection}.',
        },
    )


# ---------------------------------------------------------------------------
# Learned spells
# ---------------------------------------------------------------------------


def _normalize_spell_level_list(value: Any) -> list[dict[str, str]]:
    if isinstance(value, str):
        return [{"name": line.strip()} for line in value.split("\n") if line.strip()]
    if not isinstance(value, list):
        return []
    entries: list[dict[str, str]] = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        name = as_trimmed_string(raw.get("name"), 140)
        if not name:
            continue
        index = as_trimmed_string(raw.get("index"), 140)
        entries.append({"index": index, "name": name} if index else {"name": name})
    return entries


def apply_learned_spell_patch(details: Any, patch: LearnedSpellPatch) -> ApplyResult:
    base = _working_copy(details)
    spells = dict(base.get("spells") or {}) if isinstance(base.get("spells"), dict) else {}
    key = f"level{patch.spell_level}"
    entries = _normalize_spell_level_list(spells.get(key))
    target_name = normalize_for_match(patch.spell_name) if patch.spell_name else None
    target_index = normalize_for_match(patch.spell_index) if patch.spell_index else None

    position = -1
    if target_index:
        position = next(
            (i for i, entry in enumerate(entries) if entry.get("index") and normalize_for_match(entry["index"]) == target_index),
            -1,
        )
    if position < 0 and target_name:
        position = next((i for i, entry in enumerate(entries) if normalize_for_match(entry["name"]) == target_name), -1)

    if patch.action == "forget":
        if position < 0:
            return ApplyResult(applied=False, message=f"No se encontró el hechizo indicado en {key}.")
        entries.pop(position)
        if entries:
            spells[key] = entries
        else:
            spells.pop(key, None)
        base["spells"] = spells
        return ApplyResult(applied=True, details=base, message=f"Hechizo eliminado de {key}.")

    if position >= 0:
        return ApplyResult(applied=False, message=f"El hechizo ya estaba presente en {key}.")
    entry = {"name": patch.spell_name or patch.spell_index or "Hechizo"}
    if patch.spell_index:
        entry["index"] = patch.spell_index
    entries.append(entry)
    spells[key] = entries
    base["spells"] = spells
    return ApplyResult(applied=True, details=base, message=f"Hechizo añadido en {key}.")


# ---------------------------------------------------------------------------
# Whole-character update
# ---------------------------------------------------------------------------

_SCALAR_UPDATE_FIELDS = ("level", "experience", "armor_class", "speed", "current_hp", "max_hp", "character_type")


@dataclass(slots=True)
class CharacterUpdate:
    payload: dict[str, Any] = field(default_factory=dict)
    messages: list[str] = field(default_factory=list)
    failure: str | None = None


def has_write_fields(data: ActionData) -> bool:
    return any(key != "user_id" for key in data.dump())


def compute_character_update(stats: Any, details: Any, data: ActionData) -> CharacterUpdate:
    """Compute the full next version of a character from one action's data.

    The first patch that cannot be applied stops the computation and is
    reported in ``failure``; the caller writes ``payload`` in a single update.
    """
    update = CharacterUpdate()
    payload = update.payload
    if data.name:
        payload["name"] = data.name
    if data.provided("class_name"):
        payload["class"] = data.class_name
    if data.provided("race"):
        payload["race"] = data.race
    for key in _SCALAR_UPDATE_FIELDS:
        value = getattr(data, key)
        if value is not None:
            payload[key] = value

    merged_stats = merge_stats(stats, data.stats)
    if merged_stats is not None:
        payload["stats"] = merged_stats

    next_details = merge_details(details, data.details_patch)
    appliers = (
        (data.item_patch, apply_item_patch),
        (data.custom_spell_patch, apply_custom_spell_patch),
        (data.custom_feature_patch, apply_custom_feature_patch),
        (data.learned_spell_patch, apply_learned_spell_patch),
    )
    for patch, applier in appliers:
        if patch is None:
            continue
        result = applier(next_details if next_details is not None else details, patch)
        if not result.applied or result.details is None:
            update.failure = result.message
            return update
        next_details = result.details
        update.messages.append(result.message)

    if next_details is not None:
        payload["details"] = next_details
    return update
