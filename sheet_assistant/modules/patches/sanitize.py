"""Total, idempotent coercion of untrusted JSON into typed patches.

Each ``sanitize_*`` function accepts anything (raw JSON, or an already
sanitized model) and returns either a model holding only the keys that were
valid, or ``None`` when nothing usable was present. Nothing here raises.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel

from sheet_assistant.modules.heuristics.keywords import PRICE_HEADING_RE
from sheet_assistant.modules.patches.coerce import (
    MISSING,
    as_context_string,
    as_integer,
    as_nullable_string,
    as_string_list,
    as_trimmed_string,
)
from sheet_assistant.modules.patches.schemas import (
    DETAIL_PATCH_KEYS,
    MAX_ACTIONS,
    PATCH_KINDS,
    STAT_KEYS,
    Action,
    ActionData,
    ClientContext,
    CustomFeaturePatch,
    CustomSpellPatch,
    DamageSpec,
    DetailsPatch,
    ItemAttachmentPatch,
    ItemConfigurationPatch,
    ItemPatch,
    LearnedSpellPatch,
    ResourceCost,
    SaveSpec,
    SelectedCharacterContext,
    SpellComponents,
    StatsPatch,
)
from sheet_assistant.modules.text.matching import normalize_for_match

MAX_ATTACHMENTS = 12
MAX_CONFIGURATIONS = 6

ITEM_CATEGORIES = ("weapon", "armor", "accessory", "consumable", "tool", "misc")
ATTACHMENT_TYPES = ("action", "ability", "trait", "spell", "cantrip", "classFeature", "other")
ABILITY_KEYS = ("STR", "DEX", "CON", "INT", "WIS", "CHA")

_ATTACHMENT_TYPE_ALIASES = {
    "habilidad": "ability",
    "ability": "ability",
    "rasgo": "trait",
    "trait": "trait",
    "accion": "action",
    "action": "action",
    "hechizo": "spell",
    "spell": "spell",
    "truco": "cantrip",
    "cantrip": "cantrip",
    "rasgodeclase": "classFeature",
    "classfeature": "classFeature",
    "otro": "other",
    "other": "other",
}
_ABILITY_SIGNALS = (
    "ventaja", "advantage", "bono", "bonus", "tirada", "roll", "puedes", "you can",
    "obtienes", "you gain", "cd ", "dc ", "accion", "action",
)
_WHITESPACE_RE = re.compile(r"\s+")


def _as_raw(value: Any) -> dict[str, Any] | None:
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_unset=True, by_alias=True)
    if isinstance(value, dict):
        return value
    return None


def _as_raw_list(value: Any) -> list[Any] | None:
    if isinstance(value, (list, tuple)):
        return list(value)
    return None


def _set_nullable(out: dict[str, Any], raw: dict[str, Any], key: str, max_len: int) -> None:
    parsed = as_nullable_string(raw.get(key, MISSING), max_len)
    if parsed is not MISSING:
        out[key] = parsed


def _set_int(out: dict[str, Any], key: str, value: Any, minimum: int, maximum: int) -> None:
    parsed = as_integer(value, minimum, maximum)
    if parsed is not None:
        out[key] = parsed


def _set_bool(out: dict[str, Any], key: str, value: Any) -> None:
    if isinstance(value, bool):
        out[key] = value


def normalize_ability_key(value: Any) -> str | None:
    raw = as_trimmed_string(value, 8)
    if not raw:
        return None
    upper = raw.upper()
    return upper if upper in ABILITY_KEYS else None


def normalize_spell_collection(value: Any) -> str | None:
    raw = as_trimmed_string(value, 40)
    if not raw:
        return None
    if raw in ("customSpells", "customCantrips"):
        return raw
    normalized = normalize_for_match(raw)
    if "cantrip" in normalized or "truco" in normalized:
        return "customCantrips"
    if "spell" in normalized or "hechizo" in normalized:
        return "customSpells"
    return None


def normalize_feature_collection(value: Any) -> str | None:
    raw = as_trimmed_string(value, 60)
    if not raw:
        return None
    if raw in ("customTraits", "customClassAbilities"):
        return raw
    normalized = normalize_for_match(raw)
    if "trait" in normalized or "rasgo" in normalized:
        return "customTraits"
    if any(signal in normalized for signal in ("habil", "abilit", "action", "accion")):
        return "customClassAbilities"
    return None


def normalize_feature_action_type(value: Any) -> str | None:
    raw = as_trimmed_string(value, 24)
    if not raw:
        return None
    normalized = normalize_for_match(raw)
    if normalized in ("action", "bonus", "reaction", "passive"):
        return normalized
    return {"accion": "action", "reaccion": "reaction", "pasiva": "passive", "pasivo": "passive"}.get(normalized)


def normalize_item_category(value: Any) -> str | None:
    raw = as_trimmed_string(value, 40)
    if not raw:
        return None
    normalized = normalize_for_match(raw)
    if normalized in ITEM_CATEGORIES:
        return normalized
    if "arma" in normalized and "armadura" not in normalized or "weapon" in normalized:
        return "weapon"
    if "armadura" in normalized or "armor" in normalized:
        return "armor"
    if "acces" in normalized:
        return "accessory"
    if "consum" in normalized:
        return "consumable"
    if "herramient" in normalized or "tool" in normalized:
        return "tool"
    if "misc" in normalized or "objeto" in normalized:
        return "misc"
    return None


def normalize_attachment_type(value: Any) -> str | None:
    raw = as_trimmed_string(value, 32)
    if not raw:
        return None
    if raw in ATTACHMENT_TYPES:
        return raw
    compact = normalize_for_match(_WHITESPACE_RE.sub("", raw))
    return _ATTACHMENT_TYPE_ALIASES.get(compact)


def infer_attachment_type(name: str, description: str | None = None) -> str:
    haystack = normalize_for_match(f"{name} {description or ''}")
    if any(signal in haystack for signal in _ABILITY_SIGNALS):
        return "ability"
    return "trait"


def sanitize_spell_components(value: Any) -> SpellComponents | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    out: dict[str, Any] = {}
    for key in ("verbal", "somatic", "material"):
        _set_bool(out, key, raw.get(key))
    return SpellComponents(**out) if out else None


def sanitize_resource_cost(value: Any, *, allow_recharge: bool = True) -> ResourceCost | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    out: dict[str, Any] = {}
    _set_bool(out, "uses_spell_slot", raw.get("uses_spell_slot"))
    _set_int(out, "slot_level", raw.get("slot_level"), 0, 9)
    _set_int(out, "charges", raw.get("charges"), 0, 999)
    _set_int(out, "points", raw.get("points"), 0, 999)
    if allow_recharge:
        recharge = (as_trimmed_string(raw.get("recharge"), 16) or "").lower()
        if recharge in ("short", "long"):
            out["recharge"] = recharge
        _set_nullable(out, raw, "points_label", 120)
    return ResourceCost(**out) if out else None


def sanitize_save_spec(value: Any) -> SaveSpec | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    out: dict[str, Any] = {}
    save_type = (as_trimmed_string(raw.get("type"), 16) or "").lower()
    if save_type in ("attack", "save", "none"):
        out["type"] = save_type
    save_ability = normalize_ability_key(raw.get("save_ability"))
    if save_ability:
        out["save_ability"] = save_ability
    dc_type = (as_trimmed_string(raw.get("dc_type"), 16) or "").lower()
    if dc_type in ("fixed", "stat"):
        out["dc_type"] = dc_type
    _set_int(out, "dc_value", raw.get("dc_value"), 0, 40)
    dc_stat = normalize_ability_key(raw.get("dc_stat"))
    if dc_stat:
        out["dc_stat"] = dc_stat
    return SaveSpec(**out) if out else None


def sanitize_damage_spec(value: Any) -> DamageSpec | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    out: dict[str, Any] = {}
    for key, max_len in (("damage_type", 80), ("dice", 80), ("scaling", 220)):
        parsed = as_trimmed_string(raw.get(key), max_len)
        if parsed:
            out[key] = parsed
    return DamageSpec(**out) if out else None


def _sanitize_spell_fields(raw: dict[str, Any], out: dict[str, Any], *, allow_recharge: bool) -> None:
    _set_nullable(out, raw, "school", 120)
    _set_nullable(out, raw, "casting_time", 120)
    _set_nullable(out, raw, "casting_time_note", 220)
    _set_nullable(out, raw, "range", 220)
    components = sanitize_spell_components(raw.get("components"))
    if components:
        out["components"] = components
    _set_nullable(out, raw, "materials", 220)
    _set_nullable(out, raw, "duration", 220)
    _set_bool(out, "concentration", raw.get("concentration"))
    _set_bool(out, "ritual", raw.get("ritual"))
    resource_cost = sanitize_resource_cost(raw.get("resource_cost"), allow_recharge=allow_recharge)
    if resource_cost:
        out["resource_cost"] = resource_cost
    save = sanitize_save_spec(raw.get("save"))
    if save:
        out["save"] = save
    damage = sanitize_damage_spec(raw.get("damage"))
    if damage:
        out["damage"] = damage


def sanitize_item_attachment_patch(value: Any) -> ItemAttachmentPatch | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    name = as_trimmed_string(raw.get("name"), 140)
    if not name:
        return None
    description = as_nullable_string(raw.get("description", MISSING), 4000)
    explicit_type = normalize_attachment_type(raw.get("type"))
    out: dict[str, Any] = {
        "name": name,
        "type": explicit_type or infer_attachment_type(name, None if description is MISSING else description),
    }
    _set_int(out, "level", raw.get("level"), 0, 20)
    if description is not MISSING:
        out["description"] = description
    _sanitize_spell_fields(raw, out, allow_recharge=True)
    action_type = normalize_feature_action_type(raw.get("action_type"))
    if action_type:
        out["action_type"] = action_type
    _set_nullable(out, raw, "requirements", 300)
    _set_nullable(out, raw, "effect", 700)
    return ItemAttachmentPatch(**out)


def sanitize_item_attachments(value: Any) -> list[ItemAttachmentPatch]:
    output: list[ItemAttachmentPatch] = []
    for entry in _as_raw_list(value) or []:
        parsed = sanitize_item_attachment_patch(entry)
        if parsed is None:
            continue
        output.append(parsed)
        if len(output) >= MAX_ATTACHMENTS:
            break
    return output


def sanitize_item_configuration(value: Any) -> ItemConfigurationPatch | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    name = as_trimmed_string(raw.get("name"), 120)
    if not name:
        return None
    out: dict[str, Any] = {"name": name}
    _set_nullable(out, raw, "description", 4000)
    _set_nullable(out, raw, "usage", 220)
    _set_nullable(out, raw, "damage", 120)
    _set_nullable(out, raw, "range", 120)
    _set_int(out, "magic_bonus", raw.get("magic_bonus"), -10, 10)
    attachments = sanitize_item_attachments(raw.get("attachments"))
    if attachments:
        out["attachments"] = attachments
    return ItemConfigurationPatch(**out)


def sanitize_item_configurations(value: Any) -> list[ItemConfigurationPatch]:
    output: list[ItemConfigurationPatch] = []
    for entry in _as_raw_list(value) or []:
        parsed = sanitize_item_configuration(entry)
        if parsed is None:
            continue
        output.append(parsed)
        if len(output) >= MAX_CONFIGURATIONS:
            break
    return output


def split_price_suffix(value: str) -> tuple[str, str | None]:
    """Split ``"Cuerda Feérica – 35 po"`` into ``("Cuerda Feérica", "35 po")``; no price gives ``(value, None)``."""
    match = PRICE_HEADING_RE.match(value)
    if not match:
        return value, None
    name = as_trimmed_string(match.group("name").rstrip(" -–—:"), 120)
    if not name:
        return value, None
    return name, f"{match.group('amount')} {match.group('currency').lower()}"


def _add_price_line(out: dict[str, Any], price: str) -> None:
    description = out.get("description", MISSING)
    if description is MISSING:
        if out.get("create_if_missing"):
            out["description"] = f"Precio: {price}"
        return
    if isinstance(description, str) and "precio" not in normalize_for_match(description):
        out["description"] = as_trimmed_string(f"Precio: {price}\n{description}", 4000)


def sanitize_item_patch(value: Any) -> ItemPatch | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    target = as_trimmed_string(raw.get("target_item_name"), 120)
    if not target:
        return None
    target, price = split_price_suffix(target)
    out: dict[str, Any] = {"target_item_name": target}
    name = as_trimmed_string(raw.get("name"), 120)
    if name:
        name, name_price = split_price_suffix(name)
        out["name"] = name
        price = price or name_price
    _set_bool(out, "create_if_missing", raw.get("create_if_missing"))
    category = normalize_item_category(raw.get("category"))
    if category:
        out["category"] = category
    _set_bool(out, "equippable", raw.get("equippable"))
    _set_bool(out, "equipped", raw.get("equipped"))
    _set_int(out, "quantity", raw.get("quantity"), 0, 999)
    _set_nullable(out, raw, "rarity", 120)
    _set_nullable(out, raw, "description", 4000)
    if price:
        _add_price_line(out, price)

    attunement = raw.get("attunement", MISSING)
    if isinstance(attunement, bool) or attunement is None:
        out["attunement"] = attunement
    else:
        parsed_attunement = as_trimmed_string(attunement, 120)
        if parsed_attunement:
            out["attunement"] = parsed_attunement

    for key in ("tags_add", "tags_remove"):
        tags = as_string_list(raw.get(key), 16, 50)
        if tags:
            out[key] = tags
    _set_bool(out, "clear_attachments", raw.get("clear_attachments"))
    for key in ("attachments_add", "attachments_replace"):
        attachments = sanitize_item_attachments(raw.get(key))
        if attachments:
            out[key] = attachments
    configurations = sanitize_item_configurations(raw.get("configurations_replace"))
    if configurations:
        out["configurations_replace"] = configurations
    return ItemPatch(**out)


def sanitize_learned_spell_patch(value: Any) -> LearnedSpellPatch | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    level = as_integer(raw.get("spell_level"), 0, 9)
    if level is None:
        return None
    spell_name = as_trimmed_string(raw.get("spell_name"), 140)
    spell_index = as_trimmed_string(raw.get("spell_index"), 140)
    if not spell_name and not spell_index:
        return None
    action = (as_trimmed_string(raw.get("action"), 20) or "").lower()
    out: dict[str, Any] = {"action": action if action in ("learn", "forget") else "learn", "spell_level": level}
    if spell_name:
        out["spell_name"] = spell_name
    if spell_index:
        out["spell_index"] = spell_index
    return LearnedSpellPatch(**out)


def sanitize_custom_spell_patch(value: Any) -> CustomSpellPatch | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    target = as_trimmed_string(raw.get("target_spell_name"), 140)
    if not target:
        return None
    out: dict[str, Any] = {"target_spell_name": target}
    collection = normalize_spell_collection(raw.get("collection"))
    if collection:
        out["collection"] = collection
    _set_bool(out, "create_if_missing", raw.get("create_if_missing"))
    _set_bool(out, "remove", raw.get("remove"))
    name = as_trimmed_string(raw.get("name"), 140)
    if name:
        out["name"] = name
    _set_int(out, "level", raw.get("level"), 0, 9)
    _set_nullable(out, raw, "description", 4000)
    _sanitize_spell_fields(raw, out, allow_recharge=False)
    return CustomSpellPatch(**out)


def sanitize_custom_feature_patch(value: Any) -> CustomFeaturePatch | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    target = as_trimmed_string(raw.get("target_feature_name"), 140)
    if not target:
        return None
    out: dict[str, Any] = {"target_feature_name": target}
    collection = normalize_feature_collection(raw.get("collection"))
    if collection:
        out["collection"] = collection
    _set_bool(out, "create_if_missing", raw.get("create_if_missing"))
    _set_bool(out, "remove", raw.get("remove"))
    name = as_trimmed_string(raw.get("name"), 140)
    if name:
        out["name"] = name
    _set_int(out, "level", raw.get("level"), 0, 30)
    _set_nullable(out, raw, "description", 4000)
    action_type = normalize_feature_action_type(raw.get("action_type"))
    if action_type:
        out["action_type"] = action_type
    _set_nullable(out, raw, "requirements", 300)
    _set_nullable(out, raw, "effect", 700)
    _set_nullable(out, raw, "subclass_id", 120)
    _set_nullable(out, raw, "subclass_name", 160)
    resource_cost = sanitize_resource_cost(raw.get("resource_cost"), allow_recharge=True)
    if resource_cost:
        out["resource_cost"] = resource_cost
    return CustomFeaturePatch(**out)


def sanitize_stats_patch(value: Any) -> StatsPatch | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    out: dict[str, Any] = {}
    for key in STAT_KEYS:
        _set_int(out, key, raw.get(key), 1, 30)
    return StatsPatch(**out) if out else None


def sanitize_details_patch(value: Any) -> DetailsPatch | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    out: dict[str, Any] = {}
    for key in DETAIL_PATCH_KEYS:
        _set_nullable(out, raw, key, 4000)
    return DetailsPatch(**out) if out else None


_PATCH_SANITIZERS = {
    "item_patch": sanitize_item_patch,
    "learned_spell_patch": sanitize_learned_spell_patch,
    "custom_spell_patch": sanitize_custom_spell_patch,
    "custom_feature_patch": sanitize_custom_feature_patch,
}


def _sanitize_action_fields(raw: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split recognized action data into (core fields, patch kinds)."""
    core: dict[str, Any] = {}
    name = as_trimmed_string(raw.get("name"), 120)
    if name:
        core["name"] = name
    _set_nullable(core, raw, "class", 120)
    _set_nullable(core, raw, "race", 120)
    _set_int(core, "level", raw.get("level"), 1, 20)
    _set_int(core, "experience", raw.get("experience"), 0, 100_000_000)
    _set_int(core, "armor_class", raw.get("armor_class"), 1, 60)
    _set_int(core, "speed", raw.get("speed"), 0, 200)
    _set_int(core, "current_hp", raw.get("current_hp"), 0, 9999)
    _set_int(core, "max_hp", raw.get("max_hp"), 0, 9999)
    if raw.get("character_type") in ("character", "companion"):
        core["character_type"] = raw["character_type"]
    owner = as_trimmed_string(raw.get("user_id"), 64)
    if owner:
        core["user_id"] = owner
    stats = sanitize_stats_patch(raw.get("stats"))
    if stats:
        core["stats"] = stats
    details = sanitize_details_patch(raw.get("details_patch"))
    if details:
        core["details_patch"] = details

    patches: dict[str, Any] = {}
    for kind in PATCH_KINDS:
        parsed = _PATCH_SANITIZERS[kind](raw.get(kind))
        if parsed is not None:
            patches[kind] = parsed
    return core, patches


def sanitize_action_data(value: Any) -> ActionData | None:
    """Sanitize one action payload. Extra patch kinds beyond the first are dropped."""
    raw = _as_raw(value)
    if raw is None:
        return None
    core, patches = _sanitize_action_fields(raw)
    first_kind = next(iter(patches), None)
    if first_kind:
        core[first_kind] = patches[first_kind]
    return ActionData(**core)


def sanitize_actions(actions: Any, default_target: str | None = None) -> list[Action]:
    """Sanitize a raw action list into at most ``MAX_ACTIONS`` single-patch actions.

    Update actions carrying several patch kinds are split into one action per
    kind, in a fixed order, all pointing at the same character.
    """
    output: list[Action] = []
    for entry in (_as_raw_list(actions) or [])[:MAX_ACTIONS]:
        raw = _as_raw(entry)
        if raw is None:
            continue
        operation = raw.get("operation")
        if operation not in ("create", "update"):
            continue
        data_raw = _as_raw(raw.get("data"))
        if data_raw is None:
            continue
        core, patches = _sanitize_action_fields(data_raw)

        note = as_trimmed_string(raw.get("note"), 500)
        character_id = as_trimmed_string(raw.get("characterId"), 64)
        if operation == "update":
            character_id = character_id or as_trimmed_string(default_target, 64)
            if not character_id:
                continue

        base: dict[str, Any] = {"operation": operation}
        if character_id:
            base["characterId"] = character_id
        if note:
            base["note"] = note

        if operation == "create" or not patches:
            output.append(Action(**base, data=ActionData(**core)))
            continue
        for index, (kind, patch) in enumerate(patches.items()):
            data = dict(core) if index == 0 else {}
            data[kind] = patch
            output.append(Action(**base, data=ActionData(**data)))
    return output[:MAX_ACTIONS]


def sanitize_client_context(value: Any) -> ClientContext | None:
    raw = _as_raw(value)
    if raw is None:
        return None
    out: dict[str, Any] = {}
    surface = (as_context_string(raw.get("surface"), 16) or "").lower()
    if surface in ("player", "dm"):
        out["surface"] = surface
    for key, max_len in (("locale", 12), ("section", 64), ("panelMode", 64), ("activeTab", 48)):
        parsed = as_context_string(raw.get(key), max_len)
        if parsed:
            out[key] = parsed
    available_actions = as_string_list(raw.get("availableActions"), 16, 80, collapse=True)
    if available_actions:
        out["availableActions"] = available_actions
    hints = as_string_list(raw.get("hints"), 16, 100, collapse=True)
    if hints:
        out["hints"] = hints

    selected_raw = _as_raw(raw.get("selectedCharacter"))
    if selected_raw is not None:
        selected: dict[str, Any] = {}
        for key, max_len in (("id", 64), ("name", 120)):
            parsed = as_context_string(selected_raw.get(key), max_len)
            if parsed:
                selected[key] = parsed
        _set_nullable(selected, selected_raw, "class", 120)
        _set_nullable(selected, selected_raw, "race", 120)
        _set_int(selected, "level", selected_raw.get("level"), 1, 30)
        character_type = (as_context_string(selected_raw.get("character_type"), 16) or "").lower()
        if character_type in ("character", "companion"):
            selected["character_type"] = character_type
        if selected:
            out["selectedCharacter"] = SelectedCharacterContext(**selected)

    return ClientContext(**out) if out else None
