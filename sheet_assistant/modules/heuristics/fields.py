"""Field extraction for heuristic sub-blocks.

Turns ``key: value`` lines and loose description text into the wire-format
dictionaries the sanitizer accepts (``save``, ``damage``, ``resource_cost`` ...).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sheet_assistant.modules.heuristics.classify import classify_block_type
from sheet_assistant.modules.heuristics.keywords import (
    ABILITY_ALIASES,
    DAMAGE_TYPES,
    DICE_RE,
    label_matches,
)
from sheet_assistant.modules.patches.coerce import as_integer, as_trimmed_string
from sheet_assistant.modules.patches.sanitize import (
    normalize_attachment_type,
    sanitize_item_attachment_patch,
)
from sheet_assistant.modules.patches.schemas import ItemAttachmentPatch
from sheet_assistant.modules.text.matching import normalize_for_match

_KEY_VALUE_RE = re.compile(r"^(?P<label>[^:]{2,60}):\s*(?P<value>.*)$")
_WORD_RE = re.compile(r"[a-z]+")
_SHORT_ABILITY_RE = re.compile(r"\b(FUE|DES|CON|INT|SAB|CAR|STR|DEX|WIS|CHA)\b")
_DC_VALUE_RE = re.compile(r"\b(?:cd|dc)\s*[:=]?\s*(\d{1,2})\b")
_FREE_SAVE_RE = re.compile(r"\b(?:salvacion|saving throw|save)\b\s*(?:de\s+)?:?\s*(?:de\s+)?([a-z]+)")
_NUMBER_RE = re.compile(r"[+-]?\d{1,3}")
_MATERIALS_RE = re.compile(r"\(([^()]{2,200})\)")
_YES_VALUES = ("si", "yes", "true", "requiere", "required")

MAX_ATTACHMENTS = 12

# (label keys, canonical field) in lookup order
_FIELD_KEYS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("tiempo de lanzamiento", "lanzamiento", "casting time"), "casting_time"),
    (("alcance", "range"), "range"),
    (("componentes", "components"), "components"),
    (("duracion", "duration"), "duration"),
    (("escuela", "school"), "school"),
    (("tirada de salvacion", "salvacion", "saving throw", "save"), "save"),
    (("cd", "dc"), "dc"),
    (("dano", "damage"), "damage"),
    (("nivel", "level"), "level"),
    (("uso", "use", "usage", "activacion", "activation"), "usage"),
    (("recarga", "recharge"), "recharge"),
    (("cargas", "charges"), "charges"),
    (("requisitos", "requiere", "requirements"), "requirements"),
    (("efecto", "effect"), "effect"),
    (("materiales", "materials"), "materials"),
    (("concentracion", "concentration"), "concentration"),
    (("ritual",), "ritual"),
)


@dataclass(slots=True)
class BlockFields:
    fields: dict[str, Any] = field(default_factory=dict)
    description_lines: list[str] = field(default_factory=list)

    @property
    def description(self) -> str | None:
        return as_trimmed_string("\n".join(self.description_lines), 4000)


def split_key_value(line: str) -> tuple[str, str] | None:
    """Split ``Label: value``. The label must be at most six words."""
    match = _KEY_VALUE_RE.match(line.strip())
    if not match:
        return None
    label = match.group("label").strip()
    if not label or len(label.split()) > 6:
        return None
    return label, match.group("value").strip()


def field_key_for_label(label: str) -> str | None:
    folded = normalize_for_match(label)
    for keys, canonical in _FIELD_KEYS:
        if label_matches(folded, keys):
            return canonical
    return None


def parse_rarity_from_text(value: str | None) -> str | None:
    if not value:
        return None
    normalized = normalize_for_match(value)
    if not normalized:
        return None
    if "unico" in normalized or "unica" in normalized or "unique" in normalized:
        return "única"
    if "legend" in normalized:
        return "legendaria"
    if "muy rar" in normalized or "very rare" in normalized:
        return "muy rara"
    if "rara" in normalized or "raro" in normalized or "rare" in normalized:
        return "rara"
    if "poco comun" in normalized or "uncommon" in normalized:
        return "poco común"
    if "comun" in normalized or "common" in normalized:
        return "común"
    return None


def parse_ability(value: str) -> str | None:
    """First ability named in ``value``; short codes only count in upper case."""
    for word in _WORD_RE.findall(normalize_for_match(value)):
        if len(word) > 3 and word in ABILITY_ALIASES:
            return ABILITY_ALIASES[word]
    short = _SHORT_ABILITY_RE.search(value)
    if short:
        return ABILITY_ALIASES[short.group(1).lower()]
    return None


def parse_save_spec(value: str) -> dict[str, Any] | None:
    ability = parse_ability(value)
    normalized = normalize_for_match(value)
    save: dict[str, Any] = {}
    if ability:
        save = {"type": "save", "save_ability": ability}
    dc_match = _DC_VALUE_RE.search(normalized)
    if dc_match:
        save.update({"type": "save", "dc_type": "fixed", "dc_value": int(dc_match.group(1))})
    elif save and ("conjuro" in normalized or "spell" in normalized or "hechizo" in normalized):
        save["dc_type"] = "stat"
    return save or None


def parse_damage_spec(value: str) -> dict[str, Any] | None:
    normalized = normalize_for_match(value)
    damage: dict[str, Any] = {}
    dice = DICE_RE.search(normalized)
    if dice:
        damage["dice"] = re.sub(r"\s+", "", dice.group(1))
    tail = normalized[dice.end():] if dice else normalized
    for word in _WORD_RE.findall(tail):
        if word in DAMAGE_TYPES:
            damage["damage_type"] = DAMAGE_TYPES[word]
            break
    return damage or None


def parse_action_type(value: str) -> str | None:
    normalized = normalize_for_match(value)
    if "adicional" in normalized or "bonus" in normalized:
        return "bonus"
    if "reaccion" in normalized or "reaction" in normalized:
        return "reaction"
    if "pasiv" in normalized or "passive" in normalized:
        return "passive"
    if "accion" in normalized or "action" in normalized:
        return "action"
    return None


def parse_components(value: str) -> tuple[dict[str, bool], str | None]:
    normalized = normalize_for_match(value)
    bare = _MATERIALS_RE.sub(" ", normalized)
    components = {
        "verbal": bool(re.search(r"\bv\b|verbal", bare)),
        "somatic": bool(re.search(r"\bs\b|somatic", bare)),
        "material": bool(re.search(r"\bm\b|material", bare)),
    }
    materials = _MATERIALS_RE.search(value)
    return components, (materials.group(1).strip() if materials else None)


def _resource_cost(fields: dict[str, Any]) -> dict[str, Any]:
    return fields.setdefault("resource_cost", {})


def _apply_field(fields: dict[str, Any], key: str, value: str, line: str, description: list[str]) -> None:
    normalized = normalize_for_match(value)
    if key in ("casting_time", "range", "duration", "school", "materials", "requirements", "effect"):
        fields[key] = value
        if key == "duration" and ("concentracion" in normalized or "concentration" in normalized):
            fields["concentration"] = True
    elif key == "components":
        components, materials = parse_components(value)
        fields["components"] = components
        if materials and "materials" not in fields:
            fields["materials"] = materials
    elif key == "save":
        save = parse_save_spec(value)
        if save:
            fields["save"] = {**fields.get("save", {}), **save}
        else:
            description.append(line)
    elif key == "dc":
        dc_value = as_integer(_first_number(value), 0, 40)
        if dc_value is None:
            description.append(line)
        else:
            fields["save"] = {**fields.get("save", {}), "type": "save", "dc_type": "fixed", "dc_value": dc_value}
    elif key == "damage":
        damage = parse_damage_spec(value)
        if damage:
            fields["damage"] = damage
        else:
            description.append(line)
    elif key == "level":
        level = as_integer(_first_number(value), 0, 20)
        if level is None:
            description.append(line)
        else:
            fields["level"] = level
    elif key == "usage":
        action_type = parse_action_type(value)
        if action_type:
            fields["action_type"] = action_type
        else:
            description.append(line)
    elif key == "recharge":
        if "corto" in normalized or "short" in normalized:
            _resource_cost(fields)["recharge"] = "short"
        elif "largo" in normalized or "long" in normalized:
            _resource_cost(fields)["recharge"] = "long"
        description.append(line)
    elif key == "charges":
        charges = as_integer(_first_number(value), 0, 999)
        if charges is not None:
            _resource_cost(fields)["charges"] = charges
        description.append(line)
    elif key in ("concentration", "ritual"):
        fields[key] = any(normalized.startswith(token) for token in _YES_VALUES)


def _first_number(value: str) -> str | None:
    match = _NUMBER_RE.search(value)
    return match.group(0) if match else None


def scan_free_text(fields: dict[str, Any], text: str) -> None:
    """Fill ``save`` and ``damage`` from loose prose when no labelled line set them."""
    if not text:
        return
    normalized = normalize_for_match(text)
    if "save" not in fields:
        match = _FREE_SAVE_RE.search(normalized)
        if match:
            save = parse_save_spec(normalized[match.start():])
            if save and save.get("save_ability"):
                fields["save"] = save
    if "damage" not in fields and DICE_RE.search(normalized):
        damage = parse_damage_spec(text)
        if damage:
            fields["damage"] = damage


def extract_block_fields(lines: list[str]) -> BlockFields:
    extracted = BlockFields()
    for line in lines:
        pair = split_key_value(line)
        key = field_key_for_label(pair[0]) if pair and pair[1] else None
        if key is None or pair is None:
            extracted.description_lines.append(line)
            continue
        _apply_field(extracted.fields, key, pair[1], line, extracted.description_lines)
    scan_free_text(extracted.fields, "\n".join(extracted.description_lines))
    return extracted


def normalize_attachment_patch_list(value: Any) -> list[ItemAttachmentPatch]:
    """Sanitize attachments and derive missing structured fields from their descriptions.

    An explicit, valid ``type`` is kept; otherwise the block classifier decides.
    """
    if not isinstance(value, (list, tuple)):
        return []
    output: list[ItemAttachmentPatch] = []
    for entry in value:
        patch = sanitize_item_attachment_patch(entry)
        if patch is None:
            continue
        raw_type = entry.get("type") if isinstance(entry, dict) else getattr(entry, "type", None)
        description = patch.description or ""
        extracted = extract_block_fields(description.splitlines()) if description else BlockFields()
        merged = {**extracted.fields, **patch.dump()}
        if not normalize_attachment_type(raw_type):
            merged["type"] = classify_block_type(patch.name, description, merged)
        enriched = sanitize_item_attachment_patch(merged)
        if enriched is not None:
            output.append(enriched)
        if len(output) >= MAX_ATTACHMENTS:
            break
    return output
