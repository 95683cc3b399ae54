"""Regex extractors over a single user instruction.

Each parser returns wire-format values (plain dicts, ints, strings) that the
sanitizer accepts, or None when the instruction carries no such signal.
"""

from __future__ import annotations

import re
from typing import Any

from sheet_assistant.modules.heuristics.keywords import CREATE_VERBS, EDIT_VERBS, has_any
from sheet_assistant.modules.patches.coerce import as_integer, as_trimmed_string
from sheet_assistant.modules.text.matching import normalize_for_match

_QUOTED_RE = re.compile(r"[\"“”]([^\"\n“”]{2,220})[\"“”]")
_ENTITY_STOP_RE = re.compile(r"\b(?:en|al|a|nivel|level|con|para|y|que|where|with)\b", re.IGNORECASE)
_CALLED_RE = re.compile(r"\b(?:llamado|llamada|called|nombre)\s*[:=-]?\s*([^\n,.;]{2,180})", re.IGNORECASE)
_SCOPED_TARGET_RE = re.compile(r"\b(?:en|a|para)\s+([^\n,.;:!?]{2,120})", re.IGNORECASE)
_PLEASE_TAIL_RE = re.compile(r"\b(?:por\s+favor|please)\b.*$", re.IGNORECASE)
_DDE_RE = re.compile(r"\bdde\b", re.IGNORECASE)
_ITEM_TARGET_RE = re.compile(
    r"\b(?:cambia|modifica|actualiza|edita|anade|añade|agrega|inserta|mete|crea|add|insert)\b"
    r"[^a-z0-9áéíóúüñ]{0,4}(?:el|la|los|las)?\s*([^\n]+?)(?:\s+\b(?:para|por|a|en)\b|$)",
    re.IGNORECASE,
)

_STAT_ALIASES: dict[str, tuple[str, ...]] = {
    "str": ("str", "fuerza", "strength"),
    "dex": ("dex", "destreza", "dexterity"),
    "con": ("constitucion", "constitution"),
    "int": ("int", "inteligencia", "intelligence"),
    "wis": ("wis", "sabiduria", "wisdom"),
    "cha": ("cha", "carisma", "charisma"),
}
# "con" is also a Spanish preposition; the short code only counts in upper case.
_UPPERCASE_ONLY_STATS = {"con": "CON"}

_LEVEL_RE = re.compile(r"\b(?:nivel|level)\s*(\d{1,2})\b", re.IGNORECASE)
_SPELL_LEVEL_RE = re.compile(r"\b(?:nivel|level)\s*(\d)\b", re.IGNORECASE)
_XP_RE = re.compile(r"\b(?:xp|experiencia|experience)\s*[:=-]?\s*(\d{1,9})\b", re.IGNORECASE)
_AC_RE = re.compile(r"\b(?:ca|ac|armor class)\b\s*[:=-]?\s*(\d{1,2})\b", re.IGNORECASE)
_SPEED_RE = re.compile(r"\b(?:velocidad|speed)\b\s*[:=-]?\s*(\d{1,3})\b", re.IGNORECASE)
_HP_SLASH_RE = re.compile(r"\b(?:hp|vida|puntos?\s+de\s+golpe)\b[^\d\n]{0,12}(\d{1,4})\s*/\s*(\d{1,4})", re.IGNORECASE)
_HP_MAX_RE = re.compile(r"\b(?:hp\s*max|max\s*hp|vida\s+m[aá]xima)\b\s*[:=-]?\s*(\d{1,4})\b", re.IGNORECASE)
_HP_CURRENT_RE = re.compile(r"\b(?:hp\s*actual|vida\s+actual|current\s*hp)\b\s*[:=-]?\s*(\d{1,4})\b", re.IGNORECASE)
_HP_GENERIC_RE = re.compile(r"\b(?:hp|vida|puntos?\s+de\s+golpe)\b\s*[:=-]?\s*(\d{1,4})\b", re.IGNORECASE)
_CLASS_RE = re.compile(r"\b(?:clase|class)\b\s*[:=-]?\s*([^\n,.;]{2,120})", re.IGNORECASE)
_RACE_RE = re.compile(r"\b(?:raza|race)\b\s*[:=-]?\s*([^\n,.;]{2,120})", re.IGNORECASE)

_SPELL_CALLED_RE = re.compile(r"\b(?:llamado|llamada|named)\s*[:=-]?\s*([^\n,.;]{2,160})", re.IGNORECASE)
_SPELL_LEAD_RE = re.compile(
    r"\b(?:hechizo|spell|truco|cantrip)\b\s*(?:llamado|llamada|named)?\s*([^\n,.;]{2,160})", re.IGNORECASE
)
_SPELL_VERB_RE = re.compile(
    r"\b(?:aprende|learn|olvida|forget|agrega|añade|anade|quita|remove)\b\s+([^\n,.;]{2,160})", re.IGNORECASE
)
_DESCRIPTION_WORD_RE = re.compile(r"\b(?:descripcion|descripción|description|efecto)\b", re.IGNORECASE)

_WRITE_VERBS = r"(?:anade|añade|agrega|pon|escribe)"
_DETAIL_RULES: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...] = tuple(
    (key, tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns))
    for key, patterns in (
        ("notes", (r"^(?:notas?|notes?)\s*[:=-]\s*(.+)$", rf"^{_WRITE_VERBS}.{{0,20}}\bnotas?\b\s*[:=-]?\s*(.+)$")),
        (
            "backstory",
            (
                r"^(?:trasfondo|backstory)\s*[:=-]\s*(.+)$",
                rf"^{_WRITE_VERBS}.{{0,20}}\b(?:trasfondo|backstory)\b\s*[:=-]?\s*(.+)$",
            ),
        ),
        ("background", (r"^(?:background)\s*[:=-]\s*(.+)$",)),
        ("alignment", (r"^(?:alineamiento|alignment)\s*[:=-]\s*(.+)$",)),
        ("personalityTraits", (r"^(?:rasgos?\s+de\s+personalidad|personality\s+traits?)\s*[:=-]\s*(.+)$",)),
        ("ideals", (r"^(?:ideales?|ideals?)\s*[:=-]\s*(.+)$",)),
        ("bonds", (r"^(?:v[ií]nculos?|lazos?|bonds?)\s*[:=-]\s*(.+)$",)),
        ("flaws", (r"^(?:defectos?|flaws?)\s*[:=-]\s*(.+)$",)),
        ("appearance", (r"^(?:apariencia|appearance)\s*[:=-]\s*(.+)$",)),
        ("languages", (r"^(?:idiomas?|languages?)\s*[:=-]\s*(.+)$",)),
        ("proficiencies", (r"^(?:proficiencias?|proficiencies?)\s*[:=-]\s*(.+)$",)),
        ("abilities", (r"^(?:habilidades?|abilities?)\s*[:=-]\s*(.+)$",)),
        ("inventory", (r"^(?:inventario|inventory)\s*[:=-]\s*(.+)$",)),
        ("equipment", (r"^(?:equipo|equipment)\s*[:=-]\s*(.+)$",)),
    )
)


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def extract_quoted_text(value: str, max_len: int = 140) -> str | None:
    match = _QUOTED_RE.search(value)
    return as_trimmed_string(match.group(1), max_len) if match else None


def cleanup_entity_name(value: str, max_len: int = 140) -> str | None:
    """Trim trailing punctuation and cut the name at the first connector word."""
    cleaned = re.sub(r"\s+", " ", re.sub(r"[.,;:]+$", "", value)).strip()
    if not cleaned:
        return None
    stop = _ENTITY_STOP_RE.search(cleaned)
    if stop and stop.start() >= 3:
        cleaned = cleaned[: stop.start()].strip()
    return as_trimmed_string(cleaned, max_len)


def extract_name_from_instruction(value: str, max_len: int = 140) -> str | None:
    quoted = extract_quoted_text(value, max_len)
    if quoted:
        return quoted
    called = _CALLED_RE.search(value)
    if called:
        return cleanup_entity_name(called.group(1), max_len)
    return None


def _regex_int(value: str, pattern: re.Pattern[str], minimum: int, maximum: int) -> int | None:
    match = pattern.search(value)
    if not match:
        return None
    return as_integer(match.group(1), minimum, maximum)


def parse_stats_patch(instruction: str) -> dict[str, int] | None:
    normalized = normalize_for_match(instruction)
    patch: dict[str, int] = {}
    for key, aliases in _STAT_ALIASES.items():
        alias_source = "|".join(re.escape(alias) for alias in aliases)
        candidates = [
            (normalized, re.compile(rf"\b(?:{alias_source})\b[^\d\n]{{0,14}}(\d{{1,2}})")),
            (normalized, re.compile(rf"(\d{{1,2}})[^\n]{{0,16}}\b(?:{alias_source})\b")),
        ]
        if key in _UPPERCASE_ONLY_STATS:
            code = _UPPERCASE_ONLY_STATS[key]
            candidates.append((instruction, re.compile(rf"\b{code}\b[^\d\n]{{0,14}}(\d{{1,2}})")))
            candidates.append((instruction, re.compile(rf"(\d{{1,2}})[^\n]{{0,16}}\b{code}\b")))
        for text, pattern in candidates:
            value = _regex_int(text, pattern, 1, 30)
            if value is not None:
                patch[key] = value
                break
    return patch or None


def parse_level(instruction: str) -> int | None:
    return _regex_int(instruction, _LEVEL_RE, 1, 20)


def parse_experience(instruction: str) -> int | None:
    return _regex_int(instruction, _XP_RE, 0, 100_000_000)


def parse_armor_class(instruction: str) -> int | None:
    return _regex_int(instruction, _AC_RE, 1, 60)


def parse_speed(instruction: str) -> int | None:
    return _regex_int(instruction, _SPEED_RE, 0, 200)


def parse_hit_points(instruction: str) -> tuple[int | None, int | None]:
    """Return ``(current_hp, max_hp)``."""
    slash = _HP_SLASH_RE.search(instruction)
    if slash:
        return as_integer(slash.group(1), 0, 9999), as_integer(slash.group(2), 0, 9999)
    max_hp = _regex_int(instruction, _HP_MAX_RE, 0, 9999)
    current_hp = _regex_int(instruction, _HP_CURRENT_RE, 0, 9999)
    if current_hp is not None or max_hp is not None:
        return current_hp, max_hp
    return _regex_int(instruction, _HP_GENERIC_RE, 0, 9999), None


def parse_class_name(instruction: str) -> str | None:
    match = _CLASS_RE.search(instruction)
    return cleanup_entity_name(match.group(1), 120) if match else None


def parse_race(instruction: str) -> str | None:
    match = _RACE_RE.search(instruction)
    return cleanup_entity_name(match.group(1), 120) if match else None


def parse_core_fields(instruction: str) -> dict[str, Any]:
    """Scalar sheet fields and ability scores mentioned in the instruction."""
    core: dict[str, Any] = {}
    current_hp, max_hp = parse_hit_points(instruction)
    for key, value in (
        ("level", parse_level(instruction)),
        ("experience", parse_experience(instruction)),
        ("armor_class", parse_armor_class(instruction)),
        ("speed", parse_speed(instruction)),
        ("class", parse_class_name(instruction)),
        ("race", parse_race(instruction)),
        ("current_hp", current_hp),
        ("max_hp", max_hp),
        ("stats", parse_stats_patch(instruction)),
    ):
        if value is not None:
            core[key] = value
    return core


def parse_details_patch(instruction: str) -> dict[str, str] | None:
    lines = _lines(instruction)
    patch: dict[str, str] = {}
    for key, patterns in _DETAIL_RULES:
        for line in lines:
            match = next((m for m in (pattern.match(line) for pattern in patterns) if m), None)
            if not match:
                continue
            value = as_trimmed_string(match.group(1), 4000)
            if value:
                patch[key] = value
                break
    return patch or None


def parse_description_text(instruction: str) -> str | None:
    """Text after a ``descripción:`` (or ``efecto:``) label."""
    details = parse_details_patch(_DESCRIPTION_WORD_RE.sub("notes", instruction))
    return details.get("notes") if details else None


def parse_spell_name(instruction: str) -> str | None:
    quoted = extract_quoted_text(instruction, 140)
    if quoted:
        return quoted
    for pattern in (_SPELL_CALLED_RE, _SPELL_LEAD_RE, _SPELL_VERB_RE):
        match = pattern.search(instruction)
        if match:
            value = cleanup_entity_name(match.group(1), 140)
            if value:
                return value
    return None


def parse_learned_spell_patch(instruction: str) -> dict[str, Any] | None:
    normalized = normalize_for_match(instruction)
    mentions_spell = has_any(normalized, ("hechizo", "spell", "truco", "cantrip"))
    wants_learn = has_any(normalized, ("aprende", "learn", "agrega", "anade"))
    wants_forget = has_any(normalized, ("olvida", "forget", "quita", "elimina", "borra", "remove"))
    if not mentions_spell or not (wants_learn or wants_forget):
        return None
    if "personalizado" in normalized or "custom" in normalized:
        return None

    spell_name = parse_spell_name(instruction)
    if not spell_name:
        return None
    level = _regex_int(instruction, _SPELL_LEVEL_RE, 0, 9)
    if level is None and ("truco" in normalized or "cantrip" in normalized):
        level = 0
    if level is None:
        return None
    return {"action": "forget" if wants_forget else "learn", "spell_level": level, "spell_name": spell_name}


def _wants_remove(normalized: str) -> bool:
    return has_any(normalized, ("elimina", "borra", "remove"))


def parse_custom_spell_patch(instruction: str) -> dict[str, Any] | None:
    normalized = normalize_for_match(instruction)
    if not has_any(
        normalized, ("hechizo personalizado", "custom spell", "truco personalizado", "cantrip personalizado")
    ):
        return None
    name = parse_spell_name(instruction)
    if not name:
        return None

    patch: dict[str, Any] = {"target_spell_name": name}
    level = _regex_int(instruction, _SPELL_LEVEL_RE, 0, 9)
    if level is not None:
        patch["level"] = level
        patch["collection"] = "customCantrips" if level == 0 else "customSpells"
    if _wants_remove(normalized):
        patch["remove"] = True
    else:
        patch["create_if_missing"] = True
        patch["name"] = name
    description = parse_description_text(instruction)
    if description:
        patch["description"] = description
    return patch


def parse_custom_feature_patch(instruction: str) -> dict[str, Any] | None:
    normalized = normalize_for_match(instruction)
    if not has_any(
        normalized,
        ("rasgo personalizado", "habilidad personalizada", "accion personalizada", "feature personalizado",
         "custom feature"),
    ):
        return None
    name = extract_name_from_instruction(instruction, 140)
    if not name:
        return None

    patch: dict[str, Any] = {
        "target_feature_name": name,
        "collection": "customTraits" if "rasgo" in normalized else "customClassAbilities",
    }
    if _wants_remove(normalized):
        patch["remove"] = True
    else:
        patch["create_if_missing"] = True
        patch["name"] = name
    level = _regex_int(instruction, _LEVEL_RE, 0, 30)
    if level is not None:
        patch["level"] = level
    description = parse_description_text(instruction)
    if description:
        patch["description"] = description

    if "bonus" in normalized:
        patch["action_type"] = "bonus"
    elif "reaccion" in normalized or "reaction" in normalized:
        patch["action_type"] = "reaction"
    elif "pasiva" in normalized or "passive" in normalized:
        patch["action_type"] = "passive"
    elif "accion" in normalized or "action" in normalized:
        patch["action_type"] = "action"
    return patch


def extract_structured_item_target_hint(line: str) -> str | None:
    match = _ITEM_TARGET_RE.search(_DDE_RE.sub("de", line))
    return cleanup_entity_name(match.group(1), 120) if match else None


def _last_scoped_target(source: str) -> str | None:
    matches = _SCOPED_TARGET_RE.findall(source)
    if not matches:
        return None
    return cleanup_entity_name(matches[-1], 120)


def extract_character_target_hint(instruction: str) -> str | None:
    """Name after the last ``en/a/para`` in the command line, e.g. ``... a Kaelden``."""
    lines = _lines(instruction)
    command_line = next(
        (line for line in reversed(lines) if has_any(normalize_for_match(line), EDIT_VERBS + CREATE_VERBS)), None
    )
    source = _DDE_RE.sub("de", command_line or instruction)
    source = _PLEASE_TAIL_RE.sub("", source)
    source = re.sub(r"[\"'`]+$", "", source)
    source = re.sub(r"[.?!:;,\s]+$", "", source).strip()
    hint = _last_scoped_target(source)
    if hint:
        return hint
    fallback = _PLEASE_TAIL_RE.sub("", _DDE_RE.sub("de", instruction)).strip()
    return _last_scoped_target(fallback)
