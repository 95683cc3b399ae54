from __future__ import annotations

import re
from typing import Literal

from sheet_assistant.modules.text.matching import normalize_for_match

AssistantIntent = Literal["mutation", "capabilities", "chat"]

CAPABILITIES_PATTERNS: tuple[str, ...] = (
    "que puedes hacer",
    "q puedes hacer",
    "que puedes",
    "q puedes",
    "que haces",
    "ayuda",
    "help",
    "what can you do",
)

MUTATION_SIGNALS: tuple[str, ...] = (
    "crea", "crear", "creame", "anade", "agrega", "inserta", "pon", "quita", "elimina", "borra",
    "cambia", "actualiza", "edita", "sube", "baja", "modifica", "equipa", "desequipa", "aprende",
    "olvida", "vincula", "sintoniza", "update", "edit", "change", "set", "create", "add", "insert",
    "remove", "delete", "equip", "unequip", "attune", "level", "nivel", "stats", "hp", "dex", "str",
    "con", "int", "wis", "cha", "inventario", "inventory", "equipo", "equipment", "nota", "notes",
    "trasfondo", "backstory", "objeto", "item", "yelmo", "armadura", "accesorio", "rasgo", "trait",
    "habilidad", "ability", "hechizo", "hechizos", "spell", "cantrip", "truco", "accion", "action",
)

# Signals this short are also common words ("con", "set"); they only count as whole words.
_WHOLE_WORD_MAX_LEN = 3
_WHOLE_WORD_RE = re.compile(
    r"\b(?:"
    + "|".join(re.escape(signal) for signal in MUTATION_SIGNALS if len(signal) <= _WHOLE_WORD_MAX_LEN)
    + r")\b"
)
_SUBSTRING_SIGNALS = tuple(signal for signal in MUTATION_SIGNALS if len(signal) > _WHOLE_WORD_MAX_LEN)

MIN_TARGETED_PROMPT_LEN = 12

_INSTRUCTION_MARKER_RE = re.compile(r"instrucci[oó]n actual del usuario:", re.IGNORECASE)
_RECENT_CONTEXT_SEPARATORS: tuple[str, ...] = (
    "\n\ncontexto reciente:",
    "\n\nhistorial reciente:",
    "\n\nrecent context:",
    "\n\nrecent history:",
)


def is_capabilities_question(prompt: str) -> bool:
    normalized = normalize_for_match(prompt)
    return any(pattern in normalized for pattern in CAPABILITIES_PATTERNS)


def has_mutation_signal(prompt: str) -> bool:
    normalized = normalize_for_match(prompt)
    if any(signal in normalized for signal in _SUBSTRING_SIGNALS):
        return True
    return _WHOLE_WORD_RE.search(normalized) is not None


def classify_intent(prompt: str, target_character_id: str | None = None) -> AssistantIntent:
    """Route a prompt: help request, sheet mutation or plain chat.

    A prompt with no mutation vocabulary still counts as a mutation when a
    target character is already resolved and the prompt is not trivially short.
    """
    if is_capabilities_question(prompt):
        return "capabilities"
    if has_mutation_signal(prompt):
        return "mutation"
    if target_character_id and len(normalize_for_match(prompt)) >= MIN_TARGETED_PROMPT_LEN:
        return "mutation"
    return "chat"


def extract_current_user_instruction(prompt: str) -> str:
    """The text after the last ``instrucción actual del usuario:`` marker, minus any recent-context tail."""
    markers = list(_INSTRUCTION_MARKER_RE.finditer(prompt))
    if not markers:
        return prompt.strip()
    tail = prompt[markers[-1].end() :].strip()
    lower_tail = tail.lower()
    cut = len(tail)
    for separator in _RECENT_CONTEXT_SEPARATORS:
        index = lower_tail.find(separator)
        if 0 <= index < cut:
            cut = index
    return tail[:cut].strip()
