from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sheet_assistant.modules.heuristics.keywords import (
    ACTIVATION_SIGNALS,
    BONUS_SIGNALS,
    CANTRIP_SIGNALS,
    FOCUS_SIGNALS,
    PASSIVE_SIGNALS,
    SPELL_AUX_SIGNALS,
    SPELL_CORE_SIGNALS,
    STATEFUL_SIGNALS,
    has_any,
)
from sheet_assistant.modules.text.matching import normalize_for_match

# structured field -> index of the spell core signal group it satisfies
_CORE_FIELD_GROUPS = {"range": 0, "duration": 1, "components": 2, "casting_time": 3}


def _spell_signal_counts(text: str, fields: Mapping[str, Any]) -> tuple[int, int]:
    core_hits = {index for index, group in enumerate(SPELL_CORE_SIGNALS) if has_any(text, group)}
    core_hits.update(index for key, index in _CORE_FIELD_GROUPS.items() if fields.get(key))
    aux_hits = {index for index, group in enumerate(SPELL_AUX_SIGNALS) if has_any(text, group)}
    if fields.get("save"):
        aux_hits.add(0)
    return len(core_hits), len(aux_hits)


def classify_block_type(name: str, body: str | None = None, fields: Mapping[str, Any] | None = None) -> str:
    """Pick the attachment type of one sub-block from its wording and parsed fields.

    Signals are checked in a fixed priority order; the first hit wins and
    ``trait`` is the fallback.
    """
    fields = fields or {}
    text = f" {normalize_for_match(name)}\n{normalize_for_match(body or '')} "
    action_type = fields.get("action_type")
    resource_cost = fields.get("resource_cost") or {}

    if action_type == "passive" or has_any(text, PASSIVE_SIGNALS):
        return "trait"
    if has_any(text, FOCUS_SIGNALS):
        return "ability"
    if (
        action_type in ("action", "bonus", "reaction")
        or resource_cost.get("recharge")
        or resource_cost.get("charges") is not None
        or has_any(text, ACTIVATION_SIGNALS)
    ):
        return "action"
    if has_any(text, CANTRIP_SIGNALS):
        return "cantrip"
    core, aux = _spell_signal_counts(text, fields)
    if core >= 2 or (core >= 1 and aux >= 2):
        return "spell"
    if has_any(text, STATEFUL_SIGNALS):
        return "ability"
    if has_any(text, BONUS_SIGNALS):
        return "ability"
    return "trait"
