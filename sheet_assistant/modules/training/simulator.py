from __future__ import annotations

import copy
import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sheet_assistant.modules.heuristics.planner import resolve_target_character_id
from sheet_assistant.modules.intent.classifier import extract_current_user_instruction
from sheet_assistant.modules.patches.engine import compute_character_update, has_write_fields
from sheet_assistant.modules.patches.sanitize import sanitize_actions
from sheet_assistant.modules.patches.schemas import Action, CharacterSnapshot, ClientContext, MutationResult
from sheet_assistant.modules.text.matching import normalize_for_match
from sheet_assistant.modules.training import catalog
from sheet_assistant.modules.training.cache import SignatureCache

logger = logging.getLogger(__name__)

SIMULATION_PREFIX = "[Simulación]"
DRAFT_NOTE = "Borrador ficticio de entrenamiento."


@dataclass(slots=True)
class TrainingDraft:
    reply: str
    item_name: str
    actions: list[Action] = field(default_factory=list)


class TrainingSimulator:
    """Generates practice items and dry-runs proposals; nothing it produces is ever persisted."""

    def __init__(self, cache: SignatureCache, *, max_attempts: int = 42, rng: random.Random | None = None):
        self.cache = cache
        self.max_attempts = max(1, int(max_attempts))
        self.rng = rng or random.Random()

    @staticmethod
    def signature(item_name: str) -> str:
        return normalize_for_match(item_name)

    def _format(self, template: str, theme: catalog.Theme) -> str:
        return template.format(element=theme.element)

    def _trait(self, theme: catalog.Theme) -> dict[str, Any]:
        return {
            "type": "trait",
            "name": self._format(self.rng.choice(catalog.TRAIT_NAMES), theme),
            "description": f"Mientras lo portas, tienes resistencia al daño de {theme.damage_type}.",
        }

    def _ability(self, theme: catalog.Theme) -> dict[str, Any]:
        return {
            "type": "ability",
            "name": self._format(self.rng.choice(catalog.ABILITY_NAMES), theme),
            "action_type": "bonus",
            "resource_cost": {"charges": 1, "recharge": "short"},
            "effect": f"Te teletransportas hasta 9 m a un espacio que puedas ver envuelto en {theme.element}.",
        }

    def _action(self, theme: catalog.Theme) -> dict[str, Any]:
        return {
            "type": "action",
            "name": self._format(self.rng.choice(catalog.ACTION_NAMES), theme),
            "action_type": "action",
            "description": f"Liberas la energía contenida en un cono de 4,5 m de {theme.element}.",
            "resource_cost": {"charges": self.rng.randint(1, 3), "recharge": "long"},
            "save": {
                "type": "save",
                "save_ability": self.rng.choice(catalog.SAVE_ABILITIES),
                "dc_type": "fixed",
                "dc_value": self.rng.randint(12, 16),
            },
            "damage": {"damage_type": theme.damage_type, "dice": self.rng.choice(catalog.DAMAGE_DICE)},
        }

    def _spell(self, theme: catalog.Theme) -> dict[str, Any]:
        level = self.rng.randint(1, 3)
        return {
            "type": "spell",
            "name": self._format(self.rng.choice(catalog.SPELL_NAMES), theme),
            "level": level,
            "casting_time": "1 acción",
            "range": "18 m",
            "components": {"verbal": True, "somatic": True},
            "resource_cost": {"uses_spell_slot": True, "slot_level": level},
            "save": {"type": "attack"},
            "damage": {"damage_type": theme.damage_type, "dice": self.rng.choice(catalog.DAMAGE_DICE)},
            "description": "Puedes lanzarlo una vez por día a través del objeto sin gastar espacio de conjuro.",
        }

    def generate_item_patch(self, theme: catalog.Theme) -> dict[str, Any]:
        base, category = self.rng.choice(catalog.ITEM_BASES)
        name = f"{base} {self.rng.choice(theme.epithets)}"
        rarity = self.rng.choice(catalog.RARITIES)
        builders = {"trait": self._trait, "ability": self._ability, "action": self._action, "spell": self._spell}
        count = self.rng.randint(3, 5)
        attachments: list[dict[str, Any]] = []
        for archetype in catalog.ARCHETYPE_ORDER[:count]:
            attachment = builders[archetype](theme)
            if all(attachment["name"] != existing["name"] for existing in attachments):
                attachments.append(attachment)
        return {
            "target_item_name": name,
            "create_if_missing": True,
            "category": category,
            "rarity": rarity,
            "description": f"{self.rng.choice(catalog.ORIGINS)}. Hecho de {self.rng.choice(catalog.MATERIALS)}.",
            "attunement": rarity != "poco común",
            "tags_add": ["entrenamiento", theme.key],
            "attachments_add": attachments,
        }

    def build_fictional_draft(
        self,
        prompt: str,
        characters: Sequence[CharacterSnapshot],
        *,
        target_character_id: str | None = None,
        client_context: ClientContext | None = None,
    ) -> TrainingDraft:
        instruction = extract_current_user_instruction(prompt)
        theme = catalog.find_theme(normalize_for_match(instruction))

        patch: dict[str, Any] = {}
        for _ in range(self.max_attempts):
            patch = self.generate_item_patch(theme)
            if self.signature(patch["target_item_name"]) not in self.cache:
                break
        else:
            logger.warning("training draft cache exhausted after %s attempt(s)", self.max_attempts)
        item_name = patch["target_item_name"]
        self.cache.remember(self.signature(item_name))

        character_id = resolve_target_character_id(
            instruction, characters, target_character_id=target_character_id, client_context=client_context
        )
        actions: list[Action] = []
        if character_id:
            raw = {"operation": "update", "characterId": character_id, "note": DRAFT_NOTE, "data": {"item_patch": patch}}
            actions = sanitize_actions([raw], character_id)

        lines = [
            f'He generado un objeto ficticio para practicar: "{item_name}" ({patch["rarity"]}), '
            f"con {len(patch['attachments_add'])} rasgos y habilidades.",
            "Edita la propuesta a tu gusto y confírmala para ver el resultado simulado; no se guardará en el personaje.",
        ]
        if not actions:
            lines.append("Selecciona un personaje para convertir el borrador en una acción editable.")
        return TrainingDraft(reply=" ".join(lines), item_name=item_name, actions=actions)

    def preview_actions(
        self, actions: Sequence[Action], characters: Sequence[CharacterSnapshot]
    ) -> list[MutationResult]:
        """Dry-run each action against an in-memory copy of the character sheet."""
        by_id = {character.id: character for character in characters}
        results: list[MutationResult] = []
        for action in actions:
            if action.operation == "create":
                message = (
                    f'Se crearía el personaje "{action.data.name}".'
                    if action.data.name
                    else "Se omitiría create porque falta el nombre."
                )
                results.append(self._simulated(action, message))
                continue

            character = by_id.get(action.character_id or "")
            if character is None:
                results.append(self._simulated(action, "No tienes acceso a este personaje."))
                continue
            if not has_write_fields(action.data):
                results.append(self._simulated(action, "No se detectaron campos editables para actualizar."))
                continue
            update = compute_character_update(
                copy.deepcopy(character.stats), copy.deepcopy(character.details), action.data
            )
            if update.failure:
                results.append(self._simulated(action, update.failure))
                continue
            message = f'Personaje "{character.name}" quedaría actualizado.'
            if update.messages:
                message = f"{message} {' '.join(update.messages)}"
            results.append(self._simulated(action, message))
        return results

    @staticmethod
    def _simulated(action: Action, message: str) -> MutationResult:
        return MutationResult(
            operation=action.operation,
            characterId=action.character_id,
            status="skipped",
            message=f"{SIMULATION_PREFIX} {message}",
        )
