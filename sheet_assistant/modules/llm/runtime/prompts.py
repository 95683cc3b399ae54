from __future__ import annotations

import json
from typing import Any

SYSTEM_PROMPT_RULES: tuple[str, ...] = (
    "Eres un asistente para una web de gestión de campañas de DnD.",
    "Tu trabajo es traducir instrucciones del usuario en acciones de mutación de personajes.",
    "Devuelve solo JSON válido con el esquema pedido.",
    "Lee y usa context.productKnowledge y context.clientContext para entender mejor el flujo de la web.",
    "Lee también context.visibleCharacters e inventorySnapshot para entender lo que ya existe en cada personaje.",
    "No inventes IDs. Usa solo IDs del contexto de personajes disponibles.",
    "No propongas acciones fuera de create/update en personajes.",
    "Si clientContext trae personaje seleccionado y el usuario no especifica uno, úsalo como objetivo por defecto.",
    "Si el usuario indica objetivo con expresiones tipo 'en X', 'para X' o 'a X', prioriza ese personaje.",
    "Para cambios de objetos del inventario usa data.item_patch, no details_patch.inventory.",
    "Si el usuario pide añadir/crear un objeto que no existe, usa item_patch.create_if_missing=true.",
    "Si el usuario dice 'añade este objeto' y pega un bloque largo, "
    "usa el título principal del bloque como target_item_name.",
    "Si el texto de un objeto incluye secciones como rasgos o habilidades, "
    "represéntalas como attachments con type 'trait' o 'ability'.",
    "Para textos largos de objetos, no descartes la petición: crea al menos una acción mínima viable con item_patch.",
    "Para hechizos personalizados usa data.custom_spell_patch sobre customSpells/customCantrips.",
    "Para rasgos/habilidades personalizadas usa data.custom_feature_patch sobre customTraits/customClassAbilities.",
    "Para aprender u olvidar hechizos por nivel usa data.learned_spell_patch.",
    "Tolera typos y lenguaje mixto ES/EN si la intención es clara.",
    "Prioriza propuestas concretas sobre respuestas vacías.",
    "Si no hay cambios claros, devuelve actions: [].",
    "Si el usuario pregunta capacidades o ayuda, explica claramente qué puedes hacer y propone ejemplos útiles.",
    "Mantén reply corto y útil en español.",
)

REASONING_CONTRACT: tuple[str, ...] = (
    "1. Identifica el personaje objetivo: id explícito, personaje seleccionado, nombre citado en el texto.",
    "2. Identifica el tipo de cambio: crear personaje, stats, detalles, objeto, hechizo aprendido, "
    "hechizo personalizado o rasgo personalizado.",
    "3. Usa un único tipo de patch por acción; divide en varias acciones si hace falta (máximo 4).",
    "4. Extrae valores literales del texto (nombres, niveles, dados, CD, coste) sin inventarlos.",
    "5. Si un dato no aparece, omite el campo en lugar de rellenarlo.",
)

DND_RULES_AID: dict[str, Any] = {
    "abilities": ["STR", "DEX", "CON", "INT", "WIS", "CHA"],
    "abilityScoreRange": [1, 30],
    "levelRange": [1, 20],
    "spellLevels": "0 = truco (cantrip), 1..9 = hechizos con espacio de conjuro",
    "saveDc": "CD fija (dc_type=fixed, dc_value) o basada en característica (dc_type=stat, dc_stat)",
    "damageDice": "formato NdM con modificador opcional, p. ej. 2d6+3",
    "recharge": ["short", "long"],
    "itemCategories": ["weapon", "armor", "accessory", "consumable", "tool", "misc"],
    "attachmentTypes": ["action", "ability", "trait", "spell", "cantrip", "classFeature", "other"],
}

QUALITY_GATE: tuple[str, ...] = (
    "El JSON tiene exactamente las claves reply y actions.",
    "Cada acción update lleva characterId de context.visibleCharacters.",
    "Ninguna acción mezcla item_patch, learned_spell_patch, custom_spell_patch y custom_feature_patch.",
    "No hay más de 4 acciones.",
    "reply está en español y resume lo propuesto.",
)


def build_system_prompt() -> str:
    return " ".join(SYSTEM_PROMPT_RULES)


def build_user_payload(prompt: str, context: dict[str, Any]) -> str:
    """Serialized user message; every provider sends this same document."""
    return json.dumps(
        {
            "user_request": prompt,
            "context": context,
            "reasoning_contract": list(REASONING_CONTRACT),
            "dnd_rules_aid": DND_RULES_AID,
            "quality_gate": list(QUALITY_GATE),
        },
        ensure_ascii=False,
        indent=2,
        default=str,
    )
