from __future__ import annotations

from typing import Any

from sheet_assistant.modules.patches.schemas import ClientContext
from sheet_assistant.modules.rag.retriever import CampaignRole


def describe_ui_context_hint(client_context: ClientContext | None) -> str | None:
    if client_context is None:
        return None
    parts: list[str] = []
    if client_context.surface:
        parts.append("Vista actual: panel DM." if client_context.surface == "dm" else "Vista actual: panel de jugador.")
    if client_context.section:
        parts.append(f"Sección activa: {client_context.section}.")
    if client_context.activeTab:
        parts.append(f"Pestaña activa: {client_context.activeTab}.")
    selected = client_context.selectedCharacter
    if selected and selected.name:
        parts.append(f"Personaje seleccionado: {selected.name}.")
    return " ".join(parts) if parts else None


def build_capabilities_reply(role: CampaignRole, client_context: ClientContext | None = None) -> str:
    lines = [
        "Puedo ayudarte con cambios en personajes de la campaña.",
        "Puedo editar personajes de toda la campaña." if role == "DM" else "Puedo editar solo tus personajes.",
        "Para decidir mejor, puedo usar el contexto de la pantalla que tienes abierta "
        "(sección, pestaña y personaje seleccionado).",
        "Acciones que puedo aplicar ahora:",
        "- Crear personaje o companion con nombre, clase, raza, nivel, hp, CA y velocidad.",
        "- Actualizar stats (str/dex/con/int/wis/cha).",
        "- Actualizar detalles como notas, trasfondo, alineamiento, idiomas, inventario y equipo.",
        "- Editar objetos del inventario por nombre y añadir rasgos/habilidades como adjuntos del objeto.",
        "- Crear/editar hechizos personalizados y trucos con su estructura completa "
        "(coste, tirada/salvación, daño, componentes).",
        "- Crear/editar rasgos y habilidades personalizadas (incluye acciones, requisitos, efecto y recursos).",
        "- Aprender u olvidar hechizos por nivel en la lista de hechizos del personaje.",
        "Ejemplos:",
        '- "Crea un companion lobo nivel 2 para mi personaje."',
        '- "Sube mi personaje a nivel 5 y pon 16 en DEX."',
        '- "Añade en notas: desconfía de los magos rojos."',
        '- "Modifica el yelmo del primer forjador y añade sus rasgos como habilidades del objeto."',
        '- "Crea un hechizo personalizado nivel 2 llamado Lanza de Ceniza con daño 3d6 fuego."',
        '- "Añade una acción personalizada llamada Rugido de Guerra con recarga corta."',
    ]
    hint = describe_ui_context_hint(client_context)
    if hint:
        lines.append(f"Contexto detectado: {hint}")
    return "\n".join(lines)


def build_chat_guidance_reply(role: CampaignRole, client_context: ClientContext | None = None) -> str:
    lines = [
        "Puedo ayudarte con acciones concretas sobre personajes.",
        (
            "Como DM, puedes pedirme cambios para cualquier personaje de la campaña."
            if role == "DM"
            else "Como jugador, puedo modificar solo tus personajes."
        ),
        "También uso el contexto de la pantalla para inferir mejor dónde quieres aplicar cambios.",
        "Prueba con instrucciones como:",
        '- "Sube a nivel 4 a Aria y pon 14 en CON."',
        '- "Añade en notas: teme a los no-muertos."',
        '- "Crea un companion halcón nivel 1."',
        '- "Actualiza el objeto Yelmo del Primer Forjador y guarda sus rasgos como adjuntos."',
        '- "Añade el hechizo Bola de Fuego al nivel 3 de hechizos aprendidos."',
        '- "Crea una habilidad personalizada llamada Golpe Sísmico con 3 cargas."',
    ]
    hint = describe_ui_context_hint(client_context)
    if hint:
        lines.append(f"Contexto detectado: {hint}")
    return "\n".join(lines)


def build_assistant_product_knowledge(role: CampaignRole, client_context: ClientContext | None) -> dict[str, Any]:
    """Static product facts the model receives next to the campaign context."""
    if client_context is not None and client_context.surface == "dm":
        ui_flows = [
            "DM sections: players, story, bestiary, characters.",
            "Si la sección activa es players, priorizar cambios en personajes.",
        ]
    else:
        ui_flows = [
            "Player workspace: lista de personajes + panel derecho.",
            "El personaje seleccionado suele ser el objetivo por defecto.",
        ]
    return {
        "roleScope": (
            "DM puede editar cualquier personaje de la campaña."
            if role == "DM"
            else "PLAYER solo puede editar sus propios personajes."
        ),
        "supportedMutations": [
            "create/update character",
            "create/update companion",
            "update stats",
            "update details_patch: notes/background/alignment/personalityTraits/ideals/bonds/flaws/appearance/"
            "backstory/languages/proficiencies/abilities/inventory/equipment",
            "update item_patch: target_item_name + category/rarity/equipped/description/tags/attachments/"
            "configurations_replace",
            "update learned_spell_patch: learn/forget by spell_level + spell_name/spell_index",
            "update custom_spell_patch: create/update/delete customSpells/customCantrips",
            "update custom_feature_patch: create/update/delete customTraits/customClassAbilities",
        ],
        "orderPatterns": [
            "crear/añadir/agregar/insertar",
            "modificar/actualizar/editar/cambiar",
            "subir/bajar nivel o stats",
            "aprender/olvidar hechizos",
            "equipar/desequipar objetos",
            "crear/editar contenido personalizado",
            "targeting por 'en X'/'para X'/'a X' o por personaje seleccionado",
        ],
        "uiFlows": ui_flows,
        "decisionHints": [
            "Si el usuario no indica personaje pero hay uno seleccionado en clientContext, usarlo como objetivo.",
            "Si el usuario escribe 'en NOMBRE', priorizar ese personaje como objetivo.",
            "Priorizar cambios concretos y mínimos; evitar acciones ambiguas.",
            "No inventar IDs; usar solo visibles en context.visibleCharacters.",
            "Si la petición incluye un bloque largo de objeto, extraer título, rareza, descripción y rasgos.",
            "Si la orden es añadir/crear objeto y no existe en inventario, usar item_patch.create_if_missing=true.",
            "Si el usuario describe rasgos o habilidades de un objeto, convertirlos en attachments del item.",
            "Si el usuario pide crear/editar un hechizo personalizado, usar custom_spell_patch (no texto plano).",
            "Si pide rasgos/habilidades/acciones personalizadas, usar custom_feature_patch.",
            "Si pide aprender/olvidar un hechizo de nivel, usar learned_spell_patch.",
        ],
        "clientContext": client_context.dump() if client_context else None,
    }
