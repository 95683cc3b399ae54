"""Assistant mode flags and the prompt-coaching reply used in training mode."""

from __future__ import annotations

import re
from typing import Any, Literal

from sheet_assistant.modules.intent.classifier import extract_current_user_instruction
from sheet_assistant.modules.patches.schemas import ClientContext
from sheet_assistant.modules.rag.retriever import CampaignRole
from sheet_assistant.modules.text.matching import normalize_for_match

AssistantMode = Literal["normal", "training"]
TrainingSubmode = Literal["sandbox_object", "ai_prompt"]
TrainingTheme = Literal["item", "spell", "feature"]

_PROMPT_REQUEST_MARKERS = (
    "prompt",
    "plantilla",
    "como pido",
    "como deberia pedir",
    "como escribo",
    "como redacto",
    "mejora mi peticion",
)
_APPROVAL_RE = re.compile(
    r"\b(?:esta correcto|es correcto|correcto|aprobado|apruebo|me gusta|perfecto|confirmo|ok|vale|dale|de acuerdo)\b"
)
_REJECTION_RE = re.compile(r"\b(?:no|otro|otra|cambia|crea|genera)\b")
_SPELL_SIGNALS = ("hechizo", "conjuro", "truco", "spell", "cantrip")
_FEATURE_SIGNALS = ("rasgo", "habilidad", "dote", "feature", "trait")
_MECHANIC_SIGNALS = ("accion", "pasiva", "dano", "cd ", "salvacion", "carga", "recarga", "descanso")
_RARITY_SIGNALS = ("comun", "raro", "rara", "epico", "legendari", "unico", "unica")


def normalize_assistant_mode(value: Any) -> AssistantMode:
    text = normalize_for_match(str(value or ""))
    return "training" if text in ("training", "entrenamiento") else "normal"


def normalize_training_submode(value: Any) -> TrainingSubmode:
    text = normalize_for_match(str(value or ""))
    return "ai_prompt" if text in ("ai_prompt", "prompt") else "sandbox_object"


def is_training_prompt_request(prompt: str) -> bool:
    normalized = normalize_for_match(extract_current_user_instruction(prompt))
    return any(marker in normalized for marker in _PROMPT_REQUEST_MARKERS)


def is_training_approval_intent(prompt: str) -> bool:
    normalized = normalize_for_match(extract_current_user_instruction(prompt))
    if not normalized or _APPROVAL_RE.search(normalized) is None:
        return False
    return _REJECTION_RE.search(_APPROVAL_RE.sub(" ", normalized)) is None


def detect_training_theme(prompt: str) -> TrainingTheme:
    normalized = normalize_for_match(prompt)
    if any(signal in normalized for signal in _SPELL_SIGNALS):
        return "spell"
    if any(signal in normalized for signal in _FEATURE_SIGNALS):
        return "feature"
    return "item"


def _prompt_template(theme: TrainingTheme, target: str) -> str:
    if theme == "spell":
        return (
            f'Crea para {target} un hechizo personalizado nivel 2 llamado "Lanza de Escarcha". '
            "Escuela: evocación. Tiempo de lanzamiento: 1 acción. Alcance: 18 m. Componentes: V, S. "
            "Salvación: DES, CD basada en tu característica de lanzamiento. Daño: 3d6 frío. "
            "Acción: describe qué ocurre al impactar y si escala a niveles superiores."
        )
    if theme == "feature":
        return (
            f'Crea para {target} una habilidad personalizada llamada "Golpe Sísmico". '
            "Tipo: acción adicional. Requisitos: empuñar un arma pesada. Coste: 1 carga, 3 cargas, "
            "recarga en descanso corto. Efecto: las criaturas a 3 m hacen salvación de FUE (CD 14) o caen derribadas. "
            "Acción: indica también si consume tu acción principal."
        )
    return (
        f'Crea para {target} el objeto "Colgante de Escarcha" (rareza rara, categoría accesorio, requiere sintonización). '
        "Descripción: origen y aspecto en una o dos frases. "
        "Rasgo pasivo: nombre y efecto permanente. "
        "Acción: nombre, coste (1 carga, recarga en descanso largo), efecto, CD y daño si lo hay."
    )


def _checklist(normalized: str, target_name: str | None) -> list[str]:
    checks = [
        ("Personaje objetivo", bool(target_name) or " para " in f" {normalized} " or " en " in f" {normalized} "),
        ("Rareza o nivel", any(signal in normalized for signal in _RARITY_SIGNALS) or "nivel" in normalized),
        ("Mecánicas (acción, coste, CD, daño)", any(signal in normalized for signal in _MECHANIC_SIGNALS)),
        ("Nombre propio entre comillas", '"' in normalized or "llamado" in normalized),
    ]
    return [f"- {label}: {'ok' if passed else 'falta'}" for label, passed in checks]


def build_training_mode_reply(
    *,
    prompt: str,
    role: CampaignRole,
    training_submode: TrainingSubmode,
    client_context: ClientContext | None = None,
    action_count: int = 0,
) -> str:
    """Coaching reply: grades the instruction and proposes a well-formed prompt. Never proposes actions."""
    instruction = extract_current_user_instruction(prompt)
    normalized = normalize_for_match(instruction)
    selected = client_context.selectedCharacter if client_context else None
    target_name = selected.name if selected and selected.name else None
    theme = detect_training_theme(instruction)

    mode_label = "sandbox de objetos" if training_submode == "sandbox_object" else "coach de prompts"
    lines = [
        f"Modo entrenamiento activo ({mode_label}): nada se guarda en tus personajes.",
        (
            "Como DM puedes practicar sobre cualquier personaje de la campaña."
            if role == "DM"
            else "Como jugador practicas sobre tus propios personajes."
        ),
        "Evaluación de tu petición:",
        *_checklist(normalized, target_name),
        "Prompt recomendado:",
        _prompt_template(theme, target_name or "mi personaje"),
    ]
    if action_count > 0:
        lines.append(f"Acciones de práctica en esta ronda: {action_count} (no se aplican en entrenamiento).")
    lines.append("Cuando el resultado te convenza, sal del modo entrenamiento y envía el prompt para aplicarlo.")
    return "\n".join(lines)
