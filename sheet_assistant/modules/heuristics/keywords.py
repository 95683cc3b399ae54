"""Keyword and pattern tables shared by the heuristic parser stages.

Every table is matched against text already folded by
``normalize_for_match`` (lowercase, no diacritics).
"""

from __future__ import annotations

import re

MUTATION_COMMAND_PREFIXES: tuple[str, ...] = (
    "modifica ",
    "actualiza ",
    "edita ",
    "cambia ",
    "anade ",
    "agrega ",
    "inserta ",
    "mete ",
    "crea ",
    "add ",
)

CREATE_VERBS: tuple[str, ...] = ("anade", "agrega", "crea", "crear", "add ")
EDIT_VERBS: tuple[str, ...] = ("modifica", "actualiza", "edita", "cambia")

UPDATE_VERBS: tuple[str, ...] = (
    "modifica", "actualiza", "edita", "cambia", "inserta", "quita", "elimina", "borra",
    "pon ", "set ", "anade", "agrega", "crea", "crear", "add ", "insert ", "remove ",
    "delete ", "aprende", "olvida", "equipa", "desequipa", "equip ", "unequip",
)

FORBIDDEN_HEADING_STARTS: tuple[str, ...] = (
    "instruccion actual del usuario",
    "usuario",
    "asistente",
    "tengo este objeto",
    "hola soy tu asistente",
    "he analizado tu peticion",
    "te propondre cambios",
    "no encontre cambios concretos",
)

SECTION_LABELS: frozenset[str] = frozenset(
    {"uso", "aspecto", "propiedades", "propiedades magicas", "descripcion", "description", "properties"}
)

# Headings made only of these words group other lines; they never name an attachment.
CONTAINER_WORDS: frozenset[str] = frozenset(
    {
        "caracteristicas", "caracteristica", "propiedades", "propiedad", "basicas", "basicos",
        "especiales", "especial", "magicas", "mecanicas", "rasgos", "habilidades", "detalles",
        "descripcion", "efectos", "notas", "features", "properties", "traits", "abilities",
        "details", "general", "generales", "resumen", "aspecto", "uso", "funcionamiento",
    }
)

ITEM_KEYWORDS: tuple[str, ...] = (
    "objeto", "item", "inventario", "inventory", "arma", "weapon", "armadura", "armor",
    "daga", "espada", "hacha", "mazo", "arco", "ballesta", "baston", "staff", "escudo",
    "shield", "yelmo", "casco", "anillo", "amulet", "amuleto", "capa", "pocion", "potion",
)

GENERIC_ITEM_REFERENCES: frozenset[str] = frozenset(
    {"objeto", "item", "este objeto", "esta objeto", "ese objeto", "esa objeto", "el objeto",
     "la objeto", "esto", "cosa"}
)

# Keys that describe an attachment (spell-like or activatable) when seen as "key: value".
ATTACHMENT_FIELD_KEYS: tuple[str, ...] = (
    "tiempo de lanzamiento", "lanzamiento", "casting time", "alcance", "range", "componentes",
    "components", "duracion", "duration", "escuela", "school", "tirada de salvacion",
    "salvacion", "saving throw", "save", "cd", "dc", "dano", "damage", "nivel", "level",
    "uso", "use", "usage", "activacion", "activation", "recarga", "recharge", "cargas",
    "charges", "requisitos", "requiere", "requirements", "efecto", "effect", "coste", "cost",
    "area", "materiales", "materials", "concentracion", "ritual",
)

# Keys that belong to the item card itself.
ITEM_METADATA_KEYS: tuple[str, ...] = (
    "tipo", "type", "rareza", "rarity", "sintonizacion", "attunement", "estado", "personalidad",
    "peso", "weight", "precio", "price", "valor", "bonificacion", "bono", "bonus",
    "propiedades", "properties", "material", "origen", "categoria", "category", "cantidad",
    "quantity", "descripcion", "description", "aspecto", "apariencia",
)

# Keys that turn loose item-level lines into an activatable attachment.
ACTIVATION_KEYS: tuple[str, ...] = (
    "uso", "use", "usage", "efecto", "effect", "activacion", "activation", "recarga",
    "recharge", "cargas", "charges",
)

CONFIGURATION_HEADING_RE = re.compile(r"^(?:configuracion|configuration|modo|mode)\b", re.IGNORECASE)
CONTINUATION_HEADING_RE = re.compile(
    r"^(?:efecto\s+(?:inicial|secundario|continuo)|(?:initial|secondary|continuous)\s+effect)\b",
    re.IGNORECASE,
)

PRICE_HEADING_RE = re.compile(
    r"^(?P<name>.+?)\s*[–—-]+\s*(?P<amount>\d[\d.,]*)\s*(?P<currency>po|pp|pe|pc|mo|gp|sp|cp|ep|pl)\b\.?\s*$",
    re.IGNORECASE,
)
PRICE_FRAGMENT_RE = re.compile(r"\b\d[\d.,]*\s*(?:po|pp|pe|pc|mo|gp|sp|cp|ep|pl)\b", re.IGNORECASE)

DICE_RE = re.compile(r"\b(\d{1,2}d\d{1,3}(?:\s*[+-]\s*\d{1,3})?)\b", re.IGNORECASE)

ABILITY_ALIASES: dict[str, str] = {
    "fuerza": "STR", "strength": "STR", "fue": "STR", "str": "STR",
    "destreza": "DEX", "dexterity": "DEX", "des": "DEX", "dex": "DEX",
    "constitucion": "CON", "constitution": "CON", "con": "CON",
    "inteligencia": "INT", "intelligence": "INT", "int": "INT",
    "sabiduria": "WIS", "wisdom": "WIS", "sab": "WIS", "wis": "WIS",
    "carisma": "CHA", "charisma": "CHA", "car": "CHA", "cha": "CHA",
}

DAMAGE_TYPES: dict[str, str] = {
    "acido": "ácido", "contundente": "contundente", "cortante": "cortante", "frio": "frío",
    "fuego": "fuego", "fuerza": "fuerza", "relampago": "relámpago", "necrotico": "necrótico",
    "perforante": "perforante", "veneno": "veneno", "psiquico": "psíquico", "radiante": "radiante",
    "trueno": "trueno", "acid": "acid", "bludgeoning": "bludgeoning", "slashing": "slashing",
    "cold": "cold", "fire": "fire", "force": "force", "lightning": "lightning",
    "necrotic": "necrotic", "piercing": "piercing", "poison": "poison", "psychic": "psychic",
    "radiant": "radiant", "thunder": "thunder",
}

# Block classification signal tables, in priority order.
PASSIVE_SIGNALS: tuple[str, ...] = (
    "pasiva", "pasivo", "passive", "detecta", "detector", "deteccion", "detect", "siempre activo",
    "always active",
)
FOCUS_SIGNALS: tuple[str, ...] = ("foco", "focus")
ACTIVATION_SIGNALS: tuple[str, ...] = (
    "como accion", "una accion", "accion adicional", "bonus action", "as an action",
    "poder especial", "special power", "activar", "activa ", "activation", "recarga",
    "recharge", "por descanso", "descanso corto", "descanso largo", "short rest", "long rest",
    "una vez por", "once per", "usos por", "uses per", "cargas", "charges",
)
CANTRIP_SIGNALS: tuple[str, ...] = ("truco", "cantrip")
SPELL_CORE_SIGNALS: tuple[tuple[str, ...], ...] = (
    ("alcance", "range"),
    ("duracion", "duration"),
    ("componentes", "components"),
    ("tiempo de lanzamiento", "casting time"),
    ("area", "radio", "cono", "cone", "radius", "cubo", "cube"),
)
SPELL_AUX_SIGNALS: tuple[tuple[str, ...], ...] = (
    ("salvacion", "saving throw", "save"),
    ("cd ", "dc "),
    ("espacio de conjuro", "spell slot", "ranura"),
    ("conjuro", "hechizo", "spell"),
)
STATEFUL_SIGNALS: tuple[str, ...] = (
    "cada turno", "al inicio de", "al final de", "each turn", "start of", "end of",
    "acumula", "stack", "por turno", "per turn", "mientras dure", "estado",
)
BONUS_SIGNALS: tuple[str, ...] = (
    "ventaja", "advantage", "bono", "bonus", "tirada", "roll", "bonificacion", "+1", "+2", "+3",
)

# Item-description lines dropped once any attachment carries structured fields.
MECHANICAL_NOISE_RE = re.compile(
    r"^(?:alcance|range|salvacion|tirada de salvacion|saving throw|save|dano|damage|duracion|duration|"
    r"tiempo de lanzamiento|casting time|componentes|components|cd|dc)\s*:",
)


def has_any(text: str, signals: tuple[str, ...]) -> bool:
    return any(signal in text for signal in signals)


def label_matches(label: str, keys: tuple[str, ...]) -> bool:
    """True when a folded label equals a key or starts with it as a whole word."""
    return any(label == key or label.startswith(f"{key} ") for key in keys)
