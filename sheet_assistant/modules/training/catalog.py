"""Word tables for procedurally generated practice items."""

from __future__ import annotations

from dataclasses import dataclass

# (base name, category)
ITEM_BASES: tuple[tuple[str, str], ...] = (
    ("Colgante", "accessory"),
    ("Anillo", "accessory"),
    ("Amuleto", "accessory"),
    ("Brazal", "armor"),
    ("Capa", "armor"),
    ("Yelmo", "armor"),
    ("Daga", "weapon"),
    ("Espada corta", "weapon"),
    ("Bastón", "weapon"),
    ("Lámpara", "tool"),
)


@dataclass(frozen=True, slots=True)
class Theme:
    key: str
    keywords: tuple[str, ...]
    epithets: tuple[str, ...]
    damage_type: str
    element: str


THEMES: tuple[Theme, ...] = (
    Theme(
        "hielo",
        ("hielo", "escarcha", "frio", "invierno", "nieve", "druida"),
        ("de Escarcha Eterna", "del Invierno Silente", "de Hielo Antiguo", "de la Ventisca Dormida"),
        "frío",
        "escarcha",
    ),
    Theme(
        "fuego",
        ("fuego", "llama", "ceniza", "brasa", "volcan"),
        ("de Ceniza Viva", "de la Llama Sepultada", "del Fénix Roto", "de Brasa Perpetua"),
        "fuego",
        "brasas",
    ),
    Theme(
        "sombra",
        ("sombra", "oscur", "noche", "picaro", "asesino"),
        ("de la Penumbra", "del Eclipse Mudo", "de Sombra Hilada", "de la Última Vela"),
        "necrótico",
        "sombra",
    ),
    Theme(
        "tormenta",
        ("rayo", "trueno", "tormenta", "electric", "tempestad"),
        ("del Trueno Cautivo", "de la Tormenta Quieta", "del Relámpago Roto", "de la Galerna"),
        "relámpago",
        "estática",
    ),
    Theme(
        "arcano",
        (),
        ("de los Ecos Arcanos", "del Sello Olvidado", "de la Runa Errante", "del Archivo Perdido"),
        "fuerza",
        "runas",
    ),
)
DEFAULT_THEME_KEY = "arcano"

RARITIES: tuple[str, ...] = ("poco común", "raro", "muy raro")

ORIGINS: tuple[str, ...] = (
    "Forjado en un templo abandonado bajo el hielo",
    "Hallado en el ajuar de un caballero sin nombre",
    "Tallado por un gremio de artífices extinto",
    "Recuperado de las ruinas de una torre de hechicería",
    "Regalo de un espíritu feérico a cambio de una promesa",
)

MATERIALS: tuple[str, ...] = (
    "plata ennegrecida",
    "hueso de dragón pulido",
    "cristal que nunca se empaña",
    "hierro meteórico",
    "madera petrificada con vetas luminosas",
)

TRAIT_NAMES: tuple[str, ...] = ("Aura de {element}", "Vínculo persistente", "Piel de {element}", "Memoria del portador")
ABILITY_NAMES: tuple[str, ...] = ("Paso de {element}", "Eco protector", "Pulso de {element}", "Mirada profunda")
ACTION_NAMES: tuple[str, ...] = ("Descarga de {element}", "Estallido contenido", "Golpe de {element}", "Onda de choque")
SPELL_NAMES: tuple[str, ...] = ("Lanza de {element}", "Nova de {element}", "Cadena de {element}", "Velo de {element}")

SAVE_ABILITIES: tuple[str, ...] = ("DEX", "CON", "WIS")
DAMAGE_DICE: tuple[str, ...] = ("1d8", "2d6", "2d8", "3d6")

# Attachment archetypes in the order they are added; the first n are used.
ARCHETYPE_ORDER: tuple[str, ...] = ("trait", "action", "spell", "ability", "trait")


def find_theme(normalized_prompt: str) -> Theme:
    for theme in THEMES:
        if any(keyword in normalized_prompt for keyword in theme.keywords):
            return theme
    return next(theme for theme in THEMES if theme.key == DEFAULT_THEME_KEY)
