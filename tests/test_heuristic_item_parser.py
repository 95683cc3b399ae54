from sheet_assistant.modules.heuristics.fields import normalize_attachment_patch_list, parse_rarity_from_text
from sheet_assistant.modules.heuristics.item_parser import (
    parse_simple_item_patch,
    parse_structured_item_batch_patches,
    parse_structured_item_patch,
)

HELMET_CARD = """Añade este objeto a Kaelden
Yelmo del Alba
Objeto maravilloso, raro
Resplandor: Una vez por descanso largo puedes emitir luz brillante en 9 metros.
Guardia Solar: Tienes ventaja en las tiradas de salvación contra ceguera.
"""

BATCH_CARD = """Añade estos objetos a Kaelden
Anillo de Brasas – 35 po
Un anillo tibio al tacto.
Capa del Cuervo – 120 po
Una capa de plumas negras.
"""


def test_item_card_becomes_create_patch_with_attachments() -> None:
    patch = parse_structured_item_patch(HELMET_CARD)

    assert patch is not None
    assert patch.target_item_name == "Yelmo del Alba"
    assert patch.create_if_missing is True
    assert patch.rarity == "rara"
    assert patch.description == "Objeto maravilloso, raro"
    assert [(entry.name, entry.type) for entry in patch.attachments_replace or []] == [
        ("Resplandor", "action"),
        ("Guardia Solar", "ability"),
    ]


def test_item_card_targets_existing_inventory_item_without_create_verb() -> None:
    instruction = "Modifica el yelmo\nYelmo del Primer Forjador\nVisión de Forja: Ves a través del humo y la ceniza sin penalización."

    patch = parse_structured_item_patch(instruction, ["Yelmo del Primer Forjador"])

    assert patch is not None
    assert patch.target_item_name == "Yelmo del Primer Forjador"
    assert not patch.create_if_missing
    assert [entry.name for entry in patch.attachments_replace or []] == ["Visión de Forja"]


def test_price_headings_split_into_batch_patches() -> None:
    patches = parse_structured_item_batch_patches(BATCH_CARD)

    assert [patch.target_item_name for patch in patches] == ["Anillo de Brasas", "Capa del Cuervo"]
    assert all(patch.create_if_missing for patch in patches)
    assert all("po" not in patch.target_item_name for patch in patches)
    assert patches[0].description == "Precio: 35 po\nUn anillo tibio al tacto."


def test_single_price_heading_is_not_a_batch() -> None:
    assert parse_structured_item_batch_patches("Anillo de Brasas – 35 po\nUn anillo tibio.") == []


def test_simple_equip_request() -> None:
    patch = parse_simple_item_patch("equipa el Yelmo del Primer Forjador", ["Yelmo del Primer Forjador"])

    assert patch is not None
    assert patch.dump() == {
        "target_item_name": "Yelmo del Primer Forjador",
        "create_if_missing": False,
        "equippable": True,
        "equipped": True,
    }


def test_attachment_list_derives_spell_fields_from_description() -> None:
    [attachment] = normalize_attachment_patch_list(
        [
            {
                "name": "Aliento de Escarcha",
                "description": "Tirada de salvación: Constitución\nDaño: 2d6 frío\nAlcance: 9 m\nDuración: instantánea",
            }
        ]
    )

    assert attachment.type == "spell"
    assert attachment.save is not None
    assert attachment.save.save_ability == "CON"
    assert attachment.damage is not None
    assert attachment.damage.dice == "2d6"
    assert attachment.damage.damage_type == "frío"
    assert attachment.range == "9 m"


def test_attachment_list_keeps_explicit_type() -> None:
    [attachment] = normalize_attachment_patch_list([{"name": "Foco arcano", "type": "trait", "description": "Alcance: 9 m"}])

    assert attachment.type == "trait"
    assert attachment.range == "9 m"


def test_rarity_detection_order() -> None:
    assert parse_rarity_from_text("Objeto maravilloso, muy raro") == "muy rara"
    assert parse_rarity_from_text("uncommon") == "poco común"
    assert parse_rarity_from_text("Legendario (requiere sintonización)") == "legendaria"
    assert parse_rarity_from_text("sin datos") is None
