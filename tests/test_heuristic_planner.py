from sheet_assistant.modules.heuristics.planner import (
    CREATE_CHARACTER_REPLY,
    ITEM_CARD_REPLY,
    UPDATE_REPLY,
    build_create_character_actions,
    build_heuristic_mutation_plan,
    is_no_concrete_change_reply,
    resolve_target_character_id,
)
from sheet_assistant.modules.patches.schemas import CharacterSnapshot, ClientContext, SelectedCharacterContext


def _characters() -> list[CharacterSnapshot]:
    return [
        CharacterSnapshot(
            id="c-kaelden",
            name="Kaelden",
            user_id="player-1",
            level=3,
            details={"items": [{"id": "item-1", "name": "Yelmo del Primer Forjador"}]},
        ),
        CharacterSnapshot(id="c-aria", name="Aria", user_id="player-2", level=4),
    ]


def test_level_and_stat_update_targets_named_character() -> None:
    plan = build_heuristic_mutation_plan("Sube a nivel 5 a Kaelden y pon 16 en DEX", _characters())

    assert plan is not None
    assert plan.reply == UPDATE_REPLY
    [action] = plan.actions
    assert action.operation == "update"
    assert action.character_id == "c-kaelden"
    assert action.data.level == 5
    assert action.data.stats is not None
    assert action.data.stats.dex == 16


def test_companion_creation_inherits_owner() -> None:
    plan = build_heuristic_mutation_plan(
        'Crea un companion lobo llamado "Colmillo" nivel 2 para Kaelden', _characters()
    )

    assert plan is not None
    assert plan.reply == CREATE_CHARACTER_REPLY
    [action] = plan.actions
    assert action.operation == "create"
    assert action.data.name == "Colmillo"
    assert action.data.character_type == "companion"
    assert action.data.level == 2
    assert action.data.user_id == "player-1"


def test_character_noun_must_be_the_created_object() -> None:
    assert build_create_character_actions('Crea una daga llamada "Colmillo" para mi personaje Kaelden', _characters()) == []

    [action] = build_create_character_actions('Crea un nuevo personaje llamado "Brisa"', _characters())
    assert action["operation"] == "create"
    assert action["data"]["name"] == "Brisa"
    assert action["data"]["character_type"] == "character"


def test_item_batch_becomes_one_action_per_item() -> None:
    prompt = (
        "Añade estos objetos a Kaelden\n"
        "Anillo de Brasas – 35 po\n"
        "Un anillo tibio al tacto.\n"
        "Capa del Cuervo – 120 po\n"
        "Una capa de plumas negras."
    )

    plan = build_heuristic_mutation_plan(prompt, _characters())

    assert plan is not None
    assert plan.reply == ITEM_CARD_REPLY
    assert [action.character_id for action in plan.actions] == ["c-kaelden", "c-kaelden"]
    assert [action.data.item_patch.target_item_name for action in plan.actions] == ["Anillo de Brasas", "Capa del Cuervo"]


def test_notes_line_becomes_details_patch() -> None:
    plan = build_heuristic_mutation_plan(
        "Añade en notas: desconfía de los magos rojos", _characters(), target_character_id="c-aria"
    )

    assert plan is not None
    [action] = plan.actions
    assert action.character_id == "c-aria"
    assert action.data.details_patch is not None
    assert action.data.details_patch.notes == "desconfía de los magos rojos"
    assert action.data.item_patch is None


def test_small_talk_has_no_plan() -> None:
    assert build_heuristic_mutation_plan("hola, ¿qué tal?", _characters()) is None


def test_target_resolution_order() -> None:
    characters = _characters()
    selected = ClientContext(selectedCharacter=SelectedCharacterContext(id="c-aria", name="Aria"))

    assert resolve_target_character_id("dale algo a Kaelden", characters, target_character_id="c-aria") == "c-aria"
    assert resolve_target_character_id("dale algo a Kaelden", characters, client_context=selected) == "c-aria"
    assert resolve_target_character_id("dale algo a Kaelden", characters) == "c-kaelden"
    assert resolve_target_character_id("sube un nivel", characters) is None
    assert resolve_target_character_id("sube un nivel", characters[:1]) == "c-kaelden"


def test_no_concrete_change_reply_detection() -> None:
    assert is_no_concrete_change_reply("He analizado tu petición, pero no encontré cambios concretos para aplicar.")
    assert not is_no_concrete_change_reply("He preparado una propuesta local para aplicar esos cambios.")
