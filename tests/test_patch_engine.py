import copy

from sheet_assistant.modules.patches.engine import (
    apply_custom_feature_patch,
    apply_custom_spell_patch,
    apply_item_patch,
    apply_learned_spell_patch,
    compute_character_update,
    merge_details,
    normalize_stats,
)
from sheet_assistant.modules.patches.sanitize import (
    sanitize_action_data,
    sanitize_custom_feature_patch,
    sanitize_custom_spell_patch,
    sanitize_details_patch,
    sanitize_item_patch,
    sanitize_learned_spell_patch,
)


def _item_patch(raw: dict):
    patch = sanitize_item_patch(raw)
    assert patch is not None
    return patch


def test_item_patch_creates_missing_item() -> None:
    patch = _item_patch({"target_item_name": "Anillo de Brasas", "create_if_missing": True, "category": "accesorio"})

    result = apply_item_patch({}, patch)

    assert result.applied
    assert result.details is not None
    [item] = result.details["items"]
    assert item["name"] == "Anillo de Brasas"
    assert item["category"] == "accessory"
    assert item["sortOrder"] == 0
    assert result.message == 'Objeto "Anillo de Brasas" actualizado en inventario.'


def test_item_patch_without_create_reports_missing_item() -> None:
    result = apply_item_patch({"items": []}, _item_patch({"target_item_name": "Capa", "equipped": True}))

    assert not result.applied
    assert result.details is None
    assert result.message == 'No se encontró el objeto "Capa" en el inventario.'


def test_item_patch_never_mutates_input() -> None:
    details = {"items": [{"id": "item-1", "name": "Yelmo del Alba", "category": "armor", "equipped": False}]}
    snapshot = copy.deepcopy(details)

    result = apply_item_patch(details, _item_patch({"target_item_name": "yelmo", "equipped": True, "tags_add": ["Sol"]}))

    assert details == snapshot
    assert result.applied
    item = result.details["items"][0]
    assert item["equipped"] is True
    assert item["tags"] == ["Sol"]


def test_attachments_merge_by_type_and_name() -> None:
    details = {
        "items": [
            {
                "id": "item-1",
                "name": "Yelmo del Alba",
                "attachments": [{"id": "att-1", "type": "trait", "name": "Visión en la oscuridad"}],
            }
        ]
    }
    patch = _item_patch(
        {
            "target_item_name": "Yelmo del Alba",
            "attachments_add": [
                {"type": "trait", "name": "vision en la oscuridad", "description": "Ves hasta 18 m."},
                {"type": "action", "name": "Destello", "resource_cost": {"charges": 1, "recharge": "long"}},
            ],
        }
    )

    result = apply_item_patch(details, patch)

    attachments = result.details["items"][0]["attachments"]
    assert [entry["name"] for entry in attachments] == ["Visión en la oscuridad", "Destello"]
    assert attachments[0]["id"] == "att-1"
    assert attachments[0]["description"] == {"text": "Ves hasta 18 m.", "lang": "es"}
    assert attachments[1]["resourceCost"] == {"charges": 1, "recharge": "long"}


def test_create_never_binds_to_a_similar_item() -> None:
    details = {"items": [{"id": "item-1", "name": "Espada Larga"}]}

    result = apply_item_patch(details, _item_patch({"target_item_name": "Espada", "create_if_missing": True}))

    assert [item["name"] for item in result.details["items"]] == ["Espada Larga", "Espada"]


def test_learned_spell_learn_and_forget() -> None:
    learn = sanitize_learned_spell_patch({"action": "learn", "spell_level": 1, "spell_name": "Escudo"})
    forget = sanitize_learned_spell_patch({"action": "forget", "spell_level": 1, "spell_name": "escudo"})

    missing = apply_learned_spell_patch({}, forget)
    assert not missing.applied
    assert missing.message == "No se encontró el hechizo indicado en level1."

    learned = apply_learned_spell_patch({}, learn)
    assert learned.applied
    assert learned.details["spells"]["level1"] == [{"name": "Escudo"}]

    again = apply_learned_spell_patch(learned.details, learn)
    assert not again.applied

    forgotten = apply_learned_spell_patch(learned.details, forget)
    assert forgotten.applied
    assert "level1" not in forgotten.details["spells"]


def test_custom_spell_collection_follows_level() -> None:
    cantrip = sanitize_custom_spell_patch({"target_spell_name": "Chispa", "create_if_missing": True, "level": 0})
    spell = sanitize_custom_spell_patch(
        {
            "target_spell_name": "Lanza de Ceniza",
            "create_if_missing": True,
            "level": 2,
            "damage": {"dice": "3d6", "damage_type": "fuego"},
        }
    )

    details = apply_custom_spell_patch({}, cantrip).details
    details = apply_custom_spell_patch(details, spell).details

    assert [entry["name"] for entry in details["customCantrips"]] == ["Chispa"]
    [lance] = details["customSpells"]
    assert lance["level"] == 2
    assert lance["damage"] == {"dice": "3d6", "damageType": "fuego"}


def test_custom_feature_remove_missing_entry_is_not_applied() -> None:
    patch = sanitize_custom_feature_patch({"target_feature_name": "Rugido", "remove": True})

    result = apply_custom_feature_patch({"customTraits": []}, patch)

    assert not result.applied
    assert result.message == 'No se encontró el rasgo/habilidad "Rugido" en customTraits.'


def test_merge_details_deletes_on_null() -> None:
    patch = sanitize_details_patch({"notes": None, "ideals": "Honor"})

    merged = merge_details({"notes": "viejo", "bonds": "La orden"}, patch)

    assert merged == {"bonds": "La orden", "ideals": "Honor"}


def test_compute_update_merges_stats_and_scalars() -> None:
    data = sanitize_action_data({"level": 5, "stats": {"dex": 16}})

    update = compute_character_update({"str": 12}, {}, data)

    assert update.failure is None
    assert update.payload["level"] == 5
    assert update.payload["stats"] == {**normalize_stats(None), "str": 12, "dex": 16}
    assert "details" not in update.payload


def test_compute_update_stops_at_first_failed_patch() -> None:
    data = sanitize_action_data(
        {"level": 4, "learned_spell_patch": {"action": "forget", "spell_level": 2, "spell_name": "Telaraña"}}
    )

    update = compute_character_update({}, {"spells": {}}, data)

    assert update.failure == "No se encontró el hechizo indicado en level2."
    assert "details" not in update.payload


def test_item_description_drops_lines_restating_attachments() -> None:
    patch = _item_patch(
        {
            "target_item_name": "Daga",
            "create_if_missing": True,
            "description": "Aliento helado\nHoja fría y curva.",
            "attachments_add": [{"type": "action", "name": "Aliento helado", "description": "Exhalas un cono de frío."}],
        }
    )

    [item] = apply_item_patch({}, patch).details["items"]

    assert item["description"] == {"text": "Hoja fría y curva.", "lang": "es"}
    assert [entry["name"] for entry in item["attachments"]] == ["Aliento helado"]


def test_new_description_is_checked_against_stored_attachments() -> None:
    details = {
        "items": [
            {
                "id": "item-1",
                "name": "Daga",
                "attachments": [{"id": "att-1", "type": "action", "name": "Aliento helado", "range": "9 m"}],
            }
        ]
    }
    patch = _item_patch({"target_item_name": "Daga", "description": "Alcance: 9 m\nAliento helado\nForjada en el norte."})

    result = apply_item_patch(details, patch)

    assert result.applied
    assert result.details["items"][0]["description"]["text"] == "Forjada en el norte."
