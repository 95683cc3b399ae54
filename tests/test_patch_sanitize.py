from sheet_assistant.modules.patches.sanitize import (
    sanitize_action_data,
    sanitize_actions,
    sanitize_client_context,
    sanitize_item_patch,
    sanitize_learned_spell_patch,
)


def test_stats_are_clamped_and_coerced() -> None:
    actions = sanitize_actions(
        [{"operation": "update", "characterId": "c1", "data": {"stats": {"str": 45, "dex": "12", "wis": "alto"}}}]
    )

    assert len(actions) == 1
    stats = actions[0].data.stats
    assert stats is not None
    assert stats.dump() == {"str": 30, "dex": 12}


def test_invalid_entries_are_dropped() -> None:
    actions = sanitize_actions(
        [
            "not-an-action",
            {"operation": "delete", "characterId": "c1", "data": {"level": 2}},
            {"operation": "update", "data": {"level": 2}},
            {"operation": "create", "data": "broken"},
        ]
    )

    assert actions == []


def test_update_falls_back_to_default_target() -> None:
    actions = sanitize_actions([{"operation": "update", "data": {"level": 2}}], "c9")

    assert actions[0].character_id == "c9"
    assert actions[0].data.level == 2


def test_multi_patch_update_is_split_per_kind() -> None:
    actions = sanitize_actions(
        [
            {
                "operation": "update",
                "characterId": "c1",
                "note": "varios cambios",
                "data": {
                    "level": 5,
                    "learned_spell_patch": {"action": "learn", "spell_level": 1, "spell_name": "Escudo"},
                    "item_patch": {"target_item_name": "Yelmo", "equipped": True},
                },
            }
        ]
    )

    assert [action.data.patch_kind() for action in actions] == ["item_patch", "learned_spell_patch"]
    assert actions[0].data.level == 5
    assert actions[1].data.level is None
    assert all(action.character_id == "c1" for action in actions)
    assert all(action.note == "varios cambios" for action in actions)


def test_action_list_is_capped_at_four() -> None:
    raw = [{"operation": "create", "data": {"name": f"Lobo {index}"}} for index in range(6)]

    actions = sanitize_actions(raw)

    assert [action.data.name for action in actions] == ["Lobo 0", "Lobo 1", "Lobo 2", "Lobo 3"]


def test_sanitizing_twice_is_stable() -> None:
    raw = [
        {
            "operation": "update",
            "characterId": "c1",
            "data": {"class": "  Pícaro ", "item_patch": {"target_item_name": "Daga", "quantity": 1500}},
        }
    ]

    once = sanitize_actions(raw)
    twice = sanitize_actions(once)

    assert [action.dump() for action in twice] == [action.dump() for action in once]
    assert once[0].data.class_name == "Pícaro"
    assert once[0].data.item_patch is not None
    assert once[0].data.item_patch.quantity == 999


def test_action_data_keeps_only_the_first_patch_kind() -> None:
    data = sanitize_action_data(
        {
            "custom_spell_patch": {"target_spell_name": "Lanza de Ceniza"},
            "custom_feature_patch": {"target_feature_name": "Rugido"},
        }
    )

    assert data is not None
    assert data.patch_kind() == "custom_spell_patch"
    assert data.custom_feature_patch is None


def test_item_patch_infers_attachment_types_and_keeps_explicit_null() -> None:
    patch = sanitize_item_patch(
        {
            "target_item_name": "Yelmo",
            "description": None,
            "category": "Armadura pesada",
            "attachments_add": [
                {"name": "Visión aguda", "description": "Tienes ventaja en las tiradas de Percepción."},
                {"name": "Marca del forjador", "description": "Runas grabadas en la frente."},
                {"name": ""},
            ],
        }
    )

    assert patch is not None
    assert patch.category == "armor"
    assert patch.provided("description")
    assert patch.description is None
    assert [(entry.name, entry.type) for entry in patch.attachments_add or []] == [
        ("Visión aguda", "ability"),
        ("Marca del forjador", "trait"),
    ]


def test_learned_spell_patch_requires_a_name_or_index() -> None:
    assert sanitize_learned_spell_patch({"spell_level": 2}) is None
    patch = sanitize_learned_spell_patch({"action": "FORGET", "spell_level": "3", "spell_name": "Bola de Fuego"})
    assert patch is not None
    assert patch.action == "forget"
    assert patch.spell_level == 3


def test_client_context_is_normalized() -> None:
    context = sanitize_client_context(
        {
            "surface": "DM",
            "section": "  players   tab ",
            "hints": ["a", "a", "b"],
            "selectedCharacter": {"id": "c1", "name": "Kaelden", "level": 99, "character_type": "COMPANION"},
        }
    )

    assert context is not None
    assert context.surface == "dm"
    assert context.section == "players tab"
    assert context.hints == ["a", "b"]
    assert context.selectedCharacter is not None
    assert context.selectedCharacter.level == 30
    assert context.selectedCharacter.character_type == "companion"
    assert sanitize_client_context({"surface": "mobile"}) is None


def test_item_names_never_keep_a_trailing_price() -> None:
    created = sanitize_item_patch({"target_item_name": "Cuerda Feérica – 35 po", "create_if_missing": True})
    assert created is not None
    assert created.target_item_name == "Cuerda Feérica"
    assert created.description == "Precio: 35 po"
    assert sanitize_item_patch(created.dump()).dump() == created.dump()

    renamed = sanitize_item_patch(
        {"target_item_name": "Capa", "name": "Capa del Cuervo - 120 PO", "description": "Plumas negras."}
    )
    assert renamed is not None
    assert renamed.name == "Capa del Cuervo"
    assert renamed.description == "Precio: 120 po\nPlumas negras."

    equipped = sanitize_item_patch({"target_item_name": "Cuerda Feérica – 35 po", "equipped": True})
    assert equipped is not None
    assert equipped.target_item_name == "Cuerda Feérica"
    assert not equipped.provided("description")
