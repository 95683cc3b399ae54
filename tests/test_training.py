import copy
import random

from sheet_assistant.modules.patches.sanitize import sanitize_actions
from sheet_assistant.modules.patches.schemas import CharacterSnapshot, ClientContext, SelectedCharacterContext
from sheet_assistant.modules.training.cache import SignatureCache
from sheet_assistant.modules.training.modes import (
    build_training_mode_reply,
    detect_training_theme,
    is_training_approval_intent,
    is_training_prompt_request,
    normalize_assistant_mode,
    normalize_training_submode,
)
from sheet_assistant.modules.training.simulator import SIMULATION_PREFIX, TrainingSimulator


def _kaelden() -> CharacterSnapshot:
    return CharacterSnapshot(
        id="c-kaelden",
        name="Kaelden",
        user_id="player-1",
        stats={"str": 16},
        details={"items": [{"id": "item-1", "name": "Yelmo del Primer Forjador"}]},
    )


def test_signature_cache_evicts_least_recent() -> None:
    cache = SignatureCache(max_size=2)
    for signature in ("a", "b", "c"):
        cache.remember(signature)

    assert "a" not in cache
    assert len(cache) == 2
    assert cache.last() == "c"

    cache.remember("b")
    cache.remember("d")

    assert "c" not in cache
    assert "b" in cache
    assert cache.last() == "d"


def test_mode_flags_normalize() -> None:
    assert normalize_assistant_mode("Entrenamiento") == "training"
    assert normalize_assistant_mode(None) == "normal"
    assert normalize_training_submode("prompt") == "ai_prompt"
    assert normalize_training_submode("whatever") == "sandbox_object"


def test_approval_and_prompt_requests() -> None:
    assert is_training_approval_intent("Instruccion actual del usuario: está correcto")
    assert is_training_approval_intent("vale, me gusta")
    assert not is_training_approval_intent("crea otro objeto")
    assert not is_training_approval_intent("ok, pero no me convence")
    assert is_training_prompt_request("¿Cómo pido un objeto?")
    assert not is_training_prompt_request("equipa el yelmo")


def test_training_theme_detection() -> None:
    assert detect_training_theme("quiero practicar un hechizo") == "spell"
    assert detect_training_theme("una dote nueva") == "feature"
    assert detect_training_theme("un anillo") == "item"


def test_coaching_reply_grades_the_request() -> None:
    context = ClientContext(selectedCharacter=SelectedCharacterContext(id="c-kaelden", name="Kaelden"))

    reply = build_training_mode_reply(
        prompt="¿Cómo pido un objeto raro?",
        role="PLAYER",
        training_submode="sandbox_object",
        client_context=context,
        action_count=2,
    )

    assert reply.startswith("Modo entrenamiento activo (sandbox de objetos)")
    assert "Como jugador practicas sobre tus propios personajes." in reply
    assert "- Personaje objetivo: ok" in reply
    assert "- Rareza o nivel: ok" in reply
    assert "- Nombre propio entre comillas: falta" in reply
    assert "Prompt recomendado:\nCrea para Kaelden el objeto" in reply
    assert "Acciones de práctica en esta ronda: 2" in reply


def test_fictional_draft_targets_character_and_is_remembered() -> None:
    cache = SignatureCache(8)
    simulator = TrainingSimulator(cache, rng=random.Random(7))

    first = simulator.build_fictional_draft("crea un objeto de práctica", [_kaelden()], target_character_id="c-kaelden")
    second = simulator.build_fictional_draft("crea un objeto de práctica", [_kaelden()], target_character_id="c-kaelden")

    assert "ficticio" in first.reply
    assert first.item_name in first.reply
    [action] = first.actions
    assert action.character_id == "c-kaelden"
    assert action.data.item_patch is not None
    assert action.data.item_patch.create_if_missing is True
    assert action.data.item_patch.tags_add is not None
    assert "entrenamiento" in action.data.item_patch.tags_add
    assert 3 <= len(action.data.item_patch.attachments_add or []) <= 5
    assert second.item_name != first.item_name
    assert len(cache) == 2


def test_draft_without_target_has_no_actions() -> None:
    draft = TrainingSimulator(SignatureCache(), rng=random.Random(1)).build_fictional_draft(
        "crea un objeto", [_kaelden(), CharacterSnapshot(id="c-aria", name="Aria")]
    )

    assert draft.actions == []
    assert "Selecciona un personaje" in draft.reply


def test_exhausted_cache_still_returns_a_draft() -> None:
    reference = TrainingSimulator(SignatureCache(), rng=random.Random(3)).build_fictional_draft("crea un objeto", [])
    cache = SignatureCache()
    cache.remember(TrainingSimulator.signature(reference.item_name))

    repeated = TrainingSimulator(cache, max_attempts=1, rng=random.Random(3)).build_fictional_draft("crea un objeto", [])

    assert repeated.item_name == reference.item_name


def test_preview_never_touches_the_snapshot() -> None:
    character = _kaelden()
    before = copy.deepcopy(character.details)
    simulator = TrainingSimulator(SignatureCache(), rng=random.Random(11))
    draft = simulator.build_fictional_draft("crea un objeto", [character], target_character_id="c-kaelden")
    extra = sanitize_actions(
        [
            {"operation": "create", "data": {"name": "Colmillo"}},
            {"operation": "update", "characterId": "c-ghost", "data": {"level": 2}},
        ]
    )

    results = simulator.preview_actions([*draft.actions, *extra], [character])

    assert character.details == before
    assert [result.status for result in results] == ["skipped", "skipped", "skipped"]
    assert all(result.message.startswith(SIMULATION_PREFIX) for result in results)
    assert results[0].message.startswith('[Simulación] Personaje "Kaelden" quedaría actualizado.')
    assert results[1].message == '[Simulación] Se crearía el personaje "Colmillo".'
    assert results[2].message == "[Simulación] No tienes acceso a este personaje."
