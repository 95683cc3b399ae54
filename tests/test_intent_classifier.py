from sheet_assistant.modules.intent.classifier import (
    classify_intent,
    extract_current_user_instruction,
    has_mutation_signal,
    is_capabilities_question,
)


def test_capabilities_question_wins_over_mutation_words() -> None:
    assert is_capabilities_question("¿Qué puedes hacer con mi inventario?")
    assert classify_intent("¿Qué puedes hacer con mi inventario?") == "capabilities"


def test_mutation_vocabulary() -> None:
    assert classify_intent("Sube a nivel 5 a Kaelden") == "mutation"
    assert classify_intent("equip the shield") == "mutation"


def test_short_signals_only_count_as_whole_words() -> None:
    assert has_mutation_signal("pon 14 en CON")
    assert not has_mutation_signal("me gusta el concierto")
    assert classify_intent("hola, ¿cómo estás?") == "chat"


def test_targeted_prompt_without_signal_is_a_mutation() -> None:
    prompt = "cuéntame su historia por favor"

    assert classify_intent(prompt) == "chat"
    assert classify_intent(prompt, "char-1") == "mutation"
    assert classify_intent("ok", "char-1") == "chat"


def test_current_instruction_is_extracted_from_wrapped_prompt() -> None:
    prompt = (
        "Usuario: hola\n"
        "Instrucción actual del usuario: crea un objeto\n"
        "Instrucción actual del usuario:  sube a nivel 5 \n\n"
        "Contexto reciente: el grupo descansa"
    )

    assert extract_current_user_instruction(prompt) == "sube a nivel 5"
    assert extract_current_user_instruction("  equipa el yelmo  ") == "equipa el yelmo"
