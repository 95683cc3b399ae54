from sheet_assistant.modules.patches.schemas import CharacterSnapshot
from sheet_assistant.modules.rag.retriever import (
    CampaignSnapshot,
    CommunityExampleSnapshot,
    NoteSnapshot,
    TARGET_MATCH_BONUS,
    RagDocument,
    build_inventory_snapshot,
    build_rag_documents,
    build_rag_snippets,
    can_access_note,
    score_rag_document,
)


def _documents(target_character_id: str | None = None) -> list[RagDocument]:
    return build_rag_documents(
        campaign=CampaignSnapshot(id="camp-1", name="La Marca del Este", description="Frontera helada", invite_code="X1"),
        characters=[
            CharacterSnapshot(
                id="c-kaelden",
                name="Kaelden",
                class_name="Guerrero",
                details={"items": [{"name": "Yelmo del Primer Forjador", "category": "armor", "equipped": True}]},
            ),
            CharacterSnapshot(id="c-aria", name="Aria", class_name="Mago"),
        ],
        notes=[NoteSnapshot(id="n1", title="Rumores del puerto", content="Los magos rojos compran hielo negro.")],
        community_examples=[CommunityExampleSnapshot(id="ex1", prompt="equipa la capa", actions=[{"operation": "update"}])],
        target_character_id=target_character_id,
    )


def test_note_visibility_rules() -> None:
    private = NoteSnapshot(id="n1", visibility="PRIVATE", author_id="dm-1")
    public = NoteSnapshot(id="n2", visibility="campaign", author_id="dm-1")

    assert can_access_note(private, "DM", "dm-2")
    assert can_access_note(private, "PLAYER", "dm-1")
    assert not can_access_note(private, "PLAYER", "player-1")
    assert can_access_note(public, "PLAYER", "player-1")


def test_documents_cover_every_source_in_order() -> None:
    documents = _documents("c-aria")

    assert [document.id for document in documents] == [
        "campaign:camp-1",
        "character:c-kaelden",
        "character:c-aria",
        "note:n1",
        "community:ex1",
    ]
    assert documents[2].priority > documents[1].priority
    kaelden_text = documents[1].text
    assert "Clase: Guerrero" in kaelden_text
    assert "item=Yelmo del Primer Forjador;cat=armor;estado=equipado" in kaelden_text


def test_target_character_ranks_first() -> None:
    snippets = build_rag_snippets(
        "equipa el yelmo", _documents("c-aria"), top_k=2, doc_max_chars=700, target_character_id="c-aria"
    )

    assert len(snippets) == 2
    assert snippets[0].id == "character:c-aria"
    assert snippets[1].id == "character:c-kaelden"


def test_target_bonus_needs_the_exact_character_id() -> None:
    target = RagDocument(id="character:c1", source_type="character", title="Lyra", text="Bardo", priority=0)
    other = RagDocument(id="character:c10", source_type="character", title="Oren", text="Monje", priority=0)

    assert score_rag_document(target, "", [], "c1") == TARGET_MATCH_BONUS
    assert score_rag_document(other, "", [], "c1") == 0


def test_prompt_tokens_pull_in_matching_note() -> None:
    snippets = build_rag_snippets("¿qué sabemos de los magos rojos del puerto?", _documents(), top_k=1, doc_max_chars=700)

    assert [snippet.id for snippet in snippets] == ["note:n1"]
    assert snippets[0].sourceType == "note"


def test_excerpt_is_truncated() -> None:
    [snippet] = build_rag_snippets("frontera", _documents(), top_k=1, doc_max_chars=10)

    assert snippet.id == "campaign:camp-1"
    assert snippet.excerpt == "Fronter..."
    assert len(snippet.excerpt) == 10


def test_inventory_snapshot_is_capped_and_defaulted() -> None:
    details = {"items": [{"name": f"Daga {index}", "quantity": 2} for index in range(20)] + ["broken"]}

    snapshot = build_inventory_snapshot(details)

    assert len(snapshot) == 14
    assert snapshot[0] == {
        "name": "Daga 0",
        "category": "misc",
        "rarity": None,
        "equipped": False,
        "equippable": False,
        "attachmentNames": [],
        "quantity": 2,
    }
