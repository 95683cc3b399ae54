import pytest
from fastapi.testclient import TestClient

from sheet_assistant.config import settings
from sheet_assistant.main import app
from sheet_assistant.modules.assistant.service import AssistantService, get_assistant_service
from sheet_assistant.modules.assistant.store import CampaignStore
from sheet_assistant.modules.llm.providers.fake import FakeProvider
from sheet_assistant.modules.llm.runtime.orchestrators import PlanOrchestrator
from tests.support.campaign_seed import (
    ARIA_ID,
    CAMPAIGN_ID,
    DM_ID,
    HELMET_NAME,
    KAELDEN_ID,
    OUTSIDER_ID,
    PLAYER_ID,
    load_character,
    seed_campaign,
)

URL = f"/api/v1/campaigns/{CAMPAIGN_ID}/assistant"


@pytest.fixture
def client() -> TestClient:
    seed_campaign()
    return TestClient(app)


def _use_provider(*replies, preference: str = "ollama", configured: bool = True) -> FakeProvider:
    provider = FakeProvider(list(replies), name=preference)
    provider.configured = configured
    app.dependency_overrides[get_assistant_service] = lambda: AssistantService(
        orchestrator_factory=lambda: PlanOrchestrator(
            {preference: provider}, preference=preference, enable_local_fallback=False
        )
    )
    return provider


def _post(client: TestClient, payload: dict, user_id: str | None = PLAYER_ID, **headers: str):
    if user_id is not None:
        headers["X-User-Id"] = user_id
    return client.post(URL, json=payload, headers=headers)


def test_capabilities_question_needs_no_model(client: TestClient) -> None:
    provider = _use_provider()

    resp = _post(client, {"prompt": "¿Qué puedes hacer?"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["intent"] == "capabilities"
    assert body["provider"] == "none"
    assert body["proposedActions"] == []
    assert body["permissions"] == {"role": "PLAYER", "canManageAllCharacters": False}
    assert provider.calls == []


def test_heuristic_plan_is_applied(client: TestClient) -> None:
    provider = _use_provider()

    resp = _post(client, {"prompt": "Sube a nivel 5 a Kaelden y pon 16 en DEX"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["provider"] == "heuristic-local"
    assert body["intent"] == "mutation"
    assert body["applied"] is True
    assert body["reply"].endswith("Revísala y confirma para aplicarla.")
    assert [result["status"] for result in body["results"]] == ["applied"]
    assert provider.calls == []

    kaelden = load_character(KAELDEN_ID)
    assert kaelden is not None
    assert kaelden.level == 5
    assert kaelden.stats["dex"] == 16
    assert kaelden.stats["str"] == 16


def test_preview_does_not_write(client: TestClient) -> None:
    _use_provider()

    resp = _post(client, {"prompt": "Pon nivel 5 a Kaelden", "apply": False})

    body = resp.json()
    assert body["applied"] is False
    assert body["results"] == []
    assert body["proposedActions"][0]["characterId"] == KAELDEN_ID
    assert load_character(KAELDEN_ID).level == 3


def test_confirmed_proposal_is_applied_and_learned(client: TestClient) -> None:
    _use_provider()
    proposal = [
        {
            "operation": "update",
            "characterId": KAELDEN_ID,
            "data": {"item_patch": {"target_item_name": HELMET_NAME, "equipped": True}},
        }
    ]

    resp = _post(
        client,
        {
            "prompt": "equipa el yelmo",
            "proposedActions": proposal,
            "userEditedProposal": True,
            "previewReply": "Yelmo equipado.",
        },
    )

    body = resp.json()
    assert body["provider"] == "preview-confirm"
    assert body["reply"] == "Yelmo equipado."
    assert body["results"][0]["status"] == "applied"
    assert load_character(KAELDEN_ID).details["items"][0]["equipped"] is True
    [example] = CampaignStore().list_community_examples()
    assert example.prompt == "equipa el yelmo"


def test_player_cannot_edit_other_players_character(client: TestClient) -> None:
    _use_provider()

    targeted = _post(client, {"prompt": "Sube a nivel 6", "targetCharacterId": ARIA_ID})
    confirmed = _post(
        client,
        {"prompt": "ok", "proposedActions": [{"operation": "update", "characterId": ARIA_ID, "data": {"level": 9}}]},
    )

    assert targeted.status_code == 403
    assert targeted.json()["detail"]["code"] == "FORBIDDEN"
    assert confirmed.status_code == 200
    assert confirmed.json()["results"][0]["status"] == "blocked"
    assert load_character(ARIA_ID).level == 4


def test_dm_can_edit_any_character(client: TestClient) -> None:
    _use_provider()

    resp = _post(client, {"prompt": "Pon nivel 6 a Aria"}, user_id=DM_ID)

    assert resp.json()["permissions"] == {"role": "DM", "canManageAllCharacters": True}
    assert load_character(ARIA_ID).level == 6


def test_membership_and_identity_are_required(client: TestClient) -> None:
    _use_provider()

    outsider = _post(client, {"prompt": "hola"}, user_id=OUTSIDER_ID)
    anonymous = _post(client, {"prompt": "hola"}, user_id=None)
    empty = _post(client, {"prompt": "   "})

    assert outsider.status_code == 403
    assert outsider.json()["detail"]["code"] == "FORBIDDEN"
    assert anonymous.status_code == 401
    assert anonymous.json()["detail"]["code"] == "UNAUTHORIZED"
    assert empty.status_code == 400
    assert empty.json()["detail"]["code"] == "INVALID_REQUEST"


def test_assistant_token_is_enforced_when_configured(client: TestClient) -> None:
    _use_provider()
    settings.assistant_api_token = "secret"

    denied = _post(client, {"prompt": "¿Qué puedes hacer?"})
    allowed = _post(client, {"prompt": "¿Qué puedes hacer?"}, **{"X-Assistant-Token": "secret"})

    assert denied.status_code == 401
    assert allowed.status_code == 200


def test_model_plan_is_sanitized_and_applied(client: TestClient) -> None:
    provider = _use_provider(
        {
            "reply": "Ajusto la velocidad.",
            "actions": [
                {"operation": "update", "characterId": KAELDEN_ID, "data": {"speed": 35, "unknown": 1}},
                {"operation": "delete", "characterId": KAELDEN_ID},
            ],
        }
    )

    resp = _post(client, {"prompt": "cambia algo interesante", "targetCharacterId": KAELDEN_ID})

    body = resp.json()
    assert body["provider"] == "ollama"
    assert body["reply"] == "Ajusto la velocidad."
    assert len(body["proposedActions"]) == 1
    assert body["rag"][0]["id"] == f"character:{KAELDEN_ID}"
    assert body["results"][0]["status"] == "applied"
    assert load_character(KAELDEN_ID).speed == 35
    assert len(provider.calls) == 1


def test_empty_model_plan_gets_guidance(client: TestClient) -> None:
    _use_provider({"reply": "He analizado tu petición, pero no encontré cambios concretos para aplicar.", "actions": []})

    resp = _post(client, {"prompt": "cambia algo interesante"})

    body = resp.json()
    assert body["proposedActions"] == []
    assert body["reply"].startswith("He analizado tu petición")
    assert "\n\n" in body["reply"]


def test_provider_failure_is_service_unavailable(client: TestClient) -> None:
    _use_provider(RuntimeError("connection refused"))

    resp = _post(client, {"prompt": "cambia algo interesante"})

    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "LLM_UNAVAILABLE"
    assert "ollama: connection refused" in resp.json()["detail"]["message"]


def test_missing_hosted_key_is_config_error(client: TestClient) -> None:
    _use_provider(preference="gemini", configured=False)

    resp = _post(client, {"prompt": "¿Qué puedes hacer?"})

    assert resp.status_code == 500
    assert resp.json()["detail"] == {"code": "CONFIG_ERROR", "message": "Falta GEMINI_API_KEY en el servidor."}


def test_training_mode_never_writes(client: TestClient) -> None:
    provider = _use_provider()
    before = load_character(KAELDEN_ID).details

    draft = _post(
        client,
        {"prompt": "crea un objeto de práctica", "assistantMode": "training", "targetCharacterId": KAELDEN_ID},
    ).json()
    preview = _post(
        client,
        {
            "prompt": "está correcto",
            "assistantMode": "training",
            "targetCharacterId": KAELDEN_ID,
            "proposedActions": draft["proposedActions"],
        },
    ).json()

    assert draft["provider"] == "training-sandbox"
    assert draft["applied"] is False
    assert len(draft["proposedActions"]) == 1
    assert preview["applied"] is False
    assert [result["status"] for result in preview["results"]] == ["skipped"]
    assert preview["results"][0]["message"].startswith("[Simulación]")
    assert load_character(KAELDEN_ID).details == before
    assert provider.calls == []


def test_training_prompt_coach(client: TestClient) -> None:
    _use_provider()

    body = _post(
        client, {"prompt": "¿Cómo pido un objeto?", "assistantMode": "training", "trainingSubmode": "prompt"}
    ).json()

    assert body["intent"] == "chat"
    assert "Modo entrenamiento activo (coach de prompts)" in body["reply"]
    assert body["proposedActions"] == []


def test_telemetry_endpoint_counts_requests(client: TestClient) -> None:
    _use_provider()
    _post(client, {"prompt": "¿Qué puedes hacer?"})
    _post(client, {"prompt": "hola"}, user_id=OUTSIDER_ID)

    resp = client.get("/api/v1/telemetry/assistant")

    assert resp.status_code == 200
    summary = resp.json()
    assert summary["total_requests"] == 2
    assert summary["failed_requests"] == 1
    assert summary["requests_by_intent"] == {"capabilities": 1}
