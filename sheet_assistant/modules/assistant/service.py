from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from fastapi import HTTPException

from sheet_assistant.config import Settings, settings
from sheet_assistant.modules.assistant.apply import apply_actions
from sheet_assistant.modules.assistant.context import CampaignContext, build_model_context, load_campaign_context
from sheet_assistant.modules.assistant.replies import build_capabilities_reply, build_chat_guidance_reply
from sheet_assistant.modules.assistant.schemas import (
    MAX_PROMPT_CHARS,
    AssistantPermissions,
    AssistantRequest,
    AssistantResponse,
)
from sheet_assistant.modules.assistant.store import CampaignStore, StoreError
from sheet_assistant.modules.heuristics.planner import build_heuristic_mutation_plan, is_no_concrete_change_reply
from sheet_assistant.modules.intent.classifier import (
    AssistantIntent,
    classify_intent,
    extract_current_user_instruction,
    is_capabilities_question,
)
from sheet_assistant.modules.llm.runtime.errors import LLMUnavailableError
from sheet_assistant.modules.llm.runtime.orchestrators import PlanOrchestrator, get_plan_orchestrator
from sheet_assistant.modules.patches.coerce import as_trimmed_string
from sheet_assistant.modules.patches.sanitize import sanitize_actions, sanitize_client_context
from sheet_assistant.modules.patches.schemas import Action, CharacterSnapshot, ClientContext, MutationResult
from sheet_assistant.modules.rag.retriever import CampaignRole, RagSnippet, build_rag_documents, build_rag_snippets
from sheet_assistant.modules.telemetry.service import (
    record_assistant_failure,
    record_assistant_request,
    record_training_draft,
)
from sheet_assistant.modules.training.cache import SignatureCache
from sheet_assistant.modules.training.modes import (
    build_training_mode_reply,
    is_training_approval_intent,
    is_training_prompt_request,
    normalize_assistant_mode,
    normalize_training_submode,
)
from sheet_assistant.modules.training.simulator import TrainingSimulator

logger = logging.getLogger(__name__)

PROVIDER_PREVIEW_CONFIRM = "preview-confirm"
PROVIDER_TRAINING = "training-sandbox"
PROVIDER_NONE = "none"
PROVIDER_HEURISTIC = "heuristic-local"

CONFIRM_HINT = "Revísala y confirma para aplicarla."
CONFIRMED_REPLY = "He aplicado los cambios confirmados."
NO_CHANGES_REPLY = "No hubo cambios concretos para aplicar."
TRAINING_PREVIEW_REPLY = "Entrenamiento: así quedaría la propuesta. No se ha guardado ningún cambio en el personaje."
MAX_COMMUNITY_PROMPT_CHARS = 2000


def _http_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


@dataclass(slots=True)
class _Turn:
    """Per-request state shared by the branches of ``AssistantService``."""

    campaign_id: str
    user_id: str
    role: CampaignRole
    prompt: str
    target_id: str | None
    client_context: ClientContext | None
    context: CampaignContext
    visible: list[CharacterSnapshot]

    def respond(
        self,
        *,
        reply: str,
        applied: bool,
        provider: str,
        intent: AssistantIntent,
        actions: Sequence[Action] = (),
        results: Sequence[MutationResult] = (),
        rag: Sequence[RagSnippet] = (),
    ) -> AssistantResponse:
        return AssistantResponse(
            reply=reply,
            proposedActions=[action.dump() for action in actions],
            applied=applied,
            provider=provider,
            intent=intent,
            rag=list(rag),
            results=[result.dump() for result in results],
            permissions=AssistantPermissions(role=self.role, canManageAllCharacters=self.role == "DM"),
        )


class AssistantService:
    def __init__(
        self,
        store: CampaignStore | None = None,
        *,
        simulator: TrainingSimulator | None = None,
        orchestrator_factory: Callable[[], PlanOrchestrator] | None = None,
        config: Settings | None = None,
    ):
        self.config = config or settings
        self.store = store or CampaignStore()
        self.simulator = simulator or TrainingSimulator(
            SignatureCache(self.config.training_cache_size),
            max_attempts=self.config.training_max_attempts,
        )
        self.orchestrator_factory = orchestrator_factory or get_plan_orchestrator

    def handle(self, campaign_id: str, user_id: str, request: AssistantRequest) -> AssistantResponse:
        started = time.perf_counter()
        try:
            response = self._handle(campaign_id, user_id, request)
        except HTTPException as exc:
            detail = exc.detail if isinstance(exc.detail, dict) else {}
            record_assistant_failure(error_code=str(detail.get("code") or exc.status_code))
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("assistant request failed campaign=%s", campaign_id)
            record_assistant_failure(error_code="INTERNAL_ERROR")
            raise _http_error(500, "INTERNAL_ERROR", "Error interno ejecutando el asistente.") from exc

        record_assistant_request(
            latency_ms=(time.perf_counter() - started) * 1000,
            intent=response.intent,
            provider=response.provider,
            statuses=[str(result.get("status")) for result in response.results],
        )
        return response

    def _handle(self, raw_campaign_id: str, user_id: str, request: AssistantRequest) -> AssistantResponse:
        campaign_id = as_trimmed_string(raw_campaign_id, 64)
        if not campaign_id:
            raise _http_error(400, "INVALID_REQUEST", "campaignId inválido.")
        prompt = as_trimmed_string(request.prompt, MAX_PROMPT_CHARS)
        if not prompt:
            raise _http_error(400, "INVALID_REQUEST", "Debes enviar un prompt.")

        target_id = as_trimmed_string(request.targetCharacterId, 64)
        client_context = sanitize_client_context(request.clientContext)

        orchestrator = self.orchestrator_factory()
        config_error = orchestrator.configuration_error()
        if config_error:
            raise _http_error(500, "CONFIG_ERROR", config_error)

        try:
            member_role = self.store.get_member_role(campaign_id, user_id)
        except StoreError as exc:
            raise _http_error(500, "INTERNAL_ERROR", str(exc)) from exc
        if member_role is None:
            raise _http_error(403, "FORBIDDEN", "No tienes acceso a esta campaña.")
        role: CampaignRole = "DM" if member_role == "DM" else "PLAYER"

        try:
            context = load_campaign_context(
                self.store,
                campaign_id,
                role=role,
                user_id=user_id,
                include_community=self.config.ai_community_learning_enabled,
            )
        except StoreError as exc:
            raise _http_error(500, "INTERNAL_ERROR", str(exc)) from exc

        visible = context.visible_characters(role, user_id)
        visible_ids = {character.id for character in visible}
        if target_id and target_id not in visible_ids:
            raise _http_error(403, "FORBIDDEN", "No tienes acceso al personaje objetivo.")

        turn = _Turn(
            campaign_id=campaign_id,
            user_id=user_id,
            role=role,
            prompt=prompt,
            target_id=target_id,
            client_context=client_context,
            context=context,
            visible=visible,
        )

        if normalize_assistant_mode(request.assistantMode) == "training":
            return self._handle_training(turn, request)
        if request.apply and request.proposedActions is not None:
            return self._confirm_proposal(turn, request)
        return self._plan(turn, orchestrator, apply=request.apply)

    def _confirm_proposal(self, turn: _Turn, request: AssistantRequest) -> AssistantResponse:
        actions = sanitize_actions(request.proposedActions, turn.target_id)
        results = self._apply(turn, actions)
        if request.userEditedProposal and self.config.ai_community_learning_enabled:
            self._record_community_example(turn.prompt, actions, results)
        reply = as_trimmed_string(request.previewReply, 4000) or (CONFIRMED_REPLY if actions else NO_CHANGES_REPLY)
        return turn.respond(
            reply=reply,
            actions=actions,
            applied=True,
            provider=PROVIDER_PREVIEW_CONFIRM,
            intent="mutation",
            results=results,
        )

    def _handle_training(self, turn: _Turn, request: AssistantRequest) -> AssistantResponse:
        submode = normalize_training_submode(request.trainingSubmode)
        if submode == "sandbox_object" and request.proposedActions is not None:
            if request.apply or is_training_approval_intent(turn.prompt):
                actions = sanitize_actions(request.proposedActions, turn.target_id)
                return turn.respond(
                    reply=TRAINING_PREVIEW_REPLY,
                    actions=actions,
                    applied=False,
                    provider=PROVIDER_TRAINING,
                    intent="mutation",
                    results=self.simulator.preview_actions(actions, turn.visible),
                )

        if submode == "ai_prompt" or is_training_prompt_request(turn.prompt):
            reply = build_training_mode_reply(
                prompt=turn.prompt,
                role=turn.role,
                training_submode=submode,
                client_context=turn.client_context,
            )
            return turn.respond(reply=reply, applied=False, provider=PROVIDER_TRAINING, intent="chat")

        draft = self.simulator.build_fictional_draft(
            turn.prompt,
            turn.visible,
            target_character_id=turn.target_id,
            client_context=turn.client_context,
        )
        record_training_draft()
        return turn.respond(
            reply=draft.reply,
            actions=draft.actions,
            applied=False,
            provider=PROVIDER_TRAINING,
            intent="mutation",
        )

    def _plan(self, turn: _Turn, orchestrator: PlanOrchestrator, *, apply: bool) -> AssistantResponse:
        intent = classify_intent(turn.prompt, turn.target_id)
        if intent == "capabilities":
            reply = build_capabilities_reply(turn.role, turn.client_context)
            return turn.respond(reply=reply, applied=apply, provider=PROVIDER_NONE, intent=intent)
        if intent == "chat":
            reply = build_chat_guidance_reply(turn.role, turn.client_context)
            return turn.respond(reply=reply, applied=apply, provider=PROVIDER_NONE, intent=intent)

        # Deterministic plans win over the model.
        heuristic_plan = build_heuristic_mutation_plan(
            turn.prompt, turn.visible, turn.target_id, turn.client_context
        )
        if heuristic_plan is not None:
            return self._finish(
                turn,
                reply=f"{heuristic_plan.reply} {CONFIRM_HINT}",
                actions=heuristic_plan.actions,
                provider=PROVIDER_HEURISTIC,
                intent=intent,
                apply=apply,
            )

        documents = build_rag_documents(
            campaign=turn.context.campaign,
            characters=turn.visible,
            notes=turn.context.notes,
            community_examples=turn.context.community_examples if self.config.ai_community_learning_enabled else (),
            target_character_id=turn.target_id,
        )
        rag = build_rag_snippets(
            turn.prompt,
            documents,
            top_k=self.config.ai_rag_top_k,
            doc_max_chars=self.config.ai_rag_doc_max_chars,
            target_character_id=turn.target_id,
        )
        model_context = build_model_context(
            campaign_id=turn.campaign_id,
            role=turn.role,
            user_id=turn.user_id,
            target_character_id=turn.target_id,
            client_context=turn.client_context,
            members=turn.context.members,
            visible_characters=turn.visible,
            rag_snippets=rag,
        )
        try:
            result = orchestrator.request_plan(turn.prompt, model_context)
        except LLMUnavailableError as exc:
            raise _http_error(503, "LLM_UNAVAILABLE", str(exc)) from exc

        actions = sanitize_actions(result.plan.actions, turn.target_id)
        reply = result.plan.reply
        if not actions and is_capabilities_question(turn.prompt):
            reply = build_capabilities_reply(turn.role, turn.client_context)
        elif not actions and is_no_concrete_change_reply(reply):
            reply = f"{reply}\n\n{build_chat_guidance_reply(turn.role, turn.client_context)}"

        return self._finish(
            turn, reply=reply, actions=actions, provider=result.provider, intent=intent, apply=apply, rag=rag
        )

    def _finish(
        self,
        turn: _Turn,
        *,
        reply: str,
        actions: list[Action],
        provider: str,
        intent: AssistantIntent,
        apply: bool,
        rag: Sequence[RagSnippet] = (),
    ) -> AssistantResponse:
        if not apply:
            return turn.respond(reply=reply, actions=actions, applied=False, provider=provider, intent=intent, rag=rag)
        return turn.respond(
            reply=reply,
            actions=actions,
            applied=True,
            provider=provider,
            intent=intent,
            rag=rag,
            results=self._apply(turn, actions),
        )

    def _apply(self, turn: _Turn, actions: Sequence[Action]) -> list[MutationResult]:
        return apply_actions(
            self.store,
            actions,
            campaign_id=turn.campaign_id,
            user_id=turn.user_id,
            role=turn.role,
            members=turn.context.members,
            visible_character_ids={character.id for character in turn.visible},
        )

    def _record_community_example(
        self, prompt: str, actions: Sequence[Action], results: Sequence[MutationResult]
    ) -> None:
        if not actions or not any(result.status == "applied" for result in results):
            return
        instruction = extract_current_user_instruction(prompt)[:MAX_COMMUNITY_PROMPT_CHARS]
        try:
            self.store.add_community_example(instruction, [action.dump() for action in actions])
        except StoreError as exc:
            logger.warning("community example not recorded: %s", exc)


_service: AssistantService | None = None


def get_assistant_service() -> AssistantService:
    global _service
    if _service is None:
        _service = AssistantService()
    return _service


def reset_assistant_service() -> None:
    global _service
    _service = None

