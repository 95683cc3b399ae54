from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sheet_assistant.modules.intent.classifier import AssistantIntent
from sheet_assistant.modules.rag.retriever import CampaignRole, RagSnippet

MAX_PROMPT_CHARS = 12000


class AssistantRequest(BaseModel):
    """Loose request body; every nested payload is sanitized by the service, not here."""

    model_config = ConfigDict(extra="ignore")

    prompt: Any = None
    targetCharacterId: Any = None
    apply: bool = True
    assistantMode: Any = None
    trainingSubmode: Any = None
    clientContext: Any = None
    proposedActions: list[Any] | None = None
    originalProposedActions: list[Any] | None = None
    userEditedProposal: bool = False
    previewReply: Any = None


class AssistantPermissions(BaseModel):
    role: CampaignRole
    canManageAllCharacters: bool


class AssistantResponse(BaseModel):
    reply: str
    proposedActions: list[dict[str, Any]] = Field(default_factory=list)
    applied: bool
    provider: str
    intent: AssistantIntent
    rag: list[RagSnippet] = Field(default_factory=list)
    results: list[dict[str, Any]] = Field(default_factory=list)
    permissions: AssistantPermissions
