from __future__ import annotations

from fastapi import APIRouter, Depends

from sheet_assistant.modules.assistant.deps import require_assistant_token, require_user_id
from sheet_assistant.modules.assistant.schemas import AssistantRequest, AssistantResponse
from sheet_assistant.modules.assistant.service import AssistantService, get_assistant_service

router = APIRouter(prefix="/api/v1", tags=["assistant"])


@router.post("/campaigns/{campaign_id}/assistant", response_model=AssistantResponse)
def run_assistant(
    campaign_id: str,
    payload: AssistantRequest,
    user_id: str = Depends(require_user_id),
    _: str | None = Depends(require_assistant_token),
    service: AssistantService = Depends(get_assistant_service),
):
    return service.handle(campaign_id, user_id, payload)
