from __future__ import annotations

from fastapi import APIRouter, Depends

from sheet_assistant.modules.assistant.deps import require_assistant_token
from sheet_assistant.modules.telemetry.service import get_assistant_telemetry_summary

router = APIRouter(prefix="/api/v1/telemetry", tags=["telemetry"])


@router.get("/assistant")
def assistant_telemetry(_: str | None = Depends(require_assistant_token)) -> dict:
    return get_assistant_telemetry_summary()
