from __future__ import annotations

from fastapi import Header, HTTPException, status

from sheet_assistant.config import settings
from sheet_assistant.modules.patches.coerce import as_trimmed_string


def require_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    user_id = as_trimmed_string(x_user_id, 64)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHORIZED", "message": "No autenticado."},
        )
    return user_id


def require_assistant_token(
    x_assistant_token: str | None = Header(default=None, alias="X-Assistant-Token"),
) -> str | None:
    expected = str(settings.assistant_api_token or "").strip()
    if not expected:
        return None

    provided = str(x_assistant_token or "").strip()
    if provided != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHORIZED", "message": "Invalid assistant token"},
        )
    return provided
