from __future__ import annotations

from pathlib import Path

import pytest

from sheet_assistant.config import settings
from sheet_assistant.db import session as db_session
from sheet_assistant.db.bootstrap import drop_db, init_db
from sheet_assistant.main import app
from sheet_assistant.modules.assistant.service import reset_assistant_service
from sheet_assistant.modules.llm.runtime.orchestrators import reset_plan_orchestrator
from sheet_assistant.modules.telemetry.service import reset_assistant_telemetry


@pytest.fixture(autouse=True)
def _reset_db_and_defaults(tmp_path: Path) -> None:
    settings.ai_provider = "auto"
    settings.ai_free_only = True
    settings.ai_enable_local_fallback = True
    settings.ai_community_learning_enabled = True
    settings.openai_api_key = ""
    settings.gemini_api_key = ""
    settings.assistant_api_token = ""
    settings.ai_rag_top_k = 8
    settings.ai_rag_doc_max_chars = 700
    reset_assistant_telemetry()
    reset_plan_orchestrator()
    reset_assistant_service()
    db_session.rebind_engine(f"sqlite+pysqlite:///{tmp_path / 'assistant.db'}")
    init_db()
    yield
    app.dependency_overrides.clear()
    reset_assistant_telemetry()
    reset_plan_orchestrator()
    reset_assistant_service()
    drop_db()
