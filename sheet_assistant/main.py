import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sheet_assistant.config import settings
from sheet_assistant.db.bootstrap import init_db
from sheet_assistant.modules.assistant.router import router as assistant_router
from sheet_assistant.modules.telemetry.router import router as telemetry_router


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    logging.basicConfig(level=str(settings.log_level or "INFO").upper())
    logging.getLogger("httpx").setLevel(logging.WARNING)
    init_db()
    yield


app = FastAPI(title="Sheet Assistant", lifespan=_lifespan)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(assistant_router)
app.include_router(telemetry_router)
