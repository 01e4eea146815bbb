from __future__ import annotations

from uuid import uuid4

import uvicorn
from fastapi import FastAPI

from aios.core.logging import configure_logging
from aios.core.logging.context import log_context

from .deps import get_orchestrator, get_settings
from .routes_chat import router as chat_router

app = FastAPI(title="AIos API")
app.include_router(chat_router, prefix="/chat", tags=["chat"])


@app.middleware("http")
async def request_context_middleware(request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid4())
    with log_context(correlation_id=correlation_id):
        response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.on_event("startup")
def startup() -> None:
    settings = get_settings()
    configure_logging(settings.store.state_dir)


@app.on_event("shutdown")
async def shutdown() -> None:
    if get_orchestrator.cache_info().currsize:
        await get_orchestrator().aclose()


@app.get("/healthz")
def healthz() -> dict[str, bool]:
    return {"ok": True}


def run() -> None:
    uvicorn.run("aios.apps.api.main:app", reload=True, host="127.0.0.1", port=8000)
