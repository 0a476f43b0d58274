"""FastAPI server for the Concierge chat engine.

Run with:
    uvicorn concierge.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from concierge.api.routes import router
from concierge.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from concierge.orchestrator import create_session_orchestrator
from concierge.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the orchestrator (database, stores, clients) once per process."""
    logger.info("Initialising session orchestrator…")
    application.state.orchestrator = create_session_orchestrator()
    logger.info("Orchestrator ready.")
    yield
    application.state.orchestrator.close()
    metrics.flush()


app = FastAPI(
    title="Concierge Chat Engine",
    description=(
        "Chat sessions between visitors and AI assistants, global or "
        "per business, with token and cost accounting."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (``X-Request-ID``) to the response and the logs."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Concierge Chat Engine",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting Concierge API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "concierge.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
