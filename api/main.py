"""
FastAPI backend for the consultation engine.

Provides the consultation endpoint (fast and normal delivery), polling by
case fingerprint, and the milestone endpoint.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from api.routes import consultation, health
from consilium.config import ConsultationSettings
from consilium.llm.client import LLMClient
from consilium.orchestrator import ConsultationOrchestrator
from consilium.utils.logging import setup_logging

load_dotenv()

logger = logging.getLogger(__name__)


def build_orchestrator() -> ConsultationOrchestrator | None:
    """LLM-backed orchestrator, or None when no API key is configured."""
    if not os.getenv("OPENROUTER_API_KEY"):
        logger.warning("OPENROUTER_API_KEY not set; consultation endpoints are disabled")
        return None
    settings = ConsultationSettings.from_env()
    return ConsultationOrchestrator.with_llm_specialists(LLMClient(), settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    setup_logging()
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = build_orchestrator()
    logger.info("Consilium API starting")
    yield
    orchestrator = app.state.orchestrator
    if orchestrator is not None:
        logger.info("Waiting for background consultations to finish")
        await orchestrator.drain()
    logger.info("Consilium API shutting down")


app = FastAPI(
    title="Consilium API",
    description="Multi-specialist consultation with fast and full delivery",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(consultation.router, prefix="/api", tags=["Consultation"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
