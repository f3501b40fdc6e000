"""FastAPI application setup."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from personalens.api.dependencies import build_llm_client, build_persona_service
from personalens.api.exceptions import ValidationError
from personalens.api.response import error_response
from personalens.api.routes import health, personas
from personalens.llm import LLMError

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:5174",
]


def configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS")
    if not raw:
        return DEFAULT_CORS_ORIGINS
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    llm = build_llm_client()
    app.state.llm_client = llm
    app.state.persona_service = build_persona_service(llm)
    logger.info(
        "PersonaLens started",
        extra={"providers": llm.available_providers(), "default_provider": llm.default_provider},
    )
    yield
    # Shutdown
    app.state.persona_service = None
    app.state.llm_client = None


app = FastAPI(
    title="PersonaLens API",
    description="LLM-powered customer persona generation with taste-graph enrichment",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware for frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=error_response("VALIDATION_ERROR", exc.message),
    )


@app.exception_handler(LLMError)
async def llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    """Handle LLM/AI service errors."""
    logger.warning("LLM error reached the API layer: %s", exc.code, extra={"provider": exc.provider})
    return JSONResponse(
        status_code=503,
        content=error_response("AI_SERVICE_ERROR", "AI service is temporarily unavailable. Please try again."),
    )


# Register routes
app.include_router(health.router)
app.include_router(personas.router)
