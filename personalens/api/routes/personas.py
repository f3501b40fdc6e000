"""Persona generation endpoints.

Provides endpoints for:
- POST /generate: Generate a persona from form data
- GET /generate: Persona service connectivity check
- POST /insights: Free-text audience insights
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from personalens.api.dependencies import LLMClientDep, PersonaServiceDep
from personalens.api.exceptions import ValidationError
from personalens.api.response import error_response, success_response
from personalens.models import PersonaGenerationData

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Personas"])

# Client-facing text per failure kind; provider detail stays in the logs
GENERATION_ERROR_MESSAGES = {
    "InvalidOutput": "The AI response could not be turned into a persona. Please try again.",
    "AuthError": "AI provider credentials were rejected or the account quota is exhausted.",
    "TransportError": "AI providers are temporarily unavailable. Please try again.",
    "NoProviders": "No AI providers are configured.",
    "Timeout": "Persona generation timed out.",
}
DEFAULT_GENERATION_ERROR = "Failed to generate persona"


class InsightsRequest(BaseModel):
    """Request body for audience insights."""

    target_description: str = Field(min_length=1)
    cultural_context: str | None = None
    business_context: str | None = None
    preferred_provider: str | None = None


@router.post("/generate", status_code=201)
async def generate_persona(form_data: PersonaGenerationData, service: PersonaServiceDep) -> JSONResponse:
    """Generate a persona from the four form sections.

    Returns 201 with the persona, 400 when generation failed and 500 on
    an unexpected error.
    """
    try:
        result = await service.generate_persona(form_data)
    except Exception:
        logger.exception("Persona generation API error")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )

    metadata = result.metadata.model_dump(mode="json")
    if result.success:
        return JSONResponse(
            status_code=201,
            content={
                "success": True,
                "persona": result.persona.model_dump(mode="json"),
                "metadata": metadata,
                "message": "Persona generated successfully using AI analysis",
            },
        )

    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": GENERATION_ERROR_MESSAGES.get(result.error_kind, DEFAULT_GENERATION_ERROR),
            "metadata": metadata,
        },
    )


@router.get("/generate")
async def persona_service_status(service: PersonaServiceDep) -> JSONResponse:
    """Report LLM and enrichment connectivity for the persona service."""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        status = await service.test_service()
    except Exception:
        logger.exception("Persona service health check failed")
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Service health check failed", "timestamp": timestamp},
        )
    return JSONResponse(content={"success": True, "service_status": status, "timestamp": timestamp})


@router.post("/insights")
async def persona_insights(request: InsightsRequest, llm: LLMClientDep) -> JSONResponse:
    """Free-text insights about a target audience, with provider fallback."""
    if request.preferred_provider and request.preferred_provider not in llm.FALLBACK_ORDER:
        raise ValidationError(
            f"Unknown provider '{request.preferred_provider}'. Available: {', '.join(llm.FALLBACK_ORDER)}"
        )

    result = await llm.generate_persona_insights(
        request.target_description,
        cultural_context=request.cultural_context,
        business_context=request.business_context,
        preferred_provider=request.preferred_provider,
    )
    if not result.success:
        logger.warning("Insights generation failed: %s", result.error)
        return JSONResponse(
            status_code=503,
            content=error_response("AI_SERVICE_ERROR", "AI service is temporarily unavailable. Please try again."),
        )

    return JSONResponse(content=success_response({"insights": result.value, "provider": result.provider}))
