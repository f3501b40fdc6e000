"""Health check and service index endpoints."""

import logging

from fastapi import APIRouter

from personalens.api.dependencies import PersonaServiceDep
from personalens.api.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])

SERVICE_NAME = "PersonaLens API"
SERVICE_VERSION = "1.0.0"


@router.get("/")
async def index() -> dict:
    """Service name, version and available endpoints."""
    return {
        "message": f"{SERVICE_NAME} is running",
        "version": SERVICE_VERSION,
        "endpoints": ["/generate", "/insights", "/health"],
    }


@router.get("/health")
async def health_check(service: PersonaServiceDep) -> dict:
    """Return provider and enrichment connectivity.

    Always 200; a connection check that raises is reported as false.
    """
    llm = service.llm

    try:
        providers = await llm.test_connections()
    except Exception:
        logger.exception("Provider connection test failed")
        providers = {"openai": False, "anthropic": False, "gemini": False, "overall": False}

    enrichment = False
    if service.enrichment is not None:
        try:
            enrichment = await service.enrichment.test_connection()
        except Exception:
            logger.exception("Enrichment connection test failed")

    overall = providers.pop("overall", False)
    rate_limits = {name: status.model_dump() for name, status in llm.get_rate_limit_status().items()}

    return success_response({
        "providers": providers,
        "enrichment": enrichment,
        "overall": overall,
        "rate_limits": rate_limits,
    })
