"""Services package for persona generation business logic."""

from .enrichment_service import EnrichmentService, calculate_diversity_score
from .persona_service import (
    GenerationError,
    PersonaGenerationService,
    calculate_confidence_score,
    parse_persona_response,
    parse_validation_response,
)
from .qloo_client import QlooAPIError, QlooClient

__all__ = [
    "EnrichmentService",
    "calculate_diversity_score",
    "GenerationError",
    "PersonaGenerationService",
    "calculate_confidence_score",
    "parse_persona_response",
    "parse_validation_response",
    "QlooAPIError",
    "QlooClient",
]
