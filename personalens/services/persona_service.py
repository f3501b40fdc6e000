"""Persona generation pipeline.

Runs base generation, optional taste-graph enrichment, optional
validation and confidence scoring for one form submission:

    BaseGeneration -> [EnrichmentFetch -> EnrichmentMerge] -> [Validation] -> Finalize

Only a BaseGeneration failure fails the request. Enrichment and
validation are best effort and degrade to no-ops.
"""

import asyncio
import json
import logging
import math
import random
import re
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from personalens.llm import (
    AuthenticationError,
    ChatRequest,
    FallbackResult,
    InvalidOutputError,
    LLMClient,
)
from personalens.models import (
    EnrichmentData,
    GeneratedPersona,
    GenerationMetadata,
    GenerationOptions,
    Persona,
    PersonaGenerationData,
    PersonaGenerationResult,
)
from personalens.services import prompts
from personalens.services.enrichment_service import EnrichmentService

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 70
_ID_ALPHABET = string.ascii_lowercase + string.digits
_JSON_START = re.compile(r"\{")


class GenerationError(Exception):
    """Base generation failed; the request cannot produce a persona.

    ``kind`` is one of InvalidOutput, AuthError, TransportError, NoProviders.
    """

    def __init__(self, kind: str, message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)

    @classmethod
    def from_fallback(cls, result: FallbackResult) -> "GenerationError":
        error = result.last_error
        if error is None:
            return cls("NoProviders", result.error or "No LLM providers are configured")
        if isinstance(error, InvalidOutputError):
            return cls("InvalidOutput", error.message)
        if isinstance(error, AuthenticationError):
            return cls("AuthError", result.error)
        return cls("TransportError", result.error)


# ==============================================================================
# Output parsing
# ==============================================================================


@dataclass
class ParsedPersona:
    persona: Persona
    recovered: bool  # came from the fallback parse, not strict JSON


@dataclass
class ValidationOutcome:
    score: float
    enhanced_persona: Persona | None = None


def extract_json_object(text: str) -> tuple[Any, bool]:
    """Decode model output as JSON.

    Strict parsing first; on failure, one recovery attempt decodes the
    first JSON value starting at the first ``{`` (prose or code fences
    around it are ignored).

    Returns:
        (value, recovered)

    Raises:
        InvalidOutputError: Neither attempt produced JSON.
    """
    try:
        return json.loads(text), False
    except json.JSONDecodeError:
        pass

    match = _JSON_START.search(text)
    if match is None:
        raise InvalidOutputError("Invalid output: response contains no JSON object")

    try:
        value, _ = json.JSONDecoder().raw_decode(text, match.start())
    except json.JSONDecodeError as e:
        raise InvalidOutputError(f"Invalid output: malformed JSON ({e.msg})") from e
    return value, True


def parse_persona_response(text: str) -> ParsedPersona:
    """Parse a ``{"persona": {...}}`` or bare persona object.

    Raises:
        InvalidOutputError: Not JSON, not an object, or no persona name.
    """
    data, recovered = extract_json_object(text)
    if isinstance(data, dict) and isinstance(data.get("persona"), dict):
        data = data["persona"]
    if not isinstance(data, dict):
        raise InvalidOutputError("Invalid output: expected a JSON object")

    try:
        persona = Persona.model_validate(data)
    except ValidationError as e:
        raise InvalidOutputError(
            f"Invalid output: persona does not match the expected structure ({e.error_count()} errors)"
        ) from e

    if not persona.name:
        raise InvalidOutputError("Invalid output: persona has no name")

    return ParsedPersona(persona=persona, recovered=recovered)


def parse_validation_response(text: str) -> ValidationOutcome:
    """Parse a validation verdict; the score is clamped to 0..10.

    An unusable ``enhanced_persona`` is dropped rather than failing the parse.
    """
    data, _ = extract_json_object(text)
    validation = data.get("validation") if isinstance(data, dict) else None
    if not isinstance(validation, dict):
        raise InvalidOutputError("Invalid output: missing validation object")

    try:
        score = float(validation.get("overall_score"))
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidOutputError("Invalid output: overall_score is not a number") from e
    if math.isnan(score):
        raise InvalidOutputError("Invalid output: overall_score is not a number")
    score = min(10.0, max(0.0, score))

    enhanced = None
    raw_enhanced = data.get("enhanced_persona")
    if isinstance(raw_enhanced, dict):
        if isinstance(raw_enhanced.get("persona"), dict):
            raw_enhanced = raw_enhanced["persona"]
        try:
            candidate = Persona.model_validate(raw_enhanced)
        except ValidationError:
            logger.info("Ignoring malformed enhanced_persona from validation")
        else:
            if candidate.name:
                enhanced = candidate

    return ValidationOutcome(score=score, enhanced_persona=enhanced)


# ==============================================================================
# Scoring
# ==============================================================================


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_confidence_score(
    persona: Persona,
    enrichment_included: bool,
    validation_score: float | None = None,
    recovered: bool = False,
) -> int:
    """Heuristic completeness score blended with the validation score, in [0, 100]."""
    score = BASE_CONFIDENCE

    populated = sum(1 for value in persona.demographics.model_dump().values() if value not in ("", None))
    if populated >= 6:
        score += 10
    if len(persona.psychographics.values) >= 3:
        score += 5
    if persona.behavioral_patterns.daily_routine:
        score += 5
    if len(persona.marketing_strategy.best_channels) >= 2:
        score += 5
    if enrichment_included:
        score += 10
    if recovered:
        score -= 5

    if validation_score is not None:
        score = _round_half_up((score + validation_score * 10) / 2)

    return max(0, min(100, score))


def generate_persona_id() -> str:
    """``persona_<epoch ms>_<9 base36 chars>``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"persona_{int(time.time() * 1000)}_{suffix}"


# ==============================================================================
# Pipeline
# ==============================================================================


@dataclass
class _RunState:
    """Mutable bookkeeping for one pipeline run (survives a deadline cancel)."""

    started: float
    retries: int = 0
    provider: str | None = None
    enrichment_included: bool = False
    validation_score: float | None = None

    def count_retry(self, attempt: int, error: Exception, delay: float) -> None:
        self.retries += 1

    def metadata(self) -> GenerationMetadata:
        return GenerationMetadata(
            generation_time_ms=int((time.perf_counter() - self.started) * 1000),
            enrichment_included=self.enrichment_included,
            validation_score=self.validation_score,
            retry_attempts=self.retries,
            provider=self.provider,
        )


class PersonaGenerationService:
    """Orchestrates persona generation across LLM and enrichment calls."""

    BASE_MAX_TOKENS = 3000
    ENHANCEMENT_TEMPERATURE = 0.6
    ENHANCEMENT_RETRIES = 2
    VALIDATION_TEMPERATURE = 0.3
    VALIDATION_RETRIES = 2
    DEFAULT_VALIDATION_SCORE = 7.0

    def __init__(self, llm: LLMClient, enrichment: EnrichmentService | None = None):
        self._llm = llm
        self._enrichment = enrichment

    @property
    def llm(self) -> LLMClient:
        return self._llm

    @property
    def enrichment(self) -> EnrichmentService | None:
        return self._enrichment

    async def generate_persona(
        self,
        form_data: PersonaGenerationData,
        options: GenerationOptions | None = None,
    ) -> PersonaGenerationResult:
        """Run the full pipeline for one form submission.

        Args:
            form_data: The four form sections.
            options: Pipeline switches. Defaults to GenerationOptions().

        Returns:
            PersonaGenerationResult. Metadata is filled on success and failure.
        """
        options = options or GenerationOptions()
        state = _RunState(started=time.perf_counter())

        try:
            if options.deadline_seconds is not None:
                persona = await asyncio.wait_for(
                    self._run(form_data, options, state),
                    timeout=options.deadline_seconds,
                )
            else:
                persona = await self._run(form_data, options, state)
        except asyncio.TimeoutError:
            logger.warning(
                "Persona generation exceeded deadline of %.1fs",
                options.deadline_seconds,
                extra={"stage": "deadline", "attempts": state.retries},
            )
            return PersonaGenerationResult(
                success=False,
                error="Persona generation timed out",
                error_kind="Timeout",
                metadata=state.metadata(),
            )
        except GenerationError as e:
            logger.error(
                "Persona generation failed: %s",
                e.message,
                extra={"stage": "base_generation", "kind": e.kind, "attempts": state.retries},
            )
            return PersonaGenerationResult(
                success=False,
                error=e.message,
                error_kind=e.kind,
                metadata=state.metadata(),
            )

        metadata = state.metadata()
        logger.info(
            "Persona generated",
            extra={
                "persona_id": persona.id,
                "provider": metadata.provider,
                "generation_time_ms": metadata.generation_time_ms,
                "retry_attempts": metadata.retry_attempts,
                "confidence_score": persona.confidence_score,
            },
        )
        return PersonaGenerationResult(success=True, persona=persona, metadata=metadata)

    async def _run(
        self,
        form_data: PersonaGenerationData,
        options: GenerationOptions,
        state: _RunState,
    ) -> GeneratedPersona:
        parsed = await self._generate_base(form_data, options, state)
        persona = parsed.persona

        enrichment_data = None
        if options.include_enrichment and self._enrichment is not None and self._enrichment.is_configured:
            enrichment_data = await self._fetch_enrichment(form_data)
            if enrichment_data is not None:
                state.enrichment_included = True
                persona = await self._enhance(persona, enrichment_data, form_data, options, state)

        if options.validate_results:
            persona = await self._validate(persona, form_data, options, state)

        return GeneratedPersona(
            **persona.model_dump(),
            id=generate_persona_id(),
            confidence_score=calculate_confidence_score(
                persona,
                enrichment_included=state.enrichment_included,
                validation_score=state.validation_score,
                recovered=parsed.recovered,
            ),
            enrichment_data=enrichment_data,
            generation_timestamp=datetime.now(timezone.utc),
        )

    async def _generate_base(
        self,
        form_data: PersonaGenerationData,
        options: GenerationOptions,
        state: _RunState,
    ) -> ParsedPersona:
        request = ChatRequest(
            messages=prompts.build_persona_generation_messages(form_data),
            model=options.model,
            temperature=options.temperature,
            max_tokens=self.BASE_MAX_TOKENS,
        )
        result = await self._llm.generate_with_fallback(
            request,
            options.preferred_provider,
            parse=parse_persona_response,
            max_retries=options.retry_attempts,
            on_retry=state.count_retry,
        )
        if not result.success:
            raise GenerationError.from_fallback(result)

        state.provider = result.provider
        if result.value.recovered:
            logger.info(
                "Persona recovered from non-strict JSON",
                extra={"stage": "base_generation", "provider": result.provider},
            )
        return result.value

    async def _fetch_enrichment(self, form_data: PersonaGenerationData) -> EnrichmentData | None:
        try:
            return await self._enrichment.gather_persona_signals(form_data)
        except Exception:
            logger.warning(
                "Enrichment failed, continuing without it",
                exc_info=True,
                extra={"stage": "enrichment"},
            )
            return None

    async def _enhance(
        self,
        persona: Persona,
        enrichment_data: EnrichmentData,
        form_data: PersonaGenerationData,
        options: GenerationOptions,
        state: _RunState,
    ) -> Persona:
        request = ChatRequest(
            messages=prompts.build_persona_enhancement_messages(
                persona.model_dump(mode="json"),
                enrichment_data.model_dump(mode="json"),
                form_data.target_audience.cultural_context,
            ),
            model=options.model,
            temperature=self.ENHANCEMENT_TEMPERATURE,
            max_tokens=self.BASE_MAX_TOKENS,
        )
        result = await self._llm.generate_with_fallback(
            request,
            options.preferred_provider,
            parse=parse_persona_response,
            max_retries=self.ENHANCEMENT_RETRIES,
            on_retry=state.count_retry,
        )
        if not result.success:
            logger.warning(
                "Enhancement failed, keeping base persona: %s",
                result.error,
                extra={"stage": "enhancement", "attempts": result.attempts},
            )
            return persona
        return result.value.persona

    async def _validate(
        self,
        persona: Persona,
        form_data: PersonaGenerationData,
        options: GenerationOptions,
        state: _RunState,
    ) -> Persona:
        request = ChatRequest(
            messages=prompts.build_persona_validation_messages(
                persona.model_dump(mode="json"),
                form_data.model_dump(mode="json"),
            ),
            model=options.model,
            temperature=self.VALIDATION_TEMPERATURE,
            max_tokens=self.BASE_MAX_TOKENS,
        )
        result = await self._llm.generate_with_fallback(
            request,
            options.preferred_provider,
            parse=parse_validation_response,
            max_retries=self.VALIDATION_RETRIES,
            on_retry=state.count_retry,
        )
        if not result.success:
            logger.warning(
                "Validation failed, using neutral score: %s",
                result.error,
                extra={"stage": "validation", "attempts": result.attempts},
            )
            state.validation_score = self.DEFAULT_VALIDATION_SCORE
            return persona

        outcome: ValidationOutcome = result.value
        state.validation_score = outcome.score
        return outcome.enhanced_persona or persona

    async def test_service(self) -> dict[str, bool]:
        """Report whether the LLM layer and the enrichment API are reachable."""
        llm_status = await self._llm.test_connections()
        qloo_ok = False
        if self._enrichment is not None:
            qloo_ok = await self._enrichment.test_connection()
        return {"llm": llm_status["overall"], "qloo": qloo_ok}
