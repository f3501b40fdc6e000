"""Unit tests for the persona generation pipeline.

Tests cover:
- Output parsing (strict, recovered, invalid)
- Confidence scoring
- End-to-end pipeline with scripted providers
- Best-effort enrichment and validation
- Deadline handling
"""

import asyncio
import json
import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from personalens.llm import FallbackResult
from personalens.llm.errors import AuthenticationError, InvalidOutputError, ProviderError
from personalens.models import (
    DemographicProfile,
    EnrichmentData,
    GenerationOptions,
    Persona,
)
from personalens.services.persona_service import (
    GenerationError,
    PersonaGenerationService,
    calculate_confidence_score,
    extract_json_object,
    generate_persona_id,
    parse_persona_response,
    parse_validation_response,
)

NO_EXTRAS = GenerationOptions(include_enrichment=False, validate_results=False)


def make_enrichment_service(result=None, error=None):
    """EnrichmentService stand-in with a scripted gather result."""
    service = MagicMock()
    service.is_configured = True
    service.gather_persona_signals = AsyncMock(return_value=result, side_effect=error)
    service.test_connection = AsyncMock(return_value=True)
    return service


def sample_enrichment() -> EnrichmentData:
    return EnrichmentData(
        keywords=["hiking", "sustainability"],
        tags=[{"tag_id": "urn:tag:keyword:hiking", "name": "Hiking"}],
        entities=[{"entity_id": "E1", "name": "Patagonia"}],
        demographics=DemographicProfile(
            age_distribution={"24_and_younger": 0.2, "25_to_29": 0.5},
            dominant_age_group="25_to_29",
            diversity_score=0.86,
        ),
    )


class TestExtractJson:
    """Tests for JSON extraction from model output."""

    def test_strict_json(self):
        value, recovered = extract_json_object('{"a": 1}')
        assert value == {"a": 1}
        assert recovered is False

    def test_fenced_json_is_recovered(self):
        """Test code fences and prose around the object are ignored."""
        text = 'Here is the persona:\n```json\n{"a": {"b": 2}}\n```\nHope this helps!'
        value, recovered = extract_json_object(text)
        assert value == {"a": {"b": 2}}
        assert recovered is True

    def test_no_object(self):
        with pytest.raises(InvalidOutputError, match="^Invalid output:"):
            extract_json_object("I cannot help with that.")

    def test_truncated_object(self):
        with pytest.raises(InvalidOutputError, match="^Invalid output:"):
            extract_json_object('Sure! {"persona": {"name": "Maya"')


class TestParsePersona:
    """Tests for parse_persona_response()."""

    def test_wrapped_persona(self, persona_json):
        parsed = parse_persona_response(persona_json)
        assert parsed.persona.name == "Maya Chen"
        assert parsed.recovered is False

    def test_bare_persona(self, persona_body):
        parsed = parse_persona_response(json.dumps(persona_body))
        assert parsed.persona.demographics.occupation == "UX Designer"

    def test_partial_persona_fills_defaults(self):
        """Test missing sections and nulls become empty defaults."""
        parsed = parse_persona_response(
            json.dumps({"persona": {"name": "Sam", "demographics": {"age": 40, "income": None}}})
        )
        assert str(parsed.persona.demographics.age) == "40"
        assert parsed.persona.demographics.income == ""
        assert parsed.persona.psychographics.values == []

    def test_missing_name_rejected(self):
        with pytest.raises(InvalidOutputError, match="no name"):
            parse_persona_response(json.dumps({"persona": {"tagline": "nameless"}}))

    def test_non_object_rejected(self):
        with pytest.raises(InvalidOutputError, match="^Invalid output:"):
            parse_persona_response("[1, 2, 3]")

    def test_wrong_types_rejected(self):
        """Test a structurally wrong section is an invalid output."""
        with pytest.raises(InvalidOutputError, match="expected structure"):
            parse_persona_response(json.dumps({"name": "Sam", "psychographics": {"values": "not a list"}}))


class TestParseValidation:
    """Tests for parse_validation_response()."""

    def test_score_and_no_enhancement(self, validation_json):
        outcome = parse_validation_response(validation_json)
        assert outcome.score == 8.0
        assert outcome.enhanced_persona is None

    def test_score_clamped(self):
        outcome = parse_validation_response(json.dumps({"validation": {"overall_score": 14}}))
        assert outcome.score == 10.0

    def test_enhanced_persona_adopted(self, persona_body):
        enhanced = {**persona_body, "name": "Maya Chen-Rivera"}
        outcome = parse_validation_response(
            json.dumps({"validation": {"overall_score": 9}, "enhanced_persona": enhanced})
        )
        assert outcome.enhanced_persona.name == "Maya Chen-Rivera"

    def test_malformed_enhanced_persona_dropped(self):
        outcome = parse_validation_response(
            json.dumps({"validation": {"overall_score": 6}, "enhanced_persona": {"name": "X", "quotes": []}})
        )
        assert outcome.score == 6.0
        assert outcome.enhanced_persona is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"overall_score": 8},
            {"validation": {"overall_score": "high"}},
            {"validation": {}},
        ],
    )
    def test_invalid_verdicts(self, payload):
        with pytest.raises(InvalidOutputError):
            parse_validation_response(json.dumps(payload))

    def test_huge_score_is_invalid(self):
        """Test an integer too large for a float is rejected, not raised raw."""
        text = '{"validation": {"overall_score": 1' + "0" * 400 + "}}"
        with pytest.raises(InvalidOutputError):
            parse_validation_response(text)


class TestConfidenceScore:
    """Tests for calculate_confidence_score()."""

    def test_complete_persona(self, persona_body):
        persona = Persona.model_validate(persona_body)
        assert calculate_confidence_score(persona, enrichment_included=False) == 95

    def test_enrichment_bonus_is_clamped(self, persona_body):
        persona = Persona.model_validate(persona_body)
        assert calculate_confidence_score(persona, enrichment_included=True) == 100

    def test_empty_persona_gets_base(self):
        assert calculate_confidence_score(Persona(name="Empty"), enrichment_included=False) == 70

    def test_validation_blend_rounds_half_up(self, persona_body):
        persona = Persona.model_validate(persona_body)
        # (95 + 80) / 2 = 87.5
        assert calculate_confidence_score(persona, False, validation_score=8.0) == 88

    def test_recovered_penalty(self, persona_body):
        persona = Persona.model_validate(persona_body)
        assert calculate_confidence_score(persona, False, recovered=True) == 90

    @pytest.mark.parametrize("validation_score", [0.0, 3.3, 10.0])
    def test_always_in_range(self, validation_score):
        score = calculate_confidence_score(Persona(name="X"), True, validation_score=validation_score, recovered=True)
        assert 0 <= score <= 100


class TestPersonaId:
    def test_format(self):
        assert re.fullmatch(r"persona_\d{13}_[a-z0-9]{9}", generate_persona_id())

    def test_unique(self):
        assert len({generate_persona_id() for _ in range(50)}) == 50


class TestGenerationError:
    """Tests for mapping fallback results to error kinds."""

    def test_no_providers(self):
        result = FallbackResult(success=False, error="No LLM providers are configured")
        error = GenerationError.from_fallback(result)
        assert error.kind == "NoProviders"

    def test_auth_kind(self):
        result = FallbackResult(success=False, last_error=AuthenticationError("bad key"), error="All providers failed. Last error: bad key")
        error = GenerationError.from_fallback(result)
        assert error.kind == "AuthError"
        assert error.message == "All providers failed. Last error: bad key"


class TestGeneratePersona:
    """End-to-end pipeline tests over scripted providers."""

    @pytest.mark.asyncio
    async def test_success_without_extras(self, make_client, make_provider, form_data, persona_json):
        gemini = make_provider("gemini", [persona_json])
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(form_data, NO_EXTRAS)

        assert result.success is True
        assert result.error is None
        assert result.persona.name == "Maya Chen"
        assert result.persona.confidence_score == 95
        assert result.persona.id.startswith("persona_")
        assert result.metadata.retry_attempts == 0
        assert result.metadata.provider == "gemini"
        assert result.metadata.enrichment_included is False
        assert result.metadata.validation_score is None
        assert gemini.calls == 1

    @pytest.mark.asyncio
    async def test_base_request_shape(self, make_client, make_provider, form_data, persona_json):
        """Test the base request carries the form and the configured sampling."""
        gemini = make_provider("gemini", [persona_json])
        service = PersonaGenerationService(make_client(gemini))

        await service.generate_persona(
            form_data,
            GenerationOptions(include_enrichment=False, validate_results=False, temperature=0.4),
        )

        request = gemini.requests[0]
        assert request.temperature == 0.4
        assert request.max_tokens == 3000
        assert request.messages[0].role == "system"
        assert "GreenLeaf Outfitters" in request.messages[1].content

    @pytest.mark.asyncio
    async def test_invalid_output_fails_after_retries(self, make_client, make_provider, form_data):
        gemini = make_provider("gemini", ["Sorry, I can't produce JSON today."])
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(form_data, NO_EXTRAS)

        assert result.success is False
        assert result.persona is None
        assert result.error.startswith("Invalid output:")
        assert result.error_kind == "InvalidOutput"
        assert result.metadata.retry_attempts == 3
        assert gemini.calls == 4

    @pytest.mark.asyncio
    async def test_invalid_then_valid_counts_retry(self, make_client, make_provider, form_data, persona_json):
        gemini = make_provider("gemini", ["not json", persona_json])
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(form_data, NO_EXTRAS)

        assert result.success is True
        assert result.metadata.retry_attempts == 1

    @pytest.mark.asyncio
    async def test_recovered_output_penalized(self, make_client, make_provider, form_data, persona_json):
        gemini = make_provider("gemini", [f"```json\n{persona_json}\n```"])
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(form_data, NO_EXTRAS)

        assert result.success is True
        assert result.persona.confidence_score == 90

    @pytest.mark.asyncio
    async def test_auth_failure_everywhere(self, make_client, make_provider, form_data):
        gemini = make_provider("gemini", [AuthenticationError("Invalid Gemini API key", provider="gemini")])
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(form_data, NO_EXTRAS)

        assert result.success is False
        assert result.error == "All providers failed. Last error: Invalid Gemini API key"
        assert result.error_kind == "AuthError"
        assert gemini.calls == 1

    @pytest.mark.asyncio
    async def test_full_pipeline(self, make_client, make_provider, form_data, persona_json, validation_json):
        """Test base, enhancement and validation each call the LLM once."""
        gemini = make_provider("gemini", [persona_json, persona_json, validation_json])
        enrichment = make_enrichment_service(result=sample_enrichment())
        service = PersonaGenerationService(make_client(gemini), enrichment)

        result = await service.generate_persona(form_data)

        assert result.success is True
        assert result.metadata.enrichment_included is True
        assert result.metadata.validation_score == 8.0
        # (105 + 80) / 2 = 92.5
        assert result.persona.confidence_score == 93
        assert result.persona.enrichment_data.entities[0]["name"] == "Patagonia"
        assert gemini.calls == 3
        enhancement_prompt = gemini.requests[1].messages[1].content
        assert "Patagonia" in enhancement_prompt
        assert "Pacific Northwest outdoor culture" in enhancement_prompt
        assert gemini.requests[1].temperature == 0.6
        assert gemini.requests[2].temperature == 0.3

    @pytest.mark.asyncio
    async def test_enrichment_failure_is_best_effort(self, make_client, make_provider, form_data, persona_json):
        gemini = make_provider("gemini", [persona_json])
        enrichment = make_enrichment_service(error=RuntimeError("qloo down"))
        service = PersonaGenerationService(make_client(gemini), enrichment)

        result = await service.generate_persona(form_data, GenerationOptions(validate_results=False))

        assert result.success is True
        assert result.metadata.enrichment_included is False
        assert result.persona.enrichment_data is None
        assert gemini.calls == 1

    @pytest.mark.asyncio
    async def test_empty_enrichment_skips_enhancement(self, make_client, make_provider, form_data, persona_json):
        gemini = make_provider("gemini", [persona_json])
        enrichment = make_enrichment_service(result=None)
        service = PersonaGenerationService(make_client(gemini), enrichment)

        result = await service.generate_persona(form_data, GenerationOptions(validate_results=False))

        assert result.metadata.enrichment_included is False
        assert gemini.calls == 1

    @pytest.mark.asyncio
    async def test_enrichment_disabled_by_option(self, make_client, make_provider, form_data, persona_json):
        gemini = make_provider("gemini", [persona_json])
        enrichment = make_enrichment_service(result=sample_enrichment())
        service = PersonaGenerationService(make_client(gemini), enrichment)

        await service.generate_persona(form_data, NO_EXTRAS)

        enrichment.gather_persona_signals.assert_not_called()

    @pytest.mark.asyncio
    async def test_enhancement_failure_keeps_base(self, make_client, make_provider, form_data, persona_json):
        gemini = make_provider("gemini", [persona_json, "garbage", "garbage", "garbage"])
        enrichment = make_enrichment_service(result=sample_enrichment())
        service = PersonaGenerationService(make_client(gemini), enrichment)

        result = await service.generate_persona(form_data, GenerationOptions(validate_results=False))

        assert result.success is True
        assert result.persona.name == "Maya Chen"
        assert result.metadata.enrichment_included is True
        assert result.metadata.retry_attempts == 2

    @pytest.mark.asyncio
    async def test_validation_failure_uses_neutral_score(self, make_client, make_provider, form_data, persona_json):
        gemini = make_provider("gemini", [persona_json, "no verdict here"])
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(form_data, GenerationOptions(include_enrichment=False))

        assert result.success is True
        assert result.metadata.validation_score == 7.0
        # (95 + 70) / 2 = 82.5
        assert result.persona.confidence_score == 83

    @pytest.mark.asyncio
    async def test_validation_enhanced_persona_adopted(
        self, make_client, make_provider, form_data, persona_json, persona_body
    ):
        verdict = json.dumps({
            "validation": {"overall_score": 9},
            "enhanced_persona": {**persona_body, "tagline": "Sharper tagline"},
        })
        gemini = make_provider("gemini", [persona_json, verdict])
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(form_data, GenerationOptions(include_enrichment=False))

        assert result.persona.tagline == "Sharper tagline"
        assert result.metadata.validation_score == 9.0

    @pytest.mark.asyncio
    async def test_huge_validation_score_uses_neutral_score(self, make_client, make_provider, form_data, persona_json):
        verdict = '{"validation": {"overall_score": 1' + "0" * 400 + "}}"
        gemini = make_provider("gemini", [persona_json, verdict])
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(form_data, GenerationOptions(include_enrichment=False))

        assert result.success is True
        assert result.metadata.validation_score == 7.0

    @pytest.mark.asyncio
    async def test_unexpected_validation_exception_is_best_effort(
        self, make_client, make_provider, form_data, persona_json
    ):
        """Test a non-LLM exception during validation does not fail the request."""
        gemini = make_provider("gemini", [persona_json, RuntimeError("adapter bug")])
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(form_data, GenerationOptions(include_enrichment=False))

        assert result.success is True
        assert result.persona.name == "Maya Chen"
        assert result.metadata.validation_score == 7.0

    @pytest.mark.asyncio
    async def test_deadline_keeps_retries_spent_mid_stage(self, make_client, make_provider, form_data):
        """Test retries made before the deadline fired are still reported."""
        gemini = make_provider("gemini")

        async def flaky_then_stall(request):
            gemini.requests.append(request)
            if gemini.calls <= 2:
                raise ProviderError("flaky", provider="gemini")
            await asyncio.sleep(0.2)
            raise ProviderError("too late", provider="gemini")

        gemini.generate = flaky_then_stall
        service = PersonaGenerationService(make_client(gemini))

        result = await service.generate_persona(
            form_data,
            GenerationOptions(include_enrichment=False, validate_results=False, deadline_seconds=0.05),
        )
        # let the limiter finish the abandoned call
        await asyncio.sleep(0.3)

        assert result.success is False
        assert result.error_kind == "Timeout"
        assert result.metadata.retry_attempts == 2

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, make_client, make_provider, form_data):
        service = PersonaGenerationService(make_client(make_provider("gemini", ["unused"])))

        async def slow_run(*args, **kwargs):
            await asyncio.sleep(1)

        service._run = slow_run
        result = await service.generate_persona(
            form_data,
            GenerationOptions(include_enrichment=False, validate_results=False, deadline_seconds=0.01),
        )

        assert result.success is False
        assert result.error == "Persona generation timed out"
        assert result.error_kind == "Timeout"

    @pytest.mark.asyncio
    async def test_test_service(self, make_client, make_provider):
        gemini = make_provider("gemini", ["Connection successful"])
        enrichment = make_enrichment_service()
        service = PersonaGenerationService(make_client(gemini), enrichment)

        assert await service.test_service() == {"llm": True, "qloo": True}

    @pytest.mark.asyncio
    async def test_test_service_without_enrichment(self, make_client, make_provider):
        gemini = make_provider("gemini", [AuthenticationError("bad key")])
        service = PersonaGenerationService(make_client(gemini))

        assert await service.test_service() == {"llm": False, "qloo": False}
