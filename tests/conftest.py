"""Pytest fixtures for testing."""

import json
import time
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from personalens.api.main import app
from personalens.llm.client import LLMClient
from personalens.llm.errors import ProviderError
from personalens.llm.models import ChatMessage, ChatRequest, ChatResponse, Choice, RateLimitConfig, RetryConfig, Usage
from personalens.llm.providers.base import LLMProvider
from personalens.models import PersonaGenerationData

# High enough that the limiter never blocks in unit tests
UNLIMITED = RateLimitConfig(requests_per_minute=10_000, requests_per_hour=100_000, burst_limit=10_000)


class FakeProvider(LLMProvider):
    """Scripted provider.

    Each call consumes the next output; the last one repeats forever.
    Strings become responses, exceptions are raised.
    """

    def __init__(self, name: str = "gemini", outputs: list[Any] | None = None, configured: bool = True):
        super().__init__("test-key" if configured else None, 60.0, f"{name}-default")
        self._name = name
        self.outputs = list(outputs or [])
        self.requests: list[ChatRequest] = []

    @property
    def name(self) -> str:
        return self._name

    async def generate(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        if not self.outputs:
            raise ProviderError("no scripted output", provider=self._name)
        output = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if isinstance(output, BaseException):
            raise output
        return ChatResponse(
            id=f"{self._name}-{len(self.requests)}",
            model=request.model or self._default_model,
            created=int(time.time()),
            choices=[Choice(message=ChatMessage(role="assistant", content=output))],
            usage=Usage(prompt_tokens=10, completion_tokens=20),
            provider=self._name,
        )

    def _build_request(self, request: ChatRequest) -> dict[str, Any]:
        return {"messages": [m.model_dump() for m in request.messages]}

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    """Factory for scripted providers."""
    return FakeProvider


@pytest.fixture
def make_client() -> Callable[..., LLMClient]:
    """Factory for an LLMClient over fake providers with instant sleeps."""

    def factory(*providers: LLMProvider, max_retries: int = 3, default_provider: str = "gemini") -> LLMClient:
        return LLMClient(
            providers=list(providers),
            default_provider=default_provider,
            rate_limit=UNLIMITED,
            retry=RetryConfig(max_retries=max_retries, base_delay=0.01, max_delay=0.1),
            sleep=AsyncMock(),
            dispatch_interval=0.0,
        )

    return factory


@pytest.fixture
def sample_form_data() -> dict[str, Any]:
    """Sample persona form submission."""
    return {
        "business_info": {
            "business_name": "GreenLeaf Outfitters",
            "industry": "Retail",
            "business_type": "B2C",
            "business_description": "Sustainable outdoor apparel brand selling recycled-fabric jackets and gear online.",
            "company_size": "small",
            "website": "https://greenleaf.example.com",
        },
        "target_audience": {
            "target_description": (
                "Urban professionals who love weekend hiking, care about sustainability, "
                "follow outdoor influencers and prefer ethical brands over cheap fast fashion."
            ),
            "age_range": "26-35",
            "gender": "mixed",
            "location": "urban",
            "income_level": "upper-middle",
            "education": "bachelors",
            "cultural_context": "Pacific Northwest outdoor culture",
        },
        "product_details": {
            "product_name": "TrailShell Jacket",
            "product_type": "product",
            "product_description": "Waterproof shell jacket made from 100% recycled ocean plastics.",
            "price_range": "premium",
            "key_features": "Waterproof, breathable, packable, recycled materials",
            "unique_value_proposition": "Performance gear with a fully traceable supply chain",
            "competitors": "Patagonia, Arc'teryx",
        },
        "research_goals": {
            "primary_goal": "marketing-strategy",
            "specific_questions": "Which channels convert best?",
            "use_case": "Plan the autumn launch campaign",
            "timeline": "quarter",
            "budget_range": "medium",
        },
    }


@pytest.fixture
def form_data(sample_form_data: dict[str, Any]) -> PersonaGenerationData:
    return PersonaGenerationData.model_validate(sample_form_data)


@pytest.fixture
def persona_body() -> dict[str, Any]:
    """A complete persona body as a model would return it."""
    return {
        "name": "Maya Chen",
        "tagline": "The weekend trail-seeker with a sustainability compass",
        "demographics": {
            "age": 31,
            "gender": "female",
            "location": "Portland, OR",
            "occupation": "UX Designer",
            "income": "$95,000",
            "education": "Bachelor's in Design",
            "family_status": "In a relationship, no kids",
            "living_situation": "Rents a downtown apartment",
        },
        "psychographics": {
            "values": ["sustainability", "authenticity", "adventure"],
            "motivations": ["reduce footprint", "stay active"],
            "personality_traits": ["curious", "deliberate"],
            "lifestyle": "Active and design-conscious",
            "stress_triggers": ["greenwashing"],
            "relaxation_methods": ["trail running"],
        },
        "behavioral_patterns": {
            "daily_routine": "Morning yoga, remote work, evening climbing gym",
            "decision_making_style": "Research-heavy",
            "research_habits": "Reads reviews and supply-chain reports",
            "shopping_behavior": "Buys fewer, better items",
            "brand_loyalty": "High once trust is earned",
        },
        "digital_behavior": {
            "primary_devices": ["iPhone", "MacBook"],
            "social_media_platforms": ["Instagram", "Strava"],
            "content_preferences": ["trail guides"],
            "technology_comfort": "High",
            "online_activity_times": ["evenings"],
        },
        "goals_and_pain_points": {
            "primary_goals": ["hike 20 new trails this year"],
            "aspirations": ["live zero-waste"],
            "current_challenges": ["finding durable ethical gear"],
            "frustrations": ["vague sustainability claims"],
            "success_metrics": ["gear lasting 5+ years"],
        },
        "product_relationship": {
            "discovery_channels": ["Instagram", "friends"],
            "decision_factors": ["materials", "durability"],
            "potential_objections": ["price"],
            "ideal_experience": "Transparent product pages",
            "post_purchase_behavior": "Posts trail photos tagging the brand",
        },
        "marketing_strategy": {
            "best_channels": ["Instagram", "Email", "Podcasts"],
            "messaging_style": "Honest and data-backed",
            "content_types": ["behind-the-scenes"],
            "communication_frequency": "Weekly",
            "timing_preferences": ["Sunday evening"],
        },
        "quotes": {
            "pain_point": "I can't tell which brands are actually sustainable.",
            "aspiration": "I want my gear to tell a story I'm proud of.",
            "product_need": "Show me where every fiber came from.",
        },
    }


@pytest.fixture
def persona_json(persona_body: dict[str, Any]) -> str:
    """Strict JSON model output wrapping the persona."""
    return json.dumps({"persona": persona_body})


@pytest.fixture
def validation_json() -> str:
    return json.dumps({
        "validation": {
            "is_valid": True,
            "accuracy_score": 8,
            "completeness_score": 9,
            "actionability_score": 8,
            "overall_score": 8,
            "feedback": "Solid persona",
            "suggested_improvements": [],
        },
        "enhanced_persona": None,
    })


@pytest.fixture
def api_client() -> Generator[TestClient, None, None]:
    """TestClient with dependency overrides cleared afterwards."""
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
