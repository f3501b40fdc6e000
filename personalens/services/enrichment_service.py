"""Taste-graph enrichment for persona generation.

Turns the form's free-text audience description into Qloo signals:
interest tags, brand affinities and a demographic profile. Individual
lookups are best effort; the service only fails when every lookup it
attempted failed.
"""

import logging
import math
import re
from typing import Any

from personalens.models import (
    AgeRange,
    DemographicProfile,
    EnrichmentData,
    Gender,
    PersonaGenerationData,
    TargetAudience,
)
from personalens.services.qloo_client import QlooAPIError, QlooClient

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "about", "above", "after", "again", "also", "among", "because", "been", "before",
    "being", "between", "both", "could", "does", "doing", "during", "each", "from",
    "have", "having", "here", "into", "just", "like", "more", "most", "much", "must",
    "only", "other", "over", "people", "same", "should", "some", "such", "than", "that",
    "their", "them", "then", "there", "these", "they", "this", "those", "through",
    "under", "until", "very", "want", "were", "what", "when", "where", "which", "while",
    "who", "whom", "will", "with", "would", "your", "yours",
})

# Qloo accepts three coarse age buckets
AGE_SIGNALS = {
    AgeRange.AGE_18_25: "35_and_younger",
    AgeRange.AGE_26_35: "35_and_younger",
    AgeRange.AGE_36_45: "36_to_55",
    AgeRange.AGE_46_55: "36_to_55",
    AgeRange.AGE_56_65: "55_and_older",
    AgeRange.AGE_65_PLUS: "55_and_older",
}

GENDER_SIGNALS = {
    Gender.MALE: "male",
    Gender.FEMALE: "female",
}

BRAND_FILTER = "urn:entity:brand"


def calculate_diversity_score(values: list[float]) -> float:
    """Normalized Shannon entropy of a distribution, in [0, 1].

    1.0 means perfectly even, 0.0 means everything in one bucket (or no data).
    """
    if len(values) < 2:
        return 0.0

    total = sum(abs(v) for v in values)
    if total == 0:
        return 0.0

    entropy = 0.0
    for value in values:
        p = abs(value) / total
        if p > 0:
            entropy -= p * math.log2(p)

    return min(1.0, max(0.0, entropy / math.log2(len(values))))


class EnrichmentService:
    """Gathers taste-graph signals for a persona request."""

    MAX_KEYWORDS = 10
    TAG_QUERIES = 3
    MAX_TAGS = 10
    BRAND_LIMIT = 10

    calculate_diversity_score = staticmethod(calculate_diversity_score)

    def __init__(self, client: QlooClient):
        self._client = client

    @property
    def client(self) -> QlooClient:
        return self._client

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    @staticmethod
    def extract_interest_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
        """Distinct lower-cased words longer than 3 characters, stop words removed.

        Order of first occurrence is preserved.
        """
        keywords: list[str] = []
        seen: set[str] = set()
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            if len(word) <= 3 or word in STOP_WORDS or word in seen:
                continue
            seen.add(word)
            keywords.append(word)
            if len(keywords) >= limit:
                break
        return keywords

    @staticmethod
    def build_demographic_signals(target_audience: TargetAudience) -> dict[str, str]:
        """Map the form's age range and gender to Qloo demographic signals.

        Mixed or unsupported values produce no signal.
        """
        signals = {}
        age = AGE_SIGNALS.get(target_audience.age_range)
        if age:
            signals["age"] = age
        gender = GENDER_SIGNALS.get(target_audience.gender)
        if gender:
            signals["gender"] = gender
        return signals

    async def gather_persona_signals(self, form_data: PersonaGenerationData) -> EnrichmentData | None:
        """Collect tags, brand affinities and demographics for the audience.

        Returns:
            EnrichmentData, or None when nothing was found.

        Raises:
            QlooAPIError: Every lookup that was attempted failed.
        """
        audience = form_data.target_audience
        text = " ".join(filter(None, [audience.target_description, audience.cultural_context]))
        keywords = self.extract_interest_keywords(text)
        demographic_signals = self.build_demographic_signals(audience)

        attempted = 0
        failed = 0
        last_error: QlooAPIError | None = None

        tags: list[dict] = []
        seen_tags: set[str] = set()
        for keyword in keywords[: self.TAG_QUERIES]:
            attempted += 1
            try:
                data = await self._client.search_tags(keyword)
            except QlooAPIError as e:
                failed += 1
                last_error = e
                self._log_failure("tag_search", e)
                continue
            for tag in _results(data, "tags"):
                tag_id = tag.get("tag_id") or tag.get("id")
                if tag_id and tag_id not in seen_tags and len(tags) < self.MAX_TAGS:
                    seen_tags.add(tag_id)
                    tags.append(tag)

        tag_ids = [tag.get("tag_id") or tag.get("id") for tag in tags]

        entities: list[dict] = []
        if tag_ids or demographic_signals:
            attempted += 1
            try:
                data = await self._client.get_insights(
                    BRAND_FILTER,
                    tags=tag_ids,
                    demographics=demographic_signals,
                    limit=self.BRAND_LIMIT,
                )
                entities = _results(data, "entities")[: self.BRAND_LIMIT]
            except QlooAPIError as e:
                failed += 1
                last_error = e
                self._log_failure("brand_insights", e)

        demographics: DemographicProfile | None = None
        if tag_ids:
            attempted += 1
            try:
                data = await self._client.get_demographics(tags=tag_ids)
                demographics = self.parse_demographic_profile(data)
            except QlooAPIError as e:
                failed += 1
                last_error = e
                self._log_failure("demographics", e)

        if attempted and failed == attempted and last_error is not None:
            raise last_error

        enrichment = EnrichmentData(
            keywords=keywords,
            tags=tags,
            entities=entities,
            demographics=demographics,
        )
        if enrichment.is_empty:
            logger.info("No enrichment signals found", extra={"keywords": keywords})
            return None

        logger.info(
            "Enrichment gathered",
            extra={"tags": len(tags), "entities": len(entities), "demographics": demographics is not None},
        )
        return enrichment

    @staticmethod
    def parse_demographic_profile(data: dict[str, Any]) -> DemographicProfile | None:
        """Build a DemographicProfile from a ``urn:demographics`` insights response."""
        rows = _results(data, "demographics")
        if not rows:
            return None

        query = rows[0].get("query") or {}
        age = _numeric_map(query.get("age"))
        gender = _numeric_map(query.get("gender"))
        if not age and not gender:
            return None

        return DemographicProfile(
            age_distribution=age,
            gender_distribution=gender,
            dominant_age_group=max(age, key=age.get) if age else None,
            dominant_gender=max(gender, key=gender.get) if gender else None,
            diversity_score=calculate_diversity_score(list(age.values()) + list(gender.values())),
        )

    async def test_connection(self) -> bool:
        return await self._client.test_connection()

    @staticmethod
    def _log_failure(stage: str, error: QlooAPIError) -> None:
        logger.warning(
            "Enrichment lookup %s failed: %s",
            stage,
            error.message,
            extra={"stage": stage, "status_code": error.status_code},
        )


def _results(data: dict[str, Any], key: str) -> list[dict]:
    results = data.get("results") or {}
    if isinstance(results, dict):
        items = results.get(key) or []
    else:
        items = results
    return [item for item in items if isinstance(item, dict)]


def _numeric_map(raw: Any) -> dict[str, float]:
    if not isinstance(raw, dict):
        return {}
    values = {}
    for key, value in raw.items():
        try:
            values[key] = float(value)
        except (TypeError, ValueError):
            continue
    return values
