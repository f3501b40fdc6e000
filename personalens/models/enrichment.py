"""Pydantic models for taste-graph enrichment signals."""

from pydantic import BaseModel, Field


class DemographicProfile(BaseModel):
    """Audience distribution derived from demographic insights."""

    age_distribution: dict[str, float] = Field(default_factory=dict)
    gender_distribution: dict[str, float] = Field(default_factory=dict)
    dominant_age_group: str | None = None
    dominant_gender: str | None = None
    diversity_score: float = Field(default=0.0, ge=0.0, le=1.0)


class EnrichmentData(BaseModel):
    """Signals gathered for one persona request."""

    keywords: list[str] = Field(default_factory=list)
    tags: list[dict] = Field(default_factory=list)
    entities: list[dict] = Field(default_factory=list)
    demographics: DemographicProfile | None = None
    source: str = "qloo"

    @property
    def is_empty(self) -> bool:
        return not (self.tags or self.entities or self.demographics)
