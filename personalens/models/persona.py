"""Pydantic models for persona generation: form input, persona body, results."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enrichment import EnrichmentData


# ==============================================================================
# Form input
# ==============================================================================


class BusinessType(str, Enum):
    B2B = "B2B"
    B2C = "B2C"
    BOTH = "Both"


class CompanySize(str, Enum):
    STARTUP = "startup"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    ENTERPRISE = "enterprise"


class AgeRange(str, Enum):
    AGE_18_25 = "18-25"
    AGE_26_35 = "26-35"
    AGE_36_45 = "36-45"
    AGE_46_55 = "46-55"
    AGE_56_65 = "56-65"
    AGE_65_PLUS = "65+"
    MIXED = "mixed"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    NON_BINARY = "non-binary"
    MIXED = "mixed"


class LocationType(str, Enum):
    URBAN = "urban"
    SUBURBAN = "suburban"
    RURAL = "rural"
    MIXED = "mixed"
    GLOBAL = "global"


class IncomeLevel(str, Enum):
    LOW = "low"
    LOWER_MIDDLE = "lower-middle"
    MIDDLE = "middle"
    UPPER_MIDDLE = "upper-middle"
    HIGH = "high"
    MIXED = "mixed"


class EducationLevel(str, Enum):
    HIGH_SCHOOL = "high-school"
    SOME_COLLEGE = "some-college"
    BACHELORS = "bachelors"
    MASTERS = "masters"
    DOCTORATE = "doctorate"
    MIXED = "mixed"


class ProductType(str, Enum):
    PRODUCT = "product"
    SERVICE = "service"
    SOFTWARE = "software"
    PLATFORM = "platform"
    CONTENT = "content"
    OTHER = "other"


class PriceRange(str, Enum):
    FREE = "free"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class PrimaryGoal(str, Enum):
    MARKET_RESEARCH = "market-research"
    PRODUCT_DEVELOPMENT = "product-development"
    MARKETING_STRATEGY = "marketing-strategy"
    BRAND_POSITIONING = "brand-positioning"
    CONTENT_STRATEGY = "content-strategy"
    CUSTOMER_ACQUISITION = "customer-acquisition"
    OTHER = "other"


class Timeline(str, Enum):
    IMMEDIATE = "immediate"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class BudgetRange(str, Enum):
    FREE = "free"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    ENTERPRISE = "enterprise"


class BusinessInfo(BaseModel):
    """Step 1: the company asking for the persona."""

    business_name: str
    industry: str
    business_type: BusinessType
    business_description: str
    company_size: CompanySize
    website: str | None = None


class TargetAudience(BaseModel):
    """Step 2: who the persona should represent."""

    target_description: str
    age_range: AgeRange
    gender: Gender
    location: LocationType
    income_level: IncomeLevel
    education: EducationLevel
    cultural_context: str | None = None


class ProductDetails(BaseModel):
    """Step 3: what is being sold."""

    product_name: str
    product_type: ProductType
    product_description: str
    price_range: PriceRange
    key_features: str
    unique_value_proposition: str
    competitors: str | None = None


class ResearchGoals(BaseModel):
    """Step 4: what the persona will be used for."""

    primary_goal: PrimaryGoal
    specific_questions: str | None = None
    use_case: str
    timeline: Timeline
    budget_range: BudgetRange


class PersonaGenerationData(BaseModel):
    """Request body for POST /generate."""

    business_info: BusinessInfo
    target_audience: TargetAudience
    product_details: ProductDetails
    research_goals: ResearchGoals


# ==============================================================================
# Persona body (LLM output)
# ==============================================================================


class PersonaSection(BaseModel):
    """Base for LLM-produced sections.

    Unknown keys are ignored, nulls fall back to the field default and
    numbers are accepted where text is expected, so partial or slightly
    off-schema output still parses.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class Demographics(PersonaSection):
    age: int | str = ""
    gender: str = ""
    location: str = ""
    occupation: str = ""
    income: str = ""
    education: str = ""
    family_status: str = ""
    living_situation: str = ""


class Psychographics(PersonaSection):
    values: list[str] = Field(default_factory=list)
    motivations: list[str] = Field(default_factory=list)
    personality_traits: list[str] = Field(default_factory=list)
    lifestyle: str = ""
    stress_triggers: list[str] = Field(default_factory=list)
    relaxation_methods: list[str] = Field(default_factory=list)


class BehavioralPatterns(PersonaSection):
    daily_routine: str = ""
    decision_making_style: str = ""
    research_habits: str = ""
    shopping_behavior: str = ""
    brand_loyalty: str = ""


class DigitalBehavior(PersonaSection):
    primary_devices: list[str] = Field(default_factory=list)
    social_media_platforms: list[str] = Field(default_factory=list)
    content_preferences: list[str] = Field(default_factory=list)
    technology_comfort: str = ""
    online_activity_times: list[str] = Field(default_factory=list)


class GoalsAndPainPoints(PersonaSection):
    primary_goals: list[str] = Field(default_factory=list)
    aspirations: list[str] = Field(default_factory=list)
    current_challenges: list[str] = Field(default_factory=list)
    frustrations: list[str] = Field(default_factory=list)
    success_metrics: list[str] = Field(default_factory=list)


class ProductRelationship(PersonaSection):
    discovery_channels: list[str] = Field(default_factory=list)
    decision_factors: list[str] = Field(default_factory=list)
    potential_objections: list[str] = Field(default_factory=list)
    ideal_experience: str = ""
    post_purchase_behavior: str = ""


class MarketingStrategy(PersonaSection):
    best_channels: list[str] = Field(default_factory=list)
    messaging_style: str = ""
    content_types: list[str] = Field(default_factory=list)
    communication_frequency: str = ""
    timing_preferences: list[str] = Field(default_factory=list)


class PersonaQuotes(PersonaSection):
    pain_point: str = ""
    aspiration: str = ""
    product_need: str = ""


class Persona(PersonaSection):
    """The structured persona body returned by the model."""

    name: str = ""
    tagline: str = ""
    demographics: Demographics = Field(default_factory=Demographics)
    psychographics: Psychographics = Field(default_factory=Psychographics)
    behavioral_patterns: BehavioralPatterns = Field(default_factory=BehavioralPatterns)
    digital_behavior: DigitalBehavior = Field(default_factory=DigitalBehavior)
    goals_and_pain_points: GoalsAndPainPoints = Field(default_factory=GoalsAndPainPoints)
    product_relationship: ProductRelationship = Field(default_factory=ProductRelationship)
    marketing_strategy: MarketingStrategy = Field(default_factory=MarketingStrategy)
    quotes: PersonaQuotes = Field(default_factory=PersonaQuotes)


class GeneratedPersona(Persona):
    """A finalized persona as returned to the caller."""

    id: str
    confidence_score: int = Field(ge=0, le=100)
    enrichment_data: EnrichmentData | None = None
    generation_timestamp: datetime


# ==============================================================================
# Pipeline options and results
# ==============================================================================


class GenerationOptions(BaseModel):
    """Per-request pipeline switches."""

    include_enrichment: bool = True
    validate_results: bool = True
    retry_attempts: int = Field(default=3, ge=0)
    model: str | None = None
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    preferred_provider: str | None = None
    deadline_seconds: float | None = Field(default=None, gt=0)


class GenerationMetadata(BaseModel):
    generation_time_ms: int = 0
    enrichment_included: bool = False
    validation_score: float | None = None
    retry_attempts: int = 0
    provider: str | None = None


class PersonaGenerationResult(BaseModel):
    """Outcome of one pipeline run."""

    success: bool
    persona: GeneratedPersona | None = None
    error: str | None = None
    # InvalidOutput, AuthError, TransportError, NoProviders or Timeout
    error_kind: str | None = None
    metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)

    @model_validator(mode="after")
    def _check_outcome(self) -> "PersonaGenerationResult":
        if self.success and self.persona is None:
            raise ValueError("successful result requires a persona")
        if not self.success and not self.error:
            raise ValueError("failed result requires an error message")
        return self
