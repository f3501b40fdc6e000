"""Models package.

Note: these are the source-of-truth schemas for the OpenAPI document.
"""

from .enrichment import DemographicProfile, EnrichmentData
from .persona import (
    AgeRange,
    BehavioralPatterns,
    BudgetRange,
    BusinessInfo,
    BusinessType,
    CompanySize,
    Demographics,
    DigitalBehavior,
    EducationLevel,
    Gender,
    GeneratedPersona,
    GenerationMetadata,
    GenerationOptions,
    GoalsAndPainPoints,
    IncomeLevel,
    LocationType,
    MarketingStrategy,
    Persona,
    PersonaGenerationData,
    PersonaGenerationResult,
    PersonaQuotes,
    PriceRange,
    PrimaryGoal,
    ProductDetails,
    ProductRelationship,
    ProductType,
    Psychographics,
    ResearchGoals,
    TargetAudience,
    Timeline,
)

__all__ = [
    "PersonaGenerationData",
    "BusinessInfo",
    "TargetAudience",
    "ProductDetails",
    "ResearchGoals",
    "BusinessType",
    "CompanySize",
    "AgeRange",
    "Gender",
    "LocationType",
    "IncomeLevel",
    "EducationLevel",
    "ProductType",
    "PriceRange",
    "PrimaryGoal",
    "Timeline",
    "BudgetRange",
    "Persona",
    "Demographics",
    "Psychographics",
    "BehavioralPatterns",
    "DigitalBehavior",
    "GoalsAndPainPoints",
    "ProductRelationship",
    "MarketingStrategy",
    "PersonaQuotes",
    "GeneratedPersona",
    "GenerationOptions",
    "GenerationMetadata",
    "PersonaGenerationResult",
    "EnrichmentData",
    "DemographicProfile",
]
