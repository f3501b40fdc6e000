"""Prompt templates for persona generation.

Contains system and user prompts for:
1. Base generation - building a persona from the four form sections
2. Enhancement - folding taste-graph signals into an existing persona
3. Validation - scoring a persona and optionally improving it
"""

from __future__ import annotations

import json
from typing import Any

from personalens.llm.models import ChatMessage
from personalens.models import PersonaGenerationData


# ==============================================================================
# Shared system prompt
# ==============================================================================

PERSONA_SYSTEM_PROMPT = """You are an expert market researcher and behavioral psychologist specializing in creating detailed, actionable customer personas.

Your task is to generate comprehensive personas that combine demographic data, behavioral insights, taste profiles, and cultural context to create vivid, realistic profiles that businesses can use for marketing, product development, and strategic decision-making.

Guidelines:
- Create personas that feel like real people with specific traits, preferences, and behaviors
- Include both conscious and subconscious motivations
- Provide actionable insights for marketing and product development
- Consider cultural nuances and regional preferences
- Base insights on psychological principles and market research
- Use specific examples and scenarios rather than generic statements
- Include potential pain points, aspirations, and decision-making triggers
- Suggest communication styles and channels that resonate with each persona

Always structure your response as valid JSON with the specified schema."""

PERSONA_JSON_SCHEMA = """{
  "persona": {
    "name": "string",
    "tagline": "string (brief description)",
    "demographics": {
      "age": "number",
      "gender": "string",
      "location": "string",
      "occupation": "string",
      "income": "string",
      "education": "string",
      "family_status": "string",
      "living_situation": "string"
    },
    "psychographics": {
      "values": ["string"],
      "motivations": ["string"],
      "personality_traits": ["string"],
      "lifestyle": "string",
      "stress_triggers": ["string"],
      "relaxation_methods": ["string"]
    },
    "behavioral_patterns": {
      "daily_routine": "string",
      "decision_making_style": "string",
      "research_habits": "string",
      "shopping_behavior": "string",
      "brand_loyalty": "string"
    },
    "digital_behavior": {
      "primary_devices": ["string"],
      "social_media_platforms": ["string"],
      "content_preferences": ["string"],
      "technology_comfort": "string",
      "online_activity_times": ["string"]
    },
    "goals_and_pain_points": {
      "primary_goals": ["string"],
      "aspirations": ["string"],
      "current_challenges": ["string"],
      "frustrations": ["string"],
      "success_metrics": ["string"]
    },
    "product_relationship": {
      "discovery_channels": ["string"],
      "decision_factors": ["string"],
      "potential_objections": ["string"],
      "ideal_experience": "string",
      "post_purchase_behavior": "string"
    },
    "marketing_strategy": {
      "best_channels": ["string"],
      "messaging_style": "string",
      "content_types": ["string"],
      "communication_frequency": "string",
      "timing_preferences": ["string"]
    },
    "quotes": {
      "pain_point": "string (what they might say about their main frustration)",
      "aspiration": "string (what they might say about their goals)",
      "product_need": "string (what they might say about needing your product/service)"
    }
  }
}"""

PERSONA_SECTIONS_GUIDE = """Please generate a comprehensive persona that includes:

1. **Demographics & Basic Info**: name, age, location, occupation, income, family status, education, living situation
2. **Psychographics & Personality**: values, motivations, personality traits, lifestyle, stress triggers and relaxation methods
3. **Behavioral Patterns**: daily routine, decision-making process, research habits, shopping behavior
4. **Digital & Media Consumption**: devices, social media usage, content habits, technology comfort
5. **Goals & Pain Points**: goals, aspirations, challenges, frustrations, success metrics
6. **Product/Service Relationship**: discovery, decision factors, objections, ideal experience, post-purchase behavior
7. **Marketing & Engagement Strategy**: best channels, messaging, content types, timing and frequency"""


def _value(field: Any) -> str:
    """Render an enum member or plain value for a prompt."""
    return str(getattr(field, "value", field))


def build_persona_generation_prompt(form_data: PersonaGenerationData) -> str:
    """Build user prompt for base persona generation.

    Optional form fields are only included when they have a value.

    Args:
        form_data: The four form sections.

    Returns:
        Formatted user prompt string.
    """
    business = form_data.business_info
    product = form_data.product_details
    audience = form_data.target_audience
    goals = form_data.research_goals

    lines = [
        "Based on the following business and target audience information, generate a detailed customer persona:",
        "",
        "**Business Information:**",
        f"- Company: {business.business_name}",
        f"- Industry: {business.industry}",
        f"- Business Type: {_value(business.business_type)}",
        f"- Company Size: {_value(business.company_size)}",
        f"- Description: {business.business_description}",
    ]
    if business.website:
        lines.append(f"- Website: {business.website}")

    lines.extend([
        "",
        "**Product/Service Details:**",
        f"- Name: {product.product_name}",
        f"- Type: {_value(product.product_type)}",
        f"- Price Range: {_value(product.price_range)}",
        f"- Description: {product.product_description}",
        f"- Key Features: {product.key_features}",
        f"- Unique Value Proposition: {product.unique_value_proposition}",
    ])
    if product.competitors:
        lines.append(f"- Main Competitors: {product.competitors}")

    lines.extend([
        "",
        "**Target Audience:**",
        f"- Description: {audience.target_description}",
        f"- Age Range: {_value(audience.age_range)}",
        f"- Gender: {_value(audience.gender)}",
        f"- Location: {_value(audience.location)}",
        f"- Income Level: {_value(audience.income_level)}",
        f"- Education: {_value(audience.education)}",
    ])
    if audience.cultural_context:
        lines.append(f"- Cultural Context: {audience.cultural_context}")

    lines.extend([
        "",
        "**Research Goals:**",
        f"- Primary Goal: {_value(goals.primary_goal)}",
        f"- Use Case: {goals.use_case}",
        f"- Timeline: {_value(goals.timeline)}",
        f"- Budget Range: {_value(goals.budget_range)}",
    ])
    if goals.specific_questions:
        lines.append(f"- Specific Questions: {goals.specific_questions}")

    lines.extend([
        "",
        PERSONA_SECTIONS_GUIDE,
        "",
        "Respond with a JSON object following this exact structure:",
        "",
        PERSONA_JSON_SCHEMA,
    ])

    return "\n".join(lines)


def build_persona_generation_messages(form_data: PersonaGenerationData) -> list[ChatMessage]:
    """System + user messages for base generation."""
    return [
        ChatMessage(role="system", content=PERSONA_SYSTEM_PROMPT),
        ChatMessage(role="user", content=build_persona_generation_prompt(form_data)),
    ]


# ==============================================================================
# Enhancement Prompts
# ==============================================================================


def build_persona_enhancement_messages(
    persona: dict,
    enrichment: dict,
    cultural_context: str | None = None,
) -> list[ChatMessage]:
    """Build messages that fold taste-graph signals into a persona.

    Args:
        persona: Current persona body as a dict.
        enrichment: Enrichment signals as a dict.
        cultural_context: Free-text cultural context from the form.

    Returns:
        System + user messages.
    """
    parts = [
        "Based on the following taste profile data and existing persona information, "
        "enhance the persona with deeper cultural and behavioral insights:",
        "",
        "**Existing Persona Data:**",
        json.dumps(persona, indent=2),
        "",
        "**Taste Profile Data:**",
        json.dumps(enrichment, indent=2),
        "",
        "**Cultural Context:**",
        cultural_context or "General global context",
        "",
        "Please enhance the persona by:",
        "",
        "1. **Refining taste preferences** based on the taste profile data",
        "2. **Adding cultural nuances** and regional specificities",
        "3. **Deepening behavioral insights** with taste-driven motivations",
        "4. **Expanding lifestyle details** with specific brands, activities, and preferences",
        "5. **Enhancing marketing strategy** with taste-based targeting",
        "",
        "Return the enhanced persona using the same JSON structure, but with richer, "
        "more specific details that incorporate the taste profile and cultural insights.",
    ]

    return [
        ChatMessage(role="system", content=PERSONA_SYSTEM_PROMPT),
        ChatMessage(role="user", content="\n".join(parts)),
    ]


# ==============================================================================
# Validation Prompts
# ==============================================================================

VALIDATION_RESPONSE_SCHEMA = """{
  "validation": {
    "is_valid": "boolean",
    "accuracy_score": "number (1-10)",
    "completeness_score": "number (1-10)",
    "actionability_score": "number (1-10)",
    "overall_score": "number (1-10)",
    "feedback": "string",
    "suggested_improvements": ["string"]
  },
  "enhanced_persona": "object (if improvements were made, otherwise null)"
}"""


def build_persona_validation_messages(persona: dict, requirements: dict) -> list[ChatMessage]:
    """Build messages asking the model to score (and optionally improve) a persona.

    Args:
        persona: Persona body as a dict.
        requirements: The original form data as a dict.

    Returns:
        System + user messages.
    """
    parts = [
        "Review and validate this persona for accuracy, completeness, and actionability:",
        "",
        "**Persona to Validate:**",
        json.dumps(persona, indent=2),
        "",
        "**Original Requirements:**",
        json.dumps(requirements, indent=2),
        "",
        "Please evaluate the persona on:",
        "",
        "1. **Accuracy**: Are the details realistic and internally consistent?",
        "2. **Completeness**: Does it cover all required aspects comprehensively?",
        "3. **Actionability**: Are the insights specific enough for practical use?",
        "4. **Authenticity**: Does it feel like a real person rather than generic?",
        "5. **Relevance**: Does it align with the business context and goals?",
        "",
        "If improvements are needed, provide an enhanced version. If it's good as-is, confirm validation.",
        "",
        "Respond with:",
        VALIDATION_RESPONSE_SCHEMA,
    ]

    return [
        ChatMessage(role="system", content=PERSONA_SYSTEM_PROMPT),
        ChatMessage(role="user", content="\n".join(parts)),
    ]
