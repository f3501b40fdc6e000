"""Unit tests for prompt builders."""

import json

from personalens.models import PersonaGenerationData
from personalens.services import prompts


class TestGenerationPrompt:
    """Tests for build_persona_generation_prompt()."""

    def test_contains_form_sections(self, form_data):
        prompt = prompts.build_persona_generation_prompt(form_data)

        assert "**Business Information:**" in prompt
        assert "- Company: GreenLeaf Outfitters" in prompt
        assert "- Business Type: B2C" in prompt
        assert "- Age Range: 26-35" in prompt
        assert "- Income Level: upper-middle" in prompt
        assert "- Primary Goal: marketing-strategy" in prompt
        assert prompts.PERSONA_JSON_SCHEMA in prompt

    def test_optional_fields_included_when_set(self, form_data):
        prompt = prompts.build_persona_generation_prompt(form_data)

        assert "- Website: https://greenleaf.example.com" in prompt
        assert "- Main Competitors: Patagonia, Arc'teryx" in prompt
        assert "- Cultural Context: Pacific Northwest outdoor culture" in prompt
        assert "- Specific Questions: Which channels convert best?" in prompt

    def test_optional_fields_omitted_when_empty(self, sample_form_data):
        sample_form_data["business_info"]["website"] = None
        sample_form_data["product_details"].pop("competitors")
        sample_form_data["target_audience"]["cultural_context"] = ""
        sample_form_data["research_goals"].pop("specific_questions")
        prompt = prompts.build_persona_generation_prompt(PersonaGenerationData.model_validate(sample_form_data))

        assert "Website:" not in prompt
        assert "Main Competitors:" not in prompt
        assert "Cultural Context:" not in prompt
        assert "Specific Questions:" not in prompt

    def test_messages(self, form_data):
        messages = prompts.build_persona_generation_messages(form_data)

        assert [m.role for m in messages] == ["system", "user"]
        assert messages[0].content == prompts.PERSONA_SYSTEM_PROMPT


class TestEnhancementPrompt:
    """Tests for build_persona_enhancement_messages()."""

    def test_embeds_persona_and_signals(self, persona_body):
        messages = prompts.build_persona_enhancement_messages(
            persona_body, {"tags": [{"name": "Hiking"}]}, "Nordic outdoor life"
        )
        user = messages[1].content

        assert json.dumps(persona_body, indent=2) in user
        assert '"name": "Hiking"' in user
        assert "Nordic outdoor life" in user

    def test_default_cultural_context(self, persona_body):
        messages = prompts.build_persona_enhancement_messages(persona_body, {})
        assert "General global context" in messages[1].content


class TestValidationPrompt:
    """Tests for build_persona_validation_messages()."""

    def test_contains_schema_and_requirements(self, persona_body, sample_form_data):
        messages = prompts.build_persona_validation_messages(persona_body, sample_form_data)
        user = messages[1].content

        assert prompts.VALIDATION_RESPONSE_SCHEMA in user
        assert "GreenLeaf Outfitters" in user
        assert "Maya Chen" in user
        assert messages[0].role == "system"
