# unit_tests/test_agent_validation.py
"""
Unit Tests for Validation Agent
===============================
Run with: python -m pytest unit_tests/test_agent_validation.py -v
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from agents.validation_agent import build_validation_prompt, validate_candidate
from tools.gemini_client import ModelCallError


def test_prompt_embeds_candidate():
    prompt = build_validation_prompt('{"a": 1}')
    assert '{"a": 1}' in prompt
    assert "EXACTLY the same JSON" in prompt


def test_confirmed_candidate(fake_generator, breakdown_json):
    generator = fake_generator(validation="echo")
    result = validate_candidate(breakdown_json(), generator)

    assert result is not None
    assert result.total_estimated_calories == 450
    assert generator.calls == ["validation"]


def test_model_correction_is_used(fake_generator, breakdown_json):
    """The self-corrected reply wins over the original text."""
    corrected = "```json\n" + breakdown_json(description="Corrected", calories=(100,), names=("Apple",)) + "\n```"
    generator = fake_generator(validation=corrected)

    result = validate_candidate(breakdown_json(), generator)
    assert result.meal_description == "Corrected"
    assert result.total_estimated_calories == 100


@pytest.mark.parametrize("validation", ["fail", "I cannot help with that", '{"error": "unsure"}'])
def test_falls_back_to_repaired_text(fake_generator, breakdown_json, validation):
    """If the self-correction call fails or is unusable, the repaired text is parsed directly."""
    print("\n" + "=" * 60)
    print("TEST: Fallback To Repaired Text")
    print("=" * 60)

    messy = "```json\n" + breakdown_json().replace("}]", "},]") + "\n```"
    result = validate_candidate(messy, fake_generator(validation=validation))

    assert result is not None
    assert len(result.items) == 2
    print("✅ Repaired text used")


def test_unusable_candidate_is_discarded(fake_generator):
    assert validate_candidate("I see a plate of food.", fake_generator(validation="fail")) is None


def test_empty_reply_is_discarded_without_model_call(fake_generator):
    generator = fake_generator()
    assert validate_candidate("   ", generator) is None
    assert generator.calls == []


def test_model_error_type_is_caught(fake_generator, breakdown_json):
    generator = fake_generator(validation=ModelCallError("blocked"))
    assert validate_candidate(breakdown_json(), generator) is not None


@pytest.mark.parametrize("validation", [TimeoutError("self-correction timed out"), RuntimeError("socket closed")])
def test_any_self_correction_error_falls_back(fake_generator, validation):
    """Errors of any type on the self-correction call still fall back to the repaired text."""
    candidate = '{"mealDescription": "Soup", "totalEstimatedCalories": 100, "items": []}'
    result = validate_candidate(candidate, fake_generator(validation=validation))

    assert result is not None
    assert result.meal_description == "Soup"


def test_none_self_correction_reply_falls_back():
    class NoneReply:
        def generate(self, prompt, image=None):
            return None

    candidate = '{"mealDescription": "Soup", "totalEstimatedCalories": 100, "items": []}'
    assert validate_candidate(candidate, NoneReply()).total_estimated_calories == 100


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
