"""
Meal Calorie Analyzer — Validation Agent
========================================
Turns one raw model reply into a validated CalorieBreakdown, or None.

Two layers:
- syntactic repair (tools/json_repair.py) for mechanical mistakes
- a self-correction call that asks the model to confirm or fix the schema

The self-correction call is best-effort; the repaired text is always parsed
directly when it fails, so the step still works with an offline fake model.
"""

from typing import Optional

from tools.calorie_schema import CalorieBreakdown
from tools.gemini_client import ModelCallError, TextGenerator
from tools.json_repair import clean_model_response, parse_breakdown, unwrap_model_reply

# =============================================================================
# PROMPT
# =============================================================================
VALIDATION_PROMPT = """
I have received the following JSON response from an AI analysis of a meal image:

{candidate}

Please verify if this JSON strictly follows the expected format for a meal calorie breakdown:
1. It should have mealDescription (string), totalEstimatedCalories (number), items (array), confidenceScore (number between 0.0 and 1.0), and assumptionsMade (string)
2. Each item should have itemName (string), quantity (string), calories (number), protein_g (number), carbs_g (number), and fat_g (number)

If the JSON is valid and follows the format, respond with EXACTLY the same JSON.
If there are any issues, fix them and respond with ONLY the corrected JSON.
Do not include any explanations, markdown formatting, or text before or after the JSON.
"""


def build_validation_prompt(candidate: str) -> str:
    return VALIDATION_PROMPT.format(candidate=candidate)


# =============================================================================
# MAIN FUNCTION
# =============================================================================
def validate_candidate(raw_text: str, generator: TextGenerator) -> Optional[CalorieBreakdown]:
    """
    Repair, self-correct and parse one model reply.

    Args:
        raw_text: Free text returned by the analysis call.
        generator: Model used for the self-correction pass.

    Returns:
        A validated CalorieBreakdown, or None when the reply is unusable.
    """
    if not raw_text or not raw_text.strip():
        print("⚠️ Empty model reply, discarding sample")
        return None

    cleaned = clean_model_response(raw_text)
    print(f"🧹 Cleaned response: {cleaned[:200]}")

    # Pass 1: ask the model to confirm or correct the schema
    try:
        reply = generator.generate(build_validation_prompt(cleaned))
        return parse_breakdown(unwrap_model_reply(reply))
    except ModelCallError as e:
        print(f"⚠️ Self-correction call failed: {e}")
    except ValueError as e:
        print(f"⚠️ Failed to parse self-corrected response: {e}")
    except Exception as e:
        print(f"⚠️ Self-correction pass errored ({type(e).__name__}: {e})")

    # Pass 2: the syntactically repaired text on its own
    try:
        return parse_breakdown(cleaned)
    except ValueError as e:
        print(f"❌ Discarding sample, repaired text is still invalid: {e}")
        return None


__all__ = [
    "validate_candidate",
    "build_validation_prompt",
    "VALIDATION_PROMPT",
]
