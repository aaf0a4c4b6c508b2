"""
Meal Calorie Analyzer — Food Gate
=================================
One yes/no model call that decides whether the uploaded image shows food.

Failure policy: FAIL OPEN. If the gate call errors for any reason (network,
quota, safety block), the image is treated as food and the analysis goes
ahead. Availability wins over precision here; a wrongly accepted photo only
costs a few model calls, a wrongly rejected meal blocks the user.
"""

from tools.calorie_schema import AnalysisRequest
from tools.gemini_client import ImageInput, TextGenerator

GATE_FAILURE_POLICY = "fail_open"

FOOD_GATE_PROMPT = """
Look at the provided image. Does it show food, a meal, a drink or a dish?
Answer with exactly one word: true or false.
Do not add any other text.
"""


def is_food_image(request: AnalysisRequest, generator: TextGenerator) -> bool:
    """
    Ask the model whether the image depicts food.

    Returns:
        True if the answer is exactly "true" (case/whitespace-insensitive),
        False for any other answer, and True when the call itself fails.
    """
    try:
        answer = generator.generate(FOOD_GATE_PROMPT, ImageInput.from_request(request))
        if not answer or not answer.strip():
            raise ValueError("empty gate answer")
    except Exception as e:
        print(f"⚠️ Food gate failed ({e}), assuming food ({GATE_FAILURE_POLICY})")
        return True

    verdict = answer.strip().lower() == "true"
    print(f"🍽️ Food gate: {'food' if verdict else 'not food'} (answer: {answer.strip()[:20]!r})")
    return verdict


__all__ = ["is_food_image", "GATE_FAILURE_POLICY", "FOOD_GATE_PROMPT"]
