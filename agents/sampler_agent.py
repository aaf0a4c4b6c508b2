"""
Meal Calorie Analyzer — Sampler Agent
=====================================
Fans out N independent analysis calls for the same image and context, runs
each reply through validation, and returns whichever samples survived.

- Calls run concurrently on a thread pool; none is cancelled by a sibling.
- Every call settles before the batch returns (no early exit).
- Results keep call-index order, so a fixed set of replies always reduces
  the same way regardless of which call finished first.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from agents.validation_agent import validate_candidate
from tools.calorie_schema import AnalysisRequest, CalorieBreakdown
from tools.gemini_client import ImageInput, TextGenerator

DEFAULT_NUM_SAMPLES = 5

# =============================================================================
# PROMPT
# =============================================================================
ANALYSIS_PROMPT = """
Your task is to analyze the provided image of a meal and the additional context and provide a detailed calorie breakdown in the form of a single, valid JSON object.
The meal context is: "{meal_context}".
ABSOLUTELY NO TEXT, EXPLANATIONS, OR ANY CHARACTERS SHOULD PRECEDE OR FOLLOW THE JSON OBJECT.

The JSON object you return MUST conform EXACTLY to the following structure, using the specified key names:

{{
  "mealDescription": "string - A brief description of the analyzed meal",
  "totalEstimatedCalories": "integer - Total estimated calories for the entire meal",
  "items": [
    {{
      "itemName": "string - Name of the food item",
      "quantity": "string - Quantity of the item (e.g., '100g', '1 cup')",
      "calories": "number - Calories for this item",
      "protein_g": "number - Grams of protein for this item",
      "carbs_g": "number - Grams of carbohydrates for this item",
      "fat_g": "number - Grams of fat for this item"
    }}
  ],
  "confidenceScore": "number - A float between 0.0 and 1.0",
  "assumptionsMade": "string - Any assumptions made"
}}

Below is an example of the expected output format with placeholder values. Ensure your output does not omit any keys or values and strictly follows this format, including all quotes around keys and string values:

{{
  "mealDescription": "Grilled chicken breast with white rice",
  "totalEstimatedCalories": 295,
  "items": [
    {{
      "itemName": "Grilled chicken breast",
      "quantity": "100g",
      "calories": 165,
      "protein_g": 31,
      "carbs_g": 0,
      "fat_g": 3.6
    }},
    {{
      "itemName": "White rice",
      "quantity": "100g cooked",
      "calories": 130,
      "protein_g": 2.7,
      "carbs_g": 28,
      "fat_g": 0.3
    }}
  ],
  "confidenceScore": 0.8,
  "assumptionsMade": "Standard serving sizes assumed."
}}

Now, provide the JSON output for the meal in the image.
"""


def build_analysis_prompt(meal_context: str) -> str:
    context = meal_context.strip() if meal_context else ""
    return ANALYSIS_PROMPT.format(meal_context=context or "No additional context provided")


# =============================================================================
# SAMPLING
# =============================================================================
def run_single_sample(
    request: AnalysisRequest,
    generator: TextGenerator,
    index: int,
    num_samples: int = DEFAULT_NUM_SAMPLES,
) -> Optional[CalorieBreakdown]:
    """One analysis call plus validation. Never raises; None means dropped."""
    label = f"{index + 1}/{num_samples}"
    print(f"🔎 Analysis attempt {label}")

    try:
        raw_text = generator.generate(
            build_analysis_prompt(request.meal_context),
            ImageInput.from_request(request),
        )
        candidate = validate_candidate(raw_text, generator)
    except Exception as e:
        print(f"❌ Error in analysis attempt {label}: {e}")
        return None

    if candidate is None:
        print(f"⚠️ Analysis {label} produced no valid breakdown")
    else:
        print(f"✅ Analysis {label} successful")
    return candidate


def collect_candidates(
    request: AnalysisRequest,
    generator: TextGenerator,
    num_samples: int = DEFAULT_NUM_SAMPLES,
    max_workers: Optional[int] = None,
) -> List[CalorieBreakdown]:
    """
    Run `num_samples` independent analyses and keep the valid ones.

    Args:
        request: Image + meal context for this run.
        generator: Model capability shared (read-only) by every call.
        num_samples: How many independent calls to make.
        max_workers: Thread pool size; defaults to one thread per sample.

    Returns:
        Validated candidates in call-index order. Empty if every sample failed.
    """
    if num_samples < 1:
        raise ValueError("num_samples must be at least 1")

    print(f"🔁 Running {num_samples} analyses to find consensus...")

    with ThreadPoolExecutor(max_workers=max_workers or num_samples) as pool:
        futures = [
            pool.submit(run_single_sample, request, generator, index, num_samples)
            for index in range(num_samples)
        ]
        results = [future.result() for future in futures]

    candidates = [result for result in results if result is not None]
    print(f"📊 {len(candidates)}/{num_samples} analyses produced valid breakdowns")
    return candidates


__all__ = [
    "collect_candidates",
    "run_single_sample",
    "build_analysis_prompt",
    "DEFAULT_NUM_SAMPLES",
]
