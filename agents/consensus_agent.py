"""
Meal Calorie Analyzer — Consensus Agent
=======================================
Reduces the validated samples of one run to a single CalorieBreakdown.

Order of preference:
1. a single candidate is returned as-is
2. a model-assisted merge (average numbers, union items) when a model is given
3. the deterministic vote: most frequent signature, then highest confidence
"""

import json
from typing import Any, Dict, List, Optional

from agents.validation_agent import validate_candidate
from tools.calorie_schema import CalorieBreakdown
from tools.gemini_client import TextGenerator
from tools.json_repair import to_json

# =============================================================================
# PROMPT
# =============================================================================
MERGE_PROMPT = """
You are combining {count} independent calorie analyses of the SAME meal photo into one best estimate.

Here are the analyses as a JSON array:

{candidates}

Produce a single JSON object with exactly these keys:
mealDescription (string), totalEstimatedCalories (number), items (array of objects with itemName (string), quantity (string), calories (number), protein_g (number), carbs_g (number), fat_g (number)), confidenceScore (number between 0.0 and 1.0), assumptionsMade (string).

Rules:
- Average the numeric fields across the analyses.
- Union the food items and merge duplicates that describe the same food.
- Prefer the meal description most analyses agree on.
- totalEstimatedCalories should roughly equal the sum of item calories.

Respond with ONLY the JSON object. No explanations, no markdown.
"""


def build_merge_prompt(candidates: List[CalorieBreakdown]) -> str:
    payload = [candidate.to_response() for candidate in candidates]
    return MERGE_PROMPT.format(count=len(candidates), candidates=to_json(payload))


# =============================================================================
# DETERMINISTIC REDUCER
# =============================================================================
def _normalize_text(value: Optional[str]) -> Optional[str]:
    return value.strip().lower() if value is not None else None


def _normalize_number(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def candidate_signature(candidate: CalorieBreakdown) -> str:
    """Key used to count agreeing samples: description, total, item names/calories."""
    simplified: Dict[str, Any] = {
        "mealDescription": _normalize_text(candidate.meal_description),
        "totalEstimatedCalories": _normalize_number(candidate.total_estimated_calories),
        "items": [
            {"itemName": _normalize_text(item.item_name), "calories": _normalize_number(item.calories)}
            for item in candidate.items
        ],
    }
    return json.dumps(simplified, sort_keys=True)


def find_consensus_result(candidates: List[CalorieBreakdown]) -> CalorieBreakdown:
    """
    Pick the most common candidate.

    - Largest group of identical signatures wins; the first-seen group wins ties.
    - If no two candidates agree, the highest confidenceScore wins (missing = 0),
      first-seen on ties.
    - The winner is copied and annotated "Based on consensus from k/N analyses".
    """
    if not candidates:
        raise ValueError("Cannot find consensus without candidates")

    if len(candidates) == 1:
        return candidates[0]

    buckets: Dict[str, List[CalorieBreakdown]] = {}
    for candidate in candidates:
        buckets.setdefault(candidate_signature(candidate), []).append(candidate)

    max_count = 0
    winner = candidates[0]
    for members in buckets.values():
        if len(members) > max_count:
            max_count = len(members)
            winner = members[0]

    if max_count == 1:
        highest_confidence = winner.confidence_score or 0.0
        for candidate in candidates:
            confidence = candidate.confidence_score or 0.0
            if confidence > highest_confidence:
                highest_confidence = confidence
                winner = candidate

    print(f"🗳️ Consensus from {max_count}/{len(candidates)} analyses")
    return winner.with_note(f"Based on consensus from {max_count}/{len(candidates)} analyses")


# =============================================================================
# MODEL-ASSISTED MERGE
# =============================================================================
def merge_with_model(
    candidates: List[CalorieBreakdown],
    generator: TextGenerator,
) -> Optional[CalorieBreakdown]:
    """Ask the model to synthesize one result; None if the call or its output fails."""
    try:
        reply = generator.generate(build_merge_prompt(candidates))
        merged = validate_candidate(reply, generator)
    except Exception as e:
        print(f"⚠️ Model-assisted merge failed: {e}")
        return None

    if merged is None:
        print("⚠️ Model-assisted merge returned an invalid breakdown")
        return None

    print(f"🤝 Merged {len(candidates)} analyses with the model")
    return merged.with_note(f"Merged from {len(candidates)} analyses")


def reduce_candidates(
    candidates: List[CalorieBreakdown],
    generator: Optional[TextGenerator] = None,
) -> CalorieBreakdown:
    """
    Reduce 1..N candidates to exactly one result.

    Args:
        candidates: Validated samples in call-index order.
        generator: Model for the assisted merge; None skips straight to the vote.
    """
    if not candidates:
        raise ValueError("Cannot reduce an empty candidate list")

    if len(candidates) == 1:
        return candidates[0]

    if generator is not None:
        merged = merge_with_model(candidates, generator)
        if merged is not None:
            return merged
        print("↩️ Falling back to deterministic consensus")

    return find_consensus_result(candidates)


__all__ = [
    "reduce_candidates",
    "find_consensus_result",
    "merge_with_model",
    "candidate_signature",
    "build_merge_prompt",
]
