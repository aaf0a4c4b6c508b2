"""
Meal Calorie Analyzer — Calorie Agent (Pipeline Entry)
======================================================
One pass per user action:

    Food Gate -> Sampler (N calls) -> Validation (per sample) -> Consensus

The entry point always hands back a well-formed result dict. Model
misbehaviour degrades into fewer samples or a fallback reducer; only a
missing API key, a bad request or an unexpected crash turn into the generic
error shape.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from agents.consensus_agent import reduce_candidates
from agents.food_gate_agent import is_food_image
from agents.sampler_agent import DEFAULT_NUM_SAMPLES, collect_candidates
from tools.calorie_schema import (
    NO_VALID_SAMPLES_ERROR,
    NOT_FOOD_ERROR,
    PIPELINE_FAILURE_ERROR,
    AnalysisRequest,
    CalorieBreakdown,
    error_result,
)
from tools.gemini_client import (
    DEFAULT_MODEL,
    ConfigurationError,
    GeminiGenerator,
    TextGenerator,
    load_api_key,
)

# =============================================================================
# CONFIGURATION
# =============================================================================
CALORIE_CONFIG = {
    "model": DEFAULT_MODEL,
    "num_samples": DEFAULT_NUM_SAMPLES,
    "use_food_gate": True,
    "merge_with_model": True,
    "max_workers": None,
}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


@dataclass
class PipelineSettings:
    """Run-time knobs for one pipeline pass."""
    model: str = CALORIE_CONFIG["model"]
    num_samples: int = CALORIE_CONFIG["num_samples"]
    use_food_gate: bool = CALORIE_CONFIG["use_food_gate"]
    merge_with_model: bool = CALORIE_CONFIG["merge_with_model"]
    max_workers: Optional[int] = CALORIE_CONFIG["max_workers"]

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        load_dotenv()
        settings = cls(
            model=os.getenv("CALORIE_MODEL") or CALORIE_CONFIG["model"],
            num_samples=_env_int("CALORIE_NUM_SAMPLES", CALORIE_CONFIG["num_samples"]),
            use_food_gate=_env_flag("CALORIE_FOOD_GATE", CALORIE_CONFIG["use_food_gate"]),
            merge_with_model=_env_flag("CALORIE_MODEL_MERGE", CALORIE_CONFIG["merge_with_model"]),
            max_workers=_env_int("CALORIE_MAX_WORKERS", CALORIE_CONFIG["max_workers"]),
        )
        if settings.num_samples < 1:
            raise ConfigurationError("CALORIE_NUM_SAMPLES must be at least 1")
        return settings


# =============================================================================
# PIPELINE
# =============================================================================
def analyze_meal(
    request: AnalysisRequest,
    generator: TextGenerator,
    settings: Optional[PipelineSettings] = None,
) -> CalorieBreakdown:
    """
    Run Gate -> Sampler -> Reduce for one request.

    Returns the consensus breakdown, or an error-shaped result when the
    image is not food or no sample survived validation.
    """
    settings = settings or PipelineSettings()

    if settings.use_food_gate and not is_food_image(request, generator):
        return error_result(NOT_FOOD_ERROR)

    candidates = collect_candidates(
        request,
        generator,
        num_samples=settings.num_samples,
        max_workers=settings.max_workers,
    )

    if not candidates:
        return error_result(NO_VALID_SAMPLES_ERROR)

    merge_model = generator if settings.merge_with_model else None
    result = reduce_candidates(candidates, merge_model)
    print("✅ Consensus result found")
    return result


def get_calorie_breakdown(
    image_data_base64: str,
    mime_type: str,
    meal_context: str = "",
    generator: Optional[TextGenerator] = None,
    settings: Optional[PipelineSettings] = None,
) -> Dict[str, Any]:
    """
    Estimate calories and macros for a meal photo.

    Args:
        image_data_base64: Base64 image payload (no data-URL prefix).
        mime_type: Image MIME type, e.g. "image/jpeg".
        meal_context: Optional free-text description from the user.
        generator: Injected model; built from GEMINI_API_KEY when omitted.
        settings: Pipeline knobs; read from the environment when omitted.

    Returns:
        Wire-format breakdown dict. On failure: {"error": ...,
        "totalEstimatedCalories": 0, "items": []}.
    """
    try:
        request = AnalysisRequest(
            image_base64=image_data_base64,
            mime_type=mime_type,
            meal_context=meal_context,
        )
        settings = settings or PipelineSettings.from_env()
        if generator is None:
            generator = GeminiGenerator(api_key=load_api_key(), model=settings.model)

        print(f"📸 Analyzing meal image ({request.mime_type}, context: {request.meal_context[:50]!r})")
        return analyze_meal(request, generator, settings).to_response()

    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
    except ValidationError as e:
        print(f"❌ Invalid analysis request: {e}")
    except Exception as e:
        print(f"❌ Error calling Gemini API: {e}")

    return error_result(PIPELINE_FAILURE_ERROR).to_response()


__all__ = [
    "get_calorie_breakdown",
    "analyze_meal",
    "PipelineSettings",
    "CALORIE_CONFIG",
]
