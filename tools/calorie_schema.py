# tools/calorie_schema.py
"""
Meal Calorie Analyzer — Data Schemas
====================================
Pydantic models for the analysis request and the calorie breakdown returned
to clients. Field aliases carry the camelCase wire names the model is asked
to produce; Python code uses the snake_case attribute names.
"""

import base64
import binascii
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Number = Union[int, float]

# =============================================================================
# USER-FACING ERROR MESSAGES
# =============================================================================
NOT_FOOD_ERROR = (
    "The uploaded image does not appear to contain food. "
    "Please upload a photo of a meal."
)
NO_VALID_SAMPLES_ERROR = (
    "Failed to get any valid calorie breakdown from AI after multiple attempts."
)
PIPELINE_FAILURE_ERROR = (
    "Failed to get calorie breakdown from AI. Please try again later."
)


# =============================================================================
# REQUEST
# =============================================================================
class AnalysisRequest(BaseModel):
    """One immutable pipeline input: the image plus optional meal context."""

    model_config = ConfigDict(frozen=True)

    image_base64: str = Field(..., min_length=1)
    mime_type: str = Field(..., description="e.g. 'image/jpeg'")
    meal_context: str = ""

    @field_validator("mime_type")
    @classmethod
    def _check_mime_type(cls, value: str) -> str:
        value = value.strip().lower()
        if not value.startswith("image/"):
            raise ValueError(f"Unsupported MIME type: {value}")
        return value

    @field_validator("image_base64")
    @classmethod
    def _check_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Image data is not valid base64: {e}")
        return value

    @field_validator("meal_context", mode="before")
    @classmethod
    def _none_context(cls, value: Any) -> str:
        return value or ""

    @property
    def image_bytes(self) -> bytes:
        return base64.b64decode(self.image_base64)


# =============================================================================
# RESULT
# =============================================================================
class FoodItem(BaseModel):
    """A single identified food item. Numbers are best-effort estimates."""

    model_config = ConfigDict(populate_by_name=True)

    item_name: str = Field(..., alias="itemName")
    quantity: str = Field("", description="Free-form, e.g. '100g', '1 cup'")
    calories: Number
    protein_g: Optional[Number] = None
    carbs_g: Optional[Number] = None
    fat_g: Optional[Number] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity_as_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)):
            return str(value)
        return value


class CalorieBreakdown(BaseModel):
    """
    Calorie breakdown for one meal.

    A result carrying `error` is the failure variant; every other field
    should then be treated as absent.
    """

    model_config = ConfigDict(populate_by_name=True)

    meal_description: Optional[str] = Field(None, alias="mealDescription")
    total_estimated_calories: Optional[Number] = Field(None, alias="totalEstimatedCalories")
    items: List[FoodItem] = Field(default_factory=list)
    confidence_score: Optional[float] = Field(None, alias="confidenceScore", ge=0.0, le=1.0)
    assumptions_made: Optional[str] = Field(None, alias="assumptionsMade")
    error: Optional[str] = None

    @field_validator("items", mode="before")
    @classmethod
    def _null_items(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_response(self) -> Dict[str, Any]:
        """Wire form: camelCase keys, absent fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def with_note(self, note: str) -> "CalorieBreakdown":
        """Copy of this result with `note` appended to assumptionsMade."""
        combined = f"{self.assumptions_made or ''} {note}".strip()
        return self.model_copy(update={"assumptions_made": combined})


def error_result(message: str) -> CalorieBreakdown:
    """The fixed failure shape: error set, zero calories, no items."""
    return CalorieBreakdown(error=message, total_estimated_calories=0, items=[])


__all__ = [
    "AnalysisRequest",
    "FoodItem",
    "CalorieBreakdown",
    "error_result",
    "NOT_FOOD_ERROR",
    "NO_VALID_SAMPLES_ERROR",
    "PIPELINE_FAILURE_ERROR",
]
