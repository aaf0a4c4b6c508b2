# tools/gemini_client.py
"""
Meal Calorie Analyzer — Gemini Text Generator
=============================================
The pipeline's only upstream capability: send a prompt (plus an optional
inline image) and get free text back. Every stage receives a TextGenerator
explicitly, so tests can swap in a scripted fake.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from google import genai
from google.genai import types

from tools.calorie_schema import AnalysisRequest

# =============================================================================
# CONFIGURATION
# =============================================================================
DEFAULT_MODEL = "gemini-2.0-flash"

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")

SAFETY_SETTINGS = [
    types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE)
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
]


# =============================================================================
# ERRORS
# =============================================================================
class ConfigurationError(RuntimeError):
    """Required configuration (the API key) is missing."""


class ModelCallError(RuntimeError):
    """A model call failed: transport, quota, safety block or empty reply."""


# =============================================================================
# CAPABILITY INTERFACE
# =============================================================================
@dataclass(frozen=True)
class ImageInput:
    data: bytes
    mime_type: str

    @classmethod
    def from_request(cls, request: AnalysisRequest) -> "ImageInput":
        return cls(data=request.image_bytes, mime_type=request.mime_type)


class TextGenerator(ABC):
    """generate(prompt, image) -> text; raises ModelCallError on failure."""

    @abstractmethod
    def generate(self, prompt: str, image: Optional[ImageInput] = None) -> str:
        raise NotImplementedError


def load_api_key() -> str:
    """
    Read the Gemini API key from the environment (.env supported).

    Raises:
        ConfigurationError: if no key is configured.
    """
    load_dotenv()
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    raise ConfigurationError("GEMINI_API_KEY is not defined in environment variables")


# =============================================================================
# GEMINI IMPLEMENTATION
# =============================================================================
class GeminiGenerator(TextGenerator):
    """TextGenerator backed by google-genai. Build one per pipeline run."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, temperature: Optional[float] = None):
        self.client = genai.Client(api_key=api_key)
        self.model = model
        self.config = types.GenerateContentConfig(
            safety_settings=SAFETY_SETTINGS,
            temperature=temperature,
        )

    def generate(self, prompt: str, image: Optional[ImageInput] = None) -> str:
        contents = [prompt]
        if image is not None:
            contents.append(types.Part.from_bytes(data=image.data, mime_type=image.mime_type))

        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=contents,
                config=self.config,
            )
        except Exception as e:
            raise ModelCallError(f"Gemini call failed: {e}") from e

        text = getattr(response, "text", None)
        if not text:
            raise ModelCallError("Gemini returned an empty response")
        return text


__all__ = [
    "TextGenerator",
    "GeminiGenerator",
    "ImageInput",
    "ModelCallError",
    "ConfigurationError",
    "load_api_key",
    "DEFAULT_MODEL",
]
