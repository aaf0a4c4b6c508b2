import io
import json
import sys
import threading
from pathlib import Path
from typing import List, Optional, Union

import pytest

# Add root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from agents.calorie_agent import PipelineSettings
from agents.consensus_agent import MERGE_PROMPT
from agents.food_gate_agent import FOOD_GATE_PROMPT
from agents.sampler_agent import ANALYSIS_PROMPT
from agents.validation_agent import VALIDATION_PROMPT
from tools.calorie_schema import AnalysisRequest
from tools.gemini_client import ModelCallError, TextGenerator

Reply = Union[str, Exception]

# 1x1 transparent PNG
TINY_PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def make_breakdown(description="Grilled chicken with rice", calories=(250, 200),
                   names=("Grilled chicken breast", "White rice"), confidence=0.8):
    """Wire-format breakdown JSON with one item per (name, calories) pair."""
    return json.dumps({
        "mealDescription": description,
        "totalEstimatedCalories": sum(calories),
        "items": [
            {"itemName": name, "quantity": "1 serving", "calories": cal,
             "protein_g": 10, "carbs_g": 20, "fat_g": 5}
            for name, cal in zip(names, calories)
        ],
        "confidenceScore": confidence,
        "assumptionsMade": "Standard serving sizes assumed.",
    })


class FakeGenerator(TextGenerator):
    """
    Scripted model. Routes each prompt by pipeline stage:
    gate / analysis / validation / merge.

    samples: one reply reused for every analysis call, or a list consumed in
    call order. validation: "echo" returns the candidate unchanged, "fail"
    raises, any other string is returned as-is.
    """

    def __init__(
        self,
        samples: Union[Reply, List[Reply]] = "",
        gate: Reply = "true",
        validation: Reply = "echo",
        merge: Optional[Reply] = None,
    ):
        self.samples = samples
        self.gate = gate
        self.validation = validation
        self.merge = merge
        self.calls: List[str] = []
        self.images: List[object] = []
        self._lock = threading.Lock()
        self._sample_index = 0

    @staticmethod
    def kind_of(prompt: str) -> str:
        if prompt == FOOD_GATE_PROMPT:
            return "gate"
        if prompt.startswith(VALIDATION_PROMPT.split("{candidate}")[0]):
            return "validation"
        if prompt.startswith(MERGE_PROMPT.split("{count}")[0]):
            return "merge"
        if prompt.startswith(ANALYSIS_PROMPT.split("{meal_context}")[0]):
            return "analysis"
        return "unknown"

    def count(self, kind: str) -> int:
        return self.calls.count(kind)

    @staticmethod
    def _answer(reply: Reply) -> str:
        if isinstance(reply, Exception):
            raise reply
        return reply

    def generate(self, prompt, image=None):
        kind = self.kind_of(prompt)
        index = 0
        with self._lock:
            self.calls.append(kind)
            self.images.append(image)
            if kind == "analysis":
                index = self._sample_index
                self._sample_index += 1

        if kind == "gate":
            return self._answer(self.gate)
        if kind == "analysis":
            if isinstance(self.samples, list):
                if index >= len(self.samples):
                    raise ModelCallError("no scripted sample left")
                return self._answer(self.samples[index])
            return self._answer(self.samples)
        if kind == "validation":
            if self.validation == "echo":
                head, tail = VALIDATION_PROMPT.split("{candidate}")
                return prompt[len(head):len(prompt) - len(tail)]
            if self.validation == "fail":
                raise ModelCallError("self-correction unavailable")
            return self._answer(self.validation)
        if kind == "merge":
            if self.merge is None:
                raise ModelCallError("merge unavailable")
            return self._answer(self.merge)
        raise ModelCallError(f"unexpected prompt: {prompt[:40]!r}")


@pytest.fixture
def fake_generator():
    """Factory: fake_generator(samples=..., gate=..., validation=..., merge=...)."""
    return FakeGenerator


@pytest.fixture
def breakdown_json():
    """Factory for wire-format breakdown JSON strings."""
    return make_breakdown


@pytest.fixture
def analysis_request():
    return AnalysisRequest(
        image_base64=TINY_PNG_BASE64,
        mime_type="image/png",
        meal_context="Homemade lunch",
    )


@pytest.fixture
def serial_settings():
    """Deterministic pipeline settings: one worker, deterministic reducer."""
    return PipelineSettings(num_samples=5, use_food_gate=True, merge_with_model=False, max_workers=1)


@pytest.fixture
def png_bytes():
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (8, 6), color=(200, 120, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(10, 200, 90)).save(buffer, format="JPEG")
    return buffer.getvalue()
