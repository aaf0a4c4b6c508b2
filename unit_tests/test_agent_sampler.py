# unit_tests/test_agent_sampler.py
"""
Unit Tests for Sampler Agent
============================
Run with: python -m pytest unit_tests/test_agent_sampler.py -v
"""

import sys
import time
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from agents.sampler_agent import build_analysis_prompt, collect_candidates
from tools.calorie_schema import CalorieBreakdown
from tools.gemini_client import ModelCallError


def test_prompt_carries_context():
    assert '"Homemade lunch"' in build_analysis_prompt("Homemade lunch")
    assert "No additional context provided" in build_analysis_prompt("")
    prompt = build_analysis_prompt("x")
    for key in ("mealDescription", "totalEstimatedCalories", "itemName", "protein_g", "confidenceScore", "assumptionsMade"):
        assert key in prompt


def test_all_samples_succeed(fake_generator, analysis_request, breakdown_json):
    generator = fake_generator(samples=breakdown_json())
    candidates = collect_candidates(analysis_request, generator, num_samples=5)

    assert len(candidates) == 5
    assert generator.count("analysis") == 5
    assert generator.count("validation") == 5


def test_partial_failure_keeps_call_order(fake_generator, analysis_request, breakdown_json):
    """Failed samples drop out; survivors keep their call-index order."""
    print("\n" + "=" * 60)
    print("TEST: Partial Failure")
    print("=" * 60)

    samples = [
        breakdown_json(description="First", calories=(100,), names=("A",)),
        ModelCallError("quota"),
        "no json here",
        breakdown_json(description="Fourth", calories=(400,), names=("D",)),
        ModelCallError("timeout"),
    ]
    generator = fake_generator(samples=samples, validation="fail")
    candidates = collect_candidates(analysis_request, generator, num_samples=5, max_workers=1)

    assert [c.meal_description for c in candidates] == ["First", "Fourth"]
    print("✅ Survivors in call order")


def test_all_samples_fail(fake_generator, analysis_request):
    generator = fake_generator(samples=ModelCallError("down"))
    assert collect_candidates(analysis_request, generator, num_samples=3) == []
    assert generator.count("analysis") == 3


def test_invalid_sample_count(fake_generator, analysis_request):
    with pytest.raises(ValueError):
        collect_candidates(analysis_request, fake_generator(), num_samples=0)


def test_results_ordered_by_call_not_completion(monkeypatch, fake_generator, analysis_request):
    """The earliest call finishes last but still comes first."""
    import agents.sampler_agent as sampler_agent

    def slow_early_sample(request, generator, index, num_samples):
        time.sleep((num_samples - index) * 0.05)
        return CalorieBreakdown(meal_description=f"sample {index}")

    monkeypatch.setattr(sampler_agent, "run_single_sample", slow_early_sample)
    candidates = collect_candidates(analysis_request, fake_generator(), num_samples=3, max_workers=3)

    assert [c.meal_description for c in candidates] == ["sample 0", "sample 1", "sample 2"]

if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
