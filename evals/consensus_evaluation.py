# evals/consensus_evaluation.py
"""
Meal Calorie Analyzer — Consensus Evaluation Suite
==================================================
Offline evaluation of the reconciliation pipeline.

Each case scripts what the model says (gate answer, N sample replies, the
self-correction behaviour, an optional merge reply) and replays it through
analyze_meal(). Cases cover:
- Clean, fenced and commentary-polluted JSON
- Failing sample calls and total failure
- Disagreeing samples and the majority vote
- Non-food images and gate outages (fail-open)
- Model-assisted merge

No API key or network is needed.
"""

import os
import sys
import json
import threading
import time
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple, Union
from dataclasses import dataclass, field, asdict
import statistics

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from agents.calorie_agent import PipelineSettings, analyze_meal
from agents.consensus_agent import MERGE_PROMPT
from agents.food_gate_agent import FOOD_GATE_PROMPT
from agents.sampler_agent import ANALYSIS_PROMPT
from agents.validation_agent import VALIDATION_PROMPT
from tools.calorie_schema import NO_VALID_SAMPLES_ERROR, NOT_FOOD_ERROR, AnalysisRequest
from tools.gemini_client import ImageInput, ModelCallError, TextGenerator
from tools.image_parser import load_image_file

# 1x1 transparent PNG
SAMPLE_IMAGE_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

Reply = Union[str, Exception]


# =============================================================================
# SCRIPTED MODEL
# =============================================================================
def _prefix(template: str, placeholder: str) -> str:
    return template.split(placeholder)[0]


def classify_prompt(prompt: str) -> str:
    """Which pipeline stage sent this prompt: gate, analysis, validation or merge."""
    if prompt == FOOD_GATE_PROMPT:
        return "gate"
    if prompt.startswith(_prefix(VALIDATION_PROMPT, "{candidate}")):
        return "validation"
    if prompt.startswith(_prefix(MERGE_PROMPT, "{count}")):
        return "merge"
    if prompt.startswith(_prefix(ANALYSIS_PROMPT, "{meal_context}")):
        return "analysis"
    return "unknown"


def echoed_candidate(prompt: str) -> str:
    """The candidate JSON embedded in a validation prompt."""
    head, tail = VALIDATION_PROMPT.split("{candidate}")
    return prompt[len(head):len(prompt) - len(tail)]


class ReplayGenerator(TextGenerator):
    """
    Replays scripted replies per stage.

    - gate: one reply reused for every gate call
    - analysis: consumed in call order (use max_workers=1 for a fixed order)
    - validation: "echo" confirms the candidate, "fail" raises ModelCallError
    - merge: one reply, or None to fail the merge call
    """

    def __init__(
        self,
        samples: List[Reply],
        gate_answer: Reply = "true",
        validation: str = "echo",
        merge_reply: Optional[Reply] = None,
    ):
        self.samples = list(samples)
        self.gate_answer = gate_answer
        self.validation = validation
        self.merge_reply = merge_reply
        self.calls: List[str] = []
        self._lock = threading.Lock()
        self._next_sample = 0

    def _reply(self, reply: Reply) -> str:
        if isinstance(reply, Exception):
            raise reply
        return reply

    def generate(self, prompt: str, image: Optional[ImageInput] = None) -> str:
        kind = classify_prompt(prompt)
        with self._lock:
            self.calls.append(kind)
            if kind == "analysis":
                index = self._next_sample
                self._next_sample += 1

        if kind == "gate":
            return self._reply(self.gate_answer)
        if kind == "analysis":
            if index >= len(self.samples):
                raise ModelCallError("no scripted sample left")
            return self._reply(self.samples[index])
        if kind == "validation":
            if self.validation == "echo":
                return echoed_candidate(prompt)
            raise ModelCallError("self-correction disabled for this case")
        if kind == "merge":
            if self.merge_reply is None:
                raise ModelCallError("merge disabled for this case")
            return self._reply(self.merge_reply)
        raise ModelCallError(f"unexpected prompt: {prompt[:40]!r}")


# =============================================================================
# EVALUATION DATA STRUCTURES
# =============================================================================

@dataclass
class EvalCase:
    """Single evaluation test case."""
    id: str
    category: str
    samples: List[Reply]
    gate_answer: Reply = "true"
    validation: str = "echo"
    merge_reply: Optional[Reply] = None
    expected_error: Optional[str] = None
    expected_calories: Optional[float] = None
    calorie_tolerance: float = 0.0
    expected_items: List[str] = field(default_factory=list)
    expected_note: Optional[str] = None
    description: str = ""


@dataclass
class EvalResult:
    """Result of a single evaluation."""
    case_id: str
    passed: bool
    score: float  # 0.0 to 1.0
    latency_ms: float
    response: Dict[str, Any]
    details: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


@dataclass
class EvalSummary:
    """Summary of evaluation run."""
    total_cases: int
    passed_cases: int
    failed_cases: int
    pass_rate: float
    avg_score: float
    avg_latency_ms: float
    category_scores: Dict[str, float]
    timestamp: str
    duration_seconds: float


# =============================================================================
# EVALUATION TEST CASES
# =============================================================================

def _breakdown(description: str, items: List[Tuple[str, str, float]], confidence: float = 0.8) -> str:
    payload = {
        "mealDescription": description,
        "totalEstimatedCalories": sum(cal for _, _, cal in items),
        "items": [
            {"itemName": name, "quantity": qty, "calories": cal,
             "protein_g": 10, "carbs_g": 20, "fat_g": 5}
            for name, qty, cal in items
        ],
        "confidenceScore": confidence,
        "assumptionsMade": "Standard serving sizes assumed.",
    }
    return json.dumps(payload)


CHICKEN_RICE = _breakdown(
    "Grilled chicken with rice",
    [("Grilled chicken breast", "150g", 250), ("White rice", "1 cup", 200)],
)
PASTA = _breakdown("Spaghetti bolognese", [("Spaghetti bolognese", "1 plate", 650)], confidence=0.7)
SALAD = _breakdown("Caesar salad", [("Caesar salad", "1 bowl", 350)], confidence=0.9)

FENCED_WITH_TRAILING_COMMA = (
    "```json\n"
    '{"mealDescription": "Avocado toast", "totalEstimatedCalories": 320, '
    '"items": [{"itemName": "Avocado toast", "quantity": "2 slices", "calories": 320,},],}\n'
    "```"
)

COMMENTARY_POLLUTED = (
    "Here is the analysis you asked for:\n"
    '{"mealDescription": "Cheeseburger" probably a double, "totalEstimatedCalories": 780, '
    '"items": [{"itemName": "Cheeseburger" with fries, "quantity": "1", "calories": 780}]}\n'
    "Let me know if you need anything else."
)

MISSING_TOTAL = (
    '{"mealDescription": "Banana", "totalEstimatedCalories", '
    '"items": [{"itemName": "Banana", "quantity": "1 medium", "calories": 105}]}'
)

EVAL_CASES: List[EvalCase] = [
    # === Output repair ===
    EvalCase(
        id="repair_clean_json",
        category="output_repair",
        samples=[CHICKEN_RICE] * 5,
        expected_calories=450,
        expected_items=["Grilled chicken breast", "White rice"],
        expected_note="consensus from 5/5 analyses",
        description="Clean JSON from every sample should pass untouched"
    ),
    EvalCase(
        id="repair_fenced_trailing_commas",
        category="output_repair",
        samples=[FENCED_WITH_TRAILING_COMMA] * 3,
        validation="fail",
        expected_calories=320,
        expected_items=["Avocado toast"],
        description="Code fences and trailing commas are stripped without the model"
    ),
    EvalCase(
        id="repair_interleaved_commentary",
        category="output_repair",
        samples=[COMMENTARY_POLLUTED] * 3,
        validation="fail",
        expected_calories=780,
        expected_items=["Cheeseburger"],
        description="Commentary around and inside the JSON is dropped"
    ),
    EvalCase(
        id="repair_missing_value",
        category="output_repair",
        samples=[MISSING_TOTAL],
        validation="fail",
        expected_calories=0,
        expected_items=["Banana"],
        description="A key without a value defaults to 0"
    ),

    # === Sampling resilience ===
    EvalCase(
        id="sampling_partial_failure",
        category="sampling",
        samples=[ModelCallError("quota"), SALAD, ModelCallError("timeout"), SALAD, "not json at all"],
        validation="fail",
        expected_calories=350,
        expected_items=["Caesar salad"],
        expected_note="consensus from 2/2 analyses",
        description="Failed samples are dropped; survivors still reach consensus"
    ),
    EvalCase(
        id="sampling_total_failure",
        category="sampling",
        samples=[ModelCallError("down")] * 5,
        expected_error=NO_VALID_SAMPLES_ERROR,
        description="No surviving sample yields the structured error"
    ),

    # === Consensus ===
    EvalCase(
        id="consensus_majority",
        category="consensus",
        samples=[PASTA, CHICKEN_RICE, PASTA, CHICKEN_RICE, PASTA],
        expected_calories=650,
        expected_items=["Spaghetti bolognese"],
        expected_note="consensus from 3/5 analyses",
        description="The most frequent breakdown wins"
    ),
    EvalCase(
        id="consensus_confidence_tiebreak",
        category="consensus",
        samples=[PASTA, SALAD, CHICKEN_RICE],
        expected_calories=350,
        expected_items=["Caesar salad"],
        expected_note="consensus from 1/3 analyses",
        description="With no agreement the most confident sample wins"
    ),
    EvalCase(
        id="consensus_model_merge",
        category="consensus",
        samples=[PASTA, SALAD, CHICKEN_RICE],
        merge_reply=_breakdown("Mixed plate", [("Spaghetti bolognese", "1 plate", 500)]),
        expected_calories=500,
        expected_items=["Spaghetti bolognese"],
        expected_note="Merged from 3 analyses",
        description="A valid merge reply replaces the vote"
    ),

    # === Food gate ===
    EvalCase(
        id="gate_not_food",
        category="food_gate",
        samples=[CHICKEN_RICE] * 5,
        gate_answer="false",
        expected_error=NOT_FOOD_ERROR,
        description="A non-food verdict stops the pipeline"
    ),
    EvalCase(
        id="gate_outage_fails_open",
        category="food_gate",
        samples=[SALAD] * 3,
        gate_answer=ModelCallError("gate unavailable"),
        expected_calories=350,
        expected_items=["Caesar salad"],
        description="A gate error lets the analysis go ahead"
    ),
]


# =============================================================================
# SCORING
# =============================================================================

def evaluate_response(case: EvalCase, response: Dict[str, Any], latency_ms: float) -> EvalResult:
    """Score one pipeline result against a case's expectations."""
    score_components: Dict[str, float] = {}
    errors: List[str] = []

    # 1. Error expectation
    actual_error = response.get("error")
    if case.expected_error is not None:
        score_components["error"] = 1.0 if actual_error == case.expected_error else 0.0
        if actual_error != case.expected_error:
            errors.append(f"Expected error {case.expected_error!r}, got {actual_error!r}")
    else:
        score_components["error"] = 0.0 if actual_error else 1.0
        if actual_error:
            errors.append(f"Unexpected error: {actual_error}")

    # 2. Calories within tolerance
    if case.expected_calories is not None:
        actual = response.get("totalEstimatedCalories")
        within = actual is not None and abs(float(actual) - case.expected_calories) <= case.calorie_tolerance
        score_components["calories"] = 1.0 if within else 0.0
        if not within:
            errors.append(f"Calories {actual} not within {case.calorie_tolerance} of {case.expected_calories}")

    # 3. Expected item names
    if case.expected_items:
        names = {str(item.get("itemName", "")).lower() for item in response.get("items", [])}
        found = [name for name in case.expected_items if name.lower() in names]
        score_components["items"] = len(found) / len(case.expected_items)
        missing = set(case.expected_items) - set(found)
        if missing:
            errors.append(f"Missing items: {sorted(missing)}")

    # 4. Reducer annotation
    if case.expected_note:
        note = response.get("assumptionsMade") or ""
        score_components["note"] = 1.0 if case.expected_note in note else 0.0
        if case.expected_note not in note:
            errors.append(f"assumptionsMade lacks {case.expected_note!r}")

    score = statistics.mean(score_components.values())
    return EvalResult(
        case_id=case.id,
        passed=score == 1.0,
        score=score,
        latency_ms=latency_ms,
        response=response,
        details=score_components,
        errors=errors
    )


def run_case(case: EvalCase, request: Optional[AnalysisRequest] = None) -> Dict[str, Any]:
    """Replay one case through the pipeline and return the wire-format result."""
    generator = ReplayGenerator(
        samples=case.samples,
        gate_answer=case.gate_answer,
        validation=case.validation,
        merge_reply=case.merge_reply,
    )
    settings = PipelineSettings(
        num_samples=len(case.samples),
        merge_with_model=case.merge_reply is not None,
        max_workers=1,
    )
    request = request or AnalysisRequest(image_base64=SAMPLE_IMAGE_BASE64, mime_type="image/png")
    return analyze_meal(request, generator, settings).to_response()


def run_evaluation(
    cases: Optional[List[EvalCase]] = None,
    verbose: bool = True,
    request: Optional[AnalysisRequest] = None
) -> Tuple[List[EvalResult], EvalSummary]:
    """
    Run evaluation suite.

    Args:
        cases: List of test cases (uses default if None)
        verbose: Print progress
        request: Image to replay the cases against (a 1x1 PNG if None)

    Returns:
        Tuple of (results list, summary)
    """
    cases = cases or EVAL_CASES
    results = []
    start_time = time.time()

    if verbose:
        print("\n" + "=" * 60)
        print("🧪 Meal Calorie Analyzer — Consensus Evaluation Suite")
        print("=" * 60)
        print(f"   Cases: {len(cases)}")
        print("=" * 60 + "\n")

    for i, case in enumerate(cases):
        if verbose:
            print(f"[{i+1}/{len(cases)}] {case.id}: {case.description[:50]}...")

        start = time.time()
        try:
            response = run_case(case, request)
            latency_ms = (time.time() - start) * 1000
            result = evaluate_response(case, response, latency_ms)
        except Exception as e:
            latency_ms = (time.time() - start) * 1000
            result = EvalResult(
                case_id=case.id,
                passed=False,
                score=0.0,
                latency_ms=latency_ms,
                response={},
                errors=[f"Exception: {e}"]
            )

        results.append(result)

        if verbose:
            status = "✅ PASS" if result.passed else "❌ FAIL"
            print(f"   {status} (score: {result.score:.2f}, latency: {result.latency_ms:.0f}ms)")
            for err in result.errors[:2]:
                print(f"      ⚠️ {err}")

    duration = time.time() - start_time
    passed = sum(1 for r in results if r.passed)

    category_scores = {}
    for cat in set(c.category for c in cases):
        cat_results = [r for r, c in zip(results, cases) if c.category == cat]
        if cat_results:
            category_scores[cat] = statistics.mean(r.score for r in cat_results)

    summary = EvalSummary(
        total_cases=len(results),
        passed_cases=passed,
        failed_cases=len(results) - passed,
        pass_rate=passed / len(results) if results else 0,
        avg_score=statistics.mean(r.score for r in results) if results else 0,
        avg_latency_ms=statistics.mean(r.latency_ms for r in results) if results else 0,
        category_scores=category_scores,
        timestamp=datetime.now().isoformat(),
        duration_seconds=round(duration, 2)
    )

    if verbose:
        print("\n" + "=" * 60)
        print("📊 EVALUATION SUMMARY")
        print("=" * 60)
        print(f"   Total: {summary.total_cases} cases")
        print(f"   Passed: {summary.passed_cases} ({summary.pass_rate:.1%})")
        print(f"   Failed: {summary.failed_cases}")
        print(f"   Avg Score: {summary.avg_score:.2f}")
        print(f"   Duration: {summary.duration_seconds}s")
        print("\n   Category Scores:")
        for cat, score in sorted(category_scores.items()):
            print(f"      {cat}: {score:.2f}")
        print("=" * 60)

    return results, summary


# =============================================================================
# EXPORT RESULTS
# =============================================================================

def export_results(
    results: List[EvalResult],
    summary: EvalSummary,
    output_path: str = "evals/results"
):
    """Export evaluation results to JSON files."""
    os.makedirs(output_path, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    results_file = os.path.join(output_path, f"eval_results_{timestamp}.json")
    with open(results_file, "w") as f:
        json.dump([asdict(r) for r in results], f, indent=2)

    summary_file = os.path.join(output_path, f"eval_summary_{timestamp}.json")
    with open(summary_file, "w") as f:
        json.dump(asdict(summary), f, indent=2)

    print(f"\n📁 Results exported to: {output_path}")
    return results_file, summary_file


# =============================================================================
# CLI RUNNER
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Run evaluation from command line."""
    import argparse

    parser = argparse.ArgumentParser(description="Meal Calorie Analyzer Consensus Evaluation")
    parser.add_argument("--export", action="store_true", help="Export results to JSON")
    parser.add_argument("--output", default="evals/results", help="Export directory")
    parser.add_argument("--quiet", action="store_true", help="Minimal output")
    parser.add_argument("--image", help="Replay the cases against this meal photo")

    args = parser.parse_args(argv)

    request = None
    if args.image:
        loaded = load_image_file(args.image)
        if loaded["status"] != "success":
            print(f"❌ {loaded['error_message']}")
            return 2
        request = AnalysisRequest(
            image_base64=loaded["data"]["image_base64"],
            mime_type=loaded["data"]["mime_type"],
        )

    results, summary = run_evaluation(verbose=not args.quiet, request=request)

    if args.export:
        export_results(results, summary, output_path=args.output)

    if summary.pass_rate >= 0.8:
        print("\n✅ Evaluation PASSED")
        return 0
    print("\n❌ Evaluation FAILED")
    return 1


if __name__ == "__main__":
    sys.exit(main())
