# unit_tests/test_tool_json_repair.py
"""
Unit Tests for Model Output Cleaner
===================================
Run with: python -m pytest unit_tests/test_tool_json_repair.py -v
"""

import json
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from tools.json_repair import (
    clean_model_response,
    extract_json_object,
    parse_breakdown,
    patch_missing_values,
    remove_interleaved_commentary,
    strip_code_fences,
    strip_trailing_commas,
    unwrap_model_reply,
)


# =============================================================================
# INDIVIDUAL STEPS
# =============================================================================

def test_strip_code_fences():
    """Fence markers with or without a language tag are removed."""
    print("\n" + "=" * 60)
    print("TEST: Strip Code Fences")
    print("=" * 60)

    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'
    print("✅ Fences stripped")


def test_strip_code_fences_keeps_string_contents():
    """Backticks inside a string value are data, not fences."""
    text = '```json\n{"assumptionsMade":"see ```json note"}\n```'
    assert strip_code_fences(text) == '{"assumptionsMade":"see ```json note"}'
    assert clean_model_response('{"assumptionsMade":"see ```json note"}') == '{"assumptionsMade":"see ```json note"}'


def test_extract_json_object():
    """Only the outermost {...} span survives; no braces means unchanged."""
    assert extract_json_object('Sure! {"a": {"b": 2}} Hope that helps.') == '{"a": {"b": 2}}'
    assert extract_json_object("no json here") == "no json here"


def test_remove_interleaved_commentary():
    """Prose after a string literal is dropped up to the next delimiter."""
    text = '{"mealDescription": "Pizza" looks like pepperoni, "totalEstimatedCalories": 800}'
    assert remove_interleaved_commentary(text) == '{"mealDescription": "Pizza", "totalEstimatedCalories": 800}'


def test_remove_interleaved_commentary_keeps_string_contents():
    """Delimiters and quotes inside string values are not touched."""
    text = '{"assumptionsMade": "1 cup, about 200g: cooked", "quantity": "say \\"two\\" slices"}'
    assert remove_interleaved_commentary(text) == text


def test_patch_missing_values():
    """A key followed directly by a comma gets a default of 0."""
    print("\n" + "=" * 60)
    print("TEST: Patch Missing Values")
    print("=" * 60)

    assert patch_missing_values('{"totalEstimatedCalories",}') == '{"totalEstimatedCalories": 0,}'
    assert patch_missing_values('"totalEstimatedCalories",}') == '"totalEstimatedCalories": 0,}'
    print("✅ Missing value patched")


def test_patch_missing_values_ignores_string_values():
    """Ordinary string values followed by a comma are left alone."""
    text = '{"mealDescription": "Soup", "items": ["a", "b"], "x": 1}'
    assert patch_missing_values(text) == text


def test_strip_trailing_commas():
    assert strip_trailing_commas('{"a": 1,}') == '{"a": 1}'
    assert json.loads(strip_trailing_commas('{"a": [1, 2, ], }')) == {"a": [1, 2]}


def test_strip_trailing_commas_inside_strings_untouched():
    text = '{"note": "a,}"}'
    assert strip_trailing_commas(text) == text


# =============================================================================
# FULL CLEANUP
# =============================================================================

@pytest.mark.parametrize("payload", [
    {"mealDescription": "Salad", "totalEstimatedCalories": 120, "items": []},
    {"mealDescription": "Toast, butter: jam", "items": [{"itemName": "Toast", "quantity": "2", "calories": 160}]},
    {"assumptionsMade": "quoted \"portion\", {braces} and [brackets],", "totalEstimatedCalories": 0},
    {"assumptionsMade": "see ```json note and ``` here", "mealDescription": "Fenced"},
])
def test_clean_is_identity_on_valid_json(payload):
    """Valid minified and pretty JSON pass through byte-for-byte."""
    for text in (json.dumps(payload, separators=(",", ":")), json.dumps(payload), json.dumps(payload, indent=2)):
        assert clean_model_response(text) == text


def test_clean_is_idempotent(breakdown_json):
    messy = "```json\n" + breakdown_json().replace("}]", "},]") + "\n```"
    once = clean_model_response(messy)
    assert clean_model_response(once) == once
    json.loads(once)


def test_clean_full_messy_reply():
    """Fences, chatter, commentary, a missing value and trailing commas together."""
    print("\n" + "=" * 60)
    print("TEST: Full Cleanup")
    print("=" * 60)

    raw = (
        "Here you go!\n```json\n"
        '{"mealDescription": "Burger" with cheese, "totalEstimatedCalories", '
        '"items": [{"itemName": "Burger", "quantity": "1", "calories": 700,},],}\n'
        "```\nEnjoy!"
    )
    cleaned = clean_model_response(raw)
    print(f"Cleaned: {cleaned}")

    data = json.loads(cleaned)
    assert data["mealDescription"] == "Burger"
    assert data["totalEstimatedCalories"] == 0
    assert data["items"][0]["calories"] == 700
    print("✅ Messy reply repaired")


def test_unwrap_model_reply():
    assert unwrap_model_reply('```json\n{"a": 1}\n```') == '{"a": 1}'


# =============================================================================
# PARSING
# =============================================================================

def test_parse_breakdown_valid(breakdown_json):
    breakdown = parse_breakdown(breakdown_json())
    assert breakdown.total_estimated_calories == 450
    assert [item.item_name for item in breakdown.items] == ["Grilled chicken breast", "White rice"]


def test_parse_breakdown_accepts_numeric_strings():
    text = json.dumps({
        "mealDescription": "Rice",
        "totalEstimatedCalories": 130,
        "items": [{"itemName": "Rice", "quantity": 100, "calories": "130", "protein_g": "2.7"}],
    })
    breakdown = parse_breakdown(text)
    assert breakdown.items[0].calories == 130
    assert breakdown.items[0].quantity == "100"
    assert breakdown.items[0].protein_g == 2.7


@pytest.mark.parametrize("text", [
    "not json",
    "[1, 2, 3]",
    '{"items": [{"quantity": "1"}]}',
    '{"confidenceScore": 3}',
    '{"error": "cannot see food"}',
])
def test_parse_breakdown_rejects(text):
    with pytest.raises(ValueError):
        parse_breakdown(text)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
