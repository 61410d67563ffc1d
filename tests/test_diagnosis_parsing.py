import json
from types import SimpleNamespace

from services.openai.detox_prompts import (
    GENERATION_INSTRUCTION,
    build_generation_prompt,
    build_treatment_user_prompt,
    description_from_prompt,
)
from services.openai.detox_schema import DIAGNOSIS_FUNCTION_NAME
from services.openai.diagnosis_result import (
    coerce_contamination_level,
    coerce_points,
    parse_diagnosis,
    parse_treatment,
)
from services.openai.response_parser import extract_usage, parse_function_arguments
from tests.conftest import function_call_response


def test_parse_function_arguments_reads_named_call():
    args = {"diagnosis_points": ["a"], "contamination_level": 80}
    response = function_call_response(DIAGNOSIS_FUNCTION_NAME, json.dumps(args))
    assert parse_function_arguments(response, tool_name=DIAGNOSIS_FUNCTION_NAME) == args


def test_parse_function_arguments_ignores_other_tools_and_falls_back_to_text():
    response = SimpleNamespace(
        output=[SimpleNamespace(type="function_call", name="something_else", arguments="{}")],
        output_text='{"description": "a meadow"}',
    )
    assert parse_function_arguments(response, tool_name=DIAGNOSIS_FUNCTION_NAME) == {"description": "a meadow"}


def test_parse_function_arguments_malformed_json_yields_empty():
    response = function_call_response(DIAGNOSIS_FUNCTION_NAME, "{not json")
    assert parse_function_arguments(response, tool_name=DIAGNOSIS_FUNCTION_NAME) == {}


def test_parse_function_arguments_nothing_usable():
    response = SimpleNamespace(output=[], output_text="I cannot help with that.")
    assert parse_function_arguments(response, tool_name=DIAGNOSIS_FUNCTION_NAME) == {}


def test_extract_usage_handles_missing_usage():
    assert extract_usage(SimpleNamespace()) == {"input_tokens": None, "output_tokens": None}
    usage = SimpleNamespace(input_tokens=12, output_tokens=34)
    assert extract_usage(SimpleNamespace(usage=usage)) == {"input_tokens": 12, "output_tokens": 34}


def test_contamination_level_is_clamped_and_defaulted():
    assert coerce_contamination_level(0) == 1
    assert coerce_contamination_level(250) == 100
    assert coerce_contamination_level("73") == 73
    assert coerce_contamination_level(66.6) == 67
    assert coerce_contamination_level("very high") == 50
    assert coerce_contamination_level(None) == 50
    assert coerce_contamination_level(True) == 50


def test_coerce_points_drops_junk():
    assert coerce_points(["  one ", "", None, 2, {"x": 1}]) == ["one", "2"]
    assert coerce_points("single") == ["single"]
    assert coerce_points(None) == []


def test_parse_diagnosis_defaults_missing_fields():
    result = parse_diagnosis({"diagnosis_points": ["Severe whimsy"]})
    assert result.diagnosis_points == ["Severe whimsy"]
    assert result.treatment_points == []
    assert result.description == ""
    assert result.contamination_level == 50


def test_parse_diagnosis_tolerates_wrong_types():
    result = parse_diagnosis({"diagnosis_points": "just one", "description": 42, "contamination_level": "??"})
    assert result.diagnosis_points == ["just one"]
    assert result.description == ""
    assert result.contamination_level == 50


def test_parse_treatment_empty():
    assert parse_treatment({}).treatment_points == []


def test_generation_prompt_round_trips_description():
    prompt = build_generation_prompt("  A cat on a rooftop at dusk. ")
    assert prompt.startswith("Scene: A cat on a rooftop at dusk.")
    assert prompt.endswith(GENERATION_INSTRUCTION)
    assert description_from_prompt(prompt) == "A cat on a rooftop at dusk."


def test_description_from_free_form_prompt_is_kept():
    assert description_from_prompt("  a photo of a tree ") == "a photo of a tree"


def test_treatment_prompt_lists_findings():
    text = build_treatment_user_prompt(["Soot sprites", "Flying castle"], 88)
    assert "88/100" in text
    assert "- Soot sprites" in text
    assert "No specific findings" in build_treatment_user_prompt([], 10)
