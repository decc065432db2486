# tests/domains/test_lims_json_repair.py

"""
AI 응답 JSON 복구(json_repair) 모듈의 단위 테스트입니다.
"""

import json

import pytest

from labflow.domains.lims import json_repair
from labflow.domains.lims.json_repair import RepairStep


def test_valid_json_is_returned_as_is():
    text = '{"assessment": "ok", "recommendations": [], "overall_status": "normal"}'
    result = json_repair.repair_json(text)
    assert result.step == RepairStep.STRICT
    assert result.degraded is False
    assert result.data == json.loads(text)


def test_code_fence_is_removed():
    text = '```json\n{"assessment": "ok", "overall_status": "normal"}\n```'
    result = json_repair.repair_json(text)
    assert result.step == RepairStep.FENCE
    assert result.data["overall_status"] == "normal"


def test_unterminated_code_fence_is_removed():
    text = '```json\n{"assessment": "ok", "flagged_issues": ["a", "b"'
    result = json_repair.repair_json(text)
    assert result.degraded is False
    assert result.data["flagged_issues"] == ["a", "b"]


def test_trailing_commas_are_removed():
    text = '{"flagged_issues": ["WBC high",], "overall_status": "abnormal",}'
    result = json_repair.repair_json(text)
    assert result.step == RepairStep.TRAILING_COMMA
    assert result.data == {"flagged_issues": ["WBC high"], "overall_status": "abnormal"}


def test_truncated_inside_array_element_drops_incomplete_element():
    """배열 원소 안의 문자열 중간에서 잘린 응답은 완결된 앞 원소만 남깁니다."""
    text = '{"assessment":"ok","recommendations":[{"parameter_id":"p1","reason":"high'
    result = json_repair.repair_json(text)

    assert result.degraded is False
    assert result.data["assessment"] == "ok"
    assert result.data["recommendations"] == []


def test_truncated_after_complete_elements_keeps_them():
    text = (
        '{"assessment":"ok","recommendations":['
        '{"parameter_id":1,"reason":"high WBC","confidence":"high"},'
        '{"parameter_id":2,"reason":"lo'
    )
    result = json_repair.repair_json(text)

    assert result.degraded is False
    assert result.data["recommendations"] == [{"parameter_id": 1, "reason": "high WBC", "confidence": "high"}]


def test_truncated_after_colon_drops_property():
    text = '{"assessment": "Elevated WBC", "overall_status":'
    result = json_repair.repair_json(text)
    assert result.step == RepairStep.STRUCTURAL
    assert result.data == {"assessment": "Elevated WBC"}


def test_truncated_string_value_outside_array_drops_property():
    text = '{"overall_status": "abnormal", "assessment": "The patient sho'
    result = json_repair.repair_json(text)
    assert result.data == {"overall_status": "abnormal"}


def test_truncated_key_without_value_is_dropped():
    text = '{"assessment": "ok", "flagged_iss'
    result = json_repair.repair_json(text)
    assert result.data == {"assessment": "ok"}


def test_truncated_number_literal_is_kept():
    text = '{"assessment": "ok", "score": 12'
    result = json_repair.repair_json(text)
    assert result.data == {"assessment": "ok", "score": 12}


def test_escaped_quotes_are_not_string_terminators():
    text = '{"assessment": "value \\"quoted\\" here", "flagged_issues": ["x"'
    result = json_repair.repair_json(text)
    assert result.data["assessment"] == 'value "quoted" here'
    assert result.data["flagged_issues"] == ["x"]


def test_leading_prose_is_skipped():
    text = 'Here is the analysis:\n{"assessment": "ok", "overall_status": "normal",}'
    result = json_repair.repair_json(text)
    assert result.step == RepairStep.EXTRACTED
    assert result.data["overall_status"] == "normal"


@pytest.mark.parametrize("text", ["", "not json at all", "}}}]]]", None])
def test_unrecoverable_text_falls_back_without_raising(text):
    result = json_repair.repair_json(text)

    assert result.step == RepairStep.FALLBACK
    assert result.degraded is True
    assert result.data["recommendations"] == []
    assert result.data["flagged_issues"] == [json_repair.FALLBACK_ISSUE]
    assert result.data["overall_status"] == "abnormal"
    assert result.data["assessment"] == (text or "")[:500]


def test_fallback_keeps_only_excerpt_of_raw_text():
    text = "x" * 2000
    result = json_repair.repair_json(text)
    assert len(result.data["assessment"]) == 500


def test_truncated_array_step_fills_defaults():
    data = json_repair._recover_truncated_array('{"recommendations": [{"a": 1}, {"b": "tr', json_repair.ASSESSMENT_DEFAULTS)
    assert data["recommendations"] == [{"a": 1}]
    assert data["flagged_issues"] == []
    assert data["overall_status"] == "abnormal"


@pytest.mark.parametrize(
    "text",
    [
        '{"assessment": "ok"}',
        '```json\n{"assessment": "ok"}\n```',
        '{"assessment":"ok","recommendations":[{"parameter_id":"p1","reason":"high',
        '{"flagged_issues": ["a",], }',
        "garbage",
    ],
)
def test_repair_text_is_idempotent(text):
    once = json_repair.repair_json_text(text)
    twice = json_repair.repair_json_text(once)
    assert twice == once
    json.loads(once)
