# labflow/domains/lims/json_repair.py

"""
외부 텍스트 생성기(AI)의 JSON 응답을 복구하는 모듈입니다.

토큰 한도로 응답이 중간에 잘리거나 코드 펜스(```json)로 감싸져 오는 경우를 처리합니다.
엄격한 파싱이 실패한 경우에만 아래 단계를 순서대로 시도하며,
앞 단계가 실패했을 때만 다음 단계로 넘어갑니다.

1. 코드 펜스 제거
2. 닫는 괄호 앞의 trailing comma 제거
3. 구조 복구: 문자열/괄호 스택을 추적하며 미완성 속성을 버리고 괄호를 닫음
4. 잘린 배열 복구: 마지막 `},` 이후를 잘라내고 필수 필드를 기본값으로 채움
5. 첫 `{` 부터의 부분 문자열에 2~4단계를 재시도
6. fallback: 원문 일부를 요약으로 담은 최소 구조 (실패하지 않음)

어떤 단계도 예외를 밖으로 던지지 않습니다.
"""

import copy
import json
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from labflow.core.config import settings

ASSESSMENT_DEFAULTS: Dict[str, Any] = {
    "recommendations": [],
    "flagged_issues": [],
    "overall_status": "abnormal",
}
FALLBACK_ISSUE = "Error parsing AI response"

_FENCE_RE = re.compile(r"^\s*```[\w+-]*[ \t]*\n?(?P<body>.*?)\n?\s*```\s*$", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"^\s*```[\w+-]*[ \t]*\n?")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_LITERAL_RE = re.compile(r"^(-?\d+(\.\d+)?([eE][+-]?\d+)?|true|false|null)$")

_CLOSERS = {"{": "}", "[": "]"}


class RepairStep(str, Enum):
    STRICT = "strict"
    FENCE = "fence"
    TRAILING_COMMA = "trailing_comma"
    STRUCTURAL = "structural"
    TRUNCATED_ARRAY = "truncated_array"
    EXTRACTED = "extracted"
    FALLBACK = "fallback"


class RepairResult(BaseModel):
    data: Any
    step: RepairStep
    degraded: bool = False


# =============================================================================
# 공개 함수
# =============================================================================
def repair_json(text: str, defaults: Optional[Dict[str, Any]] = None) -> RepairResult:
    """항상 파싱 가능한 구조를 반환합니다. 정보 손실이 가장 적은 단계의 결과를 우선합니다."""
    if defaults is None:
        defaults = ASSESSMENT_DEFAULTS
    text = text or ""

    ok, data = _loads(text)
    if ok:
        return RepairResult(data=data, step=RepairStep.STRICT)

    unfenced = strip_code_fence(text)
    if unfenced != text:
        ok, data = _loads(unfenced)
        if ok:
            return RepairResult(data=data, step=RepairStep.FENCE)

    found = _repair_steps(unfenced, defaults)
    if found is not None:
        return RepairResult(data=found[1], step=found[0])

    start = unfenced.find("{")
    if start > 0:
        found = _repair_steps(unfenced[start:], defaults)
        if found is not None:
            return RepairResult(data=found[1], step=RepairStep.EXTRACTED)

    return RepairResult(data=fallback_structure(text, defaults), step=RepairStep.FALLBACK, degraded=True)


def repair_json_text(text: str, defaults: Optional[Dict[str, Any]] = None) -> str:
    """
    텍스트 형태로 복구 결과를 돌려줍니다.
    이미 유효한 JSON이면 원문 그대로, 아니면 복구된 구조의 JSON 직렬화 문자열을 반환하므로
    결과를 다시 넣어도 변하지 않습니다.
    """
    ok, _ = _loads(text or "")
    if ok:
        return text
    return json.dumps(repair_json(text, defaults).data, ensure_ascii=False)


def strip_code_fence(text: str) -> str:
    match = _FENCE_RE.match(text)
    if match:
        return match.group("body").strip()
    # 닫는 펜스 없이 잘린 응답
    opened = _OPEN_FENCE_RE.match(text)
    if opened:
        return text[opened.end():].strip()
    return text


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def fallback_structure(raw: str, defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    structure = copy.deepcopy(defaults if defaults is not None else ASSESSMENT_DEFAULTS)
    structure["assessment"] = (raw or "")[:settings.AI_SUMMARY_EXCERPT_LENGTH]
    structure["recommendations"] = []
    structure["flagged_issues"] = [FALLBACK_ISSUE]
    structure["overall_status"] = "abnormal"
    return structure


# =============================================================================
# 내부 단계
# =============================================================================
def _loads(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (ValueError, RecursionError):
        return False, None


def _repair_steps(text: str, defaults: Dict[str, Any]) -> Optional[Tuple[RepairStep, Any]]:
    """2~4단계를 순서대로 시도합니다."""
    ok, data = _loads(strip_trailing_commas(text))
    if ok:
        return RepairStep.TRAILING_COMMA, data

    ok, data = _loads(close_structure(text))
    if ok:
        return RepairStep.STRUCTURAL, data

    recovered = _recover_truncated_array(text, defaults)
    if recovered is not None:
        return RepairStep.TRUNCATED_ARRAY, recovered
    return None


class _ScanState:
    """문자 단위 스캔 결과: 문자열 내부 여부, 열린 괄호 스택, 마지막 구조 문자."""

    def __init__(self) -> None:
        self.in_string = False
        self.string_start = -1
        self.stack: List[Tuple[str, int]] = []
        self.last_structural = ""
        self.last_structural_pos = -1
        self.last_string_start = -1


def _scan(text: str) -> _ScanState:
    state = _ScanState()
    escape_next = False
    for pos, ch in enumerate(text):
        if state.in_string:
            if escape_next:
                escape_next = False
            elif ch == "\\":
                escape_next = True
            elif ch == '"':
                state.in_string = False
                state.last_structural, state.last_structural_pos = '"', pos
            continue
        if ch == '"':
            state.in_string = True
            state.string_start = pos
            state.last_string_start = pos
        elif ch in "{[":
            state.stack.append((ch, pos))
            state.last_structural, state.last_structural_pos = ch, pos
        elif ch in "}]":
            if state.stack:
                state.stack.pop()
            state.last_structural, state.last_structural_pos = ch, pos
        elif ch in ",:":
            state.last_structural, state.last_structural_pos = ch, pos
    return state


def _cut_before(text: str, pos: int) -> str:
    """pos 앞의 공백을 건너뛰어 직전 쉼표를 포함해 자르거나, 여는 괄호 바로 뒤에서 자릅니다."""
    idx = pos - 1
    while idx >= 0 and text[idx].isspace():
        idx -= 1
    if idx >= 0 and text[idx] == ",":
        return text[:idx]
    return text[:idx + 1]


def _key_start(text: str, colon_pos: int) -> int:
    """콜론 앞에 있는 속성 키 문자열의 여는 따옴표 위치."""
    idx = colon_pos - 1
    while idx >= 0 and text[idx].isspace():
        idx -= 1
    if idx < 0 or text[idx] != '"':
        return colon_pos
    idx -= 1
    while idx >= 0:
        if text[idx] == '"':
            backslashes = 0
            probe = idx - 1
            while probe >= 0 and text[probe] == "\\":
                backslashes += 1
                probe -= 1
            if backslashes % 2 == 0:
                return idx
        idx -= 1
    return colon_pos


def _previous_significant(text: str, pos: int) -> Tuple[str, int]:
    idx = pos - 1
    while idx >= 0 and text[idx].isspace():
        idx -= 1
    return (text[idx], idx) if idx >= 0 else ("", -1)


def _drop_property(text: str, colon_pos: int) -> str:
    return _cut_before(text, _key_start(text, colon_pos))


def close_structure(text: str) -> str:
    """3단계: 구조 복구."""
    repaired = text.rstrip()
    state = _scan(repaired)

    # 1) 닫히지 않은 문자열
    if state.in_string:
        prev, prev_pos = _previous_significant(repaired, state.string_start)
        if prev == ":":
            repaired = _drop_property(repaired, prev_pos)
        else:
            repaired = repaired + '"'
        state = _scan(repaired)

    # 2) 마지막 콜론 뒤의 미완성 값, 값 없이 끝난 키, 배열의 미완성 토큰
    tail = repaired[state.last_structural_pos + 1:].strip() if state.last_structural_pos >= 0 else repaired.strip()
    if state.last_structural == ":":
        if not tail or not _LITERAL_RE.match(tail):
            repaired = _drop_property(repaired, state.last_structural_pos)
    elif state.last_structural in (",", "[", "{") and tail and not _LITERAL_RE.match(tail):
        repaired = repaired[:state.last_structural_pos + 1]
    elif state.last_structural == '"' and state.stack and state.stack[-1][0] == "{":
        prev, _ = _previous_significant(repaired, state.last_string_start)
        if prev in (",", "{"):
            # 값 없이 끝난 키
            repaired = _cut_before(repaired, state.last_string_start)
    state = _scan(repaired)

    # 3) 배열 안에서 닫히지 않은 객체 원소는 통째로 버림 (가장 바깥 것 기준)
    for depth, (ch, pos) in enumerate(state.stack):
        if ch == "{" and depth > 0 and state.stack[depth - 1][0] == "[":
            repaired = _cut_before(repaired, pos)
            state = _scan(repaired)
            break

    # 4) 남은 괄호를 역순으로 닫음
    repaired = repaired.rstrip()
    if repaired.endswith(","):
        repaired = repaired[:-1]
    closers = "".join(_CLOSERS[ch] for ch, _ in reversed(state.stack))
    return strip_trailing_commas(repaired + closers)


def _recover_truncated_array(text: str, defaults: Dict[str, Any]) -> Optional[Any]:
    """4단계: 마지막으로 완결된 배열 원소(`},`)까지만 남기고 다시 닫습니다."""
    cut_at = text.rfind("},")
    if cut_at == -1:
        return None
    candidate = text[:cut_at + 1]
    state = _scan(candidate)
    if state.in_string:
        return None
    closers = "".join(_CLOSERS[ch] for ch, _ in reversed(state.stack))
    ok, data = _loads(strip_trailing_commas(candidate + closers))
    if not ok:
        return None
    if isinstance(data, dict):
        for key, value in defaults.items():
            data.setdefault(key, copy.deepcopy(value))
    return data
