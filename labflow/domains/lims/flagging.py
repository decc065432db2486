# labflow/domains/lims/flagging.py

"""
검사 결과 판정(flagging) 모듈입니다.

측정값 하나를 우선순위가 있는 판정 규칙(FlaggingRule)들과 비교하여
이상 여부, 심각도, 표시용 기준 범위 문자열을 결정합니다.

- 규칙은 분석 항목, 성별, 연령대가 맞고 활성화된 것만 후보가 됩니다.
  성별/연령대가 비어 있는 규칙은 모든 대상에 적용됩니다.
- 후보는 심각도 순(critical -> warning -> info)으로 정렬하며, 같은 심각도는 저장 순서를 유지합니다.
  저장 순서 때문에 critical 판정이 덜 심각한 규칙에 가려지는 일이 없어야 합니다.
- 위반한 첫 규칙이 결과를 결정합니다. 위반이 없으면 첫 후보의 범위를 표시합니다.
- 후보가 없으면 분석 항목의 기준 범위(normal_range)를 fallback으로 사용합니다.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from labflow.domains.lims.models import FlagSeverity

SEVERITY_PRIORITY: Dict[FlagSeverity, int] = {
    FlagSeverity.CRITICAL: 1,
    FlagSeverity.WARNING: 2,
    FlagSeverity.INFO: 3,
}
FALLBACK_SEVERITY = FlagSeverity.WARNING


class RangeBounds(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    text: Optional[str] = None

    @property
    def has_bounds(self) -> bool:
        return self.min is not None or self.max is not None


class FlagResult(BaseModel):
    is_flagged: bool = False
    severity: Optional[FlagSeverity] = None
    reference_range: str = ""
    rule_id: Optional[int] = None


def _value(obj: Any, name: str) -> Any:
    """ORM 객체와 dict 규칙을 모두 지원합니다."""
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def format_number(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def format_bounds(min_value: Optional[float], max_value: Optional[float]) -> str:
    if min_value is not None and max_value is not None:
        return f"{format_number(min_value)}-{format_number(max_value)}"
    if min_value is not None:
        return f">= {format_number(min_value)}"
    if max_value is not None:
        return f"<= {format_number(max_value)}"
    return ""


def violates(value: float, min_value: Optional[float], max_value: Optional[float]) -> bool:
    if min_value is not None and value < min_value:
        return True
    if max_value is not None and value > max_value:
        return True
    return False


def age_group_for(date_of_birth: Optional[date], on: Optional[date] = None) -> Optional[str]:
    """생년월일로 연령대(child < 18 <= adult < 65 <= senior)를 계산합니다."""
    if date_of_birth is None:
        return None
    on = on or date.today()
    age = on.year - date_of_birth.year - ((on.month, on.day) < (date_of_birth.month, date_of_birth.day))
    if age < 18:
        return "child"
    if age < 65:
        return "adult"
    return "senior"


def fallback_range(normal_range: Optional[Dict[str, Any]], gender: Optional[str] = None) -> Optional[RangeBounds]:
    """
    분석 항목의 normal_range를 RangeBounds로 변환합니다.
    {min, max, text} 형태와 성별 {male: {...}, female: {...}} 형태를 모두 지원하며,
    성별 범위만 있는데 성별을 모르면 None을 반환합니다.
    """
    if not normal_range:
        return None
    gender = _enum_value(gender)
    if gender and isinstance(normal_range.get(gender), dict):
        return RangeBounds(**normal_range[gender])
    if any(key in normal_range for key in ("min", "max", "text")):
        return RangeBounds(
            min=normal_range.get("min"), max=normal_range.get("max"), text=normal_range.get("text")
        )
    return None


def select_rules(
    rules: Iterable[Any],
    parameter_id: int,
    gender: Optional[str] = None,
    age_group: Optional[str] = None,
) -> List[Any]:
    gender = _enum_value(gender)
    candidates = []
    for rule in rules:
        if not _value(rule, "is_active"):
            continue
        if _value(rule, "parameter_id") != parameter_id:
            continue
        rule_gender = _enum_value(_value(rule, "gender"))
        if rule_gender is not None and rule_gender != gender:
            continue
        rule_age_group = _value(rule, "age_group")
        if rule_age_group is not None and rule_age_group != age_group:
            continue
        candidates.append(rule)
    # sorted()는 안정 정렬이므로 같은 심각도에서는 저장 순서가 유지됩니다.
    return sorted(candidates, key=lambda r: SEVERITY_PRIORITY[FlagSeverity(_enum_value(_value(r, "severity")))])


def evaluate(
    value: float,
    parameter_id: int,
    rules: Iterable[Any],
    gender: Optional[str] = None,
    age_group: Optional[str] = None,
    fallback: Optional[RangeBounds] = None,
) -> FlagResult:
    candidates = select_rules(rules, parameter_id, gender, age_group)

    for rule in candidates:
        min_value, max_value = _value(rule, "min_value"), _value(rule, "max_value")
        if violates(value, min_value, max_value):
            return FlagResult(
                is_flagged=True,
                severity=FlagSeverity(_enum_value(_value(rule, "severity"))),
                reference_range=format_bounds(min_value, max_value),
                rule_id=_value(rule, "id"),
            )

    if candidates:
        first = candidates[0]
        return FlagResult(reference_range=format_bounds(_value(first, "min_value"), _value(first, "max_value")))

    if fallback is None:
        return FlagResult()
    if not fallback.has_bounds:
        return FlagResult(reference_range=fallback.text or "")
    flagged = violates(value, fallback.min, fallback.max)
    return FlagResult(
        is_flagged=flagged,
        severity=FALLBACK_SEVERITY if flagged else None,
        reference_range=format_bounds(fallback.min, fallback.max),
    )


def check_adjustment(
    value: float,
    parameter_id: int,
    rules: Iterable[Any],
    gender: Optional[str] = None,
    age_group: Optional[str] = None,
    fallback: Optional[RangeBounds] = None,
) -> Optional[str]:
    """검토 조정값이 새 측정값과 같은 기준으로 허용 범위 안에 있는지 확인합니다. 벗어나면 오류 문구를 반환."""
    result = evaluate(value, parameter_id, rules, gender, age_group, fallback)
    if result.is_flagged:
        return f"Value {format_number(value)} is outside acceptable range: {result.reference_range}"
    return None
