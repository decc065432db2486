# labflow/domains/lims/generator.py

"""
장비 연동이 없는 환경에서 패널 측정값을 합성하는 모듈입니다.

항목별 기준 범위(성별 범위 지원)를 기준으로 일정 확률(기본 30%)로 범위를 벗어난 값을,
나머지는 범위 안의 값을 만듭니다. 범위를 벗어난 값은 범위 폭의 최대 20%만큼
하한 아래 또는 상한 위로 생성되며, 모든 값은 소수 둘째 자리에서 반올림합니다.
"""

import random
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel

from labflow.core.config import settings
from labflow.domains.lims import flagging


class SyntheticValue(BaseModel):
    parameter_id: int
    code: str
    value: float
    unit: str = ""
    reference_range: str = ""
    flag: str = "N"


def _synthesize(bounds: flagging.RangeBounds, rng: random.Random, out_of_range_rate: float) -> float:
    low = bounds.min if bounds.min is not None else 0.0
    high = bounds.max if bounds.max is not None else low * 2 or 1.0
    span = high - low if high > low else max(abs(high), 1.0)

    if rng.random() < out_of_range_rate:
        offset = rng.uniform(0.01, 0.2) * span
        value = low - offset if rng.random() < 0.5 else high + offset
        if value < 0:
            value = high + offset
    else:
        value = rng.uniform(low, high)
    return round(value, 2)


def hl7_flag(value: float, bounds: Optional[flagging.RangeBounds]) -> str:
    if bounds is None:
        return "N"
    if bounds.min is not None and value < bounds.min:
        return "L"
    if bounds.max is not None and value > bounds.max:
        return "H"
    return "N"


def generate_panel_values(
    parameters: Sequence[Any],
    gender: Optional[str] = None,
    rng: Optional[random.Random] = None,
    out_of_range_rate: Optional[float] = None,
) -> List[SyntheticValue]:
    rng = rng or random.Random()
    if out_of_range_rate is None:
        out_of_range_rate = settings.SYNTHETIC_OUT_OF_RANGE_RATE

    values = []
    for parameter in parameters:
        bounds = (
            flagging.fallback_range(parameter.normal_range, gender)
            or flagging.fallback_range(parameter.normal_range, "male")
            or flagging.fallback_range(parameter.normal_range, "female")
        )
        if bounds is None or not bounds.has_bounds:
            # 범위를 모르는 항목은 합성하지 않습니다.
            continue
        value = _synthesize(bounds, rng, out_of_range_rate)
        values.append(SyntheticValue(
            parameter_id=parameter.id,
            code=parameter.code,
            value=value,
            unit=parameter.unit or "",
            reference_range=flagging.format_bounds(bounds.min, bounds.max),
            flag=hl7_flag(value, bounds),
        ))
    return values
