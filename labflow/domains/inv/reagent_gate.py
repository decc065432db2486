# labflow/domains/inv/reagent_gate.py

"""
시약 게이트(Reagent Gate): 검체 처리 전 필수 시약의 충분 여부 검사와 소모 계획.

이 모듈의 함수는 모두 순수 함수이며 DB에 접근하지 않습니다.
충분 여부 검사(check_sufficiency)와 소모(allocate / 저장 계층의 try_consume)는 서로 다른 호출이며,
검사 이후 다른 오더가 같은 로트를 먼저 소모할 수 있으므로 소모 시점에 반드시 다시 확인합니다.
부족한 시약은 첫 번째에서 멈추지 않고 모두 모아서 보고합니다.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field as PydanticField

from labflow.core.exceptions import ResourceError
from labflow.domains.inv.models import ReagentStatus


class GateReport(BaseModel):
    ok: bool
    missing: List[str] = PydanticField(default_factory=list)
    insufficient: List[str] = PydanticField(default_factory=list)
    message: str = ""

    @property
    def offending(self) -> List[str]:
        return self.missing + self.insufficient


class Draw(BaseModel):
    """결과 1건이 요구하는 시약 소모 요청."""
    reagent_name: Optional[str] = None
    quantity: float
    lot_number: Optional[str] = None


class Consumption(BaseModel):
    installation_id: Optional[int]
    reagent_name: str
    lot_number: str
    quantity: float
    remaining_after: float


def _status(installation: Any) -> str:
    return getattr(installation.status, "value", installation.status)


def is_usable(installation: Any, today: Optional[date] = None) -> bool:
    """in_use 상태이고 유효기간이 지나지 않은 장착 시약만 사용할 수 있습니다."""
    today = today or date.today()
    if _status(installation) != ReagentStatus.IN_USE.value:
        return False
    expiration = installation.expiration_date
    return expiration is None or expiration >= today


def shortage_message(missing: Sequence[str], insufficient: Sequence[str]) -> str:
    parts = []
    if missing:
        parts.append(f"Missing required reagents: {', '.join(missing)}.")
    if insufficient:
        parts.append(f"Insufficient quantity for reagents: {', '.join(insufficient)}.")
    if not parts:
        return ""
    parts.append("Please install or refill all required reagents before processing samples.")
    return " ".join(parts)


def check_sufficiency(
    required_types: Iterable[str],
    installations: Iterable[Any],
    requested: Optional[Mapping[str, float]] = None,
    today: Optional[date] = None,
) -> GateReport:
    """
    필수 시약 유형마다 사용 가능한 장착 시약이 있고 잔량이 충분한지 확인합니다.

    - missing: 사용 가능한(in_use, 유효기간 내) 장착 시약이 하나도 없는 유형
    - insufficient: 사용 가능한 장착 시약은 있으나 잔량이 0 이하이거나 요청 수량보다 적은 유형
    """
    requested = requested or {}
    usable: Dict[str, List[Any]] = {}
    for installation in installations:
        if is_usable(installation, today):
            usable.setdefault(installation.reagent_name, []).append(installation)

    missing, insufficient = [], []
    for reagent_name in required_types:
        candidates = usable.get(reagent_name)
        if not candidates:
            missing.append(reagent_name)
            continue
        needed = requested.get(reagent_name)
        if needed is None:
            enough = any(c.quantity_remaining > 0 for c in candidates)
        else:
            enough = any(c.quantity_remaining >= needed for c in candidates)
        if not enough:
            insufficient.append(reagent_name)

    return GateReport(
        ok=not missing and not insufficient,
        missing=missing,
        insufficient=insufficient,
        message=shortage_message(missing, insufficient),
    )


def select_installation(
    installations: Iterable[Any],
    reagent_name: Optional[str],
    quantity: float,
    lot_number: Optional[str] = None,
    today: Optional[date] = None,
    remaining: Optional[Mapping[Any, float]] = None,
) -> Optional[Any]:
    """
    소모할 장착 시약을 고릅니다. 유효기간이 먼저 끝나는 것, 그다음 먼저 장착된 것 순서입니다.
    lot_number를 지정하면 해당 로트만 후보가 됩니다.
    remaining은 장착 시약 id별 잔량으로, 주어지면 객체의 quantity_remaining 대신 사용합니다.
    """
    def left(installation: Any) -> float:
        if remaining is not None and installation.id in remaining:
            return remaining[installation.id]
        return installation.quantity_remaining

    candidates = [
        i for i in installations
        if is_usable(i, today)
        and (reagent_name is None or i.reagent_name == reagent_name)
        and (lot_number is None or i.lot_number == lot_number)
        and left(i) >= quantity
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda i: (i.expiration_date or date.max, i.id or 0))


def allocate(
    installations: Sequence[Any],
    draws: Sequence[Draw],
    today: Optional[date] = None,
) -> List[Consumption]:
    """
    소모 요청(draws)을 순서대로 장착 시약에 배정합니다.
    같은 장착 시약에서 여러 번 소모하면 앞선 소모량을 누적 차감한 잔량으로 판단합니다.
    입력 객체는 변경하지 않으며, 충당할 수 없는 요청이 있으면 모든 유형을 나열한 ResourceError를 발생시킵니다.
    """
    remaining = {i.id: i.quantity_remaining for i in installations}
    plan, unmet = [], []
    for draw in draws:
        chosen = select_installation(
            installations, draw.reagent_name, draw.quantity,
            lot_number=draw.lot_number, today=today, remaining=remaining,
        )
        if chosen is None:
            label = draw.reagent_name or "reagent"
            if draw.lot_number:
                label = f"{label} (lot {draw.lot_number})"
            if label not in unmet:
                unmet.append(label)
            continue
        remaining[chosen.id] -= draw.quantity
        plan.append(Consumption(
            installation_id=chosen.id,
            reagent_name=chosen.reagent_name,
            lot_number=chosen.lot_number,
            quantity=draw.quantity,
            remaining_after=remaining[chosen.id],
        ))
    if unmet:
        raise ResourceError(
            f"Insufficient quantity for reagents: {', '.join(unmet)}.",
            errors=[f"{name}: insufficient quantity" for name in unmet],
        )
    return plan

