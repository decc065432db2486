# labflow/domains/inv/schemas.py

"""
'inv' 도메인 (시약 장착/소모)의 API 요청 및 응답 Pydantic 스키마를 정의하는 모듈입니다.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field as PydanticField, model_validator

from labflow.domains.inv.models import ReagentStatus


# =============================================================================
# 1. 시약 장착 (ConsumableInstallation) 스키마
# =============================================================================
class ConsumableInstallationCreate(BaseModel):
    instrument_id: int = PydanticField(..., description="장착 장비 ID")
    reagent_name: str = PydanticField(..., min_length=1, max_length=50, description="시약 유형명")
    lot_number: str = PydanticField(..., min_length=1, max_length=50, description="로트 번호")
    expiration_date: date = PydanticField(..., description="유효기간")
    quantity: float = PydanticField(..., gt=0, description="장착 수량")
    quantity_remaining: Optional[float] = PydanticField(None, ge=0, description="잔량 (생략 시 장착 수량)")

    @model_validator(mode="after")
    def _remaining_within_quantity(self) -> "ConsumableInstallationCreate":
        if self.quantity_remaining is not None and self.quantity_remaining > self.quantity:
            raise ValueError("quantity_remaining must not exceed quantity")
        return self


class ConsumableInstallationResponse(BaseModel):
    id: int
    instrument_id: int
    reagent_name: str
    lot_number: str
    expiration_date: date
    quantity: float
    quantity_remaining: float
    status: ReagentStatus
    installed_by_user_id: Optional[int] = None
    installed_at: Optional[datetime] = None
    removed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# 2. 시약 게이트 보고서 스키마
# =============================================================================
class ReagentGateResponse(BaseModel):
    instrument_id: int
    ok: bool
    missing: List[str] = []
    insufficient: List[str] = []
    message: str = ""
