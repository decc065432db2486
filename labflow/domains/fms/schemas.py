# labflow/domains/fms/schemas.py

"""
'fms' 도메인 (장비 디렉터리)의 Pydantic 스키마를 정의하는 모듈입니다.
"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field as PydanticField

from labflow.domains.fms.models import InstrumentMode


class InstrumentBase(BaseModel):
    code: str = PydanticField(..., max_length=50, description="장비 코드")
    name: str = PydanticField(..., max_length=100, description="장비명")
    instrument_model: Optional[str] = PydanticField(None, max_length=100, description="모델명")
    serial_number: Optional[str] = PydanticField(None, max_length=100, description="일련번호")
    mode: InstrumentMode = PydanticField(InstrumentMode.READY, description="가동 모드")
    notes: Optional[str] = PydanticField(None, description="비고")


class InstrumentCreate(InstrumentBase):
    pass


class InstrumentModeUpdate(BaseModel):
    mode: InstrumentMode = PydanticField(..., description="변경할 가동 모드")


class InstrumentResponse(InstrumentBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
