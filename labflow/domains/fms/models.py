# labflow/domains/fms/models.py

"""
'fms' 도메인 (PostgreSQL 'fms' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

검사 장비(Instrument) 디렉터리로, 검체 접수 시 장비의 가동 모드를 확인하는 데 사용됩니다.
"""

from typing import Optional
from datetime import datetime, UTC
from enum import Enum

from sqlmodel import Field, SQLModel, Column
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP


class InstrumentMode(str, Enum):
    """장비 가동 모드. 검체 처리는 READY 상태에서만 허용됩니다."""
    READY = "ready"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


# =============================================================================
# 1. fms.instruments 테이블 모델
# =============================================================================
class InstrumentBase(SQLModel):
    code: str = Field(max_length=50, sa_column_kwargs={"unique": True}, description="장비 코드 (OBR 장비 식별자)")
    name: str = Field(max_length=100, description="장비명")
    instrument_model: Optional[str] = Field(default=None, max_length=100, description="모델명")
    serial_number: Optional[str] = Field(default=None, max_length=100, description="일련번호")
    mode: InstrumentMode = Field(default=InstrumentMode.READY, description="가동 모드 (ready, maintenance, inactive)")
    notes: Optional[str] = Field(default=None, description="비고")


class Instrument(InstrumentBase, table=True):
    __tablename__ = "instruments"
    __table_args__ = {'schema': 'fms'}

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()),
        description="레코드 마지막 업데이트 일시"
    )
