# labflow/domains/inv/models.py

"""
'inv' 도메인 (PostgreSQL 'inv' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- consumable_installations: 장비에 장착된 시약 로트(lot)와 잔량
- consumable_usages: 검사 결과 1건마다 소모된 시약 이력
"""

from typing import Optional
from datetime import date, datetime, UTC
from enum import Enum

from sqlmodel import Field, SQLModel, Column
from sqlalchemy import ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP


class ReagentStatus(str, Enum):
    IN_USE = "in_use"
    NOT_IN_USE = "not_in_use"
    EXPIRED = "expired"


# =============================================================================
# 1. inv.consumable_installations 테이블 모델
# =============================================================================
class ConsumableInstallationBase(SQLModel):
    instrument_id: int = Field(
        sa_column=Column(ForeignKey("fms.instruments.id", ondelete="RESTRICT"), nullable=False, index=True),
        description="장착 장비 ID (FK)"
    )
    reagent_name: str = Field(max_length=50, index=True, description="시약 유형명 (예: Diluent, Lysing)")
    lot_number: str = Field(max_length=50, index=True, description="시약 로트 번호")
    expiration_date: date = Field(description="유효기간")
    quantity: float = Field(gt=0, description="장착 수량")
    quantity_remaining: float = Field(ge=0, description="잔량 (장착 수량 이하)")
    status: ReagentStatus = Field(default=ReagentStatus.IN_USE, description="사용 상태 (in_use, not_in_use, expired)")


class ConsumableInstallation(ConsumableInstallationBase, table=True):
    __tablename__ = "consumable_installations"
    __table_args__ = {'schema': 'inv'}

    id: Optional[int] = Field(default=None, primary_key=True)
    installed_by_user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")),
        description="장착 작업자 ID (FK)"
    )
    installed_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="장착 일시"
    )
    removed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="탈착 일시"
    )
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


# =============================================================================
# 2. inv.consumable_usages 테이블 모델
# =============================================================================
class ConsumableUsage(SQLModel, table=True):
    __tablename__ = "consumable_usages"
    __table_args__ = {'schema': 'inv'}

    id: Optional[int] = Field(default=None, primary_key=True)
    installation_id: int = Field(
        sa_column=Column(ForeignKey("inv.consumable_installations.id", ondelete="CASCADE"), nullable=False, index=True),
        description="소모된 장착 시약 ID (FK)"
    )
    order_id: Optional[int] = Field(
        default=None,
        sa_column=Column(ForeignKey("lims.test_orders.id", ondelete="SET NULL"), index=True),
        description="검사 오더 ID (FK)"
    )
    instrument_id: int = Field(description="장비 ID")
    reagent_name: str = Field(max_length=50, description="시약 유형명")
    lot_number: str = Field(max_length=50, description="시약 로트 번호")
    quantity_used: float = Field(gt=0, description="소모 수량")
    used_by_user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")),
        description="작업자 ID (FK)"
    )
    used_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="소모 일시"
    )
