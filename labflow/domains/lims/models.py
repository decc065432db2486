# labflow/domains/lims/models.py

"""
'lims' 도메인 (PostgreSQL 'lims' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- parameters / flagging_rules: 분석 항목 카탈로그와 판정 규칙
- patients: 검체 대상자(subject) 디렉터리
- test_orders / test_results / test_order_comments: 검체 1건의 검사 오더와 결과, 코멘트
- interchange_messages: 장비 결과 전달용 HL7 유사 원시 메시지
"""

from typing import Optional, List, Dict, Any
from datetime import date, datetime, UTC
from enum import Enum

from sqlalchemy import ForeignKey, Text
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP, Float

from sqlmodel import Field, Relationship, SQLModel, Column

from labflow.core.database_base import JSONVariant


class OrderStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    REVIEWED = "reviewed"
    AI_REVIEWED = "ai_reviewed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FlagSeverity(str, Enum):
    """판정 규칙 심각도. 우선순위는 CRITICAL > WARNING > INFO 입니다."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class MessageStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    SYNCED = "synced"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


# =============================================================================
# 1. lims.parameters 테이블 모델
# =============================================================================
class ParameterBase(SQLModel):
    code: str = Field(max_length=20, sa_column_kwargs={"unique": True}, description="분석 항목 코드 (예: WBC)")
    name: str = Field(max_length=255, description="분석 항목명")
    unit: Optional[str] = Field(default=None, max_length=50, description="측정 단위")
    normal_range: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column(JSONVariant),
        description="기준 범위 {min, max, text} 또는 성별 {male: {...}, female: {...}}"
    )
    reagent_name: Optional[str] = Field(default=None, max_length=50, description="측정 1회당 소모되는 시약 유형")
    description: Optional[str] = Field(default=None, description="설명")
    sort_order: Optional[int] = Field(default=None, description="정렬순서")
    is_active: bool = Field(default=True, description="활성 여부 (패널 포함 여부)")


class Parameter(ParameterBase, table=True):
    __tablename__ = "parameters"
    __table_args__ = {'schema': 'lims'}

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

    flagging_rules: List["FlaggingRule"] = Relationship(back_populates="parameter")


# =============================================================================
# 2. lims.flagging_rules 테이블 모델
# =============================================================================
class FlaggingRuleBase(SQLModel):
    parameter_id: int = Field(foreign_key="lims.parameters.id", index=True, description="대상 분석 항목 ID (FK)")
    gender: Optional[Gender] = Field(default=None, description="성별 필터 (없으면 전체)")
    age_group: Optional[str] = Field(default=None, max_length=20, description="연령대 필터 (child, adult, senior)")
    min_value: Optional[float] = Field(default=None, sa_column=Column(Float), description="하한")
    max_value: Optional[float] = Field(default=None, sa_column=Column(Float), description="상한")
    severity: FlagSeverity = Field(default=FlagSeverity.WARNING, description="심각도 (critical, warning, info)")
    description: Optional[str] = Field(default=None, description="설명")
    is_active: bool = Field(default=True, description="활성 여부")


class FlaggingRule(FlaggingRuleBase, table=True):
    __tablename__ = "flagging_rules"
    __table_args__ = {'schema': 'lims'}

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )

    parameter: Optional[Parameter] = Relationship(back_populates="flagging_rules")


# =============================================================================
# 3. lims.patients 테이블 모델
# =============================================================================
class PatientBase(SQLModel):
    patient_code: str = Field(max_length=50, sa_column_kwargs={"unique": True}, description="대상자 코드 (PID)")
    full_name: str = Field(max_length=100, description="이름")
    gender: Optional[Gender] = Field(default=None, description="성별")
    date_of_birth: Optional[date] = Field(default=None, description="생년월일")
    email: Optional[str] = Field(default=None, max_length=100, description="이메일")
    phone_number: Optional[str] = Field(default=None, max_length=30, description="연락처")


class Patient(PatientBase, table=True):
    __tablename__ = "patients"
    __table_args__ = {'schema': 'lims'}

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )


# =============================================================================
# 4. lims.test_orders 테이블 모델
# =============================================================================
class TestOrder(SQLModel, table=True):
    __tablename__ = "test_orders"
    __table_args__ = {'schema': 'lims'}

    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(max_length=50, sa_column_kwargs={"unique": True}, description="오더 번호 (ORD-...)")
    patient_id: Optional[int] = Field(default=None, foreign_key="lims.patients.id", description="대상자 ID (FK)")
    instrument_id: Optional[int] = Field(
        default=None,
        sa_column=Column(ForeignKey("fms.instruments.id", ondelete="SET NULL")),
        description="검사 장비 ID (FK)"
    )
    barcode: Optional[str] = Field(default=None, max_length=50, index=True, description="검체 바코드")
    # 진행 중(pending, running)인 오더에서만 barcode 값을 가지며, 종료되면 NULL이 됩니다.
    live_barcode: Optional[str] = Field(
        default=None, max_length=50, sa_column_kwargs={"unique": True},
        description="진행 중 오더의 바코드 (유일)"
    )
    status: OrderStatus = Field(default=OrderStatus.PENDING, description="오더 상태")
    failure_reason: Optional[str] = Field(default=None, description="실패/취소 사유")

    created_by_user_id: Optional[int] = Field(
        default=None, sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")), description="접수자 ID"
    )
    run_by_user_id: Optional[int] = Field(
        default=None, sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")), description="검사 수행자 ID"
    )
    reviewed_by_user_id: Optional[int] = Field(
        default=None, sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")), description="검토자 ID"
    )
    run_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="검사 시작 일시")
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="검사 완료 일시")
    reviewed_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="수동 검토 일시")
    ai_reviewed_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="AI 검토 일시")
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

    results: List["ResultEntry"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"lazy": "selectin", "order_by": "ResultEntry.id", "cascade": "all, delete-orphan"},
    )
    comments: List["OrderComment"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"lazy": "selectin", "order_by": "OrderComment.id", "cascade": "all, delete-orphan"},
    )


# =============================================================================
# 5. lims.test_results 테이블 모델
# =============================================================================
class ResultEntry(SQLModel, table=True):
    __tablename__ = "test_results"
    __table_args__ = {'schema': 'lims'}

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="lims.test_orders.id", index=True, description="검사 오더 ID (FK)")
    parameter_id: int = Field(foreign_key="lims.parameters.id", description="분석 항목 ID (FK)")
    value: float = Field(sa_column=Column(Float, nullable=False), description="측정값")
    unit: Optional[str] = Field(default=None, max_length=50, description="단위")
    reference_range: str = Field(default="", max_length=100, description="표시용 기준 범위")
    is_flagged: bool = Field(default=False, description="이상 여부")
    flag_severity: Optional[FlagSeverity] = Field(default=None, description="이상 심각도")
    flagging_rule_id: Optional[int] = Field(default=None, foreign_key="lims.flagging_rules.id", description="판정에 사용된 규칙 ID")
    reagent_lot_number: Optional[str] = Field(default=None, max_length=50, description="소모 시약 로트 번호")
    measured_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="측정 일시"
    )
    adjusted_by_user_id: Optional[int] = Field(
        default=None, sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")), description="검토 조정자 ID"
    )
    adjusted_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="검토 조정 일시")

    order: Optional[TestOrder] = Relationship(back_populates="results")


# =============================================================================
# 6. lims.test_order_comments 테이블 모델
# =============================================================================
class OrderComment(SQLModel, table=True):
    __tablename__ = "test_order_comments"
    __table_args__ = {'schema': 'lims'}

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="lims.test_orders.id", index=True, description="검사 오더 ID (FK)")
    comment_text: str = Field(sa_column=Column(Text, nullable=False), description="코멘트 내용")
    created_by_user_id: Optional[int] = Field(
        default=None, sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")), description="작성자 ID"
    )
    updated_by_user_id: Optional[int] = Field(
        default=None, sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")), description="수정자 ID"
    )
    deleted_by_user_id: Optional[int] = Field(
        default=None, sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")), description="삭제자 ID"
    )
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="작성 일시"
    )
    updated_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="수정 일시")
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="삭제 일시 (Soft Delete)")

    order: Optional[TestOrder] = Relationship(back_populates="comments")


# =============================================================================
# 7. lims.interchange_messages 테이블 모델
# =============================================================================
class InterchangeMessage(SQLModel, table=True):
    __tablename__ = "interchange_messages"
    __table_args__ = {'schema': 'lims'}

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: Optional[int] = Field(default=None, foreign_key="lims.test_orders.id", index=True, description="검사 오더 ID (FK)")
    barcode: str = Field(max_length=50, index=True, description="검체 바코드")
    instrument_id: Optional[int] = Field(
        default=None,
        sa_column=Column(ForeignKey("fms.instruments.id", ondelete="SET NULL")),
        description="송신 장비 ID (FK)"
    )
    message_text: str = Field(sa_column=Column(Text, nullable=False), description="HL7 유사 원시 메시지")
    parsed_results: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column(JSONVariant), description="디코딩 결과 (JSON)"
    )
    status: MessageStatus = Field(default=MessageStatus.PENDING, description="처리 상태 (pending, processed, synced)")
    can_delete: bool = Field(default=False, description="오더 반영 완료 후에만 True")
    sent_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="송신 일시"
    )
    synced_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="오더 반영 일시")
    created_by_user_id: Optional[int] = Field(
        default=None, sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")), description="생성자 ID"
    )
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )
