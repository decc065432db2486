# labflow/domains/shared/models.py

"""
'shared' 도메인 (PostgreSQL 'shared' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- event_logs: 검사 파이프라인의 상태 변경을 기록하는 감사(audit) 로그
"""

from typing import Optional, Dict, Any
from datetime import datetime, UTC

from sqlalchemy import ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP
from sqlmodel import Field, SQLModel, Column

from labflow.core.database_base import JSONVariant


# =============================================================================
# 1. shared.event_logs 테이블 모델
# =============================================================================
class EventLog(SQLModel, table=True):
    __tablename__ = "event_logs"
    __table_args__ = {'schema': 'shared'}

    id: Optional[int] = Field(default=None, primary_key=True)
    action_type: str = Field(max_length=30, index=True, description="작업 유형 (CREATE, UPDATE, DELETE, REVIEW ...)")
    entity_type: str = Field(max_length=50, index=True, description="대상 엔티티 유형 (TestOrder, InterchangeMessage ...)")
    entity_id: Optional[str] = Field(default=None, max_length=50, description="대상 엔티티 ID")
    actor_user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(ForeignKey("usr.users.id", ondelete="SET NULL")),
        description="작업자 ID (시스템 작업이면 NULL)"
    )
    description: str = Field(default="", description="설명")
    details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONVariant), description="부가 정보 (JSON)")
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="기록 일시"
    )
