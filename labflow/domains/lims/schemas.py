# labflow/domains/lims/schemas.py

"""
'lims' 도메인 (검체 처리 파이프라인)의 Pydantic 스키마를 정의하는 모듈입니다.

이 스키마들은 API 요청(Request) 및 응답(Response) 데이터의 유효성을 검사하고,
AI 검토 결과(ReviewAssessment)처럼 저장되지 않는 값 객체도 표현합니다.
"""

from typing import List, Optional, Dict, Any, Literal
from datetime import datetime
from pydantic import BaseModel, Field as PydanticField, model_validator

from labflow.domains.lims.models import FlagSeverity, Gender, MessageStatus, OrderStatus


# =============================================================================
# 1. 분석 항목 (Parameter) / 판정 규칙 (FlaggingRule) 스키마
# =============================================================================
class ParameterResponse(BaseModel):
    id: int
    code: str
    name: str
    unit: Optional[str] = None
    normal_range: Optional[Dict[str, Any]] = None
    reagent_name: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: bool

    class Config:
        from_attributes = True


class FlaggingRuleBase(BaseModel):
    parameter_id: int = PydanticField(..., description="대상 분석 항목 ID")
    gender: Optional[Gender] = PydanticField(None, description="성별 필터")
    age_group: Optional[Literal["child", "adult", "senior"]] = PydanticField(None, description="연령대 필터")
    min_value: Optional[float] = PydanticField(None, description="하한")
    max_value: Optional[float] = PydanticField(None, description="상한")
    severity: FlagSeverity = PydanticField(FlagSeverity.WARNING, description="심각도")
    description: Optional[str] = PydanticField(None, description="설명")
    is_active: bool = PydanticField(True, description="활성 여부")


class FlaggingRuleCreate(FlaggingRuleBase):
    @model_validator(mode="after")
    def _check_bounds(self) -> "FlaggingRuleCreate":
        if self.min_value is None and self.max_value is None:
            raise ValueError("At least one of min_value or max_value is required")
        if self.min_value is not None and self.max_value is not None and self.min_value >= self.max_value:
            raise ValueError("min_value must be less than max_value")
        return self


class FlaggingRuleResponse(FlaggingRuleBase):
    id: int

    class Config:
        from_attributes = True


# =============================================================================
# 2. 검체 접수 / 결과 입력 스키마
# =============================================================================
class ProcessSampleRequest(BaseModel):
    instrument_id: int = PydanticField(..., description="검사 장비 ID")
    barcode: Optional[str] = PydanticField(None, max_length=50, description="검체 바코드 (생략 시 자동 생성)")
    patient_id: Optional[int] = PydanticField(None, description="대상자 ID")


class ResultValueIn(BaseModel):
    parameter_id: Optional[int] = PydanticField(None, description="분석 항목 ID")
    parameter_code: Optional[str] = PydanticField(None, description="분석 항목 코드 (ID 대신 사용 가능)")
    value: float = PydanticField(..., description="측정값")
    unit: Optional[str] = PydanticField(None, description="단위 (생략 시 분석 항목 단위)")
    reagent_lot_number: Optional[str] = PydanticField(None, description="소모할 시약 로트 번호")
    quantity_used: Optional[float] = PydanticField(None, gt=0, description="시약 소모량")

    @model_validator(mode="after")
    def _require_parameter(self) -> "ResultValueIn":
        if self.parameter_id is None and not self.parameter_code:
            raise ValueError("Either parameter_id or parameter_code is required")
        return self


class ResultsRequest(BaseModel):
    values: List[ResultValueIn] = PydanticField(..., min_length=1)


class StatusChangeRequest(BaseModel):
    reason: Optional[str] = PydanticField(None, description="사유")


# =============================================================================
# 3. 오더 (TestOrder) 응답 스키마
# =============================================================================
class ResultEntryResponse(BaseModel):
    id: int
    parameter_id: int
    value: float
    unit: Optional[str] = None
    reference_range: str = ""
    is_flagged: bool
    flag_severity: Optional[FlagSeverity] = None
    flagging_rule_id: Optional[int] = None
    reagent_lot_number: Optional[str] = None
    measured_at: Optional[datetime] = None
    adjusted_by_user_id: Optional[int] = None
    adjusted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CommentResponse(BaseModel):
    id: int
    comment_text: str
    created_by_user_id: Optional[int] = None
    updated_by_user_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_number: str
    patient_id: Optional[int] = None
    instrument_id: Optional[int] = None
    barcode: Optional[str] = None
    status: OrderStatus
    failure_reason: Optional[str] = None
    created_by_user_id: Optional[int] = None
    run_by_user_id: Optional[int] = None
    reviewed_by_user_id: Optional[int] = None
    run_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    ai_reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderDetailResponse(OrderResponse):
    results: List[ResultEntryResponse] = []
    comments: List[CommentResponse] = []


class ProcessSampleResponse(BaseModel):
    order: OrderDetailResponse
    created: bool
    message_id: Optional[int] = None


# =============================================================================
# 4. 코멘트 스키마
# =============================================================================
class CommentCreate(BaseModel):
    comment_text: str = PydanticField(..., description="코멘트 내용")


class CommentUpdate(BaseModel):
    comment_text: str = PydanticField(..., description="수정할 코멘트 내용")


# =============================================================================
# 5. 검토 (Review) 스키마
# =============================================================================
class ReviewAdjustment(BaseModel):
    parameter_id: int = PydanticField(..., description="조정할 분석 항목 ID")
    new_value: float = PydanticField(..., description="조정값")


class ReviewRequest(BaseModel):
    adjustments: List[ReviewAdjustment] = PydanticField(default_factory=list)
    comment: Optional[str] = PydanticField(None, description="검토 코멘트")


class Recommendation(BaseModel):
    parameter_id: int
    parameter_name: Optional[str] = None
    current_value: Optional[float] = None
    reason: str
    confidence: Literal["high", "medium", "low"] = "low"


class ReviewAssessment(BaseModel):
    """AI 검토 결과. 저장되지 않으며 코멘트로만 남습니다."""
    overall_status: Literal["normal", "abnormal", "critical"] = "abnormal"
    assessment: str = ""
    flagged_issues: List[str] = PydanticField(default_factory=list)
    recommendations: List[Recommendation] = PydanticField(default_factory=list)


class AIReviewResponse(BaseModel):
    order: OrderDetailResponse
    assessment: ReviewAssessment
    degraded: bool = False
    persisted: bool = True


# =============================================================================
# 6. 장비 결과 메시지 (InterchangeMessage) 스키마
# =============================================================================
class MessageResponse(BaseModel):
    id: int
    order_id: Optional[int] = None
    barcode: str
    instrument_id: Optional[int] = None
    message_text: str
    parsed_results: Optional[Dict[str, Any]] = None
    status: MessageStatus
    can_delete: bool
    sent_at: Optional[datetime] = None
    synced_at: Optional[datetime] = None
    created_by_user_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SkippedSegmentResponse(BaseModel):
    index: int
    raw: str
    reason: str


class SyncResponse(BaseModel):
    order: OrderDetailResponse
    message: MessageResponse
    skipped: List[SkippedSegmentResponse] = []


class CleanupResponse(BaseModel):
    deleted_count: int
    cutoff: datetime

