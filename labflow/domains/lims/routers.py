# labflow/domains/lims/routers.py

"""
'lims' 도메인 (검체 처리 파이프라인) 관련 API 엔드포인트를 정의하는 모듈입니다.
업무 규칙은 workflow.py / review.py에 있으며, 라우터는 요청 검증과 응답 변환만 담당합니다.
"""
from typing import List, Optional
from datetime import date
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import APIRouter, Depends, Query, Response, status

# 중앙 의존성 관리 모듈 임포트
from labflow.core import dependencies as deps
from labflow.core.exceptions import NotFoundError
from labflow.domains.usr.models import User as UsrUser
from labflow.services.text_generation import TextGenerator

# 도메인 관련 모듈 임포트
from . import crud as lims_crud
from . import review
from . import schemas as lims_schemas
from . import workflow
from .models import MessageStatus, OrderStatus

router = APIRouter(
    tags=["Laboratory Information Management (검체 처리)"],
    responses={404: {"description": "Not found"}},
)


async def _get_order(db: AsyncSession, order_id: int):
    return await workflow.require_order(db, order_id)


# =============================================================================
# 1. 분석 항목 (Parameter) / 판정 규칙 (FlaggingRule) 라우터
# =============================================================================
@router.get("/parameters", response_model=List[lims_schemas.ParameterResponse], summary="패널(활성 분석 항목) 조회")
async def read_parameters(
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    return await lims_crud.parameter.get_panel(db)


@router.post(
    "/flagging-rules",
    response_model=lims_schemas.FlaggingRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="판정 규칙 생성",
)
async def create_flagging_rule(
    rule_in: lims_schemas.FlaggingRuleCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: UsrUser = Depends(deps.get_current_admin_user),
):
    """새 판정 규칙을 생성합니다. 관리자 권한이 필요합니다."""
    if await lims_crud.parameter.get(db, rule_in.parameter_id) is None:
        raise NotFoundError(f"Parameter {rule_in.parameter_id} not found.")
    return await lims_crud.flagging_rule.create(db=db, obj_in=rule_in)


@router.get(
    "/parameters/{parameter_id}/flagging-rules",
    response_model=List[lims_schemas.FlaggingRuleResponse],
    summary="분석 항목별 판정 규칙 조회",
)
async def read_flagging_rules(
    parameter_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    return await lims_crud.flagging_rule.get_for_parameters(db, [parameter_id])


# =============================================================================
# 2. 검체 처리 / 검사 오더 라우터
# =============================================================================
@router.post(
    "/samples/process",
    response_model=lims_schemas.ProcessSampleResponse,
    summary="검체 처리 (바코드 접수)",
)
async def process_sample(
    request_in: lims_schemas.ProcessSampleRequest,
    response: Response,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    """
    바코드로 진행 중인 오더를 찾아 반환하고, 없으면 장비 상태와 필수 시약을 확인한 뒤 새 오더를 생성합니다.
    새 오더이면 201, 기존 오더이면 200을 반환합니다.
    """
    order, created, message = await workflow.process_sample(
        db,
        instrument_id=request_in.instrument_id,
        barcode=request_in.barcode,
        patient_id=request_in.patient_id,
        actor_id=current_user.id,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return lims_schemas.ProcessSampleResponse(
        order=lims_schemas.OrderDetailResponse.model_validate(order),
        created=created,
        message_id=message.id if message else None,
    )


@router.get("/orders", response_model=List[lims_schemas.OrderResponse], summary="검사 오더 목록 조회")
async def read_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    barcode: Optional[str] = None,
    patient_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    return await lims_crud.test_order.get_filtered(
        db,
        filters={"status": status_filter, "barcode": barcode, "patient_id": patient_id},
        date_range_field="created_at",
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )


@router.get("/orders/{order_id}", response_model=lims_schemas.OrderDetailResponse, summary="검사 오더 상세 조회")
async def read_order(
    order_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    return await _get_order(db, order_id)


@router.post("/orders/{order_id}/results", response_model=lims_schemas.OrderDetailResponse, summary="측정 결과 반영")
async def add_results(
    order_id: int,
    results_in: lims_schemas.ResultsRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    """측정값을 판정하여 결과로 추가합니다. 하나라도 실패하면 아무것도 반영하지 않습니다."""
    order = await _get_order(db, order_id)
    return await workflow.apply_results(db, order=order, values=results_in.values, actor_id=current_user.id)


@router.post("/orders/{order_id}/cancel", response_model=lims_schemas.OrderDetailResponse, summary="검사 오더 취소")
async def cancel_order(
    order_id: int,
    change_in: lims_schemas.StatusChangeRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    order = await _get_order(db, order_id)
    return await workflow.cancel(db, order=order, actor_id=current_user.id, reason=change_in.reason)


@router.post("/orders/{order_id}/fail", response_model=lims_schemas.OrderDetailResponse, summary="검사 실패 처리")
async def fail_order(
    order_id: int,
    change_in: lims_schemas.StatusChangeRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    order = await _get_order(db, order_id)
    return await workflow.fail(db, order=order, actor_id=current_user.id, reason=change_in.reason)


# =============================================================================
# 3. 코멘트 라우터 (인덱스 기반)
# =============================================================================
@router.post(
    "/orders/{order_id}/comments",
    response_model=lims_schemas.OrderDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="코멘트 추가",
)
async def add_comment(
    order_id: int,
    comment_in: lims_schemas.CommentCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    order = await _get_order(db, order_id)
    return await workflow.add_comment(db, order=order, text=comment_in.comment_text, actor_id=current_user.id)


@router.put(
    "/orders/{order_id}/comments/{index}",
    response_model=lims_schemas.OrderDetailResponse,
    summary="코멘트 수정",
)
async def update_comment(
    order_id: int,
    index: int,
    comment_in: lims_schemas.CommentUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    order = await _get_order(db, order_id)
    return await workflow.update_comment(
        db, order=order, index=index, text=comment_in.comment_text, actor_id=current_user.id
    )


@router.delete(
    "/orders/{order_id}/comments/{index}",
    response_model=lims_schemas.OrderDetailResponse,
    summary="코멘트 삭제",
)
async def delete_comment(
    order_id: int,
    index: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    order = await _get_order(db, order_id)
    return await workflow.delete_comment(db, order=order, index=index, actor_id=current_user.id)


# =============================================================================
# 4. 검토 라우터
# =============================================================================
@router.post("/orders/{order_id}/review", response_model=lims_schemas.OrderDetailResponse, summary="수동 검토")
async def review_order(
    order_id: int,
    review_in: lims_schemas.ReviewRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    """조정값이 하나라도 허용 범위를 벗어나면 실패 항목을 모두 나열하고 검토 전체를 거부합니다."""
    order = await _get_order(db, order_id)
    return await review.review_order(
        db, order=order, adjustments=review_in.adjustments, comment=review_in.comment, actor_id=current_user.id
    )


@router.post("/orders/{order_id}/ai-review", response_model=lims_schemas.AIReviewResponse, summary="AI 검토")
async def ai_review_order(
    order_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    generator: TextGenerator = Depends(deps.get_text_generator),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    order = await _get_order(db, order_id)
    order, assessment, degraded = await review.ai_review(
        db, order=order, generator=generator, actor_id=current_user.id
    )
    return lims_schemas.AIReviewResponse(
        order=lims_schemas.OrderDetailResponse.model_validate(order),
        assessment=assessment,
        degraded=degraded,
        persisted=True,
    )


@router.post(
    "/orders/{order_id}/ai-review/preview",
    response_model=lims_schemas.AIReviewResponse,
    summary="AI 검토 미리보기 (저장 안 함)",
)
async def preview_ai_review(
    order_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    generator: TextGenerator = Depends(deps.get_text_generator),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    order = await _get_order(db, order_id)
    order, assessment, degraded = await review.ai_review(
        db, order=order, generator=generator, actor_id=current_user.id, persist=False
    )
    return lims_schemas.AIReviewResponse(
        order=lims_schemas.OrderDetailResponse.model_validate(order),
        assessment=assessment,
        degraded=degraded,
        persisted=False,
    )


# =============================================================================
# 5. 장비 결과 메시지 (InterchangeMessage) 라우터
# =============================================================================
@router.get("/messages", response_model=List[lims_schemas.MessageResponse], summary="장비 메시지 목록 조회")
async def read_messages(
    status_filter: Optional[MessageStatus] = Query(None, alias="status"),
    order_id: Optional[int] = None,
    barcode: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    return await lims_crud.interchange_message.get_filtered(
        db,
        filters={"status": status_filter, "order_id": order_id, "barcode": barcode},
        skip=skip,
        limit=limit,
    )


@router.post(
    "/messages/cleanup",
    response_model=lims_schemas.CleanupResponse,
    summary="보관 기간 경과 메시지 정리",
)
async def cleanup_messages(
    days_old: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: UsrUser = Depends(deps.get_current_admin_user),
):
    """오더 반영이 끝난 메시지 중 보관 기간이 지난 것을 삭제합니다. 관리자 권한이 필요합니다."""
    deleted_count, cutoff = await workflow.cleanup_messages(db, days_old=days_old, actor_id=current_admin_user.id)
    return lims_schemas.CleanupResponse(deleted_count=deleted_count, cutoff=cutoff)


@router.get("/messages/{message_id}", response_model=lims_schemas.MessageResponse, summary="장비 메시지 조회")
async def read_message(
    message_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    message = await lims_crud.interchange_message.get(db, message_id)
    if message is None:
        raise NotFoundError(f"Interchange message {message_id} not found.")
    return message


@router.post("/messages/{message_id}/sync", response_model=lims_schemas.SyncResponse, summary="장비 메시지 오더 반영")
async def sync_message(
    message_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    order, message, skipped = await workflow.sync_message(db, message_id=message_id, actor_id=current_user.id)
    return lims_schemas.SyncResponse(
        order=lims_schemas.OrderDetailResponse.model_validate(order),
        message=lims_schemas.MessageResponse.model_validate(message),
        skipped=[lims_schemas.SkippedSegmentResponse(**s.model_dump()) for s in skipped],
    )


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT, summary="장비 메시지 삭제")
async def delete_message(
    message_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    """오더 반영(synced)이 끝난 메시지만 삭제할 수 있습니다."""
    await workflow.delete_message(db, message_id=message_id, actor_id=current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
