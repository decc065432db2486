# labflow/domains/fms/routers.py

"""
'fms' 도메인 (장비 디렉터리)의 API 엔드포인트를 정의하는 모듈입니다.
장비의 가동 모드는 검체 접수 가능 여부를 결정합니다 (ready 상태에서만 접수).
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core import dependencies as deps
from labflow.core.exceptions import NotFoundError, ValidationError
from labflow.domains.fms import crud as fms_crud
from labflow.domains.fms import models as fms_models
from labflow.domains.fms import schemas as fms_schemas
from labflow.domains.shared.services import record_event
from labflow.domains.usr.models import User as UsrUser

router = APIRouter(
    tags=["Instrument Directory (장비 관리)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. fms.instruments 엔드포인트
# =============================================================================
@router.post(
    "/instruments",
    response_model=fms_schemas.InstrumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="장비 등록",
)
async def create_instrument(
    instrument_in: fms_schemas.InstrumentCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_admin_user),
):
    """새 장비를 등록합니다. (관리자 권한 필요)"""
    if await fms_crud.instrument.get_by_code(db, code=instrument_in.code):
        raise ValidationError(f"Instrument code '{instrument_in.code}' already exists.")
    return await fms_crud.instrument.create(db=db, obj_in=instrument_in)


@router.get("/instruments", response_model=List[fms_schemas.InstrumentResponse], summary="장비 목록 조회")
async def read_instruments(
    mode: Optional[fms_models.InstrumentMode] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    return await fms_crud.instrument.get_multi(db, skip=skip, limit=limit, mode=mode)


@router.get("/instruments/{instrument_id}", response_model=fms_schemas.InstrumentResponse, summary="장비 조회")
async def read_instrument(
    instrument_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    instrument = await fms_crud.instrument.get(db, instrument_id)
    if instrument is None:
        raise NotFoundError(f"Instrument {instrument_id} not found.")
    return instrument


@router.put(
    "/instruments/{instrument_id}/mode",
    response_model=fms_schemas.InstrumentResponse,
    summary="장비 가동 모드 변경",
)
async def update_instrument_mode(
    instrument_id: int,
    mode_in: fms_schemas.InstrumentModeUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_admin_user),
):
    """장비를 점검(maintenance) 또는 비활성(inactive)으로 돌리면 새 검체를 접수할 수 없습니다."""
    instrument = await fms_crud.instrument.get(db, instrument_id)
    if instrument is None:
        raise NotFoundError(f"Instrument {instrument_id} not found.")
    previous = fms_models.InstrumentMode(instrument.mode)
    instrument = await fms_crud.instrument.update(db, db_obj=instrument, obj_in=mode_in)

    await record_event(
        db,
        action_type="INSTRUMENT_MODE_CHANGED",
        entity_type="Instrument",
        entity_id=instrument_id,
        actor_id=current_user.id,
        description=f"Instrument mode changed: {previous.value} -> {mode_in.mode.value}",
        details={"previous": previous.value, "mode": mode_in.mode.value},
    )
    return await fms_crud.instrument.get(db, instrument_id)
