# labflow/domains/inv/routers.py

from typing import List

from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core import dependencies as deps
from labflow.core.exceptions import NotFoundError
from labflow.domains.fms import crud as fms_crud
from labflow.domains.inv import crud as inv_crud, schemas as inv_schemas
from labflow.domains.shared.services import record_event
from labflow.domains.usr.models import User as UsrUser

router = APIRouter(
    tags=["Reagent Inventory (시약 관리)"],
    responses={404: {"description": "Not found"}},
)


async def _get_instrument_or_404(db: AsyncSession, instrument_id: int):
    instrument = await fms_crud.instrument.get(db, instrument_id)
    if instrument is None:
        raise NotFoundError(f"Instrument {instrument_id} not found.")
    return instrument


# =============================================================================
# 1. inv.consumable_installations 엔드포인트
# =============================================================================
@router.post(
    "/consumables",
    response_model=inv_schemas.ConsumableInstallationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="시약 장착",
)
async def install_consumable(
    installation_in: inv_schemas.ConsumableInstallationCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_admin_user),
):
    """장비에 새 시약 로트를 장착합니다. 잔량은 장착 수량으로 시작합니다. 관리자 권한이 필요합니다."""
    await _get_instrument_or_404(db, installation_in.instrument_id)
    installation = await inv_crud.consumable_installation.install(
        db, obj_in=installation_in, installed_by_user_id=current_user.id
    )
    await record_event(
        db,
        action_type="CONSUMABLE_INSTALLED",
        entity_type="ConsumableInstallation",
        entity_id=installation.id,
        actor_id=current_user.id,
        description=f"{installation_in.reagent_name} lot {installation_in.lot_number} installed",
        details={"instrument_id": installation_in.instrument_id, "quantity": installation_in.quantity},
    )
    return await inv_crud.consumable_installation.get(db, installation.id)


@router.post(
    "/consumables/{installation_id}/remove",
    response_model=inv_schemas.ConsumableInstallationResponse,
    summary="시약 탈거",
)
async def remove_consumable(
    installation_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    """장착 시약을 not_in_use 상태로 전환합니다."""
    installation = await inv_crud.consumable_installation.remove(db, installation_id=installation_id)
    await record_event(
        db,
        action_type="CONSUMABLE_REMOVED",
        entity_type="ConsumableInstallation",
        entity_id=installation_id,
        actor_id=current_user.id,
        description=f"{installation.reagent_name} lot {installation.lot_number} removed",
    )
    return await inv_crud.consumable_installation.get(db, installation_id)


@router.get(
    "/instruments/{instrument_id}/consumables",
    response_model=List[inv_schemas.ConsumableInstallationResponse],
    summary="장비별 장착 시약 목록",
)
async def read_instrument_consumables(
    instrument_id: int,
    in_use_only: bool = False,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    await _get_instrument_or_404(db, instrument_id)
    return await inv_crud.consumable_installation.get_by_instrument(
        db, instrument_id=instrument_id, in_use_only=in_use_only
    )


@router.get(
    "/instruments/{instrument_id}/reagent-gate",
    response_model=inv_schemas.ReagentGateResponse,
    summary="장비별 필수 시약 충분 여부",
)
async def read_reagent_gate(
    instrument_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: UsrUser = Depends(deps.get_current_active_user),
):
    """필수 시약 유형별로 누락(missing) 또는 잔량 부족(insufficient) 여부를 모두 보고합니다."""
    await _get_instrument_or_404(db, instrument_id)
    report = await inv_crud.gate_report(db, instrument_id=instrument_id)
    return inv_schemas.ReagentGateResponse(instrument_id=instrument_id, **report.model_dump())
