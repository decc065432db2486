# labflow/domains/inv/crud.py

"""
'inv' 도메인 (시약 장착/소모)의 CRUD 작업을 위한 함수들을 정의하는 모듈입니다.

잔량 차감은 저장 계층에서 compare-and-swap 방식으로 수행합니다.
`quantity_remaining >= 요청량` 조건을 UPDATE 문에 포함하여, 앞선 게이트 검사 이후
다른 오더가 같은 로트를 소모한 경우에도 잔량이 음수가 되지 않습니다.
"""

import logging
from datetime import date, datetime, UTC
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core.config import settings
from labflow.core.crud_base import CRUDBase
from labflow.core.exceptions import NotFoundError, ValidationError
from labflow.domains.inv import models as inv_models, reagent_gate
from labflow.domains.inv import schemas as inv_schemas

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# 1. 시약 장착 (ConsumableInstallation) CRUD
# =============================================================================
class CRUDConsumableInstallation(
    CRUDBase[inv_models.ConsumableInstallation, inv_schemas.ConsumableInstallationCreate, BaseModel]
):
    def __init__(self):
        super().__init__(model=inv_models.ConsumableInstallation)

    async def install(
        self,
        db: AsyncSession,
        *,
        obj_in: inv_schemas.ConsumableInstallationCreate,
        installed_by_user_id: Optional[int] = None,
    ) -> inv_models.ConsumableInstallation:
        data = obj_in.model_dump()
        if data.get("quantity_remaining") is None:
            data["quantity_remaining"] = data["quantity"]
        db_obj = inv_models.ConsumableInstallation(
            **data,
            status=inv_models.ReagentStatus.IN_USE,
            installed_by_user_id=installed_by_user_id,
        )
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def get_by_instrument(
        self, db: AsyncSession, *, instrument_id: int, in_use_only: bool = False
    ) -> List[inv_models.ConsumableInstallation]:
        query = select(self.model).where(self.model.instrument_id == instrument_id)
        if in_use_only:
            query = query.where(self.model.status == inv_models.ReagentStatus.IN_USE)
        query = query.order_by(self.model.id)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def remove(
        self, db: AsyncSession, *, installation_id: int
    ) -> inv_models.ConsumableInstallation:
        db_obj = await self.get(db, installation_id)
        if db_obj is None:
            raise NotFoundError(f"Consumable installation {installation_id} not found.")
        if db_obj.status == inv_models.ReagentStatus.EXPIRED:
            raise ValidationError("Expired reagent installations cannot change status.")
        db_obj.status = inv_models.ReagentStatus.NOT_IN_USE
        db_obj.removed_at = datetime.now(UTC)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def try_consume(
        self, db: AsyncSession, *, installation_id: int, quantity: float
    ) -> bool:
        """
        잔량이 요청량 이상이고 in_use 상태일 때만 원자적으로 차감합니다.
        차감되지 않았으면 False를 반환합니다. 커밋은 호출자가 담당합니다.
        """
        statement = (
            update(self.model)
            .where(
                self.model.id == installation_id,
                self.model.status == inv_models.ReagentStatus.IN_USE,
                self.model.quantity_remaining >= quantity,
            )
            .values(quantity_remaining=self.model.quantity_remaining - quantity)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(statement)
        return result.rowcount == 1

    async def expire_overdue(self, db: AsyncSession, *, today: Optional[date] = None) -> int:
        """유효기간이 지난 in_use 시약을 expired로 전환합니다. 커밋은 호출자가 담당합니다."""
        today = today or date.today()
        statement = (
            update(self.model)
            .where(
                self.model.status == inv_models.ReagentStatus.IN_USE,
                self.model.expiration_date < today,
            )
            .values(status=inv_models.ReagentStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(statement)
        return result.rowcount


consumable_installation = CRUDConsumableInstallation()


# =============================================================================
# 2. 시약 소모 이력 (ConsumableUsage) CRUD
# =============================================================================
class CRUDConsumableUsage(CRUDBase[inv_models.ConsumableUsage, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(model=inv_models.ConsumableUsage)

    async def get_by_order(self, db: AsyncSession, *, order_id: int) -> List[inv_models.ConsumableUsage]:
        result = await db.execute(
            select(self.model).where(self.model.order_id == order_id).order_by(self.model.id)
        )
        return list(result.scalars().all())


consumable_usage = CRUDConsumableUsage()


# =============================================================================
# 3. 장비별 시약 게이트 보고서
# =============================================================================
async def gate_report(
    db: AsyncSession,
    *,
    instrument_id: int,
    requested: Optional[Dict[str, float]] = None,
    today: Optional[date] = None,
) -> reagent_gate.GateReport:
    """장비에 장착된 시약으로 필수 시약 유형(REQUIRED_REAGENT_TYPES)의 충분 여부를 확인합니다."""
    installations = await consumable_installation.get_by_instrument(db, instrument_id=instrument_id)
    return reagent_gate.check_sufficiency(
        settings.REQUIRED_REAGENT_TYPES, installations, requested=requested, today=today
    )
