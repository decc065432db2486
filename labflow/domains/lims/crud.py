# labflow/domains/lims/crud.py

"""
'lims' 도메인 (검체 처리 파이프라인)의 CRUD 작업을 위한 함수들을 정의하는 모듈입니다.

오더 상태 전이, 결과 반영 등 업무 규칙은 workflow.py / review.py에 있으며,
이 모듈은 조회와 단순 저장만 담당합니다.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from pydantic import BaseModel
from sqlalchemy import delete
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core.crud_base import CRUDBase
from labflow.domains.lims import models as lims_models
from labflow.domains.lims import schemas as lims_schemas


# =============================================================================
# 1. 분석 항목 (Parameter) CRUD
# =============================================================================
class CRUDParameter(CRUDBase[lims_models.Parameter, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(model=lims_models.Parameter)

    async def get_by_code(self, db: AsyncSession, *, code: str) -> Optional[lims_models.Parameter]:
        return await self.get_by_attribute(db, attribute="code", value=code)

    async def get_panel(self, db: AsyncSession) -> List[lims_models.Parameter]:
        """활성화된 분석 항목 전체(패널)를 정렬 순서대로 반환합니다."""
        result = await db.execute(
            select(self.model)
            .where(self.model.is_active == True)  # noqa: E712
            .order_by(self.model.sort_order, self.model.id)
        )
        return list(result.scalars().all())

    async def get_many(self, db: AsyncSession, ids: Iterable[int]) -> List[lims_models.Parameter]:
        ids = list(set(ids))
        if not ids:
            return []
        result = await db.execute(select(self.model).where(self.model.id.in_(ids)))
        return list(result.scalars().all())


parameter = CRUDParameter()


# =============================================================================
# 2. 판정 규칙 (FlaggingRule) CRUD
# =============================================================================
class CRUDFlaggingRule(CRUDBase[lims_models.FlaggingRule, lims_schemas.FlaggingRuleCreate, BaseModel]):
    def __init__(self):
        super().__init__(model=lims_models.FlaggingRule)

    async def get_for_parameters(
        self, db: AsyncSession, parameter_ids: Iterable[int]
    ) -> List[lims_models.FlaggingRule]:
        """분석 항목들의 활성 규칙을 저장 순서(id)대로 반환합니다."""
        parameter_ids = list(set(parameter_ids))
        if not parameter_ids:
            return []
        result = await db.execute(
            select(self.model)
            .where(self.model.parameter_id.in_(parameter_ids), self.model.is_active == True)  # noqa: E712
            .order_by(self.model.id)
        )
        return list(result.scalars().all())


flagging_rule = CRUDFlaggingRule()


# =============================================================================
# 3. 대상자 (Patient) CRUD
# =============================================================================
class CRUDPatient(CRUDBase[lims_models.Patient, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(model=lims_models.Patient)

    async def get_by_code(self, db: AsyncSession, *, patient_code: str) -> Optional[lims_models.Patient]:
        return await self.get_by_attribute(db, attribute="patient_code", value=patient_code)


patient = CRUDPatient()


# =============================================================================
# 4. 검사 오더 (TestOrder) CRUD
# =============================================================================
class CRUDTestOrder(CRUDBase[lims_models.TestOrder, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(model=lims_models.TestOrder)

    async def get_detail(self, db: AsyncSession, order_id: int) -> Optional[lims_models.TestOrder]:
        """결과와 코멘트를 포함한 오더를 DB의 최신 상태로 다시 읽어옵니다."""
        result = await db.execute(
            select(self.model)
            .where(self.model.id == order_id)
            .options(selectinload(self.model.results), selectinload(self.model.comments))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_live_by_barcode(self, db: AsyncSession, *, barcode: str) -> Optional[lims_models.TestOrder]:
        """진행 중(pending, running)인 오더를 바코드로 조회합니다."""
        result = await db.execute(
            select(self.model)
            .where(self.model.live_barcode == barcode)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()


test_order = CRUDTestOrder()


# =============================================================================
# 5. 장비 결과 메시지 (InterchangeMessage) CRUD
# =============================================================================
class CRUDInterchangeMessage(CRUDBase[lims_models.InterchangeMessage, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(model=lims_models.InterchangeMessage)

    async def get_fresh(self, db: AsyncSession, message_id: int) -> Optional[lims_models.InterchangeMessage]:
        """세션에 남은 객체와 관계없이 DB의 최신 상태로 읽어옵니다."""
        result = await db.execute(
            select(self.model).where(self.model.id == message_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def delete_synced_older_than(self, db: AsyncSession, *, cutoff: datetime) -> int:
        """
        오더 반영이 끝난(can_delete) 메시지 중 cutoff 이전에 생성된 것을 삭제하고 삭제 건수를 반환합니다.
        커밋은 호출자가 담당합니다.
        """
        statement = (
            delete(self.model)
            .where(self.model.can_delete == True, self.model.created_at < cutoff)  # noqa: E712
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(statement)
        return result.rowcount


interchange_message = CRUDInterchangeMessage()
