# labflow/domains/fms/crud.py

"""
'fms' 도메인 (장비 디렉터리) 조회 함수를 정의하는 모듈입니다.
"""

from typing import Optional

from pydantic import BaseModel
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core.crud_base import CRUDBase
from labflow.core.exceptions import NotFoundError
from labflow.domains.fms import models as fms_models


class CRUDInstrument(CRUDBase[fms_models.Instrument, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(model=fms_models.Instrument)

    async def get_by_code(self, db: AsyncSession, *, code: str) -> Optional[fms_models.Instrument]:
        return await self.get_by_attribute(db, attribute="code", value=code)

    async def get_operable_mode(self, db: AsyncSession, instrument_id: int) -> fms_models.InstrumentMode:
        instrument = await self.get(db, instrument_id)
        if instrument is None:
            raise NotFoundError(f"Instrument {instrument_id} not found.")
        return fms_models.InstrumentMode(instrument.mode)


instrument = CRUDInstrument()
