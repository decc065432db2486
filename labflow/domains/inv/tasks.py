# labflow/domains/inv/tasks.py

import logging
from datetime import date
from typing import Any, Dict

from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.domains.inv import crud as inv_crud
from labflow.domains.shared.services import record_event

#  로거 설정
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def expire_consumables(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """
    유효기간이 지난 in_use 장착 시약을 expired 상태로 전환합니다.
    expired 상태는 다시 되돌릴 수 없습니다.
    """
    db: AsyncSession = ctx['db']
    today = date.today()
    logger.info("백그라운드 작업 시작: %s 기준 유효기간 경과 시약 만료 처리", today.isoformat())

    expired_count = await inv_crud.consumable_installation.expire_overdue(db, today=today)
    await db.commit()

    if expired_count:
        await record_event(
            db,
            action_type="CONSUMABLE_EXPIRED",
            entity_type="ConsumableInstallation",
            description=f"{expired_count} consumable installation(s) expired",
            details={"as_of": today.isoformat(), "count": expired_count},
        )

    logger.info("작업 완료! 총 %d개의 장착 시약이 만료 처리됨.", expired_count)
    return {"status": "ok", "expired_count": expired_count}
