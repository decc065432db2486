# labflow/domains/shared/services.py

"""
감사 로그(audit) 기록 서비스입니다.

record_event는 fire-and-forget 방식으로 동작합니다. 기록 실패는 로컬 로그로만 남기고
호출한 파이프라인 작업을 중단시키지 않습니다. 호출자의 업무 데이터가 이미 커밋된 뒤에
호출해야 하며, 실패 시 롤백되는 것은 이 감사 레코드뿐입니다.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.domains.shared import models as shared_models

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def record_event(
    db: AsyncSession,
    *,
    action_type: str,
    entity_type: str,
    entity_id: Any = None,
    actor_id: Optional[int] = None,
    description: str = "",
    details: Optional[Dict[str, Any]] = None,
) -> None:
    event = shared_models.EventLog(
        action_type=action_type,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        actor_user_id=actor_id,
        description=description,
        details=details,
    )
    try:
        db.add(event)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("감사 로그 기록 실패: %s %s(%s)", action_type, entity_type, entity_id)
        await db.rollback()
