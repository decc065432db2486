# labflow/domains/lims/tasks.py

import logging
from typing import Any, Dict, Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.domains.lims import workflow

#  로거 설정
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def auto_delete_synced_messages(ctx: Dict[str, Any], days_old: Optional[int] = None) -> Dict[str, Any]:
    """
    오더 반영이 끝난(can_delete) 장비 메시지 중 보관 기간(RAW_MESSAGE_RETENTION_DAYS)이 지난 것을 삭제합니다.
    """
    db: AsyncSession = ctx['db']
    logger.info("백그라운드 작업 시작: 보관 기간 경과 장비 메시지 정리")

    deleted_count, cutoff = await workflow.cleanup_messages(db, days_old=days_old)

    logger.info("작업 완료! %s 이전 메시지 %d건 삭제됨.", cutoff.isoformat(), deleted_count)
    return {"status": "ok", "deleted_count": deleted_count, "cutoff": cutoff.isoformat()}
