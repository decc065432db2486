# labflow/core/tasks.py

import logging
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def health_check_database_task(ctx: Dict[str, Any]) -> Dict[str, str]:
    """
    ARQ 워커가 주기적으로 실행하는 데이터베이스 헬스 체크 태스크입니다.
    """
    db: AsyncSession = ctx['db']
    logger.info("ARQ 태스크: 데이터베이스 헬스 체크 실행")

    try:
        result = await db.execute(select(1))
    except SQLAlchemyError as e:
        logger.error("데이터베이스 헬스 체크 실패: %s", e)
        return {"status": "failed", "message": f"Database connection error: {e}"}

    if result.scalar_one_or_none() == 1:
        logger.info("데이터베이스 헬스 체크: 연결 정상")
        return {"status": "success", "message": "Database connection successful."}
    logger.error("데이터베이스 헬스 체크 실패: 테스트 쿼리 결과 없음")
    return {"status": "failed", "message": "Database health check failed: No result from test query."}
