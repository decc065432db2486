# labflow/main.py

import logging
from typing import Any, AsyncGenerator, Dict
from contextlib import asynccontextmanager
from arq.connections import create_pool, RedisSettings

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

# 핵심 설정 및 데이터베이스 모듈 임포트
from labflow.core.config import settings
from labflow.core.database import AsyncSessionLocal, engine, get_session
from labflow.core.exceptions import register_exception_handlers

from labflow import API_PREFIX

# 태스크 모듈 임포트
from labflow.core import tasks as core_tasks
from labflow.domains.inv import tasks as inv_tasks
from labflow.domains.lims import tasks as lims_tasks

# 도메인 라우터 임포트
from labflow.domains.fms.routers import router as fms_router
from labflow.domains.inv.routers import router as inv_router
from labflow.domains.lims.routers import router as lims_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ARQ 워커가 실행할 태스크 함수 목록
worker_functions = [
    core_tasks.health_check_database_task,
    inv_tasks.expire_consumables,
    lims_tasks.auto_delete_synced_messages,
]


async def on_job_start(ctx: Dict[str, Any]) -> None:
    """작업마다 새 데이터베이스 세션을 ctx['db']에 할당합니다."""
    ctx['db'] = AsyncSessionLocal()


async def after_job_end(ctx: Dict[str, Any]) -> None:
    db = ctx.pop('db', None)
    if db is not None:
        await db.close()


# ARQ 워커 설정 클래스
class ArqWorkerSettings:
    redis_settings = RedisSettings(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
    functions = worker_functions
    on_job_start = on_job_start
    after_job_end = after_job_end
    jobs = [
        {
            'name': 'daily_db_health_check',
            'function': 'labflow.core.tasks.health_check_database_task',
            'cron': '0 0 * * *',
            'timeout': 300,
            'keep_result': 600,
        },
        {
            'name': 'daily_consumable_expiry',  # 유효기간 경과 시약 만료 처리
            'function': 'labflow.domains.inv.tasks.expire_consumables',
            'cron': '30 0 * * *',  # 매일 00:30
            'timeout': 600,
            'keep_result': 3600,
        },
        {
            'name': 'daily_synced_message_cleanup',  # 보관 기간 경과 장비 메시지 삭제
            'function': 'labflow.domains.lims.tasks.auto_delete_synced_messages',
            'cron': '0 2 * * *',  # 매일 02:00
            'timeout': 1800,
            'keep_result': 3600,
        },
    ]


# -- 애플리케이션 수명 주기 이벤트 핸들러 --
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI 애플리케이션의 수명 주기 이벤트(데이터베이스, ARQ Redis)를 함께 처리합니다.
    """
    logger.info("FastAPI 애플리케이션 시작 중...")
    logger.info("ARQ Redis 커넥션 풀을 생성합니다...")
    app.state.redis = await create_pool(ArqWorkerSettings.redis_settings)
    logger.info("ARQ Redis 커넥션 풀 생성 완료.")

    yield  # 애플리케이션 실행

    logger.info("FastAPI 애플리케이션 종료 중...")
    if getattr(app.state, "redis", None):
        await app.state.redis.close()
        logger.info("ARQ Redis 연결 풀 종료 완료.")
    await engine.dispose()
    logger.info("데이터베이스 연결 풀 종료 완료.")


# -- FastAPI 애플리케이션 인스턴스 생성 --
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

register_exception_handlers(app)

# -- CORS 미들웨어 설정 --
# 프로덕션에서는 allow_origins를 실제 프론트엔드 도메인으로 제한해야 합니다.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -- 도메인 라우터 포함 --
app.include_router(fms_router, prefix=f"{API_PREFIX}/fms", tags=["Instrument Directory (장비 관리)"])
app.include_router(inv_router, prefix=f"{API_PREFIX}/inv", tags=["Reagent Inventory (시약 관리)"])
app.include_router(lims_router, prefix=f"{API_PREFIX}/lims", tags=["Laboratory Information Management (검체 처리)"])


# -- 루트 엔드포인트 --
@app.get("/", summary="API Root", response_description="Welcome message and documentation link.")
async def read_root():
    """
    LabFlow LIS API의 루트 엔드포인트입니다.
    """
    return {"message": "Welcome to LabFlow LIS API. Visit /docs for interactive API documentation."}


# -- 헬스 체크 엔드포인트 --
@app.get("/health-check", summary="Health Check", response_description="Status of the application and database connection.")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    데이터베이스 연결을 테스트하여 서비스의 정상 작동 여부를 확인합니다.
    """
    try:
        result = await session.exec(select(1))
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database connection error during health check: {e}"
        )
    if result.first():
        return {"status": "ok", "database_connection": "successful"}
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Database health check failed: No result from test query"
    )
