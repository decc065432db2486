# labflow/core/dependencies.py

"""
FastAPI 애플리케이션의 의존성 주입(Dependency Injection)을 정의하는 모듈입니다.

- 데이터베이스 세션 관리 (get_db_session).
- 현재 인증된 작업자 정보 획득 (get_current_active_user, get_current_admin_user).
- AI 검토에 사용할 텍스트 생성기 (get_text_generator).
"""

from typing import AsyncGenerator
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core.database import get_session as get_main_app_session

# flake8: noqa
from labflow.core.security import (
    oauth2_scheme,
    get_current_user_from_token,
    get_current_active_user,
    get_current_admin_user,
)
from labflow.services.text_generation import get_text_generator


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 의존성 주입을 위한 비동기 데이터베이스 세션 제너레이터입니다.
    labflow.core.database.get_session을 래핑하여 사용합니다.
    """
    async for session in get_main_app_session():
        yield session
