# labflow/core/__init__.py

"""
FastAPI 애플리케이션의 핵심 구성 요소 패키지입니다.

- `config.py`: 애플리케이션의 설정 및 환경 변수 관리 (Pydantic Settings).
- `database.py`: 데이터베이스 연결, 세션 관리 (SQLModel 및 AsyncSQLAlchemy).
- `crud_base.py`: 도메인 CRUD 클래스가 상속하는 공통 CRUD 기본 클래스.
- `exceptions.py`: 파이프라인 오류 분류 (ValidationError, ResourceError, ...).
- `security.py`: 외부 인증 서비스가 발급한 JWT 검증 및 역할 기반 권한 검사.
- `dependencies.py`: FastAPI의 의존성 주입 시스템에서 사용될 공통 의존성 함수들.
- `tasks.py`: ARQ 워커용 공통 태스크 (데이터베이스 헬스 체크).
"""

# 패키지 메타데이터 (선택 사항)
__title__ = "LabFlow Core"
__description__ = "Core components for the LabFlow LIS FastAPI application."
__version__ = "0.1.0"  # core 패키지의 버전
__all__ = []  # 'from labflow.core import *' 시 내보낼 이름 목록. 일반적으로 비워둡니다.
