# labflow/domains/shared/__init__.py

"""
FastAPI 애플리케이션의 'shared' 도메인 패키지입니다.

'shared' 도메인은 여러 도메인이 공통으로 사용하는 감사 로그(EventLog)를 관리합니다.

주요 서브모듈:
- `models.py`: 'shared' 스키마의 테이블에 매핑되는 SQLModel 정의.
- `services.py`: 감사 로그 기록 서비스 (record_event).
"""

# 패키지 메타데이터 (선택 사항)
__title__ = "LabFlow Shared Domain"
__description__ = "Audit event log shared by all domains."
__version__ = "0.1.0"  # shared 도메인 패키지의 버전
__all__ = []  # 'from labflow.domains.shared import *' 시 내보낼 이름 목록. 일반적으로 비워둡니다.
