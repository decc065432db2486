# labflow/domains/fms/__init__.py

"""
FastAPI 애플리케이션의 'fms' 도메인 패키지입니다.

'fms' 도메인은 검사 장비(Instrument) 디렉터리를 관리합니다.
검체 접수 시 장비의 가동 모드(ready, maintenance, inactive)를 확인하는 데 사용됩니다.

주요 서브모듈:
- `models.py`: 'fms' 스키마의 테이블에 매핑되는 SQLModel 정의.
- `schemas.py`: 'fms' 스키마 데이터에 대한 Pydantic 모델 (요청 및 응답 유효성 검사).
- `crud.py`: 장비 조회 및 가동 모드 확인 로직.
- `routers.py`: 장비 등록, 조회, 가동 모드 변경 API 엔드포인트 정의.
"""

# 패키지 메타데이터 (선택 사항)
__title__ = "LabFlow Instrument Domain"
__description__ = "Manages the instrument directory and operable modes."
__version__ = "0.1.0"  # fms 도메인 패키지의 버전
__all__ = []  # 'from labflow.domains.fms import *' 시 내보낼 이름 목록. 일반적으로 비워둡니다.
