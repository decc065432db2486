# labflow/domains/inv/__init__.py

"""
FastAPI 애플리케이션의 'inv' 도메인 패키지입니다.

'inv' 도메인은 장비에 장착된 시약 로트(ConsumableInstallation)와
결과 1건마다 기록되는 시약 사용 이력(ConsumableUsage)을 관리합니다.
검체 접수 전 필수 시약 확인과 유효기간이 먼저 끝나는 로트부터 차감하는 로직을 포함합니다.

주요 서브모듈:
- `models.py`: 'inv' 스키마의 테이블에 매핑되는 SQLModel 정의.
- `schemas.py`: 'inv' 스키마 데이터에 대한 Pydantic 모델 (요청 및 응답 유효성 검사).
- `crud.py`: 장착 시약 조회, compare-and-swap 잔량 차감, 만료 처리 로직.
- `reagent_gate.py`: 필수 시약 충족 여부 판정 및 로트 배정 (순수 함수).
- `routers.py`: 시약 장착/제거 및 게이트 상태 조회 API 엔드포인트 정의.
- `tasks.py`: 유효기간 경과 시약 만료 처리 ARQ 태스크.
"""

# 패키지 메타데이터 (선택 사항)
__title__ = "LabFlow Reagent Inventory Domain"
__description__ = "Manages installed reagent lots, usage history and the pre-run reagent gate."
__version__ = "0.1.0"  # inv 도메인 패키지의 버전
__all__ = []  # 'from labflow.domains.inv import *' 시 내보낼 이름 목록. 일반적으로 비워둡니다.
