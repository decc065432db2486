# labflow/domains/lims/__init__.py

"""
FastAPI 애플리케이션의 'lims' 도메인 패키지입니다.

'lims' 도메인은 검체 1건의 처리 파이프라인을 담당합니다.
바코드 접수(TestOrder), 측정값 수신(InterchangeMessage), 결과 판정(ResultEntry),
검토(수동 / AI)와 코멘트(OrderComment)까지의 데이터가 포함됩니다.

주요 서브모듈:
- `models.py`: 'lims' 스키마의 테이블에 매핑되는 SQLModel 정의.
- `schemas.py`: 'lims' 스키마 데이터에 대한 Pydantic 모델 (요청 및 응답 유효성 검사).
- `crud.py`: 'lims' 스키마 테이블에 대한 비동기 조회/저장 로직.
- `workflow.py`: 오더 상태 머신, 접수, 결과 반영, 메시지 동기화, 코멘트.
- `flagging.py`: 측정값의 이상 여부와 심각도 판정.
- `hl7.py`: HL7 유사 결과 메시지(ORU^R01) 인코딩/디코딩.
- `generator.py`: 장비 시뮬레이션용 합성 측정값 생성.
- `review.py`: 수동 검토와 AI 검토.
- `json_repair.py`: AI 응답 JSON 복구.
- `routers.py`: 'lims' 도메인 API 엔드포인트 정의.
- `tasks.py`: 보관 기간 경과 메시지 정리 ARQ 태스크.
"""

# 패키지 메타데이터 (선택 사항)
__title__ = "LabFlow LIMS Domain"
__description__ = "Sample-to-result pipeline: intake, results, flagging, review."
__version__ = "0.1.0"  # lims 도메인 패키지의 버전
__all__ = []  # 'from labflow.domains.lims import *' 시 내보낼 이름 목록. 일반적으로 비워둡니다.
