# tests/__init__.py

"""
LabFlow LIS 백엔드의 테스트 스위트 패키지입니다.

- `domains/`: 도메인(fms, inv, lims)별 단위 테스트와 API 통합 테스트
- `services/`: 외부 서비스 연동(텍스트 생성기) 테스트
- `conftest.py`: 인메모리 데이터베이스, 인증 클라이언트 등 공용 픽스처
"""

__title__ = "LabFlow LIS API Tests"
__description__ = "Test suite for the LabFlow LIS FastAPI application."
__version__ = "0.1.0"
__all__ = []
