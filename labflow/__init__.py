# labflow/__init__.py

"""
LabFlow LIS FastAPI 애플리케이션의 메인 패키지입니다.

검체 바코드 접수부터 결과 수신, 판정(flagging), 검토(manual / AI)까지
이어지는 검사 파이프라인을 제공합니다.
FastAPI 애플리케이션의 진입점 (main.py)과
공통 설정, 데이터베이스 연결, 보안 관련 유틸리티를 담는 core 서브패키지,
그리고 각 비즈니스 도메인을 대표하는 domains 서브패키지로 구성됩니다.
"""

APP_NAME = "LabFlow LIS API"
APP_VERSION = "0.1.0"
API_PREFIX = "/api/v1"  # API 라우트의 공통 접두사 (main.py에서 적용)

__version__ = APP_VERSION
__title__ = APP_NAME
__description__ = "Laboratory information backend: sample-to-result processing and review pipeline."
__license__ = "MIT"
__all__ = []
