# labflow/domains/usr/__init__.py

"""
FastAPI 애플리케이션의 'usr' 도메인 패키지입니다.

'usr' 도메인은 작업자(actor) 정보만 보관합니다. 로그인과 사용자 관리는
외부 인증 서비스가 담당하며, 이 서비스는 토큰의 사용자명으로 작업자를 조회하고
역할(UserRole)로 권한을 검사합니다.

주요 서브모듈:
- `models.py`: 'usr' 스키마의 테이블에 매핑되는 SQLModel 정의.
"""

# 패키지 메타데이터 (선택 사항)
__title__ = "LabFlow User Domain"
__description__ = "Actor identity and roles (authentication is external)."
__version__ = "0.1.0"  # usr 도메인 패키지의 버전
__all__ = []  # 'from labflow.domains.usr import *' 시 내보낼 이름 목록. 일반적으로 비워둡니다.
