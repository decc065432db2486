# labflow/services/__init__.py

"""
도메인에 속하지 않는 외부 시스템 연동 서비스 패키지입니다.

- `text_generation.py`: AI 검토에 사용하는 텍스트 생성 서비스(Gemini) 클라이언트.
"""
