# tests/domains/__init__.py

"""
도메인별 테스트 패키지입니다.

- `fms`: 장비 디렉터리
- `inv`: 시약 게이트, 장착/소모
- `lims`: 판정, HL7 유사 메시지, JSON 복구, 워크플로우, 검토
"""

__title__ = "LabFlow Domain Tests"
__description__ = "Categorized tests for each business domain in the LabFlow LIS application."
__version__ = "0.1.0"
__all__ = []
