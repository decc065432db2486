# labflow/core/database_base.py

"""
여러 도메인 모델이 공유하는 컬럼 타입을 정의합니다.

JSON 컬럼은 PostgreSQL에서는 JSONB로, 그 외(테스트용 SQLite)에서는 일반 JSON으로 생성됩니다.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

JSONVariant = JSON().with_variant(JSONB(), "postgresql")
