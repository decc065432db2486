# labflow/core/exceptions.py

"""
검사 파이프라인 전역에서 사용하는 예외 분류 체계입니다.

모든 오류는 HTTPException을 상속하므로 crud/서비스 계층에서 그대로 raise하면
FastAPI가 상태 코드와 함께 응답합니다. register_exception_handlers()를 등록하면
다중 항목 검증 오류의 전체 목록(errors)이 응답 본문에 함께 실립니다.
"""

from typing import List, Optional, Sequence

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse


class LabflowError(HTTPException):
    """파이프라인 오류의 공통 부모 클래스."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    error_type = "labflow_error"

    def __init__(self, message: str, errors: Optional[Sequence[str]] = None):
        super().__init__(status_code=self.status_code_default, detail=message)
        self.message = message
        self.errors: List[str] = list(errors or [])

    def __str__(self) -> str:
        return self.message


class ValidationError(LabflowError):
    """입력 형식 오류 또는 업무 규칙 위반 (예: 장비 미준비, 시약 부족)."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    error_type = "validation_error"


class ResourceError(LabflowError):
    """소모 시점에 시약 잔량이 부족한 경우 (사전 검사 이후 경합으로 소진)."""

    status_code_default = status.HTTP_409_CONFLICT
    error_type = "resource_error"


class NotFoundError(LabflowError):
    status_code_default = status.HTTP_404_NOT_FOUND
    error_type = "not_found"


class ExternalServiceError(LabflowError):
    """외부 텍스트 생성 서비스 호출 실패. 재시도하지 않고 호출자에게 보고합니다."""

    status_code_default = status.HTTP_502_BAD_GATEWAY
    error_type = "external_service_error"


class ParseDegradedWarning(UserWarning):
    """AI 응답 복구가 마지막 fallback 단계까지 내려간 경우 발생하는 경고."""


async def labflow_error_handler(request: Request, exc: LabflowError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_type": exc.error_type, "errors": exc.errors},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LabflowError, labflow_error_handler)
