# labflow/services/text_generation.py

"""
AI 검토에 사용하는 외부 텍스트 생성 서비스 연동 모듈입니다.

검토 엔진은 TextGenerator 프로토콜에만 의존하며, 운영 환경에서는 Gemini
generateContent REST API를 httpx로 호출하는 GeminiTextGenerator를 사용합니다.
호출 실패(네트워크 오류, 비정상 상태 코드, 빈 응답)는 재시도 없이 ExternalServiceError로 보고합니다.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from labflow.core.config import settings
from labflow.core.exceptions import ExternalServiceError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        system_instruction: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        ...


class GeminiTextGenerator:
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        # 테스트에서는 MockTransport를 가진 클라이언트를 주입합니다.
        self._client = client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_payload(
        self, prompt: str, system_instruction: str, max_tokens: int, temperature: float
    ) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": temperature,
                "responseMimeType": "application/json",
            },
        }

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> httpx.Response:
        return await client.post(self.endpoint, params={"key": self.api_key}, json=payload)

    async def generate(
        self,
        prompt: str,
        system_instruction: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        payload = self.build_payload(prompt, system_instruction, max_tokens, temperature)
        try:
            if self._client is not None:
                response = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, payload)
        except httpx.HTTPError as e:
            logger.error("텍스트 생성 서비스 호출 실패 (%s): %s", self.model, e)
            raise ExternalServiceError(f"Text generation service unreachable: {e}")

        if response.status_code != 200:
            logger.error("텍스트 생성 서비스 오류 응답: %d %s", response.status_code, response.text[:200])
            raise ExternalServiceError(
                f"Text generation service returned HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError:
            raise ExternalServiceError("Text generation service returned a non-JSON body")

        candidates = body.get("candidates") or []
        if not candidates:
            raise ExternalServiceError("Text generation service returned no candidates")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            raise ExternalServiceError("Text generation service returned an empty response")
        return text


def get_text_generator() -> TextGenerator:
    """
    FastAPI 의존성: 설정에 API 키가 없으면 AI 검토를 사용할 수 없습니다.
    """
    if settings.GEMINI_API_KEY is None:
        raise ExternalServiceError("AI review is not configured (GEMINI_API_KEY is not set)")
    return GeminiTextGenerator(
        api_key=settings.GEMINI_API_KEY.get_secret_value(),
        model=settings.GEMINI_MODEL,
        base_url=settings.GEMINI_API_BASE,
        timeout=settings.GEMINI_TIMEOUT_SECONDS,
    )
