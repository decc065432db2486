# labflow/core/config.py

from typing import List, Optional
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
import os

# 프로젝트의 루트 디렉토리 경로를 계산합니다.
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class Settings(BaseSettings):
    """
    애플리케이션의 모든 설정을 정의하는 Pydantic BaseSettings 모델입니다.
    환경 변수 및 .env 파일에서 값을 자동으로 로드합니다.
    """

    # --- Pydantic Settings 설정 ---
    model_config = SettingsConfigDict(
        env_file=os.path.join(BASE_DIR, '.env'),  # 프로젝트 루트의 .env 파일을 명시적으로 지정
        env_file_encoding='utf-8',
        extra='ignore',                      # .env 파일에 정의되었지만 모델에 없는 변수는 무시
        case_sensitive=True                  # 환경 변수 이름 대소문자 구분
    )

    # --- 애플리케이션 기본 설정 ---
    APP_NAME: str = "LabFlow LIS API"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Laboratory information backend (sample-to-result pipeline)"
    APP_ENV: str = Field("development", description="Application environment (e.g., development, production, testing)")
    DEBUG_MODE: bool = Field(False, description="Enable debug mode for detailed logging and error messages")

    # --- 데이터베이스 설정 ---
    DATABASE_URL: SecretStr = Field(..., description="Database connection URL (postgresql+asyncpg://...)")

    # --- JWT 설정 (토큰 발급은 외부 인증 서비스 담당) ---
    SECRET_KEY: SecretStr = Field(..., description="Secret key shared with the auth service for JWT verification")
    ALGORITHM: str = Field("HS256", description="Algorithm used for JWT signing (e.g., HS256)")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(30, description="Access token expiration time in minutes")
    AUTH_TOKEN_URL: str = Field("/api/v1/auth/token", description="Token endpoint of the external auth service")

    # --- ARQ (Redis) 설정 ---
    REDIS_HOST: str = Field("localhost", description="Redis host for the ARQ task queue")
    REDIS_PORT: int = Field(6379, description="Redis port for the ARQ task queue")

    # --- 시약(Reagent) 게이트 설정 ---
    REQUIRED_REAGENT_TYPES: List[str] = Field(
        default_factory=lambda: ["Diluent", "Lysing", "Staining", "Clotting", "Cleaner"],
        description="Reagent types that must be installed before a sample can be processed"
    )
    REAGENT_USAGE_PER_RESULT: float = Field(1.0, description="Default reagent quantity consumed by one measurement")

    # --- 결과 생성 / 원시 메시지 설정 ---
    SYNTHETIC_OUT_OF_RANGE_RATE: float = Field(0.3, description="Probability that a synthetic value falls outside its range")
    RAW_MESSAGE_RETENTION_DAYS: int = Field(30, description="Age in days after which synced raw messages are purged")
    MESSAGE_RECEIVING_FACILITY: str = Field("Lab", description="Receiving application/facility written into MSH")

    # --- Gemini (AI 검토) 설정 ---
    GEMINI_API_KEY: Optional[SecretStr] = Field(None, description="API key for the Gemini text-generation service")
    GEMINI_MODEL: str = Field("gemini-1.5-flash", description="Gemini model name")
    GEMINI_API_BASE: str = Field("https://generativelanguage.googleapis.com/v1beta", description="Gemini REST base URL")
    GEMINI_MAX_OUTPUT_TOKENS: int = Field(4096, description="Maximum output tokens per review")
    GEMINI_TEMPERATURE: float = Field(0.7, description="Sampling temperature for reviews")
    GEMINI_TIMEOUT_SECONDS: float = Field(60.0, description="HTTP timeout for one generation call")
    AI_SUMMARY_EXCERPT_LENGTH: int = Field(500, description="Length of the raw excerpt kept when AI output cannot be parsed")


settings = Settings()
