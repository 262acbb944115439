"""
Configuration for Witness Prep Service
======================================

Environment variables:
- LLM_BASE_URL: Chat-completions base URL (default: https://api.case.dev/llm/v1)
- LLM_API_KEY: API key for the LLM gateway
- QUESTION_MODEL: Model for cross-exam / deposition question generation
- PRACTICE_MODEL: Faster, cheaper model for practice feedback
- ANALYSIS_MODEL: Model for deposition gap/contradiction analysis
- LLM_TIMEOUT: Client-side timeout in seconds (default: 60)
- OCR_URL: Text-extraction endpoint (optional; local parsers only when unset)
- STORAGE_URL: SQLAlchemy URL for the local state store
- STORAGE_QUOTA_BYTES: Byte quota across all stored keys (default: 5MB)
- SESSION_TTL_HOURS: Retention window for sessions (default: 24)
- RESERVED_OUTPUT_TOKENS: Output tokens held back when fitting documents into a prompt
"""

from typing import Optional, List
from pydantic import BaseModel
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # LLM gateway
    llm_base_url: str = "https://api.case.dev/llm/v1"
    llm_api_key: Optional[str] = None
    question_model: str = "casemark/casemark-core-1"
    practice_model: str = "anthropic/claude-3-haiku-20240307"
    analysis_model: str = "casemark/casemark-core-1"

    # Timeouts (seconds)
    llm_timeout: float = 60
    ocr_timeout: float = 120

    # OCR / extraction
    ocr_url: Optional[str] = None
    ocr_api_key: Optional[str] = None

    # Local state store
    storage_url: str = "sqlite:///./witness_prep.db"
    storage_quota_bytes: int = 5 * 1024 * 1024
    session_ttl_hours: float = 24

    # Output tokens reserved when budgeting document text into a prompt
    reserved_output_tokens: int = 4_000

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    def validate_llm_config(self) -> List[str]:
        """Validate LLM configuration, return list of warnings"""
        warnings = []

        if not self.llm_api_key:
            warnings.append("LLM_API_KEY not set - question generation will use fallback content")

        if self.llm_timeout <= 0:
            warnings.append("LLM_TIMEOUT must be positive")

        if self.ocr_url and not self.ocr_api_key:
            warnings.append("OCR_URL set but OCR_API_KEY not set")

        return warnings


class TokenLimits(BaseModel):
    per_request: int = 4_000
    per_session: int = 50_000
    per_day_per_user: int = 100_000


class OCRLimits(BaseModel):
    max_file_size: int = 5 * 1024 * 1024
    max_pages_per_document: int = 10
    max_documents_per_session: int = 5
    max_pages_per_day: int = 50


class DemoLimits(BaseModel):
    """
    Ceilings for the demo configuration.

    Passed explicitly to the usage tracker; the calling endpoint decides
    whether to reject a request.
    """
    tokens: TokenLimits = TokenLimits()
    ocr: OCRLimits = OCRLimits()

    def descriptions(self) -> dict:
        """Human-readable limit descriptions for display"""
        return {
            "tokens": {
                "per_request": f"{self.tokens.per_request:,} tokens per request",
                "per_session": f"{self.tokens.per_session:,} tokens per session",
                "per_day_per_user": f"{self.tokens.per_day_per_user:,} tokens per day",
            },
            "ocr": {
                "max_file_size": f"{self.ocr.max_file_size / (1024 * 1024):.0f}MB max file size",
                "max_pages_per_document": f"{self.ocr.max_pages_per_document} pages per document",
                "max_documents_per_session": f"{self.ocr.max_documents_per_session} documents per session",
                "max_pages_per_day": f"{self.ocr.max_pages_per_day} pages per day",
            },
        }


DEFAULT_DEMO_LIMITS = DemoLimits()


def public_demo_config(limits: DemoLimits = DEFAULT_DEMO_LIMITS) -> dict:
    """Public configuration shown to demo users"""
    return {
        "config": {
            "is_demo_mode": True,
            "app_name": "Deposition Prep Tools",
            "session_hours": get_settings().session_ttl_hours,
        },
        "limits": limits.model_dump(),
        "limit_descriptions": limits.descriptions(),
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
