"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "Companion Chat"
    app_version: str = "1.0.0"
    debug: bool = True

    # Identity provider (JWT issued by the hosted auth service)
    jwt_secret: str = "your-jwt-secret-change-this-in-production"
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = "authenticated"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Anonymous session tokens
    anonymous_token_ttl_hours: int = 24
    anonymous_token_hash_rounds: int = 10

    # Session defaults
    default_language: str = "vi"
    default_timezone: str = "Asia/Ho_Chi_Minh"
    default_timezone_offset: str = "UTC+7"
    anonymous_retention_days: int = 1
    authenticated_retention_days: int = 30

    # Storage
    storage_type: str = "local"  # local, supabase
    local_storage_path: str = "./data"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # LLM provider settings
    llm_provider: str = "openai"  # "openai" or "volcengine" (chat completions)
    llm_api_key: Optional[str] = None
    llm_base_url: Optional[str] = None  # uses provider default if not set
    llm_model: str = "gpt-4o-mini"  # chat completions fallback
    assistant_id: Optional[str] = None  # enables assistant mode when it starts with "asst_"
    title_model: str = "gpt-4.1-nano"
    history_limit: int = 20

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/companion.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True  # Log all API requests/responses
    log_llm_calls: bool = True  # Log all LLM calls with token usage

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
