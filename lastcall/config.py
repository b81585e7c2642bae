from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from typing import Optional


class Settings(BaseSettings):
    """Application configuration using Pydantic Settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "LastCall SMS"
    app_version: str = "1.0.0"
    debug: bool = False
    backend_url: str = "http://localhost:8000"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 2

    # Database
    postgres_host: str = "localhost"
    postgres_port: Optional[int] = 5432
    postgres_db: str = "lastcall"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    db_pool_min_size: Optional[int] = 2
    db_pool_max_size: Optional[int] = 20
    db_command_timeout: float = 30.0

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis
    redis_host: str = "localhost"
    redis_port: Optional[int] = 6379
    redis_db: Optional[int] = 0
    redis_password: Optional[str] = None

    @property
    def redis_url(self) -> str:
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Security
    secret_key: str = "your-secret-key-min-32-characters-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_hours: int = 24 * 30
    allowed_origins: str = "http://localhost:3000,http://localhost:3001"

    @property
    def cors_origins(self) -> list[str]:
        """Get list of allowed CORS origins"""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    # Telnyx
    telnyx_api_key: Optional[str] = None
    telnyx_api_url: str = "https://api.telnyx.com"
    telnyx_public_key: Optional[str] = None  # base64 Ed25519 key for webhook signatures
    telnyx_timeout: float = 15.0
    webhook_tolerance_seconds: int = 300

    # Blast dispatch
    blast_max_concurrency: int = 10
    blast_send_rps: float = 10.0  # provider rate limit across a single dispatch
    blast_max_length: int = 1600
    prohibited_words: str = ""  # comma separated, matched case-insensitively

    @property
    def prohibited_word_list(self) -> list[str]:
        return [w.strip().lower() for w in self.prohibited_words.split(",") if w.strip()]

    # Scheduler (all times are local to scheduler_timezone)
    scheduler_enabled: bool = True
    scheduler_timezone: str = "America/New_York"
    afternoon_start_hour: int = 12
    evening_start_hour: int = 17
    morning_send_time: str = "10:00"
    afternoon_send_time: str = "15:00"
    evening_send_time: str = "20:00"
    scheduler_max_concurrent_accounts: int = 4

    # SMS conversation
    coupon_keyword: str = "DEAL"
    coupon_ttl_minutes: int = 10
    coupon_code_length: int = 6
    coupon_type: str = "welcome"
    help_message: str = (
        "Reply STOP to unsubscribe or START to resubscribe. "
        "Questions? Email support@lastcall.bar. Msg & data rates may apply."
    )
    minimum_age: int = 21
    enforce_minimum_age: bool = False
    reply_on_invalid_birthdate: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/app.log"

    @model_validator(mode='after')
    def validate_secrets(self):
        if 'change-in-production' in self.secret_key:
            raise ValueError("SECRET_KEY must be set via environment variable")
        if self.afternoon_start_hour >= self.evening_start_hour:
            raise ValueError("AFTERNOON_START_HOUR must be before EVENING_START_HOUR")
        return self


settings = Settings()
