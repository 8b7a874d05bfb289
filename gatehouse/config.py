"""Application configuration."""
from collections import Counter
from datetime import timedelta
from functools import lru_cache
import math

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings

DEFAULT_SECRET_KEY = "gatehouse-development-secret-change-me"

HMAC_ALGORITHMS = {"HS256", "HS384", "HS512"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Gatehouse"
    environment: str = "development"
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Database
    database_url: str = "sqlite:///./gatehouse.db"
    database_timeout_seconds: float = 5.0

    # Tokens
    secret_key: str = DEFAULT_SECRET_KEY
    algorithm: str = "HS256"
    token_issuer: str = "gatehouse"
    access_token_expire_minutes: int = 15
    token_leeway_seconds: int = 0

    # Passwords
    bcrypt_rounds: int = 12

    # One-time codes
    otp_length: int = 6
    otp_expire_minutes: int = 10

    # Lockout
    lockout_threshold: int = 5
    lockout_duration_minutes: int = 15

    # Sessions
    session_tracking_enabled: bool = True
    enforce_session_liveness: bool = True
    session_expire_hours: int = 24
    session_touch_interval_seconds: int = 60
    session_cookie_name: str = "gatehouse_session"
    session_cookie_path: str = "/api"
    session_cookie_samesite: str = "lax"
    session_cookie_secure: bool = True

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_capacity: int = 10
    rate_limit_refill_per_minute: int = 30
    # Peers allowed to set X-Forwarded-For
    trusted_proxies: list[str] = []

    # Maintenance
    sweep_interval_seconds: int = 300

    # Email (OTP delivery)
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "noreply@gatehouse.local"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, value: str) -> str:
        lowered = value.lower()
        if lowered not in {"development", "production"}:
            raise ValueError("ENVIRONMENT must be 'development' or 'production'.")
        return lowered

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, value: str, info: ValidationInfo) -> str:
        """Fail closed if SECRET_KEY is missing, or weak in production."""
        if not value:
            raise ValueError("SECRET_KEY must be set.")

        if info.data.get("environment", "development") != "production":
            return value

        if value == DEFAULT_SECRET_KEY:
            raise ValueError("SECRET_KEY must not be the development default in production.")

        if len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered or "change-me" in lowered:
            raise ValueError("SECRET_KEY must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError("SECRET_KEY entropy is too low; use a cryptographically random value.")

        return value

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, value: str) -> str:
        """Only symmetric HMAC signing is supported."""
        upper = value.upper()
        if upper not in HMAC_ALGORITHMS:
            raise ValueError(f"ALGORITHM must be one of {sorted(HMAC_ALGORITHMS)}.")
        return upper

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return value

    @field_validator("otp_length")
    @classmethod
    def validate_otp_length(cls, value: int) -> int:
        if not 4 <= value <= 10:
            raise ValueError("OTP_LENGTH must be between 4 and 10.")
        return value

    @field_validator("lockout_threshold")
    @classmethod
    def validate_lockout_threshold(cls, value: int) -> int:
        if value < 1:
            raise ValueError("LOCKOUT_THRESHOLD must be positive.")
        return value

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    @property
    def otp_ttl(self) -> timedelta:
        return timedelta(minutes=self.otp_expire_minutes)

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(minutes=self.lockout_duration_minutes)

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_expire_hours)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
