"""Application configuration."""
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
import math

from limits import parse
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # App
    app_name: str = "LinkVault"
    debug: bool = False
    environment: str = "production"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Database
    database_url: str = "sqlite:///./data/linkvault.db"

    # Auth
    secret_key: str
    algorithm: str = "HS256"
    jwt_issuer: str = "linkvault"
    jwt_audience: str = "linkvault"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    clock_skew_seconds: int = 30
    refresh_cookie_name: str = "linkvault_refresh"
    refresh_cookie_path: str = "/auth"
    refresh_cookie_samesite: str = "strict"
    refresh_cookie_secure: bool = True
    password_hash_rounds: int = 12

    # Throttling
    rate_limit_enabled: bool = True
    login_rate_limit: str = "5/minute"

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, value: str) -> str:
        """Fail closed if SECRET_KEY is weak or placeholder quality."""
        if not value:
            raise ValueError("SECRET_KEY must be set.")

        if len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered:
            raise ValueError("SECRET_KEY must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError("SECRET_KEY entropy is too low; use a cryptographically random value.")

        return value

    @field_validator("access_token_expire_minutes", "refresh_token_expire_days")
    @classmethod
    def validate_positive_lifetime(cls, value: int) -> int:
        """Reject zero or negative token lifetimes."""
        if value <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return value

    @field_validator("refresh_cookie_samesite")
    @classmethod
    def validate_samesite(cls, value: str) -> str:
        """Normalize the SameSite policy to one the cookie API accepts."""
        lowered = value.lower()
        if lowered not in {"strict", "lax", "none"}:
            raise ValueError("refresh_cookie_samesite must be strict, lax or none.")
        return lowered

    @field_validator("login_rate_limit")
    @classmethod
    def validate_login_rate_limit(cls, value: str) -> str:
        """Fail at startup on a limit string such as '5/minute' that cannot be parsed."""
        try:
            parse(value)
        except ValueError as exc:
            raise ValueError(f"login_rate_limit is not a valid rate limit: {value!r}") from exc
        return value

    @property
    def is_development(self) -> bool:
        """True when running locally with ENVIRONMENT=development."""
        return self.environment.lower() == "development"

    @property
    def cookie_samesite(self) -> str:
        """SameSite policy for the refresh cookie; relaxed for local HTTP development."""
        return "lax" if self.is_development else self.refresh_cookie_samesite

    @property
    def cookie_secure(self) -> bool:
        """Secure flag for the refresh cookie; dropped for local HTTP development."""
        return False if self.is_development else self.refresh_cookie_secure


@dataclass(frozen=True)
class TokenSettings:
    """Immutable token configuration shared by the issuer, factory and gateway."""

    secret_key: str
    algorithm: str = "HS256"
    issuer: str = "linkvault"
    audience: str = "linkvault"
    access_token_lifetime: timedelta = timedelta(minutes=15)
    refresh_token_lifetime: timedelta = timedelta(days=7)
    clock_skew: timedelta = timedelta(seconds=30)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenSettings":
        """Snapshot the token-related fields of the application settings."""
        return cls(
            secret_key=settings.secret_key,
            algorithm=settings.algorithm,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            access_token_lifetime=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_token_lifetime=timedelta(days=settings.refresh_token_expire_days),
            clock_skew=timedelta(seconds=settings.clock_skew_seconds),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@lru_cache
def get_token_settings() -> TokenSettings:
    """Get the token configuration built once from the cached settings."""
    return TokenSettings.from_settings(get_settings())
