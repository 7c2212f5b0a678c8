"""
Application Configuration
"""
from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings
from pydantic import model_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "AguaBot"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False  # Secure default
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Remote cooperative service
    API_BASE: str = "http://localhost:8000"
    EMERGENCY_PATH: str = "/api/emergencias/emergencias/"
    ACCOUNT_QUERY_PATH: str = "/api/boletas/consulta/"
    ACCOUNT_COMPARE_PATH: str = "/api/boletas/comparar/"
    FOLLOW_UP_PATH: str = "/api/boletas/chat/"
    REQUEST_TIMEOUT_SECONDS: float = 15.0

    # Uploads
    MAX_UPLOAD_SIZE_MB: int = 10

    # Sessions
    SESSION_TTL_HOURS: int = 24

    @model_validator(mode="after")
    def validate_service_settings(self) -> "Settings":
        """Validate the remote service address and endpoint paths."""
        if not self.API_BASE.startswith(("http://", "https://")):
            raise ValueError(
                "API_BASE must be an absolute http(s) URL, "
                f"got {self.API_BASE!r}."
            )

        for name in ("EMERGENCY_PATH", "ACCOUNT_QUERY_PATH", "ACCOUNT_COMPARE_PATH", "FOLLOW_UP_PATH"):
            if not getattr(self, name).startswith("/"):
                raise ValueError(f"{name} must start with '/'.")

        if self.APP_ENV != "development" and self.API_BASE.startswith("http://"):
            import warnings
            warnings.warn(
                "API_BASE uses plain http in a non-development environment. "
                "Personal data in reports will travel unencrypted.",
                UserWarning,
            )

        return self

    def service_url(self, path: str) -> str:
        """Join API_BASE and an endpoint path."""
        return f"{self.API_BASE.rstrip('/')}{path}"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
