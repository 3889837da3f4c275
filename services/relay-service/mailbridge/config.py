from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os


_DEV_JWT_SECRET = "dev-secret-change-me-in-production"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime configuration values exposed to FastAPI components."""

    app_name: str = "mailbridge"
    version: str = "0.1.0"
    environment: str = os.getenv("APP_ENV", "development").lower()
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    database_url: str = os.getenv("POSTGRES_URL", "")
    http_host: str = os.getenv("HTTP_HOST", "0.0.0.0")
    http_port: int = int(os.getenv("HTTP_PORT", "3000"))
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
    jwt_secret: str = os.getenv("JWT_SECRET", _DEV_JWT_SECRET)
    jwt_issuer: str = os.getenv("JWT_ISSUER", "mailbridge")
    jwt_ttl_seconds: int = int(os.getenv("JWT_TTL_SECONDS", str(30 * 24 * 60 * 60)))
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "10"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "3600"))
    rate_limit_backend: str = os.getenv("RATE_LIMIT_BACKEND", "memory").lower()
    redis_url: str = os.getenv("REDIS_URL", "")
    trust_forwarded_for: bool = _env_flag("TRUST_FORWARDED_FOR")
    smtp_host: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_use_tls: bool = _env_flag("SMTP_USE_TLS")
    smtp_timeout_seconds: float = float(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))
    email_user: str = os.getenv("EMAIL_USER", "")
    email_password: str = os.getenv("EMAIL_APP_PASSWORD", "")
    mail_from: str = os.getenv("MAIL_FROM", "") or os.getenv("EMAIL_USER", "")
    password_hash_rounds: int = int(os.getenv("PASSWORD_HASH_ROUNDS", "3"))
    password_hash_workers: int = int(os.getenv("PASSWORD_HASH_WORKERS", "4"))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def missing_required(self) -> list[str]:
        """Return the names of required environment variables that are unset."""
        required = {
            "EMAIL_USER": self.email_user,
            "EMAIL_APP_PASSWORD": self.email_password,
            "POSTGRES_URL": self.database_url,
        }
        if self.is_production and self.jwt_secret == _DEV_JWT_SECRET:
            required["JWT_SECRET"] = ""
        return [name for name, value in required.items() if not value]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance for the running process."""
    return Settings()
