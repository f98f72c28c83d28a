from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw_value: str) -> list[str]:
    return [part.strip() for part in raw_value.split(",") if part.strip()]


def _normalize_env(raw_value: str) -> str:
    normalized = raw_value.strip().lower()
    return "production" if normalized == "production" else "development"


def _is_permissive_origin(value: str) -> bool:
    normalized = value.strip().lower()
    if not normalized:
        return False
    if normalized == "*":
        return True
    return "://*" in normalized


def _is_permissive_origin_regex(value: str) -> bool:
    normalized = value.strip().replace(" ", "")
    if not normalized:
        return False
    permissive_patterns = {".*", "^.*$", "^(.*)$", "^https?://.*$", "^https://.*$"}
    return normalized in permissive_patterns


class Settings(BaseSettings):
    APP_ENV: str = "development"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 3000
    LOG_LEVEL: str = "info"
    # Empty means the server's local time zone.
    APP_TIMEZONE: str = ""

    # CORS
    CORS_ALLOW_ORIGINS: str = ""
    CORS_ALLOW_ORIGIN_REGEX: str = ""

    # Auth
    JWT_SECRET: str
    JWT_EXPIRES_SEC: int = 604800  # 7 days
    AUTH_COOKIE_NAME: str = "token"
    BCRYPT_ROUNDS: int = 10

    # Dashboard
    MVG_STREAK_WINDOW_DAYS: int = 7

    # Database
    DATABASE_URL: str = ""
    DB_STATEMENT_TIMEOUT_MS: int = 5000
    DB_SLOW_QUERY_MS: int = 300

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def env_mode(self) -> str:
        return _normalize_env(self.APP_ENV)

    def is_production(self) -> bool:
        return self.env_mode() == "production"

    def get_cors_allow_origins(self) -> list[str]:
        configured = _split_csv(self.CORS_ALLOW_ORIGINS)
        if configured:
            if self.is_production() and any(_is_permissive_origin(origin) for origin in configured):
                raise ValueError("Permissive CORS origin is not allowed in production")
            return configured

        if self.is_production():
            return []

        return [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]

    def get_cors_allow_origin_regex(self) -> Optional[str]:
        configured = self.CORS_ALLOW_ORIGIN_REGEX.strip()
        if configured:
            if self.is_production() and _is_permissive_origin_regex(configured):
                raise ValueError("Permissive CORS origin regex is not allowed in production")
            return configured
        return None

    def get_jwt_expires_sec(self) -> int:
        return max(1, int(self.JWT_EXPIRES_SEC))

    def get_bcrypt_rounds(self) -> int:
        # bcrypt only accepts 4..31
        return min(31, max(4, int(self.BCRYPT_ROUNDS)))

    def get_mvg_streak_window_days(self) -> int:
        return max(1, int(self.MVG_STREAK_WINDOW_DAYS))

    def get_timezone(self) -> Optional[ZoneInfo]:
        tz_name = self.APP_TIMEZONE.strip()
        if not tz_name:
            return None
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown APP_TIMEZONE: {tz_name}") from exc


settings = Settings()
