import os
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent.parent.parent
        self.APP_NAME: str = os.getenv("APP_NAME", "JZF Contabilidade API")
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
        self.ACCESS_TOKEN_EXPIRE_HOURS: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "8"))
        self.ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
        self.SQLALCHEMY_DATABASE_URI: str = os.getenv(
            "SQLALCHEMY_DATABASE_URI",
            f"sqlite:///{(base_dir / 'contabil.db').as_posix()}",
        )
        self.ENV: str = os.getenv("ENV", "development")

        self.OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.CNPJ_LOOKUP_URL: str = os.getenv(
            "CNPJ_LOOKUP_URL", "https://brasilapi.com.br/api/cnpj/v1"
        ).rstrip("/")
        self.OPPORTUNITY_COOLDOWN_SECONDS: int = int(os.getenv("OPPORTUNITY_COOLDOWN_SECONDS", "60"))

        self.REMINDERS_ENABLED: bool = _env_flag("REMINDERS_ENABLED", "true")
        self.REMINDER_INTERVAL_HOURS: float = float(os.getenv("REMINDER_INTERVAL_HOURS", "8"))
        self.REMINDERS_RUN_ON_STARTUP: bool = _env_flag("REMINDERS_RUN_ON_STARTUP")

        self.DEFAULT_ADMIN_PASSWORD: str = os.getenv("DEFAULT_ADMIN_PASSWORD", "123456")
        self.RESET_DEFAULT_PASSWORDS: bool = _env_flag("RESET_DEFAULT_PASSWORDS")

        default_cors = [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:3001",
            "http://localhost:5173",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:3001",
            "http://127.0.0.1:5173",
        ]
        cors_origins = os.getenv("BACKEND_CORS_ORIGINS")
        self.BACKEND_CORS_ORIGINS: List[str] = (
            [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
            if cors_origins
            else default_cors
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
