from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AnyUrl, Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ENV: str = Field(default="dev", description="dev|staging|prod")
    APP_NAME: str = "Diamante CRM API"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8081
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = "app-debug.log"

    # Segurança
    JWT_SECRET: str = "change-me"
    ACCESS_EXPIRES_MIN: int = 60
    REFRESH_EXPIRES_DAYS: int = 7

    # DB
    DB_URL: AnyUrl | str = "sqlite+aiosqlite:///./diamante.db"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Storage (arquivos do portal)
    PUBLIC_BASE_URL: str = "http://localhost:8081"
    STORAGE_ROOT: str = "./storage"
    ALLOWED_SIGNED_BUCKETS: list[str] = ["documents", "bills", "gallery", "tickets", "chat"]
    PUBLIC_BUCKETS: list[str] = ["portal-chat"]
    PORTAL_CHAT_BUCKET: str = "portal-chat"
    SIGNED_URL_MIN_SECONDS: int = 30
    SIGNED_URL_MAX_SECONDS: int = 300
    SIGNED_URL_DEFAULT_SECONDS: int = 90

    # Login do portal do cliente
    LOGIN_MAX_ATTEMPTS: int = 5
    LOGIN_LOCK_MINUTES: int = 10
    PORTAL_EMAIL_DOMAIN: str = "portal.local"

    # Busca global
    SEARCH_GROUP_LIMIT: int = 20

    # Vendas
    DEFAULT_COMMISSION_PERCENT: float = 5.0

@lru_cache
def get_settings() -> Settings:
    return Settings()
