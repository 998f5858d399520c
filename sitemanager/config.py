"""
Configuration management for the construction site manager
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Construction Site Manager"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./site_manager.db"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

    # Security
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # Default admin (seeded on startup)
    DEFAULT_ADMIN_EMAIL: str = "admin@site.local"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"

    # File storage
    STORAGE_ROOT: str = "uploads"
    STORAGE_AUTO_CREATE_BUCKETS: bool = True
    COMPLIANCE_BUCKET: str = "compliance-docs"
    GRN_BUCKET: str = "grn-documents"
    SIGNED_URL_EXPIRY_SECONDS: int = 3600
    MAX_UPLOAD_SIZE_MB: int = 25

    # Frontend
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Display
    CURRENCY_SYMBOL: str = "₹"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
