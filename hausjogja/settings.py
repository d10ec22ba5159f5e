# settings.py
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Project
    PROJECT_NAME: str = "HausJogja API"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    # Security
    JWT_SECRET: str = "super-secret-key"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 60 * 24 * 30  # 30 days

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./hausjogja.db"  # default local SQLite

    # Uploads (served publicly under UPLOAD_URL_PREFIX)
    UPLOAD_DIR: str = "./public/uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    UPLOAD_MAX_MB: int = 5
    ALLOWED_IMAGE_EXTENSIONS: List[str] = [".jpg", ".jpeg", ".png", ".gif"]
    DEFAULT_PROFILE_IMAGE: str = "/profile.jpg"

    # CORS
    CORS_ORIGINS: str = "*"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
