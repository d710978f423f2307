"""Application configuration with environment variables."""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./mastermore.db"

    # JWT Settings
    SECRET_KEY: str = "your-secret-key-change-this-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # Application
    APP_NAME: str = "MasterMore API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Authorization: emails listed here are treated as admins regardless of role
    ADMIN_EMAILS: List[str] = []

    # Progression policy
    PROJECT_PASS_RATIO: float = 0.6  # projects and manually graded practice answers
    DEFAULT_EXAM_PASSING_SCORE: int = 70  # percent
    DEFAULT_STUDENT_LEVEL: str = "B2"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create global settings instance
settings = Settings()
