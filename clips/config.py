from pydantic_settings import BaseSettings
import os

class Settings(BaseSettings):
    # Database configuration with fallback
    database_url: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./clips.db"
    )

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "production")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Base policy applied to every user
    default_clip_limit: int = 10
    default_note_each_clips_limit: int = 200

    # Rate limiting (requests per window, window in seconds)
    rate_limit_requests: int = 50
    rate_limit_write_requests: int = 30
    rate_limit_window: int = 300

    class Config:
        env_file = ".env"
        case_sensitive = False

settings = Settings()
