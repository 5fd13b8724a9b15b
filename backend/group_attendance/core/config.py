from pydantic_settings import BaseSettings
from pydantic import validator
from typing import List


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "Group Attendance Follow-Up Service"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./group_attendance.db"
    DATABASE_ECHO: bool = False

    @validator("ALLOWED_ORIGINS", pre=True)
    def parse_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @validator("DATABASE_URL")
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        return v

    @validator("LOG_LEVEL")
    def normalize_log_level(cls, v):
        return v.upper()

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
