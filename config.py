"""Configuration and environment settings"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application configuration"""

    # Grid bounds
    SHEET_DEFAULT_ROWS: int = 100
    SHEET_DEFAULT_COLS: int = 26
    SHEET_MAX_ROWS: int = 10000
    SHEET_MAX_COLS: int = 702  # A..ZZ

    # Evaluation
    SHEET_RECALC_DEPENDENTS: bool = True  # False restores write-time-only evaluation
    MAX_RANGE_EXPANSION: int = 10000

    # Auto-save
    AUTOSAVE_DEBOUNCE_SECONDS: float = 1.5
    AUTOSAVE_TIMEOUT_SECONDS: float = 10.0
    API_BASE_URL: str = "http://localhost:8000"

    # Web
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    DEFAULT_USER_ID: int = 1

    # Export
    EXPORT_MIN_ROWS: int = 10
    EXPORT_MIN_COLS: int = 6

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    def get_cors_origins(self) -> List[str]:
        """Get allowed CORS origins"""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
