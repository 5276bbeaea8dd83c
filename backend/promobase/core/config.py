"""
Application configuration using Pydantic BaseSettings.
Loads environment variables and provides typed configuration.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Project metadata
    PROJECT_NAME: str = "Promobase Contact Core"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"

    # Relational backend (embedded SQLite file)
    DATABASE_URL: str = "sqlite+aiosqlite:///./promobase.db"
    RELATIONAL_BACKEND_ENABLED: bool = True

    # Document backend fallback; empty path keeps documents in memory only
    DOCUMENT_STORE_PATH: str = "./promobase-documents.json"

    # Bulk writes and imports
    BULK_CHUNK_SIZE: int = 500
    IMPORT_CHUNK_SIZE: int = 500

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "tauri://localhost",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
