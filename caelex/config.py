# caelex/config.py
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Database ---
    database_url: str = "sqlite:///var/caelex_dev.db"

    # --- Security / JWT (tokens are issued by the external identity provider) ---
    jwt_secret: str = "dev-secret-please-change"
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = None

    # --- CORS ---
    cors_origins: List[str] = ["http://localhost:3000"]

    # --- Logging ---
    log_level: str = "INFO"

    # --- Application ---
    app_env: str = "development"
    app_base_url: str = "http://localhost:3000"

    # --- Domain tunables ---
    deadline_due_soon_days: int = 7
    supplier_token_ttl_days: int = 30
    invitation_ttl_days: int = 7
    notification_retention_days: int = 90

    @property
    def cors_allow_origins(self) -> List[str]:
        return [origin.rstrip("/") for origin in self.cors_origins]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Ensure path directory exists (for SQLite)
if settings.database_url.startswith("sqlite:///"):
    db_path = Path(settings.database_url.replace("sqlite:///", ""))
    db_path.parent.mkdir(parents=True, exist_ok=True)

# --- SQLAlchemy setup ---
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
