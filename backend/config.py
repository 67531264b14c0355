from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings


def _load_version() -> str:
    version_path = Path(__file__).resolve().parent / "VERSION"
    try:
        return version_path.read_text().strip()
    except FileNotFoundError:
        return "0.1.0"


class ProviderConfig(BaseModel):
    """One upstream device/SIM source."""

    name: str
    kind: Literal["file", "http"] = "http"
    path: Optional[str] = None  # kind == "file"
    base_url: Optional[str] = None  # kind == "http"
    api_key: Optional[str] = None
    sim_platform: bool = False


class Settings(BaseSettings):
    """Application configuration using Pydantic settings."""

    # Database
    DATABASE_URL: str = "sqlite:///./data/devices.db"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    # Application
    APP_NAME: str = "SIM Device Platform"
    APP_VERSION: str = _load_version()
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Unified view ───────────────────────────────────────────────────
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 500

    # ── Reports ────────────────────────────────────────────────────────
    REPORTS_DIR: str = "./data/reports"

    # ── Provider adapters ──────────────────────────────────────────────
    # JSON list in the environment, e.g.
    # PROVIDERS='[{"name": "teltonika", "kind": "http", "base_url": "..."}]'
    PROVIDERS: list[ProviderConfig] = []
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    PROVIDER_FETCH_CONCURRENTLY: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
