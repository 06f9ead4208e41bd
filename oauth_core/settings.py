# oauth_core/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# This settings.py file is at <project>/oauth_core/settings.py
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
DOTENV_PATH = PROJECT_ROOT / ".env"

if DOTENV_PATH.exists():
    logger.debug(f"Settings: .env file found at {DOTENV_PATH}")
else:
    logger.debug(
        f"Settings: .env file not found at {DOTENV_PATH}. "
        "Relying on OS env vars or defaults."
    )


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_name: str = "OAuth Core Authorization Server"
    debug_mode: bool = False
    log_level: str = "INFO"

    # SQLite configuration
    sqlite_db_path: str = "./oauth_core_data.sqlite3"

    # Credential lifetimes
    authorization_code_ttl_seconds: int = Field(default=600, gt=0)
    access_token_ttl_seconds: int = Field(default=900, gt=0)
    refresh_token_ttl_seconds: int = Field(default=604800, gt=0)

    # Client secret hashing cost. Production deployments should keep >= 12.
    client_secret_bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    default_scope: str = Field(
        default="profile",
        description="Scope granted when an authorization request names none."
    )

    issuer_url: Optional[str] = Field(
        default=None,
        description="Public issuer URL for discovery metadata. Derived from the request when unset."
    )

    # Security settings
    admin_api_key: Optional[str] = Field(
        default=None,
        description="API Key for accessing admin routes."
    )
    authenticated_user_header: str = Field(
        default="X-Authenticated-User",
        description="Header set by the upstream login layer carrying the authenticated user id."
    )

    model_config = SettingsConfigDict(
        env_file=DOTENV_PATH if DOTENV_PATH.exists() else None,
        extra="ignore",
        env_file_encoding='utf-8'
    )


settings = Settings()

logger.debug(f"Settings: app_name='{settings.app_name}', debug_mode={settings.debug_mode}")
logger.debug(f"Settings: sqlite_db_path='{settings.sqlite_db_path}'")
logger.debug(
    f"Settings: admin_api_key={'********' if settings.admin_api_key else 'None'}"
)
