"""
core/config.py -- Vaultroom settings, read once from the environment.

Every tunable lives on Settings. Code elsewhere asks get_settings() for the
cached instance and never reads os.environ itself.

Sources, later wins: field defaults, then .env in the working directory,
then real environment variables. Names are case-insensitive
(database_url <- DATABASE_URL). List fields take JSON arrays:
CORS_ORIGINS='["https://vaults.example.com"]'.

SECRET_KEY policy (checked in _check_secret_key):
  [M6] Keys shorter than 32 characters are refused in every mode. The key
       signs every session token.
  [M7] Without DEBUG=true a missing key stops startup. With DEBUG=true a
       random key is generated and sessions end when the process does.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
vaults/, realtime/, or storage/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("vaultroom.config")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Runtime configuration for the API, the socket hub and file storage.

    Every field has a default, so tests and local runs work with nothing set
    except DEBUG=true.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # --- core ---------------------------------------------------------

    debug: bool = False
    # "" means unset; _check_secret_key replaces it or refuses to start.
    secret_key: str = ""
    database_url: str = f"sqlite:///{_PROJECT_ROOT / 'vaultroom.db'}"

    # --- http ---------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    allowed_hosts: list[str] = ["*"]

    # --- sessions and accounts ----------------------------------------

    secure_cookies: bool = False
    # One token serves HTTP and the /ws handshake; both expire together.
    token_expire_seconds: int = 24 * 60 * 60
    self_registration_enabled: bool = True

    # --- rate limits (slowapi syntax) ---------------------------------

    login_rate_limit: str = "10/minute"
    signup_rate_limit: str = "5/minute"
    upload_rate_limit: str = "20/minute"

    # --- vaults -------------------------------------------------------

    invite_expire_days: int = 7
    audit_log_limit: int = 100

    # --- uploads ------------------------------------------------------
    # Cloudinary when all three credentials are set, else upload_dir
    # served at upload_base_url.

    upload_max_bytes: int = 10 * 1024 * 1024
    upload_dir: str = str(_PROJECT_ROOT / "uploads")
    upload_base_url: str = "/uploads"
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_folder: str = "vaultroom-uploads"

    @model_validator(mode="after")
    def _check_secret_key(self) -> "Settings":
        """Fill in a dev key or refuse to start, then enforce the minimum length."""
        if not self.secret_key and not self.debug:
            raise ValueError("SECRET_KEY must be set unless DEBUG=true (use .env or the environment).")
        if not self.secret_key:
            self.secret_key = secrets.token_hex(_MIN_SECRET_LENGTH)
            logger.warning("DEBUG: generated a throwaway SECRET_KEY; sessions end when the process exits.")
        if len(self.secret_key) < _MIN_SECRET_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters.")
        return self

    @property
    def cloudinary_enabled(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first call.

    Tests that change the environment must call get_settings.cache_clear()
    first. Modules that read settings at import time keep the old values.
    """
    return Settings()
