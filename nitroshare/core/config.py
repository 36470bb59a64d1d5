# nitroshare/core/config.py
from __future__ import annotations

"""
# NitroShare · Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; the allow-list is the only thing prod must set.
- CSV → set helpers for the allow-list, issuers and CORS origins.
- Values are read once at process start and treated as immutable afterwards.

## Usage
    from nitroshare.core.config import settings
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import FrozenSet, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)
load_dotenv()  # harmless in prod; convenient in dev


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


def _normalize_prefix(v: str | None) -> str:
    """`nitroshare/` → `/nitroshare`; empty stays empty (mount at root)."""
    s = (v or "").strip().strip("/")
    return f"/{s}" if s else ""


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Security:
        - `ALLOWED_EMAILS` is the access allow-list; an empty list is a
          configuration error at request time, never open access.
        - `GOOGLE_CLIENT_ID` is the audience expected in identity tokens.

    Storage:
        - `UPLOAD_ROOT` holds one partition directory per principal.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "NitroShare"
    VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"
    ENABLE_DOCS: bool = True
    PORT: int = 5000
    MOUNT_PREFIX: str = "/nitroshare"

    # ── Access ───────────────────────────────────────────────
    ALLOWED_EMAILS: Optional[str] = None  # CSV

    # ── Identity provider ────────────────────────────────────
    GOOGLE_CLIENT_ID: Optional[str] = None
    IDENTITY_JWKS_URL: str = "https://www.googleapis.com/oauth2/v3/certs"
    IDENTITY_USERINFO_URL: str = "https://www.googleapis.com/oauth2/v2/userinfo"
    IDENTITY_ISSUERS: str = "accounts.google.com,https://accounts.google.com"
    IDENTITY_HTTP_TIMEOUT_SECONDS: float = Field(10.0, gt=0, le=120)
    IDENTITY_JWKS_TTL_SECONDS: int = Field(3600, ge=0, le=24 * 60 * 60)

    # ── Uploads ──────────────────────────────────────────────
    UPLOAD_ROOT: Path = Path("uploads")
    MAX_UPLOAD_BYTES: int = Field(500 * 1024 * 1024, ge=1)
    UPLOAD_CHUNK_BYTES: int = Field(1024 * 1024, ge=1024)
    UPLOAD_TIMEOUT_SECONDS: float = Field(10 * 60, gt=0)

    # ── Retention ────────────────────────────────────────────
    RETENTION_HOURS: float = Field(24, gt=0)
    SWEEP_CRON: str = "0 * * * *"
    SWEEPER_ENABLED: bool = True

    # ── Share page ───────────────────────────────────────────
    SHARE_PREVIEW_WIDTH: int = Field(1280, ge=1)
    SHARE_PREVIEW_HEIGHT: int = Field(720, ge=1)
    SHARE_THEME_COLOR: str = "#7289DA"

    # ── CORS ─────────────────────────────────────────────────
    FRONTEND_ORIGINS: Optional[str] = None  # CSV

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("MOUNT_PREFIX", mode="before")
    @classmethod
    def _normalize_mount_prefix(cls, v) -> str:
        return _normalize_prefix(v)

    @field_validator("ALLOWED_EMAILS", "FRONTEND_ORIGINS", mode="before")
    @classmethod
    def _normalize_csv(cls, v):
        return None if v is None else ",".join(_split_csv(str(v)))

    @field_validator("UPLOAD_ROOT", mode="after")
    @classmethod
    def _absolute_upload_root(cls, v: Path) -> Path:
        return v.expanduser().resolve()

    # ── Derived / convenience properties ─────────────────────
    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def allowed_emails(self) -> FrozenSet[str]:
        """Allow-list as a normalized (lower-cased) frozenset."""
        return frozenset(e.lower() for e in _split_csv(self.ALLOWED_EMAILS))

    @property
    def identity_issuers(self) -> FrozenSet[str]:
        return frozenset(_split_csv(self.IDENTITY_ISSUERS))

    @property
    def frontend_origins_list(self) -> List[str]:
        return _split_csv(self.FRONTEND_ORIGINS)

    @property
    def retention_window(self) -> timedelta:
        return timedelta(hours=self.RETENTION_HOURS)

    def log_environment_check(self) -> None:
        """Log which security-relevant settings are present (never their values)."""
        log.info("Environment check:")
        log.info("- GOOGLE_CLIENT_ID: %s", "Set" if self.GOOGLE_CLIENT_ID else "Missing")
        log.info("- ALLOWED_EMAILS: %s", f"{len(self.allowed_emails)} entries" if self.allowed_emails else "Missing")
        log.info("- UPLOAD_ROOT: %s", self.UPLOAD_ROOT)
        if not self.allowed_emails:
            log.warning("ALLOWED_EMAILS is empty; every authenticated request will fail with a configuration error")


# Singleton instance
settings = Settings()
