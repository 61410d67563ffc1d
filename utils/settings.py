"""Environment-driven configuration for the detox service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class StorageSettings:
    """Credentials and bucket details for the S3-compatible object store."""

    bucket: str
    access_key_id: str
    secret_access_key: str
    account_id: Optional[str] = None
    endpoint_url: Optional[str] = None
    region: str = "auto"
    signed_url_ttl: int = 86_400

    def resolved_endpoint(self) -> Optional[str]:
        """Return the explicit endpoint, or the Cloudflare R2 endpoint for the account."""
        if self.endpoint_url:
            return self.endpoint_url
        if self.account_id:
            return f"https://{self.account_id}.r2.cloudflarestorage.com"
        return None


@dataclass
class ModelSettings:
    vision_model: str = "gpt-4o"
    text_model: str = "gpt-4o-mini"
    image_model: str = "dall-e-3"
    image_size: str = "1024x1024"
    image_quality: str = "hd"


@dataclass
class Settings:
    """Top-level settings object attached to `app.state.settings`."""

    openai_api_key: str
    storage: StorageSettings
    models: ModelSettings = field(default_factory=ModelSettings)
    database_dir: Path = Path("database")
    max_deghibs_per_day: int = 3
    max_upload_bytes: int = 4 * 1024 * 1024
    upload_tmp_dir: Optional[Path] = None
    deletion_window_seconds: int = 120
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment.

        Raises:
            RuntimeError: If a required variable is missing or malformed.
        """
        openai_api_key = os.getenv("OPENAI_API_KEY", "")
        if not openai_api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable is not set")

        bucket = os.getenv("CLOUDFLARE_R2_BUCKET_NAME", "")
        access_key_id = os.getenv("CLOUDFLARE_R2_ACCESS_KEY_ID", "")
        secret_access_key = os.getenv("CLOUDFLARE_R2_SECRET_ACCESS_KEY", "")
        missing = [
            name
            for name, value in (
                ("CLOUDFLARE_R2_BUCKET_NAME", bucket),
                ("CLOUDFLARE_R2_ACCESS_KEY_ID", access_key_id),
                ("CLOUDFLARE_R2_SECRET_ACCESS_KEY", secret_access_key),
            )
            if not value
        ]
        if missing:
            raise RuntimeError(f"Missing object storage configuration: {', '.join(missing)}")

        storage = StorageSettings(
            bucket=bucket,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            account_id=os.getenv("CLOUDFLARE_R2_ACCOUNT_ID") or None,
            endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
            region=os.getenv("S3_REGION", "auto"),
            signed_url_ttl=_int_env("SIGNED_URL_TTL_SECONDS", 86_400),
        )
        if storage.resolved_endpoint() is None:
            raise RuntimeError("Set CLOUDFLARE_R2_ACCOUNT_ID or S3_ENDPOINT_URL for object storage")

        models = ModelSettings(
            vision_model=os.getenv("OPENAI_VISION_MODEL", "gpt-4o"),
            text_model=os.getenv("OPENAI_TEXT_MODEL", "gpt-4o-mini"),
            image_model=os.getenv("OPENAI_IMAGE_MODEL", "dall-e-3"),
            image_size=os.getenv("OPENAI_IMAGE_SIZE", "1024x1024"),
            image_quality=os.getenv("OPENAI_IMAGE_QUALITY", "hd"),
        )

        upload_tmp_dir = os.getenv("UPLOAD_TMP_DIR")
        log_dir = os.getenv("LOG_DIR")

        return cls(
            openai_api_key=openai_api_key,
            storage=storage,
            models=models,
            database_dir=Path(os.getenv("DATABASE_DIR", "database")).expanduser(),
            max_deghibs_per_day=_int_env("MAX_DEGHIBS_PER_DAY", 3),
            max_upload_bytes=_int_env("MAX_UPLOAD_BYTES", 4 * 1024 * 1024),
            upload_tmp_dir=Path(upload_tmp_dir).expanduser() if upload_tmp_dir else None,
            deletion_window_seconds=_int_env("DELETION_WINDOW_SECONDS", 120),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_dir=Path(log_dir).expanduser() if log_dir else None,
        )
