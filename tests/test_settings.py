from pathlib import Path

import pytest

from utils.settings import Settings

REQUIRED = {
    "OPENAI_API_KEY": "sk-test",
    "CLOUDFLARE_R2_BUCKET_NAME": "detox",
    "CLOUDFLARE_R2_ACCESS_KEY_ID": "key",
    "CLOUDFLARE_R2_SECRET_ACCESS_KEY": "secret",
    "CLOUDFLARE_R2_ACCOUNT_ID": "acct",
}


@pytest.fixture
def env(monkeypatch):
    for name in (
        "S3_ENDPOINT_URL",
        "MAX_DEGHIBS_PER_DAY",
        "MAX_UPLOAD_BYTES",
        "DATABASE_DIR",
        "LOG_LEVEL",
        "LOG_DIR",
        "UPLOAD_TMP_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


def test_defaults(env):
    settings = Settings.from_env()
    assert settings.max_deghibs_per_day == 3
    assert settings.max_upload_bytes == 4 * 1024 * 1024
    assert settings.deletion_window_seconds == 120
    assert settings.database_dir == Path("database")
    assert settings.storage.resolved_endpoint() == "https://acct.r2.cloudflarestorage.com"
    assert settings.models.image_model == "dall-e-3"


def test_overrides(env):
    env.setenv("MAX_DEGHIBS_PER_DAY", "10")
    env.setenv("LOG_LEVEL", "debug")
    env.setenv("S3_ENDPOINT_URL", "http://minio:9000")
    settings = Settings.from_env()
    assert settings.max_deghibs_per_day == 10
    assert settings.log_level == "DEBUG"
    assert settings.storage.resolved_endpoint() == "http://minio:9000"


def test_missing_openai_key(env):
    env.delenv("OPENAI_API_KEY")
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        Settings.from_env()


def test_missing_storage_credentials_are_listed(env):
    env.delenv("CLOUDFLARE_R2_SECRET_ACCESS_KEY")
    with pytest.raises(RuntimeError, match="CLOUDFLARE_R2_SECRET_ACCESS_KEY"):
        Settings.from_env()


def test_malformed_integer(env):
    env.setenv("MAX_DEGHIBS_PER_DAY", "three")
    with pytest.raises(RuntimeError, match="must be an integer"):
        Settings.from_env()
