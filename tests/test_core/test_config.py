from datetime import timedelta
from pathlib import Path

from nitroshare.core.config import Settings


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in ("ALLOWED_EMAILS", "MOUNT_PREFIX", "UPLOAD_ROOT", "RETENTION_HOURS", "FRONTEND_ORIGINS", "ENV"):
        monkeypatch.delenv(key, raising=False)

    s = Settings(_env_file=None)

    assert s.MOUNT_PREFIX == "/nitroshare"
    assert s.MAX_UPLOAD_BYTES == 500 * 1024 * 1024
    assert s.retention_window == timedelta(hours=24)
    assert s.SWEEP_CRON == "0 * * * *"
    assert s.allowed_emails == frozenset()
    assert s.UPLOAD_ROOT == (tmp_path / "uploads").resolve()
    assert s.UPLOAD_ROOT.is_absolute()
    assert not s.is_production


def test_allow_list_is_parsed_and_lowercased(monkeypatch):
    monkeypatch.setenv("ALLOWED_EMAILS", " Alice@Example.com,, bob@example.com ")
    s = Settings(_env_file=None)
    assert s.allowed_emails == frozenset({"alice@example.com", "bob@example.com"})


def test_mount_prefix_is_normalized():
    assert Settings(_env_file=None, MOUNT_PREFIX="videos/").MOUNT_PREFIX == "/videos"
    assert Settings(_env_file=None, MOUNT_PREFIX="/").MOUNT_PREFIX == ""


def test_csv_helpers_for_issuers_and_origins():
    s = Settings(
        _env_file=None,
        IDENTITY_ISSUERS="https://a.test, https://b.test",
        FRONTEND_ORIGINS="https://app.test,",
    )
    assert s.identity_issuers == frozenset({"https://a.test", "https://b.test"})
    assert s.frontend_origins_list == ["https://app.test"]


def test_production_flag():
    assert Settings(_env_file=None, ENV="production").is_production


def test_relative_upload_root_resolves(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    s = Settings(_env_file=None, UPLOAD_ROOT=Path("data/videos"))
    assert s.UPLOAD_ROOT == tmp_path.resolve() / "data" / "videos"
