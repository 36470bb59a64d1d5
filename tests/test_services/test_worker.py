from datetime import datetime, timedelta, timezone

from nitroshare.core.config import Settings
from nitroshare.storage.media import upload_filename
from scripts import worker


def test_worker_once_runs_a_single_sweep(tmp_path, monkeypatch):
    now = datetime.now(timezone.utc)
    part = tmp_path / "alice_example_com"
    part.mkdir()
    expired = part / upload_filename(now - timedelta(days=3), ".mp4")
    fresh = part / upload_filename(now - timedelta(hours=1), ".mp4")
    expired.write_bytes(b"old")
    fresh.write_bytes(b"new")

    monkeypatch.setattr(worker, "settings", Settings(_env_file=None, UPLOAD_ROOT=tmp_path))

    assert worker.main(["--once"]) == 0
    assert not expired.exists()
    assert fresh.exists()
