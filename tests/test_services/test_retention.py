import os
from datetime import datetime, timedelta, timezone

import pytest

from nitroshare.core.config import Settings
from nitroshare.services.retention import RetentionSweeper, start_retention_scheduler
from nitroshare.storage.media import upload_filename

NOW = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)
DAY = timedelta(hours=24)


def _put(root, key, name, *, mtime=None):
    part = root / key
    part.mkdir(parents=True, exist_ok=True)
    path = part / name
    path.write_bytes(b"v")
    if mtime is not None:
        ts = mtime.timestamp()
        os.utime(path, (ts, ts))
    return path


def test_sweep_removes_only_expired_assets(tmp_path):
    old = _put(tmp_path, "alice_example_com", upload_filename(NOW - DAY - timedelta(seconds=1), ".mp4"))
    young = _put(tmp_path, "alice_example_com", upload_filename(NOW - DAY + timedelta(minutes=1), ".mp4"))
    other_old = _put(tmp_path, "bob_example_com", upload_filename(NOW - 3 * DAY, ".webm"))

    report = RetentionSweeper(tmp_path, DAY).sweep(now=NOW)

    assert not old.exists()
    assert not other_old.exists()
    assert young.exists()
    assert report.deleted == 2
    assert report.partitions == 2
    assert report.scanned == 3
    assert report.errors == 0
    assert report.cutoff == NOW - DAY


def test_second_sweep_is_a_no_op(tmp_path):
    _put(tmp_path, "alice_example_com", upload_filename(NOW - 2 * DAY, ".mp4"))
    sweeper = RetentionSweeper(tmp_path, DAY)

    assert sweeper.sweep(now=NOW).deleted == 1
    assert sweeper.sweep(now=NOW).deleted == 0


def test_legacy_and_leftover_files_age_by_file_time(tmp_path):
    legacy = _put(tmp_path, "alice_example_com", "holiday.mp4", mtime=NOW - 2 * DAY)
    leftover = _put(tmp_path, "alice_example_com", ".upload-abc.part", mtime=NOW - 2 * DAY)
    fresh = _put(tmp_path, "alice_example_com", "fresh.mp4", mtime=NOW)

    RetentionSweeper(tmp_path, DAY).sweep(now=NOW)

    if not hasattr(os.stat(fresh), "st_birthtime"):
        assert not legacy.exists()
        assert not leftover.exists()
    assert fresh.exists()


def test_missing_root_is_an_empty_sweep(tmp_path):
    report = RetentionSweeper(tmp_path / "absent", DAY).sweep(now=NOW)
    assert (report.partitions, report.scanned, report.deleted, report.errors) == (0, 0, 0, 0)


def test_files_at_root_level_and_nested_dirs_are_ignored(tmp_path):
    stray = tmp_path / upload_filename(NOW - 2 * DAY, ".mp4")
    stray.write_bytes(b"v")
    nested = tmp_path / "alice_example_com" / "nested"
    nested.mkdir(parents=True)

    report = RetentionSweeper(tmp_path, DAY).sweep(now=NOW)

    assert stray.exists()
    assert nested.is_dir()
    assert report.deleted == 0


def test_unreadable_partition_does_not_abort_sweep(tmp_path, monkeypatch):
    _put(tmp_path, "alice_example_com", upload_filename(NOW - 2 * DAY, ".mp4"))
    bob = _put(tmp_path, "bob_example_com", upload_filename(NOW - 2 * DAY, ".mp4"))

    real_scandir = os.scandir

    def flaky_scandir(path):
        if str(path).endswith("alice_example_com"):
            raise PermissionError("denied")
        return real_scandir(path)

    monkeypatch.setattr("nitroshare.services.retention.os.scandir", flaky_scandir)

    report = RetentionSweeper(tmp_path, DAY).sweep(now=NOW)

    assert report.errors == 1
    assert report.deleted == 1
    assert not bob.exists()


def test_concurrently_removed_file_counts_as_missing(tmp_path, monkeypatch):
    _put(tmp_path, "alice_example_com", upload_filename(NOW - 2 * DAY, ".mp4"))

    def gone(path):
        raise FileNotFoundError(path)

    monkeypatch.setattr("nitroshare.services.retention.os.unlink", gone)

    report = RetentionSweeper(tmp_path, DAY).sweep(now=NOW)

    assert report.missing == 1
    assert report.deleted == 0
    assert report.errors == 0


@pytest.mark.anyio
async def test_scheduler_registers_hourly_job(tmp_path):
    cfg = Settings(_env_file=None, UPLOAD_ROOT=tmp_path, SWEEP_CRON="0 * * * *")

    scheduler = start_retention_scheduler(cfg)
    try:
        job = scheduler.get_job("retention_sweep")
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        fields = {f.name: str(f) for f in job.trigger.fields}
        assert fields["minute"] == "0"
        assert fields["hour"] == "*"
    finally:
        scheduler.shutdown(wait=False)
