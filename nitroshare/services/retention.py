# nitroshare/services/retention.py
from __future__ import annotations

"""
NitroShare · retention sweep
----------------------------
- Walks every partition under the upload root and deletes entries older than
  the retention window (default 24h)
- Per-item error isolation: one unreadable directory or file never aborts the
  sweep; failures are logged and counted
- Races with user deletes are expected: "already gone" counts as done
- Scheduled on a wall-clock cron (default: top of every hour, UTC) via
  APScheduler; the filesystem work runs in a worker thread
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from starlette.concurrency import run_in_threadpool

from nitroshare.core.config import Settings
from nitroshare.storage.catalog import created_at_of

logger = logging.getLogger("nitroshare.retention")

__all__ = ["SweepReport", "RetentionSweeper", "start_retention_scheduler"]


@dataclass
class SweepReport:
    cutoff: datetime
    partitions: int = 0
    scanned: int = 0
    deleted: int = 0
    missing: int = 0
    errors: int = 0


class RetentionSweeper:
    def __init__(self, root: Path, retention: timedelta) -> None:
        self.root = root
        self.retention = retention

    @classmethod
    def from_settings(cls, cfg: Settings) -> "RetentionSweeper":
        return cls(cfg.UPLOAD_ROOT, cfg.retention_window)

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Delete every entry whose upload time is before `now - retention`."""
        now = now or datetime.now(timezone.utc)
        report = SweepReport(cutoff=now - self.retention)
        logger.info("Running cleanup job (cutoff=%s)", report.cutoff.isoformat())

        try:
            with os.scandir(self.root) as it:
                partitions = [e for e in it if e.is_dir(follow_symlinks=False)]
        except FileNotFoundError:
            logger.info("Upload root %s does not exist; nothing to sweep", self.root)
            return report
        except OSError as e:
            logger.error("Error reading uploads directory %s: %s", self.root, e)
            report.errors += 1
            return report

        for partition in partitions:
            report.partitions += 1
            self._sweep_partition(Path(partition.path), report)

        if report.deleted or report.errors:
            logger.info(
                "Cleanup finished: deleted=%s scanned=%s partitions=%s missing=%s errors=%s",
                report.deleted, report.scanned, report.partitions, report.missing, report.errors,
            )
        else:
            logger.debug("Cleanup finished: nothing to purge (scanned=%s)", report.scanned)
        return report

    def _sweep_partition(self, partition: Path, report: SweepReport) -> None:
        try:
            with os.scandir(partition) as it:
                entries = list(it)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Error reading user directory %s: %s", partition.name, e)
            report.errors += 1
            return

        for entry in entries:
            try:
                if not entry.is_file(follow_symlinks=False):
                    continue
                report.scanned += 1
                created_at = created_at_of(entry.name, entry.stat(follow_symlinks=False))
                if created_at >= report.cutoff:
                    continue
                os.unlink(entry.path)
            except FileNotFoundError:
                # Removed concurrently (user delete or an overlapping sweep).
                report.missing += 1
                continue
            except OSError as e:
                logger.error("Error deleting file %s/%s: %s", partition.name, entry.name, e)
                report.errors += 1
                continue
            report.deleted += 1
            logger.info("Deleted old file: %s/%s", partition.name, entry.name)


# ─────────────────────────────────────────────
# ⏰ Scheduler
# ─────────────────────────────────────────────
def start_retention_scheduler(cfg: Settings, sweeper: Optional[RetentionSweeper] = None):
    """Start an AsyncIOScheduler running the sweep on `SWEEP_CRON` (UTC).

    Must be called with a running event loop (application lifespan or
    `scripts/worker.py`). Returns the scheduler so the caller can shut it down.
    """
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from apscheduler.triggers.cron import CronTrigger

    sweeper = sweeper or RetentionSweeper.from_settings(cfg)

    async def _run_sweep() -> None:
        try:
            await run_in_threadpool(sweeper.sweep)
        except Exception:
            logger.exception("Cleanup job failed")

    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    scheduler.add_job(
        _run_sweep,
        CronTrigger.from_crontab(cfg.SWEEP_CRON, timezone=timezone.utc),
        id="retention_sweep",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(
        "Retention scheduler started | cron=%r retention=%sh root=%s",
        cfg.SWEEP_CRON, cfg.RETENTION_HOURS, sweeper.root,
    )
    return scheduler
