from __future__ import annotations

"""
Dedicated retention worker.

Runs the expiry sweep outside the web process, for deployments that scale the
API horizontally and want exactly one sweeper (set `SWEEPER_ENABLED=false` on
the API replicas).

Responsibilities:
- Hourly retention sweep via APScheduler (`SWEEP_CRON`, UTC)
- One-shot sweep with `--once` (cron jobs, manual cleanup)

Run:
  python scripts/worker.py
  python scripts/worker.py --once
"""

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from nitroshare.core.config import settings
from nitroshare.core.logger import setup_logging
from nitroshare.services.retention import RetentionSweeper, start_retention_scheduler

logger = logging.getLogger("nitroshare.worker")


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NitroShare retention worker")
    parser.add_argument("--once", action="store_true", help="run a single sweep and exit")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    setup_logging()
    sweeper = RetentionSweeper.from_settings(settings)

    if args.once:
        report = sweeper.sweep()
        return 1 if report.errors else 0

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    scheduler = loop.run_until_complete(_start(sweeper))

    try:
        loop.run_forever()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.shutdown(wait=False)
        logger.info("Retention worker stopped")
        loop.close()
    return 0


async def _start(sweeper: RetentionSweeper):
    # AsyncIOScheduler binds to the running loop at start().
    return start_retention_scheduler(settings, sweeper)


if __name__ == "__main__":
    raise SystemExit(main())
