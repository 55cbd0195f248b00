"""
Expiration worker: retires temporary role assignments whose time is up.

Drains due role_expiration tasks in batches, one transaction per batch.
Run from cron with --once, or as a long-lived process polling on an interval.

Usage:
    python -m scripts.process_expirations --once
    python -m scripts.process_expirations --interval 30
"""

import argparse
import asyncio

from rolekeeper.config import get_settings
from rolekeeper.database import close_db, session_scope
from rolekeeper.kernel.expiration.expiration_service import ExpirationService
from rolekeeper.logging_config import configure_logging, get_logger

log = get_logger(__name__)


async def run_batch(batch_size: int) -> int:
    """Process one batch of due tasks. Returns how many tasks were handled."""
    async with session_scope() as session:
        summary = await ExpirationService(session).process_due(limit=batch_size)
    return summary.processed


async def drain(batch_size: int) -> int:
    total = 0
    while True:
        handled = await run_batch(batch_size)
        total += handled
        if handled < batch_size:
            return total


async def run(interval: float, once: bool) -> None:
    batch_size = get_settings().expiration_batch_size
    try:
        while True:
            try:
                handled = await drain(batch_size)
                if handled:
                    log.info("Expiration tasks processed", extra={"count": handled})
            except Exception:
                if once:
                    raise
                log.exception("Expiration run failed; retrying next interval")
            if once:
                return
            await asyncio.sleep(interval)
    finally:
        await close_db()


def main() -> None:
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    parser = argparse.ArgumentParser(description="Process due role expirations")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.expiration_poll_seconds,
        help="Seconds between runs",
    )
    parser.add_argument("--once", action="store_true", help="Drain due tasks once and exit")
    args = parser.parse_args()

    asyncio.run(run(args.interval, args.once))


if __name__ == "__main__":
    main()
