"""ARQ worker entrypoint — runs the expired-instance sweeper."""

import asyncio
import logging

from arq import cron
from arq.connections import RedisSettings

from fsm_booking.core.config import get_settings
from fsm_booking.workers.expiry import purge_expired_instances

logger = logging.getLogger(__name__)

settings = get_settings()


async def startup(ctx: dict) -> None:
    """Called when the worker starts."""
    from fsm_booking.core.database import init_db
    await init_db()
    logger.info("Expiry sweeper scheduled hourly at minute %d", settings.expiry_sweep_minute)


async def shutdown(ctx: dict) -> None:
    """Called when the worker shuts down."""
    from fsm_booking.core.database import engine
    await engine.dispose()


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [purge_expired_instances]
    cron_jobs = [
        cron(purge_expired_instances, minute=settings.expiry_sweep_minute, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_jobs = 1
    job_timeout = 300


if __name__ == "__main__":
    from arq import run_worker
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_worker(WorkerSettings))  # type: ignore[arg-type]
