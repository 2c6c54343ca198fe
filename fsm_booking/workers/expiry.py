"""Periodic job — physically delete appointment instances past their TTL.

Instances are treated as expired on read as soon as ``now > valid_until``;
this job only reclaims the rows afterwards.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete

from fsm_booking.core.database import async_session_factory
from fsm_booking.models.appointment import AppointmentInstance
from fsm_booking.models.base import to_epoch, utcnow

logger = logging.getLogger(__name__)


async def purge_expired_instances(ctx: dict) -> dict:
    """ARQ cron job: delete every instance whose ``ttl`` lies in the past."""
    cutoff = to_epoch(utcnow())

    async with async_session_factory() as session:
        stmt = delete(AppointmentInstance).where(AppointmentInstance.ttl < cutoff)
        result = await session.execute(stmt)
        purged = result.rowcount or 0
        await session.commit()

    if purged:
        logger.info("Expiry sweeper: purged %d appointment instances", purged)
    else:
        logger.info("Expiry sweeper: nothing to purge")
    return {"purged": purged}
