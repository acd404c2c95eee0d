"""
Schedule arithmetic for pipeline configs.

Only next-run computation lives here: nothing in this package fires runs
on a timer. An external trigger is expected to pick up configs whose
``next_run`` has passed and call the execution engine.
"""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import Frequency, utcnow
from models.pipeline_config import ScheduleSettings
from schemas.pipeline import ScheduleSpec

logger = logging.getLogger(__name__)


def _at_time(day: datetime, schedule: ScheduleSpec) -> datetime:
    return day.replace(hour=schedule.hour, minute=schedule.minute, second=0, microsecond=0)


def _clamped_day(year: int, month: int, day: int) -> int:
    return min(day, calendar.monthrange(year, month)[1])


def compute_next_run(schedule: Optional[ScheduleSpec], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Next fire time strictly after ``now``.

    Returns None for manual or inactive schedules.
    """
    if schedule is None or not schedule.is_active or schedule.frequency == Frequency.MANUAL:
        return None

    now = now or utcnow()
    candidate = _at_time(now, schedule)

    if schedule.frequency == Frequency.DAILY:
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    if schedule.frequency == Frequency.WEEKLY:
        if schedule.day_of_week is None:
            if candidate <= now:
                candidate += timedelta(days=7)
            return candidate
        # 0 = Monday, as datetime.weekday()
        candidate += timedelta(days=(schedule.day_of_week - now.weekday()) % 7)
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    if schedule.frequency == Frequency.MONTHLY:
        if schedule.day_of_month is None:
            if candidate <= now:
                candidate += relativedelta(months=1)
            return candidate
        candidate = candidate.replace(
            day=_clamped_day(now.year, now.month, schedule.day_of_month)
        )
        if candidate <= now:
            following = now.replace(day=1) + relativedelta(months=1)
            candidate = _at_time(following, schedule).replace(
                day=_clamped_day(following.year, following.month, schedule.day_of_month)
            )
        return candidate

    return None


async def mark_run_started(
    session: AsyncSession,
    config_id: int,
    schedule: Optional[ScheduleSpec],
    now: Optional[datetime] = None
) -> Optional[datetime]:
    """Persist last_run = now and the following next_run. Returns next_run."""
    now = now or utcnow()
    next_run = compute_next_run(schedule, now)

    await session.execute(
        update(ScheduleSettings)
        .where(ScheduleSettings.config_id == config_id)
        .values(last_run=now, next_run=next_run)
        .execution_options(synchronize_session=False)
    )
    await session.commit()

    logger.info(f"Config {config_id} run started; next run: {next_run.isoformat() if next_run else 'none'}")
    return next_run
