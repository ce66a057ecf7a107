"""Slot generation for the rolling booking horizon.

Slots are materialized lazily: every availability read calls
``ensure_horizon`` first, so the store always holds one slot per hour of
business for the next ``HORIZON_DAYS`` days.
"""

import logging
from datetime import date, timedelta
from typing import Iterator, List, Tuple

from sqlmodel import select
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import CLOSING_HOUR, HORIZON_DAYS, OPENING_HOUR
from errors import StorageFailure
from models import Slot, SlotStatus

logger = logging.getLogger(__name__)


def candidate_slots(reference_date: date) -> Iterator[Tuple[date, str, str]]:
    """Yield (date, start_time, end_time) for every slot of the horizon."""
    for day in range(HORIZON_DAYS):
        slot_date = reference_date + timedelta(days=day)
        for hour in range(OPENING_HOUR, CLOSING_HOUR):
            yield slot_date, f"{hour:02d}:00", f"{hour + 1:02d}:00"


def _conflict_tolerant_insert(dialect_name: str):
    """INSERT that skips rows colliding on (date, start_time), if the dialect has one."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as upsert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as upsert
    else:
        return None
    return upsert(Slot.__table__).on_conflict_do_nothing(
        index_elements=["date", "start_time"]
    )


async def _insert_one_by_one(session: AsyncSession, rows: List[dict]) -> None:
    for row in rows:
        try:
            async with session.begin_nested():
                await session.execute(insert(Slot.__table__).values(**row))
        except IntegrityError:
            # Created by a concurrent generator run
            logger.debug(f"Slot {row['date']} {row['start_time']} already exists")


async def ensure_horizon(session: AsyncSession, reference_date: date) -> int:
    """Make sure every slot of ``[reference_date, reference_date + HORIZON_DAYS)`` exists.

    Returns the number of slots that were missing and got staged for
    insertion. Repeated calls on an unchanged store stage nothing.
    """
    last_date = reference_date + timedelta(days=HORIZON_DAYS - 1)

    try:
        # Step 1: fetch every existing key in the window (single query)
        statement = select(Slot.date, Slot.start_time).where(
            Slot.date >= reference_date, Slot.date <= last_date
        )
        result = await session.execute(statement)
        existing = {(row.date, row.start_time) for row in result}

        # Step 2: stage the missing ones
        rows = [
            {
                "date": slot_date,
                "start_time": start,
                "end_time": end,
                "status": SlotStatus.available,
            }
            for slot_date, start, end in candidate_slots(reference_date)
            if (slot_date, start) not in existing
        ]

        if not rows:
            # Close the read transaction
            await session.commit()
            return 0

        # Step 3: bulk insert; duplicates from concurrent runs are skipped per row
        statement = _conflict_tolerant_insert(session.get_bind().dialect.name)
        if statement is not None:
            await session.execute(statement, rows)
        else:
            await _insert_one_by_one(session, rows)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Failed to materialize slot horizon")
        raise StorageFailure() from exc

    logger.info(f"Generated {len(rows)} slots from {reference_date} to {last_date}")
    return len(rows)
