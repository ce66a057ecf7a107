"""Availability, booking and cancellation of appointment slots.

Booking is the only multi-step operation that needs isolation: the slot
row is read with ``FOR UPDATE`` where the database supports it, and the
final assignment is a conditional UPDATE keyed on ``status = 'available'``.
Whichever transaction flips the row first wins; the other gets
``SlotTaken`` (or ``AlreadyBooked`` if it read the row after the commit).
The one-booking-per-day rule is checked inside the same transaction and
backed by a partial unique index on ``(owner_id, date)``.

A rejected operation rolls the session back, which expires every ``Slot``
loaded in it. Callers that keep a slot across a failed ``book`` or
``cancel`` must re-read it (``session.get(..., populate_existing=True)``)
rather than touch its attributes.
"""

import logging
from datetime import datetime, timedelta
from typing import List, NoReturn, Optional

from sqlmodel import select
from sqlalchemy import and_, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import BOOKING_TIMEZONE, CANCELLATION_LEAD_HOURS
from errors import (
    AlreadyBooked,
    BookingError,
    DuplicateBookingSameDay,
    NotBooked,
    NotFound,
    NotOwner,
    SlotInPast,
    SlotTaken,
    StorageFailure,
    TooLateToCancel,
)
from models import Slot, SlotStatus
from scheduler import ensure_horizon

logger = logging.getLogger(__name__)


def current_time(now: Optional[datetime] = None) -> datetime:
    """Return ``now`` (or the wall clock) as an aware datetime in the booking timezone."""
    if now is None:
        return datetime.now(BOOKING_TIMEZONE)
    if now.tzinfo is None:
        return now.replace(tzinfo=BOOKING_TIMEZONE)
    return now.astimezone(BOOKING_TIMEZONE)


async def _abort(session: AsyncSession, exc: SQLAlchemyError, action: str) -> NoReturn:
    await session.rollback()
    logger.exception(f"Storage failure while {action}")
    raise StorageFailure() from exc


async def list_available(session: AsyncSession, now: Optional[datetime] = None) -> List[Slot]:
    """Every bookable slot starting after ``now``, ordered by date then start time."""
    now = current_time(now)
    today = now.date()
    await ensure_horizon(session, today)

    statement = (
        select(Slot)
        .where(
            Slot.status == SlotStatus.available,
            or_(
                Slot.date > today,
                and_(Slot.date == today, Slot.start_time > now.strftime("%H:%M")),
            ),
        )
        .order_by(Slot.date, Slot.start_time)
    )
    try:
        result = await session.execute(statement)
        return list(result.scalars().all())
    except SQLAlchemyError as exc:
        await _abort(session, exc, "listing available slots")


async def list_booked_for(session: AsyncSession, user_id: str) -> List[Slot]:
    statement = (
        select(Slot)
        .where(Slot.owner_id == user_id, Slot.status == SlotStatus.booked)
        .order_by(Slot.date, Slot.start_time)
    )
    try:
        result = await session.execute(statement)
        return list(result.scalars().all())
    except SQLAlchemyError as exc:
        await _abort(session, exc, "listing booked slots")


async def book(
    session: AsyncSession, slot_id: int, user_id: str, now: Optional[datetime] = None
) -> Slot:
    """Assign ``slot_id`` to ``user_id``; all checks and the update commit together."""
    now = current_time(now)

    try:
        slot = await session.get(Slot, slot_id, with_for_update=True, populate_existing=True)
        if slot is None:
            raise NotFound()
        if slot.status != SlotStatus.available:
            raise AlreadyBooked()
        if slot.effective_start(BOOKING_TIMEZONE) <= now:
            raise SlotInPast()

        # Check if user already has an appointment on this date
        statement = select(Slot.id).where(
            Slot.owner_id == user_id,
            Slot.date == slot.date,
            Slot.status == SlotStatus.booked,
        )
        existing = await session.execute(statement)
        if existing.first() is not None:
            raise DuplicateBookingSameDay()

        # Conditional update decides the winner of concurrent bookers
        claim = (
            update(Slot)
            .where(Slot.id == slot_id, Slot.status == SlotStatus.available)
            .values(owner_id=user_id, status=SlotStatus.booked)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(claim)
        if result.rowcount == 0:
            raise SlotTaken()

        await session.commit()
        await session.refresh(slot)
    except BookingError:
        await session.rollback()
        raise
    except IntegrityError as exc:
        # Per-day unique index caught a concurrent booking by the same user
        await session.rollback()
        raise DuplicateBookingSameDay() from exc
    except SQLAlchemyError as exc:
        await _abort(session, exc, f"booking slot {slot_id}")

    logger.info(f"Slot {slot_id} ({slot.date} {slot.start_time}) booked by user {user_id}")
    return slot


async def cancel(
    session: AsyncSession, slot_id: int, user_id: str, now: Optional[datetime] = None
) -> Slot:
    """Release a booking owned by ``user_id`` if it starts at least the lead time from now."""
    now = current_time(now)

    try:
        slot = await session.get(Slot, slot_id, populate_existing=True)
        if slot is None:
            raise NotFound()
        if slot.owner_id != user_id:
            raise NotOwner()
        if slot.status != SlotStatus.booked:
            raise NotBooked()
        if slot.effective_start(BOOKING_TIMEZONE) - now < timedelta(hours=CANCELLATION_LEAD_HOURS):
            raise TooLateToCancel(
                f"Cannot cancel appointments less than {CANCELLATION_LEAD_HOURS} hours "
                "before the start time"
            )

        release = (
            update(Slot)
            .where(
                Slot.id == slot_id,
                Slot.owner_id == user_id,
                Slot.status == SlotStatus.booked,
            )
            .values(owner_id=None, status=SlotStatus.available)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(release)
        if result.rowcount == 0:
            # A concurrent cancellation got there first
            raise NotBooked()

        await session.commit()
        await session.refresh(slot)
    except BookingError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await _abort(session, exc, f"cancelling slot {slot_id}")

    logger.info(f"Slot {slot_id} ({slot.date} {slot.start_time}) cancelled by user {user_id}")
    return slot
