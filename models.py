import datetime as dt
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field
from sqlalchemy import DateTime, Index, UniqueConstraint, text


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class SlotStatus(str, Enum):
    available = "available"
    booked = "booked"


class Slot(SQLModel, table=True):
    __tablename__ = "slots"
    __table_args__ = (
        # Database-level protection against duplicate slots
        UniqueConstraint("date", "start_time", name="unique_slot_start"),
        Index("ix_slots_date_status", "date", "status"),
        # One booked slot per user per day
        Index(
            "unique_owner_booking_per_day",
            "owner_id",
            "date",
            unique=True,
            postgresql_where=text("status = 'booked'"),
            sqlite_where=text("status = 'booked'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date
    start_time: str = Field(max_length=5)  # "09:00" ... "16:00"
    end_time: str = Field(max_length=5)
    owner_id: Optional[str] = Field(default=None, index=True)
    status: SlotStatus = Field(default=SlotStatus.available, index=True)
    created_at: Optional[dt.datetime] = Field(
        default=None, sa_type=DateTime(timezone=True), sa_column_kwargs={"default": utcnow}
    )
    updated_at: Optional[dt.datetime] = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"default": utcnow, "onupdate": utcnow},
    )

    def effective_start(self, tz: dt.tzinfo) -> dt.datetime:
        """The instant this slot begins, in the booking timezone."""
        return dt.datetime.combine(self.date, dt.time.fromisoformat(self.start_time), tzinfo=tz)
