from datetime import date, datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models import SlotStatus

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# Pydantic Schemas for Request/Response
class BookingCreate(CamelModel):
    appointment_id: int = Field(gt=0)


class SlotRead(CamelModel):
    id: int
    date: date
    start_time: str
    end_time: str
    owner_id: Optional[str] = None
    status: SlotStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str
    data: Optional[T] = None
    error: Optional[str] = None


def slot_list(slots) -> List[SlotRead]:
    return [SlotRead.model_validate(slot) for slot in slots]
