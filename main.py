import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

import booking
from config import CORS_ORIGINS, LOG_LEVEL
from database import get_session, init_db
from errors import BookingError, StorageFailure
from schemas import ApiResponse, BookingCreate, SlotRead, slot_list

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    await init_db()
    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Appointment Booking System", lifespan=lifespan)


def error_response(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    body = ApiResponse(success=False, message=message, error=error)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if isinstance(exc, StorageFailure):
        logger.error(f"Storage failure on {request.method} {request.url.path}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code}")
    return error_response(exc.status_code, exc.message, exc.code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    details = ", ".join(str(e.get("msg")) for e in exc.errors())
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


async def current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """The caller's id, verified upstream by the identity service."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No user identity provided")
    return x_user_id.strip()


router = APIRouter(prefix="/api/appointments", tags=["appointments"])


# --- GET /available ---
@router.get("/available", response_model=ApiResponse[List[SlotRead]])
async def get_available_slots(session: AsyncSession = Depends(get_session)):
    slots = await booking.list_available(session)
    return ApiResponse(message="Available slots retrieved successfully", data=slot_list(slots))


# --- POST /book ---
@router.post(
    "/book",
    response_model=ApiResponse[SlotRead],
    status_code=status.HTTP_201_CREATED,
)
async def book_slot(
    booking_data: BookingCreate,
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
):
    slot = await booking.book(session, booking_data.appointment_id, user_id)
    return ApiResponse(
        message="Appointment booked successfully", data=SlotRead.model_validate(slot)
    )


# --- GET /my-appointments ---
@router.get("/my-appointments", response_model=ApiResponse[List[SlotRead]])
async def get_user_appointments(
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
):
    slots = await booking.list_booked_for(session, user_id)
    return ApiResponse(message="User appointments retrieved successfully", data=slot_list(slots))


# --- DELETE /{slot_id}/cancel ---
@router.delete("/{slot_id}/cancel", response_model=ApiResponse[SlotRead])
async def cancel_appointment(
    slot_id: int,
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
):
    slot = await booking.cancel(session, slot_id, user_id)
    return ApiResponse(
        message="Appointment cancelled successfully", data=SlotRead.model_validate(slot)
    )


app.include_router(router)


@app.get("/health")
async def health():
    return {"status": "ok", "message": "Server is running"}


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
