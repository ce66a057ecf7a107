import os
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

# 1. Load environment variables from .env file
load_dotenv()

# 2. Get the URL. If it's not found, raise an error to fail fast.
DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set. Please check your .env file.")

SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))

# 3. Booking rules
BOOKING_TIMEZONE = ZoneInfo(os.getenv("BOOKING_TIMEZONE", "UTC"))
HORIZON_DAYS = int(os.getenv("HORIZON_DAYS", "30"))
OPENING_HOUR = int(os.getenv("OPENING_HOUR", "9"))
CLOSING_HOUR = int(os.getenv("CLOSING_HOUR", "17"))  # last slot starts one hour before
SLOT_MINUTES = 60
CANCELLATION_LEAD_HOURS = int(os.getenv("CANCELLATION_LEAD_HOURS", "24"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
