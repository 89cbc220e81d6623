# app/config.py

import os
from typing import Any, Dict

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cho.db")

# Auth
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-later")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Office clock (all booking dates are local to the office)
TIMEZONE = os.getenv("TIMEZONE", "Asia/Manila")

# Booking rules
ADVANCE_BOOKING_DAYS = int(os.getenv("ADVANCE_BOOKING_DAYS", "7"))
AM_CAPACITY = int(os.getenv("AM_CAPACITY", "50"))
PM_CAPACITY = int(os.getenv("PM_CAPACITY", "50"))
DRAFT_EXPIRATION_MINUTES = int(os.getenv("DRAFT_EXPIRATION_MINUTES", "30"))

# No-show policy
NO_SHOW_SUSPENSION_THRESHOLD = int(os.getenv("NO_SHOW_SUSPENSION_THRESHOLD", "2"))
SUSPENSION_MONTHS = int(os.getenv("SUSPENSION_MONTHS", "1"))
NO_SHOW_GRACE_HOURS = int(os.getenv("NO_SHOW_GRACE_HOURS", "24"))

# Cron endpoints are disabled while this is unset
CRON_SECRET = os.getenv("CRON_SECRET")

# Server
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")


def block_capacity() -> Dict[str, int]:
    return {"AM": AM_CAPACITY, "PM": PM_CAPACITY}


def get_settings() -> Dict[str, Any]:
    """Return the current configuration as a dictionary."""
    return {
        "database": {"url": DATABASE_URL},
        "auth": {
            "algorithm": ALGORITHM,
            "access_token_expire_minutes": ACCESS_TOKEN_EXPIRE_MINUTES,
        },
        "booking": {
            "timezone": TIMEZONE,
            "advance_booking_days": ADVANCE_BOOKING_DAYS,
            "block_capacity": block_capacity(),
            "draft_expiration_minutes": DRAFT_EXPIRATION_MINUTES,
        },
        "no_show": {
            "suspension_threshold": NO_SHOW_SUSPENSION_THRESHOLD,
            "suspension_months": SUSPENSION_MONTHS,
            "grace_hours": NO_SHOW_GRACE_HOURS,
        },
        "server": {
            "log_level": LOG_LEVEL,
            "allowed_origins": ALLOWED_ORIGINS,
            "cron_enabled": CRON_SECRET is not None,
        },
    }
