import os
from datetime import datetime

import pytz
from dotenv import load_dotenv

load_dotenv()

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")


def get_app_timezone():
    return pytz.timezone(APP_TIMEZONE)


def now_local() -> datetime:
    """Current time as an aware datetime in the application timezone."""
    return datetime.now(get_app_timezone())


def as_local(value: datetime) -> datetime:
    """Attach the application timezone to naive datetimes (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return get_app_timezone().localize(value)
    return value.astimezone(get_app_timezone())
