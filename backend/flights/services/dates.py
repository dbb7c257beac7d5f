"""Calendar-day helpers.

Query dates travel as ``YYYY-MM-DD`` strings. They always denote the local
calendar day: aware datetimes are converted with the active Django time zone
before the date is taken, never with UTC.
"""
from datetime import date, datetime, timedelta

from django.utils import timezone

LOCAL_DATE_FORMAT = "%Y-%m-%d"


def to_local_date_string(value: date | datetime) -> str:
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        value = value.date()
    return value.isoformat()


def parse_local_date(value: str) -> date:
    return datetime.strptime(value.strip(), LOCAL_DATE_FORMAT).date()


def local_today() -> date:
    return timezone.localdate()


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def date_range(start: date, count: int) -> list[date]:
    return [start + timedelta(days=i) for i in range(count)]
