from datetime import datetime, time, timedelta

import pytz


def utcnow():
    """Naive UTC timestamp, the form every DateTime column is stored in."""
    return datetime.now(pytz.utc).replace(tzinfo=None)


def to_naive_utc(value):
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(pytz.utc).replace(tzinfo=None)
    return value


def utc_day_start(value=None):
    value = to_naive_utc(value) if value is not None else utcnow()
    return datetime.combine(value.date(), time.min)


def day_start(day_value):
    return datetime.combine(day_value, time.min)


def next_utc_day_start(value=None):
    return utc_day_start(value) + timedelta(days=1)
