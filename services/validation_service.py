from datetime import date, datetime


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ["1", "true", "yes", "on"]


def parse_int(value, default=None, minimum=None, maximum=None):
    """Coerce to int within optional bounds; fall back to default on failure."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if minimum is not None and number < minimum:
        return default
    if maximum is not None and number > maximum:
        return default
    return number


def parse_days_of_week(raw, strict=False):
    """
    Normalize weekday numbers (0 = Sunday ... 6 = Saturday) into a sorted, de-duplicated list.

    Accepts a list or a comma separated string. With strict=True an unparseable or
    out-of-range entry raises ValueError instead of being dropped.
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set)):
        values = list(raw)
    else:
        values = [v for v in str(raw).split(",") if v.strip()]
    days = []
    for val in values:
        day = parse_int(val, minimum=0, maximum=6)
        if day is None:
            if strict:
                raise ValueError(f"Invalid day of week: {val!r}")
            continue
        days.append(day)
    return sorted(set(days))


def parse_day_value(raw):
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return datetime.strptime(str(raw)[:10], "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def normalize_priority(raw):
    value = str(raw or "").strip().lower()
    return value if value in ("low", "medium", "high") else "medium"
