from datetime import datetime, date, timedelta, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_day(d: date) -> datetime:
    return datetime(d.year, d.month, d.day)


def days_ago(days: int, now: datetime | None = None) -> datetime:
    return (now or utcnow()) - timedelta(days=days)


def time_ago(value: datetime, now: datetime | None = None) -> str:
    """German relative time label used by the activity feed."""
    seconds = int(((now or utcnow()) - value).total_seconds())
    if seconds < 60:
        return "gerade eben"
    if seconds < 3600:
        return f"vor {seconds // 60} Minuten"
    if seconds < 86400:
        return f"vor {seconds // 3600} Stunden"
    if seconds < 604800:
        return f"vor {seconds // 86400} Tagen"
    return f"vor {round((seconds // 86400) / 7)} Wochen"
