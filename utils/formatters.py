import datetime


def create_progress_bar(progress: float, length: int = 20) -> str:
    progress = min(max(progress, 0.0), 1.0)
    filled = round(length * progress)
    return "█" * filled + "░" * (length - filled)


def format_elapsed_time(seconds: float) -> str:
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


def format_utc(dt: datetime.datetime) -> str:
    return dt.astimezone(datetime.timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def millis_to_iso(timestamp: int) -> str:
    """ISO-8601 UTC string with millisecond precision, ``Z`` suffixed."""
    dt = datetime.datetime.fromtimestamp(timestamp // 1000, tz=datetime.timezone.utc)
    dt = dt.replace(microsecond=(timestamp % 1000) * 1000)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def millis_to_date(timestamp: int) -> str:
    return millis_to_iso(timestamp)[:10]
