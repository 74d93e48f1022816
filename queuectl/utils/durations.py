"""Duration parsing for command options"""

import re
from datetime import timedelta

DURATION_RE = re.compile(
    r"(?i)^\s*(?:(\d+)\s*d)?\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*(?:(\d+)\s*s)?\s*$"
)


def parse_duration(value: str) -> timedelta:
    """
    Parse duration strings like '20s', '5m', '1h30m', '2d3h' or a bare
    number of seconds. Raises ValueError on bad input.
    """
    if not value or not value.strip():
        raise ValueError("duration string is empty")

    if value.strip().isdigit():
        return timedelta(seconds=int(value))

    match = DURATION_RE.match(value)
    if not match or not any(match.groups()):
        raise ValueError(f"Invalid duration format: {value!r}")

    days, hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    return timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
