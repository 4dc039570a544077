import re
from datetime import time
from typing import Optional, Union

_HHMM = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")
_EVERY_N_HOURS = re.compile(r"^every_(\d+)_hours?$")


def parse_hhmm(value: Optional[str]) -> Optional[time]:
    """
    Parse "HH:MM" (seconds, as Postgres TIME columns render them, are ignored).
    Returns None for anything that is not a valid 24h clock time.
    """
    if not value:
        return None
    match = _HHMM.match(value)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return time(hour=hour, minute=minute)


def parse_frequency_hours(value: Union[str, int, None]) -> Optional[int]:
    """
    "every_hour" -> 1, "every_2_hours" -> 2, "3" -> 3.
    The sign is kept; deciding whether a frequency is usable is the evaluator's job.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value

    text = value.strip().lower()
    if text == "every_hour":
        return 1
    match = _EVERY_N_HOURS.match(text)
    if match:
        return int(match.group(1))
    try:
        return int(text)
    except ValueError:
        return None
