"""Parsing of WMS time dimension strings into time intervals.

A WMS data set advertises its time dimension as a comma-separated list of
ranges. Each range is ``start[/end/duration]`` where start and end are
(possibly partial) ISO-8601 timestamps or the token ``current`` and duration
is an ISO-8601 duration such as ``P1D`` or ``PT6H``.
"""

import logging
import re
import string
from datetime import datetime, timezone

from wms_bodies.core.config import (
    CURRENT_TIME_TOKEN,
    FORMAT_DAY,
    FORMAT_MINUTE,
    FORMAT_MONTH,
    FORMAT_YEAR,
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
    SECONDS_PER_MONTH,
    SECONDS_PER_YEAR,
)
from wms_bodies.core.errors import MalformedDateError, MalformedDurationError, ParseError
from wms_bodies.models.time_interval import TimeInterval

logger = logging.getLogger(__name__)

_DURATION_PATTERN = re.compile(
    r"P(?:(\d+)Y)?(?:(\d+)M)?(?:(\d+)D)?"
    r"(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?"
)

# Seconds per unit, in the order of the pattern's groups
_DURATION_UNITS = (
    SECONDS_PER_YEAR,
    SECONDS_PER_MONTH,
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
    1,
)

_PUNCTUATION = set(string.punctuation)


def parse_duration(duration: str) -> int:
    """
    Parse an ISO-8601 duration into seconds.

    Years and months use fixed approximations (31556926 s and 2629744 s).
    Fractional seconds are truncated.

    Args:
        duration: Duration string, e.g. "P1D", "PT6H", "P1Y2M"

    Returns:
        Duration in whole seconds

    Raises:
        MalformedDurationError: If the string does not match the grammar or
            contains no components at all
    """
    match = _DURATION_PATTERN.fullmatch(duration.strip())
    if match is None or all(group is None for group in match.groups()):
        raise MalformedDurationError(duration)

    seconds = 0
    for value, unit in zip(match.groups(), _DURATION_UNITS):
        if value is not None:
            seconds += int(float(value)) * unit
    return seconds


def duration_format(seconds: int) -> str:
    """
    Derive the display format implied by a duration's granularity.

    Day divisibility is checked first, then month, then year, because several
    of the approximate tests can pass for the same duration.

    Args:
        seconds: Duration in seconds

    Returns:
        strftime pattern
    """
    if seconds % SECONDS_PER_DAY == 0:
        return FORMAT_DAY
    elif seconds % SECONDS_PER_MONTH == 0:
        return FORMAT_MONTH
    elif seconds % SECONDS_PER_YEAR == 0:
        return FORMAT_YEAR
    else:
        return FORMAT_MINUTE


def convert_iso_date(date: str, now: datetime | None = None) -> datetime:
    """
    Convert a possibly partial ISO-8601 timestamp to a UTC datetime.

    Punctuation is stripped, then the date part is zero-padded to 8 digits
    (YYYYMMDD) and the time part to 6 digits (HHMMSS). A trailing "Z" is
    dropped since all timestamps are UTC anyway. Anything beyond that,
    such as fractional seconds or zone offsets, is cut off. A month or day of
    zero left by padding means the first month or day, so "2020" is
    2020-01-01T00:00.

    Args:
        date: Timestamp string or "current"
        now: Wall-clock time to use for "current" (defaults to now in UTC),
            truncated to whole seconds

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        MalformedDateError: If the digits do not form a valid timestamp
    """
    date = date.strip()
    if date == CURRENT_TIME_TOKEN:
        current = now or datetime.now(timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        # Bucket arithmetic works in whole seconds
        return current.astimezone(timezone.utc).replace(microsecond=0)

    compact = "".join(ch for ch in date if ch not in _PUNCTUATION)
    if compact[-1:] in ("Z", "z"):
        compact = compact[:-1]
    date_part, _, time_part = compact.partition("T")
    date_part = date_part[:8].ljust(8, "0")
    time_part = time_part[:6].ljust(6, "0")

    digits = date_part + time_part
    if not digits.isdigit():
        raise MalformedDateError(date, "expected digits")

    try:
        return datetime(
            year=int(date_part[0:4]),
            month=max(int(date_part[4:6]), 1),
            day=max(int(date_part[6:8]), 1),
            hour=int(time_part[0:2]),
            minute=int(time_part[2:4]),
            second=int(time_part[4:6]),
            tzinfo=timezone.utc,
        )
    except ValueError as e:
        raise MalformedDateError(date, str(e)) from e


def parse_time_range(time_range: str, now: datetime | None = None) -> TimeInterval:
    """
    Parse a single ``start[/end/duration]`` range.

    Args:
        time_range: Range string
        now: Wall-clock time to use for "current"

    Returns:
        TimeInterval for this range

    Raises:
        ParseError: If any part of the range is malformed
    """
    parts = time_range.strip().split("/")
    if len(parts) > 3:
        raise ParseError(f"Too many '/' separated parts in time range: {time_range!r}")

    start_text = parts[0]
    end_text = parts[1] if len(parts) > 1 else ""
    duration_text = parts[2] if len(parts) > 2 else ""

    start = convert_iso_date(start_text, now)

    # No end means a single instant
    if not end_text.strip():
        return TimeInterval(start=start, end=start, duration=0, format=FORMAT_MINUTE)

    duration = parse_duration(duration_text)
    end = convert_iso_date(end_text, now)
    if end < start:
        raise ParseError(f"Time range ends before it starts: {time_range!r}")

    return TimeInterval(start=start, end=end, duration=duration, format=duration_format(duration))


def parse_time_spec(spec: str, now: datetime | None = None) -> list[TimeInterval]:
    """
    Parse a WMS time dimension string into an ordered list of intervals.

    Args:
        spec: Comma-separated ranges, e.g. "2020-01-01/2020-12-31/P1D,2021-06-15"
        now: Wall-clock time to use for "current" (defaults to now in UTC)

    Returns:
        Intervals in declaration order

    Raises:
        ParseError: If the specification is empty or any range is malformed
    """
    ranges = [r for r in spec.split(",") if r.strip()]
    if not ranges:
        raise ParseError(f"Time specification contains no ranges: {spec!r}")

    intervals = [parse_time_range(r, now) for r in ranges]

    durations = {interval.duration for interval in intervals if not interval.is_instant}
    if len(durations) > 1:
        logger.warning(
            f"Time specification mixes durations {sorted(durations)}; "
            f"buckets use the first interval's duration ({intervals[0].duration}s)"
        )

    logger.debug(f"Parsed {len(intervals)} interval(s) from {spec!r}")
    return intervals
