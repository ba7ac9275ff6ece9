"""Mapping of simulation time onto cache buckets."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterator, Sequence

from wms_bodies.core.interval_parser import parse_time_spec
from wms_bodies.models.time_interval import TimeInterval

logger = logging.getLogger(__name__)


def ensure_utc(t: datetime) -> datetime:
    """Return ``t`` as an aware UTC datetime, treating naive values as UTC."""
    if t.tzinfo is None:
        return t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc)


def locate(t: datetime, intervals: Sequence[TimeInterval]) -> tuple[int, timedelta] | None:
    """
    Find the interval containing ``t``.

    Intervals need not be sorted or disjoint; the first one in declaration
    order that contains ``t`` wins.

    Args:
        t: Timestamp to look up
        intervals: Interval table

    Returns:
        (interval index, time elapsed since that interval's start), or None
        if no interval contains ``t``
    """
    for index, interval in enumerate(intervals):
        if interval.contains(t):
            return index, t - interval.start
    return None


def snap(t: datetime, duration: int, elapsed: timedelta) -> datetime:
    """
    Truncate ``t`` back to the start of its bucket.

    Args:
        t: Timestamp inside an interval
        duration: Bucket length in seconds; 0 disables snapping
        elapsed: Time between the owning interval's start and ``t``

    Returns:
        ``t - (whole seconds of elapsed mod duration)``
    """
    if duration == 0:
        return t
    offset = int(elapsed.total_seconds()) % duration
    return t - timedelta(seconds=offset)


class BucketClock:
    """Snaps timestamps onto the bucket grid of one data set's interval table.

    The bucket length and display format are taken from the first interval;
    all intervals of one time specification are expected to share them.
    """

    def __init__(self, intervals: Sequence[TimeInterval]):
        """
        Initialize the clock.

        Args:
            intervals: Parsed interval table (must not be empty)
        """
        if not intervals:
            raise ValueError("BucketClock requires at least one time interval")
        self.intervals: list[TimeInterval] = list(intervals)
        self.duration: int = self.intervals[0].duration
        self.format: str = self.intervals[0].format

    @classmethod
    def from_spec(cls, spec: str, now: datetime | None = None) -> "BucketClock":
        """Parse a time specification and build a clock for it."""
        return cls(parse_time_spec(spec, now))

    @property
    def step(self) -> timedelta:
        """Bucket length as a timedelta."""
        return timedelta(seconds=self.duration)

    def locate(self, t: datetime) -> tuple[int, timedelta] | None:
        """Find the interval containing ``t`` (see :func:`locate`)."""
        return locate(ensure_utc(t), self.intervals)

    def snap(self, t: datetime) -> datetime:
        """
        Snap ``t`` to the start of its bucket.

        Sub-second precision is dropped first. Timestamps outside every
        interval are returned unchanged apart from that truncation.
        """
        t = ensure_utc(t).replace(microsecond=0)
        located = locate(t, self.intervals)
        if located is None:
            return t
        return snap(t, self.duration, located[1])

    def bucket_time(self, t: datetime) -> tuple[bool, datetime]:
        """
        Locate and snap ``t`` in one step.

        Returns:
            (whether ``t`` is inside an interval, snapped bucket start)
        """
        t = ensure_utc(t).replace(microsecond=0)
        located = locate(t, self.intervals)
        if located is None:
            return False, t
        return True, snap(t, self.duration, located[1])

    def next_bucket_start(self, snapped: datetime) -> datetime:
        """Start of the bucket immediately following ``snapped``."""
        if self.duration == 0:
            return snapped
        return self.snap(snapped + self.step)

    def format_time(self, t: datetime) -> str:
        """Format ``t`` with the table's display format."""
        return ensure_utc(t).strftime(self.format)

    def bucket_id(self, snapped: datetime, time_span: bool = False) -> str:
        """
        Build the cache key for a snapped bucket start.

        Args:
            snapped: Bucket start as returned by :meth:`snap`
            time_span: Whether the bucket represents the range up to the
                next bucket (ignored for zero-length buckets)

        Returns:
            Formatted bucket identifier, e.g. "2020-01-02" or
            "2020-01-02/2020-01-03"
        """
        bucket = self.format_time(snapped)
        if time_span and self.duration > 0:
            bucket += "/" + self.format_time(self.next_bucket_start(snapped))
        return bucket

    def iter_buckets(self) -> Iterator[datetime]:
        """
        Yield the start of every bucket in every interval.

        Buckets are yielded per interval in declaration order; overlapping
        intervals may repeat a bucket.
        """
        for interval in self.intervals:
            if interval.is_instant or self.duration == 0:
                yield interval.start
                continue
            t = interval.start
            while t <= interval.end:
                yield t
                t += self.step

    def __repr__(self) -> str:
        return f"BucketClock(intervals={len(self.intervals)}, duration={self.duration}s, format={self.format!r})"
