"""Time interval model."""

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class TimeInterval:
    """A span of time over which a data set publishes imagery.

    A duration of 0 marks a single instant without repetition.
    """

    start: datetime
    end: datetime
    duration: int  # seconds between buckets
    format: str  # strftime pattern implied by the duration granularity

    @property
    def is_instant(self) -> bool:
        """Whether this interval is a single instant."""
        return self.duration == 0

    @property
    def last_valid_time(self) -> datetime:
        """Latest timestamp still contained in this interval."""
        return self.end + timedelta(seconds=self.duration)

    def contains(self, t: datetime) -> bool:
        """Check whether ``t`` lies within ``[start, end + duration]``."""
        return self.start <= t <= self.last_valid_time
