"""Timeline events marking the valid times of a WMS data set."""

from dataclasses import dataclass
from typing import Iterable, List

from wms_bodies.core.config import TIMELINE_FORMAT, TIMELINE_STYLE, TIMELINE_SUMMARY
from wms_bodies.models.time_interval import TimeInterval


@dataclass(frozen=True)
class TimelineEvent:
    """An event on the time navigation bar."""

    id: str
    start: str
    end: str  # empty for a single instant
    summary: str
    style: str
    wms_name: str
    body_name: str


def build_timeline_events(
    intervals: Iterable[TimeInterval], wms_name: str, body_name: str
) -> List[TimelineEvent]:
    """
    Build one timeline event per interval.

    Args:
        intervals: Interval table of the active data set
        wms_name: Name of the data set, shown as the event description
        body_name: Name of the body the data set belongs to

    Returns:
        Timeline events in interval order
    """
    events = []
    for interval in intervals:
        start = interval.start.strftime(TIMELINE_FORMAT)
        end = interval.end.strftime(TIMELINE_FORMAT)
        if start == end:
            end = ""
        events.append(
            TimelineEvent(
                id=f"wms{start}{end}",
                start=start,
                end=end,
                summary=TIMELINE_SUMMARY,
                style=TIMELINE_STYLE,
                wms_name=wms_name,
                body_name=body_name,
            )
        )
    return events
