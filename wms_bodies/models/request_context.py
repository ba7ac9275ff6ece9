"""Per-data-set request context model."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RequestContext:
    """Everything a scheduled bucket needs to be fetched and decoded."""

    request_template: str
    layer_name: str
    fallback_path: Path  # static background image used when a bucket fails
