"""WMS data set configuration model."""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class WMSConfig:
    """Configuration for a single WMS data set.

    Immutable per activation. Selecting another WMSConfig is the only way to
    change the active data set of a body.
    """

    name: str
    copyright: str
    url: str
    width: int
    height: int
    layers: str  # comma-separated WMS layer list
    time: str | None = None  # ISO-8601 interval specification
    prefetch_count: int | None = None  # buckets scheduled in each direction

    def __post_init__(self):
        """Validate configuration values."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image size must be positive, got {self.width}x{self.height}")

        if self.prefetch_count is not None and self.prefetch_count < 0:
            raise ValueError(f"preFetch must not be negative, got {self.prefetch_count}")

        if not self.layers:
            raise ValueError(f"WMS data set {self.name!r} has no layers")

    @property
    def request_template(self) -> str:
        """Base GetMap request without the TIME parameter."""
        return f"{self.url}&WIDTH={self.width}&HEIGHT={self.height}&LAYERS={self.layers}"

    @property
    def prefetch_radius(self) -> int:
        """Number of buckets to prefetch in each direction (0 when unset)."""
        return self.prefetch_count or 0

    @property
    def is_static(self) -> bool:
        """Whether the data set has no time dimension."""
        return self.time is None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to a dictionary using the settings file keys.

        Returns:
            Dictionary with optional keys omitted when unset
        """
        result = {
            "name": self.name,
            "copyright": self.copyright,
            "url": self.url,
            "width": self.width,
            "height": self.height,
            "layers": self.layers,
        }
        if self.time is not None:
            result["time"] = self.time
        if self.prefetch_count is not None:
            result["preFetch"] = self.prefetch_count
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WMSConfig":
        """
        Create a config from a settings dictionary.

        Args:
            data: Dictionary with name, copyright, url, width, height, layers,
                  and optional time and preFetch keys

        Returns:
            WMSConfig instance
        """
        return cls(
            name=data["name"],
            copyright=data.get("copyright", ""),
            url=data["url"],
            width=int(data["width"]),
            height=int(data["height"]),
            layers=data["layers"],
            time=data.get("time"),
            prefetch_count=data.get("preFetch"),
        )
