"""Render properties and per-frame texture state."""

from dataclasses import dataclass


@dataclass
class RenderProperties:
    """Externally toggled rendering switches, read once per tick."""

    enable_interpolation: bool = True
    enable_time_span: bool = False


@dataclass(frozen=True)
class FrameState:
    """Which textures the renderer should bind for one frame.

    ``fade`` is the weight of the primary texture: 1.0 at the start of a
    bucket, approaching 0.0 towards the next bucket boundary.
    """

    use_primary: bool = False
    primary_bucket: str | None = None
    use_secondary: bool = False
    secondary_bucket: str | None = None
    fade: float = 1.0

    @property
    def primary_is_background(self) -> bool:
        """Whether only the static background texture is shown."""
        return not self.use_primary
