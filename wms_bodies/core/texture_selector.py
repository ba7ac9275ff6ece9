"""Per-frame selection of the primary and secondary map textures."""

import logging
from datetime import datetime

from wms_bodies.core.bucket_clock import BucketClock, ensure_utc
from wms_bodies.core.tile_cache import TileCache
from wms_bodies.models.pixel_buffer import PixelBuffer
from wms_bodies.models.render_state import FrameState, RenderProperties
from wms_bodies.models.request_context import RequestContext
from wms_bodies.models.texture_sink import TextureSink

logger = logging.getLogger(__name__)

STATIC_BUCKET_ID = "static"


class TemporalTextureSelector:
    """Decides every tick which ready buckets are bound as textures.

    The primary texture shows the bucket containing the current simulation
    time; the secondary shows the following bucket so the renderer can
    cross-fade between them. Textures are uploaded only when the bound
    bucket id changes, not every tick.
    """

    def __init__(
        self,
        cache: TileCache,
        primary_sink: TextureSink,
        secondary_sink: TextureSink,
        generate_mipmaps: bool = False,
    ):
        """
        Initialize the selector.

        Args:
            cache: Tile cache to schedule into and read from
            primary_sink: Texture slot for the current bucket
            secondary_sink: Texture slot for the next bucket
            generate_mipmaps: Passed through to every upload
        """
        self.cache = cache
        self.primary_sink = primary_sink
        self.secondary_sink = secondary_sink
        self.generate_mipmaps = generate_mipmaps

        self.current_bucket: str | None = None
        self.current_secondary_bucket: str | None = None
        self.use_primary = False
        self.use_secondary = False
        self.fade = 1.0

    @property
    def frame_state(self) -> FrameState:
        """Texture bindings decided by the last tick."""
        return FrameState(
            use_primary=self.use_primary,
            primary_bucket=self.current_bucket,
            use_secondary=self.use_secondary,
            secondary_bucket=self.current_secondary_bucket,
            fade=self.fade,
        )

    def reset(self):
        """Forget the bound buckets, e.g. after a data set switch."""
        self.current_bucket = None
        self.use_primary = False
        self._disable_secondary()

    def schedule_prefetch(
        self,
        t: datetime,
        clock: BucketClock,
        context: RequestContext,
        radius: int,
        time_span: bool = False,
    ) -> int:
        """
        Schedule the buckets in ``[-radius, +radius]`` around ``t``.

        Buckets outside every interval are skipped.

        Returns:
            Number of newly scheduled downloads
        """
        scheduled = 0
        for offset in range(-radius, radius + 1):
            in_interval, snapped = clock.bucket_time(t + clock.step * offset)
            if not in_interval:
                continue
            bucket_id = clock.bucket_id(snapped, time_span)
            if self.cache.ensure_scheduled(bucket_id, bucket_id, context):
                scheduled += 1
        return scheduled

    def tick(
        self,
        t: datetime,
        clock: BucketClock,
        context: RequestContext,
        prefetch_radius: int,
        properties: RenderProperties,
    ) -> FrameState:
        """
        Run one frame of the selection state machine.

        Args:
            t: Current simulation time
            clock: Bucket clock of the active data set
            context: Request context of the active data set
            prefetch_radius: Buckets to schedule in each direction
            properties: Interpolation and time-span switches

        Returns:
            The texture bindings for this frame
        """
        t = ensure_utc(t)
        interpolate = properties.enable_interpolation
        time_span = properties.enable_time_span

        self.schedule_prefetch(t, clock, context, prefetch_radius, time_span)
        self.cache.pump()

        in_interval, snapped = clock.bucket_time(t)
        bucket_id = clock.bucket_id(snapped, time_span)
        buffer = self.cache.lookup(bucket_id) if in_interval else None

        if buffer is not None:
            if bucket_id != self.current_bucket:
                self._upload(self.primary_sink, buffer)
                self.current_bucket = bucket_id
                logger.debug(f"Primary texture: {bucket_id}")
            self.use_primary = True
        else:
            # Background texture only
            self.use_primary = False
            self.current_bucket = None

        if not self.use_primary or not interpolate or clock.duration == 0:
            self._disable_secondary()
            return self.frame_state

        next_start = clock.next_bucket_start(snapped)
        next_id = clock.bucket_id(next_start, time_span)
        next_buffer = self.cache.lookup(next_id)

        if next_buffer is None:
            self._disable_secondary()
            return self.frame_state

        if next_id != self.current_secondary_bucket:
            self._upload(self.secondary_sink, next_buffer)
            self.current_secondary_bucket = next_id
            logger.debug(f"Secondary texture: {next_id}")
        self.use_secondary = True

        weight = (next_start - t).total_seconds() / clock.duration
        self.fade = min(max(weight, 0.0), 1.0)
        return self.frame_state

    def show_static(self, buffer: PixelBuffer | None) -> FrameState:
        """
        Bind the single image of a data set without time dimension.

        Args:
            buffer: Decoded image, or None to show only the background

        Returns:
            The texture bindings
        """
        self._disable_secondary()
        if buffer is None:
            self.use_primary = False
            self.current_bucket = None
        elif self.current_bucket != STATIC_BUCKET_ID:
            self._upload(self.primary_sink, buffer)
            self.current_bucket = STATIC_BUCKET_ID
            self.use_primary = True
        return self.frame_state

    def _disable_secondary(self):
        self.use_secondary = False
        self.current_secondary_bucket = None
        self.fade = 1.0

    def _upload(self, sink: TextureSink, buffer: PixelBuffer):
        sink.upload(buffer.width, buffer.height, buffer.data, self.generate_mipmaps)
