"""Active WMS data set of a body and its texture pipeline."""

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from wms_bodies.core.bucket_clock import BucketClock
from wms_bodies.core.config import DEFAULT_CACHE_DIR
from wms_bodies.core.errors import DecodeError, FetchError, ParseError
from wms_bodies.core.fetch_pipeline import FetchPipeline
from wms_bodies.core.memory_texture import MemoryTextureSink
from wms_bodies.core.texture_selector import TemporalTextureSelector
from wms_bodies.core.tile_cache import TileCache
from wms_bodies.models.pixel_buffer import PixelBuffer
from wms_bodies.models.render_state import FrameState, RenderProperties
from wms_bodies.models.request_context import RequestContext
from wms_bodies.models.texture_sink import TextureSink
from wms_bodies.models.time_interval import TimeInterval
from wms_bodies.models.wms_config import WMSConfig
from wms_bodies.utils.timeline import TimelineEvent, build_timeline_events

logger = logging.getLogger(__name__)


class DataSetController:
    """Owns the active WMS configuration of one body.

    Switching the data set rebuilds the request template and the interval
    table and invalidates the whole tile cache. ``tick`` and ``activate``
    are serialized, so a switch from another thread never interleaves with
    a frame.
    """

    def __init__(
        self,
        configs: Sequence[WMSConfig],
        background_path: Path,
        cache_root: Path = DEFAULT_CACHE_DIR,
        primary_sink: Optional[TextureSink] = None,
        secondary_sink: Optional[TextureSink] = None,
        properties: Optional[RenderProperties] = None,
        pipeline: Optional[FetchPipeline] = None,
    ):
        """
        Initialize the controller and activate the first data set.

        Args:
            configs: Data sets available for this body (at least one)
            background_path: Static background image, also the fallback for
                buckets that cannot be fetched or decoded
            cache_root: Tile cache directory (ignored when ``pipeline`` is given)
            primary_sink: Texture slot for the current bucket
            secondary_sink: Texture slot for the next bucket
            properties: Interpolation and time-span switches
            pipeline: Worker pool to use instead of creating one
        """
        if not configs:
            raise ValueError("At least one WMS data set is required")

        self._configs = list(configs)
        self.background_path = Path(background_path)
        self.properties = properties or RenderProperties()
        self._owns_pipeline = pipeline is None
        self.pipeline = pipeline or FetchPipeline(cache_root)
        self.cache = TileCache(self.pipeline)
        self.primary_sink = primary_sink or MemoryTextureSink("primary")
        self.secondary_sink = secondary_sink or MemoryTextureSink("secondary")
        self.selector = TemporalTextureSelector(self.cache, self.primary_sink, self.secondary_sink)

        self._lock = threading.RLock()
        self._active: Optional[WMSConfig] = None
        self._clock: Optional[BucketClock] = None
        self._context: Optional[RequestContext] = None
        self._static_buffer: Optional[PixelBuffer] = None
        self._closed = False

        try:
            self.activate(self._configs[0])
        except ParseError:
            # Already logged; the data set runs without time dimension
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def configs(self) -> list[WMSConfig]:
        """All data sets available for this body."""
        return list(self._configs)

    @property
    def active_config(self) -> WMSConfig:
        """The active data set."""
        return self._active

    @property
    def copyright(self) -> str:
        """Copyright notice of the active data set."""
        return self._active.copyright if self._active else ""

    @property
    def request_template(self) -> str:
        """GetMap request of the active data set, without TIME."""
        return self._context.request_template if self._context else ""

    @property
    def clock(self) -> Optional[BucketClock]:
        """Bucket clock of the active data set, None for static data sets."""
        return self._clock

    @property
    def time_intervals(self) -> list[TimeInterval]:
        """Interval table of the active data set (empty for static data sets)."""
        return list(self._clock.intervals) if self._clock else []

    @property
    def prefetch_radius(self) -> int:
        """Buckets scheduled in each direction around the current one."""
        return self._active.prefetch_radius if self._active else 0

    def timeline_events(self, body_name: str) -> list[TimelineEvent]:
        """Timeline events marking the valid times of the active data set."""
        if self._active is None:
            return []
        return build_timeline_events(self.time_intervals, self._active.name, body_name)

    def activate(self, config: WMSConfig):
        """
        Make ``config`` the active data set.

        Clears the tile cache. A data set without time dimension downloads
        and decodes its single image right away.

        Args:
            config: Data set to activate

        Raises:
            ParseError: If the time specification is malformed; the data set
                is then shown as a static map
            RuntimeError: If the controller has been closed
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot activate a data set on a closed controller")
            logger.info(f"Activating WMS data set: {config.name}")
            self._active = config
            self._clock = None
            self._static_buffer = None
            self._context = RequestContext(
                request_template=config.request_template,
                layer_name=config.layers,
                fallback_path=self.background_path,
            )
            self.selector.reset()
            self.cache.invalidate()

            if config.time is None:
                self._load_static()
                return

            try:
                self._clock = BucketClock.from_spec(config.time)
            except ParseError as e:
                logger.error(f"Invalid time specification for {config.name}: {e}. Falling back to a static map")
                self._load_static()
                raise

            logger.info(
                f"  {len(self._clock.intervals)} interval(s), {self._clock.duration}s buckets, "
                f"prefetch radius {self.prefetch_radius}"
            )

    def activate_by_name(self, name: str):
        """
        Activate the data set with the given name.

        Raises:
            ValueError: If no data set has that name
            ParseError: See :meth:`activate`
        """
        for config in self._configs:
            if config.name == name:
                self.activate(config)
                return
        raise ValueError(f"Unknown WMS data set: {name}. Valid data sets: {', '.join(c.name for c in self._configs)}")

    def _load_static(self):
        """Fetch and decode the single image of the active data set."""
        try:
            path = self.pipeline.fetch_static(self._context.request_template, self._context.layer_name)
            self._static_buffer = self.pipeline.decode_from_file(path)
        except (FetchError, DecodeError) as e:
            logger.warning(f"Static map for {self._active.name} unavailable, showing background: {e}")
            self._static_buffer = None

    def tick(self, simulation_time: datetime) -> FrameState:
        """
        Advance the texture pipeline by one frame.

        Never blocks on network or decode work. After :meth:`close` nothing
        is scheduled and only the background is shown.

        Args:
            simulation_time: Current simulation time

        Returns:
            Texture bindings for this frame
        """
        with self._lock:
            if self._closed:
                return FrameState()
            if self._clock is None:
                return self.selector.show_static(self._static_buffer)
            return self.selector.tick(
                simulation_time, self._clock, self._context, self.prefetch_radius, self.properties
            )

    def settle(self, simulation_time: datetime, timeout: float = 30.0, poll_interval: float = 0.05) -> FrameState:
        """
        Tick until every scheduled bucket has been resolved.

        Intended for headless use; a render loop calls :meth:`tick` instead.

        Args:
            simulation_time: Simulation time to hold while waiting
            timeout: Maximum seconds to wait
            poll_interval: Sleep between ticks

        Returns:
            Texture bindings once the cache is idle or the timeout expired
        """
        deadline = time.monotonic() + timeout
        state = self.tick(simulation_time)
        while self.cache.pending_count > 0:
            if time.monotonic() >= deadline:
                logger.warning(f"Timed out with {self.cache.pending_count} bucket(s) still loading")
                break
            time.sleep(poll_interval)
            state = self.tick(simulation_time)
        return state

    def close(self):
        """
        Release all cached buffers and stop the worker pool.

        Queued downloads and decodes that have not started are cancelled.
        Closing twice is harmless.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.selector.reset()
            self.cache.invalidate()
            self._static_buffer = None
        if self._owns_pipeline:
            self.pipeline.shutdown(wait=False, cancel_futures=True)
