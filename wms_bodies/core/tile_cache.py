"""Three-stage tile cache: downloading -> decoding -> ready."""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from wms_bodies.core.errors import DecodeError, FetchError
from wms_bodies.core.fetch_pipeline import FetchPipeline
from wms_bodies.models.pixel_buffer import PixelBuffer
from wms_bodies.models.request_context import RequestContext

logger = logging.getLogger(__name__)


class BucketState(Enum):
    """Cache stage of a bucket."""

    DOWNLOADING = "downloading"
    DECODING = "decoding"
    READY = "ready"


@dataclass(frozen=True)
class _PendingTask:
    """A scheduled fetch or decode, tagged with the cache generation it belongs to."""

    future: Future
    context: RequestContext
    generation: int
    path: Optional[Path] = None  # file being decoded


class TileCache:
    """Cache of map tiles keyed by bucket identifier.

    A bucket id lives in at most one of the three maps and only ever moves
    forward. The ready map grows for the lifetime of the active data set and
    is emptied only by :meth:`invalidate`; there is no eviction.

    All three maps are guarded by one lock that is held for map mutation
    only, never while waiting on network or decode work. Every invalidation
    bumps a generation counter so that a pump racing an invalidation drops
    its stale completions.
    """

    def __init__(self, pipeline: FetchPipeline):
        """
        Initialize the cache.

        Args:
            pipeline: Worker pool that performs fetch and decode
        """
        self.pipeline = pipeline
        self._lock = threading.Lock()
        self._downloading: dict[str, _PendingTask] = {}
        self._decoding: dict[str, _PendingTask] = {}
        self._ready: dict[str, PixelBuffer] = {}
        self._fallback_buffers: dict[Path, PixelBuffer] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        """Number of invalidations so far."""
        return self._generation

    def ensure_scheduled(self, bucket_id: str, bucket_time: str, context: RequestContext) -> bool:
        """
        Schedule the download of a bucket unless it is already known.

        Must only be called for buckets inside a valid interval.

        Args:
            bucket_id: Cache key
            bucket_time: TIME value to request
            context: Request template, layer and fallback of the active data set

        Returns:
            True if a new download was scheduled
        """
        with self._lock:
            if bucket_id in self._downloading or bucket_id in self._decoding or bucket_id in self._ready:
                return False

            future = self.pipeline.submit_fetch(bucket_time, context)
            self._downloading[bucket_id] = _PendingTask(future, context, self._generation)

        logger.debug(f"Scheduled download of bucket {bucket_id}")
        return True

    def pump(self) -> int:
        """
        Advance finished work by one stage without blocking.

        Finished downloads start decoding (the fallback image when the
        download failed); finished decodes become ready. Every pending handle
        is inspected because completions arrive in any order.

        Returns:
            Number of buckets that became ready
        """
        with self._lock:
            generation = self._generation
            finished = [(bid, task) for bid, task in self._downloading.items() if task.future.done()]

        for bucket_id, task in finished:
            path = self._resolve_download(bucket_id, task)
            with self._lock:
                if self._generation != generation or self._downloading.get(bucket_id) is not task:
                    continue
                del self._downloading[bucket_id]

                fallback = self._fallback_buffers.get(path)
                if fallback is not None:
                    self._ready[bucket_id] = fallback
                    continue

                future = self.pipeline.submit_decode(path)
                self._decoding[bucket_id] = _PendingTask(future, task.context, generation, path)

        with self._lock:
            finished = [(bid, task) for bid, task in self._decoding.items() if task.future.done()]

        promoted = 0
        for bucket_id, task in finished:
            buffer = self._resolve_decode(bucket_id, task)
            with self._lock:
                if self._generation != generation or self._decoding.get(bucket_id) is not task:
                    continue

                if buffer is None:
                    # Retry with the fallback image
                    future = self.pipeline.submit_decode(task.context.fallback_path)
                    self._decoding[bucket_id] = _PendingTask(
                        future, task.context, generation, task.context.fallback_path
                    )
                    continue

                del self._decoding[bucket_id]
                self._ready[bucket_id] = buffer
                if task.path == task.context.fallback_path:
                    self._fallback_buffers[task.path] = buffer
                promoted += 1

        if promoted:
            logger.debug(
                f"{promoted} bucket(s) ready, {len(self._ready)} cached ({self.ready_nbytes / 1e6:.1f} MB)"
            )
        return promoted

    def _resolve_download(self, bucket_id: str, task: _PendingTask) -> Path:
        """Get the downloaded file, or the fallback image if the download failed."""
        try:
            return task.future.result()
        except FetchError as e:
            logger.warning(f"Using fallback image for bucket {bucket_id}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error downloading bucket {bucket_id}: {e}")
        return task.context.fallback_path

    def _resolve_decode(self, bucket_id: str, task: _PendingTask) -> Optional[PixelBuffer]:
        """
        Get the decoded buffer of a finished decode.

        Returns:
            The pixel buffer; None when the fallback image should be decoded
            instead; a transparent buffer when the fallback itself failed
        """
        try:
            return task.future.result()
        except DecodeError as e:
            logger.warning(f"Failed to decode bucket {bucket_id}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error decoding bucket {bucket_id}: {e}")

        if task.path is not None and task.path != task.context.fallback_path:
            # Drop the unreadable file so a later session downloads it again
            try:
                task.path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove unreadable cache file {task.path}: {e}")
            return None

        logger.error(f"Fallback image {task.context.fallback_path} is unreadable; bucket {bucket_id} stays empty")
        return PixelBuffer.transparent()

    def lookup(self, bucket_id: str) -> Optional[PixelBuffer]:
        """Get the ready buffer for a bucket, if any."""
        with self._lock:
            return self._ready.get(bucket_id)

    def state(self, bucket_id: str) -> Optional[BucketState]:
        """Get the cache stage of a bucket, or None if it is unknown."""
        with self._lock:
            if bucket_id in self._downloading:
                return BucketState.DOWNLOADING
            if bucket_id in self._decoding:
                return BucketState.DECODING
            if bucket_id in self._ready:
                return BucketState.READY
            return None

    @property
    def pending_count(self) -> int:
        """Number of buckets still downloading or decoding."""
        with self._lock:
            return len(self._downloading) + len(self._decoding)

    @property
    def ready_ids(self) -> list[str]:
        """Identifiers of all ready buckets."""
        with self._lock:
            return list(self._ready)

    @property
    def ready_nbytes(self) -> int:
        """Memory held by ready buffers; a shared fallback buffer counts once."""
        with self._lock:
            unique = {id(buffer): buffer for buffer in self._ready.values()}
        return sum(buffer.nbytes for buffer in unique.values())

    def invalidate(self):
        """
        Forget every bucket and release all ready buffers.

        Running downloads and decodes are not cancelled; their results are
        discarded when they complete.
        """
        with self._lock:
            self._generation += 1
            dropped = len(self._downloading) + len(self._decoding) + len(self._ready)
            self._downloading.clear()
            self._decoding.clear()
            self._ready.clear()
            self._fallback_buffers.clear()

        logger.info(f"Tile cache invalidated ({dropped} bucket(s) dropped, generation {self._generation})")

    def __len__(self) -> int:
        with self._lock:
            return len(self._downloading) + len(self._decoding) + len(self._ready)

    def __contains__(self, bucket_id: str) -> bool:
        return self.state(bucket_id) is not None
