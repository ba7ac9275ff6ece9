"""Tests for the three-stage tile cache."""

from concurrent.futures import Future
from pathlib import Path

import numpy as np

from wms_bodies.core.errors import DecodeError, FetchError
from wms_bodies.core.tile_cache import BucketState, TileCache
from wms_bodies.models.pixel_buffer import PixelBuffer
from wms_bodies.models.request_context import RequestContext

FALLBACK = Path("/textures/background.png")
CONTEXT = RequestContext(request_template="http://wms?", layer_name="clouds", fallback_path=FALLBACK)


def solid(value, width=2, height=2):
    return PixelBuffer(width=width, height=height, data=np.full((height, width, 4), value, dtype=np.uint8))


class ManualPipeline:
    """Pipeline whose futures are completed by the test."""

    def __init__(self):
        self.fetches = []
        self.decodes = []

    def submit_fetch(self, bucket_time, context):
        future = Future()
        self.fetches.append((bucket_time, future))
        return future

    def submit_decode(self, path):
        future = Future()
        self.decodes.append((path, future))
        return future


def test_ensure_scheduled_deduplicates():
    """Test that scheduling the same bucket twice issues one fetch."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)

    assert cache.ensure_scheduled("2020-01-02", "2020-01-02", CONTEXT)
    assert not cache.ensure_scheduled("2020-01-02", "2020-01-02", CONTEXT)

    assert len(pipeline.fetches) == 1
    assert cache.state("2020-01-02") == BucketState.DOWNLOADING


def test_bucket_moves_forward_through_stages():
    """Test downloading -> decoding -> ready."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    cache.ensure_scheduled("b", "b", CONTEXT)

    assert cache.pump() == 0
    assert cache.state("b") == BucketState.DOWNLOADING

    pipeline.fetches[0][1].set_result(Path("/cache/b.img"))
    assert cache.pump() == 0
    assert cache.state("b") == BucketState.DECODING
    assert pipeline.decodes[0][0] == Path("/cache/b.img")

    # Scheduling while decoding is still a no-op
    assert not cache.ensure_scheduled("b", "b", CONTEXT)

    buffer = solid(7)
    pipeline.decodes[0][1].set_result(buffer)
    assert cache.pump() == 1
    assert cache.state("b") == BucketState.READY
    assert cache.lookup("b") is buffer
    assert cache.pending_count == 0
    assert not cache.ensure_scheduled("b", "b", CONTEXT)


def test_completions_in_any_order():
    """Test that every pending handle is inspected, not only the first."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    for bucket in ["a", "b", "c"]:
        cache.ensure_scheduled(bucket, bucket, CONTEXT)

    pipeline.fetches[2][1].set_result(Path("/cache/c.img"))
    cache.pump()

    assert cache.state("a") == BucketState.DOWNLOADING
    assert cache.state("b") == BucketState.DOWNLOADING
    assert cache.state("c") == BucketState.DECODING


def test_fetch_error_uses_fallback():
    """Test that a failed download decodes the fallback image."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    cache.ensure_scheduled("b", "b", CONTEXT)

    pipeline.fetches[0][1].set_exception(FetchError("http://wms?&TIME=b", 400, "Bad Request"))
    cache.pump()

    assert pipeline.decodes[0][0] == FALLBACK

    fallback = solid(1)
    pipeline.decodes[0][1].set_result(fallback)
    cache.pump()

    assert cache.lookup("b") is fallback
    # The failed bucket is never fetched again
    assert not cache.ensure_scheduled("b", "b", CONTEXT)
    assert len(pipeline.fetches) == 1


def test_fallback_buffer_is_shared():
    """Test that a decoded fallback is reused for later failed buckets."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    cache.ensure_scheduled("a", "a", CONTEXT)
    pipeline.fetches[0][1].set_exception(FetchError("u", 404))
    cache.pump()
    fallback = solid(1)
    pipeline.decodes[0][1].set_result(fallback)
    cache.pump()

    cache.ensure_scheduled("b", "b", CONTEXT)
    pipeline.fetches[1][1].set_exception(FetchError("u", 404))
    cache.pump()

    assert len(pipeline.decodes) == 1
    assert cache.lookup("b") is fallback


def test_decode_error_retries_with_fallback(tmp_path):
    """Test that an undecodable file is removed and replaced by the fallback."""
    bad_file = tmp_path / "bad.img"
    bad_file.write_bytes(b"garbage")

    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    cache.ensure_scheduled("b", "b", CONTEXT)
    pipeline.fetches[0][1].set_result(bad_file)
    cache.pump()

    pipeline.decodes[0][1].set_exception(DecodeError(bad_file, "cannot identify image file"))
    cache.pump()

    assert not bad_file.exists()
    assert cache.state("b") == BucketState.DECODING
    assert pipeline.decodes[1][0] == FALLBACK

    fallback = solid(3)
    pipeline.decodes[1][1].set_result(fallback)
    cache.pump()
    assert cache.lookup("b") is fallback


def test_unreadable_fallback_gives_transparent_buffer():
    """Test that a broken fallback still settles the bucket."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    cache.ensure_scheduled("b", "b", CONTEXT)
    pipeline.fetches[0][1].set_exception(FetchError("u", 400))
    cache.pump()
    pipeline.decodes[0][1].set_exception(DecodeError(FALLBACK, "missing"))
    cache.pump()

    buffer = cache.lookup("b")
    assert buffer is not None
    assert (buffer.width, buffer.height) == (1, 1)
    assert buffer.data.sum() == 0


def test_invalidate_drops_everything():
    """Test that invalidation empties all maps."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    cache.ensure_scheduled("ready", "ready", CONTEXT)
    cache.ensure_scheduled("pending", "pending", CONTEXT)
    pipeline.fetches[0][1].set_result(Path("/cache/ready.img"))
    cache.pump()
    pipeline.decodes[0][1].set_result(solid(9))
    cache.pump()
    assert "ready" in cache

    cache.invalidate()

    assert cache.lookup("ready") is None
    assert cache.state("pending") is None
    assert len(cache) == 0
    assert cache.generation == 1


def test_stale_completion_is_dropped():
    """Test that work finishing after an invalidation is discarded."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    cache.ensure_scheduled("b", "b", CONTEXT)
    stale = pipeline.fetches[0][1]

    cache.invalidate()
    stale.set_result(Path("/cache/b.img"))
    cache.pump()

    assert cache.state("b") is None
    assert pipeline.decodes == []

    # The bucket can be scheduled again for the new generation
    assert cache.ensure_scheduled("b", "b", CONTEXT)
    assert len(pipeline.fetches) == 2


def test_stale_decode_is_dropped():
    """Test that a decode finishing after an invalidation never becomes ready."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    cache.ensure_scheduled("b", "b", CONTEXT)
    pipeline.fetches[0][1].set_result(Path("/cache/b.img"))
    cache.pump()
    assert cache.state("b") == BucketState.DECODING

    cache.invalidate()
    pipeline.decodes[0][1].set_result(solid(5))

    assert cache.pump() == 0
    assert cache.lookup("b") is None
    assert cache.state("b") is None
    assert len(cache) == 0


def test_ready_nbytes_counts_shared_fallback_once():
    """Test the memory held by ready buffers."""
    pipeline = ManualPipeline()
    cache = TileCache(pipeline)
    assert cache.ready_nbytes == 0

    cache.ensure_scheduled("a", "a", CONTEXT)
    pipeline.fetches[0][1].set_result(Path("/cache/a.img"))
    cache.pump()
    pipeline.decodes[0][1].set_result(solid(1, width=4, height=2))
    cache.pump()
    assert cache.ready_nbytes == 4 * 2 * 4

    cache.ensure_scheduled("b", "b", CONTEXT)
    pipeline.fetches[1][1].set_exception(FetchError("u", 404))
    cache.pump()
    pipeline.decodes[1][1].set_result(solid(2))
    cache.pump()
    cache.ensure_scheduled("c", "c", CONTEXT)
    pipeline.fetches[2][1].set_exception(FetchError("u", 404))
    cache.pump()

    assert cache.lookup("b") is cache.lookup("c")
    assert cache.ready_nbytes == 4 * 2 * 4 + 2 * 2 * 4


def test_pixel_buffers_compare_by_identity():
    """Test that equal pixels do not make buffers equal."""
    first = PixelBuffer.transparent(2, 2)
    second = PixelBuffer.transparent(2, 2)

    assert first == first
    assert first != second
    assert len({first, second}) == 2
    assert np.array_equal(first.data, second.data)
