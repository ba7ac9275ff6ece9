"""Background download and decode of WMS map tiles."""

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional

import numpy as np
import requests
from PIL import Image

from wms_bodies.core.config import (
    CACHE_FILE_SUFFIX,
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_TIMEOUT,
    POOL_SIZE,
    STATIC_CACHE_NAME,
)
from wms_bodies.core.errors import DecodeError, FetchError
from wms_bodies.models.pixel_buffer import PixelBuffer
from wms_bodies.models.request_context import RequestContext

logger = logging.getLogger(__name__)

Decoder = Callable[[Path], PixelBuffer]


def decode_image(path: Path) -> PixelBuffer:
    """
    Decode an image file into an RGBA pixel buffer.

    Args:
        path: Image file

    Returns:
        PixelBuffer with 4 channels regardless of the source format

    Raises:
        DecodeError: If the file is missing or not a readable image
    """
    try:
        with Image.open(path) as image:
            rgba = image.convert("RGBA")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(path, str(e)) from e

    return PixelBuffer(width=rgba.width, height=rgba.height, data=np.array(rgba, dtype=np.uint8))


def cache_path_for(cache_root: Path, bucket_time: str, layer_name: str) -> Path:
    """
    Get the cache file path for a bucket.

    Layout is ``<cache_root>/<layer>/<year>/<bucket>.img``; the "/" of a
    time-span bucket becomes "-" in the file name.

    Args:
        cache_root: Cache root directory
        bucket_time: Formatted bucket identifier
        layer_name: WMS layer list of the data set

    Returns:
        Path to the cached image
    """
    year = bucket_time.split("-", 1)[0]
    filename = bucket_time.replace("/", "-") + CACHE_FILE_SUFFIX
    return Path(cache_root) / layer_name / year / filename


class FetchPipeline:
    """Fixed-size worker pool running remote-fetch-to-disk and decode-to-memory.

    Excess work queues inside the executor; no task is retried.
    """

    def __init__(
        self,
        cache_root: Path,
        max_workers: int = POOL_SIZE,
        session: Optional[requests.Session] = None,
        decoder: Optional[Decoder] = None,
        timeout: float = DOWNLOAD_TIMEOUT,
    ):
        """
        Initialize the pipeline.

        Args:
            cache_root: Directory under which tiles are cached
            max_workers: Number of worker threads
            session: HTTP session to use; by default each worker thread
                creates its own
            decoder: Image decode function (defaults to Pillow)
            timeout: Per-request timeout in seconds
        """
        self.cache_root = Path(cache_root)
        self.timeout = timeout
        self.decoder = decoder or decode_image
        self._session = session
        self._local = threading.local()
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="WMSLoader")
        logger.debug(f"Tile cache directory: {self.cache_root}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def _get_session(self) -> requests.Session:
        """Get the injected session or this thread's own session."""
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def cache_path(self, bucket_time: str, layer_name: str) -> Path:
        """Get the cache file path for a bucket (see :func:`cache_path_for`)."""
        return cache_path_for(self.cache_root, bucket_time, layer_name)

    def _download(self, url: str, output_path: Path) -> None:
        """
        Stream ``url`` into ``output_path``.

        The body is written to a temporary sibling and moved into place only
        after the transfer completes, so a cache hit never sees a partial file.

        Raises:
            FetchError: On transport failure or an HTTP error status
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)
        partial_path = output_path.with_name(f".{output_path.name}.{threading.get_ident()}.part")

        try:
            with self._get_session().get(url, stream=True, timeout=self.timeout) as response:
                if not response.ok:
                    raise FetchError(url, response.status_code, response.reason or "")

                with open(partial_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)

            os.replace(partial_path, output_path)
        except requests.RequestException as e:
            raise FetchError(url, None, str(e)) from e
        except OSError as e:
            raise FetchError(url, None, f"cannot write {output_path}: {e}") from e
        finally:
            partial_path.unlink(missing_ok=True)

    def fetch_to_disk(self, bucket_time: str, request_template: str, layer_name: str) -> Path:
        """
        Download the tile for a bucket into the disk cache.

        A file already present in the cache is returned without a network call.

        Args:
            bucket_time: Formatted bucket identifier, used as the TIME value
            request_template: GetMap request without TIME
            layer_name: Layer list naming the cache subdirectory

        Returns:
            Path to the cached image

        Raises:
            FetchError: If the download fails
        """
        output_path = self.cache_path(bucket_time, layer_name)

        if output_path.exists():
            logger.debug(f"Tile already cached: {output_path}")
            return output_path

        url = f"{request_template}&TIME={bucket_time}"
        self._download(url, output_path)
        logger.debug(f"Downloaded: {url}")
        return output_path

    def fetch_static(self, request_template: str, layer_name: str) -> Path:
        """
        Download the single image of a data set without time dimension.

        The image is always downloaded again, replacing any cached copy.

        Raises:
            FetchError: If the download fails
        """
        output_path = self.cache_root / layer_name / f"{STATIC_CACHE_NAME}{CACHE_FILE_SUFFIX}"
        self._download(request_template, output_path)
        logger.info(f"Downloaded static map: {output_path}")
        return output_path

    def decode_from_file(self, path: Path) -> PixelBuffer:
        """
        Decode a cached image into memory.

        Raises:
            DecodeError: If the file cannot be decoded
        """
        try:
            return self.decoder(Path(path))
        except DecodeError:
            raise
        except OSError as e:
            raise DecodeError(path, str(e)) from e

    def submit_fetch(self, bucket_time: str, context: RequestContext) -> Future:
        """Schedule :meth:`fetch_to_disk` on the pool."""
        return self.executor.submit(
            self.fetch_to_disk, bucket_time, context.request_template, context.layer_name
        )

    def submit_decode(self, path: Path) -> Future:
        """Schedule :meth:`decode_from_file` on the pool."""
        return self.executor.submit(self.decode_from_file, path)

    def shutdown(self, wait: bool = True, cancel_futures: bool = False):
        """
        Stop accepting work.

        Args:
            wait: Block until running tasks have finished
            cancel_futures: Cancel tasks that have not started yet
        """
        self.executor.shutdown(wait=wait, cancel_futures=cancel_futures)
