"""Async WMS client for warming the tile cache ahead of a session."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional

import aiohttp

from wms_bodies.core.config import (
    DOWNLOAD_TIMEOUT,
    MAX_CONCURRENT_DOWNLOADS,
    MAX_RETRIES,
    RETRY_DELAY,
)
from wms_bodies.core.fetch_pipeline import cache_path_for

logger = logging.getLogger(__name__)


class WMSClient:
    """Client for downloading WMS time buckets into the disk cache.

    Writes the same cache layout as :class:`FetchPipeline`, so buckets
    downloaded here are cache hits for the render loop.
    """

    def __init__(self, cache_root: Path, max_concurrent: int = MAX_CONCURRENT_DOWNLOADS):
        """
        Initialize WMS client.

        Args:
            cache_root: Tile cache directory
            max_concurrent: Maximum number of simultaneous requests
        """
        self.cache_root = Path(cache_root)
        self.max_concurrent = max_concurrent
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=DOWNLOAD_TIMEOUT)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.session:
            await self.session.close()

    async def download_bucket(
        self,
        bucket_time: str,
        request_template: str,
        layer_name: str,
    ) -> Optional[Path]:
        """
        Download a single bucket.

        Args:
            bucket_time: Formatted bucket identifier, used as the TIME value
            request_template: GetMap request without TIME
            layer_name: Layer list naming the cache subdirectory

        Returns:
            Path to the cached image, or None if the download failed
        """
        output_path = cache_path_for(self.cache_root, bucket_time, layer_name)

        if output_path.exists():
            logger.debug(f"Bucket already cached: {bucket_time}")
            return output_path

        url = f"{request_template}&TIME={bucket_time}"
        output_path.parent.mkdir(parents=True, exist_ok=True)

        for attempt in range(MAX_RETRIES):
            try:
                async with self.session.get(url) as response:
                    if response.status == 200:
                        content = await response.read()
                        partial_path = output_path.with_name(f".{output_path.name}.part")
                        partial_path.write_bytes(content)
                        os.replace(partial_path, output_path)
                        logger.debug(f"Downloaded: {bucket_time}")
                        return output_path
                    elif 400 <= response.status < 500:
                        logger.warning(f"Bucket rejected (HTTP {response.status}): {url}")
                        return None
                    else:
                        logger.warning(
                            f"HTTP {response.status} for {url} (attempt {attempt + 1}/{MAX_RETRIES})"
                        )
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                logger.warning(
                    f"Error downloading {url}: {e} (attempt {attempt + 1}/{MAX_RETRIES})"
                )

            if attempt < MAX_RETRIES - 1:
                await asyncio.sleep(RETRY_DELAY * (attempt + 1))

        logger.error(f"Failed to download bucket after {MAX_RETRIES} attempts: {url}")
        return None

    async def download_buckets_batch(
        self,
        bucket_times: List[str],
        request_template: str,
        layer_name: str,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> List[Path]:
        """
        Download multiple buckets in parallel.

        Args:
            bucket_times: Formatted bucket identifiers
            request_template: GetMap request without TIME
            layer_name: Layer list naming the cache subdirectory
            progress_callback: Optional callback function(current, total)

        Returns:
            Paths of the buckets now present in the cache
        """
        semaphore = asyncio.Semaphore(self.max_concurrent)
        completed = 0

        async def download_with_limit(bucket_time: str):
            """Download with semaphore to limit concurrency."""
            nonlocal completed

            async with semaphore:
                path = await self.download_bucket(bucket_time, request_template, layer_name)

                completed += 1
                if progress_callback:
                    progress_callback(completed, len(bucket_times))

                return path

        tasks = [download_with_limit(bucket_time) for bucket_time in bucket_times]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        downloaded = []
        for bucket_time, result in zip(bucket_times, results):
            if isinstance(result, Exception):
                logger.error(f"Unexpected error downloading bucket {bucket_time}: {result}")
            elif result:
                downloaded.append(result)

        return downloaded
