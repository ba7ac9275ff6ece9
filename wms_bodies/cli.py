"""CLI commands operating on a YAML settings file."""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from PIL import Image

from wms_bodies.core.bucket_clock import BucketClock, ensure_utc
from wms_bodies.core.dataset_controller import DataSetController
from wms_bodies.core.interval_parser import convert_iso_date
from wms_bodies.core.wms_client import WMSClient
from wms_bodies.models.settings import BodySettings, PluginSettings, load_settings
from wms_bodies.models.wms_config import WMSConfig
from wms_bodies.utils.compositing import composite_surface
from wms_bodies.utils.timeline import build_timeline_events

logger = logging.getLogger(__name__)


def select_dataset(settings: PluginSettings, body_name: str, wms_name: Optional[str] = None) -> tuple[BodySettings, WMSConfig]:
    """
    Look up a body and one of its data sets.

    Args:
        settings: Loaded settings
        body_name: Name of the body
        wms_name: Name of the data set; the body's first data set if omitted

    Returns:
        Tuple of (body settings, data set configuration)

    Raises:
        ValueError: If the body or data set is not configured
    """
    body = settings.body(body_name)
    configs = body.wms_configs()
    if wms_name is None:
        return body, configs[0]

    for config in configs:
        if config.name == wms_name:
            return body, config
    raise ValueError(f"Unknown WMS data set: {wms_name}. Valid data sets: {', '.join(c.name for c in configs)}")


def _parse_time_argument(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 command line time (or "current")."""
    if value is None:
        return None
    return convert_iso_date(value)


def collect_bucket_ids(
    clock: BucketClock,
    time_span: bool = False,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> list[str]:
    """
    List the distinct bucket identifiers of an interval table.

    Args:
        clock: Bucket clock of the data set
        time_span: Whether identifiers are ranges up to the next bucket
        start: Skip buckets starting before this time
        end: Skip buckets starting after this time
        limit: Stop after this many buckets

    Returns:
        Bucket identifiers in interval order
    """
    start = ensure_utc(start) if start else None
    end = ensure_utc(end) if end else None

    bucket_ids = []
    seen = set()
    for t in clock.iter_buckets():
        if (start and t < start) or (end and t > end):
            continue
        bucket_id = clock.bucket_id(clock.snap(t), time_span)
        if bucket_id in seen:
            continue
        seen.add(bucket_id)
        bucket_ids.append(bucket_id)
        if limit and len(bucket_ids) >= limit:
            break
    return bucket_ids


def run_list_datasets(settings_path: str) -> int:
    """
    Print every body and its WMS data sets.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        settings = load_settings(settings_path)

        for body_name, body in settings.bodies.items():
            print(f"{body_name}  (background: {body.texture})")
            for config in body.wms_configs():
                time = config.time if config.time else "static"
                print(f"  {config.name}")
                if config.copyright:
                    print(f"           Copyright: {config.copyright}")
                print(f"           Layers: {config.layers}, Size: {config.width}x{config.height}")
                print(f"           Time: {time}, Prefetch: {config.prefetch_radius}")
            print()

        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1


def run_intervals(settings_path: str, body_name: str, wms_name: Optional[str] = None) -> int:
    """
    Print the parsed interval table of a data set.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        settings = load_settings(settings_path)
        _, config = select_dataset(settings, body_name, wms_name)

        if config.is_static:
            print(f"{config.name}: no time dimension")
            return 0

        clock = BucketClock.from_spec(config.time)
        print(f"{config.name}: {len(clock.intervals)} interval(s), bucket length {clock.duration}s")
        for interval, event in zip(clock.intervals, build_timeline_events(clock.intervals, config.name, body_name)):
            end = event.end or "(instant)"
            print(f"  {event.start} .. {end}  every {interval.duration}s  [{interval.format}]")

        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1


def run_prefetch(
    settings_path: str,
    body_name: str,
    wms_name: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    limit: Optional[int] = None,
) -> int:
    """
    Download the buckets of a data set into the tile cache.

    Args:
        settings_path: Path to YAML settings file
        body_name: Name of the body
        wms_name: Name of the data set (first data set if omitted)
        start: Earliest bucket start (ISO-8601)
        end: Latest bucket start (ISO-8601)
        limit: Maximum number of buckets

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        logger.info(f"Loading settings from: {settings_path}")
        settings = load_settings(settings_path)
        _, config = select_dataset(settings, body_name, wms_name)

        if config.is_static:
            logger.error(f"Data set {config.name} has no time dimension; nothing to prefetch")
            return 1

        clock = BucketClock.from_spec(config.time)
        bucket_ids = collect_bucket_ids(
            clock,
            time_span=settings.enable_time_span,
            start=_parse_time_argument(start),
            end=_parse_time_argument(end),
            limit=limit,
        )

        logger.info("Configuration:")
        logger.info(f"  Data set: {config.name} ({config.layers})")
        logger.info(f"  Cache: {settings.cache_dir}")
        logger.info(f"  Buckets to prefetch: {len(bucket_ids):,}")

        if not bucket_ids:
            logger.warning("No buckets in the requested range")
            return 0

        step = max(1, len(bucket_ids) // 10)

        def progress(current: int, total: int):
            if current == total or current % step == 0:
                logger.info(f"  {current}/{total} buckets")

        async def download():
            async with WMSClient(settings.cache_dir) as client:
                return await client.download_buckets_batch(
                    bucket_ids, config.request_template, config.layers, progress_callback=progress
                )

        downloaded = asyncio.run(download())

        failed = len(bucket_ids) - len(downloaded)
        if failed:
            logger.error(f"✗ {failed} of {len(bucket_ids)} bucket(s) could not be downloaded")
            return 1

        logger.info(f"✓ Cached {len(downloaded)} bucket(s)")
        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


def run_render(
    settings_path: str,
    body_name: str,
    time: str,
    output_path: str,
    wms_name: Optional[str] = None,
    timeout: float = 30.0,
) -> int:
    """
    Render the surface texture of a body at a simulation time to an image.

    Runs the tick loop headless until the buckets around ``time`` are
    loaded, then blends them over the background like the surface shader.

    Args:
        settings_path: Path to YAML settings file
        body_name: Name of the body
        time: Simulation time (ISO-8601 or "current")
        output_path: Image file to write
        wms_name: Name of the data set (first data set if omitted)
        timeout: Maximum seconds to wait for downloads

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        logger.info(f"Loading settings from: {settings_path}")
        settings = load_settings(settings_path)
        body, config = select_dataset(settings, body_name, wms_name)
        simulation_time = convert_iso_date(time)

        with Image.open(body.texture) as texture:
            background = texture.convert("RGB")

        with DataSetController(
            body.wms_configs(),
            body.texture,
            cache_root=settings.cache_dir,
            properties=settings.render_properties(),
        ) as controller:
            if controller.active_config.name != config.name:
                controller.activate_by_name(config.name)

            if controller.copyright:
                logger.info(f"Data: {controller.copyright}")

            state = controller.settle(simulation_time, timeout=timeout)
            primary = controller.primary_sink.to_pixel_buffer() if state.use_primary else None
            secondary = controller.secondary_sink.to_pixel_buffer() if state.use_secondary else None

            logger.info(
                f"Frame at {simulation_time:%Y-%m-%dT%H:%M:%SZ}: primary={state.primary_bucket}, "
                f"secondary={state.secondary_bucket}, fade={state.fade:.3f}"
            )

        image = composite_surface(background, primary, secondary, state.fade)
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        image.save(output)
        logger.info(f"✓ Created: {output}")
        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
