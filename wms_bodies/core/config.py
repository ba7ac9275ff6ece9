"""Configuration constants for WMS data sets and the tile pipeline."""

from pathlib import Path

# Download settings
POOL_SIZE = 32  # worker threads shared by fetch and decode
DOWNLOAD_TIMEOUT = 30  # seconds
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # bytes
MAX_CONCURRENT_DOWNLOADS = 8  # cache warmer only
MAX_RETRIES = 3  # cache warmer only
RETRY_DELAY = 1  # seconds

# Cache settings
DEFAULT_CACHE_DIR = Path("map-cache")
CACHE_FILE_SUFFIX = ".img"
STATIC_CACHE_NAME = "static"

# ISO-8601 duration approximations (seconds)
SECONDS_PER_YEAR = 31556926
SECONDS_PER_MONTH = 2629744
SECONDS_PER_DAY = 86400
SECONDS_PER_HOUR = 3600
SECONDS_PER_MINUTE = 60

# Display formats implied by a duration's granularity
FORMAT_DAY = "%Y-%m-%d"
FORMAT_MONTH = "%Y-%m"
FORMAT_YEAR = "%Y"
FORMAT_MINUTE = "%Y-%m-%dT%H:%MZ"

# Special start/end token meaning wall-clock time at parse time
CURRENT_TIME_TOKEN = "current"

# Timeline settings
TIMELINE_FORMAT = "%Y-%m-%dT%H:%M"
TIMELINE_SUMMARY = "Valid WMS Time"
TIMELINE_STYLE = "border-color: green"

# Sphere grid settings
DEFAULT_GRID_RESOLUTION_X = 200
DEFAULT_GRID_RESOLUTION_Y = 100
