"""Exception hierarchy for the WMS tile pipeline."""


class WMSBodyError(Exception):
    """Base class for all WMS body failures."""


class ParseError(WMSBodyError, ValueError):
    """Raised when a time-interval specification cannot be parsed."""


class MalformedDurationError(ParseError):
    """Raised when a duration string does not match the ISO-8601 duration grammar."""

    def __init__(self, duration: str):
        super().__init__(f"Malformed ISO-8601 duration: {duration!r}")
        self.duration = duration


class MalformedDateError(ParseError):
    """Raised when a start or end date cannot be converted to a timestamp."""

    def __init__(self, date: str, reason: str = ""):
        message = f"Malformed ISO-8601 date: {date!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
        self.date = date


class FetchError(WMSBodyError):
    """Raised when a map tile could not be downloaded.

    Attributes:
        url: Request URL
        status: HTTP status code, or None for transport failures
    """

    def __init__(self, url: str, status: int | None = None, reason: str = ""):
        if status is not None:
            message = f"HTTP {status} for {url}"
        else:
            message = f"Transport error for {url}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.url = url
        self.status = status

    @property
    def is_client_error(self) -> bool:
        """True when the server answered with a 4xx status (no such data)."""
        return self.status is not None and 400 <= self.status < 500


class DecodeError(WMSBodyError):
    """Raised when a cached image file cannot be decoded."""

    def __init__(self, path, reason: str = ""):
        message = f"Failed to decode image {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.path = path
