"""Timestamp extraction and duration parsing.

All engine timing is derived from timestamps parsed out of the log lines
themselves, never from the wall clock.
"""

import logging
import re
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(
    r"^(\d+(?:\.\d+)?)\s*(seconds?|secs?|s|minutes?|mins?|m|hours?|hrs?|h)$",
    re.IGNORECASE,
)

DURATION_UNITS = {
    "s": "seconds",
    "sec": "seconds",
    "secs": "seconds",
    "second": "seconds",
    "seconds": "seconds",
    "m": "minutes",
    "min": "minutes",
    "mins": "minutes",
    "minute": "minutes",
    "minutes": "minutes",
    "h": "hours",
    "hr": "hours",
    "hrs": "hours",
    "hour": "hours",
    "hours": "hours",
}

# token -> (regex, datetime field); matched longest token first
FORMAT_TOKENS = {
    "yyyy": (r"(\d{4})", "year"),
    "SSS": (r"(\d{3})", "millisecond"),
    "MM": (r"(\d{2})", "month"),
    "dd": (r"(\d{2})", "day"),
    "HH": (r"(\d{2})", "hour"),
    "mm": (r"(\d{2})", "minute"),
    "ss": (r"(\d{2})", "second"),
}

_TOKENS_BY_LENGTH = sorted(FORMAT_TOKENS, key=len, reverse=True)

EPOCH_BASIS = {
    "year": 2000,
    "month": 1,
    "day": 1,
    "hour": 0,
    "minute": 0,
    "second": 0,
    "millisecond": 0,
}


def parse_duration(duration_str: str | None) -> timedelta | None:
    """Parse duration string like '10 seconds', '1 minutes', '2h' into timedelta.

    Args:
        duration_str: Duration string (e.g., '30s', '1.5 minutes', '2 hours')

    Returns:
        timedelta, or None when the string is empty or not a duration
    """
    if not duration_str or not isinstance(duration_str, str):
        return None

    match = DURATION_PATTERN.match(duration_str.strip())
    if not match:
        return None

    value = float(match.group(1))
    unit = DURATION_UNITS[match.group(2).lower()]
    duration = timedelta(**{unit: value})

    # Whole milliseconds only
    return timedelta(milliseconds=round(duration.total_seconds() * 1000))


def format_elapsed(elapsed: timedelta | None) -> str | None:
    """Format a time span for diagnostics: '45s', '2m', '2m 5s'."""
    if elapsed is None:
        return None

    total_seconds = int(elapsed.total_seconds())
    if total_seconds < 60:
        return f"{total_seconds}s"

    minutes, seconds = divmod(total_seconds, 60)
    if seconds == 0:
        return f"{minutes}m"
    return f"{minutes}m {seconds}s"


def format_duration(duration_str: str | None) -> str | None:
    """Format a configured duration string, falling back to the raw text."""
    if not duration_str:
        return None
    duration = parse_duration(duration_str)
    if not duration:
        return duration_str
    return format_elapsed(duration)


class TimestampExtractor:
    """Extracts timestamps from log lines using a date/time format string.

    Supported tokens: yyyy, MM, dd, HH, mm, ss, SSS. Every other character is
    a literal. Fields absent from the format default to 2000-01-01 00:00:00.000.
    """

    def __init__(self, timestamp_format: str):
        """Compile the format.

        Args:
            timestamp_format: Format string, e.g. 'yyyy-MM-dd HH:mm:ss'
        """
        self.timestamp_format = timestamp_format
        self._fields: list[str] = []

        parts = []
        i = 0
        while i < len(timestamp_format):
            for token in _TOKENS_BY_LENGTH:
                if timestamp_format.startswith(token, i):
                    regex, field = FORMAT_TOKENS[token]
                    parts.append(regex)
                    self._fields.append(field)
                    i += len(token)
                    break
            else:
                parts.append(re.escape(timestamp_format[i]))
                i += 1

        self.regex = re.compile("".join(parts))

    def extract(self, line: str) -> datetime | None:
        """Return the timestamp found in a line, or None."""
        match = self.regex.search(line)
        if not match:
            return None

        parts = dict(EPOCH_BASIS)
        for index, field in enumerate(self._fields, start=1):
            parts[field] = int(match.group(index))

        try:
            return datetime(
                parts["year"],
                parts["month"],
                parts["day"],
                parts["hour"],
                parts["minute"],
                parts["second"],
                parts["millisecond"] * 1000,
            )
        except ValueError:
            logger.debug("Unparsable timestamp %r for format %r", match.group(0), self.timestamp_format)
            return None

    def __repr__(self) -> str:
        return f"TimestampExtractor({self.timestamp_format!r})"


def build_extractor(timestamp_format: str | None) -> TimestampExtractor | None:
    """Create an extractor for a format, or None when no format is given."""
    if not timestamp_format:
        return None
    return TimestampExtractor(timestamp_format)
