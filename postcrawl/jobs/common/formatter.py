"""Log formatter that renders timestamps in UTC.

Crawl ids, page timestamps and stored posts are all UTC, so log lines use the
same clock to make them easy to line up.
"""

import logging
from datetime import datetime, timezone


class UTCFormatter(logging.Formatter):
    """Formats log timestamps in UTC with a trailing ``Z``."""

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime('%Y-%m-%d %H:%M:%SZ')
