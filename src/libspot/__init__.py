"""LibrarySpot: study room availability aggregated across library sources."""

import logging

# httpx logs every request at INFO; the aggregator makes a lot of them.
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
