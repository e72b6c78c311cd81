"""Upstream availability sources and their adapters."""

from libspot.sources.base import Fetched, FetchResult, SourceAdapter
from libspot.sources.browser import PageRenderer, PlaywrightRenderer, RenderedElement
from libspot.sources.errors import UpstreamError, UpstreamMalformed, UpstreamUnavailable
from libspot.sources.hours import HoursService
from libspot.sources.http import UpstreamClient
from libspot.sources.rendered import RenderedWidgetAdapter
from libspot.sources.structured import StructuredApiAdapter

__all__ = [
    "FetchResult",
    "Fetched",
    "HoursService",
    "PageRenderer",
    "PlaywrightRenderer",
    "RenderedElement",
    "RenderedWidgetAdapter",
    "SourceAdapter",
    "StructuredApiAdapter",
    "UpstreamClient",
    "UpstreamError",
    "UpstreamMalformed",
    "UpstreamUnavailable",
]
