"""Exceptions raised while talking to upstream sources.

These never escape an adapter: ``SourceAdapter.fetch`` turns them into a
``FetchFault`` for the one facility that failed.
"""

from libspot.models import FaultKind


class UpstreamError(Exception):
    """Base class for source-local failures."""

    kind: FaultKind = FaultKind.UPSTREAM_UNAVAILABLE


class UpstreamUnavailable(UpstreamError):
    """The upstream could not be reached, timed out, or returned an error status."""

    kind = FaultKind.UPSTREAM_UNAVAILABLE


class UpstreamMalformed(UpstreamError):
    """The upstream answered, but not in the shape we expect."""

    kind = FaultKind.UPSTREAM_MALFORMED
