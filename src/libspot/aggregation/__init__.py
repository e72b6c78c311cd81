"""Snapshot aggregation across facilities and the bootstrapped document."""

from libspot.aggregation.bootstrap import BootstrapSnapshotCache
from libspot.aggregation.orchestrator import AggregationOrchestrator

__all__ = ["AggregationOrchestrator", "BootstrapSnapshotCache"]
