"""Release aggregation — one release per tag, all formats together."""

from shipwright.release.aggregator import RELEASE_JOB_ID, ReleaseAggregator

__all__ = ["RELEASE_JOB_ID", "ReleaseAggregator"]
