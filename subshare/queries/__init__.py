"""Read-side queries over the ledger."""

from subshare.queries.stats import LedgerStats, collection_trend, compute_stats

__all__ = ["LedgerStats", "collection_trend", "compute_stats"]
