from __future__ import annotations

"""
Batch configuration helpers.

Provides:
- Canonical locations for silver / gold tables based on AppConfig.storage.
"""

from dataclasses import dataclass
from functools import lru_cache

from libs.config import AppConfig


@dataclass(frozen=True)
class BatchPaths:
    """
    Canonical table locations for batch layers.

    All tables live under the same storage root, e.g. ``s3a://bucket`` for
    MinIO or a local directory for laptop runs.
    """

    root: str

    def _under(self, *parts: str) -> str:
        return "/".join([self.root.rstrip("/"), *parts])

    @property
    def is_object_store(self) -> bool:
        return self.root.startswith("s3a://")

    # SILVER
    @property
    def silver_events(self) -> str:
        """Canonical commerce events, partitioned by event_date."""
        return self._under("silver", "events")

    @property
    def silver_users(self) -> str:
        """Per-user attributes derived from events."""
        return self._under("silver", "users")

    # GOLD
    @property
    def gold_funnel(self) -> str:
        """Per-user ordered funnel records."""
        return self._under("gold", "funnel")

    @property
    def gold_funnel_summary(self) -> str:
        return self._under("gold", "funnel_summary")

    @property
    def gold_cohorts(self) -> str:
        return self._under("gold", "cohorts")

    @property
    def gold_retention_weekly(self) -> str:
        return self._under("gold", "retention_weekly")

    @property
    def gold_retention_day_n(self) -> str:
        return self._under("gold", "retention_day_n")

    @property
    def gold_retention_day_n_pivot(self) -> str:
        return self._under("gold", "retention_day_n_pivot")


@lru_cache(maxsize=1)
def get_batch_paths() -> BatchPaths:
    """
    Resolve batch paths from global AppConfig.storage.

    Returns:
        BatchPaths: object with table locations for silver / gold.
    """
    cfg = AppConfig.load()
    return BatchPaths(root=cfg.storage.root)
