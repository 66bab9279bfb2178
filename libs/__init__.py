"""
funnelscope shared library package.

This package contains:
- shared Pydantic models (commerce events, funnel / retention records)
- global configuration
- observability utilities (logging, tracing, metrics)
"""

from libs.models.events import CommerceEvent, DeviceCategory, EventType
from libs.models.analytics import (
    CohortRecord,
    FunnelStageSummary,
    RetentionPoint,
    UserFunnelRecord,
    ValidationIssue,
)

__all__ = [
    "CommerceEvent",
    "DeviceCategory",
    "EventType",
    "CohortRecord",
    "FunnelStageSummary",
    "RetentionPoint",
    "UserFunnelRecord",
    "ValidationIssue",
]
