"""
Commerce event model + supporting enums.

These models define the typed contract for a single canonical commerce event
as produced by the silver normalizer and consumed by the funnel and retention
builders.
"""

from datetime import date, datetime
from enum import Enum
from typing import ClassVar, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Ordered funnel stages. Declaration order is funnel order."""

    PRODUCT_VIEW = "PRODUCT_VIEW"
    ADD_TO_CART = "ADD_TO_CART"
    BEGIN_CHECKOUT = "BEGIN_CHECKOUT"
    PURCHASE = "PURCHASE"


class DeviceCategory(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    UNKNOWN = "unknown"


# GA4 export event names.
GA4_EVENT_NAMES: Dict[str, EventType] = {
    "view_item": EventType.PRODUCT_VIEW,
    "add_to_cart": EventType.ADD_TO_CART,
    "begin_checkout": EventType.BEGIN_CHECKOUT,
    "purchase": EventType.PURCHASE,
}


class CommerceEvent(BaseModel):
    """
    Canonical commerce event.

    `event_timestamp` carries microsecond precision. `event_date` is the
    source partition date and may differ from the date part of
    `event_timestamp`.
    """

    user_id: str
    event_type: EventType
    event_timestamp: datetime
    event_date: date
    device_category: DeviceCategory = DeviceCategory.UNKNOWN
    purchase_revenue: Optional[float] = Field(default=None, ge=0)

    model_config: ClassVar[Dict[str, object]] = {
        "json_schema_extra": {
            "example": {
                "user_id": "1234567.8901234",
                "event_type": "ADD_TO_CART",
                "event_timestamp": "2021-01-04T10:15:30.123456",
                "event_date": "2021-01-04",
                "device_category": "mobile",
                "purchase_revenue": None,
            }
        }
    }
