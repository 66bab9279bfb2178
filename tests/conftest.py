# conftest.py
import os
import shutil
import time
from datetime import date, datetime
from typing import Optional

import pytest
from pyspark.sql import SparkSession

from apps.batch.silver.events import events_frame
from libs.models.events import CommerceEvent, DeviceCategory, EventType

os.environ["TZ"] = "UTC"
time.tzset()
os.environ.setdefault("OTEL_SDK_DISABLED", "true")

# Monday
T0 = datetime(2021, 1, 4, 10, 0, 0)

VIEW = EventType.PRODUCT_VIEW
ADD = EventType.ADD_TO_CART
CHECKOUT = EventType.BEGIN_CHECKOUT
PURCHASE = EventType.PURCHASE


def make_event(
    user_id: str,
    event_type: EventType,
    ts: datetime,
    device: str = "desktop",
    event_date: Optional[date] = None,
    revenue: Optional[float] = None,
) -> CommerceEvent:
    return CommerceEvent(
        user_id=user_id,
        event_type=event_type,
        event_timestamp=ts,
        event_date=event_date or ts.date(),
        device_category=DeviceCategory(device),
        purchase_revenue=revenue,
    )


@pytest.fixture(scope="session")
def spark():
    if shutil.which("java") is None and not os.environ.get("JAVA_HOME"):
        pytest.skip("PySpark tests need a Java runtime")

    session = (
        SparkSession.builder.master("local[1]")
        .appName("funnelscope-tests")
        .config("spark.sql.session.timeZone", "UTC")
        .config("spark.sql.shuffle.partitions", "1")
        .config("spark.sql.legacy.timeParserPolicy", "CORRECTED")
        .config("spark.ui.enabled", "false")
        .getOrCreate()
    )
    yield session
    session.stop()


@pytest.fixture
def events_df(spark):
    def _build(*events: CommerceEvent):
        return events_frame(spark, events)

    return _build


RAW_SCHEMA = (
    "user_pseudo_id string, event_name string, event_timestamp bigint, "
    "event_date string, device_category string, purchase_revenue double"
)


def micros(ts: datetime) -> int:
    return int(ts.timestamp()) * 1_000_000 + ts.microsecond


@pytest.fixture
def raw_df(spark):
    def _build(rows):
        return spark.createDataFrame(rows, schema=RAW_SCHEMA)

    return _build
