# test_config.py
from datetime import date

import pytest
from pydantic import ValidationError

from libs.config import AnalysisConfig, AppConfig
from libs.models.events import DeviceCategory


def test_analysis_defaults():
    cfg = AnalysisConfig()

    assert cfg.start_date == date(2021, 1, 1)
    assert cfg.end_date == date(2021, 1, 31)
    assert cfg.funnel_window_days == 30
    assert cfg.cohort_size_threshold == 100
    assert cfg.device_filter is None


def test_nested_env_overrides(monkeypatch):
    monkeypatch.setenv("ANALYSIS__FUNNEL_WINDOW_DAYS", "14")
    monkeypatch.setenv("ANALYSIS__DEVICE_FILTER", "mobile")
    monkeypatch.setenv("STORAGE__ROOT", "/tmp/out")

    cfg = AppConfig()

    assert cfg.analysis.funnel_window_days == 14
    assert cfg.analysis.device_filter == DeviceCategory.MOBILE
    assert cfg.storage.root == "/tmp/out"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"start_date": date(2021, 2, 1), "end_date": date(2021, 1, 1)},
        {"funnel_window_days": 0},
        {"cohort_size_threshold": 0},
        {"device_filter": "smartwatch"},
    ],
)
def test_invalid_analysis_values(kwargs):
    with pytest.raises(ValidationError):
        AnalysisConfig(**kwargs)


def test_load_wraps_validation_errors(monkeypatch):
    monkeypatch.setenv("ANALYSIS__FUNNEL_WINDOW_DAYS", "-3")
    AppConfig.load.__func__.cache_clear()
    try:
        with pytest.raises(RuntimeError, match="Invalid configuration values"):
            AppConfig.load()
    finally:
        AppConfig.load.__func__.cache_clear()


def test_sections_ignore_unprefixed_environment(monkeypatch):
    monkeypatch.setenv("PATH", "/usr/local/bin:/usr/bin")
    monkeypatch.setenv("START_DATE", "2030-01-01")
    monkeypatch.setenv("END_DATE", "2030-12-31")
    monkeypatch.setenv("DEVICE_FILTER", "tablet")
    monkeypatch.setenv("ROOT", "/somewhere/else")
    monkeypatch.setenv("FORMAT", "csv")

    cfg = AppConfig()

    assert cfg.source.path == "s3a://funnelscope-raw/raw/ga4_events"
    assert cfg.source.format == "parquet"
    assert cfg.storage.root == "s3a://funnelscope-raw"
    assert cfg.analysis.start_date == date(2021, 1, 1)
    assert cfg.analysis.end_date == date(2021, 1, 31)
    assert cfg.analysis.device_filter is None


def test_section_defaults_read_their_own_prefix(monkeypatch):
    monkeypatch.setenv("SOURCE__PATH", "/data/ga4")
    monkeypatch.setenv("ANALYSIS__START_DATE", "2021-01-10")

    assert AppConfig().source.path == "/data/ga4"
    assert AnalysisConfig().start_date == date(2021, 1, 10)
