import importlib

import pytest
from pydantic import ValidationError

from threatguard.config.models import BehaviorConfig, DetectionConfig, GeoBlockingConfig


def test_settings_loads_defaults(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "localhost:6379/0")

    settings_module = importlib.import_module("threatguard.config.settings")
    importlib.reload(settings_module)
    s = settings_module.Settings()
    assert s.redis_url == "redis://localhost:6379/0"
    assert s.detection.thresholds.request_rate == 100.0
    assert s.detection.time_windows.short == 60
    assert s.reputation.score_threshold == 50.0
    assert s.brute_force.endpoints == ["/api/auth/login", "/api/auth/reset-password"]
    assert [p.type for p in s.detection.patterns][:2] == ["sql_injection", "xss"]


def test_nested_env_override(monkeypatch):
    monkeypatch.setenv("DETECTION__THRESHOLDS__REQUEST_RATE", "5")
    monkeypatch.setenv("GEO_BLOCKING__BLOCKED_COUNTRIES", '["kp", " ir "]')
    monkeypatch.setenv("RATE_LIMIT__MAX_REQUESTS", "20")

    from threatguard.config.settings import Settings

    s = Settings()
    assert s.detection.thresholds.request_rate == 5.0
    assert s.geo_blocking.blocked_countries == ["KP", "IR"]
    assert s.rate_limit.max_requests == 20
    assert s.rate_limit.window_seconds == 900


def test_invalid_regex_rejected_at_load():
    with pytest.raises(ValidationError):
        DetectionConfig(
            patterns=[
                {
                    "type": "broken",
                    "pattern": "(unclosed",
                    "severity": "high",
                    "category": "other",
                    "description": "broken",
                }
            ]
        )


def test_behavior_weights_must_sum_to_one():
    with pytest.raises(ValidationError):
        BehaviorConfig(
            patterns=[
                {"type": "request_frequency", "weight": 0.5, "description": "x", "threshold": 100},
                {"type": "error_rate", "weight": 0.2, "description": "y", "threshold": 0.3},
            ]
        )


def test_country_codes_normalized():
    config = GeoBlockingConfig(allowed_countries=["us", "", "de "])
    assert config.allowed_countries == ["US", "DE"]
