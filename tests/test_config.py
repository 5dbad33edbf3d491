import pytest
from pydantic import ValidationError

from dronevis.config import load_settings


def test_defaults():
    s = load_settings({})
    assert s.playback.trail_cap == 500
    assert s.sampler.debounce_ms == 200
    assert s.sampler.change_gate == 20
    assert s.sampler.stride == 15
    assert s.sampler.window == 600
    assert s.sampler.max_wait_ms == 1000


def test_environment_overrides():
    s = load_settings({
        "DRONEVIS_PLANNER_URL": "http://planner:9000/api",
        "DRONEVIS_TRAIL_CAP": "200",
        "DRONEVIS_STRIDE": "5",
        "DRONEVIS_MAX_WAIT_MS": "",
        "DRONEVIS_CORS_ORIGINS": "http://a, http://b",
    })
    assert s.planner_url == "http://planner:9000/api"
    assert s.playback.trail_cap == 200
    assert s.sampler.stride == 5
    assert s.sampler.max_wait_ms is None
    assert s.cors_origins == ["http://a", "http://b"]


def test_bad_values_fail_fast():
    with pytest.raises(ValidationError):
        load_settings({"DRONEVIS_STRIDE": "0"})
    with pytest.raises(ValidationError):
        load_settings({"DRONEVIS_TRAIL_CAP": "lots"})
