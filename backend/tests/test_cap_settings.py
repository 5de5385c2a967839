"""Unit tests for server-side caps on client-provided run settings."""

from fastapi.testclient import TestClient

from backend.app.main import _cap_settings, app
from backend.stepviz.engine import Engine


def test_cap_settings_clamps():
    """Overly large settings are clamped to the Engine defaults."""
    capped = _cap_settings({"max_steps": 10_000_000, "max_loop": 1_000_000})
    defaults = Engine()
    assert capped["max_steps"] == defaults.max_steps
    assert capped["max_loop"] == defaults.max_loop


def test_cap_settings_keeps_lower_values():
    capped = _cap_settings({"max_loop": 3})
    assert capped["max_loop"] == 3
    assert capped["max_steps"] == Engine().max_steps
    assert _cap_settings(None) == {"max_steps": Engine().max_steps, "max_loop": Engine().max_loop}


def test_settings_apply_through_run():
    client = TestClient(app)
    code = "let c = 0;\nfor (let i = 0; i < 10; i++) {\n  c = c + 1;\n}"
    body = client.post("/run", json={"code": code, "settings": {"max_loop": 3}}).json()
    assert body["errors"]["code"] == "LOOP_LIMIT"
    body = client.post("/run", json={"code": code, "settings": {"max_loop": 10_000_000}}).json()
    assert body["errors"] is None
