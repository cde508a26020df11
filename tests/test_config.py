# tests/test_config.py
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from dining.config import make_settings_from_cfg
from dining.services.endpoints import make_endpoints_from_cfg
from utils.config import load_cfg
from utils.time import parse_duration

def test_repo_config_loads_with_env(monkeypatch):
    monkeypatch.setenv("RESTAURANT_ID", "r-42")
    monkeypatch.setenv("TABLE_ID", "T3")
    cfg = load_cfg()
    settings = make_settings_from_cfg(cfg)
    assert settings.restaurant_id == "r-42"
    assert settings.table_id == "T3"
    assert settings.session().restaurant_id == "r-42"
    assert settings.websocket.connect_timeout_s == 10
    assert settings.websocket.reconnect_interval_s == 3
    assert settings.websocket.max_reconnect_attempts == 5
    assert settings.payment.poll_interval_s == 0.5
    assert settings.payment.timeout_s == 30
    assert (settings.payment.popup_width, settings.payment.popup_height) == (600, 700)

    ep = make_endpoints_from_cfg(cfg)
    assert ep.ws_base.startswith("wss://")
    assert ep.order_track == "/pos/order/track"

def test_env_default_and_missing_tenant(tmp_path, monkeypatch):
    monkeypatch.delenv("RID_FOR_TEST", raising=False)
    p = tmp_path / "c.yaml"
    p.write_text(
        "restaurant:\n  id: ${RID_FOR_TEST:-}\n"
        "api:\n  rest_base: ${API_FOR_TEST:-http://localhost:8080}\n  ws_base: ws://localhost:8081\n",
        encoding="utf-8",
    )
    cfg = load_cfg(str(p))
    assert cfg["api"]["rest_base"] == "http://localhost:8080"
    settings = make_settings_from_cfg(cfg)
    assert settings.restaurant_id is None
    assert settings.session() is None

def test_endpoints_require_api_section():
    with pytest.raises(ValueError):
        make_endpoints_from_cfg({})

@pytest.mark.parametrize("text,seconds", [("500ms", 0.5), ("30s", 30.0), ("5m", 300.0)])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds

def test_parse_duration_rejects_unknown_unit():
    with pytest.raises(ValueError):
        parse_duration("3h")
