import os

import pytest
from solders.pubkey import Pubkey

from openbook_cranker.config import DEFAULTS, CrankerConfig, load_config
from openbook_cranker.env import load_env_file
from openbook_cranker.errors import ConfigError


def test_defaults():
    cfg = CrankerConfig.from_env({}, environ={})
    assert cfg.markets == (DEFAULTS["markets"],)
    assert cfg.interval == 1.0
    assert cfg.min_events == 1
    assert cfg.consume_events_limit == 19
    assert cfg.compute_unit_limit == 50_000
    assert cfg.stale_backoff == 0.2
    assert cfg.priority_markets == frozenset()
    assert cfg.debug is False


def test_precedence_overrides_env_file():
    env = {"INTERVAL": "500", "MIN_EVENTS": "3", "DEBUG": "1"}
    file_cfg = {"interval_ms": 250, "min_events": 2, "cu_price": 0}
    cfg = CrankerConfig.from_env(file_cfg, environ=env, overrides={"min_events": 9})

    assert cfg.interval_ms == 500
    assert cfg.min_events == 9
    assert cfg.cu_price == 0
    assert cfg.debug is True


def test_market_lists_are_parsed():
    a, b = str(Pubkey.new_unique()), str(Pubkey.new_unique())
    cfg = CrankerConfig.from_env(
        {"markets": [a, b]}, environ={"PRIORITY_MARKETS": f"{b}, ,{b}"}
    )
    assert cfg.markets == (a, b)
    assert cfg.priority_markets == frozenset({b})


@pytest.mark.parametrize(
    "env",
    [
        {"MARKETS": ""},
        {"MARKETS": "not-a-key"},
        {"MIN_EVENTS": "0"},
        {"MAX_TX_INSTRUCTIONS": "0"},
        {"INTERVAL": "soon"},
        {"CU_PRICE": "-1"},
        {"LOG_FORMAT": "xml"},
    ],
)
def test_invalid_values_raise(env):
    with pytest.raises(ConfigError):
        CrankerConfig.from_env({}, environ=env)


def test_load_config_toml(tmp_path):
    path = tmp_path / "cranker.toml"
    path.write_text('interval_ms = 250\nmarkets = ["AFgkED1FUVfBe2trPUDqSqK9QKd4stJrfzq5q1RwAFTa"]\n')
    cfg = CrankerConfig.from_env(load_config(path), environ={})
    assert cfg.interval_ms == 250


def test_load_config_yaml(tmp_path):
    path = tmp_path / "cranker.yaml"
    path.write_text("max_tx_instructions: 4\npriority_queue_limit: 50\n")
    cfg = CrankerConfig.from_env(load_config(path), environ={})
    assert cfg.max_tx_instructions == 4
    assert cfg.compute_unit_limit == 200_000
    assert cfg.priority_queue_limit == 50


def test_load_config_rejects_unknown_keys(tmp_path):
    path = tmp_path / "cranker.yaml"
    path.write_text("intervall: 4\n")
    with pytest.raises(ConfigError, match="intervall"):
        load_config(path)


def test_load_config_rejects_unknown_format(tmp_path):
    path = tmp_path / "cranker.ini"
    path.write_text("[x]\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_load_env_file_keeps_existing(tmp_path, monkeypatch):
    monkeypatch.setenv("INTERVAL", "750")
    monkeypatch.delenv("MIN_EVENTS", raising=False)
    monkeypatch.delenv("RPC_URL", raising=False)
    path = tmp_path / ".env"
    path.write_text("# comment\nINTERVAL=10\nexport MIN_EVENTS='4'\nRPC_URL=${RPC_URL}\n")

    applied = load_env_file(path)

    assert applied == {"MIN_EVENTS": "4"}
    assert os.environ["INTERVAL"] == "750"
    assert "RPC_URL" not in os.environ


def test_load_env_file_missing_is_noop(tmp_path):
    assert load_env_file(tmp_path / "nope.env") == {}
