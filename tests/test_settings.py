"""
Tests for propedge/settings.py

Run with: pytest tests/test_settings.py -v
"""

import pytest

from propedge.core.model_config import DEFAULT_CONFIG
from propedge.settings import ENV_PREFIX, _ENV_FIELDS, load_model_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start each test with no PROPEDGE_* variables and restore afterwards."""
    for suffix in _ENV_FIELDS:
        monkeypatch.setenv(ENV_PREFIX + suffix, "")
        monkeypatch.delenv(ENV_PREFIX + suffix)


class TestLoadModelConfig:
    """Environment overrides on top of the canonical config."""

    def test_no_overrides_returns_base(self):
        assert load_model_config() is DEFAULT_CONFIG

    def test_overrides_applied(self, monkeypatch):
        monkeypatch.setenv("PROPEDGE_SIM_ITERATIONS", "50000")
        monkeypatch.setenv("PROPEDGE_SIM_WORKERS", "4")
        monkeypatch.setenv("PROPEDGE_KELLY_SHARE", "0.25")
        cfg = load_model_config()
        assert cfg.sim_iterations == 50_000
        assert cfg.sim_workers == 4
        assert cfg.kelly_share == pytest.approx(0.25)
        assert cfg.safe_ev_pct == DEFAULT_CONFIG.safe_ev_pct

    def test_blank_value_ignored(self, monkeypatch):
        monkeypatch.setenv("PROPEDGE_SAFE_EV_PCT", "  ")
        assert load_model_config().safe_ev_pct == DEFAULT_CONFIG.safe_ev_pct

    def test_malformed_value_names_variable(self, monkeypatch):
        monkeypatch.setenv("PROPEDGE_SIM_BATCH_SIZE", "lots")
        with pytest.raises(ValueError, match="PROPEDGE_SIM_BATCH_SIZE"):
            load_model_config()

    def test_invalid_config_rejected(self, monkeypatch):
        monkeypatch.setenv("PROPEDGE_KELLY_SHARE", "1.5")
        with pytest.raises(ValueError, match="kelly_share"):
            load_model_config()

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("PROPEDGE_SAFE_MIN_PROB=0.55\nPROPEDGE_SIM_BATCH_SIZE=2500\n")
        cfg = load_model_config(str(env_file))
        assert cfg.safe_min_prob == pytest.approx(0.55)
        assert cfg.sim_batch_size == 2500

    def test_process_env_beats_env_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("PROPEDGE_SIM_ITERATIONS=1000\n")
        monkeypatch.setenv("PROPEDGE_SIM_ITERATIONS", "3000")
        assert load_model_config(str(env_file)).sim_iterations == 3000
