"""
Tests for configuration loading.
"""

import os
from unittest.mock import patch

import pytest

from config.settings import ClientConfig, Network, OverflowPolicy
from hl_transport.api.auth import EnvKeyProvider
from hl_transport.utils.config_loader import ConfigLoader, load_config

TEST_PRIVATE_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"

YAML = """
network:
  name: testnet
  request_timeout: 5.0
nonce:
  window_ms: 60000
rate_limits:
  trading:
    capacity: 4
    refill_per_second: 2
    max_wait: 1.0
websocket:
  reconnect_delay: 0.5
  handle_buffer_size: 10
  overflow_policy: block
logging:
  level: DEBUG
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(YAML)
    return path


def make_loader(config_path, tmp_path):
    return ConfigLoader(str(config_path), env_file=str(tmp_path / "missing.env"))


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_defaults_without_file(self, tmp_path):
        """Test that a missing YAML file yields default configuration."""
        with patch.dict(os.environ, {}, clear=True):
            config = make_loader(tmp_path / "nope.yaml", tmp_path).load()

        assert isinstance(config, ClientConfig)
        assert config.network.network == Network.MAINNET
        assert config.nonce.window_ms == 86_400_000
        assert config.ws_url == "wss://api.hyperliquid.xyz/ws"

    def test_yaml_values(self, config_file, tmp_path):
        with patch.dict(os.environ, {}, clear=True):
            config = make_loader(config_file, tmp_path).load()

        assert config.network.network == Network.TESTNET
        assert config.network.request_timeout == 5.0
        assert config.nonce.window_ms == 60_000
        assert config.rate_limits.trading.capacity == 4.0
        assert config.rate_limits.account.capacity == 10.0
        assert config.websocket.overflow_policy == OverflowPolicy.BLOCK
        assert config.websocket.handle_buffer_size == 10
        assert config.logging.level == "DEBUG"
        assert config.ws_url == "wss://api.hyperliquid-testnet.xyz/ws"

    def test_env_overrides_yaml(self, config_file, tmp_path):
        """Test that HL_ variables take precedence over the YAML file."""
        env = {
            "HL_NETWORK": "mainnet",
            "HL_NONCE_WINDOW_MS": "30000",
            "HL_RATE_TRADING_CAPACITY": "8",
            "HL_MAX_RECONNECT_ATTEMPTS": "0",
            "HL_WS_URL": "wss://proxy.local/ws",
        }
        with patch.dict(os.environ, env, clear=True):
            config = make_loader(config_file, tmp_path).load()

        assert config.network.is_mainnet
        assert config.nonce.window_ms == 30_000
        assert config.rate_limits.trading.capacity == 8.0
        assert config.websocket.max_reconnect_attempts == 0
        assert config.ws_url == "wss://proxy.local/ws"

    def test_private_key_in_yaml_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(f"private_key: '{TEST_PRIVATE_KEY}'\n")

        with pytest.raises(ValueError, match="Private key"):
            make_loader(path, tmp_path).load()

    def test_invalid_values_rejected(self, tmp_path):
        """Test that validation errors surface as ValueError."""
        path = tmp_path / "config.yaml"
        path.write_text("nonce:\n  window_ms: 0\n")

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="Nonce window"):
                make_loader(path, tmp_path).load()

    def test_invalid_vault(self, tmp_path):
        with patch.dict(os.environ, {"HL_VAULT_ADDRESS": "0xnope"}, clear=True):
            with pytest.raises(ValueError, match="vault"):
                make_loader(tmp_path / "nope.yaml", tmp_path).load()

    def test_batching_and_agents(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "batching:\n  enabled: true\n  interval: 0.05\n  max_batch_size: 20\n  prioritize_alo: false\n"
            "agents:\n  name: maker\n  ttl: 3600\n"
            "track_orders: true\n"
        )

        with patch.dict(os.environ, {}, clear=True):
            config = make_loader(path, tmp_path).load()

        assert config.batching.enabled
        assert config.batching.interval == 0.05
        assert config.batching.max_batch_size == 20
        assert not config.batching.prioritize_alo
        assert config.batching.max_wait_time == 0.5
        assert config.agents.name == "maker"
        assert config.agents.ttl == 3600.0
        assert config.track_orders

    def test_batching_env_overrides(self, config_file, tmp_path):
        env = {"HL_BATCH_ORDERS": "yes", "HL_TRACK_ORDERS": "1", "HL_AGENT_TTL": "60"}
        with patch.dict(os.environ, env, clear=True):
            config = make_loader(config_file, tmp_path).load()

        assert config.batching.enabled
        assert config.track_orders
        assert config.agents.ttl == 60.0

    def test_invalid_batch_size(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("batching:\n  max_batch_size: 0\n")

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="batch"):
                make_loader(path, tmp_path).load()

    def test_env_file_loaded(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("HL_NETWORK=testnet\n")

        with patch.dict(os.environ, {}, clear=True):
            config = ConfigLoader(str(tmp_path / "nope.yaml"), str(env_file)).load()

        assert config.network.network == Network.TESTNET

    def test_load_config_helper(self, config_file, tmp_path):
        with patch.dict(os.environ, {}, clear=True):
            config = load_config(str(config_file), str(tmp_path / "missing.env"))
        assert config.network.network == Network.TESTNET


class TestPrivateKey:
    """Tests for signing key lookup."""

    def test_missing_key(self, tmp_path):
        with patch.dict(os.environ, {}, clear=True):
            loader = make_loader(tmp_path / "nope.yaml", tmp_path)
            with pytest.raises(ValueError, match="HL_PRIVATE_KEY"):
                loader.get_private_key()

    def test_key_provider_reads_environment(self, tmp_path):
        with patch.dict(os.environ, {"HL_PRIVATE_KEY": TEST_PRIVATE_KEY}, clear=True):
            provider = make_loader(tmp_path / "nope.yaml", tmp_path).key_provider()

            assert isinstance(provider, EnvKeyProvider)
            assert provider.get_private_key() == TEST_PRIVATE_KEY
