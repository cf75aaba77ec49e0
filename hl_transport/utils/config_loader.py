"""
Configuration loader for the Hyperliquid transport client.

Loads configuration from:
1. YAML file (config/config.yaml)
2. Environment variables (HL_* prefix)
3. .env file (via python-dotenv)

Environment variables override YAML values.
The private key MUST be set via environment (never in YAML).
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from config.settings import (
    AgentConfig,
    BatchConfig,
    BucketConfig,
    ClientConfig,
    DispatchConfig,
    LoggingConfig,
    Network,
    NetworkConfig,
    NonceConfig,
    OverflowPolicy,
    RateLimitConfig,
    WebSocketConfig,
)
from hl_transport.api.auth import EnvKeyProvider, PRIVATE_KEY_ENV

logger = logging.getLogger(__name__)


class ConfigLoader:
    """
    Loads and validates client configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (HL_*)
    2. YAML config file
    3. Default values in dataclasses
    """

    ENV_PREFIX = "HL_"

    def __init__(
        self,
        config_path: Optional[str] = None,
        env_file: Optional[str] = None,
    ):
        """
        Initialize config loader.

        Args:
            config_path: Path to YAML config file. If None, uses config/config.yaml
            env_file: Path to .env file. If None, uses .env in project root
        """
        self._config_path = Path(config_path) if config_path else Path("config/config.yaml")
        self._env_file = Path(env_file) if env_file else Path(".env")

        # Load .env file if exists
        if self._env_file.exists():
            load_dotenv(self._env_file)
            logger.debug(f"Loaded environment from {self._env_file}")

    def load(self) -> ClientConfig:
        """
        Load complete client configuration.

        Returns:
            ClientConfig with all settings populated

        Raises:
            ValueError: If a value cannot be converted or configuration is invalid
        """
        yaml_config = self._load_yaml()

        config = self._build_config(yaml_config)

        errors = config.validate()
        if errors:
            for error in errors:
                logger.error(f"Config error: {error}")
            raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

        return config

    def _load_yaml(self) -> Dict[str, Any]:
        """Load YAML configuration file."""
        if not self._config_path.exists():
            logger.warning(f"Config file not found: {self._config_path}, using defaults")
            return {}

        with open(self._config_path) as f:
            config = yaml.safe_load(f) or {}

        if "private_key" in config or "private_key" in config.get("network", {}):
            raise ValueError(
                f"Private key found in {self._config_path}; "
                f"set {PRIVATE_KEY_ENV} in the environment instead"
            )

        logger.info(f"Loaded config from {self._config_path}")
        return config

    def _get_env(self, key: str, default: Any = None) -> Any:
        """
        Get environment variable with HL_ prefix.

        Args:
            key: Variable name (without prefix)
            default: Default value if not set

        Returns:
            Environment variable value or default
        """
        full_key = f"{self.ENV_PREFIX}{key}"
        value = os.environ.get(full_key)

        if value is None:
            return default

        # Type conversion based on default type
        if isinstance(default, bool):
            return value.lower() in ("true", "1", "yes")
        elif isinstance(default, int):
            return int(value)
        elif isinstance(default, float):
            return float(value)

        return value

    def _get_required_env(self, key: str) -> str:
        """
        Get required environment variable.

        Args:
            key: Variable name (without prefix)

        Returns:
            Environment variable value

        Raises:
            ValueError: If variable not set
        """
        full_key = f"{self.ENV_PREFIX}{key}"
        value = os.environ.get(full_key)

        if not value:
            raise ValueError(
                f"Required environment variable {full_key} not set. "
                f"Set it in .env file or environment."
            )

        return value

    def _build_bucket(self, name: str, section: Dict[str, Any], default: BucketConfig) -> BucketConfig:
        bucket_yaml = section.get(name, {})
        prefix = f"RATE_{name.upper()}_"
        return BucketConfig(
            capacity=self._get_env(
                f"{prefix}CAPACITY",
                float(bucket_yaml.get("capacity", default.capacity)),
            ),
            refill_per_second=self._get_env(
                f"{prefix}REFILL",
                float(bucket_yaml.get("refill_per_second", default.refill_per_second)),
            ),
            max_wait=self._get_env(
                f"{prefix}MAX_WAIT",
                float(bucket_yaml.get("max_wait", default.max_wait)),
            ),
        )

    def _build_config(self, yaml_config: Dict[str, Any]) -> ClientConfig:
        """Build ClientConfig from YAML and environment."""

        # Build Network config
        network_yaml = yaml_config.get("network", {})
        network_name = self._get_env("NETWORK", network_yaml.get("name", "mainnet"))
        network = NetworkConfig(
            network=Network(network_name.lower()),
            request_timeout=self._get_env(
                "REQUEST_TIMEOUT",
                float(network_yaml.get("request_timeout", 10.0)),
            ),
        )

        # Build Nonce config
        nonce_yaml = yaml_config.get("nonce", {})
        nonce = NonceConfig(
            window_ms=self._get_env(
                "NONCE_WINDOW_MS",
                int(nonce_yaml.get("window_ms", 86_400_000)),
            ),
        )

        # Build Rate limit config
        rate_yaml = yaml_config.get("rate_limits", {})
        defaults = RateLimitConfig()
        rate_limits = RateLimitConfig(
            trading=self._build_bucket("trading", rate_yaml, defaults.trading),
            account=self._build_bucket("account", rate_yaml, defaults.account),
            query=self._build_bucket("query", rate_yaml, defaults.query),
        )

        # Build Dispatch config
        dispatch_yaml = yaml_config.get("dispatch", {})
        dispatch = DispatchConfig(
            max_retries=self._get_env("MAX_RETRIES", int(dispatch_yaml.get("max_retries", 3))),
            base_delay=dispatch_yaml.get("base_delay", 0.5),
            max_delay=dispatch_yaml.get("max_delay", 8.0),
            exponential_base=dispatch_yaml.get("exponential_base", 2.0),
            jitter=dispatch_yaml.get("jitter", True),
        )

        # Build WebSocket config
        ws_yaml = yaml_config.get("websocket", {})
        websocket = WebSocketConfig(
            url=self._get_env("WS_URL", ws_yaml.get("url")),
            ping_interval=ws_yaml.get("ping_interval", 50.0),
            open_timeout=ws_yaml.get("open_timeout", 10.0),
            reconnect_delay=ws_yaml.get("reconnect_delay", 1.0),
            max_reconnect_delay=ws_yaml.get("max_reconnect_delay", 60.0),
            reconnect_multiplier=ws_yaml.get("reconnect_multiplier", 2.0),
            max_reconnect_attempts=self._get_env(
                "MAX_RECONNECT_ATTEMPTS",
                int(ws_yaml.get("max_reconnect_attempts", 10)),
            ),
            handle_buffer_size=ws_yaml.get("handle_buffer_size", 1000),
            overflow_policy=OverflowPolicy(ws_yaml.get("overflow_policy", "drop_oldest")),
        )

        # Build Batching config
        batch_yaml = yaml_config.get("batching", {})
        batching = BatchConfig(
            enabled=self._get_env("BATCH_ORDERS", bool(batch_yaml.get("enabled", False))),
            interval=batch_yaml.get("interval", 0.1),
            max_batch_size=batch_yaml.get("max_batch_size", 100),
            prioritize_alo=batch_yaml.get("prioritize_alo", True),
            max_wait_time=batch_yaml.get("max_wait_time", 0.5),
        )

        # Build Agent config
        agents_yaml = yaml_config.get("agents", {})
        agents = AgentConfig(
            name=agents_yaml.get("name", "default"),
            ttl=self._get_env("AGENT_TTL", float(agents_yaml.get("ttl", 86_400.0))),
        )

        # Build Logging config
        logging_yaml = yaml_config.get("logging", {})
        log_config = LoggingConfig(
            level=self._get_env("LOG_LEVEL", logging_yaml.get("level", "INFO")),
            file_path=logging_yaml.get("file_path"),
        )

        return ClientConfig(
            network=network,
            nonce=nonce,
            rate_limits=rate_limits,
            dispatch=dispatch,
            websocket=websocket,
            batching=batching,
            agents=agents,
            logging=log_config,
            track_orders=self._get_env("TRACK_ORDERS", bool(yaml_config.get("track_orders", False))),
            vault_address=self._get_env("VAULT_ADDRESS", yaml_config.get("vault_address")),
        )

    def get_private_key(self) -> str:
        """
        Get the signing key from environment.

        The key MUST be set via environment variables,
        never stored in config files.

        Raises:
            ValueError: If the key is not set
        """
        return self._get_required_env(PRIVATE_KEY_ENV[len(self.ENV_PREFIX):])

    def key_provider(self) -> EnvKeyProvider:
        """Key provider that re-reads the environment at every signature."""
        self.get_private_key()  # Fail early when unset
        return EnvKeyProvider(PRIVATE_KEY_ENV)


def load_config(
    config_path: Optional[str] = None,
    env_file: Optional[str] = None,
) -> ClientConfig:
    """Load configuration with the default loader."""
    return ConfigLoader(config_path, env_file).load()
