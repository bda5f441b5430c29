#!/usr/bin/env python3
"""
Configuration Management for BGP Validator

Provides centralized configuration handling with:
- Configuration file support (JSON)
- Environment variable overrides
- Default values and validation
"""

import os
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Dict, Any
import logging

from bgp_validator.models import BGP_MESSAGE_TYPES, REQUIRE_KEYS, EmissionPolicy
from bgp_validator.utils.error_handling import ConfigurationError

_TRUE_VALUES = ["1", "true", "yes"]
_FALSE_VALUES = ["0", "false", "no"]


@dataclass
class SubscribeFilterConfig:
    """Subscription filter sent with ris_subscribe"""

    host: Optional[str] = None
    type: Optional[str] = None
    require: Optional[str] = None


@dataclass
class RisLiveConfig:
    """RIS Live feed configuration"""

    client_id: str = "bgp-validator"
    host: str = "ris-live.ripe.net"
    duration: int = 3600
    only_ipv4: bool = False
    queue_size: int = 1024
    filter: SubscribeFilterConfig = None

    def __post_init__(self):
        """Normalise the filter section and load from environment variables"""
        if self.filter is None:
            self.filter = SubscribeFilterConfig()
        elif isinstance(self.filter, dict):
            self.filter = SubscribeFilterConfig(**self.filter)

        if os.getenv("BGP_VALIDATOR_CLIENT_ID"):
            self.client_id = os.getenv("BGP_VALIDATOR_CLIENT_ID")
        if os.getenv("BGP_VALIDATOR_DURATION"):
            try:
                self.duration = int(os.getenv("BGP_VALIDATOR_DURATION"))
            except ValueError:
                pass
        if os.getenv("BGP_VALIDATOR_ONLY_IPV4"):
            self.only_ipv4 = os.getenv("BGP_VALIDATOR_ONLY_IPV4").lower() in _TRUE_VALUES


@dataclass
class ValidatorConfig:
    """RPKI validity endpoint configuration"""

    scheme: str = "http"
    host: str = "127.0.0.1:8323"
    path: str = "/validity"
    check_url: bool = True
    fail_closed: bool = True  # Reject facts whose verdict is unknown
    emission_policy: str = "all"
    cache_size: int = 10000

    def __post_init__(self):
        """Load from environment variables if set"""
        if os.getenv("BGP_VALIDATOR_VALIDATOR_SCHEME"):
            self.scheme = os.getenv("BGP_VALIDATOR_VALIDATOR_SCHEME")
        if os.getenv("BGP_VALIDATOR_VALIDATOR_HOST"):
            self.host = os.getenv("BGP_VALIDATOR_VALIDATOR_HOST")
        if os.getenv("BGP_VALIDATOR_VALIDATOR_PATH"):
            self.path = os.getenv("BGP_VALIDATOR_VALIDATOR_PATH")
        if os.getenv("BGP_VALIDATOR_FAIL_CLOSED") in _FALSE_VALUES:
            self.fail_closed = False
        if os.getenv("BGP_VALIDATOR_EMISSION_POLICY"):
            self.emission_policy = os.getenv("BGP_VALIDATOR_EMISSION_POLICY").lower()


@dataclass
class OutputConfig:
    """Result file configuration"""

    result_file: str = "result"

    def __post_init__(self):
        """Load from environment variables if set"""
        if os.getenv("BGP_VALIDATOR_RESULT_FILE"):
            self.result_file = os.getenv("BGP_VALIDATOR_RESULT_FILE")


@dataclass
class LoggingConfig:
    """Logging configuration"""

    level: str = "INFO"
    log_to_file: bool = True  # Rotating log under ./logs by default
    log_file: Optional[str] = "logs/execute.log"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 3

    def __post_init__(self):
        """Load from environment variables if set"""
        if os.getenv("BGP_VALIDATOR_LOG_LEVEL"):
            self.level = os.getenv("BGP_VALIDATOR_LOG_LEVEL").upper()
        if os.getenv("BGP_VALIDATOR_LOG_FILE"):
            self.log_file = os.getenv("BGP_VALIDATOR_LOG_FILE")
            self.log_to_file = True
        if os.getenv("BGP_VALIDATOR_LOG_TO_FILE") in _FALSE_VALUES:
            self.log_to_file = False


@dataclass
class BGPValidatorConfig:
    """Main configuration container"""

    rislive: RisLiveConfig = None
    validator: ValidatorConfig = None
    output: OutputConfig = None
    logging: LoggingConfig = None

    def __post_init__(self):
        """Initialize subconfigs if not provided"""
        if self.rislive is None:
            self.rislive = RisLiveConfig()
        if self.validator is None:
            self.validator = ValidatorConfig()
        if self.output is None:
            self.output = OutputConfig()
        if self.logging is None:
            self.logging = LoggingConfig()


# config.json layout used by earlier bgpvalidator deployments
LEGACY_SECTION_NAMES = {"validate_url": "validator"}
LEGACY_KEY_NAMES = {
    "rislive": {"clientId": "client_id", "onlyIpv4": "only_ipv4", "queueSize": "queue_size"},
}


def _normalise_legacy_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase keys and the validate_url section onto current names."""
    data = dict(data)

    for legacy, current in LEGACY_SECTION_NAMES.items():
        if legacy in data:
            section = dict(data.pop(legacy) or {})
            section.update(data.get(current) or {})
            data[current] = section

    for section_name, renames in LEGACY_KEY_NAMES.items():
        section = data.get(section_name)
        if not isinstance(section, dict):
            continue
        section = {renames.get(key, key): value for key, value in section.items()}
        if isinstance(section.get("filter"), dict):
            # Filter keys are matched case-insensitively
            section["filter"] = {key.lower(): value for key, value in section["filter"].items()}
        data[section_name] = section

    return data


class ConfigManager:
    """Configuration management for BGP Validator"""

    DEFAULT_CONFIG_PATHS = [
        Path("./config.json"),
        Path.home() / ".config/bgp-validator/config.json",
        Path.home() / "config.json",
    ]

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_path: Optional path to configuration file
        """
        self.logger = logging.getLogger(__name__)
        self.config_path = Path(config_path) if config_path else None
        self.config = BGPValidatorConfig()
        self.loaded_from: Optional[Path] = None

        self._load_config()

    def _load_config(self):
        """Load configuration from file; environment is applied in __post_init__"""
        if self.config_path is not None and not self.config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self.config_path}",
                guidance="Check the --config path",
            )

        config_file = self._find_config_file()
        if config_file:
            try:
                self._load_from_file(config_file)
            except (OSError, ValueError, TypeError) as e:
                raise ConfigurationError(
                    f"Failed to load config file {config_file}: {e}",
                    guidance="Check that the file is valid JSON with known sections",
                )
            self.loaded_from = config_file
            self.logger.info(f"Loaded configuration from {config_file}")
        else:
            self.logger.debug("No configuration file found, using defaults")

        self.validate()

    def _find_config_file(self) -> Optional[Path]:
        """Find configuration file in default locations"""
        if self.config_path is not None:
            return self.config_path

        for path in self.DEFAULT_CONFIG_PATHS:
            if path.exists():
                return path

        return None

    def _load_from_file(self, config_path: Path):
        """Load configuration from JSON file"""
        with open(config_path, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("top-level JSON value must be an object")
        self._load_from_dict(data)

    def _load_from_dict(self, data: Dict[str, Any]):
        """Load configuration sections from dictionary"""
        data = _normalise_legacy_keys(data)

        if "rislive" in data:
            self.config.rislive = RisLiveConfig(**data["rislive"])

        if "validator" in data:
            self.config.validator = ValidatorConfig(**data["validator"])

        if "output" in data:
            self.config.output = OutputConfig(**data["output"])

        if "logging" in data:
            self.config.logging = LoggingConfig(**data["logging"])

    def validate(self):
        """Validate loaded configuration values"""
        rislive = self.config.rislive
        if isinstance(rislive.duration, bool) or not isinstance(rislive.duration, int) \
                or rislive.duration <= 0:
            raise ConfigurationError(
                f"rislive.duration must be a positive integer, got {rislive.duration!r}"
            )
        if not isinstance(rislive.queue_size, int) or rislive.queue_size <= 0:
            raise ConfigurationError(
                f"rislive.queue_size must be a positive integer, got {rislive.queue_size!r}"
            )
        if rislive.filter.type is not None and rislive.filter.type not in BGP_MESSAGE_TYPES:
            raise ConfigurationError(
                f"Unknown rislive.filter.type '{rislive.filter.type}'",
                guidance=f"Use one of: {', '.join(BGP_MESSAGE_TYPES)}",
            )
        if rislive.filter.require is not None and rislive.filter.require not in REQUIRE_KEYS:
            raise ConfigurationError(
                f"Unknown rislive.filter.require '{rislive.filter.require}'",
                guidance=f"Use one of: {', '.join(REQUIRE_KEYS)}",
            )

        validator = self.config.validator
        valid_policies = [policy.value for policy in EmissionPolicy]
        if validator.emission_policy not in valid_policies:
            raise ConfigurationError(
                f"Unknown validator.emission_policy '{validator.emission_policy}'",
                guidance=f"Use one of: {', '.join(valid_policies)}",
            )
        if not isinstance(validator.cache_size, int) or validator.cache_size < 0:
            raise ConfigurationError(
                f"validator.cache_size must be a non-negative integer, got {validator.cache_size!r}"
            )

    def save_config(self, config_path: Optional[Path] = None) -> Path:
        """Save current configuration to file"""
        if config_path is None:
            config_path = self.config_path or self.DEFAULT_CONFIG_PATHS[0]

        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            json.dump(asdict(self.config), f, indent=2)

        self.logger.info(f"Configuration saved to {config_path}")
        return config_path

    def get_config(self) -> BGPValidatorConfig:
        """Get current configuration with timeout validation"""
        if not hasattr(self, "_timeouts_validated"):
            from bgp_validator.utils.timeout_config import validate_timeouts

            timeout_results = validate_timeouts()
            for warning in timeout_results.get("warnings", []):
                self.logger.warning(f"Timeout configuration warning: {warning}")
            for error in timeout_results.get("errors", []):
                self.logger.error(f"Timeout configuration error: {error}")

            self._timeouts_validated = True

        return self.config


# Global configuration instance with thread-safe singleton pattern
_config_manager = None
_config_manager_lock = threading.RLock()


def get_config_manager(config_path: Optional[Path] = None) -> ConfigManager:
    """
    Get global configuration manager instance using double-checked locking.

    The config path only matters on the first call.
    """
    global _config_manager

    if _config_manager is not None:
        return _config_manager

    with _config_manager_lock:
        if _config_manager is None:
            _config_manager = ConfigManager(config_path)

        return _config_manager


def get_config() -> BGPValidatorConfig:
    """Get current configuration"""
    return get_config_manager().get_config()
