"""
Timeouts for the blocking operations of a feed session

Each timeout has a default, a permitted range and an environment variable.
Out-of-range values are clamped and unparsable ones fall back to the default,
with a warning in both cases.

    BGP_VALIDATOR_READ_TIMEOUT        per-read deadline on the feed (10s)
    BGP_VALIDATOR_HEARTBEAT_INTERVAL  seconds between pings (40s)
    BGP_VALIDATOR_CONNECT_TIMEOUT     WebSocket opening handshake (10s)
    BGP_VALIDATOR_REQUEST_TIMEOUT     one RPKI validity request (5s)
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

logger = logging.getLogger(__name__)


class TimeoutType(Enum):
    """Blocking operations with a configurable deadline"""

    FEED_READ = "feed_read"
    FEED_HEARTBEAT = "feed_heartbeat"
    FEED_CONNECT = "feed_connect"
    VALIDATOR_REQUEST = "validator_request"


@dataclass
class TimeoutConfig:
    """Default, bounds and override variable for one timeout"""

    default: float
    min_value: float
    max_value: float
    env_var: str
    description: str

    def get_value(self) -> float:
        raw = os.environ.get(self.env_var)
        if raw is None:
            return self.default
        try:
            value = float(raw)
        except ValueError:
            logger.warning(f"Invalid timeout value {self.env_var}={raw!r}, using default {self.default}")
            return self.default

        clamped = min(max(value, self.min_value), self.max_value)
        if clamped != value:
            logger.warning(
                f"Timeout {self.env_var}={value} outside [{self.min_value}, {self.max_value}], "
                f"using {clamped}"
            )
        return clamped


class TimeoutManager:
    """Resolves timeouts from the environment at the point of use"""

    _TIMEOUT_CONFIGS = {
        TimeoutType.FEED_READ: TimeoutConfig(
            10.0, 1.0, 120.0, "BGP_VALIDATOR_READ_TIMEOUT",
            "Per-read deadline on the feed connection",
        ),
        TimeoutType.FEED_HEARTBEAT: TimeoutConfig(
            40.0, 5.0, 300.0, "BGP_VALIDATOR_HEARTBEAT_INTERVAL",
            "Interval between ping directives sent to the feed",
        ),
        TimeoutType.FEED_CONNECT: TimeoutConfig(
            10.0, 2.0, 60.0, "BGP_VALIDATOR_CONNECT_TIMEOUT",
            "Timeout for the feed WebSocket opening handshake",
        ),
        TimeoutType.VALIDATOR_REQUEST: TimeoutConfig(
            5.0, 1.0, 120.0, "BGP_VALIDATOR_REQUEST_TIMEOUT",
            "Timeout for a single RPKI validity request",
        ),
    }

    def get_timeout(self, timeout_type: TimeoutType) -> float:
        return self._TIMEOUT_CONFIGS[timeout_type].get_value()

    def validate_environment(self) -> Dict[str, Any]:
        """
        Report every timeout and any override that is unparsable or out of range

        Returns:
            {"valid": bool, "warnings": [...], "errors": [...], "timeouts": {...}}
        """
        results = {"valid": True, "warnings": [], "errors": [], "timeouts": {}}

        for timeout_type, config in self._TIMEOUT_CONFIGS.items():
            env_value = os.environ.get(config.env_var)
            results["timeouts"][timeout_type.value] = {
                "env_var": config.env_var,
                "env_value": env_value,
                "actual_value": config.get_value(),
                "default": config.default,
                "description": config.description,
            }
            if env_value is None:
                continue

            try:
                parsed = float(env_value)
            except ValueError:
                results["errors"].append(f"Invalid value for {config.env_var}: {env_value}")
                results["valid"] = False
                continue
            if not config.min_value <= parsed <= config.max_value:
                results["warnings"].append(
                    f"{config.env_var}={env_value} outside recommended range "
                    f"[{config.min_value}, {config.max_value}]"
                )

        return results


timeout_manager = TimeoutManager()


def get_timeout(timeout_type: TimeoutType) -> float:
    """Timeout in seconds for an operation type"""
    return timeout_manager.get_timeout(timeout_type)


def validate_timeouts() -> Dict[str, Any]:
    return timeout_manager.validate_environment()
