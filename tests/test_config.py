"""
Tests for configuration loading, environment overrides and timeouts
"""

import json
import logging
import logging.handlers
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from bgp_validator.utils.config import ConfigManager, RisLiveConfig, ValidatorConfig
from bgp_validator.utils.error_handling import ConfigurationError
from bgp_validator.utils.logging import setup_logging
from bgp_validator.utils.timeout_config import TimeoutConfig, TimeoutManager, TimeoutType

CLEAN_ENV = {key: value for key, value in os.environ.items()
             if not key.startswith("BGP_VALIDATOR_")}


@patch.dict(os.environ, CLEAN_ENV, clear=True)
class TestConfigManager(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.tmpdir.name) / "config.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def write_config(self, data):
        self.config_path.write_text(json.dumps(data))
        return self.config_path

    def test_defaults_without_config_file(self):
        with patch.object(ConfigManager, "DEFAULT_CONFIG_PATHS", []):
            manager = ConfigManager()

        config = manager.config
        self.assertIsNone(manager.loaded_from)
        self.assertEqual(config.rislive.client_id, "bgp-validator")
        self.assertEqual(config.rislive.duration, 3600)
        self.assertFalse(config.rislive.only_ipv4)
        self.assertIsNone(config.rislive.filter.type)
        self.assertEqual(config.validator.emission_policy, "all")
        self.assertTrue(config.validator.fail_closed)
        self.assertEqual(config.output.result_file, "result")
        self.assertTrue(config.logging.log_to_file)
        self.assertEqual(config.logging.log_file, "logs/execute.log")

    def test_load_from_file(self):
        path = self.write_config({
            "rislive": {"client_id": "lab", "duration": 60, "only_ipv4": True,
                        "filter": {"host": "rrc00", "type": "UPDATE"}},
            "validator": {"host": "rpki.example.net:8323", "emission_policy": "annotate"},
            "output": {"result_file": "/tmp/origins"},
        })

        manager = ConfigManager(path)

        config = manager.get_config()
        self.assertEqual(manager.loaded_from, path)
        self.assertEqual(config.rislive.client_id, "lab")
        self.assertEqual(config.rislive.duration, 60)
        self.assertTrue(config.rislive.only_ipv4)
        self.assertEqual(config.rislive.filter.host, "rrc00")
        self.assertEqual(config.rislive.filter.type, "UPDATE")
        self.assertEqual(config.validator.host, "rpki.example.net:8323")
        self.assertEqual(config.validator.emission_policy, "annotate")
        self.assertEqual(config.output.result_file, "/tmp/origins")

    def test_load_legacy_layout(self):
        path = self.write_config({
            "rislive": {
                "clientId": "bgpvalidator",
                "duration": 600,
                "onlyIpv4": True,
                "filter": {"Host": "rrc21", "Type": "UPDATE", "require": "announcements"},
            },
            "validate_url": {"scheme": "http", "host": "10.1.1.1:8323", "path": "validity"},
        })

        config = ConfigManager(path).config

        self.assertEqual(config.rislive.client_id, "bgpvalidator")
        self.assertEqual(config.rislive.duration, 600)
        self.assertTrue(config.rislive.only_ipv4)
        self.assertEqual(config.rislive.filter.host, "rrc21")
        self.assertEqual(config.rislive.filter.type, "UPDATE")
        self.assertEqual(config.rislive.filter.require, "announcements")
        self.assertEqual(config.validator.host, "10.1.1.1:8323")
        self.assertEqual(config.validator.path, "validity")

    def test_validator_section_wins_over_validate_url(self):
        path = self.write_config({
            "validate_url": {"host": "old:8323", "path": "validity"},
            "validator": {"host": "new:8323"},
        })

        config = ConfigManager(path).config

        self.assertEqual(config.validator.host, "new:8323")
        self.assertEqual(config.validator.path, "validity")

    def test_environment_overrides_file(self):
        path = self.write_config({"rislive": {"client_id": "lab", "duration": 60}})

        with patch.dict(os.environ, {
            "BGP_VALIDATOR_CLIENT_ID": "from-env",
            "BGP_VALIDATOR_DURATION": "120",
            "BGP_VALIDATOR_FAIL_CLOSED": "false",
            "BGP_VALIDATOR_EMISSION_POLICY": "VALID",
        }):
            config = ConfigManager(path).config

        self.assertEqual(config.rislive.client_id, "from-env")
        self.assertEqual(config.rislive.duration, 120)
        self.assertFalse(config.validator.fail_closed)
        self.assertEqual(config.validator.emission_policy, "valid")

    def test_missing_explicit_path(self):
        with self.assertRaises(ConfigurationError):
            ConfigManager(Path(self.tmpdir.name) / "missing.json")

    def test_malformed_file(self):
        self.config_path.write_text("{not json")
        with self.assertRaises(ConfigurationError):
            ConfigManager(self.config_path)

    def test_unknown_key_is_rejected(self):
        path = self.write_config({"rislive": {"bogus": 1}})
        with self.assertRaises(ConfigurationError):
            ConfigManager(path)

    def test_invalid_values(self):
        cases = [
            {"rislive": {"duration": 0}},
            {"rislive": {"duration": True}},
            {"rislive": {"queue_size": 0}},
            {"rislive": {"filter": {"type": "ROUTE-REFRESH"}}},
            {"rislive": {"filter": {"require": "paths"}}},
            {"validator": {"emission_policy": "some"}},
            {"validator": {"cache_size": -1}},
        ]
        for data in cases:
            with self.subTest(data=data):
                with self.assertRaises(ConfigurationError):
                    ConfigManager(self.write_config(data))

    def test_save_config_round_trips(self):
        manager = ConfigManager(self.write_config({"rislive": {"client_id": "lab"}}))
        saved = manager.save_config(Path(self.tmpdir.name) / "saved" / "config.json")

        reloaded = ConfigManager(saved).config
        self.assertEqual(reloaded.rislive.client_id, "lab")
        self.assertEqual(reloaded.validator, ValidatorConfig())


@patch.dict(os.environ, CLEAN_ENV, clear=True)
class TestSectionEnvironment(unittest.TestCase):

    def test_bad_duration_env_keeps_default(self):
        with patch.dict(os.environ, {"BGP_VALIDATOR_DURATION": "soon"}):
            self.assertEqual(RisLiveConfig().duration, 3600)

    def test_only_ipv4_env(self):
        with patch.dict(os.environ, {"BGP_VALIDATOR_ONLY_IPV4": "yes"}):
            self.assertTrue(RisLiveConfig().only_ipv4)


class TestTimeouts(unittest.TestCase):

    def setUp(self):
        self.config = TimeoutConfig(default=10.0, min_value=1.0, max_value=120.0,
                                    env_var="BGP_VALIDATOR_TEST_TIMEOUT",
                                    description="test")

    def test_default(self):
        with patch.dict(os.environ, CLEAN_ENV, clear=True):
            self.assertEqual(self.config.get_value(), 10.0)

    def test_env_value_is_bounded(self):
        for raw, expected in [("30", 30.0), ("0.1", 1.0), ("900", 120.0), ("fast", 10.0)]:
            with self.subTest(raw=raw):
                with patch.dict(os.environ, {"BGP_VALIDATOR_TEST_TIMEOUT": raw}):
                    self.assertEqual(self.config.get_value(), expected)

    def test_manager_reports_invalid_env(self):
        with patch.dict(os.environ, {"BGP_VALIDATOR_READ_TIMEOUT": "never"}):
            results = TimeoutManager().validate_environment()

        self.assertFalse(results["valid"])
        self.assertEqual(results["timeouts"][TimeoutType.FEED_READ.value]["actual_value"], 10.0)


@patch.dict(os.environ, CLEAN_ENV, clear=True)
class TestLoggingSetup(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = logging.getLogger()
        self.saved_handlers = self.root.handlers[:]
        self.saved_level = self.root.level

    def tearDown(self):
        for handler in self.root.handlers[:]:
            self.root.removeHandler(handler)
            handler.close()
        for handler in self.saved_handlers:
            self.root.addHandler(handler)
        self.root.setLevel(self.saved_level)
        logging.getLogger("websockets").setLevel(logging.NOTSET)
        logging.getLogger("urllib3").setLevel(logging.NOTSET)
        self.tmpdir.cleanup()

    def manager(self, logging_section):
        path = Path(self.tmpdir.name) / "config.json"
        path.write_text(json.dumps({"logging": logging_section}))
        return ConfigManager(path)

    def test_rotating_file_by_default(self):
        log_file = Path(self.tmpdir.name) / "logs" / "execute.log"

        handlers = setup_logging(self.manager({"log_file": str(log_file)}))
        logging.getLogger("bgp-validator.test").info("session started")

        self.assertIsInstance(handlers["file"], logging.handlers.RotatingFileHandler)
        self.assertEqual(handlers["file"].maxBytes, 10 * 1024 * 1024)
        self.assertEqual(handlers["file"].backupCount, 3)
        self.assertIn("session started", log_file.read_text())
        self.assertEqual(logging.getLogger("websockets").level, logging.WARNING)

    def test_file_logging_can_be_disabled(self):
        with patch.dict(os.environ, {"BGP_VALIDATOR_LOG_TO_FILE": "false"}):
            handlers = setup_logging(self.manager({}))

        self.assertIn("console", handlers)
        self.assertNotIn("file", handlers)

    def test_debug_level_lets_library_loggers_through(self):
        setup_logging(self.manager({"log_to_file": False}), level="debug")

        self.assertEqual(self.root.level, logging.DEBUG)
        self.assertEqual(logging.getLogger("websockets").level, logging.DEBUG)


if __name__ == '__main__':
    unittest.main()
