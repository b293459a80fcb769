import logging
import unittest

from tourdispatch.config import DispatchConfig, TimelineConfig
from tourdispatch.errors import ConfigError


class TestConfigContract(unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = DispatchConfig.from_env({})
        self.assertEqual(cfg.timeline, TimelineConfig())
        self.assertEqual((cfg.timeline.window_start_min, cfg.timeline.window_end_min), (360, 1440))
        self.assertEqual(cfg.timeline.snap_min, 15)
        self.assertEqual(cfg.max_history, 50)
        self.assertIsNone(cfg.base_url)
        self.assertEqual(cfg.log_level_value, logging.INFO)

    def test_env_overrides(self) -> None:
        cfg = DispatchConfig.from_env(
            {
                "TOURDISPATCH_BASE_URL": "https://dispatch.example.test",
                "TOURDISPATCH_TOKEN": "secret",
                "TOURDISPATCH_TIMEOUT": "2.5",
                "TOURDISPATCH_WINDOW": "07:00-22:00",
                "TOURDISPATCH_SNAP": "5",
                "TOURDISPATCH_MAX_HISTORY": "10",
                "TOURDISPATCH_LOG_LEVEL": "debug",
            }
        )
        self.assertEqual(cfg.base_url, "https://dispatch.example.test")
        self.assertEqual(cfg.api_token, "secret")
        self.assertEqual(cfg.timeout_s, 2.5)
        self.assertEqual((cfg.timeline.window_start_min, cfg.timeline.window_end_min), (420, 1320))
        self.assertEqual(cfg.timeline.snap_min, 5)
        self.assertEqual(cfg.max_history, 10)
        self.assertEqual(cfg.log_level_value, logging.DEBUG)

    def test_invalid_values(self) -> None:
        for env in (
            {"TOURDISPATCH_WINDOW": "22:00-07:00"},
            {"TOURDISPATCH_SNAP": "0"},
            {"TOURDISPATCH_SNAP": "five"},
            {"TOURDISPATCH_MAX_HISTORY": "0"},
            {"TOURDISPATCH_TIMEOUT": "soon"},
            {"TOURDISPATCH_LOG_LEVEL": "chatty"},
        ):
            with self.assertRaises(ConfigError, msg=str(env)):
                DispatchConfig.from_env(env)

    def test_config_error_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            TimelineConfig(window_start_min=600, window_end_min=600)


if __name__ == "__main__":
    unittest.main(verbosity=2)
