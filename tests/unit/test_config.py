from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from tests.unit._bootstrap import ensure_project_on_path


ensure_project_on_path()


class TestEngineConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        from core import constants as C
        from core.config import EngineConfig

        config = EngineConfig()
        self.assertEqual(config.detection.min_segment_distance_m, C.MIN_SEGMENT_DISTANCE_M)
        self.assertEqual(config.matching.start_end_proximity_m, C.MATCH_START_END_PROXIMITY_M)
        self.assertAlmostEqual(config.matching.min_distance_ratio, 1.0 - C.MATCH_MAX_DISTANCE_RATIO_DIFF)
        self.assertEqual(config.library.min_activity_distance_m, C.LIBRARY_MIN_ACTIVITY_DISTANCE_M)

    def test_partial_override_keeps_types(self) -> None:
        from core.config import config_from_mapping

        config = config_from_mapping({"detection": {"min_stream_points": 20.0, "climb_threshold_pct": 4}})
        self.assertEqual(config.detection.min_stream_points, 20)
        self.assertIsInstance(config.detection.min_stream_points, int)
        self.assertIsInstance(config.detection.climb_threshold_pct, float)
        self.assertEqual(config.matching, config_from_mapping({}).matching)

    def test_unknown_keys_are_rejected(self) -> None:
        from core.config import config_from_mapping

        with self.assertRaises(ValueError):
            config_from_mapping({"detection": {"nope": 1}})
        with self.assertRaises(ValueError):
            config_from_mapping({"storage": {}})
        with self.assertRaises(ValueError):
            config_from_mapping({"matching": [1, 2]})


class TestLoadConfig(unittest.TestCase):
    def test_load_from_path_and_env(self) -> None:
        from core.config import CONFIG_ENV_VAR, load_config

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "engine.json"
            path.write_text(json.dumps({"matching": {"min_overlap_ratio": 0.7}}), encoding="utf-8")

            self.assertEqual(load_config(path).matching.min_overlap_ratio, 0.7)
            with mock.patch.dict(os.environ, {CONFIG_ENV_VAR: str(path)}):
                self.assertEqual(load_config().matching.min_overlap_ratio, 0.7)

    def test_missing_env_file_falls_back_to_defaults(self) -> None:
        from core.config import CONFIG_ENV_VAR, EngineConfig, load_config

        with mock.patch.dict(os.environ, {CONFIG_ENV_VAR: "/nonexistent/engine.json"}):
            self.assertEqual(load_config(), EngineConfig())

    def test_invalid_json_raises_value_error(self) -> None:
        from core.config import load_config

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "broken.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_config(path)


if __name__ == "__main__":
    unittest.main()
