#!/usr/bin/env python3
"""
Tests for the configuration manager.
"""
import unittest
import os
import sys
import json
import tempfile
from unittest.mock import patch

# Add the parent directory to sys.path so we can import from config
sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from config.config_manager import AppConfig, ConfigManager
from config.default_config import DEFAULT_RESULTS_DIR
from model.exceptions import ConfigurationError


class TestConfigManager(unittest.TestCase):
    """Tests for loading, overriding and validating configuration."""

    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp_dir.cleanup()

    def _write(self, data, name="config.json"):
        path = os.path.join(self.tmp_dir.name, name)
        with open(path, "w") as f:
            if isinstance(data, str):
                f.write(data)
            else:
                json.dump(data, f)
        return path

    def test_defaults(self):
        config = ConfigManager().app_config
        self.assertEqual(config.num_products, 2)
        self.assertEqual(config.num_markets, 1000)
        self.assertEqual(config.price_coefficient, -0.4)
        self.assertEqual(config.num_runs, 50)
        self.assertEqual(config.grid_points, 10)
        self.assertTrue(config.monotonicity_constraint)

    def test_load_config(self):
        path = self._write({"num_runs": 5, "polynomial_order": 3, "unknown_key": 1})
        config = ConfigManager(path).app_config
        self.assertEqual(config.num_runs, 5)
        self.assertEqual(config.polynomial_order, 3)
        self.assertFalse(hasattr(config, "unknown_key"))

    def test_missing_file_keeps_defaults(self):
        config = ConfigManager(os.path.join(self.tmp_dir.name, "absent.json")).app_config
        self.assertEqual(config.num_runs, AppConfig().num_runs)

    def test_invalid_json(self):
        with self.assertRaises(ConfigurationError):
            ConfigManager(self._write("{not json"))

    @patch.dict(os.environ, {"NPDEMAND_NUM_RUNS": "7", "NPDEMAND_IMPOSE_STRONG_HIERARCHY": "true",
                             "NPDEMAND_QUANTILES": "0.05,0.5,0.95", "NPDEMAND_SEED": "not-a-number"})
    def test_env_overrides(self):
        config = ConfigManager().app_config
        self.assertEqual(config.num_runs, 7)
        self.assertTrue(config.impose_strong_hierarchy)
        self.assertEqual(config.quantiles, [0.05, 0.5, 0.95])
        # Invalid values are ignored
        self.assertEqual(config.seed, AppConfig().seed)

    def test_validation_clamps(self):
        manager = ConfigManager()
        config = manager.app_config
        config.num_runs = 0
        config.num_folds = 1
        config.num_bootstrap = -3
        config.selection_threshold = 1.5
        config.processes = 0
        config.results_dir = ""

        self.assertTrue(manager.validate())
        self.assertEqual(config.num_runs, 1)
        self.assertEqual(config.num_folds, 2)
        self.assertEqual(config.num_bootstrap, 0)
        self.assertEqual(config.selection_threshold, 0.5)
        self.assertEqual(config.processes, 1)
        self.assertEqual(config.results_dir, DEFAULT_RESULTS_DIR)

    def test_validation_errors(self):
        for key, value in (("num_products", 0), ("num_markets", 1),
                           ("quantiles", [0.0, 0.5, 0.9]), ("cross_product", 5)):
            manager = ConfigManager()
            setattr(manager.app_config, key, value)
            with self.assertRaises(ConfigurationError):
                manager.validate()

    @patch.dict(os.environ, {"NPDEMAND_QUANTILES": "0.9,0.5,0.1"})
    def test_decreasing_quantiles_rejected_up_front(self):
        with self.assertRaises(ConfigurationError):
            ConfigManager()

    def test_quantile_count_and_order(self):
        for quantiles in ([0.1, 0.9], [0.1, 0.5, 0.5], [0.5, 0.1, 0.9], [0.1, 0.25, 0.5, 0.9]):
            manager = ConfigManager()
            manager.app_config.quantiles = quantiles
            with self.assertRaises(ConfigurationError):
                manager.validate()

    def test_save_config(self):
        manager = ConfigManager()
        manager.app_config.num_runs = 3
        path = os.path.join(self.tmp_dir.name, "nested", "saved.json")
        manager.save_config(path)

        reloaded = ConfigManager(path).app_config
        self.assertEqual(reloaded.num_runs, 3)


if __name__ == "__main__":
    unittest.main()
