#!/usr/bin/env python3
"""
Tests for the command line entry point.
"""
import unittest
import os
import sys
import json
import tempfile
from unittest.mock import patch

import numpy as np

# Add the parent directory to sys.path so we can import main
sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

import main
from analysis import SUMMARY_FILE, PLOT_FILE
from model.model_runner import MonteCarloResults


def fake_results():
    grid = np.linspace(0.8, 1.2, 4)
    truth = np.tile(-0.3 * grid, (3, 1))
    return MonteCarloResults(
        price_grid=grid,
        estimated_elasticities=truth + np.array([[-0.05], [0.0], [0.05]]),
        true_elasticities=truth,
        implied_shares=np.full((3, 4), 0.15),
        included_frequency=np.eye(4),
        included_symmetric_frequency=np.eye(4),
        included_by_run=np.tile(np.eye(4, dtype=int), (3, 1, 1)),
    )


class TestMain(unittest.TestCase):
    """Tests for argument parsing and the run handlers."""

    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.results_dir = os.path.join(self.tmp_dir.name, "results")
        self.config_path = os.path.join(self.tmp_dir.name, "config.json")
        with open(self.config_path, "w") as f:
            json.dump({"log_to_file": False}, f)

    def tearDown(self):
        self.tmp_dir.cleanup()

    def test_parse_arguments(self):
        args = main.parse_arguments(["--runs", "3", "--seed", "9", "--no-plot"])
        self.assertEqual(args.run, "montecarlo")
        self.assertEqual(args.runs, 3)
        self.assertEqual(args.seed, 9)
        self.assertTrue(args.no_plot)
        self.assertIsNone(args.markets)

    def test_setup_config_overrides(self):
        args = main.parse_arguments(["--config", self.config_path, "--runs", "0", "--grid-points", "6",
                                     "--results-dir", self.results_dir])
        config = main.setup_config(args).app_config
        # Out of range values are repaired by validation
        self.assertEqual(config.num_runs, 1)
        self.assertEqual(config.grid_points, 6)
        self.assertEqual(config.results_dir, self.results_dir)
        self.assertFalse(config.log_to_file)

    def test_invalid_configuration(self):
        self.assertEqual(main.main(["--config", self.config_path, "--markets", "1"]), 1)

    @patch('main.MonteCarloRunner')
    def test_montecarlo_then_visualize(self, mock_runner):
        mock_runner.return_value.run.return_value = fake_results()

        status = main.main(["--config", self.config_path, "--results-dir", self.results_dir])

        self.assertEqual(status, 0)
        for name in (SUMMARY_FILE, PLOT_FILE, "config.json", "summary.json"):
            self.assertTrue(os.path.exists(os.path.join(self.results_dir, name)))

        os.remove(os.path.join(self.results_dir, PLOT_FILE))
        status = main.main(["--config", self.config_path, "--results-dir", self.results_dir,
                            "--run", "visualize"])
        self.assertEqual(status, 0)
        self.assertTrue(os.path.exists(os.path.join(self.results_dir, PLOT_FILE)))

    def test_visualize_without_results(self):
        status = main.main(["--config", self.config_path, "--results-dir", self.results_dir,
                            "--run", "visualize"])
        self.assertEqual(status, 1)


if __name__ == "__main__":
    unittest.main()
