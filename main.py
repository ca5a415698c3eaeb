#!/usr/bin/env python3
"""
Main entry point for the nonparametric demand Monte Carlo.

This script provides a unified interface to:
1. Run the Monte Carlo study (simulate, select, estimate, evaluate) and save results
2. Re-plot the elasticity overlay from previously saved results

Usage:
    npdemand-mc --run montecarlo --runs 50 --grid-points 10
    npdemand-mc --run visualize --results-dir results/montecarlo
"""
import sys
import argparse
from pathlib import Path

import matplotlib.pyplot as plt

from analysis import (
    summarize_elasticities,
    plot_elasticities,
    save_results,
    load_summary,
    PLOT_FILE,
    STATISTICS_FILE,
)
from config.config_manager import ConfigManager
from model.exceptions import NPDemandError
from model.model_runner import MonteCarloRunner
from utils.file_utils import load_json
from utils.logging_utils import get_logger, LoggingManager

logger = get_logger()


def main(argv=None):
    """Main entry point for the Monte Carlo."""
    args = parse_arguments(argv)

    try:
        config_manager = setup_config(args)
    except NPDemandError as e:
        logger.error(f"Invalid configuration: {str(e)}")
        return 1

    setup_logging(config_manager)

    try:
        if args.run == "montecarlo":
            return run_montecarlo_handler(config_manager)
        elif args.run == "visualize":
            return run_visualize_handler(config_manager)
        else:
            logger.error(f"Unknown run type: {args.run}")
            return 1
    except NPDemandError as e:
        logger.error(f"Error running {args.run}: {str(e)}")
        return 1


def run_montecarlo_handler(config_manager):
    """Handler for running the full Monte Carlo."""
    app_config = config_manager.app_config
    results_dir = Path(app_config.results_dir)

    config_manager.save_config(results_dir / "config.json")

    runner = MonteCarloRunner(app_config)
    results = runner.run()

    summary = summarize_elasticities(
        results.estimated_elasticities,
        results.true_elasticities,
        results.price_grid,
        app_config.quantiles,
    )
    statistics = save_results(results, summary, results_dir)
    LoggingManager.log_dict(logger, "Monte Carlo summary", statistics)

    if app_config.create_plots:
        plt.close(plot_elasticities(summary, results_dir / PLOT_FILE))

    logger.info("Monte Carlo completed successfully")
    return 0


def run_visualize_handler(config_manager):
    """Handler for re-plotting existing results."""
    results_dir = Path(config_manager.app_config.results_dir)
    logger.info(f"Visualizing existing results in {results_dir}")

    summary = load_summary(results_dir)
    saved = load_json(results_dir / STATISTICS_FILE)
    if saved.get("statistics"):
        LoggingManager.log_dict(logger, "Saved Monte Carlo summary", saved["statistics"])

    plt.close(plot_elasticities(summary, results_dir / PLOT_FILE))
    return 0


def setup_config(args):
    """
    Set up and validate configuration.

    Args:
        args: Command line arguments

    Returns:
        ConfigManager instance
    """
    config_manager = ConfigManager(args.config)
    app_config = config_manager.app_config

    # Command line arguments override file and environment values
    overrides = {
        "results_dir": args.results_dir,
        "log_level": args.log_level,
        "num_runs": args.runs,
        "grid_points": args.grid_points,
        "num_markets": args.markets,
        "seed": args.seed,
        "processes": args.processes,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(app_config, key, value)
    if args.no_plot:
        app_config.create_plots = False

    config_manager.validate()
    return config_manager


def setup_logging(config_manager):
    """
    Set up logging from the configured level and log file.

    Args:
        config_manager: Validated configuration manager
    """
    app_config = config_manager.app_config
    log_file = None
    if app_config.log_to_file:
        log_file = str(Path(app_config.results_dir) / app_config.log_file)
    LoggingManager.setup_logging(log_level=app_config.log_level, log_file=log_file)


def parse_arguments(argv=None):
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="Nonparametric demand estimation Monte Carlo")

    # General options
    parser.add_argument("--config", type=str, help="Path to configuration file")
    parser.add_argument("--results-dir", type=str, help="Directory to store results")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Log level")
    parser.add_argument("--run", choices=["montecarlo", "visualize"], default="montecarlo",
                        help="Operation to perform")

    # Monte Carlo options
    parser.add_argument("--runs", type=int, help="Number of simulation runs")
    parser.add_argument("--grid-points", type=int, help="Number of price grid points")
    parser.add_argument("--markets", type=int, help="Number of markets per simulation")
    parser.add_argument("--seed", type=int, help="Base random seed")
    parser.add_argument("--processes", type=int, help="Worker processes for the runs")

    # Output options
    parser.add_argument("--no-plot", action="store_true", help="Skip the elasticity plot")

    return parser.parse_args(argv)


if __name__ == "__main__":
    sys.exit(main())
