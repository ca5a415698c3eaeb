#!/usr/bin/env python3
"""
Monte Carlo Reporting Functions Library

This module turns the run-by-run buffers of the Monte Carlo into summary
tables, the elasticity overlay plot and files on disk.
"""
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from config.default_config import VISUALIZATION_SETTINGS
from model.constants import DEFAULT_QUANTILES
from model.exceptions import ResultsError
from model.model_runner import MonteCarloResults
from utils.decorators import log_errors
from utils.file_utils import ensure_dir_exists, save_json, save_table
from utils.logging_utils import get_logger, log_step

logger = get_logger()

SUMMARY_FILE = "elasticity_summary.csv"
RUNS_FILE = "elasticity_runs.csv"
FREQUENCY_FILE = "substitution_frequency.csv"
SYMMETRIC_FREQUENCY_FILE = "substitution_frequency_symmetric.csv"
PLOT_FILE = "elasticities.png"
STATISTICS_FILE = "summary.json"


def summarize_elasticities(
    estimated: np.ndarray,
    true: np.ndarray,
    price_grid: np.ndarray,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> pd.DataFrame:
    """
    Per-grid-point quantiles of the estimated elasticities across runs.

    Args:
        estimated: (S x G) estimated elasticities
        true: (S x G) true elasticities; its first row is the reference curve
        price_grid: (G,) prices
        quantiles: Low, middle and high quantile

    Returns:
        DataFrame with columns price, true, low, median, high
    """
    estimated = np.atleast_2d(np.asarray(estimated, dtype=float))
    true = np.atleast_2d(np.asarray(true, dtype=float))
    if estimated.shape != true.shape or estimated.shape[1] != len(price_grid):
        raise ResultsError("Elasticity buffers must be S x G and match the price grid",
                           {"estimated": estimated.shape, "true": true.shape, "grid": len(price_grid)})
    if len(quantiles) != 3 or list(quantiles) != sorted(quantiles):
        raise ResultsError("Expected increasing low, middle and high quantiles", {"quantiles": list(quantiles)})

    low, median, high = np.quantile(estimated, quantiles, axis=0)
    return pd.DataFrame({
        "price": np.asarray(price_grid, dtype=float),
        "true": true[0],
        "low": low,
        "median": median,
        "high": high,
    })


def summarize_substitution(matrix: np.ndarray) -> pd.DataFrame:
    """Label an inclusion frequency matrix by product."""
    labels = [f"product_{j + 1}" for j in range(np.shape(matrix)[0])]
    return pd.DataFrame(np.asarray(matrix, dtype=float), index=labels, columns=labels)


def plot_elasticities(
    summary: pd.DataFrame,
    output_path: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """
    Overlay the true elasticity curve and the percentile band.

    The truth is drawn as a solid line, the low and high percentiles as
    dashed lines, all against the price grid.
    """
    sns.set_style(VISUALIZATION_SETTINGS["style"])
    fig, ax = plt.subplots(figsize=VISUALIZATION_SETTINGS["figsize"])

    ax.plot(summary["price"], summary["true"], color=VISUALIZATION_SETTINGS["true_color"],
            linestyle="-", label="True")
    ax.plot(summary["price"], summary["low"], color=VISUALIZATION_SETTINGS["band_color"],
            linestyle="--", label="Low percentile")
    ax.plot(summary["price"], summary["high"], color=VISUALIZATION_SETTINGS["band_color"],
            linestyle="--", label="High percentile")

    ax.set_xlabel("Price")
    ax.set_ylabel("Own-price elasticity")
    ax.set_title("Estimated vs. true elasticities")
    ax.legend()
    fig.tight_layout()

    if output_path is not None:
        output_path = Path(output_path)
        ensure_dir_exists(output_path.parent)
        fig.savefig(output_path, dpi=VISUALIZATION_SETTINGS["plot_dpi"])
        logger.info(f"Saved elasticity plot to {output_path}")
    return fig


def summary_statistics(results: MonteCarloResults, summary: pd.DataFrame) -> Dict[str, float]:
    """Scalar accuracy measures of the estimated elasticities against the truth."""
    errors = results.estimated_elasticities - results.true_elasticities
    return {
        "num_runs": results.num_runs,
        "grid_points": len(results.price_grid),
        "mean_bias": float(errors.mean()),
        "rmse": float(np.sqrt(np.mean(errors ** 2))),
        "median_abs_error": float(np.median(np.abs(summary["median"] - summary["true"]))),
        "band_coverage": float(np.mean((summary["low"] <= summary["true"]) & (summary["true"] <= summary["high"]))),
    }


@log_step("Saving results")
@log_errors(OSError, msg="Error saving results")
def save_results(
    results: MonteCarloResults,
    summary: pd.DataFrame,
    output_dir: Union[str, Path]
) -> Dict[str, float]:
    """
    Write summary tables, run-level results and substitution frequencies.

    Returns:
        The scalar summary statistics written to summary.json
    """
    output_path = Path(output_dir)
    ensure_dir_exists(output_path)

    save_table(summary, output_path / SUMMARY_FILE)
    save_table(results.to_frame(), output_path / RUNS_FILE)
    save_table(summarize_substitution(results.included_frequency), output_path / FREQUENCY_FILE, index=True)
    save_table(summarize_substitution(results.included_symmetric_frequency),
               output_path / SYMMETRIC_FREQUENCY_FILE, index=True)

    statistics = summary_statistics(results, summary)
    save_json({"statistics": statistics, "settings": results.settings}, output_path / STATISTICS_FILE)

    logger.info(f"Saved Monte Carlo results to {output_path}")
    return statistics


def load_summary(output_dir: Union[str, Path]) -> pd.DataFrame:
    """
    Load a previously saved elasticity summary.

    Raises:
        ResultsError: If the summary file is missing or lacks columns
    """
    path = Path(output_dir) / SUMMARY_FILE
    if not path.exists():
        raise ResultsError(f"Results file not found: {path}")
    summary = pd.read_csv(path)
    missing = {"price", "true", "low", "high"} - set(summary.columns)
    if missing:
        raise ResultsError(f"Summary file is missing columns: {sorted(missing)}")
    return summary
