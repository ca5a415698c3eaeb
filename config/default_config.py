#!/usr/bin/env python3
"""
Default configuration for the nonparametric demand Monte Carlo.
This module contains default values for output locations, logging and plots.
"""

# Results and output defaults
DEFAULT_RESULTS_DIR = "results/montecarlo"
DEFAULT_LOG_FILE = "run.log"
DEFAULT_LOG_LEVEL = "INFO"

# Visualization settings
VISUALIZATION_SETTINGS = {
    "plot_dpi": 120,
    "figsize": (8, 5),
    "style": "whitegrid",
    "true_color": "black",
    "band_color": "tab:blue",
}
