"""
Constants for the nonparametric demand Monte Carlo.

This module centralizes the default values used throughout the codebase to
eliminate magic numbers and keep the configuration layer and the numerical
routines in agreement.
"""
from typing import Tuple

# =======================================================
# Simulation Constants
# =======================================================

DEFAULT_NUM_PRODUCTS = 2
DEFAULT_NUM_MARKETS = 1000
DEFAULT_PRICE_COEFFICIENT = -0.4
DEFAULT_XI_STD_DEV = 0.15
DEFAULT_NUM_RUNS = 50
DEFAULT_GRID_POINTS = 10
DEFAULT_SEED = 1

# Instruments are drawn from U(INSTRUMENT_LOW, INSTRUMENT_HIGH)
INSTRUMENT_LOW = 0.05
INSTRUMENT_HIGH = 0.95
PRICE_NOISE_SCALE = 0.1

# Price grid spans this quantile range of product-1 prices
GRID_QUANTILE_RANGE: Tuple[float, float] = (0.25, 0.75)

# =======================================================
# Selection Constants
# =======================================================

DEFAULT_NUM_FOLDS = 5
DEFAULT_NUM_LAMBDA = 10
DEFAULT_NUM_BOOTSTRAP = 5
DEFAULT_SELECTION_THRESHOLD = 0.5
LASSO_MAX_ITER = 10000
# Penalty path runs from alpha_max down to this fraction of it
LAMBDA_MIN_RATIO = 1e-3
# Smallest lasso coefficient, in response standard deviations, that counts as active
MIN_STANDARDIZED_COEFFICIENT = 0.05

# =======================================================
# Estimation Constants
# =======================================================

DEFAULT_POLYNOMIAL_ORDER = 2
DEFAULT_IV_ORDER = 0
# Upper share bound is inflated by this margin before mapping to [0, 1]
SHARE_BOUND_MARGIN = 0.05
NNLS_MAX_ITER_FACTOR = 50
# Slack allowed when checking monotonicity constraints after optimization
CONSTRAINT_TOLERANCE = 1e-6

# =======================================================
# Elasticity Constants
# =======================================================

SHARE_FLOOR = 1e-8
ROOT_TOLERANCE = 1e-6

# =======================================================
# Report Constants
# =======================================================

DEFAULT_QUANTILES: Tuple[float, float, float] = (0.1, 0.5, 0.9)
