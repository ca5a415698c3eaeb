"""
Logit Market Simulation Module for Validation and Testing.

This module generates synthetic market-level share data from a logit demand
system with an outside good, so that nonparametric estimates can be compared
against a known ground truth.

DATA GENERATION MODEL:
    z  ~ U(0.05, 0.95)                         instruments
    xi ~ N(0, v^2)                             unobserved quality
    p  = 2 * (z + 0.1 * U(0, 1)) + xi          prices (endogenous through xi)
    s_j = exp(beta * p_j + xi_j) / (1 + sum_k exp(beta * p_k + xi_k))

The Monte Carlo builds a four-product market from two independent
two-product simulations. Products of different simulations never compete,
which gives a block-diagonal substitution structure. Shares are halved when
the blocks are put side by side so that the outside good keeps a positive
share.

EDGE CASES:
- Strongly negative price coefficients push inside shares towards zero
- Very large demand shocks can produce negative prices; they are kept as is
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np

from model.constants import (
    INSTRUMENT_LOW,
    INSTRUMENT_HIGH,
    PRICE_NOISE_SCALE,
    GRID_QUANTILE_RANGE,
)
from model.exceptions import DataError, DataValidationError
from utils.logging_utils import get_logger

logger = get_logger()


@dataclass
class MarketData:
    """Market-level panel with one row per market and one column per product."""
    shares: np.ndarray
    prices: np.ndarray
    instruments: np.ndarray
    characteristics: Optional[np.ndarray] = field(default=None)

    def __post_init__(self):
        self.shares = np.asarray(self.shares, dtype=float)
        self.prices = np.asarray(self.prices, dtype=float)
        self.instruments = np.asarray(self.instruments, dtype=float)
        if self.characteristics is None:
            self.characteristics = np.zeros_like(self.prices)
        else:
            self.characteristics = np.asarray(self.characteristics, dtype=float)
        self.validate()

    @property
    def num_markets(self) -> int:
        return self.shares.shape[0]

    @property
    def num_products(self) -> int:
        return self.shares.shape[1]

    def validate(self) -> None:
        """
        Check shapes and share bounds.

        Raises:
            DataValidationError: If arrays disagree in shape, contain
                non-finite values or shares leave no room for the outside good
        """
        if self.shares.ndim != 2:
            raise DataValidationError("Shares must be a (markets x products) matrix",
                                      {"shape": self.shares.shape})
        for name in ("prices", "instruments", "characteristics"):
            array = getattr(self, name)
            if array.shape != self.shares.shape:
                raise DataValidationError(f"{name} shape does not match shares",
                                          {name: array.shape, "shares": self.shares.shape})
            if not np.all(np.isfinite(array)):
                raise DataValidationError(f"{name} contain non-finite values")
        if not np.all(np.isfinite(self.shares)):
            raise DataValidationError("Shares contain non-finite values")
        if np.any(self.shares <= 0) or np.any(self.shares.sum(axis=1) >= 1):
            raise DataValidationError("Shares must be positive and sum to less than one in every market")


def logit_shares(prices: np.ndarray, price_coefficient: float, xi: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Logit market shares with an outside good of utility zero.

    Args:
        prices: (markets x products) prices, or a single vector of product prices
        price_coefficient: Coefficient on price in mean utility
        xi: Optional demand shocks with the same shape as prices

    Returns:
        Shares with the same shape as prices
    """
    prices = np.asarray(prices, dtype=float)
    delta = price_coefficient * prices
    if xi is not None:
        delta = delta + xi
    exp_delta = np.exp(delta)
    return exp_delta / (1 + exp_delta.sum(axis=-1, keepdims=True))


def simulate_logit(
    num_products: int,
    num_markets: int,
    price_coefficient: float,
    xi_std_dev: float,
    rng: Optional[np.random.Generator] = None
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Simulate a logit demand system with endogenous prices.

    Args:
        num_products: Number of inside products J
        num_markets: Number of markets T
        price_coefficient: Price coefficient beta (negative for downward sloping demand)
        xi_std_dev: Standard deviation of the demand shock
        rng: Random generator; a fresh unseeded one is used when omitted

    Returns:
        Tuple of (shares, prices, instruments), each of shape (T, J)

    Raises:
        DataError: If the requested dimensions are not positive
    """
    if num_products < 1 or num_markets < 1:
        raise DataError("Simulation needs at least one product and one market",
                        {"num_products": num_products, "num_markets": num_markets})
    if rng is None:
        rng = np.random.default_rng()

    size = (num_markets, num_products)
    instruments = rng.uniform(INSTRUMENT_LOW, INSTRUMENT_HIGH, size=size)
    xi = rng.normal(0.0, xi_std_dev, size=size)
    prices = 2 * (instruments + PRICE_NOISE_SCALE * rng.uniform(size=size)) + xi
    shares = logit_shares(prices, price_coefficient, xi)

    logger.debug(f"Simulated {num_markets} markets with {num_products} products "
                 f"(mean inside share {shares.sum(axis=1).mean():.3f})")
    return shares, prices, instruments


def combine_markets(
    first: Tuple[np.ndarray, np.ndarray, np.ndarray],
    second: Tuple[np.ndarray, np.ndarray, np.ndarray]
) -> MarketData:
    """
    Place two independent simulations side by side.

    Shares are concatenated and halved; prices and instruments are concatenated.
    """
    shares = np.hstack([first[0], second[0]]) / 2
    prices = np.hstack([first[1], second[1]])
    instruments = np.hstack([first[2], second[2]])
    return MarketData(shares=shares, prices=prices, instruments=instruments)


def simulate_block_market(
    num_products: int,
    num_markets: int,
    price_coefficient: float,
    xi_std_dev: float,
    rng: Optional[np.random.Generator] = None
) -> MarketData:
    """Simulate two independent logit markets and combine them into one block-diagonal market."""
    if rng is None:
        rng = np.random.default_rng()
    first = simulate_logit(num_products, num_markets, price_coefficient, xi_std_dev, rng)
    second = simulate_logit(num_products, num_markets, price_coefficient, xi_std_dev, rng)
    return combine_markets(first, second)


def true_block_structure(num_products: int, num_blocks: int = 2) -> np.ndarray:
    """Indicator matrix of the substitution structure implied by the block simulation."""
    return np.kron(np.eye(num_blocks, dtype=int), np.ones((num_products, num_products), dtype=int))


def make_price_grid(
    prices: np.ndarray,
    grid_points: int,
    quantile_range: Sequence[float] = GRID_QUANTILE_RANGE
) -> np.ndarray:
    """
    Evenly spaced grid over a quantile range of product-1 prices.

    Args:
        prices: (markets x products) prices
        grid_points: Number of grid points G
        quantile_range: Lower and upper quantile of the grid

    Returns:
        Array of G increasing prices
    """
    if grid_points < 1:
        raise DataError("Price grid needs at least one point", {"grid_points": grid_points})
    low, high = np.quantile(np.asarray(prices)[:, 0], quantile_range)
    return np.linspace(low, high, grid_points)


def reference_shares(
    price_grid: np.ndarray,
    price_coefficient: float,
    reference_price: float,
    num_products: int = 2
) -> np.ndarray:
    """
    Deterministic combined-market share of product 1 along the price grid.

    Product 1 is priced at each grid point, its block rivals at the reference
    price and demand shocks are zero. The result is halved to match the
    combined market.
    """
    grid = np.asarray(price_grid, dtype=float)
    prices = np.full((grid.size, num_products), reference_price, dtype=float)
    prices[:, 0] = grid
    return logit_shares(prices, price_coefficient)[:, 0] / 2


def logit_own_elasticity(price_coefficient: float, prices: np.ndarray, shares: np.ndarray) -> np.ndarray:
    """
    Own-price elasticity of the combined market from the logit closed form.

    With combined shares equal to half the original logit shares,
    beta * p * (1 - 2 * share) is the logit elasticity of the original market.
    """
    return price_coefficient * np.asarray(prices) * (1 - 2 * np.asarray(shares))


def logit_cross_elasticity(
    price_coefficient: float,
    prices: np.ndarray,
    shares: np.ndarray,
    same_block: bool
) -> np.ndarray:
    """
    Elasticity of a product's demand with respect to a rival's price.

    ``prices`` and ``shares`` belong to the rival. Rivals in the other block
    never compete, so the elasticity is zero there.
    """
    if not same_block:
        return np.zeros_like(np.asarray(prices, dtype=float))
    return -price_coefficient * np.asarray(prices) * 2 * np.asarray(shares)
