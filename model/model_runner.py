#!/usr/bin/env python3
"""
Monte Carlo Runner for nonparametric demand estimation.

This orchestration module repeats the complete pipeline, from simulated
markets to price elasticities, over independent simulation runs and collects
the results into fixed-size buffers.

EXECUTION FLOW (per run):
1. Simulate two independent logit markets and combine them into one
   block-diagonal market
2. Select the substitution structure (raw and symmetrized)
3. Fit the constrained Bernstein inverse demand system
4. Build the evaluation deltas: every column at minus the median price,
   the conditioning product's column sweeping the price grid
5. Evaluate estimated elasticities along the grid
6. Compute the logit ground truth along the grid
7. Write the run's buffer rows and add its substitution matrices to the averages

ASSUMPTIONS:
- The price grid is drawn once from a calibration simulation and shared by all runs
- Per-run random streams are spawned from one seed, so results do not depend
  on whether runs execute sequentially or in a process pool

EDGE CASES:
- Any failure in a collaborator aborts the whole Monte Carlo; there is no retry
"""
import multiprocessing.pool
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from config.config_manager import AppConfig
from data.simulation import (
    MarketData,
    simulate_block_market,
    make_price_grid,
    reference_shares,
    logit_own_elasticity,
    logit_cross_elasticity,
    logit_shares,
)
from model.selection import select_substitutes
from model.inverse_demand import estimate_inverse_demand
from model.elasticity import compute_price_elasticities
from model.exceptions import NPDemandError, RunnerError
from utils.decorators import log_errors, timed
from utils.logging_utils import get_logger, LoggingManager

logger = get_logger()


@dataclass
class RunResult:
    """Outputs of a single simulation run."""
    index: int
    estimated_elasticities: np.ndarray
    true_elasticities: np.ndarray
    implied_shares: np.ndarray
    included: np.ndarray
    included_symmetric: np.ndarray


@dataclass
class MonteCarloResults:
    """Buffers filled by the Monte Carlo, one row per run."""
    price_grid: np.ndarray
    estimated_elasticities: np.ndarray
    true_elasticities: np.ndarray
    implied_shares: np.ndarray
    included_frequency: np.ndarray
    included_symmetric_frequency: np.ndarray
    included_by_run: np.ndarray
    settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def num_runs(self) -> int:
        return self.estimated_elasticities.shape[0]

    def to_frame(self) -> pd.DataFrame:
        """Long table with one row per (run, grid point)."""
        num_runs, grid_points = self.estimated_elasticities.shape
        return pd.DataFrame({
            "run": np.repeat(np.arange(1, num_runs + 1), grid_points),
            "price": np.tile(self.price_grid, num_runs),
            "estimated": self.estimated_elasticities.ravel(),
            "true": self.true_elasticities.ravel(),
            "implied_share": self.implied_shares.ravel(),
        })


def evaluation_deltas(prices: np.ndarray, price_grid: np.ndarray, column: int = 0) -> np.ndarray:
    """
    Index values at which elasticities are evaluated.

    Every product sits at minus the median observed price except ``column``,
    which sweeps minus the price grid.
    """
    deltas = -np.median(prices) * np.ones((len(price_grid), prices.shape[1]))
    deltas[:, column] = -np.asarray(price_grid)
    return deltas


def true_elasticity_curve(
    config: AppConfig,
    price_grid: np.ndarray,
    reference_price: float
) -> np.ndarray:
    """
    Logit elasticity of the configured product pair along the price grid.

    The conditioning product sweeps the grid, its block rivals sit at the
    reference price and demand shocks are zero.
    """
    own, other = config.own_product - 1, config.cross_product - 1
    shares = reference_shares(price_grid, config.price_coefficient, reference_price, config.num_products)
    if own == other:
        return logit_own_elasticity(config.price_coefficient, price_grid, shares)
    same_block = own // config.num_products == other // config.num_products
    return logit_cross_elasticity(config.price_coefficient, price_grid, shares, same_block)


def run_single(
    config: AppConfig,
    index: int,
    seed: np.random.SeedSequence,
    price_grid: np.ndarray,
    reference_price: float
) -> RunResult:
    """
    Execute one simulate, select, estimate, evaluate pass.

    Args:
        config: Monte Carlo settings
        index: Zero-based run index
        seed: Seed sequence of this run
        price_grid: Shared price grid
        reference_price: Rival price used for the ground truth

    Returns:
        RunResult with the run's buffer rows
    """
    rng = np.random.default_rng(seed)

    # (a) two independent markets side by side
    market: MarketData = simulate_block_market(
        config.num_products, config.num_markets, config.price_coefficient, config.xi_std_dev, rng
    )
    total_products = market.num_products

    # (b) substitution structure
    included, included_symmetric = select_substitutes(
        market.shares, market.prices, market.instruments,
        num_folds=config.num_folds,
        num_lambda=config.num_lambda,
        impose_strong_hierarchy=config.impose_strong_hierarchy,
        num_bootstrap=config.num_bootstrap,
        characteristics=market.characteristics,
        selection_threshold=config.selection_threshold,
        rng=rng,
    )

    # (c) inverse demand
    fit, _ = estimate_inverse_demand(
        market.shares, market.prices, market.characteristics, market.instruments,
        config.polynomial_order, config.iv_order, total_products,
        config.monotonicity_constraint, included_symmetric,
    )

    # (d) evaluation points
    deltas = evaluation_deltas(market.prices, price_grid, column=config.cross_product - 1)

    # (e) estimated elasticities
    extra_args = None
    if config.use_true_shares:
        extra_args = {"shares": _true_grid_shares(config, deltas)}
    elasticities, _, implied = compute_price_elasticities(
        fit, market.shares, price_grid, deltas, config.polynomial_order,
        (config.own_product, config.cross_product), included_symmetric,
        use_true_shares=config.use_true_shares, extra_args=extra_args,
    )

    # (f) ground truth
    truth = true_elasticity_curve(config, price_grid, reference_price)

    logger.info(f"Run {index + 1}/{config.num_runs}: "
                f"mean estimated elasticity {elasticities.mean():.3f}, truth {truth.mean():.3f}")
    return RunResult(
        index=index,
        estimated_elasticities=elasticities,
        true_elasticities=truth,
        implied_shares=implied[:, config.own_product - 1],
        included=included,
        included_symmetric=included_symmetric,
    )


def _true_grid_shares(config: AppConfig, deltas: np.ndarray) -> np.ndarray:
    # Logit shares at the evaluation prices, block by block, halved for the combined market
    prices = -deltas
    blocks = [
        logit_shares(prices[:, start:start + config.num_products], config.price_coefficient) / 2
        for start in range(0, prices.shape[1], config.num_products)
    ]
    return np.hstack(blocks)


def _run_single_star(arguments: Tuple[Any, ...]) -> RunResult:
    return run_single(*arguments)


class MonteCarloRunner:
    """Runs the Monte Carlo study and fills the result buffers."""

    def __init__(self, config: Optional[AppConfig] = None):
        """
        Initialize the runner.

        Args:
            config: Monte Carlo settings; defaults are used when omitted
        """
        self.config = config or AppConfig()
        self.price_grid: Optional[np.ndarray] = None
        self.reference_price: Optional[float] = None
        self.results: Optional[MonteCarloResults] = None

        logger.info(f"MonteCarloRunner initialized with {self.config.num_runs} runs "
                    f"of {self.config.num_markets} markets")

    def spawn_seeds(self) -> List[np.random.SeedSequence]:
        """Calibration seed followed by one seed per run, from the current settings."""
        return np.random.SeedSequence(self.config.seed).spawn(self.config.num_runs + 1)

    def calibrate(self) -> Tuple[np.ndarray, float]:
        """
        Draw the calibration market that fixes the price grid and the reference price.

        The calibration seed is the first child of the seed sequence; its
        value does not depend on the number of runs.

        Returns:
            Tuple of (price grid, median price of the calibration market)
        """
        config = self.config
        market = simulate_block_market(
            config.num_products, config.num_markets, config.price_coefficient, config.xi_std_dev,
            np.random.default_rng(self.spawn_seeds()[0]),
        )
        self.price_grid = make_price_grid(market.prices, config.grid_points)
        self.reference_price = float(np.median(market.prices))
        logger.info(f"Price grid from {self.price_grid[0]:.3f} to {self.price_grid[-1]:.3f} "
                    f"({config.grid_points} points), reference price {self.reference_price:.3f}")
        return self.price_grid, self.reference_price

    def _iterate_runs(self, run_seeds: List[np.random.SeedSequence]) -> List[RunResult]:
        arguments = [
            (self.config, index, seed, self.price_grid, self.reference_price)
            for index, seed in enumerate(run_seeds)
        ]
        if self.config.processes > 1:
            logger.info(f"Distributing runs over {self.config.processes} processes")
            with multiprocessing.pool.Pool(self.config.processes) as pool:
                return list(pool.imap_unordered(_run_single_star, arguments))
        return [_run_single_star(argument) for argument in arguments]

    @timed("Monte Carlo")
    @log_errors(NPDemandError, msg="Monte Carlo aborted")
    def run(self) -> MonteCarloResults:
        """
        Run every simulation and collect the buffers.

        Returns:
            MonteCarloResults with (S, G) elasticity buffers and averaged
            substitution matrices

        Raises:
            NPDemandError: Propagated from the first failing run
        """
        config = self.config
        LoggingManager.log_dict(logger, "Monte Carlo settings", asdict(config), level="debug")
        if self.price_grid is None:
            self.calibrate()
        _, *run_seeds = self.spawn_seeds()

        num_runs, grid_points = config.num_runs, config.grid_points
        total_products = 2 * config.num_products
        estimated = np.zeros((num_runs, grid_points))
        truth = np.zeros((num_runs, grid_points))
        implied = np.zeros((num_runs, grid_points))
        included_by_run = np.zeros((num_runs, total_products, total_products), dtype=int)
        included_sum = np.zeros((total_products, total_products))
        symmetric_sum = np.zeros((total_products, total_products))

        for result in self._iterate_runs(run_seeds):
            row = result.index
            estimated[row] = result.estimated_elasticities
            truth[row] = result.true_elasticities
            implied[row] = result.implied_shares
            included_by_run[row] = result.included
            included_sum += result.included
            symmetric_sum += result.included_symmetric

        if not np.all(np.isfinite(estimated)):
            raise RunnerError("Non-finite elasticity estimates", {"count": int(np.sum(~np.isfinite(estimated)))})
        LoggingManager.log_array_info(logger, "estimated elasticities", estimated)

        self.results = MonteCarloResults(
            price_grid=self.price_grid,
            estimated_elasticities=estimated,
            true_elasticities=truth,
            implied_shares=implied,
            included_frequency=included_sum / num_runs,
            included_symmetric_frequency=symmetric_sum / num_runs,
            included_by_run=included_by_run,
            settings=asdict(config),
        )
        return self.results
