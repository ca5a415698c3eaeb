"""
Data package for the nonparametric demand Monte Carlo.

This package provides the logit market simulator and the ground-truth
elasticity helpers used to score the estimates.
"""

from data.simulation import (
    MarketData,
    simulate_logit,
    combine_markets,
    simulate_block_market,
    make_price_grid,
    logit_own_elasticity,
)

__all__ = [
    'MarketData', 'simulate_logit', 'combine_markets', 'simulate_block_market',
    'make_price_grid', 'logit_own_elasticity',
]
