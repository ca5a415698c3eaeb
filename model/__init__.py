"""
Model package for the nonparametric demand Monte Carlo.

This package provides substitution structure selection, Bernstein inverse
demand estimation and elasticity evaluation. The Monte Carlo runner lives in
``model.model_runner`` and is imported from there, since it depends on the
configuration package.
"""

from model.exceptions import (
    NPDemandError, DataError, ModelError, SelectionError,
    EstimationError, ElasticityError, ConfigurationError, RunnerError,
)
from model.selection import select_substitutes
from model.inverse_demand import InverseDemandFit, estimate_inverse_demand
from model.elasticity import compute_price_elasticities

__all__ = [
    'NPDemandError', 'DataError', 'ModelError', 'SelectionError',
    'EstimationError', 'ElasticityError', 'ConfigurationError', 'RunnerError',
    'select_substitutes', 'InverseDemandFit', 'estimate_inverse_demand',
    'compute_price_elasticities',
]
