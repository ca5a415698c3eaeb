"""
Price elasticities from a fitted inverse demand system.

At every evaluation point the inverse demand system is inverted for shares,
either numerically (bounded least squares started from the mean observed
shares) or by taking the shares supplied by the caller. The implicit function
theorem then gives the share Jacobian with respect to prices,

    ds/dp = -inv(d index / ds)

because the index is characteristics minus price. Elasticity of product j
with respect to the price of product k is ds_j/dp_k * p_k / s_j.
"""
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import least_squares

from model.constants import SHARE_FLOOR, ROOT_TOLERANCE
from model.exceptions import ElasticityError
from model.inverse_demand import InverseDemandFit
from utils.logging_utils import get_logger

logger = get_logger()


def solve_shares(
    fit: InverseDemandFit,
    delta: np.ndarray,
    start: np.ndarray,
    tolerance: float = ROOT_TOLERANCE
) -> np.ndarray:
    """
    Find shares whose inverse demand index equals delta.

    Raises:
        ElasticityError: If no share vector in the unit box reproduces delta
    """
    delta = np.asarray(delta, dtype=float)
    start = np.clip(np.asarray(start, dtype=float), 2 * SHARE_FLOOR, 1 - 2 * SHARE_FLOOR)
    result = least_squares(
        lambda s: fit.evaluate(s)[0] - delta,
        start,
        jac=fit.jacobian,
        bounds=(SHARE_FLOOR, 1.0),
        xtol=1e-12,
        ftol=1e-12,
        gtol=1e-12,
    )
    residual = np.max(np.abs(result.fun))
    if residual > tolerance * max(1.0, np.max(np.abs(delta))):
        raise ElasticityError("Could not invert the estimated demand system",
                              {"residual": float(residual), "delta": delta.tolist()})
    return result.x


def compute_price_elasticities(
    coefficients: InverseDemandFit,
    shares: np.ndarray,
    price_grid: np.ndarray,
    delta_matrix: np.ndarray,
    polynomial_order: int,
    product_pair: Sequence[int],
    substitution_matrix: np.ndarray,
    use_true_shares: bool = False,
    extra_args: Optional[Dict[str, Any]] = None
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Evaluate price elasticities along a grid.

    Args:
        coefficients: Fitted inverse demand system
        shares: (T x J) observed shares, used for start values
        price_grid: (G,) price of the conditioning product at each evaluation point
        delta_matrix: (G x J) index value of every product at each evaluation point
        polynomial_order: Bernstein order used in the fit
        product_pair: 1-based (responding product, conditioning product)
        substitution_matrix: Substitution matrix used in the fit
        use_true_shares: Take shares from ``extra_args["shares"]`` instead of inverting
        extra_args: Optional dictionary; ``shares`` is a (G x J) array required
            when ``use_true_shares`` is set

    Returns:
        Tuple of (elasticities (G,), share Jacobians ds/dp (G, J, J), implied shares (G, J))

    Raises:
        ElasticityError: On inconsistent inputs, failed inversion or a singular Jacobian
    """
    fit = coefficients
    extra_args = extra_args or {}
    num_products = fit.num_products
    price_grid = np.asarray(price_grid, dtype=float).reshape(-1)
    delta_matrix = np.atleast_2d(np.asarray(delta_matrix, dtype=float))

    if polynomial_order != fit.polynomial_order:
        raise ElasticityError("Polynomial order does not match the fitted system",
                              {"given": polynomial_order, "fitted": fit.polynomial_order})
    if not np.array_equal(np.asarray(substitution_matrix, dtype=int), fit.substitution_matrix):
        raise ElasticityError("Substitution matrix does not match the fitted system")
    if delta_matrix.shape != (price_grid.size, num_products):
        raise ElasticityError("Delta matrix must be G x J",
                              {"shape": delta_matrix.shape, "grid_points": price_grid.size,
                               "num_products": num_products})
    own, other = (int(index) - 1 for index in product_pair)
    if not (0 <= own < num_products and 0 <= other < num_products):
        raise ElasticityError("Product pair out of range", {"product_pair": list(product_pair)})

    if use_true_shares:
        if "shares" not in extra_args:
            raise ElasticityError("use_true_shares requires extra_args['shares']")
        given_shares = np.asarray(extra_args["shares"], dtype=float)
        if given_shares.shape != delta_matrix.shape:
            raise ElasticityError("Supplied shares must be G x J", {"shape": given_shares.shape})

    start = np.asarray(shares, dtype=float).mean(axis=0)
    grid_points = price_grid.size
    elasticities = np.empty(grid_points)
    jacobians = np.empty((grid_points, num_products, num_products))
    implied_shares = np.empty((grid_points, num_products))

    for g in range(grid_points):
        if use_true_shares:
            point_shares = given_shares[g]
        else:
            point_shares = solve_shares(fit, delta_matrix[g], start)
            # Neighbouring grid points have close solutions
            start = point_shares

        index_jacobian = fit.jacobian(point_shares)
        try:
            share_jacobian = -np.linalg.inv(index_jacobian)
        except np.linalg.LinAlgError as e:
            raise ElasticityError(f"Singular inverse demand Jacobian at grid point {g + 1}") from e

        implied_shares[g] = point_shares
        jacobians[g] = share_jacobian
        elasticities[g] = share_jacobian[own, other] * price_grid[g] / point_shares[own]

    logger.debug(f"Elasticities of product {own + 1} to price {other + 1}: {np.round(elasticities, 3)}")
    return elasticities, jacobians, implied_shares
