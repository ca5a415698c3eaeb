"""
Nonparametric inverse demand estimation.

Every product's inverse demand index, characteristics minus price, is
modelled as a tensor-product Bernstein polynomial of the shares of the
products in its substitution group:

    x_j - p_j = B(s_group) @ theta_j + m @ gamma_j + xi_j

Shares are endogenous, so the coefficients are fit by two-stage least squares
with a Bernstein basis of the group's instruments. Inverse demand is
increasing in every share of a connected-substitutes system. When the
monotonicity constraint is on, this is imposed through the sufficient
condition that Bernstein coefficients are non-decreasing along every tensor
direction. The constrained problem is a convex quadratic program; it is
reduced to a least-distance problem and solved exactly with SciPy's
non-negative least squares (Lawson and Hanson, ch. 23).
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from scipy.linalg import solve_triangular
from scipy.optimize import nnls

from model.bernstein import tensor_basis, tensor_gradient, monotonicity_matrix
from model.constants import (
    SHARE_BOUND_MARGIN,
    NNLS_MAX_ITER_FACTOR,
    CONSTRAINT_TOLERANCE,
)
from model.exceptions import EstimationError
from utils.logging_utils import get_logger

logger = get_logger()


@dataclass
class ProductFit:
    """Fitted inverse demand equation of a single product."""
    product: int
    group: List[int]
    coefficients: np.ndarray
    market_coefficients: np.ndarray
    objective: float
    constrained: bool


@dataclass
class InverseDemandFit:
    """
    Fitted inverse demand system.

    Shares are mapped to the unit cube with ``share_bounds`` before the
    Bernstein bases are evaluated.
    """
    polynomial_order: int
    share_bounds: np.ndarray
    substitution_matrix: np.ndarray
    products: List[ProductFit] = field(default_factory=list)

    @property
    def num_products(self) -> int:
        return self.substitution_matrix.shape[0]

    @property
    def scale(self) -> np.ndarray:
        return self.share_bounds[:, 1] - self.share_bounds[:, 0]

    def normalize(self, shares: np.ndarray) -> np.ndarray:
        shares = np.atleast_2d(np.asarray(shares, dtype=float))
        return (shares - self.share_bounds[:, 0]) / self.scale

    def evaluate(self, shares: np.ndarray, market_vars: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Inverse demand index of every product.

        Args:
            shares: (N x J) shares, or a single share vector
            market_vars: Optional (N x m) extra market variables, zeros by default

        Returns:
            (N x J) index values
        """
        normalized = self.normalize(shares)
        values = np.empty_like(normalized)
        for fit in self.products:
            values[:, fit.product] = tensor_basis(normalized[:, fit.group], self.polynomial_order) @ fit.coefficients
            if market_vars is not None and fit.market_coefficients.size:
                values[:, fit.product] += np.atleast_2d(market_vars) @ fit.market_coefficients
        return values

    def jacobian(self, shares: np.ndarray) -> np.ndarray:
        """Derivative of the inverse demand index with respect to shares at one share vector."""
        normalized = self.normalize(shares)[:1]
        matrix = np.zeros((self.num_products, self.num_products))
        for fit in self.products:
            gradient = tensor_gradient(normalized[:, fit.group], self.polynomial_order)[0]
            matrix[fit.product, fit.group] = fit.coefficients @ gradient / self.scale[fit.group]
        return matrix


def share_bounds(shares: np.ndarray, margin: float = SHARE_BOUND_MARGIN) -> np.ndarray:
    """Per-product interval [0, (1 + margin) * max share] used to normalise shares."""
    upper = np.minimum(shares.max(axis=0) * (1 + margin), 1.0)
    return np.column_stack([np.zeros(shares.shape[1]), upper])


def _unit_scale(values: np.ndarray) -> np.ndarray:
    low = values.min(axis=0)
    span = values.max(axis=0) - low
    span[span == 0] = 1.0
    return (values - low) / span


def _least_distance(G: np.ndarray, h: np.ndarray) -> np.ndarray:
    # Lawson-Hanson: min ||v|| subject to G v >= h through one NNLS problem
    num_rows, dim = G.shape
    E = np.vstack([G.T, h.reshape(1, -1)])
    f = np.zeros(dim + 1)
    f[-1] = 1.0
    try:
        u, _ = nnls(E, f, maxiter=NNLS_MAX_ITER_FACTOR * max(num_rows, dim + 1))
    except RuntimeError as e:
        raise EstimationError("Monotone least squares did not converge", str(e)) from e
    r = E @ u - f
    if abs(r[-1]) < np.finfo(float).eps:
        raise EstimationError("Monotonicity constraints are infeasible")
    return -r[:-1] / r[-1]


def _solve_product(
    design: np.ndarray,
    instruments: np.ndarray,
    response: np.ndarray,
    constraint_matrix: Optional[np.ndarray]
) -> Tuple[np.ndarray, float]:
    # 2SLS objective ||Q'(y - X theta)||^2 / T with Q an orthonormal basis of the instruments
    num_markets = design.shape[0]
    q, _ = np.linalg.qr(instruments)
    projected_design = q.T @ design
    projected_response = q.T @ response

    def objective(theta):
        residual = projected_response - projected_design @ theta
        return float(residual @ residual / num_markets)

    start, *_ = np.linalg.lstsq(projected_design, projected_response, rcond=None)
    if constraint_matrix is None or not constraint_matrix.size:
        return start, objective(start)
    if np.all(constraint_matrix @ start >= 0):
        return start, objective(start)

    # With projected_design = Q1 R and v = R theta - Q1'y the problem becomes
    # min ||v|| subject to C R^-1 v >= -C theta_unconstrained
    q_design, r_design = np.linalg.qr(projected_design)
    if np.min(np.abs(np.diag(r_design))) <= np.finfo(float).eps * np.max(np.abs(np.diag(r_design))):
        raise EstimationError("Projected design is rank deficient", {"columns": design.shape[1]})
    unconstrained = solve_triangular(r_design, q_design.T @ projected_response)
    G = solve_triangular(r_design, constraint_matrix.T, trans='T').T
    v = _least_distance(G, -constraint_matrix @ unconstrained)
    theta = unconstrained + solve_triangular(r_design, v)

    # Round-off can leave differences a hair below zero
    violation = -np.min(constraint_matrix @ theta)
    if not np.all(np.isfinite(theta)) or violation > CONSTRAINT_TOLERANCE * max(1.0, np.max(np.abs(theta))):
        raise EstimationError("Constrained inverse demand fit violates monotonicity",
                              {"violation": float(violation)})
    return theta, objective(theta)


def estimate_inverse_demand(
    shares: np.ndarray,
    prices: np.ndarray,
    characteristics: np.ndarray,
    instruments: np.ndarray,
    polynomial_order: int,
    iv_order: int,
    num_products: int,
    monotonicity_constraint: bool,
    substitution_matrix: np.ndarray,
    extra_market_vars: Optional[np.ndarray] = None
) -> Tuple[InverseDemandFit, Dict[int, Dict[str, Any]]]:
    """
    Fit the inverse demand system product by product.

    Args:
        shares: (T x J) market shares
        prices: (T x J) prices
        characteristics: (T x J) exogenous characteristics entering the index one for one
        instruments: (T x J) excluded instruments
        polynomial_order: Bernstein order of the share basis
        iv_order: Extra order of the instrument basis over the share basis
        num_products: Number of products J
        monotonicity_constraint: Whether to impose non-decreasing coefficients
        substitution_matrix: (J x J) 0/1 matrix; row j lists the shares entering product j
        extra_market_vars: Optional (T x m) exogenous market variables

    Returns:
        Tuple of (InverseDemandFit, design matrices keyed by product index)

    Raises:
        EstimationError: On inconsistent inputs, under-identification or an infeasible constrained fit
    """
    shares = np.asarray(shares, dtype=float)
    prices = np.asarray(prices, dtype=float)
    characteristics = np.asarray(characteristics, dtype=float)
    instruments = np.asarray(instruments, dtype=float)
    substitution_matrix = np.asarray(substitution_matrix, dtype=int)

    if shares.ndim != 2 or shares.shape[1] != num_products:
        raise EstimationError("Shares must have one column per product",
                              {"shape": shares.shape, "num_products": num_products})
    if not (shares.shape == prices.shape == characteristics.shape == instruments.shape):
        raise EstimationError("Shares, prices, characteristics and instruments must share one shape")
    if substitution_matrix.shape != (num_products, num_products):
        raise EstimationError("Substitution matrix must be J x J",
                              {"shape": substitution_matrix.shape, "num_products": num_products})
    if polynomial_order < 1 or iv_order < 0:
        raise EstimationError("Polynomial order must be positive and IV order non-negative",
                              {"polynomial_order": polynomial_order, "iv_order": iv_order})

    num_markets = shares.shape[0]
    if extra_market_vars is None:
        market_vars = np.zeros((num_markets, 0))
    else:
        market_vars = np.asarray(extra_market_vars, dtype=float).reshape(num_markets, -1)

    bounds = share_bounds(shares)
    fit = InverseDemandFit(
        polynomial_order=polynomial_order,
        share_bounds=bounds,
        substitution_matrix=substitution_matrix.copy(),
    )
    normalized_shares = fit.normalize(shares)
    normalized_instruments = _unit_scale(instruments)

    designs: Dict[int, Dict[str, Any]] = {}
    for j in range(num_products):
        group = sorted(set(np.flatnonzero(substitution_matrix[j])) | {j})
        share_basis = tensor_basis(normalized_shares[:, group], polynomial_order)
        design = np.hstack([share_basis, market_vars])
        iv_design = np.hstack([
            tensor_basis(normalized_instruments[:, group], polynomial_order + iv_order),
            market_vars,
        ])
        if iv_design.shape[1] < design.shape[1] or np.linalg.matrix_rank(iv_design) < design.shape[1]:
            raise EstimationError(f"Product {j + 1} is under-identified",
                                  {"parameters": design.shape[1],
                                   "instrument_rank": int(np.linalg.matrix_rank(iv_design))})
        if iv_design.shape[1] > num_markets:
            raise EstimationError(f"Product {j + 1} has more instruments than markets",
                                  {"instruments": iv_design.shape[1], "num_markets": num_markets})
        response = characteristics[:, j] - prices[:, j]

        constraint_matrix = None
        if monotonicity_constraint:
            differences = monotonicity_matrix(polynomial_order, len(group))
            # Market variable coefficients are unconstrained
            constraint_matrix = np.hstack([differences, np.zeros((differences.shape[0], market_vars.shape[1]))])

        theta, objective = _solve_product(design, iv_design, response, constraint_matrix)
        num_basis = share_basis.shape[1]
        fit.products.append(ProductFit(
            product=j,
            group=group,
            coefficients=theta[:num_basis],
            market_coefficients=theta[num_basis:],
            objective=objective,
            constrained=monotonicity_constraint,
        ))
        designs[j] = {"X": design, "Z": iv_design, "y": response}
        logger.debug(f"Product {j + 1}: group {[k + 1 for k in group]}, "
                     f"{num_basis} Bernstein terms, objective {objective:.6f}")

    return fit, designs
