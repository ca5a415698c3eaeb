"""
Bernstein polynomial bases on the unit cube.

Univariate bases are combined into tensor-product bases whose columns follow
``itertools.product(range(order + 1), repeat=dim)`` ordering (last variable
varies fastest). Coefficients that are non-decreasing along every tensor
direction give a function that is non-decreasing in every argument, which is
how the inverse demand fit imposes monotonicity.
"""
from itertools import product
from typing import List, Tuple

import numpy as np
from scipy.special import comb


def bernstein_basis(x: np.ndarray, order: int) -> np.ndarray:
    """
    Evaluate the univariate Bernstein basis of the given order.

    Args:
        x: Points (any shape is flattened) usually in [0, 1]
        order: Polynomial order n

    Returns:
        Array of shape (len(x), n + 1) with b_{k,n}(x) in column k
    """
    x = np.asarray(x, dtype=float).reshape(-1, 1)
    k = np.arange(order + 1)
    return comb(order, k) * x ** k * (1 - x) ** (order - k)


def bernstein_derivative(x: np.ndarray, order: int) -> np.ndarray:
    """Derivative of every univariate basis function with respect to x."""
    x = np.asarray(x, dtype=float).reshape(-1)
    if order == 0:
        return np.zeros((x.size, 1))
    lower = bernstein_basis(x, order - 1)
    padded = np.zeros((x.size, order + 2))
    padded[:, 1:-1] = lower
    # n * (b_{k-1,n-1} - b_{k,n-1})
    return order * (padded[:, :-1] - padded[:, 1:])


def _outer_columns(factors: List[np.ndarray]) -> np.ndarray:
    result = factors[0]
    for factor in factors[1:]:
        result = (result[:, :, None] * factor[:, None, :]).reshape(result.shape[0], -1)
    return result


def tensor_basis(x: np.ndarray, order: int) -> np.ndarray:
    """
    Tensor-product Bernstein basis.

    Args:
        x: (N x d) matrix of points in the unit cube
        order: Polynomial order applied to every variable

    Returns:
        (N x (order + 1) ** d) design matrix
    """
    x = np.atleast_2d(np.asarray(x, dtype=float))
    return _outer_columns([bernstein_basis(x[:, i], order) for i in range(x.shape[1])])


def tensor_gradient(x: np.ndarray, order: int) -> np.ndarray:
    """
    Gradient of every tensor basis function.

    Returns:
        Array of shape (N, (order + 1) ** d, d); entry [n, c, i] is the
        derivative of basis column c with respect to variable i at point n
    """
    x = np.atleast_2d(np.asarray(x, dtype=float))
    dim = x.shape[1]
    bases = [bernstein_basis(x[:, i], order) for i in range(dim)]
    derivatives = [bernstein_derivative(x[:, i], order) for i in range(dim)]
    gradient = np.empty((x.shape[0], (order + 1) ** dim, dim))
    for i in range(dim):
        factors = bases[:i] + [derivatives[i]] + bases[i + 1:]
        gradient[:, :, i] = _outer_columns(factors)
    return gradient


def multi_indices(order: int, dim: int) -> List[Tuple[int, ...]]:
    """Multi-indices of the tensor basis columns in column order."""
    return list(product(range(order + 1), repeat=dim))


def monotonicity_matrix(order: int, dim: int) -> np.ndarray:
    """
    Difference operator A such that A @ theta >= 0 makes theta non-decreasing
    along every tensor direction.
    """
    indices = multi_indices(order, dim)
    position = {index: column for column, index in enumerate(indices)}
    rows = []
    for index in indices:
        for i in range(dim):
            if index[i] < order:
                upper = index[:i] + (index[i] + 1,) + index[i + 1:]
                row = np.zeros(len(indices))
                row[position[upper]] = 1.0
                row[position[index]] = -1.0
                rows.append(row)
    if not rows:
        return np.zeros((0, len(indices)))
    return np.vstack(rows)
