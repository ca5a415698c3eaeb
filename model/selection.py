"""
Substitution structure selection.

For every product the inverse demand index (characteristics minus price) is
regressed on all market shares and their pairwise interactions with a
cross-validated lasso. Shares are centred and scaled before interactions are
formed, so an interaction carries only the joint variation of its two shares.
Shares are endogenous, so every feature is then replaced by its least-squares
projection on a quadratic basis of the instruments.

The penalty is the largest value on the path whose cross-validated error is
within one standard error of the minimum, and a coefficient only counts as
active when its standardized size reaches ``MIN_STANDARDIZED_COEFFICIENT``.
Interactions obey a hierarchy with respect to the main effects:

- strong hierarchy: an active interaction (k, l) is kept only when both k and
  l are active main effects, so it never adds a product;
- weak hierarchy: an active interaction is kept when k or l is an active main
  effect, and then activates the other one.

The fit is repeated over bootstrap resamples of markets. Copies of a market
always fall in the same cross-validation fold. A product k is kept in the
substitution set of product j when it is selected in at least
``selection_threshold`` of the draws. The symmetrized matrix adds k to j's
set whenever j is in k's set.
"""
from itertools import combinations
from typing import List, Optional, Set, Tuple

import numpy as np
from sklearn.linear_model import Lasso, LassoCV
from sklearn.model_selection import PredefinedSplit
from sklearn.preprocessing import StandardScaler

from model.constants import (
    DEFAULT_NUM_FOLDS,
    DEFAULT_NUM_LAMBDA,
    DEFAULT_NUM_BOOTSTRAP,
    DEFAULT_SELECTION_THRESHOLD,
    LASSO_MAX_ITER,
    LAMBDA_MIN_RATIO,
    MIN_STANDARDIZED_COEFFICIENT,
)
from model.exceptions import SelectionError
from utils.logging_utils import get_logger

logger = get_logger()


def instrument_basis(instruments: np.ndarray) -> np.ndarray:
    """Constant, levels, squares and pairwise products of the instruments."""
    columns = [np.ones(instruments.shape[0]), *instruments.T, *(instruments ** 2).T]
    columns.extend(instruments[:, k] * instruments[:, l]
                   for k, l in combinations(range(instruments.shape[1]), 2))
    return np.column_stack(columns)


def interaction_features(shares: np.ndarray) -> Tuple[np.ndarray, List[Tuple[int, int]]]:
    """
    Standardized shares followed by all pairwise products of them.

    Returns:
        Tuple of (features, pairs) where column J + i of ``features`` is the
        interaction of ``pairs[i]``
    """
    mains = StandardScaler().fit_transform(shares)
    pairs = list(combinations(range(shares.shape[1]), 2))
    interactions = [mains[:, k] * mains[:, l] for k, l in pairs]
    features = np.column_stack([mains, *interactions]) if interactions else mains
    return features, pairs


def _project(features: np.ndarray, basis: np.ndarray) -> np.ndarray:
    coefficients, *_ = np.linalg.lstsq(basis, features, rcond=None)
    return basis @ coefficients


def _alpha_grid(features: np.ndarray, response: np.ndarray, num_lambda: int) -> np.ndarray:
    # glmnet path: from the smallest penalty that zeroes every coefficient
    # down to LAMBDA_MIN_RATIO of it
    centered = response - response.mean()
    alpha_max = np.max(np.abs(features.T @ centered)) / features.shape[0]
    if not np.isfinite(alpha_max) or alpha_max <= 0:
        alpha_max = 1.0
    return alpha_max * np.logspace(0, np.log10(LAMBDA_MIN_RATIO), num_lambda)


def one_standard_error_alpha(lasso: LassoCV) -> float:
    """Largest penalty whose mean CV error is within one standard error of the best one."""
    mean_error = lasso.mse_path_.mean(axis=1)
    standard_error = lasso.mse_path_.std(axis=1) / np.sqrt(lasso.mse_path_.shape[1])
    best = np.argmin(mean_error)
    eligible = mean_error <= mean_error[best] + standard_error[best]
    return float(np.max(lasso.alphas_[eligible]))


def apply_hierarchy(
    active_mains: Set[int],
    active_pairs: List[Tuple[int, int]],
    strong: bool
) -> Set[int]:
    """
    Combine active main effects and interactions into a set of products.

    Args:
        active_mains: Products whose main effect is nonzero
        active_pairs: Interactions with a nonzero coefficient
        strong: Whether to impose strong (rather than weak) hierarchy

    Returns:
        Set of selected products
    """
    selected = set(active_mains)
    for k, l in active_pairs:
        if strong:
            # Both parents are required, so nothing new can enter
            continue
        if k in active_mains or l in active_mains:
            selected.update((k, l))
    return selected


def _select_once(
    shares: np.ndarray,
    prices: np.ndarray,
    instruments: np.ndarray,
    characteristics: np.ndarray,
    test_fold: np.ndarray,
    num_lambda: int,
    strong: bool
) -> np.ndarray:
    num_products = shares.shape[1]
    features, pairs = interaction_features(shares)
    projected = _project(features, instrument_basis(instruments))
    scaled = StandardScaler().fit_transform(projected)
    folds = PredefinedSplit(test_fold)

    selected = np.zeros((num_products, num_products), dtype=int)
    for j in range(num_products):
        response = characteristics[:, j] - prices[:, j]
        search = LassoCV(alphas=_alpha_grid(scaled, response, num_lambda), cv=folds, max_iter=LASSO_MAX_ITER)
        search.fit(scaled, response)
        alpha = one_standard_error_alpha(search)
        lasso = Lasso(alpha=alpha, max_iter=LASSO_MAX_ITER).fit(scaled, response)

        active = np.abs(lasso.coef_) >= MIN_STANDARDIZED_COEFFICIENT * max(np.std(response), 1e-12)
        active_mains = {k for k in range(num_products) if active[k]}
        active_pairs = [pair for pair, flag in zip(pairs, active[num_products:]) if flag]
        chosen = apply_hierarchy(active_mains, active_pairs, strong)
        chosen.add(j)
        selected[j, sorted(chosen)] = 1
        logger.debug(f"Product {j + 1}: alpha={alpha:.5f} (CV minimum {search.alpha_:.5f}), "
                     f"selected {sorted(k + 1 for k in chosen)}")
    return selected


def symmetrize(matrix: np.ndarray) -> np.ndarray:
    """Elementwise maximum of a 0/1 matrix and its transpose."""
    return np.maximum(matrix, matrix.T)


def select_substitutes(
    shares: np.ndarray,
    prices: np.ndarray,
    instruments: np.ndarray,
    num_folds: int = DEFAULT_NUM_FOLDS,
    num_lambda: int = DEFAULT_NUM_LAMBDA,
    impose_strong_hierarchy: bool = False,
    num_bootstrap: int = DEFAULT_NUM_BOOTSTRAP,
    characteristics: Optional[np.ndarray] = None,
    selection_threshold: float = DEFAULT_SELECTION_THRESHOLD,
    rng: Optional[np.random.Generator] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Select which product pairs may substitute.

    Args:
        shares: (T x J) market shares
        prices: (T x J) prices
        instruments: (T x J) excluded instruments
        num_folds: Cross-validation folds for the lasso penalty
        num_lambda: Length of the penalty path
        impose_strong_hierarchy: Strong rather than weak interaction hierarchy
        num_bootstrap: Bootstrap resamples; zero fits the original sample once
        characteristics: Optional (T x J) exogenous characteristics, zeros by default
        selection_threshold: Share of draws in which a product must be selected
        rng: Random generator for resampling and fold assignment

    Returns:
        Tuple of (raw, symmetrized) 0/1 matrices of shape (J, J)

    Raises:
        SelectionError: If inputs are inconsistent or the lasso cannot be fit
    """
    shares = np.asarray(shares, dtype=float)
    prices = np.asarray(prices, dtype=float)
    instruments = np.asarray(instruments, dtype=float)
    if characteristics is None:
        characteristics = np.zeros_like(prices)
    if not (shares.shape == prices.shape == instruments.shape == np.shape(characteristics)):
        raise SelectionError("Shares, prices, instruments and characteristics must share one shape",
                             {"shares": shares.shape, "prices": prices.shape,
                              "instruments": instruments.shape})
    num_markets = shares.shape[0]
    if num_folds < 2 or num_folds > num_markets:
        raise SelectionError("Number of folds must be between 2 and the number of markets",
                             {"num_folds": num_folds, "num_markets": num_markets})
    if num_lambda < 1:
        raise SelectionError("Penalty path needs at least one value", {"num_lambda": num_lambda})
    if not 0 < selection_threshold <= 1:
        raise SelectionError("Selection threshold must lie in (0, 1]",
                             {"selection_threshold": selection_threshold})
    if rng is None:
        rng = np.random.default_rng()

    draws = max(num_bootstrap, 1)
    counts = np.zeros((shares.shape[1], shares.shape[1]))
    for draw in range(draws):
        # Fold of every original market; resampled copies inherit it
        market_fold = rng.permutation(num_markets) % num_folds
        if num_bootstrap > 0:
            rows = rng.integers(0, num_markets, size=num_markets)
        else:
            rows = np.arange(num_markets)
        try:
            counts += _select_once(
                shares[rows], prices[rows], instruments[rows], characteristics[rows],
                market_fold[rows], num_lambda, impose_strong_hierarchy,
            )
        except (ValueError, np.linalg.LinAlgError) as e:
            raise SelectionError(f"Lasso selection failed on draw {draw + 1}", str(e)) from e

    frequency = counts / draws
    raw = (frequency >= selection_threshold).astype(int)
    np.fill_diagonal(raw, 1)
    logger.debug(f"Selection frequencies over {draws} draws:\n{np.round(frequency, 2)}")
    return raw, symmetrize(raw)
