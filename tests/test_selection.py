#!/usr/bin/env python3
"""
Tests for substitution structure selection.
"""
import unittest
import os
import sys
from unittest.mock import MagicMock

import numpy as np

# Add the parent directory to sys.path so we can import from model
sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from data.simulation import simulate_block_market, true_block_structure
from model.exceptions import SelectionError
from model.selection import (
    apply_hierarchy,
    instrument_basis,
    interaction_features,
    one_standard_error_alpha,
    select_substitutes,
    symmetrize,
)


class TestSelectionHelpers(unittest.TestCase):
    """Tests for features, hierarchy and symmetrization."""

    def test_interaction_features(self):
        shares = np.random.default_rng(1).uniform(0.05, 0.3, size=(50, 4))
        features, pairs = interaction_features(shares)

        self.assertEqual(features.shape, (50, 4 + 6))
        self.assertEqual(pairs[0], (0, 1))
        # Interactions are built from centred shares
        np.testing.assert_allclose(features[:, :4].mean(axis=0), 0.0, atol=1e-12)
        np.testing.assert_allclose(features[:, :4].std(axis=0), 1.0)
        np.testing.assert_allclose(features[:, 4], features[:, 0] * features[:, 1])

    def test_instrument_basis(self):
        instruments = np.random.default_rng(0).uniform(size=(5, 3))
        basis = instrument_basis(instruments)
        self.assertEqual(basis.shape, (5, 1 + 3 + 3 + 3))
        np.testing.assert_array_equal(basis[:, 0], 1.0)

    def test_weak_hierarchy(self):
        # (1, 2) survives because product 1 is active; (2, 3) has no active parent
        selected = apply_hierarchy({1}, [(1, 2), (2, 3)], strong=False)
        self.assertEqual(selected, {1, 2})

    def test_strong_hierarchy(self):
        # Interactions need both parents, so only active mains are selected
        self.assertEqual(apply_hierarchy({1}, [(1, 2), (2, 3)], strong=True), {1})
        self.assertEqual(apply_hierarchy({1, 2}, [(1, 2)], strong=True), {1, 2})

    def test_strong_is_stricter_than_weak(self):
        mains, pairs = {0, 3}, [(0, 1), (1, 2), (2, 3), (0, 3)]
        strong = apply_hierarchy(mains, pairs, strong=True)
        weak = apply_hierarchy(mains, pairs, strong=False)
        self.assertTrue(strong <= weak)
        self.assertEqual(weak, {0, 1, 2, 3})

    def test_one_standard_error_alpha(self):
        search = MagicMock()
        search.alphas_ = np.array([1.0, 0.5, 0.25, 0.1])
        search.mse_path_ = np.array([[2.0, 2.0], [1.05, 1.15], [1.0, 1.0], [0.9, 1.1]])
        # Minimum mean 1.0 at 0.25 with no spread, so 0.5 is out
        self.assertEqual(one_standard_error_alpha(search), 0.25)
        search.mse_path_ = np.array([[2.0, 2.0], [1.05, 1.15], [1.0, 1.0], [0.7, 1.1]])
        # Minimum 0.9 at 0.1 with standard error 0.14 admits 0.25 but not 0.5
        self.assertEqual(one_standard_error_alpha(search), 0.25)

    def test_symmetrize(self):
        matrix = np.array([[1, 1, 0], [0, 1, 0], [0, 1, 1]])
        expected = np.array([[1, 1, 0], [1, 1, 1], [0, 1, 1]])
        np.testing.assert_array_equal(symmetrize(matrix), expected)


class TestSelectSubstitutes(unittest.TestCase):
    """Tests for the bootstrapped lasso selector on simulated markets."""

    @classmethod
    def setUpClass(cls):
        cls.market = simulate_block_market(2, 1000, -0.4, 0.15, np.random.default_rng(2024))

    def _select(self, **kwargs):
        market = self.market
        return select_substitutes(market.shares, market.prices, market.instruments,
                                  rng=np.random.default_rng(5), **kwargs)

    def test_matrix_properties(self):
        raw, symmetric = self._select(num_bootstrap=3)

        self.assertEqual(raw.shape, (4, 4))
        self.assertTrue(set(np.unique(raw)) <= {0, 1})
        np.testing.assert_array_equal(np.diag(raw), 1)
        np.testing.assert_array_equal(symmetric, symmetric.T)
        self.assertTrue(np.all(symmetric >= raw))

    def test_recovers_within_block_substitutes(self):
        _, symmetric = self._select(num_bootstrap=0)
        self.assertEqual(symmetric[0, 1], 1)
        self.assertEqual(symmetric[2, 3], 1)

    def test_recovers_block_structure_with_defaults(self):
        raw, symmetric = self._select()
        np.testing.assert_array_equal(raw, true_block_structure(2))
        np.testing.assert_array_equal(symmetric, true_block_structure(2))

    def test_cross_block_products_rarely_selected(self):
        within, across = [], []
        for seed in range(4):
            market = simulate_block_market(2, 1000, -0.4, 0.15, np.random.default_rng(100 + seed))
            _, symmetric = select_substitutes(market.shares, market.prices, market.instruments,
                                              num_bootstrap=0, rng=np.random.default_rng(seed))
            within.extend([symmetric[0, 1], symmetric[2, 3]])
            across.extend(symmetric[:2, 2:].ravel())
        self.assertEqual(np.mean(within), 1.0)
        self.assertLessEqual(np.mean(across), 0.25)

    def test_strong_hierarchy_selects_no_more_than_weak(self):
        _, weak = self._select(num_bootstrap=0)
        _, strong = self._select(num_bootstrap=0, impose_strong_hierarchy=True)
        self.assertTrue(np.all(strong <= weak))

    def test_reproducible_with_seed(self):
        first = self._select(num_bootstrap=2, impose_strong_hierarchy=True)
        second = self._select(num_bootstrap=2, impose_strong_hierarchy=True)
        np.testing.assert_array_equal(first[0], second[0])

    def test_invalid_inputs(self):
        market = self.market
        with self.assertRaises(SelectionError):
            select_substitutes(market.shares, market.prices[:, :2], market.instruments)
        with self.assertRaises(SelectionError):
            self._select(num_folds=1)
        with self.assertRaises(SelectionError):
            self._select(num_lambda=0)
        with self.assertRaises(SelectionError):
            self._select(selection_threshold=0.0)


if __name__ == "__main__":
    unittest.main()
