#!/usr/bin/env python3
"""
Tests for price elasticities computed from a fitted inverse demand system.
"""
import unittest
import os
import sys

import numpy as np

# Add the parent directory to sys.path so we can import from model
sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from data.simulation import simulate_block_market, true_block_structure, make_price_grid
from model.elasticity import compute_price_elasticities, solve_shares
from model.exceptions import ElasticityError
from model.inverse_demand import InverseDemandFit, ProductFit, estimate_inverse_demand
from model.model_runner import evaluation_deltas


def linear_fit():
    """Single product whose index is -3 + 4 * share."""
    return InverseDemandFit(
        polynomial_order=1,
        share_bounds=np.array([[0.0, 1.0]]),
        substitution_matrix=np.array([[1]]),
        products=[ProductFit(product=0, group=[0], coefficients=np.array([-3.0, 1.0]),
                             market_coefficients=np.zeros(0), objective=0.0, constrained=True)],
    )


class TestLinearSystem(unittest.TestCase):
    """Closed-form checks on a one-product system."""

    def test_solve_shares(self):
        shares = solve_shares(linear_fit(), np.array([-1.0]), np.array([0.3]))
        np.testing.assert_allclose(shares, [0.5], atol=1e-8)

    def test_solve_shares_outside_range(self):
        # The index never exceeds 1 on the unit interval
        with self.assertRaises(ElasticityError):
            solve_shares(linear_fit(), np.array([5.0]), np.array([0.3]))

    def test_elasticities(self):
        elasticities, jacobians, implied = compute_price_elasticities(
            linear_fit(), np.array([[0.4], [0.6]]), np.array([1.0, 2.0]),
            np.array([[-1.0], [-2.0]]), 1, (1, 1), np.array([[1]]),
        )

        np.testing.assert_allclose(implied[:, 0], [0.5, 0.25], atol=1e-8)
        np.testing.assert_allclose(jacobians[:, 0, 0], [-0.25, -0.25])
        np.testing.assert_allclose(elasticities, [-0.5, -2.0], rtol=1e-6)

    def test_true_shares_skip_inversion(self):
        elasticities, _, implied = compute_price_elasticities(
            linear_fit(), np.array([[0.4]]), np.array([1.0]), np.array([[-1.0]]), 1, (1, 1),
            np.array([[1]]), use_true_shares=True, extra_args={"shares": np.array([[0.2]])},
        )
        np.testing.assert_array_equal(implied, [[0.2]])
        np.testing.assert_allclose(elasticities, [-0.25 / 0.2])

    def test_singular_jacobian(self):
        fit = linear_fit()
        fit.products[0].coefficients = np.array([1.0, 1.0])
        with self.assertRaises(ElasticityError):
            compute_price_elasticities(fit, np.array([[0.4]]), np.array([1.0]), np.array([[-1.0]]),
                                       1, (1, 1), np.array([[1]]), use_true_shares=True,
                                       extra_args={"shares": np.array([[0.5]])})


class TestEstimatedSystem(unittest.TestCase):
    """Elasticities of a system fitted on simulated block markets."""

    @classmethod
    def setUpClass(cls):
        cls.structure = true_block_structure(2)
        cls.market = simulate_block_market(2, 1000, -0.4, 0.15, np.random.default_rng(21))
        cls.fit, _ = estimate_inverse_demand(
            cls.market.shares, cls.market.prices, cls.market.characteristics, cls.market.instruments,
            2, 0, 4, True, cls.structure,
        )
        cls.grid = make_price_grid(cls.market.prices, 5)
        cls.deltas = evaluation_deltas(cls.market.prices, cls.grid)

    def _compute(self, **kwargs):
        arguments = dict(
            coefficients=self.fit, shares=self.market.shares, price_grid=self.grid,
            delta_matrix=self.deltas, polynomial_order=2, product_pair=(1, 1),
            substitution_matrix=self.structure,
        )
        arguments.update(kwargs)
        return compute_price_elasticities(**arguments)

    def test_output_shapes(self):
        elasticities, jacobians, implied = self._compute()

        self.assertEqual(elasticities.shape, (5,))
        self.assertEqual(jacobians.shape, (5, 4, 4))
        self.assertEqual(implied.shape, (5, 4))
        self.assertTrue(np.all(np.isfinite(elasticities)))
        self.assertLess(np.mean(elasticities), 0)

    def test_implied_shares_reproduce_deltas(self):
        _, _, implied = self._compute()
        np.testing.assert_allclose(self.fit.evaluate(implied), self.deltas, atol=1e-5)

    def test_mismatched_inputs(self):
        with self.assertRaises(ElasticityError):
            self._compute(polynomial_order=3)
        with self.assertRaises(ElasticityError):
            self._compute(substitution_matrix=np.ones((4, 4), dtype=int))
        with self.assertRaises(ElasticityError):
            self._compute(delta_matrix=self.deltas[:, :3])
        with self.assertRaises(ElasticityError):
            self._compute(product_pair=(1, 5))
        with self.assertRaises(ElasticityError):
            self._compute(use_true_shares=True)
        with self.assertRaises(ElasticityError):
            self._compute(use_true_shares=True, extra_args={"shares": np.full((4, 4), 0.1)})


if __name__ == "__main__":
    unittest.main()
