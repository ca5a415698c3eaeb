#!/usr/bin/env python3
"""
Tests for the Bernstein inverse demand estimator.
"""
import unittest
import os
import sys

import numpy as np

# Add the parent directory to sys.path so we can import from model
sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from data.simulation import simulate_block_market, true_block_structure
from model.bernstein import bernstein_basis, monotonicity_matrix, tensor_basis
from model.exceptions import EstimationError
from model.inverse_demand import _solve_product, estimate_inverse_demand, share_bounds


class TestInverseDemand(unittest.TestCase):
    """Tests for estimate_inverse_demand and the fitted system."""

    @classmethod
    def setUpClass(cls):
        cls.structure = true_block_structure(2)
        cls.market = simulate_block_market(2, 1000, -0.4, 0.15, np.random.default_rng(11))
        cls.clean_market = simulate_block_market(2, 1000, -0.4, 0.0, np.random.default_rng(12))

    def _estimate(self, market=None, constrained=True, **kwargs):
        market = market or self.market
        return estimate_inverse_demand(
            market.shares, market.prices, market.characteristics, market.instruments,
            polynomial_order=2, iv_order=0, num_products=4,
            monotonicity_constraint=constrained, substitution_matrix=self.structure, **kwargs
        )

    def test_design_shapes(self):
        fit, designs = self._estimate()

        self.assertEqual(len(fit.products), 4)
        self.assertEqual(fit.products[0].group, [0, 1])
        self.assertEqual(fit.products[3].group, [2, 3])
        for j in range(4):
            self.assertEqual(designs[j]["X"].shape, (1000, 9))
            self.assertEqual(designs[j]["Z"].shape, (1000, 9))
            np.testing.assert_allclose(designs[j]["y"], -self.market.prices[:, j])

    def test_monotonicity_constraints_hold(self):
        fit, _ = self._estimate()
        differences = monotonicity_matrix(2, 2)
        for product in fit.products:
            self.assertTrue(product.constrained)
            self.assertTrue(np.all(differences @ product.coefficients >= -1e-6))

    def test_constraint_never_improves_objective(self):
        constrained, _ = self._estimate(constrained=True)
        unconstrained, _ = self._estimate(constrained=False)
        for with_constraint, without in zip(constrained.products, unconstrained.products):
            self.assertGreaterEqual(with_constraint.objective, without.objective - 1e-10)

    def test_fit_tracks_noise_free_inverse_demand(self):
        market = self.clean_market
        fit, _ = self._estimate(market=market)

        fitted = fit.evaluate(market.shares)
        self.assertEqual(fitted.shape, (1000, 4))
        self.assertLess(np.mean(np.abs(fitted + market.prices)), 0.15)

        jacobian = fit.jacobian(market.shares.mean(axis=0))
        self.assertTrue(np.all(np.diag(jacobian) > 0))
        # Products in different blocks do not enter each other's index
        np.testing.assert_array_equal(jacobian[:2, 2:], 0.0)
        np.testing.assert_array_equal(jacobian[2:, :2], 0.0)

    def test_binding_constraints_pool_to_a_constant(self):
        # A decreasing response has the pooled mean as its best monotone fit
        x = np.linspace(0.0, 1.0, 200)
        design = bernstein_basis(x, 2)
        response = -x
        theta, objective = _solve_product(design, design, response, monotonicity_matrix(2, 1))
        np.testing.assert_allclose(theta, response.mean(), atol=1e-8)
        self.assertAlmostEqual(objective, np.var(response), places=8)

    def test_constrained_solution_is_feasible_and_optimal(self):
        rng = np.random.default_rng(3)
        points = rng.uniform(size=(400, 2))
        design = tensor_basis(points, 2)
        # Decreasing in the first share, increasing in the second
        response = -points[:, 0] + points[:, 1] ** 2 + 0.01 * rng.normal(size=400)
        constraints = monotonicity_matrix(2, 2)
        theta, objective = _solve_product(design, design, response, constraints)

        self.assertTrue(np.all(constraints @ theta >= -1e-8))
        # No feasible perturbation does better
        for _ in range(50):
            candidate = theta + 0.05 * rng.normal(size=theta.size)
            if np.all(constraints @ candidate >= 0):
                residual = response - design @ candidate
                self.assertGreaterEqual(residual @ residual / 400, objective - 1e-12)

    def test_share_bounds(self):
        shares = np.array([[0.1, 0.2], [0.3, 0.1]])
        bounds = share_bounds(shares, margin=0.1)
        np.testing.assert_allclose(bounds, [[0.0, 0.33], [0.0, 0.22]])

    def test_invalid_inputs(self):
        market = self.market
        with self.assertRaises(EstimationError):
            estimate_inverse_demand(market.shares, market.prices, market.characteristics,
                                    market.instruments, 2, 0, 3, True, self.structure)
        with self.assertRaises(EstimationError):
            estimate_inverse_demand(market.shares, market.prices, market.characteristics,
                                    market.instruments, 2, 0, 4, True, np.eye(3))
        with self.assertRaises(EstimationError):
            estimate_inverse_demand(market.shares, market.prices, market.characteristics,
                                    market.instruments, 0, 0, 4, True, self.structure)

    def test_under_identified(self):
        # A constant market variable is collinear with the Bernstein basis
        with self.assertRaises(EstimationError):
            self._estimate(extra_market_vars=np.ones((1000, 1)))

    def test_too_few_markets(self):
        market = self.market
        with self.assertRaises(EstimationError):
            estimate_inverse_demand(market.shares[:5], market.prices[:5], market.characteristics[:5],
                                    market.instruments[:5], 2, 0, 4, True, self.structure)


if __name__ == "__main__":
    unittest.main()
