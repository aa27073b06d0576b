"""Tests for post-fit statistics and covariance estimates."""

import chex
import jax
import jax.numpy as jnp
import pytest

from asteria.fitters import make_polynomial_model, polynomial_design_matrix
from asteria.solver import (
    asymptotic_standard_error,
    degrees_of_freedom,
    fit_chi_squared,
    lm_fit,
    parameter_correlation,
    parameter_covariance,
    propagated_covariance,
    reduced_chi_squared,
    summarize_fit,
)
from asteria.types import (
    make_diagonal_covariance,
    make_full_covariance,
    make_lm_config,
    make_lm_state,
    make_residual_model,
)

SIGMA = 0.1


def _line_fit(num_points: int = 8, seed: int = 0, covariance=None):
    x = jnp.linspace(0.0, 1.0, num_points)
    model = make_polynomial_model(x, 1)
    noise = SIGMA * jax.random.normal(jax.random.PRNGKey(seed), (num_points,))
    data = 1.0 + 2.0 * x + noise
    if covariance is None:
        covariance = make_diagonal_covariance(jnp.full(num_points, SIGMA**2))
    state = make_lm_state(model, jnp.zeros(2), data, covariance)
    config = make_lm_config()
    result = lm_fit(state, model, config, max_iterations=200)
    return x, model, config, result


class TestChiSquared(chex.TestCase):
    """χ², degrees of freedom and reduced χ²."""

    def test_values(self) -> None:
        """Reduced χ² is χ² over N - M."""
        x, model, _, result = _line_fit()
        residuals = result.data - model.model_fn(result.params)
        chi2 = jnp.sum(residuals**2) / SIGMA**2
        chex.assert_trees_all_close(
            fit_chi_squared(result, model), chi2, rtol=1e-10
        )
        chex.assert_equal(degrees_of_freedom(result), 6)
        chex.assert_trees_all_close(
            reduced_chi_squared(result, model), chi2 / 6.0, rtol=1e-10
        )

    def test_no_degrees_of_freedom_raises(self) -> None:
        """A state with N <= M has no reduced χ²."""
        _, model, config, result = _line_fit()
        degenerate = result._replace(data=result.data[:2])
        with pytest.raises(ValueError, match="degrees of freedom"):
            degrees_of_freedom(degenerate)
        with pytest.raises(ValueError):
            reduced_chi_squared(degenerate, model)

    def test_mean_reduced_chi2_is_one(self) -> None:
        """Over many noise realisations the mean reduced χ² is near 1."""
        num_trials, num_points = 200, 20
        x = jnp.linspace(0.0, 1.0, num_points)
        model = make_polynomial_model(x, 1)
        truth = jnp.array([1.0, 2.0])
        keys = jax.random.split(jax.random.PRNGKey(42), num_trials)
        noise = jax.vmap(lambda k: jax.random.normal(k, (num_points,)))(keys)
        datasets = model.model_fn(truth) + SIGMA * noise
        base = make_lm_state(
            model,
            truth,
            datasets[0],
            make_diagonal_covariance(jnp.full(num_points, SIGMA**2)),
        )
        config = make_lm_config(exit_tolerance=1e-10)

        def fit_chi2(data: jnp.ndarray) -> jnp.ndarray:
            return lm_fit(
                base._replace(data=data), model, config, max_iterations=60
            ).chi2

        chi2 = jax.vmap(fit_chi2)(datasets)
        mean_reduced = float(jnp.mean(chi2)) / (num_points - 2)
        self.assertGreater(mean_reduced, 0.9)
        self.assertLess(mean_reduced, 1.1)


class TestParameterCovariance(chex.TestCase):
    """The asymptotic reducedχ² × (JᵗWJ)⁻¹ estimate."""

    def test_linear_closed_form(self) -> None:
        """Matches the weighted linear least-squares formula."""
        x, model, config, result = _line_fit()
        design = polynomial_design_matrix(x, 2)
        expected = reduced_chi_squared(result, model) * jnp.linalg.inv(
            design.T @ design / SIGMA**2
        )
        chex.assert_trees_all_close(
            parameter_covariance(result, model, config), expected, rtol=1e-9
        )

    def test_finite_difference_model_agrees(self) -> None:
        """Without an analytic Jacobian the estimate is unchanged."""
        x, model, config, result = _line_fit()
        fd_model = make_residual_model(
            model.model_fn, num_params=2, num_data=8
        )
        chex.assert_trees_all_close(
            parameter_covariance(result, fd_model, config),
            parameter_covariance(result, model, config),
            rtol=1e-8,
        )

    def test_minimal_degrees_of_freedom(self) -> None:
        """N = M + 1 gives finite statistics."""
        _, model, config, result = _line_fit(num_points=3)
        stats = summarize_fit(result, model, config)
        chex.assert_equal(stats.dof, 1)
        self.assertTrue(bool(jnp.isfinite(stats.reduced_chi2)))
        self.assertTrue(bool(jnp.all(jnp.isfinite(stats.covariance))))


class TestPropagatedCovariance(chex.TestCase):
    """Covariance propagated from the data by re-fitting."""

    def test_matches_scaled_asymptotic_estimate(self) -> None:
        """For a linear model it equals parameter_covariance / reducedχ²."""
        _, model, config, result = _line_fit()
        propagated = propagated_covariance(result, model, config)
        expected = parameter_covariance(
            result, model, config
        ) / reduced_chi_squared(result, model)
        chex.assert_shape(propagated, (2, 2))
        chex.assert_trees_all_close(propagated, expected, rtol=1e-6)

    def test_correlated_data(self) -> None:
        """With correlated data it equals (XᵗC⁻¹X)⁻¹."""
        idx = jnp.arange(8)
        matrix = SIGMA**2 * 0.5 ** jnp.abs(idx[:, None] - idx[None, :])
        x, model, config, result = _line_fit(
            covariance=make_full_covariance(matrix)
        )
        design = polynomial_design_matrix(x, 2)
        expected = jnp.linalg.inv(design.T @ jnp.linalg.inv(matrix) @ design)
        chex.assert_trees_all_close(
            propagated_covariance(result, model, config), expected, rtol=1e-6
        )


class TestDerivedQuantities(chex.TestCase):
    """Correlation, standard errors and the summary record."""

    def test_correlation_and_standard_error(self) -> None:
        """Known 2×2 covariance."""
        cov = jnp.array([[4.0, 2.0], [2.0, 9.0]])
        chex.assert_trees_all_close(
            parameter_correlation(cov),
            jnp.array([[1.0, 1.0 / 3.0], [1.0 / 3.0, 1.0]]),
        )
        chex.assert_trees_all_close(
            asymptotic_standard_error(cov), jnp.array([2.0, 3.0])
        )

    def test_summarize_fit(self) -> None:
        """The summary is consistent with the individual estimators."""
        _, model, config, result = _line_fit()
        stats = summarize_fit(result, model, config)
        chex.assert_equal(stats.dof, 6)
        chex.assert_trees_all_close(
            stats.reduced_chi2, stats.chi2 / 6.0, rtol=1e-12
        )
        chex.assert_trees_all_close(
            stats.standard_error,
            jnp.sqrt(jnp.diag(stats.covariance)),
            rtol=1e-12,
        )
        chex.assert_trees_all_close(
            jnp.diag(stats.correlation), jnp.ones(2), rtol=1e-12
        )
        off_diagonal = stats.correlation[0, 1]
        self.assertLess(float(jnp.abs(off_diagonal)), 1.0)
        chex.assert_trees_all_close(off_diagonal, stats.correlation[1, 0])
