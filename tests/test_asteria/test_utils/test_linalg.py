"""Tests for weighted least-squares linear algebra."""

import chex
import jax
import jax.numpy as jnp
from absl.testing import parameterized

from asteria.types import make_diagonal_covariance, make_full_covariance
from asteria.utils import (
    apply_inverse_covariance,
    chi_squared,
    covariance_matrix,
    propagate_covariance,
    solve_normal_equations,
    symmetric_inverse,
    weighted_gradient,
    weighted_normal_matrix,
    whiten,
)


def _correlated_matrix(n: int) -> jnp.ndarray:
    """Exponentially correlated covariance with unequal variances."""
    idx = jnp.arange(n)
    sigma = 0.1 + 0.05 * idx
    corr = 0.6 ** jnp.abs(idx[:, None] - idx[None, :])
    return corr * jnp.outer(sigma, sigma)


class TestDiagonalFullEquivalence(chex.TestCase, parameterized.TestCase):
    """A FullCovariance of a diagonal matrix behaves like a Diagonal one."""

    def setUp(self) -> None:
        super().setUp()
        key = jax.random.PRNGKey(0)
        k1, k2, k3 = jax.random.split(key, 3)
        self.variance = jax.random.uniform(k1, (8,), minval=0.5, maxval=2.0)
        self.diag = make_diagonal_covariance(self.variance)
        self.full = make_full_covariance(jnp.diag(self.variance))
        self.residuals = jax.random.normal(k2, (8,))
        self.jacobian = jax.random.normal(k3, (8, 3))

    @chex.variants(with_jit=True, without_jit=True)
    def test_chi_squared(self) -> None:
        """χ² agrees between the two variants."""
        fn = self.variant(chi_squared)
        chex.assert_trees_all_close(
            fn(self.diag, self.residuals),
            fn(self.full, self.residuals),
            rtol=1e-12,
        )

    @chex.variants(with_jit=True, without_jit=True)
    def test_normal_matrix(self) -> None:
        """JᵗWJ agrees between the two variants."""
        fn = self.variant(weighted_normal_matrix)
        chex.assert_trees_all_close(
            fn(self.diag, self.jacobian),
            fn(self.full, self.jacobian),
            rtol=1e-12,
            atol=1e-12,
        )

    def test_gradient(self) -> None:
        """JᵗWr agrees between the two variants."""
        chex.assert_trees_all_close(
            weighted_gradient(self.diag, self.jacobian, self.residuals),
            weighted_gradient(self.full, self.jacobian, self.residuals),
            rtol=1e-12,
            atol=1e-12,
        )

    def test_whiten(self) -> None:
        """Whitening divides by the standard deviation in both variants."""
        expected = self.residuals / jnp.sqrt(self.variance)
        chex.assert_trees_all_close(
            whiten(self.diag, self.residuals), expected, rtol=1e-12
        )
        chex.assert_trees_all_close(
            whiten(self.full, self.residuals), expected, rtol=1e-12
        )

    def test_propagate_covariance(self) -> None:
        """SᵗCS agrees between the two variants."""
        chex.assert_trees_all_close(
            propagate_covariance(self.diag, self.jacobian),
            propagate_covariance(self.full, self.jacobian),
            rtol=1e-12,
            atol=1e-12,
        )

    def test_covariance_matrix(self) -> None:
        """Both variants expand to the same dense matrix."""
        chex.assert_trees_all_close(
            covariance_matrix(self.diag), covariance_matrix(self.full)
        )


class TestFullCovarianceAgainstExplicitInverse(chex.TestCase):
    """Correlated weighting matches products with an explicit C⁻¹."""

    def setUp(self) -> None:
        super().setUp()
        self.matrix = _correlated_matrix(6)
        self.cov = make_full_covariance(self.matrix)
        self.weight = jnp.linalg.inv(self.matrix)
        key = jax.random.PRNGKey(1)
        k1, k2 = jax.random.split(key)
        self.residuals = jax.random.normal(k1, (6,))
        self.jacobian = jax.random.normal(k2, (6, 2))

    def test_chi_squared(self) -> None:
        """rᵗC⁻¹r from the Cholesky path matches the explicit form."""
        expected = self.residuals @ self.weight @ self.residuals
        chex.assert_trees_all_close(
            chi_squared(self.cov, self.residuals), expected, rtol=1e-10
        )

    def test_normal_matrix_and_gradient(self) -> None:
        """JᵗC⁻¹J and JᵗC⁻¹r match the explicit forms."""
        chex.assert_trees_all_close(
            weighted_normal_matrix(self.cov, self.jacobian),
            self.jacobian.T @ self.weight @ self.jacobian,
            rtol=1e-10,
            atol=1e-12,
        )
        chex.assert_trees_all_close(
            weighted_gradient(self.cov, self.jacobian, self.residuals),
            self.jacobian.T @ self.weight @ self.residuals,
            rtol=1e-10,
            atol=1e-12,
        )

    def test_apply_inverse_covariance(self) -> None:
        """C⁻¹x by Cholesky solve matches the explicit product."""
        chex.assert_trees_all_close(
            apply_inverse_covariance(self.cov, self.residuals),
            self.weight @ self.residuals,
            rtol=1e-10,
            atol=1e-12,
        )

    def test_whitened_norm_is_chi_squared(self) -> None:
        """|L⁻¹r|² equals χ²."""
        whitened = whiten(self.cov, self.residuals)
        chex.assert_trees_all_close(
            jnp.sum(whitened**2),
            chi_squared(self.cov, self.residuals),
            rtol=1e-12,
        )


class TestSolvers(chex.TestCase):
    """Test the symmetric solve and inverse helpers."""

    def test_solve_positive_definite(self) -> None:
        """An SPD system is solved and flagged as such."""
        matrix = jnp.array([[4.0, 1.0], [1.0, 3.0]])
        rhs = jnp.array([1.0, 2.0])
        solution, solved = solve_normal_equations(matrix, rhs)
        chex.assert_equal(bool(solved), True)
        chex.assert_trees_all_close(
            solution, jnp.linalg.solve(matrix, rhs), rtol=1e-12
        )

    def test_solve_singular_is_flagged(self) -> None:
        """A singular system does not raise; the flag is False."""
        matrix = jnp.array([[2.0, 0.0], [0.0, 0.0]])
        rhs = jnp.array([1.0, 0.0])
        _, solved = solve_normal_equations(matrix, rhs)
        chex.assert_equal(bool(solved), False)

    def test_solve_indefinite_is_flagged(self) -> None:
        """An indefinite system is flagged as unsolved."""
        matrix = jnp.array([[1.0, 2.0], [2.0, 1.0]])
        _, solved = solve_normal_equations(matrix, jnp.ones(2))
        chex.assert_equal(bool(solved), False)

    def test_symmetric_inverse(self) -> None:
        """The inverse is exactly symmetric and matches jnp.linalg.inv."""
        matrix = _correlated_matrix(4)
        inverse = symmetric_inverse(matrix)
        chex.assert_trees_all_equal(inverse, inverse.T)
        chex.assert_trees_all_close(
            inverse, jnp.linalg.inv(matrix), rtol=1e-9, atol=1e-10
        )
        chex.assert_trees_all_close(
            inverse @ matrix, jnp.eye(4), atol=1e-10
        )
