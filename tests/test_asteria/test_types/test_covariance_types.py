"""Tests for covariance types and their factory functions."""

import chex
import jax
import jax.numpy as jnp
import pytest
from absl.testing import parameterized

from asteria.types import (
    DiagonalCovariance,
    FullCovariance,
    make_diagonal_covariance,
    make_full_covariance,
)


class TestMakeDiagonalCovariance(chex.TestCase, parameterized.TestCase):
    """Test the make_diagonal_covariance factory function."""

    def test_basic_creation(self) -> None:
        """Valid variances produce a float64 DiagonalCovariance."""
        variance = jnp.array([0.1, 0.2, 0.3])
        cov = make_diagonal_covariance(variance)

        chex.assert_equal(type(cov).__name__, "DiagonalCovariance")
        chex.assert_shape(cov.variance, (3,))
        chex.assert_equal(cov.variance.dtype, jnp.float64)
        chex.assert_trees_all_close(cov.variance, variance)

    @parameterized.named_parameters(
        ("zero", jnp.array([1.0, 0.0, 1.0])),
        ("negative", jnp.array([1.0, -2.0, 1.0])),
        ("nan", jnp.array([1.0, jnp.nan, 1.0])),
        ("inf", jnp.array([jnp.inf, 1.0, 1.0])),
    )
    def test_invalid_variance_raises(self, variance: jnp.ndarray) -> None:
        """Non-positive or non-finite variances are configuration errors."""
        with pytest.raises(ValueError):
            make_diagonal_covariance(variance)

    def test_is_pytree(self) -> None:
        """The covariance flattens to its single variance leaf."""
        cov = make_diagonal_covariance(jnp.ones(4))
        leaves = jax.tree_util.tree_leaves(cov)
        chex.assert_equal(len(leaves), 1)
        doubled = jax.tree_util.tree_map(lambda v: 2.0 * v, cov)
        chex.assert_equal(isinstance(doubled, DiagonalCovariance), True)
        chex.assert_trees_all_close(doubled.variance, 2.0 * jnp.ones(4))


class TestMakeFullCovariance(chex.TestCase):
    """Test the make_full_covariance factory function."""

    def test_cholesky_reconstructs_matrix(self) -> None:
        """Stored factor satisfies L @ L.T == C."""
        matrix = jnp.array(
            [[4.0, 1.0, 0.5], [1.0, 3.0, 0.2], [0.5, 0.2, 2.0]]
        )
        cov = make_full_covariance(matrix)

        chex.assert_equal(type(cov).__name__, "FullCovariance")
        chex.assert_trees_all_close(
            cov.cholesky @ cov.cholesky.T, matrix, rtol=1e-12
        )
        chex.assert_trees_all_close(
            jnp.triu(cov.cholesky, k=1), jnp.zeros((3, 3))
        )

    def test_asymmetric_raises(self) -> None:
        """A visibly asymmetric matrix is rejected."""
        matrix = jnp.array([[2.0, 0.5], [0.1, 2.0]])
        with pytest.raises(ValueError, match="symmetric"):
            make_full_covariance(matrix)

    def test_non_square_raises(self) -> None:
        """A rectangular matrix is rejected with a ValueError."""
        with pytest.raises(ValueError, match="square"):
            make_full_covariance(jnp.ones((3, 4)))

    def test_indefinite_raises(self) -> None:
        """A symmetric but indefinite matrix is rejected."""
        matrix = jnp.array([[1.0, 2.0], [2.0, 1.0]])
        with pytest.raises(ValueError, match="positive definite"):
            make_full_covariance(matrix)

    def test_non_finite_raises(self) -> None:
        """NaN entries are rejected before factorisation."""
        matrix = jnp.array([[1.0, jnp.nan], [jnp.nan, 1.0]])
        with pytest.raises(ValueError, match="non-finite"):
            make_full_covariance(matrix)

    def test_tiny_asymmetry_is_symmetrised(self) -> None:
        """Roundoff-level asymmetry is accepted and removed."""
        matrix = jnp.array([[2.0, 0.5], [0.5 + 1e-15, 2.0]])
        cov = make_full_covariance(matrix)
        chex.assert_trees_all_equal(cov.matrix, cov.matrix.T)

    def test_is_pytree(self) -> None:
        """The covariance round-trips through flatten/unflatten."""
        cov = make_full_covariance(jnp.eye(3))
        leaves, treedef = jax.tree_util.tree_flatten(cov)
        chex.assert_equal(len(leaves), 2)
        rebuilt = jax.tree_util.tree_unflatten(treedef, leaves)
        chex.assert_equal(isinstance(rebuilt, FullCovariance), True)
        chex.assert_trees_all_close(rebuilt.matrix, jnp.eye(3))
