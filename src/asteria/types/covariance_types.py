"""Data covariance representations for weighted least squares.

Extended Summary
----------------
The noise on the observed data enters the fit only through its
covariance. Two closed variants are provided, and every weighting
operation in :mod:`asteria.utils.linalg` is implemented once per
variant:

- ``DiagonalCovariance`` stores only the N variances. Weighting uses
  the elementwise reciprocal; the diagonal is never inverted as a
  general matrix.
- ``FullCovariance`` stores the N×N symmetric positive-definite matrix
  together with its lower Cholesky factor, computed once at
  construction. Weighting uses triangular solves against that factor.

Routine Listings
----------------
DiagonalCovariance : NamedTuple
    PyTree for uncorrelated data errors (variance vector)
FullCovariance : NamedTuple
    PyTree for correlated data errors (matrix and Cholesky factor)
DataCovariance : TypeAlias
    Union of the two covariance variants
make_diagonal_covariance : function
    Factory function to create a validated DiagonalCovariance
make_full_covariance : function
    Factory function to create a validated FullCovariance

Notes
-----
The factories validate concrete values and raise ``ValueError`` on bad
input, so they must be called eagerly (outside ``jax.jit``). Once
built, both variants are ordinary PyTrees and can be carried through
jitted and vmapped solver code.
"""

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import NamedTuple, Tuple, TypeAlias, Union
from jax.tree_util import register_pytree_node_class
from jaxtyping import Array, Float, jaxtyped

SYMMETRY_RTOL = 1e-10
SYMMETRY_ATOL = 1e-14


@register_pytree_node_class
class DiagonalCovariance(NamedTuple):
    """Covariance of uncorrelated data, stored as variances.

    Attributes
    ----------
    variance : Float[Array, " N"]
        Variance of each data point. Strictly positive.
    """

    variance: Float[Array, " N"]

    def tree_flatten(self) -> Tuple[Tuple[Float[Array, " N"]], None]:
        """Flatten the DiagonalCovariance into a tuple of its components."""
        return ((self.variance,), None)

    @classmethod
    def tree_unflatten(
        cls,
        _aux_data: None,
        children: Tuple[Float[Array, " N"]],
    ) -> "DiagonalCovariance":
        """Unflatten the DiagonalCovariance from a tuple of its components."""
        return cls(*children)


@register_pytree_node_class
class FullCovariance(NamedTuple):
    """Covariance of correlated data, stored as a dense matrix.

    Attributes
    ----------
    matrix : Float[Array, " N N"]
        Symmetric positive-definite covariance matrix.
    cholesky : Float[Array, " N N"]
        Lower-triangular factor L with ``matrix = L @ L.T``.
    """

    matrix: Float[Array, " N N"]
    cholesky: Float[Array, " N N"]

    def tree_flatten(
        self,
    ) -> Tuple[Tuple[Float[Array, " N N"], Float[Array, " N N"]], None]:
        """Flatten the FullCovariance into a tuple of its components."""
        return ((self.matrix, self.cholesky), None)

    @classmethod
    def tree_unflatten(
        cls,
        _aux_data: None,
        children: Tuple[Float[Array, " N N"], Float[Array, " N N"]],
    ) -> "FullCovariance":
        """Unflatten the FullCovariance from a tuple of its components."""
        return cls(*children)


DataCovariance: TypeAlias = Union[DiagonalCovariance, FullCovariance]


@jaxtyped(typechecker=beartype)
def make_diagonal_covariance(
    variance: Float[Array, " N"],
) -> DiagonalCovariance:
    """Create a validated DiagonalCovariance.

    Parameters
    ----------
    variance : Float[Array, " N"]
        Variance of each data point.

    Returns
    -------
    covariance : DiagonalCovariance
        Validated diagonal covariance.

    Raises
    ------
    ValueError
        If the variances are empty, non-finite or not strictly positive.
    """
    variance_arr: Float[Array, " N"] = jnp.asarray(variance, dtype=jnp.float64)
    if variance_arr.shape[0] == 0:
        raise ValueError("variance must contain at least one element")
    if not bool(jnp.all(jnp.isfinite(variance_arr))):
        raise ValueError("variance contains non-finite values")
    if not bool(jnp.all(variance_arr > 0.0)):
        raise ValueError("variance must be strictly positive")
    return DiagonalCovariance(variance=variance_arr)


@jaxtyped(typechecker=beartype)
def make_full_covariance(
    matrix: Float[Array, " N K"],
) -> FullCovariance:
    """Create a validated FullCovariance.

    The matrix must be square, symmetric to within a tight relative
    tolerance and positive definite. The stored matrix is the exact
    symmetric part ``(C + C.T) / 2`` so that roundoff asymmetry in the
    caller's input does not leak into the fit.

    Parameters
    ----------
    matrix : Float[Array, " N K"]
        Covariance matrix of the data points. Must be square.

    Returns
    -------
    covariance : FullCovariance
        Validated covariance with its Cholesky factor.

    Raises
    ------
    ValueError
        If the matrix is empty, not square, non-finite, asymmetric or
        not positive definite.
    """
    matrix_arr: Float[Array, " N K"] = jnp.asarray(matrix, dtype=jnp.float64)
    if matrix_arr.shape[0] == 0:
        raise ValueError("covariance matrix must not be empty")
    if matrix_arr.shape[0] != matrix_arr.shape[1]:
        raise ValueError(
            f"covariance matrix must be square, got shape {matrix_arr.shape}"
        )
    if not bool(jnp.all(jnp.isfinite(matrix_arr))):
        raise ValueError("covariance matrix contains non-finite values")
    if not bool(
        jnp.allclose(
            matrix_arr, matrix_arr.T, rtol=SYMMETRY_RTOL, atol=SYMMETRY_ATOL
        )
    ):
        raise ValueError("covariance matrix is not symmetric")
    symmetric: Float[Array, " N N"] = 0.5 * (matrix_arr + matrix_arr.T)
    cholesky: Float[Array, " N N"] = jnp.linalg.cholesky(symmetric)
    if not bool(jnp.all(jnp.isfinite(cholesky))) or not bool(
        jnp.all(jnp.diag(cholesky) > 0.0)
    ):
        raise ValueError("covariance matrix is not positive definite")
    return FullCovariance(matrix=symmetric, cholesky=cholesky)
