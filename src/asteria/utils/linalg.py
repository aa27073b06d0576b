"""Dense linear algebra for weighted least squares.

Extended Summary
----------------
Every matrix operation the solver needs is expressed here on top of
``jax.numpy`` and ``jax.scipy.linalg``. Operations that involve the
data weighting W = C⁻¹ are implemented once per covariance variant:

- ``DiagonalCovariance``: W is applied as the elementwise reciprocal of
  the variances.
- ``FullCovariance``: W is applied through the stored Cholesky factor
  L (C = L Lᵗ), either as a triangular solve (whitening, L⁻¹x) or as a
  Cholesky solve (C⁻¹x). C is never inverted explicitly.

Routine Listings
----------------
whiten : function
    Apply L⁻¹ (or 1/σ) to a vector or matrix of data-space values
apply_inverse_covariance : function
    Apply W = C⁻¹ to data-space values
chi_squared : function
    Compute rᵗ W r
weighted_normal_matrix : function
    Compute Jᵗ W J
weighted_gradient : function
    Compute Jᵗ W r
propagate_covariance : function
    Compute Sᵗ C S for a data -> parameter sensitivity S
covariance_matrix : function
    Dense N×N form of a covariance
solve_normal_equations : function
    Cholesky solve of a symmetric system with a success flag
symmetric_inverse : function
    Inverse of a symmetric positive-definite matrix

Notes
-----
The covariance variant is resolved with ``isinstance`` at trace time,
so each variant compiles to its own specialised code path.
"""

import jax
import jax.numpy as jnp
import jax.scipy.linalg as jsp_linalg
from beartype import beartype
from beartype.typing import Tuple
from jaxtyping import Array, Bool, Float, jaxtyped

from asteria.types import DataCovariance, DiagonalCovariance


def _broadcast_rows(
    vector: Float[Array, " N"], values: Float[Array, " N ..."]
) -> Float[Array, " N ..."]:
    return vector.reshape((-1,) + (1,) * (values.ndim - 1))


@jax.jit
@jaxtyped(typechecker=beartype)
def whiten(
    covariance: DataCovariance,
    values: Float[Array, " N ..."],
) -> Float[Array, " N ..."]:
    """Apply the inverse square root of the covariance to data values.

    Parameters
    ----------
    covariance : DataCovariance
        Data covariance.
    values : Float[Array, " N ..."]
        Vector (N,) or matrix (N, K) of data-space values.

    Returns
    -------
    whitened : Float[Array, " N ..."]
        ``L⁻¹ values``, or ``values / σ`` in the diagonal case.
    """
    if isinstance(covariance, DiagonalCovariance):
        sigma: Float[Array, " N"] = jnp.sqrt(covariance.variance)
        return values / _broadcast_rows(sigma, values)
    return jsp_linalg.solve_triangular(covariance.cholesky, values, lower=True)


@jax.jit
@jaxtyped(typechecker=beartype)
def apply_inverse_covariance(
    covariance: DataCovariance,
    values: Float[Array, " N ..."],
) -> Float[Array, " N ..."]:
    """Apply the weight matrix W = C⁻¹ to data values.

    Parameters
    ----------
    covariance : DataCovariance
        Data covariance.
    values : Float[Array, " N ..."]
        Vector (N,) or matrix (N, K) of data-space values.

    Returns
    -------
    weighted : Float[Array, " N ..."]
        ``C⁻¹ values``.
    """
    if isinstance(covariance, DiagonalCovariance):
        return values / _broadcast_rows(covariance.variance, values)
    return jsp_linalg.cho_solve((covariance.cholesky, True), values)


@jax.jit
@jaxtyped(typechecker=beartype)
def chi_squared(
    covariance: DataCovariance,
    residuals: Float[Array, " N"],
) -> Float[Array, " "]:
    """Compute the χ² statistic rᵗ C⁻¹ r.

    Parameters
    ----------
    covariance : DataCovariance
        Data covariance.
    residuals : Float[Array, " N"]
        Data minus model.

    Returns
    -------
    chi2 : Float[Array, " "]
        Weighted sum of squared residuals.
    """
    if isinstance(covariance, DiagonalCovariance):
        return jnp.sum(residuals**2 / covariance.variance)
    whitened: Float[Array, " N"] = whiten(covariance, residuals)
    return jnp.sum(whitened**2)


@jax.jit
@jaxtyped(typechecker=beartype)
def weighted_normal_matrix(
    covariance: DataCovariance,
    jacobian: Float[Array, " N M"],
) -> Float[Array, " M M"]:
    """Compute the normal matrix Jᵗ W J.

    Parameters
    ----------
    covariance : DataCovariance
        Data covariance.
    jacobian : Float[Array, " N M"]
        Model Jacobian.

    Returns
    -------
    normal : Float[Array, " M M"]
        Symmetric positive semi-definite normal matrix.
    """
    if isinstance(covariance, DiagonalCovariance):
        return (jacobian.T / covariance.variance) @ jacobian
    whitened: Float[Array, " N M"] = whiten(covariance, jacobian)
    return whitened.T @ whitened


@jax.jit
@jaxtyped(typechecker=beartype)
def weighted_gradient(
    covariance: DataCovariance,
    jacobian: Float[Array, " N M"],
    residuals: Float[Array, " N"],
) -> Float[Array, " M"]:
    """Compute the right-hand side Jᵗ W r of the normal equations.

    Parameters
    ----------
    covariance : DataCovariance
        Data covariance.
    jacobian : Float[Array, " N M"]
        Model Jacobian.
    residuals : Float[Array, " N"]
        Data minus model.

    Returns
    -------
    gradient : Float[Array, " M"]
        Weighted projection of the residuals onto the Jacobian columns.
    """
    if isinstance(covariance, DiagonalCovariance):
        return jacobian.T @ (residuals / covariance.variance)
    return whiten(covariance, jacobian).T @ whiten(covariance, residuals)


@jax.jit
@jaxtyped(typechecker=beartype)
def propagate_covariance(
    covariance: DataCovariance,
    sensitivity: Float[Array, " N M"],
) -> Float[Array, " M M"]:
    """Propagate data covariance through a linear sensitivity.

    Parameters
    ----------
    covariance : DataCovariance
        Data covariance C.
    sensitivity : Float[Array, " N M"]
        Derivative of the M outputs with respect to the N data values.

    Returns
    -------
    propagated : Float[Array, " M M"]
        ``Sᵗ C S``.
    """
    if isinstance(covariance, DiagonalCovariance):
        return (sensitivity.T * covariance.variance) @ sensitivity
    return sensitivity.T @ covariance.matrix @ sensitivity


@jax.jit
@jaxtyped(typechecker=beartype)
def covariance_matrix(covariance: DataCovariance) -> Float[Array, " N N"]:
    """Return the dense N×N form of either covariance variant."""
    if isinstance(covariance, DiagonalCovariance):
        return jnp.diag(covariance.variance)
    return covariance.matrix


@jax.jit
@jaxtyped(typechecker=beartype)
def solve_normal_equations(
    matrix: Float[Array, " M M"],
    rhs: Float[Array, " M"],
) -> Tuple[Float[Array, " M"], Bool[Array, " "]]:
    """Solve a symmetric positive-definite system by Cholesky.

    A singular or indefinite matrix does not raise: the Cholesky factor
    then contains NaNs and the returned flag is False.

    Parameters
    ----------
    matrix : Float[Array, " M M"]
        Symmetric system matrix.
    rhs : Float[Array, " M"]
        Right-hand side.

    Returns
    -------
    solution : Float[Array, " M"]
        Solution vector. Only meaningful when ``solved`` is True.
    solved : Bool[Array, " "]
        Whether the factorisation and solve produced finite values.
    """
    factor: Float[Array, " M M"] = jnp.linalg.cholesky(matrix)
    solution: Float[Array, " M"] = jsp_linalg.cho_solve((factor, True), rhs)
    solved: Bool[Array, " "] = jnp.all(jnp.isfinite(factor)) & jnp.all(
        jnp.isfinite(solution)
    )
    return solution, solved


@jax.jit
@jaxtyped(typechecker=beartype)
def symmetric_inverse(matrix: Float[Array, " M M"]) -> Float[Array, " M M"]:
    """Invert a symmetric positive-definite matrix via its Cholesky factor.

    Parameters
    ----------
    matrix : Float[Array, " M M"]
        Symmetric positive-definite matrix.

    Returns
    -------
    inverse : Float[Array, " M M"]
        Symmetrised inverse. Contains NaNs if ``matrix`` is singular.
    """
    factor: Float[Array, " M M"] = jnp.linalg.cholesky(matrix)
    inverse: Float[Array, " M M"] = jsp_linalg.cho_solve(
        (factor, True), jnp.eye(matrix.shape[0], dtype=matrix.dtype)
    )
    return 0.5 * (inverse + inverse.T)
