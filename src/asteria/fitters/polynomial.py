"""One-dimensional polynomial fitter.

Extended Summary
----------------
Binds sample abscissae x to a polynomial model

    f(x; p) = p_0 + p_1 x + p_2 x² + ... + p_d x^d

The model is linear in its coefficients, so the analytic Jacobian is
the constant increasing-order Vandermonde matrix and the fit converges
to the weighted linear least-squares solution.

Routine Listings
----------------
polynomial_design_matrix : function
    Increasing-order Vandermonde matrix of the abscissae
make_polynomial_model : function
    ResidualModel for a polynomial of given degree
"""

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from asteria.types import ResidualModel, make_residual_model


@jaxtyped(typechecker=beartype)
def polynomial_design_matrix(
    x: Float[Array, " N"],
    num_coefficients: int,
) -> Float[Array, " N M"]:
    """Columns x⁰, x¹, ..., x^(num_coefficients - 1)."""
    return jnp.vander(x, num_coefficients, increasing=True)


@jaxtyped(typechecker=beartype)
def make_polynomial_model(
    x: Float[Array, " N"],
    degree: int,
) -> ResidualModel:
    """Create a ResidualModel for a polynomial in x.

    Parameters
    ----------
    x : Float[Array, " N"]
        Abscissae of the N data points.
    degree : int
        Polynomial degree d; the model has d + 1 coefficients ordered
        from the constant term upwards.

    Returns
    -------
    model : ResidualModel
        Model with an analytic Jacobian.

    Raises
    ------
    ValueError
        If the degree is negative or there are not more data points
        than coefficients.
    """
    if degree < 0:
        raise ValueError(f"degree must be non-negative, got {degree}")
    x_arr: Float[Array, " N"] = jnp.asarray(x, dtype=jnp.float64)
    num_coefficients: int = degree + 1
    design: Float[Array, " N M"] = polynomial_design_matrix(
        x_arr, num_coefficients
    )

    def model_fn(params: Float[Array, " M"]) -> Float[Array, " N"]:
        return design @ params

    def jacobian_fn(params: Float[Array, " M"]) -> Float[Array, " N M"]:
        return design

    return make_residual_model(
        model_fn,
        num_params=num_coefficients,
        num_data=x_arr.shape[0],
        jacobian_fn=jacobian_fn,
    )
