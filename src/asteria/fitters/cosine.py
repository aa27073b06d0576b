"""Cosine curve fitter.

Extended Summary
----------------
Binds sample times t to the two-parameter model

    f(t; a, ω) = a cos(ω t)

with analytic partial derivatives

    ∂f/∂a = cos(ω t),    ∂f/∂ω = -a t sin(ω t)

Routine Listings
----------------
make_cosine_model : function
    ResidualModel for a·cos(ωt)

Notes
-----
The χ² surface is multimodal in ω; the initial guess must lie within
the basin of the true frequency (roughly within half a period of phase
error accumulated over the time span).
"""

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from asteria.types import ResidualModel, make_residual_model

NUM_COSINE_PARAMS = 2


@jaxtyped(typechecker=beartype)
def make_cosine_model(t: Float[Array, " N"]) -> ResidualModel:
    """Create a ResidualModel for a·cos(ωt).

    Parameters
    ----------
    t : Float[Array, " N"]
        Sample times.

    Returns
    -------
    model : ResidualModel
        Model with parameters (a, ω) and an analytic Jacobian.
    """
    t_arr: Float[Array, " N"] = jnp.asarray(t, dtype=jnp.float64)

    def model_fn(params: Float[Array, " 2"]) -> Float[Array, " N"]:
        return params[0] * jnp.cos(params[1] * t_arr)

    def jacobian_fn(params: Float[Array, " 2"]) -> Float[Array, " N 2"]:
        phase: Float[Array, " N"] = params[1] * t_arr
        return jnp.stack(
            [jnp.cos(phase), -params[0] * t_arr * jnp.sin(phase)], axis=1
        )

    return make_residual_model(
        model_fn,
        num_params=NUM_COSINE_PARAMS,
        num_data=t_arr.shape[0],
        jacobian_fn=jacobian_fn,
    )
