"""Model Jacobians for the Levenberg-Marquardt solver.

Extended Summary
----------------
The solver needs J = ∂model_i/∂param_j at every iteration. A concrete
fitter can supply it analytically through ``ResidualModel.jacobian_fn``.
If it does not, the Jacobian is approximated by central finite
differences:

    J[:, j] = (model(P + h_j e_j) - model(P - h_j e_j)) / (2 h_j)

which costs 2M model evaluations and has O(h²) truncation error. The
2M evaluations are batched with ``jax.vmap``.

Routine Listings
----------------
finite_difference_jacobian : function
    Central-difference Jacobian with per-parameter steps
autodiff_jacobian : function
    Build an exact Jacobian function by forward-mode autodiff
model_jacobian : function
    Jacobian of a ResidualModel, analytic if available
apply_post_update : function
    Apply a ResidualModel's post-update hook to trial parameters

Notes
-----
The post-update hook is not applied to the perturbed points of the
finite-difference stencil, so the quotient is a derivative of
``model_fn`` alone.
"""

from functools import partial

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Callable
from jaxtyping import Array, Float, jaxtyped

from asteria.types import LMConfig, ResidualModel


@partial(jax.jit, static_argnums=(0,))
@jaxtyped(typechecker=beartype)
def finite_difference_jacobian(
    model_fn: Callable[[Float[Array, " M"]], Float[Array, " N"]],
    params: Float[Array, " M"],
    step_sizes: Float[Array, " M"],
) -> Float[Array, " N M"]:
    """Approximate the model Jacobian by central finite differences.

    Parameters
    ----------
    model_fn : Callable[[Float[Array, " M"]], Float[Array, " N"]]
        Parameters -> model values. Must be vmappable.
    params : Float[Array, " M"]
        Point at which to differentiate.
    step_sizes : Float[Array, " M"]
        Absolute step h_j for each parameter.

    Returns
    -------
    jacobian : Float[Array, " N M"]
        Central-difference estimate of ∂model/∂params.

    Examples
    --------
    >>> x = jnp.linspace(0.0, 1.0, 5)
    >>> jac = finite_difference_jacobian(
    ...     lambda p: p[0] * x**2, jnp.array([2.0]), jnp.array([1e-3])
    ... )
    """
    offsets: Float[Array, " M M"] = jnp.diag(step_sizes)
    forward: Float[Array, " M N"] = jax.vmap(model_fn)(params + offsets)
    backward: Float[Array, " M N"] = jax.vmap(model_fn)(params - offsets)
    columns: Float[Array, " M N"] = (forward - backward) / (
        2.0 * step_sizes[:, None]
    )
    return columns.T


def autodiff_jacobian(
    model_fn: Callable[[Float[Array, " M"]], Float[Array, " N"]],
) -> Callable[[Float[Array, " M"]], Float[Array, " N M"]]:
    """Build an exact Jacobian function for a traceable model.

    Uses forward-mode autodiff, which is the efficient direction when
    there are fewer parameters than data points.

    Parameters
    ----------
    model_fn : Callable[[Float[Array, " M"]], Float[Array, " N"]]
        Parameters -> model values, written with ``jax.numpy``.

    Returns
    -------
    jacobian_fn : Callable[[Float[Array, " M"]], Float[Array, " N M"]]
        Function suitable for ``ResidualModel.jacobian_fn``.
    """
    return jax.jacfwd(model_fn)


@partial(jax.jit, static_argnames=("model", "config"))
@jaxtyped(typechecker=beartype)
def model_jacobian(
    params: Float[Array, " M"],
    model: ResidualModel,
    config: LMConfig,
) -> Float[Array, " N M"]:
    """Jacobian of a ResidualModel at the given parameters.

    Parameters
    ----------
    params : Float[Array, " M"]
        Point at which to differentiate.
    model : ResidualModel
        Model supplying either an analytic Jacobian or the function to
        difference.
    config : LMConfig
        Supplies the uniform step ``h`` when the model gives no
        per-parameter steps.

    Returns
    -------
    jacobian : Float[Array, " N M"]
        Analytic Jacobian if ``model.jacobian_fn`` is set, otherwise the
        central-difference approximation.
    """
    if model.jacobian_fn is not None:
        return model.jacobian_fn(params)
    if model.step_sizes is not None:
        steps: Float[Array, " M"] = jnp.asarray(
            model.step_sizes, dtype=params.dtype
        )
    else:
        steps = jnp.full(params.shape, config.h, dtype=params.dtype)
    return finite_difference_jacobian(model.model_fn, params, steps)


@partial(jax.jit, static_argnames=("model",))
@jaxtyped(typechecker=beartype)
def apply_post_update(
    params: Float[Array, " M"],
    model: ResidualModel,
) -> Float[Array, " M"]:
    """Apply the model's post-update hook, or return params unchanged."""
    if model.post_update_fn is None:
        return params
    return model.post_update_fn(params)
