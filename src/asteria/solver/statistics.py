"""Post-fit statistics and parameter covariance estimates.

Extended Summary
----------------
Everything here is computed on demand from a (usually finished)
:class:`asteria.types.LMState`; nothing is cached in the state.

Two independent estimators of the parameter covariance are provided:

- :func:`parameter_covariance` is the standard asymptotic estimate
  ``reducedχ² × (JᵗWJ)⁻¹`` evaluated at the fitted parameters. It
  matches the asymptotic standard errors and correlations reported by
  Gnuplot's ``fit``.
- :func:`propagated_covariance` propagates the data covariance through
  the fit itself, ``(dP/dY)ᵗ C (dP/dY)``. The sensitivity dP/dY is
  estimated with a fourth-order central difference, re-running the full
  fit for each perturbed data point.

The propagated estimate contains no reduced-χ² scaling, so
asymptotically it equals ``parameter_covariance / reducedχ²``.

Routine Listings
----------------
fit_chi_squared : function
    χ² at the state's parameters
degrees_of_freedom : function
    N - M, raising if not positive
reduced_chi_squared : function
    χ² / (N - M)
parameter_covariance : function
    Asymptotic covariance reducedχ² × (JᵗWJ)⁻¹
propagated_covariance : function
    Covariance propagated from the data by fourth-order differences
parameter_correlation : function
    Correlation matrix from a covariance matrix
asymptotic_standard_error : function
    Standard errors from a covariance matrix
summarize_fit : function
    Bundle all of the above into a FitStatistics record

Notes
-----
:func:`propagated_covariance` is only valid when the model is close to
linear within one or two standard deviations of the solution. This is
not checked; it is the caller's responsibility.
"""

from functools import partial

import jax
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from asteria.types import FitStatistics, LMConfig, LMState, ResidualModel
from asteria.utils import (
    chi_squared,
    propagate_covariance,
    symmetric_inverse,
    weighted_normal_matrix,
)

from .jacobian import model_jacobian
from .levenberg_marquardt import lm_fit

FOURTH_ORDER_OFFSETS = (-2.0, -1.0, 1.0, 2.0)
FOURTH_ORDER_WEIGHTS = (1.0, -8.0, 8.0, -1.0)


@partial(jax.jit, static_argnames=("model",))
@jaxtyped(typechecker=beartype)
def fit_chi_squared(state: LMState, model: ResidualModel) -> Float[Array, " "]:
    """χ² recomputed from the state's parameters and data."""
    residuals: Float[Array, " N"] = state.data - model.model_fn(state.params)
    return chi_squared(state.covariance, residuals)


@beartype
def degrees_of_freedom(state: LMState) -> int:
    """Degrees of freedom N - M of the fit.

    Parameters
    ----------
    state : LMState
        Fit state.

    Returns
    -------
    dof : int
        Number of data points minus number of parameters.

    Raises
    ------
    ValueError
        If N <= M; the reduced χ² and covariance are then undefined.
    """
    dof: int = int(state.data.shape[0]) - int(state.params.shape[0])
    if dof <= 0:
        raise ValueError(
            f"degrees of freedom must be positive, got {dof} "
            f"({state.data.shape[0]} data points, "
            f"{state.params.shape[0]} parameters)"
        )
    return dof


@partial(jax.jit, static_argnames=("model",))
@jaxtyped(typechecker=beartype)
def reduced_chi_squared(
    state: LMState, model: ResidualModel
) -> Float[Array, " "]:
    """χ² divided by the degrees of freedom; raises if N <= M."""
    dof: int = degrees_of_freedom(state)
    return fit_chi_squared(state, model) / dof


@partial(jax.jit, static_argnames=("model", "config"))
@jaxtyped(typechecker=beartype)
def parameter_covariance(
    state: LMState,
    model: ResidualModel,
    config: LMConfig,
) -> Float[Array, " M M"]:
    """Asymptotic parameter covariance reducedχ² × (JᵗWJ)⁻¹.

    Parameters
    ----------
    state : LMState
        Fit state, normally the output of :func:`asteria.solver.lm_fit`.
    model : ResidualModel
        Model that was fitted.
    config : LMConfig
        Solver configuration (finite-difference step if the model has
        no analytic Jacobian).

    Returns
    -------
    covariance : Float[Array, " M M"]
        Parameter covariance matrix. Contains NaNs if JᵗWJ is singular
        at the solution.
    """
    jacobian: Float[Array, " N M"] = model_jacobian(
        state.params, model, config
    )
    normal: Float[Array, " M M"] = weighted_normal_matrix(
        state.covariance, jacobian
    )
    return reduced_chi_squared(state, model) * symmetric_inverse(normal)


@partial(
    jax.jit,
    static_argnames=("model", "config", "max_iterations"),
)
@jaxtyped(typechecker=beartype)
def propagated_covariance(
    state: LMState,
    model: ResidualModel,
    config: LMConfig,
    max_iterations: int = 100,
) -> Float[Array, " M M"]:
    """Parameter covariance propagated from the data covariance.

    Estimates the sensitivity S = dP/dY (N×M) of the solution to each
    data value with the fourth-order central difference

        S[i] = (P(Y - 2h e_i) - 8 P(Y - h e_i)
                + 8 P(Y + h e_i) - P(Y + 2h e_i)) / (12 h)

    where P(Y) denotes a full re-fit, started from the state's
    parameters, to the perturbed data. The covariance is then
    Sᵗ C S.

    Parameters
    ----------
    state : LMState
        Converged fit state.
    model : ResidualModel
        Model that was fitted.
    config : LMConfig
        Solver configuration; ``config.h`` is the step applied to the
        data, so it should match the data's order of magnitude.
    max_iterations : int, optional
        Iteration budget of each re-fit. Default is 100.

    Returns
    -------
    covariance : Float[Array, " M M"]
        Propagated parameter covariance.

    Notes
    -----
    Requires 4N re-fits. The four fits per data point are batched with
    ``jax.vmap`` and the data points are processed sequentially with
    ``jax.lax.map``. Only valid if the model is close to linear within
    one or two standard deviations of the solution.
    """
    num_data: int = state.data.shape[0]
    offsets: Float[Array, " 4"] = config.h * jnp.asarray(
        FOURTH_ORDER_OFFSETS, dtype=state.data.dtype
    )
    weights: Float[Array, " 4"] = jnp.asarray(
        FOURTH_ORDER_WEIGHTS, dtype=state.data.dtype
    ) / (12.0 * config.h)

    def refit(data: Float[Array, " N"]) -> Float[Array, " M"]:
        return lm_fit(
            state._replace(data=data), model, config, max_iterations
        ).params

    def sensitivity_row(index: jnp.ndarray) -> Float[Array, " M"]:
        unit: Float[Array, " N"] = jnp.zeros_like(state.data).at[index].set(1.0)
        perturbed: Float[Array, " 4 N"] = (
            state.data[None, :] + offsets[:, None] * unit[None, :]
        )
        solutions: Float[Array, " 4 M"] = jax.vmap(refit)(perturbed)
        return weights @ solutions

    sensitivity: Float[Array, " N M"] = jax.lax.map(
        sensitivity_row, jnp.arange(num_data)
    )
    return propagate_covariance(state.covariance, sensitivity)


@jax.jit
@jaxtyped(typechecker=beartype)
def parameter_correlation(
    covariance: Float[Array, " M M"],
) -> Float[Array, " M M"]:
    """Correlation matrix cov_ij / sqrt(cov_ii cov_jj)."""
    sigma: Float[Array, " M"] = jnp.sqrt(jnp.diag(covariance))
    return covariance / jnp.outer(sigma, sigma)


@jax.jit
@jaxtyped(typechecker=beartype)
def asymptotic_standard_error(
    covariance: Float[Array, " M M"],
) -> Float[Array, " M"]:
    """Standard error sqrt(cov_ii) of each parameter."""
    return jnp.sqrt(jnp.diag(covariance))


@jaxtyped(typechecker=beartype)
def summarize_fit(
    state: LMState,
    model: ResidualModel,
    config: LMConfig,
) -> FitStatistics:
    """Collect the post-fit statistics of a finished fit.

    Parameters
    ----------
    state : LMState
        Finished fit state.
    model : ResidualModel
        Model that was fitted.
    config : LMConfig
        Solver configuration.

    Returns
    -------
    statistics : FitStatistics
        χ², reduced χ², DOF, asymptotic covariance, correlation and
        standard errors.

    Raises
    ------
    ValueError
        If the fit has no degrees of freedom.
    """
    dof: int = degrees_of_freedom(state)
    covariance: Float[Array, " M M"] = parameter_covariance(
        state, model, config
    )
    chi2: Float[Array, " "] = fit_chi_squared(state, model)
    return FitStatistics(
        chi2=chi2,
        reduced_chi2=chi2 / dof,
        dof=dof,
        covariance=covariance,
        correlation=parameter_correlation(covariance),
        standard_error=asymptotic_standard_error(covariance),
    )
