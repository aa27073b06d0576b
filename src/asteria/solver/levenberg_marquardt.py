"""Levenberg-Marquardt iteration for weighted nonlinear least squares.

Extended Summary
----------------
Fits the parameters P of a model f(P) to data Y with covariance C by
minimising

    χ²(P) = (Y - f(P))ᵗ C⁻¹ (Y - f(P))

Each trial step solves the damped normal equations

    (JᵗWJ + λ·diag(JᵗWJ)) Δp = JᵗW r

with W = C⁻¹ and r = Y - f(P). The diagonal of JᵗWJ (Marquardt
scaling) rather than the identity is used as the damping metric, so
each parameter's step is scaled by its own curvature. A step that
lowers χ² is accepted and λ shrinks by ``boost_shrink_factor``; any
other step is rejected and λ grows by the same factor. A normal
equation solve that fails (singular or indefinite system) counts as a
rejected step.

Routine Listings
----------------
lm_start : function
    Prime a state: χ², starting damping and damping ceiling
lm_iteration : function
    One trial step with accept/reject and convergence tests
lm_fit : function
    Run trial steps until converged, stuck or out of budget
lm_history : function
    As lm_fit, also returning the per-iteration states

Notes
-----
A fit ends in one of three ways, recorded in ``LMState.status``:

- ``STATUS_CONVERGED``: an accepted step changed χ² by a relative
  amount below ``exit_tolerance`` (or χ² is exactly zero).
- ``STATUS_STUCK``: λ exceeded ``max_damping`` times its starting
  value, so no step can lower χ² any more. A χ² that is not finite at
  the current parameters is also stuck.
- ``STATUS_MAX_ITERATIONS``: the iteration budget ran out.

In every case ``params`` holds the best parameters found. Rejected
steps consume the iteration budget just like accepted ones; this
bounds the total work of a fit by ``max_iterations`` model/Jacobian
evaluations.

References
----------
.. [1] Marquardt, "An Algorithm for Least-Squares Estimation of
   Nonlinear Parameters", SIAM J. Appl. Math. 11 (1963)
.. [2] Press et al., "Numerical Recipes", 3rd ed., Section 15.5
"""

import logging
from functools import partial

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Tuple
from jaxtyping import Array, Bool, Float, Int, jaxtyped

from asteria.types import (
    STATUS_CONVERGED,
    STATUS_MAX_ITERATIONS,
    STATUS_RUNNING,
    STATUS_STUCK,
    LMConfig,
    LMState,
    ResidualModel,
)
from asteria.utils import (
    chi_squared,
    solve_normal_equations,
    weighted_gradient,
    weighted_normal_matrix,
)

from .jacobian import apply_post_update, model_jacobian

logger = logging.getLogger(__name__)

INITIAL_DAMPING_SCALE = 1e-3
MIN_DAMPING = 1e-300

_STATUS_NAMES = {
    STATUS_RUNNING: "running",
    STATUS_CONVERGED: "converged",
    STATUS_MAX_ITERATIONS: "iteration budget exhausted",
    STATUS_STUCK: "stuck (damping limit reached)",
}


def _log_iteration(
    iteration: Int[Array, " "],
    chi2_current: Float[Array, " "],
    chi2_trial: Float[Array, " "],
    damping: Float[Array, " "],
    accepted: Bool[Array, " "],
) -> None:
    logger.info(
        "iteration %d: chi2 %.10e -> %.10e (%s), damping now %.3e",
        int(iteration),
        float(chi2_current),
        float(chi2_trial),
        "accepted" if bool(accepted) else "rejected",
        float(damping),
    )


def _log_summary(
    status: Int[Array, " "],
    iteration: Int[Array, " "],
    chi2: Float[Array, " "],
) -> None:
    logger.info(
        "fit finished after %d iterations: %s, chi2 = %.10e",
        int(iteration),
        _STATUS_NAMES.get(int(status), "unknown"),
        float(chi2),
    )


@partial(jax.jit, static_argnames=("model", "config"))
@jaxtyped(typechecker=beartype)
def lm_start(
    state: LMState,
    model: ResidualModel,
    config: LMConfig,
) -> LMState:
    """Prime a state for a new fit.

    Computes χ² at the current parameters and picks the starting
    damping λ₀ = 1e-3 × mean(diag(JᵗWJ)). The damping ceiling for the
    fit is ``config.max_damping × λ₀``. The iteration counter is reset
    and the status set to running. A χ² of exactly zero is already
    converged; a χ² that is not finite marks the fit stuck.

    Parameters
    ----------
    state : LMState
        State holding the parameters to start from.
    model : ResidualModel
        Model being fitted.
    config : LMConfig
        Solver configuration.

    Returns
    -------
    primed : LMState
        State ready for :func:`lm_iteration`.
    """
    residuals: Float[Array, " N"] = state.data - model.model_fn(state.params)
    chi2: Float[Array, " "] = chi_squared(state.covariance, residuals)
    jacobian: Float[Array, " N M"] = model_jacobian(
        state.params, model, config
    )
    normal: Float[Array, " M M"] = weighted_normal_matrix(
        state.covariance, jacobian
    )
    damping: Float[Array, " "] = jnp.maximum(
        INITIAL_DAMPING_SCALE * jnp.mean(jnp.diag(normal)), MIN_DAMPING
    )
    status: Int[Array, " "] = jnp.where(
        chi2 == 0.0,
        STATUS_CONVERGED,
        jnp.where(jnp.isfinite(chi2), STATUS_RUNNING, STATUS_STUCK),
    ).astype(jnp.int32)
    return state._replace(
        chi2=chi2,
        damping=damping,
        max_damping=config.max_damping * damping,
        iteration=jnp.asarray(0, dtype=jnp.int32),
        status=status,
        accepted=jnp.asarray(False),
    )


@partial(jax.jit, static_argnames=("model", "config", "verbose"))
@jaxtyped(typechecker=beartype)
def lm_iteration(
    state: LMState,
    model: ResidualModel,
    config: LMConfig,
    verbose: bool = False,
) -> LMState:
    """Take one Levenberg-Marquardt trial step.

    Implementation Logic
    --------------------
    1. Residuals r = Y - f(P) and χ²_current = rᵗWr at the current P.
    2. Jacobian J at P (analytic or finite differences).
    3. Solve (JᵗWJ + λ·diag(JᵗWJ)) Δp = JᵗWr by Cholesky.
    4. P_trial = post_update(P + Δp) and χ²_trial at P_trial.
    5. Accept if the solve succeeded and χ²_trial < χ²_current:
       commit P_trial and set λ ← λ / boost_shrink_factor.
       Otherwise keep P and set λ ← λ × boost_shrink_factor.
    6. Converged if accepted with relative χ² change below
       ``exit_tolerance``; stuck if rejected and λ exceeds the ceiling,
       or if χ²_current is not finite.

    Parameters
    ----------
    state : LMState
        Primed state (see :func:`lm_start`).
    model : ResidualModel
        Model being fitted.
    config : LMConfig
        Solver configuration.
    verbose : bool, optional
        Log the step at INFO level. Default is False.

    Returns
    -------
    new_state : LMState
        State after the trial step, with ``iteration`` incremented.
    """
    residuals: Float[Array, " N"] = state.data - model.model_fn(state.params)
    chi2_current: Float[Array, " "] = chi_squared(state.covariance, residuals)
    jacobian: Float[Array, " N M"] = model_jacobian(
        state.params, model, config
    )
    normal: Float[Array, " M M"] = weighted_normal_matrix(
        state.covariance, jacobian
    )
    gradient: Float[Array, " M"] = weighted_gradient(
        state.covariance, jacobian, residuals
    )
    damped: Float[Array, " M M"] = normal + state.damping * jnp.diag(
        jnp.diag(normal)
    )
    delta: Float[Array, " M"]
    solved: Bool[Array, " "]
    delta, solved = solve_normal_equations(damped, gradient)
    delta = jnp.where(solved, delta, jnp.zeros_like(delta))
    trial: Float[Array, " M"] = apply_post_update(state.params + delta, model)
    trial_residuals: Float[Array, " N"] = state.data - model.model_fn(trial)
    chi2_trial: Float[Array, " "] = chi_squared(
        state.covariance, trial_residuals
    )
    accept: Bool[Array, " "] = (
        solved & jnp.isfinite(chi2_trial) & (chi2_trial < chi2_current)
    )
    new_params: Float[Array, " M"] = jnp.where(accept, trial, state.params)
    new_chi2: Float[Array, " "] = jnp.where(accept, chi2_trial, chi2_current)
    new_damping: Float[Array, " "] = jnp.where(
        accept,
        state.damping / config.boost_shrink_factor,
        state.damping * config.boost_shrink_factor,
    )
    chi2_positive: Bool[Array, " "] = chi2_current > 0.0
    relative_change: Float[Array, " "] = jnp.abs(
        chi2_current - chi2_trial
    ) / jnp.where(chi2_positive, chi2_current, 1.0)
    converged: Bool[Array, " "] = (
        accept & (relative_change < config.exit_tolerance)
    ) | (chi2_current == 0.0)
    stuck: Bool[Array, " "] = (
        ~accept & (new_damping > state.max_damping)
    ) | ~jnp.isfinite(chi2_current)
    status: Int[Array, " "] = jnp.where(
        converged,
        STATUS_CONVERGED,
        jnp.where(stuck, STATUS_STUCK, STATUS_RUNNING),
    ).astype(jnp.int32)
    iteration: Int[Array, " "] = state.iteration + 1
    if verbose:
        jax.debug.callback(
            _log_iteration,
            iteration,
            chi2_current,
            chi2_trial,
            new_damping,
            accept,
        )
    return state._replace(
        params=new_params,
        chi2=new_chi2,
        damping=new_damping,
        iteration=iteration,
        status=status,
        accepted=accept,
    )


def _finish(state: LMState) -> LMState:
    status: Int[Array, " "] = jnp.where(
        state.status == STATUS_RUNNING, STATUS_MAX_ITERATIONS, state.status
    ).astype(jnp.int32)
    return state._replace(status=status)


@partial(
    jax.jit,
    static_argnames=("model", "config", "max_iterations", "verbose"),
)
@jaxtyped(typechecker=beartype)
def lm_fit(
    state: LMState,
    model: ResidualModel,
    config: LMConfig,
    max_iterations: int = 500,
    verbose: bool = False,
) -> LMState:
    """Fit the model to the data held in ``state``.

    Primes the state with :func:`lm_start` and then takes up to
    ``max_iterations`` trial steps with :func:`lm_iteration`. Once the
    status leaves ``STATUS_RUNNING`` the remaining scan steps pass the
    state through unchanged.

    Parameters
    ----------
    state : LMState
        State from :func:`asteria.types.make_lm_state`, or the result
        of an earlier fit to continue from.
    model : ResidualModel
        Model being fitted.
    config : LMConfig
        Solver configuration.
    max_iterations : int, optional
        Maximum number of trial steps, accepted or rejected.
        Default is 500.
    verbose : bool, optional
        Log every step and a final summary at INFO level.
        Default is False.

    Returns
    -------
    final_state : LMState
        State holding the best parameters found and the reason the fit
        ended in ``status``.

    Examples
    --------
    >>> model = make_cosine_model(t)
    >>> state = make_lm_state(model, p0, y, make_diagonal_covariance(var))
    >>> result = lm_fit(state, model, make_lm_config(exit_tolerance=1e-10))
    >>> result.params, result.status
    """

    def step_fn(carry: LMState, _: None) -> Tuple[LMState, None]:
        result: LMState = jax.lax.cond(
            carry.status == STATUS_RUNNING,
            lambda: lm_iteration(carry, model, config, verbose),
            lambda: carry,
        )
        return result, None

    primed: LMState = lm_start(state, model, config)
    final_state: LMState
    final_state, _ = jax.lax.scan(step_fn, primed, None, length=max_iterations)
    final_state = _finish(final_state)
    if verbose:
        jax.debug.callback(
            _log_summary,
            final_state.status,
            final_state.iteration,
            final_state.chi2,
        )
    return final_state


@partial(
    jax.jit,
    static_argnames=("model", "config", "max_iterations"),
)
@jaxtyped(typechecker=beartype)
def lm_history(
    state: LMState,
    model: ResidualModel,
    config: LMConfig,
    max_iterations: int = 500,
) -> Tuple[LMState, LMState]:
    """Fit as :func:`lm_fit` and also return every intermediate state.

    Parameters
    ----------
    state : LMState
        Starting state.
    model : ResidualModel
        Model being fitted.
    config : LMConfig
        Solver configuration.
    max_iterations : int, optional
        Maximum number of trial steps. Default is 500.

    Returns
    -------
    final_state : LMState
        Same result as :func:`lm_fit`.
    all_states : LMState
        PyTree whose leaves are stacked along a new leading axis of
        length ``max_iterations``. Entry k is the state after scan step
        k; entries after the fit ended repeat the final state (with
        status still recorded as it was at that step).

    Notes
    -----
    Useful for convergence plots and diagnostics: ``all_states.chi2``,
    ``all_states.damping`` and ``all_states.accepted`` trace the
    accept/reject sequence step by step.
    """

    def step_fn(carry: LMState, _: None) -> Tuple[LMState, LMState]:
        result: LMState = jax.lax.cond(
            carry.status == STATUS_RUNNING,
            lambda: lm_iteration(carry, model, config),
            lambda: carry,
        )
        return result, result

    primed: LMState = lm_start(state, model, config)
    final_state: LMState
    all_states: LMState
    final_state, all_states = jax.lax.scan(
        step_fn, primed, None, length=max_iterations
    )
    return _finish(final_state), all_states
