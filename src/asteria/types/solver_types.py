"""Solver types for Levenberg-Marquardt least-squares fitting.

Extended Summary
----------------
This module provides the records that flow through the
Levenberg-Marquardt solver in :mod:`asteria.solver`:

- ``ResidualModel`` is the capability a concrete fitter supplies: the
  parameters -> model function, optionally an analytic Jacobian, and
  optionally a hook applied to trial parameters after every step. It
  also fixes the problem dimensions (M parameters, N data points).
- ``LMConfig`` carries the tuning knobs of the iteration.
- ``LMState`` is the immutable fit state carried through the iteration
  loop: parameters, data, covariance, χ², damping and status.
- ``FitStatistics`` bundles the post-fit statistics.

Routine Listings
----------------
ResidualModel : NamedTuple
    Model, Jacobian and post-update closures with fixed dimensions
LMConfig : NamedTuple
    Static tuning parameters for the solver
LMState : NamedTuple
    PyTree for the Levenberg-Marquardt fit state
FitStatistics : NamedTuple
    PyTree of post-fit statistics
make_residual_model : function
    Factory function to create a validated ResidualModel
make_lm_config : function
    Factory function to create a validated LMConfig
make_lm_state : function
    Factory function to create a validated LMState
STATUS_RUNNING, STATUS_CONVERGED, STATUS_MAX_ITERATIONS, STATUS_STUCK : int
    Values of ``LMState.status``

Notes
-----
``ResidualModel`` and ``LMConfig`` hold only Python callables, ints,
floats and tuples. They are hashable and are passed to the jitted
solver functions as static arguments. ``LMState`` and
``FitStatistics`` hold arrays and are PyTrees.

All factories validate eagerly and raise ``ValueError``; call them
outside of ``jax.jit``.
"""

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Callable, NamedTuple, Optional, Sequence, Tuple
from jax.tree_util import register_pytree_node_class
from jaxtyping import Array, Bool, Float, Int, jaxtyped

from .covariance_types import DataCovariance, DiagonalCovariance
from .common_types import ScalarNumeric

STATUS_RUNNING = 0
STATUS_CONVERGED = 1
STATUS_MAX_ITERATIONS = 2
STATUS_STUCK = 3

DEFAULT_H = 1e-2
DEFAULT_EXIT_TOLERANCE = 1e-32
DEFAULT_MAX_DAMPING = 1e32
DEFAULT_BOOST_SHRINK_FACTOR = 10.0


class ResidualModel(NamedTuple):
    """Capability supplied by a concrete fitter.

    Attributes
    ----------
    model_fn : Callable[[Float[Array, " M"]], Float[Array, " N"]]
        Maps the parameter vector to the N model values. Must be
        traceable by JAX (jit/vmap).
    num_params : int
        Number of free parameters M.
    num_data : int
        Number of data points N.
    jacobian_fn : Optional[Callable]
        Maps the parameter vector to the N×M matrix of partial
        derivatives. If None the solver uses central finite differences.
    post_update_fn : Optional[Callable]
        Applied to every trial parameter vector, e.g. to renormalise a
        quaternion. If None the trial parameters are used as-is.
    step_sizes : Optional[Tuple[float, ...]]
        Per-parameter finite-difference steps. If None the solver's
        uniform ``LMConfig.h`` is used.
    """

    model_fn: Callable[[Float[Array, " M"]], Float[Array, " N"]]
    num_params: int
    num_data: int
    jacobian_fn: Optional[
        Callable[[Float[Array, " M"]], Float[Array, " N M"]]
    ] = None
    post_update_fn: Optional[
        Callable[[Float[Array, " M"]], Float[Array, " M"]]
    ] = None
    step_sizes: Optional[Tuple[float, ...]] = None


class LMConfig(NamedTuple):
    """Tuning parameters of the Levenberg-Marquardt iteration.

    Attributes
    ----------
    h : float
        Finite-difference step. Used for the parameter Jacobian when the
        model gives no per-parameter steps, and applied to the data in
        the propagated covariance estimate.
    exit_tolerance : float
        Relative change in χ² below which an accepted step ends the fit.
    max_damping : float
        Ceiling on the damping, as a multiple of its automatically
        chosen starting value.
    boost_shrink_factor : float
        Factor by which damping grows on a rejected step and shrinks on
        an accepted one.
    """

    h: float = DEFAULT_H
    exit_tolerance: float = DEFAULT_EXIT_TOLERANCE
    max_damping: float = DEFAULT_MAX_DAMPING
    boost_shrink_factor: float = DEFAULT_BOOST_SHRINK_FACTOR


@register_pytree_node_class
class LMState(NamedTuple):
    """Immutable state of a Levenberg-Marquardt fit.

    Attributes
    ----------
    params : Float[Array, " M"]
        Current (best so far) parameter estimate.
    data : Float[Array, " N"]
        Observed values.
    covariance : DataCovariance
        Covariance of the observed values.
    chi2 : Float[Array, " "]
        χ² at ``params``.
    damping : Float[Array, " "]
        Current damping factor λ.
    max_damping : Float[Array, " "]
        Damping ceiling for this fit; exceeding it means stuck.
    iteration : Int[Array, " "]
        Number of trial steps taken in the current fit.
    status : Int[Array, " "]
        One of the ``STATUS_*`` constants.
    accepted : Bool[Array, " "]
        Whether the most recent trial step was accepted.
    """

    params: Float[Array, " M"]
    data: Float[Array, " N"]
    covariance: DataCovariance
    chi2: Float[Array, " "]
    damping: Float[Array, " "]
    max_damping: Float[Array, " "]
    iteration: Int[Array, " "]
    status: Int[Array, " "]
    accepted: Bool[Array, " "]

    def tree_flatten(self) -> Tuple[Tuple, None]:
        """Flatten the LMState into a tuple of its components."""
        return (
            (
                self.params,
                self.data,
                self.covariance,
                self.chi2,
                self.damping,
                self.max_damping,
                self.iteration,
                self.status,
                self.accepted,
            ),
            None,
        )

    @classmethod
    def tree_unflatten(cls, _aux_data: None, children: Tuple) -> "LMState":
        """Unflatten the LMState from a tuple of its components."""
        return cls(*children)


@register_pytree_node_class
class FitStatistics(NamedTuple):
    """Post-fit statistics derived from a finished LMState.

    Attributes
    ----------
    chi2 : Float[Array, " "]
        χ² at the fitted parameters.
    reduced_chi2 : Float[Array, " "]
        χ² divided by the degrees of freedom.
    dof : int
        Degrees of freedom N - M.
    covariance : Float[Array, " M M"]
        Asymptotic parameter covariance.
    correlation : Float[Array, " M M"]
        Parameter correlation matrix.
    standard_error : Float[Array, " M"]
        Asymptotic standard error of each parameter.
    """

    chi2: Float[Array, " "]
    reduced_chi2: Float[Array, " "]
    dof: int
    covariance: Float[Array, " M M"]
    correlation: Float[Array, " M M"]
    standard_error: Float[Array, " M"]

    def tree_flatten(self) -> Tuple[Tuple, int]:
        """Flatten the FitStatistics; dof is static auxiliary data."""
        return (
            (
                self.chi2,
                self.reduced_chi2,
                self.covariance,
                self.correlation,
                self.standard_error,
            ),
            self.dof,
        )

    @classmethod
    def tree_unflatten(cls, aux_data: int, children: Tuple) -> "FitStatistics":
        """Unflatten the FitStatistics from its components."""
        chi2, reduced_chi2, covariance, correlation, standard_error = children
        return cls(
            chi2=chi2,
            reduced_chi2=reduced_chi2,
            dof=aux_data,
            covariance=covariance,
            correlation=correlation,
            standard_error=standard_error,
        )


@beartype
def make_residual_model(
    model_fn: Callable[..., Float[Array, " N"]],
    num_params: int,
    num_data: int,
    jacobian_fn: Optional[Callable[..., Float[Array, " N M"]]] = None,
    post_update_fn: Optional[Callable[..., Float[Array, " M"]]] = None,
    step_sizes: Optional[Sequence[ScalarNumeric]] = None,
) -> ResidualModel:
    """Create a validated ResidualModel.

    Parameters
    ----------
    model_fn : Callable[..., Float[Array, " N"]]
        Parameters -> model values.
    num_params : int
        Number of free parameters M.
    num_data : int
        Number of data points N. Must exceed M.
    jacobian_fn : Optional[Callable[..., Float[Array, " N M"]]], optional
        Analytic Jacobian. Default is None (finite differences).
    post_update_fn : Optional[Callable[..., Float[Array, " M"]]], optional
        Constraint hook for trial parameters. Default is None.
    step_sizes : Optional[Sequence[ScalarNumeric]], optional
        Per-parameter finite-difference steps. Default is None.

    Returns
    -------
    model : ResidualModel
        Validated residual model.

    Raises
    ------
    ValueError
        If M < 1, if N <= M (no degrees of freedom), or if the step
        sizes have the wrong length or are not strictly positive.
    """
    if num_params < 1:
        raise ValueError(f"num_params must be at least 1, got {num_params}")
    if num_data <= num_params:
        raise ValueError(
            f"num_data ({num_data}) must exceed num_params ({num_params}); "
            f"degrees of freedom would be {num_data - num_params}"
        )
    steps: Optional[Tuple[float, ...]] = None
    if step_sizes is not None:
        steps = tuple(float(s) for s in step_sizes)
        if len(steps) != num_params:
            raise ValueError(
                f"step_sizes has length {len(steps)}, expected {num_params}"
            )
        if not all(s > 0.0 for s in steps):
            raise ValueError("step_sizes must be strictly positive")
    return ResidualModel(
        model_fn=model_fn,
        num_params=num_params,
        num_data=num_data,
        jacobian_fn=jacobian_fn,
        post_update_fn=post_update_fn,
        step_sizes=steps,
    )


@beartype
def make_lm_config(
    h: ScalarNumeric = DEFAULT_H,
    exit_tolerance: ScalarNumeric = DEFAULT_EXIT_TOLERANCE,
    max_damping: ScalarNumeric = DEFAULT_MAX_DAMPING,
    boost_shrink_factor: ScalarNumeric = DEFAULT_BOOST_SHRINK_FACTOR,
) -> LMConfig:
    """Create a validated LMConfig.

    Parameters
    ----------
    h : ScalarNumeric, optional
        Finite-difference step. Default is 1e-2.
    exit_tolerance : ScalarNumeric, optional
        Relative χ² change that ends the fit. Default is 1e-32.
    max_damping : ScalarNumeric, optional
        Damping ceiling as a multiple of the starting damping.
        Default is 1e32.
    boost_shrink_factor : ScalarNumeric, optional
        Damping growth/shrink factor. Default is 10.

    Returns
    -------
    config : LMConfig
        Validated configuration holding plain Python floats.

    Raises
    ------
    ValueError
        If any knob is not strictly positive, or if the boost/shrink
        factor does not exceed 1.
    """
    h_f: float = float(h)
    exit_f: float = float(exit_tolerance)
    max_f: float = float(max_damping)
    boost_f: float = float(boost_shrink_factor)
    if not h_f > 0.0:
        raise ValueError(f"h must be strictly positive, got {h_f}")
    if not exit_f > 0.0:
        raise ValueError(
            f"exit_tolerance must be strictly positive, got {exit_f}"
        )
    if not max_f > 0.0:
        raise ValueError(f"max_damping must be strictly positive, got {max_f}")
    if not boost_f > 1.0:
        raise ValueError(
            f"boost_shrink_factor must be greater than 1, got {boost_f}"
        )
    return LMConfig(
        h=h_f,
        exit_tolerance=exit_f,
        max_damping=max_f,
        boost_shrink_factor=boost_f,
    )


@jaxtyped(typechecker=beartype)
def make_lm_state(
    model: ResidualModel,
    params: Float[Array, " M"],
    data: Float[Array, " N"],
    covariance: DataCovariance,
) -> LMState:
    """Create a validated LMState ready for :func:`asteria.solver.lm_fit`.

    The data and parameters are copied into float64 arrays. Damping and
    χ² are filled in by :func:`asteria.solver.lm_start`, which
    :func:`asteria.solver.lm_fit` calls before iterating.

    Parameters
    ----------
    model : ResidualModel
        Model whose dimensions the inputs must match.
    params : Float[Array, " M"]
        Initial-guess parameters.
    data : Float[Array, " N"]
        Observed values.
    covariance : DataCovariance
        Covariance of the observed values, from
        :func:`make_diagonal_covariance` or :func:`make_full_covariance`.

    Returns
    -------
    state : LMState
        Unprimed fit state with status ``STATUS_RUNNING``.

    Raises
    ------
    ValueError
        If any length disagrees with the model's dimensions, or if the
        parameters or data contain non-finite values.
    """
    params_arr: Float[Array, " M"] = jnp.array(params, dtype=jnp.float64)
    data_arr: Float[Array, " N"] = jnp.array(data, dtype=jnp.float64)
    if params_arr.shape[0] != model.num_params:
        raise ValueError(
            f"params has length {params_arr.shape[0]}, "
            f"model expects {model.num_params}"
        )
    if data_arr.shape[0] != model.num_data:
        raise ValueError(
            f"data has length {data_arr.shape[0]}, "
            f"model expects {model.num_data}"
        )
    if isinstance(covariance, DiagonalCovariance):
        cov_size: int = covariance.variance.shape[0]
    else:
        cov_size = covariance.matrix.shape[0]
    if cov_size != model.num_data:
        raise ValueError(
            f"covariance has size {cov_size}, model expects {model.num_data}"
        )
    if not bool(jnp.all(jnp.isfinite(params_arr))):
        raise ValueError("params contains non-finite values")
    if not bool(jnp.all(jnp.isfinite(data_arr))):
        raise ValueError("data contains non-finite values")
    return LMState(
        params=params_arr,
        data=data_arr,
        covariance=covariance,
        chi2=jnp.asarray(jnp.inf, dtype=jnp.float64),
        damping=jnp.asarray(1.0, dtype=jnp.float64),
        max_damping=jnp.asarray(jnp.inf, dtype=jnp.float64),
        iteration=jnp.asarray(0, dtype=jnp.int32),
        status=jnp.asarray(STATUS_RUNNING, dtype=jnp.int32),
        accepted=jnp.asarray(False, dtype=jnp.bool_),
    )
