"""Type definitions and factory functions for asteria.

Extended Summary
----------------
Core type definitions for the asteria package including PyTree
records, scalar type aliases, and factory functions for validated
construction. Provides the foundation for type-safe least-squares
fitting with JAX.

Routine Listings
----------------
:func:`make_diagonal_covariance`
    Factory function for DiagonalCovariance creation.
:func:`make_full_covariance`
    Factory function for FullCovariance creation.
:func:`make_residual_model`
    Factory function for ResidualModel creation.
:func:`make_lm_config`
    Factory function for LMConfig creation.
:func:`make_lm_state`
    Factory function for LMState creation.
:class:`DiagonalCovariance`
    PyTree for uncorrelated data errors.
:class:`FullCovariance`
    PyTree for correlated data errors.
:class:`ResidualModel`
    Model, Jacobian and post-update closures with fixed dimensions.
:class:`LMConfig`
    Static tuning parameters for the solver.
:class:`LMState`
    PyTree for the Levenberg-Marquardt fit state.
:class:`FitStatistics`
    PyTree of post-fit statistics.

Notes
-----
Always use the factory functions for creating instances to ensure
proper validation. The factories raise ``ValueError`` on invalid input
and must be called outside of ``jax.jit``.
"""

from .common_types import (
    NonJaxNumber,
    ScalarBool,
    ScalarFloat,
    ScalarInteger,
    ScalarNumeric,
)
from .covariance_types import (
    DataCovariance,
    DiagonalCovariance,
    FullCovariance,
    make_diagonal_covariance,
    make_full_covariance,
)
from .solver_types import (
    DEFAULT_BOOST_SHRINK_FACTOR,
    DEFAULT_EXIT_TOLERANCE,
    DEFAULT_H,
    DEFAULT_MAX_DAMPING,
    STATUS_CONVERGED,
    STATUS_MAX_ITERATIONS,
    STATUS_RUNNING,
    STATUS_STUCK,
    FitStatistics,
    LMConfig,
    LMState,
    ResidualModel,
    make_lm_config,
    make_lm_state,
    make_residual_model,
)

__all__: list[str] = [
    "DataCovariance",
    "DEFAULT_BOOST_SHRINK_FACTOR",
    "DEFAULT_EXIT_TOLERANCE",
    "DEFAULT_H",
    "DEFAULT_MAX_DAMPING",
    "DiagonalCovariance",
    "FitStatistics",
    "FullCovariance",
    "LMConfig",
    "LMState",
    "make_diagonal_covariance",
    "make_full_covariance",
    "make_lm_config",
    "make_lm_state",
    "make_residual_model",
    "NonJaxNumber",
    "ResidualModel",
    "ScalarBool",
    "ScalarFloat",
    "ScalarInteger",
    "ScalarNumeric",
    "STATUS_CONVERGED",
    "STATUS_MAX_ITERATIONS",
    "STATUS_RUNNING",
    "STATUS_STUCK",
]
