"""Levenberg-Marquardt solver for weighted nonlinear least squares.

Extended Summary
----------------
A reusable damped Gauss-Newton optimizer generic over the
:class:`asteria.types.ResidualModel` capability. It accepts analytic
or finite-difference Jacobians, controls convergence through the
damping factor, and propagates the data covariance into parameter
covariance.

Submodules
----------
jacobian
    Analytic, autodiff and finite-difference model Jacobians
levenberg_marquardt
    The iteration engine
statistics
    χ², degrees of freedom and parameter covariance estimates

Routine Listings
----------------
apply_post_update : function
    Apply a model's post-update hook to trial parameters
asymptotic_standard_error : function
    Standard errors from a covariance matrix
autodiff_jacobian : function
    Build an exact Jacobian function by forward-mode autodiff
degrees_of_freedom : function
    N - M, raising if not positive
finite_difference_jacobian : function
    Central-difference Jacobian with per-parameter steps
fit_chi_squared : function
    χ² at the state's parameters
lm_fit : function
    Run trial steps until converged, stuck or out of budget
lm_history : function
    As lm_fit, also returning per-iteration states
lm_iteration : function
    One trial step with accept/reject and convergence tests
lm_start : function
    Prime a state with χ², starting damping and damping ceiling
model_jacobian : function
    Jacobian of a ResidualModel, analytic if available
parameter_correlation : function
    Correlation matrix from a covariance matrix
parameter_covariance : function
    Asymptotic covariance reducedχ² × (JᵗWJ)⁻¹
propagated_covariance : function
    Covariance propagated from the data by fourth-order differences
reduced_chi_squared : function
    χ² / (N - M)
summarize_fit : function
    Bundle the post-fit statistics into a FitStatistics record

Notes
-----
The solver functions are jitted with the model and configuration as
static arguments. The states they consume are built by the validating
factories in :mod:`asteria.types`.
"""

from .jacobian import (
    apply_post_update,
    autodiff_jacobian,
    finite_difference_jacobian,
    model_jacobian,
)
from .levenberg_marquardt import lm_fit, lm_history, lm_iteration, lm_start
from .statistics import (
    asymptotic_standard_error,
    degrees_of_freedom,
    fit_chi_squared,
    parameter_correlation,
    parameter_covariance,
    propagated_covariance,
    reduced_chi_squared,
    summarize_fit,
)

__all__: list[str] = [
    "apply_post_update",
    "asymptotic_standard_error",
    "autodiff_jacobian",
    "degrees_of_freedom",
    "finite_difference_jacobian",
    "fit_chi_squared",
    "lm_fit",
    "lm_history",
    "lm_iteration",
    "lm_start",
    "model_jacobian",
    "parameter_correlation",
    "parameter_covariance",
    "propagated_covariance",
    "reduced_chi_squared",
    "summarize_fit",
]
