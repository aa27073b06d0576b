"""Common utility functions used throughout the code.

Extended Summary
----------------
Dense linear algebra for weighted least squares. All weighting by the
data covariance is implemented here once per covariance variant, so the
solver never branches on how the covariance is stored.

Submodules
----------
linalg
    Weighting, normal equations and covariance propagation

Routine Listings
----------------
apply_inverse_covariance : function
    Apply W = C⁻¹ to data-space values
chi_squared : function
    Compute rᵗ W r
covariance_matrix : function
    Dense N×N form of a covariance
propagate_covariance : function
    Compute Sᵗ C S for a data -> parameter sensitivity S
solve_normal_equations : function
    Cholesky solve of a symmetric system with a success flag
symmetric_inverse : function
    Inverse of a symmetric positive-definite matrix
weighted_gradient : function
    Compute Jᵗ W r
weighted_normal_matrix : function
    Compute Jᵗ W J
whiten : function
    Apply L⁻¹ (or 1/σ) to data-space values
"""

from .linalg import (
    apply_inverse_covariance,
    chi_squared,
    covariance_matrix,
    propagate_covariance,
    solve_normal_equations,
    symmetric_inverse,
    weighted_gradient,
    weighted_normal_matrix,
    whiten,
)

__all__: list[str] = [
    "apply_inverse_covariance",
    "chi_squared",
    "covariance_matrix",
    "propagate_covariance",
    "solve_normal_equations",
    "symmetric_inverse",
    "weighted_gradient",
    "weighted_normal_matrix",
    "whiten",
]
