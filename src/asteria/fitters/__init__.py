"""Concrete fitters binding specific models to the solver.

Extended Summary
----------------
Each fitter binds fixed external context (sample positions, pixel
grids, observation time and site) into a
:class:`asteria.types.ResidualModel`. Fitters supply the model, usually
an analytic Jacobian, and optionally a post-update constraint hook.
They never change the solver's damping or convergence policy.

Submodules
----------
cosine
    a·cos(ωt) curve fits
gaussian
    2-D Gaussian source fits on pixel cutouts
geocal
    Camera orientation and projection from star cross-matches
polynomial
    1-D polynomial curve fits

Routine Listings
----------------
estimate_gaussian_source : function
    Moment-based initial guess for a Gaussian source
make_cosine_model : function
    ResidualModel for a·cos(ωt)
make_gaussian_source_model : function
    ResidualModel for a Gaussian source on a pixel grid
make_geocal_model : function
    ResidualModel for camera orientation and pinhole projection
make_polynomial_model : function
    ResidualModel for a polynomial of given degree
normalize_quaternion : function
    Rescale the quaternion part of a parameter vector to unit length
polynomial_design_matrix : function
    Increasing-order Vandermonde matrix of the abscissae
quaternion_to_matrix : function
    Rotation matrix of a scalar-first quaternion
radec_to_sez : function
    Unit vectors in the SEZ frame from equatorial coordinates
"""

from .cosine import make_cosine_model
from .gaussian import estimate_gaussian_source, make_gaussian_source_model
from .geocal import (
    make_geocal_model,
    normalize_quaternion,
    quaternion_to_matrix,
    radec_to_sez,
)
from .polynomial import make_polynomial_model, polynomial_design_matrix

__all__: list[str] = [
    "estimate_gaussian_source",
    "make_cosine_model",
    "make_gaussian_source_model",
    "make_geocal_model",
    "make_polynomial_model",
    "normalize_quaternion",
    "polynomial_design_matrix",
    "quaternion_to_matrix",
    "radec_to_sez",
]
