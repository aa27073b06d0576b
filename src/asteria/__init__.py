"""Levenberg-Marquardt fitting core for meteor-camera calibration.

Extended Summary
----------------
A reusable nonlinear least-squares optimizer written in JAX, used to
fit parametric models to noisy observational data with known
covariance: camera geometric calibration from star cross-matches,
polynomial and cosine curve fits, and 2-D Gaussian source fits.

Routine Listings
----------------
:mod:`fitters`
    Concrete models bound to the solver.
:mod:`solver`
    Levenberg-Marquardt iteration and post-fit statistics.
:mod:`types`
    PyTrees, records and validating factory functions.
:mod:`utils`
    Linear algebra for weighted least squares.

Examples
--------
>>> import jax.numpy as jnp
>>> import asteria as at
>>> t = jnp.linspace(0.0, 10.0, 50)
>>> model = at.fitters.make_cosine_model(t)
>>> cov = at.types.make_diagonal_covariance(jnp.full(50, 0.01))
>>> state = at.types.make_lm_state(model, jnp.array([1.1, 0.9]), y, cov)
>>> result = at.solver.lm_fit(
...     state, model, at.types.make_lm_config(exit_tolerance=1e-10)
... )
>>> at.solver.summarize_fit(result, model, at.types.make_lm_config())

Notes
-----
64-bit precision is enabled at import time; the solver relies on
double precision for the χ² comparisons that drive the damping.
"""

from importlib.metadata import version

# Enable 64-bit precision in JAX (must be set before importing submodules)
import jax  # noqa: E402

jax.config.update("jax_enable_x64", True)

from . import fitters, solver, types, utils  # noqa: E402, I001

__version__: str = version("asteria")

__all__: list[str] = [
    "__version__",
    "fitters",
    "solver",
    "types",
    "utils",
]
