"""Two-dimensional Gaussian source fitter.

Extended Summary
----------------
Fits an axis-aligned elliptical Gaussian on a constant background to
the pixels of an image cutout around a source (star or meteor head):

    f(x, y; p) = A exp(-½ [(x - x0)²/σx² + (y - y0)²/σy²]) + B

with parameters p = (A, x0, y0, σx, σy, B). The data vector is the
cutout flattened in row-major order, matching ``xx.ravel()`` and
``yy.ravel()``.

Routine Listings
----------------
make_gaussian_source_model : function
    ResidualModel for a Gaussian source on a pixel grid
estimate_gaussian_source : function
    Moment-based initial guess for the Gaussian parameters

Notes
-----
The model depends on σx and σy only through their squares, so the
post-update hook replaces them by their absolute values after every
step. This keeps the reported widths positive without constraining
the iteration.
"""

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from asteria.types import ResidualModel, make_residual_model

NUM_GAUSSIAN_PARAMS = 6


@jaxtyped(typechecker=beartype)
def make_gaussian_source_model(
    xx: Float[Array, " H W"],
    yy: Float[Array, " H W"],
) -> ResidualModel:
    """Create a ResidualModel for a 2-D Gaussian source.

    Parameters
    ----------
    xx : Float[Array, " H W"]
        Column (x) coordinate of each pixel.
    yy : Float[Array, " H W"]
        Row (y) coordinate of each pixel.

    Returns
    -------
    model : ResidualModel
        Model with parameters (A, x0, y0, σx, σy, B), an analytic
        Jacobian and a post-update hook that keeps the widths positive.
    """
    x: Float[Array, " N"] = jnp.asarray(xx, dtype=jnp.float64).ravel()
    y: Float[Array, " N"] = jnp.asarray(yy, dtype=jnp.float64).ravel()

    def profile(params: Float[Array, " 6"]) -> Float[Array, " N"]:
        dx: Float[Array, " N"] = (x - params[1]) / params[3]
        dy: Float[Array, " N"] = (y - params[2]) / params[4]
        return jnp.exp(-0.5 * (dx**2 + dy**2))

    def model_fn(params: Float[Array, " 6"]) -> Float[Array, " N"]:
        return params[0] * profile(params) + params[5]

    def jacobian_fn(params: Float[Array, " 6"]) -> Float[Array, " N 6"]:
        shape: Float[Array, " N"] = profile(params)
        peak: Float[Array, " N"] = params[0] * shape
        ox: Float[Array, " N"] = x - params[1]
        oy: Float[Array, " N"] = y - params[2]
        sx2: Float[Array, " "] = params[3] ** 2
        sy2: Float[Array, " "] = params[4] ** 2
        return jnp.stack(
            [
                shape,
                peak * ox / sx2,
                peak * oy / sy2,
                peak * ox**2 / (sx2 * params[3]),
                peak * oy**2 / (sy2 * params[4]),
                jnp.ones_like(shape),
            ],
            axis=1,
        )

    def post_update_fn(params: Float[Array, " 6"]) -> Float[Array, " 6"]:
        return params.at[3:5].set(jnp.abs(params[3:5]))

    return make_residual_model(
        model_fn,
        num_params=NUM_GAUSSIAN_PARAMS,
        num_data=x.shape[0],
        jacobian_fn=jacobian_fn,
        post_update_fn=post_update_fn,
    )


@jaxtyped(typechecker=beartype)
def estimate_gaussian_source(
    image: Float[Array, " H W"],
    xx: Float[Array, " H W"],
    yy: Float[Array, " H W"],
) -> Float[Array, " 6"]:
    """Initial guess for a Gaussian source from intensity moments.

    The background is taken as the image minimum and the amplitude as
    the peak above it. The centre and widths are the first and second
    moments of the background-subtracted intensity. The moments are
    undefined for a flat cutout, which is rejected eagerly, so this
    must be called outside of ``jax.jit``.

    Parameters
    ----------
    image : Float[Array, " H W"]
        Pixel values of the cutout.
    xx : Float[Array, " H W"]
        Column coordinate of each pixel.
    yy : Float[Array, " H W"]
        Row coordinate of each pixel.

    Returns
    -------
    params : Float[Array, " 6"]
        Initial (A, x0, y0, σx, σy, B).

    Raises
    ------
    ValueError
        If the cutout is flat (no pixel rises above the minimum).
    """
    background: Float[Array, " "] = jnp.min(image)
    signal: Float[Array, " H W"] = image - background
    total: Float[Array, " "] = jnp.sum(signal)
    if not bool(total > 0.0):
        raise ValueError("cutout is flat; no source signal above background")
    x0: Float[Array, " "] = jnp.sum(signal * xx) / total
    y0: Float[Array, " "] = jnp.sum(signal * yy) / total
    sigma_x: Float[Array, " "] = jnp.sqrt(
        jnp.sum(signal * (xx - x0) ** 2) / total
    )
    sigma_y: Float[Array, " "] = jnp.sqrt(
        jnp.sum(signal * (yy - y0) ** 2) / total
    )
    return jnp.stack(
        [jnp.max(signal), x0, y0, sigma_x, sigma_y, background]
    )
