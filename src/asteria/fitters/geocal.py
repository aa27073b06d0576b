"""Geometric camera calibration from star cross-matches.

Extended Summary
----------------
Fits the orientation and projection of a fixed all-sky or wide-field
camera to the measured image positions of catalogue stars. The fixed
context bound into the model is the star catalogue positions (RA, Dec)
and the time and site of the observation (Greenwich mean sidereal time,
longitude, latitude). These complete the transformation into the
topocentric South-East-Zenith (SEZ) frame and are not fitted.

The eight fitted parameters are

    p = (qw, qx, qy, qz, fx, fy, px, py)

where q = q_sez_cam is the quaternion rotating the camera (CAM) frame
into the SEZ frame, and (fx, fy, px, py) are the pinhole focal lengths
and principal point in pixels. A star with SEZ unit vector s is
observed at

    c = R(q)ᵗ s,    x = fx c_x / c_z + px,    y = fy c_y / c_z + py

The data vector interleaves the measured positions
(x_0, y_0, x_1, y_1, ...).

Routine Listings
----------------
radec_to_sez : function
    Unit vectors in the SEZ frame from equatorial coordinates
quaternion_to_matrix : function
    Rotation matrix of a scalar-first quaternion
normalize_quaternion : function
    Rescale the quaternion part of a parameter vector to unit length
make_geocal_model : function
    ResidualModel for camera orientation and pinhole projection

Notes
-----
The quaternion has four parameters but three degrees of freedom. The
rotation matrix is built with the unit-quaternion formula without
normalising, and the post-update hook renormalises the quaternion
after every step. The Jacobian is computed exactly by forward-mode
autodiff.
"""

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from asteria.solver import autodiff_jacobian
from asteria.types import ResidualModel, ScalarNumeric, make_residual_model

NUM_GEOCAL_PARAMS = 8


@jaxtyped(typechecker=beartype)
def radec_to_sez(
    ra: Float[Array, " K"],
    dec: Float[Array, " K"],
    gmst: ScalarNumeric,
    lon: ScalarNumeric,
    lat: ScalarNumeric,
) -> Float[Array, " K 3"]:
    """Convert equatorial coordinates to SEZ unit vectors.

    Parameters
    ----------
    ra : Float[Array, " K"]
        Right ascension [radians].
    dec : Float[Array, " K"]
        Declination [radians].
    gmst : ScalarNumeric
        Greenwich mean sidereal time [radians].
    lon : ScalarNumeric
        East longitude of the site [radians].
    lat : ScalarNumeric
        Geodetic latitude of the site [radians].

    Returns
    -------
    sez : Float[Array, " K 3"]
        Unit vectors with components (south, east, zenith).
    """
    hour_angle: Float[Array, " K"] = gmst + lon - ra
    cos_dec: Float[Array, " K"] = jnp.cos(dec)
    sin_dec: Float[Array, " K"] = jnp.sin(dec)
    cos_ha: Float[Array, " K"] = jnp.cos(hour_angle)
    sin_lat: Float[Array, " "] = jnp.sin(lat)
    cos_lat: Float[Array, " "] = jnp.cos(lat)
    south: Float[Array, " K"] = sin_lat * cos_dec * cos_ha - cos_lat * sin_dec
    east: Float[Array, " K"] = -cos_dec * jnp.sin(hour_angle)
    zenith: Float[Array, " K"] = cos_lat * cos_dec * cos_ha + sin_lat * sin_dec
    return jnp.stack([south, east, zenith], axis=1)


@jaxtyped(typechecker=beartype)
def quaternion_to_matrix(q: Float[Array, " 4"]) -> Float[Array, " 3 3"]:
    """Rotation matrix of the scalar-first quaternion (w, x, y, z).

    Uses the unit-quaternion formula; ``q`` is not normalised here.
    """
    w, x, y, z = q[0], q[1], q[2], q[3]
    return jnp.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ]
    )


@jaxtyped(typechecker=beartype)
def normalize_quaternion(params: Float[Array, " M"]) -> Float[Array, " M"]:
    """Rescale the leading four parameters to a unit quaternion."""
    q: Float[Array, " 4"] = params[:4]
    return params.at[:4].set(q / jnp.linalg.norm(q))


@jaxtyped(typechecker=beartype)
def make_geocal_model(
    ra: Float[Array, " K"],
    dec: Float[Array, " K"],
    gmst: ScalarNumeric,
    lon: ScalarNumeric,
    lat: ScalarNumeric,
) -> ResidualModel:
    """Create a ResidualModel for camera geometric calibration.

    Parameters
    ----------
    ra : Float[Array, " K"]
        Right ascension of the K cross-matched reference stars
        [radians].
    dec : Float[Array, " K"]
        Declination of the reference stars [radians].
    gmst : ScalarNumeric
        Greenwich mean sidereal time of the observation [radians].
    lon : ScalarNumeric
        East longitude of the site [radians].
    lat : ScalarNumeric
        Latitude of the site [radians].

    Returns
    -------
    model : ResidualModel
        Model with parameters (qw, qx, qy, qz, fx, fy, px, py) and
        N = 2K data values (interleaved x, y image coordinates).

    Raises
    ------
    ValueError
        If there are too few stars to constrain the eight parameters
        (at least five are needed).

    Notes
    -----
    All stars must lie in front of the camera (positive CAM z) at the
    initial guess; no check is made.
    """
    star_sez: Float[Array, " K 3"] = radec_to_sez(
        jnp.asarray(ra, dtype=jnp.float64),
        jnp.asarray(dec, dtype=jnp.float64),
        gmst,
        lon,
        lat,
    )

    def model_fn(params: Float[Array, " 8"]) -> Float[Array, " N"]:
        rotation: Float[Array, " 3 3"] = quaternion_to_matrix(params[:4])
        cam: Float[Array, " K 3"] = star_sez @ rotation
        x: Float[Array, " K"] = params[4] * cam[:, 0] / cam[:, 2] + params[6]
        y: Float[Array, " K"] = params[5] * cam[:, 1] / cam[:, 2] + params[7]
        return jnp.stack([x, y], axis=1).ravel()

    return make_residual_model(
        model_fn,
        num_params=NUM_GEOCAL_PARAMS,
        num_data=2 * star_sez.shape[0],
        jacobian_fn=autodiff_jacobian(model_fn),
        post_update_fn=normalize_quaternion,
    )
