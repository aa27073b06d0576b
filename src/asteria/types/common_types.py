"""Scalar type aliases shared across asteria.

Extended Summary
----------------
Type aliases used in function signatures throughout the package so that
both Python numbers and 0-d JAX arrays are accepted wherever a scalar
is expected.

Routine Listings
----------------
NonJaxNumber : TypeAlias
    Python numeric types
ScalarBool : TypeAlias
    Python bool or 0-d JAX boolean array
ScalarFloat : TypeAlias
    Python float or 0-d JAX float array
ScalarInteger : TypeAlias
    Python int or 0-d JAX integer array
ScalarNumeric : TypeAlias
    Any real scalar value
"""

from beartype.typing import TypeAlias, Union
from jaxtyping import Array, Bool, Float, Int

NonJaxNumber: TypeAlias = Union[int, float]
ScalarBool: TypeAlias = Union[bool, Bool[Array, " "]]
ScalarFloat: TypeAlias = Union[float, Float[Array, " "]]
ScalarInteger: TypeAlias = Union[int, Int[Array, " "]]
ScalarNumeric: TypeAlias = Union[int, float, Float[Array, " "], Int[Array, " "]]
