"""
Matrix helpers for Lie-group computations.

Provides functions for:
- Building skew-symmetric (cross-product) matrices
- Validating fixed-size vector inputs
- Writing analytic Jacobians into optional output arrays

Jacobian output convention:
    Every derivative-producing operation in navcore takes optional output
    arrays (H, H1, F, G1, ...). Passing None skips the computation; passing
    an array of the expected shape has it overwritten in place.
"""

from typing import Optional

import numpy as np
from numpy.typing import ArrayLike, NDArray


def skew(v: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Skew-symmetric matrix [v]x such that [v]x @ u = v x u.

    Args:
        v: 3-vector.

    Returns:
        3x3 skew-symmetric matrix.

    Raises:
        ValueError: If v does not have 3 elements.

    Example:
        >>> W = skew(np.array([1.0, 2.0, 3.0]))
        >>> np.allclose(W @ [4.0, 5.0, 6.0], np.cross([1, 2, 3], [4, 5, 6]))
        True
    """
    v = np.asarray(v, dtype=np.float64)
    if v.shape != (3,):
        raise ValueError(f"v must have shape (3,), got {v.shape}")

    x, y, z = v
    return np.array(
        [[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]],
        dtype=np.float64,
    )


def check_vector(v: ArrayLike, size: int, name: str) -> NDArray[np.float64]:
    """
    Convert v to a float64 array and verify it has shape (size,).

    Args:
        v: Array-like input.
        size: Expected number of elements.
        name: Argument name used in the error message.

    Returns:
        A new float64 array of shape (size,).

    Raises:
        ValueError: If the shape does not match.
    """
    arr = np.array(v, dtype=np.float64)
    if arr.shape != (size,):
        raise ValueError(f"{name} must have shape ({size},), got {arr.shape}")
    return arr


def fill_jacobian(H: Optional[np.ndarray], value: np.ndarray, name: str = "H") -> None:
    """
    Overwrite the caller-supplied Jacobian H with value.

    Args:
        H: Output array, or None when the caller did not request it.
        value: Analytic Jacobian.
        name: Argument name used in the error message.

    Raises:
        ValueError: If H is not None and its shape differs from value.shape.
    """
    if H is None:
        return
    if H.shape != value.shape:
        raise ValueError(f"{name} must have shape {value.shape}, got {H.shape}")
    H[...] = value


def check_jacobian(H: Optional[np.ndarray], shape: tuple, name: str) -> None:
    """Validate an output Jacobian before any work is done."""
    if H is not None and H.shape != shape:
        raise ValueError(f"{name} must have shape {shape}, got {H.shape}")
