"""Lie-group geometry primitives.

This package provides the rotation and pose groups that navigation states
are built from. Each primitive offers group composition and inversion, the
exponential/logarithm maps, a retraction chart, and closed-form Jacobians
for all of them.

Main components:
    - Rot3: SO(3) rotation (attitude), rotate/unrotate with Jacobians
    - Pose3: SE(3) pose, used for the joint (rotation, position) chart

Example usage:
    >>> from navcore.geometry import Pose3, Rot3
    >>> import numpy as np
    >>>
    >>> R = Rot3.rz_ry_rx(0.1, 0.2, 0.3)
    >>> H = np.zeros((3, 3))
    >>> v_body = R.unrotate(np.array([0.4, 0.5, 0.6]), H1=H)
"""

from .pose3 import Pose3
from .rot3 import Rot3

__all__ = [
    "Pose3",
    "Rot3",
]
