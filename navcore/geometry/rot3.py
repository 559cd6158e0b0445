"""SO(3) rotation primitive with analytic Jacobians.

This module implements the 3D rotation group used as the attitude of a
navigation state. Besides group composition and inversion it provides the
exponential/logarithm maps and their Jacobians, the action on vectors
(rotate/unrotate) and the usual Euler-angle and quaternion constructors.

Conventions:
    - A Rot3 holds the matrix R = C_B^N mapping body-frame vectors into the
      navigation frame: v_nav = R @ v_body.
    - Tangent vectors are rotation vectors omega of shape (3,), applied on
      the right: R.retract(omega) = R @ Exp(omega).
    - Jacobians are expressed in that right (body-frame) tangent space.
    - Quaternions are scalar-first [qw, qx, qy, qz].
    - Euler angles are roll-pitch-yaw, ZYX convention: R = Rz(yaw) Ry(pitch) Rx(roll).

Key functions:
    - Rot3.exp / Rot3.log: exponential and logarithm at the identity
    - Rot3.exp_derivative: right Jacobian Jr(omega)
    - Rot3.log_derivative: inverse right Jacobian Jr(omega)^-1
    - rotate / unrotate: R @ p and R^T @ p with Jacobians
"""

import warnings
from typing import Optional, Union

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.transform import Rotation

from navcore.utils.matrices import check_jacobian, check_vector, fill_jacobian, skew

# Below this angle the Jacobians switch to their Taylor series.
SMALL_ANGLE = 1e-4

# Distance from pi below which the inverse right Jacobian is ill-conditioned.
NEAR_PI_MARGIN = 1e-3

ORTHONORMAL_TOL = 1e-6


class Rot3:
    """
    Rotation in 3D, stored as an orthonormal 3x3 matrix.

    Rot3 is an immutable value type: every operation returns a new instance
    and the stored matrix is read-only.

    Attributes:
        matrix(): The 3x3 rotation matrix R (body to navigation frame).

    Examples:
        >>> R = Rot3.rz_ry_rx(0.1, 0.2, 0.3)
        >>> v_nav = R.rotate(np.array([1.0, 0.0, 0.0]))
        >>> np.allclose(R.unrotate(v_nav), [1.0, 0.0, 0.0])
        True
        >>> np.allclose(Rot3.log(Rot3.exp([0.1, 0.2, 0.3])), [0.1, 0.2, 0.3])
        True
    """

    __slots__ = ("_R",)

    def __init__(self, matrix: Optional[NDArray[np.float64]] = None) -> None:
        if matrix is None:
            R = np.eye(3)
        else:
            R = np.array(matrix, dtype=np.float64)
            if R.shape != (3, 3):
                raise ValueError(f"Expected 3x3 matrix, got shape {R.shape}")
            if not np.allclose(R.T @ R, np.eye(3), atol=ORTHONORMAL_TOL):
                warnings.warn(
                    "Rot3 constructed from a matrix that is not orthonormal "
                    f"(max |R^T R - I| = {np.max(np.abs(R.T @ R - np.eye(3))):.2e}).",
                    RuntimeWarning,
                )
        R.setflags(write=False)
        self._R = R

    @classmethod
    def _trusted(cls, R: np.ndarray) -> "Rot3":
        """Wrap a matrix already known to be a rotation (no checks)."""
        rot = cls.__new__(cls)
        R = np.array(R, dtype=np.float64)
        R.setflags(write=False)
        rot._R = R
        return rot

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def identity(cls) -> "Rot3":
        return cls._trusted(np.eye(3))

    @classmethod
    def rz_ry_rx(cls, x: float, y: float, z: float) -> "Rot3":
        """
        Rotation Rz(z) @ Ry(y) @ Rx(x).

        Args:
            x: Rotation about the x-axis (roll) in radians.
            y: Rotation about the y-axis (pitch) in radians.
            z: Rotation about the z-axis (yaw) in radians.

        Returns:
            Rot3 with R = Rz(z) Ry(y) Rx(x) (ZYX Euler convention).
        """
        cr, sr = np.cos(x), np.sin(x)
        cp, sp = np.cos(y), np.sin(y)
        cy, sy = np.cos(z), np.sin(z)

        R = np.array(
            [
                [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
                [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
                [-sp, cp * sr, cp * cr],
            ],
            dtype=np.float64,
        )
        return cls._trusted(R)

    @classmethod
    def ypr(cls, yaw: float, pitch: float, roll: float) -> "Rot3":
        """Rotation from yaw, pitch, roll (same as rz_ry_rx(roll, pitch, yaw))."""
        return cls.rz_ry_rx(roll, pitch, yaw)

    @classmethod
    def from_quaternion(cls, q) -> "Rot3":
        """
        Rotation from a scalar-first unit quaternion [qw, qx, qy, qz].

        Raises:
            ValueError: If q does not have 4 elements or has zero norm.
        """
        q = check_vector(q, 4, "q")
        if np.linalg.norm(q) == 0.0:
            raise ValueError("q must have non-zero norm")
        # scipy expects scalar-last
        return cls._trusted(Rotation.from_quat(q[[1, 2, 3, 0]]).as_matrix())

    def to_quaternion(self) -> NDArray[np.float64]:
        """Scalar-first unit quaternion [qw, qx, qy, qz] with qw >= 0."""
        x, y, z, w = Rotation.from_matrix(self._R).as_quat()
        q = np.array([w, x, y, z], dtype=np.float64)
        if q[0] < 0.0:
            q = -q
        return q

    def rpy(self) -> NDArray[np.float64]:
        """
        Extract [roll, pitch, yaw] (ZYX convention).

        At gimbal lock (pitch = +-90 deg) roll is set to zero and the
        remaining rotation is attributed to yaw.
        """
        R = self._R
        sin_pitch = -R[2, 0]
        if abs(sin_pitch) >= 1.0:
            pitch = np.copysign(np.pi / 2.0, sin_pitch)
            yaw = np.arctan2(-R[0, 1], R[1, 1])
            roll = 0.0
        else:
            pitch = np.arcsin(sin_pitch)
            roll = np.arctan2(R[2, 1], R[2, 2])
            yaw = np.arctan2(R[1, 0], R[0, 0])
        return np.array([roll, pitch, yaw], dtype=np.float64)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def matrix(self) -> NDArray[np.float64]:
        return self._R

    def transpose(self) -> NDArray[np.float64]:
        return self._R.T

    @staticmethod
    def dim() -> int:
        return 3

    def adjoint_map(self) -> NDArray[np.float64]:
        """Adjoint representation Ad_R = R."""
        return self._R

    # ------------------------------------------------------------------
    # Group operations
    # ------------------------------------------------------------------

    def compose(
        self,
        other: "Rot3",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "Rot3":
        """
        Group product self * other.

        Jacobians:
            H1 = other^T, H2 = I.
        """
        check_jacobian(H1, (3, 3), "H1")
        check_jacobian(H2, (3, 3), "H2")
        fill_jacobian(H1, other._R.T, "H1")
        fill_jacobian(H2, np.eye(3), "H2")
        return Rot3._trusted(self._R @ other._R)

    def inverse(self, H: Optional[np.ndarray] = None) -> "Rot3":
        """Inverse R^T, with Jacobian H = -R."""
        fill_jacobian(H, -self._R, "H")
        return Rot3._trusted(self._R.T)

    def between(
        self,
        other: "Rot3",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "Rot3":
        """Relative rotation self^-1 * other."""
        check_jacobian(H1, (3, 3), "H1")
        check_jacobian(H2, (3, 3), "H2")
        result = self._R.T @ other._R
        fill_jacobian(H1, -result.T, "H1")
        fill_jacobian(H2, np.eye(3), "H2")
        return Rot3._trusted(result)

    def __mul__(self, other: Union["Rot3", np.ndarray]):
        """Rot3 * Rot3 composes; Rot3 * vector rotates the vector."""
        if isinstance(other, Rot3):
            return self.compose(other)
        return self.rotate(other)

    # ------------------------------------------------------------------
    # Action on vectors
    # ------------------------------------------------------------------

    def rotate(
        self,
        p,
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> NDArray[np.float64]:
        """
        Rotate a body-frame vector into the navigation frame: R @ p.

        Args:
            p: Vector of shape (3,).
            H1: Optional (3, 3) output, derivative w.r.t. the rotation.
            H2: Optional (3, 3) output, derivative w.r.t. p.

        Returns:
            Rotated vector of shape (3,).

        Notes:
            Perturbing R on the right, R Exp(d) p = R p - R [p]x d, so
            H1 = -R [p]x and H2 = R.
        """
        p = check_vector(p, 3, "p")
        check_jacobian(H1, (3, 3), "H1")
        check_jacobian(H2, (3, 3), "H2")
        fill_jacobian(H1, -self._R @ skew(p), "H1")
        fill_jacobian(H2, self._R, "H2")
        return self._R @ p

    def unrotate(
        self,
        p,
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> NDArray[np.float64]:
        """
        Express a navigation-frame vector in the body frame: R^T @ p.

        Args:
            p: Vector of shape (3,).
            H1: Optional (3, 3) output, derivative w.r.t. the rotation.
            H2: Optional (3, 3) output, derivative w.r.t. p.

        Returns:
            Unrotated vector q = R^T p of shape (3,).

        Notes:
            (R Exp(d))^T p = (I - [d]x) R^T p = q + [q]x d, so H1 = [q]x and
            H2 = R^T.
        """
        p = check_vector(p, 3, "p")
        check_jacobian(H1, (3, 3), "H1")
        check_jacobian(H2, (3, 3), "H2")
        q = self._R.T @ p
        fill_jacobian(H1, skew(q), "H1")
        fill_jacobian(H2, self._R.T, "H2")
        return q

    # ------------------------------------------------------------------
    # Lie group
    # ------------------------------------------------------------------

    @staticmethod
    def exp(omega, H: Optional[np.ndarray] = None) -> "Rot3":
        """
        Exponential map at the identity: Exp(omega).

        Args:
            omega: Rotation vector of shape (3,), radians.
            H: Optional (3, 3) output, filled with the right Jacobian Jr(omega).

        Returns:
            Rot3 for the rotation of |omega| radians about omega/|omega|.
        """
        omega = check_vector(omega, 3, "omega")
        if H is not None:
            fill_jacobian(H, Rot3.exp_derivative(omega), "H")
        return Rot3._trusted(Rotation.from_rotvec(omega).as_matrix())

    @staticmethod
    def log(rot: "Rot3", H: Optional[np.ndarray] = None) -> NDArray[np.float64]:
        """
        Logarithm map at the identity: the rotation vector of rot.

        Args:
            rot: Rotation to take the logarithm of.
            H: Optional (3, 3) output, filled with Jr(omega)^-1.

        Returns:
            Rotation vector omega with |omega| <= pi.
        """
        omega = Rotation.from_matrix(rot._R).as_rotvec()
        if H is not None:
            fill_jacobian(H, Rot3.log_derivative(omega), "H")
        return omega

    @staticmethod
    def exp_derivative(omega) -> NDArray[np.float64]:
        """
        Right Jacobian of the exponential map.

        Exp(omega + d) ~= Exp(omega) Exp(Jr(omega) d), with

            Jr = I - (1 - cos t)/t^2 W + (t - sin t)/t^3 W^2,  W = [omega]x.
        """
        omega = check_vector(omega, 3, "omega")
        theta = np.linalg.norm(omega)
        W = skew(omega)
        if theta < SMALL_ANGLE:
            return np.eye(3) - 0.5 * W + (W @ W) / 6.0

        theta2 = theta * theta
        return (
            np.eye(3)
            - (1.0 - np.cos(theta)) / theta2 * W
            + (theta - np.sin(theta)) / (theta2 * theta) * (W @ W)
        )

    @staticmethod
    def log_derivative(omega) -> NDArray[np.float64]:
        """
        Inverse of the right Jacobian, Jr(omega)^-1.

            Jr^-1 = I + W/2 + (1/t^2 - (1 + cos t)/(2 t sin t)) W^2.

        Warns:
            RuntimeWarning: When |omega| is within NEAR_PI_MARGIN of pi, where
            Jr^-1 is ill-conditioned.
        """
        omega = check_vector(omega, 3, "omega")
        theta = np.linalg.norm(omega)
        W = skew(omega)
        if theta < SMALL_ANGLE:
            return np.eye(3) + 0.5 * W + (W @ W) / 12.0

        if np.pi - theta < NEAR_PI_MARGIN:
            warnings.warn(
                f"Rotation angle {theta:.6f} rad is close to pi; "
                "logarithm Jacobian is ill-conditioned.",
                RuntimeWarning,
            )
        coeff = 1.0 / (theta * theta) - (1.0 + np.cos(theta)) / (
            2.0 * theta * np.sin(theta)
        )
        return np.eye(3) + 0.5 * W + coeff * (W @ W)

    @staticmethod
    def left_jacobian(omega) -> NDArray[np.float64]:
        """Left Jacobian Jl(omega) = Jr(-omega) = Exp(omega) Jr(omega)."""
        return Rot3.exp_derivative(-check_vector(omega, 3, "omega"))

    @staticmethod
    def left_jacobian_inverse(omega) -> NDArray[np.float64]:
        """Inverse left Jacobian Jl(omega)^-1 = Jr(-omega)^-1."""
        return Rot3.log_derivative(-check_vector(omega, 3, "omega"))

    # ------------------------------------------------------------------
    # Manifold
    # ------------------------------------------------------------------

    def retract(
        self,
        omega,
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "Rot3":
        """self * Exp(omega), with H1 = Exp(omega)^T and H2 = Jr(omega)."""
        check_jacobian(H1, (3, 3), "H1")
        delta = Rot3.exp(omega, H2)
        fill_jacobian(H1, delta._R.T, "H1")
        return self.compose(delta)

    def local_coordinates(
        self,
        other: "Rot3",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> NDArray[np.float64]:
        """Log(self^-1 * other), the inverse of retract."""
        check_jacobian(H1, (3, 3), "H1")
        check_jacobian(H2, (3, 3), "H2")
        relative = self.between(other)
        if H1 is None and H2 is None:
            return Rot3.log(relative)

        D_log = np.empty((3, 3))
        omega = Rot3.log(relative, D_log)
        fill_jacobian(H1, -D_log @ relative._R.T, "H1")
        fill_jacobian(H2, D_log, "H2")
        return omega

    # For SO(3) the chart used by retract is the exponential map itself.
    expmap = retract
    logmap = local_coordinates

    # ------------------------------------------------------------------
    # Testable
    # ------------------------------------------------------------------

    def equals(self, other: "Rot3", tol: float = 1e-9) -> bool:
        return bool(np.allclose(self._R, other._R, rtol=0.0, atol=tol))

    def __repr__(self) -> str:
        roll, pitch, yaw = self.rpy()
        return f"Rot3(roll={roll:.6f}, pitch={pitch:.6f}, yaw={yaw:.6f})"
