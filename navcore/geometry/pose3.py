"""SE(3) pose primitive with analytic Jacobians.

A Pose3 is a rigid transformation (rotation + translation). Navigation
states use it to apply the (rotation, position) part of a tangent vector
jointly, so only the operations needed for that are provided: group
product/inverse, exponential/logarithm with Jacobians and the chart.

Conventions:
    - Tangent vectors are xi = [omega, rho] of shape (6,): rotation first,
      translation second.
    - Perturbations are applied on the right: T.retract(xi) = T * Exp(xi).
    - Exp([omega, rho]) = (Exp(omega), Jl(omega) @ rho), where Jl is the left
      Jacobian of SO(3).

Key functions:
    - Pose3.exp / Pose3.log: exponential and logarithm at the identity
    - Pose3.exp_derivative: right Jacobian [[Jr, 0], [Q, Jr]]
    - Pose3.compute_q: the coupling block Q(omega, rho)
"""

from typing import Optional

import numpy as np
from numpy.typing import NDArray

from navcore.geometry.rot3 import Rot3
from navcore.utils.matrices import check_jacobian, check_vector, fill_jacobian, skew

# The closed-form coefficients of Q cancel catastrophically for small angles;
# their Taylor series (to theta^4) is used below this angle.
Q_SERIES_ANGLE = 1e-2


class Pose3:
    """
    Rigid 3D transformation T = (R, t).

    Examples:
        >>> T = Pose3(Rot3.rz_ry_rx(0.1, 0.2, 0.3), np.array([1.0, 2.0, 3.0]))
        >>> xi = Pose3.log(T)
        >>> Pose3.exp(xi).equals(T)
        True
    """

    __slots__ = ("_R", "_t")

    def __init__(self, rotation: Optional[Rot3] = None, translation=None) -> None:
        self._R = rotation if rotation is not None else Rot3.identity()
        t = np.zeros(3) if translation is None else check_vector(translation, 3, "translation")
        t.setflags(write=False)
        self._t = t

    @classmethod
    def identity(cls) -> "Pose3":
        return cls()

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> "Pose3":
        """Build a pose from a 4x4 homogeneous matrix."""
        T = np.asarray(T, dtype=np.float64)
        if T.shape != (4, 4):
            raise ValueError(f"T must have shape (4, 4), got {T.shape}")
        return cls(Rot3(T[:3, :3]), T[:3, 3])

    def matrix(self) -> NDArray[np.float64]:
        T = np.eye(4)
        T[:3, :3] = self._R.matrix()
        T[:3, 3] = self._t
        return T

    @staticmethod
    def dim() -> int:
        return 6

    def rotation(self, H: Optional[np.ndarray] = None) -> Rot3:
        """Rotation part, with H = [I, 0] (3x6)."""
        if H is not None:
            fill_jacobian(H, np.hstack([np.eye(3), np.zeros((3, 3))]), "H")
        return self._R

    def translation(self, H: Optional[np.ndarray] = None) -> NDArray[np.float64]:
        """Translation part, with H = [0, R] (3x6)."""
        if H is not None:
            fill_jacobian(H, np.hstack([np.zeros((3, 3)), self._R.matrix()]), "H")
        return self._t

    def adjoint_map(self) -> NDArray[np.float64]:
        """Ad_T = [[R, 0], [[t]x R, R]]."""
        R = self._R.matrix()
        Ad = np.zeros((6, 6))
        Ad[:3, :3] = R
        Ad[3:, :3] = skew(self._t) @ R
        Ad[3:, 3:] = R
        return Ad

    # ------------------------------------------------------------------
    # Group operations
    # ------------------------------------------------------------------

    def compose(
        self,
        other: "Pose3",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "Pose3":
        """self * other, with H1 = Ad(other^-1) and H2 = I."""
        check_jacobian(H1, (6, 6), "H1")
        check_jacobian(H2, (6, 6), "H2")
        if H1 is not None:
            fill_jacobian(H1, other.inverse().adjoint_map(), "H1")
        fill_jacobian(H2, np.eye(6), "H2")
        return Pose3(
            self._R.compose(other._R),
            self._t + self._R.matrix() @ other._t,
        )

    def __mul__(self, other: "Pose3") -> "Pose3":
        return self.compose(other)

    def inverse(self, H: Optional[np.ndarray] = None) -> "Pose3":
        if H is not None:
            fill_jacobian(H, -self.adjoint_map(), "H")
        Rt = self._R.inverse()
        return Pose3(Rt, -(Rt.matrix() @ self._t))

    def between(
        self,
        other: "Pose3",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "Pose3":
        """self^-1 * other."""
        check_jacobian(H1, (6, 6), "H1")
        check_jacobian(H2, (6, 6), "H2")
        result = self.inverse().compose(other)
        if H1 is not None:
            fill_jacobian(H1, -result.inverse().adjoint_map(), "H1")
        fill_jacobian(H2, np.eye(6), "H2")
        return result

    # ------------------------------------------------------------------
    # Lie group
    # ------------------------------------------------------------------

    @staticmethod
    def exp(xi, H: Optional[np.ndarray] = None) -> "Pose3":
        """
        Exponential map at the identity.

        Args:
            xi: Tangent vector [omega, rho] of shape (6,).
            H: Optional (6, 6) output, filled with the right Jacobian.

        Returns:
            Pose3 (Exp(omega), Jl(omega) @ rho).
        """
        xi = check_vector(xi, 6, "xi")
        omega, rho = xi[:3], xi[3:]
        if H is not None:
            fill_jacobian(H, Pose3.exp_derivative(xi), "H")
        return Pose3(Rot3.exp(omega), Rot3.left_jacobian(omega) @ rho)

    @staticmethod
    def log(pose: "Pose3", H: Optional[np.ndarray] = None) -> NDArray[np.float64]:
        """Logarithm map at the identity, inverse of Pose3.exp."""
        omega = Rot3.log(pose._R)
        rho = Rot3.left_jacobian_inverse(omega) @ pose._t
        xi = np.concatenate([omega, rho])
        if H is not None:
            fill_jacobian(H, Pose3.log_derivative(xi), "H")
        return xi

    @staticmethod
    def compute_q(omega, rho) -> NDArray[np.float64]:
        """
        Coupling block Q of the SE(3) right Jacobian.

        Closed form (Barfoot & Furgale, 2014) with the odd-order terms
        negated so that the result belongs to the right Jacobian:

            Q = -V/2 + a (WV + VW - WVW) + b (WWV + VWW - 3 WVW)
                - (b - 3d)/2 (WVWW + WWVW)

        with W = [omega]x, V = [rho]x and
            a = (t - sin t)/t^3
            b = (1 - t^2/2 - cos t)/t^4
            d = (t - sin t - t^3/6)/t^5

        Below Q_SERIES_ANGLE the coefficients come from their Taylor series.
        """
        omega = check_vector(omega, 3, "omega")
        rho = check_vector(rho, 3, "rho")
        W = skew(omega)
        V = skew(rho)
        WVW = W @ V @ W
        theta = np.linalg.norm(omega)
        theta2 = theta * theta

        if theta < Q_SERIES_ANGLE:
            theta4 = theta2 * theta2
            a = 1.0 / 6.0 - theta2 / 120.0 + theta4 / 5040.0
            b = -1.0 / 24.0 + theta2 / 720.0 - theta4 / 40320.0
            d = -1.0 / 120.0 + theta2 / 5040.0 - theta4 / 362880.0
        else:
            s, c = np.sin(theta), np.cos(theta)
            theta3 = theta2 * theta
            a = (theta - s) / theta3
            b = (1.0 - theta2 / 2.0 - c) / (theta3 * theta)
            d = (theta - s - theta3 / 6.0) / (theta3 * theta2)

        return (
            -0.5 * V
            + a * (W @ V + V @ W - WVW)
            + b * (W @ W @ V + V @ W @ W - 3.0 * WVW)
            - 0.5 * (b - 3.0 * d) * (WVW @ W + W @ WVW)
        )

    @staticmethod
    def exp_derivative(xi) -> NDArray[np.float64]:
        """Right Jacobian of Pose3.exp: [[Jr, 0], [Q, Jr]]."""
        xi = check_vector(xi, 6, "xi")
        Jr = Rot3.exp_derivative(xi[:3])
        J = np.zeros((6, 6))
        J[:3, :3] = Jr
        J[3:, :3] = Pose3.compute_q(xi[:3], xi[3:])
        J[3:, 3:] = Jr
        return J

    @staticmethod
    def log_derivative(xi) -> NDArray[np.float64]:
        """Inverse of exp_derivative: [[Jr^-1, 0], [-Jr^-1 Q Jr^-1, Jr^-1]]."""
        xi = check_vector(xi, 6, "xi")
        Jr_inv = Rot3.log_derivative(xi[:3])
        Q = Pose3.compute_q(xi[:3], xi[3:])
        J = np.zeros((6, 6))
        J[:3, :3] = Jr_inv
        J[3:, :3] = -Jr_inv @ Q @ Jr_inv
        J[3:, 3:] = Jr_inv
        return J

    # ------------------------------------------------------------------
    # Manifold
    # ------------------------------------------------------------------

    def retract(
        self,
        xi,
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "Pose3":
        """self * Exp(xi)."""
        check_jacobian(H1, (6, 6), "H1")
        delta = Pose3.exp(xi, H2)
        return self.compose(delta, H1=H1)

    def local_coordinates(
        self,
        other: "Pose3",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> NDArray[np.float64]:
        """Log(self^-1 * other)."""
        check_jacobian(H1, (6, 6), "H1")
        check_jacobian(H2, (6, 6), "H2")
        if H1 is None and H2 is None:
            return Pose3.log(self.between(other))

        D_between = np.empty((6, 6))
        relative = self.between(other, H1=D_between)
        D_log = np.empty((6, 6))
        xi = Pose3.log(relative, D_log)
        fill_jacobian(H1, D_log @ D_between, "H1")
        fill_jacobian(H2, D_log, "H2")
        return xi

    expmap = retract
    logmap = local_coordinates

    def equals(self, other: "Pose3", tol: float = 1e-9) -> bool:
        return self._R.equals(other._R, tol) and bool(
            np.allclose(self._t, other._t, rtol=0.0, atol=tol)
        )

    def __repr__(self) -> str:
        return f"Pose3(R={self._R!r}, t={np.array2string(self._t, precision=6)})"
