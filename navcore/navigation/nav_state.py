"""
Navigation state: attitude, position and velocity as one manifold element.

This module implements the navigation state used by inertial estimators:
    - Group algebra: compose, inverse, between, adjoint (extended pose group)
    - 7x7 homogeneous matrix embedding
    - Chart at the origin (retract/local) and the state-anchored chart
    - Group exponential/logarithm at the identity and their anchored forms
    - IMU propagation (update) under constant accelerometer/gyro samples
    - Coriolis/centripetal and gravity correction of preintegrated motion

Every operation returns its analytic Jacobian(s) on request.

Frame Conventions:
    - B: Body frame (IMU frame)
    - N: Navigation (reference) frame
    - attitude R = C_B^N: v_N = R @ v_B
    - position and velocity are both expressed in N

Tangent Convention:
    xi = [omega, rho, nu] of shape (9,), indices [0:3], [3:6], [6:9].
    To first order, state.retract(xi) = (R Exp(omega), p + R rho, v + R nu),
    i.e. all three increments are expressed in the body frame. A Jacobian H
    of f at x satisfies f(x.retract(d)) ~= f(x).retract(H d).

Group Law:
    (R1, p1, v1) * (R2, p2, v2) = (R1 R2, p1 + R1 p2, v1 + R1 v2)

Jacobian Outputs:
    Optional keyword arrays (H, H1, H2, H3, F, G1, G2). None skips the
    computation; an array of the documented shape is overwritten in place;
    any other shape raises ValueError before anything is written.
"""

from typing import Optional

import numpy as np
from numpy.typing import NDArray

from navcore.geometry.pose3 import Pose3
from navcore.geometry.rot3 import Rot3
from navcore.utils.matrices import check_jacobian, check_vector, fill_jacobian, skew

# Tangent-space blocks
ROT = slice(0, 3)
POS = slice(3, 6)
VEL = slice(6, 9)


def _check_dt(dt: float) -> float:
    if not np.isfinite(dt):
        raise ValueError(f"dt must be finite, got {dt}")
    return float(dt)


class NavState:
    """
    Navigation state (R, p, v) of a rigid body.

    Attributes:
        attitude(): Rot3, body-to-navigation rotation.
        position(): Position in the navigation frame, shape (3,), meters.
        velocity(): Velocity in the navigation frame, shape (3,), m/s.

    NavState is a value type: the component arrays are private read-only
    copies and every operation returns a new state.

    Examples:
        >>> state = NavState(Rot3.rz_ry_rx(0.1, 0.2, 0.3),
        ...                  np.array([1.0, 2.0, 3.0]),
        ...                  np.array([0.4, 0.5, 0.6]))
        >>> xi = np.array([0.1, 0.1, 0.1, 0.2, 0.3, 0.4, -0.1, -0.2, -0.3])
        >>> np.allclose(state.local_coordinates(state.retract(xi)), xi)
        True
        >>> F = np.zeros((9, 9))
        >>> new_state = state.update(np.array([0.1, 0.0, 0.0]),
        ...                          np.array([0.01, 0.0, 0.0]), 0.1, F=F)
    """

    __slots__ = ("_R", "_t", "_v")

    def __init__(
        self,
        attitude: Optional[Rot3] = None,
        position: Optional[NDArray[np.float64]] = None,
        velocity: Optional[NDArray[np.float64]] = None,
    ) -> None:
        if attitude is None:
            attitude = Rot3.identity()
        elif not isinstance(attitude, Rot3):
            raise TypeError(f"attitude must be a Rot3, got {type(attitude).__name__}")

        t = np.zeros(3) if position is None else check_vector(position, 3, "position")
        v = np.zeros(3) if velocity is None else check_vector(velocity, 3, "velocity")
        t.setflags(write=False)
        v.setflags(write=False)

        self._R = attitude
        self._t = t
        self._v = v

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def identity(cls) -> "NavState":
        return cls()

    @classmethod
    def create(
        cls,
        attitude: Rot3,
        position: NDArray[np.float64],
        velocity: NDArray[np.float64],
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
        H3: Optional[np.ndarray] = None,
    ) -> "NavState":
        """
        Build a state from its components, with Jacobians.

        Args:
            attitude: Rotation R.
            position: Position in N, shape (3,).
            velocity: Velocity in N, shape (3,).
            H1: Optional (9, 3) output, derivative w.r.t. attitude: [I; 0; 0].
            H2: Optional (9, 3) output, derivative w.r.t. position: [0; R^T; 0].
            H3: Optional (9, 3) output, derivative w.r.t. velocity: [0; 0; R^T].
        """
        for H, name in ((H1, "H1"), (H2, "H2"), (H3, "H3")):
            check_jacobian(H, (9, 3), name)

        state = cls(attitude, position, velocity)
        Rt = attitude.transpose()
        if H1 is not None:
            D = np.zeros((9, 3))
            D[ROT] = np.eye(3)
            fill_jacobian(H1, D, "H1")
        if H2 is not None:
            D = np.zeros((9, 3))
            D[POS] = Rt
            fill_jacobian(H2, D, "H2")
        if H3 is not None:
            D = np.zeros((9, 3))
            D[VEL] = Rt
            fill_jacobian(H3, D, "H3")
        return state

    @classmethod
    def from_pose_velocity(
        cls,
        pose: Pose3,
        velocity: NDArray[np.float64],
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "NavState":
        """
        Build a state from a pose and a navigation-frame velocity.

        Args:
            pose: Pose3 (R, p).
            velocity: Velocity in N, shape (3,).
            H1: Optional (9, 6) output, derivative w.r.t. pose: [I6; 0].
            H2: Optional (9, 3) output, derivative w.r.t. velocity: [0; 0; R^T].
        """
        check_jacobian(H1, (9, 6), "H1")
        check_jacobian(H2, (9, 3), "H2")

        state = cls(pose.rotation(), pose.translation(), velocity)
        if H1 is not None:
            D = np.zeros((9, 6))
            D[:6, :6] = np.eye(6)
            fill_jacobian(H1, D, "H1")
        if H2 is not None:
            D = np.zeros((9, 3))
            D[VEL] = pose.rotation().transpose()
            fill_jacobian(H2, D, "H2")
        return state

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> "NavState":
        """
        Reconstruct a state from its 7x7 matrix embedding.

        Raises:
            ValueError: If T is not 7x7.
        """
        T = np.asarray(T, dtype=np.float64)
        if T.shape != (7, 7):
            raise ValueError(f"T must have shape (7, 7), got {T.shape}")
        return cls(Rot3(T[:3, :3]), T[:3, 6], T[3:6, 6])

    def matrix(self) -> np.ndarray:
        """
        7x7 matrix embedding.

            T = [[R, 0, p],
                 [0, R, v],
                 [0, 0, 1]]

        so that (s1 * s2).matrix() == s1.matrix() @ s2.matrix().
        """
        R = self._R.matrix()
        T = np.eye(7)
        T[:3, :3] = R
        T[3:6, 3:6] = R
        T[:3, 6] = self._t
        T[3:6, 6] = self._v
        return T

    @staticmethod
    def dim() -> int:
        return 9

    # ------------------------------------------------------------------
    # Component access
    # ------------------------------------------------------------------

    def attitude(self, H: Optional[np.ndarray] = None) -> Rot3:
        """Attitude R, with H = [I, 0, 0] (3x9)."""
        if H is not None:
            D = np.zeros((3, 9))
            D[:, ROT] = np.eye(3)
            fill_jacobian(H, D, "H")
        return self._R

    def position(self, H: Optional[np.ndarray] = None) -> np.ndarray:
        """Position p, with H = [0, R, 0] (3x9)."""
        if H is not None:
            D = np.zeros((3, 9))
            D[:, POS] = self._R.matrix()
            fill_jacobian(H, D, "H")
        return self._t

    def velocity(self, H: Optional[np.ndarray] = None) -> np.ndarray:
        """Navigation-frame velocity v, with H = [0, 0, R] (3x9)."""
        if H is not None:
            D = np.zeros((3, 9))
            D[:, VEL] = self._R.matrix()
            fill_jacobian(H, D, "H")
        return self._v

    translation = position

    def pose(self) -> Pose3:
        return Pose3(self._R, self._t)

    def body_velocity(self, H: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Velocity expressed in the body frame, R^T v.

        Args:
            H: Optional (3, 9) output. Chain rule of unrotate and the velocity
               projection: H = [[R^T v]x, 0, R^T R] = [[R^T v]x, 0, I].

        Returns:
            Body-frame velocity, shape (3,).
        """
        if H is None:
            return self._R.unrotate(self._v)

        check_jacobian(H, (3, 9), "H")
        D_bv_R = np.empty((3, 3))
        D_bv_v = np.empty((3, 3))
        b_v = self._R.unrotate(self._v, H1=D_bv_R, H2=D_bv_v)
        D = np.zeros((3, 9))
        D[:, ROT] = D_bv_R
        D[:, VEL] = D_bv_v @ self._R.matrix()
        fill_jacobian(H, D, "H")
        return b_v

    # ------------------------------------------------------------------
    # Group operations
    # ------------------------------------------------------------------

    def adjoint_map(self) -> np.ndarray:
        """
        9x9 adjoint Ad_X, satisfying X * Exp(xi) * X^-1 = Exp(Ad_X xi).

            Ad = [[R,      0, 0],
                  [[p]x R, R, 0],
                  [[v]x R, 0, R]]
        """
        R = self._R.matrix()
        Ad = np.zeros((9, 9))
        Ad[ROT, ROT] = R
        Ad[POS, ROT] = skew(self._t) @ R
        Ad[POS, POS] = R
        Ad[VEL, ROT] = skew(self._v) @ R
        Ad[VEL, VEL] = R
        return Ad

    def compose(
        self,
        other: "NavState",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "NavState":
        """
        Group product self * other.

        Jacobians (tangent space at the result):
            H1 = Ad(other^-1), H2 = I.
        """
        check_jacobian(H1, (9, 9), "H1")
        check_jacobian(H2, (9, 9), "H2")
        if H1 is not None:
            fill_jacobian(H1, other.inverse().adjoint_map(), "H1")
        fill_jacobian(H2, np.eye(9), "H2")

        R = self._R.matrix()
        return NavState(
            self._R.compose(other._R),
            self._t + R @ other._t,
            self._v + R @ other._v,
        )

    def __mul__(self, other: "NavState") -> "NavState":
        return self.compose(other)

    def inverse(self, H: Optional[np.ndarray] = None) -> "NavState":
        """(R^T, -R^T p, -R^T v), with H = -Ad(self)."""
        if H is not None:
            fill_jacobian(H, -self.adjoint_map(), "H")
        Rt = self._R.inverse()
        return NavState(Rt, -(Rt.matrix() @ self._t), -(Rt.matrix() @ self._v))

    def between(
        self,
        other: "NavState",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "NavState":
        """Relative state self^-1 * other."""
        check_jacobian(H1, (9, 9), "H1")
        check_jacobian(H2, (9, 9), "H2")
        result = self.inverse().compose(other)
        if H1 is not None:
            fill_jacobian(H1, -result.inverse().adjoint_map(), "H1")
        fill_jacobian(H2, np.eye(9), "H2")
        return result

    # ------------------------------------------------------------------
    # Manifold
    # ------------------------------------------------------------------

    class ChartAtOrigin:
        """
        Chart at the identity used by retract/local_coordinates.

        (omega, rho) go through the SE(3) exponential jointly and nu is
        taken as the velocity unchanged:

            Retract(xi) = (Exp(omega), Jl(omega) rho, nu)

        This differs from the group exponential NavState.exp, which also
        maps nu through Jl(omega). Both agree to first order in xi.
        """

        @staticmethod
        def retract(xi: NDArray[np.float64], H: Optional[np.ndarray] = None) -> "NavState":
            """
            Map a tangent vector at the identity to a state.

            Args:
                xi: Tangent vector, shape (9,).
                H: Optional (9, 9) output:
                   [[Jr, 0, 0], [Q(omega, rho), Jr, 0], [0, 0, Exp(omega)^T]].
            """
            xi = check_vector(xi, 9, "xi")
            check_jacobian(H, (9, 9), "H")

            D_pose = np.empty((6, 6)) if H is not None else None
            pose = Pose3.exp(xi[:6], D_pose)
            result = NavState(pose.rotation(), pose.translation(), xi[VEL])
            if H is not None:
                D = np.zeros((9, 9))
                D[:6, :6] = D_pose
                D[VEL, VEL] = pose.rotation().transpose()
                fill_jacobian(H, D, "H")
            return result

        @staticmethod
        def local(state: "NavState", H: Optional[np.ndarray] = None) -> np.ndarray:
            """
            Inverse of ChartAtOrigin.retract.

            Args:
                state: State to express in the chart.
                H: Optional (9, 9) output, inverse of the retract Jacobian
                   at the returned tangent vector.
            """
            check_jacobian(H, (9, 9), "H")
            D_pose = np.empty((6, 6)) if H is not None else None
            xi = np.concatenate([Pose3.log(state.pose(), D_pose), state._v])
            if H is not None:
                D = np.zeros((9, 9))
                D[:6, :6] = D_pose
                D[VEL, VEL] = state._R.matrix()
                fill_jacobian(H, D, "H")
            return xi

    def retract(
        self,
        xi: NDArray[np.float64],
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "NavState":
        """
        self * ChartAtOrigin.retract(xi).

        Args:
            xi: Tangent vector, shape (9,).
            H1: Optional (9, 9) output, derivative w.r.t. self.
            H2: Optional (9, 9) output, derivative w.r.t. xi.
        """
        check_jacobian(H1, (9, 9), "H1")
        check_jacobian(H2, (9, 9), "H2")
        delta = NavState.ChartAtOrigin.retract(xi, H2)
        return self.compose(delta, H1=H1)

    def local_coordinates(
        self,
        other: "NavState",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Tangent vector xi such that self.retract(xi) == other.

        Args:
            other: Target state.
            H1: Optional (9, 9) output, derivative w.r.t. self.
            H2: Optional (9, 9) output, derivative w.r.t. other.
        """
        check_jacobian(H1, (9, 9), "H1")
        check_jacobian(H2, (9, 9), "H2")
        if H1 is None and H2 is None:
            return NavState.ChartAtOrigin.local(self.between(other))

        D_between = np.empty((9, 9))
        relative = self.between(other, H1=D_between)
        D_local = np.empty((9, 9))
        xi = NavState.ChartAtOrigin.local(relative, D_local)
        fill_jacobian(H1, D_local @ D_between, "H1")
        fill_jacobian(H2, D_local, "H2")
        return xi

    # ------------------------------------------------------------------
    # Lie group
    # ------------------------------------------------------------------

    @staticmethod
    def exp(xi: NDArray[np.float64], H: Optional[np.ndarray] = None) -> "NavState":
        """
        Group exponential at the identity.

            Exp(xi) = (Exp(omega), Jl(omega) rho, Jl(omega) nu)

        Args:
            xi: Tangent vector, shape (9,).
            H: Optional (9, 9) output, the right Jacobian exp_derivative(xi).
        """
        xi = check_vector(xi, 9, "xi")
        omega = xi[ROT]
        Jl = Rot3.left_jacobian(omega)
        if H is not None:
            fill_jacobian(H, NavState.exp_derivative(xi), "H")
        return NavState(Rot3.exp(omega), Jl @ xi[POS], Jl @ xi[VEL])

    @staticmethod
    def log(state: "NavState", H: Optional[np.ndarray] = None) -> np.ndarray:
        """Group logarithm at the identity, inverse of NavState.exp."""
        omega = Rot3.log(state._R)
        Jl_inv = Rot3.left_jacobian_inverse(omega)
        xi = np.concatenate([omega, Jl_inv @ state._t, Jl_inv @ state._v])
        if H is not None:
            fill_jacobian(H, NavState.log_derivative(xi), "H")
        return xi

    @staticmethod
    def exp_derivative(xi: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Right Jacobian of NavState.exp.

            [[Jr,            0,  0 ],
             [Q(omega, rho), Jr, 0 ],
             [Q(omega, nu),  0,  Jr]]
        """
        xi = check_vector(xi, 9, "xi")
        omega = xi[ROT]
        Jr = Rot3.exp_derivative(omega)
        J = np.zeros((9, 9))
        J[ROT, ROT] = Jr
        J[POS, ROT] = Pose3.compute_q(omega, xi[POS])
        J[POS, POS] = Jr
        J[VEL, ROT] = Pose3.compute_q(omega, xi[VEL])
        J[VEL, VEL] = Jr
        return J

    @staticmethod
    def log_derivative(xi: NDArray[np.float64]) -> NDArray[np.float64]:
        """Inverse of exp_derivative(xi)."""
        xi = check_vector(xi, 9, "xi")
        omega = xi[ROT]
        Jr_inv = Rot3.log_derivative(omega)
        J = np.zeros((9, 9))
        J[ROT, ROT] = Jr_inv
        J[POS, ROT] = -Jr_inv @ Pose3.compute_q(omega, xi[POS]) @ Jr_inv
        J[POS, POS] = Jr_inv
        J[VEL, ROT] = -Jr_inv @ Pose3.compute_q(omega, xi[VEL]) @ Jr_inv
        J[VEL, VEL] = Jr_inv
        return J

    def expmap(
        self,
        xi: NDArray[np.float64],
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> "NavState":
        """self * NavState.exp(xi)."""
        check_jacobian(H1, (9, 9), "H1")
        check_jacobian(H2, (9, 9), "H2")
        delta = NavState.exp(xi, H2)
        return self.compose(delta, H1=H1)

    def logmap(
        self,
        other: "NavState",
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """NavState.log(self^-1 * other)."""
        check_jacobian(H1, (9, 9), "H1")
        check_jacobian(H2, (9, 9), "H2")
        if H1 is None and H2 is None:
            return NavState.log(self.between(other))

        D_between = np.empty((9, 9))
        relative = self.between(other, H1=D_between)
        D_log = np.empty((9, 9))
        xi = NavState.log(relative, D_log)
        fill_jacobian(H1, D_log @ D_between, "H1")
        fill_jacobian(H2, D_log, "H2")
        return xi

    # ------------------------------------------------------------------
    # Dynamics
    # ------------------------------------------------------------------

    def update(
        self,
        acceleration: NDArray[np.float64],
        angular_velocity: NDArray[np.float64],
        dt: float,
        F: Optional[np.ndarray] = None,
        G1: Optional[np.ndarray] = None,
        G2: Optional[np.ndarray] = None,
    ) -> "NavState":
        """
        Propagate the state over dt with constant IMU measurements.

        Integration (a_N uses the attitude before the update):
            R' = R Exp(dt w)
            a_N = R a
            p' = p + (v + a_N dt/2) dt
            v' = v + a_N dt

        Args:
            acceleration: Body-frame specific force a, shape (3,), m/s^2.
            angular_velocity: Body-frame angular rate w, shape (3,), rad/s.
            dt: Integration interval, seconds.
            F: Optional (9, 9) output, derivative w.r.t. the state.
            G1: Optional (9, 3) output, derivative w.r.t. acceleration.
            G2: Optional (9, 3) output, derivative w.r.t. angular_velocity.

        Returns:
            Propagated state.

        Notes:
            With dR = Exp(dt w) and A = [a]x:
                F  = [[dR^T,              0,    0        ],
                      [-dt^2/2 dR^T A,    dR^T, dt dR^T  ],
                      [-dt dR^T A,        0,    dR^T     ]]
                G1 = [0; dt^2/2 dR^T; dt dR^T]
                G2 = [dt Jr(dt w); 0; 0]
        """
        acc = check_vector(acceleration, 3, "acceleration")
        omega = check_vector(angular_velocity, 3, "angular_velocity")
        dt = _check_dt(dt)
        check_jacobian(F, (9, 9), "F")
        check_jacobian(G1, (9, 3), "G1")
        check_jacobian(G2, (9, 3), "G2")

        D_dR_omega = np.empty((3, 3)) if G2 is not None else None
        dR = Rot3.exp(dt * omega, D_dR_omega)

        n_acc = self._R.rotate(acc)
        new_state = NavState(
            self._R.compose(dR),
            self._t + (self._v + n_acc * dt / 2.0) * dt,
            self._v + n_acc * dt,
        )

        dRt = dR.transpose()
        dt22 = 0.5 * dt * dt
        if F is not None:
            A = skew(acc)
            D = np.zeros((9, 9))
            D[ROT, ROT] = dRt
            D[POS, ROT] = -dt22 * dRt @ A
            D[POS, POS] = dRt
            D[POS, VEL] = dt * dRt
            D[VEL, ROT] = -dt * dRt @ A
            D[VEL, VEL] = dRt
            fill_jacobian(F, D, "F")
        if G1 is not None:
            D = np.zeros((9, 3))
            D[POS] = dt22 * dRt
            D[VEL] = dt * dRt
            fill_jacobian(G1, D, "G1")
        if G2 is not None:
            D = np.zeros((9, 3))
            D[ROT] = dt * D_dR_omega
            fill_jacobian(G2, D, "G2")
        return new_state

    def coriolis(
        self,
        dt: float,
        omega: NDArray[np.float64],
        second_order: bool = False,
        H: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Tangent-space correction for a rotating navigation frame.

        Computed in the navigation frame, then expressed in the body frame:
            n_w = -dt w
            n_p = -dt^2 w x v              (- dt^2/2 w x (w x p) if second_order)
            n_v = -2 dt w x v              (- dt w x (w x p)     if second_order)
            xi  = [R^T n_w, R^T n_p, R^T n_v]

        Args:
            dt: Time interval, seconds.
            omega: Rotation rate of the navigation frame, shape (3,), rad/s.
            second_order: Include the centripetal term.
            H: Optional (9, 9) output, derivative w.r.t. the state.

        Returns:
            Correction xi, shape (9,).
        """
        dt = _check_dt(dt)
        omega = check_vector(omega, 3, "omega")
        check_jacobian(H, (9, 9), "H")

        dt2 = dt * dt
        n_omega = -dt * omega
        n_dp = -dt2 * np.cross(omega, self._v)
        n_dv = -2.0 * dt * np.cross(omega, self._v)
        if second_order:
            omega_cross2_p = np.cross(omega, np.cross(omega, self._t))
            n_dp -= 0.5 * dt2 * omega_cross2_p
            n_dv -= dt * omega_cross2_p

        if H is None:
            return np.concatenate(
                [self._R.unrotate(n_omega), self._R.unrotate(n_dp), self._R.unrotate(n_dv)]
            )

        D_dR_R = np.empty((3, 3))
        D_dP_R = np.empty((3, 3))
        D_dV_R = np.empty((3, 3))
        D_body_nav = np.empty((3, 3))
        xi = np.concatenate(
            [
                self._R.unrotate(n_omega, H1=D_dR_R, H2=D_body_nav),
                self._R.unrotate(n_dp, H1=D_dP_R),
                self._R.unrotate(n_dv, H1=D_dV_R),
            ]
        )

        Omega = skew(omega)
        D_cross_state = Omega @ self._R.matrix()
        D = np.zeros((9, 9))
        D[ROT, ROT] = D_dR_R
        D[POS, ROT] = D_dP_R
        D[POS, VEL] = D_body_nav @ (-dt2 * D_cross_state)
        D[VEL, ROT] = D_dV_R
        D[VEL, VEL] = D_body_nav @ (-2.0 * dt * D_cross_state)
        if second_order:
            D_cross2_state = Omega @ D_cross_state
            D[POS, POS] = D_body_nav @ (-0.5 * dt2 * D_cross2_state)
            D[VEL, POS] = D_body_nav @ (-dt * D_cross2_state)
        fill_jacobian(H, D, "H")
        return xi

    def correct_pim(
        self,
        pim: NDArray[np.float64],
        dt: float,
        gravity: NDArray[np.float64],
        omega_coriolis: Optional[NDArray[np.float64]] = None,
        use_second_order: bool = False,
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Correct a preintegrated tangent vector for gravity and Coriolis.

        The preintegrated measurement (PIM) is integrated from raw IMU samples
        without knowledge of gravity or frame rotation. Anchored at self:
            xi_w = pim_w
            xi_p = pim_p + dt R^T v + dt^2/2 R^T g
            xi_v = pim_v + dt R^T g
            xi  += coriolis(dt, omega_coriolis, use_second_order)  (if given)

        Args:
            pim: Preintegrated tangent vector, shape (9,).
            dt: Preintegration interval, seconds.
            gravity: Gravity in the navigation frame, shape (3,), m/s^2.
            omega_coriolis: Optional navigation-frame rotation rate, shape (3,).
            use_second_order: Include the centripetal Coriolis term.
            H1: Optional (9, 9) output, derivative w.r.t. the state.
            H2: Optional (9, 9) output, derivative w.r.t. pim (identity).

        Returns:
            Corrected tangent vector, shape (9,).
        """
        xi = check_vector(pim, 9, "pim")
        dt = _check_dt(dt)
        g = check_vector(gravity, 3, "gravity")
        check_jacobian(H1, (9, 9), "H1")
        check_jacobian(H2, (9, 9), "H2")

        want_H1 = H1 is not None
        D_dP_R1 = np.empty((3, 3)) if want_H1 else None
        D_dP_nv = np.empty((3, 3)) if want_H1 else None
        D_dP_R2 = np.empty((3, 3)) if want_H1 else None
        D_dV_R = np.empty((3, 3)) if want_H1 else None

        dt22 = 0.5 * dt * dt
        b_v = self._R.unrotate(self._v, H1=D_dP_R1, H2=D_dP_nv)
        xi[POS] += dt * b_v + dt22 * self._R.unrotate(g, H1=D_dP_R2)
        xi[VEL] += dt * self._R.unrotate(g, H1=D_dV_R)

        D = np.zeros((9, 9)) if want_H1 else None
        if omega_coriolis is not None:
            xi += self.coriolis(dt, omega_coriolis, use_second_order, H=D)

        if want_H1:
            D[POS, ROT] += dt * D_dP_R1 + dt22 * D_dP_R2
            D[POS, VEL] += dt * D_dP_nv @ self._R.matrix()
            D[VEL, ROT] += dt * D_dV_R
            fill_jacobian(H1, D, "H1")
        fill_jacobian(H2, np.eye(9), "H2")
        return xi

    # ------------------------------------------------------------------
    # Testable
    # ------------------------------------------------------------------

    def equals(self, other: "NavState", tol: float = 1e-9) -> bool:
        return (
            self._R.equals(other._R, tol)
            and bool(np.allclose(self._t, other._t, rtol=0.0, atol=tol))
            and bool(np.allclose(self._v, other._v, rtol=0.0, atol=tol))
        )

    def __repr__(self) -> str:
        return (
            f"NavState(R={self._R!r}, "
            f"p={np.array2string(self._t, precision=6)}, "
            f"v={np.array2string(self._v, precision=6)})"
        )
