"""Unit tests for navcore.geometry.pose3 module."""

import numpy as np
import pytest

from navcore.geometry import Pose3, Rot3
from navcore.utils import skew
from numerical import numerical_derivative

T1 = Pose3(Rot3.rz_ry_rx(0.1, 0.2, 0.3), np.array([1.0, 2.0, 3.0]))
T2 = Pose3(Rot3.rz_ry_rx(-0.3, 0.1, 0.9), np.array([-0.5, 4.0, 1.5]))


def exp_by_matrix_series(xi: np.ndarray, terms: int = 30) -> np.ndarray:
    """Matrix exponential of the 4x4 twist, summed as a power series."""
    A = np.zeros((4, 4))
    A[:3, :3] = skew(xi[:3])
    A[:3, 3] = xi[3:]
    result = np.eye(4)
    term = np.eye(4)
    for k in range(1, terms):
        term = term @ A / k
        result = result + term
    return result


class TestPose3Group:
    """Test suite for Pose3 group operations."""

    def test_matrix_round_trip(self):
        assert Pose3.from_matrix(T1.matrix()).equals(T1)

    def test_compose_is_matrix_product(self):
        np.testing.assert_allclose((T1 * T2).matrix(), T1.matrix() @ T2.matrix(), atol=1e-12)

    def test_inverse(self):
        assert (T1 * T1.inverse()).equals(Pose3.identity())

    def test_between(self):
        assert (T1 * T1.between(T2)).equals(T2)

    def test_accessors(self):
        assert T1.rotation().equals(Rot3.rz_ry_rx(0.1, 0.2, 0.3))
        np.testing.assert_allclose(T1.translation(), [1.0, 2.0, 3.0])
        assert Pose3.dim() == 6

    def test_bad_matrix_raises(self):
        with pytest.raises(ValueError):
            Pose3.from_matrix(np.eye(3))

    def test_group_jacobians(self):
        H1, H2, H = np.zeros((6, 6)), np.zeros((6, 6)), np.zeros((6, 6))
        T1.compose(T2, H1, H2)
        f = lambda a, b: a.compose(b)
        np.testing.assert_allclose(H1, numerical_derivative(f, [T1, T2], 0), atol=1e-8)
        np.testing.assert_allclose(H2, numerical_derivative(f, [T1, T2], 1), atol=1e-8)

        T1.inverse(H)
        np.testing.assert_allclose(H, numerical_derivative(lambda a: a.inverse(), [T1]), atol=1e-8)

        T1.between(T2, H1, H2)
        f = lambda a, b: a.between(b)
        np.testing.assert_allclose(H1, numerical_derivative(f, [T1, T2], 0), atol=1e-8)
        np.testing.assert_allclose(H2, numerical_derivative(f, [T1, T2], 1), atol=1e-8)

    def test_accessor_jacobians(self):
        H = np.zeros((3, 6))
        T1.rotation(H)
        np.testing.assert_allclose(H, numerical_derivative(lambda T: T.rotation(), [T1]), atol=1e-8)
        T1.translation(H)
        np.testing.assert_allclose(
            H, numerical_derivative(lambda T: T.translation(), [T1]), atol=1e-8
        )


class TestPose3ExpLog:
    """Test suite for the SE(3) exponential, logarithm and their Jacobians."""

    @pytest.mark.parametrize(
        "xi",
        [
            np.array([0.1, 0.2, 0.3, 1.0, -2.0, 0.5]),
            np.array([0.0, 0.0, 0.0, 1.0, 2.0, 3.0]),
            np.array([1e-3, -2e-3, 5e-4, 0.4, 0.5, 0.6]),
        ],
    )
    def test_exp_matches_matrix_exponential(self, xi):
        np.testing.assert_allclose(Pose3.exp(xi).matrix(), exp_by_matrix_series(xi), atol=1e-10)

    def test_log_round_trip(self):
        xi = np.array([0.5, -1.0, 0.8, 1.0, -2.0, 0.5])
        np.testing.assert_allclose(Pose3.log(Pose3.exp(xi)), xi, atol=1e-10)

    @pytest.mark.parametrize(
        "xi",
        [
            np.array([0.1, 0.2, 0.3, 1.0, -2.0, 0.5]),
            np.array([1e-3, -2e-3, 5e-4, 0.4, 0.5, 0.6]),
            np.array([1e-7, 0.0, -1e-7, 0.4, 0.5, 0.6]),
            np.array([1.2, -0.8, 0.4, 2.0, 1.0, -1.0]),
        ],
    )
    def test_exp_jacobian(self, xi):
        H = np.zeros((6, 6))
        Pose3.exp(xi, H)
        np.testing.assert_allclose(H, numerical_derivative(Pose3.exp, [xi]), atol=1e-7)

    def test_q_series_continuity(self):
        """Closed form and series agree on either side of the switch angle."""
        rho = np.array([0.4, 0.5, 0.6])
        axis = np.array([1.0, 2.0, 2.0]) / 3.0
        below = Pose3.compute_q(axis * (1e-2 - 1e-13), rho)
        above = Pose3.compute_q(axis * (1e-2 + 1e-13), rho)
        np.testing.assert_allclose(below, above, atol=1e-12)

    @pytest.mark.parametrize("theta", [1e-2 - 1e-6, 1e-2 + 1e-6])
    def test_exp_jacobian_around_series_switch(self, theta):
        """Each side of the switch angle matches the numerical derivative of exp."""
        axis = np.array([1.0, 2.0, 2.0]) / 3.0
        xi = np.concatenate([theta * axis, [0.4, 0.5, 0.6]])
        expected = numerical_derivative(Pose3.exp, [xi])
        np.testing.assert_allclose(Pose3.exp_derivative(xi), expected, atol=1e-8)

    def test_q_at_zero(self):
        rho = np.array([0.4, 0.5, 0.6])
        np.testing.assert_allclose(Pose3.compute_q(np.zeros(3), rho), -0.5 * skew(rho))

    def test_log_jacobian(self):
        xi = np.array([0.1, 0.2, 0.3, 1.0, -2.0, 0.5])
        T = Pose3.exp(xi)
        H = np.zeros((6, 6))
        Pose3.log(T, H)
        np.testing.assert_allclose(H, numerical_derivative(Pose3.log, [T]), atol=1e-7)
        np.testing.assert_allclose(H @ Pose3.exp_derivative(xi), np.eye(6), atol=1e-10)

    def test_manifold_jacobians(self):
        xi = np.array([0.1, 0.2, 0.3, 1.0, -2.0, 0.5])
        H1, H2 = np.zeros((6, 6)), np.zeros((6, 6))
        T1.retract(xi, H1, H2)
        f = lambda T, d: T.retract(d)
        np.testing.assert_allclose(H1, numerical_derivative(f, [T1, xi], 0), atol=1e-7)
        np.testing.assert_allclose(H2, numerical_derivative(f, [T1, xi], 1), atol=1e-7)

        T1.local_coordinates(T2, H1, H2)
        f = lambda a, b: a.local_coordinates(b)
        np.testing.assert_allclose(H1, numerical_derivative(f, [T1, T2], 0), atol=1e-7)
        np.testing.assert_allclose(H2, numerical_derivative(f, [T1, T2], 1), atol=1e-7)

    def test_adjoint(self):
        """T Exp(xi) T^-1 = Exp(Ad_T xi)."""
        xi = np.array([0.1, 0.2, 0.3, 1.0, -2.0, 0.5])
        lhs = T1 * Pose3.exp(xi) * T1.inverse()
        assert lhs.equals(Pose3.exp(T1.adjoint_map() @ xi))
