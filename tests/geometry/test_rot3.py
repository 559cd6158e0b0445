"""Unit tests for navcore.geometry.rot3 module.

Tests SO(3) operations used as the attitude of a navigation state:
constructors, group operations, exponential/logarithm maps and the
analytic Jacobians of every operation against numerical derivatives.
"""

import numpy as np
import pytest

from navcore.geometry import Rot3
from numerical import numerical_derivative

R1 = Rot3.rz_ry_rx(0.1, 0.2, 0.3)
R2 = Rot3.rz_ry_rx(-0.4, 0.5, 1.2)
P = np.array([0.3, -1.2, 2.5])


def rodrigues(omega: np.ndarray) -> np.ndarray:
    """Rodrigues' rotation formula, written out independently of scipy."""
    theta = np.linalg.norm(omega)
    if theta == 0.0:
        return np.eye(3)
    k = omega / theta
    K = np.array([[0.0, -k[2], k[1]], [k[2], 0.0, -k[0]], [-k[1], k[0], 0.0]])
    return np.eye(3) + np.sin(theta) * K + (1.0 - np.cos(theta)) * (K @ K)


class TestConstructors:
    """Test suite for Rot3 constructors and conversions."""

    def test_identity(self):
        np.testing.assert_allclose(Rot3.identity().matrix(), np.eye(3))
        np.testing.assert_allclose(Rot3().matrix(), np.eye(3))

    def test_rz_ry_rx_matches_elementary_rotations(self):
        x, y, z = 0.1, 0.2, 0.3
        Rx = np.array([[1, 0, 0], [0, np.cos(x), -np.sin(x)], [0, np.sin(x), np.cos(x)]])
        Ry = np.array([[np.cos(y), 0, np.sin(y)], [0, 1, 0], [-np.sin(y), 0, np.cos(y)]])
        Rz = np.array([[np.cos(z), -np.sin(z), 0], [np.sin(z), np.cos(z), 0], [0, 0, 1]])
        np.testing.assert_allclose(R1.matrix(), Rz @ Ry @ Rx, atol=1e-12)

    def test_ypr_matches_rz_ry_rx(self):
        assert Rot3.ypr(0.3, 0.2, 0.1).equals(R1)

    def test_rpy_round_trip(self):
        np.testing.assert_allclose(R1.rpy(), [0.1, 0.2, 0.3], atol=1e-12)

    def test_rpy_gimbal_lock(self):
        """At pitch = 90 deg roll is reported as zero."""
        R = Rot3.rz_ry_rx(0.0, np.pi / 2.0, 0.4)
        rpy = R.rpy()
        assert np.isclose(rpy[0], 0.0)
        assert np.isclose(rpy[1], np.pi / 2.0)
        assert Rot3.rz_ry_rx(*rpy).equals(R, tol=1e-9)

    def test_quaternion_round_trip(self):
        q = R2.to_quaternion()
        assert q[0] >= 0.0
        assert np.isclose(np.linalg.norm(q), 1.0)
        assert Rot3.from_quaternion(q).equals(R2)

    def test_quaternion_about_z(self):
        """90 deg about z is [cos 45, 0, 0, sin 45] scalar-first."""
        q = np.array([np.cos(np.pi / 4), 0.0, 0.0, np.sin(np.pi / 4)])
        R = Rot3.from_quaternion(q)
        np.testing.assert_allclose(R.rotate(np.array([1.0, 0.0, 0.0])), [0.0, 1.0, 0.0], atol=1e-12)

    def test_bad_matrix_shape_raises(self):
        with pytest.raises(ValueError):
            Rot3(np.eye(4))

    def test_bad_quaternion_raises(self):
        with pytest.raises(ValueError):
            Rot3.from_quaternion(np.zeros(4))
        with pytest.raises(ValueError):
            Rot3.from_quaternion(np.ones(3))

    def test_non_orthonormal_warns(self):
        with pytest.warns(RuntimeWarning):
            Rot3(2.0 * np.eye(3))

    def test_matrix_is_read_only(self):
        with pytest.raises(ValueError):
            R1.matrix()[0, 0] = 5.0


class TestGroup:
    """Test suite for composition, inverse and between."""

    def test_compose_is_matrix_product(self):
        np.testing.assert_allclose((R1 * R2).matrix(), R1.matrix() @ R2.matrix())

    def test_mul_with_vector_rotates(self):
        np.testing.assert_allclose(R1 * P, R1.matrix() @ P)

    def test_inverse(self):
        assert (R1 * R1.inverse()).equals(Rot3.identity())

    def test_between(self):
        assert (R1 * R1.between(R2)).equals(R2)

    def test_compose_jacobians(self):
        H1, H2 = np.zeros((3, 3)), np.zeros((3, 3))
        R1.compose(R2, H1, H2)
        f = lambda a, b: a.compose(b)
        np.testing.assert_allclose(H1, numerical_derivative(f, [R1, R2], 0), atol=1e-8)
        np.testing.assert_allclose(H2, numerical_derivative(f, [R1, R2], 1), atol=1e-8)

    def test_inverse_jacobian(self):
        H = np.zeros((3, 3))
        R1.inverse(H)
        np.testing.assert_allclose(H, numerical_derivative(lambda a: a.inverse(), [R1]), atol=1e-8)

    def test_between_jacobians(self):
        H1, H2 = np.zeros((3, 3)), np.zeros((3, 3))
        R1.between(R2, H1, H2)
        f = lambda a, b: a.between(b)
        np.testing.assert_allclose(H1, numerical_derivative(f, [R1, R2], 0), atol=1e-8)
        np.testing.assert_allclose(H2, numerical_derivative(f, [R1, R2], 1), atol=1e-8)


class TestAction:
    """Test suite for rotate/unrotate."""

    def test_unrotate_inverts_rotate(self):
        np.testing.assert_allclose(R1.unrotate(R1.rotate(P)), P, atol=1e-12)

    def test_rotate_jacobians(self):
        H1, H2 = np.zeros((3, 3)), np.zeros((3, 3))
        R1.rotate(P, H1, H2)
        f = lambda R, p: R.rotate(p)
        np.testing.assert_allclose(H1, numerical_derivative(f, [R1, P], 0), atol=1e-8)
        np.testing.assert_allclose(H2, numerical_derivative(f, [R1, P], 1), atol=1e-8)

    def test_unrotate_jacobians(self):
        H1, H2 = np.zeros((3, 3)), np.zeros((3, 3))
        R1.unrotate(P, H1, H2)
        f = lambda R, p: R.unrotate(p)
        np.testing.assert_allclose(H1, numerical_derivative(f, [R1, P], 0), atol=1e-8)
        np.testing.assert_allclose(H2, numerical_derivative(f, [R1, P], 1), atol=1e-8)

    def test_bad_vector_raises(self):
        with pytest.raises(ValueError):
            R1.rotate(np.zeros(4))


class TestExpLog:
    """Test suite for the exponential and logarithm maps."""

    @pytest.mark.parametrize(
        "omega",
        [
            np.array([0.1, 0.2, 0.3]),
            np.array([0.0, 0.0, 1.5]),
            np.array([1e-6, -2e-6, 3e-6]),
            np.array([-2.0, 1.0, 0.5]),
        ],
    )
    def test_exp_matches_rodrigues(self, omega):
        np.testing.assert_allclose(Rot3.exp(omega).matrix(), rodrigues(omega), atol=1e-12)

    def test_exp_zero_is_identity(self):
        assert Rot3.exp(np.zeros(3)).equals(Rot3.identity())

    def test_log_round_trip(self):
        omega = np.array([-2.0, 1.0, 0.5])
        np.testing.assert_allclose(Rot3.log(Rot3.exp(omega)), omega, atol=1e-10)

    @pytest.mark.parametrize(
        "omega",
        [np.array([0.1, 0.2, 0.3]), np.array([1e-6, 2e-6, -1e-6]), np.array([1.0, -2.0, 0.5])],
    )
    def test_exp_jacobian(self, omega):
        H = np.zeros((3, 3))
        Rot3.exp(omega, H)
        np.testing.assert_allclose(H, numerical_derivative(Rot3.exp, [omega]), atol=1e-8)

    @pytest.mark.parametrize(
        "omega",
        [np.array([0.1, 0.2, 0.3]), np.array([1e-6, 2e-6, -1e-6]), np.array([1.0, -2.0, 0.5])],
    )
    def test_log_jacobian(self, omega):
        R = Rot3.exp(omega)
        H = np.zeros((3, 3))
        Rot3.log(R, H)
        np.testing.assert_allclose(H, numerical_derivative(Rot3.log, [R]), atol=1e-7)

    def test_log_derivative_inverts_exp_derivative(self):
        omega = np.array([0.4, -0.3, 1.1])
        np.testing.assert_allclose(
            Rot3.log_derivative(omega) @ Rot3.exp_derivative(omega), np.eye(3), atol=1e-12
        )

    def test_left_jacobian(self):
        """Jl(omega) = Exp(omega) Jr(omega)."""
        omega = np.array([0.4, -0.3, 1.1])
        np.testing.assert_allclose(
            Rot3.left_jacobian(omega),
            Rot3.exp(omega).matrix() @ Rot3.exp_derivative(omega),
            atol=1e-12,
        )
        np.testing.assert_allclose(
            Rot3.left_jacobian_inverse(omega) @ Rot3.left_jacobian(omega), np.eye(3), atol=1e-12
        )

    def test_log_derivative_near_pi_warns(self):
        with pytest.warns(RuntimeWarning):
            Rot3.log_derivative(np.array([0.0, 0.0, np.pi - 1e-5]))


class TestManifold:
    """Test suite for retract/local_coordinates."""

    def test_retract_zero(self):
        assert R1.retract(np.zeros(3)).equals(R1)

    def test_local_round_trip(self):
        omega = R1.local_coordinates(R2)
        assert R1.retract(omega).equals(R2)

    def test_retract_jacobians(self):
        omega = np.array([0.1, -0.2, 0.3])
        H1, H2 = np.zeros((3, 3)), np.zeros((3, 3))
        R1.retract(omega, H1, H2)
        f = lambda R, w: R.retract(w)
        np.testing.assert_allclose(H1, numerical_derivative(f, [R1, omega], 0), atol=1e-8)
        np.testing.assert_allclose(H2, numerical_derivative(f, [R1, omega], 1), atol=1e-8)

    def test_local_coordinates_jacobians(self):
        H1, H2 = np.zeros((3, 3)), np.zeros((3, 3))
        R1.local_coordinates(R2, H1, H2)
        f = lambda a, b: a.local_coordinates(b)
        np.testing.assert_allclose(H1, numerical_derivative(f, [R1, R2], 0), atol=1e-7)
        np.testing.assert_allclose(H2, numerical_derivative(f, [R1, R2], 1), atol=1e-7)

    def test_wrong_jacobian_shape_raises(self):
        with pytest.raises(ValueError):
            R1.retract(np.zeros(3), H1=np.zeros((3, 4)))
