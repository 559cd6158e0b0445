"""
Navigation-frame parameters for preintegrated IMU correction.

Defines the gravity vector and the rotation rate of the navigation frame
that NavState.correct_pim needs, in the frame convention the estimator
uses (ENU or NED).
"""

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from navcore.navigation.nav_state import NavState
from navcore.utils.matrices import check_vector

# WGS-84 Earth rotation rate (rad/s)
EARTH_ROTATION_RATE = 7.292115e-5

# Standard gravity (m/s^2)
STANDARD_GRAVITY = 9.81


def gravity_magnitude(lat_rad: float) -> float:
    """
    Latitude-dependent gravity magnitude on the WGS-84 ellipsoid surface.

    Args:
        lat_rad: Geodetic latitude in radians.

    Returns:
        Gravity magnitude in m/s^2.

    Notes:
        g(phi) = 9.7803 (1 + 0.0053024 sin^2(phi) - 0.000005 sin^2(2 phi))

    Examples:
        >>> round(gravity_magnitude(0.0), 4)
        9.7803
    """
    sin_lat = np.sin(lat_rad)
    sin_2lat = np.sin(2.0 * lat_rad)
    return float(9.7803 * (1.0 + 0.0053024 * sin_lat**2 - 0.000005 * sin_2lat**2))


@dataclass(frozen=True)
class NavigationParams:
    """
    Gravity and Coriolis configuration of the navigation frame.

    Attributes:
        gravity: Gravity vector in the navigation frame, shape (3,), m/s^2.
                 ENU: [0, 0, -g]; NED: [0, 0, +g].
        omega_coriolis: Rotation rate of the navigation frame expressed in
                        itself, shape (3,), rad/s. None disables Coriolis
                        correction.
        use_second_order_coriolis: Include the centripetal term.
        frame: 'ENU' or 'NED'; used by with_earth_rotation.

    Examples:
        >>> params = NavigationParams.create_ned(9.81)
        >>> params.gravity
        array([0.  , 0.  , 9.81])
        >>> params = params.with_earth_rotation(np.deg2rad(22.3))
    """

    gravity: NDArray[np.float64]
    omega_coriolis: Optional[NDArray[np.float64]] = None
    use_second_order_coriolis: bool = False
    frame: str = "NED"

    def __post_init__(self):
        if self.frame not in ("ENU", "NED"):
            raise ValueError(f"frame must be 'ENU' or 'NED', got {self.frame!r}")

        gravity = check_vector(self.gravity, 3, "gravity")
        if not np.all(np.isfinite(gravity)):
            raise ValueError(f"gravity must be finite, got {gravity}")
        gravity.setflags(write=False)
        object.__setattr__(self, "gravity", gravity)

        if self.omega_coriolis is not None:
            omega = check_vector(self.omega_coriolis, 3, "omega_coriolis")
            if not np.all(np.isfinite(omega)):
                raise ValueError(f"omega_coriolis must be finite, got {omega}")
            omega.setflags(write=False)
            object.__setattr__(self, "omega_coriolis", omega)

    @classmethod
    def create_ned(cls, g: float = STANDARD_GRAVITY) -> "NavigationParams":
        """NED navigation frame: gravity points down, [0, 0, +g]."""
        return cls(gravity=np.array([0.0, 0.0, g]), frame="NED")

    @classmethod
    def create_enu(cls, g: float = STANDARD_GRAVITY) -> "NavigationParams":
        """ENU navigation frame: gravity points down, [0, 0, -g]."""
        return cls(gravity=np.array([0.0, 0.0, -g]), frame="ENU")

    def with_earth_rotation(self, lat_rad: float) -> "NavigationParams":
        """
        Copy with omega_coriolis set to the Earth rotation rate at a latitude.

        Args:
            lat_rad: Geodetic latitude in radians.

        Returns:
            New NavigationParams; other fields unchanged.

        Notes:
            NED: Omega [cos(phi), 0, -sin(phi)]
            ENU: Omega [0, cos(phi), sin(phi)]
        """
        c, s = np.cos(lat_rad), np.sin(lat_rad)
        if self.frame == "NED":
            omega = EARTH_ROTATION_RATE * np.array([c, 0.0, -s])
        else:
            omega = EARTH_ROTATION_RATE * np.array([0.0, c, s])
        return replace(self, omega_coriolis=omega)

    def correct_pim(
        self,
        state: NavState,
        pim: NDArray[np.float64],
        dt: float,
        H1: Optional[np.ndarray] = None,
        H2: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """Apply NavState.correct_pim with the configured gravity and Coriolis terms."""
        return state.correct_pim(
            pim,
            dt,
            self.gravity,
            omega_coriolis=self.omega_coriolis,
            use_second_order=self.use_second_order_coriolis,
            H1=H1,
            H2=H2,
        )
