"""Navigation state manifold and its configuration."""

from .nav_state import NavState
from .params import EARTH_ROTATION_RATE, NavigationParams, gravity_magnitude

__all__ = ["NavState", "NavigationParams", "EARTH_ROTATION_RATE", "gravity_magnitude"]
