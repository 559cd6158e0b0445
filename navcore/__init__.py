"""Navigation state on a 9-dimensional manifold.

This package provides the building blocks used by gradient-based and
factor-graph-based inertial estimators:
- geometry: SO(3) and SE(3) primitives with analytic Jacobians
- navigation: the navigation state (attitude, position, velocity), its
  group/manifold algebra, IMU propagation and Coriolis/gravity correction
- utils: small matrix helpers shared by the modules above
"""

__version__ = "0.1.0"
