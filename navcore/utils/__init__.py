"""
Utility functions shared by the geometry and navigation modules.

This module provides the skew-symmetric operator and the helpers that
write analytic Jacobians into caller-supplied output arrays.
"""

from .matrices import check_jacobian, check_vector, fill_jacobian, skew

__all__ = [
    'check_jacobian',
    'check_vector',
    'fill_jacobian',
    'skew',
]
