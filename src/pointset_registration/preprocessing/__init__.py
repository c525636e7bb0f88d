"""
Point Set Input Module

This module provides the id-addressed point set container used by the
registration engine and loaders for text and NumPy point files.
"""

from .loader import PointSet, read_points, load_point_set

__all__ = [
    "PointSet",
    "read_points",
    "load_point_set",
]
