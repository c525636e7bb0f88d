"""
Point Set Registration Package

A Python package for rigid and non-rigid alignment of point sets with the
Iterative Closest Point (ICP) family of algorithms. A moving point set is
mapped onto a fixed one by a parametric transform whose parameters are
refined by a Levenberg-Marquardt least-squares optimizer. Correspondences are
re-established by a nearest-neighbour scan at every cost evaluation.
"""

__version__ = "0.1.0"

from .exceptions import *
from .preprocessing import *
from .alignment import *
from .utils import *

__all__ = [
    "exceptions",
    "preprocessing",
    "alignment",
    "utils",
    "visualization",
]
