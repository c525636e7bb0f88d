"""
Visualization module for registration results.
"""

from .convergence import plot_convergence, plot_alignment

__all__ = ["plot_convergence", "plot_alignment"]
