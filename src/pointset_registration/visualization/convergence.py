"""
Registration Convergence Plots

Plotly figures for inspecting a registration run: the cost history of the
optimizer and the fixed / moving / aligned point sets.
"""

from typing import Optional, Sequence

import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from ..alignment.results import OptimizationResult


def _downsample(points: np.ndarray, sample_size: Optional[int]) -> np.ndarray:
    if sample_size is None or len(points) <= sample_size:
        return points
    # Evenly spaced rows keep the plot deterministic
    idx = np.linspace(0, len(points) - 1, sample_size).astype(int)
    return points[idx]


def _scatter(points: np.ndarray, name: str, color: str):
    if points.shape[1] >= 3:
        return go.Scatter3d(
            x=points[:, 0], y=points[:, 1], z=points[:, 2],
            mode='markers', name=name, marker=dict(size=2, color=color),
        )
    y = points[:, 1] if points.shape[1] > 1 else np.zeros(len(points))
    return go.Scatter(x=points[:, 0], y=y, mode='markers', name=name, marker=dict(size=6, color=color))


def plot_convergence(result: OptimizationResult, title: str = "Registration convergence") -> go.Figure:
    """Cost per accepted iteration on a log axis."""
    iterations = [rec.iteration for rec in result.history]
    costs = [rec.cost for rec in result.history]
    fig = go.Figure(data=go.Scatter(x=iterations, y=costs, mode='lines+markers', name='cost'))
    fig.update_layout(
        title=f"{title} ({result.state.value}, {result.iterations} iterations)",
        xaxis_title='Iteration',
        yaxis_title='Sum of squared residuals',
    )
    if costs and min(costs) > 0:
        fig.update_yaxes(type='log')
    return fig


def plot_alignment(
    fixed: np.ndarray,
    moving: np.ndarray,
    aligned: np.ndarray,
    result: Optional[OptimizationResult] = None,
    sample_size: Optional[int] = 5000,
    names: Sequence[str] = ("fixed", "moving", "aligned"),
) -> go.Figure:
    """
    Overlay of the point sets before and after registration.

    When `result` is given and the points are 2D, a second panel shows the
    cost history.

    Args:
        fixed: (N, D) fixed points.
        moving: (M, D) moving points before registration.
        aligned: (M, D) moving points mapped by the final transform.
        result: Optional optimizer outcome for the convergence panel.
        sample_size: Max points drawn per set (None = all).
        names: Legend names for the three sets.

    Returns:
        Plotly figure.
    """
    clouds = [_downsample(np.asarray(pc, dtype=float), sample_size) for pc in (fixed, moving, aligned)]
    traces = [_scatter(pc, name, color) for pc, name, color in zip(clouds, names, ('blue', 'red', 'green'))]

    if result is None or clouds[0].shape[1] >= 3:
        fig = go.Figure(data=traces)
        fig.update_layout(title="Point set alignment")
        return fig

    fig = make_subplots(rows=1, cols=2, subplot_titles=("Point sets", "Cost history"))
    for trace in traces:
        fig.add_trace(trace, row=1, col=1)
    fig.add_trace(
        go.Scatter(
            x=[rec.iteration for rec in result.history],
            y=[rec.cost for rec in result.history],
            mode='lines+markers',
            name='cost',
        ),
        row=1, col=2,
    )
    # Enforce equal scaling for X and Y so distances are to scale
    fig.update_yaxes(scaleanchor="x", scaleratio=1, row=1, col=1)
    fig.update_layout(title=f"Point set alignment ({result.state.value})")
    return fig
