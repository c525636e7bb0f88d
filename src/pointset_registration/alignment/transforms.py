"""
Parametric Transforms

Differentiable point mappings driven by a flat parameter vector. Every
transform exposes the same small contract (parameters, apply, Jacobian), so
the ICP metric and the optimizer never depend on a concrete family.

Jacobians are returned with shape (P, D): row k holds the derivative of the
output coordinates with respect to parameter k.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from ..exceptions import DimensionMismatchError


@runtime_checkable
class ParametricTransform(Protocol):
    """Capability interface for transforms usable in registration."""

    @property
    def number_of_parameters(self) -> int: ...

    @property
    def dimension(self) -> int: ...

    def get_parameters(self) -> np.ndarray: ...

    def set_parameters(self, parameters: Sequence[float]) -> None: ...

    def set_identity(self) -> None: ...

    def apply(self, point: Sequence[float]) -> np.ndarray: ...

    def jacobian(self, point: Sequence[float]) -> np.ndarray: ...

    def transform_points(self, points: np.ndarray) -> np.ndarray: ...

    def jacobians(self, points: np.ndarray) -> np.ndarray: ...

    def clone(self) -> "ParametricTransform": ...


class _TransformBase:
    """Parameter storage and validation shared by the concrete transforms."""

    def __init__(self, dimension: int, number_of_parameters: int):
        if int(dimension) < 1:
            raise ValueError(f"Transform dimension must be positive, got {dimension}")
        self._dimension = int(dimension)
        self._parameters = np.zeros(int(number_of_parameters), dtype=float)
        self.set_identity()

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def number_of_parameters(self) -> int:
        return self._parameters.shape[0]

    def get_parameters(self) -> np.ndarray:
        return self._parameters.copy()

    def set_parameters(self, parameters: Sequence[float]) -> None:
        values = np.asarray(parameters, dtype=float).reshape(-1)
        if values.shape[0] != self.number_of_parameters:
            raise DimensionMismatchError(
                f"{type(self).__name__} expects {self.number_of_parameters} parameters, "
                f"got {values.shape[0]}"
            )
        self._parameters = values.copy()

    def identity_parameters(self) -> np.ndarray:
        return np.zeros(self.number_of_parameters, dtype=float)

    def set_identity(self) -> None:
        self._parameters = self.identity_parameters()

    def clone(self):
        other = self.__class__.__new__(self.__class__)
        other.__dict__.update({k: (v.copy() if isinstance(v, np.ndarray) else v) for k, v in self.__dict__.items()})
        return other

    def _as_point(self, point: Sequence[float]) -> np.ndarray:
        p = np.asarray(point, dtype=float).reshape(-1)
        if p.shape[0] != self._dimension:
            raise DimensionMismatchError(
                f"Point has {p.shape[0]} coordinates, transform dimension is {self._dimension}"
            )
        return p

    def _as_points(self, points: np.ndarray) -> np.ndarray:
        arr = np.asarray(points, dtype=float)
        if arr.ndim != 2 or arr.shape[1] != self._dimension:
            raise DimensionMismatchError(
                f"Expected an (N, {self._dimension}) array of points, got shape {arr.shape}"
            )
        return arr

    def apply(self, point: Sequence[float]) -> np.ndarray:
        return self.transform_points(self._as_point(point)[np.newaxis, :])[0]

    def jacobian(self, point: Sequence[float]) -> np.ndarray:
        return self.jacobians(self._as_point(point)[np.newaxis, :])[0]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dimension={self._dimension}, parameters={self._parameters.tolist()})"


class TranslationTransform(_TransformBase):
    """
    Pure translation: ``T(x) = x + p``.

    P equals D and the Jacobian is the identity for every input point.
    """

    def __init__(self, dimension: int = 2):
        super().__init__(dimension, dimension)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        return self._as_points(points) + self._parameters

    def jacobians(self, points: np.ndarray) -> np.ndarray:
        n = self._as_points(points).shape[0]
        return np.broadcast_to(np.eye(self._dimension), (n, self._dimension, self._dimension)).copy()


class Rigid2DTransform(_TransformBase):
    """
    Rotation about a fixed centre followed by a translation, in 2D.

    Parameters are ``(angle, tx, ty)`` with the angle in radians:
    ``T(x) = R(angle) @ (x - c) + c + t``.
    """

    def __init__(self, center: Sequence[float] = (0.0, 0.0)):
        self.center = np.asarray(center, dtype=float).reshape(-1)
        if self.center.shape[0] != 2:
            raise DimensionMismatchError(f"Rigid2DTransform centre must be 2D, got {self.center.shape[0]}")
        super().__init__(2, 3)

    def _rotation(self) -> np.ndarray:
        c, s = np.cos(self._parameters[0]), np.sin(self._parameters[0])
        return np.array([[c, -s], [s, c]])

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        arr = self._as_points(points)
        return (arr - self.center) @ self._rotation().T + self.center + self._parameters[1:]

    def jacobians(self, points: np.ndarray) -> np.ndarray:
        arr = self._as_points(points) - self.center
        c, s = np.cos(self._parameters[0]), np.sin(self._parameters[0])
        jac = np.zeros((arr.shape[0], 3, 2))
        # d/d(angle) of R @ v
        jac[:, 0, 0] = -s * arr[:, 0] - c * arr[:, 1]
        jac[:, 0, 1] = c * arr[:, 0] - s * arr[:, 1]
        jac[:, 1, 0] = 1.0
        jac[:, 2, 1] = 1.0
        return jac


class AffineTransform(_TransformBase):
    """
    General affine map ``T(x) = A @ x + t`` in D dimensions.

    Parameters are the D*D entries of ``A`` in row-major order followed by the
    D entries of ``t``; the identity is ``A = I, t = 0``.
    """

    def __init__(self, dimension: int = 2):
        dimension = int(dimension)
        super().__init__(dimension, dimension * dimension + dimension)

    def identity_parameters(self) -> np.ndarray:
        d = self._dimension
        return np.concatenate([np.eye(d).ravel(), np.zeros(d)])

    @property
    def matrix(self) -> np.ndarray:
        d = self._dimension
        return self._parameters[: d * d].reshape(d, d)

    @property
    def translation(self) -> np.ndarray:
        d = self._dimension
        return self._parameters[d * d:]

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        return self._as_points(points) @ self.matrix.T + self.translation

    def jacobians(self, points: np.ndarray) -> np.ndarray:
        arr = self._as_points(points)
        n, d = arr.shape
        jac = np.zeros((n, d * d + d, d))
        for row in range(d):
            # Output coordinate `row` depends on A[row, :] through the input point.
            jac[:, row * d:(row + 1) * d, row] = arr
            jac[:, d * d + row, row] = 1.0
        return jac


_TRANSFORMS = {
    "translation": TranslationTransform,
    "rigid2d": Rigid2DTransform,
    "affine": AffineTransform,
}


def create_transform(kind: str, dimension: int = 2, center: Optional[Sequence[float]] = None) -> ParametricTransform:
    """
    Build a transform by name ('translation', 'rigid2d' or 'affine').

    Raises:
        ValueError: For an unknown transform name.
        DimensionMismatchError: If 'rigid2d' is requested with dimension != 2.
    """
    key = kind.lower()
    if key not in _TRANSFORMS:
        raise ValueError(f"Unknown transform '{kind}'. Choose one of {sorted(_TRANSFORMS)}.")
    if key == "rigid2d":
        if dimension != 2:
            raise DimensionMismatchError(f"rigid2d transform requires dimension 2, got {dimension}")
        return Rigid2DTransform(center=center if center is not None else (0.0, 0.0))
    return _TRANSFORMS[key](dimension)
