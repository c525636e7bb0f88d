"""
Tests for the parametric transforms used by the registration.

Each transform is checked for its identity, its mapping of a point and its
analytic Jacobian against a central difference.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from pointset_registration.alignment.transforms import (
    AffineTransform,
    ParametricTransform,
    Rigid2DTransform,
    TranslationTransform,
    create_transform,
)
from pointset_registration.exceptions import DimensionMismatchError


def _numeric_jacobian(transform, point, h=1e-6):
    p0 = transform.get_parameters()
    jac = np.zeros((p0.size, transform.dimension))
    for k in range(p0.size):
        plus, minus = p0.copy(), p0.copy()
        plus[k] += h
        minus[k] -= h
        transform.set_parameters(plus)
        y_plus = transform.apply(point)
        transform.set_parameters(minus)
        y_minus = transform.apply(point)
        jac[k] = (y_plus - y_minus) / (2 * h)
    transform.set_parameters(p0)
    return jac


def test_translation_maps_and_jacobian():
    t = TranslationTransform(2)
    assert t.number_of_parameters == 2
    np.testing.assert_array_equal(t.get_parameters(), [0.0, 0.0])

    t.set_parameters([10.0, -1.0])
    np.testing.assert_allclose(t.apply([1.0, 2.0]), [11.0, 1.0])
    np.testing.assert_array_equal(t.jacobian([5.0, 5.0]), np.eye(2))


def test_translation_identity_leaves_points():
    t = TranslationTransform(3)
    pts = np.random.default_rng(0).normal(size=(10, 3))
    np.testing.assert_array_equal(t.transform_points(pts), pts)


def test_rigid2d_rotates_about_center():
    r = Rigid2DTransform(center=(1.0, 1.0))
    r.set_parameters([np.pi / 2, 0.0, 0.0])
    # (2, 1) is one unit right of the centre; a quarter turn puts it above
    np.testing.assert_allclose(r.apply([2.0, 1.0]), [1.0, 2.0], atol=1e-12)

    r.set_parameters([0.0, 0.5, -0.5])
    np.testing.assert_allclose(r.apply([2.0, 1.0]), [2.5, 0.5])


@pytest.mark.parametrize(
    "transform, params",
    [
        (TranslationTransform(2), [0.3, -0.7]),
        (Rigid2DTransform(center=(0.5, -0.2)), [0.4, 1.0, 2.0]),
        (AffineTransform(2), [1.1, 0.2, -0.1, 0.9, 0.5, -0.5]),
        (AffineTransform(3), list(np.eye(3).ravel() + 0.05) + [1.0, 2.0, 3.0]),
    ],
)
def test_analytic_jacobian_matches_numeric(transform, params):
    transform.set_parameters(params)
    point = np.linspace(0.3, 1.7, transform.dimension)
    analytic = transform.jacobian(point)
    assert analytic.shape == (transform.number_of_parameters, transform.dimension)
    np.testing.assert_allclose(analytic, _numeric_jacobian(transform, point), atol=1e-6)


def test_affine_identity_and_layout():
    a = AffineTransform(2)
    np.testing.assert_array_equal(a.get_parameters(), [1.0, 0.0, 0.0, 1.0, 0.0, 0.0])

    a.set_parameters([2.0, 0.0, 0.0, 3.0, 1.0, 1.0])
    np.testing.assert_array_equal(a.matrix, [[2.0, 0.0], [0.0, 3.0]])
    np.testing.assert_allclose(a.apply([1.0, 1.0]), [3.0, 4.0])

    a.set_identity()
    np.testing.assert_allclose(a.apply([4.0, -2.0]), [4.0, -2.0])


def test_set_parameters_wrong_length():
    with pytest.raises(DimensionMismatchError):
        TranslationTransform(2).set_parameters([1.0, 2.0, 3.0])


def test_apply_wrong_point_dimension():
    with pytest.raises(DimensionMismatchError):
        TranslationTransform(2).apply([1.0, 2.0, 3.0])


def test_get_parameters_returns_copy():
    t = TranslationTransform(2)
    params = t.get_parameters()
    params[0] = 99.0
    assert t.get_parameters()[0] == 0.0


def test_clone_is_independent():
    t = Rigid2DTransform(center=(1.0, 2.0))
    t.set_parameters([0.1, 0.2, 0.3])
    c = t.clone()
    c.set_identity()
    np.testing.assert_allclose(t.get_parameters(), [0.1, 0.2, 0.3])
    np.testing.assert_allclose(c.center, [1.0, 2.0])


def test_create_transform_factory():
    assert isinstance(create_transform("translation", 3), TranslationTransform)
    assert isinstance(create_transform("Affine", 2), AffineTransform)
    rigid = create_transform("rigid2d", 2, center=[1.0, 1.0])
    assert isinstance(rigid, Rigid2DTransform)
    assert isinstance(rigid, ParametricTransform)

    with pytest.raises(DimensionMismatchError):
        create_transform("rigid2d", 3)
    with pytest.raises(ValueError, match="Unknown transform"):
        create_transform("projective", 2)
