"""
Unit tests for spline curves of every kind.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from splinemesh.geometry.spline import (
    Spline, CATMULL_ROM, HERMITE, CUBIC_BSPLINE, LINEAR, QUADRATIC, NATURAL_CUBIC
)
from splinemesh.geometry.bezier import BezierCurve
from splinemesh.errors import StructuralError, DomainError


@pytest.fixture
def points():
    return np.array([[0.0, 0.0, 0.0], [1.0, 2.0, 0.0], [3.0, 3.0, 1.0],
                     [4.0, 0.0, 0.0], [6.0, 1.0, -1.0]])


def central_difference(curve, t, h=1e-6):
    return (curve.evaluate(t + h).point - curve.evaluate(t - h).point) / (2 * h)


class TestConstruction:

    def test_segment_counts(self, points):
        assert Spline(points).n_segments == 4
        assert Spline(points, closed=True).n_segments == 5

    def test_invalid(self, points):
        with pytest.raises(StructuralError):
            Spline(points, kind="bezier")
        with pytest.raises(StructuralError):
            Spline(points[:2], closed=True)
        with pytest.raises(StructuralError):
            Spline(points, kind=CATMULL_ROM, tangents=np.zeros((5, 3)))
        with pytest.raises(StructuralError):
            Spline(points, kind=HERMITE, tangents=np.zeros((4, 3)))
        with pytest.raises(StructuralError):
            Spline(points, tension=np.nan)


class TestInterpolation:

    @pytest.mark.parametrize("kind", [CATMULL_ROM, HERMITE, LINEAR, NATURAL_CUBIC])
    def test_passes_through_points(self, points, kind):
        spline = Spline(points, kind=kind)
        for i, p in enumerate(points):
            assert_allclose(spline.evaluate(i / 4).point, p, atol=1e-12)

    def test_bspline_interpolates_ends_only(self, points):
        spline = Spline(points, kind=CUBIC_BSPLINE)

        assert_allclose(spline.evaluate(0.0).point, points[0], atol=1e-12)
        assert_allclose(spline.evaluate(1.0).point, points[-1], atol=1e-12)
        assert not np.allclose(spline.evaluate(0.25).point, points[1])

    def test_closed_spline_wraps(self, points):
        spline = Spline(points, closed=True)
        assert_allclose(spline.evaluate(0.0).point, spline.evaluate(1.0).point, atol=1e-12)
        assert_allclose(spline.evaluate(0.0, 1).derivative(1),
                        spline.evaluate(1.0, 1).derivative(1), atol=1e-12)

    def test_catmull_rom_tangents(self, points):
        """Interior tangent is s (P_{i+1} - P_{i-1}) per local segment unit."""
        spline = Spline(points, tension=0.5)
        d = spline.evaluate(0.25, 1).derivative(1)
        # 4 segments: global derivative is 4x the local one
        assert_allclose(d, 4 * 0.5 * (points[2] - points[0]), atol=1e-12)

        # Open ends use the one-sided difference 2 s (P1 - P0)
        d0 = spline.evaluate(0.0, 1).derivative(1)
        assert_allclose(d0, 4 * 2 * 0.5 * (points[1] - points[0]), atol=1e-12)

    def test_hermite_with_tangents(self):
        tangents = [[1.0, 0.0], [0.0, 1.0]]
        spline = Spline([[0, 0], [1, 1]], kind=HERMITE, tangents=tangents)

        assert_allclose(spline.evaluate(0.0, 1).derivative(1), [1, 0, 0], atol=1e-12)
        assert_allclose(spline.evaluate(1.0, 1).derivative(1), [0, 1, 0], atol=1e-12)


class TestPolynomialKinds:
    """Polyline, midpoint quadratic and natural cubic splines."""

    def test_linear(self, points):
        spline = Spline(points, kind=LINEAR)
        res = spline.evaluate(0.125, derivatives=2)

        assert_allclose(res.point, 0.5 * (points[0] + points[1]), atol=1e-12)
        assert_allclose(res.derivative(1), 4 * (points[1] - points[0]), atol=1e-12)
        assert_allclose(res.derivative(2), 0.0)

    def test_quadratic_open(self, points):
        spline = Spline(points, kind=QUADRATIC)
        mid12 = 0.5 * (points[1] + points[2])

        assert spline.n_segments == 3
        assert_allclose(spline.evaluate(0.0).point, points[0], atol=1e-12)
        assert_allclose(spline.evaluate(1.0).point, points[-1], atol=1e-12)
        # Segment 0 is the quadratic Bezier (P0, P1, M12)
        assert_allclose(spline.evaluate(1 / 3).point, mid12, atol=1e-12)
        assert_allclose(spline.evaluate(1 / 6).point,
                        0.25 * points[0] + 0.5 * points[1] + 0.25 * mid12, atol=1e-12)

    def test_quadratic_is_c1(self, points):
        spline = Spline(points, kind=QUADRATIC)
        for t in (1 / 3, 2 / 3):
            left = spline.evaluate(t - 1e-10, 1).derivative(1)
            right = spline.evaluate(t, 1).derivative(1)
            assert_allclose(left, right, atol=1e-6)

    def test_quadratic_closed(self, points):
        spline = Spline(points, kind=QUADRATIC, closed=True)

        assert spline.n_segments == 5
        assert_allclose(spline.evaluate(0.0).point, 0.5 * (points[-1] + points[0]), atol=1e-12)
        assert_allclose(spline.evaluate(0.0, 1).derivative(1),
                        spline.evaluate(1.0, 1).derivative(1), atol=1e-12)

    def test_quadratic_needs_three_points(self, points):
        with pytest.raises(StructuralError):
            Spline(points[:2], kind=QUADRATIC)
        spline = Spline(points[:3], kind=QUADRATIC)
        with pytest.raises(StructuralError):
            spline.remove_point(0)

    def test_natural_cubic_end_conditions(self, points):
        spline = Spline(points, kind=NATURAL_CUBIC)
        assert_allclose(spline.evaluate(0.0, 2).derivative(2), 0.0, atol=1e-10)
        assert_allclose(spline.evaluate(1.0, 2).derivative(2), 0.0, atol=1e-10)

    def test_natural_cubic_is_c2(self, points):
        spline = Spline(points, kind=NATURAL_CUBIC)
        for t in (0.25, 0.5, 0.75):
            left = spline.evaluate(t - 1e-12, 2)
            right = spline.evaluate(t, 2)
            assert_allclose(left.derivative(1), right.derivative(1), atol=1e-6)
            assert_allclose(left.derivative(2), right.derivative(2), atol=1e-6)

    def test_natural_cubic_reproduces_lines(self):
        spline = Spline([[0, 0], [1, 1], [2, 2], [3, 3]], kind=NATURAL_CUBIC)
        res = spline.evaluate(0.5, derivatives=3)

        assert_allclose(res.point, [1.5, 1.5, 0.0], atol=1e-12)
        assert_allclose(res.derivative(1), [3.0, 3.0, 0.0], atol=1e-12)
        assert_allclose(res.derivative(3), 0.0, atol=1e-12)

    def test_periodic_cubic(self, points):
        spline = Spline(points, kind=NATURAL_CUBIC, closed=True)
        start, end = spline.evaluate(0.0, 2), spline.evaluate(1.0, 2)

        assert_allclose(start.point, points[0], atol=1e-12)
        assert_allclose(start.derivative(1), end.derivative(1), atol=1e-9)
        assert_allclose(start.derivative(2), end.derivative(2), atol=1e-9)

    def test_mutation_refits_natural_cubic(self, points):
        spline = Spline(points, kind=NATURAL_CUBIC)
        spline.evaluate(0.5)
        spline.set_control_point(2, [0.0, 0.0, 0.0])
        assert_allclose(spline.evaluate(0.5).point, [0.0, 0.0, 0.0], atol=1e-12)

    @pytest.mark.parametrize("kind", [LINEAR, QUADRATIC, NATURAL_CUBIC])
    def test_json_keeps_kind(self, points, kind):
        spline = Spline(points, kind=kind)
        copy = Spline.from_json(spline.to_json())

        assert copy.spline_kind == kind
        assert_allclose(copy.evaluate(0.4).point, spline.evaluate(0.4).point, atol=1e-12)


class TestDerivatives:

    @pytest.mark.parametrize("kind", [CATMULL_ROM, HERMITE, CUBIC_BSPLINE,
                                      LINEAR, QUADRATIC, NATURAL_CUBIC])
    def test_first_derivative_consistency(self, points, kind):
        spline = Spline(points, kind=kind, tension=0.3)
        for t in [0.1, 0.37, 0.6, 0.93]:
            assert_allclose(spline.evaluate(t, 1).derivative(1),
                            central_difference(spline, t), atol=1e-5)

    def test_orders_above_three_vanish(self, points):
        res = Spline(points).evaluate(0.3, derivatives=5)
        assert_allclose(res.derivative(4), 0.0)
        assert_allclose(res.derivative(5), 0.0)

    def test_domain(self, points):
        with pytest.raises(DomainError):
            Spline(points).evaluate(1.01)


class TestMutators:

    def test_set_control_point(self, points):
        spline = Spline(points)
        spline.evaluate(0.5)
        spline.set_control_point(2, [0.0, 0.0, 0.0])
        assert_allclose(spline.evaluate(0.5).point, [0, 0, 0], atol=1e-12)

    def test_set_tangent_requires_caller_tangents(self, points):
        with pytest.raises(StructuralError):
            Spline(points).set_control_point(0, [0, 0, 0], tangent=[1, 0, 0])

    def test_add_and_remove_point(self, points):
        spline = Spline(points)
        spline.add_point([7.0, 0.0, 0.0])
        assert spline.n_points == 6
        assert_allclose(spline.evaluate(1.0).point, [7, 0, 0])

        spline.add_point([-1.0, 0.0, 0.0], index=0)
        assert_allclose(spline.evaluate(0.0).point, [-1, 0, 0])

        spline.remove_point(0)
        assert_allclose(spline.evaluate(0.0).point, points[0])

    def test_add_point_extends_tangents(self):
        spline = Spline([[0, 0], [1, 0]], kind=HERMITE, tangents=[[1, 0], [1, 0]])
        spline.add_point([2.0, 0.0], tangent=[1.0, 0.0])
        assert spline.tangents.shape == (3, 3)

    def test_remove_below_minimum(self):
        spline = Spline([[0, 0], [1, 1]])
        with pytest.raises(StructuralError):
            spline.remove_point(0)


class TestConversion:

    @pytest.mark.parametrize("kind, closed", [
        (CATMULL_ROM, False), (HERMITE, False), (CUBIC_BSPLINE, True),
        (LINEAR, False), (QUADRATIC, False), (QUADRATIC, True),
        (NATURAL_CUBIC, False), (NATURAL_CUBIC, True),
    ])
    def test_to_bezier_is_exact(self, points, kind, closed):
        spline = Spline(points, kind=kind, closed=closed)
        bezier = spline.to_bezier()

        assert isinstance(bezier, BezierCurve)
        assert bezier.n_segments == spline.n_segments
        for t in np.linspace(0, 1, 21):
            assert_allclose(bezier.evaluate(t).point, spline.evaluate(t).point, atol=1e-12)

    def test_json_round_trip(self, points):
        spline = Spline(points, kind=HERMITE, tension=0.8, tangents=points[::-1])
        data = spline.to_json()
        assert data["type"] == "spline"
        assert data["kind"] == HERMITE

        copy = Spline.from_json(data)
        for t in np.linspace(0, 1, 9):
            assert_allclose(copy.evaluate(t).point, spline.evaluate(t).point)

    def test_from_json_missing_points(self):
        with pytest.raises(StructuralError):
            Spline.from_json({"type": "spline"})


class TestTessellation:

    def test_line_strip(self, points):
        mesh = Spline(points).tessellate(40)
        mesh.validate()
        assert mesh.vertex_count == 41

    def test_bounding_box_contains_samples(self, points):
        spline = Spline(points, tension=1.0)
        box = spline.bounding_box
        assert box.contains(points[0]) and box.contains(points[-1])

    def test_closest_point(self, points):
        spline = Spline(points)
        target = spline.evaluate(0.42).point
        result = spline.find_closest_point(target)
        assert result.distance < 1e-4

    def test_sweep_tube(self):
        """A circle swept along a straight spline gives a tube of that radius."""
        from splinemesh.geometry.primitives import make_circle

        path = Spline([[0, 0, 0], [0, 0, 1], [0, 0, 2]])
        mesh = path.sweep(make_circle(0.5), sections=8, profile_segments=16)
        mesh.validate()

        pts = mesh.points
        assert mesh.vertex_count == 9 * 17
        assert_allclose(np.hypot(pts[:, 0], pts[:, 1]), 0.5, atol=1e-9)

    def test_sweep_twist_keeps_radius(self):
        from splinemesh.geometry.primitives import make_circle

        path = Spline([[0, 0, 0], [1, 0, 0]])
        mesh = path.sweep(make_circle(0.25), sections=4, twist=np.pi, profile_segments=8)
        pts = mesh.points
        assert_allclose(np.hypot(pts[:, 1], pts[:, 2]), 0.25, atol=1e-9)
