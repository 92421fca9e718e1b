"""
Unit tests for Bezier curves.
"""

import math

import pytest
import numpy as np
from numpy.testing import assert_array_almost_equal, assert_allclose
from scipy.spatial import Delaunay

from splinemesh.geometry.base import EvaluationCache, EvaluationResult
from splinemesh.geometry.bezier import BezierCurve
from splinemesh.geometry.primitives import make_arc, make_circle
from splinemesh.io.config import GeometryConfig
from splinemesh.errors import StructuralError, DomainError, ResourceLimitError


def central_difference(curve, t, order, h=1e-5):
    """Central difference of order 1 or 2 of the curve position."""
    p = lambda s: np.asarray(curve.evaluate(s).point)
    if order == 1:
        return (p(t + h) - p(t - h)) / (2 * h)
    return (p(t + h) - 2 * p(t) + p(t - h)) / h**2


@pytest.fixture
def reference_curve():
    return BezierCurve([[0, 0, 0], [1, 1, 0], [2, -1, 0], [3, 0, 0]])


@pytest.fixture
def rational_curve():
    return BezierCurve([[0, 0], [1, 2], [3, 2], [4, 0]], weights=[1.0, 3.0, 0.5, 2.0])


class TestConstruction:
    """Tests for curve validation."""

    def test_degree_defaults_to_single_segment(self, cubic_points):
        curve = BezierCurve(cubic_points)
        assert curve.degree == 3
        assert curve.n_segments == 1
        assert not curve.is_rational

    def test_composite_segments(self):
        curve = BezierCurve(np.arange(14).reshape(7, 2), degree=3)
        assert curve.n_segments == 2

    def test_invalid_structure(self):
        with pytest.raises(StructuralError):
            BezierCurve([[0, 0]])
        with pytest.raises(StructuralError):
            BezierCurve([[0, 0], [1, 1], [2, 0]], degree=3)
        with pytest.raises(StructuralError):
            BezierCurve(np.zeros((6, 3)), degree=3)
        with pytest.raises(StructuralError):
            BezierCurve([[0, 0], [1, 1]], weights=[1.0])
        with pytest.raises(StructuralError):
            BezierCurve([[0, 0], [1, 1]], weights=[1.0, 0.0])

    def test_unit_weights_are_not_rational(self, cubic_points):
        assert not BezierCurve(cubic_points, weights=[1, 1, 1, 1]).is_rational


class TestEvaluation:
    """Tests for point and derivative evaluation."""

    def test_reference_scenario(self, reference_curve):
        """End points are interpolated; the midpoint is the Bernstein sum."""
        assert_array_almost_equal(reference_curve.evaluate(0.0).point, [0, 0, 0])
        assert_array_almost_equal(reference_curve.evaluate(1.0).point, [3, 0, 0])

        # (1/8) P0 + (3/8) P1 + (3/8) P2 + (1/8) P3
        expected = np.array([0.125, 0.375, 0.375, 0.125]) @ np.array(
            [[0, 0, 0], [1, 1, 0], [2, -1, 0], [3, 0, 0]])
        assert_allclose(reference_curve.evaluate(0.5).point, expected, atol=1e-12)
        assert_allclose(expected, [1.5, 0.0, 0.0], atol=1e-12)

    def test_endpoint_interpolation(self, rational_curve):
        curve = BezierCurve(np.random.default_rng(0).normal(size=(6, 3)))
        pts = curve.control_points

        assert_allclose(curve.evaluate(0.0).point, pts[0], atol=1e-14)
        assert_allclose(curve.evaluate(1.0).point, pts[-1], atol=1e-14)
        assert_allclose(rational_curve.evaluate(1.0).point, [4, 0, 0], atol=1e-14)

    def test_parameter_out_of_range(self, reference_curve):
        with pytest.raises(DomainError):
            reference_curve.evaluate(-0.01)
        with pytest.raises(DomainError):
            reference_curve.evaluate(1.5)
        with pytest.raises(DomainError):
            reference_curve.evaluate(0.5, derivatives=-1)

    def test_analytic_derivatives(self, reference_curve):
        """C'(0) = 3 (P1 - P0), C''(0) = 6 (P2 - 2 P1 + P0)."""
        res = reference_curve.evaluate(0.0, derivatives=3)
        assert_allclose(res.derivative(1), [3, 3, 0], atol=1e-12)
        assert_allclose(res.derivative(2), [0, -18, 0], atol=1e-12)
        # C''' = 6 (P3 - 3 P2 + 3 P1 - P0)
        assert_allclose(res.derivative(3), [0, 36, 0], atol=1e-12)

    def test_orders_above_degree_vanish(self):
        line = BezierCurve([[0, 0], [2, 1]])
        res = line.evaluate(0.3, derivatives=3)
        assert_allclose(res.derivative(2), 0.0)
        assert_allclose(res.derivative(3), 0.0)

    @pytest.mark.parametrize("t", [0.2, 0.5, 0.77])
    def test_derivative_consistency(self, reference_curve, rational_curve, t):
        for curve in (reference_curve, rational_curve):
            res = curve.evaluate(t, derivatives=2)
            assert_allclose(res.derivative(1), central_difference(curve, t, 1), atol=1e-6)
            assert_allclose(res.derivative(2), central_difference(curve, t, 2), atol=1e-3)

    def test_composite_derivative_consistency(self):
        curve = BezierCurve([[0, 0], [1, 2], [2, 2], [3, 0], [4, -1], [5, 1], [6, 0]],
                            degree=3, weights=[1, 2, 1, 1, 0.5, 1, 1])
        for t in [0.1, 0.4, 0.6, 0.9]:
            res = curve.evaluate(t, derivatives=2)
            assert_allclose(res.derivative(1), central_difference(curve, t, 1), atol=1e-5)
            assert_allclose(res.derivative(2), central_difference(curve, t, 2), atol=1e-2)

    def test_rational_circle(self):
        """Every point of the rational circle lies at the radius."""
        circle = make_circle(radius=2.0, center=(1.0, -1.0))
        for t in np.linspace(0.0, 1.0, 33):
            p = circle.evaluate(t).point
            assert math.isclose(np.linalg.norm(p[:2] - [1.0, -1.0]), 2.0, rel_tol=1e-12)

    def test_cached_results_are_read_only(self, reference_curve):
        res = reference_curve.evaluate(0.25, derivatives=1)
        assert reference_curve.evaluate(0.25, derivatives=1) is res
        with pytest.raises(ValueError):
            res.point[0] = 10.0

    def test_cache_stays_bounded(self, cubic_points):
        curve = BezierCurve(cubic_points, config=GeometryConfig(max_cache_entries=64))
        rng = np.random.default_rng(7)
        for _ in range(300):
            curve.find_closest_point(rng.normal(size=3) * 3.0)

        assert 0 < len(curve._cache) <= 64
        # Results stay correct after eviction
        assert_allclose(curve.evaluate(0.5).point, [2.0, 0.375, 0.0], atol=1e-12)

    def test_cache_evicts_least_recently_used(self):
        cache = EvaluationCache(capacity=2)
        first = cache.put(("a", 0), EvaluationResult(np.zeros(3)))
        cache.put(("b", 0), EvaluationResult(np.ones(3)))

        assert cache.get(("a", 0)) is first
        cache.put(("c", 0), EvaluationResult(np.full(3, 2.0)))

        assert ("a", 0) in cache
        assert ("b", 0) not in cache
        assert len(cache) == 2
        with pytest.raises(DomainError):
            EvaluationCache(capacity=0)

    def test_set_control_point_invalidates(self, reference_curve):
        before = reference_curve.evaluate(0.5).point.copy()
        reference_curve.set_control_point(1, [1.0, 5.0, 0.0])
        after = reference_curve.evaluate(0.5).point

        assert not np.allclose(before, after)
        assert_allclose(after, [1.5, 1.5, 0.0], atol=1e-12)


class TestConvexHull:
    """Evaluated points stay within the control hull."""

    @pytest.mark.parametrize("weights", [None, [1.0, 4.0, 0.2, 2.0, 1.0]])
    def test_points_inside_hull(self, weights):
        ctrl = np.array([[0, 0, 0], [1, 3, 1], [3, 2, -1], [4, -1, 2], [5, 1, 0]], dtype=float)
        curve = BezierCurve(ctrl, weights=weights)
        hull = Delaunay(ctrl)

        samples = np.array([curve.evaluate(t).point for t in np.linspace(0, 1, 41)])
        # Allow for points on the hull boundary
        inside = hull.find_simplex(samples, tol=1e-9) >= 0
        assert np.all(inside)

    def test_bounding_box(self, reference_curve, rational_curve):
        for curve in (reference_curve, rational_curve):
            box = curve.bounding_box
            for t in np.linspace(0, 1, 51):
                assert box.contains(curve.evaluate(t).point)

    def test_polynomial_bounding_box_is_tight(self, reference_curve):
        box = reference_curve.bounding_box
        ys = [reference_curve.evaluate(t).point[1] for t in np.linspace(0, 1, 2001)]
        assert math.isclose(box.maximum[1], max(ys), abs_tol=1e-6)
        assert math.isclose(box.minimum[1], min(ys), abs_tol=1e-6)


class TestClosestPoint:

    @pytest.mark.parametrize("t0", [0.13, 0.5, 0.81])
    def test_converges_to_curve_point(self, reference_curve, rational_curve, t0):
        for curve in (reference_curve, rational_curve):
            target = curve.evaluate(t0).point
            result = curve.find_closest_point(target)
            assert result.distance < 1e-4
            assert_allclose(curve.evaluate(result.parameter).point, target, atol=1e-4)

    def test_off_curve_target(self):
        line = BezierCurve([[0, 0], [1, 0]])
        result = line.find_closest_point([0.3, 2.0])

        assert math.isclose(result.parameter, 0.3, abs_tol=1e-9)
        assert math.isclose(result.distance, 2.0, abs_tol=1e-9)

    def test_clamped_to_end(self):
        line = BezierCurve([[0, 0], [1, 0]])
        assert line.find_closest_point([3.0, 0.0]).parameter == 1.0

    def test_iteration_limit(self, reference_curve):
        config = GeometryConfig(max_iterations=5)
        curve = BezierCurve(reference_curve.control_points, config=config)
        with pytest.raises(ResourceLimitError):
            curve.find_closest_point([1, 1, 0], max_iterations=6)
        with pytest.raises(DomainError):
            curve.find_closest_point([1, 1, 0], max_iterations=0)


class TestSubdivide:

    def test_identical_path(self, rational_curve):
        for curve in (BezierCurve([[0, 0], [1, 2], [3, -1], [4, 0]]), rational_curve):
            sub = curve.subdivide(2)

            assert sub.degree == curve.degree
            assert sub.n_segments == 4 * curve.n_segments
            for t in np.linspace(0, 1, 17):
                assert_allclose(sub.evaluate(t).point, curve.evaluate(t).point, atol=1e-12)

    def test_limits(self, reference_curve):
        with pytest.raises(DomainError):
            reference_curve.subdivide(0)
        with pytest.raises(ResourceLimitError):
            reference_curve.subdivide(9)


class TestTessellation:

    def test_line_strip(self, reference_curve):
        mesh = reference_curve.tessellate(10)
        mesh.validate()

        assert mesh.primitive == "lines"
        assert mesh.vertex_count == 11
        assert mesh.primitive_count == 10
        assert_allclose(mesh.points[0], [0, 0, 0])
        assert_allclose(mesh.points[-1], [3, 0, 0])
        assert_allclose(mesh.uv_pairs[:, 0], np.linspace(0, 1, 11))
        assert_allclose(mesh.uv_pairs[:, 1], 0.0)

    def test_segment_limits(self, reference_curve):
        with pytest.raises(DomainError):
            reference_curve.tessellate(0)
        with pytest.raises(ResourceLimitError):
            reference_curve.tessellate(5000)

    def test_revolve_cylinder(self):
        """A vertical line at x = 1 revolves into a unit cylinder."""
        line = BezierCurve([[1, 0, 0], [1, 2, 0]])
        mesh = line.revolve(radial_segments=16, profile_segments=4)
        mesh.validate()

        pts = mesh.points
        assert mesh.vertex_count == 17 * 5
        assert mesh.primitive_count == 2 * 16 * 4
        assert_allclose(np.hypot(pts[:, 0], pts[:, 2]), 1.0, atol=1e-12)

        # Normals are radial on a cylinder
        radial = np.column_stack([pts[:, 0], np.zeros(len(pts)), pts[:, 2]])
        dots = np.abs(np.sum(mesh.normal_vectors * radial, axis=1))
        assert_allclose(dots, 1.0, atol=1e-9)

    def test_revolve_invalid_angle(self, reference_curve):
        with pytest.raises(DomainError):
            reference_curve.revolve(angle=0.0)

    def test_extrude(self):
        square = BezierCurve([[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]], degree=1)
        path = BezierCurve([[0, 0, 0], [0, 0, 5]])
        mesh = square.extrude(path, sections=5, profile_segments=8)
        mesh.validate()

        assert mesh.vertex_count == 6 * 9


class TestConversion:

    def test_from_points_degree_selection(self):
        assert BezierCurve.from_points(np.zeros((4, 2)) + np.arange(4)[:, None]).degree == 3
        assert BezierCurve.from_points(np.arange(14).reshape(7, 2)).degree == 3
        curve = BezierCurve.from_points(np.arange(24).reshape(12, 2))
        assert curve.degree == 4
        # 12 points: two quartic segments use 9, trailing points are dropped
        assert len(curve.control_points) == 9

    def test_to_spline_reproduces_cubic(self, reference_curve):
        spline = reference_curve.to_spline()
        for t in np.linspace(0, 1, 13):
            assert_allclose(spline.evaluate(t).point, reference_curve.evaluate(t).point,
                            atol=1e-12)

    def test_json_round_trip(self, rational_curve):
        data = rational_curve.to_json()
        assert data["type"] == "bezier"
        assert data["isRational"] is True

        copy = BezierCurve.from_json(data)
        for t in np.linspace(0, 1, 9):
            assert_allclose(copy.evaluate(t).point, rational_curve.evaluate(t).point)

    def test_from_json_rejects_other_types(self):
        with pytest.raises(StructuralError):
            BezierCurve.from_json({"type": "spline", "points": [[0, 0], [1, 1]]})
        with pytest.raises(StructuralError):
            BezierCurve.from_json({"type": "bezier"})

    def test_clone_is_independent(self, reference_curve):
        copy = reference_curve.clone()
        copy.set_control_point(0, [5, 5, 5])
        assert_allclose(reference_curve.evaluate(0.0).point, [0, 0, 0])


class TestArcs:

    def test_quarter_arc(self):
        arc = make_arc(radius=1.0)
        assert arc.degree == 2
        assert arc.n_segments == 1
        assert math.isclose(arc.weights[1], math.cos(math.pi / 4))
        assert_allclose(arc.evaluate(0.5).point, [math.sqrt(0.5), math.sqrt(0.5), 0], atol=1e-12)

    def test_wide_arc_splits_into_pieces(self):
        arc = make_arc(radius=3.0, start_angle=0.0, end_angle=1.5 * math.pi)
        assert arc.n_segments == 3
        assert_allclose(arc.evaluate(1.0).point, [0, -3, 0], atol=1e-12)

    def test_invalid_arcs(self):
        with pytest.raises(DomainError):
            make_arc(radius=-1.0)
        with pytest.raises(DomainError):
            make_arc(start_angle=1.0, end_angle=1.0)
