"""
Unit tests for function-defined parametric surfaces.
"""

import math

import pytest
import numpy as np
from numpy.testing import assert_allclose

from splinemesh.geometry.parametric import ParametricSurface
from splinemesh.io.config import GeometryConfig
from splinemesh.errors import StructuralError, DomainError, ResourceLimitError


@pytest.fixture
def polynomial_surface():
    return ParametricSurface(lambda u, v: (u**2, u * v, v**3), pure=True)


@pytest.fixture
def sphere():
    return ParametricSurface.create_sphere(radius=2.0)


class TestConstruction:

    def test_invalid(self):
        with pytest.raises(StructuralError):
            ParametricSurface("not callable")
        with pytest.raises(StructuralError):
            ParametricSurface(lambda u, v: (u, v, 0), u_range=(1.0, 0.0))
        with pytest.raises(StructuralError):
            ParametricSurface(lambda u, v: (u, v, 0), v_range=(0.0,))

    def test_bad_function_output(self):
        surface = ParametricSurface(lambda u, v: (u, v, 0, 1))
        with pytest.raises(StructuralError):
            surface.evaluate(0.5, 0.5)

    def test_2d_output_is_padded(self):
        surface = ParametricSurface(lambda u, v: (u, v))
        assert_allclose(surface.evaluate(0.2, 0.4).point, [0.2, 0.4, 0.0])


class TestEvaluation:

    def test_domain(self, sphere):
        with pytest.raises(DomainError):
            sphere.evaluate(-0.1, 0.0)
        with pytest.raises(DomainError):
            sphere.evaluate(0.0, 7.0)
        with pytest.raises(DomainError):
            sphere.evaluate(0.5, 0.5, derivatives=-1)

    def test_pure_functions_are_memoized(self):
        calls = []

        def f(u, v):
            calls.append((u, v))
            return (u, v, 0.0)

        pure = ParametricSurface(f, pure=True)
        pure.evaluate(0.5, 0.5)
        pure.evaluate(0.5, 0.5)
        assert len(calls) == 1

        impure = ParametricSurface(f)
        impure.evaluate(0.5, 0.5)
        impure.evaluate(0.5, 0.5)
        assert len(calls) == 3

    def test_clear_cache(self):
        state = {"z": 0.0}
        surface = ParametricSurface(lambda u, v: (u, v, state["z"]), pure=True)
        surface.evaluate(0.5, 0.5)
        state["z"] = 1.0
        assert surface.evaluate(0.5, 0.5).point[2] == 0.0

        surface.clear_cache()
        assert surface.evaluate(0.5, 0.5).point[2] == 1.0


class TestDerivatives:

    def test_partials_of_polynomial(self, polynomial_surface):
        d = polynomial_surface.compute_partial_derivatives(0.3, 0.6, max_order=2)

        assert_allclose(d[(1, 0)], [0.6, 0.6, 0.0], atol=1e-6)
        assert_allclose(d[(0, 1)], [0.0, 0.3, 1.08], atol=1e-6)
        assert_allclose(d[(2, 0)], [2.0, 0.0, 0.0], atol=1e-5)
        assert_allclose(d[(1, 1)], [0.0, 1.0, 0.0], atol=1e-5)
        assert_allclose(d[(0, 2)], [0.0, 0.0, 3.6], atol=1e-5)

    def test_stencil_stays_inside_domain(self):
        def f(u, v):
            if not (0.0 <= u <= 1.0 and 0.0 <= v <= 1.0):
                raise AssertionError("sampled outside the domain")
            return (u**2, v, 0.0)

        surface = ParametricSurface(f)
        d = surface.compute_partial_derivatives(0.0, 1.0, max_order=2)
        assert_allclose(d[(2, 0)], [2.0, 0.0, 0.0], atol=1e-5)

    def test_order_limits(self, polynomial_surface):
        with pytest.raises(DomainError):
            polynomial_surface.compute_partial_derivatives(0.5, 0.5, max_order=0)
        with pytest.raises(DomainError):
            polynomial_surface.compute_partial_derivatives(0.5, 0.5, max_order=5)

    def test_evaluate_with_derivatives(self, polynomial_surface):
        ev = polynomial_surface.evaluate(0.3, 0.6, derivatives=1)
        assert_allclose(ev.du, [0.6, 0.6, 0.0], atol=1e-6)
        assert_allclose(ev.dv, [0.0, 0.3, 1.08], atol=1e-6)


class TestDifferentialGeometry:

    def test_sphere_curvatures(self, sphere):
        c = sphere.compute_curvatures(1.0, 2.0)

        assert math.isclose(c.gaussian, 0.25, rel_tol=1e-4)
        assert math.isclose(abs(c.mean), 0.5, rel_tol=1e-4)
        assert math.isclose(abs(c.k1), 0.5, rel_tol=1e-4)
        assert math.isclose(abs(c.k2), 0.5, rel_tol=1e-4)

    def test_plane_is_flat(self):
        plane = ParametricSurface.create_plane(2.0, 3.0)
        c = plane.compute_curvatures(0.1, -0.2)

        assert abs(c.gaussian) < 1e-6
        assert abs(c.mean) < 1e-6
        assert_allclose(np.abs(plane.compute_normal(0.1, -0.2)), [0, 0, 1], atol=1e-12)

    def test_sphere_normal_is_radial(self, sphere):
        p = sphere.evaluate(1.2, 0.7).point
        n = sphere.compute_normal(1.2, 0.7)
        assert math.isclose(abs(np.dot(n, p / np.linalg.norm(p))), 1.0, rel_tol=1e-8)

    def test_pole_normal_is_recovered(self, sphere):
        """dS/dv vanishes at the pole; the normal is still the Y axis."""
        n = sphere.compute_normal(0.0, 1.0)
        assert math.isclose(np.linalg.norm(n), 1.0)
        assert math.isclose(abs(n[1]), 1.0, abs_tol=1e-6)

    def test_tangent_space(self, sphere):
        tu, tv, n = sphere.compute_tangent_space(1.0, 1.0)
        assert abs(np.dot(tu, n)) < 1e-6
        assert abs(np.dot(tv, n)) < 1e-6
        assert math.isclose(np.linalg.norm(tu), 1.0)


class TestIntegrals:

    def test_sphere_area_and_volume(self, sphere):
        assert math.isclose(sphere.compute_area(), 4 * math.pi * 4.0, rel_tol=1e-4)
        assert math.isclose(sphere.compute_volume(), 4 / 3 * math.pi * 8.0, rel_tol=1e-4)

    def test_torus_area_and_volume(self):
        torus = ParametricSurface.create_torus(2.0, 1.0)
        assert math.isclose(torus.compute_area(), 4 * math.pi**2 * 2.0, rel_tol=1e-4)
        assert math.isclose(torus.compute_volume(), 2 * math.pi**2 * 2.0, rel_tol=1e-4)

    def test_cylinder_area(self):
        cylinder = ParametricSurface.create_cylinder(radius=1.5, height=2.0)
        assert math.isclose(cylinder.compute_area(), 2 * math.pi * 1.5 * 2.0, rel_tol=1e-4)


class TestTessellation:

    def test_grid_counts(self, sphere):
        mesh = sphere.tessellate(8, 4)
        mesh.validate()

        assert mesh.vertex_count == 9 * 5
        assert mesh.primitive_count == 2 * 8 * 4
        assert mesh.indices.dtype == np.uint16

    def test_uvs_normalized(self, sphere):
        uvs = sphere.tessellate(6, 6).uv_pairs
        assert uvs.min() == 0.0 and uvs.max() == 1.0

    def test_segment_limits(self, sphere):
        with pytest.raises(DomainError):
            sphere.tessellate(0, 4)
        small = ParametricSurface(lambda u, v: (u, v, 0), config=GeometryConfig(max_segments=16))
        with pytest.raises(ResourceLimitError):
            small.tessellate(17, 4)

    def test_adaptive_flat_surface_is_not_refined(self):
        plane = ParametricSurface.create_plane()
        mesh = plane.tessellate_adaptive(threshold=0.1, max_depth=3)
        mesh.validate()

        assert mesh.primitive_count == 2 * 16
        assert mesh.vertex_count == 25

    def test_adaptive_curved_surface_is_refined(self, sphere):
        coarse = sphere.tessellate_adaptive(threshold=0.1, max_depth=0)
        fine = sphere.tessellate_adaptive(threshold=0.1, max_depth=2)
        fine.validate()

        assert coarse.primitive_count == 2 * 16
        assert 2 * 16 < fine.primitive_count <= 2 * 16 * 4**2

    def test_adaptive_limits(self, sphere):
        with pytest.raises(ResourceLimitError):
            sphere.tessellate_adaptive(max_depth=9)
        with pytest.raises(DomainError):
            sphere.tessellate_adaptive(threshold=0.0)

    def test_adaptive_cell_budget(self, sphere):
        # Each axis and the depth are within limits, their product is not
        with pytest.raises(ResourceLimitError):
            sphere.tessellate_adaptive(max_depth=8, u_segments=4096, v_segments=4096)

        small = ParametricSurface.create_sphere(
            radius=2.0, config=GeometryConfig(max_adaptive_cells=16))
        assert small.tessellate_adaptive(max_depth=0).primitive_count == 32
        with pytest.raises(ResourceLimitError):
            small.tessellate_adaptive(threshold=0.1, max_depth=2)

    def test_klein_bottle(self):
        mesh = ParametricSurface.create_klein_bottle().tessellate(16, 16)
        mesh.validate()


class TestRayIntersection:

    def test_sphere_entry_and_exit(self, sphere):
        hits = sphere.intersect_with_ray((0.3, 0.2, -5.0), (0.0, 0.0, 1.0))
        assert len(hits) == 2
        depth = math.sqrt(4.0 - 0.13)
        assert_allclose([h.distance for h in hits], [5.0 - depth, 5.0 + depth], atol=1e-8)
        assert_allclose(hits[0].point, [0.3, 0.2, -depth], atol=1e-8)
        for hit in hits:
            assert_allclose(sphere.evaluate(*hit.parameter).point, hit.point, atol=1e-8)
            assert abs(np.dot(hit.normal, hit.point / 2.0)) == pytest.approx(1.0, abs=1e-6)

    def test_direction_is_normalized(self, sphere):
        hits = sphere.intersect_with_ray((0.3, 0.2, -5.0), (0.0, 0.0, 10.0))
        assert hits[0].distance == pytest.approx(5.0 - math.sqrt(3.87), abs=1e-8)

    def test_max_distance(self, sphere):
        hits = sphere.intersect_with_ray((0.3, 0.2, -5.0), (0.0, 0.0, 1.0), max_distance=5.0)
        assert len(hits) == 1
        assert hits[0].point[2] < 0

    def test_misses(self, sphere):
        assert sphere.intersect_with_ray((3.0, 3.0, -5.0), (0.0, 0.0, 1.0)) == []
        assert sphere.intersect_with_ray((0.3, 0.2, -5.0), (0.0, 0.0, -1.0)) == []

    def test_through_both_poles(self, sphere):
        hits = sphere.intersect_with_ray((0.0, -5.0, 0.0), (0.0, 1.0, 0.0))
        assert_allclose([h.distance for h in hits], [3.0, 7.0], atol=1e-6)

    def test_torus_four_hits(self):
        torus = ParametricSurface.create_torus(2.0, 1.0)
        hits = torus.intersect_with_ray((-5.0, 0.1, 0.2), (1.0, 0.0, 0.0))
        assert len(hits) == 4
        assert np.all(np.diff([h.distance for h in hits]) > 0)
        for hit in hits:
            x, y, z = hit.point
            assert (math.hypot(x, z) - 2.0) ** 2 + y ** 2 == pytest.approx(1.0, abs=1e-7)

    def test_invalid(self, sphere):
        with pytest.raises(DomainError):
            sphere.intersect_with_ray((0.0, 0.0, -5.0), (0.0, 0.0, 0.0))
        with pytest.raises(DomainError):
            sphere.intersect_with_ray((0.0, 0.0, -5.0), (0.0, 0.0, 1.0), max_distance=0.0)
        with pytest.raises(DomainError):
            sphere.intersect_with_ray((0.0, 0.0, -5.0), (0.0, 0.0, 1.0), samples=0)
        with pytest.raises(ResourceLimitError):
            sphere.intersect_with_ray((0.0, 0.0, -5.0), (0.0, 0.0, 1.0), samples=5000)
        with pytest.raises(DomainError):
            sphere.intersect_with_ray((0.0, float("nan"), -5.0), (0.0, 0.0, 1.0))


class TestSampling:

    def test_isoline(self):
        plane = ParametricSurface.create_plane(2.0, 2.0)
        iso = plane.sample_isoline("u", samples=4)

        assert iso.points.shape == (5, 3)
        assert_allclose(iso.points[:, 1], 0.0)
        assert_allclose(np.abs(iso.tangents), np.tile([1.0, 0.0, 0.0], (5, 1)), atol=1e-9)

    def test_isoline_invalid(self, sphere):
        with pytest.raises(DomainError):
            sphere.sample_isoline("w")
        with pytest.raises(DomainError):
            sphere.sample_isoline("u", value=10.0)

    def test_bounding_box(self, sphere):
        box = sphere.bounding_box
        assert_allclose(box.maximum[1], 2.0)
        assert_allclose(box.minimum[1], -2.0)
        assert box.contains(sphere.evaluate(0.3, 0.3).point)

    def test_clone(self, sphere):
        copy = sphere.clone()
        assert copy is not sphere
        assert_allclose(copy.evaluate(1.0, 1.0).point, sphere.evaluate(1.0, 1.0).point)
