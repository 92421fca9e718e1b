#!/usr/bin/env python3
"""
Gallery of curves: Bezier, rational arcs, splines and swept tubes.

This script demonstrates:
1. A cubic Bezier curve and its De Casteljau subdivision
2. An exact rational arc (every sample at the arc radius)
3. Catmull-Rom, Hermite and B-spline curves through the same points
4. Closest-point projection onto a spline
5. A lathe (revolve) and a tube (sweep) built from curves

Usage:
    ./examples/src/curve_gallery.py
    ./examples/src/curve_gallery.py --save
"""

import sys
import argparse
import os

# Use Agg backend if --save is specified (non-interactive)
if '--save' in sys.argv:
    import matplotlib
    matplotlib.use('Agg')

import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from splinemesh import BezierCurve, Spline
from splinemesh.geometry.primitives import make_arc, make_circle
from splinemesh.geometry.spline import CATMULL_ROM, HERMITE, CUBIC_BSPLINE
from splinemesh.visualization import plot_curve, plot_mesh


def main():
    parser = argparse.ArgumentParser(description="Curve gallery")
    parser.add_argument("--segments", type=int, default=64,
                        help="Tessellation segments per curve")
    parser.add_argument("--save", action="store_true",
                        help="Save figures to files instead of showing them")
    args = parser.parse_args()
    show = not args.save

    print("=" * 60)
    print("Curve gallery")
    print("=" * 60)

    # 1. Bezier curve and subdivision
    points = np.array([[0.0, 0.0], [1.0, 2.0], [3.0, -1.0], [4.0, 0.0]])
    bezier = BezierCurve(points)
    halves = bezier.subdivide(2)
    print(f"\n1. {bezier}")
    print(f"   C(0.5) = {bezier.evaluate(0.5).point}")
    print(f"   subdivided into {halves.n_segments} segments, "
          f"C(0.5) = {halves.evaluate(0.5).point}")
    plot_curve(bezier, args.segments, save_path="bezier.png" if args.save else None, show=show)

    # 2. Rational arc
    arc = make_arc(radius=2.0, start_angle=0.0, end_angle=1.5 * np.pi)
    radii = np.linalg.norm(arc.tessellate(args.segments).points, axis=1)
    print(f"\n2. Arc of {arc.n_segments} rational pieces, "
          f"radius error {np.max(np.abs(radii - 2.0)):.2e}")
    plot_curve(arc, args.segments, save_path="arc.png" if args.save else None, show=show)

    # 3. Splines through the same points
    through = np.array([[0, 0, 0], [1, 2, 0], [3, 3, 0], [4, 0, 0], [6, 1, 0]], dtype=float)
    tangents = np.gradient(through, axis=0)
    for kind in (CATMULL_ROM, HERMITE, CUBIC_BSPLINE):
        spline = Spline(through, kind=kind,
                        tangents=tangents if kind == HERMITE else None)
        box = spline.bounding_box
        print(f"\n3. {kind}: {spline.n_segments} segments, "
              f"bounds {box.minimum} .. {box.maximum}")
        plot_curve(spline, args.segments,
                   save_path=f"spline_{kind}.png" if args.save else None, show=show)

    # 4. Closest point
    spline = Spline(through)
    target = np.array([2.0, 3.5, 0.0])
    hit = spline.find_closest_point(target)
    print(f"\n4. Closest point to {target}: t = {hit.parameter:.4f}, "
          f"distance = {hit.distance:.4f}")

    # 5. Meshes built from curves
    profile = BezierCurve([[0.2, -1.0], [1.0, -0.5], [0.3, 0.5], [0.6, 1.0]])
    vase = profile.revolve(radial_segments=32, profile_segments=24)
    tube = spline.sweep(make_circle(0.2), sections=48, twist=np.pi, profile_segments=16)
    print(f"\n5. Vase: {vase.vertex_count} vertices, tube: {tube.vertex_count} vertices")
    plot_mesh(vase, save_path="vase.png" if args.save else None, show=show)
    plot_mesh(tube, save_path="tube.png" if args.save else None, show=show)


if __name__ == "__main__":
    main()
