"""Tests for the geometry helpers (linear algebra, polygons, lines)."""

import math

import numpy as np
import pytest

from docrectify.services.geometry import (
    apply_homography,
    compute_homography,
    contour_area,
    convex_hull,
    douglas_peucker,
    has_collinear_triplet,
    interior_angles,
    intersect_line_eq,
    invert3x3,
    is_convex,
    line_intersection,
    line_through,
    order_corners,
    perimeter,
    solve,
    validate_quad,
)


class TestSolve:
    """Gaussian elimination with partial pivoting."""

    def test_simple_system(self):
        x = solve(np.array([[2.0, 1.0], [1.0, 3.0]]), np.array([3.0, 5.0]))
        np.testing.assert_allclose(x, [0.8, 1.4])

    def test_requires_pivoting(self):
        x = solve(np.array([[0.0, 1.0], [1.0, 0.0]]), np.array([2.0, 3.0]))
        np.testing.assert_allclose(x, [3.0, 2.0])

    def test_singular_returns_none(self):
        assert solve(np.array([[1.0, 2.0], [2.0, 4.0]]), np.array([1.0, 2.0])) is None

    def test_does_not_modify_inputs(self):
        a = np.array([[0.0, 1.0], [1.0, 0.0]])
        b = np.array([2.0, 3.0])
        solve(a, b)
        np.testing.assert_array_equal(a, [[0.0, 1.0], [1.0, 0.0]])
        np.testing.assert_array_equal(b, [2.0, 3.0])


class TestHomography:
    """Four-point homography and 3x3 inversion."""

    SRC = np.array([[10.0, 20.0], [300.0, 40.0], [280.0, 260.0], [30.0, 240.0]])
    DST = np.array([[0.0, 0.0], [290.0, 0.0], [290.0, 220.0], [0.0, 220.0]])

    def test_maps_source_corners_onto_destination(self):
        h = compute_homography(self.SRC, self.DST)
        assert h is not None
        assert h[2, 2] == 1.0
        np.testing.assert_allclose(apply_homography(h, self.SRC), self.DST, atol=1e-6)

    def test_inverse_maps_back(self):
        h = compute_homography(self.SRC, self.DST)
        h_inv = invert3x3(h)
        assert h_inv is not None
        np.testing.assert_allclose(apply_homography(h_inv, self.DST), self.SRC, atol=1e-6)

    def test_identity_for_equal_quads(self):
        h = compute_homography(self.DST, self.DST)
        np.testing.assert_allclose(h, np.eye(3), atol=1e-9)

    def test_invert_matches_numpy(self):
        m = np.array([[2.0, 0.5, 1.0], [0.0, 1.5, -2.0], [0.1, 0.2, 1.0]])
        np.testing.assert_allclose(invert3x3(m), np.linalg.inv(m), atol=1e-12)

    def test_invert_singular_returns_none(self):
        assert invert3x3(np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [1.0, 1.0, 1.0]])) is None


class TestConvexHull:
    """Monotone-chain hull."""

    def test_drops_interior_and_edge_points(self):
        pts = np.array([[0, 0], [10, 0], [10, 10], [0, 10], [5, 5], [5, 0], [2, 7]], dtype=float)
        hull = convex_hull(pts)
        assert len(hull) == 4
        assert {tuple(p) for p in hull.tolist()} == {(0, 0), (10, 0), (10, 10), (0, 10)}

    def test_duplicates_are_ignored(self):
        pts = np.array([[0, 0], [0, 0], [4, 0], [4, 3], [4, 3], [0, 3]], dtype=float)
        assert len(convex_hull(pts)) == 4

    def test_fewer_than_three_points_returned_unchanged(self):
        pts = np.array([[1.0, 2.0], [3.0, 4.0]])
        np.testing.assert_array_equal(convex_hull(pts), pts)

    def test_collinear_points_collapse_to_segment(self):
        hull = convex_hull(np.array([[0, 0], [1, 1], [2, 2]], dtype=float))
        assert len(hull) == 2


class TestPolygonMeasures:
    """Douglas-Peucker, area, perimeter and convexity."""

    def test_douglas_peucker_flattens_near_straight_line(self):
        pts = np.array([[0, 0], [1, 0.01], [2, 0], [3, 0]], dtype=float)
        np.testing.assert_array_equal(douglas_peucker(pts, 0.5), [[0, 0], [3, 0]])

    def test_douglas_peucker_keeps_spike(self):
        pts = np.array([[0, 0], [1, 0], [2, 5], [3, 0], [4, 0]], dtype=float)
        np.testing.assert_array_equal(douglas_peucker(pts, 1.0), [[0, 0], [2, 5], [4, 0]])

    def test_area_is_orientation_independent(self):
        rect = np.array([[0, 0], [4, 0], [4, 3], [0, 3]], dtype=float)
        assert contour_area(rect) == pytest.approx(12.0)
        assert contour_area(rect[::-1]) == pytest.approx(12.0)

    def test_perimeter(self):
        rect = np.array([[0, 0], [4, 0], [4, 3], [0, 3]], dtype=float)
        assert perimeter(rect) == pytest.approx(14.0)

    def test_square_is_convex(self):
        assert is_convex(np.array([[0, 0], [10, 0], [10, 10], [0, 10]], dtype=float))

    def test_concave_polygon(self):
        assert not is_convex(np.array([[0, 0], [10, 0], [5, 3], [10, 10], [0, 10]], dtype=float))

    def test_degenerate_polygon_is_not_convex(self):
        assert not is_convex(np.array([[0, 0], [1, 0], [2, 0], [3, 0]], dtype=float))

    def test_interior_angles_of_rectangle(self):
        angles = interior_angles(np.array([[0, 0], [4, 0], [4, 3], [0, 3]], dtype=float))
        np.testing.assert_allclose(angles, [90, 90, 90, 90])


class TestOrderCorners:
    """Canonical tl, tr, br, bl ordering."""

    def test_shuffled_square(self):
        pts = np.array([[90, 90], [10, 10], [10, 90], [90, 10]], dtype=float)
        np.testing.assert_array_equal(order_corners(pts), [[10, 10], [90, 10], [90, 90], [10, 90]])

    def test_idempotent_on_tilted_quad(self):
        quad = np.array([[12, 5], [95, 15], [88, 90], [3, 80]], dtype=float)
        np.testing.assert_array_equal(order_corners(quad), quad)
        np.testing.assert_array_equal(order_corners(order_corners(quad)), quad)

    def test_every_permutation_gives_same_order(self):
        from itertools import permutations

        quad = np.array([[12, 5], [95, 15], [88, 90], [3, 80]], dtype=float)
        for perm in permutations(range(4)):
            np.testing.assert_array_equal(order_corners(quad[list(perm)]), quad)


class TestValidateQuad:
    """Acceptance gate for candidate quads."""

    def test_accepts_centered_square(self):
        assert validate_quad(np.array([[10, 10], [90, 10], [90, 90], [10, 90]], dtype=float), 100, 100)

    def test_rejects_small_area(self):
        assert not validate_quad(np.array([[0, 0], [20, 0], [20, 20], [0, 20]], dtype=float), 100, 100)

    def test_rejects_sharp_angle(self):
        # Area 1200 and edges >= 44 pass; the 26.6 degree corners do not
        quad = np.array([[0, 0], [60, 0], [100, 20], [40, 20]], dtype=float)
        assert not validate_quad(quad, 100, 100)

    def test_rejects_short_edge(self):
        quad = np.array([[10, 10], [90, 10], [90, 90], [85, 90]], dtype=float)
        assert not validate_quad(quad, 100, 100)

    def test_rejects_self_intersecting(self):
        quad = np.array([[10, 10], [90, 90], [90, 10], [10, 90]], dtype=float)
        assert not validate_quad(quad, 100, 100)

    def test_rejects_non_finite(self):
        quad = np.array([[10, 10], [90, 10], [np.nan, 90], [10, 90]], dtype=float)
        assert not validate_quad(quad, 100, 100)


class TestCollinearity:
    def test_three_points_on_a_line(self):
        assert has_collinear_triplet(np.array([[0, 0], [50, 0], [100, 0], [50, 100]], dtype=float))

    def test_rectangle(self):
        assert not has_collinear_triplet(np.array([[0, 0], [100, 0], [100, 50], [0, 50]], dtype=float))

    def test_scale_independent(self):
        rect = np.array([[0, 0], [1, 0], [1, 0.5], [0, 0.5]], dtype=float)
        assert not has_collinear_triplet(rect * 1e-3)
        assert not has_collinear_triplet(rect * 1e4)

    def test_coincident_points(self):
        assert has_collinear_triplet(np.zeros((4, 2)))


class TestLines:
    """Polar and implicit line intersections."""

    def test_polar_intersection(self):
        x, y = line_intersection((5.0, 0.0), (7.0, math.pi / 2))
        assert x == pytest.approx(5.0)
        assert y == pytest.approx(7.0)

    def test_polar_parallel(self):
        assert line_intersection((5.0, 0.0), (9.0, 0.0)) is None

    def test_implicit_intersection(self):
        horizontal = line_through((0, 0), (10, 0))
        vertical = line_through((3, -5), (3, 5))
        x, y = intersect_line_eq(horizontal, vertical)
        assert x == pytest.approx(3.0)
        assert y == pytest.approx(0.0, abs=1e-12)

    def test_line_through_is_normalized(self):
        a, b, _c = line_through((0, 0), (3, 4))
        assert math.hypot(a, b) == pytest.approx(1.0)

    def test_line_through_same_point(self):
        assert line_through((2, 2), (2, 2)) is None

    def test_implicit_parallel(self):
        l1 = line_through((0, 0), (10, 0))
        l2 = line_through((0, 5), (10, 5))
        assert intersect_line_eq(l1, l2) is None
