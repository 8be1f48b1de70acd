"""
几何工具测试：距离、方向角、箭头端点、起始点圆周和网格吸附
"""

import math

import numpy as np
import pytest

from utils.geometry import (
    angle, arrow_endpoints, circle_points, distance, gridline_positions,
    nearest_gridline_value, reversed_angle, snap_to_grid
)


class TestDistanceAndAngle:

    def test_distance(self):
        assert distance(0, 0, 3, 4) == pytest.approx(5.0)
        assert distance(1, 1, 1, 1) == 0.0

    def test_angle(self):
        assert angle(1, 0) == pytest.approx(0.0)
        assert angle(0, 1) == pytest.approx(math.pi / 2)

    def test_reversed_angle_points_backwards(self):
        """反方向角 = atan2(-dy, -dx)"""
        assert reversed_angle(0, 1) == pytest.approx(-math.pi / 2)
        assert reversed_angle(0, -1) == pytest.approx(math.pi / 2)
        assert abs(reversed_angle(1, 0)) == pytest.approx(math.pi)


class TestArrowEndpoints:

    def test_endpoints_at_45_degrees(self):
        left, right = arrow_endpoints(0, 0, 0.0, 20)
        wing = 20 / math.sqrt(2)
        assert left == pytest.approx((wing, wing))
        assert right == pytest.approx((wing, -wing))

    def test_wing_length(self):
        left, right = arrow_endpoints(10, 20, 1.234, 7)
        assert distance(10, 20, *left) == pytest.approx(7)
        assert distance(10, 20, *right) == pytest.approx(7)


class TestCirclePoints:

    def test_unit_circle(self):
        points = circle_points(10, 20, 1.0, 4)
        expected = np.array([[11, 20], [10, 21], [9, 20], [10, 19]], dtype=float)
        assert points.shape == (4, 2)
        assert np.allclose(points, expected)

    def test_first_point_along_positive_x(self):
        points = circle_points(0, 0, 1.0, 6)
        assert points[0, 0] == 1.0
        assert points[0, 1] == 0.0

    def test_all_on_radius(self):
        points = circle_points(5, 5, 2.5, 12)
        r = np.hypot(points[:, 0] - 5, points[:, 1] - 5)
        assert np.allclose(r, 2.5)

    @pytest.mark.parametrize("n", [0, -3])
    def test_empty(self, n):
        assert circle_points(0, 0, 1.0, n).shape == (0, 2)


class TestGridSnapping:

    @pytest.mark.parametrize("position,expected", [
        (173, 150),
        (180, 200),
        (175, 150),   # 恰好半个间距时向下取
        (0, 0),
        (50, 50),
        (224.9, 200),
    ])
    def test_nearest_gridline_value(self, position, expected):
        assert nearest_gridline_value(position, 50) == pytest.approx(expected)

    def test_snap_centres_on_gridline(self):
        assert snap_to_grid(173, 180, 50, 2) == pytest.approx((151, 201))

    def test_snap_without_thickness(self):
        assert snap_to_grid(173, 180, 50) == pytest.approx((150, 200))

    def test_gridline_positions(self):
        xs = gridline_positions(1000, 50)
        assert len(xs) == 20
        assert xs[0] == 0
        assert xs[-1] == 950

    def test_gridline_positions_empty(self):
        assert len(gridline_positions(0, 50)) == 0
        assert len(gridline_positions(100, 0)) == 0
