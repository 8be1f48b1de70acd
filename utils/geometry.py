# utils/geometry.py
"""
几何计算工具模块

功能特性：
    - 距离与方向角：电场线追踪和终止判断的基础运算
    - 箭头几何：由方向角计算箭头两翼端点
    - 起始点分布：正电荷周围圆周上的均匀点（向量化实现）
    - 网格吸附：把画布坐标吸附到最近的网格线交点

所有坐标均为2D画布坐标（像素），y轴向下。
"""

import math
from typing import Tuple

import numpy as np

from utils.constants import ARROW_SPREAD

Point2D = Tuple[float, float]
Segment2D = Tuple[Point2D, Point2D]


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    """两点间欧氏距离"""
    return math.hypot(x2 - x1, y2 - y1)


def angle(dx: float, dy: float) -> float:
    """矢量 (dx, dy) 的方向角（弧度，atan2约定）"""
    return math.atan2(dy, dx)


def reversed_angle(dx: float, dy: float) -> float:
    """
    矢量反方向的方向角 atan2(-dy, -dx)

    箭头两翼从箭头位置向电场反方向张开，
    这样画出的 "V" 形尖端顺着电场方向。
    """
    return math.atan2(-dy, -dx)


def arrow_endpoints(x: float, y: float, theta: float, length: float,
                    spread: float = ARROW_SPREAD) -> Tuple[Point2D, Point2D]:
    """
    计算箭头两翼的端点

    Args:
        x, y: 箭头位置（两翼公共端点）
        theta: 两翼的中心方向角
        length: 两翼长度
        spread: 每一翼与中心方向的夹角

    Returns:
        ((x₊, y₊), (x₋, y₋))，分别对应 theta + spread 与 theta - spread
    """
    left = (x + length * math.cos(theta + spread), y + length * math.sin(theta + spread))
    right = (x + length * math.cos(theta - spread), y + length * math.sin(theta - spread))
    return left, right


def circle_points(cx: float, cy: float, radius: float, n_points: int) -> np.ndarray:
    """
    圆周均匀点生成

    第i个点位于角度 i·2π/n 处，i=0 对应 +x 方向。

    Args:
        cx, cy: 圆心
        radius: 半径
        n_points: 点数，<=0 时返回空数组

    Returns:
        点坐标数组 [n_points, 2]
    """
    if n_points <= 0:
        return np.empty((0, 2))

    angle_increment = 2 * np.pi / n_points
    angles = np.arange(n_points, dtype=float) * angle_increment

    return np.column_stack([cx + radius * np.cos(angles),
                            cy + radius * np.sin(angles)])


def nearest_gridline_value(position: float, spacing: float) -> float:
    """
    找到离position最近的网格线坐标

    例如 spacing=50 时 173 → 150，180 → 200。
    余数恰好等于半个间距时向下取。
    """
    remainder = position % spacing
    if remainder > spacing / 2:
        return position - remainder + spacing
    return position - remainder


def snap_to_grid(x: float, y: float, spacing: float, thickness: float = 0.0) -> Point2D:
    """
    吸附到最近的网格交点，并按网格线粗细居中

    网格线从其坐标处开始绘制、宽度为thickness，
    因此视觉中心在坐标 + thickness/2。
    """
    return (nearest_gridline_value(x, spacing) + thickness / 2,
            nearest_gridline_value(y, spacing) + thickness / 2)


def gridline_positions(extent: float, spacing: float) -> np.ndarray:
    """[0, extent) 范围内所有网格线坐标"""
    if extent <= 0 or spacing <= 0:
        return np.empty(0)
    return np.arange(0, extent, spacing, dtype=float)
