# core/field_calculator.py
import math
import numpy as np
from scipy.integrate import solve_ivp
from typing import Sequence, Tuple, Union, List

from physics.point import PointCharge
from core.data_schema import FieldVector, SimulationConfig
from utils.constants import ABORT_THRESHOLD


def compute_step(point: Tuple[float, float],
                 charges: Sequence[PointCharge],
                 test_charge: float,
                 step_size: float,
                 check_abort: bool,
                 abort_threshold: float = ABORT_THRESHOLD) -> FieldVector:
    """
    计算point处长度为step_size、沿电场方向的位移矢量

    数学原理：
        叠加原理 F = Σ q₁·qᵢ/rᵢ² · r̂ᵢ，再归一化到长度ds

    终止规则：
        - check_abort为True且某个非零电荷距离小于abort_threshold
        - 某个非零电荷恰好位于point（r = 0）
        - 合力为零或非有限值（完全抵消）
        以上情况返回 FieldVector.abort()，不会产生NaN/Inf

    Args:
        point: 测试点 (x, y)
        charges: 电荷列表（只读）
        test_charge: 测试电荷量q₁
        step_size: 位移长度ds
        check_abort: 是否启用终止检查
        abort_threshold: 终止阈值

    Returns:
        FieldVector
    """
    x, y = point
    x_component = 0.0
    y_component = 0.0

    for charge in charges:
        q = charge.q
        # 零电荷不产生作用力
        if q == 0:
            continue

        delta_x = x - charge.x
        delta_y = y - charge.y
        r = math.hypot(delta_x, delta_y)

        if check_abort and r < abort_threshold:
            return FieldVector.abort()
        if r == 0:
            return FieldVector.abort()

        magnitude = test_charge * q / (r * r)
        # 力矢量与两电荷连线构成相似三角形
        x_component += magnitude * delta_x / r
        y_component += magnitude * delta_y / r

    magnitude = math.hypot(x_component, y_component)
    if magnitude == 0 or not math.isfinite(magnitude):
        return FieldVector.abort()

    return FieldVector(x_component * step_size / magnitude,
                       y_component * step_size / magnitude)


class FieldCalculator:
    """
    电场方向计算器（支持多电荷叠加原理）

    数学原理：
        库仑定律：F_i = q₁·q_i·r̂ / r²
        叠加原理：F = Σ F_i

    核心特性：
        - step(): 逐点计算归一化位移，供电场线追踪使用
        - electric_field(): 向量化计算原始场矢量，用于诊断和验证
    """

    def __init__(self, charges: Sequence[PointCharge], config: SimulationConfig = None):
        """
        Args:
            charges: 电荷对象列表（只读引用）
            config: 仿真配置，默认使用出厂参数
        """
        self.charges: List[PointCharge] = list(charges)
        self.config = config if config is not None else SimulationConfig()

        active = [c for c in self.charges if c.q != 0]
        self._positions = np.array([c.position for c in active], dtype=float).reshape(-1, 2)
        self._values = np.array([c.q for c in active], dtype=float)

    def step(self, point: Tuple[float, float], check_abort: bool) -> FieldVector:
        """按当前配置计算point处的单步位移"""
        return compute_step(point, self.charges,
                            self.config.test_charge,
                            self.config.ds,
                            check_abort,
                            self.config.abort_threshold)

    def electric_field(self, points: Union[List[float], np.ndarray]) -> np.ndarray:
        """
        计算空间点处作用在测试电荷上的合力（未归一化）

        Args:
            points: 单个点 [x, y] 或点数组 N×2

        Returns:
            力矢量，单点: [2,]，多点: [N, 2]；
            与非零电荷重合的点返回0
        """
        points = np.atleast_2d(np.asarray(points, dtype=float))
        total = np.zeros_like(points)

        for position, q in zip(self._positions, self._values):
            delta = points - position
            r = np.linalg.norm(delta, axis=1, keepdims=True)
            safe_r = np.where(r > 0, r, 1.0)
            contribution = self.config.test_charge * q / safe_r ** 2 * (delta / safe_r)
            total += np.where(r > 0, contribution, 0.0)

        return total.squeeze()

    def field_direction(self, points: Union[List[float], np.ndarray]) -> np.ndarray:
        """单位方向矢量，零场处返回零矢量"""
        E = np.atleast_2d(self.electric_field(points))
        E_mag = np.linalg.norm(E, axis=1, keepdims=True)
        direction = np.where(E_mag > 0, E / np.where(E_mag > 0, E_mag, 1.0), 0.0)
        return direction.squeeze()

    def reference_line(self, start: Tuple[float, float], arc_length: float,
                       n_points: int = 100, rtol: float = 1e-8,
                       atol: float = 1e-8) -> np.ndarray:
        """
        用自适应RK45积分同一条电场线，作为固定步长追踪的精度参照

        积分变量为弧长s：dr/ds = F/|F|。与追踪器相同，进入任一非零电荷的
        abort_threshold范围时终止（只在从外向内穿越时触发，
        所以从源电荷附近出发不会立即终止）。

        Args:
            start: 起始点
            arc_length: 最大积分弧长
            n_points: 输出点数
            rtol, atol: 积分容差

        Returns:
            电场线上的点 [M, 2]，M <= n_points
        """
        def field_line_ode(s, y):
            direction = self.field_direction(y)
            return np.asarray(direction, dtype=float).reshape(2)

        def reached_charge(s, y):
            if len(self._positions) == 0:
                return 1.0
            r = np.linalg.norm(self._positions - y, axis=1)
            return float(r.min() - self.config.abort_threshold)

        reached_charge.terminal = True
        reached_charge.direction = -1

        solution = solve_ivp(
            field_line_ode,
            (0.0, arc_length),
            np.asarray(start, dtype=float),
            method='RK45',
            rtol=rtol,
            atol=atol,
            events=reached_charge,
            t_eval=np.linspace(0.0, arc_length, n_points)
        )

        return solution.y.T
