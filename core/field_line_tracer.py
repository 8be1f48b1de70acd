# core/field_line_tracer.py
import logging
import threading
from typing import List, Optional, Sequence

import numpy as np

from physics.point import PointCharge
from core.data_schema import ArrowMarker, SimulationConfig, TracedPath
from core.field_calculator import compute_step
from utils.constants import ABORT_THRESHOLD, TEST_CHARGE
from utils.geometry import distance

logger = logging.getLogger(__name__)

# 每隔多少次迭代检查一次取消标志
CANCEL_CHECK_INTERVAL = 1000


class TraceCancelled(Exception):
    """追踪被更新的渲染请求取代"""
    pass


def trace(start_x: float, start_y: float,
          charges: Sequence[PointCharge],
          step_size: float,
          max_iterations: int,
          arrow_interval: int,
          test_charge: float = TEST_CHARGE,
          abort_threshold: float = ABORT_THRESHOLD,
          cancel_event: Optional[threading.Event] = None) -> TracedPath:
    """
    从 (start_x, start_y) 追踪一条电场线（固定步长欧拉积分）

    状态机：
        每次迭代先计算到起点的距离，超过abort_threshold后才启用终止检查，
        避免紧贴源电荷的起始点在第一步就被判定为到达电荷。
        - 终止 → 结束（到达汇/零场）
        - 否则记录步前、步后两个点并前进一步
        - i ≠ 0 且 i 是arrow_interval的倍数时，在步后位置记录箭头
        达到max_iterations时路径直接截断，不视为错误。

    Args:
        start_x, start_y: 起始点
        charges: 电荷列表（只读）
        step_size: 步长ds
        max_iterations: 最大迭代次数
        arrow_interval: 箭头间隔
        test_charge: 测试电荷量
        abort_threshold: 终止阈值
        cancel_event: 可选取消标志，被设置时抛出TraceCancelled

    Returns:
        TracedPath

    Raises:
        TraceCancelled: cancel_event被设置
    """
    x_pos = float(start_x)
    y_pos = float(start_y)
    points: List[tuple] = []
    arrows: List[ArrowMarker] = []
    aborted = False
    iterations = 0

    for i in range(max_iterations):
        if cancel_event is not None and i % CANCEL_CHECK_INTERVAL == 0 and cancel_event.is_set():
            raise TraceCancelled(f"追踪在第 {i} 次迭代被取消")

        distance_from_start = distance(start_x, start_y, x_pos, y_pos)
        step = compute_step((x_pos, y_pos), charges, test_charge, step_size,
                            distance_from_start > abort_threshold, abort_threshold)
        if step.aborted:
            aborted = True
            break

        points.append((x_pos, y_pos))
        x_pos += step.x
        y_pos += step.y
        points.append((x_pos, y_pos))
        iterations += 1

        if i != 0 and i % arrow_interval == 0:
            arrows.append(ArrowMarker(x_pos, y_pos, step.x, step.y, i))

    return TracedPath(
        points=np.array(points, dtype=np.float64).reshape(-1, 2),
        arrows=tuple(arrows),
        iterations=iterations,
        aborted=aborted,
        seed=(float(start_x), float(start_y))
    )


class FieldLineTracer:
    """
    电场线追踪器（核心算法）

    物理原理：
        电场线是力场F(r)的积分曲线，满足 dr/ds = F(r)/|F(r)|，
        这里用固定步长ds的一阶方法逐步前进。

    特性：
        - 从正电荷附近的起始点出发，终止于负电荷附近或迭代上限
        - 每条线独立计算、只读电荷列表，可安全并行
    """

    def __init__(self, charges: Sequence[PointCharge], config: SimulationConfig = None):
        """
        Args:
            charges: 电荷对象列表
            config: 仿真配置
        """
        self.charges = charges
        self.config = config if config is not None else SimulationConfig()

    def trace(self, start_x: float, start_y: float,
              cancel_event: Optional[threading.Event] = None) -> TracedPath:
        """按当前配置追踪单条电场线"""
        path = trace(start_x, start_y, self.charges,
                     step_size=self.config.ds,
                     max_iterations=self.config.max_iterations,
                     arrow_interval=self.config.arrow_increment,
                     test_charge=self.config.test_charge,
                     abort_threshold=self.config.abort_threshold,
                     cancel_event=cancel_event)
        logger.debug(
            f"电场线 ({start_x:.2f}, {start_y:.2f}): {path.iterations} 次迭代, "
            f"{len(path.arrows)} 个箭头, {'终止' if path.aborted else '截断'}"
        )
        return path
