# core/field_line_planner.py
import logging
import math
import threading
from concurrent.futures import Executor
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from physics.point import PointCharge
from core.data_schema import FieldLineSet, SimulationConfig, TracedPath
from core.field_line_tracer import FieldLineTracer
from utils.constants import SEED_RADIUS
from utils.geometry import circle_points
from utils.performance import ProgressTracker

logger = logging.getLogger(__name__)

Seed = Tuple[int, float, float]


class ChargeFieldPlanner:
    """
    电场线规划器

    只有正电荷（源）发出电场线，负电荷和零电荷只作为终点或标记。
    每个正电荷发出 floor(q × lines_per_unit_charge) 条线，
    起始点均匀分布在以电荷为圆心的单位圆上：
        第i个起始点 = (x + cos(i·2π/n), y + sin(i·2π/n))
    """

    def __init__(self, charges: Sequence[PointCharge], config: SimulationConfig = None):
        """
        Args:
            charges: 电荷对象列表（只读）
            config: 仿真配置
        """
        self.charges = list(charges)
        self.config = config if config is not None else SimulationConfig()
        self.tracer = FieldLineTracer(self.charges, self.config)

    def line_count(self, charge: PointCharge) -> int:
        """电荷发出的电场线数量，非整数时向下取整，非正电荷为0"""
        if charge.q <= 0:
            return 0
        return max(0, math.floor(charge.q * self.config.lines_per_unit_charge))

    def seed_points(self, charge: PointCharge) -> np.ndarray:
        """电荷周围的起始点 [n, 2]"""
        return circle_points(charge.x, charge.y, SEED_RADIUS, self.line_count(charge))

    def plan(self) -> List[Seed]:
        """全部起始点 [(电荷序号, x, y), ...]，按电荷顺序排列"""
        seeds: List[Seed] = []
        for index, charge in enumerate(self.charges):
            for sx, sy in self.seed_points(charge):
                seeds.append((index, float(sx), float(sy)))
        return seeds

    def trace_all_field_lines(self,
                              executor: Optional[Executor] = None,
                              cancel_event: Optional[threading.Event] = None,
                              on_progress: Optional[Callable[[ProgressTracker], None]] = None
                              ) -> List[FieldLineSet]:
        """
        追踪所有电场线（主入口）

        Args:
            executor: 可选执行器，提供时并行追踪各起始点（结果顺序不变）
            cancel_event: 可选取消标志，透传给每条线的追踪
            on_progress: 可选进度回调，每完成一条线在调用线程中调用一次

        Returns:
            每个正电荷一个FieldLineSet，按电荷顺序排列

        Raises:
            TraceCancelled: cancel_event被设置
        """
        seeds = self.plan()
        if not seeds:
            logger.info("没有正电荷，不生成电场线")
            return []

        logger.info(f"生成 {len(seeds)} 个起始点，开始追踪...")

        xs = [s[1] for s in seeds]
        ys = [s[2] for s in seeds]
        events = [cancel_event] * len(seeds)

        progress = ProgressTracker(total_steps=len(seeds), description="电场线追踪")
        if executor is None:
            traced = (self.tracer.trace(x, y, cancel_event) for x, y in zip(xs, ys))
        else:
            # map按提交顺序在调用线程中产出结果
            traced = executor.map(self.tracer.trace, xs, ys, events)

        paths: List[TracedPath] = []
        for path in traced:
            paths.append(path)
            progress.update()
            logger.debug(str(progress))
            if on_progress is not None:
                on_progress(progress)

        grouped: Dict[int, List[TracedPath]] = {}
        for (index, _, _), path in zip(seeds, paths):
            grouped.setdefault(index, []).append(path)
        line_sets = [FieldLineSet(index, self.charges[index], tuple(group))
                     for index, group in grouped.items()]

        n_aborted = sum(1 for p in paths if p.aborted)
        logger.info(f"成功追踪 {len(paths)} 条电场线（{n_aborted} 条到达电荷）")
        return line_sets
