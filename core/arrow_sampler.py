# core/arrow_sampler.py
"""
箭头几何采样

每个箭头标记画成两段从标记位置出发的短线（"V"形）：
    θ = atan2(-dy, -dx)
    端点 = 位置 + L·(cos(θ ± 45°), sin(θ ± 45°))
两翼向电场反方向张开，尖端指向远离正电荷的方向。
"""

from typing import Iterable, List

import numpy as np

from core.data_schema import ArrowMarker, TracedPath
from utils.constants import ARROW_LENGTH, ARROW_SPREAD
from utils.geometry import Segment2D, arrow_endpoints, reversed_angle


class ArrowSampler:
    """箭头两翼线段生成器（纯几何，无状态）"""

    def __init__(self, arrow_length: float = ARROW_LENGTH, spread: float = ARROW_SPREAD):
        self.arrow_length = arrow_length
        self.spread = spread

    def tick_segments(self, marker: ArrowMarker) -> List[Segment2D]:
        """单个箭头的两段线段 [((x, y), 端点₊), ((x, y), 端点₋)]"""
        theta = reversed_angle(marker.dx, marker.dy)
        left, right = arrow_endpoints(marker.x, marker.y, theta,
                                      self.arrow_length, self.spread)
        origin = (marker.x, marker.y)
        return [(origin, left), (origin, right)]

    def sample_markers(self, markers: Iterable[ArrowMarker]) -> np.ndarray:
        """一组箭头的全部线段，形状 (2K, 2, 2)"""
        segments = []
        for marker in markers:
            segments.extend(self.tick_segments(marker))
        return np.array(segments, dtype=np.float64).reshape(-1, 2, 2)

    def sample(self, path: TracedPath) -> np.ndarray:
        """一条电场线上全部箭头的线段"""
        return self.sample_markers(path.arrows)
