# core/data_schema.py
"""
核心数据契约定义模块
本模块定义了追踪引擎与渲染层之间交换的全部数据格式。

设计原则：
1. 2D画布坐标：x向右、y向下，单位为像素
2. 不可变性：追踪结果创建后归调用方独占，不再修改
3. 配置显式传递：积分参数集中在SimulationConfig中，按渲染周期传入核心
"""

from dataclasses import dataclass, fields, replace as dc_replace
from typing import Any, Dict, Optional, Tuple
import numpy as np
from numpy.typing import NDArray

from physics.point import PointCharge
from utils.constants import (
    ABORT_THRESHOLD, ARROW_LENGTH, DEFAULT_ARROW_INCREMENT,
    DEFAULT_MAX_ITERATIONS, DEFAULT_STEP_SIZE, LINES_PER_UNIT_CHARGE, TEST_CHARGE
)


# ============================================================================ #
# 追踪过程数据
# ============================================================================ #

@dataclass(frozen=True)
class FieldVector:
    """
    单步位移矢量

    长度固定为步长ds；aborted为True时表示追踪已到达电荷
    （或该点合场强为零），x、y此时均为0。
    """
    x: float
    y: float
    aborted: bool = False

    @classmethod
    def abort(cls) -> 'FieldVector':
        return cls(0.0, 0.0, True)


@dataclass(frozen=True)
class ArrowMarker:
    """电场线上的箭头标记：位置 (x, y)、当步位移 (dx, dy)、所在迭代序号"""
    x: float
    y: float
    dx: float
    dy: float
    iteration: int

    @property
    def position(self) -> Tuple[float, float]:
        return self.x, self.y


@dataclass(frozen=True)
class TracedPath:
    """
    单条电场线追踪结果

    字段规范：
    - points: 形状 (2·iterations, 2)，每次完成的迭代贡献步前、步后两个点，
      相邻两点构成一段线段
    - arrows: 按迭代顺序排列的箭头标记
    - iterations: 完成的迭代次数（不超过max_iterations）
    - aborted: 是否因终止规则（到达电荷/零场）提前结束
    - seed: 起始点
    """
    points: NDArray[np.float64]
    arrows: Tuple[ArrowMarker, ...]
    iterations: int
    aborted: bool
    seed: Tuple[float, float]

    def __post_init__(self):
        # 创建后只读
        self.points.setflags(write=False)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def end_point(self) -> Tuple[float, float]:
        """最后到达的位置；没有完成任何迭代时为起始点"""
        if len(self.points) == 0:
            return self.seed
        return float(self.points[-1, 0]), float(self.points[-1, 1])

    def segments(self) -> NDArray[np.float64]:
        """每次迭代的线段，形状 (iterations, 2, 2)"""
        return self.points.reshape(-1, 2, 2)


@dataclass(frozen=True)
class FieldLineSet:
    """同一个正电荷发出的全部电场线"""
    charge_index: int
    charge: PointCharge
    paths: Tuple[TracedPath, ...] = ()

    def __len__(self) -> int:
        return len(self.paths)


# ============================================================================ #
# 仿真配置
# ============================================================================ #

@dataclass(frozen=True)
class SimulationConfig:
    """
    仿真配置（每个渲染周期作为不可变输入传给核心）

    字段：
    - ds: 每步位移长度
    - max_iterations: 单条电场线最大迭代次数
    - arrow_increment: 箭头标记间隔（迭代次数）
    - test_charge: 测试电荷量
    - abort_threshold: 终止阈值
    - lines_per_unit_charge: 每单位电荷的电场线数量
    - arrow_length: 箭头两翼长度

    Raises:
        ValueError: 任一字段不满足取值范围
    """
    ds: float = DEFAULT_STEP_SIZE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    arrow_increment: int = DEFAULT_ARROW_INCREMENT
    test_charge: float = TEST_CHARGE
    abort_threshold: float = ABORT_THRESHOLD
    lines_per_unit_charge: int = LINES_PER_UNIT_CHARGE
    arrow_length: float = ARROW_LENGTH

    def __post_init__(self):
        checks = [
            ('ds', self.ds > 0, "必须为正数"),
            ('max_iterations', self.max_iterations >= 0, "不能为负数"),
            ('arrow_increment', self.arrow_increment > 0, "必须为正整数"),
            ('test_charge', self.test_charge != 0, "不能为零"),
            ('abort_threshold', self.abort_threshold >= 0, "不能为负数"),
            ('lines_per_unit_charge', self.lines_per_unit_charge >= 0, "不能为负数"),
            ('arrow_length', self.arrow_length >= 0, "不能为负数"),
        ]
        for name, ok, message in checks:
            value = getattr(self, name)
            if not np.isfinite(value):
                raise ValueError(f"{name} 必须是有限数值，得到 {value!r}")
            if not ok:
                raise ValueError(f"{name} {message}，得到 {value!r}")

        for name in ('max_iterations', 'arrow_increment', 'lines_per_unit_charge'):
            value = getattr(self, name)
            if int(value) != value:
                raise ValueError(f"{name} 必须是整数，得到 {value!r}")
            object.__setattr__(self, name, int(value))

    def replace(self, **changes: Any) -> 'SimulationConfig':
        """返回修改了部分字段的新配置（同样经过验证）"""
        return dc_replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationConfig':
        """从字典创建配置，忽略未知键"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_config(cls, overrides: Optional[Dict[str, Any]] = None) -> 'SimulationConfig':
        """
        从physics配置文件创建默认配置

        Args:
            overrides: 额外覆盖的字段（优先级最高）
        """
        from configs import get_config

        physics = get_config('physics')
        values: Dict[str, Any] = {}
        values.update(physics.get('tracing', {}))
        values.update(physics.get('constants', {}))
        if overrides:
            values.update(overrides)
        return cls.from_dict(values)
