# core/scene.py
"""
场景状态：电荷集合、当前编辑的电荷和仿真配置

场景由界面层持有（每个会话一个实例），核心追踪代码只读取
snapshot() 返回的副本。这里实现界面协作方的全部编辑语义：
    - 放置电荷时吸附到网格交点，同一位置不重复放置
    - 选中已有电荷进行编辑
    - 表单输入无效时回退到上一个有效值
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from physics.point import PointCharge
from core.data_schema import SimulationConfig
from utils.constants import GRIDLINE_SPACING, GRIDLINE_THICKNESS, MAX_CHARGE_MAGNITUDE
from utils.geometry import snap_to_grid

logger = logging.getLogger(__name__)

RawValue = Union[str, int, float, None]


@dataclass(frozen=True)
class SceneSnapshot:
    """一个渲染周期的不可变输入"""
    charges: Tuple[PointCharge, ...]
    config: SimulationConfig
    editing_index: Optional[int]


def parse_number(raw: RawValue, integer: bool = False) -> Optional[float]:
    """
    解析表单输入

    Args:
        raw: 原始输入（字符串或数值）
        integer: 是否要求整数（"2.0" 视为整数2）

    Returns:
        解析结果；空值、非数值、非有限值或非整数时返回None
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    else:
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return None

    if value != value or value in (float('inf'), float('-inf')):
        return None

    if integer:
        if not value.is_integer():
            return None
        return int(value)
    return value


class ChargeScene:
    """
    场景状态

    editing_index 显式记录当前编辑的电荷序号（没有电荷时为None），
    与追踪逻辑完全解耦。电荷只能添加和修改电荷量，不能删除。
    """

    def __init__(self, charges: Optional[List[PointCharge]] = None,
                 config: Optional[SimulationConfig] = None,
                 grid_spacing: float = GRIDLINE_SPACING,
                 gridline_thickness: float = GRIDLINE_THICKNESS):
        """
        Args:
            charges: 初始电荷列表
            config: 初始仿真配置
            grid_spacing: 网格线间距
            gridline_thickness: 网格线粗细
        """
        self.charges: List[PointCharge] = list(charges) if charges else []
        self.config = config if config is not None else SimulationConfig()
        self.grid_spacing = grid_spacing
        self.gridline_thickness = gridline_thickness
        self.editing_index: Optional[int] = len(self.charges) - 1 if self.charges else None

    @classmethod
    def from_config(cls) -> 'ChargeScene':
        """按ui与physics配置创建空场景"""
        from configs import get_config

        canvas = get_config('ui').get('canvas', {})
        return cls(config=SimulationConfig.from_config(),
                   grid_spacing=canvas.get('grid_spacing', GRIDLINE_SPACING),
                   gridline_thickness=canvas.get('gridline_thickness', GRIDLINE_THICKNESS))

    # ============================================================================ #
    # 电荷放置与选择
    # ============================================================================ #

    def snap(self, px: float, py: float) -> Tuple[float, float]:
        """画布坐标 → 最近的网格交点（按网格线粗细居中）"""
        return snap_to_grid(px, py, self.grid_spacing, self.gridline_thickness)

    def index_of_charge_at(self, x: float, y: float) -> int:
        """给定坐标处电荷的序号，没有时返回-1"""
        for i, charge in enumerate(self.charges):
            if charge.x == x and charge.y == y:
                return i
        return -1

    def place_charge(self, px: float, py: float, q: float = 1.0) -> Optional[int]:
        """
        在离 (px, py) 最近的网格交点放置电荷并选中它

        Returns:
            新电荷的序号；该位置已有电荷时不做任何修改并返回None
        """
        x, y = self.snap(px, py)
        if self.index_of_charge_at(x, y) != -1:
            logger.debug(f"位置 ({x}, {y}) 已有电荷，忽略放置")
            return None

        self.charges.append(PointCharge(x, y, q))
        self.editing_index = len(self.charges) - 1
        logger.info(f"放置电荷 #{self.editing_index}: ({x}, {y}), q={q}")
        return self.editing_index

    def select_at(self, px: float, py: float) -> Optional[int]:
        """
        选中离 (px, py) 最近的网格交点上的电荷

        Returns:
            被选中电荷的序号；该位置没有电荷时保持原选择并返回None
        """
        i = self.index_of_charge_at(*self.snap(px, py))
        if i == -1:
            return None
        self.editing_index = i
        return i

    def select(self, index: int) -> None:
        """
        按序号选中电荷

        Raises:
            IndexError: 序号超出范围
        """
        if not 0 <= index < len(self.charges):
            raise IndexError(f"电荷序号超出范围: {index} (共 {len(self.charges)} 个)")
        self.editing_index = index

    @property
    def editing_charge(self) -> Optional[PointCharge]:
        if self.editing_index is None:
            return None
        return self.charges[self.editing_index]

    # ============================================================================ #
    # 表单输入
    # ============================================================================ #

    def update_editing_charge(self, raw: RawValue) -> Optional[float]:
        """
        修改当前编辑电荷的电荷量

        非数值输入把电荷量置为0；绝对值超过MAX_CHARGE_MAGNITUDE时保留原值。

        Returns:
            最终的电荷量；没有可编辑的电荷时返回None
        """
        charge = self.editing_charge
        if charge is None:
            return None

        value = parse_number(raw)
        if value is None:
            logger.warning(f"电荷量输入无效: {raw!r}，置为0")
            value = 0.0
        elif abs(value) > MAX_CHARGE_MAGNITUDE:
            logger.warning(f"电荷量 {value:g} 超出范围 ±{MAX_CHARGE_MAGNITUDE:g}，保留 {charge.q:g}")
            return charge.q

        charge.q = float(value)
        return charge.q

    def apply_inputs(self, arrow_increment: RawValue = None,
                     ds: RawValue = None,
                     max_iterations: RawValue = None) -> Dict[str, Any]:
        """
        应用积分参数输入

        每个参数独立处理：非数值或不满足SimulationConfig约束的输入
        回退到上一个有效值。None表示不修改。

        Returns:
            应用后的 {arrow_increment, ds, max_iterations}
        """
        requested = {
            'arrow_increment': (arrow_increment, True),
            'ds': (ds, False),
            'max_iterations': (max_iterations, True),
        }

        for name, (raw, integer) in requested.items():
            if raw is None:
                continue

            value = parse_number(raw, integer=integer)
            if value is None:
                logger.warning(f"{name} 输入无效: {raw!r}，保留 {getattr(self.config, name)}")
                continue

            try:
                self.config = self.config.replace(**{name: value})
            except ValueError as e:
                logger.warning(f"{name} 输入被拒绝: {e}，保留 {getattr(self.config, name)}")

        return {
            'arrow_increment': self.config.arrow_increment,
            'ds': self.config.ds,
            'max_iterations': self.config.max_iterations,
        }

    def save(self, charge: RawValue = None, arrow_increment: RawValue = None,
             ds: RawValue = None, max_iterations: RawValue = None) -> Dict[str, Any]:
        """
        "保存" 按钮：一次应用编辑表单的全部输入

        Returns:
            应用后的表单值（无效输入已回退），可直接回填到表单
        """
        values: Dict[str, Any] = {}
        if charge is not None:
            values['charge'] = self.update_editing_charge(charge)
        values.update(self.apply_inputs(arrow_increment=arrow_increment, ds=ds,
                                        max_iterations=max_iterations))
        return values

    # ============================================================================ #
    # 预设与快照
    # ============================================================================ #

    def load_preset(self, name: str) -> None:
        """
        加载内置预设：替换电荷列表和积分参数，选中最后一个电荷

        Raises:
            KeyError: 预设不存在
        """
        from configs import get_preset

        preset = get_preset(name)
        self.charges = [PointCharge.from_dict(c) for c in preset['charges']]
        self.editing_index = len(self.charges) - 1 if self.charges else None
        self.config = self.config.replace(
            arrow_increment=preset['arrow_increment'],
            ds=preset['ds'],
            max_iterations=preset['max_iterations']
        )
        logger.info(f"加载预设 {name}: {len(self.charges)} 个电荷")

    def snapshot(self) -> SceneSnapshot:
        """当前状态的深拷贝，供一个渲染周期使用"""
        return SceneSnapshot(
            charges=tuple(c.copy() for c in self.charges),
            config=self.config,
            editing_index=self.editing_index
        )

    def __len__(self) -> int:
        return len(self.charges)
