# physics/point.py
from typing import Any, Dict, Tuple


class PointCharge:
    """
    2D点电荷模型

    位置一经放置不可修改（画布上同一位置不允许重复放置），
    电荷量可以原地修改，可以为正、负或零：
        - 正电荷（源）：电场线的起点
        - 负电荷（汇）：电场线的终点
        - 零电荷：只作为标记显示，不产生作用力
    """

    __slots__ = ('_x', '_y', 'q')

    def __init__(self, x: float, y: float, q: float = 1.0):
        """
        初始化点电荷

        Args:
            x, y: 画布坐标（像素）
            q: 电荷量（无量纲单位）
        """
        self._x = float(x)
        self._y = float(y)
        self.q = float(q)

    @property
    def x(self) -> float:
        return self._x

    @property
    def y(self) -> float:
        return self._y

    @property
    def position(self) -> Tuple[float, float]:
        return self._x, self._y

    @property
    def is_source(self) -> bool:
        return self.q > 0

    @property
    def is_sink(self) -> bool:
        return self.q < 0

    @property
    def is_neutral(self) -> bool:
        return self.q == 0

    def copy(self) -> 'PointCharge':
        return PointCharge(self._x, self._y, self.q)

    def to_dict(self) -> Dict[str, float]:
        """序列化为预设文件使用的字典格式 {x, y, charge}"""
        return {'x': self._x, 'y': self._y, 'charge': self.q}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PointCharge':
        """
        从字典创建点电荷

        Raises:
            KeyError: 缺少x或y
            ValueError: 数值无法转换为浮点数
        """
        return cls(data['x'], data['y'], data.get('charge', 1.0))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PointCharge):
            return NotImplemented
        return self.position == other.position and self.q == other.q

    def __repr__(self) -> str:
        return f"PointCharge(x={self._x:g}, y={self._y:g}, q={self.q:g})"
