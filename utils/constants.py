# utils/constants.py
"""
电场线可视化常数定义模块

本项目是定性可视化而非物理求解器，所有量均使用画布像素单位，
库仑常数取1（已被测试电荷量吸收）。
这里的数值是各配置项的出厂默认值，configs/physics.yaml 和 configs/ui.yaml
可以覆盖它们。
"""

from math import pi

# 测试电荷量 q₁
# 只影响原始场强的数量级，归一化后不改变方向
TEST_CHARGE: float = 0.01

# 终止阈值（像素）
# 追踪点到任一非零电荷的距离小于该值时视为已到达该电荷
ABORT_THRESHOLD: float = 10.0

# 每单位电荷发出的电场线数量
LINES_PER_UNIT_CHARGE: int = 6

# 箭头两翼长度（像素）
ARROW_LENGTH: float = 20.0

# 箭头两翼相对电场反方向的张角
ARROW_SPREAD: float = pi / 4

# 起始点所在圆的半径（像素）
SEED_RADIUS: float = 1.0

# 默认积分参数
DEFAULT_STEP_SIZE: float = 1.0
DEFAULT_MAX_ITERATIONS: int = 10000
DEFAULT_ARROW_INCREMENT: int = 200

# 网格与电荷外观（像素）
GRIDLINE_SPACING: int = 50
GRIDLINE_THICKNESS: int = 2
CHARGE_RADIUS: float = 10.0

# 编辑表单允许的最大电荷量绝对值（电场线数量随电荷量线性增长）
MAX_CHARGE_MAGNITUDE: float = 100.0

# ==================== 导出控制 ====================
__all__ = [
    'TEST_CHARGE',
    'ABORT_THRESHOLD',
    'LINES_PER_UNIT_CHARGE',
    'ARROW_LENGTH',
    'ARROW_SPREAD',
    'SEED_RADIUS',
    'DEFAULT_STEP_SIZE',
    'DEFAULT_MAX_ITERATIONS',
    'DEFAULT_ARROW_INCREMENT',
    'GRIDLINE_SPACING',
    'GRIDLINE_THICKNESS',
    'CHARGE_RADIUS',
    'MAX_CHARGE_MAGNITUDE',
]
