"""
物理模型包
包含2D点电荷模型
"""

from .point import PointCharge

__all__ = [
    'PointCharge'
]
