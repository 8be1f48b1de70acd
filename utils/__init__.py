# utils/__init__.py
"""
实用工具模块

包含常数、几何计算、性能监控与缓存管理。
"""

from .performance import (
    PerformanceMonitor,
    CacheManager,
    ProgressTracker
)

__all__ = [
    'PerformanceMonitor',
    'CacheManager',
    'ProgressTracker'
]
