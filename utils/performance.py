# utils/performance.py
"""
性能监控和缓存管理模块

提供渲染耗时跟踪、追踪结果缓存和长任务进度显示。
"""

import time
import logging
import threading
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """
    性能监控器

    按名称记录多次耗时，给出平均/最短/最长耗时。
    线程安全：后台渲染线程与界面线程可以共用一个实例。
    """

    def __init__(self, warn_threshold: Optional[float] = None):
        """
        Args:
            warn_threshold: 单次耗时超过该秒数时记录警告，None表示不警告
        """
        self.warn_threshold = warn_threshold
        self.metrics: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def record(self, name: str, elapsed: float) -> None:
        """记录一次耗时（秒）"""
        with self._lock:
            entry = self.metrics.setdefault(name, {'times': [], 'count': 0})
            entry['times'].append(elapsed)
            entry['count'] += 1

        if self.warn_threshold is not None and elapsed > self.warn_threshold:
            logger.warning(f"{name} 耗时 {elapsed:.2f}s，超过阈值 {self.warn_threshold:.2f}s")

    def get_performance_summary(self) -> Dict[str, Any]:
        """性能统计摘要 {名称: {avg_time, min_time, max_time, count}}"""
        summary = {}

        with self._lock:
            for name, data in self.metrics.items():
                summary[name] = {
                    'avg_time': sum(data['times']) / len(data['times']),
                    'min_time': min(data['times']),
                    'max_time': max(data['times']),
                    'count': data['count']
                }

        return summary


class CacheManager:
    """
    缓存管理器

    提供内存缓存功能，支持过期时间和大小限制。
    """

    def __init__(self, max_size: int = 100, default_ttl: int = 3600):
        """
        Args:
            max_size: 最大缓存项数量
            default_ttl: 默认过期时间（秒），<=0表示永不过期
        """
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    def _is_expired(self, entry: Dict[str, Any]) -> bool:
        if 'expires_at' in entry:
            return time.monotonic() > entry['expires_at']
        return False

    def _cleanup_expired(self) -> None:
        expired_keys = [k for k, v in self.cache.items() if self._is_expired(v)]
        for key in expired_keys:
            del self.cache[key]

    def _ensure_capacity(self) -> None:
        # 删除最早写入的项
        while self.cache and len(self.cache) >= self.max_size:
            oldest_key = min(self.cache.keys(), key=lambda k: self.cache[k]['created_at'])
            del self.cache[oldest_key]

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        设置缓存项

        Args:
            key: 缓存键
            value: 缓存值
            ttl: 过期时间（秒），None表示使用默认值
        """
        if self.max_size <= 0:
            return

        with self._lock:
            self._cleanup_expired()
            self.cache.pop(key, None)
            self._ensure_capacity()

            now = time.monotonic()
            entry = {'value': value, 'created_at': now}

            ttl = self.default_ttl if ttl is None else ttl
            if ttl > 0:
                entry['expires_at'] = now + ttl

            self.cache[key] = entry

    def get(self, key: str) -> Optional[Any]:
        """获取缓存项，不存在或已过期返回None"""
        with self._lock:
            entry = self.cache.get(key)
            if entry is None or self._is_expired(entry):
                self.cache.pop(key, None)
                self.misses += 1
                return None

            self.hits += 1
            return entry['value']

    def clear(self) -> None:
        """清空缓存"""
        with self._lock:
            self.cache.clear()
            self.hits = 0
            self.misses = 0

    def get_stats(self) -> Dict[str, Any]:
        """缓存统计信息"""
        total = self.hits + self.misses
        hit_rate = self.hits / total if total > 0 else 0

        return {
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': hit_rate,
            'size': len(self.cache),
            'max_size': self.max_size
        }


class ProgressTracker:
    """
    进度跟踪器

    用于跟踪长时间运行任务（如大量电场线追踪）的进度。
    """

    def __init__(self, total_steps: int = 100, description: str = "Processing"):
        self.total_steps = total_steps
        self.current_step = 0
        self.description = description
        self.start_time = time.perf_counter()

    def update(self, steps: int = 1) -> None:
        """更新进度"""
        self.current_step = min(self.current_step + steps, self.total_steps)

    def get_progress(self) -> float:
        """当前进度百分比（0-100）"""
        if self.total_steps <= 0:
            return 100.0
        return (self.current_step / self.total_steps) * 100

    def get_estimated_time_remaining(self) -> float:
        """估计剩余时间（秒）"""
        if self.current_step == 0:
            return 0.0

        elapsed = time.perf_counter() - self.start_time
        rate = self.current_step / elapsed if elapsed > 0 else 0.0
        remaining_steps = self.total_steps - self.current_step

        return remaining_steps / rate if rate > 0 else 0.0

    def __str__(self) -> str:
        progress = self.get_progress()
        eta = self.get_estimated_time_remaining()

        return f"{self.description}: {progress:.1f}% - ETA: {eta:.1f}s"
