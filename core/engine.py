"""
电场线计算引擎

设计目标：
1. 统一渲染入口：规划 → 追踪 → 箭头采样，一次得到渲染层需要的全部数据
2. 同步与后台两种模式：
   - render(): 在调用线程中完成全部计算
   - submit(): 交给单个后台线程，新的请求会取代仍在进行的旧请求，
     保证同一引擎任何时候最多只有一个有效的计算
3. 结果缓存：相同电荷与配置的渲染直接复用
4. 可选并行：各条电场线相互独立，可以用线程池并行追踪

计算成本上界约为 max_iterations × 正电荷数 × 每个电荷的线数。
"""

import hashlib
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence

import numpy as np

from physics.point import PointCharge
from core.arrow_sampler import ArrowSampler
from core.data_schema import FieldLineSet, SimulationConfig, TracedPath
from core.field_line_planner import ChargeFieldPlanner
from core.field_line_tracer import TraceCancelled
from core.scene import SceneSnapshot
from utils.performance import CacheManager, PerformanceMonitor, ProgressTracker

logger = logging.getLogger(__name__)

__all__ = ['RenderResult', 'FieldLineEngine', 'TraceCancelled', 'fingerprint']


@dataclass(frozen=True)
class RenderResult:
    """
    一个渲染周期的计算结果

    字段：
    - charges: 参与计算的电荷（快照）
    - config: 使用的仿真配置
    - line_sets: 每个正电荷的电场线集合
    - elapsed: 计算耗时（秒），缓存命中时为原始计算耗时
    """
    charges: tuple
    config: SimulationConfig
    line_sets: tuple
    elapsed: float

    @property
    def paths(self) -> List[TracedPath]:
        """全部电场线，按电荷顺序展开"""
        return [path for line_set in self.line_sets for path in line_set.paths]

    @property
    def n_lines(self) -> int:
        return sum(len(line_set) for line_set in self.line_sets)

    def arrow_segments(self) -> List[np.ndarray]:
        """每条电场线的箭头线段，与paths一一对应"""
        sampler = ArrowSampler(self.config.arrow_length)
        return [sampler.sample(path) for path in self.paths]


def fingerprint(charges: Sequence[PointCharge], config: SimulationConfig) -> str:
    """电荷与配置的唯一标识，用作缓存键"""
    payload = repr((
        tuple((c.x, c.y, c.q) for c in charges),
        tuple(sorted(config.to_dict().items()))
    ))
    return hashlib.sha1(payload.encode('utf-8')).hexdigest()


def _detach(result: RenderResult) -> RenderResult:
    """复制结果中的电荷；路径与箭头数据只读，直接共享"""
    return replace(
        result,
        charges=tuple(c.copy() for c in result.charges),
        line_sets=tuple(replace(s, charge=s.charge.copy()) for s in result.line_sets)
    )


class FieldLineEngine:
    """
    电场线计算引擎

    Examples:
        >>> engine = FieldLineEngine()
        >>> result = engine.render([PointCharge(0, 0, 1)], SimulationConfig(max_iterations=100))
        >>> result.n_lines
        6
        >>> engine.shutdown()
    """

    def __init__(self, parallel: bool = False, max_workers: int = 4,
                 cache_size: int = 32, cache_ttl: int = 1800,
                 warn_threshold: Optional[float] = None):
        """
        Args:
            parallel: 是否并行追踪各条电场线
            max_workers: 并行线程数
            cache_size: 缓存的渲染结果数量，0表示不缓存
            cache_ttl: 缓存过期时间（秒）
            warn_threshold: 单次渲染耗时警告阈值（秒）
        """
        self.parallel = parallel
        self.max_workers = max_workers
        self.cache = CacheManager(max_size=cache_size, default_ttl=cache_ttl)
        self.monitor = PerformanceMonitor(warn_threshold=warn_threshold)

        self._trace_pool: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="field-line")
            if parallel else None
        )
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="render")

        # 可重入：回调在锁内执行，回调中可以再次submit
        self._lock = threading.RLock()
        self._generation = 0
        self._current_future: Optional[Future] = None
        self._current_cancel: Optional[threading.Event] = None

        logger.info(f"初始化引擎: parallel={parallel}, max_workers={max_workers}, cache_size={cache_size}")

    @classmethod
    def from_config(cls) -> 'FieldLineEngine':
        """按engine配置创建引擎"""
        from configs import get_config

        config = get_config('engine')
        parallel = config.get('parallel', {})
        cache = config.get('cache', {})
        performance = config.get('performance', {})

        return cls(
            parallel=parallel.get('enabled', False),
            max_workers=parallel.get('max_workers', 4),
            cache_size=cache.get('max_size', 32) if cache.get('enabled', True) else 0,
            cache_ttl=cache.get('ttl_seconds', 1800),
            warn_threshold=performance.get('warn_time_threshold')
        )

    # ============================================================================ #
    # 同步计算
    # ============================================================================ #

    def render(self, charges: Sequence[PointCharge],
               config: Optional[SimulationConfig] = None,
               cancel_event: Optional[threading.Event] = None,
               on_progress: Optional[Callable[[ProgressTracker], None]] = None) -> RenderResult:
        """
        在调用线程中完成一次渲染计算

        Args:
            charges: 电荷列表（会被复制，计算过程中不受外部修改影响）
            config: 仿真配置
            cancel_event: 可选取消标志
            on_progress: 可选进度回调，缓存命中时不调用

        Returns:
            RenderResult（追踪数据只读，电荷为调用方独有的副本）

        Raises:
            TraceCancelled: cancel_event被设置
        """
        config = config if config is not None else SimulationConfig()
        snapshot = tuple(c.copy() for c in charges)
        key = fingerprint(snapshot, config)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"缓存命中: {key[:8]}")
            return _detach(cached)

        planner = ChargeFieldPlanner(snapshot, config)
        # 同一引擎可能被多个线程同时调用，计时放在局部变量中
        started = time.perf_counter()
        line_sets: List[FieldLineSet] = planner.trace_all_field_lines(
            executor=self._trace_pool, cancel_event=cancel_event,
            on_progress=on_progress
        )
        elapsed = time.perf_counter() - started
        self.monitor.record('render', elapsed)

        result = RenderResult(
            charges=snapshot,
            config=config,
            line_sets=tuple(line_sets),
            elapsed=elapsed
        )
        self.cache.set(key, result)
        logger.info(f"渲染完成: {result.n_lines} 条电场线, 耗时 {elapsed:.3f}s")
        return _detach(result)

    def render_scene(self, snapshot: SceneSnapshot,
                     cancel_event: Optional[threading.Event] = None,
                     on_progress: Optional[Callable[[ProgressTracker], None]] = None) -> RenderResult:
        """按场景快照渲染"""
        return self.render(snapshot.charges, snapshot.config, cancel_event, on_progress)

    # ============================================================================ #
    # 后台计算
    # ============================================================================ #

    def submit(self, charges: Sequence[PointCharge],
               config: Optional[SimulationConfig] = None,
               callback: Optional[Callable[[RenderResult], None]] = None) -> Future:
        """
        提交后台渲染请求

        新请求会取消仍在排队或计算中的旧请求：旧请求的Future被取消，
        或以TraceCancelled结束。callback只在该请求仍是最新请求且成功时调用。

        Args:
            charges: 电荷列表（提交时复制）
            config: 仿真配置
            callback: 完成回调，在后台线程中调用

        Returns:
            concurrent.futures.Future，结果为RenderResult
        """
        snapshot = tuple(c.copy() for c in charges)
        cancel_event = threading.Event()

        with self._lock:
            if self._current_cancel is not None:
                self._current_cancel.set()
            if self._current_future is not None:
                self._current_future.cancel()

            self._generation += 1
            generation = self._generation
            future = self._worker.submit(self.render, snapshot, config, cancel_event)
            self._current_future = future
            self._current_cancel = cancel_event

        logger.debug(f"提交渲染请求 #{generation}")

        def _on_done(done: Future) -> None:
            if done.cancelled():
                logger.debug(f"渲染请求 #{generation} 已被取代（未开始）")
                return
            error = done.exception()
            if isinstance(error, TraceCancelled):
                logger.debug(f"渲染请求 #{generation} 已被取代（中途取消）")
                return
            if error is not None:
                logger.error(f"渲染请求 #{generation} 失败: {error}")
                return
            if callback is None:
                return
            # 判断与调用在同一把锁内，期间不会有新的请求插入
            with self._lock:
                if generation == self._generation:
                    callback(done.result())

        future.add_done_callback(_on_done)
        return future

    def is_current(self, generation: int) -> bool:
        """generation是否仍是最新的请求"""
        with self._lock:
            return generation == self._generation

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def shutdown(self, wait: bool = True) -> None:
        """取消进行中的请求并关闭线程池"""
        with self._lock:
            if self._current_cancel is not None:
                self._current_cancel.set()
        self._worker.shutdown(wait=wait)
        if self._trace_pool is not None:
            self._trace_pool.shutdown(wait=wait)
        logger.debug("引擎已关闭")

    def __enter__(self) -> 'FieldLineEngine':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
