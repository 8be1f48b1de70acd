"""
计算引擎测试：同步渲染、结果缓存、后台请求取代
"""

import threading

import numpy as np
import pytest

from physics.point import PointCharge
from core.data_schema import SimulationConfig
from core.engine import FieldLineEngine, RenderResult, TraceCancelled, fingerprint
from core.scene import ChargeScene


@pytest.fixture
def engine():
    engine = FieldLineEngine()
    yield engine
    engine.shutdown()


class TestRender:

    def test_render_result(self, engine, dipole, short_config):
        result = engine.render(dipole, short_config)

        assert isinstance(result, RenderResult)
        assert result.n_lines == 6
        assert len(result.paths) == 6
        assert result.config == short_config
        assert result.elapsed >= 0

        arrows = result.arrow_segments()
        assert len(arrows) == 6
        for path, segments in zip(result.paths, arrows):
            assert segments.shape == (2 * len(path.arrows), 2, 2)

    def test_charges_snapshotted(self, engine, dipole, short_config):
        result = engine.render(dipole, short_config)
        dipole[0].q = 5
        assert result.charges[0].q == 1.0
        assert result.charges[0] is not dipole[0]

    def test_render_scene(self, engine):
        scene = ChargeScene(config=SimulationConfig(max_iterations=100))
        scene.place_charge(351, 301, q=2)
        result = engine.render_scene(scene.snapshot())
        assert result.n_lines == 12

    def test_empty_scene(self, engine):
        result = engine.render([], SimulationConfig(max_iterations=10))
        assert result.n_lines == 0
        assert result.paths == []

    def test_performance_recorded(self, engine, single_charge, short_config):
        engine.render(single_charge, short_config)
        summary = engine.monitor.get_performance_summary()
        assert summary['render']['count'] == 1

    def test_parallel_engine(self, dipole, short_config):
        with FieldLineEngine(parallel=True, max_workers=3, cache_size=0) as parallel:
            result = parallel.render(dipole, short_config)
        sequential = FieldLineEngine(cache_size=0)
        try:
            expected = sequential.render(dipole, short_config)
        finally:
            sequential.shutdown()

        for a, b in zip(result.paths, expected.paths):
            assert np.array_equal(a.points, b.points)

    def test_from_config(self, monkeypatch):
        monkeypatch.setenv('FIELD_LINES_ENGINE__CACHE__ENABLED', 'false')
        engine = FieldLineEngine.from_config()
        try:
            assert engine.cache.max_size == 0
            assert engine.parallel is False
        finally:
            engine.shutdown()


class TestCache:

    def test_cache_hit(self, engine, dipole, short_config):
        first = engine.render(dipole, short_config)
        second = engine.render(dipole, short_config)
        assert engine.cache.get_stats()['hits'] == 1
        # 追踪数据共享，电荷各自独立
        assert second.line_sets[0].paths is first.line_sets[0].paths
        assert second.charges[0] is not first.charges[0]

    def test_cache_key_changes(self, engine, dipole, short_config):
        first = engine.render(dipole, short_config)
        dipole[1].q = -2
        assert engine.render(dipole, short_config) is not first
        assert engine.render(dipole, short_config.replace(ds=2.0)) is not first

    def test_cache_disabled(self, dipole, short_config):
        with FieldLineEngine(cache_size=0) as engine:
            first = engine.render(dipole, short_config)
            second = engine.render(dipole, short_config)
            assert second.line_sets[0].paths is not first.line_sets[0].paths
            assert engine.cache.get_stats()['size'] == 0

    def test_fingerprint(self, dipole, short_config):
        key = fingerprint(dipole, short_config)
        assert key == fingerprint([c.copy() for c in dipole], short_config)
        assert key != fingerprint(dipole[:1], short_config)
        assert key != fingerprint(dipole, short_config.replace(arrow_increment=51))


class TestSubmit:

    def test_submit_and_callback(self, engine, dipole, short_config):
        done = threading.Event()
        received = []

        def callback(result):
            received.append(result)
            done.set()

        future = engine.submit(dipole, short_config, callback=callback)
        result = future.result(timeout=30)

        assert done.wait(timeout=30)
        assert received == [result]
        assert engine.is_current(engine.generation)

    def test_new_request_supersedes_old(self, engine, single_charge, short_config):
        """旧请求被取消，只有最新请求触发回调"""
        done = threading.Event()
        received = []

        def callback(tag):
            def _callback(result):
                received.append(tag)
                done.set()
            return _callback

        slow = SimulationConfig(max_iterations=10_000_000)
        first = engine.submit(single_charge, slow, callback=callback('first'))
        second = engine.submit(single_charge, short_config, callback=callback('second'))

        result = second.result(timeout=30)
        assert result.n_lines == 6
        assert first.cancelled() or isinstance(first.exception(timeout=30), TraceCancelled)

        assert done.wait(timeout=30)
        assert received == ['second']
        assert engine.generation == 2

    def test_stale_generation(self, engine):
        engine.submit([], SimulationConfig(max_iterations=1)).result(timeout=30)
        stale = engine.generation
        engine.submit([], SimulationConfig(max_iterations=1)).result(timeout=30)
        assert not engine.is_current(stale)

    def test_submit_snapshots_charges(self, engine, short_config):
        charges = [PointCharge(0, 0, 1)]
        future = engine.submit(charges, short_config)
        charges[0].q = 3
        assert future.result(timeout=30).n_lines == 6

    def test_render_cancel_event(self, engine, single_charge, short_config):
        event = threading.Event()
        event.set()
        with pytest.raises(TraceCancelled):
            engine.render(single_charge, short_config, cancel_event=event)

    def test_callback_can_resubmit(self, engine, single_charge, short_config):
        """回调在引擎锁内执行，回调中再次提交不会死锁"""
        done = threading.Event()
        followups = []

        def callback(result):
            followups.append(engine.submit(single_charge, short_config.replace(ds=2.0)))
            done.set()

        engine.submit(single_charge, short_config, callback=callback).result(timeout=30)
        assert done.wait(timeout=30)
        assert followups[0].result(timeout=30).n_lines == 6
        assert engine.generation == 2


class TestSharedResults:
    """同一引擎的缓存结果会交给多个调用方，调用方之间互不影响"""

    def test_line_sets_immutable(self, engine, single_charge, short_config):
        first = engine.render(single_charge, short_config)
        with pytest.raises(AttributeError):
            first.line_sets[0].paths.clear()

        second = engine.render(single_charge, short_config)
        assert second.n_lines == 6

    def test_points_read_only(self, engine, single_charge, short_config):
        first = engine.render(single_charge, short_config)
        with pytest.raises(ValueError):
            first.paths[0].points[0, 0] = 999.0
        with pytest.raises(ValueError):
            first.paths[0].segments()[0, 0, 0] = 999.0

        second = engine.render(single_charge, short_config)
        assert second.paths[0].points[0, 0] != 999.0

    def test_charge_edits_stay_local(self, engine, dipole, short_config):
        first = engine.render(dipole, short_config)
        first.charges[0].q = 42
        first.line_sets[0].charge.q = 42

        second = engine.render(dipole, short_config)
        assert second.charges[0].q == 1.0
        assert second.line_sets[0].charge.q == 1.0


class TestProgress:

    def test_progress_reported_per_line(self, engine, single_charge, short_config):
        reported = []
        engine.render(single_charge, short_config,
                      on_progress=lambda tracker: reported.append(tracker.current_step))
        assert reported == [1, 2, 3, 4, 5, 6]

    def test_progress_parallel(self, dipole, short_config):
        reported = []
        with FieldLineEngine(parallel=True, max_workers=3, cache_size=0) as parallel:
            parallel.render(dipole, short_config,
                            on_progress=lambda tracker: reported.append(tracker.get_progress()))
        assert len(reported) == 6
        assert reported[-1] == pytest.approx(100.0)

    def test_cache_hit_skips_progress(self, engine, single_charge, short_config):
        engine.render(single_charge, short_config)
        reported = []
        engine.render(single_charge, short_config, on_progress=reported.append)
        assert reported == []
