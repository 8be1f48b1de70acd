"""
电场线追踪测试

验证迭代状态机：每次迭代两个点、箭头间隔、起始阶段不终止、
到达汇电荷时终止以及取消标志。
"""

import threading

import numpy as np
import pytest

from physics.point import PointCharge
from core.data_schema import SimulationConfig
from core.field_line_tracer import FieldLineTracer, TraceCancelled, trace


class TestTrace:

    def test_two_points_per_iteration(self, single_charge):
        path = trace(1, 0, single_charge, step_size=1.0, max_iterations=50, arrow_interval=10)

        assert path.iterations == 50
        assert path.points.shape == (100, 2)
        assert not path.aborted
        assert tuple(path.points[0]) == (1.0, 0.0)
        assert path.points[1] == pytest.approx([2.0, 0.0])
        assert path.end_point == pytest.approx((51.0, 0.0))

    def test_segments_are_contiguous(self, dipole):
        path = trace(0.5, 0.8660254, dipole, step_size=1.0, max_iterations=300, arrow_interval=50)
        post = path.points[1::2][:-1]
        pre = path.points[2::2]
        assert np.allclose(post, pre)
        assert path.segments().shape == (path.iterations, 2, 2)

    def test_points_read_only(self, single_charge):
        path = trace(1, 0, single_charge, step_size=1.0, max_iterations=10, arrow_interval=5)
        assert not path.points.flags.writeable
        with pytest.raises(ValueError):
            path.points[0] = (0.0, 0.0)

    def test_arrow_positions(self, single_charge):
        """箭头在 i ≠ 0 且为间隔倍数的迭代记录，位置为步后点"""
        path = trace(1, 0, single_charge, step_size=1.0, max_iterations=50, arrow_interval=10)

        assert [a.iteration for a in path.arrows] == [10, 20, 30, 40]
        first = path.arrows[0]
        assert first.position == pytest.approx((12.0, 0.0))
        assert (first.dx, first.dy) == pytest.approx((1.0, 0.0))

    def test_no_arrow_at_iteration_zero(self, single_charge):
        path = trace(1, 0, single_charge, step_size=1.0, max_iterations=1, arrow_interval=1)
        assert path.iterations == 1
        assert path.arrows == ()

    def test_interval_longer_than_path(self, single_charge):
        path = trace(1, 0, single_charge, step_size=1.0, max_iterations=20, arrow_interval=200)
        assert path.arrows == ()

    def test_zero_iterations(self, single_charge):
        path = trace(1, 0, single_charge, step_size=1.0, max_iterations=0, arrow_interval=10)
        assert path.iterations == 0
        assert len(path) == 0
        assert path.end_point == (1.0, 0.0)

    def test_no_abort_while_near_seed(self, single_charge):
        """起始点紧贴源电荷，前几步不应终止"""
        path = trace(1, 0, single_charge, step_size=1.0, max_iterations=5, arrow_interval=10)
        assert path.iterations == 5
        assert not path.aborted

    def test_absorbed_by_sink(self, dipole):
        path = trace(1, 0, dipole, step_size=1.0, max_iterations=10000, arrow_interval=200)

        assert path.aborted
        # 第一次进入汇电荷10像素范围内的位置是x=91
        assert path.iterations == 90
        assert path.end_point == pytest.approx((91.0, 0.0))

    def test_iterations_bounded(self, dipole):
        path = trace(-1, 0, dipole, step_size=1.0, max_iterations=300, arrow_interval=100)
        assert path.iterations <= 300
        assert len(path.points) == 2 * path.iterations

    def test_points_finite(self):
        charges = [PointCharge(0, 0, 1), PointCharge(60, 0, -1), PointCharge(30, 40, 2)]
        path = trace(0.5, -0.8660254, charges, step_size=1.0, max_iterations=2000, arrow_interval=100)
        assert np.all(np.isfinite(path.points))

    def test_cancel_event(self, single_charge):
        event = threading.Event()
        event.set()
        with pytest.raises(TraceCancelled):
            trace(1, 0, single_charge, step_size=1.0, max_iterations=10, arrow_interval=5,
                  cancel_event=event)

    def test_unset_cancel_event(self, single_charge):
        path = trace(1, 0, single_charge, step_size=1.0, max_iterations=10, arrow_interval=5,
                     cancel_event=threading.Event())
        assert path.iterations == 10

    def test_charges_not_mutated(self, dipole):
        before = [(c.x, c.y, c.q) for c in dipole]
        trace(1, 0, dipole, step_size=1.0, max_iterations=500, arrow_interval=100)
        assert [(c.x, c.y, c.q) for c in dipole] == before


class TestFieldLineTracer:

    def test_uses_config(self, single_charge):
        tracer = FieldLineTracer(single_charge,
                                 SimulationConfig(ds=2.0, max_iterations=10, arrow_increment=3))
        path = tracer.trace(1, 0)

        lengths = np.linalg.norm(path.segments()[:, 1] - path.segments()[:, 0], axis=1)
        assert np.allclose(lengths, 2.0)
        assert [a.iteration for a in path.arrows] == [3, 6, 9]
        assert path.seed == (1.0, 0.0)
