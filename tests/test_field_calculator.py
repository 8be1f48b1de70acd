"""
单步位移计算测试

覆盖叠加原理、归一化、终止规则以及零场/重合等退化情况。
"""

import math

import numpy as np
import pytest

from physics.point import PointCharge
from core.data_schema import SimulationConfig
from core.field_calculator import FieldCalculator, compute_step
from core.field_line_tracer import trace


def _step(point, charges, ds=1.0, check_abort=False):
    return compute_step(point, charges, 0.01, ds, check_abort, 10.0)


class TestComputeStep:

    def test_points_away_from_positive_charge(self, single_charge):
        step = _step((100, 0), single_charge)
        assert not step.aborted
        assert step.x == pytest.approx(1.0)
        assert step.y == pytest.approx(0.0)

    def test_points_towards_negative_charge(self):
        step = _step((100, 0), [PointCharge(0, 0, -1)])
        assert step.x == pytest.approx(-1.0)
        assert step.y == pytest.approx(0.0)

    @pytest.mark.parametrize("ds", [0.5, 1.0, 2.5, 10.0])
    def test_step_length_equals_ds(self, ds):
        charges = [PointCharge(0, 0, 1), PointCharge(200, 50, -2), PointCharge(-80, 300, 0.5)]
        step = _step((80, -30), charges, ds=ds)
        assert math.hypot(step.x, step.y) == pytest.approx(ds)

    def test_superposition_direction(self):
        """两个等量正电荷在(0, 100)处的合场沿 +y"""
        charges = [PointCharge(-100, 0, 1), PointCharge(100, 0, 1)]
        step = _step((0, 100), charges)
        assert step.x == pytest.approx(0.0, abs=1e-12)
        assert step.y == pytest.approx(1.0)

    def test_abort_inside_threshold(self, single_charge):
        step = _step((5, 0), single_charge, check_abort=True)
        assert step.aborted
        assert (step.x, step.y) == (0.0, 0.0)

    def test_no_abort_when_check_disabled(self, single_charge):
        step = _step((5, 0), single_charge, check_abort=False)
        assert not step.aborted
        assert step.x == pytest.approx(1.0)

    def test_threshold_is_strict(self, single_charge):
        """恰好等于阈值时不终止"""
        step = _step((10, 0), single_charge, check_abort=True)
        assert not step.aborted

    def test_zero_charge_skipped_for_abort(self):
        charges = [PointCharge(0, 0, 1), PointCharge(102, 0, 0)]
        step = _step((100, 0), charges, check_abort=True)
        assert not step.aborted
        assert step.x == pytest.approx(1.0)

    def test_coincident_charge_aborts(self, single_charge):
        step = _step((0, 0), single_charge, check_abort=False)
        assert step.aborted

    def test_cancelling_field_aborts(self):
        charges = [PointCharge(-50, 0, 1), PointCharge(50, 0, 1)]
        step = _step((0, 0), charges)
        assert step.aborted
        assert (step.x, step.y) == (0.0, 0.0)

    def test_no_active_charges_aborts(self):
        assert _step((0, 0), []).aborted
        assert _step((0, 0), [PointCharge(10, 10, 0)]).aborted

    def test_output_is_finite(self):
        charges = [PointCharge(0, 0, 1e6), PointCharge(1e-3, 0, -1e-6)]
        step = _step((1e-9, 1e-9), charges)
        assert math.isfinite(step.x) and math.isfinite(step.y)


class TestFieldCalculator:

    def test_step_uses_config(self, single_charge):
        calc = FieldCalculator(single_charge, SimulationConfig(ds=3.0))
        step = calc.step((0, 50), check_abort=True)
        assert step.y == pytest.approx(3.0)

    def test_electric_field_values(self, single_charge):
        calc = FieldCalculator(single_charge)
        E = calc.electric_field(np.array([[100, 0], [0, 100], [30, 40]]))
        assert E.shape == (3, 2)
        assert E[0] == pytest.approx([0.01 / 100 ** 2, 0.0])
        assert E[1] == pytest.approx([0.0, 0.01 / 100 ** 2])
        assert E[2] == pytest.approx([0.01 / 2500 * 0.6, 0.01 / 2500 * 0.8])

    def test_electric_field_zero_at_charge(self, single_charge):
        E = FieldCalculator(single_charge).electric_field([0, 0])
        assert np.allclose(E, 0.0)

    def test_direction_matches_step(self):
        charges = [PointCharge(0, 0, 2), PointCharge(150, 80, -1), PointCharge(40, -60, 0)]
        calc = FieldCalculator(charges, SimulationConfig(ds=1.0))
        for point in [(30, 30), (-50, 10), (200, 200)]:
            step = calc.step(point, check_abort=False)
            direction = calc.field_direction(point)
            assert direction == pytest.approx([step.x, step.y])

    def test_reference_line_terminates_at_sink(self):
        """沿偶极子轴线的参照电场线在汇电荷的终止半径处停止"""
        charges = [PointCharge(0, 0, 1), PointCharge(200, 0, -1)]
        calc = FieldCalculator(charges)
        line = calc.reference_line((1, 0), arc_length=300)

        assert np.all(np.isfinite(line))
        assert np.allclose(line[:, 1], 0.0, atol=1e-9)
        assert 180 <= line[-1, 0] <= 190 + 1e-6

    def test_fixed_step_tracer_follows_reference(self, dipole):
        """固定步长追踪与自适应积分的结果基本一致"""
        config = SimulationConfig(ds=0.5)
        calc = FieldCalculator(dipole, config)
        start = (math.cos(math.pi / 3), math.sin(math.pi / 3))

        reference = calc.reference_line(start, arc_length=60, n_points=30)
        path = trace(start[0], start[1], dipole, step_size=0.5,
                     max_iterations=240, arrow_interval=1000)

        for point in reference:
            nearest = np.min(np.hypot(path.points[:, 0] - point[0],
                                      path.points[:, 1] - point[1]))
            assert nearest < 2.0
