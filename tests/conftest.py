"""
测试公共夹具

- matplotlib 使用无界面后端
- 每个测试前后清空配置缓存，并屏蔽用户目录下的配置文件和环境变量覆盖
"""

import os

import matplotlib
matplotlib.use('Agg')

import pytest

import configs
from physics.point import PointCharge
from core.data_schema import SimulationConfig


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """隔离配置：不读取真实用户配置，不受外部环境变量影响"""
    monkeypatch.setattr(configs, '_USER_CONFIG_DIR', tmp_path / '.field_lines')
    monkeypatch.setattr(configs, '_USER_CONFIG_FILE', tmp_path / '.field_lines' / 'config.yaml')
    for key in list(os.environ):
        if key.startswith(configs.ENV_PREFIX):
            monkeypatch.delenv(key)

    configs.clear_config_cache()
    yield
    configs.clear_config_cache()


@pytest.fixture
def single_charge():
    """原点处的单位正电荷"""
    return [PointCharge(0, 0, 1)]


@pytest.fixture
def dipole():
    """等量异号电荷，间距100"""
    return [PointCharge(0, 0, 1), PointCharge(100, 0, -1)]


@pytest.fixture
def short_config():
    """迭代次数较少的配置，保证测试快速"""
    return SimulationConfig(ds=1.0, max_iterations=200, arrow_increment=50)
