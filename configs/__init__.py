# configs/__init__.py
"""
配置加载系统

提供类型安全的配置访问，支持用户自定义配置和环境变量覆盖。

配置类型：
    - physics: 积分参数与物理常数
    - ui: 画布、网格与绘图样式
    - engine: 并行、缓存与性能阈值
另有 presets.yaml 保存内置的电荷预设（数据而非代码）。

优先级（从低到高）：默认YAML文件 → 用户配置 → 环境变量
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Union, List
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# 配置存储
_CONFIG_CACHE: Dict[str, Dict[str, Any]] = {}
_PRESET_CACHE: Dict[str, Dict[str, Any]] = {}

# 配置文件路径
_CONFIG_DIR = Path(__file__).parent
_CONFIG_FILES = {
    'physics': _CONFIG_DIR / 'physics.yaml',
    'ui': _CONFIG_DIR / 'ui.yaml',
    'engine': _CONFIG_DIR / 'engine.yaml'
}
_PRESETS_FILE = _CONFIG_DIR / 'presets.yaml'

# 用户配置目录
_USER_CONFIG_DIR = Path.home() / '.field_lines'
_USER_CONFIG_FILE = _USER_CONFIG_DIR / 'config.yaml'

# 环境变量：FIELD_LINES_{TYPE}__{SECTION}__{KEY}=value
ENV_PREFIX = 'FIELD_LINES_'
ENV_SEPARATOR = '__'


@dataclass
class ConfigSource:
    """配置源信息"""
    name: str
    path: Path
    exists: bool
    type: str = "file"


class ConfigValidationError(Exception):
    """配置验证异常"""
    pass


def load_yaml_config(file_path: Path) -> Dict[str, Any]:
    """
    加载YAML配置文件

    Args:
        file_path: YAML文件路径

    Returns:
        配置字典

    Raises:
        FileNotFoundError: 文件不存在
        yaml.YAMLError: YAML格式错误
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)

        if config is None:
            logger.warning(f"配置文件为空: {file_path}")
            return {}

        logger.debug(f"配置已加载: {file_path.name}")
        return config

    except FileNotFoundError:
        logger.error(f"配置文件未找到: {file_path}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"YAML解析错误: {file_path} - {e}")
        raise


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    递归合并配置字典

    用override中的值覆盖base中的值，保留未覆盖的项

    Args:
        base: 基础配置
        override: 覆盖配置

    Returns:
        合并后的配置（新字典，不修改输入）
    """
    merged = base.copy()

    for key, value in override.items():
        if (key in merged and
                isinstance(merged[key], dict) and
                isinstance(value, dict)):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def _load_default_config(config_type: str) -> Dict[str, Any]:
    """加载默认配置，文件缺失时使用内嵌默认值"""
    config_path = _CONFIG_FILES[config_type]
    if config_path.exists():
        return load_yaml_config(config_path)

    logger.warning(f"默认配置缺失: {config_path.name}，使用内嵌默认值")
    return yaml.safe_load(_DEFAULT_CONFIGS[config_type]) or {}


def get_config(config_type: str, reload: bool = False) -> Dict[str, Any]:
    """
    获取指定类型的配置

    Args:
        config_type: 配置类型 ('physics', 'ui', 'engine')
        reload: 是否强制重新加载（跳过缓存）

    Returns:
        配置字典

    Raises:
        ValueError: 配置类型不支持
        ConfigValidationError: 配置内容无效
    """
    if config_type not in _CONFIG_FILES:
        raise ValueError(
            f"不支持的配置类型: {config_type}. "
            f"可选类型: {list(_CONFIG_FILES.keys())}"
        )

    if not reload and config_type in _CONFIG_CACHE:
        return _CONFIG_CACHE[config_type]

    config = _load_default_config(config_type)

    # 合并用户自定义配置（如果存在）
    if _USER_CONFIG_FILE.exists():
        try:
            user_config_all = load_yaml_config(_USER_CONFIG_FILE)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"用户配置加载失败: {e}")
        else:
            user_config = user_config_all.get(config_type, {})
            if user_config:
                config = merge_configs(config, user_config)
                logger.info(f"合并用户配置: {config_type}")

    # 应用环境变量覆盖（最高优先级）
    config = _apply_environment_overrides(config_type, config)

    _validate_configuration(config_type, config)

    _CONFIG_CACHE[config_type] = config

    return config


def _apply_environment_overrides(config_type: str, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    应用环境变量覆盖

    环境变量命名规则（双下划线分隔嵌套层级，键名本身可含单下划线）：
    - FIELD_LINES_{TYPE}__{SECTION}__{KEY}=value

    例如：
    - FIELD_LINES_PHYSICS__TRACING__MAX_ITERATIONS=5000
    - FIELD_LINES_UI__RENDERING__BACKEND=plotly
    """
    prefix = f"{ENV_PREFIX}{config_type.upper()}{ENV_SEPARATOR}"
    overrides: Dict[str, Any] = {}

    for env_key, env_value in os.environ.items():
        if not env_key.startswith(prefix):
            continue

        key_parts = [p for p in env_key[len(prefix):].lower().split(ENV_SEPARATOR) if p]
        if not key_parts:
            continue

        current = overrides
        for part in key_parts[:-1]:
            current = current.setdefault(part, {})

        current[key_parts[-1]] = _parse_environment_value(env_value)

    if overrides:
        config = merge_configs(config, overrides)
        logger.info(f"应用环境变量覆盖: {config_type}")

    return config


def _parse_environment_value(value: str) -> Union[str, float, int, bool]:
    """
    转换环境变量字符串到适当类型

    优先级：
    1. bool (true/false/yes/no)
    2. int (纯数字)
    3. float (科学计数法或小数)
    4. str (原始字符串)
    """
    value_lower = value.lower().strip()

    if value_lower in ('true', 'yes'):
        return True
    if value_lower in ('false', 'no'):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_configuration(config_type: str, config: Dict[str, Any]) -> None:
    """根据配置类型执行不同的验证规则"""
    validators = {
        'physics': _validate_physics_config,
        'ui': _validate_interface_config,
        'engine': _validate_engine_config
    }

    if validator := validators.get(config_type):
        validator(config)


def _validate_physics_config(config: Dict[str, Any]) -> None:
    """
    验证物理配置

    检查：
    - 积分参数：ds为正数，max_iterations为非负整数，arrow_increment为正整数
    - 常数：test_charge非零，其余为非负数
    """
    tracing = config.get('tracing', {})
    constants = config.get('constants', {})

    for name in ('ds', 'max_iterations', 'arrow_increment'):
        if name not in tracing:
            raise ConfigValidationError(f"缺少必需积分参数: tracing.{name}")
        if not _is_number(tracing[name]):
            raise ConfigValidationError(f"积分参数必须为数值: tracing.{name} = {tracing[name]!r}")

    if tracing['ds'] <= 0:
        raise ConfigValidationError(f"步长必须为正数: ds = {tracing['ds']}")
    if not isinstance(tracing['max_iterations'], int) or tracing['max_iterations'] < 0:
        raise ConfigValidationError(
            f"max_iterations必须为非负整数: {tracing['max_iterations']}"
        )
    if not isinstance(tracing['arrow_increment'], int) or tracing['arrow_increment'] <= 0:
        raise ConfigValidationError(
            f"arrow_increment必须为正整数: {tracing['arrow_increment']}"
        )

    required_constants = ['test_charge', 'abort_threshold', 'lines_per_unit_charge', 'arrow_length']
    for const_name in required_constants:
        if const_name not in constants:
            raise ConfigValidationError(f"缺少必需常数: {const_name}")

        value = constants[const_name]
        if not _is_number(value):
            raise ConfigValidationError(f"常数必须为数值: {const_name} = {value!r}")
        if const_name == 'test_charge':
            if value == 0:
                raise ConfigValidationError("测试电荷量不能为零")
        elif value < 0:
            raise ConfigValidationError(f"常数不能为负数: {const_name} = {value}")


def _validate_interface_config(config: Dict[str, Any]) -> None:
    """
    验证界面配置

    检查：
    - 画布尺寸与网格间距为正数
    - 绘图后端受支持
    """
    canvas = config.get('canvas', {})
    rendering = config.get('rendering', {})

    for name in ('width', 'height', 'grid_spacing'):
        value = canvas.get(name)
        if value is not None and (not _is_number(value) or value <= 0):
            raise ConfigValidationError(f"canvas.{name}无效: {value!r} (应为正数)")

    backend = rendering.get('backend', 'matplotlib')
    supported_backends = ['matplotlib', 'plotly']
    if backend not in supported_backends:
        raise ConfigValidationError(
            f"不支持的后端: {backend}. 可选: {supported_backends}"
        )


def _validate_engine_config(config: Dict[str, Any]) -> None:
    """
    验证引擎配置

    检查：
    - 并行线程数为正整数
    - 缓存大小非负
    """
    parallel = config.get('parallel', {})
    max_workers = parallel.get('max_workers', 1)
    if not isinstance(max_workers, int) or isinstance(max_workers, bool) or max_workers < 1:
        raise ConfigValidationError(f"max_workers无效: {max_workers!r} (应 >= 1)")

    cache = config.get('cache', {})
    max_size = cache.get('max_size', 0)
    if not isinstance(max_size, int) or isinstance(max_size, bool) or max_size < 0:
        raise ConfigValidationError(f"cache.max_size无效: {max_size!r} (应 >= 0)")


# ============================================================================ #
# 电荷预设
# ============================================================================ #

def get_presets(reload: bool = False) -> Dict[str, Dict[str, Any]]:
    """
    获取全部内置预设

    Returns:
        {名称: {title, charges: [{x, y, charge}], arrow_increment, ds, max_iterations}}

    Raises:
        ConfigValidationError: 预设内容无效
    """
    if _PRESET_CACHE and not reload:
        return _PRESET_CACHE

    if _PRESETS_FILE.exists():
        data = load_yaml_config(_PRESETS_FILE)
    else:
        logger.warning(f"预设文件缺失: {_PRESETS_FILE.name}，使用内嵌默认值")
        data = yaml.safe_load(_DEFAULT_PRESETS)

    presets = data.get('presets', {})
    for name, preset in presets.items():
        _validate_preset(name, preset)

    _PRESET_CACHE.clear()
    _PRESET_CACHE.update(presets)
    return _PRESET_CACHE


def get_preset(name: str) -> Dict[str, Any]:
    """
    按名称获取预设

    Raises:
        KeyError: 预设不存在
    """
    presets = get_presets()
    if name not in presets:
        raise KeyError(f"未知预设: {name}. 可选: {list(presets.keys())}")
    return presets[name]


def _validate_preset(name: str, preset: Dict[str, Any]) -> None:
    charges = preset.get('charges')
    if not isinstance(charges, list):
        raise ConfigValidationError(f"预设 {name} 缺少电荷列表")

    for charge in charges:
        if not all(_is_number(charge.get(k)) for k in ('x', 'y', 'charge')):
            raise ConfigValidationError(f"预设 {name} 的电荷格式无效: {charge}")

    for key in ('arrow_increment', 'ds', 'max_iterations'):
        if not _is_number(preset.get(key)):
            raise ConfigValidationError(f"预设 {name} 缺少参数: {key}")


# ============================================================================ #
# 用户配置与访问工具
# ============================================================================ #

def create_user_config() -> None:
    """
    创建默认用户配置文件

    在用户目录生成初始配置模板
    """
    _USER_CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    if _USER_CONFIG_FILE.exists():
        logger.info(f"用户配置已存在: {_USER_CONFIG_FILE}")
        return

    user_template = {
        'physics': {
            'tracing': {
                'ds': 1,
                'max_iterations': 10000,
                'arrow_increment': 200
            }
        },
        'ui': {
            'rendering': {
                'backend': 'matplotlib'
            }
        },
        'engine': {
            'parallel': {
                'enabled': False
            }
        }
    }

    with open(_USER_CONFIG_FILE, 'w', encoding='utf-8') as f:
        yaml.dump(user_template, f, allow_unicode=True, sort_keys=False)

    logger.info(f"已创建默认用户配置: {_USER_CONFIG_FILE}")


def list_config_sources() -> List[ConfigSource]:
    """列出所有配置源"""
    sources = []

    for name, path in _CONFIG_FILES.items():
        sources.append(ConfigSource(
            name=f"{name}_default",
            path=path,
            exists=path.exists(),
            type="file"
        ))

    sources.append(ConfigSource(
        name="presets",
        path=_PRESETS_FILE,
        exists=_PRESETS_FILE.exists(),
        type="file"
    ))

    sources.append(ConfigSource(
        name="user_config",
        path=_USER_CONFIG_FILE,
        exists=_USER_CONFIG_FILE.exists(),
        type="file"
    ))

    sources.append(ConfigSource(
        name="environment_variables",
        path=Path(f"{ENV_PREFIX}*"),
        exists=True,
        type="env"
    ))

    return sources


def clear_config_cache() -> None:
    """清除配置缓存"""
    _CONFIG_CACHE.clear()
    _PRESET_CACHE.clear()
    logger.debug("配置缓存已清除")


def get_config_value(config_type: str, key_path: str, default: Any = None) -> Any:
    """
    获取配置值

    Args:
        config_type: 配置类型
        key_path: 键路径，用点号分隔 (如 'tracing.ds')
        default: 默认值（如果键不存在）
    """
    current = get_config(config_type)

    for key in key_path.split('.'):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default

    return current


def set_config_value(config_type: str, key_path: str, value: Any) -> None:
    """
    设置配置值（仅影响当前运行实例）

    Args:
        config_type: 配置类型
        key_path: 键路径，用点号分隔
        value: 要设置的值
    """
    config = get_config(config_type)
    keys = key_path.split('.')
    current = config

    for key in keys[:-1]:
        current = current.setdefault(key, {})

    current[keys[-1]] = value


# ============================================================================ #
# 内嵌默认配置（文件缺失时仍可运行）
# ============================================================================ #

_DEFAULT_PHYSICS_CONFIG = """
tracing:
  ds: 1
  max_iterations: 10000
  arrow_increment: 200

constants:
  test_charge: 0.01
  abort_threshold: 10
  lines_per_unit_charge: 6
  arrow_length: 20
"""

_DEFAULT_UI_CONFIG = """
app:
  title: "电场线可视化"
  layout: "wide"

canvas:
  width: 1000
  height: 600
  grid_spacing: 50
  gridline_thickness: 2
  charge_radius: 10

rendering:
  backend: "matplotlib"
  field_line_width: 3
  arrow_line_width: 2
  colors:
    positive: "red"
    negative: "blue"
    neutral: "gray"
    field_line: "black"
    grid: "black"
"""

_DEFAULT_ENGINE_CONFIG = """
parallel:
  enabled: false
  max_workers: 4

cache:
  enabled: true
  max_size: 32
  ttl_seconds: 1800

performance:
  warn_time_threshold: 5.0
"""

_DEFAULT_CONFIGS = {
    'physics': _DEFAULT_PHYSICS_CONFIG,
    'ui': _DEFAULT_UI_CONFIG,
    'engine': _DEFAULT_ENGINE_CONFIG
}

_DEFAULT_PRESETS = """
presets:
  point_charge:
    title: "点电荷"
    charges:
      - {x: 351, y: 301, charge: 1}
    arrow_increment: 200
    ds: 1
    max_iterations: 10000
"""


def display_config_sources() -> None:
    """显示所有配置源信息"""
    print("=" * 60)
    print("电场线可视化配置系统")
    print("=" * 60)

    print("\n配置源:")
    for source in list_config_sources():
        status = "存在" if source.exists else "缺失"
        print(f"  • {source.name}: {source.path} [{status}]")

    print(f"\n环境变量覆盖:")
    print(f"  前缀: {ENV_PREFIX}*")
    print(f"  示例: {ENV_PREFIX}PHYSICS__TRACING__MAX_ITERATIONS=5000")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    import sys

    if "--list" in sys.argv:
        display_config_sources()
    elif "--create-user-config" in sys.argv:
        create_user_config()
    else:
        print(__doc__)
        print("\n运行选项:")
        print("  python configs/__init__.py --list                 # 列出配置源")
        print("  python configs/__init__.py --create-user-config   # 创建用户配置")
