# visualization/main.py
"""
命令行渲染入口

加载一个内置预设，追踪全部电场线并保存图像：
    python -m visualization.main --preset opposite_charges --output dipole.png
    python -m visualization.main --preset same_charges --backend plotly --output same.html
"""
import argparse
import logging
import sys
from typing import List, Optional

import matplotlib.pyplot as plt

from configs import get_config, get_presets
from core.engine import FieldLineEngine
from core.scene import ChargeScene
from visualization.backends import SUPPORTED_BACKENDS, create_plotter

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='field-lines',
        description='点电荷电场线可视化：渲染内置预设'
    )
    parser.add_argument('--preset', default='point_charge',
                        help='预设名称（--list 查看全部）')
    parser.add_argument('--output', '-o', default=None,
                        help='输出文件（matplotlib为PNG，plotly为HTML）')
    parser.add_argument('--backend', choices=SUPPORTED_BACKENDS, default=None,
                        help='绘图后端，默认取ui配置')
    parser.add_argument('--ds', default=None, help='步长')
    parser.add_argument('--max-iterations', default=None, help='单条电场线最大迭代次数')
    parser.add_argument('--arrow-increment', default=None, help='箭头间隔')
    parser.add_argument('--list', action='store_true', help='列出全部预设')
    parser.add_argument('--verbose', '-v', action='store_true', help='输出调试日志')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    presets = get_presets()
    if args.list:
        for name, preset in presets.items():
            print(f"{name:20s} {preset.get('title', '')} ({len(preset['charges'])} 个电荷)")
        return 0

    scene = ChargeScene.from_config()
    try:
        scene.load_preset(args.preset)
    except KeyError as e:
        logger.error(str(e))
        return 2

    # 命令行参数与表单输入同样处理：无效值保留预设值
    scene.apply_inputs(arrow_increment=args.arrow_increment, ds=args.ds,
                       max_iterations=args.max_iterations)

    ui_config = get_config('ui')
    backend = args.backend or ui_config.get('rendering', {}).get('backend', 'matplotlib')
    plotter = create_plotter(backend, ui_config)

    with FieldLineEngine.from_config() as engine:
        snapshot = scene.snapshot()
        result = engine.render_scene(snapshot)

    output = args.output or f"{args.preset}.{'html' if backend == 'plotly' else 'png'}"
    fig = plotter.plot(result, snapshot.charges, snapshot.editing_index,
                       title=presets[args.preset].get('title'), save_path=output)
    if backend == 'matplotlib':
        plt.close(fig)

    logger.info(f"已保存: {output} ({result.n_lines} 条电场线, {result.elapsed:.2f}s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
