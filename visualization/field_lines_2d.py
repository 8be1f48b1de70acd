# visualization/field_lines_2d.py
import matplotlib.pyplot as plt
from matplotlib.collections import LineCollection
from matplotlib.patches import Circle
import numpy as np
from typing import Any, Dict, Optional, Sequence, Tuple

from physics.point import PointCharge
from core.engine import RenderResult
from utils.constants import CHARGE_RADIUS, GRIDLINE_SPACING, GRIDLINE_THICKNESS
from utils.geometry import gridline_positions

# 图宽10英寸对应画布宽度，默认1000像素 → 每像素0.72磅
PX_TO_PT = 72 / 100


class FieldLinePlot2D:
    """
    2D电场线可视化（matplotlib）

    设计特性：
        - 画布坐标：单位为像素，y轴向下，与网格放置坐标一致
        - 黑色网格线，电场线为连续线段，箭头为 "V" 形两翼
        - 正电荷红色、负电荷蓝色、零电荷灰色，当前编辑的电荷加描边
    """

    DEFAULT_COLORS = {
        'positive': 'red',
        'negative': 'blue',
        'neutral': 'gray',
        'field_line': 'black',
        'grid': 'black'
    }

    def __init__(self,
                 canvas_size: Tuple[float, float] = (1000, 600),
                 grid_spacing: float = GRIDLINE_SPACING,
                 gridline_thickness: float = GRIDLINE_THICKNESS,
                 charge_radius: float = CHARGE_RADIUS,
                 field_line_width: float = 3.0,
                 arrow_line_width: float = 2.0,
                 colors: Optional[Dict[str, str]] = None):
        """
        Args:
            canvas_size: (宽, 高) 像素
            grid_spacing: 网格线间距
            gridline_thickness: 网格线粗细（像素）
            charge_radius: 电荷圆点半径
            field_line_width: 电场线线宽
            arrow_line_width: 箭头线宽
            colors: 覆盖默认配色
        """
        self.canvas_size = canvas_size
        self.grid_spacing = grid_spacing
        self.gridline_thickness = gridline_thickness
        self.charge_radius = charge_radius
        self.field_line_width = field_line_width
        self.arrow_line_width = arrow_line_width
        self.colors = {**self.DEFAULT_COLORS, **(colors or {})}

    @classmethod
    def from_config(cls, ui_config: Dict[str, Any]) -> 'FieldLinePlot2D':
        """按ui配置创建"""
        canvas = ui_config.get('canvas', {})
        rendering = ui_config.get('rendering', {})
        return cls(
            canvas_size=(canvas.get('width', 1000), canvas.get('height', 600)),
            grid_spacing=canvas.get('grid_spacing', GRIDLINE_SPACING),
            gridline_thickness=canvas.get('gridline_thickness', GRIDLINE_THICKNESS),
            charge_radius=canvas.get('charge_radius', CHARGE_RADIUS),
            field_line_width=rendering.get('field_line_width', 3.0),
            arrow_line_width=rendering.get('arrow_line_width', 2.0),
            colors=rendering.get('colors')
        )

    def _create_figure(self, figsize: Optional[Tuple[float, float]] = None):
        """创建与画布等比例的图形"""
        width, height = self.canvas_size
        if figsize is None:
            figsize = (10, 10 * height / width)

        fig, ax = plt.subplots(figsize=figsize, dpi=100)
        ax.set_xlim(0, width)
        # 画布坐标y轴向下
        ax.set_ylim(height, 0)
        ax.set_aspect('equal')
        ax.set_xticks([])
        ax.set_yticks([])
        for spine in ax.spines.values():
            spine.set_visible(False)

        return fig, ax

    def _plot_gridlines(self, ax):
        """绘制网格线（从网格坐标开始、宽度为gridline_thickness的细条）"""
        width, height = self.canvas_size
        offset = self.gridline_thickness / 2
        segments = []

        for x in gridline_positions(width, self.grid_spacing):
            segments.append([(x + offset, 0), (x + offset, height)])
        for y in gridline_positions(height, self.grid_spacing):
            segments.append([(0, y + offset), (width, y + offset)])

        if segments:
            ax.add_collection(LineCollection(
                segments,
                colors=self.colors['grid'],
                linewidths=self.gridline_thickness * PX_TO_PT,
                zorder=1
            ))

    def _plot_field_lines(self, ax, result: RenderResult):
        """绘制电场线和箭头"""
        line_segments = [path.segments() for path in result.paths if path.iterations > 0]
        if line_segments:
            ax.add_collection(LineCollection(
                np.concatenate(line_segments),
                colors=self.colors['field_line'],
                linewidths=self.field_line_width * PX_TO_PT,
                capstyle='round',
                zorder=2
            ))

        arrow_segments = [s for s in result.arrow_segments() if len(s) > 0]
        if arrow_segments:
            ax.add_collection(LineCollection(
                np.concatenate(arrow_segments),
                colors=self.colors['field_line'],
                linewidths=self.arrow_line_width * PX_TO_PT,
                zorder=3
            ))

    def _charge_color(self, charge: PointCharge) -> str:
        if charge.q > 0:
            return self.colors['positive']
        if charge.q < 0:
            return self.colors['negative']
        return self.colors['neutral']

    def _plot_charges(self, ax, charges: Sequence[PointCharge],
                      editing_index: Optional[int] = None):
        """绘制电荷位置"""
        for i, charge in enumerate(charges):
            highlighted = i == editing_index
            ax.add_patch(Circle(
                charge.position,
                self.charge_radius,
                facecolor=self._charge_color(charge),
                edgecolor='black' if highlighted else 'none',
                linewidth=2 if highlighted else 0,
                zorder=4
            ))

    def plot(self, result: RenderResult,
             charges: Optional[Sequence[PointCharge]] = None,
             editing_index: Optional[int] = None,
             title: Optional[str] = None,
             save_path: Optional[str] = None) -> plt.Figure:
        """
        生成2D电场线图

        Args:
            result: 引擎渲染结果
            charges: 要绘制的电荷，默认使用result中的快照
            editing_index: 当前编辑的电荷序号（加描边）
            title: 图标题
            save_path: 保存路径（可选）
        """
        fig, ax = self._create_figure()

        self._plot_gridlines(ax)
        self._plot_field_lines(ax, result)
        self._plot_charges(ax, charges if charges is not None else result.charges, editing_index)

        if title:
            ax.set_title(title, fontsize=14)

        if save_path:
            fig.savefig(save_path, dpi=150, bbox_inches='tight')

        return fig
