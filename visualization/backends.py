# visualization/backends.py
"""
可视化后端

提供与matplotlib绘图内容一致的plotly实现（用于网页界面的交互缩放），
以及按名称创建绘图器的工厂函数。
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import plotly.graph_objects as go

from physics.point import PointCharge
from core.engine import RenderResult
from core.data_schema import TracedPath
from visualization.field_lines_2d import FieldLinePlot2D
from utils.geometry import gridline_positions

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ('matplotlib', 'plotly')


def _polyline_with_breaks(polylines: Sequence[np.ndarray]) -> np.ndarray:
    """把多条折线拼成一条，用NaN行分隔（plotly在NaN处断开）"""
    pieces: List[np.ndarray] = []
    for line in polylines:
        if len(line) == 0:
            continue
        pieces.append(line)
        pieces.append(np.full((1, 2), np.nan))
    if not pieces:
        return np.empty((0, 2))
    return np.vstack(pieces)


def path_polyline(path: TracedPath) -> np.ndarray:
    """
    去掉重复点的电场线折线

    每次迭代的步后点与下一次迭代的步前点相同，
    只保留各步前点再加上最后一个点即可。
    """
    if path.iterations == 0:
        return np.empty((0, 2))
    return np.vstack([path.points[0::2], path.points[-1:]])


class PlotlyFieldLinePlot(FieldLinePlot2D):
    """
    2D电场线可视化（plotly）

    复用FieldLinePlot2D的画布参数和配色，只替换绘图实现。
    """

    def _layout(self, title: Optional[str]) -> Dict[str, Any]:
        width, height = self.canvas_size
        return dict(
            title=title,
            xaxis=dict(range=[0, width], showgrid=False, zeroline=False,
                       showticklabels=False, constrain='domain'),
            # 画布坐标y轴向下
            yaxis=dict(range=[height, 0], showgrid=False, zeroline=False,
                       showticklabels=False, scaleanchor='x', scaleratio=1),
            plot_bgcolor='white',
            showlegend=False,
            margin=dict(l=10, r=10, t=40 if title else 10, b=10)
        )

    def _grid_trace(self) -> go.Scatter:
        width, height = self.canvas_size
        offset = self.gridline_thickness / 2
        lines = []
        for x in gridline_positions(width, self.grid_spacing):
            lines.append(np.array([[x + offset, 0], [x + offset, height]]))
        for y in gridline_positions(height, self.grid_spacing):
            lines.append(np.array([[0, y + offset], [width, y + offset]]))

        xy = _polyline_with_breaks(lines)
        return go.Scatter(x=xy[:, 0], y=xy[:, 1], mode='lines',
                          line=dict(color=self.colors['grid'], width=self.gridline_thickness / 2),
                          hoverinfo='skip')

    def _charge_shapes(self, charges: Sequence[PointCharge],
                       editing_index: Optional[int]) -> List[Dict[str, Any]]:
        shapes = []
        r = self.charge_radius
        for i, charge in enumerate(charges):
            highlighted = i == editing_index
            shapes.append(dict(
                type='circle', xref='x', yref='y',
                x0=charge.x - r, y0=charge.y - r, x1=charge.x + r, y1=charge.y + r,
                fillcolor=self._charge_color(charge),
                line=dict(color='black', width=2 if highlighted else 0)
            ))
        return shapes

    def plot(self, result: RenderResult,
             charges: Optional[Sequence[PointCharge]] = None,
             editing_index: Optional[int] = None,
             title: Optional[str] = None,
             save_path: Optional[str] = None) -> go.Figure:
        """
        生成plotly电场线图

        Args:
            同 FieldLinePlot2D.plot；save_path 以HTML格式保存
        """
        charges = charges if charges is not None else result.charges

        field_xy = _polyline_with_breaks([path_polyline(p) for p in result.paths])
        arrow_xy = _polyline_with_breaks([seg for segs in result.arrow_segments() for seg in segs])

        fig = go.Figure()
        fig.add_trace(self._grid_trace())
        if len(field_xy):
            fig.add_trace(go.Scatter(
                x=field_xy[:, 0], y=field_xy[:, 1], mode='lines',
                line=dict(color=self.colors['field_line'], width=self.field_line_width / 2),
                hoverinfo='skip', name='电场线'
            ))
        if len(arrow_xy):
            fig.add_trace(go.Scatter(
                x=arrow_xy[:, 0], y=arrow_xy[:, 1], mode='lines',
                line=dict(color=self.colors['field_line'], width=self.arrow_line_width / 2),
                hoverinfo='skip', name='箭头'
            ))
        if len(charges):
            fig.add_trace(go.Scatter(
                x=[c.x for c in charges], y=[c.y for c in charges], mode='markers',
                marker=dict(size=1, opacity=0),
                text=[f"#{i}: q={c.q:g}" for i, c in enumerate(charges)],
                hoverinfo='text', name='电荷'
            ))

        fig.update_layout(shapes=self._charge_shapes(charges, editing_index), **self._layout(title))

        if save_path:
            fig.write_html(save_path)

        return fig


def create_plotter(backend: str = 'matplotlib',
                   ui_config: Optional[Dict[str, Any]] = None) -> FieldLinePlot2D:
    """
    按后端名称创建绘图器

    Args:
        backend: 'matplotlib' 或 'plotly'
        ui_config: ui配置字典，None时使用默认参数

    Raises:
        ValueError: 不支持的后端
    """
    backends = {
        'matplotlib': FieldLinePlot2D,
        'plotly': PlotlyFieldLinePlot
    }
    plotter_class = backends.get(backend)
    if plotter_class is None:
        raise ValueError(f"不支持的后端: {backend}. 可选: {list(SUPPORTED_BACKENDS)}")

    logger.debug(f"创建绘图器: {backend}")
    if ui_config is None:
        return plotter_class()
    return plotter_class.from_config(ui_config)
