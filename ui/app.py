# ui/app.py
"""
点电荷电场线可视化平台

启动：streamlit run ui/app.py

交互：
    - 预设按钮加载内置电荷配置
    - 在图上点击网格交点放置电荷（同一位置不重复放置）或选中已有电荷
    - 编辑表单修改当前电荷的电荷量和积分参数，无效输入回退到原值
"""
import streamlit as st
import numpy as np
import sys
import os
import logging
import traceback
from typing import Any, Dict

# 添加项目根目录到路径
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import matplotlib.pyplot as plt
import plotly.graph_objects as go

from configs import get_config, get_presets
from core.engine import FieldLineEngine, RenderResult
from core.scene import ChargeScene
from visualization.backends import SUPPORTED_BACKENDS, create_plotter
from utils.geometry import gridline_positions
from utils.performance import ProgressTracker

# 配置日志
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_UI_CONFIG = get_config('ui')

# 页面配置（必须在任何Streamlit代码之前）
st.set_page_config(
    page_title=_UI_CONFIG.get('app', {}).get('title', '电场线可视化'),
    page_icon="⚡",
    layout=_UI_CONFIG.get('app', {}).get('layout', 'wide'),
    initial_sidebar_state="expanded"
)


@st.cache_resource
def _get_engine() -> FieldLineEngine:
    """整个服务进程共用一个引擎（含结果缓存）"""
    return FieldLineEngine.from_config()


class FieldLineApp:
    """主应用控制器"""

    def __init__(self):
        self.ui_config = _UI_CONFIG
        self.engine = _get_engine()
        self._initialize_session_state()

    def _initialize_session_state(self):
        """初始化会话状态：每个会话持有唯一的场景实例"""
        defaults = {
            'scene': None,
            'last_click': None,
        }

        for key, value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = value

        if st.session_state['scene'] is None:
            st.session_state['scene'] = ChargeScene.from_config()

    @property
    def scene(self) -> ChargeScene:
        return st.session_state['scene']

    # ============================================================================ #
    # 侧边栏
    # ============================================================================ #

    def render_sidebar(self) -> Dict[str, Any]:
        """渲染侧边栏"""
        with st.sidebar:
            st.title("⚡ 电场线")

            st.subheader("预设")
            presets = get_presets()
            cols = st.columns(2)
            for i, (name, preset) in enumerate(presets.items()):
                if cols[i % 2].button(preset.get('title', name), key=f"preset_{name}",
                                      use_container_width=True):
                    self.scene.load_preset(name)
                    self._sync_form()

            st.markdown("---")
            st.subheader("点击操作")
            click_mode = st.radio(
                "在图上点击时",
                ['place', 'select'],
                format_func=lambda x: {'place': '放置电荷', 'select': '选择电荷'}[x],
                horizontal=True
            )

            with st.expander("按坐标放置 / 选择"):
                x = st.number_input("X (像素)", value=351.0, step=50.0)
                y = st.number_input("Y (像素)", value=301.0, step=50.0)
                c1, c2 = st.columns(2)
                if c1.button("放置", use_container_width=True):
                    self._handle_click(x, y, 'place')
                if c2.button("选择", use_container_width=True):
                    self._handle_click(x, y, 'select')

            st.markdown("---")
            self._render_editing_form()

            st.markdown("---")
            default_backend = self.ui_config.get('rendering', {}).get('backend', 'matplotlib')
            backend = st.selectbox("绘图后端", SUPPORTED_BACKENDS,
                                   index=SUPPORTED_BACKENDS.index(default_backend))

        return {'click_mode': click_mode, 'backend': backend}

    def _sync_form(self):
        """把场景中的当前值回填到编辑表单"""
        scene = self.scene
        charge = scene.editing_charge
        st.session_state['form_charge'] = f"{charge.q:g}" if charge is not None else ""
        st.session_state['form_arrow_increment'] = str(scene.config.arrow_increment)
        st.session_state['form_ds'] = f"{scene.config.ds:g}"
        st.session_state['form_max_iterations'] = str(scene.config.max_iterations)

    def _render_editing_form(self):
        """编辑表单：电荷量与积分参数，保存时统一应用"""
        scene = self.scene
        if 'form_ds' not in st.session_state:
            self._sync_form()

        charge = scene.editing_charge
        if charge is not None:
            st.subheader(f"编辑电荷 #{scene.editing_index} ({charge.x:g}, {charge.y:g})")
        else:
            st.subheader("参数")

        with st.form("editing_form"):
            charge_input = st.text_input("电荷量", key='form_charge',
                                         disabled=charge is None)
            arrow_input = st.text_input("箭头间隔", key='form_arrow_increment')
            ds_input = st.text_input("步长 ds", key='form_ds')
            iterations_input = st.text_input("最大迭代次数", key='form_max_iterations')
            saved = st.form_submit_button("保存", type="primary", use_container_width=True)

        if saved:
            scene.save(charge=charge_input if charge is not None else None,
                       arrow_increment=arrow_input, ds=ds_input,
                       max_iterations=iterations_input)
            # 表单控件已实例化，回填需要在下一次运行时生效
            st.session_state['needs_form_sync'] = True
            st.rerun()

    def _handle_click(self, x: float, y: float, mode: str):
        """处理一次点击：放置或选择"""
        if mode == 'place':
            index = self.scene.place_charge(x, y)
        else:
            index = self.scene.select_at(x, y)
        logger.info(f"点击 ({x:g}, {y:g}) [{mode}] → {index}")

        if index is not None:
            st.session_state['needs_form_sync'] = True
            st.rerun()

    # ============================================================================ #
    # 主内容区
    # ============================================================================ #

    def render_main_content(self, params: Dict[str, Any]):
        """主内容区"""
        scene = self.scene
        snapshot = scene.snapshot()

        progress_bar = st.progress(0.0, text="正在追踪电场线...")

        def _on_progress(tracker: ProgressTracker):
            progress_bar.progress(tracker.get_progress() / 100, text=str(tracker))

        try:
            result = self.engine.render_scene(snapshot, on_progress=_on_progress)
        except Exception as e:
            st.error(f"计算失败: {str(e)}")
            st.code(traceback.format_exc())
            return
        finally:
            progress_bar.empty()

        plotter = create_plotter(params['backend'], self.ui_config)
        fig = plotter.plot(result, snapshot.charges, snapshot.editing_index)

        if params['backend'] == 'plotly':
            self._render_clickable(fig, params['click_mode'])
        else:
            st.pyplot(fig, use_container_width=True)
            plt.close(fig)
            st.caption("matplotlib 后端不支持点击，请使用侧边栏按坐标放置或切换到 plotly")

        self._render_stats(result)

    def _render_clickable(self, fig: go.Figure, click_mode: str):
        """
        plotly图上叠加透明的网格交点标记，点击标记即放置/选择电荷
        """
        canvas = self.ui_config.get('canvas', {})
        spacing = canvas.get('grid_spacing', 50)
        xs = gridline_positions(canvas.get('width', 1000), spacing)
        ys = gridline_positions(canvas.get('height', 600), spacing)
        gx, gy = np.meshgrid(xs, ys)

        fig.add_trace(go.Scatter(
            x=gx.ravel(), y=gy.ravel(), mode='markers',
            marker=dict(size=14, opacity=0.0),
            hovertemplate="(%{x}, %{y})<extra></extra>",
            name='grid'
        ))
        fig.update_layout(clickmode='event+select', dragmode=False)

        event = st.plotly_chart(fig, use_container_width=True, on_select="rerun",
                                selection_mode='points', key='canvas')

        points = event.selection.points if event and event.selection else []
        if points:
            click = (points[0]['x'], points[0]['y'])
            # 同一次选择在每次重跑时都会返回，只处理新的点击
            if click != st.session_state['last_click']:
                st.session_state['last_click'] = click
                self._handle_click(click[0], click[1], click_mode)

    def _render_stats(self, result: RenderResult):
        """统计信息"""
        n_aborted = sum(1 for p in result.paths if p.aborted)
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("电荷数", len(result.charges))
        c2.metric("电场线", result.n_lines)
        c3.metric("到达电荷", n_aborted)
        c4.metric("耗时", f"{result.elapsed:.2f}s")

        with st.expander("性能信息"):
            summary = self.engine.monitor.get_performance_summary().get('render')
            if summary:
                st.write(f"渲染次数: {summary['count']}，"
                         f"平均 {summary['avg_time']:.3f}s，最长 {summary['max_time']:.3f}s")
            stats = self.engine.cache.get_stats()
            st.write(f"结果缓存: {stats['size']}/{stats['max_size']}，命中率 {stats['hit_rate']:.0%}")
            if st.button("清空缓存"):
                self.engine.cache.clear()
                st.rerun()

    def run(self):
        """运行应用"""
        if st.session_state.pop('needs_form_sync', False):
            self._sync_form()
        params = self.render_sidebar()
        self.render_main_content(params)


if __name__ == "__main__":
    app = FieldLineApp()
    app.run()
