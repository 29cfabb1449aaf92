from typing import List, Optional, Sequence, Tuple

import numpy as np
import pyqtgraph as pg
from PyQt6.QtCore import Qt
from PyQt6.QtGui import QColor, QFont

from ..theme import theme


class SessionAxis(pg.AxisItem):
    """Bottom axis fed with precomputed (label, x) ticks instead of pyqtgraph's own spacing."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._ticks: List[Tuple[str, float]] = []

    def set_ticks(self, ticks: Sequence[Tuple[str, float]]) -> None:
        self._ticks = list(ticks)
        self.picture = None
        self.update()

    def tickValues(self, minVal, maxVal, size):
        values = [x for _, x in self._ticks if minVal <= x <= maxVal]
        if not values:
            return []
        return [(1, values)]

    def tickStrings(self, values, scale, spacing):
        labels = {x: label for label, x in self._ticks}
        return [labels.get(v, '') for v in values]

    def generateDrawSpecs(self, p):
        axis_spec, tick_specs, text_specs = super().generateDrawSpecs(p)
        if axis_spec is not None:
            axis_spec = (pg.mkPen(QColor(0, 0, 0, 0)), axis_spec[1], axis_spec[2])
        return (axis_spec, tick_specs, text_specs)


class ValueChart:
    """
    Paints a value line, the benchmark overlay and the measurement selection.

    X values are whatever the engine's aligner hands in; the view box is pinned to
    [plot_left, plot_left + plot_width] so scene x maps straight back to the aligner.
    """

    def __init__(self, plot_widget: pg.PlotWidget, plot_left: float, plot_width: float) -> None:
        self.plot_widget = plot_widget
        self.plot_left = float(plot_left)
        self.plot_width = float(plot_width)
        self._ys = np.zeros(0, dtype=np.float64)
        self._overlay: Optional[np.ndarray] = None
        self._baseline: Optional[float] = None

        view_box = self.plot_widget.getViewBox()
        view_box.setMouseEnabled(x=False, y=False)
        view_box.enableAutoRange('x', False)
        view_box.enableAutoRange('y', False)
        view_box.setMenuEnabled(False)
        self.plot_widget.hideButtons()
        try:
            self.plot_widget.setCursor(Qt.CursorShape.CrossCursor)
        except Exception:
            pass

        self.axis = SessionAxis(orientation='bottom')
        font = QFont()
        font.setPointSize(7)
        self.axis.setTickFont(font)
        self.axis.setStyle(autoExpandTextSpace=False, tickTextOffset=4)
        self.axis.setHeight(28)
        self.plot_widget.setAxisItems({'bottom': self.axis})

        self.line = pg.PlotDataItem(pen=pg.mkPen(theme.LINE, width=2))
        self.benchmark_line = pg.PlotDataItem(pen=pg.mkPen(theme.BENCHMARK, width=1.5, style=Qt.PenStyle.DashLine))
        self.baseline = pg.InfiniteLine(angle=0, movable=False, pen=pg.mkPen(theme.TEXT_MUTED, width=1, style=Qt.PenStyle.DotLine))
        self.selection_region = pg.LinearRegionItem(movable=False, brush=pg.mkBrush(*theme.SELECTION_FILL))
        self.selection_lines = [
            pg.InfiniteLine(angle=90, movable=False, pen=pg.mkPen(theme.TEXT, width=1)),
            pg.InfiniteLine(angle=90, movable=False, pen=pg.mkPen(theme.TEXT, width=1)),
        ]
        self.crosshair_v = pg.InfiniteLine(angle=90, movable=False, pen=pg.mkPen(theme.TEXT_MUTED, width=1, style=Qt.PenStyle.DashLine))
        self.cursor_dot = pg.ScatterPlotItem(size=8, pen=pg.mkPen(theme.BACKGROUND_BOTTOM), brush=pg.mkBrush(theme.LINE))
        self.empty_label = pg.TextItem('', color=theme.TEXT_MUTED, anchor=(0.5, 0.5))
        self.session_lines: List[pg.InfiniteLine] = []

        for item in (self.selection_region, self.baseline, self.benchmark_line, self.line):
            self.plot_widget.addItem(item)
        for item in self.selection_lines:
            self.plot_widget.addItem(item, ignoreBounds=True)
        self.plot_widget.addItem(self.crosshair_v, ignoreBounds=True)
        self.plot_widget.addItem(self.cursor_dot)
        self.plot_widget.addItem(self.empty_label, ignoreBounds=True)

        self.set_selection(None, None)
        self.clear_hover()
        self.plot_widget.setXRange(self.plot_left, self.plot_left + self.plot_width, padding=0.02)

    def set_series(self, xs: Sequence[float], ys: Sequence[float], color: str) -> None:
        self._ys = np.asarray(ys, dtype=np.float64)
        self.line.setData(np.asarray(xs, dtype=np.float64), self._ys)
        self.line.setPen(pg.mkPen(color, width=2))
        self.cursor_dot.setBrush(pg.mkBrush(color))
        self.empty_label.setText('')
        self._auto_range_y()

    def set_benchmark(self, xs: Sequence[float], values: Optional[Sequence[float]]) -> None:
        if values is None:
            self._overlay = None
            self.benchmark_line.setData([], [])
            self.benchmark_line.hide()
        else:
            self._overlay = np.asarray(values, dtype=np.float64)
            self.benchmark_line.setData(np.asarray(xs, dtype=np.float64), self._overlay)
            self.benchmark_line.show()
        self._auto_range_y()

    def set_baseline(self, value: Optional[float]) -> None:
        self._baseline = value
        if value is None:
            self.baseline.hide()
        else:
            self.baseline.setValue(float(value))
            self.baseline.show()

    def set_session_splits(self, xs: Sequence[float]) -> None:
        for line in self.session_lines:
            self.plot_widget.removeItem(line)
        self.session_lines = []
        for x in xs:
            line = pg.InfiniteLine(pos=float(x), angle=90, movable=False, pen=pg.mkPen(theme.SESSION, width=1, style=Qt.PenStyle.DotLine))
            self.plot_widget.addItem(line, ignoreBounds=True)
            self.session_lines.append(line)

    def set_ticks(self, ticks: Sequence[Tuple[str, float]]) -> None:
        self.axis.set_ticks(ticks)

    def set_selection(self, x_first: Optional[float], x_second: Optional[float]) -> None:
        for line, x in zip(self.selection_lines, (x_first, x_second)):
            if x is None:
                line.hide()
            else:
                line.setValue(float(x))
                line.show()
        if x_first is not None and x_second is not None:
            self.selection_region.setRegion((min(x_first, x_second), max(x_first, x_second)))
            self.selection_region.show()
        else:
            self.selection_region.hide()

    def set_hover(self, x: float, y: float) -> None:
        self.crosshair_v.setValue(float(x))
        self.crosshair_v.show()
        self.cursor_dot.setData([float(x)], [float(y)])
        self.cursor_dot.show()

    def clear_hover(self) -> None:
        self.crosshair_v.hide()
        self.cursor_dot.setData([], [])
        self.cursor_dot.hide()

    def show_empty(self, text: str) -> None:
        self._ys = np.zeros(0, dtype=np.float64)
        self._overlay = None
        self.line.setData([], [])
        self.benchmark_line.setData([], [])
        self.set_session_splits([])
        self.set_selection(None, None)
        self.clear_hover()
        self.set_baseline(None)
        self.set_ticks([])
        self.empty_label.setText(text)
        self.empty_label.setPos(self.plot_left + self.plot_width / 2, 0.5)
        self.plot_widget.setYRange(0.0, 1.0, padding=0)

    def _auto_range_y(self) -> None:
        parts = [self._ys]
        if self._overlay is not None:
            parts.append(self._overlay)
        values = np.concatenate(parts) if parts else np.zeros(0)
        values = values[np.isfinite(values)]
        if values.size == 0:
            return
        lo = float(values.min())
        hi = float(values.max())
        if hi - lo < 1e-9:
            pad = max(abs(hi) * 0.01, 1.0)
        else:
            pad = (hi - lo) * 0.08
        self.plot_widget.setYRange(lo - pad, hi + pad, padding=0)
