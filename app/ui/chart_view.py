import logging
from typing import Any, Dict, Optional, Set

import pyqtgraph as pg
from PyQt6.QtWidgets import QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel, QButtonGroup, QStyle
from PyQt6.QtGui import QBrush, QColor, QLinearGradient
from PyQt6.QtCore import QEvent, QThread, Qt, QTimer, QSettings, QSize, pyqtSignal

from engine.benchmark import BenchmarkNormalizer
from engine.chart_session import ChartSession
from engine.config import EngineConfig
from engine.data_providers.portfolio_api import fetch_for_request
from engine.formatting import format_change, format_currency, format_days, format_optional_pct, format_pct, format_short_date
from engine.models import FetchRequest, Period, PERIODS
from .theme import theme
from .charts.value_chart import ValueChart

log = logging.getLogger(__name__)


class SeriesFetchWorker(QThread):
    data_ready = pyqtSignal(object, object)
    error = pyqtSignal(object, str)

    def __init__(self, request: FetchRequest, config: EngineConfig, fetch=fetch_for_request) -> None:
        super().__init__()
        self.request = request
        self.config = config
        self._fetch = fetch
        self.on_done = None
        self.on_failed = None

    def run(self) -> None:
        try:
            payload = self._fetch(self.request, self.config)
            self.data_ready.emit(self.request, payload)
        except Exception as exc:
            self.error.emit(self.request, str(exc))


class ValueChartView(QWidget):
    def __init__(self, config: Optional[EngineConfig] = None, ticker: Optional[str] = None, error_sink=None, fetch=fetch_for_request) -> None:
        super().__init__()
        self.config = config or EngineConfig.from_env()
        self.ticker = ticker
        self.error_sink = error_sink
        self._fetch = fetch
        self._workers: Set[SeriesFetchWorker] = set()
        self._settings = QSettings('ValueChart', 'ValueChart')

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)

        self.header = QWidget()
        self.header.setObjectName('ChartHeader')
        header_layout = QVBoxLayout(self.header)
        header_layout.setContentsMargins(10, 8, 10, 4)
        header_layout.setSpacing(2)
        self.value_label = QLabel('')
        self.value_label.setObjectName('HeroValue')
        self.value_label.setStyleSheet('font-size: 22px; font-weight: 600;')
        self.change_label = QLabel('')
        self.benchmark_label = QLabel('')
        self.benchmark_label.setStyleSheet(f'color: {theme.TEXT_MUTED};')
        self.measure_label = QLabel('')
        header_layout.addWidget(self.value_label)
        header_layout.addWidget(self.change_label)
        header_layout.addWidget(self.benchmark_label)
        header_layout.addWidget(self.measure_label)
        layout.addWidget(self.header)

        view_box = pg.ViewBox()
        self.plot_widget = pg.PlotWidget(viewBox=view_box)
        gradient = QLinearGradient(0, 0, 0, 1)
        gradient.setCoordinateMode(QLinearGradient.CoordinateMode.ObjectBoundingMode)
        gradient.setColorAt(0.0, QColor(theme.BACKGROUND_TOP))
        gradient.setColorAt(1.0, QColor(theme.BACKGROUND_BOTTOM))
        self.plot_widget.setBackground(QBrush(gradient))
        self.plot_widget.showGrid(x=False, y=True, alpha=0.15)
        self.plot_widget.setStyleSheet("border: 0px;")
        self.chart = ValueChart(self.plot_widget, self.config.plot_left, self.config.plot_width)
        self._apply_axis_style()
        layout.addWidget(self.plot_widget, 1)

        self.toolbar = QWidget()
        self.toolbar.setObjectName('PeriodToolbar')
        toolbar_layout = QHBoxLayout(self.toolbar)
        toolbar_layout.setContentsMargins(6, 4, 6, 6)
        toolbar_layout.setSpacing(6)

        self.period_buttons: Dict[Period, QPushButton] = {}
        self.period_group = QButtonGroup(self)
        self.period_group.setExclusive(True)
        for period in PERIODS:
            button = QPushButton(period.value)
            button.setCheckable(True)
            button.setMinimumHeight(22)
            button.clicked.connect(lambda _checked, val=period: self._set_period(val))
            self.period_buttons[period] = button
            self.period_group.addButton(button)
            toolbar_layout.addWidget(button)

        self.benchmark_button = QPushButton(self.config.benchmark_ticker)
        self.benchmark_button.setCheckable(True)
        self.benchmark_button.setToolTip(f'Overlay {self.config.benchmark_ticker} scaled to the period start value')
        self.benchmark_button.toggled.connect(self._on_benchmark_toggled)
        toolbar_layout.addWidget(self.benchmark_button)

        self.load_button = QPushButton('Reset Cache')
        self.load_button.setToolTip('Reset Cache')
        try:
            self.load_button.setIcon(self.style().standardIcon(QStyle.StandardPixmap.SP_BrowserReload))
            self.load_button.setIconSize(QSize(14, 14))
            self.load_button.setText('')
            self.load_button.setFixedSize(28, 28)
        except Exception:
            pass
        self.load_button.clicked.connect(self._on_load_clicked)
        toolbar_layout.addWidget(self.load_button)

        self.status_label = QLabel('')
        toolbar_layout.addWidget(self.status_label)
        toolbar_layout.addStretch(1)
        layout.addWidget(self.toolbar)

        self.session = ChartSession(
            self._launch,
            config=self.config,
            ticker=ticker,
            on_change=self._render,
            on_loading=self._set_loading,
            on_error=self._on_error,
        )

        self.plot_widget.scene().sigMouseMoved.connect(self._on_mouse_moved)
        self.plot_widget.scene().sigMouseClicked.connect(self._on_mouse_clicked)
        self.plot_widget.viewport().setAttribute(Qt.WidgetAttribute.WA_AcceptTouchEvents, True)
        self.plot_widget.viewport().installEventFilter(self)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(self.config.intraday_poll_ms)
        self._poll_timer.timeout.connect(self._on_poll)

        period = self._restore_settings()
        self.session.open(period)
        self._sync_period_buttons()
        self._poll_timer.start()

    def _restore_settings(self) -> Period:
        show = self._settings.value('showBenchmark', False, type=bool)
        self.benchmark_button.blockSignals(True)
        self.benchmark_button.setChecked(bool(show))
        self.benchmark_button.blockSignals(False)
        self.session.show_benchmark = bool(show)
        try:
            return Period.parse(self._settings.value('period', Period.D1.value))
        except ValueError:
            return Period.D1

    def _apply_axis_style(self) -> None:
        axis_pen = pg.mkPen(theme.GRID)
        text_pen = pg.mkPen(theme.TEXT)
        for axis_name in ('left', 'bottom'):
            axis = self.plot_widget.getAxis(axis_name)
            axis.setPen(axis_pen)
            axis.setTextPen(text_pen)
        self.plot_widget.getAxis('left').setWidth(64)

    def _launch(self, request: FetchRequest, on_done, on_failed) -> None:
        worker = SeriesFetchWorker(request, self.config, fetch=self._fetch)
        worker.on_done = on_done
        worker.on_failed = on_failed
        worker.data_ready.connect(self._on_worker_data)
        worker.error.connect(self._on_worker_error)
        worker.finished.connect(self._on_worker_finished)
        self._workers.add(worker)
        worker.start()

    def _on_worker_data(self, request: FetchRequest, payload: Any) -> None:
        worker = self.sender()
        if isinstance(worker, SeriesFetchWorker) and worker.on_done is not None:
            worker.on_done(request, payload)

    def _on_worker_error(self, request: FetchRequest, message: str) -> None:
        worker = self.sender()
        if isinstance(worker, SeriesFetchWorker) and worker.on_failed is not None:
            worker.on_failed(request, message)

    def _on_worker_finished(self) -> None:
        worker = self.sender()
        if isinstance(worker, SeriesFetchWorker):
            self._workers.discard(worker)
            worker.deleteLater()

    def _set_period(self, period: Period) -> None:
        if self.session.set_period(period):
            self._settings.setValue('period', period.value)
        self._sync_period_buttons()

    def _sync_period_buttons(self) -> None:
        for period, button in self.period_buttons.items():
            button.setChecked(period == self.session.period)

    def _on_benchmark_toggled(self, checked: bool) -> None:
        self._settings.setValue('showBenchmark', bool(checked))
        self.session.set_show_benchmark(checked)

    def _on_load_clicked(self) -> None:
        self.session.reset_cache()

    def _on_poll(self) -> None:
        if self.session.poll_interval_ms() is not None:
            self.session.refresh(silent=True)

    def set_live_value(self, value: Optional[float]) -> None:
        self.session.set_live_value(value)

    def _set_loading(self, is_loading: bool) -> None:
        self.load_button.setEnabled(not is_loading)
        if is_loading:
            self.status_label.setText(f'Loading {self.session.period.value}...')
            self.status_label.setStyleSheet(f'color: {theme.TEXT};')
        elif not self.status_label.text().startswith('Error:'):
            self.status_label.setText('')
        if not self.session.has_data:
            self._render()

    def _on_error(self, message: str) -> None:
        self.status_label.setText(f'Error: {message}')
        self.status_label.setStyleSheet(f'color: {theme.ERROR};')
        self._report_error(message)

    def _report_error(self, message: str) -> None:
        if self.error_sink is not None:
            try:
                self.error_sink.append_error(message)
            except Exception:
                log.exception("Error sink rejected message")

    def _scene_to_x(self, scene_pos) -> Optional[float]:
        view_box = self.plot_widget.getViewBox()
        if not view_box.sceneBoundingRect().contains(scene_pos):
            return None
        return float(view_box.mapSceneToView(scene_pos).x())

    def _on_mouse_moved(self, scene_pos) -> None:
        x = self._scene_to_x(scene_pos)
        if x is None:
            self.session.leave()
        else:
            self.session.hover(x)
        self._render_hover()
        self._update_header()

    def _on_mouse_clicked(self, ev) -> None:
        if ev.button() != Qt.MouseButton.LeftButton:
            return
        x = self._scene_to_x(ev.scenePos())
        if x is None:
            self.session.clear_selection()
        else:
            self.session.click(x)
        self.setFocus()

    def mousePressEvent(self, event) -> None:
        # Clicks outside the plot (header, toolbar gaps) cancel a measurement.
        if event.button() == Qt.MouseButton.LeftButton:
            self.session.clear_selection()
        super().mousePressEvent(event)

    def keyPressEvent(self, event) -> None:
        if event.key() == Qt.Key.Key_Escape:
            self.session.escape()
            event.accept()
            return
        super().keyPressEvent(event)

    def leaveEvent(self, event) -> None:
        self.session.leave()
        self._render_hover()
        self._update_header()
        super().leaveEvent(event)

    def eventFilter(self, obj, event) -> bool:
        if event.type() in (QEvent.Type.TouchBegin, QEvent.Type.TouchUpdate):
            touch_points = event.points()
            if len(touch_points) == 2:
                xs = []
                for point in touch_points:
                    scene_pos = self.plot_widget.mapToScene(point.position().toPoint())
                    x = self._scene_to_x(scene_pos)
                    if x is None:
                        return False
                    xs.append(x)
                self.session.select_pair(xs[0], xs[1])
                event.accept()
                return True
        return super().eventFilter(obj, event)

    def _render(self) -> None:
        session = self.session
        if not session.has_data:
            self.chart.show_empty('Loading...' if session.coordinator.loading else 'No chart data')
            self._update_header()
            return
        aligner = session.aligner
        xs = aligner.positions()
        ys = [p.value for p in session.points]
        ret = session.display().period_return
        self.chart.set_series(xs, ys, theme.change_color(ret if ret is not None else 0.0))
        self.chart.set_benchmark(xs, session.benchmark_overlay(smoothed=True))
        self.chart.set_baseline(session.period_start_value)
        self.chart.set_session_splits([aligner.x_for_index(i) for i in session.session_splits() if i is not None])
        if aligner.is_intraday:
            self.chart.set_ticks(aligner.session_ticks(session.calculator))
        else:
            self.chart.set_ticks(aligner.day_labels(session.calculator))
        selection = session.selection
        self.chart.set_selection(
            aligner.x_for_index(selection.first) if selection.first is not None else None,
            aligner.x_for_index(selection.second) if selection.second is not None else None,
        )
        self._render_hover()
        self._update_header()

    def _render_hover(self) -> None:
        idx = self.session.hover_index
        if idx is None or idx >= len(self.session.points):
            self.chart.clear_hover()
            return
        self.chart.set_hover(self.session.aligner.x_for_index(idx), self.session.points[idx].value)

    def _update_header(self) -> None:
        session = self.session
        display = session.display()
        self.value_label.setText(format_currency(display.value))
        color = theme.change_color(display.change)
        change_text = f'{format_change(display.change)} ({format_pct(display.change_pct)})'
        if display.hover_index is not None and display.hover_index < len(session.points):
            when = format_short_date(session.points[display.hover_index].time, session.period is Period.D1, session.calculator)
            change_text = f'{change_text}  {when}'
        else:
            change_text = f'{change_text}  {session.period.value}'
        self.change_label.setText(change_text)
        self.change_label.setStyleSheet(f'color: {color};')

        bench_value = session.hover_benchmark_value()
        if bench_value is not None:
            bench_pct, outperf = BenchmarkNormalizer.hover_comparison(display.value, bench_value, session.period_start_value)
            ticker = self.config.benchmark_ticker
            self.benchmark_label.setText(f'{ticker} {format_pct(bench_pct)}  vs {ticker} {format_pct(outperf)}')
        else:
            self.benchmark_label.setText('')

        measurement = session.measurement()
        if measurement is None:
            first = session.selection.first
            self.measure_label.setText('Click a second point to measure' if first is not None else '')
            self.measure_label.setStyleSheet(f'color: {theme.TEXT_MUTED};')
            return
        comparison = session.benchmark_comparison()
        text = (
            f'{format_change(measurement.dollar_change)} ({format_pct(measurement.percent_change)})'
            f' over {format_days(measurement.days_between)}'
        )
        ticker = self.config.benchmark_ticker
        if comparison is not None:
            text = f'{text}  |  {ticker} {format_pct(comparison.benchmark_return)}, vs {ticker} {format_pct(comparison.outperformance)}'
        else:
            text = f'{text}  |  {ticker} {format_optional_pct(None)}'
        self.measure_label.setText(text)
        self.measure_label.setStyleSheet(f'color: {theme.change_color(measurement.dollar_change)};')

    def shutdown(self) -> None:
        self._poll_timer.stop()
        self.session.close()
        for worker in list(self._workers):
            if worker.isRunning():
                worker.quit()
                worker.wait(1500)
        self._workers.clear()

    def export_chart_png(self, path: str) -> None:
        pixmap = self.plot_widget.grab()
        pixmap.save(path, 'PNG')
