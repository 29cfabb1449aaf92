import os
from typing import Optional

from PyQt6.QtWidgets import QMainWindow, QDockWidget, QFileDialog, QStyle
from PyQt6.QtGui import QAction
from PyQt6.QtCore import Qt, QSettings

from engine.config import EngineConfig
from .chart_view import ValueChartView
from .error_dock import ErrorDock


class MainWindow(QMainWindow):
    def __init__(self, config: Optional[EngineConfig] = None, ticker: Optional[str] = None) -> None:
        super().__init__()
        title = f'ValueChart - {ticker.upper()}' if ticker else 'ValueChart'
        self.setWindowTitle(title)
        self.resize(1100, 700)

        self.error_dock = ErrorDock()
        self.chart_view = ValueChartView(config=config, ticker=ticker, error_sink=self.error_dock)
        self.setCentralWidget(self.chart_view)
        self.addDockWidget(Qt.DockWidgetArea.BottomDockWidgetArea, self.error_dock)
        try:
            self.error_dock.setWindowIcon(self.style().standardIcon(QStyle.StandardPixmap.SP_MessageBoxCritical))
        except Exception:
            pass

        self._settings = QSettings('ValueChart', 'ValueChart')
        self._setup_menu()
        self._restore_layout()

    def closeEvent(self, event) -> None:
        self._save_layout()
        self.chart_view.shutdown()
        super().closeEvent(event)

    def _setup_menu(self) -> None:
        menu_bar = self.menuBar()
        file_menu = menu_bar.addMenu('File')
        view_menu = menu_bar.addMenu('View')
        window_menu = menu_bar.addMenu('Window')

        export_action = QAction('Export Chart as PNG...', self)
        export_action.triggered.connect(self._export_chart_png)
        file_menu.addAction(export_action)
        quit_action = QAction('Quit', self)
        quit_action.triggered.connect(self.close)
        file_menu.addAction(quit_action)

        reset_action = QAction('Reset Cache', self)
        reset_action.triggered.connect(self.chart_view.session.reset_cache)
        view_menu.addAction(reset_action)
        clear_action = QAction('Clear Measurement', self)
        clear_action.triggered.connect(self.chart_view.session.clear_selection)
        view_menu.addAction(clear_action)

        action = QAction(self.error_dock.windowTitle(), self)
        action.setCheckable(True)
        action.setChecked(not self.error_dock.isHidden())
        action.triggered.connect(lambda checked: self._toggle_dock(self.error_dock, checked))
        self.error_dock.visibilityChanged.connect(action.setChecked)
        window_menu.addAction(action)

    def _toggle_dock(self, dock: QDockWidget, visible: bool) -> None:
        if visible:
            dock.show()
            dock.raise_()
        else:
            dock.hide()

    def _export_chart_png(self) -> None:
        default_path = os.path.join(os.path.expanduser('~'), 'valuechart.png')
        path, _ = QFileDialog.getSaveFileName(
            self,
            'Export Chart as PNG',
            default_path,
            'PNG Image (*.png)',
        )
        if not path:
            return
        if not path.lower().endswith('.png'):
            path = f'{path}.png'
        try:
            self.chart_view.export_chart_png(path)
        except Exception as exc:
            self.error_dock.append_error(f'Export failed: {exc}')

    def _save_layout(self) -> None:
        self._settings.setValue('geometry', self.saveGeometry())
        self._settings.setValue('windowState', self.saveState())

    def _restore_layout(self) -> None:
        geometry = self._settings.value('geometry')
        window_state = self._settings.value('windowState')
        if geometry is not None:
            self.restoreGeometry(geometry)
        if window_state is not None:
            self.restoreState(window_state)
