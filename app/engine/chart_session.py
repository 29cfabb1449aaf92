from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .aligner import TimeSeriesAligner
from .benchmark import BenchmarkNormalizer
from .config import DEFAULT_CONFIG, EngineConfig
from .coordinator import ChartDataCoordinator, Launcher, SeriesCache, poll_interval_ms
from .measurement import MeasurementSelection, SelectionState, change_from, measure, period_return
from .models import BenchmarkComparison, BenchmarkPoint, Measurement, Period, Series, SessionWindow, TimePoint
from .session import SessionWindowCalculator


@dataclass(frozen=True)
class DisplayState:
    value: float
    change: float
    change_pct: float
    hover_index: Optional[int]
    period_return: Optional[float]


class ChartSession:
    """
    Controller for one chart view: owns the series cache, the loader, and the selection.

    Created when the view mounts and closed when it goes away, so no state is shared
    between two charts.
    """

    def __init__(
        self,
        launcher: Launcher,
        config: EngineConfig = DEFAULT_CONFIG,
        ticker: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        on_change: Optional[Callable[[], None]] = None,
        on_loading: Optional[Callable[[bool], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.config = config
        self.calculator = SessionWindowCalculator(config)
        self.normalizer = BenchmarkNormalizer(config)
        self.selection = MeasurementSelection()
        self.cache = SeriesCache()
        self._clock = clock
        self.on_change = on_change
        self.coordinator = ChartDataCoordinator(
            launcher,
            cache=self.cache,
            ticker=ticker,
            benchmark_ticker=config.benchmark_ticker,
            clock=clock,
            on_series=self._on_series,
            on_benchmark=self._on_benchmark,
            on_loading=on_loading,
            on_error=on_error,
        )
        self.period: Period = Period.D1
        self.hover_index: Optional[int] = None
        self.show_benchmark = False
        self.live_value: Optional[float] = None
        self.points: Tuple[TimePoint, ...] = ()
        self.aligner = TimeSeriesAligner([], self.period, plot_left=config.plot_left, plot_width=config.plot_width)

    def open(self, period: Period = Period.D1) -> None:
        self.set_period(period, force=True)

    def close(self) -> None:
        self.coordinator.close()
        self.selection.clear()
        self.hover_index = None
        self.points = ()
        self.aligner = TimeSeriesAligner([], self.period, plot_left=self.config.plot_left, plot_width=self.config.plot_width)

    def set_period(self, period: Period, force: bool = False) -> bool:
        if period == self.period and not force:
            return False
        self.period = period
        self.hover_index = None
        self.selection.clear()
        self._rebuild(self.coordinator.get(period))
        self.coordinator.load_benchmarks(period)
        self._notify()
        return True

    def refresh(self, silent: bool = True) -> None:
        self.coordinator.refresh(self.period, silent=silent)

    def reset_cache(self) -> None:
        self.coordinator.reset()
        self._rebuild(self.coordinator.series)
        self._notify()

    def set_live_value(self, value: Optional[float]) -> None:
        self.live_value = value
        self._rebuild(self.coordinator.series)
        self._notify()

    def set_show_benchmark(self, show: bool) -> None:
        self.show_benchmark = bool(show)
        self._notify()

    @property
    def series(self) -> Optional[Series]:
        return self.coordinator.series

    @property
    def has_data(self) -> bool:
        return len(self.points) >= 2

    @property
    def period_start_value(self) -> float:
        series = self.coordinator.series
        if series is not None:
            return series.period_start_value
        return self.current_value

    @property
    def current_value(self) -> float:
        if self.live_value is not None:
            return self.live_value
        if self.points:
            return self.points[-1].value
        return 0.0

    def _rebuild(self, series: Optional[Series]) -> None:
        if series is None:
            self.points = ()
        else:
            now_ms = int(self._clock() * 1000)
            self.points = self.calculator.prepare_points(series, self.period, now_ms, self.live_value)
        self.aligner = TimeSeriesAligner.for_points(self.points, self.period, self.calculator, self.config)
        if not self.selection.fits(len(self.points)):
            self.selection.clear()
        if self.hover_index is not None and self.hover_index >= len(self.points):
            self.hover_index = None

    def _on_series(self, period: Period, series: Series) -> None:
        if period != self.period:
            return
        self._rebuild(series)
        self._notify()

    def _on_benchmark(self, kind: str) -> None:
        _ = kind
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def hover(self, x: float) -> Optional[int]:
        if not self.has_data:
            self.hover_index = None
            return None
        self.hover_index = self.aligner.nearest_index(x)
        return self.hover_index

    def leave(self) -> None:
        self.hover_index = None

    def click(self, x: float) -> SelectionState:
        if not self.has_data:
            return self.selection.state
        state = self.selection.select(self.aligner.nearest_index(x))
        self._notify()
        return state

    def select_pair(self, x0: float, x1: float) -> SelectionState:
        if not self.has_data:
            return self.selection.state
        state = self.selection.select_pair(self.aligner.nearest_index(x0), self.aligner.nearest_index(x1))
        self._notify()
        return state

    def clear_selection(self) -> None:
        self.selection.clear()
        self._notify()

    escape = clear_selection

    def measurement(self) -> Optional[Measurement]:
        pair = self.selection.pair()
        if pair is None:
            return None
        return measure(self.points, pair[0], pair[1])

    def benchmark_candles(self) -> Tuple[Sequence[BenchmarkPoint], bool]:
        return self.normalizer.select_candles(
            self.period,
            self.coordinator.daily_benchmark,
            self.coordinator.intraday_benchmark,
        )

    def benchmark_comparison(self) -> Optional[BenchmarkComparison]:
        candles, intraday = self.benchmark_candles()
        return self.normalizer.compare(self.measurement(), candles, intraday)

    def benchmark_overlay(self, smoothed: bool = False) -> Optional[List[float]]:
        if not self.show_benchmark or not self.has_data:
            return None
        candles, _ = self.benchmark_candles()
        values = self.normalizer.overlay([p.time for p in self.points], candles, self.period_start_value)
        if values is None or not smoothed:
            return values
        return self.normalizer.smooth(values)

    def hover_benchmark_value(self) -> Optional[float]:
        if self.hover_index is None:
            return None
        values = self.benchmark_overlay()
        if values is None or self.hover_index >= len(values):
            return None
        return values[self.hover_index]

    def display(self) -> DisplayState:
        hover_value = None
        if self.hover_index is not None and self.hover_index < len(self.points):
            hover_value = self.points[self.hover_index].value
        value = hover_value if hover_value is not None else self.current_value
        start = self.period_start_value
        change, pct = change_from(value, start)
        return DisplayState(
            value=value,
            change=change,
            change_pct=pct,
            hover_index=self.hover_index,
            period_return=period_return(self.current_value, start),
        )

    def session_window(self) -> Optional[SessionWindow]:
        if not self.aligner.is_intraday:
            return None
        return self.aligner.window

    def session_splits(self) -> Tuple[Optional[int], Optional[int]]:
        window = self.session_window()
        if window is None:
            return None, None
        return self.calculator.session_split_indices(self.points, window)

    def poll_interval_ms(self) -> Optional[int]:
        return poll_interval_ms(self.period, int(self._clock() * 1000), self.calculator, self.config)
