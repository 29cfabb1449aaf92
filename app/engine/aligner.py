from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_CONFIG, EngineConfig
from .models import Period, SessionWindow, TimePoint
from .session import SessionWindowCalculator


class TimeSeriesAligner:
    """
    Map between point indices and horizontal plot coordinates.

    1D charts are time-proportional inside the session window (pre-market open to
    after-hours close). Every other period is index-proportional, so overnight and
    weekend gaps take no horizontal space.
    """

    def __init__(
        self,
        times: Sequence[int],
        period: Period,
        window: Optional[SessionWindow] = None,
        plot_left: float = 0.0,
        plot_width: float = 800.0,
    ) -> None:
        if plot_width <= 0:
            raise ValueError(f"plot_width must be positive, got {plot_width}")
        self.times = np.asarray(times, dtype=np.int64)
        self.period = period
        self.window = window if period.is_intraday else None
        self.plot_left = float(plot_left)
        self.plot_width = float(plot_width)

    @classmethod
    def for_points(
        cls,
        points: Sequence[TimePoint],
        period: Period,
        calculator: SessionWindowCalculator,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> "TimeSeriesAligner":
        times = [p.time for p in points]
        window = None
        if period.is_intraday and len(times) > 1:
            window = calculator.window_for(calculator.reference_timestamp(times))
        return cls(times, period, window, plot_left=config.plot_left, plot_width=config.plot_width)

    def __len__(self) -> int:
        return int(self.times.shape[0])

    @property
    def is_intraday(self) -> bool:
        return self.window is not None and self.window.span_ms > 0 and len(self) >= 2

    @property
    def plot_right(self) -> float:
        return self.plot_left + self.plot_width

    def x_for_index(self, index: int) -> float:
        n = len(self)
        if n < 2:
            return self.plot_left + self.plot_width / 2
        i = min(max(int(index), 0), n - 1)
        if self.is_intraday:
            window = self.window
            ratio = (int(self.times[i]) - window.pre_open) / window.span_ms
            ratio = max(0.0, min(1.0, ratio))
        else:
            ratio = i / (n - 1)
        return self.plot_left + ratio * self.plot_width

    def positions(self) -> np.ndarray:
        n = len(self)
        if n == 0:
            return np.zeros(0, dtype=np.float64)
        if n < 2:
            return np.full(n, self.plot_left + self.plot_width / 2, dtype=np.float64)
        if self.is_intraday:
            window = self.window
            ratios = np.clip((self.times - window.pre_open) / float(window.span_ms), 0.0, 1.0)
        else:
            ratios = np.arange(n, dtype=np.float64) / (n - 1)
        return self.plot_left + ratios * self.plot_width

    def nearest_index(self, x: float) -> int:
        n = len(self)
        if n < 2:
            return 0
        x = float(x)
        if math.isnan(x):
            return 0
        if math.isinf(x):
            x = self.plot_left if x < 0 else self.plot_right
        if self.is_intraday:
            window = self.window
            ratio = (x - self.plot_left) / self.plot_width
            target = window.pre_open + ratio * window.span_ms
            dist = np.abs(self.times.astype(np.float64) - target)
        else:
            dist = np.abs(self.positions() - x)
        # argmin returns the first minimum, so ties resolve to the earlier sample.
        return int(np.argmin(dist))

    def day_labels(self, calculator: SessionWindowCalculator, max_labels: int = 6) -> List[Tuple[str, float]]:
        if self.period.is_intraday or len(self) < 2:
            return []
        bounds: List[Tuple[str, int]] = []
        prev_label = ""
        start_idx = 0
        n = len(self)
        for i in range(n + 1):
            label = _day_label(calculator, int(self.times[i])) if i < n else ""
            if label != prev_label:
                if prev_label:
                    bounds.append((prev_label, (start_idx + i - 1) // 2))
                start_idx = i
                prev_label = label
        step = max(1, math.ceil(len(bounds) / max(1, max_labels)))
        return [(label, self.x_for_index(mid)) for label, mid in bounds[::step]]

    def session_ticks(self, calculator: SessionWindowCalculator, step_hours: int = 4) -> List[Tuple[str, float]]:
        if not self.is_intraday:
            return []
        window = self.window
        step_ms = int(step_hours) * 3_600_000
        ticks: List[Tuple[str, float]] = []
        ts = window.pre_open
        while ts <= window.after_hours_close:
            ratio = (ts - window.pre_open) / window.span_ms
            local = calculator.local_datetime(ts)
            hour = local.hour % 12 or 12
            ticks.append((f"{hour} {'AM' if local.hour < 12 else 'PM'}", self.plot_left + ratio * self.plot_width))
            ts += step_ms
        return ticks


def _day_label(calculator: SessionWindowCalculator, ts_ms: int) -> str:
    local = calculator.local_datetime(ts_ms)
    return f"{local:%b} {local.day}"
