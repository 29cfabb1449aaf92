from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_CONFIG, EngineConfig
from .measurement import change_from
from .models import BenchmarkComparison, BenchmarkPoint, Measurement, Period


class BenchmarkNormalizer:
    """
    Put a benchmark close series on the primary series' scale and timeline.

    Candle sequences are expected in ascending time order (the providers sort them).
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.tolerance_ms = config.benchmark_tolerance_ms
        self.weights = tuple(float(w) for w in config.smoothing_weights)

    def _match(self, candles: Sequence[BenchmarkPoint], targets: Sequence[int]) -> Tuple[np.ndarray, np.ndarray]:
        ctimes = np.fromiter((c.time for c in candles), dtype=np.int64, count=len(candles))
        tgt = np.asarray(targets, dtype=np.int64)
        last = len(candles) - 1
        pos = np.searchsorted(ctimes, tgt, side="left")
        before = np.clip(pos - 1, 0, last)
        after = np.clip(pos, 0, last)
        d_before = np.abs(tgt - ctimes[before])
        d_after = np.abs(ctimes[after] - tgt)
        # Equal distance keeps the earlier candle.
        take_before = d_before <= d_after
        idx = np.where(take_before, before, after)
        dist = np.where(take_before, d_before, d_after)
        return idx, dist <= self.tolerance_ms

    def nearest_index(self, candles: Sequence[BenchmarkPoint], target_ms: int) -> Optional[int]:
        if not candles:
            return None
        idx, ok = self._match(candles, [int(target_ms)])
        if not bool(ok[0]):
            return None
        return int(idx[0])

    def daily_return(self, candles: Sequence[BenchmarkPoint], start_ms: int, end_ms: int) -> Optional[float]:
        """
        Benchmark return from daily closes.

        A daily close is end-of-day state, so the baseline is the close of the trading
        day before the candle nearest `start_ms`. Using that candle itself would make
        same-day and adjacent-day measurements compare a close with itself (0%).
        """
        start_idx = self.nearest_index(candles, start_ms)
        end_idx = self.nearest_index(candles, end_ms)
        if start_idx is None or end_idx is None:
            return None
        base_idx = start_idx - 1 if start_idx > 0 else start_idx
        base_close = candles[base_idx].close
        if base_close == 0:
            return None
        return ((candles[end_idx].close - base_close) / base_close) * 100.0

    def intraday_return(self, candles: Sequence[BenchmarkPoint], start_ms: int, end_ms: int) -> Optional[float]:
        start_idx = self.nearest_index(candles, start_ms)
        end_idx = self.nearest_index(candles, end_ms)
        if start_idx is None or end_idx is None:
            return None
        start_close = candles[start_idx].close
        if start_close == 0:
            return None
        return ((candles[end_idx].close - start_close) / start_close) * 100.0

    def compare(
        self,
        measurement: Optional[Measurement],
        candles: Sequence[BenchmarkPoint],
        intraday: bool,
    ) -> Optional[BenchmarkComparison]:
        if measurement is None or not candles:
            return None
        if intraday:
            ret = self.intraday_return(candles, measurement.start_time, measurement.end_time)
        else:
            ret = self.daily_return(candles, measurement.start_time, measurement.end_time)
        if ret is None:
            return None
        return BenchmarkComparison(benchmark_return=ret, outperformance=measurement.percent_change - ret)

    def overlay(
        self,
        times: Sequence[int],
        candles: Sequence[BenchmarkPoint],
        start_value: float,
    ) -> Optional[List[float]]:
        if len(times) < 2 or not candles:
            return None
        idx, ok = self._match(candles, times)
        if not bool(ok[0]):
            return None
        start_close = candles[int(idx[0])].close
        if start_close == 0:
            return None
        closes = np.fromiter((c.close for c in candles), dtype=np.float64, count=len(candles))
        out: List[float] = []
        last_value = float(start_value)
        for j in range(len(times)):
            # No nearby sample (e.g. pre-market with no benchmark prints): hold the previous value.
            if ok[j]:
                last_value = float(closes[idx[j]] / start_close * start_value)
            out.append(last_value)
        return out

    def smooth(self, values: Sequence[float]) -> List[float]:
        vals = np.asarray(values, dtype=np.float64)
        if vals.shape[0] < 3:
            return [float(v) for v in vals]
        w_prev, w_mid, w_next = self.weights
        out = vals.copy()
        out[1:-1] = vals[:-2] * w_prev + vals[1:-1] * w_mid + vals[2:] * w_next
        return [float(v) for v in out]

    @staticmethod
    def select_candles(
        period: Period,
        daily: Sequence[BenchmarkPoint],
        intraday: Sequence[BenchmarkPoint],
    ) -> Tuple[Sequence[BenchmarkPoint], bool]:
        if period in (Period.D1, Period.W1, Period.M1) and intraday:
            return intraday, True
        return daily, False

    @staticmethod
    def hover_comparison(
        display_value: float,
        benchmark_value: float,
        period_start_value: float,
    ) -> Tuple[float, float]:
        _, bench_pct = change_from(benchmark_value, period_start_value)
        _, display_pct = change_from(display_value, period_start_value)
        return bench_pct, display_pct - bench_pct
