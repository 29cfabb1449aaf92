from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from .config import DEFAULT_CONFIG, EngineConfig
from .models import Period, Series, SessionWindow, TimePoint


class SessionWindowCalculator:
    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self.tz = ZoneInfo(config.reference_tz)

    def local_datetime(self, ts_ms: int) -> datetime:
        return datetime.fromtimestamp(ts_ms / 1000.0, tz=self.tz)

    def trading_date(self, ts_ms: int) -> date:
        return self.local_datetime(ts_ms).date()

    def is_weekday(self, ts_ms: int) -> bool:
        return self.local_datetime(ts_ms).weekday() < 5

    def _local_ms(self, day: date, clock: time) -> int:
        # zoneinfo resolves the UTC offset for this exact date, so DST switches land correctly.
        local = datetime.combine(day, clock, tzinfo=self.tz)
        return int(round(local.timestamp() * 1000))

    def window_for_date(self, day: date) -> SessionWindow:
        cfg = self.config
        return SessionWindow(
            trading_date=day,
            pre_open=self._local_ms(day, cfg.pre_open),
            market_open=self._local_ms(day, cfg.market_open),
            market_close=self._local_ms(day, cfg.market_close),
            after_hours_close=self._local_ms(day, cfg.after_hours_close),
        )

    def window_for(self, ts_ms: int) -> SessionWindow:
        return self.window_for_date(self.trading_date(ts_ms))

    def reference_timestamp(self, times: Sequence[int]) -> Optional[int]:
        """
        Pick the timestamp whose date defines "the" trading day of a 1D series.

        On weekends the feed appends a live Sat/Sun sample; taking the last raw point
        would select a non-trading day and filter out all of Friday.
        """
        if len(times) == 0:
            return None
        for ts in reversed(times):
            if self.is_weekday(int(ts)):
                return int(ts)
        return int(times[-1])

    def session_phase(self, ts_ms: int) -> str:
        if not self.is_weekday(ts_ms):
            return "CLOSED"
        return self.window_for(ts_ms).phase(ts_ms)

    def is_market_open(self, ts_ms: int) -> bool:
        return self.session_phase(ts_ms) == "REG"

    def in_extended_hours(self, ts_ms: int) -> bool:
        local = self.local_datetime(ts_ms)
        if local.weekday() >= 5:
            return False
        clock = local.time()
        return self.config.pre_open <= clock < self.config.after_hours_close

    def prepare_points(
        self,
        series: Series,
        period: Period,
        now_ms: Optional[int] = None,
        live_value: Optional[float] = None,
    ) -> Tuple[TimePoint, ...]:
        raw = series.points
        if not raw:
            return raw
        if period.is_intraday:
            ref = self.reference_timestamp([p.time for p in raw])
            window = self.window_for(ref)
            pts = tuple(p for p in raw if window.contains(p.time))
            if pts and now_ms is not None and live_value is not None:
                if now_ms - pts[-1].time > self.config.live_extend_after_ms and now_ms <= window.after_hours_close:
                    return pts + (TimePoint(int(now_ms), float(live_value)),)
            return pts if len(pts) >= 2 else raw
        if period.is_session_filtered:
            # Drop overnight and weekend samples; the index-based x axis closes the gaps.
            pts = tuple(p for p in raw if self.in_extended_hours(p.time))
            return pts if len(pts) >= 2 else raw
        return raw

    def session_split_indices(
        self,
        points: Sequence[TimePoint],
        window: SessionWindow,
    ) -> Tuple[Optional[int], Optional[int]]:
        return (
            _first_index_at_or_after(points, window.market_open),
            _first_index_at_or_after(points, window.market_close),
        )


def _first_index_at_or_after(points: Sequence[TimePoint], ts_ms: int) -> Optional[int]:
    for idx, point in enumerate(points):
        if point.time >= ts_ms:
            # A split at index 0 means the whole line is on one side; nothing to split.
            return idx if idx > 0 else None
    return None
