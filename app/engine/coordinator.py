from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .models import BenchmarkPoint, CacheEntry, FetchRequest, Period, Series
from .session import SessionWindowCalculator

log = logging.getLogger(__name__)

KIND_SERIES = "series"
KIND_BENCHMARK_DAILY = "benchmark_daily"
KIND_BENCHMARK_INTRADAY = "benchmark_intraday"

DoneCallback = Callable[[FetchRequest, Any], None]
FailCallback = Callable[[FetchRequest, str], None]
Launcher = Callable[[FetchRequest, DoneCallback, FailCallback], None]


class RequestSequencer:
    def __init__(self) -> None:
        self._counter = 0
        self._latest: Dict[str, int] = {}

    def issue(self, stream: str) -> int:
        self._counter += 1
        self._latest[stream] = self._counter
        return self._counter

    def latest(self, stream: str) -> Optional[int]:
        return self._latest.get(stream)

    def is_current(self, stream: str, request_id: int) -> bool:
        return self._latest.get(stream) == request_id


class SeriesCache:
    """One entry per period. Entries are replaced wholesale, never merged."""

    def __init__(self) -> None:
        self._entries: Dict[Period, CacheEntry] = {}

    def get(self, period: Period) -> Optional[CacheEntry]:
        return self._entries.get(period)

    def put(self, entry: CacheEntry) -> bool:
        existing = self._entries.get(entry.period)
        if existing is not None and existing.request_id > entry.request_id:
            return False
        self._entries[entry.period] = entry
        return True

    def clear(self) -> None:
        self._entries.clear()

    def periods(self) -> List[Period]:
        return list(self._entries.keys())

    def __contains__(self, period: object) -> bool:
        return period in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ChartDataCoordinator:
    """
    Cache-first, single-flight loader for chart series plus the benchmark feeds.

    At most one series fetch runs at a time. A request made meanwhile takes the single
    pending slot (latest wins) and runs when the in-flight fetch settles. Every request
    gets a sequence id when issued; only the newest id per stream may touch displayed state.
    """

    def __init__(
        self,
        launcher: Launcher,
        cache: Optional[SeriesCache] = None,
        ticker: Optional[str] = None,
        benchmark_ticker: str = DEFAULT_CONFIG.benchmark_ticker,
        clock: Callable[[], float] = time.time,
        on_series: Optional[Callable[[Period, Series], None]] = None,
        on_benchmark: Optional[Callable[[str], None]] = None,
        on_loading: Optional[Callable[[bool], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._launcher = launcher
        self.cache = cache if cache is not None else SeriesCache()
        self.ticker = ticker
        self.benchmark_ticker = benchmark_ticker
        self._clock = clock
        self.on_series = on_series
        self.on_benchmark = on_benchmark
        self.on_loading = on_loading
        self.on_error = on_error

        self._lock = threading.RLock()
        self._sequencer = RequestSequencer()
        self._in_flight: Optional[FetchRequest] = None
        self._pending: Optional[FetchRequest] = None
        self._daily_requested = False
        self._closed = False
        # Series results with an id at or below this were issued before the last reset.
        self._reset_floor = 0
        self.loading = False
        self.period: Optional[Period] = None
        self.series: Optional[Series] = None
        self.daily_benchmark: Tuple[BenchmarkPoint, ...] = ()
        self.intraday_benchmark: Tuple[BenchmarkPoint, ...] = ()

    @property
    def in_flight(self) -> Optional[FetchRequest]:
        return self._in_flight

    @property
    def pending(self) -> Optional[FetchRequest]:
        return self._pending

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, period: Period) -> Optional[Series]:
        with self._lock:
            if self._closed:
                return None
            self.period = period
            entry = self.cache.get(period)
            if entry is not None:
                self.series = entry.series
                self._request_locked(period, silent=True, coalesce=True)
            else:
                self.series = None
                self._request_locked(period, silent=False, coalesce=True)
            loading_changed = self._sync_loading_locked()
            result = self.series
        self._emit_loading(loading_changed)
        return result

    def refresh(self, period: Optional[Period] = None, silent: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            target = period or self.period
            if target is None:
                return
            self._request_locked(target, silent=silent, coalesce=False)
            loading_changed = self._sync_loading_locked()
        self._emit_loading(loading_changed)

    def reset(self) -> None:
        with self._lock:
            if self._closed:
                return
            self.cache.clear()
            self.series = None
            self._reset_floor = self._sequencer.latest(KIND_SERIES) or 0
            if self.period is not None:
                self._request_locked(self.period, silent=False, coalesce=False)
            loading_changed = self._sync_loading_locked()
        self._emit_loading(loading_changed)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._pending = None
            self.cache.clear()
            self.series = None
            self.daily_benchmark = ()
            self.intraday_benchmark = ()

    def load_benchmarks(self, period: Period) -> None:
        requests: List[FetchRequest] = []
        with self._lock:
            if self._closed:
                return
            if not self._daily_requested:
                self._daily_requested = True
                rid = self._sequencer.issue(KIND_BENCHMARK_DAILY)
                requests.append(FetchRequest(rid, KIND_BENCHMARK_DAILY, None, True, self.benchmark_ticker))
            # Issuing an id even when nothing is fetched invalidates any older intraday result.
            rid = self._sequencer.issue(KIND_BENCHMARK_INTRADAY)
            if period in (Period.D1, Period.W1, Period.M1):
                requests.append(FetchRequest(rid, KIND_BENCHMARK_INTRADAY, period, True, self.benchmark_ticker))
            else:
                self.intraday_benchmark = ()
        for req in requests:
            self._launcher(req, self._on_done, self._on_failed)

    def _request_locked(self, period: Period, silent: bool, coalesce: bool) -> None:
        if coalesce:
            latest = self._sequencer.latest(KIND_SERIES)
            for queued in (self._in_flight, self._pending):
                if queued is not None and queued.period == period and queued.request_id == latest:
                    return
        rid = self._sequencer.issue(KIND_SERIES)
        req = FetchRequest(rid, KIND_SERIES, period, silent, self.ticker)
        if self._in_flight is not None:
            if self._pending is not None:
                log.debug("Replacing pending chart request #%s with #%s", self._pending.request_id, rid)
            self._pending = req
            return
        self._launch_locked(req)

    def _launch_locked(self, req: FetchRequest) -> None:
        self._in_flight = req
        log.debug("Fetching chart %s (request #%s, silent=%s)", req.period.value, req.request_id, req.silent)
        self._launcher(req, self._on_done, self._on_failed)

    def _sync_loading_locked(self) -> bool:
        loading = self._in_flight is not None and not self._in_flight.silent
        changed = loading != self.loading
        self.loading = loading
        return changed

    def _emit_loading(self, changed: bool) -> None:
        if changed and self.on_loading is not None:
            self.on_loading(self.loading)

    def _settle_series_locked(self, request: FetchRequest) -> None:
        if self._in_flight is not None and self._in_flight.request_id == request.request_id:
            self._in_flight = None
        if self._in_flight is None and self._pending is not None and not self._closed:
            nxt = self._pending
            self._pending = None
            self._launch_locked(nxt)

    def _on_done(self, request: FetchRequest, payload: Any) -> None:
        if request.kind == KIND_SERIES:
            self._on_series_done(request, payload)
        else:
            self._on_benchmark_done(request, payload)

    def _show_cached_locked(self, period: Optional[Period]) -> Optional[Series]:
        if period is None or period != self.period or self.series is not None:
            return None
        entry = self.cache.get(period)
        if entry is None:
            return None
        self.series = entry.series
        return entry.series

    def _on_series_done(self, request: FetchRequest, series: Series) -> None:
        applied = None
        with self._lock:
            if request.request_id <= self._reset_floor:
                log.debug("Discarding chart result #%s issued before the cache reset", request.request_id)
            elif not self._closed:
                self.cache.put(CacheEntry(request.period, series, self._clock(), request.request_id))
                if self._sequencer.is_current(KIND_SERIES, request.request_id) and request.period == self.period:
                    self.series = series
                    applied = series
                else:
                    log.debug("Discarding superseded chart result #%s (%s)", request.request_id, request.period.value)
            self._settle_series_locked(request)
            loading_changed = self._sync_loading_locked()
        if applied is not None and self.on_series is not None:
            self.on_series(request.period, applied)
        self._emit_loading(loading_changed)

    def _on_benchmark_done(self, request: FetchRequest, candles: Iterable[BenchmarkPoint]) -> None:
        with self._lock:
            if self._closed or not self._sequencer.is_current(request.kind, request.request_id):
                log.debug("Discarding superseded %s result #%s", request.kind, request.request_id)
                return
            ordered = tuple(sorted(candles, key=lambda c: c.time))
            if request.kind == KIND_BENCHMARK_DAILY:
                self.daily_benchmark = ordered
            else:
                self.intraday_benchmark = ordered
        if self.on_benchmark is not None:
            self.on_benchmark(request.kind)

    def _on_failed(self, request: FetchRequest, message: str) -> None:
        label = request.period.value if request.period is not None else request.ticker
        log.warning("%s fetch failed (%s, request #%s): %s", request.kind, label, request.request_id, message)
        fallback = None
        with self._lock:
            if request.kind == KIND_SERIES:
                # Nothing on screen yet: show the last good result for this period.
                if not self._closed and self._sequencer.is_current(KIND_SERIES, request.request_id):
                    fallback = self._show_cached_locked(request.period)
                self._settle_series_locked(request)
            elif request.kind == KIND_BENCHMARK_DAILY:
                self._daily_requested = False
            elif self._sequencer.is_current(request.kind, request.request_id):
                # Never pair a new period with the previous period's intraday candles.
                self.intraday_benchmark = ()
            loading_changed = self._sync_loading_locked()
            closed = self._closed
        if fallback is not None and self.on_series is not None:
            self.on_series(request.period, fallback)
        self._emit_loading(loading_changed)
        if not closed and self.on_error is not None:
            self.on_error(f"{request.kind} fetch failed: {message}")


def poll_interval_ms(
    period: Optional[Period],
    now_ms: int,
    calculator: SessionWindowCalculator,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[int]:
    if period is not Period.D1:
        return None
    if not calculator.in_extended_hours(now_ms):
        return None
    return config.intraday_poll_ms
