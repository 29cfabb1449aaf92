from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import time
from typing import Mapping, Optional, Tuple

from .models import DAY_MS


@dataclass(frozen=True)
class EngineConfig:
    reference_tz: str = "America/New_York"
    pre_open: time = time(4, 0)
    market_open: time = time(9, 30)
    market_close: time = time(16, 0)
    after_hours_close: time = time(20, 0)
    # Max distance between a chart timestamp and the benchmark sample paired with it (inclusive).
    benchmark_tolerance_days: float = 3.0
    smoothing_weights: Tuple[float, float, float] = (0.15, 0.70, 0.15)
    live_extend_after_ms: int = 10_000
    intraday_poll_ms: int = 15_000
    plot_left: float = 0.0
    plot_width: float = 800.0
    api_base_url: str = "http://127.0.0.1:3001/api"
    benchmark_ticker: str = "SPY"
    http_timeout_sec: float = 10.0

    @property
    def benchmark_tolerance_ms(self) -> int:
        return int(self.benchmark_tolerance_days * DAY_MS)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        env = os.environ if environ is None else environ
        cfg = cls()
        api_url = env.get("VALUECHART_API_URL")
        if api_url is not None:
            cfg = replace(cfg, api_base_url=api_url.rstrip("/"))
        ticker = env.get("VALUECHART_BENCHMARK")
        if ticker:
            cfg = replace(cfg, benchmark_ticker=ticker.strip().upper())
        tz_name = env.get("VALUECHART_TZ")
        if tz_name:
            cfg = replace(cfg, reference_tz=tz_name.strip())
        tolerance = env.get("VALUECHART_TOLERANCE_DAYS")
        if tolerance:
            try:
                cfg = replace(cfg, benchmark_tolerance_days=float(tolerance))
            except ValueError as exc:
                raise ValueError(f"VALUECHART_TOLERANCE_DAYS must be a number, got {tolerance!r}") from exc
        return cfg


DEFAULT_CONFIG = EngineConfig()
