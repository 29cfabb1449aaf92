from __future__ import annotations

import argparse
import json
import logging
import time
from typing import List, Optional, Sequence, Tuple

from engine.benchmark import BenchmarkNormalizer
from engine.config import EngineConfig
from engine.data_providers import portfolio_api
from engine.formatting import format_change, format_currency, format_days, format_pct, format_short_date
from engine.measurement import measure
from engine.models import BenchmarkPoint, Period, Series
from engine.session import SessionWindowCalculator

log = logging.getLogger(__name__)


def _load_json(path: str):
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except OSError as exc:
        raise SystemExit(f"Cannot read {path}: {exc}")
    except json.JSONDecodeError as exc:
        raise SystemExit(f"{path} is not valid JSON: {exc}")


def _load_series(args, period: Period, cfg: EngineConfig) -> Series:
    if args.series:
        try:
            return Series.from_payload(_load_json(args.series))
        except ValueError as exc:
            raise SystemExit(f"Bad series file {args.series}: {exc}")
    log.info("Fetching %s chart from %s", period.value, cfg.api_base_url)
    return portfolio_api.fetch_series(period, args.ticker, cfg)


def _load_benchmark(args, period: Period, cfg: EngineConfig) -> Tuple[List[BenchmarkPoint], bool]:
    if args.benchmark:
        try:
            candles = portfolio_api.parse_candles(_load_json(args.benchmark), "benchmark")
        except ValueError as exc:
            raise SystemExit(f"Bad benchmark file {args.benchmark}: {exc}")
        return candles, bool(args.intraday)
    if args.series or args.no_benchmark:
        return [], False
    if args.intraday and period in (Period.D1, Period.W1, Period.M1):
        if period is Period.D1:
            return portfolio_api.fetch_intraday_candles(cfg.benchmark_ticker, cfg), True
        return portfolio_api.fetch_hourly_candles(cfg.benchmark_ticker, period, cfg), True
    return portfolio_api.fetch_benchmark_closes(cfg.benchmark_ticker, cfg), False


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Measure the change between two points of a value chart (no UI).")
    ap.add_argument("--series", help="Chart payload JSON ({points: [{time, value}], periodStartValue}). Fetched from the API when omitted.")
    ap.add_argument("--benchmark", help="Benchmark closes JSON ([{date, time?, close}]).")
    ap.add_argument("--ticker", help="Chart a single ticker instead of the portfolio (API mode only).")
    ap.add_argument("--period", default="1D", help="1D, 1W, 1M, 3M, YTD, 1Y or ALL (default: 1D)")
    ap.add_argument("--start", type=int, required=True, help="Index of the first selected point")
    ap.add_argument("--end", type=int, required=True, help="Index of the second selected point")
    ap.add_argument("--intraday", action="store_true", help="Treat benchmark candles as intraday (direct start/end match).")
    ap.add_argument("--no-benchmark", action="store_true", help="Skip the benchmark comparison in API mode.")
    ap.add_argument("--json", action="store_true", help="Print the result as JSON.")
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        period = Period.parse(args.period)
        cfg = EngineConfig.from_env()
    except ValueError as exc:
        raise SystemExit(str(exc))

    calculator = SessionWindowCalculator(cfg)
    series = _load_series(args, period, cfg)
    points = calculator.prepare_points(series, period, now_ms=int(time.time() * 1000))
    if len(points) < 2:
        raise SystemExit(f"Need at least two points to measure, got {len(points)}.")

    result = measure(points, args.start, args.end)
    if result is None:
        lo, hi = sorted((args.start, args.end))
        if lo < 0 or hi >= len(points):
            raise SystemExit(f"Indices out of range: start={args.start} end={args.end} points={len(points)}")
        raise SystemExit("Cannot measure from a zero starting value.")

    candles, intraday = _load_benchmark(args, period, cfg)
    comparison = BenchmarkNormalizer(cfg).compare(result, candles, intraday)

    if args.json:
        out = {
            "period": period.value,
            "points": len(points),
            "startIndex": result.start_index,
            "endIndex": result.end_index,
            "startTime": result.start_time,
            "endTime": result.end_time,
            "startValue": result.start_value,
            "endValue": result.end_value,
            "dollarChange": result.dollar_change,
            "percentChange": result.percent_change,
            "daysBetween": result.days_between,
            "benchmark": None,
        }
        if comparison is not None:
            out["benchmark"] = {
                "ticker": cfg.benchmark_ticker,
                "return": comparison.benchmark_return,
                "outperformance": comparison.outperformance,
            }
        print(json.dumps(out, indent=2))
        return 0

    is_1d = period is Period.D1
    start_label = format_short_date(result.start_time, is_1d, calculator)
    end_label = format_short_date(result.end_time, is_1d, calculator)
    print(f"period={period.value} points={len(points)} range=[{result.start_index}..{result.end_index}] {start_label} -> {end_label}")
    print(f"value={format_currency(result.start_value)} -> {format_currency(result.end_value)}")
    print(f"change={format_change(result.dollar_change)} pct={format_pct(result.percent_change)} days={format_days(result.days_between)}")
    if comparison is not None:
        print(
            f"benchmark={cfg.benchmark_ticker} return={format_pct(comparison.benchmark_return)} "
            f"outperformance={format_pct(comparison.outperformance)}"
        )
    elif candles:
        print(f"benchmark={cfg.benchmark_ticker} comparison unavailable (no sample within {cfg.benchmark_tolerance_days:g} days)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
