import logging
from typing import Any, Dict, List, Optional

import requests

from engine.config import DEFAULT_CONFIG, EngineConfig
from engine.coordinator import KIND_BENCHMARK_DAILY, KIND_BENCHMARK_INTRADAY, KIND_SERIES
from engine.models import BenchmarkPoint, FetchRequest, Period, Series

log = logging.getLogger(__name__)


def _get_json(url: str, config: EngineConfig, params: Optional[Dict[str, str]] = None) -> Any:
    log.debug("GET %s params=%s", url, params)
    resp = requests.get(url, params=params, timeout=config.http_timeout_sec)
    resp.raise_for_status()
    return resp.json()


def fetch_series(period: Period, ticker: Optional[str] = None, config: EngineConfig = DEFAULT_CONFIG) -> Series:
    base = config.api_base_url
    if ticker:
        url = f"{base}/market/chart/{ticker.upper()}"
    else:
        url = f"{base}/portfolio/chart"
    payload = _get_json(url, config, params={"period": period.value})
    series = Series.from_payload(payload)
    if any(b.time < a.time for a, b in zip(series.points, series.points[1:])):
        raise ValueError(f"Chart points for {period.value} are not in ascending time order")
    return series


def parse_candles(payload: Any, what: str) -> List[BenchmarkPoint]:
    items = payload.get("candles") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise ValueError(f"{what} payload must be a list of candles")
    candles: List[BenchmarkPoint] = []
    for item in items:
        try:
            candles.append(BenchmarkPoint.from_payload(item))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Bad {what} candle {item!r}: {exc}") from exc
    candles.sort(key=lambda c: c.time)
    return candles


def fetch_benchmark_closes(ticker: str, config: EngineConfig = DEFAULT_CONFIG) -> List[BenchmarkPoint]:
    url = f"{config.api_base_url}/market/benchmark/{ticker.upper()}/closes"
    return parse_candles(_get_json(url, config), "benchmark")


def fetch_intraday_candles(ticker: str, config: EngineConfig = DEFAULT_CONFIG) -> List[BenchmarkPoint]:
    url = f"{config.api_base_url}/market/intraday/{ticker.upper()}"
    return parse_candles(_get_json(url, config), "intraday")


def fetch_hourly_candles(ticker: str, period: Period, config: EngineConfig = DEFAULT_CONFIG) -> List[BenchmarkPoint]:
    if period not in (Period.W1, Period.M1):
        raise ValueError(f"Hourly candles are only served for 1W and 1M, not {period.value}")
    url = f"{config.api_base_url}/market/hourly/{ticker.upper()}"
    return parse_candles(_get_json(url, config, params={"period": period.value}), "hourly")


def fetch_for_request(request: FetchRequest, config: EngineConfig = DEFAULT_CONFIG) -> Any:
    if request.kind == KIND_SERIES:
        return fetch_series(request.period, request.ticker, config)
    ticker = request.ticker or config.benchmark_ticker
    if request.kind == KIND_BENCHMARK_DAILY:
        return fetch_benchmark_closes(ticker, config)
    if request.kind == KIND_BENCHMARK_INTRADAY:
        if request.period is Period.D1:
            return fetch_intraday_candles(ticker, config)
        return fetch_hourly_candles(ticker, request.period, config)
    raise ValueError(f"Unknown fetch kind: {request.kind}")
