from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

DAY_MS = 86_400_000


class Period(str, Enum):
    D1 = "1D"
    W1 = "1W"
    M1 = "1M"
    M3 = "3M"
    YTD = "YTD"
    Y1 = "1Y"
    ALL = "ALL"

    @classmethod
    def parse(cls, text: str) -> "Period":
        value = str(text or "").strip().upper()
        if value == "MAX":
            # The stock chart names the full history MAX.
            value = "ALL"
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Unknown chart period: {text!r}")

    @property
    def is_intraday(self) -> bool:
        return self is Period.D1

    @property
    def is_session_filtered(self) -> bool:
        return self in (Period.W1, Period.M1)


PERIODS: Tuple[Period, ...] = tuple(Period)


def parse_time_ms(raw: Any) -> int:
    """
    Accept epoch ms (int/float/digit string) or an ISO-8601 timestamp.

    Naive ISO strings are treated as UTC; the API always sends offsets or `Z`.
    """
    if isinstance(raw, bool):
        raise ValueError(f"Invalid timestamp: {raw!r}")
    if isinstance(raw, (int, float)):
        return int(raw)
    text = str(raw).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


@dataclass(frozen=True)
class TimePoint:
    time: int
    value: float


@dataclass(frozen=True)
class Series:
    points: Tuple[TimePoint, ...]
    period_start_value: float

    def __post_init__(self) -> None:
        # Callers may hand in lists; store a tuple so the series can't be mutated in place.
        if not isinstance(self.points, tuple):
            object.__setattr__(self, "points", tuple(self.points))

    def __len__(self) -> int:
        return len(self.points)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[int, float]], period_start_value: Optional[float] = None) -> "Series":
        points = tuple(TimePoint(int(t), float(v)) for t, v in pairs)
        if period_start_value is None:
            period_start_value = points[0].value if points else 0.0
        return cls(points=points, period_start_value=float(period_start_value))

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Series":
        if not isinstance(payload, dict):
            raise ValueError("Chart payload must be an object")
        raw_points = payload.get("points")
        if raw_points is None:
            raise ValueError("Chart payload is missing 'points'")
        points = []
        for item in raw_points:
            try:
                points.append(TimePoint(parse_time_ms(item["time"]), float(item["value"])))
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"Bad chart point {item!r}: {exc}") from exc
        start = payload.get("periodStartValue")
        if start is None:
            start = points[0].value if points else 0.0
        return cls(points=tuple(points), period_start_value=float(start))


@dataclass(frozen=True)
class SessionWindow:
    trading_date: date
    pre_open: int
    market_open: int
    market_close: int
    after_hours_close: int

    @property
    def span_ms(self) -> int:
        return self.after_hours_close - self.pre_open

    def contains(self, ts_ms: int) -> bool:
        return self.pre_open <= ts_ms <= self.after_hours_close

    def phase(self, ts_ms: int) -> str:
        if self.pre_open <= ts_ms < self.market_open:
            return "PRE"
        if self.market_open <= ts_ms < self.market_close:
            return "REG"
        if self.market_close <= ts_ms < self.after_hours_close:
            return "POST"
        return "CLOSED"


@dataclass(frozen=True)
class BenchmarkPoint:
    time: int
    close: float

    @classmethod
    def from_payload(cls, item: Dict[str, Any]) -> "BenchmarkPoint":
        raw_time = item.get("time")
        if raw_time is None:
            # Daily closes may only carry a YYYY-MM-DD date; pin them to noon UTC.
            day = item.get("date")
            if not day:
                raise ValueError(f"Benchmark candle has no time/date: {item!r}")
            raw_time = f"{str(day)[:10]}T12:00:00+00:00"
        return cls(time=parse_time_ms(raw_time), close=float(item["close"]))


@dataclass(frozen=True)
class Measurement:
    start_index: int
    end_index: int
    start_value: float
    end_value: float
    start_time: int
    end_time: int
    dollar_change: float
    percent_change: float
    days_between: int


@dataclass(frozen=True)
class BenchmarkComparison:
    benchmark_return: float
    outperformance: float


@dataclass
class CacheEntry:
    period: Period
    series: Series
    fetched_at: float
    request_id: int = 0


@dataclass(frozen=True)
class FetchRequest:
    request_id: int
    kind: str
    period: Optional[Period] = None
    silent: bool = False
    ticker: Optional[str] = None

    @property
    def stream(self) -> str:
        return self.kind
