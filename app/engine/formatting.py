from __future__ import annotations

from typing import Optional

from .session import SessionWindowCalculator


def format_currency(value: float) -> str:
    sign = '-' if value < 0 else ''
    return f'{sign}${abs(value):,.2f}'


def format_change(value: float) -> str:
    sign = '+' if value >= 0 else '-'
    return f'{sign}${abs(value):,.2f}'


def format_pct(value: float) -> str:
    sign = '+' if value >= 0 else ''
    return f'{sign}{value:.2f}%'


def format_days(days: int) -> str:
    return '1 day' if days == 1 else f'{days} days'


def format_short_date(ts_ms: int, is_1d: bool, calculator: SessionWindowCalculator) -> str:
    local = calculator.local_datetime(ts_ms)
    if is_1d:
        hour = local.hour % 12 or 12
        suffix = 'AM' if local.hour < 12 else 'PM'
        return f'{hour}:{local.minute:02d} {suffix}'
    return f'{local:%b} {local.day}'


def format_optional_pct(value: Optional[float], missing: str = 'n/a') -> str:
    return missing if value is None else format_pct(value)
