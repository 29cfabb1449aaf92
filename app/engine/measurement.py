from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Sequence, Tuple

from .models import DAY_MS, Measurement, TimePoint


def compute_measurement(
    start_value: float,
    end_value: float,
    start_time: int,
    end_time: int,
    start_index: int = 0,
    end_index: int = 0,
) -> Optional[Measurement]:
    # A zero baseline has no percent change; report "cannot compute" instead of raising.
    if start_value == 0:
        return None
    dollar_change = end_value - start_value
    return Measurement(
        start_index=start_index,
        end_index=end_index,
        start_value=start_value,
        end_value=end_value,
        start_time=start_time,
        end_time=end_time,
        dollar_change=dollar_change,
        percent_change=(dollar_change / start_value) * 100.0,
        days_between=int(math.floor(abs(end_time - start_time) / DAY_MS + 0.5)),
    )


def measure(points: Sequence[TimePoint], index_a: int, index_b: int) -> Optional[Measurement]:
    """Measure between two selected indices; the earlier index is always the baseline."""
    lo = min(index_a, index_b)
    hi = max(index_a, index_b)
    if lo < 0 or hi >= len(points):
        return None
    start = points[lo]
    end = points[hi]
    return compute_measurement(start.value, end.value, start.time, end.time, lo, hi)


def change_from(value: float, reference: float) -> Tuple[float, float]:
    change = value - reference
    pct = (change / reference) * 100.0 if reference > 0 else 0.0
    return change, pct


def period_return(current_value: float, period_start_value: float) -> Optional[float]:
    if period_start_value <= 0:
        return None
    pct = ((current_value - period_start_value) / period_start_value) * 100.0
    # Half-up at two decimals, so 1.005 -> 1.01 and -1.005 -> -1.0.
    return math.floor(pct * 100.0 + 0.5) / 100.0


class SelectionState(str, Enum):
    IDLE = "idle"
    ONE_SELECTED = "one_selected"
    TWO_SELECTED = "two_selected"


class MeasurementSelection:
    """
    Two-point selection state machine.

    IDLE --select--> ONE_SELECTED --select--> TWO_SELECTED --select--> ONE_SELECTED (restart).
    clear() returns to IDLE from any state.
    """

    def __init__(self) -> None:
        self.first: Optional[int] = None
        self.second: Optional[int] = None

    @property
    def state(self) -> SelectionState:
        if self.first is None:
            return SelectionState.IDLE
        if self.second is None:
            return SelectionState.ONE_SELECTED
        return SelectionState.TWO_SELECTED

    def select(self, index: int) -> SelectionState:
        state = self.state
        if state is SelectionState.TWO_SELECTED:
            self.first = int(index)
            self.second = None
        elif state is SelectionState.IDLE:
            self.first = int(index)
        else:
            self.second = int(index)
        return self.state

    def select_pair(self, index_a: int, index_b: int) -> SelectionState:
        self.first = int(index_a)
        self.second = int(index_b)
        return self.state

    def clear(self) -> None:
        self.first = None
        self.second = None

    def pair(self) -> Optional[Tuple[int, int]]:
        if self.first is None or self.second is None:
            return None
        return min(self.first, self.second), max(self.first, self.second)

    def fits(self, count: int) -> bool:
        for idx in (self.first, self.second):
            if idx is not None and not 0 <= idx < count:
                return False
        return True
