import os
import sys
import unittest
from datetime import datetime
from zoneinfo import ZoneInfo

REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
APP_DIR = os.path.join(REPO_ROOT, "app")
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

from engine.chart_session import ChartSession
from engine.coordinator import KIND_BENCHMARK_DAILY, KIND_BENCHMARK_INTRADAY, KIND_SERIES
from engine.measurement import SelectionState
from engine.models import BenchmarkPoint, Period, Series

NY = ZoneInfo("America/New_York")


def ny_ms(y: int, m: int, d: int, hh: int = 0, mm: int = 0) -> int:
    return int(datetime(y, m, d, hh, mm, tzinfo=NY).timestamp() * 1000)


NOW_MS = ny_ms(2024, 3, 5, 15, 0)


class FakeLauncher:
    def __init__(self) -> None:
        self.calls = []

    def __call__(self, request, on_done, on_failed) -> None:
        self.calls.append((request, on_done, on_failed))

    def last(self, kind):
        matches = [c for c in self.calls if c[0].kind == kind]
        return matches[-1] if matches else None

    def complete(self, kind, payload) -> None:
        request, on_done, _ = self.last(kind)
        on_done(request, payload)


def tuesday_series() -> Series:
    return Series.from_pairs(
        [
            (ny_ms(2024, 3, 4, 15, 0), 90.0),
            (ny_ms(2024, 3, 5, 4, 0), 100.0),
            (ny_ms(2024, 3, 5, 12, 0), 110.0),
            (ny_ms(2024, 3, 5, 14, 0), 105.0),
        ],
        period_start_value=100.0,
    )


class ChartSessionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.launcher = FakeLauncher()
        self.changes = 0
        self.session = ChartSession(self.launcher, clock=lambda: NOW_MS / 1000.0, on_change=self._changed)
        self.session.open(Period.D1)

    def _changed(self) -> None:
        self.changes += 1

    def _load(self) -> None:
        self.launcher.complete(KIND_SERIES, tuesday_series())

    def test_open_requests_series_and_both_benchmarks(self):
        kinds = sorted(c[0].kind for c in self.launcher.calls)
        self.assertEqual(kinds, sorted([KIND_SERIES, KIND_BENCHMARK_DAILY, KIND_BENCHMARK_INTRADAY]))
        self.assertFalse(self.session.has_data)
        self.assertTrue(self.session.coordinator.loading)

    def test_one_day_keeps_reference_session_only(self):
        self._load()
        self.assertEqual([p.value for p in self.session.points], [100.0, 110.0, 105.0])
        self.assertTrue(self.session.aligner.is_intraday)
        self.assertEqual(self.session.aligner.x_for_index(1), 400.0)
        self.assertEqual(self.session.session_splits(), (1, None))

    def test_display_follows_hover(self):
        self._load()
        state = self.session.display()
        self.assertEqual(state.value, 105.0)
        self.assertAlmostEqual(state.change_pct, 5.0)
        self.assertEqual(state.period_return, 5.0)
        self.assertIsNone(state.hover_index)

        self.assertEqual(self.session.hover(390.0), 1)
        state = self.session.display()
        self.assertEqual(state.value, 110.0)
        self.assertAlmostEqual(state.change, 10.0)
        self.assertAlmostEqual(state.change_pct, 10.0)
        # The period return always reflects the latest value, not the hovered one.
        self.assertEqual(state.period_return, 5.0)

        self.session.leave()
        self.assertEqual(self.session.display().value, 105.0)

    def test_click_cycle_measures_and_restarts(self):
        self._load()
        self.assertIs(self.session.click(500.0), SelectionState.ONE_SELECTED)
        self.assertIsNone(self.session.measurement())
        self.assertIs(self.session.click(0.0), SelectionState.TWO_SELECTED)
        m = self.session.measurement()
        self.assertEqual((m.start_index, m.end_index), (0, 2))
        self.assertAlmostEqual(m.dollar_change, 5.0)
        self.assertAlmostEqual(m.percent_change, 5.0)
        self.assertEqual(m.days_between, 0)
        self.assertIs(self.session.click(400.0), SelectionState.ONE_SELECTED)
        self.assertEqual(self.session.selection.first, 1)
        self.assertIsNone(self.session.measurement())

    def test_click_without_data_is_ignored(self):
        self.assertIs(self.session.click(100.0), SelectionState.IDLE)
        self.assertIsNone(self.session.hover(100.0))

    def test_escape_and_select_pair(self):
        self._load()
        self.session.click(0.0)
        self.session.escape()
        self.assertIs(self.session.selection.state, SelectionState.IDLE)
        self.assertIs(self.session.select_pair(500.0, 0.0), SelectionState.TWO_SELECTED)
        self.assertEqual(self.session.selection.pair(), (0, 2))

    def test_period_change_clears_interaction(self):
        self._load()
        self.session.hover(400.0)
        self.session.click(0.0)
        self.assertFalse(self.session.set_period(Period.D1))
        self.assertTrue(self.session.set_period(Period.W1))
        self.assertIsNone(self.session.hover_index)
        self.assertIs(self.session.selection.state, SelectionState.IDLE)
        self.assertFalse(self.session.has_data)
        self.assertEqual(self.launcher.last(KIND_SERIES)[0].period, Period.W1)
        self.assertEqual(self.session.coordinator.pending, None)

    def test_period_change_back_uses_cache(self):
        self._load()
        self.session.set_period(Period.W1)
        self.assertTrue(self.session.set_period(Period.D1))
        self.assertTrue(self.session.has_data)
        self.assertEqual(self.session.display().value, 105.0)

    def test_benchmark_overlay_and_comparison(self):
        self._load()
        self.launcher.complete(
            KIND_BENCHMARK_INTRADAY,
            [
                BenchmarkPoint(ny_ms(2024, 3, 5, 4, 0), 500.0),
                BenchmarkPoint(ny_ms(2024, 3, 5, 12, 0), 505.0),
                BenchmarkPoint(ny_ms(2024, 3, 5, 14, 0), 510.0),
            ],
        )
        self.assertIsNone(self.session.benchmark_overlay())
        self.session.set_show_benchmark(True)
        values = self.session.benchmark_overlay()
        self.assertEqual(len(values), 3)
        self.assertAlmostEqual(values[0], 100.0)
        self.assertAlmostEqual(values[1], 101.0)
        self.assertAlmostEqual(values[2], 102.0)
        self.assertEqual(len(self.session.benchmark_overlay(smoothed=True)), 3)

        self.assertIsNone(self.session.hover_benchmark_value())
        self.session.hover(400.0)
        self.assertAlmostEqual(self.session.hover_benchmark_value(), 101.0)

        self.session.select_pair(0.0, 500.0)
        cmp = self.session.benchmark_comparison()
        self.assertAlmostEqual(cmp.benchmark_return, 2.0)
        self.assertAlmostEqual(cmp.outperformance, 3.0)

    def test_selection_dropped_when_points_shrink(self):
        self._load()
        self.session.select_pair(0.0, 500.0)
        self.session.hover(500.0)
        self.session.refresh()
        self.launcher.complete(
            KIND_SERIES,
            Series.from_pairs([(ny_ms(2024, 3, 5, 4, 0), 100.0), (ny_ms(2024, 3, 5, 12, 0), 110.0)], 100.0),
        )
        self.assertEqual(len(self.session.points), 2)
        self.assertIs(self.session.selection.state, SelectionState.IDLE)
        self.assertIsNone(self.session.hover_index)

    def test_live_value_extends_one_day_series(self):
        self._load()
        self.session.set_live_value(108.0)
        self.assertEqual(len(self.session.points), 4)
        self.assertEqual(self.session.points[-1].time, NOW_MS)
        self.assertEqual(self.session.current_value, 108.0)
        self.assertEqual(self.session.display().period_return, 8.0)

    def test_change_notifications(self):
        before = self.changes
        self._load()
        self.assertGreater(self.changes, before)
        before = self.changes
        self.session.click(0.0)
        self.assertEqual(self.changes, before + 1)

    def test_poll_interval_for_one_day(self):
        self.assertEqual(self.session.poll_interval_ms(), 15_000)
        self.session.set_period(Period.Y1)
        self.assertIsNone(self.session.poll_interval_ms())

    def test_close_drops_state_and_late_results(self):
        self.session.close()
        self._load()
        self.assertFalse(self.session.has_data)
        self.assertIsNone(self.session.series)


if __name__ == "__main__":
    unittest.main()
