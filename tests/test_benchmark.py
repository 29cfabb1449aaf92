import os
import sys
import unittest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
APP_DIR = os.path.join(REPO_ROOT, "app")
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

from engine.benchmark import BenchmarkNormalizer
from engine.config import EngineConfig
from engine.measurement import compute_measurement
from engine.models import DAY_MS, BenchmarkPoint, Period

NY = ZoneInfo("America/New_York")
HOUR_MS = 3_600_000


def ny_ms(y: int, m: int, d: int, hh: int = 0, mm: int = 0) -> int:
    return int(datetime(y, m, d, hh, mm, tzinfo=NY).timestamp() * 1000)


def daily(y: int, m: int, d: int, close: float) -> BenchmarkPoint:
    return BenchmarkPoint.from_payload({"date": f"{y:04d}-{m:02d}-{d:02d}", "close": close})


class LookupTests(unittest.TestCase):
    def setUp(self) -> None:
        self.norm = BenchmarkNormalizer(EngineConfig())
        self.candles = [BenchmarkPoint(0, 100.0), BenchmarkPoint(10 * DAY_MS, 110.0)]

    def test_tolerance_is_inclusive(self):
        self.assertEqual(self.norm.nearest_index(self.candles, 3 * DAY_MS), 0)
        self.assertIsNone(self.norm.nearest_index(self.candles, 3 * DAY_MS + 1))
        self.assertEqual(self.norm.nearest_index(self.candles, 7 * DAY_MS), 1)

    def test_equal_distance_prefers_earlier_candle(self):
        candles = [BenchmarkPoint(0, 1.0), BenchmarkPoint(2 * DAY_MS, 2.0)]
        self.assertEqual(self.norm.nearest_index(candles, DAY_MS), 0)

    def test_empty_candles(self):
        self.assertIsNone(self.norm.nearest_index([], 0))

    def test_tolerance_is_configurable(self):
        norm = BenchmarkNormalizer(EngineConfig(benchmark_tolerance_days=1.0))
        self.assertIsNone(norm.nearest_index(self.candles, 2 * DAY_MS))

    def test_daily_candle_is_pinned_to_noon_utc(self):
        point = daily(2024, 3, 4, 400.0)
        self.assertEqual(point.time, int(datetime(2024, 3, 4, 12, tzinfo=timezone.utc).timestamp() * 1000))


class ReturnTests(unittest.TestCase):
    def setUp(self) -> None:
        self.norm = BenchmarkNormalizer(EngineConfig())

    def test_same_day_measurement_uses_previous_close(self):
        candles = [daily(2024, 3, 4, 400.0), daily(2024, 3, 5, 404.0)]
        start = ny_ms(2024, 3, 5, 10, 0)
        end = ny_ms(2024, 3, 5, 15, 0)
        self.assertAlmostEqual(self.norm.daily_return(candles, start, end), 1.0)

    def test_first_candle_baseline_is_itself(self):
        candles = [daily(2024, 3, 4, 400.0), daily(2024, 3, 5, 404.0)]
        ret = self.norm.daily_return(candles, ny_ms(2024, 3, 4, 10, 0), ny_ms(2024, 3, 5, 15, 0))
        self.assertAlmostEqual(ret, 1.0)

    def test_daily_return_without_nearby_candle(self):
        candles = [daily(2024, 3, 4, 400.0)]
        self.assertIsNone(self.norm.daily_return(candles, ny_ms(2024, 3, 4, 10, 0), ny_ms(2024, 3, 20, 10, 0)))

    def test_zero_baseline_close(self):
        candles = [daily(2024, 3, 4, 0.0), daily(2024, 3, 5, 404.0)]
        self.assertIsNone(self.norm.daily_return(candles, ny_ms(2024, 3, 5, 10, 0), ny_ms(2024, 3, 5, 15, 0)))

    def test_intraday_return_matches_start_directly(self):
        t0 = ny_ms(2024, 3, 5, 9, 30)
        candles = [BenchmarkPoint(t0, 500.0), BenchmarkPoint(t0 + HOUR_MS, 505.0), BenchmarkPoint(t0 + 2 * HOUR_MS, 510.0)]
        self.assertAlmostEqual(self.norm.intraday_return(candles, t0 + HOUR_MS, t0 + 2 * HOUR_MS), 100.0 * 5.0 / 505.0)

    def test_compare_reports_outperformance(self):
        candles = [daily(2024, 3, 4, 400.0), daily(2024, 3, 5, 404.0)]
        m = compute_measurement(100.0, 110.0, ny_ms(2024, 3, 5, 10, 0), ny_ms(2024, 3, 5, 15, 0))
        cmp = self.norm.compare(m, candles, intraday=False)
        self.assertAlmostEqual(cmp.benchmark_return, 1.0)
        self.assertAlmostEqual(cmp.outperformance, 9.0)
        self.assertIsNone(self.norm.compare(None, candles, intraday=False))
        self.assertIsNone(self.norm.compare(m, [], intraday=False))

    def test_select_candles(self):
        day = [BenchmarkPoint(0, 1.0)]
        intra = [BenchmarkPoint(1, 2.0)]
        self.assertEqual(BenchmarkNormalizer.select_candles(Period.W1, day, intra), (intra, True))
        self.assertEqual(BenchmarkNormalizer.select_candles(Period.M3, day, intra), (day, False))
        self.assertEqual(BenchmarkNormalizer.select_candles(Period.D1, day, []), (day, False))

    def test_hover_comparison(self):
        bench_pct, outperf = BenchmarkNormalizer.hover_comparison(110.0, 101.0, 100.0)
        self.assertAlmostEqual(bench_pct, 1.0)
        self.assertAlmostEqual(outperf, 9.0)


class OverlayTests(unittest.TestCase):
    def setUp(self) -> None:
        self.norm = BenchmarkNormalizer(EngineConfig())

    def test_overlay_scales_to_start_value_and_carries_forward(self):
        candles = [BenchmarkPoint(0, 100.0), BenchmarkPoint(HOUR_MS, 110.0)]
        times = [0, HOUR_MS, 10 * DAY_MS, 10 * DAY_MS + HOUR_MS]
        values = self.norm.overlay(times, candles, 1000.0)
        self.assertEqual(len(values), 4)
        self.assertAlmostEqual(values[0], 1000.0)
        self.assertAlmostEqual(values[1], 1100.0)
        self.assertAlmostEqual(values[2], 1100.0)
        self.assertAlmostEqual(values[3], 1100.0)

    def test_overlay_unavailable(self):
        candles = [BenchmarkPoint(10 * DAY_MS, 100.0)]
        self.assertIsNone(self.norm.overlay([0, HOUR_MS], candles, 1000.0))
        self.assertIsNone(self.norm.overlay([0], [BenchmarkPoint(0, 1.0)], 1000.0))
        self.assertIsNone(self.norm.overlay([0, HOUR_MS], [], 1000.0))
        self.assertIsNone(self.norm.overlay([0, HOUR_MS], [BenchmarkPoint(0, 0.0)], 1000.0))

    def test_smoothing_keeps_endpoints(self):
        out = self.norm.smooth([0.0, 10.0, 0.0, 10.0])
        self.assertEqual(out[0], 0.0)
        self.assertEqual(out[-1], 10.0)
        self.assertAlmostEqual(out[1], 7.0)
        self.assertAlmostEqual(out[2], 3.0)
        self.assertEqual(self.norm.smooth([1.0, 2.0]), [1.0, 2.0])
        self.assertEqual(len(self.norm.smooth([1.0, 2.0, 3.0, 4.0, 5.0])), 5)


if __name__ == "__main__":
    unittest.main()
