import os
import sys
import unittest
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

# Allow `import engine.*` like the app does when running `python app/main.py`.
REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
APP_DIR = os.path.join(REPO_ROOT, "app")
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

from engine.config import EngineConfig
from engine.models import Period, Series
from engine.session import SessionWindowCalculator

NY = ZoneInfo("America/New_York")


def ny_ms(y: int, m: int, d: int, hh: int = 0, mm: int = 0) -> int:
    return int(datetime(y, m, d, hh, mm, tzinfo=NY).timestamp() * 1000)


def utc_ms(y: int, m: int, d: int, hh: int = 0, mm: int = 0) -> int:
    return int(datetime(y, m, d, hh, mm, tzinfo=timezone.utc).timestamp() * 1000)


class SessionWindowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calc = SessionWindowCalculator(EngineConfig())

    def test_window_uses_standard_time_offset_in_winter(self):
        window = self.calc.window_for_date(date(2024, 3, 8))
        self.assertEqual(window.pre_open, utc_ms(2024, 3, 8, 9, 0))
        self.assertEqual(window.market_open, utc_ms(2024, 3, 8, 14, 30))
        self.assertEqual(window.market_close, utc_ms(2024, 3, 8, 21, 0))
        self.assertEqual(window.after_hours_close, utc_ms(2024, 3, 9, 1, 0))

    def test_window_uses_daylight_offset_after_switch(self):
        # 2024-03-10 is the US spring-forward Sunday; Monday is already UTC-4.
        window = self.calc.window_for_date(date(2024, 3, 11))
        self.assertEqual(window.pre_open, utc_ms(2024, 3, 11, 8, 0))
        self.assertEqual(window.after_hours_close, utc_ms(2024, 3, 12, 0, 0))
        self.assertEqual(window.span_ms, 16 * 3_600_000)

    def test_window_for_timestamp_uses_local_trading_date(self):
        # 23:30 ET on Tuesday is already Wednesday in UTC.
        ts = ny_ms(2024, 7, 16, 23, 30)
        self.assertEqual(self.calc.trading_date(ts), date(2024, 7, 16))
        self.assertEqual(self.calc.window_for(ts).trading_date, date(2024, 7, 16))

    def test_reference_timestamp_skips_weekend_live_point(self):
        friday = ny_ms(2024, 3, 8, 15, 0)
        saturday = ny_ms(2024, 3, 9, 12, 0)
        self.assertEqual(self.calc.reference_timestamp([friday - 3_600_000, friday, saturday]), friday)

    def test_reference_timestamp_falls_back_to_last_point(self):
        sat = ny_ms(2024, 3, 9, 12, 0)
        sun = ny_ms(2024, 3, 10, 12, 0)
        self.assertEqual(self.calc.reference_timestamp([sat, sun]), sun)
        self.assertIsNone(self.calc.reference_timestamp([]))

    def test_session_phase_boundaries(self):
        self.assertEqual(self.calc.session_phase(ny_ms(2024, 3, 5, 3, 59)), "CLOSED")
        self.assertEqual(self.calc.session_phase(ny_ms(2024, 3, 5, 4, 0)), "PRE")
        self.assertEqual(self.calc.session_phase(ny_ms(2024, 3, 5, 9, 29)), "PRE")
        self.assertEqual(self.calc.session_phase(ny_ms(2024, 3, 5, 9, 30)), "REG")
        self.assertEqual(self.calc.session_phase(ny_ms(2024, 3, 5, 16, 0)), "POST")
        self.assertEqual(self.calc.session_phase(ny_ms(2024, 3, 5, 20, 0)), "CLOSED")
        self.assertEqual(self.calc.session_phase(ny_ms(2024, 3, 9, 11, 0)), "CLOSED")
        self.assertTrue(self.calc.is_market_open(ny_ms(2024, 3, 5, 12, 0)))
        self.assertFalse(self.calc.is_market_open(ny_ms(2024, 3, 5, 17, 0)))

    def test_extended_hours_is_half_open(self):
        self.assertFalse(self.calc.in_extended_hours(ny_ms(2024, 3, 5, 3, 59)))
        self.assertTrue(self.calc.in_extended_hours(ny_ms(2024, 3, 5, 4, 0)))
        self.assertTrue(self.calc.in_extended_hours(ny_ms(2024, 3, 5, 19, 59)))
        self.assertFalse(self.calc.in_extended_hours(ny_ms(2024, 3, 5, 20, 0)))
        self.assertFalse(self.calc.in_extended_hours(ny_ms(2024, 3, 10, 12, 0)))

    def test_other_reference_timezone(self):
        calc = SessionWindowCalculator(EngineConfig(reference_tz="Europe/London"))
        window = calc.window_for_date(date(2024, 1, 15))
        self.assertEqual(window.pre_open, utc_ms(2024, 1, 15, 4, 0))


class PreparePointsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calc = SessionWindowCalculator(EngineConfig())

    def test_one_day_keeps_only_reference_session(self):
        series = Series.from_pairs([
            (ny_ms(2024, 3, 4, 15, 0), 90.0),
            (ny_ms(2024, 3, 5, 3, 0), 95.0),
            (ny_ms(2024, 3, 5, 5, 0), 100.0),
            (ny_ms(2024, 3, 5, 10, 0), 101.0),
            (ny_ms(2024, 3, 5, 21, 0), 102.0),
        ])
        pts = self.calc.prepare_points(series, Period.D1)
        self.assertEqual([p.value for p in pts], [100.0, 101.0])

    def test_one_day_falls_back_to_raw_when_filter_leaves_one_point(self):
        series = Series.from_pairs([
            (ny_ms(2024, 3, 5, 2, 0), 99.0),
            (ny_ms(2024, 3, 5, 10, 0), 100.0),
        ])
        pts = self.calc.prepare_points(series, Period.D1)
        self.assertEqual(len(pts), 2)

    def test_one_day_appends_live_point_inside_window(self):
        series = Series.from_pairs([
            (ny_ms(2024, 3, 5, 9, 30), 100.0),
            (ny_ms(2024, 3, 5, 14, 0), 101.0),
        ])
        now = ny_ms(2024, 3, 5, 15, 0)
        pts = self.calc.prepare_points(series, Period.D1, now_ms=now, live_value=105.0)
        self.assertEqual(len(pts), 3)
        self.assertEqual(pts[-1].time, now)
        self.assertEqual(pts[-1].value, 105.0)

    def test_one_day_skips_live_point_when_recent_or_after_close(self):
        series = Series.from_pairs([
            (ny_ms(2024, 3, 5, 9, 30), 100.0),
            (ny_ms(2024, 3, 5, 14, 0), 101.0),
        ])
        recent = ny_ms(2024, 3, 5, 14, 0) + 5_000
        self.assertEqual(len(self.calc.prepare_points(series, Period.D1, now_ms=recent, live_value=105.0)), 2)
        late = ny_ms(2024, 3, 5, 21, 0)
        self.assertEqual(len(self.calc.prepare_points(series, Period.D1, now_ms=late, live_value=105.0)), 2)

    def test_week_drops_overnight_and_weekend_samples(self):
        series = Series.from_pairs([
            (ny_ms(2024, 3, 8, 10, 0), 1.0),
            (ny_ms(2024, 3, 8, 22, 0), 2.0),
            (ny_ms(2024, 3, 9, 12, 0), 3.0),
            (ny_ms(2024, 3, 11, 4, 0), 4.0),
            (ny_ms(2024, 3, 11, 19, 0), 5.0),
        ])
        pts = self.calc.prepare_points(series, Period.W1)
        self.assertEqual([p.value for p in pts], [1.0, 4.0, 5.0])

    def test_long_periods_are_untouched(self):
        series = Series.from_pairs([(ny_ms(2024, 3, 9, 12, 0), 1.0), (ny_ms(2024, 3, 10, 12, 0), 2.0)])
        self.assertEqual(self.calc.prepare_points(series, Period.Y1), series.points)

    def test_session_split_indices(self):
        series = Series.from_pairs([
            (ny_ms(2024, 3, 5, 5, 0), 1.0),
            (ny_ms(2024, 3, 5, 9, 30), 2.0),
            (ny_ms(2024, 3, 5, 12, 0), 3.0),
            (ny_ms(2024, 3, 5, 16, 30), 4.0),
        ])
        window = self.calc.window_for_date(date(2024, 3, 5))
        self.assertEqual(self.calc.session_split_indices(series.points, window), (1, 3))

    def test_session_split_at_first_point_is_none(self):
        series = Series.from_pairs([
            (ny_ms(2024, 3, 5, 10, 0), 1.0),
            (ny_ms(2024, 3, 5, 12, 0), 2.0),
        ])
        window = self.calc.window_for_date(date(2024, 3, 5))
        self.assertEqual(self.calc.session_split_indices(series.points, window), (None, None))


if __name__ == "__main__":
    unittest.main()
