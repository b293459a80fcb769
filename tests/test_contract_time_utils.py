import unittest

from tourdispatch.config import TimelineConfig
from tourdispatch.timeline import (
    end_time,
    has_time_changed,
    hour_markers,
    normalize_start_time,
    position_to_time,
    shift_start_time,
    snap_minutes,
    start_bounds,
    time_to_percent,
)
from tourdispatch.util.timeparse import format_hhmm, format_time_label, hhmm_to_minutes, parse_hhmm, parse_window


class TestTimeParseContract(unittest.TestCase):
    def test_parse_and_format_hhmm(self) -> None:
        self.assertEqual(parse_hhmm("09:05"), (9, 5))
        self.assertEqual(parse_hhmm(" 7:30 "), (7, 30))
        self.assertEqual(hhmm_to_minutes("13:45"), 13 * 60 + 45)
        self.assertEqual(format_hhmm(0), "00:00")
        self.assertEqual(format_hhmm(1440), "24:00")

        for bad in ("24:00", "9", "12:60", "ab:cd", None):
            with self.assertRaises(ValueError):
                parse_hhmm(bad)  # type: ignore[arg-type]
        self.assertEqual(parse_hhmm("24:00", allow_end_of_day=True), (24, 0))
        with self.assertRaises(ValueError):
            format_hhmm(1441)

    def test_time_labels(self) -> None:
        self.assertEqual(format_time_label("13:30"), "1:30 PM")
        self.assertEqual(format_time_label("09:00"), "9 AM")
        self.assertEqual(format_time_label("12:00"), "12 PM")
        self.assertEqual(format_time_label("00:15"), "12:15 AM")
        self.assertEqual(format_time_label("24:00"), "12 AM")

    def test_parse_window(self) -> None:
        self.assertEqual(parse_window("06:00-24:00"), (360, 1440))
        with self.assertRaises(ValueError):
            parse_window("10:00-09:00")
        with self.assertRaises(ValueError):
            parse_window("06:00")


class TestTimelineContract(unittest.TestCase):
    def test_snap_rounds_half_up(self) -> None:
        self.assertEqual(snap_minutes(7, 15), 0)
        self.assertEqual(snap_minutes(7.5, 15), 15)
        self.assertEqual(snap_minutes(548, 15), 555)
        self.assertEqual(snap_minutes(547, 15), 540)
        self.assertEqual(snap_minutes(547.4, 1), 547)

    def test_position_to_time_default_window(self) -> None:
        # 06:00-24:00 over 1080px: one pixel per minute.
        self.assertEqual(position_to_time(0, 1080, 60), "06:00")
        self.assertEqual(position_to_time(-50, 1080, 60), "06:00")
        self.assertEqual(position_to_time(187, 1080, 60), "09:00")
        self.assertEqual(position_to_time(188, 1080, 60), "09:15")
        # Clamped so a 2h tour still ends by 24:00.
        self.assertEqual(position_to_time(2000, 1080, 120), "22:00")

    def test_position_to_time_bounds_and_granularity(self) -> None:
        cfg = TimelineConfig()
        duration = 90
        for offset in range(-100, 1200, 7):
            t = position_to_time(offset, 1080, duration, cfg)
            m = hhmm_to_minutes(t)
            self.assertGreaterEqual(m, cfg.window_start_min)
            self.assertLessEqual(m, cfg.window_end_min - duration)
            self.assertEqual(m % cfg.snap_min, 0, t)

    def test_position_to_time_subtracts_guide_column(self) -> None:
        cfg = TimelineConfig(guide_column_px=100.0)
        self.assertEqual(position_to_time(100, 1080, 60, cfg), "06:00")
        self.assertEqual(position_to_time(640, 1080, 60, cfg), "15:00")

    def test_position_to_time_rejects_zero_width(self) -> None:
        with self.assertRaises(ValueError):
            position_to_time(10, 0, 60)

    def test_start_bounds_when_tour_longer_than_window(self) -> None:
        cfg = TimelineConfig(window_start_min=360, window_end_min=420)
        self.assertEqual(start_bounds(120, cfg), (360, 360))
        self.assertEqual(start_bounds(30, cfg), (360, 390))

    def test_start_bounds_stay_on_grid_when_window_start_is_not(self) -> None:
        cfg = TimelineConfig(window_start_min=365, window_end_min=425)
        self.assertEqual(start_bounds(120, cfg), (375, 375))
        self.assertEqual(start_bounds(30, cfg), (375, 390))
        self.assertEqual(position_to_time(0, 600, 120, cfg), "06:15")

    def test_normalize_and_shift(self) -> None:
        self.assertEqual(normalize_start_time("09:07", 60), "09:00")
        self.assertEqual(normalize_start_time("05:00", 60), "06:00")
        self.assertEqual(end_time("09:00", 90), "10:30")
        self.assertEqual(end_time("23:00", 120), "24:00")
        self.assertEqual(shift_start_time("09:00", 50, 60), "09:45")
        self.assertEqual(shift_start_time("22:30", 120, 60), "23:00")

    def test_has_time_changed_respects_snap(self) -> None:
        self.assertFalse(has_time_changed("09:00", "09:05", 15))
        self.assertTrue(has_time_changed("09:00", "09:15", 15))
        self.assertTrue(has_time_changed("09:00", "09:05"))
        self.assertTrue(has_time_changed(None, "09:00"))

    def test_percent_and_hour_markers(self) -> None:
        self.assertAlmostEqual(time_to_percent("15:00"), 50.0)
        self.assertEqual(time_to_percent("05:00"), 0.0)

        markers = hour_markers()
        self.assertEqual(len(markers), 19)
        self.assertEqual(markers[0], ("06:00", "6 AM", 0.0))
        self.assertEqual(markers[-1], ("24:00", "12 AM", 100.0))


if __name__ == "__main__":
    unittest.main(verbosity=2)
