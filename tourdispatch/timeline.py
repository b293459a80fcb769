# tourdispatch/timeline.py
from __future__ import annotations

import math
from typing import List, Optional, Tuple

from .config import TimelineConfig
from .util.timeparse import format_hhmm, format_time_label, hhmm_to_minutes

_DEFAULT_CFG = TimelineConfig()


def snap_minutes(minutes: float, snap_min: int) -> int:
    """Round to the nearest multiple of snap_min (halves round up)."""
    if snap_min <= 1:
        return int(math.floor(minutes + 0.5))
    return int(math.floor(minutes / snap_min + 0.5)) * int(snap_min)


def start_bounds(duration_min: int, cfg: TimelineConfig = _DEFAULT_CFG) -> Tuple[int, int]:
    """(earliest, latest) snapped start minutes for a tour of duration_min.

    Both bounds are multiples of cfg.snap_min and lie inside
    [window_start, window_end - duration]. When no snapped start fits, both
    collapse to earliest, the first grid point at or after window_start.
    """
    snap = int(cfg.snap_min)
    earliest = int(math.ceil(cfg.window_start_min / snap)) * snap
    latest = int(math.floor((cfg.window_end_min - max(0, int(duration_min))) / snap)) * snap
    if latest < earliest:
        return earliest, earliest
    return earliest, latest


def clamp_start(minutes: int, duration_min: int, cfg: TimelineConfig = _DEFAULT_CFG) -> int:
    earliest, latest = start_bounds(duration_min, cfg)
    return max(earliest, min(latest, int(minutes)))


def normalize_start_time(time: str, duration_min: int, cfg: TimelineConfig = _DEFAULT_CFG) -> str:
    snapped = snap_minutes(hhmm_to_minutes(time), cfg.snap_min)
    return format_hhmm(clamp_start(snapped, duration_min, cfg))


def shift_start_time(time: str, delta_min: int, duration_min: int, cfg: TimelineConfig = _DEFAULT_CFG) -> str:
    target = hhmm_to_minutes(time) + int(delta_min)
    return format_hhmm(clamp_start(snap_minutes(target, cfg.snap_min), duration_min, cfg))


def position_to_time(
    offset_px: float,
    lane_width_px: float,
    duration_min: int = 0,
    cfg: TimelineConfig = _DEFAULT_CFG,
) -> str:
    """Convert a pointer offset (px from the lane's left edge) to a snapped start time.

    cfg.guide_column_px is subtracted first. The proportional position is
    clamped to the lane, snapped to cfg.snap_min and clamped so the whole
    tour fits inside the configured window.
    """
    if lane_width_px <= 0:
        raise ValueError(f"lane_width_px must be positive, got {lane_width_px!r}")
    rel = float(offset_px) - float(cfg.guide_column_px)
    pct = max(0.0, min(1.0, rel / float(lane_width_px)))
    raw = cfg.window_start_min + cfg.window_minutes * pct
    return format_hhmm(clamp_start(snap_minutes(raw, cfg.snap_min), duration_min, cfg))


def time_to_percent(time: str, cfg: TimelineConfig = _DEFAULT_CFG) -> float:
    m = hhmm_to_minutes(time, allow_end_of_day=True)
    pct = (m - cfg.window_start_min) / float(cfg.window_minutes) * 100.0
    return max(0.0, min(100.0, pct))


def end_time(start_time: str, duration_min: int) -> str:
    return format_hhmm(min(24 * 60, hhmm_to_minutes(start_time) + int(duration_min)))


def has_time_changed(old: Optional[str], new: Optional[str], snap_min: int = 1) -> bool:
    if old is None or new is None:
        return old != new
    a = snap_minutes(hhmm_to_minutes(old), snap_min)
    b = snap_minutes(hhmm_to_minutes(new), snap_min)
    return a != b


def hour_markers(cfg: TimelineConfig = _DEFAULT_CFG) -> List[Tuple[str, str, float]]:
    """(time, label, percent) for each full hour inside the window."""
    out: List[Tuple[str, str, float]] = []
    first = int(math.ceil(cfg.window_start_min / 60.0))
    last = cfg.window_end_min // 60
    for hour in range(first, last + 1):
        t = format_hhmm(hour * 60)
        out.append((t, format_time_label(t), time_to_percent(t, cfg)))
    return out
