# tourdispatch/layout.py
from __future__ import annotations

from typing import Iterable, List

from .model import TourRun


def layout_lanes(runs: Iterable[TourRun]) -> List[List[TourRun]]:
    """Greedy interval partitioning into display lanes.

    Runs are taken in start order; each goes into the first lane whose last
    run ends at or before its start, else a new lane is opened.
    """
    ordered = sorted(runs, key=lambda r: (r.start_min, r.end_min, r.key))
    lanes: List[List[TourRun]] = []
    for run in ordered:
        for lane in lanes:
            if lane[-1].end_min <= run.start_min:
                lane.append(run)
                break
        else:
            lanes.append([run])
    return lanes
