#!/usr/bin/env python3
"""Evaluate one drop against a saved dispatch and print the DropValidation.

Exit codes: 0 allowed, 1 denied, 2 usage or input error.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path

from tourdispatch.errors import DispatchError
from tourdispatch.projection import build_snapshot
from tourdispatch.remote import InMemoryDispatchBackend
from tourdispatch.session import DispatchSession
from tourdispatch.tools._common import add_config_args, config_from_args, die, read_json_object, setup_logging
from tourdispatch.util.timeparse import parse_date_yyyy_mm_dd

PROG = "tourdispatch-check-drop"

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog=PROG, description="Check whether bookings may be dropped on a guide lane.")
    ap.add_argument("--in", dest="in_json", required=True, help="Dispatch JSON (getDispatch response)")
    ap.add_argument("--booking", dest="bookings", action="append", required=True, help="Booking id (repeat for a group)")
    target = ap.add_mutually_exclusive_group(required=True)
    target.add_argument("--guide", default=None, help="Target guide id")
    target.add_argument("--pool", action="store_true", help="Target the unassigned pool")
    ap.add_argument("--time", default=None, help="Target start HH:MM (default: the booking's own time)")
    ap.add_argument("--offset-px", type=float, default=None, help="Pointer offset inside the lane")
    ap.add_argument("--lane-width", type=float, default=None, help="Lane width in px (with --offset-px)")
    ap.add_argument("--date", default=None, help="Dispatch date YYYY-MM-DD (default: from the JSON)")
    ap.add_argument("--pretty", action="store_true", help="Pretty JSON output")
    add_config_args(ap)
    ns = ap.parse_args(argv)

    if (ns.offset_px is None) != (ns.lane_width is None):
        return die(PROG, "--offset-px and --lane-width go together")
    if ns.time and ns.offset_px is not None:
        return die(PROG, "use either --time or --offset-px/--lane-width")

    if ns.date:
        try:
            parse_date_yyyy_mm_dd(ns.date)
        except ValueError:
            return die(PROG, f"Invalid --date: {ns.date!r} (want YYYY-MM-DD)")

    try:
        cfg = config_from_args(ns)
    except DispatchError as e:
        return die(PROG, str(e))
    setup_logging(cfg)

    p = Path(ns.in_json)
    if not p.exists():
        return die(PROG, f"Missing JSON file: {p}")
    try:
        snapshot = build_snapshot(read_json_object(p), date=ns.date)
    except (ValueError, TypeError) as e:
        return die(PROG, f"Failed to load dispatch: {p} ({e})")

    backend = InMemoryDispatchBackend(snapshot)
    session = DispatchSession(backend, backend, snapshot.date, cfg)
    try:
        drag = session.start_drag(ns.bookings)
        if ns.pool:
            validation = session.hover_pool()
            time = None
        else:
            if ns.offset_px is not None:
                validation = session.hover(ns.guide, ns.offset_px, ns.lane_width)
            else:
                validation = session.hover_time(ns.guide, ns.time or drag.booking.start_time)
            # The time actually checked, after snapping.
            time = session.drop_target.time if session.drop_target else None
    except (KeyError, ValueError, DispatchError) as e:
        msg = e.args[0] if isinstance(e, KeyError) and e.args else str(e)
        return die(PROG, msg)
    finally:
        if session.is_dragging:
            session.cancel_drag()

    out = {
        "bookingIds": list(ns.bookings),
        "guideId": None if ns.pool else ns.guide,
        "time": time,
    }
    out.update(asdict(validation))
    print(json.dumps(out, ensure_ascii=False, indent=2 if ns.pretty else None))
    logger.debug("validation: %s", out)
    return 0 if validation.allowed else 1


if __name__ == "__main__":
    raise SystemExit(main())
