#!/usr/bin/env python3
"""Replay an edit script against a saved dispatch through the in-memory backend.

Script format:

  {"steps": [
     {"op": "move", "bookingIds": ["b1"], "toGuideId": "g1", "time": "09:15", "override": false},
     {"op": "unassign", "bookingIds": ["b1"]},
     {"op": "nudge", "guideId": "g1", "runKey": "t1|09:15", "deltaMin": 30},
     {"op": "undo"},
     {"op": "redo"}
  ]}

"toGuideId": null on a move drops onto the unassigned pool; "time" defaults to
the booking's current start. Writes the resulting dispatch JSON to --out.

Exit codes: 0 ok, 2 usage or input error, 3 a step was denied or rejected.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from tourdispatch.errors import DispatchError, DropDeniedError, RemoteMutationError
from tourdispatch.oplog import Operation
from tourdispatch.projection import build_snapshot, snapshot_to_dispatch
from tourdispatch.remote import InMemoryDispatchBackend
from tourdispatch.session import DispatchSession
from tourdispatch.tools._common import add_config_args, config_from_args, die, read_json_object, setup_logging
from tourdispatch.util.timeparse import parse_date_yyyy_mm_dd

PROG = "tourdispatch-replay"

STEP_OPS = ("move", "unassign", "nudge", "undo", "redo")

logger = logging.getLogger(__name__)


def validate_script(obj: Any) -> List[str]:
    errs: List[str] = []
    if not isinstance(obj, dict):
        return ["script must be an object"]
    steps = obj.get("steps")
    if not isinstance(steps, list):
        return ["script.steps must be a list"]
    for i, st in enumerate(steps):
        label = f"steps[{i}]"
        if not isinstance(st, dict):
            errs.append(f"{label}: must be an object")
            continue
        op = st.get("op")
        if op not in STEP_OPS:
            errs.append(f"{label}: op must be one of {STEP_OPS}, got {op!r}")
            continue
        if op in ("move", "unassign"):
            ids = st.get("bookingIds")
            if not isinstance(ids, list) or not ids or not all(isinstance(x, str) and x for x in ids):
                errs.append(f"{label}: bookingIds must be a non-empty list of strings")
        if op == "move":
            to = st.get("toGuideId")
            if to is not None and (not isinstance(to, str) or not to):
                errs.append(f"{label}: toGuideId must be a string or null")
            t = st.get("time")
            if t is not None and not isinstance(t, str):
                errs.append(f"{label}: time must be HH:MM")
            if not isinstance(st.get("override", False), bool):
                errs.append(f"{label}: override must be a bool")
        if op == "nudge":
            for key in ("guideId", "runKey"):
                if not isinstance(st.get(key), str) or not st.get(key):
                    errs.append(f"{label}: {key} must be a non-empty string")
            delta = st.get("deltaMin")
            if not isinstance(delta, int) or isinstance(delta, bool):
                errs.append(f"{label}: deltaMin must be an integer")
    return errs


def run_step(session: DispatchSession, step: dict) -> Optional[Operation]:
    op = step["op"]
    if op == "undo":
        return session.undo()
    if op == "redo":
        return session.redo()
    if op == "nudge":
        return session.nudge_run(step["guideId"], step["runKey"], step["deltaMin"])
    ids = list(step["bookingIds"])
    if op == "unassign" or step.get("toGuideId") is None:
        return session.unassign(ids)
    return session.assign_bookings(
        ids,
        step["toGuideId"],
        time=step.get("time"),
        override=bool(step.get("override", False)),
    )


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog=PROG, description="Replay moves/nudges/undo/redo against a dispatch JSON.")
    ap.add_argument("--in", dest="in_json", required=True, help="Dispatch JSON (getDispatch response)")
    ap.add_argument("--script", required=True, help="Edit script JSON")
    ap.add_argument("--out", required=True, help="Output dispatch JSON path")
    ap.add_argument("--date", default=None, help="Dispatch date YYYY-MM-DD (default: from the JSON)")
    ap.add_argument("--pretty", action="store_true", help="Pretty JSON output")
    add_config_args(ap)
    ns = ap.parse_args(argv)

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

    in_path = Path(ns.in_json)
    script_path = Path(ns.script)
    for p in (in_path, script_path):
        if not p.exists():
            return die(PROG, f"Missing JSON file: {p}")
    try:
        snapshot = build_snapshot(read_json_object(in_path), date=ns.date)
        script = read_json_object(script_path)
    except (ValueError, TypeError) as e:
        return die(PROG, f"Failed to load input: {e}")

    errs = validate_script(script)
    if errs:
        return die(PROG, "Invalid script:\n" + "\n".join(f"  - {e}" for e in errs))

    backend = InMemoryDispatchBackend(snapshot)
    session = DispatchSession(backend, backend, snapshot.date, cfg)

    for i, step in enumerate(script["steps"]):
        try:
            op = run_step(session, step)
        except DropDeniedError as e:
            return die(PROG, f"steps[{i}] denied ({e.validation.reason}): {e}", rc=3)
        except RemoteMutationError as e:
            return die(PROG, f"steps[{i}] rejected: {e}", rc=3)
        except (KeyError, ValueError, DispatchError) as e:
            return die(PROG, f"steps[{i}] failed: {e}")
        if op is None:
            logger.info("steps[%d] %s: no change", i, step["op"])

    out_path = Path(ns.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    txt = json.dumps(snapshot_to_dispatch(backend.snapshot), ensure_ascii=False, indent=2 if ns.pretty else None)
    out_path.write_text(txt + "\n", encoding="utf-8", newline="\n")

    print(f"[{PROG}] OK: {len(script['steps'])} step(s), undo={session.history.undo_count} redo={session.history.redo_count}; wrote {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
