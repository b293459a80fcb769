from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from tourdispatch.config import DispatchConfig
from tourdispatch.errors import ConfigError
from tourdispatch.util.timeparse import parse_window


def die(prog: str, msg: str, rc: int = 2) -> int:
    print(f"[{prog}] ERROR: {msg}", file=sys.stderr)
    return rc


def read_json_object(p: Path) -> dict:
    obj = json.loads(p.read_text(encoding="utf-8", errors="replace"))
    if not isinstance(obj, dict):
        raise ValueError(f"expected a JSON object; got {type(obj).__name__}")
    return obj


def add_config_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--window", default=None, help="Day window HH:MM-HH:MM (default 06:00-24:00)")
    ap.add_argument("--snap", type=int, default=None, help="Snap granularity in minutes (default 15)")
    ap.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")


def config_from_args(ns: argparse.Namespace, environ: Optional[dict] = None) -> DispatchConfig:
    """Env first (TOURDISPATCH_*), then CLI flags on top."""
    cfg = DispatchConfig.from_env(environ)
    timeline = cfg.timeline
    if ns.window:
        try:
            ws, we = parse_window(ns.window)
        except ValueError as e:
            raise ConfigError(f"Invalid --window: {e}") from e
        timeline = replace(timeline, window_start_min=ws, window_end_min=we)
    if ns.snap is not None:
        timeline = replace(timeline, snap_min=ns.snap)
    cfg = replace(cfg, timeline=timeline)
    if ns.log_level:
        cfg = replace(cfg, log_level=ns.log_level.upper())
    return cfg


def setup_logging(cfg: DispatchConfig) -> None:
    logging.basicConfig(
        level=cfg.log_level_value,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr,
    )
