#!/usr/bin/env python3
"""Place Mini invariant checks against the canvas policy config."""

import json
import re
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
POLICY_FILENAME = "canvas_policy.json"

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_palette(policy: dict, errors: list[str]) -> None:
    """Palette must be a non-empty list of unique hex colors."""
    palette = policy.get("palette")
    if not isinstance(palette, list) or not palette:
        errors.append("palette must be a non-empty list")
        return
    if len(set(palette)) != len(palette):
        errors.append("palette colors must be unique")
    for color in palette:
        if not isinstance(color, str) or not HEX_COLOR.match(color):
            errors.append(f"palette entry {color!r} is not a #RRGGBB color")
    background = policy.get("background_color")
    if background not in palette:
        errors.append(f"background_color {background!r} must be a palette color")


def check_timing(policy: dict, errors: list[str]) -> None:
    size = policy.get("grid_size", 0)
    duration = policy.get("round_duration_seconds", 0)
    tick = policy.get("tick_interval_seconds", 0)
    if not isinstance(size, int) or size <= 0:
        errors.append(f"grid_size must be a positive integer, got {size!r}")
    if not isinstance(duration, (int, float)) or duration <= 0:
        errors.append(f"round_duration_seconds must be > 0, got {duration!r}")
        return
    if not isinstance(tick, (int, float)) or tick <= 0:
        errors.append(f"tick_interval_seconds must be > 0, got {tick!r}")
    elif tick >= duration:
        errors.append("tick_interval_seconds must be shorter than a round")


def check(config_dir: Path = CONFIG_DIR) -> int:
    policy = load_json(Path(config_dir) / POLICY_FILENAME)
    errors: list[str] = []

    check_palette(policy, errors)
    check_timing(policy, errors)

    if errors:
        for err in errors:
            print(f"FAIL: {err}", file=sys.stderr)
        return 1
    print("All canvas invariants hold.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
