"""Policy resolver — loads canvas parameters from the config directory.

Parameters live in ``config/canvas_policy.json``. Deployment overrides
come from the environment (optionally seeded from a ``.env`` file):

    PLACEMINI_GRID_SIZE       grid side length N
    PLACEMINI_ROUND_SECONDS   voting round duration
    PLACEMINI_TICK_SECONDS    settlement check cadence

Structural rules are enforced when the policy is built; an invalid
configuration raises ValueError rather than starting a canvas that
cannot settle.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv


POLICY_FILENAME = "canvas_policy.json"

DEFAULT_PALETTE: tuple[str, ...] = (
    "#FFFFFF",
    "#E4E4E4",
    "#888888",
    "#222222",
    "#FFA7D1",
    "#E50000",
    "#E59500",
    "#A06A42",
    "#E5D900",
    "#94E044",
    "#02BE01",
    "#00D3DD",
    "#0083C7",
    "#0000EA",
    "#CF6EE4",
    "#820080",
)

ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "PLACEMINI_GRID_SIZE": ("grid_size", int),
    "PLACEMINI_ROUND_SECONDS": ("round_duration_seconds", float),
    "PLACEMINI_TICK_SECONDS": ("tick_interval_seconds", float),
}


@dataclass(frozen=True)
class CanvasPolicy:
    """Resolved canvas parameters.

    Invariants:
    - grid_size > 0
    - round_duration_seconds > 0
    - 0 < tick_interval_seconds < round_duration_seconds
    - palette is non-empty with no duplicates
    - background_color is a palette color
    """
    grid_size: int = 16
    round_duration_seconds: float = 300.0
    tick_interval_seconds: float = 1.0
    background_color: str = "#FFFFFF"
    palette: tuple[str, ...] = DEFAULT_PALETTE
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if self.grid_size <= 0:
            raise ValueError(f"grid_size must be > 0, got {self.grid_size}")
        if self.round_duration_seconds <= 0:
            raise ValueError("round_duration_seconds must be > 0")
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be > 0")
        if self.tick_interval_seconds >= self.round_duration_seconds:
            raise ValueError("tick_interval_seconds must be shorter than a round")
        if not self.palette:
            raise ValueError("palette must contain at least one color")
        if len(set(self.palette)) != len(self.palette):
            raise ValueError("palette colors must be unique")
        if self.background_color not in self.palette:
            raise ValueError(
                f"background_color {self.background_color!r} must be a palette color"
            )
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.timezone!r}") from e

    @property
    def round_duration(self) -> timedelta:
        return timedelta(seconds=self.round_duration_seconds)

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def palette_rank(self, color: str) -> tuple[int, str]:
        """Sort key: palette position first, unknown colors after, by name."""
        try:
            return (self.palette.index(color), "")
        except ValueError:
            return (len(self.palette), color)


class PolicyResolver:
    """Resolves canvas policy from config files and the environment.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        policy = resolver.canvas_policy()
    """

    def __init__(self, params: Mapping[str, Any]) -> None:
        self._params = dict(params)
        self._policy = self._build(self._params)

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = Path(config_dir) / POLICY_FILENAME
        with path.open("r", encoding="utf-8") as handle:
            return cls(json.load(handle))

    @classmethod
    def defaults(cls) -> PolicyResolver:
        return cls({})

    def with_env_overrides(
        self,
        env: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Path] = None,
    ) -> PolicyResolver:
        """Return a resolver with PLACEMINI_* overrides applied.

        When env is None the process environment is used, after loading
        dotenv_path (if given) without overriding variables already set.
        """
        if env is None:
            if dotenv_path is not None:
                load_dotenv(dotenv_path)
            env = os.environ
        params = dict(self._params)
        for var, (name, cast) in ENV_OVERRIDES.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            try:
                params[name] = cast(raw)
            except ValueError as e:
                raise ValueError(f"{var}={raw!r} is not a valid {cast.__name__}") from e
        return PolicyResolver(params)

    def canvas_policy(self) -> CanvasPolicy:
        return self._policy

    def params(self) -> dict[str, Any]:
        return dict(self._params)

    @staticmethod
    def _build(params: Mapping[str, Any]) -> CanvasPolicy:
        policy = CanvasPolicy()
        overrides: dict[str, Any] = {}
        for name in (
            "grid_size",
            "round_duration_seconds",
            "tick_interval_seconds",
            "background_color",
            "timezone",
        ):
            if name in params:
                overrides[name] = params[name]
        if "palette" in params:
            overrides["palette"] = tuple(params["palette"])
        return replace(policy, **overrides) if overrides else policy
