"""
requests.py — Request decoding
===============================
One JSON object per invocation selects what runs:

  {"cmd": "smoke", "n": 1024}
  {"cmd": "smoke_sweep", "sizes": [1024, 4096]}
  {"cmd": "fluid_init", "width": 64, "height": 64}
  {"cmd": "fluid_step", "width": 64, "height": 64, "steps": 10}

`command` is accepted in place of `cmd`. Empty input means a smoke run on
1024 elements. Unknown extra keys are ignored.

Decoding only checks shape and types; clamps happen in `params()` /
`clamped()` so a request always runs with safe values.
"""

import json
import math
from dataclasses import dataclass, field

from .errors import RequestError
from .params import (
    DEFAULT_DT, DEFAULT_DYE_RADIUS, DEFAULT_FADE, DEFAULT_IMPULSE,
    DEFAULT_JACOBI_ITERS, DEFAULT_STEPS, MIN_GRID_DIM, MIN_SMOKE_N, MIN_STEPS,
    SimulationParams,
)


DEFAULT_SMOKE_N = 1024
_REQUIRED = object()


@dataclass(frozen=True)
class SmokeRequest:
    n: int
    cmd = "smoke"

    def clamped(self) -> "SmokeRequest":
        return SmokeRequest(n=max(MIN_SMOKE_N, self.n))


@dataclass(frozen=True)
class SmokeSweepRequest:
    sizes: tuple = field(default_factory=tuple)
    cmd = "smoke_sweep"


@dataclass(frozen=True)
class FluidInitRequest:
    width: int
    height: int
    dye_radius: float = DEFAULT_DYE_RADIUS
    impulse: float = DEFAULT_IMPULSE
    cmd = "fluid_init"

    def params(self) -> SimulationParams:
        """Init only floors the grid size; no solver runs, so Jacobi count is 0."""
        return SimulationParams(
            width=max(MIN_GRID_DIM, self.width),
            height=max(MIN_GRID_DIM, self.height),
            jacobi_iters=0,
            dye_radius=self.dye_radius,
            impulse=self.impulse,
        )


@dataclass(frozen=True)
class FluidStepRequest:
    width: int
    height: int
    steps: int = DEFAULT_STEPS
    dt: float = DEFAULT_DT
    fade: float = DEFAULT_FADE
    jacobi_iters: int = DEFAULT_JACOBI_ITERS
    dye_radius: float = DEFAULT_DYE_RADIUS
    impulse: float = DEFAULT_IMPULSE
    cmd = "fluid_step"

    @property
    def clamped_steps(self) -> int:
        return max(MIN_STEPS, self.steps)

    def params(self) -> SimulationParams:
        return SimulationParams(
            width=self.width,
            height=self.height,
            jacobi_iters=self.jacobi_iters,
            dt=self.dt,
            fade=self.fade,
            dye_radius=self.dye_radius,
            impulse=self.impulse,
        ).clamped()


# ── Field decoding ────────────────────────────────────────────────────────────
def _count(obj: dict, name: str, default=_REQUIRED) -> int:
    """Non-negative integer field (the wire format uses unsigned counts)."""
    value = obj.get(name, default)
    if value is _REQUIRED:
        raise RequestError(f"{obj.get('cmd', obj.get('command'))}: missing field '{name}'")
    if isinstance(value, bool) or not isinstance(value, int):
        raise RequestError(f"field '{name}' must be an integer, got {value!r}")
    if value < 0:
        raise RequestError(f"field '{name}' must be non-negative, got {value}")
    return value


def _number(obj: dict, name: str, default: float) -> float:
    value = obj.get(name, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RequestError(f"field '{name}' must be a number, got {value!r}")
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    if not math.isfinite(number):
        raise RequestError(f"field '{name}' must be finite, got {value!r}")
    return number


def _sizes(obj: dict) -> tuple:
    value = obj.get("sizes", [])
    if not isinstance(value, list):
        raise RequestError(f"field 'sizes' must be a list, got {value!r}")
    return tuple(_count({"sizes": v}, "sizes") for v in value)


def request_from_dict(obj) -> object:
    """Build a typed request from an already-decoded JSON value."""
    if not isinstance(obj, dict):
        raise RequestError(f"request must be a JSON object, got {type(obj).__name__}")

    cmd = obj.get("cmd", obj.get("command"))
    if cmd is None:
        raise RequestError("request has no 'cmd' field")

    if cmd == "smoke":
        return SmokeRequest(n=_count(obj, "n"))
    if cmd == "smoke_sweep":
        return SmokeSweepRequest(sizes=_sizes(obj))
    if cmd == "fluid_init":
        return FluidInitRequest(
            width=_count(obj, "width"),
            height=_count(obj, "height"),
            dye_radius=_number(obj, "dye_radius", DEFAULT_DYE_RADIUS),
            impulse=_number(obj, "impulse", DEFAULT_IMPULSE),
        )
    if cmd == "fluid_step":
        return FluidStepRequest(
            width=_count(obj, "width"),
            height=_count(obj, "height"),
            steps=_count(obj, "steps", DEFAULT_STEPS),
            dt=_number(obj, "dt", DEFAULT_DT),
            fade=_number(obj, "fade", DEFAULT_FADE),
            jacobi_iters=_count(obj, "jacobi_iters", DEFAULT_JACOBI_ITERS),
            dye_radius=_number(obj, "dye_radius", DEFAULT_DYE_RADIUS),
            impulse=_number(obj, "impulse", DEFAULT_IMPULSE),
        )
    raise RequestError(
        f"unknown command {cmd!r}; expected one of smoke, smoke_sweep, fluid_init, fluid_step"
    )


def parse_request(text: str):
    """Decode the raw request text. Blank input → smoke run on 1024 elements."""
    if not text or not text.strip():
        return SmokeRequest(n=DEFAULT_SMOKE_N)
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RequestError(f"invalid JSON request: {exc}") from exc
    return request_from_dict(obj)
