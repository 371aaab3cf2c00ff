"""
harness.py — One request in, one response out
==============================================
Routes a decoded request to the smoke path or the fluid path and builds the
response object. Every path creates its own backend and disposes it before
returning, so nothing outlives the request.
"""

import functools
import time

from . import report
from .backend import DEFAULT_TIMEOUT, NumpyBackend
from .errors import FluidLabError
from .requests import FluidInitRequest, FluidStepRequest, SmokeRequest, SmokeSweepRequest
from .simulation import FluidSimulation
from .smoke import run_smoke, run_smoke_sweep
from .stats import compute_stats


def run_fluid_init(req: FluidInitRequest, backend_factory=NumpyBackend) -> dict:
    """Allocate a grid, dispatch the init kernel once, wait for it."""
    t0 = time.perf_counter()
    params = req.params()
    backend = backend_factory()
    try:
        sim = FluidSimulation(params, backend=backend)
        sim.initialize()
        sim.release()
    finally:
        backend.dispose()

    return {
        "ok"                : True,
        "backend"           : backend.name,
        "width"             : params.width,
        "height"            : params.height,
        "initialized_cells" : params.cells,
        "elapsed_ms"        : (time.perf_counter() - t0) * 1000,
    }


def run_fluid_step(req: FluidStepRequest, backend_factory=NumpyBackend) -> dict:
    """Init once, run `steps` steps, read back, summarize."""
    t0 = time.perf_counter()
    params = req.params()
    steps = req.clamped_steps
    backend = backend_factory()
    try:
        sim = FluidSimulation(params, backend=backend)
        sim.initialize()
        sim.run(steps)
        velocity, dye = sim.read_fields()
        sim.release()
    finally:
        backend.dispose()

    stats = compute_stats(velocity, dye, params.width, params.height)
    elapsed = time.perf_counter() - t0
    report.status("Harness", f"fluid_step {params.width}x{params.height} x{steps}: "
                             f"max_speed={stats.max_speed:.4f} max_div={stats.max_divergence:.6f}")

    return {
        "ok"         : True,
        "backend"    : backend.name,
        "width"      : params.width,
        "height"     : params.height,
        "steps"      : steps,
        "elapsed_ms" : elapsed * 1000,
        "sps"        : steps / max(elapsed, 1e-6),
        **stats.to_dict(),
    }


def execute(request, timeout: float = DEFAULT_TIMEOUT) -> dict:
    """
    Run one decoded request to completion.

    Args:
        request : One of the request types from fluidlab.requests
        timeout : Deadline in seconds for every wait on the backend queue
    """
    factory = functools.partial(NumpyBackend, timeout=timeout)
    report.status("Harness", f"running {request.cmd}")

    if isinstance(request, SmokeRequest):
        backend = factory()
        try:
            return run_smoke(request.clamped().n, backend=backend)
        finally:
            backend.dispose()
    if isinstance(request, SmokeSweepRequest):
        return run_smoke_sweep(request.sizes, backend_factory=factory)
    if isinstance(request, FluidInitRequest):
        return run_fluid_init(request, backend_factory=factory)
    if isinstance(request, FluidStepRequest):
        return run_fluid_step(request, backend_factory=factory)
    raise TypeError(f"not a request: {request!r}")


def failure(err: BaseException) -> dict:
    """
    The single response object of a failed request.
    Harness errors are reported verbatim, anything else with its type name.
    """
    if isinstance(err, FluidLabError):
        return {"ok": False, "error": str(err)}
    return {"ok": False, "error": f"{type(err).__name__}: {err}"}
