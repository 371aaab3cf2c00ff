"""
smoke.py — Backend Smoke Verifier
==================================
The smallest kernel that proves the backend computes what it is told:
upload [0, 1, ..., n-1], add 1.0 to every element on the device, read back,
and compare against i + 1.

Shares nothing with the fluid pipeline except the backend primitives.
"""

import time

import numpy as np

from . import report
from .backend import NumpyBackend
from .params import MIN_SMOKE_N, SimulationParams


SMOKE_TOLERANCE = 1e-5
FALLBACK_SWEEP_SIZES = (1024, 4096, 16384, 65536)


def add_one(p, data: np.ndarray):
    """data[i] += 1.0 for every in-range index i < width (each cell owns its element)."""
    data[:p.width] += 1.0


def verify(result: np.ndarray) -> tuple[int, float]:
    """
    Compare a readback against the closed form i + 1.

    Returns: (mismatch_count, max_abs_error)
    """
    expected = np.arange(1, result.size + 1, dtype=np.float32)
    error = np.abs(result - expected)
    return int(np.count_nonzero(error > SMOKE_TOLERANCE)), float(error.max())


def run_smoke(n: int, backend=None) -> dict:
    """
    One smoke run on `n` elements (floored to 64).
    A fresh backend is created (and disposed) when none is passed.
    """
    n = max(MIN_SMOKE_N, int(n))
    t0 = time.perf_counter()
    owns_backend = backend is None
    if owns_backend:
        backend = NumpyBackend()
    try:
        storage = backend.create_buffer("storage", n)
        backend.wait(backend.queue.write_buffer(storage, np.arange(n, dtype=np.float32)),
                     "smoke upload")

        encoder = backend.create_command_encoder("smoke")
        encoder.dispatch(add_one, SimulationParams.for_smoke(n), writes=[storage])
        backend.wait(backend.queue.submit(encoder), "smoke kernel")
        out = backend.read_buffer(storage)
        storage.destroy()
    finally:
        if owns_backend:
            backend.dispose()

    mismatch_count, max_abs_error = verify(out)
    ok = mismatch_count == 0 and max_abs_error <= SMOKE_TOLERANCE
    report.status("Smoke", f"n={n} ok={ok} mismatches={mismatch_count}")

    return {
        "ok"             : ok,
        "backend"        : backend.name,
        "n"              : n,
        "elapsed_ms"     : (time.perf_counter() - t0) * 1000,
        "sample"         : [float(out[0]), float(out[1]), float(out[min(10, n - 1)]), float(out[n - 1])],
        "mismatch_count" : mismatch_count,
        "max_abs_error"  : max_abs_error,
    }


def run_smoke_sweep(sizes, backend_factory=NumpyBackend) -> dict:
    """
    Run the smoke verifier once per size; `ok` only if every run is ok.
    An empty `sizes` falls back to FALLBACK_SWEEP_SIZES.
    """
    sizes = list(sizes) or list(FALLBACK_SWEEP_SIZES)
    runs = []
    name = None
    for n in sizes:
        backend = backend_factory()
        name = backend.name
        try:
            runs.append(run_smoke(n, backend=backend))
        finally:
            backend.dispose()

    return {
        "ok"      : all(run["ok"] for run in runs),
        "backend" : name,
        "runs"    : runs,
    }
