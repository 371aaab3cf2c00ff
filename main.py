"""
main.py — Master Entry Point
=============================
Reads ONE request, runs it, prints ONE JSON response.

Usage:
    echo '{"cmd":"smoke","n":64}' | python main.py
    python main.py --request '{"cmd":"fluid_step","width":64,"height":64,"steps":10}'
    python main.py --mode benchmark --size 128 --steps 50   # per-stage timing table

Exit status is 0 on success, 1 when the response carries ok=false.
"""

import argparse
import json
import sys

import numpy as np

from fluidlab import (
    FluidSimulation, SimulationParams, execute, failure, parse_request, report,
)
from fluidlab.backend import DEFAULT_TIMEOUT, NumpyBackend
from fluidlab.simulation import STAGES


def emit(response: dict):
    print(json.dumps(response, indent=2))


def run_request(text: str, timeout: float = DEFAULT_TIMEOUT) -> int:
    """Decode, execute, print. Any failure aborts the request with ok=false."""
    try:
        response = execute(parse_request(text), timeout=timeout)
    except Exception as err:
        # kernel faults and allocation failures included: one JSON response, always
        emit(failure(err))
        return 1
    emit(response)
    return 0 if response["ok"] else 1


def run_benchmark(size: int = 128, steps: int = 50, jacobi_iters: int = 30,
                  timeout: float = DEFAULT_TIMEOUT):
    """
    Detailed performance breakdown.
    Shows how long each pipeline stage takes on this backend.
    """
    params = SimulationParams(width=size, height=size, jacobi_iters=jacobi_iters).clamped()

    print(f"\n{'='*60}")
    print(f"  FLUID PIPELINE BENCHMARK | {params.width}x{params.height} | "
          f"{steps} steps | jacobi={params.jacobi_iters}")
    print(f"{'='*60}")

    with NumpyBackend(timeout=timeout) as backend:
        sim = FluidSimulation(params, backend=backend)
        sim.initialize()

        # Warm up
        sim.run(5)

        logs = [sim.step(profile=True) for _ in range(steps)]
        sim.flush()

    print(f"\n{'Stage':<20} {'Mean':>8} {'Min':>8} {'Max':>8}")
    print(f"{'─'*50}")
    for stage in STAGES:
        vals = [m["stage_ms"][stage] for m in logs]
        print(f"  {stage:<18} {np.mean(vals):>7.2f}ms {np.min(vals):>7.2f}ms {np.max(vals):>7.2f}ms")

    total_vals = [m["total_ms"] for m in logs]
    print(f"\n{'─'*50}")
    print(f"  Total: {np.mean(total_vals):.2f}ms/step ({1000/np.mean(total_vals):.1f} steps/s)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="One-shot fluid / smoke compute harness")
    parser.add_argument(
        "--mode", choices=["request", "benchmark"],
        default="request",
        help="Run mode (default: request)"
    )
    parser.add_argument("--request", type=str, default=None,
                        help="Request JSON (default: read from stdin)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT,
                        help=f"Seconds to wait on the backend before failing (default: {DEFAULT_TIMEOUT})")
    parser.add_argument("--verbose", action="store_true", help="Status lines on stderr")
    parser.add_argument("--size",   type=int, default=128, help="Benchmark grid size (default: 128)")
    parser.add_argument("--steps",  type=int, default=50,  help="Benchmark steps (default: 50)")
    parser.add_argument("--jacobi", type=int, default=30,  help="Benchmark Jacobi iterations (default: 30)")
    return parser


def cli(argv=None) -> int:
    args = build_parser().parse_args(argv)
    report.set_verbose(args.verbose)

    if args.mode == "benchmark":
        run_benchmark(size=args.size, steps=args.steps, jacobi_iters=args.jacobi,
                      timeout=args.timeout)
        return 0

    text = args.request if args.request is not None else sys.stdin.read()
    return run_request(text, timeout=args.timeout)


if __name__ == "__main__":
    sys.exit(cli())
