"""
fluidlab/ — One-shot compute harness
=====================================
Exports the main interfaces.

main.py imports: parse_request, execute, failure
Tests import:   FluidSimulation, SimulationParams, NumpyBackend, run_smoke
"""

from .backend import BACKEND_NAME, NumpyBackend
from .errors import BackendError, BackendTimeout, FluidLabError, ReadbackError, RequestError
from .harness import execute, failure, run_fluid_init, run_fluid_step
from .params import SimulationParams
from .requests import parse_request
from .simulation import FluidSimulation
from .smoke import run_smoke, run_smoke_sweep

__all__ = [
    "BACKEND_NAME", "NumpyBackend",
    "FluidLabError", "RequestError", "BackendError", "BackendTimeout", "ReadbackError",
    "execute", "failure", "run_fluid_init", "run_fluid_step",
    "SimulationParams", "parse_request", "FluidSimulation",
    "run_smoke", "run_smoke_sweep",
]
