"""
simulation.py — Step Driver
============================
Ties the kernels together. `initialize()` seeds the grid once, then one
call to `step()` advances the fluid by dt.

Pipeline per step (each stage is a barrier: it starts only after every
cell of the previous stage has been written):
  1. ClearPressure   : zero both pressure buffers
  2. AdvectVelocity  : vel.current → vel.scratch, swap
  3. Divergence      : vel.current → div
  4. Jacobi ×N       : pressure A ⇄ B
  5. Project         : vel.current + converged pressure → vel.scratch, swap
  6. AdvectDye       : vel.current + dye.current → dye.scratch, swap
  7. Fade            : dye.current → dye.scratch, swap

After a step both velocity and dye are back in their A buffers, which is
exactly what the next step's advection reads.

This follows the "Stable Fluids" paper by Jos Stam.
"""

import time

from . import report
from .advect import advect_dye, advect_velocity
from .backend import NumpyBackend
from .forces import fade, fluid_init
from .grid import GridState
from .solver import divergence, encode_pressure_solve, project
from .stats import read_fields


STAGES = ("clear_pressure", "advect_velocity", "divergence", "jacobi",
          "project", "advect_dye", "fade")


class FluidSimulation:
    """
    The complete 2D fluid simulation for one request.

    Usage:
        sim = FluidSimulation(SimulationParams(width=64, height=64))
        sim.initialize()
        for _ in range(100):
            sim.step()
        velocity, dye = sim.read_fields()
    """

    def __init__(self, params, backend=None):
        """
        Args:
            params  : SimulationParams (already clamped)
            backend : Compute backend; a fresh NumpyBackend when omitted
        """
        self.params = params
        self.backend = backend if backend is not None else NumpyBackend()
        self.grid = GridState(self.backend, params.width, params.height)
        self.frame = 0
        self.initialized = False
        self.perf_log = []   # stores timing data per step
        self.solved_pressure = None   # buffer the last projection read
        self._pending = []   # submitted, not yet waited-on steps

    def initialize(self):
        """
        Dispatch the init kernel once: seeds velocity A and dye A.
        Must run exactly once, before the first step.
        """
        if self.initialized:
            raise RuntimeError("fluid grid already initialized; init runs once per request")
        g = self.grid
        encoder = self.backend.create_command_encoder("init")
        encoder.dispatch(fluid_init, self.params,
                         writes=[g.velocity.current, g.dye.current])
        self.backend.wait(self.backend.queue.submit(encoder), "fluid init")
        self.initialized = True
        report.status("Simulation", f"initialized {g.width}x{g.height} grid ({g.cells} cells)")

    # ── Stage encoders ─────────────────────────────────────────────────────
    def _encode_clear_pressure(self, encoder):
        self.grid.clear_pressure(encoder)

    def _encode_advect_velocity(self, encoder):
        vel = self.grid.velocity
        encoder.dispatch(advect_velocity, self.params,
                         reads=[vel.current], writes=[vel.scratch])
        vel.swap()

    def _encode_divergence(self, encoder):
        g = self.grid
        encoder.dispatch(divergence, self.params,
                         reads=[g.velocity.current], writes=[g.divergence])

    def _encode_jacobi(self, encoder):
        g = self.grid
        self.solved_pressure = encode_pressure_solve(
            encoder, self.params, g.pressure, g.divergence, self.params.jacobi_iters
        )

    def _encode_project(self, encoder):
        vel = self.grid.velocity
        encoder.dispatch(project, self.params,
                         reads=[vel.current, self.solved_pressure],
                         writes=[vel.scratch])
        vel.swap()

    def _encode_advect_dye(self, encoder):
        g = self.grid
        encoder.dispatch(advect_dye, self.params,
                         reads=[g.velocity.current, g.dye.current],
                         writes=[g.dye.scratch])
        g.dye.swap()

    def _encode_fade(self, encoder):
        dye = self.grid.dye
        encoder.dispatch(fade, self.params, reads=[dye.current], writes=[dye.scratch])
        dye.swap()

    def _stages(self):
        return [(name, getattr(self, f"_encode_{name}")) for name in STAGES]

    # ── Stepping ───────────────────────────────────────────────────────────
    def step(self, profile: bool = False) -> dict:
        """
        Advance the simulation by one timestep.

        Args:
            profile : Submit and wait on every stage separately and record
                      per-stage milliseconds. Off by default: the whole step
                      is recorded into one encoder and submitted as a unit.

        Returns performance metrics dict for benchmarking.
        """
        if not self.initialized:
            raise RuntimeError("call initialize() before step()")

        t_total_start = time.perf_counter()
        stage_ms = {}

        if profile:
            for name, encode in self._stages():
                t0 = time.perf_counter()
                encoder = self.backend.create_command_encoder(name)
                encode(encoder)
                self.backend.wait(self.backend.queue.submit(encoder), f"stage {name}")
                stage_ms[name] = (time.perf_counter() - t0) * 1000
        else:
            encoder = self.backend.create_command_encoder(f"step-{self.frame}")
            for _, encode in self._stages():
                encode(encoder)
            self._pending.append(self.backend.queue.submit(encoder))

        self.frame += 1
        t_total = (time.perf_counter() - t_total_start) * 1000

        metrics = {
            "frame"    : self.frame,
            "total_ms" : t_total,
            "stage_ms" : stage_ms,
        }
        self.perf_log.append(metrics)
        return metrics

    def run(self, steps: int, profile: bool = False):
        """Run `steps` steps and block (bounded) until all of them have executed."""
        for _ in range(steps):
            self.step(profile=profile)
        self.flush()
        report.status("Simulation", f"completed {steps} step(s), frame={self.frame}")

    def flush(self):
        """
        Wait for every submitted step. A kernel failure inside any of them
        is re-raised here.
        """
        pending, self._pending = self._pending, []
        for i, future in enumerate(pending):
            self.backend.wait(future, f"step {self.frame - len(pending) + i}")

    def read_fields(self):
        """Copy the current velocity and dye to host memory."""
        self.flush()
        return read_fields(self.backend, self.grid)

    def release(self):
        self.grid.release()

    def __repr__(self):
        p = self.params
        return (
            f"FluidSimulation({p.width}x{p.height}, frame={self.frame}, "
            f"jacobi_iters={p.jacobi_iters}, dt={p.dt}, fade={p.fade})"
        )
