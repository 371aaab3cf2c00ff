"""
params.py — Per-request parameter block
========================================
One immutable value shared by every kernel of a request, the same way a GPU
pipeline binds a single uniform buffer to every pass.

Clamps are applied once, before anything runs, so kernels can trust what
they receive.
"""

from dataclasses import dataclass, replace


# ── Defaults (wire format of a fluid request) ─────────────────────────────────
DEFAULT_STEPS        = 1
DEFAULT_DT           = 0.1
DEFAULT_FADE         = 0.995
DEFAULT_JACOBI_ITERS = 30
DEFAULT_DYE_RADIUS   = 0.15
DEFAULT_IMPULSE      = 25.0

# ── Input clamps ──────────────────────────────────────────────────────────────
MIN_GRID_DIM     = 16
MIN_SMOKE_N      = 64
MIN_STEPS        = 1
MIN_DT           = 1e-4
FADE_RANGE       = (0.8, 1.0)
JACOBI_RANGE     = (5, 120)


def clamp(value, lo, hi):
    return max(lo, min(hi, value))


@dataclass(frozen=True)
class SimulationParams:
    """
    Args:
        width, height : Grid size in cells (row-major, index = y*width + x)
        jacobi_iters  : Pressure relaxation passes per step
        dt            : Timestep, in cells per unit velocity
        fade          : Dye multiplier applied once per step
        dye_radius    : Radius of the dye seed / forcing disc, normalized units
        impulse       : Strength of the initial swirl and the sustained forcing
    """

    width: int
    height: int
    jacobi_iters: int = DEFAULT_JACOBI_ITERS
    dt: float = DEFAULT_DT
    fade: float = DEFAULT_FADE
    dye_radius: float = DEFAULT_DYE_RADIUS
    impulse: float = DEFAULT_IMPULSE

    @property
    def cells(self) -> int:
        return self.width * self.height

    def clamped(self) -> "SimulationParams":
        """Apply the fluid input clamps (grid floor, dt floor, fade and Jacobi ranges)."""
        return replace(
            self,
            width=max(MIN_GRID_DIM, int(self.width)),
            height=max(MIN_GRID_DIM, int(self.height)),
            jacobi_iters=clamp(int(self.jacobi_iters), *JACOBI_RANGE),
            dt=max(MIN_DT, float(self.dt)),
            fade=clamp(float(self.fade), *FADE_RANGE),
        )

    @classmethod
    def for_smoke(cls, n: int) -> "SimulationParams":
        """The smoke kernel only reads `width` (its element count)."""
        return cls(width=n, height=1, jacobi_iters=0, dt=0.0, fade=0.0,
                   dye_radius=0.0, impulse=0.0)
