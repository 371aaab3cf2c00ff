"""
grid.py — Grid State & Buffer Roles
====================================
The foundation of the fluid pipeline: every field the kernels touch, and
which half of each double buffer currently holds the live data.

Layout (collocated grid, every field at CELL CENTERS, row-major):
  - velocity   : 2 buffers (A/B) of shape (cells, 2)  → (vx, vy) per cell
  - dye        : 2 buffers (A/B) of shape (cells,)
  - divergence : 1 buffer            (cells,)
  - pressure   : 2 buffers (A/B) of shape (cells,)    → Jacobi ping-pong

A kernel never reads and writes the same buffer. Instead it reads
`field.current`, writes `field.scratch`, and the driver calls `swap()`.
"""

import numpy as np

from .backend import Buffer
from .params import MIN_GRID_DIM


class PingPong:
    """
    Two equally sized buffers with an explicit role for each.

    `current` holds the latest version of the field, `scratch` is where the
    next pass writes. `swap()` flips the roles after that pass.
    """

    def __init__(self, a: Buffer, b: Buffer):
        if a.data.shape != b.data.shape:
            raise ValueError(f"ping-pong halves differ: {a.data.shape} vs {b.data.shape}")
        self.a = a
        self.b = b
        self.index = 0   # 0 → A is current, 1 → B is current

    @property
    def current(self) -> Buffer:
        return self.a if self.index == 0 else self.b

    @property
    def scratch(self) -> Buffer:
        return self.b if self.index == 0 else self.a

    def swap(self):
        self.index ^= 1

    def reset(self):
        """Make A current again (used when both halves are cleared)."""
        self.index = 0

    def __iter__(self):
        return iter((self.a, self.b))

    def __repr__(self):
        return f"PingPong(current={self.current.label!r}, scratch={self.scratch.label!r})"


class GridState:
    """
    All buffers of one request's fluid grid.
    Allocated fresh per request, released when the request completes.
    """

    def __init__(self, backend, width: int, height: int):
        """
        Args:
            backend : The compute backend that owns the buffers
            width   : Cells along X (at least 16)
            height  : Cells along Y (at least 16)
        """
        if width < MIN_GRID_DIM or height < MIN_GRID_DIM:
            raise ValueError(
                f"grid must be at least {MIN_GRID_DIM}x{MIN_GRID_DIM}, got {width}x{height}"
            )
        self.width = width
        self.height = height
        self.cells = width * height

        self.velocity = PingPong(backend.create_buffer("vel-a", self.cells, 2),
                                 backend.create_buffer("vel-b", self.cells, 2))
        self.dye = PingPong(backend.create_buffer("dye-a", self.cells),
                            backend.create_buffer("dye-b", self.cells))
        self.divergence = backend.create_buffer("div", self.cells)
        self.pressure = PingPong(backend.create_buffer("pressure-a", self.cells),
                                 backend.create_buffer("pressure-b", self.cells))

    def clear_pressure(self, encoder):
        """
        Zero BOTH pressure buffers before a solve.
        Stale pressure from the previous step must not seed the next one.
        """
        for buf in self.pressure:
            encoder.clear_buffer(buf)
        self.pressure.reset()

    def buffers(self) -> list:
        return [*self.velocity, *self.dye, self.divergence, *self.pressure]

    def release(self):
        for buf in self.buffers():
            buf.destroy()

    def __repr__(self):
        return (
            f"GridState({self.width}x{self.height}, cells={self.cells})\n"
            f"  velocity : {self.velocity}\n"
            f"  dye      : {self.dye}\n"
            f"  pressure : {self.pressure}"
        )


def cell_indices(width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Integer cell coordinates as float32 arrays of shape (height, width).
    xs[y, x] == x, ys[y, x] == y.
    """
    return np.meshgrid(
        np.arange(width, dtype=np.float32),
        np.arange(height, dtype=np.float32),
        indexing='xy'
    )


def center_offsets(width: int, height: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Offset of each cell center from the grid center, in normalized [0,1]² units.

    Returns (cx, cy, r) each of shape (height, width), r = |(cx, cy)|.
    """
    xs, ys = cell_indices(width, height)
    cx = (xs + 0.5) / width - 0.5
    cy = (ys + 0.5) / height - 0.5
    return cx, cy, np.sqrt(cx * cx + cy * cy)


def zero_edges(field: np.ndarray):
    """
    No-flux boundary: force every edge cell of a (height, width[, 2]) field to zero.
    Modifies: field (in-place)
    """
    field[0, ...]  = 0.0
    field[-1, ...] = 0.0
    field[:, 0, ...]  = 0.0
    field[:, -1, ...] = 0.0
