"""
stats.py — Readback & Statistics
=================================
After the final step the velocity and dye fields are copied into staging
buffers, mapped to host memory, and reduced to a handful of scalars.

The divergence here is recomputed on the host with explicit clamped index
arrays rather than by re-running the divergence kernel, so it checks the
device-side solve independently.
"""

from dataclasses import asdict, dataclass

import numpy as np


DYE_PRESENT_THRESHOLD = 0.01   # a cell counts toward the footprint above this


@dataclass
class FieldStats:
    avg_speed: float
    max_speed: float
    avg_divergence: float
    max_divergence: float
    dye_footprint: float
    dye_total: float

    def to_dict(self) -> dict:
        return asdict(self)


def read_fields(backend, grid) -> tuple[np.ndarray, np.ndarray]:
    """
    Copy the current velocity and dye buffers into host-visible staging
    buffers and map them.

    Returns: (velocity of shape (cells, 2), dye of shape (cells,))
    """
    vel_read = backend.create_buffer("vel-read", grid.cells, 2)
    dye_read = backend.create_buffer("dye-read", grid.cells)

    encoder = backend.create_command_encoder("readback")
    encoder.copy_buffer_to_buffer(grid.velocity.current, vel_read)
    encoder.copy_buffer_to_buffer(grid.dye.current, dye_read)
    copied = backend.queue.submit(encoder)

    # map_read resolves in queue order, i.e. after the copies above
    vel_future = backend.map_read(vel_read)
    dye_future = backend.map_read(dye_read)
    backend.wait(copied, "copy to staging buffers")
    velocity = backend.wait(vel_future, "velocity readback")
    dye = backend.wait(dye_future, "dye readback")

    vel_read.destroy()
    dye_read.destroy()
    return velocity, dye


def speed(velocity: np.ndarray) -> np.ndarray:
    """|v| per cell."""
    return np.sqrt(velocity[:, 0] ** 2 + velocity[:, 1] ** 2)


def host_divergence(velocity: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Central-difference divergence with clamped neighbour indices, computed on
    the host. Returns shape (height, width).
    """
    v = velocity.reshape(height, width, 2)
    xs = np.arange(width)
    ys = np.arange(height)
    xm = np.maximum(xs - 1, 0)
    xp = np.minimum(xs + 1, width - 1)
    ym = np.maximum(ys - 1, 0)
    yp = np.minimum(ys + 1, height - 1)

    vl = v[:, xm, 0]
    vr = v[:, xp, 0]
    vb = v[ym, :, 1]
    vt = v[yp, :, 1]
    return 0.5 * ((vr - vl) + (vt - vb))


def compute_stats(velocity: np.ndarray, dye: np.ndarray, width: int, height: int) -> FieldStats:
    cells = width * height
    s = speed(velocity)
    div = np.abs(host_divergence(velocity, width, height))
    return FieldStats(
        avg_speed=float(s.sum(dtype=np.float64) / cells),
        max_speed=float(s.max()),
        avg_divergence=float(div.sum(dtype=np.float64) / cells),
        max_divergence=float(div.max()),
        dye_footprint=float(np.count_nonzero(dye > DYE_PRESENT_THRESHOLD) / cells),
        dye_total=float(dye.sum(dtype=np.float64)),
    )


def edge_velocity(velocity: np.ndarray, width: int, height: int) -> np.ndarray:
    """All velocity vectors on the grid border, shape (n_edge_cells, 2)."""
    v = velocity.reshape(height, width, 2)
    return np.concatenate([v[0, :], v[-1, :], v[1:-1, 0], v[1:-1, -1]])
