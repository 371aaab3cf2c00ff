"""
advect.py — Semi-Lagrangian Advection
======================================
This is what makes fluid look like it's *actually flowing*.

The algorithm (per cell):
  1. Start at the cell position (x, y) in grid units.
  2. Trace BACKWARD along the velocity field by one timestep (dt).
     → "Where did the stuff in this cell come FROM?"
  3. Sample the field at that back-traced position with bilinear
     interpolation (it'll land between grid cells).
  4. That sampled value becomes the new value for this cell.

Back-traced positions are clamped inside the grid, never wrapped.
Unconditionally stable, whatever dt is.

Key reference: Jos Stam, "Stable Fluids" (SIGGRAPH 1999)
"""

import numpy as np

from .forces import swirl_forcing
from .grid import cell_indices, zero_edges


VELOCITY_DAMPING = 0.999    # applied to every advected velocity sample


def _bilinear_sample(field: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Bilinear interpolation of a (height, width) or (height, width, C) field.

    Query positions are clamped to [0, dim - 1.001] so the upper corner is
    always a valid cell.

    Args:
        field : Array to sample from
        x, y  : Query positions in grid units, shape (height, width)

    Returns:
        Interpolated values, shape (height, width) or (height, width, C)
    """
    h, w = field.shape[:2]

    x = np.clip(x, 0.0, w - 1.001)
    y = np.clip(y, 0.0, h - 1.001)

    # Lower corner
    x0f = np.floor(x)
    y0f = np.floor(y)
    x0 = x0f.astype(np.int32)
    y0 = y0f.astype(np.int32)

    # Upper corner
    x1 = np.minimum(x0 + 1, w - 1)
    y1 = np.minimum(y0 + 1, h - 1)

    # Fractional part
    tx = x - x0f
    ty = y - y0f
    if field.ndim == 3:
        tx = tx[..., np.newaxis]
        ty = ty[..., np.newaxis]

    c00 = field[y0, x0]
    c10 = field[y0, x1]
    c01 = field[y1, x0]
    c11 = field[y1, x1]

    # Lerp in X, then Y
    c0 = c00 * (1 - tx) + c10 * tx
    c1 = c01 * (1 - tx) + c11 * tx
    return c0 * (1 - ty) + c1 * ty


def advect_velocity(p, src: np.ndarray, dst: np.ndarray):
    """
    Self-advection of the velocity field plus the sustained center swirl.

      dst = sample(src, pos - dt * src[pos]) * 0.999 + forcing(pos)

    Edge cells are written as zero (no-flux boundary).
    Reads: src (cells, 2). Writes: dst (cells, 2).
    """
    s = src.reshape(p.height, p.width, 2)
    d = dst.reshape(p.height, p.width, 2)
    xs, ys = cell_indices(p.width, p.height)

    x_back = xs - p.dt * s[..., 0]
    y_back = ys - p.dt * s[..., 1]
    sampled = _bilinear_sample(s, x_back, y_back) * VELOCITY_DAMPING

    fx, fy = swirl_forcing(p, xs, ys)
    d[..., 0] = sampled[..., 0] + fx
    d[..., 1] = sampled[..., 1] + fy
    zero_edges(d)


def advect_dye(p, vel: np.ndarray, src: np.ndarray, dst: np.ndarray):
    """
    Carry dye along the (post-projection) velocity field.
    Reads: vel (cells, 2), src (cells,). Writes: dst (cells,).
    """
    v = vel.reshape(p.height, p.width, 2)
    s = src.reshape(p.height, p.width)
    d = dst.reshape(p.height, p.width)
    xs, ys = cell_indices(p.width, p.height)

    x_back = xs - p.dt * v[..., 0]
    y_back = ys - p.dt * v[..., 1]
    d[...] = _bilinear_sample(s, x_back, y_back)
