"""
forces.py — Seeding, Forcing and Dye Source
============================================
Everything that injects energy or dye into the grid:

  1. fluid_init    : the initial Gaussian-damped vortex + a disc of dye
  2. swirl_forcing : a sustained tangential push near the grid center,
                     added by the velocity advection pass every step
  3. fade          : dye decay plus a small constant trickle at the center,
                     so long runs never fade to nothing

All kernels share the signature `kernel(params, *reads, *writes)` and fill
their write arrays in place.
"""

import numpy as np

from .grid import cell_indices, center_offsets


# ── Seeding / forcing parameters ─────────────────────────────────────────────
VORTEX_FALLOFF      = 30.0    # exp(-k r²) damping of the initial swirl
MIN_SEED_RADIUS     = 0.01    # dye seed radius floor (avoids divide-by-zero)
MIN_FORCING_RADIUS  = 1e-3    # forcing falloff radius floor
TANGENT_BIAS        = 1e-4    # keeps the tangent normalizable at the exact center
DYE_SOURCE_AMOUNT   = 0.02    # dye added per step inside the source disc
DYE_SOURCE_FRACTION = 0.4     # source disc radius, as a fraction of dye_radius


def fluid_init(p, vel: np.ndarray, dye: np.ndarray):
    """
    Seed velocity with a vortex and dye with a cone centred on the grid.

      velocity = (-c.y, c.x) * impulse * exp(-30 r²)
      dye      = 1 - r / max(dye_radius, 0.01)   if r <= dye_radius else 0

    where c is the normalized offset from the grid center and r = |c|.
    Deterministic for a given (width, height, dye_radius, impulse).
    """
    cx, cy, r = center_offsets(p.width, p.height)
    swirl = p.impulse * np.exp(-VORTEX_FALLOFF * r * r)

    v = vel.reshape(p.height, p.width, 2)
    v[..., 0] = -cy * swirl
    v[..., 1] = cx * swirl

    d = dye.reshape(p.height, p.width)
    d[...] = np.where(r <= p.dye_radius,
                      1.0 - r / max(p.dye_radius, MIN_SEED_RADIUS),
                      0.0)


def swirl_forcing(p, xs: np.ndarray, ys: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Tangential force per cell, already scaled by dt.

    Cells within dye_radius of the center (distance normalized by
    min(width, height)) get `tangent * impulse * dt * (1 - r / dye_radius)`;
    every other cell gets zero.

    Args:
        xs, ys : Cell coordinates in grid units, shape (height, width)

    Returns:
        (fx, fy) each of shape (height, width)
    """
    rel_x = xs - p.width * 0.5
    rel_y = ys - p.height * 0.5
    r = np.sqrt(rel_x * rel_x + rel_y * rel_y) / max(min(p.width, p.height), 1)

    tx = -rel_y + TANGENT_BIAS
    ty = rel_x
    norm = np.sqrt(tx * tx + ty * ty)

    falloff = 1.0 - r / max(p.dye_radius, MIN_FORCING_RADIUS)
    strength = np.where(r <= p.dye_radius, p.impulse * p.dt * falloff, 0.0)
    return tx / norm * strength, ty / norm * strength


def dye_source(p) -> np.ndarray:
    """Per-cell dye trickle: 0.02 inside 0.4 * dye_radius of the center, else 0."""
    _, _, r = center_offsets(p.width, p.height)
    return np.where(r <= p.dye_radius * DYE_SOURCE_FRACTION, DYE_SOURCE_AMOUNT, 0.0)


def fade(p, src: np.ndarray, dst: np.ndarray):
    """
    Dye decay pass:  dst = src * fade + source

    With fade < 1 the total settles where decay balances the trickle, so
    it stays bounded however many steps run.
    """
    s = src.reshape(p.height, p.width)
    d = dst.reshape(p.height, p.width)
    d[...] = s * p.fade + dye_source(p)


def forcing_field(p) -> tuple[np.ndarray, np.ndarray]:
    """swirl_forcing evaluated on the whole grid (handy for inspection and tests)."""
    xs, ys = cell_indices(p.width, p.height)
    return swirl_forcing(p, xs, ys)
