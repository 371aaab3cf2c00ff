"""
solver.py — Pressure Projection
================================
The pressure projection step enforces INCOMPRESSIBILITY:
  div(v) = 0 everywhere

After advection, the velocity field is generally NOT divergence-free
(fluid "piles up" in some cells). We fix this with three kernels:
  1. divergence : central-difference div(v) of the advected velocity
  2. jacobi     : N relaxation passes of the Poisson equation ∇²p = div(v)
  3. project    : subtract the pressure gradient, v = v - ∇p

Neighbours are clamped at the grid edge (the edge cell repeats itself),
never wrapped.

Jacobi ping-pong (0-indexed iteration i):
  i even → read pressure A, write pressure B
  i odd  → read pressure B, write pressure A
So after N iterations the solution sits in A if N is even, B if N is odd.
`converged_pressure()` computes that from N, the driver hands it to project.
"""

import numpy as np

from .grid import PingPong, zero_edges


def _clamped_neighbours(field: np.ndarray):
    """
    Left/right/bottom/top neighbour of every cell of a (height, width[, C]) field,
    with edge cells repeating themselves.

    Returns: (left, right, bottom, top), each the same shape as `field`.
    """
    pad = ((1, 1), (1, 1)) + ((0, 0),) * (field.ndim - 2)
    padded = np.pad(field, pad, mode='edge')
    return (
        padded[1:-1, :-2],   # x-1
        padded[1:-1, 2:],    # x+1
        padded[:-2, 1:-1],   # y-1
        padded[2:, 1:-1],    # y+1
    )


def divergence(p, vel: np.ndarray, div: np.ndarray):
    """
    div = 0.5 * ((v_right.x - v_left.x) + (v_top.y - v_bottom.y))
    Reads: vel (cells, 2). Writes: div (cells,).
    """
    v = vel.reshape(p.height, p.width, 2)
    left, right, bottom, top = _clamped_neighbours(v)
    div.reshape(p.height, p.width)[...] = 0.5 * (
        (right[..., 0] - left[..., 0]) + (top[..., 1] - bottom[..., 1])
    )


def jacobi(p, p_in: np.ndarray, div: np.ndarray, p_out: np.ndarray):
    """
    One Jacobi relaxation pass:
      p_out = (p_left + p_right + p_bottom + p_top - div) * 0.25
    Reads: p_in, div. Writes: p_out.
    """
    pressure = p_in.reshape(p.height, p.width)
    left, right, bottom, top = _clamped_neighbours(pressure)
    p_out.reshape(p.height, p.width)[...] = (
        left + right + bottom + top - div.reshape(p.height, p.width)
    ) * 0.25


def project(p, vel: np.ndarray, pressure: np.ndarray, out_vel: np.ndarray):
    """
    out_vel = vel - 0.5 * (p_right - p_left, p_top - p_bottom)
    Edge cells are written as exactly zero.
    Reads: vel, pressure. Writes: out_vel.
    """
    v = vel.reshape(p.height, p.width, 2)
    pr = pressure.reshape(p.height, p.width)
    out = out_vel.reshape(p.height, p.width, 2)
    left, right, bottom, top = _clamped_neighbours(pr)

    out[..., 0] = v[..., 0] - 0.5 * (right - left)
    out[..., 1] = v[..., 1] - 0.5 * (top - bottom)
    zero_edges(out)


def converged_pressure(pressure: PingPong, iterations: int):
    """Buffer holding the result after `iterations` Jacobi passes started from A."""
    return pressure.a if iterations % 2 == 0 else pressure.b


def encode_pressure_solve(encoder, p, pressure: PingPong, div_buf, iterations: int):
    """
    Record `iterations` Jacobi passes, alternating the ping-pong roles.
    `pressure` must have A current (i.e. it was just cleared).

    Returns: the buffer holding the converged pressure.
    """
    if pressure.current is not pressure.a:
        raise RuntimeError("pressure solve must start from buffer A")

    for i in range(iterations):
        encoder.dispatch(jacobi, p,
                         reads=[pressure.current, div_buf],
                         writes=[pressure.scratch],
                         label=f"jacobi[{i}]")
        pressure.swap()

    solved = converged_pressure(pressure, iterations)
    if solved is not pressure.current:
        raise RuntimeError(
            f"pressure ping-pong out of phase after {iterations} iterations: "
            f"expected {solved.label!r}, current is {pressure.current.label!r}"
        )
    return solved
