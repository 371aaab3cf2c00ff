"""Kernel-level tests: each fluid kernel called directly on numpy arrays.

Covers the closed-form init seed, bilinear sampling and its clamping, the
forcing disc, divergence / Jacobi / projection stencils with clamped
neighbours, the fade pass, and that a longer Jacobi solve leaves less
divergence behind after projection.
"""

import math

import numpy as np
import pytest

from fluidlab.advect import _bilinear_sample, advect_dye, advect_velocity
from fluidlab.forces import fade, fluid_init, forcing_field
from fluidlab.grid import cell_indices
from fluidlab.params import SimulationParams
from fluidlab.solver import divergence, jacobi, project
from fluidlab.stats import host_divergence


def _params(w=32, h=32, **kw) -> SimulationParams:
    return SimulationParams(width=w, height=h, **kw)


def _vel(p) -> np.ndarray:
    return np.zeros((p.cells, 2), dtype=np.float32)


def _scalar(p) -> np.ndarray:
    return np.zeros(p.cells, dtype=np.float32)


# ── Init ──────────────────────────────────────────────────────────────────────
@pytest.mark.parametrize("x,y", [(0, 0), (16, 16), (20, 13), (31, 5)])
def test_init_matches_closed_form(x, y):
    p = _params(impulse=25.0, dye_radius=0.15)
    vel, dye = _vel(p), _scalar(p)
    fluid_init(p, vel, dye)

    cx = (x + 0.5) / p.width - 0.5
    cy = (y + 0.5) / p.height - 0.5
    r = math.hypot(cx, cy)
    swirl = p.impulse * math.exp(-30.0 * r * r)
    expected_dye = 1.0 - r / 0.15 if r <= 0.15 else 0.0

    i = y * p.width + x
    np.testing.assert_allclose(vel[i], [-cy * swirl, cx * swirl], rtol=1e-4, atol=1e-6)
    assert dye[i] == pytest.approx(expected_dye, abs=1e-5)


def test_init_is_deterministic():
    p = _params(48, 40, impulse=10.0, dye_radius=0.2)
    first = (_vel(p), _scalar(p))
    second = (_vel(p), _scalar(p))
    fluid_init(p, *first)
    fluid_init(p, *second)
    np.testing.assert_array_equal(first[0], second[0])
    np.testing.assert_array_equal(first[1], second[1])


def test_init_dye_radius_floor():
    p = _params(dye_radius=0.0)
    vel, dye = _vel(p), _scalar(p)
    fluid_init(p, vel, dye)
    assert np.isfinite(dye).all()
    assert not dye.any()


# ── Bilinear sampling ─────────────────────────────────────────────────────────
def test_bilinear_exact_at_cells():
    field = np.arange(20, dtype=np.float32).reshape(4, 5)
    xs, ys = cell_indices(4, 3)   # inside the 5x4 field
    np.testing.assert_allclose(_bilinear_sample(field, xs, ys), field[:3, :4])


def test_bilinear_midpoint():
    field = np.array([[0.0, 2.0], [4.0, 6.0]], dtype=np.float32)
    out = _bilinear_sample(field, np.array([[0.5]], dtype=np.float32),
                           np.array([[0.5]], dtype=np.float32))
    assert out[0, 0] == pytest.approx(3.0)


def test_bilinear_clamps_instead_of_wrapping():
    field = np.arange(16, dtype=np.float32).reshape(4, 4)
    below = _bilinear_sample(field, np.array([[-5.0]], dtype=np.float32),
                             np.array([[-3.0]], dtype=np.float32))
    assert below[0, 0] == pytest.approx(field[0, 0])

    above = _bilinear_sample(field, np.array([[100.0]], dtype=np.float32),
                             np.array([[0.0]], dtype=np.float32))
    # clamped to x = 2.999 → almost entirely the last column
    assert above[0, 0] == pytest.approx(0.001 * field[0, 2] + 0.999 * field[0, 3], abs=1e-4)


def test_bilinear_vector_field():
    field = np.zeros((4, 4, 2), dtype=np.float32)
    field[..., 0] = 1.0
    field[..., 1] = -2.0
    xs = np.full((2, 2), 1.3, dtype=np.float32)
    out = _bilinear_sample(field, xs, xs)
    assert out.shape == (2, 2, 2)
    np.testing.assert_allclose(out[..., 0], 1.0)
    np.testing.assert_allclose(out[..., 1], -2.0)


# ── Forcing ───────────────────────────────────────────────────────────────────
def test_forcing_only_inside_radius():
    p = _params(impulse=25.0, dt=0.1, dye_radius=0.15)
    fx, fy = forcing_field(p)
    assert fx[0, 0] == 0.0 and fy[0, 0] == 0.0

    # cell (x=16, y=20): rel = (0, 4), r = 4/32 = 0.125
    strength = 25.0 * 0.1 * (1.0 - 0.125 / 0.15)
    assert fx[20, 16] == pytest.approx(-strength, rel=1e-3)
    assert fy[20, 16] == pytest.approx(0.0, abs=1e-4)


def test_forcing_is_tangential():
    p = _params(impulse=25.0, dt=0.1, dye_radius=0.3)
    fx, fy = forcing_field(p)
    xs, ys = cell_indices(p.width, p.height)
    radial = fx * (xs - 16.0) + fy * (ys - 16.0)
    assert np.abs(radial).max() < 1e-2


def test_forcing_finite_at_exact_center():
    p = _params(impulse=25.0, dt=0.1)
    fx, fy = forcing_field(p)
    assert np.isfinite(fx).all() and np.isfinite(fy).all()
    assert fx[16, 16] == pytest.approx(25.0 * 0.1, rel=1e-3)


# ── Advection ─────────────────────────────────────────────────────────────────
def test_advect_velocity_uniform_flow_is_damped():
    p = _params(impulse=0.0, dt=0.1)
    src = _vel(p)
    src[:, 0] = 1.0
    dst = _vel(p)
    advect_velocity(p, src, dst)

    d = dst.reshape(p.height, p.width, 2)
    np.testing.assert_allclose(d[1:-1, 1:-1, 0], 0.999, rtol=1e-5)
    np.testing.assert_allclose(d[1:-1, 1:-1, 1], 0.0)


def test_advect_velocity_zeroes_edges():
    p = _params(impulse=25.0, dt=0.1)
    src = _vel(p)
    src[...] = 3.0
    dst = _vel(p)
    advect_velocity(p, src, dst)
    d = dst.reshape(p.height, p.width, 2)
    for edge in (d[0], d[-1], d[:, 0], d[:, -1]):
        assert not edge.any()


def test_advect_dye_translates_with_flow():
    p = _params(dt=1.0)
    vel = _vel(p)
    vel[:, 0] = 1.0    # one cell per step in +x
    src = _scalar(p)
    src.reshape(p.height, p.width)[10, 10] = 1.0
    dst = _scalar(p)
    advect_dye(p, vel, src, dst)

    d = dst.reshape(p.height, p.width)
    assert d[10, 11] == pytest.approx(1.0)
    assert d[10, 10] == pytest.approx(0.0)


# ── Divergence / Jacobi / Projection ──────────────────────────────────────────
def test_divergence_of_linear_field():
    p = _params(16, 16)
    xs, ys = cell_indices(p.width, p.height)
    vel = np.stack([xs, ys], axis=-1).reshape(p.cells, 2).astype(np.float32)
    div = _scalar(p)
    divergence(p, vel, div)

    d = div.reshape(p.height, p.width)
    np.testing.assert_allclose(d[1:-1, 1:-1], 2.0)
    assert d[0, 0] == pytest.approx(1.0)        # clamped on both axes
    assert d[5, 0] == pytest.approx(1.5)        # clamped on x only


def test_jacobi_stencil():
    p = _params(16, 16)
    p_in = _scalar(p)
    div = np.ones(p.cells, dtype=np.float32)
    p_out = _scalar(p)
    jacobi(p, p_in, div, p_out)
    np.testing.assert_allclose(p_out, -0.25)

    p_in[...] = 3.0
    div[...] = 0.0
    jacobi(p, p_in, div, p_out)
    np.testing.assert_allclose(p_out, 3.0)


def test_project_subtracts_gradient_and_zeroes_edges():
    p = _params(16, 16)
    xs, _ = cell_indices(p.width, p.height)
    pressure = xs.reshape(p.cells).astype(np.float32)   # ∂p/∂x = 1
    vel = _vel(p)
    out = _vel(p)
    project(p, vel, pressure, out)

    o = out.reshape(p.height, p.width, 2)
    np.testing.assert_allclose(o[1:-1, 1:-1, 0], -1.0)
    np.testing.assert_allclose(o[1:-1, 1:-1, 1], 0.0)
    for edge in (o[0], o[-1], o[:, 0], o[:, -1]):
        assert not edge.any()


def test_host_divergence_matches_kernel():
    p = _params(24, 20, impulse=25.0)
    vel, dye = _vel(p), _scalar(p)
    fluid_init(p, vel, dye)
    div = _scalar(p)
    divergence(p, vel, div)
    np.testing.assert_allclose(host_divergence(vel, p.width, p.height),
                               div.reshape(p.height, p.width), atol=1e-6)


def _gaussian_gradient_field(p, sigma=4.0) -> np.ndarray:
    """v = ∇φ for a Gaussian bump φ centred on the grid: pure divergence, no curl."""
    xs, ys = cell_indices(p.width, p.height)
    dx = xs - p.width / 2
    dy = ys - p.height / 2
    phi = np.exp(-(dx * dx + dy * dy) / (2 * sigma * sigma))
    vx = -dx / (sigma * sigma) * phi
    vy = -dy / (sigma * sigma) * phi
    return np.stack([vx, vy], axis=-1).reshape(p.cells, 2).astype(np.float32)


def _projected_max_divergence(p, vel, iterations) -> float:
    div = _scalar(p)
    divergence(p, vel, div)
    a, b = _scalar(p), _scalar(p)
    for i in range(iterations):
        if i % 2 == 0:
            jacobi(p, a, div, b)
        else:
            jacobi(p, b, div, a)
    solved = a if iterations % 2 == 0 else b
    out = _vel(p)
    project(p, vel, solved, out)
    return float(np.abs(host_divergence(out, p.width, p.height)).max())


def test_longer_solve_removes_more_divergence():
    p = _params(48, 48)
    vel = _gaussian_gradient_field(p)
    before = float(np.abs(host_divergence(vel, p.width, p.height)).max())

    short = _projected_max_divergence(p, vel, 5)
    long = _projected_max_divergence(p, vel, 120)
    assert long < short
    assert long < before


# ── Fade ──────────────────────────────────────────────────────────────────────
def test_fade_decay_and_source():
    p = _params(fade=0.9, dye_radius=0.15)
    src = np.ones(p.cells, dtype=np.float32)
    dst = _scalar(p)
    fade(p, src, dst)

    d = dst.reshape(p.height, p.width)
    assert d[16, 16] == pytest.approx(0.92)    # r ≈ 0.022 ≤ 0.4 * 0.15
    assert d[0, 0] == pytest.approx(0.9)
    assert d[16, 22] == pytest.approx(0.9)     # r ≈ 0.20, outside the source disc
