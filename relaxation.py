"""
Weighted centroid relaxation for JFA Stippling.

Given an Assignment, every site in scope:
1. Resets its capacity to zero
2. Accumulates, over the cells it owns, cell_position * energy * weight and
   energy * weight (capacity); cell positions are unwrapped next to the site
   so the centroid is an ordinary Euclidean one
3. Moves to sum / capacity, wrapped back into [0, 1)²

Weighting policies:
- "uniform":  weight = 1
- "gaussian": weight = exp(-(e_cell - e_site)² / 2σ²), σ from a schedule on
  the channel's current site count. Biases centroids toward cells whose
  density resembles the density under the site.

Accumulation runs as one parallel Taichi loop over cells with atomic adds
into per-site sums.
"""

import taichi as ti
import numpy as np

from config import (
    WEIGHTING, SIGMA_DENSE, SIGMA_SPARSE, SIGMA_SWITCH_FRACTION,
)
from jfa import init_taichi, wrap_idx, cell_center, toroidal_distance_sq
from sites import wrap_positions

WEIGHTINGS = ("uniform", "gaussian")


def default_sigma_schedule(site_count, n_target):
    """Two-regime σ: narrow once the channel holds more than N/4 sites."""
    if site_count > int(n_target * SIGMA_SWITCH_FRACTION):
        return SIGMA_DENSE
    return SIGMA_SPARSE


# ============================================================================
# KERNEL HELPERS
# ============================================================================

@ti.func
def unwrap_axis(site: ti.f32, cell: ti.f32) -> ti.f32:
    """Pick cell, cell - 1 or cell + 1, whichever lies closest to the site."""
    same = ti.abs(site - cell)
    minus = ti.abs(site - cell + 1.0)
    plus = ti.abs(site - cell - 1.0)
    result = cell
    if same >= ti.min(minus, plus):
        if minus < plus:
            result = cell - 1.0
        else:
            result = cell + 1.0
    return result


@ti.func
def pixel_index(x: ti.f32, res: ti.i32) -> ti.i32:
    """Nearest pixel of a continuous coordinate, wrapped."""
    return wrap_idx(ti.cast(ti.floor(x * res), ti.i32), res)


# ============================================================================
# KERNELS
# ============================================================================

@ti.kernel
def accumulate_centroids(labels: ti.types.ndarray(dtype=ti.i32, ndim=2),
                         site_pos: ti.types.ndarray(dtype=ti.f32, ndim=2),
                         site_comp: ti.types.ndarray(dtype=ti.i32, ndim=1),
                         site_sigma: ti.types.ndarray(dtype=ti.f32, ndim=1),
                         density: ti.types.ndarray(dtype=ti.f32, ndim=3),
                         sums: ti.types.ndarray(dtype=ti.f32, ndim=2),
                         capacity: ti.types.ndarray(dtype=ti.f32, ndim=1),
                         res: ti.i32, gaussian: ti.template()):
    """
    Scatter every owned cell's weighted mass into its site.

    Args:
        labels: Flat site id per cell [res, res], -1 = unassigned
        site_pos: Current site positions [n, 2]
        site_comp: Density component read by each site's channel [n]
        site_sigma: Gaussian width of each site's channel [n]
        density: Density samples [res, res, 3]
        sums: Output, Σ position * mass per site [n, 2] (must be zeroed)
        capacity: Output, Σ mass per site [n] (must be zeroed)
        res: Grid resolution
        gaussian: Compile-time switch for the Gaussian weighting
    """
    for u, v in ti.ndrange(res, res):
        sid = labels[u, v]
        if sid >= 0:
            cell = cell_center(u, v, res)
            sx = site_pos[sid, 0]
            sy = site_pos[sid, 1]
            dx = unwrap_axis(sx, cell[0])
            dy = unwrap_axis(sy, cell[1])
            comp = site_comp[sid]

            energy = density[pixel_index(dx, res), pixel_index(dy, res), comp]
            weight = 1.0
            if ti.static(gaussian):
                center = density[pixel_index(sx, res), pixel_index(sy, res), comp]
                sigma = site_sigma[sid]
                diff = energy - center
                weight = ti.exp(-diff * diff / (2.0 * sigma * sigma))

            mass = energy * weight
            ti.atomic_add(sums[sid, 0], dx * mass)
            ti.atomic_add(sums[sid, 1], dy * mass)
            ti.atomic_add(capacity[sid], mass)


# ============================================================================
# HOST PIPELINE
# ============================================================================

def relax_channels(site_sets, assignment, density, n_target,
                   weighting=WEIGHTING, sigma_schedule=default_sigma_schedule):
    """
    Recompute capacities and move every site in the assignment's channels
    to its weighted centroid.

    Args:
        site_sets: Sequence of SiteSet indexed by channel (updated in place)
        assignment: Assignment built from these site sets
        density: DensityField with the same resolution as the grid
        n_target: Global target site count N (drives the σ schedule)
        weighting: "gaussian" or "uniform"
        sigma_schedule: Callable (site_count, n_target) -> σ

    Returns:
        stats: dict with per-channel capacity totals and displacement telemetry
    """
    if weighting not in WEIGHTINGS:
        raise ValueError(f"Unknown weighting {weighting!r}, expected one of {WEIGHTINGS}")
    if not assignment.matches(site_sets):
        raise ValueError("Assignment is stale: site sets changed since propagation")

    res = assignment.resolution
    if density.width != res or density.height != res:
        raise ValueError(
            f"Density is {density.width}×{density.height}, grid is {res}×{res}")

    channels = assignment.channels
    for ch in channels:
        site_sets[ch].reset_capacities()

    stats = {
        "num_sites": assignment.num_sites,
        "total_capacity": {ch: 0.0 for ch in channels},
        "max_shift": 0.0,
        "zero_capacity": 0,
    }

    n = assignment.num_sites
    if n == 0:
        return stats

    init_taichi()

    site_comp = np.empty(n, dtype=np.int32)
    site_sigma = np.empty(n, dtype=np.float32)
    for ch in channels:
        sl = assignment.channel_slice(ch)
        site_comp[sl] = density.component_for(ch)
        site_sigma[sl] = sigma_schedule(len(site_sets[ch]), n_target)

    # Current positions (not the ones captured at propagation time)
    site_pos = np.concatenate([site_sets[ch].positions for ch in channels]).astype(np.float32)

    sums = np.zeros((n, 2), dtype=np.float32)
    capacity = np.zeros(n, dtype=np.float32)

    accumulate_centroids(
        np.ascontiguousarray(assignment.labels, dtype=np.int32),
        np.ascontiguousarray(site_pos),
        site_comp, site_sigma,
        density.samples,
        sums, capacity,
        res, weighting == "gaussian",
    )

    # Normalize: move sites with mass, leave empty ones where they are
    for ch in channels:
        sl = assignment.channel_slice(ch)
        sites = site_sets[ch]
        cap = capacity[sl].astype(np.float64)
        sites.capacities[:] = cap

        moving = cap > 0.0
        if np.any(moving):
            new_pos = sums[sl][moving].astype(np.float64) / cap[moving, None]
            new_pos = wrap_positions(new_pos)
            shift = toroidal_distance_sq(sites.positions[moving], new_pos)
            stats["max_shift"] = max(stats["max_shift"], float(np.sqrt(shift.max())))
            sites.positions[moving] = new_pos

        assert np.all((sites.positions >= 0.0) & (sites.positions < 1.0)), \
            f"channel {ch}: positions escaped [0, 1)"

        stats["total_capacity"][ch] = float(cap.sum())
        stats["zero_capacity"] += int(np.count_nonzero(~moving))

    return stats
