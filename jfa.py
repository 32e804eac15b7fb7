"""
Jump Flood Algorithm (JFA) for toroidal Voronoi labelling.

This module computes, for every cell of a W×W grid over the periodic unit
square, the nearest site among all sites of a chosen set of channels.

Key Features:
- Toroidal distance metric: dx² + dy², dx = min(|ax - bx|, 1 - |ax - bx|)
- Periodic Boundary Conditions on every neighbor read
- Ping-pong buffers (two Taichi fields swapped by index, no in-place writes)
- Multi-channel labelling: a label is a flat id into the concatenation of
  the selected channels' sites, so channels compete for cells
- Telemetry: label changes per pass, aliased seeds

Algorithm Flow:
1. Clear both buffers, seed each site into the cell containing it
   (serialized, so the last site written to an aliased cell wins)
2. For step = W/2, W/4, ..., 1: every cell looks at itself and its 8
   neighbors at ±step and keeps the closest site
3. Return the label grid as an Assignment

JFA is an approximation: ties and rare long-range misses are accepted.
"""

import taichi as ti
import numpy as np

from config import TI_ARCH, TI_SERIAL

UNASSIGNED = -1

_ti_ready = False


def init_taichi(arch=TI_ARCH, serial=TI_SERIAL):
    """
    Initialize the Taichi runtime once per process.

    Later calls are no-ops, so every entry point may call this safely.

    Args:
        arch: "cpu", "gpu", "cuda", "vulkan" or "metal"
        serial: Run CPU kernels on a single thread
    """
    global _ti_ready
    if _ti_ready:
        return

    backend = getattr(ti, arch, ti.cpu) if isinstance(arch, str) else arch
    if serial:
        ti.init(arch=ti.cpu, cpu_max_num_threads=1)
    else:
        ti.init(arch=backend)
    _ti_ready = True


def is_power_of_two(n):
    return isinstance(n, (int, np.integer)) and n > 0 and (n & (n - 1)) == 0


# ============================================================================
# HOST HELPERS (NumPy twins of the kernel functions)
# ============================================================================

def wrap_index(p, size):
    """
    Wrap an integer index to [0, size) for periodic addressing.

    Python's % already floors toward negative infinity, so -1 maps to size - 1.
    Works element-wise on integer arrays too.
    """
    return p % size


def toroidal_distance_sq(a, b):
    """
    Squared distance on the periodic unit square.

    Monotonic with the true toroidal distance, which is all a nearest-site
    comparison needs.

    Args:
        a, b: Points (or [..., 2] arrays of points) in [0, 1)²

    Returns:
        dx² + dy² with each axis taking the shorter way around
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    d = np.abs(a - b)
    d = np.minimum(d, 1.0 - d)
    return np.sum(d * d, axis=-1)


# ============================================================================
# KERNEL HELPERS (PBC-AWARE)
# ============================================================================

@ti.func
def wrap_idx(i: ti.i32, res: ti.i32) -> ti.i32:
    """Double modulo, safe for negative indices on every backend."""
    return (i % res + res) % res


@ti.func
def cell_center(u: ti.i32, v: ti.i32, res: ti.i32) -> ti.math.vec2:
    return ti.math.vec2((u + 0.5) / res, (v + 0.5) / res)


@ti.func
def periodic_dist_sq(a: ti.math.vec2, b: ti.math.vec2) -> ti.f32:
    dx = ti.abs(a[0] - b[0])
    dy = ti.abs(a[1] - b[1])
    dx = ti.min(dx, 1.0 - dx)
    dy = ti.min(dy, 1.0 - dy)
    return dx * dx + dy * dy


# ============================================================================
# JFA KERNELS
# ============================================================================

@ti.kernel
def jfa_seed(grid: ti.template(), temp: ti.template(),
             site_pos: ti.types.ndarray(dtype=ti.f32, ndim=2),
             n: ti.i32, res: ti.i32) -> ti.i32:
    """
    Clear both buffers and seed every site into its own cell.

    Args:
        grid: Buffer that receives the seeds
        temp: Second ping-pong buffer (cleared only)
        site_pos: Flat site positions [n, 2]
        n: Number of sites
        res: Grid resolution W

    Returns:
        Number of seeds that overwrote an earlier seed in the same cell
    """
    for u, v in ti.ndrange(res, res):
        grid[u, v] = -1
        temp[u, v] = -1

    aliased = 0
    ti.loop_config(serialize=True)
    for i in range(n):
        u = wrap_idx(ti.cast(ti.floor(site_pos[i, 0] * res), ti.i32), res)
        v = wrap_idx(ti.cast(ti.floor(site_pos[i, 1] * res), ti.i32), res)
        if grid[u, v] >= 0:
            aliased += 1
        grid[u, v] = i
    return aliased


@ti.kernel
def jfa_step(src: ti.template(), dst: ti.template(),
             site_pos: ti.types.ndarray(dtype=ti.f32, ndim=2),
             step: ti.i32, res: ti.i32) -> ti.i32:
    """
    One JFA pass: read from src, write to dst.

    Each cell compares its current site with the sites held by its 8
    neighbors at distance `step` (toroidal wrap) and keeps the closest.
    The current site wins ties.

    Returns:
        Number of cells whose label changed in this pass
    """
    changes = 0
    for u, v in ti.ndrange(res, res):
        center = cell_center(u, v, res)

        current = src[u, v]
        best_id = current
        best_dist = 1e10  # unassigned

        if best_id >= 0:
            best_dist = periodic_dist_sq(center, ti.math.vec2(site_pos[best_id, 0], site_pos[best_id, 1]))

        for dx in ti.static(range(-1, 2)):
            for dy in ti.static(range(-1, 2)):
                nu = wrap_idx(u + dx * step, res)
                nv = wrap_idx(v + dy * step, res)
                neighbor_id = src[nu, nv]

                if neighbor_id >= 0:
                    d = periodic_dist_sq(center, ti.math.vec2(site_pos[neighbor_id, 0], site_pos[neighbor_id, 1]))
                    if d < best_dist:
                        best_dist = d
                        best_id = neighbor_id

        dst[u, v] = best_id

        if best_id != current:
            changes += 1
    return changes


# ============================================================================
# ASSIGNMENT
# ============================================================================

class Assignment:
    """
    Nearest-site labelling produced by one propagation.

    labels[u, v] is a flat site id into the concatenation of the selected
    channels' sites (in the order of `channels`), or UNASSIGNED.
    u is the x column, v the y row (v = 0 at y = 0).
    """

    def __init__(self, labels, channels, sizes, positions, stats=None):
        self.labels = labels
        self.channels = tuple(channels)
        self.sizes = tuple(int(s) for s in sizes)
        self.offsets = np.concatenate([[0], np.cumsum(self.sizes)]).astype(np.int64)
        self.positions = positions
        self.stats = stats or {}

    @property
    def resolution(self):
        return self.labels.shape[0]

    @property
    def num_sites(self):
        return int(self.offsets[-1])

    def channel_slice(self, channel):
        k = self.channels.index(channel)
        return slice(int(self.offsets[k]), int(self.offsets[k + 1]))

    def channel_ids(self):
        """Channel of every cell's owner, -1 where unassigned."""
        out = np.full(self.labels.shape, UNASSIGNED, dtype=np.int32)
        assigned = self.labels >= 0
        if np.any(assigned):
            k = np.searchsorted(self.offsets, self.labels[assigned], side="right") - 1
            out[assigned] = np.asarray(self.channels, dtype=np.int32)[k]
        return out

    def site_ids(self):
        """Index of every cell's owner within its own channel, -1 where unassigned."""
        out = np.full(self.labels.shape, UNASSIGNED, dtype=np.int32)
        assigned = self.labels >= 0
        if np.any(assigned):
            flat = self.labels[assigned]
            k = np.searchsorted(self.offsets, flat, side="right") - 1
            out[assigned] = flat - self.offsets[k]
        return out

    def owner(self, u, v):
        """(site_index, channel) owning cell (u, v), or None."""
        flat = int(self.labels[wrap_index(u, self.resolution), wrap_index(v, self.resolution)])
        if flat < 0:
            return None
        k = int(np.searchsorted(self.offsets, flat, side="right") - 1)
        return flat - int(self.offsets[k]), self.channels[k]

    def cell_counts(self, channel):
        """Number of cells owned by each site of `channel`."""
        sl = self.channel_slice(channel)
        n = sl.stop - sl.start
        mine = self.labels[(self.labels >= sl.start) & (self.labels < sl.stop)]
        return np.bincount(mine - sl.start, minlength=n)

    def matches(self, site_sets):
        """True if the site sets still have the sizes this grid was built from."""
        return all(len(site_sets[ch]) == size for ch, size in zip(self.channels, self.sizes))


# ============================================================================
# MAIN PIPELINE
# ============================================================================

class JFAContext:
    """
    Owns the ping-pong label buffers for one grid resolution.

    Allocate once per engine; every propagate() call rebuilds the labelling
    from scratch.
    """

    def __init__(self, resolution):
        if not is_power_of_two(resolution):
            raise ValueError(
                f"JFA resolution must be a power of two, got {resolution!r}")
        init_taichi()

        self.resolution = int(resolution)
        self.num_passes = self.resolution.bit_length() - 1  # log2(W)

        # Arena: buffers[src] is read, buffers[1 - src] is written each pass
        self.buffers = [
            ti.field(dtype=ti.i32, shape=(self.resolution, self.resolution)),
            ti.field(dtype=ti.i32, shape=(self.resolution, self.resolution)),
        ]

    def propagate(self, site_sets, channels):
        """
        Label every cell with its nearest site among the given channels.

        Args:
            site_sets: Sequence of SiteSet indexed by channel
            channels: Channel ids to include (order defines flat ids)

        Returns:
            Assignment
        """
        channels = [int(ch) for ch in channels]
        sizes = [len(site_sets[ch]) for ch in channels]
        if sum(sizes) > 0:
            positions = np.concatenate(
                [site_sets[ch].positions for ch in channels if len(site_sets[ch]) > 0]
            ).astype(np.float32)
        else:
            positions = np.zeros((0, 2), dtype=np.float32)

        res = self.resolution
        n = len(positions)

        if n == 0:
            # Nothing to flood: every cell stays unassigned
            labels = np.full((res, res), UNASSIGNED, dtype=np.int32)
            stats = {"num_passes": 0, "label_changes": [], "jfa_res": res,
                     "num_sites": 0, "aliased_seeds": 0}
            return Assignment(labels, channels, sizes, positions, stats)

        positions = np.ascontiguousarray(positions)

        # Step 1: seed
        aliased = jfa_seed(self.buffers[0], self.buffers[1], positions, n, res)

        # Step 2: logarithmic jumps with ping-pong buffering
        src = 0
        label_changes = []
        step = res // 2
        while step >= 1:
            changes = jfa_step(self.buffers[src], self.buffers[1 - src], positions, step, res)
            label_changes.append(int(changes))
            src = 1 - src  # swap only after the whole pass completed
            step //= 2

        labels = self.buffers[src].to_numpy().astype(np.int32)

        stats = {
            "num_passes": len(label_changes),
            "label_changes": label_changes,
            "jfa_res": res,
            "num_sites": n,
            "aliased_seeds": int(aliased),
        }
        return Assignment(labels, channels, sizes, positions, stats)


# ============================================================================
# VALIDATION
# ============================================================================

def validate_assignment(assignment):
    """
    Check an assignment grid for structural errors.

    Unassigned cells are only legal when no site was in scope. Sites that own
    no cell are reported but are not errors (aliased seeds, JFA misses).

    Returns:
        dict with validation results
    """
    labels = assignment.labels
    n = assignment.num_sites

    unassigned = int(np.count_nonzero(labels < 0))
    out_of_range = int(np.count_nonzero(labels >= n))

    owned = np.zeros(n, dtype=bool)
    if n > 0:
        valid = labels[(labels >= 0) & (labels < n)]
        owned[valid] = True
    empty_sites = int(n - np.count_nonzero(owned))

    passed = out_of_range == 0 and (unassigned == 0 or n == 0)

    return {
        "passed": passed,
        "unassigned_cells": unassigned,
        "out_of_range": out_of_range,
        "empty_sites": empty_sites,
    }
