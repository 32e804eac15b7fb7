"""
Site storage for JFA Stippling.

Sites are stored struct-of-arrays, one SiteSet per channel:
- positions:  float64 [n, 2] in the periodic unit square [0, 1)²
- capacities: float64 [n]    density mass assigned in the last relaxation

Indices are only meaningful until the set is replaced by population control.
"""

import numpy as np

from config import SEED_GRID, SEED_JITTER


def wrap_positions(positions):
    """
    Wrap positions into the primary cell [0, 1)² (always-wrapped invariant).

    Uses p - floor(p) and folds the float rounding case p == 1.0 back to 0.0,
    which np.mod alone does not guarantee for tiny negative inputs.
    """
    p = np.asarray(positions, dtype=np.float64)
    wrapped = p - np.floor(p)
    wrapped[wrapped >= 1.0] = 0.0
    return wrapped


class SiteSet:
    """Ordered sites of one channel (positions + capacities)."""

    def __init__(self, positions=None, capacities=None):
        if positions is None:
            positions = np.zeros((0, 2), dtype=np.float64)
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 2)
        self.positions = wrap_positions(positions)

        if capacities is None:
            self.capacities = np.zeros(len(self.positions), dtype=np.float64)
        else:
            self.capacities = np.asarray(capacities, dtype=np.float64).reshape(-1).copy()
            if len(self.capacities) != len(self.positions):
                raise ValueError(
                    f"capacity count {len(self.capacities)} != site count {len(self.positions)}")

    def __len__(self):
        return len(self.positions)

    def __repr__(self):
        return f"SiteSet(n={len(self)}, capacity={self.capacities.sum():.4f})"

    def copy(self):
        return SiteSet(self.positions.copy(), self.capacities.copy())

    def reset_capacities(self):
        self.capacities[:] = 0.0

    def total_capacity(self):
        return float(self.capacities.sum())


def seed_grid_sites(seed_grid=SEED_GRID, jitter=SEED_JITTER, rng=None):
    """
    Seed S×S sites on a regular sub-grid of the unit square.

    Args:
        seed_grid: S, sites per axis
        jitter: Random offset as a fraction of one sub-grid cell (0 = regular lattice)
        rng: numpy Generator (only used when jitter > 0)

    Returns:
        SiteSet with positions ((u + 0.5) / S, (v + 0.5) / S), u running fastest
    """
    s = int(seed_grid)
    if s <= 0:
        return SiteSet()

    v, u = np.mgrid[0:s, 0:s]
    positions = np.stack([(u.ravel() + 0.5) / s, (v.ravel() + 0.5) / s], axis=1)

    if jitter > 0.0:
        if rng is None:
            rng = np.random.default_rng()
        positions = positions + jitter * (rng.random(positions.shape) - 0.5) / s

    return SiteSet(positions)
