"""
Population control for JFA Stippling.

After relaxation every site carries a capacity (the density mass it owns).
With t = energy[ch] / counts[ch] the energy a site should carry:

  capacity < REMOVE_THRESHOLD * t  → REMOVE (0 sites out)
  capacity > SPLIT_THRESHOLD * t   → SPLIT  (2 sites out)
  otherwise                        → KEEP   (1 site out)

The next generation is built as a fresh SiteSet and swapped in by the
caller; the set indexed by the last assignment is never mutated.
"""

import numpy as np

from config import REMOVE_THRESHOLD, SPLIT_THRESHOLD, SPLIT_JITTER
from sites import SiteSet, wrap_positions

REMOVE = 0
KEEP = 1
SPLIT = 2


def jitter_split(positions, rng, magnitude=SPLIT_JITTER):
    """
    Default split policy: two children at independent uniform offsets.

    Each child = parent + magnitude * (U(0, 1) - 0.5) per axis.

    Args:
        positions: Parent positions [k, 2]
        rng: numpy Generator

    Returns:
        (first, second) child positions, each [k, 2]
    """
    first = positions + magnitude * (rng.random(positions.shape) - 0.5)
    second = positions + magnitude * (rng.random(positions.shape) - 0.5)
    return first, second


def classify_sites(capacities, target_energy,
                   remove_threshold=REMOVE_THRESHOLD, split_threshold=SPLIT_THRESHOLD):
    """Per-site decision (REMOVE, KEEP or SPLIT) as an int array."""
    capacities = np.asarray(capacities, dtype=np.float64)
    actions = np.full(len(capacities), KEEP, dtype=np.int64)
    actions[capacities > split_threshold * target_energy] = SPLIT
    actions[capacities < remove_threshold * target_energy] = REMOVE
    return actions


def control_population(site_set, target_energy, rng=None,
                       remove_threshold=REMOVE_THRESHOLD, split_threshold=SPLIT_THRESHOLD,
                       split_policy=jitter_split):
    """
    Build the next generation of one channel's sites.

    Args:
        site_set: SiteSet with capacities from the last relaxation
        target_energy: Energy per site t, or None for a channel with no
                       target sites (population control skipped)
        rng: numpy Generator for the split policy
        remove_threshold, split_threshold: Multiples of t
        split_policy: Callable (positions [k, 2], rng) -> (first, second)

    Returns:
        (next SiteSet, stats dict)
    """
    n = len(site_set)
    if target_energy is None:
        return site_set, {"before": n, "after": n, "removed": 0, "kept": n, "split": 0,
                          "skipped": True}

    if rng is None:
        rng = np.random.default_rng()

    actions = classify_sites(site_set.capacities, target_energy,
                             remove_threshold, split_threshold)

    # Output slot layout: kept sites in order, split children adjacent
    out_counts = actions  # REMOVE=0, KEEP=1, SPLIT=2 sites out
    positions = np.repeat(site_set.positions, out_counts, axis=0)

    split_idx = np.flatnonzero(actions == SPLIT)
    if len(split_idx) > 0:
        starts = np.cumsum(out_counts) - out_counts
        first, second = split_policy(site_set.positions[split_idx], rng)
        positions[starts[split_idx]] = first
        positions[starts[split_idx] + 1] = second

    next_set = SiteSet(wrap_positions(positions))

    stats = {
        "before": n,
        "after": len(next_set),
        "removed": int(np.count_nonzero(actions == REMOVE)),
        "kept": int(np.count_nonzero(actions == KEEP)),
        "split": int(len(split_idx)),
        "skipped": False,
    }
    return next_set, stats
