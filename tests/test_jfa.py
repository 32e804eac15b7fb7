"""Tests for toroidal jump flooding."""

import numpy as np
import pytest

from jfa import (
    UNASSIGNED, JFAContext, is_power_of_two, toroidal_distance_sq,
    validate_assignment, wrap_index,
)
from sites import SiteSet


def brute_force_nearest_dist(positions, res):
    """Exact nearest-site squared distance for every cell center."""
    centers = (np.arange(res) + 0.5) / res
    cu, cv = np.meshgrid(centers, centers, indexing="ij")
    cells = np.stack([cu, cv], axis=-1)[:, :, None, :]
    d = toroidal_distance_sq(cells, positions[None, None, :, :])
    return d.min(axis=-1)


class TestHostHelpers:
    """Test the NumPy helpers."""

    def test_distance_zero(self):
        assert toroidal_distance_sq([0.3, 0.7], [0.3, 0.7]) == 0.0

    def test_distance_plain(self):
        assert toroidal_distance_sq([0.1, 0.1], [0.4, 0.5]) == pytest.approx(0.09 + 0.16)

    def test_distance_wraps(self):
        assert toroidal_distance_sq([0.1, 0.5], [0.9, 0.5]) == pytest.approx(0.04)
        assert toroidal_distance_sq([0.5, 0.05], [0.5, 0.95]) == pytest.approx(0.01)

    def test_distance_symmetric(self):
        rng = np.random.default_rng(0)
        a = rng.random((50, 2))
        b = rng.random((50, 2))
        assert np.allclose(toroidal_distance_sq(a, b), toroidal_distance_sq(b, a))
        assert np.all(toroidal_distance_sq(a, b) <= 0.5 + 1e-12)

    def test_wrap_index(self):
        assert wrap_index(-1, 8) == 7
        assert wrap_index(8, 8) == 0
        assert wrap_index(17, 8) == 1
        assert np.array_equal(wrap_index(np.array([-9, 0, 9]), 8), [7, 0, 1])

    def test_power_of_two(self):
        for n in (1, 2, 16, 1024):
            assert is_power_of_two(n)
        for n in (0, 3, 6, 1000, -4, 2.0):
            assert not is_power_of_two(n)


class TestPropagation:
    """Test labelling against a brute-force nearest site."""

    def test_rejects_non_power_of_two(self):
        with pytest.raises(ValueError):
            JFAContext(12)

    def test_pass_count(self):
        ctx = JFAContext(16)
        a = ctx.propagate([SiteSet([[0.3, 0.3]])], [0])
        assert a.stats["num_passes"] == 4
        assert len(a.stats["label_changes"]) == 4

    def test_every_cell_assigned(self):
        rng = np.random.default_rng(1)
        ctx = JFAContext(16)
        a = ctx.propagate([SiteSet(rng.random((7, 2)))], [0])
        assert np.all(a.labels >= 0)
        assert np.all(a.labels < 7)
        assert a.cell_counts(0).sum() == 16 * 16

    def test_mostly_optimal(self):
        rng = np.random.default_rng(2)
        sites = SiteSet(rng.random((6, 2)))
        ctx = JFAContext(16)
        a = ctx.propagate([sites], [0])

        pos = a.positions.astype(np.float64)
        best = brute_force_nearest_dist(pos, 16)

        centers = (np.arange(16) + 0.5) / 16
        cu, cv = np.meshgrid(centers, centers, indexing="ij")
        got = toroidal_distance_sq(np.stack([cu, cv], axis=-1), pos[a.labels])

        optimal = np.isclose(got, best, atol=1e-6)
        assert optimal.mean() >= 0.95

    def test_wraparound_ownership(self):
        sites = SiteSet([[0.02, 0.5], [0.5, 0.5]])
        a = JFAContext(16).propagate([sites], [0])
        # Rightmost column is closer to x = 0.02 across the seam
        assert a.owner(15, 8) == (0, 0)
        assert a.owner(-1, 8) == (0, 0)
        assert a.owner(8, 8) == (1, 0)

    def test_no_sites_leaves_grid_unassigned(self):
        a = JFAContext(8).propagate([SiteSet()], [0])
        assert np.all(a.labels == UNASSIGNED)
        assert a.owner(3, 3) is None
        assert a.stats["num_passes"] == 0

    def test_single_channel_ignores_other_channels(self):
        site_sets = [SiteSet([[0.25, 0.5]]), SiteSet([[0.75, 0.5]])]
        a = JFAContext(16).propagate(site_sets, [1])
        assert np.all(a.channel_ids() == 1)
        assert np.all(a.site_ids() == 0)

    def test_joint_channels_compete(self):
        site_sets = [SiteSet([[0.25, 0.5]]), SiteSet([[0.75, 0.5], [0.75, 0.1]])]
        a = JFAContext(16).propagate(site_sets, [0, 1])
        ids = a.channel_ids()
        assert a.num_sites == 3
        assert ids[4, 8] == 0
        assert ids[12, 8] == 1
        assert a.owner(12, 1) == (1, 1)
        assert a.cell_counts(0).sum() + a.cell_counts(1).sum() == 16 * 16

    def test_matches_sizes(self):
        site_sets = [SiteSet([[0.25, 0.5]])]
        a = JFAContext(8).propagate(site_sets, [0])
        assert a.matches(site_sets)
        site_sets[0] = SiteSet([[0.25, 0.5], [0.5, 0.5]])
        assert not a.matches(site_sets)

    def test_aliased_seeds_counted(self):
        # Both sites fall into cell (0, 0) of a 4×4 grid
        sites = SiteSet([[0.05, 0.05], [0.1, 0.1]])
        a = JFAContext(4).propagate([sites], [0])
        assert a.stats["aliased_seeds"] == 1


class TestValidation:
    """Test the assignment self-check."""

    def test_valid_grid_passes(self):
        rng = np.random.default_rng(4)
        a = JFAContext(16).propagate([SiteSet(rng.random((5, 2)))], [0])
        check = validate_assignment(a)
        assert check["passed"]
        assert check["unassigned_cells"] == 0
        assert check["out_of_range"] == 0

    def test_empty_scope_passes(self):
        a = JFAContext(8).propagate([SiteSet()], [0])
        assert validate_assignment(a)["passed"]

    def test_corrupted_grid_fails(self):
        a = JFAContext(8).propagate([SiteSet([[0.5, 0.5]])], [0])
        a.labels[0, 0] = UNASSIGNED
        a.labels[1, 1] = 5
        check = validate_assignment(a)
        assert not check["passed"]
        assert check["unassigned_cells"] == 1
        assert check["out_of_range"] == 1
