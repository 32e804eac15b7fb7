"""End-to-end tests for the stippling engine."""

import numpy as np
import pytest

from density import DensityField
from render import PreviewRenderer
from stippling import StipplingEngine


def make_engine(density, **kwargs):
    kwargs.setdefault("verbose", False)
    kwargs.setdefault("seed", 0)
    return StipplingEngine(density, **kwargs)


class TestInitialization:
    """Test budgets and preconditions."""

    def test_two_by_two_budget(self):
        density = DensityField.from_array(np.ones((2, 2, 3)))
        engine = make_engine(density, n_target=4, channel_count=1, seed_grid=2)
        engine.initialize()

        assert engine.resolution == 2
        assert engine.energy == [pytest.approx(4.0)]
        assert engine.counts == [4]
        assert engine.target_energy_per_site == [pytest.approx(1.0)]
        assert engine.site_count() == 4

    def test_counts_scale_with_energy(self):
        samples = np.zeros((8, 8, 3))
        samples[:, :, 0] = 1.0
        samples[:, :, 1] = 0.5
        density = DensityField.from_array(samples)
        engine = make_engine(density, n_target=100, seed_grid=2)
        engine.initialize()

        assert engine.counts == [100, 50, 0]
        assert engine.target_energy_per_site[0] == pytest.approx(64.0 / 100)
        assert engine.target_energy_per_site[2] is None

    def test_resolution_defaults_to_density_width(self):
        density = DensityField.from_array(np.ones((8, 8, 3)))
        assert make_engine(density).resolution == 8

    def test_non_power_of_two_rejected(self):
        density = DensityField.from_array(np.ones((6, 6, 3)))
        with pytest.raises(ValueError):
            make_engine(density)

    def test_bad_channel_count_rejected(self):
        density = DensityField.from_array(np.ones((8, 8, 3)))
        with pytest.raises(ValueError):
            make_engine(density, channel_count=0)

    def test_resolution_mismatch_rejected(self):
        density = DensityField.from_array(np.ones((8, 8, 3)))
        engine = make_engine(density, resolution=16)
        with pytest.raises(ValueError):
            engine.initialize()

    def test_unloaded_density_rejected(self):
        engine = make_engine(DensityField(name="missing.png"), resolution=8)
        with pytest.raises(RuntimeError):
            engine.initialize()

    def test_step_before_initialize(self):
        density = DensityField.from_array(np.ones((8, 8, 3)))
        with pytest.raises(RuntimeError):
            make_engine(density).step()


class TestStep:
    """Test whole frames."""

    def test_two_by_two_is_stable(self):
        density = DensityField.from_array(np.ones((2, 2, 3)))
        engine = make_engine(density, n_target=4, channel_count=1, seed_grid=2)
        engine.initialize()
        start = engine.sites[0].positions.copy()

        stats = engine.step()

        relax = stats["channels"][0]["relax"]
        pop = stats["channels"][0]["population"]
        assert relax["total_capacity"][0] == pytest.approx(4.0)
        assert pop["kept"] == 4
        assert pop["removed"] == 0
        assert pop["split"] == 0
        assert np.allclose(engine.sites[0].positions, start, atol=1e-6)
        assert engine.frame == 1

    def test_each_site_owns_one_cell(self):
        density = DensityField.from_array(np.ones((2, 2, 3)))
        engine = make_engine(density, n_target=4, channel_count=1, seed_grid=2)
        engine.initialize()
        assignment, _ = engine.relax([0])
        assert np.array_equal(np.sort(assignment.labels.ravel()), [0, 1, 2, 3])
        assert np.all(assignment.cell_counts(0) == 1)

    def test_channel_without_target_is_empty(self):
        samples = np.zeros((8, 8, 3))
        samples[:, :, 0] = 1.0
        density = DensityField.from_array(samples)
        engine = make_engine(density, n_target=16, channel_count=2, seed_grid=2)
        engine.initialize()
        assert len(engine.sites[0]) == 4
        assert len(engine.sites[1]) == 0

        renderer = PreviewRenderer(8, 8)
        for _ in range(3):
            stats = engine.step(renderer)

        assert stats["channels"][1]["population"]["skipped"]
        assert len(engine.sites[1]) == 0
        img = renderer.to_array()
        assert img[:, :, 0].max() > 0
        assert img[:, :, 1].max() == 0

    def test_empty_channel_takes_no_cells_in_joint_relax(self):
        samples = np.zeros((8, 8, 3))
        samples[:, :, 0] = 1.0
        density = DensityField.from_array(samples)
        engine = make_engine(density, n_target=16, channel_count=2, seed_grid=2,
                             joint_relax=True)
        engine.initialize()

        stats = engine.step()

        joint = stats["joint"]
        assert joint["total_capacity"][1] == 0.0
        assert joint["total_capacity"][0] == pytest.approx(64.0, rel=1e-4)
        assignment, _ = engine.relax([0, 1])
        assert np.all(assignment.channel_ids() == 0)

    def test_empty_channels_stay_empty(self, uniform_density):
        engine = make_engine(uniform_density, n_target=16, seed_grid=0)
        engine.initialize()
        engine.step()
        engine.step()
        assert engine.site_count() == 0

    def test_sites_grow_toward_target(self, uniform_density):
        engine = make_engine(uniform_density, n_target=64, channel_count=1, seed_grid=2)
        engine.initialize()
        for _ in range(4):
            engine.step()
        # Four sites each holding 64 / 4 units of mass must split
        assert engine.site_count(0) > 4

    def test_multi_frame_joint_run(self, gradient_density):
        engine = make_engine(gradient_density, n_target=48, seed_grid=3, joint_relax=True,
                             safety_checks=True)
        engine.initialize()

        for _ in range(3):
            stats = engine.step()

        assert engine.frame == 3
        assert stats["frame"] == 2
        assert stats["joint"] is not None
        assert stats["joint"]["jfa"]["num_passes"] == 4
        for site_set in engine.sites:
            p = site_set.positions
            assert np.all((p >= 0.0) & (p < 1.0))

    def test_step_draws_preview(self, uniform_density):
        engine = make_engine(uniform_density, n_target=16, seed_grid=2)
        engine.initialize()
        renderer = PreviewRenderer(16, 16)
        engine.step(renderer)
        img = renderer.to_array()
        for ch in range(3):
            assert img[:, :, ch].max() > 0

    def test_seed_generator_accepted(self, uniform_density):
        rng = np.random.default_rng(9)
        engine = make_engine(uniform_density, n_target=16, seed=rng)
        assert engine.rng is rng

    def test_channel_colors_cycle(self, uniform_density):
        engine = make_engine(uniform_density, channel_count=8)
        assert engine.channel_color(6) == engine.channel_color(0)
