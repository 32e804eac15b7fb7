"""
Weighted Linde-Buzo-Gray stippling engine.

Owns the per-channel SiteSets, the density field and the JFA context, and
runs one frame at a time:

  for ch in channels:
      draw ch's sites (optional preview)
      propagate + relax ch alone
      split / remove / keep ch's sites
  [optional] propagate + relax all channels jointly

The engine never decides when to stop; the driver owns the frame loop.
"""

import numpy as np

from config import (
    N_TARGET, CHANNEL_COUNT, SEED_GRID, SEED_JITTER, WEIGHTING,
    JOINT_RELAX_ENABLED, REMOVE_THRESHOLD, SPLIT_THRESHOLD,
    DOT_RADIUS, CHANNEL_COLORS, RANDOM_SEED, RUN_SAFETY_TESTS,
)
from jfa import JFAContext, is_power_of_two, validate_assignment
from sites import SiteSet, seed_grid_sites
from relaxation import relax_channels, default_sigma_schedule
from population import control_population, jitter_split


class StipplingEngine:
    """
    Iterative weighted Voronoi stippler on a toroidal grid.

    Args:
        density: DensityField (loaded before initialize())
        n_target: Target total number of sites N
        resolution: Grid size W (power of two); defaults to the density width
        channel_count: Number of classes
        seed_grid: Initial S×S sites per channel
        seed_jitter: Initial jitter as a fraction of a sub-grid cell
        weighting: "gaussian" or "uniform" centroid weighting
        sigma_schedule: Callable (site_count, n_target) -> σ
        joint_relax: Extra relaxation over all channels each frame
        remove_threshold, split_threshold: Population control multiples
        split_policy: Callable (positions, rng) -> (first, second)
        dot_radius: Preview dot radius in pixels
        seed: Random seed (or numpy Generator) for jitter
        safety_checks: Validate every assignment grid
        verbose: Print telemetry lines
    """

    def __init__(self, density, n_target=N_TARGET, resolution=None,
                 channel_count=CHANNEL_COUNT, seed_grid=SEED_GRID, seed_jitter=SEED_JITTER,
                 weighting=WEIGHTING, sigma_schedule=default_sigma_schedule,
                 joint_relax=JOINT_RELAX_ENABLED,
                 remove_threshold=REMOVE_THRESHOLD, split_threshold=SPLIT_THRESHOLD,
                 split_policy=jitter_split, dot_radius=DOT_RADIUS,
                 seed=RANDOM_SEED, safety_checks=RUN_SAFETY_TESTS, verbose=True):
        if resolution is None:
            resolution = density.width
        if not is_power_of_two(resolution):
            # The current size is limited to 2^x
            raise ValueError(f"Grid resolution must be a power of two, got {resolution!r}")
        if channel_count <= 0:
            raise ValueError(f"channel_count must be positive, got {channel_count!r}")

        self.density = density
        self.n_target = int(n_target)
        self.resolution = int(resolution)
        self.channel_count = int(channel_count)
        self.seed_grid = int(seed_grid)
        self.seed_jitter = float(seed_jitter)
        self.weighting = weighting
        self.sigma_schedule = sigma_schedule
        self.joint_relax = bool(joint_relax)
        self.remove_threshold = remove_threshold
        self.split_threshold = split_threshold
        self.split_policy = split_policy
        self.dot_radius = dot_radius
        self.safety_checks = safety_checks
        self.verbose = verbose

        if isinstance(seed, np.random.Generator):
            self.rng = seed
        else:
            self.rng = np.random.default_rng(seed)

        self.sites = []
        self.energy = []
        self.counts = []
        self.target_energy_per_site = []
        self.frame = 0
        self.context = None

    def _log(self, msg):
        if self.verbose:
            print(msg)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(self):
        """
        Check the density field, seed every channel and compute energy budgets.

        Raises:
            RuntimeError: density field has no samples
            ValueError: density size differs from the grid resolution
        """
        if not self.density.loaded:
            raise RuntimeError(f"Density field {self.density.name!r} is not loaded")
        w, h = self.density.width, self.density.height
        if w != self.resolution or h != self.resolution:
            raise ValueError(
                f"Density is {w}×{h}, grid resolution is {self.resolution} "
                f"(must match and be a power of two)")

        self.context = JFAContext(self.resolution)

        self.sites = [
            seed_grid_sites(self.seed_grid, self.seed_jitter, self.rng)
            for _ in range(self.channel_count)
        ]

        pixels = float(w * h)
        self.energy = [self.density.channel_energy(ch) for ch in range(self.channel_count)]
        self.counts = [int(round(e / pixels * self.n_target)) for e in self.energy]
        self.target_energy_per_site = [
            (e / c) if c > 0 else None for e, c in zip(self.energy, self.counts)
        ]
        # No target sites: the channel holds no sites at all
        for ch, t in enumerate(self.target_energy_per_site):
            if t is None:
                self.sites[ch] = SiteSet()
        self.frame = 0

        self._log(f"[Config] N={self.n_target}, W={self.resolution}, channels={self.channel_count}, "
                  f"weighting={self.weighting}, joint={self.joint_relax}")
        for ch in range(self.channel_count):
            t = self.target_energy_per_site[ch]
            if t is None:
                self._log(f"[Init] ch={ch}: energy={self.energy[ch]:.2f} → 0 target sites "
                          f"(channel stays empty, population control skipped)")
            else:
                self._log(f"[Init] ch={ch}: energy={self.energy[ch]:.2f}, "
                          f"target sites={self.counts[ch]}, energy/site={t:.4f}")
        self._log(f"[Init] Seeded {self.seed_grid}×{self.seed_grid} sites per channel")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def relax(self, channels):
        """
        Propagate labels for the given channels and relax their sites.

        Returns:
            (assignment, stats)
        """
        assignment = self.context.propagate(self.sites, channels)

        if self.safety_checks:
            check = validate_assignment(assignment)
            if not check["passed"]:
                self._log(f"[Warn] Assignment check failed for channels {list(channels)}: {check}")

        stats = relax_channels(self.sites, assignment, self.density, self.n_target,
                               weighting=self.weighting, sigma_schedule=self.sigma_schedule)
        stats["jfa"] = assignment.stats
        return assignment, stats

    def control_population(self, channel):
        """Replace one channel's SiteSet with its next generation."""
        next_set, stats = control_population(
            self.sites[channel], self.target_energy_per_site[channel], self.rng,
            remove_threshold=self.remove_threshold,
            split_threshold=self.split_threshold,
            split_policy=self.split_policy,
        )
        self.sites[channel] = next_set
        return stats

    def channel_color(self, channel):
        return CHANNEL_COLORS[channel % len(CHANNEL_COLORS)]

    def step(self, renderer=None):
        """
        Run one frame.

        Args:
            renderer: PreviewRenderer to draw the sites into before they move
                      (None = no preview)

        Returns:
            dict with per-channel relaxation and population stats
        """
        if self.context is None:
            raise RuntimeError("initialize() must be called before step()")

        frame_stats = {"frame": self.frame, "channels": {}, "joint": None}

        for ch in range(self.channel_count):
            if renderer is not None:
                renderer.draw_filled_circles(self.sites[ch].positions,
                                             self.channel_color(ch), self.dot_radius)

            _, relax_stats = self.relax([ch])
            pop_stats = self.control_population(ch)
            frame_stats["channels"][ch] = {"relax": relax_stats, "population": pop_stats}

            if not pop_stats["skipped"]:
                self._log(f"[Population] ch={ch}: {pop_stats['before']} → {pop_stats['after']} "
                          f"(removed {pop_stats['removed']}, split {pop_stats['split']})")

        # Multi class extension
        if self.joint_relax:
            _, joint_stats = self.relax(list(range(self.channel_count)))
            frame_stats["joint"] = joint_stats

        for ch in range(self.channel_count):
            ratio = len(self.sites[ch]) / float(max(self.n_target, 1))
            self._log(f"[Frame {self.frame:04d}] ch={ch}: sites/N={ratio:.4f}, energy={self.energy[ch]:.2f}")

        self.frame += 1
        return frame_stats

    def site_count(self, channel=None):
        if channel is not None:
            return len(self.sites[channel])
        return sum(len(s) for s in self.sites)
