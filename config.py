"""
Configuration parameters for JFA Stippling - Weighted Linde-Buzo-Gray.

This module defines all run parameters:
- Site population (target count, seed grid)
- Grid parameters (JFA resolution, must be a power of two)
- Population control (split/remove thresholds, split jitter)
- Relaxation weighting (Gaussian sigma schedule)
- Rendering (dot radius, per-channel colors, output naming)

All positions live in the periodic unit square [0, 1)² (toroidal domain).
"""

# ==============================================================================
# Site population
# ==============================================================================

N_TARGET = 20000            # Target total number of sites (summed over channels, scaled by energy)
CHANNEL_COUNT = 3           # Number of classes (3 = R/G/B, 6 = multi-class, reuses R/G/B twice)
DENSITY_COMPONENTS = 3      # Density field components; channel ch reads component ch % 3

SEED_GRID = 32              # Initial sites per channel = SEED_GRID × SEED_GRID (regular sub-grid)
SEED_JITTER = 0.0           # Jitter of initial sites as a fraction of one sub-grid cell
                            # 0.0 = regular lattice at ((u + 0.5) / S, (v + 0.5) / S)

# ==============================================================================
# JFA grid
# ==============================================================================

GRID_RES = 1024             # Assignment grid resolution W (W × W cells)
                            # HARD PRECONDITION: power of two, equal to the density image size
                            # log2(W) jump passes: W/2, W/4, ..., 1

# ==============================================================================
# Population control (split / remove / keep)
# ==============================================================================
# t = energy[ch] / counts[ch] is the energy every site should carry.
#   capacity < REMOVE_THRESHOLD * t  → site removed
#   capacity > SPLIT_THRESHOLD * t   → site split into two
#   otherwise                        → kept

REMOVE_THRESHOLD = 0.5
SPLIT_THRESHOLD = 1.5
SPLIT_JITTER = 0.005        # Child offset = SPLIT_JITTER * (U(0,1) - 0.5) per axis (≈ ±0.0025)

# ==============================================================================
# Relaxation weighting
# ==============================================================================

WEIGHTING = "gaussian"      # "gaussian" | "uniform"
                            # gaussian: weight = exp(-(e_cell - e_site)² / 2σ²)
                            # uniform:  weight = 1 (plain weighted centroid)

SIGMA_SPARSE = 0.25         # σ while the channel has at most N_TARGET * SIGMA_SWITCH_FRACTION sites
SIGMA_DENSE = 0.2           # σ once the channel has grown past that
SIGMA_SWITCH_FRACTION = 0.25

# Multi-class extension: one extra relaxation over all channels per frame
# so classes compete for the same density mass
JOINT_RELAX_ENABLED = False

# ==============================================================================
# Rendering / output
# ==============================================================================

FRAMES = 32                 # Iterations run by the driver (engine itself never stops)
DOT_RADIUS = 2.5            # Preview dot radius in pixels
DOT_SUPERSAMPLE = 4         # 4×4 coverage samples per pixel

CHANNEL_COLORS = [
    (1.0, 0.0, 0.0),        # ch 0: red
    (0.0, 1.0, 0.0),        # ch 1: green
    (0.0, 0.0, 1.0),        # ch 2: blue
    (0.0, 1.0, 1.0),        # ch 3: cyan
    (1.0, 0.0, 1.0),        # ch 4: magenta
    (1.0, 1.0, 0.0),        # ch 5: yellow
]

DENSITY_IMAGE = "image.png"
OUTPUT_PATTERN = "stippling{frame:04d}.png"

# ==============================================================================
# Runtime
# ==============================================================================

TI_ARCH = "cpu"             # "cpu" | "gpu" | "cuda" | "vulkan" | "metal"
TI_SERIAL = False           # True: single CPU thread (reference, fully deterministic)
RANDOM_SEED = None          # Seed for split jitter (None = fresh entropy)
RUN_SAFETY_TESTS = False    # Validate every assignment grid (slow, debugging only)

