#!/usr/bin/env python3
"""
Main entry point for JFA Stippling.

This script:
1. Initializes Taichi
2. Loads the density image and checks it against the grid resolution
3. Seeds the sites and computes per-channel energy budgets
4. Runs the frame loop: draw → relax/split per channel → [joint relax] → save

Usage:
    python run.py image.png --frames 32 --sites 20000 --resolution 1024

Output:
    stippling0000.png, stippling0001.png, ... in --output-dir
"""

import argparse
import os
import sys
import time

from config import (
    DENSITY_IMAGE, FRAMES, N_TARGET, GRID_RES, CHANNEL_COUNT, SEED_GRID,
    WEIGHTING, JOINT_RELAX_ENABLED, OUTPUT_PATTERN, TI_ARCH, TI_SERIAL, RANDOM_SEED,
    DOT_RADIUS,
)
from jfa import init_taichi
from density import DensityField
from render import PreviewRenderer
from stippling import StipplingEngine


def frame_filename(frame, pattern=OUTPUT_PATTERN):
    """stippling0000.png style name for a frame index."""
    return pattern.format(frame=frame)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Weighted Linde-Buzo-Gray stippling (JFA)')
    parser.add_argument('image', nargs='?', default=DENSITY_IMAGE,
                        help=f'Density image (default: {DENSITY_IMAGE})')
    parser.add_argument('--frames', type=int, default=FRAMES,
                        help=f'Number of iterations (default: {FRAMES})')
    parser.add_argument('--sites', type=int, default=N_TARGET,
                        help=f'Target total site count N (default: {N_TARGET})')
    parser.add_argument('--resolution', type=int, default=GRID_RES,
                        help=f'Grid size W, power of two = image size (default: {GRID_RES})')
    parser.add_argument('--channels', type=int, default=CHANNEL_COUNT,
                        help=f'Number of classes (default: {CHANNEL_COUNT})')
    parser.add_argument('--seed-grid', type=int, default=SEED_GRID,
                        help=f'Initial S×S sites per channel (default: {SEED_GRID})')
    parser.add_argument('--weighting', choices=['gaussian', 'uniform'], default=WEIGHTING,
                        help=f'Centroid weighting (default: {WEIGHTING})')
    parser.add_argument('--joint', action='store_true', default=JOINT_RELAX_ENABLED,
                        help='Relax all channels jointly after each frame')
    parser.add_argument('--dot-radius', type=float, default=DOT_RADIUS,
                        help=f'Preview dot radius in pixels (default: {DOT_RADIUS})')
    parser.add_argument('--output-dir', default='.',
                        help='Directory for stippling####.png frames (default: .)')
    parser.add_argument('--seed', type=int, default=RANDOM_SEED,
                        help='Random seed for split jitter')
    parser.add_argument('--arch', default=TI_ARCH,
                        help=f'Taichi backend (default: {TI_ARCH})')
    parser.add_argument('--serial', action='store_true', default=TI_SERIAL,
                        help='Single-threaded CPU kernels')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    init_taichi(args.arch, args.serial)

    density = DensityField(name=args.image)
    if not density.load():
        print(f"[Error] Could not load density image {args.image!r}")
        return 1

    try:
        engine = StipplingEngine(
            density,
            n_target=args.sites,
            resolution=args.resolution,
            channel_count=args.channels,
            seed_grid=args.seed_grid,
            weighting=args.weighting,
            joint_relax=args.joint,
            dot_radius=args.dot_radius,
            seed=args.seed,
        )
        engine.initialize()
    except (ValueError, RuntimeError) as e:
        print(f"[Error] {e}")
        return 1

    os.makedirs(args.output_dir, exist_ok=True)

    for frame in range(args.frames):
        t_start = time.perf_counter()

        renderer = PreviewRenderer(engine.resolution, engine.resolution)
        engine.step(renderer)

        path = os.path.join(args.output_dir, frame_filename(frame))
        if not renderer.save(path):
            print(f"[Error] Could not write {path}")
            return 1

        dt = time.perf_counter() - t_start
        print(f"[Frame {frame:04d}] {path} | sites={engine.site_count()} | {dt * 1000.0:.1f} ms")

    return 0


if __name__ == '__main__':
    sys.exit(main())
