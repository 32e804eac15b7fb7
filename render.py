"""
Preview rendering for JFA Stippling.

Draws every site as an anti-aliased filled circle (4×4 coverage samples per
pixel, additive color) into a float RGB canvas and writes it as PNG.

The canvas is indexed [column, row] with row 0 at the top of the image,
so site y is flipped when splatting (y = 0 is the bottom edge). Circles
crossing an edge wrap to the opposite side, like the domain.
"""

import taichi as ti
import numpy as np
from PIL import Image

from config import DOT_RADIUS, DOT_SUPERSAMPLE
from jfa import init_taichi, wrap_idx


@ti.kernel
def splat_circles(canvas: ti.types.ndarray(dtype=ti.f32, ndim=3),
                  centers: ti.types.ndarray(dtype=ti.f32, ndim=2),
                  n: ti.i32, r: ti.f32, g: ti.f32, b: ti.f32,
                  radius: ti.f32, width: ti.i32, height: ti.i32, aa: ti.i32):
    """
    Add one disk per site to the canvas.

    Args:
        canvas: RGB accumulation buffer [width, height, 3]
        centers: Site positions in [0, 1)² [n, 2]
        n: Number of sites
        r, g, b: Dot color
        radius: Dot radius in pixels
        width, height: Canvas size
        aa: Coverage samples per axis
    """
    for i in range(n):
        px = centers[i, 0] * width
        py = (1.0 - centers[i, 1]) * height
        min_u = ti.cast(ti.floor(px - radius), ti.i32)
        min_v = ti.cast(ti.floor(py - radius), ti.i32)
        max_u = ti.cast(ti.ceil(px + radius), ti.i32)
        max_v = ti.cast(ti.ceil(py + radius), ti.i32)
        inv = 1.0 / (aa * aa)

        for v in range(min_v, max_v + 1):
            for u in range(min_u, max_u + 1):
                covered = 0
                for sy in range(aa):
                    for sx in range(aa):
                        cx = u + (sx + 0.5) / aa
                        cy = v + (sy + 0.5) / aa
                        if (cx - px) * (cx - px) + (cy - py) * (cy - py) < radius * radius:
                            covered += 1
                if covered > 0:
                    nu = wrap_idx(u, width)
                    nv = wrap_idx(v, height)
                    w = covered * inv
                    ti.atomic_add(canvas[nu, nv, 0], r * w)
                    ti.atomic_add(canvas[nu, nv, 1], g * w)
                    ti.atomic_add(canvas[nu, nv, 2], b * w)


class PreviewRenderer:
    """Float RGB canvas with circle splatting and PNG output."""

    def __init__(self, width=0, height=0, name=""):
        self.name = name
        self.canvas = None
        if width > 0 and height > 0:
            self.create(width, height)

    def create(self, width, height):
        init_taichi()
        self.canvas = np.zeros((int(width), int(height), 3), dtype=np.float32)

    @property
    def width(self):
        return 0 if self.canvas is None else self.canvas.shape[0]

    @property
    def height(self):
        return 0 if self.canvas is None else self.canvas.shape[1]

    def clear(self):
        if self.canvas is not None:
            self.canvas[:] = 0.0

    def draw_filled_circles(self, positions, color, radius=DOT_RADIUS, supersample=DOT_SUPERSAMPLE):
        positions = np.ascontiguousarray(np.asarray(positions, dtype=np.float32).reshape(-1, 2))
        n = len(positions)
        if n == 0 or self.canvas is None:
            return
        r, g, b = (float(c) for c in color)
        splat_circles(self.canvas, positions, n, r, g, b,
                      float(radius), self.width, self.height, int(supersample))

    def draw_filled_circle(self, position, color, radius=DOT_RADIUS):
        self.draw_filled_circles([position], color, radius)

    def to_array(self):
        """8-bit image rows [height, width, 3], row 0 at the top."""
        rows = np.transpose(self.canvas, (1, 0, 2))
        return np.clip(rows * 255.0, 0, 255).astype(np.uint8)

    def save(self, path=None):
        """Write the canvas as PNG. Returns False if there is nothing to write."""
        if path is not None:
            self.name = path
        if self.canvas is None or not self.name:
            return False
        Image.fromarray(np.ascontiguousarray(self.to_array())).save(self.name)
        return True
