"""
Density field for JFA Stippling.

A raster image read as a periodic 2D field. Samples are RGB triples stored as
float32 [width, height, 3] (in [0, 1] for integer images, float images keep
their values), indexed [u, v] with v = 0 at the bottom row of the image
(rows are flipped on load and again on save).

Channel ch of the stippler reads component ch % 3, so a 6-class run reuses
the three color fields twice.
"""

import os

import numpy as np
from PIL import Image, UnidentifiedImageError

from config import DENSITY_COMPONENTS
from jfa import wrap_index


WIDE_INT_MODES = ("I", "I;16", "I;16B", "I;16L", "I;16N")


def image_to_rgb(img):
    """
    Decode a Pillow image into float32 RGB rows [rows, cols, 3].

    Single-band 16/32-bit integer images are normalized by 65535 and float
    images ("F") are passed through, so neither is clipped at 8 bits.
    """
    if img.mode in WIDE_INT_MODES:
        gray = np.asarray(img, dtype=np.float32) / 65535.0
    elif img.mode == "F":
        gray = np.asarray(img, dtype=np.float32)
    else:
        return np.asarray(img.convert("RGB"), dtype=np.float32) / 255.0
    return np.repeat(gray[:, :, None], DENSITY_COMPONENTS, axis=2)


class DensityField:
    """Periodic RGB density field with nearest-pixel lookup."""

    def __init__(self, samples=None, name=""):
        self.name = name
        self.samples = None
        if samples is not None:
            self._set_samples(samples)

    @classmethod
    def from_array(cls, array, name=""):
        """
        Build a field from an array.

        Args:
            array: [width, height] or [width, height, C] values in [0, 1],
                   indexed [u, v] (v = 0 at the bottom)
        """
        return cls(np.asarray(array, dtype=np.float32), name=name)

    def _set_samples(self, samples):
        samples = np.asarray(samples, dtype=np.float32)
        if samples.ndim == 2:
            samples = samples[:, :, None]
        if samples.shape[2] == 1:
            samples = np.repeat(samples, DENSITY_COMPONENTS, axis=2)
        self.samples = np.ascontiguousarray(samples[:, :, :DENSITY_COMPONENTS])

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @property
    def loaded(self):
        return self.samples is not None

    @property
    def width(self):
        return 0 if self.samples is None else self.samples.shape[0]

    @property
    def height(self):
        return 0 if self.samples is None else self.samples.shape[1]

    def component_for(self, channel):
        return int(channel) % DENSITY_COMPONENTS

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def load(self, path=None):
        """
        Read the image at `path` (or self.name).

        8-bit modes are converted to RGB and scaled by 1/255, 16-bit
        integer modes by 1/65535; float images keep their samples.

        Returns:
            True on success, False if the file is missing or not an image
        """
        if path is not None:
            self.name = path
        if not self.name:
            return False
        if not os.path.isfile(self.name):
            print(f"[Density] File not found: {self.name}")
            return False

        try:
            with Image.open(self.name) as img:
                rgb = image_to_rgb(img)
        except (UnidentifiedImageError, OSError) as e:
            print(f"[Density] Cannot read {self.name}: {e}")
            return False

        # [rows, cols, 3] top-down → [u, v, 3] bottom-up
        self._set_samples(np.transpose(rgb[::-1], (1, 0, 2)))
        return True

    def save(self, path=None):
        """Write the field as an 8-bit RGB image. Returns False if empty."""
        if path is not None:
            self.name = path
        if self.samples is None or not self.name:
            return False
        rows = np.transpose(self.samples, (1, 0, 2))[::-1]
        data = np.clip(np.rint(rows * 255.0), 0, 255).astype(np.uint8)
        Image.fromarray(np.ascontiguousarray(data)).save(self.name)
        return True

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def get_color(self, u, v):
        """Exact pixel (u, v); out-of-range coordinates wrap."""
        return self.samples[wrap_index(int(u), self.width), wrap_index(int(v), self.height)].copy()

    def get_color_at(self, position):
        """Nearest pixel of a continuous position, wrapped into the field."""
        x, y = position
        u = int(np.floor(self.width * x))
        v = int(np.floor(self.height * y))
        return self.get_color(u, v)

    def channel_energy(self, channel):
        """Total density mass of a channel: sum of its component over all pixels."""
        return float(np.sum(self.samples[:, :, self.component_for(channel)], dtype=np.float64))
