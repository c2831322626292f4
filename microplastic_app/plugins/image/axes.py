"""Axis detection strategies for rasterised spectrum plots."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

import numpy as np


@dataclass(frozen=True)
class AxisDetection:
    has_wavelength_axis: bool
    has_absorbance_axis: bool
    horizontal_pixels: int = 0
    vertical_pixels: int = 0


class AxisDetector(Protocol):
    def detect(self, rgb: np.ndarray) -> AxisDetection:
        ...


def dark_mask(rgb: np.ndarray, threshold: int) -> np.ndarray:
    channels = np.asarray(rgb)[..., :3]
    return np.all(channels < threshold, axis=-1)


@dataclass(frozen=True)
class DarkPixelAxisDetector:
    """Looks for long runs of dark pixels where plot axes usually sit.

    The wavelength axis is searched in the bottom ``band`` of rows, the
    absorbance axis in the left ``band`` of columns.  An axis counts as found
    when the number of dark pixels whose right (or lower) neighbour is also
    dark reaches ``fraction`` of the image width (or height).
    """

    threshold: int = 100
    band: float = 0.2
    fraction: float = 0.3

    def detect(self, rgb: np.ndarray) -> AxisDetection:
        dark = dark_mask(rgb, self.threshold)
        height, width = dark.shape

        start_y = int(math.floor(height * (1.0 - self.band)))
        bottom = dark[start_y:, :]
        horizontal = int(np.count_nonzero(bottom[:, :-1] & bottom[:, 1:]))

        end_x = int(math.floor(width * self.band))
        left = dark[:, :end_x]
        vertical = int(np.count_nonzero(left[:-1, :] & left[1:, :]))

        return AxisDetection(
            has_wavelength_axis=width > 0 and horizontal >= width * self.fraction,
            has_absorbance_axis=height > 0 and vertical >= height * self.fraction,
            horizontal_pixels=horizontal,
            vertical_pixels=vertical,
        )
