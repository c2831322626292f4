"""Moving-average smoothing for absorbance curves."""

from __future__ import annotations

import numpy as np
from scipy.ndimage import uniform_filter1d

from microplastic_app.engine.plugin_api import Spectrum, validate_curve

__all__ = ["DEFAULT_WINDOW", "smooth_spectrum"]

DEFAULT_WINDOW = 5


def smooth_spectrum(spec: Spectrum, *, window: int = DEFAULT_WINDOW) -> Spectrum:
    """Fixed-window moving average that leaves the edges untouched.

    Points closer to either end than ``window // 2`` keep their original
    absorbance, so the output always has the same length as the input and
    no padding is invented.
    """

    validate_curve(spec)
    window = int(window)
    if window % 2 == 0:
        raise ValueError("Smoothing window must be odd")
    if window < 3:
        raise ValueError("Smoothing window must be at least 3 points")

    y = np.asarray(spec.intensity, dtype=float)
    half = window // 2
    smoothed = y.copy()
    if y.size > 2 * half:
        filtered = uniform_filter1d(y, size=window, mode="nearest")
        smoothed[half : y.size - half] = filtered[half : y.size - half]

    meta = dict(spec.meta or {})
    meta["smoothing_window"] = window
    return Spectrum(
        wavelength=np.asarray(spec.wavelength, dtype=float).copy(),
        intensity=smoothed,
        meta=meta,
    )
