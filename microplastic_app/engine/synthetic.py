"""Synthetic UV-Vis style spectra for demos and tests."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from microplastic_app.engine.plugin_api import Spectrum
from microplastic_app.engine.smoothing import DEFAULT_WINDOW, smooth_spectrum

# (centre nm, amplitude, width nm, half-span nm)
DEFAULT_BANDS: Tuple[Tuple[float, float, float, float], ...] = (
    (500.0, 0.6, 15.0, 20.0),  # blue colorants
    (650.0, 0.4, 12.0, 20.0),  # red colorants
    (750.0, 0.3, 10.0, 20.0),  # polymer backbone
)


def generate_mock_spectrum(
    rng: Optional[np.random.Generator] = None,
    *,
    start_nm: float = 400.0,
    stop_nm: float = 800.0,
    resolution_nm: float = 2.0,
    baseline: float = 0.1,
    noise: float = 0.05,
    bands: Sequence[Tuple[float, float, float, float]] = DEFAULT_BANDS,
    smoothing_window: int = DEFAULT_WINDOW,
) -> Spectrum:
    rng = rng if rng is not None else np.random.default_rng()
    wl = np.arange(start_nm, stop_nm + resolution_nm / 2.0, resolution_nm, dtype=float)
    absorbance = baseline + rng.random(wl.size) * noise
    for centre, amplitude, width, half_span in bands:
        window = (wl >= centre - half_span) & (wl <= centre + half_span)
        absorbance[window] += amplitude * np.exp(-(((wl[window] - centre) / width) ** 2))
    absorbance = np.clip(absorbance, 0.0, None)
    spec = Spectrum(wavelength=wl, intensity=absorbance, meta={"source": "synthetic"})
    return smooth_spectrum(spec, window=smoothing_window)
