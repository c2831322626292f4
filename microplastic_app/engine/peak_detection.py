"""Local-maximum peak detection with greedy spacing suppression.

Peaks are accepted in scan order: a later local maximum that falls within
``min_distance_nm`` of an already accepted peak is dropped even when it is
taller.  Widths approximate the full width at half maximum by walking away
from the apex until the absorbance falls to half the apex value; a side that
never gets there contributes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from microplastic_app.engine.plugin_api import Spectrum, validate_curve

logger = logging.getLogger(__name__)

ORDER_INTENSITY = "intensity"
ORDER_WAVELENGTH = "wavelength"
ORDER_SCAN = "scan"
_ORDERS = (ORDER_INTENSITY, ORDER_WAVELENGTH, ORDER_SCAN)


@dataclass(frozen=True)
class Peak:
    wavelength: float
    intensity: float
    width: float

    def to_dict(self) -> Dict[str, float]:
        return {"wavelength": self.wavelength, "intensity": self.intensity, "width": self.width}


def local_maxima(y: np.ndarray, min_height: float) -> np.ndarray:
    """Indices strictly above both neighbours and strictly above ``min_height``."""

    y = np.asarray(y, dtype=float)
    if y.size < 3:
        return np.asarray([], dtype=int)
    centre = y[1:-1]
    mask = (centre > y[:-2]) & (centre > y[2:]) & (centre > float(min_height))
    return np.flatnonzero(mask) + 1


def half_max_width(x: np.ndarray, y: np.ndarray, idx: int) -> float:
    apex = float(y[idx])
    half = apex / 2.0

    left = 0.0
    below = np.flatnonzero(y[:idx] <= half)
    if below.size:
        left = float(x[idx] - x[below[-1]])

    right = 0.0
    below = np.flatnonzero(y[idx + 1 :] <= half)
    if below.size:
        right = float(x[idx + 1 + below[0]] - x[idx])

    return left + right


def find_peaks(
    spec: Spectrum,
    min_height: float,
    min_distance_nm: float = 0.0,
    *,
    order: str = ORDER_INTENSITY,
) -> List[Peak]:
    """Return peaks of ``spec`` above ``min_height``.

    ``order`` selects the output ordering: ``"intensity"`` (descending, what
    the feature extractor expects), ``"wavelength"`` (ascending, for survey
    lists) or ``"scan"`` (acceptance order).
    """

    if order not in _ORDERS:
        raise ValueError(f"Unknown peak order '{order}'")
    validate_curve(spec)
    x = np.asarray(spec.wavelength, dtype=float)
    y = np.asarray(spec.intensity, dtype=float)
    min_distance = float(min_distance_nm or 0.0)

    peaks: List[Peak] = []
    for idx in local_maxima(y, min_height):
        wl = float(x[idx])
        if min_distance > 0 and any(abs(p.wavelength - wl) < min_distance for p in peaks):
            continue
        peaks.append(Peak(wavelength=wl, intensity=float(y[idx]), width=half_max_width(x, y, idx)))

    logger.debug(
        "Found %d peaks above %.4g (min spacing %.4g nm)", len(peaks), float(min_height), min_distance
    )
    if order == ORDER_INTENSITY:
        return sorted(peaks, key=lambda p: p.intensity, reverse=True)
    if order == ORDER_WAVELENGTH:
        return sorted(peaks, key=lambda p: p.wavelength)
    return peaks


def relative_threshold(spec: Spectrum, fraction: float) -> float:
    y = np.asarray(spec.intensity, dtype=float)
    if y.size == 0:
        return 0.0
    return float(np.max(y)) * float(fraction)


def peak_wavelengths(peaks: Sequence[Peak]) -> List[float]:
    return [p.wavelength for p in peaks]
