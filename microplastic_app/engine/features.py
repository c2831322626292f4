"""Spectral summary features and their fixed-length vector encoding."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from microplastic_app.engine.peak_detection import ORDER_INTENSITY, Peak, find_peaks
from microplastic_app.engine.plugin_api import Spectrum, validate_curve

DEFAULT_MAX_PEAKS = 5
STAT_SLOTS = 4
PEAK_SLOTS = 3


@dataclass(frozen=True)
class SpectralFeatures:
    peaks: Tuple[Peak, ...]
    mean_absorbance: float
    variance: float
    dominant_wavelength: float
    spectral_range: Tuple[float, float]
    peak_count: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "peaks", tuple(self.peaks))
        object.__setattr__(self, "peak_count", len(self.peaks))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "peaks": [peak.to_dict() for peak in self.peaks],
            "mean_absorbance": self.mean_absorbance,
            "variance": self.variance,
            "dominant_wavelength": self.dominant_wavelength,
            "spectral_range": list(self.spectral_range),
            "peak_count": self.peak_count,
        }


def feature_vector_length(max_peaks: int = DEFAULT_MAX_PEAKS) -> int:
    return STAT_SLOTS + PEAK_SLOTS * int(max_peaks) + 1


def extract_features(spec: Spectrum, peak_cfg: Optional[Mapping[str, Any]] = None) -> SpectralFeatures:
    validate_curve(spec)
    cfg = dict(peak_cfg or {})
    peaks = find_peaks(
        spec,
        float(cfg.get("min_height", 0.2)),
        float(cfg.get("min_distance_nm", 20.0)),
        order=ORDER_INTENSITY,
    )
    y = np.asarray(spec.intensity, dtype=float)
    dominant = max(peaks, key=lambda p: p.intensity).wavelength if peaks else 0.0
    return SpectralFeatures(
        peaks=tuple(peaks),
        mean_absorbance=float(np.mean(y)),
        variance=float(np.var(y)),
        dominant_wavelength=float(dominant),
        spectral_range=spec.wavelength_range,
    )


def to_feature_vector(features: SpectralFeatures, max_peaks: int = DEFAULT_MAX_PEAKS) -> List[float]:
    """Encode ``features`` as ``[mean, variance, count, dominant, (wl, I, w) * max_peaks, span]``.

    Peaks keep the intensity-descending order produced by the detector;
    missing slots are zero padded.  No scaling is applied.
    """

    max_peaks = int(max_peaks)
    if max_peaks < 0:
        raise ValueError("max_peaks must not be negative")
    vector: List[float] = [
        float(features.mean_absorbance),
        float(features.variance),
        float(features.peak_count),
        float(features.dominant_wavelength),
    ]
    for i in range(max_peaks):
        if i < len(features.peaks):
            peak = features.peaks[i]
            vector.extend([float(peak.wavelength), float(peak.intensity), float(peak.width)])
        else:
            vector.extend([0.0, 0.0, 0.0])
    low, high = features.spectral_range
    vector.append(float(high) - float(low))
    return vector
