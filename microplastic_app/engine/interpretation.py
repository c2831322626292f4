"""Human-readable interpretation of peaks and match results."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from microplastic_app.engine.matching import MatchResult
from microplastic_app.engine.peak_detection import Peak

# (low nm, high nm, intensity cutoff, strong label, weak label, strong conf, weak conf, colour)
_VISIBLE_BANDS = (
    (400.0, 500.0, 0.6, "Strong Blue Absorption", "Weak Blue Absorption", 0.9, 0.6, "blue"),
    (500.0, 600.0, 0.5, "Green Region Peak", "Mid-Visible Peak", 0.8, 0.5, "green"),
    (600.0, 700.0, 0.4, "Red Absorption", "Weak Red Signal", 0.85, 0.4, "red"),
)


@dataclass(frozen=True)
class PeakClass:
    label: str
    color: str
    confidence: float


def classify_peak(wavelength: float, intensity: float) -> PeakClass:
    for low, high, cutoff, strong, weak, strong_conf, weak_conf, color in _VISIBLE_BANDS:
        if low <= wavelength <= high:
            if intensity > cutoff:
                return PeakClass(strong, color, strong_conf)
            return PeakClass(weak, color, weak_conf)
    if 700.0 <= wavelength <= 800.0:
        return PeakClass("Near-IR Peak", "purple", 0.7)
    return PeakClass("Unclassified Peak", "gray", 0.3)


def peak_significance(peak: Peak, peaks: Sequence[Peak]) -> str:
    strongest = max((p.intensity for p in peaks), default=0.0)
    if strongest <= 0:
        return "Trace"
    relative = peak.intensity / strongest
    if relative > 0.8:
        return "Primary"
    if relative > 0.5:
        return "Secondary"
    if relative > 0.3:
        return "Minor"
    return "Trace"


def calibrate_confidence(raw_confidence: float, feature_quality: float) -> float:
    quality = min(1.0, float(feature_quality))
    return max(0.1, min(0.99, float(raw_confidence) * quality))


def explain_prediction(result: MatchResult) -> List[str]:
    """Plain-language notes for a peak-mode result (0-1 scale)."""

    notes: List[str] = []
    if result.confidence > 0.9:
        notes.append("High confidence prediction based on strong spectral match")
    elif result.confidence > 0.7:
        notes.append("Moderate confidence - spectral features align well with reference")
    else:
        notes.append("Low confidence - spectral match is uncertain")

    if result.similarity > 0.8:
        notes.append("Excellent spectral correlation with reference database")
    elif result.similarity > 0.6:
        notes.append("Good spectral correlation with some minor variations")
    else:
        notes.append("Spectral correlation shows significant differences from reference")

    notes.append(f"Identified as {result.polymer} with {result.colorant} colorant")
    return notes
