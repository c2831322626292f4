"""Scoring observed spectra against reference materials.

Two strategies share the :class:`Scorer` contract:

* :class:`PeakToleranceScorer` compares peak wavelengths only.  Each
  reference peak contributes ``max(0, 1 - distance / tolerance)`` for its
  closest observed peak and the contributions are averaged.
* :class:`CurveCorrelationScorer` walks two dense curves point by point and
  blends the mean absorbance difference with the fraction of reference peaks
  seen in the observed curve.  Its outputs are on a 0-100 scale.

Selection keeps the first candidate with the strictly highest score, so
catalog order breaks ties.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from microplastic_app.engine.plugin_api import Spectrum, validate_curve
from microplastic_app.engine.reference_library import (
    ReferenceLibrary,
    ReferenceMaterial,
    ReferenceSpectrum,
)

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_NM = 50.0
DEFAULT_CONFIDENCE_CAP = 0.98
DEFAULT_SPECTRAL_MATCH_CAP = 0.95
UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ScoreResult:
    similarity: float
    confidence: float
    matched_peaks: Tuple[float, ...] = ()


@dataclass(frozen=True)
class MatchResult:
    match: str
    confidence: float
    type: str
    similarity: float
    matched_peaks: Tuple[float, ...] = ()
    polymer: str = UNKNOWN
    colorant: str = UNKNOWN
    color: str = UNKNOWN
    raw_score: float = 0.0
    mode: str = "peaks"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match": self.match,
            "confidence": float(self.confidence),
            "type": self.type,
            "polymer": self.polymer,
            "colorant": self.colorant,
            "color": self.color,
            "matched_peaks": [float(p) for p in self.matched_peaks],
            "similarity": float(self.similarity),
            "raw_score": float(self.raw_score),
            "mode": self.mode,
        }


class Scorer(Protocol):
    def score(self, observed: Any, candidate: Any) -> ScoreResult:
        ...


class JitterSource(Protocol):
    def sample(self, bound: float) -> float:
        ...


class NoJitter:
    def sample(self, bound: float) -> float:
        return 0.0


class UniformJitter:
    """Adds ``U(0, bound)`` noise to mimic measurement uncertainty."""

    def __init__(self, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def sample(self, bound: float) -> float:
        return float(self.rng.random()) * float(bound)


def _clamp(value: float, low: float, high: float) -> float:
    return float(min(max(value, low), high))


def _round_half_up(value: float) -> float:
    return float(np.floor(float(value) + 0.5))


@dataclass(frozen=True)
class PeakToleranceScorer:
    tolerance_nm: float = DEFAULT_TOLERANCE_NM

    def __post_init__(self):
        if self.tolerance_nm <= 0:
            raise ValueError("Peak tolerance must be positive")

    def contributions(self, observed: Sequence[float], reference: Sequence[float]) -> np.ndarray:
        obs = np.asarray(list(observed), dtype=float)
        ref = np.asarray(list(reference), dtype=float)
        if obs.size == 0 or ref.size == 0:
            return np.zeros(ref.size, dtype=float)
        distances = np.min(np.abs(ref[:, None] - obs[None, :]), axis=1)
        return np.maximum(0.0, 1.0 - distances / float(self.tolerance_nm))

    def score(self, observed: Sequence[float], candidate: ReferenceMaterial) -> ScoreResult:
        contrib = self.contributions(observed, candidate.peak_wavelengths)
        if contrib.size == 0:
            return ScoreResult(similarity=0.0, confidence=0.0)
        value = float(np.mean(contrib))
        matched = tuple(
            float(wl) for wl, c in zip(candidate.peak_wavelengths, contrib) if c > 0
        )
        return ScoreResult(similarity=value, confidence=value, matched_peaks=matched)


@dataclass(frozen=True)
class CurveCorrelationScorer:
    wavelength_tolerance_nm: float = 50.0
    peak_window_nm: float = 30.0
    peak_min_absorbance: float = 0.3
    similarity_weight: float = 0.7
    peak_weight: float = 30.0

    def similarity(self, observed: Spectrum, reference: Spectrum) -> float:
        obs_wl = np.asarray(observed.wavelength, dtype=float)
        obs_ab = np.asarray(observed.intensity, dtype=float)
        ref_wl = np.asarray(reference.wavelength, dtype=float)
        ref_ab = np.asarray(reference.intensity, dtype=float)
        min_len = min(obs_wl.size, ref_wl.size)
        if min_len == 0:
            return 0.0
        diffs = np.abs(ref_wl[None, :] - obs_wl[:min_len, None])
        nearest = np.argmin(diffs, axis=1)
        nearest_diff = diffs[np.arange(min_len), nearest]
        within = nearest_diff < float(self.wavelength_tolerance_nm)
        total = float(np.sum(np.abs(obs_ab[:min_len][within] - ref_ab[nearest[within]])))
        return max(0.0, 100.0 - (total / min_len) * 50.0)

    def matched_peaks(self, observed: Spectrum, peaks: Sequence[float]) -> Tuple[float, ...]:
        obs_wl = np.asarray(observed.wavelength, dtype=float)
        obs_ab = np.asarray(observed.intensity, dtype=float)
        strong = obs_ab > float(self.peak_min_absorbance)
        matched: List[float] = []
        for peak in peaks:
            near = np.abs(obs_wl - float(peak)) < float(self.peak_window_nm)
            if np.any(near & strong):
                matched.append(float(peak))
        return tuple(matched)

    def score(self, observed: Spectrum, candidate: ReferenceSpectrum) -> ScoreResult:
        similarity = self.similarity(observed, candidate.spectrum)
        peaks = candidate.peak_wavelengths
        matched = self.matched_peaks(observed, peaks)
        peak_fraction = len(matched) / len(peaks) if peaks else 0.0
        confidence = similarity * self.similarity_weight + peak_fraction * self.peak_weight
        return ScoreResult(similarity=similarity, confidence=confidence, matched_peaks=matched)


def _select_best(scores: Sequence[float]) -> Tuple[int, float]:
    best_idx, best = -1, 0.0
    for idx, value in enumerate(scores):
        if value > best:
            best_idx, best = idx, value
    return best_idx, best


def match_peaks(
    observed_peaks: Sequence[float],
    library: ReferenceLibrary | Sequence[ReferenceMaterial],
    *,
    scorer: Optional[PeakToleranceScorer] = None,
    jitter: Optional[JitterSource] = None,
    confidence_cap: float = DEFAULT_CONFIDENCE_CAP,
    spectral_match_cap: float = DEFAULT_SPECTRAL_MATCH_CAP,
    confidence_jitter: float = 0.1,
    spectral_match_jitter: float = 0.05,
) -> MatchResult:
    """Pick the reference material whose peaks best explain ``observed_peaks``.

    With no candidate scoring above zero the first catalog entry is reported
    with zero score, which is a legitimate low-confidence answer.
    """

    scorer = scorer or PeakToleranceScorer()
    jitter = jitter or NoJitter()
    candidates = list(library)
    if not candidates:
        return MatchResult(match=UNKNOWN, confidence=0.0, type=UNKNOWN, similarity=0.0)

    results = [scorer.score(observed_peaks, candidate) for candidate in candidates]
    best_idx, best_score = _select_best([r.similarity for r in results])
    if best_idx < 0:
        best_idx = 0
    chosen = candidates[best_idx]
    logger.debug(
        "Peak match: %s scored %.3f against %d observed peaks", chosen.type, best_score, len(observed_peaks)
    )

    confidence = _clamp(best_score + jitter.sample(confidence_jitter), 0.0, confidence_cap)
    spectral_match = _clamp(best_score + jitter.sample(spectral_match_jitter), 0.0, spectral_match_cap)
    return MatchResult(
        match=chosen.type,
        confidence=confidence,
        type=chosen.type,
        similarity=spectral_match,
        matched_peaks=results[best_idx].matched_peaks,
        polymer=chosen.polymer,
        colorant=chosen.colorant,
        color=chosen.color,
        raw_score=best_score,
        mode="peaks",
    )


def match_curve(
    observed: Spectrum,
    references: Sequence[ReferenceSpectrum],
    *,
    scorer: Optional[CurveCorrelationScorer] = None,
) -> MatchResult:
    """Full-curve correlation used when dense reference curves are available.

    Confidence and similarity are reported as rounded percentages.
    """

    validate_curve(observed)
    scorer = scorer or CurveCorrelationScorer()
    best = MatchResult(match=UNKNOWN, confidence=0.0, type=UNKNOWN, similarity=0.0, mode="curve")
    results = [scorer.score(observed, ref) for ref in references]
    best_idx, best_confidence = _select_best([r.confidence for r in results])
    if best_idx < 0:
        return best
    chosen, result = references[best_idx], results[best_idx]
    logger.debug("Curve match: %s confidence %.2f", chosen.name, best_confidence)
    return replace(
        best,
        match=chosen.name,
        type=chosen.type,
        confidence=_round_half_up(best_confidence),
        similarity=_round_half_up(result.similarity),
        matched_peaks=result.matched_peaks,
        raw_score=float(result.similarity),
    )
