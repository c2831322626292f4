"""End-to-end identification flow.

Ingestion plugins turn each uploaded artifact into a curve; this module
extracts features, scores the curve against a reference catalog and
collects per-file results.  A failure in one file is recorded on that
file's record and never stops the rest of the batch.
"""

from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
import logging
import multiprocessing
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from microplastic_app.engine.audit import log_step, start_audit
from microplastic_app.engine.errors import IngestionError
from microplastic_app.engine.features import SpectralFeatures, extract_features, to_feature_vector
from microplastic_app.engine.interpretation import explain_prediction
from microplastic_app.engine.matching import (
    CurveCorrelationScorer,
    JitterSource,
    MatchResult,
    NoJitter,
    PeakToleranceScorer,
    UniformJitter,
    match_curve,
    match_peaks,
)
from microplastic_app.engine.peak_detection import ORDER_SCAN, find_peaks
from microplastic_app.engine.plugin_api import IngestionResult, Spectrum, validate_curve
from microplastic_app.engine.recipe_model import resolve_recipe
from microplastic_app.engine.reference_library import DEFAULT_LIBRARY, ReferenceLibrary, ReferenceSpectrum
from microplastic_app.engine.smoothing import smooth_spectrum

__all__ = [
    "AnalysisRecord",
    "BatchOutcome",
    "Prediction",
    "analyze_batch",
    "analyze_file",
    "build_jitter",
    "compare_with_references",
    "dominant_peaks",
    "predict",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prediction:
    result: MatchResult
    features: SpectralFeatures
    feature_vector: Tuple[float, ...]
    observed_peaks: Tuple[float, ...]
    explanations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.result.to_dict(),
            "observed_peaks": list(self.observed_peaks),
            "feature_vector": list(self.feature_vector),
            "features": self.features.to_dict(),
            "explanations": list(self.explanations),
        }


@dataclass
class AnalysisRecord:
    path: str
    plugin: Optional[str] = None
    ingestion: Optional[IngestionResult] = None
    prediction: Optional[Prediction] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"path": self.path, "plugin": self.plugin, "error": self.error}
        if self.ingestion is not None:
            payload["metadata"] = self.ingestion.metadata
            payload["extraction_confidence"] = self.ingestion.confidence
        if self.prediction is not None:
            payload["prediction"] = self.prediction.to_dict()
        return payload


@dataclass
class BatchOutcome:
    records: List[AnalysisRecord]
    audit: List[str] = field(default_factory=list)

    @property
    def failures(self) -> List[AnalysisRecord]:
        return [record for record in self.records if not record.ok]


def build_jitter(recipe: Optional[Mapping[str, Any]] = None, seed: Optional[int] = None) -> JitterSource:
    jitter_cfg = resolve_recipe(recipe)["matching"]["jitter"]
    if not jitter_cfg.get("enabled"):
        return NoJitter()
    if seed is None:
        seed = jitter_cfg.get("seed")
    return UniformJitter(seed=seed)


def dominant_peaks(spec: Spectrum, recipe: Optional[Mapping[str, Any]] = None) -> List[float]:
    """Matching-oriented peaks: stricter height threshold, descending wavelength."""

    cfg = resolve_recipe(recipe)["matching"]
    peaks = find_peaks(spec, float(cfg["min_height"]), float(cfg["min_distance_nm"]), order=ORDER_SCAN)
    return sorted((p.wavelength for p in peaks), reverse=True)


def _prepare(spec: Spectrum, params: Mapping[str, Any]) -> Spectrum:
    smoothing = params["smoothing"]
    window = int(smoothing.get("window", 5))
    if smoothing.get("enabled") and len(spec) >= window:
        return smooth_spectrum(spec, window=window)
    return spec


def predict(
    spec: Spectrum,
    library: ReferenceLibrary = DEFAULT_LIBRARY,
    recipe: Optional[Mapping[str, Any]] = None,
    *,
    jitter: Optional[JitterSource] = None,
) -> Prediction:
    params = resolve_recipe(recipe)
    validate_curve(spec)
    working = _prepare(spec, params)

    peak_cfg = params["features"]["peaks"]
    features = extract_features(working, peak_cfg)
    vector = to_feature_vector(features, int(peak_cfg.get("max_peaks", 5)))
    observed = dominant_peaks(working, params)

    matching = params["matching"]
    jitter_cfg = matching["jitter"]
    result = match_peaks(
        observed,
        library,
        scorer=PeakToleranceScorer(tolerance_nm=float(matching["tolerance_nm"])),
        jitter=jitter or build_jitter(params),
        confidence_cap=float(matching["confidence_cap"]),
        spectral_match_cap=float(matching["spectral_match_cap"]),
        confidence_jitter=float(jitter_cfg.get("confidence", 0.1)),
        spectral_match_jitter=float(jitter_cfg.get("spectral_match", 0.05)),
    )
    return Prediction(
        result=result,
        features=features,
        feature_vector=tuple(vector),
        observed_peaks=tuple(observed),
        explanations=tuple(explain_prediction(result)),
    )


def compare_with_references(
    observed: Spectrum,
    references: Sequence[ReferenceSpectrum],
    recipe: Optional[Mapping[str, Any]] = None,
) -> MatchResult:
    cfg = resolve_recipe(recipe)["curve_match"]
    scorer = CurveCorrelationScorer(
        wavelength_tolerance_nm=float(cfg["wavelength_tolerance_nm"]),
        peak_window_nm=float(cfg["peak_window_nm"]),
        peak_min_absorbance=float(cfg["peak_min_absorbance"]),
        similarity_weight=float(cfg["similarity_weight"]),
        peak_weight=float(cfg["peak_weight"]),
    )
    return match_curve(observed, references, scorer=scorer)


def analyze_file(
    path: str,
    library: ReferenceLibrary = DEFAULT_LIBRARY,
    recipe: Optional[Mapping[str, Any]] = None,
    *,
    jitter: Optional[JitterSource] = None,
) -> AnalysisRecord:
    # imported here: the registry pulls in the plugins, which import the engine
    from microplastic_app.plugins.registry import plugin_for_path

    plugin = plugin_for_path(path)
    ingestion = plugin.load(str(path), dict(recipe) if recipe else None)
    if len(ingestion.spectrum) < 2:
        raise IngestionError("Need at least two spectral points to identify a sample", source=str(path))
    prediction = predict(ingestion.spectrum, library, recipe, jitter=jitter)
    return AnalysisRecord(path=str(path), plugin=plugin.id, ingestion=ingestion, prediction=prediction)


def _analyze_task(
    path: str,
    library: ReferenceLibrary,
    recipe: Optional[Mapping[str, Any]],
    seed: Optional[int],
) -> AnalysisRecord:
    try:
        jitter = build_jitter(recipe, seed) if seed is not None else None
        return analyze_file(path, library, recipe, jitter=jitter)
    except (ValueError, OSError) as exc:
        error_text = f"{type(exc).__name__}: {exc}"
        logger.error("Analysis failed for %s: %s", path, error_text)
        return AnalysisRecord(path=str(path), error=error_text)


def _default_workers() -> int:
    return max(1, min(4, os.cpu_count() or 1))


def analyze_batch(
    paths: Iterable[str],
    library: ReferenceLibrary = DEFAULT_LIBRARY,
    recipe: Optional[Mapping[str, Any]] = None,
    *,
    parallel: bool = False,
    workers: Optional[int] = None,
    seed: Optional[int] = None,
) -> BatchOutcome:
    path_list = [str(p) for p in paths]
    audit = start_audit(f"{len(path_list)} file(s) against '{library.name}' ({len(library)} materials)")
    seeds = [None if seed is None else seed + idx for idx in range(len(path_list))]

    workers = workers or _default_workers()
    if parallel and len(path_list) > 1 and workers > 1:
        ctx = multiprocessing.get_context("spawn")
        records: List[Optional[AnalysisRecord]] = [None for _ in path_list]
        with ProcessPoolExecutor(mp_context=ctx, max_workers=workers) as executor:
            future_map = {
                executor.submit(_analyze_task, path, library, recipe, seeds[idx]): idx
                for idx, path in enumerate(path_list)
            }
            for future in as_completed(future_map):
                idx = future_map[future]
                try:
                    records[idx] = future.result()
                except Exception as exc:
                    error_text = f"{type(exc).__name__}: {exc}"
                    logger.exception("Analysis task crashed for %s: %s", path_list[idx], error_text)
                    records[idx] = AnalysisRecord(path=path_list[idx], error=error_text)
        results = [record for record in records if record is not None]
    else:
        results = [
            _analyze_task(path, library, recipe, seeds[idx]) for idx, path in enumerate(path_list)
        ]

    for record in results:
        if record.ok and record.prediction is not None:
            res = record.prediction.result
            log_step(audit, f"{record.path}: {res.match} (confidence {res.confidence:.2f})")
        else:
            log_step(audit, f"{record.path}: failed ({record.error})")
    return BatchOutcome(records=results, audit=audit)
