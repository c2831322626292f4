from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

DEFAULT_PRESET_PATH = Path(__file__).resolve().parent.parent / "config" / "presets" / "default.yaml"

DEFAULT_RECIPE: Dict[str, Any] = {
    "smoothing": {"enabled": False, "window": 5},
    "features": {
        "peaks": {
            "min_height": 0.2,
            "min_distance_nm": 20.0,
            "max_peaks": 5,
        },
    },
    "matching": {
        "min_height": 0.3,
        "min_distance_nm": 20.0,
        "tolerance_nm": 50.0,
        "confidence_cap": 0.98,
        "spectral_match_cap": 0.95,
        "jitter": {"enabled": False, "confidence": 0.1, "spectral_match": 0.05, "seed": None},
    },
    "csv": {"peak_fraction": 0.1},
    "image": {
        "peak_fraction": 0.2,
        "sample_columns": 100,
        "dark_threshold": 100,
        "axis_fraction": 0.3,
        "axis_band": 0.2,
        "plot_region": {"x_min": 0.1, "x_max": 0.9, "y_min": 0.1, "y_max": 0.8},
        "wavelength_range_with_axis": [400.0, 800.0],
        "wavelength_range_default": [200.0, 4000.0],
        "absorbance_range": [0.0, 1.0],
        "confidence": {
            "base": 0.5,
            "wavelength_axis": 0.2,
            "absorbance_axis": 0.2,
            "signal": 0.1,
            "variance_threshold": 0.01,
        },
    },
    "curve_match": {
        "wavelength_tolerance_nm": 50.0,
        "peak_window_nm": 30.0,
        "peak_min_absorbance": 0.3,
        "similarity_weight": 0.7,
        "peak_weight": 30.0,
    },
    "reference": {"peak_min_height": 0.5},
}


def _deep_merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def resolve_recipe(overrides: Mapping[str, Any] | None = None) -> Dict[str, Any]:
    """Return the default recipe with ``overrides`` merged on top."""

    if not overrides:
        return copy.deepcopy(DEFAULT_RECIPE)
    params = overrides.get("params") if isinstance(overrides.get("params"), Mapping) else overrides
    return _deep_merge(DEFAULT_RECIPE, params)


def load_preset(path: str | Path | None = None) -> Dict[str, Any]:
    preset_path = Path(path) if path else DEFAULT_PRESET_PATH
    with preset_path.open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle) or {}
    if not isinstance(content, Mapping):
        raise ValueError(f"Preset {preset_path} must contain a mapping")
    return resolve_recipe(content)


def _check_fraction(errs: list[str], value: Any, label: str) -> None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        errs.append(f"{label} must be numeric")
        return
    if not 0.0 <= number <= 1.0:
        errs.append(f"{label} must be between 0 and 1")


def _check_positive(errs: list[str], value: Any, label: str) -> None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        errs.append(f"{label} must be numeric")
        return
    if number <= 0:
        errs.append(f"{label} must be positive")


@dataclass
class Recipe:
    module: str = "microplastic"
    params: Dict[str, Any] = field(default_factory=dict)
    version: str = "0.1.0"

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "Recipe":
        return cls(params=load_preset(path))

    def resolved(self) -> Dict[str, Any]:
        return resolve_recipe(self.params)

    def validate(self) -> list[str]:
        errs: list[str] = []
        params = self.resolved()

        smoothing = params.get("smoothing", {})
        if smoothing.get("enabled"):
            window = int(smoothing.get("window", 5))
            if window % 2 == 0:
                errs.append("Smoothing window must be odd")
            if window < 3:
                errs.append("Smoothing window must be at least 3 points")

        peaks = params.get("features", {}).get("peaks", {})
        if int(peaks.get("max_peaks", 5)) < 1:
            errs.append("Feature vector needs at least one peak slot")
        if float(peaks.get("min_distance_nm", 0.0)) < 0:
            errs.append("Peak spacing must not be negative")

        matching = params.get("matching", {})
        _check_positive(errs, matching.get("tolerance_nm"), "Match tolerance")
        _check_fraction(errs, matching.get("confidence_cap"), "Confidence cap")
        _check_fraction(errs, matching.get("spectral_match_cap"), "Spectral match cap")
        jitter = matching.get("jitter", {})
        if jitter.get("enabled"):
            for key in ("confidence", "spectral_match"):
                _check_fraction(errs, jitter.get(key), f"Jitter {key.replace('_', ' ')} bound")

        _check_fraction(errs, params.get("csv", {}).get("peak_fraction"), "CSV peak fraction")

        image = params.get("image", {})
        _check_fraction(errs, image.get("peak_fraction"), "Image peak fraction")
        _check_fraction(errs, image.get("axis_fraction"), "Axis fraction")
        _check_fraction(errs, image.get("axis_band"), "Axis band")
        if int(image.get("sample_columns", 100)) < 2:
            errs.append("Image extraction needs at least two sample columns")
        region = image.get("plot_region", {})
        try:
            if not (0 <= float(region["x_min"]) < float(region["x_max"]) <= 1):
                errs.append("Plot region x bounds must satisfy 0 <= min < max <= 1")
            if not (0 <= float(region["y_min"]) < float(region["y_max"]) <= 1):
                errs.append("Plot region y bounds must satisfy 0 <= min < max <= 1")
        except (KeyError, TypeError, ValueError):
            errs.append("Plot region must define numeric x_min/x_max/y_min/y_max")

        curve = params.get("curve_match", {})
        _check_positive(errs, curve.get("wavelength_tolerance_nm"), "Curve match tolerance")
        _check_positive(errs, curve.get("peak_window_nm"), "Curve peak window")
        return errs
