"""Spectrograph image ingestion.

A plotted absorbance curve is recovered from a raster image by sampling a
fixed number of columns inside the assumed plot area and taking the darkest
pixel in each column as the curve.  Axis tick labels are not read, so the
wavelength range is a guess: 400-800 nm when a wavelength axis line is
visible, 200-4000 nm otherwise.  Absorbance always maps to 0-1.  The
resulting values are approximate by construction.
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from microplastic_app.engine.errors import ImageDecodeError
from microplastic_app.engine.peak_detection import (
    ORDER_SCAN,
    Peak,
    find_peaks,
    relative_threshold,
)
from microplastic_app.engine.plugin_api import IngestionPlugin, IngestionResult, Spectrum
from microplastic_app.engine.recipe_model import resolve_recipe
from .axes import AxisDetection, AxisDetector, DarkPixelAxisDetector

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, bytearray, str, Path]


@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    has_wavelength_axis: bool
    has_absorbance_axis: bool
    wavelength_range: Tuple[float, float]
    absorbance_range: Tuple[float, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "has_wavelength_axis": self.has_wavelength_axis,
            "has_absorbance_axis": self.has_absorbance_axis,
            "estimated_range": {
                "wavelength": list(self.wavelength_range),
                "absorbance": list(self.absorbance_range),
            },
        }


@dataclass(frozen=True)
class ImageAnalysisResult:
    spectrum: Spectrum = field(compare=False)
    detected_peaks: Tuple[int, ...]
    peaks: Tuple[Peak, ...]
    image_metadata: ImageMetadata
    confidence: float
    source: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "spectral_data": [asdict(point) for point in self.spectrum.points()],
            "detected_peaks": list(self.detected_peaks),
            "image_metadata": self.image_metadata.to_dict(),
            "confidence": float(self.confidence),
        }


def decode_image(source: ImageSource) -> np.ndarray:
    """Decode ``source`` (raw bytes or a path) into an ``(H, W, 4)`` uint8 array."""

    label = str(source) if isinstance(source, (str, Path)) else "<bytes>"
    handle = io.BytesIO(bytes(source)) if isinstance(source, (bytes, bytearray)) else source
    try:
        with Image.open(handle) as img:
            img.load()
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageDecodeError(f"Failed to load image: {exc}", source=label) from exc
    return np.asarray(rgba, dtype=np.uint8)


def _as_pixel_array(pixels: Any, width: int, height: int, source_name: str) -> np.ndarray:
    if isinstance(pixels, (bytes, bytearray, memoryview)):
        arr = np.frombuffer(pixels, dtype=np.uint8)
    else:
        arr = np.asarray(pixels)
    if arr.ndim == 3 and arr.shape[:2] == (height, width) and arr.shape[2] in (3, 4):
        return arr
    if arr.size == width * height * 4:
        return arr.reshape(height, width, 4)
    raise ImageDecodeError(
        f"Pixel buffer of size {arr.size} does not match {width}x{height} RGBA",
        source=source_name,
    )


def _plot_bounds(width: int, height: int, region: Mapping[str, float]) -> Tuple[int, int, int, int]:
    sx = int(math.floor(width * float(region["x_min"])))
    ex = int(math.floor(width * float(region["x_max"])))
    sy = int(math.floor(height * float(region["y_min"])))
    ey = int(math.floor(height * float(region["y_max"])))
    return sx, ex, sy, ey


def extract_curve(
    rgb: np.ndarray,
    wavelength_range: Tuple[float, float],
    absorbance_range: Tuple[float, float],
    *,
    region: Mapping[str, float],
    sample_columns: int = 100,
    source_name: str = "",
) -> Spectrum:
    height, width = rgb.shape[:2]
    sx, ex, sy, ey = _plot_bounds(width, height, region)
    if ex <= sx or ey <= sy:
        raise ImageDecodeError(f"Image {width}x{height} is too small to contain a plot area", source=source_name)

    step = (ex - sx) / float(sample_columns)
    columns = np.unique(np.floor(sx + np.arange(sample_columns) * step).astype(int))
    # mean RGB per pixel, rows restricted to the plot area
    brightness = rgb[sy:ey, columns, :3].astype(float).mean(axis=-1)
    best_y = sy + np.argmin(brightness, axis=0)

    min_wl, max_wl = wavelength_range
    min_ab, max_ab = absorbance_range
    wavelength = min_wl + (columns - sx) / float(ex - sx) * (max_wl - min_wl)
    absorbance = max_ab - (best_y - sy) / float(ey - sy) * (max_ab - min_ab)
    return Spectrum(
        wavelength=wavelength.astype(float),
        intensity=np.clip(absorbance, 0.0, None).astype(float),
        meta={"source": source_name, "source_type": "image"},
    )


def extraction_confidence(spec: Spectrum, axes: AxisDetection, cfg: Mapping[str, float]) -> float:
    confidence = float(cfg.get("base", 0.5))
    if axes.has_wavelength_axis:
        confidence += float(cfg.get("wavelength_axis", 0.2))
    if axes.has_absorbance_axis:
        confidence += float(cfg.get("absorbance_axis", 0.2))
    if float(np.var(np.asarray(spec.intensity, dtype=float))) > float(cfg.get("variance_threshold", 0.01)):
        confidence += float(cfg.get("signal", 0.1))
    return float(min(1.0, max(0.0, confidence)))


def analyze_image(
    pixels: Any,
    width: int,
    height: int,
    source_name: str,
    *,
    recipe: Optional[Mapping[str, Any]] = None,
    axis_detector: Optional[AxisDetector] = None,
) -> ImageAnalysisResult:
    params = resolve_recipe(recipe)["image"]
    rgb = _as_pixel_array(pixels, int(width), int(height), source_name)
    detector = axis_detector or DarkPixelAxisDetector(
        threshold=int(params["dark_threshold"]),
        band=float(params["axis_band"]),
        fraction=float(params["axis_fraction"]),
    )
    axes = detector.detect(rgb)
    if axes.has_wavelength_axis:
        wl_range = tuple(float(v) for v in params["wavelength_range_with_axis"])
    else:
        wl_range = tuple(float(v) for v in params["wavelength_range_default"])
        logger.warning("%s: no wavelength axis detected; assuming %.0f-%.0f nm", source_name, *wl_range)
    ab_range = tuple(float(v) for v in params["absorbance_range"])

    spectrum = extract_curve(
        rgb,
        wl_range,
        ab_range,
        region=params["plot_region"],
        sample_columns=int(params["sample_columns"]),
        source_name=source_name,
    )

    peaks: List[Peak] = []
    if spectrum.wavelength.size >= 2:
        threshold = relative_threshold(spectrum, float(params["peak_fraction"]))
        peaks = find_peaks(spectrum, threshold, order=ORDER_SCAN)
    detected = tuple(int(math.floor(p.wavelength + 0.5)) for p in peaks)
    confidence = extraction_confidence(spectrum, axes, params["confidence"])

    metadata = ImageMetadata(
        width=int(width),
        height=int(height),
        has_wavelength_axis=axes.has_wavelength_axis,
        has_absorbance_axis=axes.has_absorbance_axis,
        wavelength_range=wl_range,
        absorbance_range=ab_range,
    )
    logger.info(
        "%s: extracted %d points, %d peaks, extraction confidence %.2f",
        source_name,
        spectrum.wavelength.size,
        len(peaks),
        confidence,
    )
    return ImageAnalysisResult(
        spectrum=spectrum,
        detected_peaks=detected,
        peaks=tuple(peaks),
        image_metadata=metadata,
        confidence=confidence,
        source=source_name,
    )


def process_spectrograph_image(
    source: ImageSource,
    source_name: Optional[str] = None,
    *,
    recipe: Optional[Mapping[str, Any]] = None,
    axis_detector: Optional[AxisDetector] = None,
) -> ImageAnalysisResult:
    rgba = decode_image(source)
    if source_name is None:
        source_name = Path(source).name if isinstance(source, (str, Path)) else "image"
    height, width = rgba.shape[:2]
    return analyze_image(rgba, width, height, source_name, recipe=recipe, axis_detector=axis_detector)


class ImagePlugin(IngestionPlugin):
    id = "image"
    label = "Spectrograph image"
    extensions = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".gif", ".webp")

    def __init__(self, axis_detector: Optional[AxisDetector] = None) -> None:
        self.axis_detector = axis_detector

    def load(self, path: str, recipe: Optional[Dict[str, Any]] = None) -> IngestionResult:
        result = process_spectrograph_image(path, recipe=recipe, axis_detector=self.axis_detector)
        metadata = result.image_metadata.to_dict()
        metadata["source"] = result.source
        metadata["detected_peaks"] = list(result.detected_peaks)
        return IngestionResult(
            spectrum=result.spectrum,
            peak_wavelengths=[float(p) for p in result.detected_peaks],
            metadata=metadata,
            confidence=result.confidence,
        )
