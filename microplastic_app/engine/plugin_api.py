from dataclasses import dataclass, field
from typing import Dict, Any, Iterable, List, Optional, Tuple
import numpy as np


@dataclass(frozen=True)
class SpectralPoint:
    wavelength: float               # nm
    absorbance: float


@dataclass
class Spectrum:
    wavelength: np.ndarray          # nm, strictly increasing
    intensity: np.ndarray           # absorbance
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_points(cls, points: Iterable[SpectralPoint], meta: Optional[Dict[str, Any]] = None) -> "Spectrum":
        pts = list(points)
        return cls(
            wavelength=np.asarray([p.wavelength for p in pts], dtype=float),
            intensity=np.asarray([p.absorbance for p in pts], dtype=float),
            meta=dict(meta or {}),
        )

    def points(self) -> List[SpectralPoint]:
        return [
            SpectralPoint(float(wl), float(ab))
            for wl, ab in zip(self.wavelength, self.intensity)
        ]

    @property
    def wavelength_range(self) -> Tuple[float, float]:
        return float(self.wavelength[0]), float(self.wavelength[-1])

    def __len__(self) -> int:
        return int(np.asarray(self.wavelength).size)


def validate_curve(spec: Spectrum, *, min_points: int = 2) -> None:
    """Raise ``ValueError`` when ``spec`` is not a usable spectral curve.

    Core transforms only see curves produced by the ingestion plugins, so a
    failure here points at an upstream bug rather than bad user input.
    """

    wl = np.asarray(spec.wavelength, dtype=float)
    ab = np.asarray(spec.intensity, dtype=float)
    if wl.ndim != 1 or ab.ndim != 1 or wl.size != ab.size:
        raise ValueError("Spectrum wavelength and intensity must be 1-D arrays of equal length")
    if wl.size < min_points:
        raise ValueError(f"Spectrum needs at least {min_points} points, got {wl.size}")
    if not np.all(np.isfinite(wl)) or not np.all(np.isfinite(ab)):
        raise ValueError("Spectrum contains non-finite values")
    if wl.size > 1 and not np.all(np.diff(wl) > 0):
        raise ValueError("Spectrum wavelengths must be strictly increasing")


@dataclass
class IngestionResult:
    spectrum: Spectrum
    peak_wavelengths: List[float]
    metadata: Dict[str, Any]
    confidence: Optional[float] = None


class IngestionPlugin:
    id: str = "base"
    label: str = "Base"
    extensions: Tuple[str, ...] = ()

    def detect(self, paths: Iterable[str]) -> bool:
        return bool(self.extensions) and all(
            str(p).lower().endswith(self.extensions) for p in paths
        )

    def load(self, path: str, recipe: Optional[Dict[str, Any]] = None) -> IngestionResult:
        raise NotImplementedError
