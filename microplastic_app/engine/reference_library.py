from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

import numpy as np
import yaml

from microplastic_app.engine.peak_detection import Peak
from microplastic_app.engine.plugin_api import IngestionResult, Spectrum


def _normalize_peaks(values: Iterable[object]) -> Tuple[float, ...]:
    peaks: List[float] = []
    for value in values:
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if np.isfinite(number):
            peaks.append(number)
    return tuple(peaks)


def _text(value: object, default: str = "Unknown") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


@dataclass(frozen=True)
class ReferenceMaterial:
    type: str
    color: str
    polymer: str
    colorant: str
    peak_wavelengths: Tuple[float, ...] = ()
    characteristics: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "peak_wavelengths", _normalize_peaks(self.peak_wavelengths))
        object.__setattr__(self, "characteristics", tuple(str(c) for c in self.characteristics))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "color": self.color,
            "polymer": self.polymer,
            "colorant": self.colorant,
            "peak_wavelengths": list(self.peak_wavelengths),
            "characteristics": list(self.characteristics),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReferenceMaterial":
        peaks = data.get("peak_wavelengths", data.get("peakWavelengths")) or []
        if isinstance(peaks, str):
            peaks = [token for token in peaks.replace(";", " ").split() if token]
        return cls(
            type=_text(data.get("type")),
            color=_text(data.get("color")),
            polymer=_text(data.get("polymer")),
            colorant=_text(data.get("colorant")),
            peak_wavelengths=peaks,
            characteristics=tuple(data.get("characteristics") or ()),
        )

    @classmethod
    def from_ingestion(cls, result: IngestionResult, *, colorant: str = "Unknown") -> "ReferenceMaterial":
        """Build a catalog entry from a parsed single-material CSV upload."""

        meta = result.metadata or {}
        return cls(
            type=_text(meta.get("type") or meta.get("source")),
            color=_text(meta.get("color")),
            polymer=_text(meta.get("polymer")),
            colorant=_text(meta.get("colorant"), colorant),
            peak_wavelengths=result.peak_wavelengths,
        )


@dataclass(frozen=True)
class ReferenceSpectrum:
    """A named reference curve used by full-curve correlation."""

    name: str
    type: str
    spectrum: Spectrum = field(compare=False)
    peaks: Tuple[Peak, ...] = ()

    @property
    def peak_wavelengths(self) -> List[float]:
        return [p.wavelength for p in self.peaks]


@dataclass(frozen=True)
class ReferenceLibrary:
    """Ordered, immutable catalog of reference materials.

    Order matters: the scorer resolves ties in favour of the earlier entry.
    """

    materials: Tuple[ReferenceMaterial, ...] = ()
    name: str = "custom"

    def __post_init__(self):
        object.__setattr__(self, "materials", tuple(self.materials))

    def __iter__(self) -> Iterator[ReferenceMaterial]:
        return iter(self.materials)

    def __len__(self) -> int:
        return len(self.materials)

    def __getitem__(self, idx: int) -> ReferenceMaterial:
        return self.materials[idx]

    def extend(self, materials: Iterable[ReferenceMaterial]) -> "ReferenceLibrary":
        return ReferenceLibrary(materials=self.materials + tuple(materials), name=self.name)

    def find(self, material_type: str) -> ReferenceMaterial | None:
        for material in self.materials:
            if material.type == material_type:
                return material
        return None

    def to_records(self) -> List[Dict[str, Any]]:
        return [material.to_dict() for material in self.materials]

    @classmethod
    def from_records(cls, records: Sequence[Mapping[str, Any]], *, name: str = "custom") -> "ReferenceLibrary":
        return cls(materials=tuple(ReferenceMaterial.from_dict(r) for r in records), name=name)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ReferenceLibrary":
        path = Path(path)
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
        if isinstance(payload, Mapping):
            records = payload.get("materials") or []
            name = str(payload.get("name") or path.stem)
        elif isinstance(payload, list):
            records, name = payload, path.stem
        else:
            raise ValueError(f"Reference catalog {path} must be a list or a mapping with 'materials'")
        return cls.from_records(records, name=name)


DEFAULT_LIBRARY = ReferenceLibrary(
    name="builtin",
    materials=(
        ReferenceMaterial(
            type="PET Bottle Fragment",
            color="Clear Blue",
            polymer="Polyethylene Terephthalate",
            colorant="Cobalt Blue",
            peak_wavelengths=(500.0, 740.0),
            characteristics=("high_crystallinity", "bottle_origin"),
        ),
        ReferenceMaterial(
            type="PE Film Fragment",
            color="Translucent White",
            polymer="Polyethylene",
            colorant="Titanium Dioxide",
            peak_wavelengths=(460.0, 680.0),
            characteristics=("flexible", "film_origin"),
        ),
        ReferenceMaterial(
            type="PP Container Piece",
            color="Red",
            polymer="Polypropylene",
            colorant="Iron Oxide Red",
            peak_wavelengths=(650.0, 720.0),
            characteristics=("rigid", "container_origin"),
        ),
        ReferenceMaterial(
            type="PS Foam Fragment",
            color="White",
            polymer="Polystyrene",
            colorant="Titanium Dioxide",
            peak_wavelengths=(480.0, 760.0),
            characteristics=("foam_structure", "lightweight"),
        ),
        ReferenceMaterial(
            type="PVC Pipe Fragment",
            color="Gray",
            polymer="Polyvinyl Chloride",
            colorant="Carbon Black",
            peak_wavelengths=(520.0, 780.0),
            characteristics=("rigid", "pipe_origin"),
        ),
        ReferenceMaterial(
            type="Nylon Fiber",
            color="Blue",
            polymer="Polyamide",
            colorant="Methylene Blue",
            peak_wavelengths=(495.0, 660.0),
            characteristics=("fiber_structure", "textile_origin"),
        ),
    ),
)
