"""Single-material CSV ingestion.

The file is a plain comma separated table with a header row.  Columns are
resolved by case-insensitive substring match against synonym lists, and
descriptive metadata (type, polymer, color) is read from the first data
row only: one file describes one material.
"""

from __future__ import annotations

import csv
import io
import logging
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from microplastic_app.engine.errors import EmptyDatasetError, MissingColumnError
from microplastic_app.engine.peak_detection import (
    ORDER_WAVELENGTH,
    find_peaks,
    peak_wavelengths,
    relative_threshold,
)
from microplastic_app.engine.plugin_api import IngestionPlugin, IngestionResult, Spectrum
from microplastic_app.engine.recipe_model import resolve_recipe

logger = logging.getLogger(__name__)

WAVELENGTH_NAMES = ("wavelength", "wave", "nm", "x")
ABSORBANCE_NAMES = ("absorbance", "abs", "intensity", "y", "value")
TYPE_NAMES = ("type", "material", "sample")
POLYMER_NAMES = ("polymer", "plastic")
COLOR_NAMES = ("color", "colour")

DEFAULT_PEAK_FRACTION = 0.1

SAMPLE_CSV_ROWS = (
    (400, 0.12),
    (450, 0.15),
    (500, 0.45),
    (550, 0.32),
    (600, 0.28),
    (650, 0.18),
    (700, 0.22),
    (750, 0.35),
    (800, 0.15),
)


def find_column_index(headers: Sequence[str], names: Sequence[str]) -> int:
    """Index of the first header containing a synonym, trying synonyms in order."""

    lowered = [str(h).strip().lower() for h in headers]
    for name in names:
        for idx, header in enumerate(lowered):
            if name in header:
                return idx
    return -1


def _cell(row: Sequence[object], idx: int) -> Optional[str]:
    if idx < 0 or idx >= len(row):
        return None
    value = row[idx]
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    return str(value).strip()


def parse_csv(
    content: str,
    source_name: str,
    *,
    peak_fraction: float = DEFAULT_PEAK_FRACTION,
) -> IngestionResult:
    if not content or not content.strip():
        raise EmptyDatasetError("CSV file is empty", source=source_name)

    # plain comma splitting: quote characters are data, rows wider than the
    # header keep their leading columns
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", pd.errors.ParserWarning)
        frame = pd.read_csv(
            io.StringIO(content.strip()),
            sep=",",
            dtype=str,
            header=0,
            index_col=False,
            engine="python",
            quoting=csv.QUOTE_NONE,
            skip_blank_lines=True,
            on_bad_lines="skip",
            keep_default_na=False,
        )
    headers = [str(col).strip().lower() for col in frame.columns]

    wl_idx = find_column_index(headers, WAVELENGTH_NAMES)
    if wl_idx == -1:
        raise MissingColumnError("wavelength", headers, source=source_name)
    abs_idx = find_column_index(headers, ABSORBANCE_NAMES)
    if abs_idx == -1:
        raise MissingColumnError("absorbance", headers, source=source_name)
    if frame.empty:
        raise EmptyDatasetError("No valid spectral data found in CSV", source=source_name)

    wavelength = pd.to_numeric(frame.iloc[:, wl_idx].str.strip(), errors="coerce")
    absorbance = pd.to_numeric(frame.iloc[:, abs_idx].str.strip(), errors="coerce")
    valid = wavelength.notna() & absorbance.notna()
    valid &= np.isfinite(wavelength.fillna(0.0)) & np.isfinite(absorbance.fillna(0.0))
    skipped = int((~valid).sum())
    if not valid.any():
        raise EmptyDatasetError("No valid spectral data found in CSV", source=source_name)
    if skipped:
        logger.debug("%s: skipped %d non-numeric rows", source_name, skipped)

    metadata: Dict[str, Any] = {"type": None, "polymer": None, "color": None, "source": source_name}
    if len(frame) and bool(valid.iloc[0]):
        first_row = list(frame.iloc[0])
        for key, names in (("type", TYPE_NAMES), ("polymer", POLYMER_NAMES), ("color", COLOR_NAMES)):
            metadata[key] = _cell(first_row, find_column_index(headers, names))

    table = pd.DataFrame(
        {"wavelength": wavelength[valid].to_numpy(dtype=float), "absorbance": absorbance[valid].to_numpy(dtype=float)}
    )
    table = table.sort_values("wavelength", kind="stable").drop_duplicates("wavelength", keep="first")
    spectrum = Spectrum(
        wavelength=table["wavelength"].to_numpy(dtype=float),
        intensity=table["absorbance"].to_numpy(dtype=float),
        meta={"source": source_name, "source_type": "csv"},
    )

    peaks: List[float] = []
    if spectrum.wavelength.size >= 2:
        threshold = relative_threshold(spectrum, peak_fraction)
        peaks = peak_wavelengths(find_peaks(spectrum, threshold, order=ORDER_WAVELENGTH))

    metadata.update(
        {
            "peak_wavelengths": peaks,
            "total_points": int(valid.sum()),
            "wavelength_range": [float(table["wavelength"].min()), float(table["wavelength"].max())],
            "max_absorbance": float(table["absorbance"].max()),
        }
    )
    spectrum.meta.update({k: v for k, v in metadata.items() if k in ("type", "polymer", "color") and v})
    logger.info(
        "%s: parsed %d points, %d peaks, range %.1f-%.1f nm",
        source_name,
        metadata["total_points"],
        len(peaks),
        *metadata["wavelength_range"],
    )
    return IngestionResult(spectrum=spectrum, peak_wavelengths=peaks, metadata=metadata)


def generate_sample_csv() -> str:
    header = "wavelength,absorbance,type,polymer,color"
    rows = [
        f"{wl},{ab},PET Fragment,Polyethylene Terephthalate,Clear" for wl, ab in SAMPLE_CSV_ROWS
    ]
    return "\n".join([header, *rows])


class CsvPlugin(IngestionPlugin):
    id = "csv"
    label = "Spectral CSV"
    extensions = (".csv", ".txt")

    def load(self, path: str, recipe: Optional[Dict[str, Any]] = None) -> IngestionResult:
        params = resolve_recipe(recipe)
        path = Path(path)
        text = path.read_text(encoding="utf-8", errors="ignore")
        return parse_csv(
            text,
            path.name,
            peak_fraction=float(params["csv"]["peak_fraction"]),
        )
