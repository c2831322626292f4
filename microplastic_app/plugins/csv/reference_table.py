"""Reference spectra tables for full-curve correlation.

Each data row holds one reference: ``name, type`` followed by alternating
``wavelength, absorbance`` pairs.  The first line is a header and is ignored.
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import List

import numpy as np

from microplastic_app.engine.errors import EmptyDatasetError
from microplastic_app.engine.peak_detection import ORDER_WAVELENGTH, find_peaks
from microplastic_app.engine.plugin_api import Spectrum
from microplastic_app.engine.reference_library import ReferenceSpectrum

logger = logging.getLogger(__name__)

DEFAULT_PEAK_MIN_HEIGHT = 0.5


def _pairs(values: List[str]) -> tuple[np.ndarray, np.ndarray]:
    wavelengths: List[float] = []
    absorbance: List[float] = []
    for j in range(2, len(values) - 1, 2):
        try:
            wl = float(values[j])
            ab = float(values[j + 1])
        except ValueError:
            continue
        if np.isfinite(wl) and np.isfinite(ab):
            wavelengths.append(wl)
            absorbance.append(ab)
    wl_arr = np.asarray(wavelengths, dtype=float)
    ab_arr = np.asarray(absorbance, dtype=float)
    order = np.argsort(wl_arr, kind="stable")
    wl_arr, ab_arr = wl_arr[order], ab_arr[order]
    _, first = np.unique(wl_arr, return_index=True)
    return wl_arr[first], ab_arr[first]


def parse_reference_table(
    content: str,
    source_name: str = "references.csv",
    *,
    peak_min_height: float = DEFAULT_PEAK_MIN_HEIGHT,
) -> List[ReferenceSpectrum]:
    rows = list(csv.reader(io.StringIO(content or ""), quoting=csv.QUOTE_NONE))
    references: List[ReferenceSpectrum] = []
    for line_no, row in enumerate(rows[1:], start=1):
        values = [value.strip() for value in row]
        if not any(values):
            continue
        name = values[0] if values and values[0] else f"Sample {line_no}"
        ref_type = values[1] if len(values) > 1 and values[1] else "Unknown"
        wl, ab = _pairs(values)
        if wl.size < 2:
            logger.warning("%s: row %d (%s) has fewer than two data points; skipped", source_name, line_no, name)
            continue
        spectrum = Spectrum(wavelength=wl, intensity=ab, meta={"name": name, "type": ref_type, "source": source_name})
        peaks = find_peaks(spectrum, peak_min_height, order=ORDER_WAVELENGTH)
        references.append(ReferenceSpectrum(name=name, type=ref_type, spectrum=spectrum, peaks=tuple(peaks)))

    if not references:
        raise EmptyDatasetError("No reference spectra found", source=source_name)
    logger.info("%s: loaded %d reference spectra", source_name, len(references))
    return references


def load_reference_table(path: str | Path, *, peak_min_height: float = DEFAULT_PEAK_MIN_HEIGHT) -> List[ReferenceSpectrum]:
    path = Path(path)
    text = path.read_text(encoding="utf-8", errors="ignore")
    return parse_reference_table(text, path.name, peak_min_height=peak_min_height)
