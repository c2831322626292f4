from __future__ import annotations

from typing import Dict, List, Tuple

import pandas as pd

from microplastic_app.engine.reference_library import ReferenceLibrary


def _distribution(frame: pd.DataFrame, column: str) -> List[Tuple[str, int]]:
    if frame.empty:
        return []
    counts = frame[column].value_counts(sort=False)
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [(str(key), int(value)) for key, value in ordered]


def summarize_library(library: ReferenceLibrary) -> Dict[str, object]:
    """Count catalog entries per type, color and polymer, most common first."""

    frame = pd.DataFrame(library.to_records(), columns=["type", "color", "polymer", "colorant", "peak_wavelengths"])
    peak_counts = frame["peak_wavelengths"].map(len) if not frame.empty else pd.Series(dtype=int)
    return {
        "total": int(len(frame)),
        "types": _distribution(frame, "type"),
        "colors": _distribution(frame, "color"),
        "polymers": _distribution(frame, "polymer"),
        "mean_peaks": float(peak_counts.mean()) if not peak_counts.empty else 0.0,
    }
