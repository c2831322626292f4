"""Identify microplastic samples from spectral CSV files or plot images."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, Sequence

from microplastic_app.engine.analysis import analyze_batch, compare_with_references
from microplastic_app.engine.recipe_model import Recipe, resolve_recipe
from microplastic_app.engine.reference_library import DEFAULT_LIBRARY, ReferenceLibrary
from microplastic_app.plugins.csv.plugin import generate_sample_csv
from microplastic_app.plugins.csv.reference_table import load_reference_table
from microplastic_app.plugins.registry import plugin_for_path

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="microplastic-id", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Identify one or more uploaded files.")
    analyze.add_argument("paths", nargs="+", help="CSV or image files to analyze.")
    analyze.add_argument("--recipe", help="YAML preset overriding the default parameters.")
    analyze.add_argument("--library", help="YAML reference catalog to use instead of the built-in one.")
    analyze.add_argument("--seed", type=int, help="Seed for confidence jitter (only used when jitter is enabled).")
    analyze.add_argument("--parallel", action="store_true", help="Analyze files in worker processes.")
    analyze.add_argument("--json", action="store_true", help="Emit the full JSON record per file.")

    compare = sub.add_parser("compare", help="Correlate a curve against a table of reference spectra.")
    compare.add_argument("--references", required=True, help="CSV table of reference spectra.")
    compare.add_argument("path", help="CSV or image file holding the observed curve.")
    compare.add_argument("--recipe", help="YAML preset overriding the default parameters.")

    sub.add_parser("sample-csv", help="Print an example single-material CSV.")
    return parser.parse_args(argv)


def _load_recipe(path: str | None) -> Dict[str, Any]:
    if not path:
        return resolve_recipe()
    recipe = Recipe.from_yaml(path)
    errs = recipe.validate()
    if errs:
        raise SystemExit("Invalid recipe:\n  " + "\n  ".join(errs))
    return recipe.resolved()


def _run_analyze(args: argparse.Namespace) -> int:
    params = _load_recipe(args.recipe)
    library = ReferenceLibrary.from_yaml(args.library) if args.library else DEFAULT_LIBRARY
    outcome = analyze_batch(args.paths, library, params, parallel=args.parallel, seed=args.seed)
    for line in outcome.audit:
        logger.debug(line)

    if args.json:
        json.dump([record.to_dict() for record in outcome.records], sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        for record in outcome.records:
            if record.prediction is None:
                sys.stdout.write(f"{record.path}: error: {record.error}\n")
                continue
            result = record.prediction.result
            sys.stdout.write(
                f"{record.path}: {result.match} ({result.polymer}) "
                f"confidence {result.confidence:.2f}, spectral match {result.similarity:.2f}\n"
            )
    return 1 if outcome.failures else 0


def _run_compare(args: argparse.Namespace) -> int:
    params = _load_recipe(args.recipe)
    try:
        references = load_reference_table(
            args.references, peak_min_height=float(params["reference"]["peak_min_height"])
        )
        ingestion = plugin_for_path(args.path).load(args.path, params)
        result = compare_with_references(ingestion.spectrum, references, params)
    except (ValueError, OSError) as exc:
        logger.error("Comparison failed: %s", exc)
        return 1
    json.dump(result.to_dict(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "analyze":
            return _run_analyze(args)
        if args.command == "compare":
            return _run_compare(args)
        if args.command == "sample-csv":
            sys.stdout.write(generate_sample_csv() + "\n")
            return 0
    except BrokenPipeError:
        return 0
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
