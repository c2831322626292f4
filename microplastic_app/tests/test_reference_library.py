import pytest
import yaml

from microplastic_app.engine.dataset_stats import summarize_library
from microplastic_app.engine.errors import EmptyDatasetError
from microplastic_app.engine.reference_library import DEFAULT_LIBRARY, ReferenceLibrary, ReferenceMaterial
from microplastic_app.plugins.csv.plugin import generate_sample_csv, parse_csv
from microplastic_app.plugins.csv.reference_table import load_reference_table, parse_reference_table


def test_builtin_catalog_order_and_peaks():
    assert len(DEFAULT_LIBRARY) == 6
    assert [m.polymer for m in DEFAULT_LIBRARY][:3] == [
        "Polyethylene Terephthalate",
        "Polyethylene",
        "Polypropylene",
    ]
    assert DEFAULT_LIBRARY.find("Nylon Fiber").peak_wavelengths == (495.0, 660.0)
    assert DEFAULT_LIBRARY.find("Glass") is None


def test_extend_returns_new_library():
    extra = ReferenceMaterial(type="Custom", color="Black", polymer="ABS", colorant="Carbon", peak_wavelengths=[610])
    extended = DEFAULT_LIBRARY.extend([extra])

    assert len(extended) == 7
    assert len(DEFAULT_LIBRARY) == 6
    assert extended[-1].peak_wavelengths == (610.0,)


def test_material_from_ingested_csv():
    material = ReferenceMaterial.from_ingestion(parse_csv(generate_sample_csv(), "sample.csv"))

    assert material.type == "PET Fragment"
    assert material.polymer == "Polyethylene Terephthalate"
    assert material.color == "Clear"
    assert material.colorant == "Unknown"
    assert material.peak_wavelengths == (500.0, 750.0)


def test_from_dict_accepts_delimited_peak_string():
    material = ReferenceMaterial.from_dict({"type": "PS", "peakWavelengths": "480; 760"})
    assert material.peak_wavelengths == (480.0, 760.0)
    assert material.color == "Unknown"


def test_catalog_round_trips_through_yaml(tmp_path):
    path = tmp_path / "lab.yaml"
    path.write_text(
        yaml.safe_dump({"name": "lab", "materials": DEFAULT_LIBRARY.to_records()[:2]}),
        encoding="utf-8",
    )
    library = ReferenceLibrary.from_yaml(path)

    assert library.name == "lab"
    assert library.materials == DEFAULT_LIBRARY.materials[:2]


def test_catalog_yaml_must_hold_records(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("just a string\n", encoding="utf-8")
    with pytest.raises(ValueError):
        ReferenceLibrary.from_yaml(path)


def test_reference_table_skips_short_rows(tmp_path):
    content = (
        "name,type,data\n"
        "Ref A,PET,400,0.1,500,0.8,600,0.1\n"
        "Lonely,PE,400,0.2\n"
        ",,300,0.1,350,0.2\n"
    )
    path = tmp_path / "refs.csv"
    path.write_text(content, encoding="utf-8")

    references = load_reference_table(path)

    assert [r.name for r in references] == ["Ref A", "Sample 3"]
    assert references[0].peak_wavelengths == [500.0]
    assert references[1].type == "Unknown"
    assert references[1].spectrum.meta["source"] == "refs.csv"


def test_reference_table_without_usable_rows_raises():
    with pytest.raises(EmptyDatasetError):
        parse_reference_table("name,type\nOnly,PE,400,0.1\n")
    with pytest.raises(EmptyDatasetError):
        parse_reference_table("")


def test_summary_counts_are_most_common_first():
    library = ReferenceLibrary(
        materials=(
            ReferenceMaterial(type="A", color="Blue", polymer="PE", colorant="x", peak_wavelengths=[500]),
            ReferenceMaterial(type="B", color="Red", polymer="PE", colorant="x", peak_wavelengths=[500, 600]),
            ReferenceMaterial(type="C", color="Red", polymer="PP", colorant="x", peak_wavelengths=[700, 710, 720]),
        )
    )
    summary = summarize_library(library)

    assert summary["total"] == 3
    assert summary["colors"][0] == ("Red", 2)
    assert summary["polymers"][0] == ("PE", 2)
    assert summary["mean_peaks"] == pytest.approx(2.0)


def test_summary_of_builtin_and_empty_catalogs():
    summary = summarize_library(DEFAULT_LIBRARY)
    assert summary["total"] == 6
    assert len(summary["types"]) == 6

    empty = summarize_library(ReferenceLibrary())
    assert empty["total"] == 0
    assert empty["types"] == []
    assert empty["mean_peaks"] == 0.0


def test_reference_table_keeps_quotes_in_names():
    references = parse_reference_table('name,type\n"Pipe,PVC,400,0.1,500,0.8,600,0.1\n')
    assert [r.name for r in references] == ['"Pipe']
    assert references[0].type == "PVC"
