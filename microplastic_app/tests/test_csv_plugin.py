import warnings

import numpy as np
import pandas as pd
import pytest

from microplastic_app.engine.errors import EmptyDatasetError, MissingColumnError
from microplastic_app.plugins.csv.plugin import CsvPlugin, find_column_index, generate_sample_csv, parse_csv


def test_sample_csv_parses_to_pet_fragment():
    result = parse_csv(generate_sample_csv(), "sample.csv")

    assert len(result.spectrum) == 9
    assert result.metadata["total_points"] == 9
    assert result.metadata["wavelength_range"] == [400.0, 800.0]
    assert result.metadata["max_absorbance"] == pytest.approx(0.45)
    assert result.metadata["type"] == "PET Fragment"
    assert result.metadata["polymer"] == "Polyethylene Terephthalate"
    assert result.metadata["color"] == "Clear"
    assert result.peak_wavelengths == [500.0, 750.0]
    assert result.metadata["peak_wavelengths"] == [500.0, 750.0]


def test_header_synonyms_are_matched_case_insensitively():
    content = "Wave (nm),Abs,Material\n400,0.1,PE\n410,0.5,PE\n420,0.2,PE\n"
    result = parse_csv(content, "film.csv")

    assert np.allclose(result.spectrum.wavelength, [400.0, 410.0, 420.0])
    assert np.allclose(result.spectrum.intensity, [0.1, 0.5, 0.2])
    assert result.metadata["type"] == "PE"
    assert result.metadata["polymer"] is None
    assert result.metadata["color"] is None
    assert result.peak_wavelengths == [410.0]


def test_find_column_index_tries_synonyms_in_order():
    headers = ["sample", "intensity", "absorbance"]
    assert find_column_index(headers, ("absorbance", "intensity")) == 2
    assert find_column_index(headers, ("colour",)) == -1


def test_missing_absorbance_column_raises():
    with pytest.raises(MissingColumnError) as excinfo:
        parse_csv("wavelength,color\n400,red\n", "bad.csv")
    assert excinfo.value.column == "absorbance"
    assert "bad.csv" in str(excinfo.value)


def test_missing_wavelength_column_raises():
    with pytest.raises(MissingColumnError) as excinfo:
        parse_csv("signal,absorbance\n1,0.2\n", "bad.csv")
    assert excinfo.value.column == "wavelength"


@pytest.mark.parametrize(
    "content",
    ["", "   \n", "wavelength,absorbance", "wavelength,absorbance\nfoo,bar\n,\n"],
)
def test_no_valid_rows_raises_empty_dataset(content):
    with pytest.raises(EmptyDatasetError):
        parse_csv(content, "empty.csv")


def test_non_numeric_rows_are_skipped():
    content = "wavelength,absorbance\n400,0.1\nabc,0.2\n410,0.3\n420,n/a\n430,0.1\n"
    result = parse_csv(content, "mixed.csv")

    assert result.metadata["total_points"] == 3
    assert np.allclose(result.spectrum.wavelength, [400.0, 410.0, 430.0])


def test_metadata_ignored_when_first_row_is_invalid():
    content = "wavelength,absorbance,type\nnope,0.1,Ghost\n400,0.1,PP\n410,0.3,PP\n"
    result = parse_csv(content, "late.csv")
    assert result.metadata["type"] is None
    assert result.metadata["total_points"] == 2


def test_rows_are_sorted_by_wavelength():
    content = "wavelength,absorbance\n420,0.1\n400,0.1\n410,0.5\n"
    result = parse_csv(content, "shuffled.csv")
    assert np.allclose(result.spectrum.wavelength, [400.0, 410.0, 420.0])
    assert result.peak_wavelengths == [410.0]


def test_single_point_file_has_no_peaks():
    result = parse_csv("wavelength,absorbance\n500,0.4\n", "one.csv")
    assert len(result.spectrum) == 1
    assert result.peak_wavelengths == []


def test_csv_plugin_reads_file_and_applies_recipe(tmp_path):
    path = tmp_path / "sample.csv"
    path.write_text(generate_sample_csv(), encoding="utf-8")
    plugin = CsvPlugin()

    assert plugin.detect([str(path)])
    assert not plugin.detect([str(tmp_path / "plot.png")])

    result = plugin.load(str(path))
    assert result.metadata["source"] == "sample.csv"
    assert result.peak_wavelengths == [500.0, 750.0]

    # a high relative threshold keeps only the strongest band
    strict = plugin.load(str(path), {"csv": {"peak_fraction": 0.9}})
    assert strict.peak_wavelengths == [500.0]


def test_quote_characters_are_plain_data():
    content = 'wavelength,absorbance,type\n400,0.1,"PET\n410,0.5,PET\n420,0.2,PET\n'
    result = parse_csv(content, "q.csv")

    assert result.metadata["total_points"] == 3
    assert result.metadata["type"] == '"PET'
    assert result.peak_wavelengths == [410.0]


def test_rows_wider_than_header_parse_without_warnings():
    content = "wavelength,absorbance\n400,0.1,extra\n410,0.5\n420,0.2\n"
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = parse_csv(content, "wide.csv")

    assert not [w for w in caught if issubclass(w.category, pd.errors.ParserWarning)]
    assert np.allclose(result.spectrum.wavelength, [400.0, 410.0, 420.0])
