import numpy as np
import pytest

from microplastic_app.engine import analysis
from microplastic_app.engine.errors import UnsupportedFileTypeError
from microplastic_app.engine.matching import NoJitter, UniformJitter
from microplastic_app.engine.plugin_api import Spectrum
from microplastic_app.engine.reference_library import ReferenceSpectrum
from microplastic_app.plugins.csv.plugin import CsvPlugin, generate_sample_csv
from microplastic_app.plugins.image.plugin import ImagePlugin
from microplastic_app.plugins.registry import available_plugins, plugin_for_path


class LargeJitter:
    def sample(self, bound):
        return 10.0


def _pet_like_spectrum():
    wl = np.arange(400.0, 802.0, 2.0)
    intensity = (
        0.05
        + 0.8 * np.exp(-(((wl - 500.0) / 10.0) ** 2))
        + 0.6 * np.exp(-(((wl - 740.0) / 10.0) ** 2))
    )
    return Spectrum(wavelength=wl, intensity=intensity, meta={"source": "synthetic"})


def test_predict_matches_pet_for_its_reference_bands():
    prediction = analysis.predict(_pet_like_spectrum())

    assert prediction.observed_peaks == (740.0, 500.0)
    assert prediction.result.match == "PET Bottle Fragment"
    assert prediction.result.confidence == pytest.approx(0.98)
    assert prediction.result.similarity == pytest.approx(0.95)
    assert prediction.features.dominant_wavelength == 500.0
    assert len(prediction.feature_vector) == 20
    assert prediction.explanations[0].startswith("High confidence")

    payload = prediction.to_dict()
    assert payload["match"] == "PET Bottle Fragment"
    assert payload["observed_peaks"] == [740.0, 500.0]


def test_predict_with_smoothing_enabled_keeps_band_positions():
    prediction = analysis.predict(_pet_like_spectrum(), recipe={"smoothing": {"enabled": True, "window": 5}})
    assert prediction.observed_peaks == (740.0, 500.0)
    assert prediction.result.match == "PET Bottle Fragment"


def test_predict_with_injected_jitter_is_capped():
    prediction = analysis.predict(_pet_like_spectrum(), jitter=LargeJitter())
    assert prediction.result.confidence == pytest.approx(0.98)
    assert prediction.result.similarity == pytest.approx(0.95)


def test_predict_rejects_unusable_curve():
    with pytest.raises(ValueError):
        analysis.predict(Spectrum(wavelength=np.array([500.0]), intensity=np.array([0.4])))


def test_dominant_peaks_sorted_by_descending_wavelength():
    wl = np.array([400.0, 450.0, 500.0, 550.0, 600.0, 650.0, 700.0])
    intensity = np.array([0.0, 0.5, 0.0, 0.25, 0.0, 0.9, 0.0])
    assert analysis.dominant_peaks(Spectrum(wavelength=wl, intensity=intensity)) == [650.0, 450.0]


def test_build_jitter_follows_recipe():
    assert isinstance(analysis.build_jitter(), NoJitter)
    jitter = analysis.build_jitter({"matching": {"jitter": {"enabled": True}}}, seed=1)
    assert isinstance(jitter, UniformJitter)
    again = analysis.build_jitter({"matching": {"jitter": {"enabled": True, "seed": 1}}})
    assert jitter.sample(0.1) == again.sample(0.1)


def test_registry_routes_by_extension():
    assert [p.id for p in available_plugins()] == ["csv", "image"]
    assert isinstance(plugin_for_path("spectrum.CSV"), CsvPlugin)
    assert isinstance(plugin_for_path("photo.jpeg"), ImagePlugin)
    with pytest.raises(UnsupportedFileTypeError) as excinfo:
        plugin_for_path("table.xlsx")
    assert ".csv" in excinfo.value.supported


def test_analyze_file_on_sample_csv(tmp_path):
    path = tmp_path / "sample.csv"
    path.write_text(generate_sample_csv(), encoding="utf-8")

    record = analysis.analyze_file(str(path))

    assert record.ok
    assert record.plugin == "csv"
    assert record.prediction.observed_peaks == (750.0, 500.0)
    result = record.prediction.result
    assert result.match == "PET Bottle Fragment"
    assert result.raw_score == pytest.approx(0.9)
    assert result.confidence == pytest.approx(0.9)
    assert result.matched_peaks == (500.0, 740.0)
    assert record.to_dict()["metadata"]["type"] == "PET Fragment"


def test_batch_isolates_failures_per_file(tmp_path):
    good = tmp_path / "good.csv"
    good.write_text(generate_sample_csv(), encoding="utf-8")
    bad = tmp_path / "bad.csv"
    bad.write_text("wavelength,color\n400,red\n", encoding="utf-8")
    unsupported = tmp_path / "notes.xyz"
    unsupported.write_text("hello", encoding="utf-8")
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not really a png")

    outcome = analysis.analyze_batch([good, bad, unsupported, broken], parallel=True, workers=1)

    assert [r.path for r in outcome.records] == [str(good), str(bad), str(unsupported), str(broken)]
    assert outcome.records[0].ok
    assert outcome.records[0].prediction.result.match == "PET Bottle Fragment"
    assert len(outcome.failures) == 3
    assert outcome.records[1].error.startswith("MissingColumnError")
    assert outcome.records[2].error.startswith("UnsupportedFileTypeError")
    assert outcome.records[3].error.startswith("ImageDecodeError")
    assert "prediction" not in outcome.records[1].to_dict()
    assert len(outcome.audit) == 3 + 4
    assert "failed" in outcome.audit[-1]


def test_compare_with_references_uses_curve_settings():
    references = [
        ReferenceSpectrum(name="Match", type="PET", spectrum=_pet_like_spectrum()),
    ]
    result = analysis.compare_with_references(_pet_like_spectrum(), references)
    assert result.match == "Match"
    assert result.similarity == 100.0
    # no reference peaks, so only the similarity term contributes
    assert result.confidence == 70.0


def test_parallel_batch_matches_sequential_results(tmp_path):
    good = tmp_path / "good.csv"
    good.write_text(generate_sample_csv(), encoding="utf-8")
    bad = tmp_path / "bad.csv"
    bad.write_text("", encoding="utf-8")
    paths = [good, bad, good]

    sequential = analysis.analyze_batch(paths)
    pooled = analysis.analyze_batch(paths, parallel=True, workers=2)

    assert [r.path for r in pooled.records] == [str(p) for p in paths]
    assert [r.ok for r in pooled.records] == [True, False, True]
    assert pooled.records[1].error.startswith("EmptyDatasetError")
    assert pooled.records[0].prediction.result == sequential.records[0].prediction.result
    assert pooled.records[2].prediction.observed_peaks == (750.0, 500.0)
