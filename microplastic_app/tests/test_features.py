import numpy as np
import pytest

from microplastic_app.engine.features import extract_features, feature_vector_length, to_feature_vector
from microplastic_app.engine.plugin_api import Spectrum


def test_flat_spectrum_vector_is_zero_padded():
    wl = np.linspace(400.0, 800.0, 21)
    spec = Spectrum(wavelength=wl, intensity=np.full(wl.size, 0.1))

    features = extract_features(spec)
    vector = to_feature_vector(features, max_peaks=5)

    assert features.peak_count == 0
    assert features.dominant_wavelength == 0.0
    assert len(vector) == feature_vector_length(5) == 20
    assert vector[0] == pytest.approx(0.1)
    assert vector[1] == pytest.approx(0.0)
    assert vector[2:4] == [0.0, 0.0]
    assert vector[4:19] == [0.0] * 15
    assert vector[-1] == pytest.approx(400.0)


def test_mean_and_population_variance():
    spec = Spectrum(wavelength=np.array([400.0, 410.0]), intensity=np.array([0.1, 0.3]))
    features = extract_features(spec)
    assert features.mean_absorbance == pytest.approx(0.2)
    assert features.variance == pytest.approx(0.01)
    assert features.spectral_range == (400.0, 410.0)


def test_peak_slots_follow_intensity_order():
    wl = np.array([400.0, 450.0, 500.0, 550.0, 600.0, 650.0, 700.0])
    intensity = np.array([0.0, 0.4, 0.0, 0.9, 0.0, 0.6, 0.0])
    features = extract_features(Spectrum(wavelength=wl, intensity=intensity))
    vector = to_feature_vector(features, max_peaks=2)

    assert features.peak_count == 3
    assert features.dominant_wavelength == 550.0
    assert len(vector) == feature_vector_length(2)
    assert vector[2] == 3.0
    assert vector[4] == 550.0 and vector[5] == pytest.approx(0.9)
    assert vector[7] == 650.0 and vector[8] == pytest.approx(0.6)
    assert vector[-1] == pytest.approx(300.0)


def test_peak_thresholds_come_from_config():
    wl = np.array([400.0, 450.0, 500.0, 550.0, 600.0])
    intensity = np.array([0.0, 0.15, 0.0, 0.5, 0.0])
    spec = Spectrum(wavelength=wl, intensity=intensity)

    assert extract_features(spec).peak_count == 1
    assert extract_features(spec, {"min_height": 0.1}).peak_count == 2
    assert extract_features(spec, {"min_height": 0.1, "min_distance_nm": 150.0}).peak_count == 1


def test_negative_slot_count_is_rejected():
    spec = Spectrum(wavelength=np.array([400.0, 410.0]), intensity=np.array([0.1, 0.3]))
    with pytest.raises(ValueError):
        to_feature_vector(extract_features(spec), max_peaks=-1)
