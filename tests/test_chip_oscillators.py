import math
import os
import sys

import numpy as np
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from chip_oscillators import (
    DutyCycle,
    generate_noise,
    generate_square_wave,
    generate_triangle_wave,
    midi_note_to_frequency,
    oscillator_for_channel,
)


def test_midi_note_to_frequency_reference_pitches():
    assert math.isclose(midi_note_to_frequency(69), 440.0, abs_tol=1e-3)
    assert math.isclose(midi_note_to_frequency(60), 261.625565, abs_tol=1e-3)


def test_octave_doubles_frequency():
    for n in range(0, 116):
        assert midi_note_to_frequency(n + 12) == pytest.approx(2.0 * midi_note_to_frequency(n), rel=1e-12)


def test_duty_cycle_values():
    assert DutyCycle.DUTY_12_5.value == 0.125
    assert DutyCycle.DUTY_25.value == 0.25
    assert DutyCycle.DUTY_50.value == 0.5
    assert DutyCycle.DUTY_75.value == 0.75


def test_generators_produce_truncated_sample_count():
    assert generate_square_wave(440.0, DutyCycle.DUTY_50, 44100, 0.1).size == 4410
    assert generate_triangle_wave(440.0, 44100, 0.1).size == 4410
    assert generate_noise(False, 44100, 0.1).size == 4410
    assert generate_square_wave(440.0, DutyCycle.DUTY_50, 1000, 0.0125).size == 12
    assert generate_noise(False, 1000, 0.0).size == 0


@pytest.mark.parametrize("duty", list(DutyCycle))
def test_square_wave_values_and_duty(duty):
    wave = generate_square_wave(1.0, duty, 1000, 1.0)
    assert set(np.unique(wave)) <= {-1.0, 1.0}
    high = float(np.mean(wave > 0))
    assert high == pytest.approx(duty.value, abs=2e-3)


def test_square_wave_starts_high():
    wave = generate_square_wave(440.0, DutyCycle.DUTY_25, 44100, 0.01)
    assert wave[0] == 1.0


def test_triangle_shape():
    wave = generate_triangle_wave(1.0, 8, 1.0)
    np.testing.assert_allclose(wave, [-1.0, -0.5, 0.0, 0.5, 1.0, 0.5, 0.0, -0.5])


def test_triangle_is_continuous():
    sr = 48000
    wave = generate_triangle_wave(100.0, sr, 0.1)
    # Max step between samples is 4 * f / sr.
    assert np.max(np.abs(np.diff(wave))) <= 4.0 * 100.0 / sr + 1e-9
    assert np.min(wave) >= -1.0
    assert np.max(wave) <= 1.0


def test_noise_is_deterministic():
    a = generate_noise(False, 44100, 0.25)
    b = generate_noise(False, 44100, 0.25)
    assert a.tobytes() == b.tobytes()


def test_noise_first_samples():
    wave = generate_noise(False, 1000, 0.02)
    assert wave[0] == 1.0
    assert np.all(wave[1:15] == -1.0)
    assert wave[15] == 1.0


def test_long_noise_period():
    wave = generate_noise(False, 40000, 1.0)
    np.testing.assert_array_equal(wave[32767:32767 + 500], wave[:500])
    assert not np.array_equal(wave[1000:1500], wave[:500])


def test_short_noise_repeats_quickly():
    wave = generate_noise(True, 1000, 1.0)
    assert set(np.unique(wave)) <= {-1.0, 1.0}
    period = next(p for p in range(1, 200) if np.array_equal(wave[p:p + 100], wave[:100]))
    assert period < 200


def test_channel_selection():
    f = midi_note_to_frequency(69)
    np.testing.assert_array_equal(
        oscillator_for_channel(0, f, 8000, 0.1), generate_square_wave(f, DutyCycle.DUTY_50, 8000, 0.1)
    )
    np.testing.assert_array_equal(
        oscillator_for_channel(5, f, 8000, 0.1), generate_square_wave(f, DutyCycle.DUTY_25, 8000, 0.1)
    )
    np.testing.assert_array_equal(oscillator_for_channel(10, f, 8000, 0.1), generate_triangle_wave(f, 8000, 0.1))
    np.testing.assert_array_equal(oscillator_for_channel(15, f, 8000, 0.1), generate_noise(False, 8000, 0.1))
