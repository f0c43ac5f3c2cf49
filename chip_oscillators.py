"""Console sound-chip oscillators: two pulse voices, a triangle and LFSR noise.

All generators return ``float64`` arrays of ``int(sample_rate * duration)``
samples in ``[-1, 1]``.  Phase is computed from the absolute sample time, so
a note always starts at phase 0.
"""

from __future__ import annotations

from enum import Enum

import numpy as np

A4_MIDI_NOTE = 69
A4_FREQUENCY = 440.0
NOISE_SEED = 1


class DutyCycle(Enum):
    DUTY_12_5 = 0.125
    DUTY_25 = 0.25
    DUTY_50 = 0.5
    DUTY_75 = 0.75


def midi_note_to_frequency(midi_note: int) -> float:
    """Equal-tempered frequency in Hz, A4 (note 69) = 440 Hz."""

    return A4_FREQUENCY * 2.0 ** ((float(midi_note) - A4_MIDI_NOTE) / 12.0)


def sample_count(sample_rate: int, duration: float) -> int:
    return max(0, int(sample_rate * duration))


def _phase(frequency: float, sample_rate: int, duration: float) -> np.ndarray:
    t = np.arange(sample_count(sample_rate, duration), dtype=np.float64) / sample_rate
    return np.mod(t * frequency, 1.0)


def generate_square_wave(
    frequency: float, duty: DutyCycle | float, sample_rate: int, duration: float
) -> np.ndarray:
    """Pulse wave: +1 while the phase is below the duty fraction, -1 after."""

    duty_value = duty.value if isinstance(duty, DutyCycle) else float(duty)
    phase = _phase(frequency, sample_rate, duration)
    return np.where(phase < duty_value, 1.0, -1.0)


def generate_triangle_wave(frequency: float, sample_rate: int, duration: float) -> np.ndarray:
    phase = _phase(frequency, sample_rate, duration)
    return np.where(phase < 0.5, 4.0 * phase - 1.0, 3.0 - 4.0 * phase)


def generate_noise(is_short: bool, sample_rate: int, duration: float) -> np.ndarray:
    """15-bit LFSR noise, restarted from the seed on every call.

    Long mode taps bits 0 and 1, short mode bits 0 and 6.  The register update
    is a permutation of the 15-bit states, so the sequence returns to the
    seed; one period is simulated and then tiled.
    """

    n = sample_count(sample_rate, duration)
    if n == 0:
        return np.zeros(0, dtype=np.float64)
    tap = 6 if is_short else 1
    shift = NOISE_SEED
    period = []
    while len(period) < n:
        bit0 = shift & 1
        feedback = bit0 ^ ((shift >> tap) & 1)
        shift = (shift >> 1) | (feedback << 14)
        period.append(1.0 if bit0 else -1.0)
        if shift == NOISE_SEED:
            break
    return np.resize(np.asarray(period, dtype=np.float64), n)


def oscillator_for_channel(
    channel: int, frequency: float, sample_rate: int, duration: float
) -> np.ndarray:
    """Pick the voice by ``channel % 4``: 50% pulse, 25% pulse, triangle, noise."""

    voice = channel % 4
    if voice == 0:
        return generate_square_wave(frequency, DutyCycle.DUTY_50, sample_rate, duration)
    if voice == 1:
        return generate_square_wave(frequency, DutyCycle.DUTY_25, sample_rate, duration)
    if voice == 2:
        return generate_triangle_wave(frequency, sample_rate, duration)
    return generate_noise(False, sample_rate, duration)
