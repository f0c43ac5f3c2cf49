"""Note placement and mixdown for the chiptune renderer."""
from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence

import numpy as np

from chip_oscillators import midi_note_to_frequency, oscillator_for_channel
from note_assembler import Note

DEFAULT_NOTE_GAIN = 0.7
DEFAULT_TAIL_PADDING_S = 1.0


def piece_duration(notes: Sequence[Note], tail_padding_s: float = DEFAULT_TAIL_PADDING_S) -> float:
    """Length of the rendered piece: last note end plus trailing silence."""

    return max((n.start_time + n.duration for n in notes), default=0.0) + tail_padding_s


def note_to_waveform(
    note: Note,
    sample_rate: int,
    total_duration: float,
    *,
    note_gain: float = DEFAULT_NOTE_GAIN,
) -> np.ndarray:
    """Render ``note`` into a zeroed buffer spanning the whole piece.

    The oscillator output is scaled by ``velocity / 127 * note_gain`` and
    written from ``start_time``; anything past the buffer end is dropped.
    """

    frequency = midi_note_to_frequency(note.midi_note)
    volume = note.velocity / 127.0 * note_gain
    start_sample = int(note.start_time * sample_rate)
    note_samples = int(note.duration * sample_rate)
    total_samples = int(total_duration * sample_rate)

    result = np.zeros(max(0, total_samples), dtype=np.float64)
    if start_sample >= total_samples:
        return result

    waveform = oscillator_for_channel(note.channel, frequency, sample_rate, note.duration)
    end_sample = min(start_sample + note_samples, total_samples, start_sample + waveform.size)
    span = end_sample - start_sample
    if span > 0:
        result[start_sample:end_sample] = waveform[:span] * volume
    return result


def mix_waveforms(waveforms: Iterable[np.ndarray]) -> np.ndarray:
    """Average the buffers sample by sample.

    Every buffer counts equally; shorter buffers contribute silence past
    their end.  Buffers are summed one at a time in iteration order, so a
    generator keeps memory to a single accumulator.
    """

    acc = np.zeros(0, dtype=np.float64)
    count = 0
    for buf in waveforms:
        buf = np.asarray(buf, dtype=np.float64)
        if buf.size > acc.size:
            grown = np.zeros(buf.size, dtype=np.float64)
            grown[: acc.size] = acc
            acc = grown
        acc[: buf.size] += buf
        count += 1
    if count == 0:
        return acc
    return acc / float(count)


class MixerEngine:
    """Hold the placement settings and render a note list to one buffer."""

    def __init__(self, config: Dict[str, Any]):
        audio_cfg = config.get("audio", {})
        synth_cfg = config.get("synth", {})

        self.sample_rate = int(audio_cfg.get("sample_rate", 44100))
        self.note_gain = float(synth_cfg.get("note_gain", DEFAULT_NOTE_GAIN))
        self.tail_padding_s = float(synth_cfg.get("tail_padding_s", DEFAULT_TAIL_PADDING_S))
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be strictly positive")

    def total_duration(self, notes: Sequence[Note]) -> float:
        return piece_duration(notes, self.tail_padding_s)

    def place_note(self, note: Note, total_duration: float) -> np.ndarray:
        return note_to_waveform(
            note, self.sample_rate, total_duration, note_gain=self.note_gain
        )

    def render_mix(self, waveforms: Iterable[np.ndarray]) -> np.ndarray:
        return mix_waveforms(waveforms)
