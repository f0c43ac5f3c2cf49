"""Turn per-track delta-timed MIDI events into absolute-time notes."""

from dataclasses import dataclass
from typing import Dict, List, Tuple
import logging

from midi_reader import MidiFile, MidiTrack, NoteOff, NoteOn

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Note:
    midi_note: int
    channel: int
    start_time: float  # seconds
    duration: float    # seconds, always > 0
    velocity: int

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


def ticks_to_seconds(ticks: int, ticks_per_quarter: int, tempo_bpm: float) -> float:
    return ticks / ticks_per_quarter * 60.0 / tempo_bpm


def track_to_notes(track: MidiTrack, ticks_per_quarter: int, tempo_bpm: float) -> List[Note]:
    """Pair note-on/note-off events of a single track.

    Only one pending note-on is kept per ``(channel, note)``: a repeated
    note-on replaces the pending one, and a note-on still pending at the end
    of the track is dropped.
    """

    pending: Dict[Tuple[int, int], Tuple[int, float]] = {}
    notes: List[Note] = []
    current_tick = 0
    for event in track.events:
        if isinstance(event, NoteOn):
            current_tick += event.time
            start_time = ticks_to_seconds(current_tick, ticks_per_quarter, tempo_bpm)
            pending[(event.channel, event.note)] = (event.velocity, start_time)
        elif isinstance(event, NoteOff):
            current_tick += event.time
            end_time = ticks_to_seconds(current_tick, ticks_per_quarter, tempo_bpm)
            started = pending.pop((event.channel, event.note), None)
            if started is None:
                continue
            velocity, start_time = started
            duration = end_time - start_time
            if duration > 0.0:
                notes.append(
                    Note(
                        midi_note=event.note,
                        channel=event.channel,
                        start_time=start_time,
                        duration=duration,
                        velocity=velocity,
                    )
                )
        else:
            current_tick += event.time
    return notes


def events_to_notes(midi_file: MidiFile, tempo_bpm: float) -> List[Note]:
    """Collect the notes of every track, track after track.

    ``tempo_bpm`` applies to the whole piece; tempo meta events in the file
    are not read.
    """

    if tempo_bpm <= 0:
        raise ValueError("Tempo must be > 0 BPM")
    if midi_file.ticks_per_quarter <= 0:
        raise ValueError("ticks_per_quarter must be positive")

    notes: List[Note] = []
    for index, track in enumerate(midi_file.tracks):
        track_notes = track_to_notes(track, midi_file.ticks_per_quarter, tempo_bpm)
        logger.debug("Track %d: %d notes", index, len(track_notes))
        notes.extend(track_notes)
    return notes
