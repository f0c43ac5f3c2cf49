"""Standard MIDI File reader used by the chiptune renderer.

Only the subset of the format that the renderer needs is decoded:

* the ``MThd`` header (format, track count, ticks per quarter note);
* ``MTrk`` chunks as a list of delta-timed events, honouring running status;
* note-on, note-off and program-change channel messages.

Every other message (meta events, control changes, pitch bend, sysex...) is
consumed and discarded.  Tempo meta events are skipped like any other meta
event; the caller supplies the tempo.
"""

from dataclasses import dataclass, field
from typing import List, Tuple, Union
import logging
import struct

__all__ = [
    "MidiFormatError",
    "InvalidHeaderError",
    "TrackReadError",
    "UnexpectedEndOfData",
    "NoteOn",
    "NoteOff",
    "ProgramChange",
    "UnknownEvent",
    "UNKNOWN",
    "MidiTrack",
    "MidiFile",
    "read_vlq",
    "decode_event",
    "read_midi_header",
    "read_midi_track",
    "parse_midi",
    "read_midi_file",
]

logger = logging.getLogger(__name__)

HEADER_MAGIC = b"MThd"
TRACK_MAGIC = b"MTrk"
HEADER_LENGTH = 6


class MidiFormatError(ValueError):
    """Raised when the input bytes are not a readable Standard MIDI File."""


class InvalidHeaderError(MidiFormatError):
    pass


class TrackReadError(MidiFormatError):
    pass


class UnexpectedEndOfData(MidiFormatError):
    pass


@dataclass(frozen=True)
class NoteOn:
    channel: int
    note: int
    velocity: int
    time: int  # delta ticks since previous event of the track


@dataclass(frozen=True)
class NoteOff:
    channel: int
    note: int
    time: int


@dataclass(frozen=True)
class ProgramChange:
    channel: int
    program: int
    time: int


@dataclass(frozen=True)
class UnknownEvent:
    """Placeholder for skipped messages; never stored in a track."""


UNKNOWN = UnknownEvent()

MidiEvent = Union[NoteOn, NoteOff, ProgramChange, UnknownEvent]


@dataclass(frozen=True)
class MidiTrack:
    events: List[MidiEvent] = field(default_factory=list)


@dataclass(frozen=True)
class MidiFile:
    format: int
    track_count: int
    ticks_per_quarter: int
    tracks: List[MidiTrack] = field(default_factory=list)

    @classmethod
    def from_bytes(cls, data: bytes) -> "MidiFile":
        return parse_midi(data)

    @classmethod
    def from_path(cls, path: str) -> "MidiFile":
        with open(path, "rb") as fh:
            return cls.from_bytes(fh.read())


# ----------------------------------------------------------------------
# Low level readers
def read_vlq(data: bytes, pos: int) -> Tuple[int, int]:
    """Decode a variable-length quantity starting at ``pos``.

    Returns ``(value, new_pos)``; the value wraps at 32 bits.  Raises
    :class:`UnexpectedEndOfData` when the buffer ends before a byte with a
    clear high bit is found.
    """

    value = 0
    while True:
        if pos >= len(data):
            raise UnexpectedEndOfData("unexpected end of data while reading VLQ")
        byte = data[pos]
        pos += 1
        value = ((value << 7) | (byte & 0x7F)) & 0xFFFFFFFF
        if not byte & 0x80:
            return value, pos


def _read_be_u16(data: bytes, pos: int) -> Tuple[int, int]:
    return struct.unpack_from(">H", data, pos)[0], pos + 2


def _read_be_u32(data: bytes, pos: int) -> Tuple[int, int]:
    return struct.unpack_from(">I", data, pos)[0], pos + 4


# ----------------------------------------------------------------------
# Events
def decode_event(
    data: bytes, pos: int, running_status: int, delta_time: int
) -> Tuple[MidiEvent, int, int]:
    """Decode one event at ``pos``.

    ``running_status`` is the last status byte seen in the current track.
    Returns ``(event, new_pos, new_running_status)``; skipped or truncated
    messages come back as :data:`UNKNOWN`.
    """

    end = len(data)
    if pos >= end:
        return UNKNOWN, pos, running_status

    first = data[pos]
    if first >= 0x80:
        running_status = first
        pos += 1

    status = running_status
    kind = status & 0xF0
    channel = status & 0x0F

    if kind == 0x90:
        if pos + 1 >= end:
            return UNKNOWN, pos, running_status
        note, velocity = data[pos], data[pos + 1]
        pos += 2
        if velocity == 0:
            return NoteOff(channel, note, delta_time), pos, running_status
        return NoteOn(channel, note, velocity, delta_time), pos, running_status

    if kind == 0x80:
        if pos + 1 >= end:
            return UNKNOWN, pos, running_status
        note = data[pos]
        pos += 2  # release velocity is ignored
        return NoteOff(channel, note, delta_time), pos, running_status

    if kind == 0xC0:
        if pos >= end:
            return UNKNOWN, pos, running_status
        program = data[pos]
        pos += 1
        return ProgramChange(channel, program, delta_time), pos, running_status

    if status == 0xFF:
        if pos >= end:
            return UNKNOWN, pos, running_status
        pos += 1  # meta type
        try:
            length, pos = read_vlq(data, pos)
        except UnexpectedEndOfData:
            pos = end
        else:
            pos += length
    elif status >= 0x80:
        # Coarse data-byte table: 0xC_/0xD_ class takes one byte, the rest two.
        if pos < end:
            pos += 1
            if (status & 0xE0) != 0xC0 and (status & 0xE0) != 0xD0:
                if pos < end:
                    pos += 1
    return UNKNOWN, pos, running_status


# ----------------------------------------------------------------------
# Chunks
def read_midi_header(data: bytes, pos: int = 0) -> Tuple[int, int, int, int]:
    """Read the ``MThd`` chunk and return ``(format, tracks, tpq, new_pos)``."""

    if len(data) < pos + 8 + HEADER_LENGTH:
        raise InvalidHeaderError("Invalid MIDI header: file too short")
    if data[pos:pos + 4] != HEADER_MAGIC:
        raise InvalidHeaderError("Invalid MIDI header")
    chunk_length, pos = _read_be_u32(data, pos + 4)
    if chunk_length != HEADER_LENGTH:
        raise InvalidHeaderError(
            f"Invalid MIDI header chunk length: {chunk_length} (expected {HEADER_LENGTH})"
        )
    fmt, pos = _read_be_u16(data, pos)
    track_count, pos = _read_be_u16(data, pos)
    ticks_per_quarter, pos = _read_be_u16(data, pos)
    return fmt, track_count, ticks_per_quarter, pos


def read_midi_track(data: bytes, pos: int) -> Tuple[MidiTrack, int]:
    """Read one ``MTrk`` chunk starting at ``pos``.

    The chunk length bounds the event loop.  A delta time that runs off the
    end of the buffer stops the loop and keeps the events read so far.
    """

    if pos + 4 > len(data) or data[pos:pos + 4] != TRACK_MAGIC:
        raise TrackReadError(f"Invalid MIDI track header at offset {pos}")
    if pos + 8 > len(data):
        raise TrackReadError(f"Truncated MIDI track header at offset {pos}")
    chunk_length, pos = _read_be_u32(data, pos + 4)
    end_position = pos + chunk_length

    track = MidiTrack()
    running_status = 0
    while pos < end_position and pos < len(data):
        try:
            delta_time, pos = read_vlq(data, pos)
        except UnexpectedEndOfData:
            logger.debug("Track event stream cut short at offset %d", pos)
            break
        event, pos, running_status = decode_event(data, pos, running_status, delta_time)
        if event is not UNKNOWN:
            track.events.append(event)
    return track, pos


def parse_midi(data: bytes) -> MidiFile:
    """Parse a whole Standard MIDI File held in memory."""

    fmt, track_count, ticks_per_quarter, pos = read_midi_header(data)
    tracks: List[MidiTrack] = []
    for index in range(track_count):
        try:
            track, pos = read_midi_track(data, pos)
        except TrackReadError as exc:
            logger.warning("Track %d dropped: %s", index, exc)
            continue
        logger.debug("Track %d: %d events", index, len(track.events))
        tracks.append(track)
    return MidiFile(
        format=fmt,
        track_count=track_count,
        ticks_per_quarter=ticks_per_quarter,
        tracks=tracks,
    )


def read_midi_file(path: str) -> MidiFile:
    return MidiFile.from_path(path)
