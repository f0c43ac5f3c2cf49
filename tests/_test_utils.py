import json
import os
import struct
import sys
from typing import Iterable, Tuple

_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

END_OF_TRACK = b"\x00\xFF\x2F\x00"


def vlq(value: int) -> bytes:
    out = [value & 0x7F]
    value >>= 7
    while value:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    return bytes(reversed(out))


def header_chunk(fmt: int = 0, tracks: int = 1, tpq: int = 480, length: int = 6) -> bytes:
    return b"MThd" + struct.pack(">IHHH", length, fmt, tracks, tpq)


def track_chunk(body: bytes, *, magic: bytes = b"MTrk") -> bytes:
    return magic + struct.pack(">I", len(body)) + body


def events(items: Iterable[Tuple[int, bytes]]) -> bytes:
    """Concatenate ``(delta_ticks, raw_message)`` pairs into a track body."""

    return b"".join(vlq(delta) + msg for delta, msg in items)


def single_note_midi(note: int = 69, velocity: int = 100, length_ticks: int = 480, channel: int = 0) -> bytes:
    body = events(
        [
            (0, bytes([0x90 | channel, note, velocity])),
            (length_ticks, bytes([0x80 | channel, note, 0])),
        ]
    ) + END_OF_TRACK
    return header_chunk(0, 1, 480) + track_chunk(body)


def write_config(tmp_dir: str, **overrides: dict) -> str:
    cfg = {
        "audio": {"sample_rate": 8000, "tempo_default": 120.0},
        "synth": {"note_gain": 0.7, "tail_padding_s": 1.0},
        "render": {"workers": 1},
        "demo": {"output": os.path.join(tmp_dir, "demo.wav"), "duration_s": 0.5},
        "logging": {"level": "WARNING"},
    }
    for section, values in overrides.items():
        cfg.setdefault(section, {}).update(values)
    path = os.path.join(tmp_dir, "config.json")
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(cfg, fh)
    return path
