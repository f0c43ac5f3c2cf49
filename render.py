"""End-to-end MIDI → chiptune WAV rendering.

Stages: parse MIDI bytes, pair notes, synthesise one buffer per note, average
them, quantise to 16-bit PCM and write a WAV file.  Settings come from a small
YAML-like configuration file merged over built-in defaults.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple
import copy
import json
import logging
import os
import warnings

import numpy as np

from chip_oscillators import DutyCycle, generate_square_wave, generate_triangle_wave
from midi_reader import MidiFile
from mixer_engine import MixerEngine, mix_waveforms, note_to_waveform
from note_assembler import Note, events_to_notes
from wav_writer import write_wave_file

CONFIG_CACHE: Dict[str, Dict[str, Any]] = {}

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "audio": {
        "sample_rate": 44100,
        "tempo_default": 120.0,
    },
    "synth": {
        "note_gain": 0.7,
        "tail_padding_s": 1.0,
    },
    "render": {
        "workers": 1,
    },
    "demo": {
        "output": "demo_nes_sound.wav",
        "duration_s": 2.0,
    },
    "logging": {
        "level": "INFO",
    },
}


class NoNotesFoundError(RuntimeError):
    """The MIDI file contained no playable notes."""


# ---------------------------------------------------------------- config --
def _parse_scalar(value: str) -> Any:
    token = value.strip()
    if not token or token.lower() in {"null", "~"}:
        return None
    lowered = token.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":
        return token[1:-1]
    try:
        if any(ch in token for ch in (".", "e", "E")):
            return float(token)
        return int(token)
    except ValueError:
        return token


def _load_yaml_like(text: str) -> Any:
    """Parse JSON, or an indentation-based mapping of scalars."""

    stripped = text.strip()
    if not stripped:
        return {}
    try:
        return json.loads(stripped)
    except ValueError:
        pass

    root: Dict[str, Any] = {}
    stack: List[Tuple[int, Dict[str, Any]]] = [(-1, root)]
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].rstrip()
        if not line.strip():
            continue
        indent = len(line) - len(line.lstrip(" "))
        key, sep, raw_val = line.strip().partition(":")
        if not sep:
            raise ValueError(f"invalid config line: {line.strip()}")
        while len(stack) > 1 and indent <= stack[-1][0]:
            stack.pop()
        parent = stack[-1][1]
        key = key.strip().strip("\"'")
        if raw_val.strip():
            parent[key] = _parse_scalar(raw_val)
        else:
            child: Dict[str, Any] = {}
            parent[key] = child
            stack.append((indent, child))
    return root


def load_config_safe(path: str = "config.yaml", *, use_cache: bool = True) -> Dict[str, Any]:
    """Load the configuration, injecting defaults and caching the result."""

    abs_path = os.path.abspath(path)
    if use_cache and abs_path in CONFIG_CACHE:
        return copy.deepcopy(CONFIG_CACHE[abs_path])

    try:
        with open(abs_path, "r", encoding="utf-8") as f:
            cfg_raw = _load_yaml_like(f.read()) or {}
    except FileNotFoundError:
        warnings.warn(f"Configuration file '{path}' not found, using defaults.")
        cfg_raw = {}

    if not isinstance(cfg_raw, dict):
        warnings.warn("Configuration must be a mapping, using defaults.")
        cfg_raw = {}

    cfg: Dict[str, Any] = copy.deepcopy(cfg_raw)
    for key, defaults in _DEFAULT_CONFIG.items():
        section = cfg.get(key)
        if not isinstance(section, dict):
            if key in cfg:
                warnings.warn(f"Section '{key}' is invalid, using defaults.")
            cfg[key] = copy.deepcopy(defaults)
            continue
        for sub_key, default_value in defaults.items():
            section.setdefault(sub_key, default_value)

    CONFIG_CACHE[abs_path] = copy.deepcopy(cfg)
    return copy.deepcopy(cfg)


def _setup_logging(cfg: Dict[str, Any]) -> None:
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        level_name = str(cfg.get("logging", {}).get("level", "INFO")).upper()
        level = getattr(logging, level_name, logging.INFO)
        logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


# ------------------------------------------------------------- synthesis --
def render_waveforms(
    notes: Sequence[Note],
    sample_rate: int,
    total_duration: float,
    *,
    note_gain: float = 0.7,
    workers: int = 1,
) -> Iterator[np.ndarray]:
    """Yield one piece-length buffer per note, in note order.

    With ``workers > 1`` buffers are computed on a thread pool; ``map`` keeps
    the output order so the mix does not depend on scheduling.
    """

    def _render(note: Note) -> np.ndarray:
        return note_to_waveform(note, sample_rate, total_duration, note_gain=note_gain)

    if workers <= 1 or len(notes) <= 1:
        for note in notes:
            yield _render(note)
        return

    batch = workers * 2
    with ThreadPoolExecutor(max_workers=workers) as pool:
        for i in range(0, len(notes), batch):
            yield from pool.map(_render, notes[i:i + batch])


def render_notes(
    notes: Sequence[Note],
    cfg: Optional[Dict[str, Any]] = None,
    *,
    workers: Optional[int] = None,
) -> np.ndarray:
    """Mix ``notes`` into a single float buffer using ``cfg`` settings."""

    cfg = cfg if cfg is not None else copy.deepcopy(_DEFAULT_CONFIG)
    mixer = MixerEngine(cfg)
    if workers is None:
        workers = int(cfg.get("render", {}).get("workers", 1))
    total_duration = mixer.total_duration(notes)
    logger.info("Total duration: %.2f s", total_duration)
    logger.info("Generating waveforms for %d notes...", len(notes))
    buffers = render_waveforms(
        notes,
        mixer.sample_rate,
        total_duration,
        note_gain=mixer.note_gain,
        workers=workers,
    )
    return mixer.render_mix(buffers)


def convert_midi_file(midi_file: MidiFile, tempo: float, cfg: Optional[Dict[str, Any]] = None) -> np.ndarray:
    notes = events_to_notes(midi_file, tempo)
    logger.info("%d notes detected", len(notes))
    if not notes:
        raise NoNotesFoundError("No notes found in MIDI file")
    return render_notes(notes, cfg)


def convert_midi_to_wav(
    midi_path: str,
    wav_path: str,
    tempo: Optional[float] = None,
    *,
    config_path: str = "config.yaml",
    sample_rate: Optional[int] = None,
    workers: Optional[int] = None,
) -> Dict[str, Any]:
    """Render ``midi_path`` to ``wav_path`` and return a small report."""

    cfg = load_config_safe(config_path)
    _setup_logging(cfg)
    if sample_rate is not None:
        cfg["audio"]["sample_rate"] = int(sample_rate)
    if workers is not None:
        cfg["render"]["workers"] = int(workers)
    if tempo is None:
        tempo = float(cfg["audio"]["tempo_default"])

    midi_file = MidiFile.from_path(midi_path)
    logger.info(
        "MIDI file loaded: format %d, %d tracks, %d ticks/quarter",
        midi_file.format,
        midi_file.track_count,
        midi_file.ticks_per_quarter,
    )
    mixed = convert_midi_file(midi_file, float(tempo), cfg)
    sr = int(cfg["audio"]["sample_rate"])
    samples = write_wave_file(wav_path, mixed, sr)
    return {
        "midi": midi_path,
        "wav": wav_path,
        "tempo": float(tempo),
        "sample_rate": sr,
        "samples": samples,
        "duration_s": samples / float(sr),
    }


# ------------------------------------------------------------------ demo --
def generate_demo(
    wav_path: Optional[str] = None,
    *,
    config_path: str = "config.yaml",
) -> str:
    """Write a short three-voice demo: two pulse voices over a triangle bass."""

    cfg = load_config_safe(config_path)
    _setup_logging(cfg)
    sr = int(cfg["audio"]["sample_rate"])
    duration = float(cfg["demo"]["duration_s"])
    wav_path = wav_path or str(cfg["demo"]["output"])

    square1 = generate_square_wave(440.0, DutyCycle.DUTY_50, sr, duration) * 0.3
    square2 = generate_square_wave(330.0, DutyCycle.DUTY_25, sr, duration) * 0.25
    triangle = generate_triangle_wave(110.0, sr, duration) * 0.4

    mixed = mix_waveforms([square1, square2, triangle])
    write_wave_file(wav_path, mixed, sr)
    return wav_path
