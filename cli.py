import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from render import convert_midi_to_wav, generate_demo


def default_wav_path(midi_path: str) -> str:
    return str(Path(midi_path).with_suffix(".wav"))


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Render a MIDI file with console-style chip voices")
    ap.add_argument("midi", nargs="?", help="Input MIDI file (omit to render the demo)")
    ap.add_argument("wav", nargs="?", help="Output WAV file (default: input with .wav extension)")
    ap.add_argument("tempo", nargs="?", type=float, help="Tempo in BPM (default from config, 120)")
    ap.add_argument("--config", default="config.yaml", help="Path to the YAML configuration file")
    ap.add_argument("--sample-rate", type=int, help="Override audio.sample_rate")
    ap.add_argument("--workers", type=int, help="Parallel note synthesis workers")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> None:
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.midi is None:
        print(f"Usage: {ap.prog} <midi-file> [output-wav] [tempo]")
        print("Rendering demo...")
        out = generate_demo(config_path=args.config)
        print(f"Demo written to '{out}'")
        return

    if not Path(args.midi).exists():
        print(f"MIDI file '{args.midi}' not found", file=sys.stderr)
        sys.exit(1)

    wav_path = args.wav or default_wav_path(args.midi)
    report = convert_midi_to_wav(
        args.midi,
        wav_path,
        args.tempo,
        config_path=args.config,
        sample_rate=args.sample_rate,
        workers=args.workers,
    )
    print(f"WAV written to '{report['wav']}' ({report['duration_s']:.2f}s)")


if __name__ == "__main__":
    main()
