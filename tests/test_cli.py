import os
import sys
import tempfile

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from cli import build_parser, default_wav_path, main

from tests._test_utils import single_note_midi, write_config


def test_default_wav_path():
    assert default_wav_path(os.path.join("songs", "theme.mid")) == os.path.join("songs", "theme.wav")
    assert default_wav_path("noext") == "noext.wav"


def test_parser_positionals():
    args = build_parser().parse_args(["in.mid", "out.wav", "140"])
    assert (args.midi, args.wav, args.tempo) == ("in.mid", "out.wav", 140.0)
    args = build_parser().parse_args(["in.mid"])
    assert args.wav is None and args.tempo is None


def test_parser_rejects_bad_tempo():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["in.mid", "out.wav", "fast"])


def test_missing_midi_exits_with_one(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["/nonexistent/path/song.mid"])
    assert excinfo.value.code == 1
    assert "not found" in capsys.readouterr().err


def test_convert_with_default_output_name():
    with tempfile.TemporaryDirectory() as tmp:
        cfg_path = write_config(tmp)
        midi_path = os.path.join(tmp, "song.mid")
        with open(midi_path, "wb") as fh:
            fh.write(single_note_midi())
        main([midi_path, "--config", cfg_path])
        assert os.path.exists(os.path.join(tmp, "song.wav"))


def test_demo_mode_without_arguments(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        cfg_path = write_config(tmp)
        main(["--config", cfg_path])
        assert os.path.exists(os.path.join(tmp, "demo.wav"))
    assert "Demo written" in capsys.readouterr().out
