"""Tests for the command-line interface."""

import json

import numpy as np
import pytest
import soundfile as sf
from typer.testing import CliRunner

from sing2midi.cli import app
from sing2midi.core import ReconciledNote

runner = CliRunner()


@pytest.fixture
def take(tmp_path):
    """One second of a sung-like A4."""
    sr = 22050
    t = np.arange(sr) / sr
    audio = (0.5 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
    path = tmp_path / "take.wav"
    sf.write(str(path), audio, sr)
    return path


@pytest.fixture
def notes_file(tmp_path):
    notes = [
        ReconciledNote(start_time=0.0, duration=0.5, pitch_midi=60.0),
        ReconciledNote(start_time=0.5, duration=0.5, pitch_midi=62.0),
    ]
    path = tmp_path / "notes.json"
    path.write_text(json.dumps({"version": 1, "notes": [n.to_dict() for n in notes]}))
    return path


class TestTranscribeCommand:
    """Test `sing2midi transcribe`."""

    def test_transcribe(self, take, tmp_path):
        output = tmp_path / "take.mid"
        saved = tmp_path / "session.json"
        result = runner.invoke(
            app, ["transcribe", str(take), "-o", str(output), "--save-notes", str(saved)]
        )

        assert result.exit_code == 0, result.output
        assert output.exists(), "MIDI file should be written"
        assert "TidalCycles" in result.output
        assert "Strudel" in result.output
        assert 'note("' in result.output

        data = json.loads(saved.read_text())
        notes = [ReconciledNote.from_dict(item) for item in data["notes"]]
        assert notes, "Session should contain notes"

    def test_transcribe_json(self, take, tmp_path):
        result = runner.invoke(
            app, ["transcribe", str(take), "-o", str(tmp_path / "take.mid"), "--json"]
        )
        assert result.exit_code == 0, result.output
        assert '"notes_count"' in result.output
        assert '"reconcile_stats"' in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["transcribe", str(tmp_path / "missing.wav")])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_unknown_engine(self, take):
        result = runner.invoke(app, ["transcribe", str(take), "--engine", "crepe"])
        assert result.exit_code == 1
        assert "Unknown engine" in result.output


class TestLiveCommand:
    """Test `sing2midi live`."""

    def test_live(self, take, tmp_path):
        output = tmp_path / "live.mid"
        result = runner.invoke(app, ["live", str(take), "-o", str(output)])

        assert result.exit_code == 0, result.output
        assert output.exists()
        assert "a4" in result.output


class TestPatternCommand:
    """Test `sing2midi pattern`."""

    def test_step_pattern(self, notes_file):
        result = runner.invoke(app, ["pattern", str(notes_file), "--format", "step"])

        assert result.exit_code == 0, result.output
        assert 'note("c4 d4").s("piano").fast(2.00)' in result.output
        assert "once $" not in result.output
        assert "C4 D4" in result.output

    def test_both_patterns(self, notes_file):
        result = runner.invoke(app, ["pattern", str(notes_file)])

        assert result.exit_code == 0, result.output
        assert 'once $ fast 2.00 $ n (stretch "c4 d4")' in result.output
        assert 'note("c4 d4")' in result.output

    def test_unknown_format(self, notes_file):
        result = runner.invoke(app, ["pattern", str(notes_file), "--format", "midi"])
        assert result.exit_code == 1

    def test_bad_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        result = runner.invoke(app, ["pattern", str(path)])
        assert result.exit_code == 1
        assert "Not a saved notes file" in result.output


class TestInfoCommand:
    """Test `sing2midi info`."""

    def test_info(self, take):
        result = runner.invoke(app, ["info", str(take)])

        assert result.exit_code == 0, result.output
        assert "Sample rate: 22050 Hz" in result.output
        assert "Voiced frames:" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["info", str(tmp_path / "missing.wav")])
        assert result.exit_code == 1
