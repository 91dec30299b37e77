"""Tests for offline transcribers and audio loading."""

import sys
from typing import List

import numpy as np
import pytest
import soundfile as sf

from sing2midi.core import RawTranscribedNote
from sing2midi.input import AudioLoader
from sing2midi.transcription import (
    BasicPitchTranscriber,
    CQTTranscriber,
    Transcriber,
    get_transcriber,
)


def sine(freq, sr=22050, seconds=1.0, amplitude=0.5):
    t = np.arange(int(sr * seconds)) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


class RecordingTranscriber(Transcriber):
    required_sr = 16000

    def __init__(self):
        self.calls = []

    def transcribe(self, audio: np.ndarray, sr: int) -> List[RawTranscribedNote]:
        self.calls.append((len(audio), sr))
        return []


class TestTranscriberBase:
    """Test the Transcriber interface."""

    def test_transcribe_at_resamples(self):
        transcriber = RecordingTranscriber()
        transcriber.transcribe_at(sine(440.0, sr=32000), 32000)

        length, sr = transcriber.calls[0]
        assert sr == 16000
        assert length == pytest.approx(16000, abs=2)

    def test_transcribe_at_keeps_matching_rate(self):
        transcriber = RecordingTranscriber()
        transcriber.transcribe_at(sine(440.0, sr=16000), 16000)
        assert transcriber.calls == [(16000, 16000)]

    def test_get_transcriber(self):
        assert isinstance(get_transcriber("cqt"), CQTTranscriber)
        assert isinstance(get_transcriber("basic-pitch"), BasicPitchTranscriber)
        with pytest.raises(ValueError, match="Unknown engine"):
            get_transcriber("crepe")


class TestCQTTranscriber:
    """Test CQTTranscriber."""

    def test_silence(self):
        assert CQTTranscriber().transcribe(np.zeros(22050, dtype=np.float32), 22050) == []

    def test_empty_audio(self):
        assert CQTTranscriber().transcribe(np.zeros(0, dtype=np.float32), 22050) == []

    def test_notes_well_formed(self):
        """Whatever the candidates are, they are valid raw notes in time order."""
        notes = CQTTranscriber().transcribe(sine(440.0), 22050)

        for note in notes:
            assert isinstance(note, RawTranscribedNote)
            note.validate()
            assert 36 <= note.pitch_midi < 96
            assert 0.0 <= note.confidence <= 1.0
        starts = [n.start_time for n in notes]
        assert starts == sorted(starts)

    def test_merge_duplicate_notes(self):
        notes = [
            RawTranscribedNote(0.0, 0.5, 60.0, 0.4),
            RawTranscribedNote(0.52, 0.5, 60.0, 0.8),
            RawTranscribedNote(0.0, 0.5, 64.0, 0.5),
        ]
        merged = CQTTranscriber()._merge_duplicate_notes(notes)

        by_pitch = {n.pitch_midi: n for n in merged}
        assert len(merged) == 2
        assert by_pitch[60.0].end_time == pytest.approx(1.02)
        assert by_pitch[60.0].confidence == 0.8


class TestBasicPitchTranscriber:
    """Test BasicPitchTranscriber without the model."""

    def test_missing_dependency_hint(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "basic_pitch", None)
        monkeypatch.setitem(sys.modules, "basic_pitch.inference", None)

        assert not BasicPitchTranscriber.is_available()
        with pytest.raises(ImportError, match="pip install"):
            BasicPitchTranscriber().transcribe(sine(440.0), 22050)

    def test_required_sample_rate(self):
        assert BasicPitchTranscriber.required_sr == 22050


class TestAudioLoader:
    """Test AudioLoader."""

    def test_load_wav(self, tmp_path):
        path = tmp_path / "take.wav"
        sf.write(str(path), sine(220.0, sr=44100, amplitude=0.25), 44100)

        loader = AudioLoader()
        audio, sr = loader.load(str(path))

        assert sr == 22050
        assert loader.get_duration(audio, sr) == pytest.approx(1.0, abs=0.01)
        assert np.abs(audio).max() == pytest.approx(1.0, abs=1e-3), "Audio should be peak-normalized"

    def test_info(self, tmp_path):
        path = tmp_path / "take.wav"
        sf.write(str(path), sine(220.0, sr=44100), 44100)

        info = AudioLoader().info(str(path))
        assert info.sample_rate == 44100
        assert info.channels == 1
        assert info.duration == pytest.approx(1.0, abs=0.01)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AudioLoader().load(str(tmp_path / "missing.wav"))

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("not audio")
        with pytest.raises(ValueError, match="Unsupported format"):
            AudioLoader().load(str(path))

    def test_normalize_silence(self):
        silence = np.zeros(100, dtype=np.float32)
        assert np.all(AudioLoader()._normalize(silence) == 0)
