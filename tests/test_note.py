"""Tests for the note data model and pitch helpers."""

import math

import pytest

from sing2midi.core import (
    InputValidationError,
    LiveDetection,
    OriginalNote,
    RawTranscribedNote,
    ReconciledNote,
    freq_to_midi,
    midi_to_freq,
    midi_to_name,
    midi_to_pattern_name,
    round_midi,
)


class TestPitchHelpers:
    """Test frequency/MIDI conversions and naming."""

    def test_freq_to_midi(self):
        """A4 = 440 Hz = MIDI 69."""
        assert freq_to_midi(440.0) == pytest.approx(69.0)
        assert freq_to_midi(261.6256) == pytest.approx(60.0, abs=0.01)

    def test_freq_to_midi_rejects_non_positive(self):
        with pytest.raises(InputValidationError):
            freq_to_midi(0.0)

    def test_midi_to_freq(self):
        assert midi_to_freq(69) == pytest.approx(440.0)
        assert midi_to_freq(81) == pytest.approx(880.0)

    def test_round_midi_rounds_half_up(self):
        """Halves round toward +inf, not to even."""
        assert round_midi(60.5) == 61
        assert round_midi(61.5) == 62
        assert round_midi(60.49) == 60
        assert round_midi(-0.5) == 0

    def test_names(self):
        """MIDI 60 is C4; pattern names spell sharps with a trailing s."""
        assert midi_to_name(60) == "C4"
        assert midi_to_name(61) == "C#4"
        assert midi_to_name(57) == "A3"
        assert midi_to_pattern_name(60) == "c4"
        assert midi_to_pattern_name(70) == "as4"
        assert midi_to_pattern_name(11) == "b-1"


class TestLiveDetection:
    """Test LiveDetection."""

    def test_midi_and_name(self):
        detection = LiveDetection(frequency_hz=440.0, timestamp_sec=1.0)
        assert detection.midi == pytest.approx(69.0)
        assert detection.note_name == "A4"
        assert detection.confidence == 1.0

    def test_validate_rejects_nan(self):
        with pytest.raises(InputValidationError):
            LiveDetection(frequency_hz=math.nan, timestamp_sec=0.0).validate()

    def test_validate_rejects_non_positive_frequency(self):
        with pytest.raises(InputValidationError):
            LiveDetection(frequency_hz=-10.0, timestamp_sec=0.0).validate()

    def test_validate_rejects_nan_confidence(self):
        with pytest.raises(InputValidationError, match="confidence"):
            LiveDetection(frequency_hz=440.0, timestamp_sec=0.0, confidence=math.nan).validate()


class TestRawTranscribedNote:
    """Test RawTranscribedNote validation."""

    def test_end_time(self):
        note = RawTranscribedNote(start_time=1.0, duration=0.5, pitch_midi=60)
        assert note.end_time == pytest.approx(1.5)

    @pytest.mark.parametrize(
        "start, duration, pitch",
        [
            (0.0, -0.1, 60.0),
            (0.0, 0.0, 60.0),
            (-1.0, 0.5, 60.0),
            (0.0, 0.5, math.nan),
            (math.inf, 0.5, 60.0),
        ],
    )
    def test_validate_rejects_malformed(self, start, duration, pitch):
        note = RawTranscribedNote(start_time=start, duration=duration, pitch_midi=pitch)
        with pytest.raises(InputValidationError):
            note.validate()

    def test_validate_returns_self(self):
        note = RawTranscribedNote(start_time=0.0, duration=0.5, pitch_midi=60.2)
        assert note.validate() is note


class TestReconciledNote:
    """Test ReconciledNote provenance and serialization."""

    def test_flags_default_false(self):
        """Every provenance flag exists from creation."""
        note = ReconciledNote(start_time=0.0, duration=1.0, pitch_midi=60.0)
        assert not note.synthesized
        assert not note.merged
        assert not note.extended
        assert not note.smoothed

    def test_original_note_defaults_to_self(self):
        note = ReconciledNote(start_time=0.5, duration=1.0, pitch_midi=62.3)
        assert note.original_note == OriginalNote(start_time=0.5, duration=1.0, midi_note=62.3)

    def test_from_raw(self):
        raw = RawTranscribedNote(start_time=0.5, duration=0.25, pitch_midi=64.0, confidence=0.7)
        note = ReconciledNote.from_raw(raw)
        assert note.start_time == 0.5
        assert note.duration == 0.25
        assert note.confidence == 0.7
        assert note.original_note.midi_note == 64.0

    def test_derived_properties(self):
        note = ReconciledNote(start_time=1.0, duration=0.5, pitch_midi=60.6)
        assert note.end_time == pytest.approx(1.5)
        assert note.midi_note == 61
        assert note.pitch_name == "C#4"
        assert note.pitch_class == 1

    def test_dict_round_trip_keeps_original(self):
        """from_dict rebuilds the original snapshot, not a fresh one."""
        note = ReconciledNote(
            start_time=0.0,
            duration=2.0,
            pitch_midi=60.0,
            original_note=OriginalNote(start_time=0.0, duration=0.5, midi_note=60.1),
            merged=True,
        )
        restored = ReconciledNote.from_dict(note.to_dict())
        assert restored == note
        assert isinstance(restored.original_note, OriginalNote)
