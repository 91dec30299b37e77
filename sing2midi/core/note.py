"""Note data classes - the units passed between detection, reconciliation and output."""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import numpy as np

from .constants import PATTERN_PITCH_NAMES, PITCH_NAMES


class InputValidationError(ValueError):
    """Raised for a malformed note or detection (NaN, negative or empty span)."""


def freq_to_midi(freq: float) -> float:
    """Convert frequency (Hz) to a fractional MIDI pitch."""
    if freq <= 0:
        raise InputValidationError(f"Frequency must be positive, got {freq}")
    return float(69 + 12 * np.log2(freq / 440.0))


def midi_to_freq(midi: float) -> float:
    """Convert MIDI pitch to frequency (Hz)."""
    return 440.0 * (2 ** ((midi - 69) / 12.0))


def round_midi(midi: float) -> int:
    """Round a fractional pitch to the nearest semitone, halves rounding up."""
    return int(math.floor(midi + 0.5))


def midi_to_name(midi: float) -> str:
    """Get note name (e.g., 'C4', 'A#3'). MIDI 60 is C4."""
    pitch = round_midi(midi)
    octave = (pitch // 12) - 1
    return f"{PITCH_NAMES[pitch % 12]}{octave}"


def midi_to_pattern_name(midi: float) -> str:
    """Get pattern-language note name (e.g., 'c4', 'as3')."""
    pitch = round_midi(midi)
    octave = (pitch // 12) - 1
    return f"{PATTERN_PITCH_NAMES[pitch % 12]}{octave}"


def _require_finite(**values: float) -> None:
    for name, value in values.items():
        if value is None or not math.isfinite(value):
            raise InputValidationError(f"{name} must be finite, got {value}")


@dataclass(frozen=True)
class LiveDetection:
    """A single-frame pitch estimate from the live tracker."""

    frequency_hz: float
    timestamp_sec: float
    confidence: float = 1.0

    @property
    def midi(self) -> float:
        """Fractional MIDI pitch of the detection."""
        return freq_to_midi(self.frequency_hz)

    @property
    def note_name(self) -> str:
        return midi_to_name(self.midi)

    def validate(self) -> "LiveDetection":
        _require_finite(
            frequency_hz=self.frequency_hz,
            timestamp_sec=self.timestamp_sec,
            confidence=self.confidence,
        )
        if self.frequency_hz <= 0:
            raise InputValidationError(f"frequency_hz must be positive, got {self.frequency_hz}")
        return self


@dataclass
class RawTranscribedNote:
    """A candidate note as emitted by the offline transcriber."""

    start_time: float  # seconds
    duration: float  # seconds
    pitch_midi: float  # fractional MIDI pitch
    confidence: float = 1.0

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def validate(self) -> "RawTranscribedNote":
        """Return self, or raise InputValidationError for unusable values."""
        _require_finite(
            start_time=self.start_time,
            duration=self.duration,
            pitch_midi=self.pitch_midi,
        )
        if self.start_time < 0:
            raise InputValidationError(f"start_time must be >= 0, got {self.start_time}")
        if self.duration <= 0:
            raise InputValidationError(f"duration must be > 0, got {self.duration}")
        return self


@dataclass(frozen=True)
class OriginalNote:
    """Snapshot of a note before reconciliation touched it."""

    start_time: float
    duration: float
    midi_note: float

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


@dataclass
class ReconciledNote:
    """A note in the final sequence, with its provenance.

    ``original_note`` is set once when the note is first derived and is
    carried unchanged through merges and extensions.
    """

    start_time: float
    duration: float
    pitch_midi: float
    confidence: float = 1.0
    original_note: Optional[OriginalNote] = None
    synthesized: bool = False
    merged: bool = False
    extended: bool = False
    smoothed: bool = False

    def __post_init__(self):
        if self.original_note is None:
            self.original_note = OriginalNote(
                start_time=self.start_time,
                duration=self.duration,
                midi_note=self.pitch_midi,
            )

    @classmethod
    def from_raw(cls, raw: RawTranscribedNote) -> "ReconciledNote":
        return cls(
            start_time=raw.start_time,
            duration=raw.duration,
            pitch_midi=raw.pitch_midi,
            confidence=raw.confidence,
        )

    @property
    def end_time(self) -> float:
        """Note end in seconds."""
        return self.start_time + self.duration

    @property
    def midi_note(self) -> int:
        """Rounded MIDI pitch."""
        return round_midi(self.pitch_midi)

    @property
    def original_midi(self) -> float:
        return self.original_note.midi_note

    @property
    def pitch_name(self) -> str:
        """Get note name (e.g., 'C4', 'A#3')."""
        return midi_to_name(self.pitch_midi)

    @property
    def pitch_class(self) -> int:
        """Get pitch class (0-11, where 0=C)."""
        return self.midi_note % 12

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReconciledNote":
        fields = dict(data)
        original = fields.pop("original_note", None)
        if original is not None:
            fields["original_note"] = OriginalNote(**original)
        return cls(**fields)
