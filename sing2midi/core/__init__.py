"""Core types and constants for sing2midi."""

from .note import (
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
from .constants import (
    PITCH_NAMES,
    PATTERN_PITCH_NAMES,
    DEFAULT_SR,
    DEFAULT_TEMPO,
)

__all__ = [
    "InputValidationError",
    "LiveDetection",
    "OriginalNote",
    "RawTranscribedNote",
    "ReconciledNote",
    "freq_to_midi",
    "midi_to_freq",
    "midi_to_name",
    "midi_to_pattern_name",
    "round_midi",
    "PITCH_NAMES",
    "PATTERN_PITCH_NAMES",
    "DEFAULT_SR",
    "DEFAULT_TEMPO",
]
