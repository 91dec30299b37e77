"""Global constants for sing2midi."""

# Pitch names
PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
PATTERN_PITCH_NAMES = ["c", "cs", "d", "ds", "e", "f", "fs", "g", "gs", "a", "as", "b"]

# Audio processing defaults
DEFAULT_SR = 22050
BASIC_PITCH_SR = 22050
DEFAULT_FRAME_LENGTH = 2048
DEFAULT_HOP_LENGTH = 1024

# Live pitch tracking
LIVE_THRESHOLD = 0.25
LIVE_SILENCE_RMS = 0.005
LIVE_FMIN = 50.0  # Lowest sung fundamental
LIVE_FMAX = 1000.0

# Reconciliation tolerances (seconds unless noted)
SUPPORT_WINDOW = 1.0
BLEND_WEIGHT = 0.8  # Transcriber share of a blended pitch
CLOSE_PITCH_SEMITONES = 3.0
MODERATE_PITCH_SEMITONES = 6.0
MODERATE_CONFIDENCE = 0.9
MIN_NOTE_DURATION = 0.05
CLUSTER_SLACK = 0.2
DUPLICATE_GAP = 0.1
OVERLAP_GAP = 0.05
MERGE_GAP = 0.5
EXTENSION_WINDOW = 0.3
EXTENSION_TOLERANCE = 0.15  # semitones
SYNTHESIS_MIN_GAP = 0.1
SYNTHESIS_LEAD_IN = 0.5
SYNTHESIS_CLUSTER_GAP = 0.15
SYNTHESIS_MIN_DURATION = 0.1

# Pattern generation
STEPS_PER_CYCLE = 4
BEATS_PER_MEASURE = 4

# MIDI ranges
MIDI_MIN = 0
MIDI_MAX = 127
DEFAULT_TEMPO = 120.0
DEFAULT_VELOCITY = 80
