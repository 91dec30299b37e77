"""sing2midi - Sung melody to MIDI and live-coding patterns.

Architecture Layers:
    1. input/         - Audio loading
    2. analysis/      - Live (per-frame) pitch tracking
    3. transcription/ - Offline candidate notes (CQT, Basic Pitch)
    4. processing/    - Reconciliation of candidates with live detections
    5. output/        - Export (TidalCycles / Strudel patterns, MIDI)
"""

__version__ = "0.3.0"

# Core types
from .core import (
    InputValidationError,
    LiveDetection,
    OriginalNote,
    RawTranscribedNote,
    ReconciledNote,
)

# Input layer
from .input import AudioLoader

# Analysis layer
from .analysis import LiveDetector, LiveDetectionLog, detect_live_pitch

# Transcription layer
from .transcription import BasicPitchTranscriber, CQTTranscriber

# Processing layer
from .processing import DetectionGrouper, Reconciler, reconcile

# Output layer
from .output import (
    MIDIExporter,
    PatternGenerator,
    count_pattern_steps,
    generate_cycle_pattern,
    generate_step_pattern,
)

__all__ = [
    # Core
    "InputValidationError",
    "LiveDetection",
    "OriginalNote",
    "RawTranscribedNote",
    "ReconciledNote",
    # Input
    "AudioLoader",
    # Analysis
    "LiveDetector",
    "LiveDetectionLog",
    "detect_live_pitch",
    # Transcription
    "BasicPitchTranscriber",
    "CQTTranscriber",
    # Processing
    "DetectionGrouper",
    "Reconciler",
    "reconcile",
    # Output
    "MIDIExporter",
    "PatternGenerator",
    "count_pattern_steps",
    "generate_cycle_pattern",
    "generate_step_pattern",
]
