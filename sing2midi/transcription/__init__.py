"""Transcription layer - Offline candidate notes from audio.

This layer converts a finished recording into raw candidate notes:
- Constant-Q multi-pitch transcription (default, no neural network)
- Basic Pitch neural transcription (optional ``neural`` extra)
"""

from .base import Transcriber
from .cqt import CQTTranscriber
from .basic_pitch import BasicPitchTranscriber

ENGINES = {
    "cqt": CQTTranscriber,
    "basic-pitch": BasicPitchTranscriber,
}


def get_transcriber(engine: str = "cqt") -> Transcriber:
    """Instantiate a transcriber by engine name."""
    if engine not in ENGINES:
        raise ValueError(f"Unknown engine '{engine}'. Choose from: {', '.join(ENGINES)}")
    return ENGINES[engine]()


__all__ = [
    "Transcriber",
    "CQTTranscriber",
    "BasicPitchTranscriber",
    "ENGINES",
    "get_transcriber",
]
