"""Polyphonic transcription with Spotify's Basic Pitch model (optional)."""

import logging
import os
import tempfile
from typing import List, Optional

import numpy as np
import soundfile as sf

from .base import Transcriber
from ..core import RawTranscribedNote
from ..core.constants import BASIC_PITCH_SR

logger = logging.getLogger(__name__)

# Basic Pitch reports bends in thirds of a semitone
_BEND_BINS_PER_SEMITONE = 3


class BasicPitchTranscriber(Transcriber):
    """
    Neural polyphonic transcriber backed by ``basic_pitch.inference.predict``.

    Requires the ``neural`` extra (``pip install sing2midi[neural]``).
    """

    required_sr = BASIC_PITCH_SR

    def __init__(
        self,
        onset_threshold: float = 0.5,
        frame_threshold: float = 0.3,
        min_note_length_ms: float = 58.0,
        min_freq: Optional[float] = None,
        max_freq: Optional[float] = None,
    ):
        """
        Initialize BasicPitchTranscriber.

        Args:
            onset_threshold: Minimum onset confidence (0-1)
            frame_threshold: Minimum frame confidence (0-1)
            min_note_length_ms: Minimum note length in milliseconds
            min_freq: Lowest reported frequency in Hz (None for no limit)
            max_freq: Highest reported frequency in Hz (None for no limit)
        """
        self.onset_threshold = onset_threshold
        self.frame_threshold = frame_threshold
        self.min_note_length_ms = min_note_length_ms
        self.min_freq = min_freq
        self.max_freq = max_freq

    @staticmethod
    def is_available() -> bool:
        """Whether the basic-pitch package can be imported."""
        try:
            import basic_pitch  # noqa: F401
        except ImportError:
            return False
        return True

    def transcribe(self, audio: np.ndarray, sr: int) -> List[RawTranscribedNote]:
        """
        Transcribe audio to candidate notes.

        Args:
            audio: Audio array (mono) at 22050 Hz
            sr: Sample rate

        Returns:
            Candidate notes sorted by (start, pitch); pitch bends are folded
            into a fractional pitch, confidence is the note amplitude
        """
        try:
            from basic_pitch.inference import predict
        except ImportError as e:
            raise ImportError(
                "Basic Pitch is not installed. Install with: pip install 'sing2midi[neural]'"
            ) from e

        fd, wav_path = tempfile.mkstemp(suffix=".wav")
        os.close(fd)
        try:
            sf.write(wav_path, np.asarray(audio, dtype=np.float32), sr)
            _, _, note_events = predict(
                wav_path,
                onset_threshold=self.onset_threshold,
                frame_threshold=self.frame_threshold,
                minimum_note_length=self.min_note_length_ms,
                minimum_frequency=self.min_freq,
                maximum_frequency=self.max_freq,
            )
        finally:
            os.unlink(wav_path)

        notes = []
        for start_time, end_time, midi_note, amplitude, bends in note_events:
            if end_time <= start_time:
                continue
            pitch = float(midi_note)
            if bends:
                pitch += float(np.mean(bends)) / _BEND_BINS_PER_SEMITONE
            notes.append(
                RawTranscribedNote(
                    start_time=float(start_time),
                    duration=float(end_time - start_time),
                    pitch_midi=pitch,
                    confidence=float(amplitude),
                )
            )

        notes.sort(key=lambda n: (n.start_time, n.pitch_midi))
        logger.debug("Basic Pitch produced %d candidate notes", len(notes))
        return notes
