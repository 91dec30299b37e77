"""Base classes for offline transcription."""

from abc import ABC, abstractmethod
from typing import List

import librosa
import numpy as np

from ..core import RawTranscribedNote


class Transcriber(ABC):
    """Abstract base class for offline audio transcription.

    Subclasses declare the sample rate their model expects in
    ``required_sr``; ``transcribe_at`` resamples before calling them.
    """

    required_sr: int = 22050

    @abstractmethod
    def transcribe(self, audio: np.ndarray, sr: int) -> List[RawTranscribedNote]:
        """
        Transcribe audio to candidate notes.

        Args:
            audio: Mono audio array at ``required_sr``
            sr: Sample rate

        Returns:
            Candidate notes, possibly overlapping and unfiltered
        """
        pass

    def transcribe_at(self, audio: np.ndarray, sr: int) -> List[RawTranscribedNote]:
        """Resample to ``required_sr`` if needed, then transcribe."""
        if sr != self.required_sr:
            audio = librosa.resample(audio, orig_sr=sr, target_sr=self.required_sr)
            sr = self.required_sr
        return self.transcribe(audio, sr)
