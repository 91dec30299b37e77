"""Audio loading for recorded or uploaded takes."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import librosa
import numpy as np
import soundfile as sf

from ..core.constants import DEFAULT_SR

logger = logging.getLogger(__name__)


@dataclass
class AudioInfo:
    """Header information of an audio file."""

    path: str
    duration: float
    sample_rate: int
    channels: int


class AudioLoader:
    """Loads a take as a mono float buffer at the analysis sample rate."""

    SUPPORTED_FORMATS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".webm"}

    def __init__(
        self,
        target_sr: int = DEFAULT_SR,
        normalize: bool = True,
    ):
        """
        Initialize AudioLoader.

        Args:
            target_sr: Sample rate the audio is resampled to
            normalize: Peak-normalize the audio if True
        """
        self.target_sr = target_sr
        self.normalize = normalize

    def _check_path(self, path: str) -> Path:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")
        if path.suffix.lower() not in self.SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported format: {path.suffix}. "
                f"Supported: {', '.join(sorted(self.SUPPORTED_FORMATS))}"
            )
        return path

    def load(self, path: str) -> Tuple[np.ndarray, int]:
        """
        Load an audio file as mono.

        Args:
            path: Path to audio file

        Returns:
            Tuple of (audio array, sample rate)

        Raises:
            ValueError: If file format not supported
            FileNotFoundError: If file doesn't exist
        """
        path = self._check_path(path)

        audio, sr = librosa.load(str(path), sr=self.target_sr, mono=True)
        logger.debug("Loaded %s: %.2fs at %d Hz", path.name, len(audio) / sr, sr)

        if self.normalize:
            audio = self._normalize(audio)

        return audio, sr

    def info(self, path: str) -> AudioInfo:
        """Read duration, sample rate and channel count without decoding the audio."""
        path = self._check_path(path)
        try:
            header = sf.info(str(path))
        except RuntimeError:
            # Compressed formats soundfile cannot parse
            audio, sr = librosa.load(str(path), sr=None, mono=False)
            channels = 1 if audio.ndim == 1 else audio.shape[0]
            return AudioInfo(str(path), audio.shape[-1] / sr, int(sr), channels)
        return AudioInfo(str(path), float(header.duration), int(header.samplerate), int(header.channels))

    def _normalize(self, audio: np.ndarray) -> np.ndarray:
        """Normalize audio to [-1, 1] range using peak normalization."""
        peak = np.abs(audio).max() if len(audio) else 0.0
        if peak > 0:
            audio = audio / peak
        return audio

    def get_duration(self, audio: np.ndarray, sr: Optional[int] = None) -> float:
        """Get duration in seconds."""
        sr = sr or self.target_sr
        return len(audio) / sr
