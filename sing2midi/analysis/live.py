"""Live pitch tracking - per-frame YIN estimates used as corroborating evidence.

The tracker is deliberately cheap and lossy: one estimate (or none) per
frame, no smoothing across frames. Its output is never the primary pitch
source; the reconciler uses it to confirm, extend and fill in the notes of
the offline transcriber.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

import librosa
import numpy as np

from ..core import LiveDetection
from ..core.constants import (
    DEFAULT_FRAME_LENGTH,
    DEFAULT_HOP_LENGTH,
    LIVE_FMAX,
    LIVE_FMIN,
    LIVE_SILENCE_RMS,
    LIVE_THRESHOLD,
)

logger = logging.getLogger(__name__)


@dataclass
class LiveDetectorConfig:
    """Configuration for live pitch tracking.

    Attributes:
        threshold: CMNDF dip that marks a periodic lag (default: 0.25)
        silence_rms: Frames quieter than this are skipped (default: 0.005)
        fmin: Lowest accepted frequency in Hz (default: 50)
        fmax: Highest accepted frequency in Hz (default: 1000)
        frame_length: Samples per analysis frame when tracking a buffer
        hop_length: Samples between frames when tracking a buffer
    """

    threshold: float = LIVE_THRESHOLD
    silence_rms: float = LIVE_SILENCE_RMS
    fmin: float = LIVE_FMIN
    fmax: float = LIVE_FMAX
    frame_length: int = DEFAULT_FRAME_LENGTH
    hop_length: int = DEFAULT_HOP_LENGTH


def difference_function(frame: np.ndarray, max_lag: int) -> np.ndarray:
    """
    Compute d(tau) = sum_j (x[j] - x[j + tau])^2 over a window of max_lag samples.

    Args:
        frame: Audio frame, at least 2 * max_lag samples long
        max_lag: Number of lags (and window size)

    Returns:
        Difference values for lags 0 to max_lag - 1
    """
    window = frame[:max_lag]
    diff = np.zeros(max_lag)
    for tau in range(1, max_lag):
        delta = window - frame[tau:tau + max_lag]
        diff[tau] = np.dot(delta, delta)
    return diff


def cumulative_mean_normalized_difference(diff: np.ndarray) -> np.ndarray:
    """
    Normalize d(tau) by its running mean: d'(tau) = d(tau) * tau / sum_{j<=tau} d(j).

    d'(0) is 1, and lags whose running sum is still zero normalize to 1.
    """
    cmndf = np.ones(len(diff))
    running_sum = np.cumsum(diff[1:])
    taus = np.arange(1, len(diff))
    with np.errstate(divide="ignore", invalid="ignore"):
        normalized = diff[1:] * taus / running_sum
    cmndf[1:] = np.where(running_sum > 0, normalized, 1.0)
    return cmndf


def parabolic_interpolation(cmndf: np.ndarray, tau: int) -> float:
    """Refine an integer lag to sub-sample accuracy from its two neighbours."""
    if tau <= 0 or tau >= len(cmndf) - 1:
        return float(tau)

    s0, s1, s2 = cmndf[tau - 1], cmndf[tau], cmndf[tau + 1]
    denom = 2 * (2 * s1 - s2 - s0)
    if abs(denom) < 1e-12:
        return float(tau)
    return tau + (s2 - s0) / denom


class LiveDetector:
    """Monophonic frame-level pitch estimator (YIN)."""

    def __init__(self, config: Optional[LiveDetectorConfig] = None):
        self.config = config or LiveDetectorConfig()

    def detect(
        self,
        frame: np.ndarray,
        sr: int,
        timestamp: float = 0.0,
    ) -> Optional[LiveDetection]:
        """
        Estimate the fundamental of one frame.

        Args:
            frame: Mono audio samples
            sr: Sample rate
            timestamp: Time of the frame in the session, in seconds

        Returns:
            A LiveDetection, or None for silent, aperiodic or out-of-range frames
        """
        frame = np.asarray(frame, dtype=np.float64)
        max_lag = len(frame) // 2
        if max_lag < 3:
            return None

        rms = float(np.sqrt(np.mean(frame ** 2)))
        if rms < self.config.silence_rms:
            return None

        cmndf = cumulative_mean_normalized_difference(difference_function(frame, max_lag))

        tau = self._first_dip(cmndf)
        if tau is None:
            return None

        refined = parabolic_interpolation(cmndf, tau)
        if refined <= 0:
            return None

        frequency = sr / refined
        if frequency < self.config.fmin or frequency > self.config.fmax:
            return None

        return LiveDetection(
            frequency_hz=float(frequency),
            timestamp_sec=float(timestamp),
            confidence=float(1.0 - cmndf[tau]),
        )

    def _first_dip(self, cmndf: np.ndarray) -> Optional[int]:
        """First lag under threshold, walked down to its local minimum."""
        below = np.nonzero(cmndf[2:] < self.config.threshold)[0]
        if len(below) == 0:
            return None

        tau = int(below[0]) + 2
        while tau + 1 < len(cmndf) and cmndf[tau + 1] < cmndf[tau]:
            tau += 1
        return tau

    def track(self, audio: np.ndarray, sr: int) -> Iterator[LiveDetection]:
        """
        Lazily run the detector over a whole buffer.

        Frames are taken every hop_length samples; each detection is
        timestamped with its frame start.
        """
        frame_length = self.config.frame_length
        hop_length = self.config.hop_length
        audio = np.asarray(audio, dtype=np.float64)

        if len(audio) < frame_length:
            return

        frames = librosa.util.frame(audio, frame_length=frame_length, hop_length=hop_length)
        for index in range(frames.shape[1]):
            detection = self.detect(frames[:, index], sr, timestamp=index * hop_length / sr)
            if detection is not None:
                yield detection


def detect_live_pitch(
    frame_samples: np.ndarray,
    sample_rate: int,
    timestamp: float,
) -> Optional[LiveDetection]:
    """Estimate the pitch of one captured frame with default settings."""
    return LiveDetector().detect(frame_samples, sample_rate, timestamp)


class LiveDetectionLog:
    """Accumulates the detections of one recording session.

    The capture side appends while recording; at the end of the session
    ``snapshot()`` hands an immutable tuple to the reconciler.
    """

    def __init__(self, detections: Iterable[LiveDetection] = ()):
        self._detections: List[LiveDetection] = list(detections)

    def append(self, detection: Optional[LiveDetection]) -> None:
        """Record a detection; None (no estimate for the frame) is ignored."""
        if detection is not None:
            self._detections.append(detection)

    def extend(self, detections: Iterable[LiveDetection]) -> None:
        for detection in detections:
            self.append(detection)

    def snapshot(self) -> Tuple[LiveDetection, ...]:
        return tuple(self._detections)

    def clear(self) -> None:
        self._detections = []

    @property
    def duration(self) -> float:
        """Time spanned by the recorded detections."""
        if not self._detections:
            return 0.0
        times = [d.timestamp_sec for d in self._detections]
        return max(times) - min(times)

    def __len__(self) -> int:
        return len(self._detections)

    def __iter__(self) -> Iterator[LiveDetection]:
        return iter(self._detections)
