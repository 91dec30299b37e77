"""Constant-Q multi-pitch transcription (no neural network required)."""

import logging
from typing import Dict, List

import librosa
import numpy as np
from scipy.signal import find_peaks

from .base import Transcriber
from ..core import RawTranscribedNote
from ..core.constants import DEFAULT_SR

logger = logging.getLogger(__name__)


class CQTTranscriber(Transcriber):
    """
    Onset-segmented constant-Q transcriber.

    Splits the recording at spectral-flux onsets and reports the CQT peaks
    of each segment as candidate notes. Its output is noisy on purpose
    (extra harmonics, overlapping candidates); the reconciler sorts that out
    against live detections.
    """

    required_sr = DEFAULT_SR

    def __init__(
        self,
        min_note_duration: float = 0.05,
        min_peak_energy: float = 0.15,
        min_rms_threshold: float = 0.01,
        max_notes_per_segment: int = 4,
        hop_length: int = 512,
    ):
        """
        Initialize CQTTranscriber.

        Args:
            min_note_duration: Minimum segment duration in seconds
            min_peak_energy: Minimum normalized CQT energy (0-1) of a note
            min_rms_threshold: Segments quieter than this are skipped
            max_notes_per_segment: Maximum candidates per segment
            hop_length: CQT hop in samples
        """
        self.min_note_duration = min_note_duration
        self.min_peak_energy = min_peak_energy
        self.min_rms_threshold = min_rms_threshold
        self.max_notes_per_segment = max_notes_per_segment
        self.hop_length = hop_length

    def transcribe(self, audio: np.ndarray, sr: int) -> List[RawTranscribedNote]:
        """
        Transcribe audio to candidate notes.

        Args:
            audio: Audio array (mono)
            sr: Sample rate

        Returns:
            Candidate notes sorted by (start, pitch); confidence is the
            normalized CQT energy of the pitch in its segment
        """
        audio = np.asarray(audio, dtype=np.float32)
        if len(audio) == 0 or float(np.max(np.abs(audio))) < self.min_rms_threshold:
            return []

        hop_length = self.hop_length
        midi_base = 36  # C2
        n_bins = 60  # C2-C7

        C = np.abs(librosa.cqt(
            audio,
            sr=sr,
            hop_length=hop_length,
            n_bins=n_bins,
            bins_per_octave=12,
            fmin=librosa.midi_to_hz(midi_base),
        ))

        C_db = librosa.amplitude_to_db(C, ref=np.max)
        C_norm = (C_db - C_db.min()) / (C_db.max() - C_db.min() + 1e-8)

        onsets = self._detect_onsets(C_norm, sr, len(audio) / sr)

        notes = []
        for onset_time, offset_time in zip(onsets[:-1], onsets[1:]):
            if (offset_time - onset_time) < self.min_note_duration:
                continue

            if self._get_segment_rms(audio, sr, onset_time, offset_time) < self.min_rms_threshold:
                continue

            start_frame = int(onset_time * sr / hop_length)
            end_frame = min(int(offset_time * sr / hop_length), C.shape[1])
            if start_frame >= end_frame:
                continue

            segment_energy = np.mean(C_norm[:, start_frame:end_frame], axis=1)
            for bin_idx in self._active_bins(segment_energy):
                notes.append(
                    RawTranscribedNote(
                        start_time=float(onset_time),
                        duration=float(offset_time - onset_time),
                        pitch_midi=float(midi_base + bin_idx),
                        confidence=float(segment_energy[bin_idx]),
                    )
                )

        notes = self._merge_duplicate_notes(notes)
        notes.sort(key=lambda n: (n.start_time, n.pitch_midi))
        logger.debug("CQT transcription produced %d candidate notes", len(notes))
        return notes

    def _detect_onsets(self, C_norm: np.ndarray, sr: int, duration: float) -> np.ndarray:
        """Segment boundaries: 0, spectral-flux peaks, end of audio."""
        flux = np.zeros(C_norm.shape[1])
        flux[1:] = np.sum(np.maximum(np.diff(C_norm, axis=1), 0), axis=0)

        threshold = np.mean(flux) + 1.5 * np.std(flux)
        peaks, _ = find_peaks(
            flux,
            height=threshold,
            distance=max(1, int(0.1 * sr / self.hop_length)),
        )

        times = librosa.frames_to_time(peaks, sr=sr, hop_length=self.hop_length)
        return np.unique(np.concatenate([[0.0], times, [duration]]))

    def _active_bins(self, segment_energy: np.ndarray) -> np.ndarray:
        max_energy = float(np.max(segment_energy))
        if max_energy < self.min_peak_energy:
            return np.array([], dtype=int)

        # High flatness means noise
        if self._compute_spectral_flatness(segment_energy) > 0.8:
            return np.array([], dtype=int)

        peaks, _ = find_peaks(
            segment_energy,
            height=max(max_energy * 0.4, self.min_peak_energy),
            distance=2,
            prominence=0.08,
        )
        if len(peaks) == 0:
            peaks = np.where(segment_energy > max_energy * 0.6)[0]

        if len(peaks) > self.max_notes_per_segment:
            strongest = np.argsort(segment_energy[peaks])[-self.max_notes_per_segment:]
            peaks = np.sort(peaks[strongest])

        return peaks[segment_energy[peaks] >= self.min_peak_energy]

    def _get_segment_rms(
        self,
        audio: np.ndarray,
        sr: int,
        start_time: float,
        end_time: float,
    ) -> float:
        """Calculate RMS energy for an audio segment."""
        segment = audio[int(start_time * sr):int(end_time * sr)]
        if len(segment) == 0:
            return 0.0
        return float(np.sqrt(np.mean(segment ** 2)))

    def _compute_spectral_flatness(self, spectrum: np.ndarray) -> float:
        """Geometric over arithmetic mean: 0 is tonal, 1 is noise-like."""
        spectrum = np.maximum(spectrum, 1e-10)
        arithmetic_mean = np.mean(spectrum)
        if arithmetic_mean == 0:
            return 1.0
        flatness = np.exp(np.mean(np.log(spectrum))) / arithmetic_mean
        return float(np.clip(flatness, 0.0, 1.0))

    def _merge_duplicate_notes(self, notes: List[RawTranscribedNote]) -> List[RawTranscribedNote]:
        """Join same-pitch candidates of adjacent segments."""
        by_pitch: Dict[float, List[RawTranscribedNote]] = {}
        for note in notes:
            by_pitch.setdefault(note.pitch_midi, []).append(note)

        merged = []
        for group in by_pitch.values():
            group.sort(key=lambda n: n.start_time)
            current = group[0]
            for nxt in group[1:]:
                if nxt.start_time <= current.end_time + 0.05:
                    current = RawTranscribedNote(
                        start_time=current.start_time,
                        duration=max(current.end_time, nxt.end_time) - current.start_time,
                        pitch_midi=current.pitch_midi,
                        confidence=max(current.confidence, nxt.confidence),
                    )
                else:
                    merged.append(current)
                    current = nxt
            merged.append(current)

        return merged
