"""Build notes from live detections alone (no offline transcriber)."""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple

import numpy as np

from ..core import LiveDetection, ReconciledNote, round_midi

logger = logging.getLogger(__name__)


@dataclass
class GroupingConfig:
    """Configuration for growing notes out of live detections.

    Attributes:
        window: Max seconds since the region's last detection (default: 0.3)
        pitch_tolerance: Max semitones from the region median (default: 0.5)
        max_variance: Max pitch variance of the recent detections (default: 1.0)
        variance_history: Number of recent detections in the variance (default: 5)
        min_duration: Regions shorter than this are dropped (default: 0.15)
        merge_gap: Same-pitch notes closer than this are joined (default: 0.3)
    """

    window: float = 0.3
    pitch_tolerance: float = 0.5
    max_variance: float = 1.0
    variance_history: int = 5
    min_duration: float = 0.15
    merge_gap: float = 0.3


@dataclass
class _Region:
    start_time: float
    end_time: float
    pitches: List[float]
    confidences: List[float]

    @classmethod
    def start(cls, detection: LiveDetection) -> "_Region":
        return cls(
            start_time=detection.timestamp_sec,
            end_time=detection.timestamp_sec,
            pitches=[detection.midi],
            confidences=[detection.confidence],
        )

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


class DetectionGrouper:
    """
    Grow notes from a stream of live detections.

    A region starts at a detection and absorbs following detections while
    they stay close in time, close to the region's median pitch, and the
    recent pitches are stable. Finished regions become notes; adjacent notes
    of the same rounded pitch are then joined.
    """

    def __init__(self, config: Optional[GroupingConfig] = None):
        self.config = config or GroupingConfig()

    def group(self, detections: Iterable[LiveDetection]) -> List[ReconciledNote]:
        """
        Turn live detections into notes.

        Args:
            detections: Live detections in any order

        Returns:
            Notes sorted by start time, all flagged as synthesized
        """
        ordered = sorted(detections, key=lambda d: d.timestamp_sec)
        if not ordered:
            return []

        notes = self._join_adjacent(self._grow_regions(ordered))
        logger.debug("Grouped %d live detections into %d notes", len(ordered), len(notes))
        return notes

    def _grow_regions(self, detections: List[LiveDetection]) -> List[ReconciledNote]:
        cfg = self.config
        notes = []
        region: Optional[_Region] = None

        for detection in detections:
            if region is None:
                region = _Region.start(detection)
                continue

            midi = detection.midi
            time_since_last = detection.timestamp_sec - region.end_time
            pitch_diff = abs(midi - float(np.median(region.pitches)))
            variance = float(np.var(region.pitches[-cfg.variance_history:]))

            if (
                time_since_last < cfg.window
                and pitch_diff < cfg.pitch_tolerance
                and variance < cfg.max_variance
            ):
                region.end_time = detection.timestamp_sec
                region.pitches.append(midi)
                region.confidences.append(detection.confidence)
                continue

            notes.extend(self._finalize(region))
            region = _Region.start(detection)

        notes.extend(self._finalize(region))
        return notes

    def _finalize(self, region: _Region) -> Tuple[ReconciledNote, ...]:
        if region.duration < self.config.min_duration:
            return ()
        return (
            ReconciledNote(
                start_time=region.start_time,
                duration=region.duration,
                pitch_midi=float(np.median(region.pitches)),
                confidence=float(np.mean(region.confidences)),
                synthesized=True,
            ),
        )

    def _join_adjacent(self, notes: List[ReconciledNote]) -> List[ReconciledNote]:
        joined: List[ReconciledNote] = []
        for note in notes:
            if joined:
                last = joined[-1]
                gap = note.start_time - last.end_time
                if gap < self.config.merge_gap and note.midi_note == last.midi_note:
                    joined[-1] = replace(
                        last, duration=note.end_time - last.start_time, merged=True
                    )
                    continue
            joined.append(note)
        return joined


def group_detections(
    detections: Iterable[LiveDetection],
    config: Optional[GroupingConfig] = None,
) -> List[ReconciledNote]:
    """Build live-only notes with default grouping settings."""
    return DetectionGrouper(config).group(detections)
