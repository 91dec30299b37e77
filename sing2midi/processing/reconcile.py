"""Note reconciliation - Fuse transcriber notes with live pitch detections.

The offline transcriber is accurate but produces spurious notes, octave
slips and fragmented sustains; the live tracker is noisy but hears what
was actually sung. Reconciliation runs five stages, strictly in order:

A. Pitch-supported filtering (drop unsupported notes, blend close pitches)
B. Overlap deduplication (one note per overlap cluster)
C. Consecutive merge (join fragments of one sung note, resolve overlaps)
D. Edge extension (stretch notes over matching live detections, inline in C)
E. Synthesis (build notes from live detections in the remaining gaps)

Each stage is a method that takes the previous stage's notes and the
unchanging tuple of live detections and returns a new list.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core import (
    InputValidationError,
    LiveDetection,
    RawTranscribedNote,
    ReconciledNote,
    freq_to_midi,
    round_midi,
)
from ..core import constants as C

logger = logging.getLogger(__name__)


@dataclass
class ReconcileConfig:
    """Configuration for note reconciliation.

    Attributes:
        support_window: Seconds around a note searched for live support (default: 1.0)
        blend_weight: Transcriber share when blending close pitches (default: 0.8)
        close_pitch: Below this many semitones pitches are blended (default: 3)
        moderate_pitch: Below this many semitones the note is marked uncertain (default: 6)
        moderate_confidence: Confidence given to moderately mismatched notes (default: 0.9)
        min_duration: Notes shorter than this are dropped after filtering (default: 0.05)
        cluster_slack: Notes starting before end + slack join an overlap cluster (default: 0.2)
        duplicate_gap: Same-pitch follower closer than this is a duplicate (default: 0.1)
        overlap_gap: Gaps under this count as overlap when merging (default: 0.05)
        merge_gap: Same-pitch notes closer than this are merged (default: 0.5)
        extension_window: Seconds before/after a note searched for extension (default: 0.3)
        extension_tolerance: Max semitone distance of an extending detection (default: 0.15)
        synthesis_min_gap: Smallest gap searched for missing notes (default: 0.1)
        synthesis_lead_in: A leading gap is searched when the first note starts later (default: 0.5)
        synthesis_cluster_gap: Max time between detections of one cluster (default: 0.15)
        synthesis_cluster_pitch: Max semitone distance from the cluster average (default: 1)
        synthesis_min_duration: Minimum duration of a synthesized note (default: 0.1)
        smooth_contour: Nudge interior pitch outliers toward their neighbours (default: False)
    """

    support_window: float = C.SUPPORT_WINDOW
    blend_weight: float = C.BLEND_WEIGHT
    close_pitch: float = C.CLOSE_PITCH_SEMITONES
    moderate_pitch: float = C.MODERATE_PITCH_SEMITONES
    moderate_confidence: float = C.MODERATE_CONFIDENCE
    min_duration: float = C.MIN_NOTE_DURATION
    cluster_slack: float = C.CLUSTER_SLACK
    duplicate_gap: float = C.DUPLICATE_GAP
    overlap_gap: float = C.OVERLAP_GAP
    merge_gap: float = C.MERGE_GAP
    extension_window: float = C.EXTENSION_WINDOW
    extension_tolerance: float = C.EXTENSION_TOLERANCE
    synthesis_min_gap: float = C.SYNTHESIS_MIN_GAP
    synthesis_lead_in: float = C.SYNTHESIS_LEAD_IN
    synthesis_cluster_gap: float = C.SYNTHESIS_CLUSTER_GAP
    synthesis_cluster_pitch: int = 1
    synthesis_min_duration: float = C.SYNTHESIS_MIN_DURATION
    smooth_contour: bool = False


@dataclass
class ReconcileStats:
    """Statistics from a reconciliation run."""

    original_count: int = 0
    final_count: int = 0
    invalid_notes: int = 0
    invalid_detections: int = 0
    removed_unsupported: int = 0
    removed_short: int = 0
    removed_duplicates: int = 0
    smoothed_notes: int = 0
    merged_notes: int = 0
    replaced_notes: int = 0
    extended_notes: int = 0
    synthesized_notes: int = 0

    @property
    def total_removed(self) -> int:
        """Transcriber notes that did not survive (merges included)."""
        return self.original_count - (self.final_count - self.synthesized_notes)


class Reconciler:
    """Reconcile offline transcriber notes with live pitch detections."""

    def __init__(self, config: Optional[ReconcileConfig] = None):
        self.config = config or ReconcileConfig()

    def reconcile(
        self,
        raw_notes: Sequence[RawTranscribedNote],
        live_detections: Optional[Iterable[LiveDetection]] = None,
        return_stats: bool = False,
    ) -> List[ReconciledNote] | Tuple[List[ReconciledNote], ReconcileStats]:
        """Run all reconciliation stages.

        Args:
            raw_notes: Candidate notes from the offline transcriber
            live_detections: Live detections of the same session (may be empty)
            return_stats: Whether to return reconciliation statistics

        Returns:
            Reconciled notes sorted by start time, optionally with statistics
        """
        raw_notes = list(raw_notes)
        stats = ReconcileStats(original_count=len(raw_notes))

        valid = self.validate_notes(raw_notes)
        stats.invalid_notes = len(raw_notes) - len(valid)

        incoming = list(live_detections or ())
        live = self.validate_detections(incoming)
        stats.invalid_detections = len(incoming) - len(live)

        # Stage A
        notes = self.filter_by_live_support(valid, live)
        stats.removed_unsupported = len(valid) - len(notes)
        stats.smoothed_notes = sum(1 for n in notes if n.smoothed)

        count_before = len(notes)
        notes = self.drop_short(notes)
        stats.removed_short = count_before - len(notes)

        # Stage B
        count_before = len(notes)
        notes = self.remove_duplicates(notes, live)
        stats.removed_duplicates = count_before - len(notes)

        if self.config.smooth_contour:
            notes = self.smooth_contour(notes)

        # Stages C and D
        count_before = len(notes)
        notes, stats.replaced_notes = self._merge_consecutive(notes, live)
        stats.merged_notes = count_before - len(notes) - stats.replaced_notes
        stats.extended_notes = sum(1 for n in notes if n.extended)

        # Stage E
        notes = self.synthesize_missing(notes, live)
        stats.synthesized_notes = sum(1 for n in notes if n.synthesized)

        stats.final_count = len(notes)
        logger.debug(
            "Reconciled %d raw notes and %d live detections into %d notes",
            stats.original_count, len(live), stats.final_count,
        )

        if return_stats:
            return notes, stats
        return notes

    def validate_notes(self, notes: Iterable[RawTranscribedNote]) -> List[RawTranscribedNote]:
        """Skip notes with NaN, negative or empty spans."""
        valid = []
        for note in notes:
            try:
                valid.append(note.validate())
            except InputValidationError as e:
                logger.warning("Skipping malformed note %r: %s", note, e)
        return valid

    def validate_detections(self, detections: Iterable[LiveDetection]) -> Tuple[LiveDetection, ...]:
        """Skip detections with non-finite or non-positive values."""
        valid = []
        for detection in detections:
            try:
                detection.validate()
            except InputValidationError as e:
                logger.warning("Skipping malformed live detection %r: %s", detection, e)
                continue
            if detection.timestamp_sec < 0:
                logger.warning("Skipping live detection with negative timestamp %r", detection)
                continue
            valid.append(detection)
        return tuple(valid)

    def filter_by_live_support(
        self,
        notes: Sequence[RawTranscribedNote],
        live: Sequence[LiveDetection],
    ) -> List[ReconciledNote]:
        """Stage A: keep notes that live detections corroborate.

        A note with no detections within ``support_window`` of its span is
        dropped. Otherwise its pitch is compared with the mean live pitch:
        close pitches are blended, moderate mismatches keep the transcriber
        pitch at reduced confidence, large ones (octave slips) are kept as is.
        Without any live detections every note passes through.
        """
        cfg = self.config
        result = []

        for raw in notes:
            note = ReconciledNote.from_raw(raw)
            if not live:
                result.append(note)
                continue

            window_start = raw.start_time - cfg.support_window
            window_end = raw.end_time + cfg.support_window
            nearby = [d for d in live if window_start <= d.timestamp_sec <= window_end]

            if not nearby:
                logger.debug(
                    "Dropping unsupported note %s at %.2fs (%.0f ms)",
                    note.pitch_name, raw.start_time, raw.duration * 1000,
                )
                continue

            avg_freq = sum(d.frequency_hz for d in nearby) / len(nearby)
            avg_midi = freq_to_midi(avg_freq)
            midi_diff = abs(raw.pitch_midi - avg_midi)

            if midi_diff < cfg.close_pitch:
                blended = raw.pitch_midi * cfg.blend_weight + avg_midi * (1 - cfg.blend_weight)
                note = replace(note, pitch_midi=blended, smoothed=True)
            elif midi_diff < cfg.moderate_pitch:
                note = replace(note, confidence=cfg.moderate_confidence)

            result.append(note)

        return result

    def drop_short(self, notes: Sequence[ReconciledNote]) -> List[ReconciledNote]:
        """Remove notes shorter than min_duration."""
        return [n for n in notes if n.duration >= self.config.min_duration]

    def remove_duplicates(
        self,
        notes: Sequence[ReconciledNote],
        live: Sequence[LiveDetection],
    ) -> List[ReconciledNote]:
        """Stage B: keep one note per overlap cluster.

        A cluster is a note plus every following note that starts before
        its end plus ``cluster_slack``. A lone note is dropped when it
        repeats the previous kept pitch less than ``duplicate_gap`` later.
        From a larger cluster one note survives: the one closest in pitch to
        the previous kept note, or the longest when there is none.
        """
        sorted_notes = sorted(notes, key=lambda n: n.start_time)
        result: List[ReconciledNote] = []
        prev: Optional[ReconciledNote] = None

        i = 0
        while i < len(sorted_notes):
            current = sorted_notes[i]
            cluster_end = current.end_time + self.config.cluster_slack

            j = i + 1
            while j < len(sorted_notes) and sorted_notes[j].start_time < cluster_end:
                j += 1
            cluster = sorted_notes[i:j]

            if len(cluster) == 1:
                if (
                    prev is not None
                    and current.midi_note == prev.midi_note
                    and current.start_time - prev.end_time < self.config.duplicate_gap
                ):
                    logger.debug(
                        "Skipping duplicate %s at %.2fs", current.pitch_name, current.start_time
                    )
                else:
                    result.append(current)
                    prev = current
            else:
                chosen = self._choose_from_cluster(cluster, prev, live)
                logger.debug(
                    "Removed %d overlapping notes at %.2fs, kept %s",
                    len(cluster) - 1, current.start_time, chosen.pitch_name,
                )
                result.append(chosen)
                prev = chosen

            i = j

        return result

    def _choose_from_cluster(
        self,
        cluster: List[ReconciledNote],
        prev: Optional[ReconciledNote],
        live: Sequence[LiveDetection],
    ) -> ReconciledNote:
        # One note per pitch class, the longest wins
        unique: Dict[int, ReconciledNote] = {}
        for note in cluster:
            existing = unique.get(note.pitch_class)
            if existing is None or note.duration > existing.duration:
                unique[note.pitch_class] = note
        candidates = list(unique.values())

        if prev is not None and len(candidates) > 1:
            diffs = [abs(n.pitch_midi - prev.pitch_midi) for n in candidates]
            best = min(diffs)
            closest = [n for n, d in zip(candidates, diffs) if d == best]
            if len(closest) > 1:
                start = min(n.start_time for n in cluster)
                end = max(n.end_time for n in cluster)
                return self._closest_to_live(closest, live, start, end)
            return closest[0]

        return max(candidates, key=lambda n: n.duration)

    def _closest_to_live(
        self,
        candidates: List[ReconciledNote],
        live: Sequence[LiveDetection],
        start: float,
        end: float,
    ) -> ReconciledNote:
        """Candidate nearest the mean live pitch in [start, end], else the first."""
        window = [d for d in live if start <= d.timestamp_sec <= end]
        if not window:
            return candidates[0]
        avg_midi = sum(d.midi for d in window) / len(window)
        return min(candidates, key=lambda n: abs(n.pitch_midi - avg_midi))

    def smooth_contour(self, notes: Sequence[ReconciledNote]) -> List[ReconciledNote]:
        """Nudge interior notes that stray 1-3 semitones from their neighbours' median."""
        if len(notes) < 3:
            return list(notes)

        sorted_notes = sorted(notes, key=lambda n: n.start_time)
        result = [sorted_notes[0]]

        for i in range(1, len(sorted_notes) - 1):
            note = sorted_notes[i]
            median = sorted(
                [sorted_notes[i - 1].pitch_midi, note.pitch_midi, sorted_notes[i + 1].pitch_midi]
            )[1]
            diff = abs(note.pitch_midi - median)
            if 1.0 < diff < 3.0:
                note = replace(note, pitch_midi=note.pitch_midi * 0.85 + median * 0.15, smoothed=True)
            result.append(note)

        result.append(sorted_notes[-1])
        return result

    def merge_consecutive(
        self,
        notes: Sequence[ReconciledNote],
        live: Sequence[LiveDetection],
    ) -> List[ReconciledNote]:
        """Stage C: merge fragments of one sung note.

        The running note absorbs the next one when they overlap within a
        semitone, share a rounded pitch with a gap under ``merge_gap``, or
        share a rounded pitch with a live "bridge" detection in between.
        Overlapping notes further apart in pitch are resolved by live
        support. Every emitted note is edge-extended (stage D) first.
        """
        return self._merge_consecutive(notes, live)[0]

    def _merge_consecutive(
        self,
        notes: Sequence[ReconciledNote],
        live: Sequence[LiveDetection],
    ) -> Tuple[List[ReconciledNote], int]:
        """Merged notes plus the number of notes dropped by overlap conflicts."""
        if not notes:
            return [], 0

        sorted_notes = sorted(notes, key=lambda n: n.start_time)
        result = []
        replaced = 0
        current = sorted_notes[0]

        for nxt in sorted_notes[1:]:
            gap = nxt.start_time - current.end_time
            pitch_diff = abs(current.midi_note - nxt.midi_note)
            overlap = gap < self.config.overlap_gap

            if overlap and pitch_diff > 1:
                winner = self._resolve_conflict(current, nxt, live)
                if winner is nxt:
                    replaced += 1
                current = winner
                continue

            if overlap:
                reason = "overlap"
            elif pitch_diff == 0 and gap < self.config.merge_gap:
                reason = "close"
            elif pitch_diff == 0 and self._has_bridge(current, nxt, live):
                reason = "live bridge"
            else:
                reason = None

            if reason is None:
                result.append(self.extend_to_live(current, live))
                current = nxt
                continue

            logger.debug(
                "Merging %s + %s (%s, gap %.0f ms)",
                current.pitch_name, nxt.pitch_name, reason, gap * 1000,
            )
            merged_end = max(current.end_time, nxt.end_time)
            current = replace(current, duration=merged_end - current.start_time, merged=True)

        result.append(self.extend_to_live(current, live))
        return result, replaced

    def _has_bridge(
        self,
        current: ReconciledNote,
        nxt: ReconciledNote,
        live: Sequence[LiveDetection],
    ) -> bool:
        """Whether a detection of the same rounded pitch lies strictly inside the gap."""
        return any(
            current.end_time < d.timestamp_sec < nxt.start_time
            and round_midi(d.midi) == current.midi_note
            for d in live
        )

    def _resolve_conflict(
        self,
        current: ReconciledNote,
        nxt: ReconciledNote,
        live: Sequence[LiveDetection],
    ) -> ReconciledNote:
        """Pick between two overlapping notes of clearly different pitch."""
        overlap_start = nxt.start_time
        overlap_end = min(current.end_time, nxt.end_time)
        window = [d for d in live if overlap_start <= d.timestamp_sec <= overlap_end]

        current_support = sum(1 for d in window if abs(round_midi(d.midi) - current.midi_note) <= 1)
        next_support = sum(1 for d in window if abs(round_midi(d.midi) - nxt.midi_note) <= 1)

        if next_support > current_support:
            logger.debug(
                "Overlap: replacing %s with %s (live support %d vs %d)",
                current.pitch_name, nxt.pitch_name, current_support, next_support,
            )
            return nxt

        if next_support == current_support and next_support > 0:
            avg_midi = round_midi(sum(d.midi for d in window) / len(window))
            if abs(nxt.midi_note - avg_midi) < abs(current.midi_note - avg_midi):
                logger.debug(
                    "Overlap: replacing %s with %s (closer to live pitch)",
                    current.pitch_name, nxt.pitch_name,
                )
                return nxt

        logger.debug("Overlap: keeping %s over %s", current.pitch_name, nxt.pitch_name)
        if nxt.end_time > current.end_time:
            return replace(current, duration=nxt.end_time - current.start_time, merged=True)
        return current

    def extend_to_live(
        self,
        note: ReconciledNote,
        live: Sequence[LiveDetection],
    ) -> ReconciledNote:
        """Stage D: stretch a note over adjacent detections of its original pitch.

        Only detections within ``extension_window`` of an edge whose rounded
        pitch equals the original rounded pitch and whose exact pitch lies
        within ``extension_tolerance`` semitones of it qualify.
        """
        if not live:
            return note

        cfg = self.config
        original_pitch = note.original_midi
        target = round_midi(original_pitch)
        start, end = note.start_time, note.end_time

        def matches(detection: LiveDetection) -> bool:
            midi = detection.midi
            if round_midi(midi) != target:
                return False
            if abs(midi - original_pitch) >= cfg.extension_tolerance:
                logger.debug(
                    "Rejected extension of %s: live pitch %.2f is %.3f semitones away",
                    note.pitch_name, midi, abs(midi - original_pitch),
                )
                return False
            return True

        before = [
            d.timestamp_sec for d in live
            if start - cfg.extension_window <= d.timestamp_sec < start and matches(d)
        ]
        after = [
            d.timestamp_sec for d in live
            if end < d.timestamp_sec <= end + cfg.extension_window and matches(d)
        ]

        new_start = min(before) if before else start
        new_end = max(after) if after else end
        if new_start == start and new_end == end:
            return note

        logger.debug(
            "Extended %s by %.0f ms (start) / %.0f ms (end)",
            note.pitch_name, (start - new_start) * 1000, (new_end - end) * 1000,
        )
        return replace(note, start_time=new_start, duration=new_end - new_start, extended=True)

    def synthesize_missing(
        self,
        notes: Sequence[ReconciledNote],
        live: Sequence[LiveDetection],
    ) -> List[ReconciledNote]:
        """Stage E: add notes for sung passages the transcriber missed.

        Live detections inside gaps of the reconciled sequence are grouped
        into time- and pitch-contiguous clusters; each cluster becomes a
        synthesized note. Detections on or inside a note's span (including
        the ones that extended it) are never reused. Returns the input notes
        plus the new ones, sorted by start time.
        """
        if not live:
            return sorted(notes, key=lambda n: n.start_time)

        spans = self._covered_spans(notes)
        synthesized = []
        for gap_start, gap_end in self._find_gaps(spans):
            in_gap = sorted(
                (
                    d for d in live
                    if gap_start <= d.timestamp_sec <= gap_end
                    and not any(start <= d.timestamp_sec <= end for start, end in spans)
                ),
                key=lambda d: d.timestamp_sec,
            )
            for cluster in self._cluster_detections(in_gap):
                note = self._note_from_cluster(cluster)
                logger.debug(
                    "Synthesized %s at %.2fs from %d live detections",
                    note.pitch_name, note.start_time, len(cluster),
                )
                synthesized.append(note)

        return sorted(list(notes) + synthesized, key=lambda n: n.start_time)

    def _covered_spans(self, notes: Sequence[ReconciledNote]) -> List[Tuple[float, float]]:
        """Time spans owned by notes, sorted by start.

        A note covers its original span and, once merged or extended, its
        reconciled span as well.
        """
        return sorted(
            (
                min(n.start_time, n.original_note.start_time),
                max(n.end_time, n.original_note.end_time),
            )
            for n in notes
        )

    def _find_gaps(self, spans: Sequence[Tuple[float, float]]) -> List[Tuple[float, float]]:
        """Uncovered stretches between covered spans."""
        if not spans:
            return [(0.0, math.inf)]

        gaps = []
        first_start = spans[0][0]
        if first_start > self.config.synthesis_lead_in:
            gaps.append((0.0, first_start))

        covered_until = spans[0][1]
        for start, end in spans[1:]:
            if start - covered_until > self.config.synthesis_min_gap:
                gaps.append((covered_until, start))
            covered_until = max(covered_until, end)

        return gaps

    def _cluster_detections(self, detections: List[LiveDetection]) -> List[List[LiveDetection]]:
        """Split time-sorted detections wherever time or pitch jumps."""
        clusters: List[List[LiveDetection]] = []
        current: List[LiveDetection] = []
        pitch_sum = 0.0

        for detection in detections:
            midi = detection.midi
            if current:
                time_since_last = detection.timestamp_sec - current[-1].timestamp_sec
                avg_pitch = pitch_sum / len(current)
                if (
                    time_since_last < self.config.synthesis_cluster_gap
                    and abs(round_midi(midi) - round_midi(avg_pitch)) <= self.config.synthesis_cluster_pitch
                ):
                    current.append(detection)
                    pitch_sum += midi
                    continue
                clusters.append(current)

            current = [detection]
            pitch_sum = midi

        if current:
            clusters.append(current)
        return clusters

    def _note_from_cluster(self, cluster: List[LiveDetection]) -> ReconciledNote:
        pitches = sorted(d.midi for d in cluster)
        start = cluster[0].timestamp_sec
        span = cluster[-1].timestamp_sec - start
        return ReconciledNote(
            start_time=start,
            duration=max(span, self.config.synthesis_min_duration),
            pitch_midi=pitches[len(pitches) // 2],
            confidence=sum(d.confidence for d in cluster) / len(cluster),
            synthesized=True,
        )


def reconcile(
    raw_notes: Sequence[RawTranscribedNote],
    live_detections: Optional[Iterable[LiveDetection]] = None,
    config: Optional[ReconcileConfig] = None,
) -> List[ReconciledNote]:
    """Reconcile transcriber notes with live detections using default stages."""
    return Reconciler(config).reconcile(raw_notes, live_detections)
