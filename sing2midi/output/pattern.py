"""Live-coding pattern export (TidalCycles and Strudel mini-notation)."""

import math
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..core import ReconciledNote, midi_to_name, midi_to_pattern_name
from ..core.constants import BEATS_PER_MEASURE, STEPS_PER_CYCLE

REST = "~"

_NOTE_TOKEN = re.compile(r"^([a-z]+-?\d+)(?:@(\d+))?$")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class PatternConfig:
    """Configuration for pattern generation.

    Attributes:
        steps_per_cycle: Nominal steps in one cycle (default: 4)
        chord_tolerance: Overlap slack in seconds when grouping chords (default: 0.05)
        sustain_ratio: Relative duration rendered with @N (default: 1.5)
        fast_ratio: Relative duration below which notes form a fast run (default: 0.7)
        rest_ratio: Gaps above this share of the average duration get rests (default: 0.75)
        max_rests: Max consecutive rests for one gap (default: 3)
        slow_threshold: Step ratio above which the pattern is slowed (default: 1.2)
        fast_threshold: Step ratio below which the pattern is sped up (default: 0.8)
        beats_per_measure: Beats assumed to span the recording (default: 4)
        cycle_sound: Synth name in the cycle pattern
        step_sound: Sound name in the step pattern
    """

    steps_per_cycle: int = STEPS_PER_CYCLE
    chord_tolerance: float = 0.05
    sustain_ratio: float = 1.5
    fast_ratio: float = 0.7
    rest_ratio: float = 0.75
    max_rests: int = 3
    slow_threshold: float = 1.2
    fast_threshold: float = 0.8
    beats_per_measure: int = BEATS_PER_MEASURE
    cycle_sound: str = "superpiano"
    step_sound: str = "piano"


def group_overlapping_notes(
    notes: Sequence[ReconciledNote],
    tolerance: float = 0.05,
) -> List[List[ReconciledNote]]:
    """
    Group simultaneous notes into chords.

    A note joins the current group if it starts before the group's first
    start plus the group's longest duration, minus ``tolerance``.
    """
    if not notes:
        return []

    ordered = sorted(notes, key=lambda n: n.start_time)
    groups = []
    current = [ordered[0]]

    for note in ordered[1:]:
        group_end = current[0].start_time + max(n.duration for n in current)
        if note.start_time < group_end - tolerance:
            current.append(note)
        else:
            groups.append(current)
            current = [note]

    groups.append(current)
    return groups


def merge_consecutive_tokens(tokens: Sequence[str]) -> List[str]:
    """Join runs of identical note tokens, summing their @N multipliers.

    Rests, chords and fast runs are left alone.
    """
    result = []
    i = 0

    while i < len(tokens):
        token = tokens[i]
        match = None
        if token != REST and "[" not in token and "," not in token:
            match = _NOTE_TOKEN.match(token)
        if match is None:
            result.append(token)
            i += 1
            continue

        name = match.group(1)
        total = int(match.group(2) or 1)
        j = i + 1
        while j < len(tokens):
            next_match = _NOTE_TOKEN.match(tokens[j])
            if next_match is None or next_match.group(1) != name:
                break
            total += int(next_match.group(2) or 1)
            j += 1

        result.append(f"{name}@{total}" if total > 1 else name)
        i = j

    return result


def count_pattern_steps(pattern_code: str) -> int | float:
    """
    Count the steps of a pattern.

    Each plain token or rest is one step, ``note@N`` is N steps, and a
    bracketed group (chord or fast run) is one step in total.

    Returns:
        Step count, at least 1
    """
    steps = 0
    in_brackets = False

    for token in pattern_code.split():
        if "[" in token:
            in_brackets = True

        if token not in ("[", "]") and not in_brackets:
            if "@" in token:
                try:
                    multiplier = float(token.split("@")[1])
                except ValueError:
                    multiplier = 0
                steps += multiplier or 1
            else:
                steps += 1

        if "]" in token:
            steps += 1
            in_brackets = False

    return max(steps, 1)


def generate_note_names(notes: Sequence[ReconciledNote]) -> str:
    """Human-readable listing, e.g. 'C4 D#4 G4'."""
    return " ".join(midi_to_name(n.midi_note) for n in notes)


class PatternGenerator:
    """Serialize reconciled notes into cycle- and step-based pattern strings."""

    def __init__(self, config: Optional[PatternConfig] = None):
        self.config = config or PatternConfig()

    def generate_pattern_code(self, notes: Sequence[ReconciledNote]) -> str:
        """
        Build the bare mini-notation token string.

        Durations are expressed relative to the average note duration:
        long notes get ``@N``, runs of short notes are bracketed into one
        step, simultaneous notes become ``[a,b]`` chords and gaps become
        rests.

        Args:
            notes: Notes in chronological order

        Returns:
            Space-separated tokens, or "" for no notes
        """
        if not notes:
            return ""
        return " ".join(merge_consecutive_tokens(self.pattern_tokens(notes)))

    def pattern_tokens(self, notes: Sequence[ReconciledNote]) -> List[str]:
        """Tokens before repeated pitches are folded into @N."""
        if not notes:
            return []

        cfg = self.config
        avg_duration = sum(n.duration for n in notes) / len(notes)
        if avg_duration <= 0:
            avg_duration = 1.0

        groups = group_overlapping_notes(notes, cfg.chord_tolerance)
        tokens: List[str] = []
        fast_run: List[str] = []

        def flush_fast_run():
            if len(fast_run) > 1:
                tokens.append(f"[{' '.join(fast_run)}]")
            elif fast_run:
                tokens.append(fast_run[0])
            fast_run.clear()

        for i, group in enumerate(groups):
            if i > 0:
                prev = groups[i - 1]
                prev_end = prev[0].start_time + max(n.duration for n in prev)
                gap = group[0].start_time - prev_end
                if gap > avg_duration * cfg.rest_ratio:
                    flush_fast_run()
                    rest_count = min(_round_half_up(gap / avg_duration), cfg.max_rests)
                    tokens.extend([REST] * rest_count)

            duration = max(n.duration for n in group)
            relative = duration / avg_duration

            if len(group) > 1:
                flush_fast_run()
                chord = "[" + ",".join(midi_to_pattern_name(n.midi_note) for n in group) + "]"
                if relative >= cfg.sustain_ratio:
                    chord += f"@{_round_half_up(relative)}"
                tokens.append(chord)
                continue

            name = midi_to_pattern_name(group[0].midi_note)
            if relative < cfg.fast_ratio:
                fast_run.append(name)
                continue

            flush_fast_run()
            if relative >= cfg.sustain_ratio:
                tokens.append(f"{name}@{_round_half_up(relative)}")
            else:
                tokens.append(name)

        flush_fast_run()
        return tokens

    def _tempo_factor(self, pattern_code: str) -> Optional[tuple]:
        """('slow' | 'fast', factor) when the step count is off the nominal cycle."""
        slow_factor = count_pattern_steps(pattern_code) / self.config.steps_per_cycle
        if slow_factor > self.config.slow_threshold:
            return "slow", slow_factor
        if slow_factor < self.config.fast_threshold:
            return "fast", 1 / slow_factor
        return None

    def estimate_bpm(self, notes: Sequence[ReconciledNote]) -> int:
        """Tempo at which the recording spans exactly one measure."""
        first_start = min(n.start_time for n in notes)
        last_end = max(n.end_time for n in notes)
        total = last_end - first_start
        if total <= 0:
            return 60
        return _round_half_up(self.config.beats_per_measure / total * 60)

    def cycle_pattern(self, notes: Sequence[ReconciledNote]) -> str:
        """TidalCycles one-shot pattern, e.g. ``once $ n (stretch "c4 e4") # s "superpiano" # cps (120/60/4)``."""
        if not notes:
            return ""

        code = self.generate_pattern_code(notes)
        bpm = self.estimate_bpm(notes)

        prefix = ""
        factor = self._tempo_factor(code)
        if factor is not None:
            prefix = f"{factor[0]} {factor[1]:.2f} $ "

        return (
            f'once $ {prefix}n (stretch "{code}") '
            f'# s "{self.config.cycle_sound}" # cps ({bpm}/60/4)'
        )

    def step_pattern(self, notes: Sequence[ReconciledNote]) -> str:
        """Strudel pattern, e.g. ``note("c4 e4").s("piano").slow(1.50)``."""
        if not notes:
            return ""

        code = self.generate_pattern_code(notes)
        result = f'note("{code}").s("{self.config.step_sound}")'

        factor = self._tempo_factor(code)
        if factor is not None:
            result += f".{factor[0]}({factor[1]:.2f})"
        return result


def generate_pattern_code(
    notes: Sequence[ReconciledNote],
    config: Optional[PatternConfig] = None,
) -> str:
    """Bare mini-notation token string for the notes, "" for none."""
    return PatternGenerator(config).generate_pattern_code(notes)


def generate_cycle_pattern(
    notes: Sequence[ReconciledNote],
    config: Optional[PatternConfig] = None,
) -> str:
    """Cycle-based (TidalCycles) pattern for the notes, "" for none."""
    return PatternGenerator(config).cycle_pattern(notes)


def generate_step_pattern(
    notes: Sequence[ReconciledNote],
    config: Optional[PatternConfig] = None,
) -> str:
    """Step-sequencer (Strudel) pattern for the notes, "" for none."""
    return PatternGenerator(config).step_pattern(notes)
