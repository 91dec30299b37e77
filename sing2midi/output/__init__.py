"""Output layer - Export reconciled notes.

This layer handles exporting a recording's notes to:
- Cycle-based patterns (TidalCycles)
- Step-sequencer patterns (Strudel)
- MIDI files
"""

from .midi import MIDIExporter
from .pattern import (
    PatternConfig,
    PatternGenerator,
    count_pattern_steps,
    generate_cycle_pattern,
    generate_note_names,
    generate_pattern_code,
    generate_step_pattern,
    group_overlapping_notes,
    merge_consecutive_tokens,
)

__all__ = [
    "MIDIExporter",
    "PatternConfig",
    "PatternGenerator",
    "count_pattern_steps",
    "generate_cycle_pattern",
    "generate_note_names",
    "generate_pattern_code",
    "generate_step_pattern",
    "group_overlapping_notes",
    "merge_consecutive_tokens",
]
