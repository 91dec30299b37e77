"""MIDI export functionality."""

import logging
from pathlib import Path
from typing import Sequence

import pretty_midi

from ..core import ReconciledNote
from ..core.constants import DEFAULT_TEMPO, DEFAULT_VELOCITY, MIDI_MAX, MIDI_MIN

logger = logging.getLogger(__name__)


class MIDIExporter:
    """Export reconciled notes to a single-track MIDI file."""

    def __init__(
        self,
        tempo: float = DEFAULT_TEMPO,
        instrument_name: str = "Acoustic Grand Piano",
        instrument_program: int = 0,
        velocity: int = DEFAULT_VELOCITY,
    ):
        """
        Initialize MIDIExporter.

        Args:
            tempo: Tempo in BPM
            instrument_name: MIDI instrument name
            instrument_program: MIDI program number (0-127)
            velocity: Velocity given to every note (1-127)
        """
        self.tempo = tempo
        self.instrument_name = instrument_name
        self.instrument_program = instrument_program
        self.velocity = velocity

    def export(self, notes: Sequence[ReconciledNote], output_path: str) -> None:
        """
        Export notes to MIDI file.

        Args:
            notes: Reconciled notes
            output_path: Path to output MIDI file

        Raises:
            ValueError: If there are no notes
        """
        midi = self.notes_to_pretty_midi(notes)

        # Ensure output directory exists
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        midi.write(str(output_path))
        logger.debug("Wrote %d notes to %s", len(notes), output_path)

    def notes_to_pretty_midi(self, notes: Sequence[ReconciledNote]) -> pretty_midi.PrettyMIDI:
        """Convert notes to PrettyMIDI object without saving."""
        if not notes:
            raise ValueError("No notes to export")

        midi = pretty_midi.PrettyMIDI(initial_tempo=self.tempo)
        instrument = pretty_midi.Instrument(
            program=self.instrument_program,
            name=self.instrument_name,
        )

        for note in notes:
            pitch = min(max(note.midi_note, MIDI_MIN), MIDI_MAX)
            instrument.notes.append(
                pretty_midi.Note(
                    velocity=self.velocity,
                    pitch=pitch,
                    start=float(note.start_time),
                    end=float(note.end_time),
                )
            )

        midi.instruments.append(instrument)
        return midi
