"""Command-line interface for sing2midi.

Provides commands for:
- transcribe: Reconcile an offline transcription with live pitch tracking
- live: Build notes from live pitch tracking alone
- pattern: Regenerate pattern strings from saved notes
- info: Show audio file information
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

app = typer.Typer(
    name="sing2midi",
    help="Sung melody to MIDI and live-coding patterns",
    rich_markup_mode="markdown",
)
console = Console()

PATTERN_FORMATS = ("cycle", "step", "both")
SESSION_VERSION = 1


@dataclass
class StageTimings:
    """Track timing of processing stages."""

    stages: Dict[str, float] = field(default_factory=dict)
    _current_stage: Optional[str] = field(default=None, repr=False)
    _start_time: float = field(default=0.0, repr=False)

    def start(self, stage: str) -> None:
        """Start timing a stage."""
        self._current_stage = stage
        self._start_time = time.perf_counter()

    def stop(self) -> float:
        """Stop timing the current stage, return duration."""
        if self._current_stage is None:
            return 0.0
        duration = time.perf_counter() - self._start_time
        self.stages[self._current_stage] = duration
        self._current_stage = None
        return duration

    @property
    def total_time(self) -> float:
        return sum(self.stages.values())

    def print_summary(self) -> None:
        """Print timing summary to console."""
        console.print("\n[bold]Timing Summary:[/bold]")
        for stage, duration in self.stages.items():
            console.print(f"  {stage}: {duration:.2f}s")
        console.print(f"  [bold]Total: {self.total_time:.2f}s[/bold]")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stages": self.stages,
            "total_time": self.total_time,
        }


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_audio(input_file: Path):
    from .input import AudioLoader

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    loader = AudioLoader()
    try:
        audio, sr = loader.load(str(input_file))
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    return audio, sr, loader.get_duration(audio, sr)


def _save_session(path: Path, notes, source: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "version": SESSION_VERSION,
        "source": source,
        "notes": [note.to_dict() for note in notes],
    }
    path.write_text(json.dumps(data, indent=2))


def _load_session(path: Path):
    from .core import ReconciledNote

    if not path.exists():
        console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(1)

    try:
        data = json.loads(path.read_text())
        items = data["notes"] if isinstance(data, dict) else data
        return [ReconciledNote.from_dict(item) for item in items]
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        console.print(f"[red]Error: Not a saved notes file: {path} ({e})[/red]")
        raise typer.Exit(1)


def _pattern_strings(notes, fmt: str) -> Dict[str, str]:
    from .output import PatternGenerator

    generator = PatternGenerator()
    patterns = {}
    if fmt in ("cycle", "both"):
        patterns["cycle"] = generator.cycle_pattern(notes)
    if fmt in ("step", "both"):
        patterns["step"] = generator.step_pattern(notes)
    return patterns


def _print_patterns(patterns: Dict[str, str]) -> None:
    titles = {"cycle": "TidalCycles", "step": "Strudel"}
    for name, code in patterns.items():
        console.print(f"\n[bold]{titles[name]}:[/bold]")
        # Mini-notation brackets must not be read as markup
        console.print(code, markup=False, highlight=False, soft_wrap=True)


def _export_midi(notes, output: Path) -> None:
    from .output import MIDIExporter

    try:
        MIDIExporter().export(notes, str(output))
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def transcribe(
    input_file: Path = typer.Argument(..., help="Recorded or uploaded take (WAV, MP3, FLAC, ...)"),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Output MIDI file path"
    ),
    engine: str = typer.Option(
        "cqt", "-e", "--engine", help="Offline transcriber: cqt or basic-pitch"
    ),
    reconcile_notes: bool = typer.Option(
        True, "--reconcile/--no-reconcile", help="Reconcile transcriber notes with live pitch tracking"
    ),
    smooth: bool = typer.Option(
        False, "--smooth", help="Smooth the pitch contour after deduplication"
    ),
    save_notes: Optional[Path] = typer.Option(
        None, "--save-notes", help="Save the final notes as JSON"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output results as JSON (for scripting)"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Verbose output"
    ),
):
    """Transcribe a sung take to MIDI and live-coding patterns.

    **Examples:**

        sing2midi transcribe take.wav

        sing2midi transcribe take.wav -o melody.mid --engine basic-pitch
    """
    from .analysis import LiveDetector, LiveDetectionLog
    from .core import ReconciledNote
    from .processing import ReconcileConfig, Reconciler
    from .transcription import get_transcriber

    _setup_logging(verbose)
    timings = StageTimings()

    if output is None:
        output = input_file.with_suffix(".mid")

    try:
        transcriber = get_transcriber(engine)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not json_output:
        console.print(f"[blue]Loading audio:[/blue] {input_file}")
    timings.start("load")
    audio, sr, duration = _load_audio(input_file)
    timings.stop()

    if not json_output:
        console.print("[blue]Tracking live pitch...[/blue]")
    timings.start("live pitch")
    log = LiveDetectionLog(LiveDetector().track(audio, sr))
    live = log.snapshot()
    timings.stop()

    if not json_output:
        console.print(f"  {len(live)} voiced frames")
        console.print(f"[blue]Transcribing ({engine})...[/blue]")
    timings.start("transcription")
    try:
        raw_notes = transcriber.transcribe_at(audio, sr)
    except ImportError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    timings.stop()

    if not json_output:
        console.print(f"  {len(raw_notes)} candidate notes")

    reconciler = Reconciler(ReconcileConfig(smooth_contour=smooth))
    stats = None
    timings.start("reconcile")
    if reconcile_notes:
        notes, stats = reconciler.reconcile(raw_notes, live, return_stats=True)
    else:
        notes = sorted(
            (ReconciledNote.from_raw(n) for n in reconciler.validate_notes(raw_notes)),
            key=lambda n: n.start_time,
        )
    timings.stop()

    if not notes:
        console.print("[yellow]No notes detected[/yellow]")
        raise typer.Exit(1)

    if not json_output and stats is not None:
        console.print(
            f"  Reconciled: {stats.final_count} notes "
            f"({stats.removed_unsupported} unsupported, {stats.removed_duplicates} duplicates, "
            f"{stats.merged_notes} merged, {stats.replaced_notes} replaced, {stats.extended_notes} extended, "
            f"{stats.synthesized_notes} synthesized)"
        )

    timings.start("export")
    _export_midi(notes, output)
    patterns = _pattern_strings(notes, "both")
    if save_notes is not None:
        _save_session(save_notes, notes, str(input_file))
    timings.stop()

    if json_output:
        result = {
            "input": str(input_file),
            "output": str(output),
            "engine": engine,
            "duration": duration,
            "live_detections": len(live),
            "raw_notes": len(raw_notes),
            "notes_count": len(notes),
            "patterns": patterns,
            "timings": timings.to_dict(),
        }
        if stats is not None:
            result["reconcile_stats"] = {
                "removed_unsupported": stats.removed_unsupported,
                "removed_short": stats.removed_short,
                "removed_duplicates": stats.removed_duplicates,
                "merged": stats.merged_notes,
                "replaced": stats.replaced_notes,
                "extended": stats.extended_notes,
                "synthesized": stats.synthesized_notes,
                "invalid_notes": stats.invalid_notes,
            }
        console.print_json(data=result)
        return

    console.print(f"[blue]Exported:[/blue] {output}")
    _print_patterns(patterns)
    if verbose:
        _show_notes_table(notes)
        timings.print_summary()
    console.print("\n[green]Transcription complete![/green]")


@app.command()
def live(
    input_file: Path = typer.Argument(..., help="Recorded or uploaded take"),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Also export a MIDI file"
    ),
    save_notes: Optional[Path] = typer.Option(
        None, "--save-notes", help="Save the notes as JSON"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output results as JSON (for scripting)"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Verbose output"
    ),
):
    """Build notes from live pitch tracking only (no offline transcriber)."""
    from .analysis import LiveDetector
    from .processing import DetectionGrouper

    _setup_logging(verbose)
    audio, sr, duration = _load_audio(input_file)

    detections = list(LiveDetector().track(audio, sr))
    notes = DetectionGrouper().group(detections)

    if not notes:
        console.print("[yellow]No notes detected[/yellow]")
        raise typer.Exit(1)

    if output is not None:
        _export_midi(notes, output)
    if save_notes is not None:
        _save_session(save_notes, notes, str(input_file))

    patterns = _pattern_strings(notes, "both")

    if json_output:
        console.print_json(data={
            "input": str(input_file),
            "duration": duration,
            "live_detections": len(detections),
            "notes_count": len(notes),
            "notes": [note.to_dict() for note in notes],
            "patterns": patterns,
        })
        return

    console.print(f"{len(detections)} voiced frames -> {len(notes)} notes")
    _print_patterns(patterns)
    if verbose:
        _show_notes_table(notes)


@app.command()
def pattern(
    notes_file: Path = typer.Argument(..., help="Notes JSON saved with --save-notes"),
    fmt: str = typer.Option(
        "both", "-f", "--format", help="Pattern flavour: cycle, step or both"
    ),
):
    """Regenerate pattern strings from saved notes."""
    from .output import generate_note_names

    if fmt not in PATTERN_FORMATS:
        console.print(f"[red]Error: Unknown format '{fmt}'. Choose from: {', '.join(PATTERN_FORMATS)}[/red]")
        raise typer.Exit(1)

    notes = _load_session(notes_file)
    if not notes:
        console.print("[yellow]No notes in file[/yellow]")
        return

    console.print(f"[bold]Notes:[/bold] {generate_note_names(notes)}")
    _print_patterns(_pattern_strings(notes, fmt))


@app.command()
def info(
    input_file: Path = typer.Argument(..., help="Input audio file"),
):
    """Show information about an audio file."""
    from .analysis import LiveDetector
    from .input import AudioLoader

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    loader = AudioLoader()
    try:
        header = loader.info(str(input_file))
        audio, sr = loader.load(str(input_file))
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    voiced = sum(1 for _ in LiveDetector().track(audio, sr))

    console.print(f"\n[bold]Audio Info:[/bold] {input_file.name}")
    console.print(f"  Duration: {header.duration:.2f} seconds")
    console.print(f"  Sample rate: {header.sample_rate} Hz")
    console.print(f"  Channels: {header.channels}")
    console.print(f"  Voiced frames: {voiced}")


def _show_notes_table(notes):
    """Display notes in a table."""
    table = Table(title="Notes")
    table.add_column("Pitch", style="cyan")
    table.add_column("Start (s)", style="green")
    table.add_column("Duration (s)", style="yellow")
    table.add_column("Confidence", style="magenta")
    table.add_column("Flags", style="blue")

    for note in notes:
        flags = [
            name for name in ("synthesized", "merged", "extended", "smoothed")
            if getattr(note, name)
        ]
        table.add_row(
            note.pitch_name,
            f"{note.start_time:.3f}",
            f"{note.duration:.3f}",
            f"{note.confidence:.2f}",
            ", ".join(flags),
        )

    console.print(table)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
