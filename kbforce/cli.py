"""Command-line interface for offline replay and session history.

Examples:
    kbforce replay swings.csv --kettlebell 24 --body 80 --exercise swing --save
    kbforce simulate --seconds 10 --kettlebell 16 --trace 2
    kbforce history
    kbforce show <session-id>
"""

from __future__ import annotations

import argparse
import logging
import math
import sys
from pathlib import Path
from typing import List, Optional

from kbforce.config import (
    DEFAULT_EXIT_RATIO,
    DEFAULT_KETTLEBELL_MASS_KG,
    DEFAULT_THRESHOLD_NORM,
    ExerciseType,
    UserProfile,
)
from kbforce.io.samples import SampleFormatError, load_samples_csv, replay, simulate_samples
from kbforce.quality.validation import SampleRejected, ValidatingAggregator
from kbforce.session.aggregator import SessionAggregator, SessionSnapshot, SessionSummary
from kbforce.session.publisher import ThrottledPublisher
from kbforce.store.sessions import SessionNotFound, SessionStore, StoreError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


def setup_logging(level: int = logging.WARNING, log_file: Optional[str] = None) -> logging.Logger:
    """Attach console (and optional file) handlers to the package logger."""
    logger = logging.getLogger("kbforce")
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger


def format_summary(summary: SessionSummary, *, show_reps: bool = True) -> str:
    lines = [
        f"Session {summary.id}",
        f"  date:        {summary.date:%Y-%m-%d %H:%M}",
        f"  exercise:    {summary.exercise_type}",
        f"  kettlebell:  {summary.kettlebell_mass_kg:.1f} kg",
        f"  body mass:   {summary.body_mass_kg:.1f} kg",
        f"  duration:    {summary.duration_sec:.1f}s",
        f"  reps:        {summary.rep_count}",
        f"  peak force:  {summary.session_peak_force_n:.1f} N ({summary.session_peak_force_norm:.2f} x BW)",
        f"  impulse:     {summary.session_impulse_ns:.1f} N·s",
    ]
    if show_reps:
        for idx, rep in enumerate(summary.reps, start=1):
            lines.append(
                f"    #{idx:<3} {rep.duration_sec:.1f}s  "
                f"peak {rep.peak_force_n:.1f} N ({rep.peak_force_norm:.2f}x BW)  "
                f"impulse {rep.impulse_ns:.1f} N·s"
            )
    return "\n".join(lines)


def format_snapshot(snapshot: SessionSnapshot) -> str:
    marker = " *" if snapshot.in_rep else ""
    return (
        f"t={snapshot.elapsed_sec:7.2f}s  force {snapshot.current_force_n:7.1f} N "
        f"({snapshot.current_force_norm:.2f}x BW)  reps {snapshot.rep_count}{marker}"
    )


def _add_session_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--kettlebell", type=float, default=DEFAULT_KETTLEBELL_MASS_KG,
                   help=f"Kettlebell mass in kg (default: {DEFAULT_KETTLEBELL_MASS_KG:g})")
    p.add_argument("--body", type=float, default=None,
                   help="Body mass in kg (default: stored profile)")
    p.add_argument("--exercise", default=ExerciseType.SWING.value,
                   help="Exercise label: snatch | swing | other, or any free text (default: swing)")
    p.add_argument("--threshold", type=float, default=DEFAULT_THRESHOLD_NORM,
                   help=f"Rep entry threshold in x BW (default: {DEFAULT_THRESHOLD_NORM})")
    p.add_argument("--exit-ratio", type=float, default=DEFAULT_EXIT_RATIO,
                   help=f"Exit threshold as a fraction of entry (default: {DEFAULT_EXIT_RATIO})")
    p.add_argument("--save", action="store_true", help="Persist the resulting session summary")
    p.add_argument("--trace", type=float, default=None, metavar="HZ",
                   help="Print live telemetry at most HZ times per second of recording time")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="kbforce",
        description="Kettlebell force metrics from accelerometer recordings.",
    )
    p.add_argument("--data-dir", default=None,
                   help="Storage directory (default: $KBFORCE_DATA_DIR or ~/.kbforce)")
    p.add_argument("-v", "--verbose", action="count", default=0,
                   help="Increase log verbosity (-v info, -vv debug)")
    sub = p.add_subparsers(dest="command", required=True)

    replay_p = sub.add_parser("replay", help="Replay a recorded CSV of x,y,z,epoch_ms samples")
    replay_p.add_argument("csv", help="Path to the sample CSV")
    replay_p.add_argument("--strict", action="store_true",
                          help="Abort on NaN or out-of-order samples instead of skipping them")
    _add_session_args(replay_p)

    sim_p = sub.add_parser("simulate", help="Run the built-in synthetic signal through the pipeline")
    sim_p.add_argument("--seconds", type=float, default=10.0, help="Simulated duration (default: 10)")
    sim_p.add_argument("--rate", type=float, default=100.0, help="Sample rate in Hz (default: 100)")
    _add_session_args(sim_p)

    sub.add_parser("history", help="List stored sessions, newest first")

    show_p = sub.add_parser("show", help="Show one stored session")
    show_p.add_argument("session_id")

    delete_p = sub.add_parser("delete", help="Delete a stored session")
    delete_p.add_argument("session_id")

    profile_p = sub.add_parser("profile", help="Show or update the stored body mass")
    profile_p.add_argument("--body", type=float, default=None, help="New body mass in kg")

    return p.parse_args(argv)


def validate_args(args: argparse.Namespace) -> None:
    for name in ("kettlebell", "body"):
        value = getattr(args, name, None)
        if value is not None and (not math.isfinite(value) or value <= 0):
            raise ValueError(f"--{name} must be a positive number.")
    if getattr(args, "seconds", 1.0) <= 0:
        raise ValueError("--seconds must be positive.")
    if getattr(args, "rate", 1.0) <= 0:
        raise ValueError("--rate must be positive.")
    trace = getattr(args, "trace", None)
    if trace is not None and (not math.isfinite(trace) or trace <= 0):
        raise ValueError("--trace must be a positive number.")
    csv_path = getattr(args, "csv", None)
    if csv_path is not None and not Path(csv_path).expanduser().exists():
        raise FileNotFoundError(f"Sample file not found: {csv_path}")


def _build_aggregator(args: argparse.Namespace, store: SessionStore, start_ms: int, end_ms: int) -> SessionAggregator:
    body = args.body if args.body is not None else store.load_profile().body_mass_kg
    # Offline replays measure duration on the recording's clock.
    return SessionAggregator(
        args.kettlebell,
        body,
        start_ms,
        threshold_norm=args.threshold,
        exit_ratio=args.exit_ratio,
        clock=lambda: end_ms,
    )


def _replay_samples(args: argparse.Namespace, samples: list, store: SessionStore) -> int:
    if not samples:
        raise ValueError("No samples to replay.")
    aggregator = _build_aggregator(args, store, samples[0].epoch_ms, samples[-1].epoch_ms)

    on_ingest = None
    if getattr(args, "trace", None):
        # Throttle on the recording clock so output does not depend on replay speed.
        publisher = ThrottledPublisher(
            aggregator,
            lambda snap: print(format_snapshot(snap)),
            rate_hz=args.trace,
            clock=lambda: aggregator.last_epoch_ms / 1000.0,
        )
        on_ingest = publisher.poll

    guarded = ValidatingAggregator(aggregator)
    if getattr(args, "strict", True):
        replay(samples, guarded, on_ingest=on_ingest)
    else:
        for sample in samples:
            try:
                guarded.ingest(sample)
            except SampleRejected:
                continue
            if on_ingest is not None:
                on_ingest()
        if guarded.rejected:
            eprint(f"Skipped {guarded.rejected} invalid sample(s).")

    summary = aggregator.finalize(args.exercise)
    print(format_summary(summary))
    if args.save:
        store.save(summary)
        print(f"Saved: {summary.id}")
    return 0


def run(args: argparse.Namespace) -> int:
    store = SessionStore(Path(args.data_dir).expanduser() if args.data_dir else None)
    try:
        validate_args(args)

        if args.command == "replay":
            samples = load_samples_csv(Path(args.csv).expanduser())
            return _replay_samples(args, samples, store)

        if args.command == "simulate":
            samples = list(simulate_samples(0, args.seconds, rate_hz=args.rate))
            return _replay_samples(args, samples, store)

        if args.command == "history":
            sessions = store.list()
            if not sessions:
                print("No sessions stored.")
            for summary in sessions:
                print(
                    f"{summary.id}  {summary.date:%Y-%m-%d %H:%M}  {summary.exercise_type:<8} "
                    f"{summary.rep_count:>3} reps  peak {summary.session_peak_force_n:.1f} N"
                )
            return 0

        if args.command == "show":
            print(format_summary(store.get(args.session_id)))
            return 0

        if args.command == "delete":
            if not store.delete(args.session_id):
                raise SessionNotFound(args.session_id)
            print(f"Deleted: {args.session_id}")
            return 0

        if args.command == "profile":
            if args.body is not None:
                store.save_profile(UserProfile(body_mass_kg=args.body))
            print(f"Body mass: {store.load_profile().body_mass_kg:.1f} kg")
            return 0

        raise ValueError(f"Unknown command: {args.command}")
    except SessionNotFound as ex:
        eprint(f"Error: session not found: {ex.args[0]}")
        return 1
    except (ValueError, FileNotFoundError, SampleFormatError, StoreError) as ex:
        eprint(f"Error: {ex}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    setup_logging(level)
    return run(args)


if __name__ == "__main__":
    raise SystemExit(main())
