from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer

from .bucketing import utc_now
from .config import as_dict as config_as_dict, get_config
from .fatigue import calculate_fatigue, compute_doms_insights
from .metrics import compute_volume_trend, compute_weekly_volume, logs_to_dataframe
from .models import BodyStat, Profile, ValidationError, WorkoutLog, parse_iso_date
from .records import PRDetection, PRTracker
from .services import (
    build_log_from_inputs,
    describe_detection,
    generate_fatigue_plot,
    generate_volume_plot,
    load_import_payload,
    render_doms_report,
    render_fatigue_table,
    render_history_lines,
    render_records_table,
    render_trend_table,
    render_weekly_table,
)
from .storage import (
    JsonRecordStore,
    append_body_stat,
    append_log,
    load_body_stats,
    load_logs,
    load_profile,
    save_logs,
    save_profile,
)
from .trends import TrendEngine

app = typer.Typer(help="Track strength workouts: trends, personal records and muscle fatigue.")


def _fail(message: str, *, code: int = 1) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


class ConsoleNotifier:
    """Echo freshly detected personal records to the terminal."""

    def notify(self, detection: PRDetection) -> None:
        line = describe_detection(detection)
        if line:
            typer.secho(f"🏆 {line}", fg=typer.colors.GREEN)


def _tracker(*, announce: bool = True) -> PRTracker:
    notifiers = [ConsoleNotifier()] if announce else []
    return PRTracker(JsonRecordStore(), notifiers=notifiers)


def _load_logs_or_fail() -> List[WorkoutLog]:
    try:
        return load_logs()
    except ValueError as exc:
        _fail(f"Could not read workout logs: {exc}")
        return []


def _resolve_as_of(as_of: Optional[str]) -> Optional[datetime]:
    if not as_of:
        return None
    try:
        return parse_iso_date(as_of, field="as-of")
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _resolve_unit(unit: Optional[str]) -> str:
    return unit or get_config().unit


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Print debug logging from the analytics engines.",
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command()
def log(
    exercise: List[str] = typer.Option(
        ...,
        "--exercise",
        "-e",
        help="Exercise and sets as NAME:WEIGHTxREPS[,WEIGHTxREPS] (repeatable).",
    ),
    date: Optional[str] = typer.Option(
        None,
        "--date",
        "-d",
        help="Workout date in YYYY-MM-DD format (defaults to now).",
    ),
    sleep: Optional[float] = typer.Option(None, "--sleep", help="Sleep quality 0-10."),
    energy: Optional[float] = typer.Option(None, "--energy", help="Energy level 0-10."),
    stress: Optional[float] = typer.Option(None, "--stress", help="Stress level 0-10."),
    soreness: Optional[float] = typer.Option(None, "--soreness", help="DOMS intensity 0-10."),
    sore_muscles: Optional[str] = typer.Option(
        None,
        "--sore",
        help="Comma-separated sore muscle groups (e.g. 'chest, triceps').",
    ),
) -> None:
    """
    Log a workout and check it for personal records.

    Example:
        ironflow log -e "Bench Press:100x5,100x5,90x8" -e "Squat:140x3" --sleep 7
    """
    tracker = _tracker()
    try:
        workout = build_log_from_inputs(
            date_text=date,
            exercises=exercise,
            known_names=tracker.exercise_names(),
            sleep=sleep,
            energy=energy,
            stress=stress,
            soreness=soreness,
            sore_muscles=sore_muscles,
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        append_log(workout)
    except ValueError as exc:
        _fail(f"Could not store workout: {exc}")

    names = ", ".join(entry.name for entry in workout.exercises)
    typer.echo(
        f"Logged workout on {workout.date.date().isoformat()}: {names} "
        f"({workout.total_volume:.0f} kg total volume)."
    )
    detections = tracker.detect_prs_from_log(workout)
    if not detections:
        typer.echo("No new personal records this time.")


@app.command("import")
def import_logs(
    source: Path = typer.Argument(..., help="JSON file holding a list of workout logs."),
    detect: bool = typer.Option(
        True,
        "--detect/--no-detect",
        help="Run personal record detection over the imported workouts.",
    ),
) -> None:
    """
    Bulk-import workouts. Records are detected oldest workout first.
    """
    try:
        payload = load_import_payload(source)
    except (FileNotFoundError, ValueError) as exc:
        _fail(str(exc))

    imported = [WorkoutLog.from_dict(item) for item in payload]
    undated = sum(1 for item in imported if item.date is None)
    existing = _load_logs_or_fail()
    try:
        save_logs(existing + imported)
    except ValueError as exc:
        _fail(f"Could not store workouts: {exc}")

    typer.echo(f"Imported {len(imported)} workout(s).")
    if undated:
        typer.secho(f"{undated} workout(s) have no valid date and are ignored by the analytics.", fg=typer.colors.YELLOW)
    if not detect:
        return

    tracker = _tracker(announce=False)
    ordered = sorted(
        (item for item in imported if item.date is not None), key=lambda item: item.date
    )
    found = sum(len(detection.records) for item in ordered for detection in tracker.detect_prs_from_log(item))
    typer.echo(f"Personal records updated: {found} record change(s).")


@app.command()
def weigh(
    weight: float = typer.Argument(..., help="Body weight in kilograms."),
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Measurement date (YYYY-MM-DD)."),
) -> None:
    """Record a body weight measurement."""
    if weight <= 0:
        raise typer.BadParameter("weight must be positive.")
    try:
        when = parse_iso_date(date, field="date") if date else utc_now()
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        stats = append_body_stat(BodyStat(date=when, weight=weight))
    except ValueError as exc:
        _fail(f"Could not store body weight: {exc}")
    typer.echo(f"Recorded {weight:.1f} kg ({len(stats)} measurement(s) stored).")


@app.command()
def goal(
    text: str = typer.Argument(..., help="Free-text training goal, e.g. 'cut to 80kg' or 'bulk'."),
) -> None:
    """Set the profile goal used to judge body weight trends."""
    profile = Profile(goal=text.strip())
    try:
        save_profile(profile)
    except ValueError as exc:
        _fail(f"Could not store profile: {exc}")
    typer.echo(f"Goal saved: {profile.goal!r} (body weight direction: {profile.goal_direction}).")


@app.command()
def trends(
    unit: Optional[str] = typer.Option(
        None,
        "--unit",
        "-u",
        help="Display units: metric or imperial (defaults to config).",
    ),
    as_of: Optional[str] = typer.Option(
        None,
        "--as-of",
        help="Evaluate as if today were this date (YYYY-MM-DD).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """Compare the last two weeks against the two weeks before."""
    logs = _load_logs_or_fail()
    try:
        stats = load_body_stats()
        profile = load_profile()
    except ValueError as exc:
        _fail(str(exc))

    report = TrendEngine().evaluate(
        logs, stats, profile, _resolve_unit(unit), now=_resolve_as_of(as_of)
    )
    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        return
    typer.echo(render_trend_table(report))


@app.command()
def prs(
    exercise: Optional[str] = typer.Option(
        None,
        "--exercise",
        "-e",
        help="Only show the records of this exercise.",
    ),
    unit: Optional[str] = typer.Option(None, "--unit", "-u", help="Display units: metric or imperial."),
    as_json: bool = typer.Option(False, "--json", help="Print records as JSON."),
) -> None:
    """List personal records, most recently improved first."""
    tracker = _tracker(announce=False)
    if exercise:
        entry = tracker.get_prs_for_exercise(exercise)
        if entry is None:
            _fail(f"No records stored for {exercise!r}.")
        rows = [entry.to_dict()]
    else:
        rows = tracker.get_all_prs()

    if as_json:
        typer.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return
    if not rows:
        typer.echo("No personal records yet. Log a workout first.")
        return
    typer.echo(render_records_table(rows, _resolve_unit(unit)))


@app.command("pr-history")
def pr_history(
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of detections to show."),
) -> None:
    """Show the latest personal record detections, newest first."""
    history = _tracker(announce=False).get_pr_history(limit)
    if not history:
        typer.echo("No personal records detected yet.")
        return
    for line in render_history_lines(history):
        typer.echo(line)


@app.command()
def fatigue(
    days: Optional[int] = typer.Option(
        None,
        "--days",
        min=0,
        help="Lookback window in days (defaults to config).",
    ),
    show_all: bool = typer.Option(False, "--all", help="Include muscle groups with no fatigue."),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date (YYYY-MM-DD)."),
    plot: bool = typer.Option(False, "--plot", help="Write a PNG heatmap bar chart."),
    output_dir: Path = typer.Option(
        Path("plots"),
        "--output-dir",
        "-o",
        help="Directory for generated plots.",
    ),
) -> None:
    """Estimate per-muscle fatigue from recent training."""
    logs = _load_logs_or_fail()
    scores = calculate_fatigue(logs, days, now=_resolve_as_of(as_of))
    typer.echo(render_fatigue_table(scores, include_idle=show_all))

    if plot:
        try:
            path = generate_fatigue_plot(scores, output_dir=output_dir)
        except (RuntimeError, ValueError) as exc:
            _fail(str(exc))
        typer.echo(f"Saved plot to {path}")


@app.command()
def doms() -> None:
    """Relate reported soreness to the training that preceded it."""
    insights = compute_doms_insights(_load_logs_or_fail())
    typer.echo(render_doms_report(insights))


@app.command()
def volume(
    weeks: int = typer.Option(8, "--weeks", "-w", min=1, help="Weeks used for the trend line."),
    unit: Optional[str] = typer.Option(None, "--unit", "-u", help="Display units: metric or imperial."),
    plot: bool = typer.Option(False, "--plot", help="Write a PNG bar chart of weekly volume."),
    output_dir: Path = typer.Option(
        Path("plots"),
        "--output-dir",
        "-o",
        help="Directory for generated plots.",
    ),
) -> None:
    """Weekly training volume with its recent trend."""
    weekly = compute_weekly_volume(logs_to_dataframe(_load_logs_or_fail()))
    trend = compute_volume_trend(weekly, weeks=weeks)
    typer.echo(render_weekly_table(weekly.tail(weeks), trend, _resolve_unit(unit)))

    if plot:
        try:
            path = generate_volume_plot(weekly.tail(weeks), output_dir=output_dir)
        except (RuntimeError, ValueError) as exc:
            _fail(str(exc))
        typer.echo(f"Saved plot to {path}")


@app.command("config")
def config_show() -> None:
    """
    Show the effective configuration (units, trend, record and fatigue settings).
    """
    config = config_as_dict()
    typer.echo(f"Config source: {config.get('source')}")
    typer.echo(f"Units: {config.get('unit')}")
    for section in ("trends", "records", "fatigue"):
        values = config.get(section, {})
        rendered = ", ".join(f"{key}={value}" for key, value in values.items())
        typer.echo(f"{section.capitalize()}: {rendered}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
