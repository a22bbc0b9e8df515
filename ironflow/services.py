from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from .bucketing import utc_now
from .fatigue import DomsInsights, fatigue_level, muscle_label
from .metrics import VolumeTrend
from .models import (
    ExerciseEntry,
    ValidationError,
    Wellness,
    WorkoutLog,
    parse_iso_date,
    parse_set_token,
)
from .records import PRDetection, PRHistoryEntry, format_pr_notification, resolve_exercise_name
from .registry import normalise_unit, to_display_weight, weight_unit_label
from .trends import TrendReport

LOGGER = logging.getLogger(__name__)

_LEVEL_COLOURS = {
    "idle": "#D0D0D0",
    "low": "#8FC79A",
    "active": "#F2B950",
    "overload": "#D9534F",
}


def parse_exercise_spec(spec: str, known_names: Iterable[str] = ()) -> ExerciseEntry:
    """
    Parse `NAME:WEIGHTxREPS,WEIGHTxREPS` into an exercise entry.

    The name is matched against `known_names` so slightly different spellings
    of an exercise keep sharing one record.
    """
    name, separator, sets_text = (spec or "").partition(":")
    name = name.strip()
    if not separator or not name:
        raise ValidationError(
            f"exercise must look like NAME:WEIGHTxREPS[,WEIGHTxREPS...]; received {spec!r}."
        )
    tokens = [token for token in sets_text.split(",") if token.strip()]
    if not tokens:
        raise ValidationError(f"exercise {name!r} needs at least one set.")
    sets = tuple(parse_set_token(token, field=f"set for {name}") for token in tokens)
    return ExerciseEntry(name=resolve_exercise_name(name, known_names), sets=sets)


def _optional_scale(value: float | None, *, field: str) -> float | None:
    if value is None:
        return None
    if not 0 <= value <= 10:
        raise ValidationError(f"{field} must be between 0 and 10; received {value}.")
    return float(value)


def build_log_from_inputs(
    *,
    date_text: str | None,
    exercises: Sequence[str],
    known_names: Iterable[str] = (),
    sleep: float | None = None,
    energy: float | None = None,
    stress: float | None = None,
    soreness: float | None = None,
    sore_muscles: str | None = None,
    now: datetime | None = None,
) -> WorkoutLog:
    """Convert CLI inputs into a validated workout log."""
    log_date = parse_iso_date(date_text, field="date") if date_text else (now or utc_now())
    if not exercises:
        raise ValidationError("at least one --exercise is required.")
    known = list(known_names)
    entries = tuple(parse_exercise_spec(spec, known) for spec in exercises)

    muscles = tuple(
        token.strip().lower() for token in (sore_muscles or "").split(",") if token.strip()
    )
    scores = {
        "sleep_quality": _optional_scale(sleep, field="sleep"),
        "energy_level": _optional_scale(energy, field="energy"),
        "stress_level": _optional_scale(stress, field="stress"),
        "soreness_level": _optional_scale(soreness, field="soreness"),
    }
    wellness = None
    if muscles or any(value is not None for value in scores.values()):
        wellness = Wellness(soreness_muscles=muscles, recorded_at=log_date, **scores)
    return WorkoutLog(date=log_date, exercises=entries, wellness=wellness)


def load_import_payload(source: Path) -> list[dict[str, Any]]:
    """Load a JSON list of workout logs for bulk import."""
    if not source.exists():
        raise FileNotFoundError(f"Import file not found: {source}")

    raw_text = source.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise ValueError("Import file is not valid JSON.") from exc

    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        raise ValueError("Import data must be a JSON list of workout objects.")
    return payload


def _render_table(headers: Sequence[str], rows: Sequence[Mapping[str, str]], *, left: Sequence[str] = ()) -> str:
    widths = {key: len(key) for key in headers}
    for row in rows:
        for key in headers:
            widths[key] = max(widths[key], len(row[key]))

    def _cell(key: str, value: str) -> str:
        return value.ljust(widths[key]) if key in left else value.rjust(widths[key])

    header_line = "  ".join(_cell(key, key.upper()) for key in headers)
    body = "\n".join("  ".join(_cell(key, row[key]) for key in headers) for row in rows)
    return "\n".join(filter(None, [header_line, body]))


def render_trend_table(report: TrendReport) -> str:
    """Fixed-width table of trend metrics followed by the digest."""
    headers = ("metric", "current", "previous", "change", "status")
    rows = [
        {
            "metric": metric.label,
            "current": metric.formatted_current,
            "previous": metric.formatted_previous,
            "change": metric.summary,
            "status": metric.status,
        }
        for metric in report.metrics
    ]
    table = _render_table(headers, rows, left=("metric", "status")) if rows else ""
    return "\n\n".join(filter(None, [table, report.digest]))


def render_records_table(rows: Sequence[Mapping[str, Any]], unit: str = "metric") -> str:
    unit = normalise_unit(unit)
    label = weight_unit_label(unit)
    headers = ("exercise", "weight", "1rm", "reps", "volume", "updated")

    def _weight(value: Any) -> str:
        return f"{to_display_weight(float(value or 0), unit):.1f} {label}"

    table_rows = [
        {
            "exercise": str(row.get("displayName") or row.get("normalizedName") or ""),
            "weight": _weight(row.get("maxWeight")),
            "1rm": _weight(row.get("max1RM")),
            "reps": str(int(row.get("maxReps") or 0)),
            "volume": _weight(row.get("maxVolume")),
            "updated": str(row.get("lastUpdated") or "n/a")[:10],
        }
        for row in rows
    ]
    return _render_table(headers, table_rows, left=("exercise",))


def describe_detection(detection: PRDetection) -> str:
    """One console line per detection, built from its notification text."""
    notification = format_pr_notification(detection)
    if notification is None:
        return ""
    line = f"{notification.title} - {notification.body}"
    if notification.extra_records:
        line += f" (+{notification.extra_records} more)"
    return line


def render_history_lines(history: Sequence[PRHistoryEntry]) -> list[str]:
    lines: list[str] = []
    for entry in history:
        records = ", ".join(
            f"{record.label} {record.new_value:g}{record.unit}" for record in entry.records
        )
        when = (entry.date or entry.timestamp or "")[:10]
        lines.append(f"{when}  {entry.exercise}: {records}")
    return lines


def render_fatigue_table(fatigue: Mapping[str, float], *, include_idle: bool = False) -> str:
    headers = ("muscle", "score", "level")
    ordered = sorted(fatigue.items(), key=lambda item: (-item[1], item[0]))
    rows = [
        {
            "muscle": muscle_label(muscle),
            "score": f"{score:.0f}",
            "level": fatigue_level(score),
        }
        for muscle, score in ordered
        if include_idle or score > 0
    ]
    if not rows:
        return "No muscle fatigue inside the lookback window."
    return _render_table(headers, rows, left=("muscle", "level"))


def render_doms_report(insights: DomsInsights) -> str:
    if not insights.total_reports:
        return "No soreness reports logged yet."
    headers = ("muscle", "reports", "avg_intensity", "avg_recovery", "last_report")
    rows = [
        {
            "muscle": hotspot.label,
            "reports": str(hotspot.occurrences),
            "avg_intensity": f"{hotspot.avg_intensity:.1f}" if hotspot.avg_intensity is not None else "n/a",
            "avg_recovery": (
                f"{hotspot.avg_recovery_days:.1f}d" if hotspot.avg_recovery_days is not None else "n/a"
            ),
            "last_report": hotspot.last_reported_at.date().isoformat() if hotspot.last_reported_at else "n/a",
        }
        for hotspot in insights.hotspots
    ]
    table = _render_table(headers, rows, left=("muscle",))
    return f"{table}\n\n{insights.total_reports} soreness report(s) analysed."


def render_weekly_table(weekly: pd.DataFrame, trend: VolumeTrend | None = None, unit: str = "metric") -> str:
    if weekly.empty:
        return "No workouts logged yet."
    unit = normalise_unit(unit)
    label = weight_unit_label(unit)
    headers = ("week", "sessions", "sets", "volume")
    rows = [
        {
            "week": str(record["label"]),
            "sessions": str(int(record["sessions"])),
            "sets": str(int(record["sets"])),
            "volume": f"{to_display_weight(float(record['total_volume']), unit):.0f} {label}",
        }
        for record in weekly.to_dict(orient="records")
    ]
    table = _render_table(headers, rows, left=("week",))
    if trend is None or not trend.weeks:
        return table
    footer = f"Volume trend over {trend.weeks} week(s): {trend.trend} ({trend.trend_pct:+.1f}%)"
    return f"{table}\n\n{footer}"


def generate_fatigue_plot(
    fatigue: Mapping[str, float],
    *,
    output_dir: Path,
    timestamp: str | None = None,
) -> Path:
    """Horizontal bar chart of muscle fatigue coloured by heatmap band."""

    try:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - exercised via CLI
        raise RuntimeError("matplotlib is required to generate plots.") from exc

    if not fatigue:
        raise ValueError("No fatigue scores available to plot.")

    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = timestamp or datetime.now().strftime("%Y%m%d-%H%M%S")
    ordered = sorted(fatigue.items(), key=lambda item: item[1])
    labels = [muscle_label(muscle) for muscle, _ in ordered]
    scores = np.array([score for _, score in ordered], dtype=float)
    colours = [_LEVEL_COLOURS[fatigue_level(score)] for score in scores]

    plot_path = output_dir / f"muscle_fatigue_{timestamp}.png"
    fig, ax = plt.subplots(figsize=(7, max(3, len(labels) * 0.35)))
    positions = np.arange(len(labels))
    ax.barh(positions, scores, color=colours)
    ax.set_yticks(positions)
    ax.set_yticklabels(labels)
    ax.set_xlim(0, 100)
    ax.set_title("Muscle Fatigue")
    ax.set_xlabel("Fatigue score")
    fig.tight_layout()
    fig.savefig(plot_path, dpi=150)
    plt.close(fig)
    LOGGER.info("Wrote fatigue plot to %s", plot_path)
    return plot_path


def generate_volume_plot(
    weekly: pd.DataFrame,
    *,
    output_dir: Path,
    timestamp: str | None = None,
) -> Path:
    """Weekly volume bar chart with a least-squares trend line."""

    try:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - exercised via CLI
        raise RuntimeError("matplotlib is required to generate plots.") from exc

    if weekly.empty:
        raise ValueError("No workouts available to plot.")

    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = timestamp or datetime.now().strftime("%Y%m%d-%H%M%S")
    labels = weekly["label"].tolist()
    volumes = weekly["total_volume"].to_numpy(dtype=float)
    positions = np.arange(len(labels), dtype=float)

    plot_path = output_dir / f"weekly_volume_{timestamp}.png"
    fig, ax = plt.subplots()
    ax.bar(positions, volumes, color="#4C72B0")
    if len(labels) > 1:
        slope, intercept = np.polyfit(positions, volumes, 1)
        ax.plot(positions, slope * positions + intercept, color="#DD8452", linewidth=2)
    ax.set_xticks(positions)
    ax.set_xticklabels(labels)
    ax.set_title("Weekly Training Volume")
    ax.set_xlabel("Week")
    ax.set_ylabel("Volume (kg)")
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    fig.tight_layout()
    fig.savefig(plot_path, dpi=150)
    plt.close(fig)
    LOGGER.info("Wrote weekly volume plot to %s", plot_path)
    return plot_path
