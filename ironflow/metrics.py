from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from .models import WorkoutLog, coerce_many
from .records import normalize_exercise_name

SET_COLUMNS = ["session", "date", "exercise", "normalized_name", "weight", "reps", "volume", "valid"]
WEEKLY_COLUMNS = ["label", "start_date", "end_date", "sessions", "sets", "total_volume"]

INCREASING = "increasing"
DECREASING = "decreasing"
FLAT = "stable"


@dataclass(frozen=True)
class VolumeTrend:
    weeks: int
    avg_volume: float
    slope: float
    trend: str
    trend_pct: float


def logs_to_dataframe(logs: Iterable[WorkoutLog | Mapping[str, Any]] | None) -> pd.DataFrame:
    """Flatten workout logs into one row per set, oldest first."""
    records: list[dict[str, object]] = []
    for index, log in enumerate(coerce_many(logs, WorkoutLog)):
        if log.date is None:
            continue
        for exercise in log.exercises:
            for entry in exercise.sets:
                records.append(
                    {
                        "session": index,
                        "date": pd.Timestamp(log.date),
                        "exercise": exercise.name,
                        "normalized_name": normalize_exercise_name(exercise.name),
                        "weight": entry.weight,
                        "reps": entry.reps,
                        "volume": entry.volume,
                        "valid": entry.is_valid,
                    }
                )

    if not records:
        return pd.DataFrame(columns=SET_COLUMNS)
    df = pd.DataFrame(records, columns=SET_COLUMNS)
    df.sort_values(["date", "session"], inplace=True, kind="stable")
    df.reset_index(drop=True, inplace=True)
    return df


def compute_weekly_volume(df_sets: pd.DataFrame) -> pd.DataFrame:
    """Aggregate set rows into ISO weeks: sessions, valid sets and lifted volume."""
    if df_sets.empty:
        return pd.DataFrame(columns=WEEKLY_COLUMNS)

    iso = df_sets["date"].dt.isocalendar()
    df_sets = df_sets.assign(
        iso_year=iso.year,
        iso_week=iso.week,
        label=iso.year.astype(str) + "-W" + iso.week.map(lambda value: f"{int(value):02d}"),
        valid_set=df_sets["valid"].astype(int),
    )

    weekly = (
        df_sets.groupby(["iso_year", "iso_week", "label"])
        .agg(
            start_date=("date", "min"),
            end_date=("date", "max"),
            sessions=("session", "nunique"),
            sets=("valid_set", "sum"),
            total_volume=("volume", "sum"),
        )
        .reset_index()
        .drop(columns=["iso_year", "iso_week"])
    )
    weekly["total_volume"] = pd.to_numeric(weekly["total_volume"], errors="coerce").round(1)
    weekly["sets"] = weekly["sets"].astype(int)
    return weekly[WEEKLY_COLUMNS]


def compute_volume_trend(weekly: pd.DataFrame, *, weeks: int = 8) -> VolumeTrend:
    """
    Least-squares slope of weekly volume over the last `weeks` rows.

    `trend_pct` expresses the fitted change across the whole span relative to
    the average week.
    """
    if weekly.empty:
        return VolumeTrend(weeks=0, avg_volume=0.0, slope=0.0, trend=FLAT, trend_pct=0.0)

    tail = weekly.tail(weeks)
    volumes = tail["total_volume"].to_numpy(dtype=float)
    count = volumes.size
    avg_volume = float(np.mean(volumes))
    slope = 0.0
    if count > 1:
        # polyfit leaves float noise on flat series
        slope = round(float(np.polyfit(np.arange(count, dtype=float), volumes, 1)[0]), 6)
    trend_pct = round(slope * count / avg_volume * 100, 1) if avg_volume > 0 else 0.0

    if slope > 0:
        trend = INCREASING
    elif slope < 0:
        trend = DECREASING
    else:
        trend = FLAT
    return VolumeTrend(
        weeks=count,
        avg_volume=round(avg_volume, 1),
        slope=round(slope, 2),
        trend=trend,
        trend_pct=trend_pct,
    )
