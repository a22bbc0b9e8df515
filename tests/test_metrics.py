from __future__ import annotations

from datetime import date, timedelta

import pytest

from ironflow.metrics import (
    DECREASING,
    FLAT,
    INCREASING,
    compute_volume_trend,
    compute_weekly_volume,
    logs_to_dataframe,
)
from ironflow.services import generate_volume_plot


def _make_logs(weeks: int = 4, step: float = 5.0) -> list[dict[str, object]]:
    logs: list[dict[str, object]] = []
    monday = date(2024, 4, 1)
    for week in range(weeks):
        for offset in (0, 3):
            day = monday + timedelta(weeks=week, days=offset)
            weight = 100.0 + week * step
            logs.append(
                {
                    "date": day.isoformat(),
                    "exercises": [
                        {
                            "name": "Squat",
                            "sets": [
                                {"weight": weight, "reps": 5},
                                {"weight": weight, "reps": 5},
                                {"weight": 0, "reps": 5},
                            ],
                        }
                    ],
                }
            )
    return logs


def test_logs_to_dataframe_one_row_per_set() -> None:
    df = logs_to_dataframe(_make_logs(weeks=1))
    assert len(df) == 6
    assert df["valid"].sum() == 4
    assert df["volume"].sum() == pytest.approx(2000.0)
    assert df.iloc[0]["normalized_name"] == "squat"
    assert df["date"].is_monotonic_increasing


def test_logs_to_dataframe_empty() -> None:
    df = logs_to_dataframe([{"date": None, "exercises": []}])
    assert df.empty
    assert "volume" in df.columns


def test_weekly_volume_groups_by_iso_week() -> None:
    weekly = compute_weekly_volume(logs_to_dataframe(_make_logs()))

    assert weekly["label"].tolist() == ["2024-W14", "2024-W15", "2024-W16", "2024-W17"]
    assert weekly["sessions"].tolist() == [2, 2, 2, 2]
    assert weekly["sets"].tolist() == [4, 4, 4, 4]
    assert weekly.iloc[0]["total_volume"] == pytest.approx(2000.0)
    assert weekly.iloc[-1]["total_volume"] == pytest.approx(2300.0)


def test_volume_trend_direction() -> None:
    rising = compute_volume_trend(compute_weekly_volume(logs_to_dataframe(_make_logs())))
    falling = compute_volume_trend(compute_weekly_volume(logs_to_dataframe(_make_logs(step=-5.0))))
    flat = compute_volume_trend(compute_weekly_volume(logs_to_dataframe(_make_logs(step=0.0))))

    assert rising.trend == INCREASING
    assert rising.slope == pytest.approx(100.0)
    assert rising.trend_pct == pytest.approx(18.6, abs=0.1)
    assert falling.trend == DECREASING
    assert flat.trend == FLAT
    assert compute_volume_trend(compute_weekly_volume(logs_to_dataframe([]))).weeks == 0


def test_generate_volume_plot_writes_png(tmp_path) -> None:
    weekly = compute_weekly_volume(logs_to_dataframe(_make_logs()))
    path = generate_volume_plot(weekly, output_dir=tmp_path / "plots", timestamp="test")
    assert path.exists()
    assert path.name == "weekly_volume_test.png"
