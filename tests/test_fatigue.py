from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ironflow.config import FatigueSettings
from ironflow.fatigue import (
    LEVEL_ACTIVE,
    LEVEL_IDLE,
    LEVEL_LOW,
    LEVEL_OVERLOAD,
    MUSCLE_GROUPS,
    calculate_fatigue,
    compute_doms_insights,
    fatigue_level,
    match_exercise_muscles,
    recency_multiplier,
)

NOW = datetime(2024, 5, 15, 18, 0, tzinfo=timezone.utc)
SETTINGS = FatigueSettings()


def _log(name: str, sets: int, *, days_ago: float = 0, invalid: int = 0, wellness=None) -> dict:
    payload = {
        "date": (NOW - timedelta(days=days_ago)).isoformat(),
        "exercises": [
            {
                "name": name,
                "sets": [{"weight": 80, "reps": 8}] * sets + [{"weight": 0, "reps": 8}] * invalid,
            }
        ],
    }
    if wellness:
        payload["wellness"] = wellness
    return payload


def test_three_chest_sets_today_score_sixty() -> None:
    scores = calculate_fatigue([_log("Bench Press", 3)], now=NOW, settings=SETTINGS)

    assert scores["chest"] == pytest.approx(60.0)
    assert scores["triceps"] == pytest.approx(60.0)
    assert scores["quads"] == 0.0
    assert set(scores) == set(MUSCLE_GROUPS)


def test_sessions_outside_lookback_are_ignored() -> None:
    scores = calculate_fatigue([_log("Bench Press", 3, days_ago=8)], 7, now=NOW, settings=SETTINGS)
    assert all(score == 0.0 for score in scores.values())


def test_recency_decay_and_floor() -> None:
    three_days = calculate_fatigue([_log("Squat", 3, days_ago=3)], now=NOW, settings=SETTINGS)
    old = calculate_fatigue([_log("Squat", 3, days_ago=10)], 30, now=NOW, settings=SETTINGS)

    assert three_days["quads"] == pytest.approx(42.0)
    assert old["quads"] == pytest.approx(12.0)
    assert recency_multiplier(-2, SETTINGS) == 1.0
    assert recency_multiplier(20, SETTINGS) == pytest.approx(0.2)


def test_scores_are_clamped() -> None:
    scores = calculate_fatigue([_log("Bench Press", 10)], now=NOW, settings=SETTINGS)
    assert scores["chest"] == 100.0


def test_invalid_sets_add_no_fatigue() -> None:
    scores = calculate_fatigue([_log("Bench Press", 2, invalid=3)], now=NOW, settings=SETTINGS)
    assert scores["chest"] == pytest.approx(40.0)


def test_undated_and_unknown_logs_are_skipped() -> None:
    logs = [
        {"date": "someday", "exercises": [{"name": "Bench Press", "sets": [{"weight": 80, "reps": 8}]}]},
        _log("Underwater basket weaving", 5),
    ]
    scores = calculate_fatigue(logs, now=NOW, settings=SETTINGS)
    assert sum(scores.values()) == 0.0


def test_first_matching_key_wins() -> None:
    assert match_exercise_muscles("Wrist Curl") == ("forearms",)
    assert match_exercise_muscles("Leg Curl") == ("hamstrings",)
    assert match_exercise_muscles("Barbell Curl") == ("biceps", "forearms")
    assert match_exercise_muscles("Panca Inclinata manubri")[0] == "upper-chest"
    assert match_exercise_muscles("") == ()
    custom = {"press": ("front-delts",)}
    assert match_exercise_muscles("Leg Press", custom) == ("front-delts",)


def test_fatigue_levels() -> None:
    assert fatigue_level(0) == LEVEL_IDLE
    assert fatigue_level(29.9) == LEVEL_LOW
    assert fatigue_level(30) == LEVEL_ACTIVE
    assert fatigue_level(70) == LEVEL_OVERLOAD


def test_doms_insights_link_soreness_to_training() -> None:
    logs = [
        _log("Bench Press", 4, days_ago=5),
        _log("Squat", 4, days_ago=3, wellness={"sorenessMuscles": ["chest"], "sorenessLevel": 6}),
        _log("Bench Press", 4, days_ago=2),
        _log("Squat", 2, days_ago=0, wellness={"sorenessMuscles": ["chest", "quads"], "sorenessLevel": 4}),
    ]

    insights = compute_doms_insights(logs)

    assert insights.total_reports == 2
    chest = insights.hotspots[0]
    assert chest.muscle == "chest"
    assert chest.occurrences == 2
    assert chest.avg_intensity == pytest.approx(5.0)
    assert chest.avg_recovery_days == pytest.approx(2.0)
    assert chest.last_recovery_days == 2
    assert chest.last_intensity == 4

    quads = next(spot for spot in insights.hotspots if spot.muscle == "quads")
    assert quads.last_recovery_days == 3
    assert insights.timeline[0].recorded_at == NOW


def test_doms_insights_on_empty_history() -> None:
    insights = compute_doms_insights([])
    assert insights.hotspots == []
    assert insights.total_reports == 0
