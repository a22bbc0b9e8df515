from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ironflow.config import TrendSettings
from ironflow.models import GOAL_DOWN, GOAL_NEUTRAL, GOAL_UP
from ironflow.trends import (
    DECLINING,
    IMPROVING,
    INSUFFICIENT_DATA_MESSAGE,
    NEGATIVE,
    NEUTRAL,
    POSITIVE,
    STABLE,
    VARIANT,
    TrendDirection,
    TrendEngine,
    build_digest,
    eval_trend_direction,
    evaluate,
    format_delta_text,
    percent_change,
)

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)
SETTINGS = TrendSettings()


def _workout(date: str, weight: float, *, extra_sets=(), wellness=None) -> dict:
    sets = [{"weight": weight, "reps": 5}, {"weight": weight, "reps": 5}, *extra_sets]
    payload = {"date": date, "exercises": [{"name": "Bench Press", "sets": sets}]}
    if wellness:
        payload["wellness"] = wellness
    return payload


def _history(**kwargs) -> list[dict]:
    return [
        _workout("2024-05-13", 100, **kwargs),
        _workout("2024-05-10", 100),
        _workout("2024-04-28", 80),
        _workout("2024-04-25", 80),
    ]


def test_empty_history_yields_insufficient_data_digest() -> None:
    report = evaluate([], [], {}, now=NOW)
    assert report.metrics == []
    assert report.digest == INSUFFICIENT_DATA_MESSAGE

    report = evaluate(None, None, None, now=NOW)
    assert report.metrics == []


def test_logs_outside_both_windows_are_insufficient() -> None:
    report = evaluate([_workout("2023-01-01", 100)], [], {}, now=NOW)
    assert report.metrics == []
    assert report.digest == INSUFFICIENT_DATA_MESSAGE


def test_percent_change_zero_baseline() -> None:
    assert percent_change(5, 0) == 100.0
    assert percent_change(0, 0) == 0.0
    assert percent_change(90, 100) == pytest.approx(-10.0)


def test_dead_band_is_stable() -> None:
    direction = eval_trend_direction("volume", 104.9, 100, settings=SETTINGS)
    assert direction.status == STABLE
    assert direction.sentiment == NEUTRAL


def test_higher_is_better_and_lower_is_better_metrics() -> None:
    volume = eval_trend_direction("volume", 120, 100, settings=SETTINGS)
    assert (volume.status, volume.sentiment) == (IMPROVING, POSITIVE)
    assert volume.pct == pytest.approx(20.0)

    stress = eval_trend_direction("stressLevel", 6, 4, settings=SETTINGS)
    assert (stress.status, stress.sentiment) == (DECLINING, NEGATIVE)

    soreness = eval_trend_direction("sorenessLevel", 3, 6, settings=SETTINGS)
    assert soreness.status == IMPROVING


def test_body_weight_follows_goal_direction() -> None:
    cut_loss = eval_trend_direction("bodyWeight", 79.5, 80.0, GOAL_DOWN, SETTINGS)
    cut_gain = eval_trend_direction("bodyWeight", 80.5, 80.0, GOAL_DOWN, SETTINGS)
    bulk_gain = eval_trend_direction("bodyWeight", 80.5, 80.0, GOAL_UP, SETTINGS)

    assert cut_loss.status == IMPROVING
    assert cut_gain.status == DECLINING
    assert bulk_gain.status == IMPROVING


def test_body_weight_without_goal_is_variant_or_stable() -> None:
    swing = eval_trend_direction("bodyWeight", 82.0, 80.0, GOAL_NEUTRAL, SETTINGS)
    steady = eval_trend_direction("bodyWeight", 80.5, 80.0, GOAL_NEUTRAL, SETTINGS)

    assert (swing.status, swing.sentiment) == (VARIANT, NEUTRAL)
    assert (steady.status, steady.sentiment) == (STABLE, NEUTRAL)


def test_format_delta_text() -> None:
    assert format_delta_text(TrendDirection(IMPROVING, POSITIVE, 10.0, 12.34)) == "⬆ +12.3%"
    assert format_delta_text(TrendDirection(DECLINING, NEGATIVE, -5.0, -5.0)) == "⬇ -5.0%"
    assert format_delta_text(TrendDirection(STABLE, NEUTRAL, 0.0, 0.0)) == "➡"


def test_build_digest_without_movement() -> None:
    assert build_digest([]) == INSUFFICIENT_DATA_MESSAGE


def test_engine_reports_core_metrics_in_order() -> None:
    report = TrendEngine(SETTINGS).evaluate(_history(), [], {}, now=NOW)

    ids = [metric.id for metric in report.metrics]
    assert ids == ["frequency", "volume", "bodyWeight", "prs", "consistency"]

    by_id = {metric.id: metric for metric in report.metrics}
    assert by_id["frequency"].status == STABLE
    assert by_id["volume"].current == pytest.approx(1000.0)
    assert by_id["volume"].previous == pytest.approx(800.0)
    assert by_id["volume"].status == IMPROVING
    assert by_id["prs"].status == IMPROVING
    assert by_id["consistency"].status == DECLINING
    assert "Good news on Average Volume, PR Progression" in report.digest
    assert "Keep an eye on Consistency" in report.digest
    assert report.generated_at == NOW


def test_invalid_sets_never_move_volume() -> None:
    junk = ({"weight": -100, "reps": 5}, {"weight": 500, "reps": 0})
    clean = TrendEngine(SETTINGS).evaluate(_history(), [], {}, now=NOW)
    noisy = TrendEngine(SETTINGS).evaluate(_history(extra_sets=junk), [], {}, now=NOW)

    assert [m.current for m in clean.metrics] == [m.current for m in noisy.metrics]


def test_wellness_metrics_are_added_when_logged() -> None:
    logs = _history(wellness={"sleepQuality": 8})
    logs[2]["wellness"] = {"sleepQuality": 6}

    report = TrendEngine(SETTINGS).evaluate(logs, [], {}, now=NOW)

    sleep = next(metric for metric in report.metrics if metric.id == "sleepQuality")
    assert sleep.label == "Sleep Quality"
    assert sleep.status == IMPROVING
    assert sleep.formatted_current == "8.0 / 10"


def test_body_weight_with_cut_goal() -> None:
    stats = [
        {"date": "2024-05-12", "weight": 79.5},
        {"date": "2024-04-26", "weight": 80.0},
    ]
    report = TrendEngine(SETTINGS).evaluate(_history(), stats, {"goal": "cut"}, now=NOW)

    weight = next(metric for metric in report.metrics if metric.id == "bodyWeight")
    assert weight.status == IMPROVING
    assert weight.sentiment == POSITIVE
    assert weight.delta == pytest.approx(-0.5)
    assert weight.formatted_current == "79.5 kg"


def test_body_stats_alone_produce_a_report() -> None:
    stats = [{"date": "2024-05-12", "weight": 82.0}, {"date": "2024-04-26", "weight": 80.0}]
    report = TrendEngine(SETTINGS).evaluate([], stats, {}, now=NOW)

    weight = next(metric for metric in report.metrics if metric.id == "bodyWeight")
    assert weight.status == VARIANT
    assert report.digest != INSUFFICIENT_DATA_MESSAGE


def test_imperial_units_only_change_formatting() -> None:
    metric_report = TrendEngine(SETTINGS).evaluate(_history(), [], {}, "metric", now=NOW)
    imperial_report = TrendEngine(SETTINGS).evaluate(_history(), [], {}, "imperial", now=NOW)

    metric_volume = next(m for m in metric_report.metrics if m.id == "volume")
    imperial_volume = next(m for m in imperial_report.metrics if m.id == "volume")
    assert metric_volume.current == imperial_volume.current
    assert metric_volume.formatted_current == "1000 kg"
    assert imperial_volume.formatted_current == "2205 lbs"


def test_dead_band_applies_to_lower_is_better_metrics() -> None:
    direction = eval_trend_direction("stressLevel", 4.1, 4.0, settings=SETTINGS)
    assert direction.status == STABLE
    assert direction.sentiment == NEUTRAL


def test_frequency_scales_with_window_length() -> None:
    logs = [_workout(f"2024-05-{day:02d}", 100) for day in (4, 6, 8, 10, 12, 14)]

    report = TrendEngine(TrendSettings(window_days=21)).evaluate(logs, [], {}, now=NOW)

    frequency = next(metric for metric in report.metrics if metric.id == "frequency")
    assert frequency.current == pytest.approx(2.0)
    assert frequency.previous == 0


def test_recent_body_weight_alone_has_no_delta() -> None:
    stats = [{"date": "2024-05-12", "weight": 82.0}]
    report = TrendEngine(SETTINGS).evaluate(_history(), stats, {}, now=NOW)

    weight = next(metric for metric in report.metrics if metric.id == "bodyWeight")
    assert weight.current == weight.previous == pytest.approx(82.0)
    assert weight.delta == 0
    assert weight.status == STABLE


def test_recent_wellness_alone_has_no_delta() -> None:
    report = TrendEngine(SETTINGS).evaluate(_history(wellness={"sleepQuality": 8}), [], {}, now=NOW)

    sleep = next(metric for metric in report.metrics if metric.id == "sleepQuality")
    assert sleep.current == sleep.previous == pytest.approx(8.0)
    assert sleep.delta == 0
    assert sleep.status == STABLE
