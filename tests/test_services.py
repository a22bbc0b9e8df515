from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ironflow.fatigue import calculate_fatigue
from ironflow.models import ValidationError
from ironflow.records import PRDetection, RecordChange
from ironflow.services import (
    build_log_from_inputs,
    describe_detection,
    generate_fatigue_plot,
    load_import_payload,
    parse_exercise_spec,
    render_fatigue_table,
    render_records_table,
    render_trend_table,
)
from ironflow.trends import INSUFFICIENT_DATA_MESSAGE, evaluate

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def test_parse_exercise_spec_reuses_known_name() -> None:
    entry = parse_exercise_spec("bench press: 100x5, 90x8", ["Bench Press"])
    assert entry.name == "Bench Press"
    assert [(s.weight, s.reps) for s in entry.sets] == [(100.0, 5), (90.0, 8)]


@pytest.mark.parametrize("spec", ["Bench Press", ":100x5", "Bench:", "Bench:100"])
def test_parse_exercise_spec_rejects_malformed_input(spec) -> None:
    with pytest.raises(ValidationError):
        parse_exercise_spec(spec)


def test_build_log_from_inputs_collects_wellness() -> None:
    log = build_log_from_inputs(
        date_text="2024-05-14",
        exercises=["Squat:140x3"],
        sleep=7,
        sore_muscles="Chest, quads",
        now=NOW,
    )
    assert log.date == datetime(2024, 5, 14, tzinfo=timezone.utc)
    assert log.wellness.sleep_quality == 7.0
    assert log.wellness.soreness_muscles == ("chest", "quads")

    plain = build_log_from_inputs(date_text=None, exercises=["Squat:140x3"], now=NOW)
    assert plain.date == NOW
    assert plain.wellness is None


def test_build_log_from_inputs_validates_scales() -> None:
    with pytest.raises(ValidationError, match="between 0 and 10"):
        build_log_from_inputs(date_text=None, exercises=["Squat:140x3"], stress=11, now=NOW)
    with pytest.raises(ValidationError):
        build_log_from_inputs(date_text=None, exercises=[], now=NOW)


def test_load_import_payload_errors(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_import_payload(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text('{"date": "2024-05-01"}', encoding="utf-8")
    with pytest.raises(ValueError, match="JSON list"):
        load_import_payload(bad)


def test_render_trend_table_contains_digest() -> None:
    logs = [
        {"date": "2024-05-13", "exercises": [{"name": "Squat", "sets": [{"weight": 120, "reps": 5}]}]},
        {"date": "2024-04-28", "exercises": [{"name": "Squat", "sets": [{"weight": 100, "reps": 5}]}]},
    ]
    report = evaluate(logs, [], {}, now=NOW)
    text = render_trend_table(report)

    assert text.splitlines()[0].startswith("METRIC")
    assert "Average Volume" in text
    assert text.endswith(report.digest)
    assert render_trend_table(evaluate([], [], {}, now=NOW)) == INSUFFICIENT_DATA_MESSAGE


def test_render_records_table_imperial() -> None:
    rows = [{"displayName": "Bench Press", "maxWeight": 100, "max1RM": 113, "maxReps": 5, "maxVolume": 500, "lastUpdated": None}]
    text = render_records_table(rows, "imperial")
    assert "220.5 lbs" in text
    assert "n/a" in text


def test_describe_detection() -> None:
    detection = PRDetection(
        "Squat",
        "2024-05-15",
        [RecordChange("weight", "Max Weight", 0, 140, "kg"), RecordChange("volume", "Max Volume", 0, 700, "kg")],
    )
    assert describe_detection(detection) == "New PR: Squat - Max Weight: 140kg (+1 more)"
    assert describe_detection(PRDetection("Squat", None, [])) == ""


def test_fatigue_table_and_plot(tmp_path) -> None:
    logs = [{"date": NOW.isoformat(), "exercises": [{"name": "Bench Press", "sets": [{"weight": 80, "reps": 8}] * 2}]}]
    scores = calculate_fatigue(logs, now=NOW)

    table = render_fatigue_table(scores)
    assert "Chest" in table
    assert "Quads" not in table
    assert "Quads" in render_fatigue_table(scores, include_idle=True)
    assert render_fatigue_table({"chest": 0.0}) == "No muscle fatigue inside the lookback window."

    path = generate_fatigue_plot(scores, output_dir=tmp_path, timestamp="test")
    assert path.name == "muscle_fatigue_test.png"
    assert path.exists()
