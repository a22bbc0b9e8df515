"""
Per-muscle training load for the recovery heatmap.

Scores are recomputed from scratch on every call: each recent session adds
`sets * 20 * recency` to the muscles its exercises hit, and the total is
clamped to 0-100.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .bucketing import resolve_now
from .config import FatigueSettings, get_config
from .models import WorkoutLog, coerce_many

LOGGER = logging.getLogger(__name__)

MAX_SCORE = 100.0
DAY_SECONDS = 86400

LEVEL_IDLE = "idle"
LEVEL_LOW = "low"
LEVEL_ACTIVE = "active"
LEVEL_OVERLOAD = "overload"

MUSCLE_GROUPS: Dict[str, str] = {
    "chest": "Chest",
    "upper-chest": "Upper Chest",
    "front-delts": "Front Delts",
    "rear-delts": "Rear Delts",
    "traps": "Traps",
    "lats": "Lats",
    "lower-back": "Lower Back",
    "biceps": "Biceps",
    "triceps": "Triceps",
    "forearms": "Forearms",
    "abs": "Abs",
    "obliques": "Obliques",
    "quads": "Quads",
    "hamstrings": "Hamstrings",
    "glutes": "Glutes",
    "adductors": "Adductors",
    "calves": "Calves",
}

# Keys are matched as substrings of the lowercased exercise name and the first
# hit wins, so more specific keys must come before the generic ones they contain.
EXERCISE_DB: Dict[str, Tuple[str, ...]] = {
    # chest
    "panca inclinata": ("upper-chest", "front-delts", "triceps"),
    "incline bench": ("upper-chest", "front-delts", "triceps"),
    "incline press": ("upper-chest", "front-delts", "triceps"),
    "panca stretta": ("triceps", "chest"),
    "close grip bench": ("triceps", "chest"),
    "panca": ("chest", "front-delts", "triceps"),
    "bench press": ("chest", "front-delts", "triceps"),
    "chest press": ("chest", "front-delts", "triceps"),
    "croci": ("chest",),
    "chest fly": ("chest",),
    "pec deck": ("chest",),
    "push up": ("chest", "front-delts", "triceps"),
    "piegamenti": ("chest", "front-delts", "triceps"),
    "dip": ("chest", "triceps", "front-delts"),
    # back
    "stacco rumeno": ("hamstrings", "glutes", "lower-back"),
    "romanian deadlift": ("hamstrings", "glutes", "lower-back"),
    "stacco": ("hamstrings", "glutes", "lower-back", "traps", "forearms"),
    "deadlift": ("hamstrings", "glutes", "lower-back", "traps", "forearms"),
    "lat machine": ("lats", "biceps"),
    "lat pulldown": ("lats", "biceps"),
    "pulldown": ("lats", "biceps"),
    "trazioni": ("lats", "biceps", "forearms"),
    "pull up": ("lats", "biceps", "forearms"),
    "pull-up": ("lats", "biceps", "forearms"),
    "chin up": ("lats", "biceps"),
    "rematore": ("lats", "rear-delts", "biceps"),
    "row": ("lats", "rear-delts", "biceps"),
    "pulley": ("lats", "rear-delts", "biceps"),
    "face pull": ("rear-delts", "traps"),
    "scrollate": ("traps",),
    "shrug": ("traps",),
    "hyperextension": ("lower-back", "glutes"),
    "iperestensioni": ("lower-back", "glutes"),
    # shoulders
    "military": ("front-delts", "triceps"),
    "lento avanti": ("front-delts", "triceps"),
    "overhead press": ("front-delts", "triceps"),
    "shoulder press": ("front-delts", "triceps"),
    "arnold": ("front-delts", "triceps"),
    "alzate posteriori": ("rear-delts",),
    "reverse fly": ("rear-delts",),
    "alzate frontali": ("front-delts",),
    "front raise": ("front-delts",),
    "alzate laterali": ("front-delts", "traps"),
    "lateral raise": ("front-delts", "traps"),
    # arms
    "leg curl": ("hamstrings",),
    "wrist curl": ("forearms",),
    "hammer curl": ("biceps", "forearms"),
    "curl": ("biceps", "forearms"),
    "french press": ("triceps",),
    "skull crusher": ("triceps",),
    "pushdown": ("triceps",),
    "push down": ("triceps",),
    "tricep": ("triceps",),
    # legs
    "front squat": ("quads", "glutes", "abs"),
    "squat": ("quads", "glutes", "hamstrings", "lower-back"),
    "leg press": ("quads", "glutes"),
    "pressa": ("quads", "glutes"),
    "leg extension": ("quads",),
    "affondi": ("quads", "glutes", "hamstrings"),
    "lunge": ("quads", "glutes", "hamstrings"),
    "hip thrust": ("glutes", "hamstrings"),
    "ponte glutei": ("glutes", "hamstrings"),
    "adductor": ("adductors",),
    "adduttori": ("adductors",),
    "calf": ("calves",),
    "polpacci": ("calves",),
    # core
    "crunch": ("abs",),
    "plank": ("abs", "obliques"),
    "addominali": ("abs",),
    "russian twist": ("obliques", "abs"),
    "obliqui": ("obliques",),
    "leg raise": ("abs",),
}


def match_exercise_muscles(
    name: Optional[str],
    database: Mapping[str, Iterable[str]] = EXERCISE_DB,
) -> Tuple[str, ...]:
    """Muscles for the first database key contained in the lowercased name."""
    lowered = (name or "").lower().strip()
    if not lowered:
        return ()
    for key, muscles in database.items():
        if key in lowered:
            return tuple(muscles)
    return ()


def recency_multiplier(days_ago: int, settings: FatigueSettings | None = None) -> float:
    """Linear decay: 1.0 today, 0.1 less per day, never below the floor."""
    settings = settings or get_config().fatigue
    return max(settings.min_multiplier, 1 - max(0, days_ago) * settings.decay_per_day)


def calculate_fatigue(
    logs: Iterable[WorkoutLog | Mapping[str, Any]] | None,
    days: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
    database: Mapping[str, Iterable[str]] = EXERCISE_DB,
    settings: FatigueSettings | None = None,
) -> Dict[str, float]:
    """
    Build the muscle fatigue map from the logs inside the lookback window.

    Every known muscle group is present in the result; groups nothing touched
    stay at 0. Logs without a usable date are ignored.
    """
    settings = settings or get_config().fatigue
    lookback = settings.lookback_days if days is None else days
    reference = resolve_now(now)
    cutoff = reference - timedelta(days=lookback)

    fatigue: Dict[str, float] = {muscle: 0.0 for muscle in MUSCLE_GROUPS}
    unmatched: set[str] = set()

    for log in coerce_many(logs, WorkoutLog):
        if log.date is None or log.date < cutoff:
            continue
        days_ago = int((reference - log.date).total_seconds() // DAY_SECONDS)
        multiplier = recency_multiplier(days_ago, settings)

        for exercise in log.exercises:
            muscles = match_exercise_muscles(exercise.name, database)
            if not muscles:
                unmatched.add(exercise.name)
                continue
            load = len(exercise.valid_sets) * settings.load_per_set * multiplier
            for muscle in muscles:
                fatigue[muscle] = fatigue.get(muscle, 0.0) + load

    if unmatched:
        LOGGER.debug("No muscle mapping for: %s", ", ".join(sorted(unmatched)))

    return {muscle: min(MAX_SCORE, max(0.0, score)) for muscle, score in fatigue.items()}


def fatigue_level(score: float) -> str:
    """Heatmap band for a score."""
    if score <= 0:
        return LEVEL_IDLE
    if score < 30:
        return LEVEL_LOW
    if score < 70:
        return LEVEL_ACTIVE
    return LEVEL_OVERLOAD


def muscle_label(muscle: str) -> str:
    return MUSCLE_GROUPS.get(muscle, muscle)


@dataclass(frozen=True)
class SoreMuscle:
    id: str
    label: str
    days_since_stimulus: Optional[int]
    last_stimulus_date: Optional[datetime]


@dataclass(frozen=True)
class SorenessReport:
    date: Optional[datetime]
    recorded_at: datetime
    intensity: Optional[float]
    muscles: List[SoreMuscle] = field(default_factory=list)


@dataclass(frozen=True)
class DomsHotspot:
    muscle: str
    label: str
    occurrences: int
    avg_intensity: Optional[float]
    last_reported_at: Optional[datetime]
    last_intensity: Optional[float]
    avg_recovery_days: Optional[float]
    last_recovery_days: Optional[int]


@dataclass(frozen=True)
class DomsInsights:
    hotspots: List[DomsHotspot] = field(default_factory=list)
    timeline: List[SorenessReport] = field(default_factory=list)
    total_reports: int = 0


@dataclass
class _HotspotStats:
    occurrences: int = 0
    intensity_sum: float = 0.0
    intensity_count: int = 0
    last_report: Optional[datetime] = None
    last_intensity: Optional[float] = None
    gap_sum: int = 0
    gap_count: int = 0
    last_gap: Optional[int] = None


def _last_stimulus_before(
    trained: List[Tuple[datetime, Tuple[str, ...]]],
    muscle: str,
    before: datetime,
) -> Optional[datetime]:
    for when, muscles in reversed(trained):
        if when < before and muscle in muscles:
            return when
    return None


def compute_doms_insights(
    logs: Iterable[WorkoutLog | Mapping[str, Any]] | None,
    *,
    timeline_limit: int = 20,
) -> DomsInsights:
    """
    Relate reported soreness to the training that preceded it.

    For every muscle flagged as sore in a log's wellness block, find the last
    earlier session that trained it and measure the gap in days.
    """
    parsed = coerce_many(logs, WorkoutLog)
    if not parsed:
        return DomsInsights()

    trained: List[Tuple[datetime, Tuple[str, ...]]] = []
    for log in sorted((log for log in parsed if log.date is not None), key=lambda item: item.date):
        muscles: set[str] = set()
        for exercise in log.exercises:
            muscles.update(match_exercise_muscles(exercise.name))
        trained.append((log.date, tuple(sorted(muscles))))

    stats: Dict[str, _HotspotStats] = {}
    timeline: List[SorenessReport] = []

    for log in parsed:
        wellness = log.wellness
        if wellness is None or not wellness.soreness_muscles:
            continue
        recorded_at = wellness.recorded_at or log.date
        if recorded_at is None:
            continue
        intensity = wellness.soreness_level

        sore: List[SoreMuscle] = []
        for muscle in wellness.soreness_muscles:
            stimulus = _last_stimulus_before(trained, muscle, recorded_at)
            gap = (
                max(0, round((recorded_at - stimulus).total_seconds() / DAY_SECONDS))
                if stimulus is not None
                else None
            )
            sore.append(SoreMuscle(muscle, muscle_label(muscle), gap, stimulus))

            bucket = stats.setdefault(muscle, _HotspotStats())
            bucket.occurrences += 1
            if intensity is not None:
                bucket.intensity_sum += intensity
                bucket.intensity_count += 1
            if gap is not None:
                bucket.gap_sum += gap
                bucket.gap_count += 1
            if bucket.last_report is None or recorded_at > bucket.last_report:
                bucket.last_report = recorded_at
                bucket.last_intensity = intensity
                bucket.last_gap = gap

        timeline.append(SorenessReport(log.date, recorded_at, intensity, sore))

    hotspots = [
        DomsHotspot(
            muscle=muscle,
            label=muscle_label(muscle),
            occurrences=bucket.occurrences,
            avg_intensity=(
                round(bucket.intensity_sum / bucket.intensity_count, 1) if bucket.intensity_count else None
            ),
            last_reported_at=bucket.last_report,
            last_intensity=bucket.last_intensity,
            avg_recovery_days=(
                round(bucket.gap_sum / bucket.gap_count, 1) if bucket.gap_count else None
            ),
            last_recovery_days=bucket.last_gap,
        )
        for muscle, bucket in stats.items()
    ]
    hotspots.sort(
        key=lambda spot: (spot.occurrences, spot.last_reported_at.timestamp() if spot.last_reported_at else 0),
        reverse=True,
    )
    timeline.sort(key=lambda report: report.recorded_at, reverse=True)

    return DomsInsights(
        hotspots=hotspots,
        timeline=timeline[:timeline_limit],
        total_reports=len(timeline),
    )
