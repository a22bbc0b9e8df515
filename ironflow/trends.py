from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass
from datetime import datetime
from statistics import mean
from typing import Any, Dict, List, Optional

from .bucketing import Buckets, bucketize, resolve_now
from .config import TrendSettings, get_config
from .models import GOAL_DOWN, GOAL_NEUTRAL, BodyStat, Profile, WorkoutLog, coerce_many
from .registry import WELLNESS_METRICS, MetricKind, get_metric, normalise_unit

LOGGER = logging.getLogger(__name__)

IMPROVING = "improving"
DECLINING = "declining"
STABLE = "stable"
VARIANT = "variant"

POSITIVE = "positive"
NEGATIVE = "negative"
NEUTRAL = "neutral"

INSUFFICIENT_DATA_MESSAGE = (
    "Not enough data to assess recent trends. Log a few workouts and try again."
)

_ARROWS = {IMPROVING: "⬆", DECLINING: "⬇"}
_DEFAULT_ARROW = "➡"


@dataclass(frozen=True)
class TrendDirection:
    status: str
    sentiment: str
    delta: float
    pct: float


@dataclass(frozen=True)
class TrendMetric:
    id: str
    label: str
    current: float
    previous: float
    status: str
    sentiment: str
    delta: float
    pct: float
    summary: str
    formatted_current: str
    formatted_previous: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TrendReport:
    metrics: List[TrendMetric]
    digest: str
    generated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metrics": [metric.to_dict() for metric in self.metrics],
            "digest": self.digest,
            "generatedAt": self.generated_at.isoformat(),
        }


def percent_change(current: float, previous: float) -> float:
    """Relative change in percent; a zero baseline reads as +100% when anything appeared."""
    if not previous:
        return 100.0 if current else 0.0
    return (current - previous) / abs(previous) * 100.0


def epley_estimate(weight: float, reps: int) -> float:
    """
    Cheap one-rep-max estimate used for trend comparisons only.

    Personal records use the Brzycki estimator in `ironflow.records`.
    """
    if weight <= 0 or reps <= 0:
        return 0.0
    return weight * (1 + reps / 30)


def training_days(logs: Iterable[WorkoutLog]) -> int:
    return len({log.date.date() for log in logs if log.date is not None})


def volume_per_session(logs: Sequence[WorkoutLog]) -> float:
    if not logs:
        return 0.0
    return sum(log.total_volume for log in logs) / len(logs)


def pr_snapshot(logs: Iterable[WorkoutLog]) -> float:
    """Average over exercises of each exercise's best Epley estimate."""
    best: Dict[str, float] = {}
    for log in logs:
        for exercise in log.exercises:
            for entry in exercise.valid_sets:
                estimate = epley_estimate(entry.weight, entry.reps)
                if estimate > best.get(exercise.name, 0.0):
                    best[exercise.name] = estimate
    return mean(best.values()) if best else 0.0


def consistency(logs: Sequence[WorkoutLog], target_per_week: float = 4.0) -> float:
    """Share of the theoretical sessions actually trained over the logged span, capped at 1."""
    dates = [log.date for log in logs if log.date is not None]
    if not dates or target_per_week <= 0:
        return 0.0
    span_days = (max(dates) - min(dates)).total_seconds() / 86400
    weeks = max(1.0, span_days / 7)
    return min(1.0, training_days(logs) / (weeks * target_per_week))


def average_wellness(logs: Iterable[WorkoutLog], metric_id: str) -> float:
    values = [
        score
        for score in (log.wellness.score(metric_id) for log in logs if log.wellness is not None)
        if score is not None
    ]
    return mean(values) if values else 0.0


def eval_trend_direction(
    metric: MetricKind | str,
    current: float,
    previous: float,
    goal_direction: str = GOAL_NEUTRAL,
    settings: TrendSettings | None = None,
) -> TrendDirection:
    """Classify the move from `previous` to `current` for one metric."""
    settings = settings or get_config().trends
    spec = get_metric(metric)
    delta = current - previous
    pct = percent_change(current, previous)

    if spec.kind is MetricKind.BODY_WEIGHT:
        if goal_direction == GOAL_NEUTRAL:
            status = VARIANT if abs(pct) > settings.variant_pct else STABLE
            return TrendDirection(status, NEUTRAL, delta, pct)
        if goal_direction == GOAL_DOWN:
            improving = delta < -settings.body_weight_delta
        else:
            improving = delta > settings.body_weight_delta
        return TrendDirection(
            IMPROVING if improving else DECLINING,
            POSITIVE if improving else NEGATIVE,
            delta,
            pct,
        )

    if abs(pct) < settings.stable_pct:
        return TrendDirection(STABLE, NEUTRAL, delta, pct)

    positive = (delta > 0) == bool(spec.higher_is_better)
    return TrendDirection(
        IMPROVING if positive else DECLINING,
        POSITIVE if positive else NEGATIVE,
        delta,
        pct,
    )


def format_delta_text(direction: TrendDirection) -> str:
    arrow = _ARROWS.get(direction.status, _DEFAULT_ARROW)
    if not direction.pct:
        return arrow
    sign = "+" if direction.pct > 0 else ""
    return f"{arrow} {sign}{direction.pct:.1f}%"


def build_digest(metrics: Sequence[TrendMetric]) -> str:
    if not metrics:
        return INSUFFICIENT_DATA_MESSAGE

    positives = [metric.label for metric in metrics if metric.status == IMPROVING]
    negatives = [metric.label for metric in metrics if metric.status == DECLINING]

    positive_text = (
        f"Good news on {', '.join(positives)}"
        if positives
        else "No clear improvement in the recent logs"
    )
    negative_text = (
        f"Keep an eye on {', '.join(negatives)}"
        if negatives
        else "No significant regression detected"
    )
    return f"{positive_text}. {negative_text}. Keep logging to sharpen the tracking."


def _coerce_profile(profile: Profile | Mapping[str, Any] | None) -> Profile:
    if isinstance(profile, Profile):
        return profile
    if isinstance(profile, Mapping):
        return Profile.from_dict(profile)
    return Profile()


class TrendEngine:
    """Compare the recent window against the previous one for every tracked metric."""

    def __init__(self, settings: TrendSettings | None = None) -> None:
        self.settings = settings or get_config().trends

    def evaluate(
        self,
        logs: Iterable[WorkoutLog | Mapping[str, Any]] | None = None,
        body_stats: Iterable[BodyStat | Mapping[str, Any]] | None = None,
        profile: Profile | Mapping[str, Any] | None = None,
        unit: str = "metric",
        *,
        now: Optional[datetime] = None,
    ) -> TrendReport:
        reference = resolve_now(now)
        unit = normalise_unit(unit)
        goal_direction = _coerce_profile(profile).goal_direction
        days = self.settings.window_days
        weeks = max(days, 1) / 7

        log_buckets: Buckets[WorkoutLog] = bucketize(
            coerce_many(logs, WorkoutLog), days, now=reference
        )
        stat_buckets: Buckets[BodyStat] = bucketize(
            coerce_many(body_stats, BodyStat), days, now=reference
        )

        if not log_buckets and not stat_buckets:
            LOGGER.debug("No logs or body stats inside the comparison windows.")
            return TrendReport(metrics=[], digest=INSUFFICIENT_DATA_MESSAGE, generated_at=reference)

        recent, previous = log_buckets.recent, log_buckets.previous
        recent_weight = mean(s.weight for s in stat_buckets.recent) if stat_buckets.recent else 0.0
        previous_weight = (
            mean(s.weight for s in stat_buckets.previous) if stat_buckets.previous else 0.0
        )
        target = self.settings.target_sessions_per_week

        values: List[tuple[MetricKind, float, float]] = [
            (MetricKind.FREQUENCY, training_days(recent) / weeks, training_days(previous) / weeks),
            (MetricKind.VOLUME, volume_per_session(recent), volume_per_session(previous)),
            (
                MetricKind.BODY_WEIGHT,
                recent_weight or previous_weight,
                previous_weight or recent_weight,
            ),
            (MetricKind.PRS, pr_snapshot(recent), pr_snapshot(previous)),
            (
                MetricKind.CONSISTENCY,
                consistency(log_buckets.combined, target),
                consistency(previous, target),
            ),
        ]

        for kind in WELLNESS_METRICS:
            recent_score = average_wellness(recent, kind.value)
            previous_score = average_wellness(previous, kind.value)
            if recent_score or previous_score:
                values.append(
                    (kind, recent_score or previous_score, previous_score or recent_score)
                )

        metrics = [
            self._build_metric(kind, current, prior, goal_direction, unit)
            for kind, current, prior in values
        ]
        return TrendReport(metrics=metrics, digest=build_digest(metrics), generated_at=reference)

    def _build_metric(
        self,
        kind: MetricKind,
        current: float,
        previous: float,
        goal_direction: str,
        unit: str,
    ) -> TrendMetric:
        spec = get_metric(kind)
        direction = eval_trend_direction(kind, current, previous, goal_direction, self.settings)
        return TrendMetric(
            id=spec.id,
            label=spec.label,
            current=current,
            previous=previous,
            status=direction.status,
            sentiment=direction.sentiment,
            delta=direction.delta,
            pct=direction.pct,
            summary=format_delta_text(direction),
            formatted_current=spec.format(current, unit),
            formatted_previous=spec.format(previous, unit),
        )


def evaluate(
    logs: Iterable[WorkoutLog | Mapping[str, Any]] | None = None,
    body_stats: Iterable[BodyStat | Mapping[str, Any]] | None = None,
    profile: Profile | Mapping[str, Any] | None = None,
    unit: str = "metric",
    *,
    now: Optional[datetime] = None,
) -> TrendReport:
    """Module-level shortcut using the configured trend settings."""
    return TrendEngine().evaluate(logs, body_stats, profile, unit, now=now)
