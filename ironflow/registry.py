"""Catalogue of the metrics the trend engine can report on."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

KG_TO_LBS = 2.20462
IMPERIAL = "imperial"
METRIC = "metric"


class MetricKind(str, Enum):
    FREQUENCY = "frequency"
    VOLUME = "volume"
    BODY_WEIGHT = "bodyWeight"
    PRS = "prs"
    CONSISTENCY = "consistency"
    SLEEP_QUALITY = "sleepQuality"
    ENERGY_LEVEL = "energyLevel"
    STRESS_LEVEL = "stressLevel"
    SORENESS_LEVEL = "sorenessLevel"


WELLNESS_METRICS = (
    MetricKind.SLEEP_QUALITY,
    MetricKind.ENERGY_LEVEL,
    MetricKind.STRESS_LEVEL,
    MetricKind.SORENESS_LEVEL,
)


def normalise_unit(unit: Optional[str]) -> str:
    return IMPERIAL if (unit or "").strip().lower() == IMPERIAL else METRIC


def weight_unit_label(unit: str) -> str:
    return "lbs" if unit == IMPERIAL else "kg"


def to_display_weight(value_kg: float, unit: str) -> float:
    """Stored weights are kilograms; convert only at the display edge."""
    return value_kg * KG_TO_LBS if unit == IMPERIAL else value_kg


def _sessions_per_week(value: float, unit: str) -> str:
    return f"{value:.1f} sessions/week"


def _mean_volume(value: float, unit: str) -> str:
    return f"{round(to_display_weight(value, unit))} {weight_unit_label(unit)}"


def _weight(value: float, unit: str) -> str:
    return f"{to_display_weight(value, unit):.1f} {weight_unit_label(unit)}"


def _percentage(value: float, unit: str) -> str:
    return f"{round(value * 100)}%"


def _ten_point_scale(value: float, unit: str) -> str:
    return f"{value:.1f} / 10"


@dataclass(frozen=True)
class MetricSpec:
    kind: MetricKind
    label: str
    higher_is_better: Optional[bool]
    formatter: Callable[[float, str], str]

    @property
    def id(self) -> str:
        return self.kind.value

    def format(self, value: float, unit: str = METRIC) -> str:
        return self.formatter(value, normalise_unit(unit))


METRICS: dict[MetricKind, MetricSpec] = {
    spec.kind: spec
    for spec in (
        MetricSpec(MetricKind.FREQUENCY, "Training Frequency", True, _sessions_per_week),
        MetricSpec(MetricKind.VOLUME, "Average Volume", True, _mean_volume),
        # Body weight polarity depends on the profile goal.
        MetricSpec(MetricKind.BODY_WEIGHT, "Body Weight", None, _weight),
        MetricSpec(MetricKind.PRS, "PR Progression", True, _weight),
        MetricSpec(MetricKind.CONSISTENCY, "Consistency", True, _percentage),
        MetricSpec(MetricKind.SLEEP_QUALITY, "Sleep Quality", True, _ten_point_scale),
        MetricSpec(MetricKind.ENERGY_LEVEL, "Daily Energy", True, _ten_point_scale),
        MetricSpec(MetricKind.STRESS_LEVEL, "Stress", False, _ten_point_scale),
        MetricSpec(MetricKind.SORENESS_LEVEL, "DOMS / Soreness", False, _ten_point_scale),
    )
}


def get_metric(metric: MetricKind | str) -> MetricSpec:
    """Look a metric up by kind or by its string id; unknown ids raise KeyError."""
    return METRICS[MetricKind(metric)]
