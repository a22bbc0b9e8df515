from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

GOAL_DOWN = "down"
GOAL_UP = "up"
GOAL_NEUTRAL = "neutral"

CUT_KEYWORDS = ("cut", "deficit", "lean", "perdita", "definiz")
BULK_KEYWORDS = ("bulk", "massa", "strength", "ipertrof", "gain")

WELLNESS_FIELDS = {
    "sleepQuality": "sleep_quality",
    "energyLevel": "energy_level",
    "stressLevel": "stress_level",
    "sorenessLevel": "soreness_level",
}

_SET_TOKEN = re.compile(r"^\s*(\d+(?:[.,]\d+)?)\s*[x×*]\s*(\d+)\s*$", re.IGNORECASE)

__all__ = [
    "parse_timestamp",
    "parse_iso_date",
    "coerce_number",
    "coerce_reps",
    "parse_set_token",
    "classify_goal",
    "coerce_many",
    "SetEntry",
    "ExerciseEntry",
    "Wellness",
    "WorkoutLog",
    "BodyStat",
    "Profile",
    "ValidationError",
]


class ValidationError(ValueError):
    """Raised when user-supplied data cannot be normalised safely."""


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Leniently parse a timestamp into an aware UTC datetime.

    Accepts `datetime`, `date`, ISO-8601 text (a trailing `Z` is allowed) and
    epoch milliseconds. Anything else yields None so callers can treat it as
    missing data.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        timestamp = value
    elif isinstance(value, date):
        timestamp = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            timestamp = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        if candidate.endswith(("Z", "z")):
            candidate = candidate[:-1] + "+00:00"
        try:
            timestamp = datetime.fromisoformat(candidate)
        except ValueError:
            return None
    else:
        return None

    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def parse_iso_date(value: Any, *, field: str = "date") -> datetime:
    """
    Strict counterpart of `parse_timestamp` for user input.

    Raises `ValidationError` with a friendlier message if the payload cannot be
    parsed.
    """
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{field} cannot be empty.")
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValidationError(
            f"{field} must be a valid ISO date (YYYY-MM-DD); received {value!r}."
        )
    return parsed


def coerce_number(value: Any, default: float = 0.0) -> float:
    """Convert arbitrary input into a finite float, or `default` when impossible."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", "."))
        except ValueError:
            return default
    else:
        return default
    return number if math.isfinite(number) else default


def coerce_reps(value: Any) -> int:
    """Repetitions are whole numbers; fractional input is truncated."""
    return int(coerce_number(value))


def parse_set_token(token: str, *, field: str = "set") -> "SetEntry":
    """Parse a `WEIGHTxREPS` token such as `100x5` or `22.5 x 12`."""
    match = _SET_TOKEN.match(token or "")
    if not match:
        raise ValidationError(f"{field} must look like WEIGHTxREPS (e.g. 100x5); received {token!r}.")
    weight = float(match.group(1).replace(",", "."))
    reps = int(match.group(2))
    return SetEntry(weight=weight, reps=reps)


def classify_goal(goal: Optional[str]) -> str:
    """Map a free-text goal onto the body-weight direction it implies."""
    text = (goal or "").lower()
    if any(keyword in text for keyword in CUT_KEYWORDS):
        return GOAL_DOWN
    if any(keyword in text for keyword in BULK_KEYWORDS):
        return GOAL_UP
    return GOAL_NEUTRAL


def _optional_score(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


@dataclass(frozen=True)
class SetEntry:
    weight: float
    reps: int

    @property
    def is_valid(self) -> bool:
        return self.weight > 0 and self.reps > 0

    @property
    def volume(self) -> float:
        return self.weight * self.reps if self.is_valid else 0.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SetEntry":
        return cls(weight=coerce_number(payload.get("weight")), reps=coerce_reps(payload.get("reps")))

    def to_dict(self) -> Dict[str, Any]:
        return {"weight": self.weight, "reps": self.reps}


@dataclass(frozen=True)
class ExerciseEntry:
    name: str
    sets: Tuple[SetEntry, ...] = ()

    @property
    def valid_sets(self) -> Tuple[SetEntry, ...]:
        return tuple(entry for entry in self.sets if entry.is_valid)

    @property
    def volume(self) -> float:
        return sum(entry.volume for entry in self.sets)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExerciseEntry":
        raw_sets = payload.get("sets") or []
        sets = tuple(SetEntry.from_dict(item) for item in raw_sets if isinstance(item, Mapping))
        return cls(name=str(payload.get("name") or "").strip(), sets=sets)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "sets": [entry.to_dict() for entry in self.sets]}


@dataclass(frozen=True)
class Wellness:
    """Self-reported readiness scores on a 0-10 scale."""

    sleep_quality: Optional[float] = None
    energy_level: Optional[float] = None
    stress_level: Optional[float] = None
    soreness_level: Optional[float] = None
    soreness_muscles: Tuple[str, ...] = ()
    recorded_at: Optional[datetime] = None

    def score(self, metric_id: str) -> Optional[float]:
        """Look a score up by its trend metric id (e.g. `sleepQuality`)."""
        attribute = WELLNESS_FIELDS.get(metric_id)
        return getattr(self, attribute) if attribute else None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Wellness":
        muscles = payload.get("sorenessMuscles", payload.get("soreness_muscles")) or []
        if isinstance(muscles, str):
            muscles = [muscles]
        return cls(
            sleep_quality=_optional_score(_pick(payload, "sleepQuality", "sleep_quality")),
            energy_level=_optional_score(_pick(payload, "energyLevel", "energy_level")),
            stress_level=_optional_score(_pick(payload, "stressLevel", "stress_level")),
            soreness_level=_optional_score(_pick(payload, "sorenessLevel", "soreness_level")),
            soreness_muscles=tuple(str(item).strip() for item in muscles if str(item).strip()),
            recorded_at=parse_timestamp(_pick(payload, "recordedAt", "recorded_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for metric_id, attribute in WELLNESS_FIELDS.items():
            value = getattr(self, attribute)
            if value is not None:
                payload[metric_id] = value
        if self.soreness_muscles:
            payload["sorenessMuscles"] = list(self.soreness_muscles)
        if self.recorded_at is not None:
            payload["recordedAt"] = self.recorded_at.isoformat()
        return payload


@dataclass(frozen=True)
class WorkoutLog:
    """A single saved training session. Never mutated once created."""

    date: Optional[datetime]
    exercises: Tuple[ExerciseEntry, ...] = ()
    wellness: Optional[Wellness] = None

    @property
    def total_volume(self) -> float:
        return sum(exercise.volume for exercise in self.exercises)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkoutLog":
        raw_exercises = payload.get("exercises") or []
        exercises = tuple(
            ExerciseEntry.from_dict(item) for item in raw_exercises if isinstance(item, Mapping)
        )
        wellness_raw = payload.get("wellness")
        wellness = Wellness.from_dict(wellness_raw) if isinstance(wellness_raw, Mapping) else None
        return cls(date=parse_timestamp(payload.get("date")), exercises=exercises, wellness=wellness)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "date": self.date.isoformat() if self.date else None,
            "exercises": [exercise.to_dict() for exercise in self.exercises],
            "totalVolume": round(self.total_volume, 1),
        }
        if self.wellness is not None:
            payload["wellness"] = self.wellness.to_dict()
        return payload


@dataclass(frozen=True)
class BodyStat:
    date: Optional[datetime]
    weight: float

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "BodyStat":
        return cls(
            date=parse_timestamp(_pick(payload, "date", "recordedAt", "recorded_at")),
            weight=coerce_number(payload.get("weight")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat() if self.date else None, "weight": self.weight}


@dataclass(frozen=True)
class Profile:
    goal: str = ""

    @property
    def goal_direction(self) -> str:
        return classify_goal(self.goal)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "Profile":
        if not payload:
            return cls()
        goal = _pick(payload, "goal", "objective")
        return cls(goal=str(goal).strip() if goal else "")

    def to_dict(self) -> Dict[str, Any]:
        return {"goal": self.goal}


def coerce_many(items: Iterable[Any] | None, model: Any) -> List[Any]:
    """Accept model instances or raw mappings; silently skip anything else."""
    coerced: List[Any] = []
    for item in items or []:
        if isinstance(item, model):
            coerced.append(item)
        elif isinstance(item, Mapping):
            coerced.append(model.from_dict(item))
    return coerced
