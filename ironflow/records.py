from __future__ import annotations

import logging
import math
import re
import threading
import unicodedata
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from .bucketing import utc_now
from .config import RecordSettings, get_config
from .models import ExerciseEntry, WorkoutLog, coerce_number

LOGGER = logging.getLogger(__name__)

RECORD_WEIGHT = "weight"
RECORD_1RM = "1rm"
RECORD_REPS = "reps"
RECORD_VOLUME = "volume"

RECORD_LABELS = {
    RECORD_WEIGHT: "Max Weight",
    RECORD_1RM: "Estimated 1RM",
    RECORD_REPS: "Max Reps",
    RECORD_VOLUME: "Max Volume",
}

_BRACKETS = re.compile(r"[()\[\]{}]")
_LOAD_TOKEN = re.compile(r"\d+(?:[.,]\d+)?\s*(?:kgs?|lbs?)?", re.IGNORECASE)
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_exercise_name(name: Optional[str]) -> str:
    """
    Canonical key for an exercise name.

    "Panca Piana (20kg)", "panca  piana" and "Pancá-Piana" all collapse onto
    "panca piana".
    """
    text = unicodedata.normalize("NFD", (name or "").lower())
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = _BRACKETS.sub("", text)
    text = _LOAD_TOKEN.sub(" ", text)
    text = _PUNCTUATION.sub(" ", text).replace("_", " ")
    return _WHITESPACE.sub(" ", text).strip()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def brzycki_1rm(weight: float, reps: int, max_reliable_reps: int = 12) -> float:
    """
    Estimated one-rep max via Brzycki: weight * 36 / (37 - reps).

    Single reps are taken at face value and sets above `max_reliable_reps` are
    not extrapolated at all. The formula breaks down from 37 reps on, so
    those sets also count at face value.
    """
    if weight <= 0 or reps <= 0:
        return 0
    if reps == 1 or reps > max_reliable_reps or reps >= 37:
        return weight
    return _round_half_up(weight * 36 / (37 - reps))


def _coerce_stamp(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class PersonalRecordEntry:
    display_name: str
    max_weight: float = 0.0
    max_1rm: float = 0.0
    max_volume: float = 0.0
    max_reps: int = 0
    last_updated: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PersonalRecordEntry":
        return cls(
            display_name=str(payload.get("displayName") or payload.get("display_name") or ""),
            max_weight=coerce_number(payload.get("maxWeight", payload.get("max_weight"))),
            max_1rm=coerce_number(payload.get("max1RM", payload.get("max_1rm"))),
            max_volume=coerce_number(payload.get("maxVolume", payload.get("max_volume"))),
            max_reps=int(coerce_number(payload.get("maxReps", payload.get("max_reps")))),
            last_updated=_coerce_stamp(payload.get("lastUpdated", payload.get("last_updated"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displayName": self.display_name,
            "maxWeight": self.max_weight,
            "max1RM": self.max_1rm,
            "maxVolume": self.max_volume,
            "maxReps": self.max_reps,
            "lastUpdated": self.last_updated,
        }


@dataclass(frozen=True)
class RecordChange:
    type: str
    label: str
    old_value: float
    new_value: float
    unit: str
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "type": self.type,
            "label": self.label,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "unit": self.unit,
        }
        if self.context:
            payload["context"] = self.context
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RecordChange":
        return cls(
            type=str(payload.get("type") or ""),
            label=str(payload.get("label") or ""),
            old_value=coerce_number(payload.get("oldValue", payload.get("old_value"))),
            new_value=coerce_number(payload.get("newValue", payload.get("new_value"))),
            unit=str(payload.get("unit") or ""),
            context=payload.get("context"),
        )


@dataclass(frozen=True)
class PRDetection:
    """Every record one exercise beat within a single workout log."""

    exercise: str
    date: Optional[str]
    records: List[RecordChange] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise": self.exercise,
            "date": self.date,
            "records": [record.to_dict() for record in self.records],
        }


@dataclass(frozen=True)
class PRHistoryEntry:
    exercise: str
    date: Optional[str]
    records: List[RecordChange]
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise": self.exercise,
            "date": self.date,
            "records": [record.to_dict() for record in self.records],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PRHistoryEntry":
        records = [
            RecordChange.from_dict(item)
            for item in payload.get("records") or []
            if isinstance(item, Mapping)
        ]
        return cls(
            exercise=str(payload.get("exercise") or ""),
            date=payload.get("date"),
            records=records,
            timestamp=str(payload.get("timestamp") or ""),
        )


@dataclass(frozen=True)
class PRNotification:
    title: str
    body: str
    extra_records: int = 0


class RecordStore(Protocol):
    """Persistence boundary for the record map and the capped detection history."""

    def load_records(self) -> Dict[str, PersonalRecordEntry]: ...

    def save_records(self, records: Mapping[str, PersonalRecordEntry]) -> None: ...

    def load_history(self) -> List[PRHistoryEntry]: ...

    def save_history(self, history: Sequence[PRHistoryEntry]) -> None: ...


class NotificationSink(Protocol):
    def notify(self, detection: PRDetection) -> None: ...


class InMemoryRecordStore:
    """Record store kept in process memory; handy for tests and dry runs."""

    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}
        self.history: List[Dict[str, Any]] = []
        self.saves = 0

    def load_records(self) -> Dict[str, PersonalRecordEntry]:
        return {key: PersonalRecordEntry.from_dict(value) for key, value in self.records.items()}

    def save_records(self, records: Mapping[str, PersonalRecordEntry]) -> None:
        self.records = {key: entry.to_dict() for key, entry in records.items()}
        self.saves += 1

    def load_history(self) -> List[PRHistoryEntry]:
        return [PRHistoryEntry.from_dict(item) for item in self.history]

    def save_history(self, history: Sequence[PRHistoryEntry]) -> None:
        self.history = [entry.to_dict() for entry in history]


def _format_number(value: float) -> str:
    return f"{value:g}"


def format_pr_notification(detection: PRDetection) -> Optional[PRNotification]:
    """Headline text for a detection; the first record leads, the rest are counted."""
    if not detection.records:
        return None
    main = detection.records[0]
    improvement = ""
    if main.old_value > 0:
        improvement = f" (+{main.new_value - main.old_value:.1f}{main.unit})"
    return PRNotification(
        title=f"New PR: {detection.exercise}",
        body=f"{main.label}: {_format_number(main.new_value)}{main.unit}{improvement}",
        extra_records=len(detection.records) - 1,
    )


def _bigrams(text: str) -> set[str]:
    return {text[index : index + 2] for index in range(len(text) - 1)}


def name_similarity(first: str, second: str) -> float:
    """Dice coefficient over character bigrams."""
    if first == second:
        return 1.0
    if not first or not second:
        return 0.0
    left, right = _bigrams(first), _bigrams(second)
    if not left and not right:
        return 0.0
    return 2 * len(left & right) / (len(left) + len(right))


def resolve_exercise_name(name: str, known: Iterable[str], threshold: float = 0.85) -> str:
    """
    Reuse an already-known display name for `name` when one matches.

    Exact matches on the normalised key win; otherwise the first known name
    whose bigram similarity exceeds `threshold` is returned.
    """
    if not name:
        return name
    candidates = list(known)
    target = normalize_exercise_name(name)
    for existing in candidates:
        if normalize_exercise_name(existing) == target:
            return existing
    for existing in candidates:
        if name_similarity(target, normalize_exercise_name(existing)) > threshold:
            return existing
    return name


class PRTracker:
    """
    Detect personal records as workout logs are saved.

    The record map is loaded from `store` on construction and written back
    after every detection. Record fields only ever increase, so replaying a
    log that was already processed yields nothing.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        notifiers: Sequence[NotificationSink] = (),
        settings: RecordSettings | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.notifiers = list(notifiers)
        self.settings = settings or get_config().records
        self._lock = threading.Lock()
        self.personal_records: Dict[str, PersonalRecordEntry] = store.load_records()
        self.history: List[PRHistoryEntry] = store.load_history()

    def add_notifier(self, sink: NotificationSink) -> None:
        self.notifiers.append(sink)

    def detect_prs_from_log(self, log: WorkoutLog | Mapping[str, Any] | None) -> List[PRDetection]:
        if isinstance(log, Mapping):
            log = WorkoutLog.from_dict(log)
        if not isinstance(log, WorkoutLog):
            return []

        with self._lock:
            detections, created = self._apply(log)
            if detections or created:
                self.store.save_records(self.personal_records)
            if detections:
                stamp = self.clock().isoformat()
                fresh = [
                    PRHistoryEntry(d.exercise, d.date, list(d.records), stamp)
                    for d in detections
                ]
                fresh.reverse()
                self.history = (fresh + self.history)[: self.settings.history_limit]
                self.store.save_history(self.history)
                LOGGER.info(
                    "Detected %d personal record(s) in log dated %s",
                    sum(len(d.records) for d in detections),
                    log.date.isoformat() if log.date else "n/a",
                )

        for detection in detections:
            self._dispatch(detection)
        return detections

    def _apply(self, log: WorkoutLog) -> tuple[List[PRDetection], bool]:
        detections: List[PRDetection] = []
        created = False
        log_date = log.date.isoformat() if log.date else None
        for exercise in log.exercises:
            name = exercise.name.strip()
            if not name:
                continue
            key = normalize_exercise_name(name)
            if key not in self.personal_records:
                self.personal_records[key] = PersonalRecordEntry(display_name=name)
                created = True
            entry = self.personal_records[key]
            records = self._check_exercise(entry, exercise)
            if records:
                entry.last_updated = self.clock().isoformat()
                entry.display_name = name
                detections.append(PRDetection(exercise=name, date=log_date, records=records))
        return detections, created

    def _check_exercise(
        self, entry: PersonalRecordEntry, exercise: ExerciseEntry
    ) -> List[RecordChange]:
        records: List[RecordChange] = []
        for item in exercise.valid_sets:
            weight, reps = item.weight, item.reps

            if weight > entry.max_weight:
                records.append(
                    RecordChange(RECORD_WEIGHT, RECORD_LABELS[RECORD_WEIGHT], entry.max_weight, weight, "kg")
                )
                entry.max_weight = weight

            estimate = brzycki_1rm(weight, reps, self.settings.max_reliable_reps)
            if estimate > entry.max_1rm:
                records.append(
                    RecordChange(RECORD_1RM, RECORD_LABELS[RECORD_1RM], entry.max_1rm, estimate, "kg")
                )
                entry.max_1rm = estimate

            # Light warm-up sets never count as rep records.
            threshold = entry.max_weight * self.settings.rep_weight_ratio
            heavy_enough = entry.max_weight > 0 and weight >= threshold
            if heavy_enough and reps > entry.max_reps:
                records.append(
                    RecordChange(
                        RECORD_REPS,
                        RECORD_LABELS[RECORD_REPS],
                        entry.max_reps,
                        reps,
                        "reps",
                        context=f"@ {_format_number(weight)}kg",
                    )
                )
                entry.max_reps = reps

        volume = _round_half_up(exercise.volume)
        if volume > entry.max_volume:
            records.append(
                RecordChange(RECORD_VOLUME, RECORD_LABELS[RECORD_VOLUME], entry.max_volume, volume, "kg")
            )
            entry.max_volume = volume
        return records

    def _dispatch(self, detection: PRDetection) -> None:
        for sink in self.notifiers:
            try:
                sink.notify(detection)
            except Exception:  # the record is already stored
                LOGGER.warning("Notification sink %r failed for %s", sink, detection.exercise, exc_info=True)

    def get_prs_for_exercise(self, name: str) -> Optional[PersonalRecordEntry]:
        return self.personal_records.get(normalize_exercise_name(name))

    def get_all_prs(self) -> List[Dict[str, Any]]:
        """All records, most recently improved first; never-improved entries last."""
        rows = [
            {"normalizedName": key, **entry.to_dict()}
            for key, entry in self.personal_records.items()
        ]
        rows.sort(key=lambda row: row["lastUpdated"] or "", reverse=True)
        return rows

    def get_pr_history(self, limit: int = 20) -> List[PRHistoryEntry]:
        return self.history[:limit]

    def exercise_names(self) -> List[str]:
        return [entry.display_name for entry in self.personal_records.values() if entry.display_name]
