from __future__ import annotations

import json
import logging
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .env import get_env
from .models import BodyStat, Profile, WorkoutLog, coerce_many
from .records import PersonalRecordEntry, PRHistoryEntry

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
LOGS_FILENAME = "logs.json"
BODY_STATS_FILENAME = "body_stats.json"
PROFILE_FILENAME = "profile.json"
RECORDS_FILENAME = "personal_records.json"
HISTORY_FILENAME = "pr_history.json"
LOGGER = logging.getLogger(__name__)


def _data_dir() -> Path:
    override = get_env("DATA_DIR")
    base = Path(override).expanduser() if override else DEFAULT_DATA_DIR
    base.mkdir(parents=True, exist_ok=True)
    return base


def _data_file(env_name: str, filename: str) -> Path:
    override = get_env(env_name)
    if override:
        target = Path(override).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        return target
    return _data_dir() / filename


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n"

    with NamedTemporaryFile("w", dir=path.parent, delete=False, encoding="utf-8") as tmp:
        tmp.write(text)
        temp_path = Path(tmp.name)
    temp_path.replace(path)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    raw = path.read_text(encoding="utf-8").strip()
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Could not parse {path}: {exc}") from exc


def _read_json_list(path: Path) -> List[Any]:
    payload = _read_json(path, [])
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a JSON list")
    return payload


def logs_file() -> Path:
    return _data_file("LOGS_FILE", LOGS_FILENAME)


def load_logs() -> List[WorkoutLog]:
    """Stored workout logs, newest first."""
    logs = coerce_many(_read_json_list(logs_file()), WorkoutLog)
    return sort_newest_first(logs)


def save_logs(logs: Iterable[WorkoutLog]) -> None:
    _write_json(logs_file(), [log.to_dict() for log in sort_newest_first(logs)])


def append_log(log: WorkoutLog) -> List[WorkoutLog]:
    logs = load_logs()
    logs.append(log)
    save_logs(logs)
    return sort_newest_first(logs)


def sort_newest_first(items: Iterable[Any]) -> List[Any]:
    """Order dated items by recency; undated items sink to the end."""
    items = list(items)
    dated = sorted((item for item in items if item.date is not None), key=lambda item: item.date, reverse=True)
    return dated + [item for item in items if item.date is None]


def body_stats_file() -> Path:
    return _data_file("BODY_STATS_FILE", BODY_STATS_FILENAME)


def load_body_stats() -> List[BodyStat]:
    return sort_newest_first(coerce_many(_read_json_list(body_stats_file()), BodyStat))


def append_body_stat(stat: BodyStat) -> List[BodyStat]:
    stats = load_body_stats()
    stats.append(stat)
    stats = sort_newest_first(stats)
    _write_json(body_stats_file(), [item.to_dict() for item in stats])
    return stats


def profile_file() -> Path:
    return _data_file("PROFILE_FILE", PROFILE_FILENAME)


def load_profile() -> Profile:
    payload = _read_json(profile_file(), {})
    return Profile.from_dict(payload if isinstance(payload, Mapping) else None)


def save_profile(profile: Profile) -> None:
    _write_json(profile_file(), profile.to_dict())


class JsonRecordStore:
    """
    Record store backed by two JSON files.

    Corrupt files are logged and treated as empty so a damaged history never
    blocks saving new workouts.
    """

    def __init__(self, records_path: Path | None = None, history_path: Path | None = None) -> None:
        self.records_path = records_path or _data_file("RECORDS_FILE", RECORDS_FILENAME)
        self.history_path = history_path or _data_file("HISTORY_FILE", HISTORY_FILENAME)

    def _load(self, path: Path, default: Any) -> Any:
        try:
            payload = _read_json(path, default)
        except ValueError as exc:
            LOGGER.warning("Ignoring unreadable record file: %s", exc)
            return default
        if not isinstance(payload, type(default)):
            LOGGER.warning("Ignoring %s: unexpected top-level %s", path, type(payload).__name__)
            return default
        return payload

    def load_records(self) -> Dict[str, PersonalRecordEntry]:
        payload = self._load(self.records_path, {})
        return {
            str(key): PersonalRecordEntry.from_dict(value)
            for key, value in payload.items()
            if isinstance(value, Mapping)
        }

    def save_records(self, records: Mapping[str, PersonalRecordEntry]) -> None:
        _write_json(self.records_path, {key: entry.to_dict() for key, entry in records.items()})
        LOGGER.debug("Saved %d personal records to %s", len(records), self.records_path)

    def load_history(self) -> List[PRHistoryEntry]:
        payload = self._load(self.history_path, [])
        return [PRHistoryEntry.from_dict(item) for item in payload if isinstance(item, Mapping)]

    def save_history(self, history: Sequence[PRHistoryEntry]) -> None:
        _write_json(self.history_path, [entry.to_dict() for entry in history])
