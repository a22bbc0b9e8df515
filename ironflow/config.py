from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from .env import get_env

try:  # pragma: no cover - Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    try:
        import tomli as tomllib  # type: ignore
    except ModuleNotFoundError:
        tomllib = None  # type: ignore


@dataclass(frozen=True)
class TrendSettings:
    window_days: int = 14
    stable_pct: float = 5.0
    body_weight_delta: float = 0.2
    variant_pct: float = 2.0
    target_sessions_per_week: float = 4.0


@dataclass(frozen=True)
class RecordSettings:
    history_limit: int = 100
    rep_weight_ratio: float = 0.7
    max_reliable_reps: int = 12


@dataclass(frozen=True)
class FatigueSettings:
    lookback_days: int = 7
    load_per_set: float = 20.0
    decay_per_day: float = 0.1
    min_multiplier: float = 0.2


@dataclass(frozen=True)
class AppConfig:
    unit: str = "metric"
    trends: TrendSettings = field(default_factory=TrendSettings)
    records: RecordSettings = field(default_factory=RecordSettings)
    fatigue: FatigueSettings = field(default_factory=FatigueSettings)


def _config_path() -> Path | None:
    """Resolve the TOML configuration file, if present."""
    env_override = get_env("CONFIG")
    if env_override:
        path = Path(env_override).expanduser()
        return path if path.exists() else None

    default_path = Path("config/ironflow.toml")
    if default_path.exists():
        return default_path
    return None


def _load_toml(path: Path) -> Mapping[str, Any]:
    if tomllib is None:
        raise RuntimeError("TOML configuration requires Python 3.11+ or the 'tomli' package.")
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _coerce_unit(raw: Any) -> str:
    if isinstance(raw, str) and raw.strip().lower() in {"metric", "imperial"}:
        return raw.strip().lower()
    return "metric"


# Brzycki divides by 37 - reps
_UPPER_BOUNDS = {"max_reliable_reps": 36}


def _coerce_section(cls: type, raw: Any) -> Any:
    """Build a settings dataclass from a TOML table, keeping defaults for bad values."""
    base = cls()
    if not isinstance(raw, Mapping):
        return base
    values: dict[str, Any] = {}
    for item in fields(cls):
        if item.name not in raw:
            continue
        default = getattr(base, item.name)
        try:
            number = type(default)(raw[item.name])
        except (TypeError, ValueError):
            continue
        if number < 0:
            continue
        if item.name in _UPPER_BOUNDS:
            number = min(number, _UPPER_BOUNDS[item.name])
        values[item.name] = number
    return cls(**values)


def _build_config(raw: Mapping[str, Any]) -> AppConfig:
    return AppConfig(
        unit=_coerce_unit(raw.get("unit")),
        trends=_coerce_section(TrendSettings, raw.get("trends")),
        records=_coerce_section(RecordSettings, raw.get("records")),
        fatigue=_coerce_section(FatigueSettings, raw.get("fatigue")),
    )


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load configuration once, falling back to built-in defaults."""
    path = _config_path()
    if not path:
        return AppConfig()
    data = _load_toml(path)
    return _build_config(data)


def as_dict() -> dict[str, Any]:
    """Return the effective configuration for debug/CLI display."""
    config = get_config()
    payload = asdict(config)
    payload["source"] = str(_config_path() or "defaults")
    return payload
