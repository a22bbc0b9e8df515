from __future__ import annotations

import os

PRIMARY_PREFIX = "IRONFLOW_"
LEGACY_PREFIX = "GYMBRO_"


def get_env(name: str, default: str | None = None) -> str | None:
    """
    Resolve configuration environment variables.

    Prefers the IronFlow prefix while still honouring the GymBro names used by
    the mobile builds.
    """
    for prefix in (PRIMARY_PREFIX, LEGACY_PREFIX):
        value = os.getenv(f"{prefix}{name}")
        if value is not None:
            return value
    return default
