"""Telemetry writer producing JSON lines."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Iterable, Mapping


def write_history(path: str | Path, records: Iterable[Mapping[str, object]]) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        for record in records:
            handle.write(json.dumps(_finite(record), default=_json_fallback))
            handle.write("\n")


def _finite(value):
    # Non-finite floats (e.g. nan objective for a rejected eta) become null.
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Mapping):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(item) for item in value]
    return value


def _json_fallback(obj):
    if hasattr(obj, "to_list"):
        return obj.to_list()
    if hasattr(obj, "tolist"):
        return obj.tolist()
    raise TypeError(f"object of type {type(obj)!r} is not JSON serializable")
