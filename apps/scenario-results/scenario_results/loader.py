"""Cucumber message file loading utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator


def iter_envelopes(path: Path) -> Iterator[dict[str, Any]]:
    """Yield message envelopes from an NDJSON file written by the cucumber message formatter."""

    with path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            text = line.strip()
            if not text:
                continue
            try:
                envelope = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{line_number} is not valid JSON: {exc}") from exc
            if not isinstance(envelope, dict):
                raise ValueError(f"{path}:{line_number} must contain a JSON object")
            yield envelope
