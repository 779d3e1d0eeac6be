"""Parse reporting annotations out of scenario tags."""

from __future__ import annotations

import json
from typing import Iterable

from .models import Link, ParsedTags, PickleTag


def parse_tags(tags: Iterable[PickleTag | str]) -> ParsedTags:
    """Collect @ExternalId, @DisplayName, @Links and friends from raw tags.

    Tags look like ``@Key=value``; keys are matched case-insensitively and
    tags without a value or with an unknown key are ignored.
    """

    parsed = ParsedTags()
    for tag in tags:
        raw = tag.name if isinstance(tag, PickleTag) else str(tag)
        if "=" not in raw:
            continue
        key, value = raw.split("=", 1)
        key = key.lstrip("@").strip().lower()
        value = value.strip()
        if not value:
            continue

        match key:
            case "externalid":
                parsed.external_id = value
            case "displayname":
                parsed.name = value
            case "title":
                parsed.title = value
            case "description":
                parsed.description = value
            case "links":
                parsed.links.append(_parse_link(value))
            case "labels":
                parsed.labels.extend(_split_list(value))
            case "workitemids" | "workitemid":
                parsed.work_item_ids.extend(_split_list(value))
    return parsed


def _parse_link(value: str) -> Link:
    if value.startswith("{"):
        try:
            payload = json.loads(value)
        except json.JSONDecodeError:
            return Link(url=value)
        if isinstance(payload, dict) and "url" in payload:
            return Link.model_validate(payload)
    return Link(url=value)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]
