"""Tool-call argument normalization.

Upstream sometimes delivers tool arguments as a JSON string and sometimes as
an already-parsed mapping. Both shapes are wrapped in ``RawArgs`` and turned
into one canonical ``dict`` by ``normalize_arguments``.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JsonText:
    """Arguments still encoded as JSON text."""

    text: str


@dataclass(frozen=True)
class Parsed:
    """Arguments already decoded to a mapping."""

    value: Mapping[str, Any]


RawArgs = JsonText | Parsed


def to_raw_args(value: Any) -> RawArgs:
    """Tag an untyped upstream value."""
    if isinstance(value, JsonText | Parsed):
        return value
    if isinstance(value, str):
        return JsonText(value)
    if isinstance(value, Mapping):
        return Parsed(value)
    return Parsed({})


def normalize_arguments(raw: RawArgs | str | Mapping[str, Any] | None) -> dict[str, Any]:
    """Return the canonical argument mapping, empty when decoding fails."""
    if raw is None:
        return {}
    tagged = to_raw_args(raw)

    if isinstance(tagged, Parsed):
        return dict(tagged.value)

    text = tagged.text.strip()
    if not text:
        return {}
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Could not decode tool arguments: %r", text[:200])
        return {}
    if not isinstance(decoded, dict):
        logger.warning("Tool arguments are not an object: %r", text[:200])
        return {}
    return decoded
