from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import jsonschema
from jsonschema.exceptions import ValidationError

from ..models.table import MaterializedTable

"""Source header -> destination column mapping.

Two ways to get a mapping:
- match_headers(): deterministic, alias table first, then normalized names
- suggest_header_map(): ask a text-generation collaborator; its answer is
  validated against GENERATED_MAP_SCHEMA and filtered to known names, and any
  failure degrades to an empty mapping
"""

__all__ = [
    "normalize_name",
    "match_headers",
    "apply_header_map",
    "index_header_map",
    "validate_generated_header_map",
    "suggest_header_map",
    "GENERATED_MAP_SCHEMA",
]

logger = logging.getLogger(__name__)

GENERATED_MAP_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["headerMap"],
    "properties": {
        "headerMap": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        }
    },
}

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_SPACES_RE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """``"# de venta:"`` -> ``"deventa"``."""
    return _NON_ALNUM_RE.sub("", (name or "").strip().lower())


def match_headers(
    headers: Sequence[str],
    columns: Sequence[str],
    aliases: Mapping[str, str] | None = None,
) -> dict[int, str]:
    """Header index -> destination column for every header that matches.

    Each destination column is used at most once (first header wins).
    """
    aliases = aliases or {}
    alias_index = [(alias, normalize_name(alias), column) for alias, column in aliases.items()]
    used: set[str] = set()
    result: dict[int, str] = {}
    for i, header in enumerate(headers):
        raw = str(header or "")
        clean = normalize_name(raw)
        underscored = _SPACES_RE.sub("_", raw.strip().lower())
        if not clean:
            continue
        match = next(
            (
                c
                for c in columns
                if c not in used
                and any(col == c and (alias_clean == clean or alias == raw) for alias, alias_clean, col in alias_index)
            ),
            None,
        )
        if match is None:
            match = next(
                (c for c in columns if c not in used and (normalize_name(c) == clean or c == underscored)),
                None,
            )
        if match is not None:
            result[i] = match
            used.add(match)
    return result


def apply_header_map(table: MaterializedTable, header_map: Mapping[int, str]) -> MaterializedTable:
    """Keep only mapped columns, renamed to their destination names."""
    keep = [i for i in range(len(table.headers)) if i in header_map]
    return MaterializedTable(
        headers=[header_map[i] for i in keep],
        rows=[[row[i] for i in keep] for row in table.rows],
    )


def index_header_map(headers: Sequence[str], name_map: Mapping[str, str]) -> dict[int, str]:
    """Header-name keyed mapping (as generated) -> header-index keyed mapping."""
    result: dict[int, str] = {}
    used: set[str] = set()
    for i, header in enumerate(headers):
        column = name_map.get(header)
        if column is not None and column not in used:
            result[i] = column
            used.add(column)
    return result


def validate_generated_header_map(
    payload: Any, headers: Sequence[str], columns: Sequence[str]
) -> dict[str, str]:
    """Trust a generated ``{"headerMap": {...}}`` only after checking it.

    Entries naming an unknown header or column are dropped; a payload of the
    wrong shape yields ``{}``.
    """
    try:
        jsonschema.validate(payload, GENERATED_MAP_SCHEMA)
    except ValidationError as e:
        logger.warning("generated header map rejected: %s", e.message)
        return {}
    known_headers = set(headers)
    known_columns = set(columns)
    return {
        h: c
        for h, c in payload["headerMap"].items()
        if h in known_headers and c in known_columns
    }


def suggest_header_map(
    generate: Callable[[dict[str, Any]], Any],
    headers: Sequence[str],
    columns: Sequence[str],
) -> dict[str, str]:
    """Ask the generation collaborator for a mapping; ``{}`` when it fails."""
    request = {"csvHeaders": list(headers), "dbColumns": list(columns)}
    try:
        payload = generate(request)
    except Exception as e:
        logger.warning("header map generation failed: %s", e)
        return {}
    if payload is None:
        return {}
    return validate_generated_header_map(payload, headers, columns)
