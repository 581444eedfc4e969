"""
Suggestion parser skill.

Turns free-form recommendation text into candidate chart dicts. Two
independent passes, results concatenated in this order:

1. structured blocks: fenced code blocks holding JSON (one object, an array,
   or an object wrapping an array under ``charts``/``suggestions``/
   ``recommendations``);
2. marker blocks: ``CHART_SUGGESTION`` ... ``END_SUGGESTION`` sections of
   ``Key: value`` lines.

Malformed blocks are logged and skipped; parsing never raises. Candidates are
*not* validated here; that is the validator's job.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from core.models import ChartType, DataTransformSpec, Priority

logger = logging.getLogger(__name__)

MARKER_CONFIDENCE = 0.8
MARKER_REASONING = "Generated from AI text analysis"

_FENCE_RE = re.compile(r"```[ \t]*([A-Za-z0-9_+-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)
_MARKER_RE = re.compile(r"CHART_SUGGESTION[ \t]*\r?\n(.*?)\r?\n[ \t]*END_SUGGESTION", re.DOTALL)
_STRUCTURED_TAGS = {"json", "json5", "jsonc"}
_WRAPPER_KEYS = ("charts", "suggestions", "recommendations")


# ---------------------------------------------------------------------------
# Pass 1: structured (fenced JSON) blocks
# ---------------------------------------------------------------------------

def extract_structured_blocks(text: str) -> List[str]:
    """Return the bodies of fenced blocks that carry JSON."""
    blocks: List[str] = []
    for m in _FENCE_RE.finditer(text or ""):
        tag = m.group(1).strip().lower()
        body = m.group(2).strip()
        if tag in _STRUCTURED_TAGS or (not tag and body[:1] in ("{", "[")):
            blocks.append(body)
    return blocks


_re_trailing_commas = re.compile(r",(\s*[}\]])")
_re_single_quoted = re.compile(r"'([^'\\]*(?:\\.[^'\\]*)*)'")
_re_bare_literals = re.compile(r"\b(?:None|True|False)\b")


def _try_repair_json(s: str) -> Any:
    t = _re_trailing_commas.sub(r"\1", s)
    t = _re_bare_literals.sub(lambda m: {"None": "null", "True": "true", "False": "false"}[m.group(0)], t)
    t = _re_single_quoted.sub(lambda m: '"' + m.group(1).replace('"', '\\"') + '"', t)
    return json.loads(t)


def decode_structured_block(block: str) -> List[Dict[str, Any]]:
    """Decode one block into raw suggestion dicts.

    Raises ValueError when the block is not (repairable) JSON.
    """
    try:
        obj = json.loads(block)
    except ValueError:
        obj = _try_repair_json(block)

    if isinstance(obj, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(obj.get(key), list):
                obj = obj[key]
                break
    if isinstance(obj, dict):
        return [obj]
    if isinstance(obj, list):
        return [item for item in obj if isinstance(item, dict)]
    raise ValueError(f"block decoded to {type(obj).__name__}, expected object or array")


# ---------------------------------------------------------------------------
# Pass 2: marker blocks with Key: value lines
# ---------------------------------------------------------------------------

def extract_marker_blocks(text: str) -> List[Dict[str, str]]:
    """Return each marker block as a lower-cased ``key -> value`` dict."""
    blocks: List[Dict[str, str]] = []
    for m in _MARKER_RE.finditer(text or ""):
        fields: Dict[str, str] = {}
        for line in m.group(1).splitlines():
            key, sep, value = line.partition(":")
            if not sep:
                continue
            key = key.strip().lower()
            if key and key not in fields:
                fields[key] = value.strip()
        blocks.append(fields)
    return blocks


def _mapping_from_columns(chart_type: Optional[ChartType], columns: List[str]) -> Dict[str, Any]:
    if not columns:
        return {}
    if chart_type is ChartType.table:
        return {"columns": columns}
    if chart_type is ChartType.scorecard:
        return {"metric": columns[0]}
    if chart_type is ChartType.pie:
        mapping: Dict[str, Any] = {"category": columns[0]}
        if len(columns) > 1:
            mapping["value"] = columns[1]
        return mapping
    mapping = {"xAxis": columns[0]}
    if len(columns) > 1:
        mapping["yAxis"] = columns[1]
    return mapping


def candidate_from_fields(fields: Dict[str, str], index: int) -> Optional[Dict[str, Any]]:
    """Build a candidate from one marker block; None when Type or Title is missing."""
    label = fields.get("type")
    title = fields.get("title")
    if not label or not title:
        return None
    chart_type = ChartType.from_label(label)
    columns = [c.strip() for c in fields.get("columns", "").split(",") if c.strip()]
    return {
        "id": f"ai-suggestion-text-{index}",
        "type": chart_type.value if chart_type else label,
        "title": title,
        "description": fields.get("description", ""),
        "dataMapping": _mapping_from_columns(chart_type, columns),
        "confidence": MARKER_CONFIDENCE,
        "reasoning": fields.get("reasoning") or MARKER_REASONING,
        "tags": [],
        "priority": Priority.medium.value,
    }


# ---------------------------------------------------------------------------
# Normalisation of structured candidates
# ---------------------------------------------------------------------------

def _legacy_mapping(raw: Dict[str, Any], chart_type: Optional[ChartType]) -> Dict[str, Any]:
    """Map ``chartConfig``/``tableConfig`` onto a ``dataMapping`` dict."""
    mapping: Dict[str, Any] = {}
    table_cfg = raw.get("tableConfig")
    if isinstance(table_cfg, dict) and isinstance(table_cfg.get("columns"), list):
        keys = []
        for col in table_cfg["columns"]:
            if isinstance(col, dict) and col.get("key"):
                keys.append(str(col["key"]))
            elif isinstance(col, str):
                keys.append(col)
        if keys:
            mapping["columns"] = keys

    chart_cfg = raw.get("chartConfig")
    if isinstance(chart_cfg, dict):
        x, y = chart_cfg.get("x"), chart_cfg.get("y")
        if chart_type is ChartType.scorecard:
            metric = y[0] if isinstance(y, list) and y else (y or x)
            if metric:
                mapping["metric"] = metric
        elif chart_type is ChartType.pie:
            if x:
                mapping["category"] = x
            if y:
                mapping["value"] = y[0] if isinstance(y, list) and y else y
        else:
            if x:
                mapping["xAxis"] = x
            if y:
                mapping["yAxis"] = y
        for key in ("color", "size"):
            if chart_cfg.get(key):
                mapping[key] = chart_cfg[key]
    return mapping


def normalize_candidate(raw: Dict[str, Any], index: int) -> Dict[str, Any]:
    """Fill defaults and translate legacy shapes; never rejects."""
    candidate = dict(raw)
    candidate["id"] = str(raw.get("id") or f"ai-suggestion-{index}")

    chart_type = ChartType.from_label(raw.get("type"))
    if chart_type is not None:
        candidate["type"] = chart_type.value

    if not isinstance(raw.get("dataMapping"), dict):
        candidate["dataMapping"] = _legacy_mapping(raw, chart_type)
    candidate.pop("chartConfig", None)
    candidate.pop("tableConfig", None)

    transform = raw.get("dataTransform")
    if transform is not None:
        try:
            DataTransformSpec.model_validate(transform)
        except ValidationError as exc:
            logger.warning(
                "Dropping invalid dataTransform on suggestion '%s': %s",
                candidate["id"], exc.errors()[0].get("msg"),
            )
            candidate.pop("dataTransform")
    return candidate


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def parse_suggestions(text: str) -> List[Dict[str, Any]]:
    """Extract every candidate suggestion from *text* (possibly none)."""
    candidates: List[Dict[str, Any]] = []

    for i, block in enumerate(extract_structured_blocks(text)):
        try:
            raws = decode_structured_block(block)
        except ValueError as exc:
            teaser = block[:120].replace("\n", "\\n")
            logger.warning("Discarding structured block %d: %s (teaser=%s)", i, exc, teaser)
            continue
        for raw in raws:
            candidates.append(normalize_candidate(raw, len(candidates)))

    for i, fields in enumerate(extract_marker_blocks(text)):
        candidate = candidate_from_fields(fields, i)
        if candidate is None:
            logger.warning("Discarding marker block %d: missing Type or Title", i)
            continue
        candidates.append(candidate)

    logger.info("Parsed %d candidate suggestion(s)", len(candidates))
    return candidates
