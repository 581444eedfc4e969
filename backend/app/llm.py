"""Recommendation text generation.

Builds the prompt from the column schema and a few sample rows, invokes the
configured chat model and hands back plain text. Parsing the text into
charts happens in ``skills.parse``; nothing here interprets the answer.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Union

import pandas as pd
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from core.models import ColumnSchema
from .llm_loader import LLMConfigError, get_chat_model, get_provider_name
from .prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

SAMPLE_ROW_LIMIT = 5
MAX_ATTEMPTS = 2

ColumnLike = Union[ColumnSchema, Mapping[str, Any], str]


class LLMError(RuntimeError):
    pass


def _get_llm(temperature: float = 0.2) -> BaseChatModel:
    try:
        return get_chat_model(temperature=temperature)
    except LLMConfigError as exc:
        raise LLMError(str(exc)) from exc


# ---------- helpers for prompt construction ----------


def _as_text_from_content(content: Any) -> str:
    """Normalize LC content (str | list[chunk] | dict | AIMessage)."""
    if content is None:
        return ""
    if isinstance(content, AIMessage):
        return _as_text_from_content(content.content)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for p in content:
            if isinstance(p, dict):
                t = p.get("text")
                parts.append(t if isinstance(t, str) else "")
            else:
                parts.append(str(p))
        return "".join(parts)
    if isinstance(content, dict):
        for key in ("text", "content"):
            if isinstance(content.get(key), str):
                return content[key]
        return ""
    return str(content)


def _schema(columns: Sequence[ColumnLike]) -> List[ColumnSchema]:
    out: List[ColumnSchema] = []
    for col in columns:
        if isinstance(col, ColumnSchema):
            out.append(col)
        elif isinstance(col, str):
            out.append(ColumnSchema(name=col))
        else:
            out.append(ColumnSchema.model_validate(dict(col)))
    return out


def columns_markdown(columns: Sequence[ColumnLike]) -> str:
    return "\n".join(f"- {c.name} ({c.type.value})" for c in _schema(columns))


def sample_rows_csv(rows: Sequence[Mapping[str, Any]], limit: int = SAMPLE_ROW_LIMIT) -> str:
    if not rows:
        return "(no rows)"
    return pd.DataFrame(list(rows[:limit])).to_csv(index=False).strip()


def build_user_prompt(
    columns: Sequence[ColumnLike],
    sample_rows: Sequence[Mapping[str, Any]],
    target_count: int = 16,
) -> str:
    return (
        f"Recommend {target_count} dashboard charts for this dataset.\n\n"
        f"COLUMNS:\n{columns_markdown(columns)}\n\n"
        f"SAMPLE ROWS (first {min(len(sample_rows), SAMPLE_ROW_LIMIT)}, CSV):\n"
        f"{sample_rows_csv(sample_rows)}\n"
    )


# ---------- generation ----------


def _short_error(exc: Exception) -> str:
    msg = str(exc)
    if not msg:
        return exc.__class__.__name__
    return msg.replace("\n", " ").strip()[:200]


def generate_recommendation_text(
    columns: Sequence[ColumnLike],
    sample_rows: Sequence[Mapping[str, Any]],
    *,
    chat_model: Optional[BaseChatModel] = None,
    target_count: int = 16,
) -> str:
    """
    Ask the chat model for chart recommendations; returns the raw answer text.

    Retries once on an empty answer or a provider error, then raises LLMError.
    """
    llm = chat_model if chat_model is not None else _get_llm()
    messages = [
        SystemMessage(SYSTEM_PROMPT.format(target_count=target_count)),
        HumanMessage(build_user_prompt(columns, sample_rows, target_count)),
    ]
    provider = type(llm).__name__ if chat_model is not None else get_provider_name()
    logger.info("Requesting %d chart recommendations from %s", target_count, provider)

    last_error: Optional[str] = None
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            resp = llm.invoke(messages)
        except Exception as exc:
            last_error = _short_error(exc)
            logger.warning("Attempt %d/%d failed: %s", attempt, MAX_ATTEMPTS, last_error)
            continue
        text = _as_text_from_content(resp)
        if text.strip():
            logger.debug("LLM raw text teaser: %r", text[:200])
            return text
        last_error = "no_content"
        logger.warning("Attempt %d/%d returned no content", attempt, MAX_ATTEMPTS)

    raise LLMError(f"recommendation_failed_after_{MAX_ATTEMPTS}_attempts: {last_error}")
