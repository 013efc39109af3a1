"""Shared utilities for LLM responses and blocking provider calls."""

from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Optional

_WRAPPING_QUOTES = ('"', "'", "`", "“", "”")
_LABEL_RE = re.compile(r"^(search query|query|refined query)\s*:\s*", re.IGNORECASE)


def clean_llm_text(raw: Optional[str]) -> str:
    """Reduce a one-line LLM reply to its payload.

    Tries in order:
    1. Drop markdown code fence lines
    2. Keep the first non-empty line
    3. Strip a leading "Query:" style label
    4. Strip matching wrapping quotes and surrounding whitespace
    """
    if not raw:
        return ""

    lines = [l for l in raw.strip().split("\n") if not l.strip().startswith("```")]
    lines = [l.strip() for l in lines if l.strip()]
    if not lines:
        return ""

    text = _LABEL_RE.sub("", lines[0]).strip()
    while len(text) >= 2 and text[0] in _WRAPPING_QUOTES and text[-1] in _WRAPPING_QUOTES:
        text = text[1:-1].strip()
    return text


async def run_blocking(func: Callable[..., Any], *args: Any, deadline: float, **kwargs: Any) -> Any:
    """Run a blocking SDK call on a worker thread, bounded by ``deadline`` seconds.

    Raises asyncio.TimeoutError when the call does not finish in time. The
    awaiting task is cancelled; the worker thread is left to the provider's
    own transport timeout.
    """
    return await asyncio.wait_for(asyncio.to_thread(func, *args, **kwargs), timeout=deadline)
