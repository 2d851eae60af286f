"""Where background failures go: the log, plus a bounded list operators can read."""

from __future__ import annotations

import threading
import traceback
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .config import settings
from .runtime import get_logger, iso_now

logger = get_logger("error_sink")

_LOCK = threading.Lock()
_RECENT: Optional[Deque[Dict[str, Any]]] = None


def _buffer() -> Deque[Dict[str, Any]]:
    """Built on first use so ERROR_SINK_SIZE is read at runtime; caller holds _LOCK."""
    global _RECENT
    if _RECENT is None:
        _RECENT = deque(maxlen=max(0, settings().ERROR_SINK_SIZE))
    return _RECENT


def report(context: str, err: BaseException, **extra: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "context": context,
        "type": err.__class__.__name__,
        "error": str(err),
        "at": iso_now(),
    }
    entry.update(extra)
    logger.error(
        "❌ %s failed: %s",
        context,
        err,
        exc_info=(type(err), err, err.__traceback__),
    )
    entry["trace"] = "".join(traceback.format_exception(type(err), err, err.__traceback__))[-9000:]
    with _LOCK:
        _buffer().append(entry)
    return entry


def recent(limit: int = 50) -> List[Dict[str, Any]]:
    with _LOCK:
        items = list(_buffer())
    return [{k: v for k, v in item.items() if k != "trace"} for item in items[-limit:]][::-1]


def clear() -> None:
    """Drop every entry; the buffer is rebuilt from current settings on next use."""
    global _RECENT
    with _LOCK:
        _RECENT = None
