# Langfuse integration
import os
from typing import Any, Callable, Dict, List, Optional, TypeVar

import structlog
from langfuse import get_client, observe

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def tracing_enabled() -> bool:
    """Tracing is active only when enabled and Langfuse credentials are present"""
    flag = os.getenv("SEARCHMIND_LANGFUSE_ENABLED", "false").lower() in ("1", "true", "yes")
    return flag and bool(os.getenv("LANGFUSE_PUBLIC_KEY")) and bool(os.getenv("LANGFUSE_SECRET_KEY"))


def traced(name: str) -> Callable[[F], F]:
    """Wrap a coroutine function in a Langfuse observation when tracing is enabled"""

    def decorator(func: F) -> F:
        if not tracing_enabled():
            return func
        return observe(name=name)(func)

    return decorator


def tag_current_trace(
    session_id: Optional[str],
    property_id: Optional[str],
    tags: Optional[List[str]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Attach turn identifiers to the active Langfuse trace"""
    if not tracing_enabled():
        return
    try:
        get_client().update_current_trace(
            session_id=session_id,
            tags=["searchmind", *(tags or [])],
            metadata={"property_id": property_id, **(metadata or {})},
        )
    except Exception as e:
        logger.warning("Failed to tag trace", error=str(e))
