"""OpenTelemetry tracing integration for data repository operations.

Security:
    - Never export raw identifiers or keys; only their SHA256 digests
    - Never export file contents or filesystem paths
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast
from uuid import UUID

from opentelemetry import trace

from membernode.repository.models import DataPackage, PagingResponse

logger = logging.getLogger(__name__)

MEMBERNODE_OTEL_ENABLED_ENV = "MEMBERNODE_OTEL_ENABLED"

F = TypeVar("F", bound=Callable[..., Any])


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing of repository operations is enabled."""
    return _get_env_bool(MEMBERNODE_OTEL_ENABLED_ENV, False)


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _subject_digest(subject: Any) -> str | None:
    """Derive a safe correlation digest for the first operation argument."""
    if isinstance(subject, DataPackage):
        return _digest(str(subject.key)) if subject.key else None
    if isinstance(subject, (UUID, str)):
        return _digest(str(subject))
    return None


def traced_repository_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace repository operations with OpenTelemetry.

    Args:
        operation: Operation name (e.g., "get", "create", "update", "list").

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not is_otel_enabled():
                return func(self, *args, **kwargs)

            tracer = trace.get_tracer("membernode.repository")
            with tracer.start_as_current_span(f"membernode.repository.{operation}") as span:
                span.set_attribute("repository.backend", getattr(self, "backend_name", "unknown"))
                digest = _subject_digest(args[0]) if args else None
                if digest:
                    span.set_attribute("membernode.subject_sha256", digest)

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add safe result attributes (size, page counts) to the span."""
    try:
        if isinstance(result, DataPackage):
            span.set_attribute("membernode.package_size_bytes", result.size)
            span.set_attribute("membernode.package_file_count", len(result.files))
        elif isinstance(result, PagingResponse):
            span.set_attribute("membernode.page_result_count", len(result.results))
            if result.count is not None:
                span.set_attribute("membernode.page_total_count", result.count)
    except Exception as e:
        logger.debug("Failed to add result attributes to span: %s", e)
