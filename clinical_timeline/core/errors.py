"""Error types and component-boundary handling.

Every pipeline component is a pure function of its inputs. An internal failure
inside one component must never propagate to the caller: it is logged and the
component returns its documented empty result instead.
"""

import functools
import logging
from collections.abc import Callable
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")


class TimelineEngineError(Exception):
    """Base class for engine errors."""


class MalformedMentionError(TimelineEngineError):
    """A mention is missing its category or name."""


class DateParseError(TimelineEngineError):
    """A date string could not be parsed."""

    def __init__(self, value: str) -> None:
        super().__init__(f"Unparseable date: {value!r}")
        self.value = value


class KnowledgeBaseError(TimelineEngineError):
    """Static knowledge tables are missing or invalid."""


def component_boundary(
    component: str,
    fallback: Callable[..., R],
    logger: logging.Logger | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Catch any failure of a component and return its degraded result.

    Args:
        component: Human-readable component name used in the log record.
        fallback: Called with the exception to build the degraded result.
        logger: Logger to report to. Defaults to this module's logger.

    Returns:
        Decorator wrapping the component entry point.

    Example:
        @component_boundary("timeline", lambda exc: Timeline.empty(str(exc)))
        def build(self, document): ...
    """
    log = logger or logging.getLogger(__name__)

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                log.exception(f"[{component}] failed, returning degraded result: {e}")
                return fallback(e)

        return wrapper

    return decorator
