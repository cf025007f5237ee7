"""
Helpers for logging and inspecting outbound failures.

httpx and anyio may surface transport errors wrapped in exception groups, so
these helpers look through ``.exceptions`` and never raise themselves.
"""

import logging


def _safe_str(obj) -> str:
    """Convert an object to string, falling back to repr and then the type name."""
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _safe_get_exceptions(exception_group) -> list:
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def find_exception_in_exception_groups(exception: BaseException, target_type):
    """
    Recursively search an exception and its sub-exceptions for ``target_type``.

    Args:
        exception: The exception to search through
        target_type: An exception class or tuple of classes

    Returns:
        The first matching exception, or None if not found
    """
    try:
        if isinstance(exception, target_type):
            return exception

        if hasattr(exception, "exceptions"):
            for sub_exc in _safe_get_exceptions(exception):
                inner_exc = find_exception_in_exception_groups(sub_exc, target_type)
                if inner_exc is not None:
                    return inner_exc

        return None
    except Exception:
        return None


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception, one line per sub-exception when it is a group.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[PROXY:claude]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        safe_exception_str = "None" if exception is None else _safe_str(exception)
        sub_exceptions = (
            _safe_get_exceptions(exception)
            if exception is not None and hasattr(exception, "exceptions")
            else []
        )

        if not sub_exceptions:
            logger.log(
                level,
                f"{safe_prefix} Exception: {safe_exception_str}",
                exc_info=exception if exception is not None else False,
            )
            return

        logger.log(
            level,
            f"{safe_prefix} Exception with {len(sub_exceptions)} sub-exceptions: {safe_exception_str}",
        )
        for i, sub_exc in enumerate(sub_exceptions):
            logger.log(
                level,
                f"{safe_prefix} Sub-exception {i+1}: {type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                exc_info=sub_exc,
            )
    except Exception:
        # Logging must never take down a request
        try:
            logger.log(logging.ERROR, "Exception logging failed")
        except Exception:
            pass


def format_exception_message(exception: BaseException) -> str:
    """Format an exception message, including sub-exceptions of a group."""
    if exception is None:
        return "None"

    main_str = _safe_str(exception) or type(exception).__name__
    sub_exceptions = (
        _safe_get_exceptions(exception) if hasattr(exception, "exceptions") else []
    )
    if not sub_exceptions:
        return main_str

    joined = "; ".join(
        f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}" for sub_exc in sub_exceptions
    )
    return f"{main_str} (Sub-exceptions: {joined})"
