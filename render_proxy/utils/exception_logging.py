"""
Exception logging helpers for the proxy pipeline.

Renderer failures frequently arrive wrapped (exception groups from task
groups, playwright errors carrying long call logs), so these helpers expand
sub-exceptions and never raise themselves.
"""

import logging


def _safe_str(obj) -> str:
    """Convert an object to string, falling back when __str__/__repr__ fail."""
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(exception.exceptions)
    except Exception:
        return []


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception, one line per sub-exception when it is an exception group.

    Args:
        logger: The logger instance to use
        prefix: Component tag for the message (e.g. "[Fetch]", "[Relay]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        message = "None" if exception is None else _safe_str(exception)
        subs = _sub_exceptions(exception) if exception is not None else []

        if subs:
            logger.log(
                level,
                f"{safe_prefix} Exception with {len(subs)} sub-exceptions: {message}",
            )
            for i, sub_exc in enumerate(subs):
                sub_type = type(sub_exc).__name__
                logger.log(
                    level,
                    f"{safe_prefix} Sub-exception {i+1}: {sub_type}: {_safe_str(sub_exc)}",
                    exc_info=sub_exc,
                )
            return

        logger.log(
            level,
            f"{safe_prefix} Exception: {message}",
            exc_info=exception if exception is not None else False,
        )
    except Exception:
        try:
            logger.log(logging.ERROR, f"{prefix} Exception (logging failed)")
        except Exception:
            pass


def format_exception_message(exception: Exception) -> str:
    """
    Format an exception for an error response body.

    Exception groups are flattened into "main (Sub-exceptions: T: msg; ...)".
    """
    try:
        if exception is None:
            return "None"
        subs = _sub_exceptions(exception)
        if not subs:
            return _safe_str(exception)
        joined = "; ".join(
            f"{type(sub).__name__}: {_safe_str(sub)}" for sub in subs
        )
        return f"{_safe_str(exception)} (Sub-exceptions: {joined})"
    except Exception:
        return f"<{type(exception).__name__} (formatting failed)>"
