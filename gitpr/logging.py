"""
Logging for git-pr-manager.

All package loggers live under ``gitpr``. HTTP traffic goes to
``gitpr.http`` at DEBUG; orchestration events go to ``gitpr.processor``,
``gitpr.merge`` and friends. Credentials (provider tokens, app passwords,
Authorization headers) are masked before anything is written.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

PACKAGE_LOGGER = "gitpr"
HTTP_LOGGER = "gitpr.http"

DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

REDACTED = "[REDACTED]"

_MASKS: list[tuple[re.Pattern[str], str]] = [
    # GitHub classic, OAuth, app and fine-grained tokens
    (re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})\b"), "[TOKEN_REDACTED]"),
    # GitLab access tokens
    (re.compile(r"\bglpat-[A-Za-z0-9_\-]{20,}\b"), "[TOKEN_REDACTED]"),
    # Authorization header values; the scheme is kept
    (re.compile(r"\b(Bearer|Basic|token)\s+[A-Za-z0-9+/=._\-]{8,}"), rf"\1 {REDACTED}"),
    # key: "value" and key="value" assignments
    (
        re.compile(
            r"(secret|token|password|app_password|api_key)['\"]?\s*[:=]\s*['\"][^'\"]+['\"]",
            re.IGNORECASE,
        ),
        rf"\1: {REDACTED}",
    ),
]

SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "private-token",
        "token",
        "password",
        "app_password",
        "secret",
        "api_key",
    }
)


def configure_logging(
    level: int = logging.INFO,
    http_level: int | None = None,
    handler: logging.Handler | None = None,
    format_string: str | None = None,
) -> None:
    """
    Attach a handler to the ``gitpr`` logger and set levels.

    Args:
        level: Level for every package logger
        http_level: Level for ``gitpr.http`` (defaults to ``level``); set
            DEBUG to see each API call
        handler: Handler to attach (a stderr StreamHandler when omitted)
        format_string: Record format (DEFAULT_FORMAT when omitted)

    Example:
        ```python
        configure_logging(logging.WARNING, http_level=logging.DEBUG)
        ```
    """
    target = handler or logging.StreamHandler()
    target.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))

    package = logging.getLogger(PACKAGE_LOGGER)
    package.setLevel(level)
    package.addHandler(target)

    logging.getLogger(HTTP_LOGGER).setLevel(level if http_level is None else http_level)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``gitpr`` or, given a suffix such as "merge", ``gitpr.<name>``."""
    return logging.getLogger(PACKAGE_LOGGER if name is None else f"{PACKAGE_LOGGER}.{name}")


class FieldsAdapter(logging.LoggerAdapter):
    """
    Prefixes messages with ``[key=value ...]`` context fields.

    The fields are also attached to each record as ``record.fields``.
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        fields = dict(self.extra or {})
        kwargs.setdefault("extra", {})["fields"] = fields
        if not fields:
            return msg, kwargs
        prefix = " ".join(f"{key}={value}" for key, value in fields.items())
        return f"[{prefix}] {msg}", kwargs


def with_fields(
    logger: logging.Logger | logging.LoggerAdapter, **fields: Any
) -> FieldsAdapter:
    """
    Bind context fields (provider, repository, pr_number, ...) to a logger.

    Binding onto an existing FieldsAdapter merges the new fields over the
    old ones.

    Example:
        ```python
        log = with_fields(get_logger("merge"), provider="github", pr_number=42)
        log.info("Merged")   # "[provider=github pr_number=42] Merged"
        ```
    """
    bound: dict[str, Any] = {}
    if isinstance(logger, logging.LoggerAdapter):
        if isinstance(logger, FieldsAdapter):
            bound.update(logger.extra or {})
        logger = logger.logger
    bound.update(fields)
    return FieldsAdapter(logger, bound)


def mask_sensitive_data(text: str) -> str:
    """Replace tokens, passwords and Authorization values found in ``text``."""
    for pattern, replacement in _MASKS:
        text = pattern.sub(replacement, text)
    return text


def _is_sensitive(key: str, sensitive_keys: frozenset[str] | set[str]) -> bool:
    lowered = key.lower()
    return any(candidate in lowered for candidate in sensitive_keys)


def safe_log_dict(
    data: Mapping[str, Any], sensitive_keys: frozenset[str] | set[str] | None = None
) -> dict[str, Any]:
    """
    Copy ``data`` with the values of sensitive keys replaced by "[REDACTED]".

    A key is sensitive when it contains any of ``sensitive_keys``
    (case-insensitive). Nested mappings and mappings inside lists are
    masked too; the input is not modified.

    Args:
        data: Headers, request bodies or configuration sections
        sensitive_keys: Key fragments to mask (default: SENSITIVE_KEYS)
    """
    keys = SENSITIVE_KEYS if sensitive_keys is None else sensitive_keys

    def clean(value: Any) -> Any:
        if isinstance(value, Mapping):
            return safe_log_dict(value, keys)
        if isinstance(value, list):
            return [safe_log_dict(v, keys) if isinstance(v, Mapping) else v for v in value]
        return value

    return {
        key: REDACTED if _is_sensitive(key, keys) else clean(value)
        for key, value in data.items()
    }


def log_http_request(
    method: str,
    url: str,
    headers: Mapping[str, str] | None = None,
    body: Mapping[str, Any] | None = None,
) -> None:
    """Log an outgoing request on ``gitpr.http`` at DEBUG, masked."""
    http = logging.getLogger(HTTP_LOGGER)
    if not http.isEnabledFor(logging.DEBUG):
        return

    parts = [f"{method} {mask_sensitive_data(url)}"]
    if headers:
        parts.append(f"headers={safe_log_dict(headers)}")
    if body:
        parts.append(f"body={safe_log_dict(body)}")
    http.debug(" | ".join(parts))


def log_http_response(status_code: int, url: str, elapsed_ms: float | None = None) -> None:
    """Log a response status (and duration) on ``gitpr.http`` at DEBUG."""
    http = logging.getLogger(HTTP_LOGGER)
    if not http.isEnabledFor(logging.DEBUG):
        return

    message = f"Response {status_code} from {mask_sensitive_data(url)}"
    if elapsed_ms is not None:
        message += f" | elapsed={elapsed_ms:.2f}ms"
    http.debug(message)


__all__ = [
    "DEFAULT_FORMAT",
    "FieldsAdapter",
    "SENSITIVE_KEYS",
    "configure_logging",
    "get_logger",
    "log_http_request",
    "log_http_response",
    "mask_sensitive_data",
    "safe_log_dict",
    "with_fields",
]
