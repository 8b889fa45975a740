# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Observability - Structured Logging

JSON-structured logging for authentication events:
- Request correlation (request_id)
- Tenant / user / session context injection
- Credential masking (passwords, tokens, secrets, digests)
- JSON output for aggregators, human-readable output for development
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# ============================================================
# CONTEXT VARIABLES
# ============================================================

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
tenant_id_var: ContextVar[str | None] = ContextVar("tenant_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
session_id_var: ContextVar[str | None] = ContextVar("session_id", default=None)

_CONTEXT_VARS = {
    "request_id": request_id_var,
    "tenant_id": tenant_id_var,
    "user_id": user_id_var,
    "session_id": session_id_var,
}


def set_request_context(**values: str | None) -> None:
    """Set any of request_id / tenant_id / user_id / session_id for this task."""
    for key, value in values.items():
        var = _CONTEXT_VARS.get(key)
        if var is None:
            raise KeyError(f"Unknown log context field: {key}")
        if value:
            var.set(value)


def clear_request_context() -> None:
    for var in _CONTEXT_VARS.values():
        var.set(None)


def get_request_context() -> dict[str, str | None]:
    return {key: var.get() for key, var in _CONTEXT_VARS.items()}


# ============================================================
# SENSITIVE DATA MASKING
# ============================================================

# Substrings of keys whose values never reach a log line
SENSITIVE_FIELDS = (
    "password",
    "secret",
    "token",
    "authorization",
    "credential",
    "private_key",
    "jwt",
    "bearer",
    "hash",
    "digest",
    "cookie",
)

REDACTED = "[REDACTED]"


def mask_sensitive_data(data: Any, depth: int = 0, max_depth: int = 10) -> Any:
    """
    Recursively mask sensitive values in dicts and lists.

    Keys are matched case-insensitively by substring. Bare strings that
    look like a JWT or bearer header are truncated.
    """
    if depth > max_depth:
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(data, dict):
        return {
            key: (
                REDACTED
                if any(s in str(key).lower() for s in SENSITIVE_FIELDS)
                else mask_sensitive_data(value, depth + 1, max_depth)
            )
            for key, value in data.items()
        }

    if isinstance(data, (list, tuple)):
        return [mask_sensitive_data(item, depth + 1, max_depth) for item in data]

    if isinstance(data, str) and len(data) > 20 and data.startswith(("eyJ", "Bearer ")):
        return f"{data[:8]}...{REDACTED}"

    return data


def short_id(value: str | None) -> str:
    """First 8 characters of an identifier, for log messages."""
    return value[:8] if value else "-"


# ============================================================
# FORMATTERS
# ============================================================

# Attributes every LogRecord carries; anything else came in via `extra=`
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Context variables are merged in, `extra=` fields land under "extra"
    after masking.
    """

    def __init__(self, mask_sensitive: bool = True):
        super().__init__()
        self.mask_sensitive = mask_sensitive

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        payload.update({k: v for k, v in get_request_context().items() if v})

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["error_type"] = exc_type.__name__
            payload["error_message"] = str(exc_value)
            payload["stack_trace"] = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))

        extra = _extra_fields(record)
        if extra:
            payload["extra"] = mask_sensitive_data(extra) if self.mask_sensitive else extra

        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """Single-line colored output with short context ids."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_request_context()
        ctx_parts = [
            f"{label}={short_id(ctx[key])}"
            for key, label in (("request_id", "req"), ("tenant_id", "tenant"), ("user_id", "user"))
            if ctx.get(key)
        ]
        ctx_str = f"[{' '.join(ctx_parts)}] " if ctx_parts else ""

        timestamp = datetime.fromtimestamp(record.created, UTC).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level = f"{self.COLORS[level]}{level}{self.RESET}"

        line = f"{timestamp} {level:8} {record.name}:{record.lineno} {ctx_str}{record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{''.join(traceback.format_exception(*record.exc_info))}"
        return line


# ============================================================
# LOGGING CONFIGURATION
# ============================================================


def configure_logging(
    level: str = "INFO",
    format: str = "json",
    mask_sensitive: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure the root logger for Turnstile.

    Args:
        level: Logging level name
        format: "json" for production, "human" for development
        mask_sensitive: Mask credential-looking fields in JSON output
        use_colors: ANSI colors for the human format
    """
    if format == "json":
        formatter: logging.Formatter = JSONFormatter(mask_sensitive=mask_sensitive)
    else:
        formatter = HumanFormatter(use_colors=use_colors)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return root_logger


# ============================================================
# SECURITY AUDIT LOGGING
# ============================================================


class AuditLogger:
    """
    Mirrors audit entries to the `audit` logger.

    SECURITY_INCIDENT entries go out at WARNING, everything else at INFO.
    """

    def __init__(self, name: str = "audit"):
        self._logger = logging.getLogger(name)

    def log(
        self,
        action: str,
        entity_type: str,
        entity_id: str | None = None,
        user_id: str | None = None,
        tenant_id: str | None = None,
        description: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        level = logging.WARNING if action == "SECURITY_INCIDENT" else logging.INFO
        self._logger.log(
            level,
            f"AUDIT: {action} {entity_type}:{short_id(entity_id)}",
            extra={
                "audit_event": True,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "audit_user_id": user_id,
                "audit_tenant_id": tenant_id,
                "description": description,
                "details": mask_sensitive_data(details) if details else None,
            },
        )


audit_logger = AuditLogger()


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    # Context
    "set_request_context",
    "clear_request_context",
    "get_request_context",
    "request_id_var",
    "tenant_id_var",
    "user_id_var",
    "session_id_var",
    # Logging
    "configure_logging",
    "JSONFormatter",
    "HumanFormatter",
    "mask_sensitive_data",
    "short_id",
    # Audit
    "AuditLogger",
    "audit_logger",
]
