# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Observability Module

- metrics: Prometheus metrics for rotation, reuse and revocation
- logging: Structured logging with request context and credential masking
"""

from .logging import (
    AuditLogger,
    HumanFormatter,
    JSONFormatter,
    audit_logger,
    clear_request_context,
    configure_logging,
    get_request_context,
    mask_sensitive_data,
    set_request_context,
    short_id,
)
from .metrics import (
    ROTATION_BUCKETS,
    AuthMetrics,
    get_metrics,
    init_metrics,
)


def init_observability(
    namespace: str = "turnstile",
    app_version: str = "0.0.0",
    environment: str = "development",
    log_level: str = "INFO",
    log_format: str = "json",
) -> AuthMetrics:
    """
    Initialize logging and the process-wide metrics registry.

    Returns:
        The AuthMetrics instance entry points should hand to the engine.
    """
    configure_logging(level=log_level, format=log_format)
    return init_metrics(namespace=namespace, app_version=app_version, environment=environment)


__all__ = [
    "init_observability",
    # Metrics
    "AuthMetrics",
    "get_metrics",
    "init_metrics",
    "ROTATION_BUCKETS",
    # Logging
    "configure_logging",
    "JSONFormatter",
    "HumanFormatter",
    "AuditLogger",
    "audit_logger",
    "set_request_context",
    "clear_request_context",
    "get_request_context",
    "mask_sensitive_data",
    "short_id",
]
