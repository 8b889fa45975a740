# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Observability - Metrics Module

Prometheus metrics for the credential lifecycle:
- Refresh failures by reason
- Token rotations and rotation latency
- Refresh token reuse and security escalations
- Token issuance and login attempts
- Session revocations and retention purges

Each AuthMetrics owns its own CollectorRegistry, so tests (and
multiple engines in one process) never collide on metric names.
User and session ids are never label values; they go to the log line.
"""

import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from .logging import short_id

logger = logging.getLogger(__name__)


# Rotation latency buckets (seconds). Rotation is a couple of indexed
# writes plus one bcrypt-free HMAC, so the interesting range is small.
ROTATION_BUCKETS = (
    0.001,
    0.0025,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
)


class AuthMetrics:
    """
    Metrics sink for the session engine.

    Usage:
        metrics = AuthMetrics(namespace="turnstile")
        metrics.track_failed_refresh("not_found")
        body = metrics.generate_latest()
    """

    def __init__(self, namespace: str = "turnstile", registry: CollectorRegistry | None = None):
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()
        ns = namespace

        # ============================================================
        # REFRESH / ROTATION
        # ============================================================

        self.refresh_failures_total = Counter(
            f"{ns}_refresh_failures_total",
            "Rejected refresh attempts",
            ["reason"],
            registry=self.registry,
        )

        self.token_rotations_total = Counter(
            f"{ns}_token_rotations_total",
            "Successful refresh token rotations",
            registry=self.registry,
        )

        self.token_rotation_duration_seconds = Histogram(
            f"{ns}_token_rotation_duration_seconds",
            "Refresh token rotation latency in seconds",
            buckets=ROTATION_BUCKETS,
            registry=self.registry,
        )

        # ============================================================
        # SECURITY EVENTS
        # ============================================================

        self.refresh_token_reuse_total = Counter(
            f"{ns}_refresh_token_reuse_total",
            "Detected refresh token reuse (replay of a rotated or revoked token)",
            registry=self.registry,
        )

        self.security_escalations_total = Counter(
            f"{ns}_security_escalations_total",
            "Users crossing the security incident threshold",
            registry=self.registry,
        )

        # ============================================================
        # ISSUANCE / AUTH
        # ============================================================

        self.tokens_issued_total = Counter(
            f"{ns}_tokens_issued_total",
            "Tokens issued",
            ["token_type"],
            registry=self.registry,
        )

        self.auth_attempts_total = Counter(
            f"{ns}_auth_attempts_total",
            "Authentication attempts",
            ["method", "result"],
            registry=self.registry,
        )

        # ============================================================
        # SESSIONS
        # ============================================================

        self.sessions_revoked_total = Counter(
            f"{ns}_sessions_revoked_total",
            "Refresh token records revoked outside rotation",
            ["reason"],
            registry=self.registry,
        )

        self.revoked_tokens_purged_total = Counter(
            f"{ns}_revoked_tokens_purged_total",
            "Revoked and expired refresh token records deleted by retention cleanup",
            registry=self.registry,
        )

        self.active_sessions = Gauge(
            f"{ns}_active_sessions",
            "Active sessions seen by the last session listing",
            registry=self.registry,
        )

        self.app_info = Info(
            f"{ns}_app",
            "Application information",
            registry=self.registry,
        )

    def set_app_info(self, version: str, environment: str, **kwargs):
        self.app_info.info({"version": version, "environment": environment, **kwargs})

    # ============================================================
    # RECORDING METHODS
    # ============================================================

    def track_failed_refresh(self, reason: str):
        """Record a rejected refresh attempt."""
        self.refresh_failures_total.labels(reason=reason).inc()

    def track_token_rotation(self, user_id: str, latency_seconds: float):
        """Record a successful rotation."""
        self.token_rotations_total.inc()
        self.token_rotation_duration_seconds.observe(latency_seconds)
        logger.debug(
            "Rotated refresh token for user %s in %.1fms",
            short_id(user_id),
            latency_seconds * 1000,
        )

    def track_reuse_detection(self, user_id: str, session_id: str):
        """Record a detected refresh token reuse."""
        self.refresh_token_reuse_total.inc()
        logger.warning(
            "Refresh token reuse detected",
            extra={"event": "refresh_token_reuse", "user": user_id, "session": session_id},
        )

    def track_security_escalation(self, user_id: str, incident_count: int):
        """Record a user crossing the incident threshold."""
        self.security_escalations_total.inc()
        logger.warning(
            "Security escalation: %d incidents for user %s",
            incident_count,
            short_id(user_id),
            extra={"event": "security_escalation", "user": user_id, "incidents": incident_count},
        )

    def track_token_issued(self, token_type: str):
        self.tokens_issued_total.labels(token_type=token_type).inc()

    def track_auth_attempt(self, method: str, result: str):
        self.auth_attempts_total.labels(method=method, result=result).inc()

    def track_sessions_revoked(self, reason: str, count: int):
        if count > 0:
            self.sessions_revoked_total.labels(reason=reason).inc(count)

    def track_purged(self, count: int):
        if count > 0:
            self.revoked_tokens_purged_total.inc(count)

    def track_active_sessions(self, count: int):
        self.active_sessions.set(count)

    # ============================================================
    # EXPOSITION
    # ============================================================

    def value(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Current sample value for `<namespace>_<name>`, 0.0 if never recorded."""
        sample = self.registry.get_sample_value(f"{self.namespace}_{name}", labels or {})
        return sample or 0.0

    def generate_latest(self) -> bytes:
        """Generate Prometheus exposition format."""
        return generate_latest(self.registry)

    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# ============================================================
# GLOBAL METRICS INSTANCE
# ============================================================

_metrics: AuthMetrics | None = None


def get_metrics() -> AuthMetrics:
    """Process-wide AuthMetrics for entry points (CLI, app factory)."""
    global _metrics
    if _metrics is None:
        _metrics = AuthMetrics()
    return _metrics


def init_metrics(
    namespace: str = "turnstile",
    app_version: str = "0.0.0",
    environment: str = "development",
) -> AuthMetrics:
    """Replace the process-wide AuthMetrics."""
    global _metrics
    _metrics = AuthMetrics(namespace=namespace)
    _metrics.set_app_info(version=app_version, environment=environment)
    logger.info("Metrics initialized (namespace=%s)", namespace)
    return _metrics


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "AuthMetrics",
    "get_metrics",
    "init_metrics",
    "ROTATION_BUCKETS",
]
