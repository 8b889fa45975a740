# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Core Module

- Settings: pydantic-settings configuration groups
"""

from .settings import (
    DatabaseSettings,
    NotificationSettings,
    ObservabilitySettings,
    SecuritySettings,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "DatabaseSettings",
    "SecuritySettings",
    "NotificationSettings",
    "ObservabilitySettings",
    "get_settings",
]
