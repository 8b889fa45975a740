# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details


"""
HTTP boundary: error mapping, auth dependencies and the app shell.
"""

from .app import create_app
from .dependencies import bearer_token, get_current_auth, get_session_engine
from .errors import STATUS_BY_KIND, error_response, register_error_handlers, status_for

__all__ = [
    "create_app",
    "get_session_engine",
    "bearer_token",
    "get_current_auth",
    "STATUS_BY_KIND",
    "status_for",
    "error_response",
    "register_error_handlers",
]
