# src/bot_core/auth/__init__.py
"""
Server-side authentication (/register, /login) negotiation.
"""

from __future__ import annotations

from .credentials import CredentialStore
from .negotiator import (
    LOGIN,
    REGISTRATION,
    SUCCESS,
    AuthNegotiator,
    AuthState,
    strip_formatting,
)

__all__ = [
    "AuthNegotiator",
    "AuthState",
    "CredentialStore",
    "LOGIN",
    "REGISTRATION",
    "SUCCESS",
    "strip_formatting",
]
