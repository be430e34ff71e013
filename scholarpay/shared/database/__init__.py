# -*- coding: utf-8 -*-
"""
scholarpay/shared/database/__init__.py
"""

from .base import Base, JSONType, as_utc, utcnow
from .database import SessionLocal, engine, get_async_session, session_scope

__all__ = [
    "Base",
    "JSONType",
    "SessionLocal",
    "as_utc",
    "engine",
    "get_async_session",
    "session_scope",
    "utcnow",
]
