# -*- coding: utf-8 -*-
"""
scholarpay/shared/core/__init__.py
"""

from .http_client import close_http_client, create_http_client, get_http_client
from .http_retry import retry_with_backoff

__all__ = [
    "close_http_client",
    "create_http_client",
    "get_http_client",
    "retry_with_backoff",
]
