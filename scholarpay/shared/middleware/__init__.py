# -*- coding: utf-8 -*-
from .exception_handler import (
    JSONExceptionMiddleware,
    billing_exception_handler,
    get_request_id,
    register_exception_handlers,
)

__all__ = [
    "JSONExceptionMiddleware",
    "billing_exception_handler",
    "get_request_id",
    "register_exception_handlers",
]
